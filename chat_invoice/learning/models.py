"""Auto-learning result models."""

from typing import Any

from pydantic import BaseModel, Field

from chat_invoice.matching.models import EntityKind, MatchAction, MatchResult


class ConfirmationRequest(BaseModel):
    """A new entity waiting for the merchant's decision."""

    kind: EntityKind
    action: MatchAction
    data: dict[str, Any]
    confidence: float


class LearningError(BaseModel):
    """Failure isolated to a single entity."""

    kind: EntityKind
    name: str | None = None
    error: str


class LearningAnalysis(BaseModel):
    """Match results for the customer and every line item of one order."""

    customer: MatchResult | None = None
    products: list[MatchResult] = Field(default_factory=list)

    @property
    def new_customer_detected(self) -> bool:
        return self.customer is not None and self.customer.is_new

    @property
    def new_products_detected(self) -> bool:
        return any(result.is_new for result in self.products)


class LearningOutcome(BaseModel):
    customers_added: int = 0
    products_added: int = 0
    confirmations_needed: list[ConfirmationRequest] = Field(default_factory=list)
    errors: list[LearningError] = Field(default_factory=list)
