"""Identity-matching data models."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityKind(str, Enum):
    CUSTOMER = "customer"
    PRODUCT = "product"


class MatchAction(str, Enum):
    """What to do with an extracted entity.

    EXISTING: matched a stored record, nothing to learn
    AUTO_ADD: new and confident enough to store without review
    SMART_CONFIRM: new, offer a one-click confirmation
    MANUAL_REVIEW: new, needs a merchant to check the details
    ERROR: matching itself failed
    """

    EXISTING = "existing"
    AUTO_ADD = "auto_add"
    SMART_CONFIRM = "smart_confirm"
    MANUAL_REVIEW = "manual_review"
    ERROR = "error"


class LearningSource(str, Enum):
    MANUAL = "manual"
    AUTO_LEARNING = "ai_auto_learning"


class CustomerRecord(BaseModel):
    """Stored customer."""

    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    source: LearningSource = LearningSource.MANUAL
    confidence_score: float | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CustomerDraft(BaseModel):
    """New customer waiting to be stored."""

    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    source: LearningSource = LearningSource.AUTO_LEARNING
    confidence_score: float | None = None


class ProductDraft(BaseModel):
    """New product waiting to be added to the catalog."""

    name: str
    description: str | None = None
    sku: str
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    category: str = "Umum"
    source: LearningSource = LearningSource.AUTO_LEARNING
    confidence_score: float | None = None


class MatchResult(BaseModel):
    """Outcome of matching one extracted entity.

    Attributes:
        kind: Customer or product
        is_new: True when no stored record matched
        confidence: 1.0 for matches, completeness score for new entities, 0 on error
        action: Action chosen by the policy table
        data: Matched record, or the draft to store for new entities
        matched_by: Which rule produced an existing match (email, phone, name)
    """

    kind: EntityKind
    is_new: bool
    confidence: float = Field(ge=0.0, le=1.0)
    action: MatchAction
    data: dict[str, Any] | None = None
    matched_by: str | None = None
    error: str | None = None
