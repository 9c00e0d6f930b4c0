"""Action policy table for newly detected entities.

Each entity kind maps to thresholds on the completeness confidence. Products
never auto-add: new product names come straight from chat text and must not
enter the catalog unreviewed, so ``ActionPolicy`` refuses an auto-add
threshold for them.
"""

from dataclasses import dataclass

from chat_invoice.matching.models import EntityKind, MatchAction
from chat_invoice.shared.config import Settings


@dataclass(frozen=True)
class ActionPolicy:
    """Confidence thresholds for one entity kind.

    A threshold of None disables that action.
    """

    kind: EntityKind
    auto_add_threshold: float | None = None
    smart_confirm_threshold: float | None = None

    def __post_init__(self) -> None:
        if self.kind == EntityKind.PRODUCT and self.auto_add_threshold is not None:
            raise ValueError("Products can never be auto-added")

    def decide(self, confidence: float) -> MatchAction:
        if self.auto_add_threshold is not None and confidence >= self.auto_add_threshold:
            return MatchAction.AUTO_ADD
        if self.smart_confirm_threshold is not None and confidence >= self.smart_confirm_threshold:
            return MatchAction.SMART_CONFIRM
        return MatchAction.MANUAL_REVIEW


ACTION_POLICIES: dict[EntityKind, ActionPolicy] = {
    EntityKind.CUSTOMER: ActionPolicy(EntityKind.CUSTOMER, smart_confirm_threshold=0.6),
    EntityKind.PRODUCT: ActionPolicy(EntityKind.PRODUCT),
}


def build_policies(settings: Settings) -> dict[EntityKind, ActionPolicy]:
    """Policy table with customer thresholds taken from settings."""
    return {
        EntityKind.CUSTOMER: ActionPolicy(
            EntityKind.CUSTOMER,
            auto_add_threshold=settings.customer_auto_add_threshold,
            smart_confirm_threshold=settings.customer_smart_confirm_threshold,
        ),
        EntityKind.PRODUCT: ACTION_POLICIES[EntityKind.PRODUCT],
    }
