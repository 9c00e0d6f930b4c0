"""Identity resolution for extracted customers and products.

Decides whether an entity found in order text is already known. Customers are
matched by e-mail, then normalized phone, then fuzzy name (first hit wins).
Products are matched by name similarity against the active catalog. New
entities get a completeness confidence and an action from the policy table.
"""

import logging
import re
import secrets
import string
from typing import Any

from chat_invoice.completion.base import CompletionProvider, CompletionRequest
from chat_invoice.interpretation.schema import CatalogProduct, PartialCustomer, PartialLineItem
from chat_invoice.matching.models import (
    CustomerDraft,
    CustomerRecord,
    EntityKind,
    MatchAction,
    MatchResult,
    ProductDraft,
)
from chat_invoice.matching.policy import ActionPolicy, build_policies
from chat_invoice.matching.similarity import best_match
from chat_invoice.shared.config import Settings
from chat_invoice.storage.ports import Repository

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

KNOWN_BRANDS = ("apple", "samsung", "iphone", "macbook", "sony", "nike", "adidas")
KNOWN_CATEGORY_KEYWORDS = ("laptop", "handphone", "sepatu", "tas", "kemeja", "celana")

DEFAULT_CATEGORY = "Umum"
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Elektronik": (
        "iphone", "samsung", "laptop", "macbook", "handphone", "airpods", "ipad",
        "tablet", "headphone", "earphone", "charger", "kamera", "sony",
    ),
    "Fashion": (
        "sepatu", "tas", "kemeja", "celana", "baju", "kaos", "jaket", "dress",
        "nike", "adidas",
    ),
    "Makanan": ("kue", "roti", "snack", "coklat", "cokelat", "permen", "lolly", "keripik"),
    "Minuman": ("kopi", "teh", "jus", "susu", "minuman"),
}


def normalize_phone(phone: str | None) -> str:
    """Digits-only phone with Indonesian prefixes unified to ``62``.

    ``0812...`` and ``812...`` (10+ digits) both become ``62812...``.
    """
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("08"):
        return "628" + digits[2:]
    if digits.startswith("8") and len(digits) >= 10:
        return "62" + digits
    return digits


def is_valid_email(email: str | None) -> bool:
    return bool(email and EMAIL_RE.match(email))


def customer_confidence(customer: PartialCustomer) -> float:
    """Completeness score of a new customer, in [0, 1]."""
    confidence = 0.3
    if is_valid_email(customer.email):
        confidence += 0.3
    if customer.phone and len(customer.phone) >= 10:
        confidence += 0.2
    if customer.name and len(customer.name) > 2:
        confidence += 0.1
    if customer.address and len(customer.address) > 10:
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def product_confidence(item: PartialLineItem) -> float:
    """Completeness score of a new product, in [0, 1]."""
    confidence = 0.4
    name = item.product_name.lower()
    if len(item.product_name) > 2:
        confidence += 0.2
    if item.unit_price > 0:
        confidence += 0.2
    if item.description and len(item.description) > 5:
        confidence += 0.1
    if any(brand in name for brand in KNOWN_BRANDS):
        confidence += 0.1
    if any(keyword in name for keyword in KNOWN_CATEGORY_KEYWORDS):
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def generate_sku(product_name: str) -> str:
    """SKU like ``IPH-7K2Q``: three name characters (padded with X) and four random ones."""
    cleaned = re.sub(r"[^A-Za-z0-9]", "", product_name).upper()
    prefix = cleaned[:3].ljust(3, "X")
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"{prefix}-{suffix}"


def infer_category(product_name: str) -> str:
    """Keyword-based category, ``Umum`` when nothing matches."""
    name = product_name.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in name for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


class IdentityMatcher:
    """Match extracted customers and products against stored records.

    Args:
        settings: Application settings (thresholds, pool limits)
        repository: Persistence collaborator, used when no candidate pool is given
        policies: Action policy table; built from settings when omitted
        provider: Optional completion provider for category inference
    """

    def __init__(
        self,
        settings: Settings,
        repository: Repository | None = None,
        policies: dict[EntityKind, ActionPolicy] | None = None,
        provider: CompletionProvider | None = None,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.policies = policies or build_policies(settings)
        self.provider = provider

    def match(
        self,
        kind: EntityKind,
        extracted: PartialCustomer | PartialLineItem,
        candidate_pool: list[Any] | None = None,
    ) -> MatchResult:
        """Decide whether ``extracted`` is a known entity.

        Args:
            kind: Customer or product
            extracted: Customer or line item from the order
            candidate_pool: Records to match against; the repository is queried when None

        Returns:
            MatchResult; ``action == error`` if a collaborator failed
        """
        try:
            if kind == EntityKind.CUSTOMER and isinstance(extracted, PartialCustomer):
                return self._match_customer(extracted, candidate_pool)
            if kind == EntityKind.PRODUCT and isinstance(extracted, PartialLineItem):
                return self._match_product(extracted, candidate_pool)
            raise TypeError(f"Cannot match {type(extracted).__name__} as {kind.value}")
        except Exception as e:
            logger.error(f"Identity matching failed for {kind.value}: {e}")
            return MatchResult(
                kind=kind,
                is_new=False,
                confidence=0.0,
                action=MatchAction.ERROR,
                error=str(e),
            )

    # --- customers ----------------------------------------------------------

    def _match_customer(
        self, customer: PartialCustomer, pool: list[CustomerRecord] | None
    ) -> MatchResult:
        matched, matched_by = self._find_customer(customer, pool)
        if matched is not None:
            logger.info(f"Customer matched by {matched_by}: {matched.name}")
            return MatchResult(
                kind=EntityKind.CUSTOMER,
                is_new=False,
                confidence=1.0,
                action=MatchAction.EXISTING,
                data=matched.model_dump(),
                matched_by=matched_by,
            )

        confidence = customer_confidence(customer)
        draft = CustomerDraft(
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=customer.address,
            confidence_score=confidence,
        )
        return MatchResult(
            kind=EntityKind.CUSTOMER,
            is_new=True,
            confidence=confidence,
            action=self.policies[EntityKind.CUSTOMER].decide(confidence),
            data=draft.model_dump(),
        )

    def _find_customer(
        self, customer: PartialCustomer, pool: list[CustomerRecord] | None
    ) -> tuple[CustomerRecord | None, str | None]:
        if customer.email:
            if pool is not None:
                email = customer.email.strip().lower()
                found = next((c for c in pool if c.email and c.email.lower() == email), None)
            else:
                found = self.repository.get_customer(customer.email) if self.repository else None
            if found is not None:
                return found, "email"

        phone = normalize_phone(customer.phone)
        if phone:
            records = pool
            if records is None:
                records = (
                    self.repository.get_all_customers(self.settings.customer_pool_limit, 0)
                    if self.repository
                    else []
                )
            found = next((c for c in records if c.phone and normalize_phone(c.phone) == phone), None)
            if found is not None:
                return found, "phone"

        name = customer.name.strip()
        if name and len(name) > self.settings.customer_fuzzy_min_name_length:
            if pool is not None:
                found = self._best_name_match(name, pool)
            else:
                found = self.repository.find_fuzzy_name_match(name) if self.repository else None
            if found is not None:
                return found, "name"

        return None, None

    def _best_name_match(self, name: str, pool: list[CustomerRecord]) -> CustomerRecord | None:
        return best_match(
            name,
            (record for record in pool if record.name),
            key=lambda record: record.name,
            threshold=self.settings.customer_name_match_threshold,
        )

    # --- products -----------------------------------------------------------

    def _match_product(
        self, item: PartialLineItem, pool: list[CatalogProduct] | None
    ) -> MatchResult:
        if pool is None:
            pool = (
                self.repository.get_all_products(self.settings.product_pool_limit, 0, None, True)
                if self.repository
                else []
            )

        best = best_match(
            item.product_name,
            (product for product in pool if product.active),
            key=lambda product: product.name,
            threshold=self.settings.product_match_threshold,
        )

        if best is not None:
            return MatchResult(
                kind=EntityKind.PRODUCT,
                is_new=False,
                confidence=1.0,
                action=MatchAction.EXISTING,
                data=best.model_dump(),
                matched_by="name",
            )

        confidence = product_confidence(item)
        draft = ProductDraft(
            name=item.product_name,
            description=item.description,
            sku=generate_sku(item.product_name),
            unit_price=item.unit_price,
            category=self.infer_category(item.product_name),
            confidence_score=confidence,
        )
        return MatchResult(
            kind=EntityKind.PRODUCT,
            is_new=True,
            confidence=confidence,
            action=self.policies[EntityKind.PRODUCT].decide(confidence),
            data=draft.model_dump(),
        )

    def infer_category(self, product_name: str) -> str:
        """Category for a new product.

        Asks the completion provider when one is configured, falling back to
        keyword inference on any failure.
        """
        if self.provider is None:
            return infer_category(product_name)

        result = self.provider.complete(
            CompletionRequest(
                system_prompt=(
                    "You are a product categorization expert. "
                    "Return only the category name in Indonesian, maximum 2 words."
                ),
                user_prompt=f'Kategorikan produk ini dalam 1-2 kata bahasa Indonesia: "{product_name}"',
                max_tokens=20,
                temperature=self.settings.completion_temperature,
                json_output=False,
            )
        )
        category = (result.content or "").strip().strip('"').strip()
        if not result.success or not category or len(category.split()) > 3:
            return infer_category(product_name)
        return category
