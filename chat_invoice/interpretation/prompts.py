"""Prompt construction for order interpretation."""

import json
from datetime import date

from chat_invoice.interpretation.schema import BusinessProfile, CatalogSnapshot
from chat_invoice.shared.config import Settings

SYSTEM_PROMPT = (
    "You turn merchant chat messages into structured invoice data. "
    "Respond with a single JSON object only, no prose and no markdown."
)

OUTPUT_SCHEMA = """{
  "invoiceNumber": "string or null",
  "invoiceDate": "YYYY-MM-DD",
  "dueDate": "YYYY-MM-DD or null",
  "customer": {"name": "string", "email": "string or null", "phone": "string or null", "address": "string or null"},
  "items": [{"productName": "string", "description": "string or null", "quantity": number, "unitPrice": number, "lineTotal": number}],
  "subtotal": number,
  "discount": number,
  "discountType": "percentage|fixed",
  "shipping": number,
  "taxAmount": number,
  "grandTotal": number,
  "paymentSchedule": {"scheduleType": "down_payment", "downPaymentPercentage": number, "downPaymentAmount": number, "finalPaymentDueDate": "YYYY-MM-DD or null"} or null,
  "notes": "string",
  "terms": "string or null",
  "thankYouMessage": "string or null"
}"""

RULES = """PRODUCT RULES:
- Keep every product name exactly as written by the user; never rename or enhance it
- Use catalog prices only to price items whose price is not written in the message
- A price written in the message always wins over the catalog

DISCOUNT RULES (apply first):
- Only "discount", "disc", "diskon", "potongan", "potong" introduce a discount
- "discount 10%" -> discount: 10, discountType: "percentage"
- "diskon 50rb" -> discount: 50000, discountType: "fixed"
- "discount X%" is NEVER a down payment
- No discount keyword -> discount: 0, discountType: "fixed"

PAYMENT SCHEDULE RULES (apply after discounts):
- Only "down payment", "DP", "uang muka", "bayar muka" request a down payment
- "DP 30%" -> downPaymentPercentage: 30; "DP 500rb" -> downPaymentAmount: 500000
- "sisa pembayaran tanggal 20/08/2025" -> finalPaymentDueDate: "2025-08-20"
- No down payment keyword -> paymentSchedule: null

NOTES RULES:
- Text after "Catatan:", "Note:" or "Notes:" goes into notes verbatim"""


def token_budget(settings: Settings, catalog_size: int) -> int:
    """Output token budget scaled by catalog size and capped."""
    budget = (
        settings.completion_max_tokens_base
        + settings.completion_tokens_per_catalog_item * catalog_size
    )
    return min(settings.completion_max_tokens_cap, budget)


def serialize_catalog(catalog: CatalogSnapshot, limit: int) -> str:
    """Compact JSON lines describing active catalog products."""
    lines = []
    for product in catalog.active_products()[:limit]:
        entry: dict[str, object] = {"name": product.name, "price": str(product.unit_price)}
        if product.sku:
            entry["sku"] = product.sku
        if product.tags:
            entry["tags"] = list(product.tags)
        lines.append(json.dumps(entry, ensure_ascii=False))
    return "\n".join(lines)


def build_user_prompt(
    message: str,
    catalog: CatalogSnapshot,
    profile: BusinessProfile,
    settings: Settings,
    today: date,
) -> str:
    """Assemble the bounded user prompt.

    Args:
        message: Raw merchant message (truncated to ``prompt_message_max_chars``)
        catalog: Catalog snapshot (at most ``prompt_catalog_limit`` products included)
        profile: Merchant profile supplying currency and tax
        settings: Application settings
        today: Invoice date

    Returns:
        Prompt text
    """
    message = message[: settings.prompt_message_max_chars]
    catalog_block = serialize_catalog(catalog, settings.prompt_catalog_limit) or "(empty)"
    tax_line = (
        f"{profile.tax_name} {profile.tax_rate}% on subtotal"
        if profile.tax_enabled
        else "no tax"
    )

    return (
        f'Order message:\n"""\n{message}\n"""\n\n'
        f"Catalog:\n{catalog_block}\n\n"
        f"Today's date: {today.isoformat()}\n"
        f"Currency: {profile.currency}\n"
        f"Tax: {tax_line}\n\n"
        f"{RULES}\n\n"
        f"Return JSON only, with exactly this shape:\n{OUTPUT_SCHEMA}"
    )
