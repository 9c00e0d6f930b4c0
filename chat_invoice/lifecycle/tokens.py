"""Identifiers and capability tokens."""

import secrets
import string
import time
import uuid

CUSTOMER_TOKEN_PREFIX = "inv_"
FINAL_PAYMENT_TOKEN_PREFIX = "fp_"


def new_invoice_id() -> str:
    return uuid.uuid4().hex


def new_customer_token() -> str:
    """Token granting access to the customer-facing invoice page."""
    return CUSTOMER_TOKEN_PREFIX + secrets.token_urlsafe(24)


def new_final_payment_token() -> str:
    """Token granting access to the final-payment page."""
    return FINAL_PAYMENT_TOKEN_PREFIX + secrets.token_urlsafe(24)


def new_preview_id() -> str:
    """``preview_<epoch ms>_<random>``"""
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"preview_{int(time.time() * 1000)}_{suffix}"
