"""
Constants for billing: GST, invoice numbering and gateway payload defaults.

Values that differ per deployment (seller state, invoice prefix, due days,
idempotency TTL) are read from Django settings; see billing_setting().

Import example:
    from billing.constants import GST_CONFIG, INVOICE_CONFIG
"""

from decimal import Decimal
from typing import Final

from django.conf import settings


# =============================================================================
# GST Configuration
# =============================================================================


class GST_CONFIG:
    """Indian GST rates applied to SaaS subscriptions."""

    GST_RATE: Final[Decimal] = Decimal("0.18")
    CGST_RATE: Final[Decimal] = Decimal("0.09")
    SGST_RATE: Final[Decimal] = Decimal("0.09")

    # SAC code for "information technology software services"
    HSN_CODE: Final[str] = "998314"

    DEFAULT_BUSINESS_STATE: Final[str] = "Maharashtra"


# =============================================================================
# Invoice Configuration
# =============================================================================


class INVOICE_CONFIG:
    """Invoice numbering and due-date settings."""

    DEFAULT_PREFIX: Final[str] = "BIZ"
    SEQUENCE_DIGITS: Final[int] = 5

    # Indian fiscal year starts on 1 April
    FISCAL_YEAR_START_MONTH: Final[int] = 4

    DEFAULT_DUE_DAYS: Final[int] = 15
    DEFAULT_LINE_DESCRIPTION: Final[str] = "Subscription"

    MAX_PAGE_SIZE: Final[int] = 100
    DEFAULT_PAGE_SIZE: Final[int] = 15

    # Retries after an invoice_number unique violation
    NUMBERING_RETRIES: Final[int] = 1


# =============================================================================
# Gateway Payload Defaults
# =============================================================================


class GATEWAY_DEFAULTS:
    """Fallbacks used when a gateway payload omits a field."""

    CURRENCY: Final[str] = "INR"
    PAYMENT_METHOD: Final[str] = "unknown"
    FAILURE_CODE: Final[str] = "PAYMENT_FAILED"
    FAILURE_DESCRIPTION: Final[str] = "Payment failed"

    WEBHOOK_KEY_PREFIX: Final[str] = "rzp_webhook_"
    WEBHOOK_IDEMPOTENCY_TTL_SECONDS: Final[int] = 3600


def billing_setting(name: str, default):
    """Read a billing setting, falling back to the constant default."""
    return getattr(settings, name, default)
