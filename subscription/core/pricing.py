"""
Price formatting helpers using Babel.

Monthly equivalents are computed as ``price / 12``, quantized to the
currency's minor-unit precision with ROUND_HALF_UP, then formatted for the
store product's locale. A $99.00 annual plan therefore shows $8.25/month
and a $0.30 one shows $0.03 (0.025 rounds up).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision

from subscription.config import settings

DEFAULT_LOCALE = "en_US"
MONTHS_PER_YEAR = Decimal(12)


def _validate_locale(locale_code: Optional[str]) -> str:
    """Return a usable locale, falling back to PRICE_LOCALE and then en_US."""
    for candidate in (locale_code, settings.PRICE_LOCALE):
        if not candidate:
            continue
        try:
            Locale.parse(candidate)
            return candidate
        except (UnknownLocaleError, ValueError):
            continue
    return DEFAULT_LOCALE


def round_to_currency(amount: Decimal, currency_code: str) -> Decimal:
    """Round to the currency's minor units, halves away from zero."""
    precision = get_currency_precision(currency_code.upper())
    return amount.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def format_price(amount: Decimal, currency_code: str, locale: Optional[str] = None) -> str:
    """Format an amount with locale-aware currency formatting."""
    return format_currency(
        number=amount,
        currency=currency_code.upper(),
        locale=_validate_locale(locale),
    )


def monthly_price(annual_price: Decimal, currency_code: str) -> Decimal:
    return round_to_currency(Decimal(annual_price) / MONTHS_PER_YEAR, currency_code)


def format_monthly_price(
    annual_price: Decimal,
    currency_code: str,
    locale: Optional[str] = None,
) -> str:
    return format_price(monthly_price(annual_price, currency_code), currency_code, locale)
