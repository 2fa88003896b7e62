import logging
import math
import re
from decimal import Decimal
from typing import Any, Iterable

from babel.numbers import format_currency
from pydantic import BaseModel

import config

logger = logging.getLogger(__name__)

# Leading decimal literal, the way a lenient float parser reads "12.5kg"
NUMBER_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class InvoiceTotals(BaseModel):
    subtotal: float = 0
    vat: float = 0
    total: float = 0


def to_number(value: Any) -> float:
    """Coerce any input into a finite number. Never raises; bad input is 0."""
    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else 0
    if isinstance(value, float):
        return value if math.isfinite(value) else 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    try:
        text = str(value).replace(",", "")
    except Exception:
        return 0

    match = NUMBER_PREFIX.match(text)
    if not match:
        return 0
    try:
        number = float(match.group(1))
    except (ValueError, OverflowError):
        return 0
    return number if math.isfinite(number) else 0


def format_money(amount: Any, currency: str, locale: str | None = None) -> str:
    value = to_number(amount)
    try:
        return format_currency(value, currency, locale=locale or config.LOCALE)
    except Exception as e:
        logger.debug("Currency formatting failed for %r: %s", currency, e)
        return f"{float(value):,.2f} {currency}"


def line_amount(item) -> float:
    return to_number(item.quantity) * to_number(item.rate)


def compute_totals(items: Iterable, tax_rate: Any = 0, discount: Any = 0, shipping: Any = 0) -> InvoiceTotals:
    """
    Derive subtotal, VAT and grand total.

    VAT is charged on the subtotal before the discount, and the total is
    never clamped, so a large discount can make it negative.
    """
    subtotal = sum((line_amount(item) for item in items), 0)
    vat = subtotal * (to_number(tax_rate) / 100)
    total = subtotal - to_number(discount) + vat + to_number(shipping)
    return InvoiceTotals(subtotal=subtotal, vat=vat, total=total)


def invoice_totals(invoice) -> InvoiceTotals:
    return compute_totals(invoice.items, invoice.taxRate, invoice.discount, invoice.shipping)
