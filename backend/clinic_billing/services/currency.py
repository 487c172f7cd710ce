"""Money formatting and currency selection.

The display currency of an invoice is never chosen on its own: it follows the
modality of the linked appointment. Amounts are formatted as-is in that
currency; there is no exchange-rate conversion anywhere in the ledger.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from clinic_billing.core.config import settings
from clinic_billing.models.appointment import AppointmentModality

if TYPE_CHECKING:
    from clinic_billing.models.invoice import Invoice

CURRENCY_SYMBOLS = {
    "DOP": "RD$",
    "USD": "US$",
    "EUR": "€",
}

_TWO_PLACES = Decimal("0.01")


def currency_for_modality(modality: AppointmentModality | str) -> str:
    """Return the currency code an appointment of ``modality`` settles in."""
    if AppointmentModality(modality) == AppointmentModality.VIRTUAL:
        return settings.FOREIGN_CURRENCY
    return settings.LOCAL_CURRENCY


def format_currency(amount: Decimal | float | int | str, currency: str) -> str:
    """Format ``amount`` as a symbol-prefixed string with two fraction digits.

    Uses the clinic's locale conventions (``,`` for thousands, ``.`` for
    decimals) and half-up rounding, e.g. ``format_currency(1234.5, "DOP")``
    gives ``"RD$1,234.50"``.
    """
    value = Decimal(str(amount)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_invoice_amount(invoice: Invoice) -> str:
    return format_currency(invoice.amount, invoice.currency)
