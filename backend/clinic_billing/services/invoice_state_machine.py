"""Invoice status transitions.

The whole transition matrix lives in ``TRANSITIONS``. A pair that is missing
from the table is rejected. A pair whose target equals the current status is
an idempotent no-op, so retrying an action after a timeout never applies it
twice.

A FAILED invoice is not settleable: it has to be reopened (FAILED -> PENDING)
before a new payment or a cash settlement is accepted.
"""

from dataclasses import dataclass
from enum import Enum

from clinic_billing.core.errors import InvalidStateError
from clinic_billing.models.invoice import InvoiceStatus


class InvoiceAction(str, Enum):
    SETTLE = "settle"
    FAIL = "fail"
    REFUND = "refund"
    REOPEN = "reopen"


PENDING = InvoiceStatus.PENDING
COMPLETED = InvoiceStatus.COMPLETED
FAILED = InvoiceStatus.FAILED
REFUNDED = InvoiceStatus.REFUNDED

TRANSITIONS: dict[tuple[InvoiceStatus, InvoiceAction], InvoiceStatus] = {
    (PENDING, InvoiceAction.SETTLE): COMPLETED,
    (PENDING, InvoiceAction.FAIL): FAILED,
    (PENDING, InvoiceAction.REOPEN): PENDING,
    (COMPLETED, InvoiceAction.SETTLE): COMPLETED,
    (COMPLETED, InvoiceAction.REFUND): REFUNDED,
    (FAILED, InvoiceAction.FAIL): FAILED,
    (FAILED, InvoiceAction.REOPEN): PENDING,
    (REFUNDED, InvoiceAction.REFUND): REFUNDED,
}

# Status requested through an administrative update -> action that reaches it
ACTION_FOR_TARGET: dict[InvoiceStatus, InvoiceAction] = {
    COMPLETED: InvoiceAction.SETTLE,
    FAILED: InvoiceAction.FAIL,
    REFUNDED: InvoiceAction.REFUND,
    PENDING: InvoiceAction.REOPEN,
}

EDITABLE_STATUSES = frozenset({PENDING})


@dataclass(frozen=True)
class Transition:
    source: InvoiceStatus
    target: InvoiceStatus
    action: InvoiceAction

    @property
    def changed(self) -> bool:
        return self.source != self.target


def resolve_transition(current: InvoiceStatus | str, action: InvoiceAction) -> Transition:
    """Look up ``action`` from ``current`` or raise ``InvalidStateError``."""
    source = InvoiceStatus(current)
    target = TRANSITIONS.get((source, action))
    if target is None:
        raise InvalidStateError(
            f"Cannot {action.value} an invoice with status {source.value}",
            field="status",
        )
    return Transition(source=source, target=target, action=action)


def ensure_editable(current: InvoiceStatus | str) -> None:
    status = InvoiceStatus(current)
    if status not in EDITABLE_STATUSES:
        raise InvalidStateError(
            f"Only pending invoices can be edited (status is {status.value})",
            field="status",
        )
