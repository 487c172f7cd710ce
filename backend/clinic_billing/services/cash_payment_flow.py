"""Cash payment confirmation flow.

A small finite-state value driving the "mark as paid in cash" interaction::

    CLOSED --open--> CONFIRM --submit--> LOADING --settled--> SUCCESS --timer--> CLOSED
                        |                   |
                      cancel              failed
                        v                   v
                      CLOSED              ERROR --retry--> CONFIRM
                                            |
                                          dismiss --> CLOSED

Only one ledger call is in flight per flow: submitting again while LOADING is
rejected. There is no user cancel while LOADING. If the awaiting task itself is
cancelled (a caller timeout), the flow lands in ERROR because the ledger call
may or may not have gone through.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any
from uuid import UUID

from clinic_billing.core.config import settings
from clinic_billing.core.errors import InvalidStateError, LedgerError

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"
CANCELLED_ERROR = "The request was interrupted; the payment may or may not have been recorded"


class DialogState(str, Enum):
    CLOSED = "closed"
    CONFIRM = "confirm"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class DialogEvent(str, Enum):
    OPEN = "open"
    CANCEL = "cancel"
    SUBMIT = "submit"
    SETTLED = "settled"
    FAILED = "failed"
    TIMER_ELAPSED = "timer_elapsed"
    RETRY = "retry"
    DISMISS = "dismiss"


FLOW_TRANSITIONS: dict[tuple[DialogState, DialogEvent], DialogState] = {
    (DialogState.CLOSED, DialogEvent.OPEN): DialogState.CONFIRM,
    (DialogState.CONFIRM, DialogEvent.CANCEL): DialogState.CLOSED,
    (DialogState.CONFIRM, DialogEvent.SUBMIT): DialogState.LOADING,
    (DialogState.LOADING, DialogEvent.SETTLED): DialogState.SUCCESS,
    (DialogState.LOADING, DialogEvent.FAILED): DialogState.ERROR,
    (DialogState.SUCCESS, DialogEvent.TIMER_ELAPSED): DialogState.CLOSED,
    (DialogState.ERROR, DialogEvent.RETRY): DialogState.CONFIRM,
    (DialogState.ERROR, DialogEvent.DISMISS): DialogState.CLOSED,
}


class CashPaymentConfirmation:
    """Confirm -> loading -> success | error around one ``mark_cash_paid`` call.

    ``mark_cash_paid`` is any coroutine function taking an invoice id, usually
    ``BillingApiClient.mark_cash_paid``. ``on_success`` runs when the success
    screen closes so dependent views can refetch.
    """

    def __init__(
        self,
        mark_cash_paid: Callable[[UUID], Awaitable[Any]],
        on_success: Callable[[], None] | None = None,
        success_delay: float | None = None,
    ):
        self._mark_cash_paid = mark_cash_paid
        self._on_success = on_success
        self.success_delay = (
            settings.CASH_CONFIRM_SUCCESS_DELAY_SECONDS if success_delay is None else success_delay
        )
        self.state = DialogState.CLOSED
        self.invoice_id: UUID | None = None
        self.error: str | None = None
        self.result: Any = None
        self._timer: asyncio.TimerHandle | None = None
        self._closed = asyncio.Event()
        self._closed.set()

    @property
    def can_submit(self) -> bool:
        return self.state == DialogState.CONFIRM

    def _fire(self, event: DialogEvent) -> DialogState:
        target = FLOW_TRANSITIONS.get((self.state, event))
        if target is None:
            raise InvalidStateError(
                f"Cannot {event.value} the cash payment dialog while {self.state.value}"
            )
        logger.debug("Cash payment dialog %s: %s -> %s", event.value, self.state.value, target.value)
        self.state = target
        if target == DialogState.CLOSED:
            self._closed.set()
        else:
            self._closed.clear()
        return target

    def open(self, invoice_id: UUID) -> None:
        self._fire(DialogEvent.OPEN)
        self.invoice_id = invoice_id
        self.error = None
        self.result = None

    def cancel(self) -> None:
        self._fire(DialogEvent.CANCEL)
        self.invoice_id = None

    async def confirm(self) -> Any:
        """Submit the cash settlement. Returns the ledger's result, or None on error."""
        self._fire(DialogEvent.SUBMIT)
        invoice_id = self.invoice_id
        assert invoice_id is not None

        try:
            result = await self._mark_cash_paid(invoice_id)
        except LedgerError as exc:
            self.error = exc.message or UNKNOWN_ERROR
            self._fire(DialogEvent.FAILED)
            logger.info("Cash payment for invoice %s failed: %s", invoice_id, self.error)
            return None
        except asyncio.CancelledError:
            self.error = CANCELLED_ERROR
            self._fire(DialogEvent.FAILED)
            logger.warning("Cash payment for invoice %s was cancelled while loading", invoice_id)
            raise
        except Exception:
            self.error = UNKNOWN_ERROR
            self._fire(DialogEvent.FAILED)
            logger.exception("Unexpected error marking invoice %s as cash paid", invoice_id)
            raise

        self.result = result
        self._fire(DialogEvent.SETTLED)
        self._timer = asyncio.get_running_loop().call_later(
            self.success_delay, self._on_timer_elapsed
        )
        return result

    def retry(self) -> None:
        self._fire(DialogEvent.RETRY)
        self.error = None

    def dismiss(self) -> None:
        self._fire(DialogEvent.DISMISS)
        self.error = None
        self.invoice_id = None

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def _on_timer_elapsed(self) -> None:
        self._timer = None
        self._fire(DialogEvent.TIMER_ELAPSED)
        self.error = None
        self.invoice_id = None
        if self._on_success is not None:
            self._on_success()
