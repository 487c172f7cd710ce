"""Tests for the cash payment confirmation flow."""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest

from clinic_billing.core.auth import ActorRole, create_access_token
from clinic_billing.core.errors import ConflictError, InvalidStateError, TransportError
from clinic_billing.main import app
from clinic_billing.services.billing_client import BillingApiClient
from clinic_billing.services.cash_payment_flow import (
    CANCELLED_ERROR,
    FLOW_TRANSITIONS,
    CashPaymentConfirmation,
    DialogEvent,
    DialogState,
)

SHORT_DELAY = 0.01


def _flow(mark_cash_paid=None, on_success=None):  # type: ignore[no-untyped-def]
    return CashPaymentConfirmation(
        mark_cash_paid or AsyncMock(return_value="settled"),
        on_success=on_success,
        success_delay=SHORT_DELAY,
    )


def test_every_state_reachable():
    targets = set(FLOW_TRANSITIONS.values())
    assert targets == set(DialogState)


def test_default_delay_from_settings():
    flow = CashPaymentConfirmation(AsyncMock())
    assert flow.success_delay == 1.2


class TestOpenAndCancel:
    def test_open(self):
        flow = _flow()
        invoice_id = uuid4()

        flow.open(invoice_id)

        assert flow.state == DialogState.CONFIRM
        assert flow.invoice_id == invoice_id
        assert flow.can_submit is True

    def test_cancel_closes_without_calling_ledger(self):
        mark = AsyncMock()
        flow = _flow(mark)
        flow.open(uuid4())

        flow.cancel()

        assert flow.state == DialogState.CLOSED
        assert flow.invoice_id is None
        mark.assert_not_called()

    def test_cancel_only_from_confirm(self):
        flow = _flow()
        with pytest.raises(InvalidStateError):
            flow.cancel()

    def test_cannot_open_twice(self):
        flow = _flow()
        flow.open(uuid4())
        with pytest.raises(InvalidStateError):
            flow.open(uuid4())


class TestConfirm:
    @pytest.mark.asyncio
    async def test_success_then_timer_closes(self):
        mark = AsyncMock(return_value="settled")
        on_success = MagicMock()
        flow = _flow(mark, on_success)
        invoice_id = uuid4()
        flow.open(invoice_id)

        result = await flow.confirm()

        assert result == "settled"
        assert flow.state == DialogState.SUCCESS
        mark.assert_awaited_once_with(invoice_id)
        on_success.assert_not_called()

        await asyncio.wait_for(flow.wait_closed(), timeout=1)

        assert flow.state == DialogState.CLOSED
        assert flow.invoice_id is None
        assert flow.error is None
        on_success.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_confirm_requires_open_dialog(self):
        mark = AsyncMock()
        flow = _flow(mark)
        with pytest.raises(InvalidStateError):
            await flow.confirm()
        mark.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_submit_while_loading_rejected(self):
        release = asyncio.Event()
        calls = []

        async def slow_mark(invoice_id):  # type: ignore[no-untyped-def]
            calls.append(invoice_id)
            await release.wait()
            return "settled"

        flow = _flow(slow_mark)
        flow.open(uuid4())
        first = asyncio.create_task(flow.confirm())
        await asyncio.sleep(0)

        assert flow.state == DialogState.LOADING
        assert flow.can_submit is False
        with pytest.raises(InvalidStateError):
            await flow.confirm()

        release.set()
        assert await first == "settled"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_not_allowed_while_loading(self):
        release = asyncio.Event()

        async def slow_mark(invoice_id):  # type: ignore[no-untyped-def]
            await release.wait()

        flow = _flow(slow_mark)
        flow.open(uuid4())
        task = asyncio.create_task(flow.confirm())
        await asyncio.sleep(0)

        with pytest.raises(InvalidStateError):
            flow.cancel()

        release.set()
        await task


class TestFailure:
    @pytest.mark.asyncio
    async def test_failure_shows_message(self):
        on_success = MagicMock()
        flow = _flow(AsyncMock(side_effect=ConflictError("Invoice is busy")), on_success)
        flow.open(uuid4())

        result = await flow.confirm()

        assert result is None
        assert flow.state == DialogState.ERROR
        assert flow.error == "Invoice is busy"
        on_success.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_message_falls_back(self):
        flow = _flow(AsyncMock(side_effect=TransportError("")))
        flow.open(uuid4())

        await flow.confirm()

        assert flow.error == "Unknown error"

    @pytest.mark.asyncio
    async def test_retry_keeps_target(self):
        invoice_id = uuid4()
        mark = AsyncMock(side_effect=[TransportError("timed out"), "settled"])
        flow = _flow(mark)
        flow.open(invoice_id)
        await flow.confirm()

        flow.retry()

        assert flow.state == DialogState.CONFIRM
        assert flow.invoice_id == invoice_id
        assert flow.error is None
        assert await flow.confirm() == "settled"
        assert mark.await_count == 2

    @pytest.mark.asyncio
    async def test_dismiss_closes(self):
        flow = _flow(AsyncMock(side_effect=ConflictError("busy")))
        flow.open(uuid4())
        await flow.confirm()

        flow.dismiss()

        assert flow.state == DialogState.CLOSED
        assert flow.invoice_id is None
        assert flow.error is None

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_after_error_state(self):
        flow = _flow(AsyncMock(side_effect=RuntimeError("boom")))
        flow.open(uuid4())

        with pytest.raises(RuntimeError):
            await flow.confirm()

        assert flow.state == DialogState.ERROR
        assert flow.error == "Unknown error"

    @pytest.mark.asyncio
    async def test_caller_timeout_lands_in_error(self):
        release = asyncio.Event()
        calls = []

        async def slow_mark(invoice_id):  # type: ignore[no-untyped-def]
            calls.append(invoice_id)
            if len(calls) == 1:
                await release.wait()
            return "settled"

        invoice_id = uuid4()
        flow = _flow(slow_mark)
        flow.open(invoice_id)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(flow.confirm(), timeout=0.05)

        assert flow.state == DialogState.ERROR
        assert flow.error == CANCELLED_ERROR
        assert flow.invoice_id == invoice_id

        flow.retry()
        assert flow.state == DialogState.CONFIRM
        assert await flow.confirm() == "settled"
        assert calls == [invoice_id, invoice_id]

    @pytest.mark.asyncio
    async def test_dismiss_after_caller_timeout(self):
        async def hang(invoice_id):  # type: ignore[no-untyped-def]
            await asyncio.Event().wait()

        flow = _flow(hang)
        flow.open(uuid4())

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(flow.confirm(), timeout=0.05)

        flow.dismiss()
        assert flow.state == DialogState.CLOSED
        await asyncio.wait_for(flow.wait_closed(), timeout=1)

    def test_retry_only_from_error(self):
        flow = _flow()
        flow.open(uuid4())
        with pytest.raises(InvalidStateError):
            flow.retry()
        with pytest.raises(InvalidStateError):
            flow.dismiss()


@pytest.mark.asyncio
async def test_timer_event_rejected_outside_success():
    flow = _flow()
    flow.open(uuid4())
    with pytest.raises(InvalidStateError):
        flow._fire(DialogEvent.TIMER_ELAPSED)


@pytest.mark.asyncio
async def test_against_live_api(make_invoice):
    invoice = make_invoice()
    token = create_access_token("front-desk", ActorRole.ADMIN)
    refreshed = MagicMock()

    async with BillingApiClient(
        base_url="http://testserver", token=token, transport=httpx.ASGITransport(app=app)
    ) as client:
        flow = CashPaymentConfirmation(
            client.mark_cash_paid, on_success=refreshed, success_delay=SHORT_DELAY
        )
        flow.open(invoice.id)
        settled = await flow.confirm()
        await asyncio.wait_for(flow.wait_closed(), timeout=1)

        fetched = await client.get_invoice(invoice.id)

    assert settled.status == "COMPLETED"
    assert fetched.status == "COMPLETED"
    refreshed.assert_called_once_with()
