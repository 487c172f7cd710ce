"""Async HTTP client for the ledger API.

Error responses are turned back into the ledger's exception types. A request
that times out or never reaches the server raises ``TransportError``: its
outcome is unknown and it must never be read as a success.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from types import TracebackType
from typing import Any
from uuid import UUID

import httpx

from clinic_billing.core.config import settings
from clinic_billing.core.errors import TransportError, error_from_detail
from clinic_billing.schemas.invoice import InvoiceResponse
from clinic_billing.services.invoice_export import ExportedDocument, export_filename

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r'filename="?([^";]+)"?')


class BillingApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.BILLING_API_URL,
            headers=headers,
            timeout=settings.BILLING_API_TIMEOUT_SECONDS if timeout is None else timeout,
            transport=transport,
        )

    async def __aenter__(self) -> BillingApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out", method, path)
            raise TransportError(
                "The billing service did not answer in time; the outcome is unknown"
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(f"Could not reach the billing service: {exc}") from exc

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            detail = body.get("detail") if isinstance(body, dict) else body
            raise error_from_detail(detail, response.status_code)
        return response

    async def get_invoice(self, invoice_id: UUID) -> InvoiceResponse:
        response = await self._request("GET", f"/v1/invoices/{invoice_id}")
        return InvoiceResponse.model_validate(response.json())

    async def mark_cash_paid(self, invoice_id: UUID) -> InvoiceResponse:
        response = await self._request("POST", f"/v1/invoices/{invoice_id}/mark-cash-paid")
        return InvoiceResponse.model_validate(response.json())

    async def download_invoice_pdf(
        self, invoice_id: UUID, today: date | None = None
    ) -> ExportedDocument:
        response = await self._request("GET", f"/v1/invoices/{invoice_id}/download-pdf")
        match = _FILENAME_RE.search(response.headers.get("content-disposition", ""))
        filename = match.group(1) if match else export_filename(invoice_id, today or date.today())
        return ExportedDocument(
            content=response.content,
            filename=filename,
            media_type=response.headers.get("content-type", "application/pdf"),
        )
