"""Invoice document export: rendered bytes plus a deterministic filename."""

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from clinic_billing.core.errors import RenderError
from clinic_billing.services.invoice_ledger import InvoiceLedger
from clinic_billing.services.pdf_service import PdfService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportedDocument:
    content: bytes
    filename: str
    media_type: str = "application/pdf"


def export_filename(invoice_id: UUID, today: date, extension: str = "pdf") -> str:
    return f"invoice-{invoice_id}-{today.isoformat()}.{extension}"


class InvoiceExportService:
    """Read-only: looks invoices up through the ledger, never mutates them."""

    def __init__(self, db: Session, renderer: PdfService | None = None):
        self.ledger = InvoiceLedger(db)
        self.renderer = renderer or PdfService()

    def export(self, invoice_id: UUID, today: date | None = None) -> ExportedDocument:
        invoice = self.ledger.get_invoice(invoice_id)
        payments = self.ledger.list_payments(invoice_id)
        try:
            content = self.renderer.generate_invoice_pdf(invoice, payments)
        except Exception as exc:
            logger.warning("Failed to render invoice %s: %s", invoice_id, exc)
            raise RenderError(f"Could not render invoice {invoice_id}") from exc

        return ExportedDocument(
            content=content,
            filename=export_filename(invoice_id, today or date.today()),
        )
