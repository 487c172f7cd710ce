"""PDF generation service for invoices."""

from __future__ import annotations

from html import escape
from string import Template
from typing import TYPE_CHECKING

from clinic_billing.services.aging import days_overdue_display
from clinic_billing.services.currency import format_currency

if TYPE_CHECKING:
    from clinic_billing.models.invoice import Invoice
    from clinic_billing.models.payment import Payment

_INVOICE_TEMPLATE = Template("""\
<!DOCTYPE html>
<html>
<head>
<style>
  body { font-family: Helvetica, Arial, sans-serif; font-size: 12px; color: #333; margin: 40px; }
  h1 { font-size: 24px; margin-bottom: 4px; }
  .meta td { padding: 2px 8px 2px 0; }
  table.items { width: 100%; border-collapse: collapse; margin: 20px 0; }
  table.items th { text-align: left; border-bottom: 2px solid #333; padding: 6px 8px; }
  table.items td { padding: 6px 8px; border-bottom: 1px solid #ddd; }
  table.items .right { text-align: right; }
  .status { display: inline-block; padding: 4px 12px; border-radius: 4px; font-weight: bold;
             text-transform: uppercase; font-size: 11px; }
  .status-PENDING { background: #fef7e0; color: #b06000; }
  .status-COMPLETED { background: #e6f4ea; color: #137333; }
  .status-FAILED { background: #fce8e6; color: #c5221f; }
  .status-REFUNDED { background: #e8f0fe; color: #1a73e8; }
  .overdue { color: #c5221f; font-weight: bold; }
</style>
</head>
<body>
<h1>INVOICE</h1>
<span class="status status-${status}">${status}</span>
<table class="meta">
  <tr><td><strong>Invoice #:</strong></td><td>${invoice_id}</td></tr>
  <tr><td><strong>Issued:</strong></td><td>${created_at}</td></tr>
  <tr><td><strong>Due:</strong></td><td>${due_date} <span class="overdue">${overdue}</span></td></tr>
  <tr><td><strong>Paid:</strong></td><td>${paid_at}</td></tr>
  <tr><td><strong>Payment method:</strong></td><td>${payment_method}</td></tr>
</table>
<table class="meta">
  <tr><td><strong>Patient:</strong></td><td>${patient_name}</td></tr>
  <tr><td><strong>Doctor:</strong></td><td>${doctor_name}</td></tr>
  <tr><td><strong>Appointment:</strong></td><td>${appointment_date} (${duration} min, ${modality})</td></tr>
</table>
<table class="items">
  <thead>
    <tr><th>Description</th><th class="right">Amount</th></tr>
  </thead>
  <tbody>
    <tr><td>Medical consultation</td><td class="right">${amount}</td></tr>
  </tbody>
</table>
<table class="items">
  <thead>
    <tr><th>Payment</th><th>Method</th><th>Status</th><th class="right">Amount</th></tr>
  </thead>
  <tbody>
    ${payment_rows}
  </tbody>
</table>
</body>
</html>
""")

_PAYMENT_ROW_TEMPLATE = Template(
    "<tr><td>${date}</td><td>${method}</td><td>${status}</td>"
    '<td class="right">${amount}</td></tr>'
)


def _format_date(dt: object) -> str:
    """Format a datetime to YYYY-MM-DD, or return empty string if None."""
    if dt is None:
        return ""
    return str(dt)[:10]


class PdfService:
    """Renders invoice documents."""

    def render_invoice_html(self, invoice: Invoice, payments: list[Payment]) -> str:
        appointment = invoice.appointment
        days = days_overdue_display(invoice)
        payment_rows = "\n    ".join(
            _PAYMENT_ROW_TEMPLATE.substitute(
                date=_format_date(payment.created_at),
                method=escape(str(payment.payment_method)),
                status=escape(str(payment.status)),
                amount=format_currency(payment.amount, str(payment.currency)),
            )
            for payment in payments
        )
        return _INVOICE_TEMPLATE.substitute(
            invoice_id=invoice.id,
            status=escape(str(invoice.status)),
            created_at=_format_date(invoice.created_at),
            due_date=_format_date(invoice.due_date),
            overdue=f"{days} days overdue" if days else "",
            paid_at=_format_date(invoice.paid_at),
            payment_method=escape(str(invoice.payment_method or "")),
            patient_name=escape(appointment.patient_name or str(appointment.patient_id)),
            doctor_name=escape(appointment.doctor_name or str(appointment.doctor_id)),
            appointment_date=_format_date(appointment.date),
            duration=appointment.duration,
            modality=escape(str(appointment.modality)),
            amount=format_currency(invoice.amount, invoice.currency),
            payment_rows=payment_rows,
        )

    def generate_invoice_pdf(self, invoice: Invoice, payments: list[Payment]) -> bytes:
        """Generate a PDF for an invoice.

        Args:
            invoice: The invoice to render, with its appointment loaded.
            payments: Settlement attempts recorded against the invoice.

        Returns:
            Raw PDF bytes.
        """
        html = self.render_invoice_html(invoice, payments)

        import weasyprint

        pdf_bytes: bytes = weasyprint.HTML(string=html).write_pdf()
        return pdf_bytes
