"""
Built-in invoice renderer for deployments without a rendering service.

The snapshot is laid out as an HTML page from a Jinja template and printed
to PDF with WeasyPrint. WeasyPrint is synchronous and CPU bound, so the
conversion runs in a worker thread.
"""
from __future__ import annotations

import asyncio
from typing import Any

from jinja2 import Environment, select_autoescape

from application.ports.invoice_renderer import InvoiceRenderer
from core.logging_config import get_logger
from domain.common.exceptions import RenderFailure


logger = get_logger(__name__)

INVOICE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Invoice {{ invoice.id }}</title>
  <style>
    @page { size: A4; margin: 2cm; }
    body { font-family: "DejaVu Sans", "Noto Sans", sans-serif; font-size: 11pt; }
    h1 { font-size: 18pt; margin-bottom: 0.5cm; }
    table { border-collapse: collapse; width: 100%; }
    th { text-align: left; width: 35%; color: #555; }
    td, th { padding: 4pt 0; border-bottom: 1px solid #ddd; }
  </style>
</head>
<body>
  <h1>{{ title }}</h1>
  <table>
    <tr><th>Invoice</th><td>{{ invoice.id }}</td></tr>
    <tr><th>Booking</th><td>{{ invoice.booking_id }}</td></tr>
    <tr><th>Type</th><td>{{ invoice.type }}</td></tr>
    <tr><th>Amount</th><td>{{ invoice.amount }} {{ invoice.currency }}</td></tr>
    {% if invoice.created_at %}<tr><th>Created</th><td>{{ invoice.created_at }}</td></tr>{% endif %}
  </table>
</body>
</html>
"""

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
_template = _env.from_string(INVOICE_TEMPLATE)


def render_invoice_html(snapshot: dict[str, Any], *, title: str = "INVOICE") -> str:
    return _template.render(invoice=snapshot, title=title)


def write_pdf(html: str) -> bytes:
    # imported on use: WeasyPrint loads Pango and friends at import time
    from weasyprint import HTML

    return HTML(string=html).write_pdf()


class HtmlPdfRenderer(InvoiceRenderer):
    def __init__(self, *, title: str = "INVOICE") -> None:
        self.title = title

    async def render_invoice_pdf(self, snapshot: dict[str, Any]) -> bytes:
        html = render_invoice_html(snapshot, title=self.title)
        try:
            pdf = await asyncio.to_thread(write_pdf, html)
        except Exception as exc:
            logger.warning("invoice_pdf_render_failed", invoice_id=snapshot.get("id"), error=str(exc))
            raise RenderFailure(f"PDF rendering failed: {exc}", invoice_id=snapshot.get("id")) from exc
        if not pdf:
            raise RenderFailure("PDF rendering produced an empty document", invoice_id=snapshot.get("id"))
        return pdf
