"""Invoice PDF renderers."""

from core.config import InvoiceSettings
from .html_pdf import HtmlPdfRenderer
from .http_renderer import HttpInvoiceRenderer


def create_invoice_renderer(config: InvoiceSettings) -> "HttpInvoiceRenderer | HtmlPdfRenderer":
    """Use the external rendering service when configured, WeasyPrint in-process otherwise."""
    if config.renderer_url:
        return HttpInvoiceRenderer(config.renderer_url, timeout=config.renderer_timeout_seconds)
    return HtmlPdfRenderer()


__all__ = ["HtmlPdfRenderer", "HttpInvoiceRenderer", "create_invoice_renderer"]
