import json

import httpx
import pytest

from core.config import InvoiceSettings
from domain.common.exceptions import RenderFailure
from infrastructure.external.rendering import (
    HtmlPdfRenderer,
    HttpInvoiceRenderer,
    create_invoice_renderer,
)
from infrastructure.external.rendering import html_pdf


SNAPSHOT = {
    "id": "inv-1",
    "booking_id": "b1",
    "type": "BOOKING",
    "amount": "100",
    "currency": "VND",
    "status": "PENDING_PDF",
    "created_at": None,
}


def _weasyprint_loads():
    try:
        import weasyprint  # noqa: F401
    except (ImportError, OSError):
        return False
    return True


@pytest.mark.skipif(not _weasyprint_loads(), reason="WeasyPrint system libraries are not installed")
@pytest.mark.asyncio
async def test_html_renderer_produces_pdf_document():
    pdf = await HtmlPdfRenderer().render_invoice_pdf(SNAPSHOT)

    assert pdf.startswith(b"%PDF-")
    assert b"%%EOF" in pdf[-64:]


def test_invoice_html_keeps_unicode_and_escapes_markup():
    html = html_pdf.render_invoice_html({**SNAPSHOT, "booking_id": "Nguyễn Văn Ánh <b>"})

    assert "Nguyễn Văn Ánh &lt;b&gt;" in html
    assert "<b>" not in html
    assert "100 VND" in html


@pytest.mark.asyncio
async def test_html_renderer_failure_is_render_failure(monkeypatch):
    def broken_write_pdf(html):
        raise OSError("fontconfig missing")

    monkeypatch.setattr(html_pdf, "write_pdf", broken_write_pdf)

    with pytest.raises(RenderFailure):
        await HtmlPdfRenderer().render_invoice_pdf(SNAPSHOT)


def _renderer(handler, max_retries=2):
    renderer = HttpInvoiceRenderer("https://render.test/pdf", max_retries=max_retries)
    renderer._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return renderer


@pytest.mark.asyncio
async def test_http_renderer_posts_snapshot():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"%PDF-remote")

    renderer = _renderer(handler)
    pdf = await renderer.render_invoice_pdf(SNAPSHOT)
    await renderer.aclose()

    assert pdf == b"%PDF-remote"
    assert seen["body"]["id"] == "inv-1"


@pytest.mark.asyncio
async def test_http_renderer_retries_server_errors():
    responses = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(responses)
        return httpx.Response(status, content=b"%PDF-ok" if status == 200 else b"")

    renderer = _renderer(handler)
    pdf = await renderer.render_invoice_pdf(SNAPSHOT)
    await renderer.aclose()

    assert pdf == b"%PDF-ok"


@pytest.mark.asyncio
async def test_http_renderer_gives_up_with_render_failure():
    renderer = _renderer(lambda request: httpx.Response(503), max_retries=1)

    with pytest.raises(RenderFailure):
        await renderer.render_invoice_pdf(SNAPSHOT)
    await renderer.aclose()


@pytest.mark.asyncio
async def test_http_renderer_rejects_empty_document():
    renderer = _renderer(lambda request: httpx.Response(200, content=b""))

    with pytest.raises(RenderFailure):
        await renderer.render_invoice_pdf(SNAPSHOT)
    await renderer.aclose()


def test_renderer_factory_prefers_configured_service():
    assert isinstance(create_invoice_renderer(InvoiceSettings()), HtmlPdfRenderer)
    remote = create_invoice_renderer(InvoiceSettings(renderer_url="https://render.test/pdf"))
    assert isinstance(remote, HttpInvoiceRenderer)
