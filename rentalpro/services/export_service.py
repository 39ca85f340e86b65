"""
Receipt export through the render service.

The render service takes {"markup", "format", "filename"} and answers with the file bytes
(png or pdf). Nothing is kept on disk: the bot sends the bytes straight back to the chat.
"""
import aiohttp
import logging
from typing import Optional, NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.config import config
from rentalpro.errors import ExportError
from rentalpro.services import invoice_service, theme_service
from rentalpro.services.receipt_templates import ReceiptContext, render_receipt

FORMATS = {
    "png": "image/png",
    "pdf": "application/pdf",
}


class ExportedFile(NamedTuple):
    content: bytes
    content_type: str
    filename: str


def receipt_filename(invoice_number: str, fmt: str) -> str:
    return f"hoa-don-{invoice_number}.{fmt}"


class RenderClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or config.RENDER_SERVICE_URL or "").rstrip("/")
        self.timeout = timeout or config.RENDER_TIMEOUT

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def _request(self, payload: dict) -> tuple:
        """POST the payload, return (body, content type)."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.base_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        logging.error(f"Render service error: {resp.status} - {await resp.text()}")
                        raise ExportError()
                    return await resp.read(), resp.headers.get("Content-Type", "")

        except aiohttp.ClientError as e:
            logging.error(f"Render service request failed: {e}")
            raise ExportError()

    async def render(self, markup: str, fmt: str = "png", filename: Optional[str] = None) -> ExportedFile:
        if fmt not in FORMATS:
            raise ExportError(f"Định dạng không hỗ trợ: {fmt}")
        if not self.enabled:
            raise ExportError("Chưa cấu hình dịch vụ xuất hóa đơn (RENDER_SERVICE_URL)")

        filename = filename or f"hoa-don.{fmt}"
        content, content_type = await self._request({"markup": markup, "format": fmt, "filename": filename})
        if not content:
            raise ExportError()

        return ExportedFile(content, content_type.split(";")[0] or FORMATS[fmt], filename)


async def build_receipt_markup(session: AsyncSession, invoice_id: int) -> tuple:
    """(invoice, markup) for an invoice with its room, property, tenant and colours resolved."""
    details = await invoice_service.get_invoice_details(session, invoice_id)
    colors = await theme_service.resolve_color_settings(session, details.invoice)
    context = ReceiptContext(
        invoice=details.invoice,
        room=details.room,
        property=details.property,
        tenant=details.tenant,
        colors=colors,
        display_status=invoice_service.derive_display_status(details.invoice),
    )
    return details.invoice, render_receipt(context)


async def export_receipt(
    session: AsyncSession,
    invoice_id: int,
    fmt: str = "png",
    client: Optional[RenderClient] = None,
) -> ExportedFile:
    invoice, markup = await build_receipt_markup(session, invoice_id)
    client = client or RenderClient()
    exported = await client.render(markup, fmt, receipt_filename(invoice.invoice_number, fmt))
    logging.info(f"Receipt {exported.filename} exported ({len(exported.content)} bytes)")
    return exported
