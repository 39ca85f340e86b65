"""
Receipt markup for the render service.

Both templates expose render(context) -> str and are picked by invoice.template_type.
"""
from html import escape
from typing import Dict, List, NamedTuple, Optional

from rentalpro.config import config
from rentalpro.database.models import CalculationType, RentalInvoice, Room, Property, Tenant, InvoiceTemplate
from rentalpro.utils.ui import (
    format_amount, format_date, format_reading, amount_in_words, get_status_label
)
from rentalpro.services.theme_service import FALLBACK_THEME


class ReceiptContext(NamedTuple):
    invoice: RentalInvoice
    room: Optional[Room] = None
    property: Optional[Property] = None
    tenant: Optional[Tenant] = None
    colors: Optional[Dict[str, str]] = None
    display_status: Optional[str] = None


class LineItem(NamedTuple):
    description: str
    quantity: str
    unit_price: str
    amount: int
    note: Optional[str] = None
    metered: bool = False


def _text(value) -> str:
    return escape(str(value)) if value not in (None, "") else ""


def line_items(invoice: RentalInvoice, room_number: Optional[str] = None) -> List[LineItem]:
    """Billable lines in print order; zero-amount utilities are left out."""
    rent_label = f"Tiền thuê phòng {room_number}" if room_number else "Tiền thuê phòng"
    items = [LineItem(rent_label, "1 tháng", format_amount(invoice.rent_amount), invoice.rent_amount)]

    for key, label, unit in (("electricity", "Tiền điện", "kWh"), ("water", "Tiền nước", "m³")):
        amount = getattr(invoice, f"{key}_amount") or 0
        if not amount:
            continue
        previous = getattr(invoice, f"{key}_previous_reading")
        current = getattr(invoice, f"{key}_current_reading")
        usage = max(0, (current or 0) - (previous or 0))
        if getattr(invoice, f"{key}_calculation_type") == CalculationType.flat.value:
            usage = 0
        if usage:
            quantity = f"{format_reading(usage)} {unit} ({format_reading(previous)} → {format_reading(current)})"
            unit_price = format_amount(getattr(invoice, f"{key}_unit_price"))
        else:
            quantity, unit_price = "—", "—"
        items.append(LineItem(label, quantity, unit_price, amount, getattr(invoice, f"{key}_note"), metered=bool(usage)))

    if invoice.internet_amount:
        items.append(LineItem("Internet", "1 tháng", format_amount(invoice.internet_amount),
                              invoice.internet_amount, invoice.internet_note))
    if invoice.trash_amount:
        items.append(LineItem("Tiền rác", "1 tháng", format_amount(invoice.trash_amount),
                              invoice.trash_amount, invoice.trash_note))

    for fee in invoice.other_fees or []:
        amount = int(fee.get("amount") or 0)
        items.append(LineItem(fee.get("name") or "Phí khác", "1", format_amount(amount), amount, fee.get("note")))

    return items


class SimpleTemplate:
    name = InvoiceTemplate.simple.value

    def render(self, context: ReceiptContext) -> str:
        invoice = context.invoice
        room_number = context.room.room_number if context.room else None

        rows = []
        for item in line_items(invoice, room_number):
            detail = f" <small>({_text(item.quantity)} x {_text(item.unit_price)})</small>" if item.metered else ""
            note = f"<br><small>{_text(item.note)}</small>" if item.note else ""
            rows.append(
                f"<tr><td>{_text(item.description)}{detail}{note}</td>"
                f"<td style=\"text-align:right\">{format_amount(item.amount)}</td></tr>"
            )

        tenant_name = _text(context.tenant.full_name) if context.tenant else ""
        address = _text(context.property.address) if context.property else ""

        return (
            "<!DOCTYPE html><html lang=\"vi\"><head><meta charset=\"utf-8\">"
            "<style>body{font-family:sans-serif;padding:24px;color:#111}"
            "table{width:100%;border-collapse:collapse}td{padding:6px 0;border-bottom:1px dashed #ccc}"
            ".total td{font-weight:bold;border-bottom:none;font-size:18px}</style></head><body>"
            f"<h2 style=\"text-align:center\">PHIẾU THU TIỀN PHÒNG</h2>"
            f"<p>Mã hóa đơn: {_text(invoice.invoice_number)}</p>"
            f"<p>Phòng: {_text(room_number)} - {address}</p>"
            f"<p>Người thuê: {tenant_name}</p>"
            f"<p>Kỳ: {format_date(invoice.period_start)} - {format_date(invoice.period_end)}</p>"
            f"<table>{''.join(rows)}"
            f"<tr class=\"total\"><td>TỔNG CỘNG</td>"
            f"<td style=\"text-align:right\">{format_amount(invoice.total_amount)}</td></tr></table>"
            f"<p>Hạn thanh toán: {format_date(invoice.due_date)}</p>"
            f"{self._notes(invoice)}"
            "</body></html>"
        )

    @staticmethod
    def _notes(invoice: RentalInvoice) -> str:
        return f"<p><i>Ghi chú: {_text(invoice.notes)}</i></p>" if invoice.notes else ""


class ProfessionalTemplate:
    name = InvoiceTemplate.professional.value

    def render(self, context: ReceiptContext) -> str:
        invoice = context.invoice
        colors = dict(FALLBACK_THEME)
        colors.update(context.colors or invoice.color_settings or {})
        room, prop, tenant = context.room, context.property, context.tenant

        rows = []
        for item in line_items(invoice, room.room_number if room else None):
            note = f"<div class=\"note\">{_text(item.note)}</div>" if item.note else ""
            rows.append(
                "<tr>"
                f"<td>{_text(item.description)}{note}</td>"
                f"<td class=\"c\">{_text(item.quantity)}</td>"
                f"<td class=\"r\">{_text(item.unit_price)}</td>"
                f"<td class=\"r\">{format_amount(item.amount)}</td>"
                "</tr>"
            )

        tenant_block = ""
        if tenant:
            tenant_block = "".join(
                f"<div>{_text(value)}</div>"
                for value in (tenant.phone, tenant.email, tenant.address) if value
            )

        room_block = ""
        if room:
            area = f"{format_reading(room.area_sqm)} m²" if room.area_sqm else "—"
            room_block = (
                f"<div class=\"room\"><span>Phòng <b>#{_text(room.room_number)}</b></span>"
                f"<span>Diện tích <b>{area}</b></span>"
                f"<span>Tầng <b>{_text(room.floor) or '—'}</b></span></div>"
            )

        status = context.display_status or invoice.status
        contact = " · ".join(_text(v) for v in (config.COMPANY_PHONE, config.COMPANY_EMAIL) if v)

        return (
            "<!DOCTYPE html><html lang=\"vi\"><head><meta charset=\"utf-8\"><style>"
            "body{font-family:'Helvetica Neue',Arial,sans-serif;margin:0;padding:32px;color:#111827}"
            ".top{display:flex;justify-content:space-between;align-items:flex-start;margin-bottom:24px}"
            ".brand{font-size:24px;font-weight:bold}.muted{color:#6b7280;font-size:13px}"
            ".number{font-family:monospace;font-size:18px;font-weight:bold}"
            ".grid{display:flex;gap:24px;margin-bottom:24px}.box{flex:1;background:#f9fafb;padding:16px;border-radius:8px}"
            ".room{display:flex;justify-content:space-around;padding:12px;border:1px solid #e5e7eb;border-radius:8px;margin-bottom:24px}"
            "table{width:100%;border-collapse:collapse}th,td{padding:10px;border-bottom:1px solid #f3f4f6}"
            f"thead tr{{background:{colors['header_bg']};color:{colors['header_text']}}}"
            f".total td{{background:{colors['total_bg']};color:{colors['total_text']};font-weight:bold;font-size:18px}}"
            ".c{text-align:center}.r{text-align:right}.note{color:#6b7280;font-size:12px}"
            ".words{margin-top:12px;font-style:italic}"
            "</style></head><body>"
            "<div class=\"top\"><div>"
            f"<div class=\"brand\">{_text(config.COMPANY_NAME)}</div>"
            "<div class=\"muted\">Quản lý cho thuê chuyên nghiệp</div>"
            f"<div class=\"muted\">{_text(prop.address) if prop else ''}</div>"
            f"<div class=\"muted\">{contact}</div>"
            "</div><div style=\"text-align:right\">"
            f"<h1 style=\"margin:0;color:{colors['header_bg']}\">HÓA ĐƠN</h1>"
            f"<div class=\"number\">{_text(invoice.invoice_number)}</div>"
            f"<div class=\"muted\">{get_status_label(status)}</div>"
            "</div></div>"
            "<div class=\"grid\">"
            "<div class=\"box\"><b>Thông tin khách thuê</b>"
            f"<div style=\"font-size:18px;font-weight:bold\">{_text(tenant.full_name) if tenant else ''}</div>"
            f"{tenant_block}</div>"
            "<div class=\"box\">"
            f"<div>Ngày xuất: <b>{format_date(invoice.issue_date)}</b></div>"
            f"<div>Hạn thanh toán: <b>{format_date(invoice.due_date)}</b></div>"
            f"<div>Chu kỳ thanh toán: <b>{format_date(invoice.period_start)} - {format_date(invoice.period_end)}</b></div>"
            "</div></div>"
            f"{room_block}"
            "<table><thead><tr><th style=\"text-align:left\">Mô tả dịch vụ</th><th>Số lượng</th>"
            "<th class=\"r\">Đơn giá</th><th class=\"r\">Thành tiền</th></tr></thead>"
            f"<tbody>{''.join(rows)}"
            "<tr class=\"total\"><td colspan=\"3\">TỔNG CỘNG</td>"
            f"<td class=\"r\">{format_amount(invoice.total_amount)}</td></tr></tbody></table>"
            f"<div class=\"words\">Bằng chữ: {amount_in_words(invoice.total_amount)}</div>"
            f"{SimpleTemplate._notes(invoice)}"
            f"<p class=\"muted\">{_text(config.COMPANY_CITY)}, ngày {format_date(invoice.issue_date)}</p>"
            "</body></html>"
        )


TEMPLATES = {
    InvoiceTemplate.simple.value: SimpleTemplate(),
    InvoiceTemplate.professional.value: ProfessionalTemplate(),
}


def get_template(template_type: Optional[str]):
    return TEMPLATES.get(template_type or InvoiceTemplate.professional.value, TEMPLATES[InvoiceTemplate.professional.value])


def render_receipt(context: ReceiptContext) -> str:
    return get_template(context.invoice.template_type).render(context)
