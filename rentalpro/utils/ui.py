from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton, ReplyKeyboardMarkup, KeyboardButton
from datetime import date
from decimal import Decimal
from typing import Optional

# ========== UI Constants ==========
class UIEmojis:
    HOME = "🏠"
    MONEY = "💰"
    CHECK = "✅"
    CANCEL = "❌"
    BACK = "◀️"
    INFO = "ℹ️"

    # Actions
    ADD = "➕"
    EDIT = "✏️"
    DELETE = "🗑️"
    SEARCH = "🔍"

    # Status
    SUCCESS = "✅"
    ERROR = "❌"
    WARNING = "⚠️"
    PENDING = "⏳"

    # People
    TENANT = "👤"
    GROUP = "👥"

    # Documents
    INVOICE = "🧾"
    DOCUMENT = "📄"

    # Buildings
    BUILDING = "🏢"
    ROOM = "🚪"
    KEY = "🔑"

    # Utilities
    ELECTRIC = "⚡"
    WATER = "💧"
    INTERNET = "🌐"
    TRASH = "🗑️"
    FEE = "📌"

    # Reports
    CHART = "📊"
    CALENDAR = "📅"


class UIMessages:
    """Formatted message templates (HTML parse mode)"""

    DIVIDER_FULL = "━" * 30
    DIVIDER_HALF = "─" * 15

    @staticmethod
    def header(title: str, emoji: str = "") -> str:
        if emoji:
            return f"\n{emoji} <b>{title}</b>\n{UIMessages.DIVIDER_FULL}\n"
        return f"\n<b>{title}</b>\n{UIMessages.DIVIDER_FULL}\n"

    @staticmethod
    def field(name: str, value: str, emoji: str = "") -> str:
        prefix = f"{emoji} " if emoji else "• "
        return f"{prefix}<b>{name}:</b> {value}\n"

    @staticmethod
    def success(text: str) -> str:
        return f"✅ {text}"

    @staticmethod
    def error(text: str) -> str:
        return f"❌ {text}"

    @staticmethod
    def warning(text: str) -> str:
        return f"⚠️ {text}"


# Reply keyboard labels, two per row
MENU_BUTTONS = (
    "🏢 Nhà cho thuê", "🚪 Phòng",
    "👥 Người thuê", "🧾 Hóa đơn",
    "📊 Tổng quan", "❔ Trợ giúp",
)


class UIKeyboards:
    """Common keyboard layouts"""

    @staticmethod
    def confirm_cancel(
        confirm_text: str = "Xác nhận",
        cancel_text: str = "Hủy",
        confirm_callback: str = "confirm",
        cancel_callback: str = "cancel"
    ) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(inline_keyboard=[
            [
                InlineKeyboardButton(text=f"{UIEmojis.CHECK} {confirm_text}", callback_data=confirm_callback),
                InlineKeyboardButton(text=f"{UIEmojis.CANCEL} {cancel_text}", callback_data=cancel_callback)
            ]
        ])

    @staticmethod
    def main_reply_keyboard() -> ReplyKeyboardMarkup:
        keyboard = [
            [KeyboardButton(text=text) for text in MENU_BUTTONS[i:i + 2]]
            for i in range(0, len(MENU_BUTTONS), 2)
        ]
        return ReplyKeyboardMarkup(keyboard=keyboard, resize_keyboard=True)


# === Formatting ===

def format_amount(amount) -> str:
    """1234567 -> "1.234.567 ₫" (VND has no subunit)"""
    if amount is None:
        return "—"
    return f"{int(round(amount)):,} ₫".replace(",", ".")


def format_date(date_obj: Optional[date]) -> str:
    """dd/mm/yyyy"""
    if not date_obj:
        return "—"
    return date_obj.strftime("%d/%m/%Y")


def format_reading(value) -> str:
    """Meter reading with a decimal comma: 130 -> "130", 12.5 -> "12,5" """
    if value is None:
        return "—"
    value = Decimal(value).normalize()
    if value == value.to_integral_value():
        return f"{int(value)}"
    return f"{value:f}".replace(".", ",")


# === Vietnamese number to words ===

DIGITS = ["không", "một", "hai", "ba", "bốn", "năm", "sáu", "bảy", "tám", "chín"]
GROUP_UNITS = ["", "nghìn", "triệu"]
BILLION = 1_000_000_000


def _read_group(number: int, full: bool) -> str:
    """
    Read 0-999. full=True when higher groups precede this one,
    so 5 reads "không trăm linh năm" instead of "năm".
    """
    hundreds, tens, units = number // 100, (number // 10) % 10, number % 10
    words = []

    if hundreds or full:
        words += [DIGITS[hundreds], "trăm"]

    if tens == 0:
        if units:
            if hundreds or full:
                words.append("linh")
            words.append(DIGITS[units])
    elif tens == 1:
        words.append("mười")
        if units == 5:
            words.append("lăm")
        elif units:
            words.append(DIGITS[units])
    else:
        words += [DIGITS[tens], "mươi"]
        if units == 1:
            words.append("mốt")
        elif units == 5:
            words.append("lăm")
        elif units:
            words.append(DIGITS[units])

    return " ".join(words)


def _below_billion(number: int, full: bool) -> str:
    groups = [number // 1_000_000, (number // 1000) % 1000, number % 1000]
    words = []
    for value, unit in zip(groups, GROUP_UNITS[::-1]):
        if not value:
            continue
        words.append(_read_group(value, full=full or bool(words)))
        if unit:
            words.append(unit)
    return " ".join(words)


def number_to_words(number: int) -> str:
    """3400000 -> "ba triệu bốn trăm nghìn" """
    number = int(number)
    if number == 0:
        return DIGITS[0]
    if number < 0:
        return f"âm {number_to_words(-number)}"

    if number < BILLION:
        return _below_billion(number, full=False)

    high, low = divmod(number, BILLION)
    words = f"{number_to_words(high)} tỷ"
    if low:
        words += f" {_below_billion(low, full=True)}"
    return words


def amount_in_words(amount: int) -> str:
    """3400000 -> "Ba triệu bốn trăm nghìn đồng" """
    words = number_to_words(amount)
    return f"{words[0].upper()}{words[1:]} đồng"


# === Labels ===

STATUS_LABELS = {
    # Rooms
    "available": "Còn trống",
    "occupied": "Đã cho thuê",
    "maintenance": "Đang sửa chữa",
    # Contracts
    "active": "Đang hiệu lực",
    "expired": "Hết hạn",
    "terminated": "Đã kết thúc",
    # Invoices / bills
    "draft": "Nháp",
    "sent": "Đã gửi",
    "paid": "Đã thanh toán",
    "overdue": "Quá hạn",
    "cancelled": "Đã hủy",
    "pending": "Chờ thanh toán",
    "inactive": "Ngừng hoạt động",
}


def get_status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def get_status_badge(status: str) -> str:
    """Get status badge emoji"""
    badges = {
        "available": "🟢",
        "occupied": "🔵",
        "maintenance": "🟠",
        "active": "🟢",
        "expired": "⚪",
        "terminated": "📦",
        "draft": "📝",
        "sent": "📨",
        "pending": "🟡",
        "paid": "✅",
        "cancelled": "❌",
        "overdue": "🔴"
    }
    return badges.get(status, "⚪")
