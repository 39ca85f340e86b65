"""
Receipt colour themes (bảng màu hóa đơn). At most one theme is the default.
"""
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.database.models import ColorTheme, RentalInvoice
from rentalpro.schemas.validation import ColorThemeForm, validate_form
from rentalpro.services.crud import get_or_raise, delete_record
from rentalpro.services.invoice_service import update_color_settings

logger = logging.getLogger(__name__)

NOT_FOUND = "Không tìm thấy bảng màu"

# Used when no theme has been saved yet
FALLBACK_THEME = {
    "theme_name": "Mặc định",
    "header_bg": "#1e40af",
    "header_text": "#ffffff",
    "total_bg": "#dbeafe",
    "total_text": "#1e3a8a",
}


def theme_settings(theme: ColorTheme) -> dict:
    return {
        "theme_name": theme.name,
        "header_bg": theme.header_bg,
        "header_text": theme.header_text,
        "total_bg": theme.total_bg,
        "total_text": theme.total_text,
    }


async def list_color_themes(session: AsyncSession) -> List[ColorTheme]:
    stmt = select(ColorTheme).order_by(ColorTheme.is_default.desc(), ColorTheme.name)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_default_theme(session: AsyncSession) -> Optional[ColorTheme]:
    stmt = select(ColorTheme).where(ColorTheme.is_default == True).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _clear_default(session: AsyncSession) -> None:
    await session.execute(
        update(ColorTheme).where(ColorTheme.is_default == True).values(is_default=False)
    )


async def create_color_theme(session: AsyncSession, data: dict) -> ColorTheme:
    form = validate_form(ColorThemeForm, data)
    if form.is_default:
        await _clear_default(session)

    theme = ColorTheme(**form.model_dump())
    session.add(theme)
    await session.commit()
    logger.info(f"Color theme {theme.id} created: {theme.name}")
    return theme


async def set_default_theme(session: AsyncSession, theme_id: int) -> ColorTheme:
    theme = await get_or_raise(session, ColorTheme, theme_id, NOT_FOUND)
    await _clear_default(session)
    theme.is_default = True
    await session.commit()
    return theme


async def delete_color_theme(session: AsyncSession, theme_id: int) -> None:
    theme = await get_or_raise(session, ColorTheme, theme_id, NOT_FOUND)
    await delete_record(session, theme)


async def apply_color_theme(session: AsyncSession, invoice_id: int, theme_id: int) -> RentalInvoice:
    theme = await get_or_raise(session, ColorTheme, theme_id, NOT_FOUND)
    return await update_color_settings(session, invoice_id, theme_settings(theme))


async def resolve_color_settings(session: AsyncSession, invoice: RentalInvoice) -> dict:
    """Invoice colours on top of the default theme (or the built-in one)."""
    default = await get_default_theme(session)
    settings = dict(theme_settings(default) if default else FALLBACK_THEME)
    settings.update(invoice.color_settings or {})
    return settings
