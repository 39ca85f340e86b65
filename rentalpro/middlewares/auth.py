from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import Update
from sqlalchemy.ext.asyncio import AsyncSession
from rentalpro.services.auth_service import get_signed_in_user

# Commands that work before signing in
PUBLIC_COMMANDS = {"/start", "/help", "/login", "/signup", "/magic"}

SIGN_IN_REQUIRED = (
    "🔑 Bạn cần đăng nhập để sử dụng chức năng này.\n"
    "Gửi <code>/login email mật_khẩu</code> hoặc <code>/magic email</code>."
)


def _command(text: str) -> str:
    # "/login@RentalProBot a b" -> "/login"
    return text.split(maxsplit=1)[0].split("@", 1)[0].lower() if text else ""


class AuthMiddleware(BaseMiddleware):
    """Only signed-in landlords reach the domain handlers."""

    async def __call__(
        self,
        handler: Callable[[Update, Dict[str, Any]], Awaitable[Any]],
        event: Update,
        data: Dict[str, Any]
    ) -> Any:
        user = data.get("event_from_user")
        if not user:
            return await handler(event, data)

        session: AsyncSession = data["session"]
        landlord = await get_signed_in_user(session, user.id)
        data["landlord"] = landlord
        if landlord:
            return await handler(event, data)

        if event.message and _command(event.message.text or "") in PUBLIC_COMMANDS:
            return await handler(event, data)

        if event.message:
            await event.message.answer(SIGN_IN_REQUIRED)
        elif event.callback_query:
            await event.callback_query.answer("Bạn cần đăng nhập.", show_alert=True)
        return None
