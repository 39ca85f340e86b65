import logging
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Update

GENERIC_NOTICE = (
    "⚠️ <b>Đã xảy ra lỗi kỹ thuật.</b>\n\n"
    "Vui lòng thử lại sau ít phút."
)


class GlobalErrorMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        try:
            return await handler(event, data)
        except Exception as e:
            logging.exception(f"Unhandled exception in bot update: {e}")

            # Registered on dp.update, so the event is the whole Update
            message = event.message if isinstance(event, Update) else None
            callback = event.callback_query if isinstance(event, Update) else None

            try:
                if message:
                    await message.answer(GENERIC_NOTICE)
                elif callback:
                    await callback.answer("⚠️ Đã xảy ra lỗi. Vui lòng thử lại sau.", show_alert=True)
            except Exception as notify_error:
                logging.warning(f"Could not notify user about the error: {notify_error}")

            # Keep polling alive; the traceback is already logged
            return None
