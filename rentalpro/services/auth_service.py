"""
Identity provider client (Supabase-compatible GoTrue REST API).

Endpoints used:
    POST /token?grant_type=password   sign in
    POST /signup                      sign up
    POST /otp                         magic link
    POST /logout                      sign out
    GET  /user, PUT /user             profile / password
    POST /recover                     password reset mail

Sessions are linked to Telegram users through the signed_in_users table.
"""
import aiohttp
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.config import config
from rentalpro.database.models import SignedInUser
from rentalpro.errors import AuthError

# Provider message -> what the landlord sees
KNOWN_ERRORS = {
    "invalid login credentials": "Sai tài khoản hoặc mật khẩu",
    "email not confirmed": "Email chưa được xác nhận, vui lòng kiểm tra hộp thư",
    "user already registered": "Email này đã được đăng ký",
    "password should be at least 6 characters": "Mật khẩu phải có ít nhất 6 ký tự",
    "new password should be different from the old password": "Mật khẩu mới phải khác mật khẩu cũ",
    "unable to validate email address: invalid format": "Email không hợp lệ",
    "invalid refresh token": "Phiên đăng nhập đã hết hạn, vui lòng đăng nhập lại",
    "jwt expired": "Phiên đăng nhập đã hết hạn, vui lòng đăng nhập lại",
}


def translate_auth_error(message: Optional[str]) -> str:
    """Known provider errors in Vietnamese, anything else close to verbatim."""
    if not message:
        return AuthError.default_message
    key = message.strip().rstrip(".").lower()
    if key in KNOWN_ERRORS:
        return KNOWN_ERRORS[key]
    if key.startswith("for security purposes"):
        return "Bạn thao tác quá nhanh, vui lòng thử lại sau ít phút"
    return message.strip()


@dataclass
class AuthUser:
    id: str
    email: Optional[str]
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name")

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AuthUser":
        return cls(
            id=data["id"],
            email=data.get("email"),
            user_metadata=data.get("user_metadata") or {},
            created_at=data.get("created_at"),
        )


@dataclass
class AuthSession:
    access_token: Optional[str]
    refresh_token: Optional[str]
    user: AuthUser


class AuthService:
    """
    Usage:
        auth = AuthService()
        session = await auth.sign_in("chu.nha@example.com", "secret")
        await auth.update_profile(session.access_token, full_name="Nguyễn Văn A")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        redirect_url: Optional[str] = None,
        timeout: int = 10,
    ):
        self.base_url = (base_url or config.AUTH_URL or "").rstrip("/")
        self.api_key = api_key or config.AUTH_API_KEY
        self.redirect_url = redirect_url or config.AUTH_REDIRECT_URL
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _get_headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if not self.enabled:
            raise AuthError("Chưa cấu hình máy chủ đăng nhập (AUTH_URL, AUTH_API_KEY)")

        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    headers=self._get_headers(access_token),
                    json=payload,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    if resp.status >= 400:
                        message = None
                        if isinstance(data, dict):
                            message = data.get("msg") or data.get("error_description") or data.get("message")
                        logging.warning(f"Auth provider error: {resp.status} - {message}")
                        raise AuthError(translate_auth_error(message))
                    return data if isinstance(data, dict) else {}

        except aiohttp.ClientError as e:
            logging.error(f"Auth provider request failed: {e}")
            raise AuthError("Không thể kết nối máy chủ đăng nhập")

    @staticmethod
    def _session_from(data: Dict[str, Any]) -> AuthSession:
        user_data = data.get("user") or data
        return AuthSession(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            user=AuthUser.from_payload(user_data),
        )

    async def sign_in(self, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise AuthError("Vui lòng nhập email và mật khẩu")
        data = await self._request(
            "POST", "/token",
            payload={"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return self._session_from(data)

    async def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        """When email confirmation is on, the session has no tokens until the mail link is used."""
        data = await self._request(
            "POST", "/signup",
            payload={"email": email, "password": password, "data": {"full_name": full_name}},
        )
        return self._session_from(data)

    async def sign_in_with_email(self, email: str) -> None:
        """Passwordless sign in: the provider mails a one-time link."""
        params = {"redirect_to": self.redirect_url} if self.redirect_url else None
        await self._request("POST", "/otp", payload={"email": email, "create_user": True}, params=params)

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/logout", access_token=access_token)

    async def get_user(self, access_token: str) -> AuthUser:
        data = await self._request("GET", "/user", access_token=access_token)
        return AuthUser.from_payload(data)

    async def update_profile(self, access_token: str, full_name: str) -> AuthUser:
        data = await self._request("PUT", "/user", payload={"data": {"full_name": full_name}}, access_token=access_token)
        return AuthUser.from_payload(data)

    async def update_password(self, access_token: str, new_password: str) -> AuthUser:
        data = await self._request("PUT", "/user", payload={"password": new_password}, access_token=access_token)
        return AuthUser.from_payload(data)

    async def reset_password(self, email: str) -> None:
        params = {"redirect_to": self.redirect_url} if self.redirect_url else None
        await self._request("POST", "/recover", payload={"email": email}, params=params)


# --- Telegram user <-> provider session ---

async def get_signed_in_user(session: AsyncSession, tg_id: int) -> Optional[SignedInUser]:
    stmt = select(SignedInUser).where(SignedInUser.tg_id == tg_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def link_session(session: AsyncSession, tg_id: int, auth_session: AuthSession) -> SignedInUser:
    """Store (or refresh) the provider session for a Telegram user."""
    user = await get_signed_in_user(session, tg_id)
    if not user:
        user = SignedInUser(tg_id=tg_id)
        session.add(user)

    user.auth_user_id = auth_session.user.id
    user.email = auth_session.user.email or ""
    user.full_name = auth_session.user.full_name
    user.access_token = auth_session.access_token
    user.refresh_token = auth_session.refresh_token

    await session.commit()
    logging.info(f"Telegram user {tg_id} signed in as {user.email}")
    return user


async def unlink_session(session: AsyncSession, tg_id: int) -> bool:
    result = await session.execute(delete(SignedInUser).where(SignedInUser.tg_id == tg_id))
    await session.commit()
    return result.rowcount > 0
