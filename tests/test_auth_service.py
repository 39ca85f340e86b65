import pytest

from rentalpro.errors import AuthError
from rentalpro.services import auth_service
from rentalpro.services.auth_service import AuthService, translate_auth_error

USER = {"id": "8f0c", "email": "chu.nha@example.com", "user_metadata": {"full_name": "Chủ Nhà"}}


class FakeProvider:
    """Stands in for AuthService._request; records calls and replays canned answers."""

    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response if response is not None else {}
        self.error = error

    async def __call__(self, method, path, payload=None, access_token=None, params=None):
        self.calls.append((method, path, payload, access_token, params))
        if self.error:
            raise AuthError(translate_auth_error(self.error))
        return self.response


def make_service(monkeypatch, **fake):
    service = AuthService(base_url="https://auth.example.com/auth/v1/", api_key="anon-key")
    provider = FakeProvider(**fake)
    monkeypatch.setattr(service, "_request", provider)
    return service, provider


@pytest.mark.parametrize("message,expected", [
    ("Invalid login credentials", "Sai tài khoản hoặc mật khẩu"),
    ("Email not confirmed", "Email chưa được xác nhận, vui lòng kiểm tra hộp thư"),
    ("User already registered", "Email này đã được đăng ký"),
    ("For security purposes, you can only request this after 42 seconds.",
     "Bạn thao tác quá nhanh, vui lòng thử lại sau ít phút"),
    ("Something new", "Something new"),
    (None, "Đăng nhập thất bại"),
])
def test_translate_auth_error(message, expected):
    assert translate_auth_error(message) == expected


def test_headers_and_base_url():
    service = AuthService(base_url="https://auth.example.com/auth/v1/", api_key="anon-key")
    assert service.base_url == "https://auth.example.com/auth/v1"
    assert service.enabled
    assert service._get_headers()["Authorization"] == "Bearer anon-key"
    assert service._get_headers("user-token")["Authorization"] == "Bearer user-token"
    assert service._get_headers()["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test_disabled_client_refuses():
    service = AuthService(base_url="", api_key="")
    service.base_url = ""
    service.api_key = None
    with pytest.raises(AuthError):
        await service.sign_in("a@example.com", "secret")


@pytest.mark.asyncio
async def test_sign_in(monkeypatch):
    service, provider = make_service(monkeypatch, response={
        "access_token": "at", "refresh_token": "rt", "user": USER,
    })
    session = await service.sign_in("chu.nha@example.com", "secret")

    assert session.access_token == "at"
    assert session.user.full_name == "Chủ Nhà"
    method, path, payload, _, params = provider.calls[0]
    assert (method, path, params) == ("POST", "/token", {"grant_type": "password"})
    assert payload == {"email": "chu.nha@example.com", "password": "secret"}


@pytest.mark.asyncio
async def test_sign_in_requires_credentials(monkeypatch):
    service, provider = make_service(monkeypatch)
    with pytest.raises(AuthError):
        await service.sign_in("", "secret")
    assert provider.calls == []


@pytest.mark.asyncio
async def test_sign_in_error_is_translated(monkeypatch):
    service, _ = make_service(monkeypatch, error="Invalid login credentials")
    with pytest.raises(AuthError) as exc:
        await service.sign_in("chu.nha@example.com", "wrong")
    assert exc.value.message == "Sai tài khoản hoặc mật khẩu"


@pytest.mark.asyncio
async def test_sign_up_waiting_for_confirmation(monkeypatch):
    service, provider = make_service(monkeypatch, response=USER)
    session = await service.sign_up("chu.nha@example.com", "secret", "Chủ Nhà")

    assert session.access_token is None
    assert session.user.id == "8f0c"
    assert provider.calls[0][2]["data"] == {"full_name": "Chủ Nhà"}


@pytest.mark.asyncio
async def test_magic_link_and_recover_use_redirect(monkeypatch):
    service, provider = make_service(monkeypatch)
    service.redirect_url = "https://app.example.com/auth/callback"

    await service.sign_in_with_email("chu.nha@example.com")
    await service.reset_password("chu.nha@example.com")

    assert [c[1] for c in provider.calls] == ["/otp", "/recover"]
    assert all(c[4] == {"redirect_to": "https://app.example.com/auth/callback"} for c in provider.calls)


@pytest.mark.asyncio
async def test_profile_and_password_use_user_token(monkeypatch):
    service, provider = make_service(monkeypatch, response=USER)

    user = await service.update_profile("user-token", "Chủ Nhà")
    await service.update_password("user-token", "new-secret")

    assert user.full_name == "Chủ Nhà"
    assert provider.calls[0][:2] == ("PUT", "/user")
    assert provider.calls[0][3] == "user-token"
    assert provider.calls[1][2] == {"password": "new-secret"}


@pytest.mark.asyncio
async def test_link_and_unlink_session(async_session):
    auth_session = AuthService._session_from({"access_token": "at", "refresh_token": "rt", "user": USER})

    user = await auth_service.link_session(async_session, 777, auth_session)
    assert user.email == "chu.nha@example.com"
    assert user.full_name == "Chủ Nhà"

    refreshed = AuthService._session_from({"access_token": "at2", "refresh_token": "rt2", "user": USER})
    again = await auth_service.link_session(async_session, 777, refreshed)
    assert again.id == user.id
    assert again.access_token == "at2"

    assert (await auth_service.get_signed_in_user(async_session, 777)) is not None
    assert await auth_service.unlink_session(async_session, 777) is True
    assert await auth_service.unlink_session(async_session, 777) is False
