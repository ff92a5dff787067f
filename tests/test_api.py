"""HTTP tests — OTP endpoints, login flows and role-guarded routes."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from connectapp.auth.passwords import hash_password
from connectapp.config import Settings
from connectapp.database.engine import get_session
from connectapp.database.repository import UserRepository
from connectapp.main import create_app
from connectapp.models.user import Base, Role, User, UserType
from connectapp.otp.channels import ConsoleSmsChannel, DeliveryError, EmailChannel
from connectapp.otp.store import OTPStore

PASSWORD = "Connect@123"
PASSWORD_HASH = hash_password(PASSWORD)

TEST_SETTINGS = Settings(_env_file=None, jwt_secret="test-secret", environment="test")


# ── Fixtures ─────────────────────────────────────────────

@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database seeded with one account per role."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                User(
                    name="Site Admin",
                    email="admin@connectapp.in",
                    phone="+919000000001",
                    password_hash=PASSWORD_HASH,
                    role=Role.ADMIN,
                ),
                User(
                    name="Asha Buyer",
                    email="asha@example.com",
                    phone="+919876543210",
                    password_hash=PASSWORD_HASH,
                ),
                User(
                    name="Ravi Electricals",
                    email="ravi@example.com",
                    phone="+919812345678",
                    password_hash=PASSWORD_HASH,
                    role=Role.SELLER,
                    user_type=UserType.SELLER,
                ),
                User(
                    name="Dormant Buyer",
                    email="dormant@example.com",
                    phone="+919811111111",
                    password_hash=PASSWORD_HASH,
                    is_active=False,
                ),
            ]
        )
        await session.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
def sms_channel():
    """Mocked SMS channel — never reaches a gateway."""
    channel = ConsoleSmsChannel("ConnectApp")
    channel.send_code = AsyncMock()
    return channel


@pytest.fixture
def email_channel():
    channel = EmailChannel(TEST_SETTINGS)
    channel.send_code = AsyncMock()
    return channel


@pytest.fixture
def otp_store():
    return OTPStore()


def build_app(cfg, session_factory, sms_channel, email_channel, otp_store=None):
    """Application wired to the test database and mocked channels."""
    app = create_app(
        cfg,
        store=otp_store,
        channels={"sms": sms_channel, "email": email_channel},
    )

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    return app


def http_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest_asyncio.fixture
async def client(session_factory, sms_channel, email_channel, otp_store):
    app = build_app(TEST_SETTINGS, session_factory, sms_channel, email_channel, otp_store)
    async with http_client(app) as ac:
        yield ac


def last_code(channel) -> str:
    return channel.send_code.call_args.args[1]


async def request_code(client: AsyncClient, channel, identifier: str) -> str:
    resp = await client.post("/api/otp/send", json={"identifier": identifier})
    assert resp.status_code == 200
    return last_code(channel)


# ──────────────────────────────────────────────────────────
# OTP endpoints
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_send_and_verify_otp(client, sms_channel):
    resp = await client.post("/api/otp/send", json={"identifier": "9999999999"})
    body = resp.json()
    code = last_code(sms_channel)

    assert resp.status_code == 200
    assert body["success"] is True
    assert body["channel"] == "sms"
    assert code not in resp.text

    resp = await client.post("/api/otp/verify", json={"identifier": "+919999999999", "code": code})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "OTP verified successfully"}

    resp = await client.post("/api/otp/verify", json={"identifier": "+919999999999", "code": code})
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "not found or expired" in resp.json()["message"]


@pytest.mark.asyncio
async def test_wrong_code_is_retryable(client, sms_channel):
    code = await request_code(client, sms_channel, "+919999999999")
    wrong = "000000" if code != "000000" else "111111"

    resp = await client.post("/api/otp/verify", json={"identifier": "+919999999999", "code": wrong})
    assert resp.status_code == 400
    assert "Invalid OTP" in resp.json()["message"]
    assert code not in resp.text

    resp = await client.post("/api/otp/verify", json={"identifier": "+919999999999", "code": code})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_too_many_attempts(client, sms_channel):
    code = await request_code(client, sms_channel, "+919999999999")
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(TEST_SETTINGS.otp_max_attempts):
        await client.post("/api/otp/verify", json={"identifier": "+919999999999", "code": wrong})

    resp = await client.post("/api/otp/verify", json={"identifier": "+919999999999", "code": code})
    assert resp.status_code == 429


@pytest.mark.asyncio
async def test_send_rejects_malformed_identifier(client, sms_channel):
    resp = await client.post("/api/otp/send", json={"identifier": "12ab"})

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    sms_channel.send_code.assert_not_called()


@pytest.mark.asyncio
async def test_missing_fields_are_client_errors(client):
    resp = await client.post("/api/otp/verify", json={"identifier": "+919999999999"})

    assert resp.status_code == 400
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_send_is_identical_for_known_and_unknown(client):
    known = await client.post("/api/otp/send", json={"identifier": "+919876543210"})
    unknown = await client.post("/api/otp/send", json={"identifier": "+919123456789"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


@pytest.mark.asyncio
async def test_delivery_failure_reported_but_code_kept(client, sms_channel, otp_store):
    sms_channel.send_code.side_effect = DeliveryError("gateway down")

    resp = await client.post("/api/otp/send", json={"identifier": "+919999999999"})

    assert resp.status_code == 502
    assert resp.json()["success"] is False
    assert "+919999999999" in otp_store


# ──────────────────────────────────────────────────────────
# Password login + session cookie
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_login_sets_http_only_cookie(client):
    resp = await client.post(
        "/api/auth/login", json={"email": "ravi@example.com", "password": PASSWORD}
    )

    assert resp.status_code == 200
    assert resp.json()["redirect_url"] == "/vendor/dashboard"
    cookie = resp.headers["set-cookie"].lower()
    assert cookie.startswith("token=")
    assert "httponly" in cookie
    assert "samesite=lax" in cookie
    assert "; secure" not in cookie

    me = await client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "ravi@example.com"


@pytest.mark.asyncio
async def test_login_with_wrong_password(client):
    resp = await client.post(
        "/api/auth/login", json={"email": "asha@example.com", "password": "Wrong@123"}
    )
    unknown = await client.post(
        "/api/auth/login", json={"email": "ghost@example.com", "password": "Wrong@123"}
    )

    assert resp.status_code == unknown.status_code == 401
    assert resp.json() == unknown.json()


@pytest.mark.asyncio
async def test_inactive_account_cannot_log_in(client):
    resp = await client.post(
        "/api/auth/login", json={"email": "dormant@example.com", "password": PASSWORD}
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_me_requires_credential(client):
    resp = await client.get("/api/auth/me")

    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Unauthorized"}


@pytest.mark.asyncio
async def test_logout_expires_cookie(client):
    await client.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})

    resp = await client.post("/api/auth/logout")

    assert resp.status_code == 200
    assert "max-age=0" in resp.headers["set-cookie"].lower()
    assert (await client.get("/api/auth/me")).status_code == 401


# ──────────────────────────────────────────────────────────
# OTP login, registration and password reset
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_login_with_otp(client, sms_channel):
    code = await request_code(client, sms_channel, "9876543210")

    resp = await client.post("/api/auth/login-otp", json={"identifier": "9876543210", "code": code})

    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Asha Buyer"
    assert resp.json()["redirect_url"] == "/buyer/dashboard"
    assert (await client.get("/api/auth/me")).status_code == 200


@pytest.mark.asyncio
async def test_login_with_otp_unregistered(client, sms_channel):
    code = await request_code(client, sms_channel, "9123456789")

    resp = await client.post("/api/auth/login-otp", json={"identifier": "9123456789", "code": code})

    assert resp.status_code == 404
    assert resp.json()["not_registered"] is True


@pytest.mark.asyncio
async def test_register_consumes_phone_otp(client, sms_channel):
    code = await request_code(client, sms_channel, "9123456789")
    payload = {
        "name": "Meera Tailors",
        "email": "meera@example.com",
        "phone": "9123456789",
        "password": "Meera@2024",
        "user_type": "SELLER",
        "code": code,
    }

    resp = await client.post("/api/auth/register", json=payload)

    assert resp.status_code == 201
    user = resp.json()["user"]
    assert user["phone"] == "+919123456789"
    assert user["role"] == "SELLER"
    assert (await client.get("/api/vendor/profile")).status_code == 200

    resp = await client.post("/api/auth/register", json=payload)
    assert resp.status_code == 400

    payload["code"] = await request_code(client, sms_channel, "9123456789")
    resp = await client.post("/api/auth/register", json=payload)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_register_checks_code_before_duplicates(client, sms_channel):
    resp = await client.post(
        "/api/auth/register",
        json={
            "name": "Asha Again",
            "email": "asha@example.com",
            "phone": "9876543210",
            "password": "Asha@2024",
            "code": "123456",
        },
    )

    assert resp.status_code == 400
    assert "not found or expired" in resp.json()["message"]


@pytest.mark.asyncio
async def test_register_unique_violation_is_conflict(client, sms_channel, monkeypatch):
    # Both lookups miss, as when a concurrent registration wins the insert
    monkeypatch.setattr(UserRepository, "find_by_email", AsyncMock(return_value=None))
    monkeypatch.setattr(UserRepository, "find_by_phone", AsyncMock(return_value=None))
    code = await request_code(client, sms_channel, "9876543210")

    resp = await client.post(
        "/api/auth/register",
        json={
            "name": "Asha Again",
            "email": "asha@example.com",
            "phone": "9876543210",
            "password": "Asha@2024",
            "code": code,
        },
    )

    assert resp.status_code == 409
    assert resp.json() == {
        "success": False,
        "message": "An account with this email or phone already exists",
    }


@pytest.mark.asyncio
async def test_register_rejects_weak_password(client, sms_channel):
    code = await request_code(client, sms_channel, "9123456789")
    resp = await client.post(
        "/api/auth/register",
        json={
            "name": "Weak",
            "email": "weak@example.com",
            "phone": "9123456789",
            "password": "password",
            "code": code,
        },
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_reset_password_with_email_otp(client, email_channel):
    code = await request_code(client, email_channel, "asha@example.com")

    resp = await client.post(
        "/api/auth/reset-password",
        json={"identifier": "asha@example.com", "code": code, "new_password": "Fresh@456"},
    )
    assert resp.status_code == 200

    old = await client.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})
    new = await client.post("/api/auth/login", json={"email": "asha@example.com", "password": "Fresh@456"})
    assert old.status_code == 401
    assert new.status_code == 200


# ──────────────────────────────────────────────────────────
# Role guard
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_admin_routes_require_admin_session(client):
    assert (await client.get("/api/admin/users")).status_code == 401

    resp = await client.post("/api/admin/login", json={"email": "admin@connectapp.in", "password": PASSWORD})
    assert resp.status_code == 200
    assert resp.headers["set-cookie"].startswith("adminToken=")

    verify = await client.get("/api/admin/verify")
    assert verify.json()["admin"]["role"] == "ADMIN"

    users = await client.get("/api/admin/users", params={"user_type": "SELLER"})
    assert users.status_code == 200
    assert [u["email"] for u in users.json()["users"]] == ["ravi@example.com"]


@pytest.mark.asyncio
async def test_user_credential_is_forbidden_on_admin_routes(client):
    resp = await client.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})
    token = resp.cookies["token"]

    resp = await client.get("/api/admin/users", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 403
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_non_admin_cannot_use_admin_login(client):
    resp = await client.post("/api/admin/login", json={"email": "asha@example.com", "password": PASSWORD})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_buyer_is_forbidden_from_vendor_profile(client):
    await client.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})

    assert (await client.get("/api/vendor/profile")).status_code == 403


@pytest.mark.asyncio
async def test_admin_can_deactivate_account(client):
    await client.post("/api/admin/login", json={"email": "admin@connectapp.in", "password": PASSWORD})
    users = (await client.get("/api/admin/users")).json()["users"]
    asha = next(u for u in users if u["email"] == "asha@example.com")

    resp = await client.patch(f"/api/admin/users/{asha['id']}/status", json={"active": False})
    assert resp.status_code == 200
    assert resp.json()["user"]["is_active"] is False

    login = await client.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})
    assert login.status_code == 403


@pytest.mark.asyncio
async def test_admin_logout(client):
    await client.post("/api/admin/login", json={"email": "admin@connectapp.in", "password": PASSWORD})

    resp = await client.post("/api/admin/logout")

    assert resp.status_code == 200
    assert (await client.get("/api/admin/verify")).status_code == 401


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json() == {"status": "healthy", "app": "ConnectApp"}


# ──────────────────────────────────────────────────────────
# Settings injected into create_app
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_custom_cookie_names_are_honoured(session_factory, sms_channel, email_channel):
    cfg = TEST_SETTINGS.model_copy(
        update={"session_cookie_name": "sid", "admin_cookie_name": "admin_sid"}
    )
    app = build_app(cfg, session_factory, sms_channel, email_channel)

    async with http_client(app) as ac:
        resp = await ac.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})
        assert resp.headers["set-cookie"].startswith("sid=")
        assert (await ac.get("/api/auth/me")).status_code == 200

        resp = await ac.post("/api/admin/login", json={"email": "admin@connectapp.in", "password": PASSWORD})
        assert resp.headers["set-cookie"].startswith("admin_sid=")
        assert (await ac.get("/api/admin/verify")).status_code == 200


@pytest.mark.asyncio
async def test_production_cookies_are_secure(session_factory, sms_channel, email_channel):
    cfg = TEST_SETTINGS.model_copy(update={"environment": "production"})
    app = build_app(cfg, session_factory, sms_channel, email_channel)

    async with http_client(app) as ac:
        login = await ac.post("/api/auth/login", json={"email": "asha@example.com", "password": PASSWORD})
        logout = await ac.post("/api/auth/logout")
        admin_logout = await ac.post("/api/admin/logout")

    assert login.status_code == 200
    for resp in (login, logout, admin_logout):
        cookie = resp.headers["set-cookie"].lower()
        assert "; secure" in cookie
        assert "httponly" in cookie
    assert "max-age=0" in logout.headers["set-cookie"].lower()


# ──────────────────────────────────────────────────────────
# Rate limits
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_otp_send_is_limited_per_identifier(client):
    for _ in range(TEST_SETTINGS.otp_send_limit):
        resp = await client.post("/api/otp/send", json={"identifier": "9999999999"})
        assert resp.status_code == 200

    resp = await client.post("/api/otp/send", json={"identifier": "+91 99999 99999"})

    assert resp.status_code == 429
    assert int(resp.headers["retry-after"]) > 0
    assert resp.json()["success"] is False
    assert resp.json()["retry_after"] == int(resp.headers["retry-after"])

    other = await client.post("/api/otp/send", json={"identifier": "9888888888"})
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_otp_send_is_limited_per_client_address(session_factory, sms_channel, email_channel):
    cfg = TEST_SETTINGS.model_copy(update={"otp_send_ip_limit": 2})
    app = build_app(cfg, session_factory, sms_channel, email_channel)

    async with http_client(app) as ac:
        for number in ("9811111112", "9811111113"):
            resp = await ac.post("/api/otp/send", json={"identifier": number})
            assert resp.status_code == 200

        blocked = await ac.post("/api/otp/send", json={"identifier": "9811111114"})
        elsewhere = await ac.post(
            "/api/otp/send",
            json={"identifier": "9811111114"},
            headers={"X-Forwarded-For": "203.0.113.7"},
        )

    assert blocked.status_code == 429
    assert "retry-after" in blocked.headers
    assert sms_channel.send_code.await_count == 3
    assert elsewhere.status_code == 200


@pytest.mark.asyncio
async def test_register_is_limited_per_client_address(session_factory, sms_channel, email_channel):
    cfg = TEST_SETTINGS.model_copy(update={"register_limit": 1})
    app = build_app(cfg, session_factory, sms_channel, email_channel)
    payload = {
        "name": "Spam",
        "email": "spam@example.com",
        "phone": "9123456789",
        "password": "Spam@2024",
        "code": "123456",
    }

    async with http_client(app) as ac:
        first = await ac.post("/api/auth/register", json=payload)
        second = await ac.post("/api/auth/register", json=payload)

    assert first.status_code == 400
    assert second.status_code == 429
    assert second.json()["message"] == "Too many registration attempts. Please try again later."
    assert int(second.headers["retry-after"]) > 0
