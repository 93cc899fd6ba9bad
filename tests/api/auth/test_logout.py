from sqlalchemy import select

from core.config import settings
from models.blacklisted_tokens import BlacklistedToken
from models.refresh_tokens import RefreshToken
from utils.hashing import hash_token


async def test_logout_revokes_refresh_token(client, session, login, verified_user):
    response = await login(verified_user.email)
    cookie = response.cookies[settings.REFRESH_COOKIE_NAME]

    response = await client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"

    assert (await session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(cookie))
    )).scalar_one_or_none() is None
    assert (await session.execute(
        select(BlacklistedToken).where(BlacklistedToken.token_hash == hash_token(cookie))
    )).scalar_one_or_none() is not None


async def test_logout_clears_cookie(client, login, verified_user):
    await login(verified_user.email)

    response = await client.post("/auth/logout")

    set_cookie = response.headers["set-cookie"].lower()
    assert set_cookie.startswith(f"{settings.REFRESH_COOKIE_NAME}=")
    assert "max-age=0" in set_cookie
    assert settings.REFRESH_COOKIE_NAME not in client.cookies


async def test_refresh_fails_after_logout(client, login, verified_user):
    response = await login(verified_user.email)
    cookie = response.cookies[settings.REFRESH_COOKIE_NAME]

    await client.post("/auth/logout")

    client.cookies.set(settings.REFRESH_COOKIE_NAME, cookie)
    response = await client.post("/auth/refresh")

    assert response.status_code == 401


async def test_logout_twice(client, login, verified_user):
    response = await login(verified_user.email)
    cookie = response.cookies[settings.REFRESH_COOKIE_NAME]

    first = await client.post("/auth/logout")
    client.cookies.set(settings.REFRESH_COOKIE_NAME, cookie)
    second = await client.post("/auth/logout")

    assert first.status_code == second.status_code == 200


async def test_logout_without_cookie(client):
    response = await client.post("/auth/logout")

    assert response.status_code == 200


async def test_logout_only_revokes_this_session(client, login, token_service, verified_user):
    other_device = await token_service.issue_refresh(verified_user)
    await login(verified_user.email)

    await client.post("/auth/logout")

    await token_service.verify_refresh(other_device.token)
