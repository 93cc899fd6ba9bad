from core.config import settings


async def test_refresh_with_cookie(client, login, verified_user):
    response = await login(verified_user.email)
    assert response.status_code == 200

    # cookie is replayed by the client's jar
    response = await client.post("/auth/refresh")

    assert response.status_code == 200
    data = response.json()
    assert data["access_token"]
    assert data["user"]["id"] == verified_user.id

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200


async def test_refresh_can_be_repeated(client, login, verified_user):
    """The refresh token is not rotated; it keeps working until revoked or expired."""
    await login(verified_user.email)

    for _ in range(3):
        response = await client.post("/auth/refresh")
        assert response.status_code == 200


async def test_refresh_without_cookie(client):
    response = await client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["detail"] == "Refresh token required"


async def test_refresh_with_garbage_cookie(client):
    client.cookies.set(settings.REFRESH_COOKIE_NAME, "garbage")

    response = await client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_refresh_token"


async def test_refresh_with_access_token_as_cookie(client, login, verified_user):
    access_token = (await login(verified_user.email)).json()["access_token"]
    client.cookies.clear()
    client.cookies.set(settings.REFRESH_COOKIE_NAME, access_token)

    response = await client.post("/auth/refresh")

    assert response.status_code == 401


async def test_refresh_failures_look_identical(client, login, verified_user):
    """Forged, revoked and missing-record tokens all get one answer."""
    response = await login(verified_user.email)
    cookie = response.cookies[settings.REFRESH_COOKIE_NAME]

    await client.post("/auth/logout")
    client.cookies.set(settings.REFRESH_COOKIE_NAME, cookie)
    revoked = await client.post("/auth/refresh")

    client.cookies.set(settings.REFRESH_COOKIE_NAME, "forged")
    forged = await client.post("/auth/refresh")

    assert revoked.status_code == forged.status_code == 401
    assert revoked.json() == forged.json()
