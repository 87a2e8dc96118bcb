from sqlalchemy import select

from cafedesk.models.user import User
from helpers import PASSWORD, auth_headers, login, register


def test_register_returns_tokens_and_profile(test_context):
    client, session_local = test_context

    res = register(client, username="owner")
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["user"]["role"] == "cafe_owner"
    assert "manage_sales" in body["user"]["permissions"]

    db = session_local()
    try:
        user = db.execute(select(User).where(User.username == "owner")).scalar_one()
    finally:
        db.close()
    assert len(user.id) == 22

    me_res = client.get("/auth/me", headers=auth_headers(body["access_token"]))
    assert me_res.status_code == 200, me_res.text
    assert me_res.json()["email"] == "owner@example.com"


def test_register_rejects_duplicate_email_and_username(test_context):
    client, _ = test_context
    assert register(client, username="owner").status_code == 201

    dup_email = register(client, username="other", email="OWNER@example.com")
    assert dup_email.status_code == 409, dup_email.text
    assert dup_email.json()["error"]["code"] == "duplicate_key"

    dup_username = register(client, username="Owner", email="new@example.com")
    assert dup_username.status_code == 409, dup_username.text


def test_register_rejects_privileged_roles(test_context):
    client, _ = test_context
    res = register(client, username="sneaky", role="admin")
    assert res.status_code == 403, res.text
    assert res.json()["error"]["code"] == "forbidden"


def test_login_with_email_or_username(test_context):
    client, _ = test_context
    register(client, username="owner")

    assert login(client, "owner@example.com")
    assert login(client, "owner")

    bad = client.post("/auth/login", json={"identifier": "owner", "password": "wrong-password"})
    assert bad.status_code == 401, bad.text


def test_login_is_rate_limited_after_repeated_failures(test_context):
    client, _ = test_context
    register(client, username="owner")

    for _ in range(5):
        res = client.post("/auth/login", json={"identifier": "owner", "password": "wrong-password"})
        assert res.status_code == 401

    blocked = client.post("/auth/login", json={"identifier": "owner", "password": PASSWORD})
    assert blocked.status_code == 429, blocked.text
    assert int(blocked.headers["Retry-After"]) > 0


def test_swagger_token_endpoint_accepts_form_login(test_context):
    client, _ = test_context
    register(client, username="owner")

    res = client.post("/auth/token", data={"username": "owner", "password": PASSWORD})
    assert res.status_code == 200, res.text
    assert res.json()["token_type"] == "bearer"


def test_refresh_rotates_and_logout_revokes(test_context):
    client, _ = test_context
    refresh_token = register(client, username="owner").json()["refresh_token"]

    rotated = client.post("/auth/refresh", json={"refresh_token": refresh_token})
    assert rotated.status_code == 200, rotated.text
    new_refresh = rotated.json()["refresh_token"]
    assert new_refresh != refresh_token

    reused = client.post("/auth/refresh", json={"refresh_token": refresh_token})
    assert reused.status_code == 401, reused.text

    logout = client.post("/auth/logout", json={"refresh_token": new_refresh})
    assert logout.status_code == 200, logout.text
    after_logout = client.post("/auth/refresh", json={"refresh_token": new_refresh})
    assert after_logout.status_code == 401, after_logout.text


def test_change_password_revokes_refresh_tokens(test_context):
    client, _ = test_context
    body = register(client, username="owner").json()
    headers = auth_headers(body["access_token"])

    wrong = client.post(
        "/auth/change-password",
        json={"current_password": "not-it-at-all", "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert wrong.status_code == 401, wrong.text

    res = client.post(
        "/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert res.status_code == 200, res.text

    refresh = client.post("/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert refresh.status_code == 401
    login_res = client.post(
        "/auth/login", json={"identifier": "owner", "password": "brand-new-pass"}
    )
    assert login_res.status_code == 200, login_res.text


def test_protected_route_requires_token(test_context):
    client, _ = test_context
    res = client.get("/products")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "unauthorized"
