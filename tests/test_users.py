from helpers import auth_headers, create_product, login, owner_token, seed_user


def _admin_headers(client, session_local) -> dict[str, str]:
    seed_user(session_local, username="admin", role="admin")
    return auth_headers(login(client, "admin"))


def test_admin_creates_staff_for_cafe_owner(test_context):
    client, session_local = test_context
    token = owner_token(client)
    owner_id = client.get("/auth/me", headers=auth_headers(token)).json()["id"]
    admin = _admin_headers(client, session_local)

    res = client.post(
        "/users",
        json={
            "username": "barista",
            "email": "barista@example.com",
            "password": "password123",
            "role": "staff",
            "cafe_owner_id": owner_id,
        },
        headers=admin,
    )
    assert res.status_code == 201, res.text
    staff = res.json()["user"]
    assert staff["cafe_owner_id"] == owner_id
    assert staff["permissions"] == ["manage_sales"]

    listing = client.get("/users", params={"role": "staff"}, headers=admin)
    assert listing.status_code == 200, listing.text
    assert [u["username"] for u in listing.json()["items"]] == ["barista"]

    stats = client.get("/users/stats", headers=admin).json()
    assert stats["total"] == 3
    assert {row["role"]: row["count"] for row in stats["by_role"]}["staff"] == 1


def test_staff_sells_from_owner_catalog_but_cannot_manage_it(test_context):
    client, session_local = test_context
    token = owner_token(client)
    owner_id = client.get("/auth/me", headers=auth_headers(token)).json()["id"]
    product = create_product(client, token)
    seed_user(session_local, username="barista", role="staff", cafe_owner_id=owner_id)
    staff = auth_headers(login(client, "barista"))

    sale = client.post(
        "/sales",
        json={
            "items": [{"product_id": product["id"], "quantity": 1}],
            "payment_method": "cash",
            "paid_amount": 10,
        },
        headers=staff,
    )
    assert sale.status_code == 201, sale.text

    owner_sales = client.get("/sales", headers=auth_headers(token)).json()
    assert owner_sales["pagination"]["total"] == 1

    forbidden = client.post(
        "/products", json={"code": "X1", "name": "Muffin", "price": 3}, headers=staff
    )
    assert forbidden.status_code == 403, forbidden.text


def test_role_change_resets_permissions_and_unknown_permissions_rejected(test_context):
    client, session_local = test_context
    user_id = seed_user(session_local, username="writer", role="editor")
    admin = _admin_headers(client, session_local)

    res = client.put(f"/users/{user_id}", json={"role": "staff"}, headers=admin)
    assert res.status_code == 200, res.text
    assert res.json()["user"]["permissions"] == ["manage_sales"]

    bad = client.put(f"/users/{user_id}", json={"permissions": ["fly_planes"]}, headers=admin)
    assert bad.status_code == 422, bad.text

    empty = client.put(f"/users/{user_id}", json={}, headers=admin)
    assert empty.status_code == 422


def test_admin_cannot_create_super_admin(test_context):
    client, session_local = test_context
    admin = _admin_headers(client, session_local)
    res = client.post(
        "/users",
        json={
            "username": "root2",
            "email": "root2@example.com",
            "password": "password123",
            "role": "super_admin",
        },
        headers=admin,
    )
    assert res.status_code == 403, res.text


def test_only_super_admin_deletes_users_and_deleted_users_cannot_login(test_context):
    client, session_local = test_context
    victim_id = seed_user(session_local, username="victim", role="staff")
    admin = _admin_headers(client, session_local)

    assert client.delete(f"/users/{victim_id}", headers=admin).status_code == 403

    root_id = seed_user(session_local, username="root", role="super_admin")
    root = auth_headers(login(client, "root"))
    res = client.delete(f"/users/{victim_id}", headers=root)
    assert res.status_code == 200, res.text

    self_delete = client.delete(f"/users/{root_id}", headers=root)
    assert self_delete.status_code == 409

    blocked = client.post("/auth/login", json={"identifier": "victim", "password": "password123"})
    assert blocked.status_code == 403


def test_cafe_owner_cannot_manage_users(test_context):
    client, _ = test_context
    token = owner_token(client)
    res = client.get("/users", headers=auth_headers(token))
    assert res.status_code == 403
