from cafedesk.core.permissions import default_permissions
from cafedesk.core.security import hash_password
from cafedesk.models.user import User

PASSWORD = "password123"


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client, *, username: str, role: str = "cafe_owner", email: str | None = None):
    return client.post(
        "/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": PASSWORD,
            "name": username.title(),
            "role": role,
        },
    )


def owner_token(client, username: str = "owner") -> str:
    res = register(client, username=username)
    assert res.status_code == 201, res.text
    return res.json()["access_token"]


def seed_user(session_local, *, username: str, role: str, cafe_owner_id: str | None = None) -> str:
    """Insert an account with a role that cannot self-register and return its id."""
    db = session_local()
    try:
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=hash_password(PASSWORD),
            role=role,
            permissions=default_permissions(role),
            cafe_owner_id=cafe_owner_id,
            is_active=True,
        )
        db.add(user)
        db.commit()
        return user.id
    finally:
        db.close()


def login(client, identifier: str) -> str:
    res = client.post("/auth/login", json={"identifier": identifier, "password": PASSWORD})
    assert res.status_code == 200, res.text
    return res.json()["access_token"]


def create_product(client, token: str, **overrides) -> dict:
    payload = {
        "code": "ESP-250",
        "name": "Espresso beans",
        "price": 10.0,
        "cost": 5.0,
        "stock_quantity": 5,
        "minimum_stock": 2,
        "category": "coffee",
    }
    payload.update(overrides)
    res = client.post("/products", json=payload, headers=auth_headers(token))
    assert res.status_code == 201, res.text
    return res.json()["product"]


def product_stock(client, token: str, product_id: str) -> float:
    res = client.get(f"/products/{product_id}", headers=auth_headers(token))
    assert res.status_code == 200, res.text
    return res.json()["stock_quantity"]


def cash_balance(client, token: str) -> float:
    res = client.get("/cash-register", headers=auth_headers(token))
    assert res.status_code == 200, res.text
    return res.json()["current_balance"]
