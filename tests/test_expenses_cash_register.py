from sqlalchemy import select

from cafedesk.models.cash_register import CashRegisterBalance
from helpers import auth_headers, cash_balance, create_product, login, owner_token, seed_user


def _deposit(client, headers, amount, **extra):
    payload = {"transaction_type": "deposit", "amount": amount, "description": "Opening float"}
    payload.update(extra)
    return client.post("/cash-register", json=payload, headers=headers)


def _expense(client, headers, amount=40, **extra):
    payload = {
        "description": "Milk delivery",
        "amount": amount,
        "category": "supplies",
        "payment_method": "cash",
        "expense_date": "2026-02-10",
    }
    payload.update(extra)
    return client.post("/expenses", json=payload, headers=headers)


def test_manual_deposit_and_withdrawal_track_running_balance(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)

    res = _deposit(client, headers, 100)
    assert res.status_code == 201, res.text
    entry = res.json()["entry"]
    assert entry["balance"] == 100.0
    assert entry["sequence"] == 1

    res = client.post(
        "/cash-register",
        json={"transaction_type": "withdrawal", "amount": 30, "description": "Bank drop"},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    assert res.json()["entry"]["balance"] == 70.0
    assert res.json()["entry"]["sequence"] == 2
    assert cash_balance(client, token) == 70.0


def test_direct_withdrawal_cannot_overdraw_register(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    _deposit(client, headers, 20)

    res = client.post(
        "/cash-register",
        json={"transaction_type": "withdrawal", "amount": 25, "description": "Too much"},
        headers=headers,
    )
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "insufficient_funds"
    assert cash_balance(client, token) == 20.0
    assert len(client.get("/cash-register", headers=headers).json()["items"]) == 1


def test_expense_withdrawal_may_overdraw_register(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)

    res = _expense(client, headers, 40)
    assert res.status_code == 201, res.text
    expense = res.json()["expense"]
    assert expense["status"] == "paid"

    entries = client.get("/cash-register", headers=headers).json()["items"]
    assert entries[0]["description"] == "Expense: Milk delivery"
    assert entries[0]["reference"] == {"type": "expense", "id": expense["id"]}
    assert cash_balance(client, token) == -40.0


def test_expense_update_revises_cash_entry(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    _deposit(client, headers, 100)
    expense = _expense(client, headers, 40).json()["expense"]

    res = client.put(
        f"/expenses/{expense['id']}",
        json={"amount": 55, "payment_method": "card", "description": "Milk and cream"},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["expense"]["amount"] == 55.0

    entry = client.get("/cash-register", headers=headers).json()["items"][0]
    assert entry["amount"] == 55.0
    assert entry["balance"] == 45.0
    assert entry["payment_method"] == "card"
    assert entry["description"] == "Expense: Milk and cream"
    assert cash_balance(client, token) == 45.0


def test_expense_delete_removes_cash_entry(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    _deposit(client, headers, 100)
    expense = _expense(client, headers, 40).json()["expense"]
    assert cash_balance(client, token) == 60.0

    res = client.delete(f"/expenses/{expense['id']}", headers=headers)
    assert res.status_code == 200, res.text
    assert client.get(f"/expenses/{expense['id']}", headers=headers).status_code == 404
    assert cash_balance(client, token) == 100.0
    assert len(client.get("/cash-register", headers=headers).json()["items"]) == 1


def test_recurring_expense_gets_next_due_date(test_context):
    client, _ = test_context
    headers = auth_headers(owner_token(client))

    res = _expense(
        client,
        headers,
        1200,
        description="Rent",
        category="rent",
        expense_date="2026-01-31",
        recurring=True,
        frequency="monthly",
    )
    assert res.status_code == 201, res.text
    assert res.json()["expense"]["next_due_date"] == "2026-02-28"

    missing_frequency = _expense(client, headers, 10, recurring=True)
    assert missing_frequency.status_code == 422


def test_cash_reference_must_belong_to_owner(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token)
    sale = client.post(
        "/sales",
        json={"items": [{"product_id": product["id"], "quantity": 1}], "payment_method": "cash"},
        headers=headers,
    ).json()["sale"]

    res = _deposit(client, headers, 10, category="sale", reference={"type": "sale", "id": sale["id"]})
    assert res.status_code == 201, res.text
    assert res.json()["entry"]["reference"] == {"type": "sale", "id": sale["id"]}

    other = auth_headers(owner_token(client, "second"))
    foreign = _deposit(client, other, 10, reference={"type": "sale", "id": sale["id"]})
    assert foreign.status_code == 404, foreign.text


def test_cash_summary_and_filters(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    _deposit(client, headers, 100)
    _deposit(client, headers, 50, payment_method="card", category="refund")
    _expense(client, headers, 30)

    withdrawals = client.get(
        "/cash-register", params={"transaction_type": "withdrawal"}, headers=headers
    ).json()
    assert withdrawals["pagination"]["total"] == 1
    assert withdrawals["current_balance"] == 120.0

    summary = client.get("/cash-register/summary", headers=headers)
    assert summary.status_code == 200, summary.text
    overall = summary.json()["overall"]
    assert overall == {"total_deposits": 150.0, "total_withdrawals": 30.0, "current_balance": 120.0}
    categories = {row["key"]: row["count"] for row in summary.json()["by_category"]}
    assert categories == {"expense": 1, "other": 1, "refund": 1}


def test_expense_stats_group_by_category_and_month(test_context):
    client, _ = test_context
    headers = auth_headers(owner_token(client))
    _expense(client, headers, 40, expense_date="2026-01-05")
    _expense(client, headers, 20, expense_date="2026-02-05")
    _expense(client, headers, 300, description="Rent", category="rent", expense_date="2026-02-01")
    cancelled = _expense(client, headers, 999, expense_date="2026-02-06").json()["expense"]
    client.put(f"/expenses/{cancelled['id']}", json={"status": "cancelled"}, headers=headers)

    stats = client.get("/expenses/stats", headers=headers)
    assert stats.status_code == 200, stats.text
    by_category = {row["category"]: row for row in stats.json()["by_category"]}
    assert by_category["supplies"]["total_amount"] == 60.0
    assert by_category["supplies"]["average_amount"] == 30.0
    assert by_category["rent"]["count"] == 1
    months = {row["month"]: row["total"] for row in stats.json()["monthly"]}
    assert months == {"2026-02": 320.0, "2026-01": 40.0}


def test_cash_register_requires_permission(test_context):
    client, _ = test_context
    customer = client.post(
        "/auth/register",
        json={
            "username": "guest",
            "email": "guest@example.com",
            "password": "password123",
            "role": "customer",
        },
    ).json()["access_token"]
    assert client.get("/cash-register", headers=auth_headers(customer)).status_code == 403


def _balance_rows(session_local) -> dict[str, float]:
    db = session_local()
    try:
        rows = db.execute(select(CashRegisterBalance)).scalars().all()
        return {row.owner_id: float(row.balance) for row in rows}
    finally:
        db.close()


def test_register_counter_opens_with_owner_account(test_context):
    client, session_local = test_context
    token = owner_token(client)
    owner_id = client.get("/auth/me", headers=auth_headers(token)).json()["id"]
    assert _balance_rows(session_local) == {owner_id: 0.0}

    seed_user(session_local, username="admin", role="admin")
    admin = auth_headers(login(client, "admin"))
    staff = client.post(
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
    assert staff.status_code == 201, staff.text
    assert set(_balance_rows(session_local)) == {owner_id}

    assert _deposit(client, auth_headers(token), 25).status_code == 201
    assert _balance_rows(session_local) == {owner_id: 25.0}
    assert cash_balance(client, token) == 25.0
