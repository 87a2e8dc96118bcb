from helpers import auth_headers, cash_balance, create_product, owner_token, product_stock


def _invoice(client, headers, product_id, *, invoice_type="sale", quantity=3, **extra):
    payload = {
        "type": invoice_type,
        "party": {
            "type": "customer" if invoice_type == "sale" else "supplier",
            "name": "Corner Office Ltd",
        },
        "items": [{"product_id": product_id, "quantity": quantity}],
        "payment_method": "cash",
    }
    payload.update(extra)
    return client.post("/invoices", json=payload, headers=headers)


def _cash_entries(client, headers) -> list[dict]:
    return client.get("/cash-register", headers=headers).json()["items"]


def test_sale_invoice_moves_stock_out_and_deposits_payment(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=5)

    res = _invoice(client, headers, product["id"], paid_amount=10)
    assert res.status_code == 201, res.text
    invoice = res.json()["invoice"]
    assert invoice["total"] == 30.0
    assert invoice["remaining_amount"] == 20.0
    assert invoice["payment_status"] == "partial"
    assert invoice["invoice_number"].startswith("INV-")

    assert product_stock(client, token, product["id"]) == 2
    entries = _cash_entries(client, headers)
    assert len(entries) == 1
    assert entries[0]["transaction_type"] == "deposit"
    assert entries[0]["category"] == "sale"
    assert entries[0]["amount"] == 10.0
    assert entries[0]["reference"] == {"type": "invoice", "id": invoice["id"]}
    assert cash_balance(client, token) == 10.0


def test_additional_payment_mirrors_only_the_increase(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=5)
    invoice = _invoice(client, headers, product["id"], paid_amount=10).json()["invoice"]

    res = client.patch(
        f"/invoices/{invoice['id']}/payment",
        json={"paid_amount": 25, "payment_method": "card"},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()["invoice"]
    assert body["paid_amount"] == 25.0
    assert body["remaining_amount"] == 5.0
    assert body["payment_method"] == "card"

    entries = _cash_entries(client, headers)
    assert [e["amount"] for e in entries] == [15.0, 10.0]
    assert entries[0]["payment_method"] == "card"
    assert cash_balance(client, token) == 25.0

    same = client.patch(
        f"/invoices/{invoice['id']}/payment",
        json={"paid_amount": 25, "payment_method": "cash"},
        headers=headers,
    )
    assert same.status_code == 400, same.text
    assert same.json()["error"]["code"] == "invalid_amount"


def test_purchase_invoice_restocks_and_withdraws_without_funds_guard(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=4, stock_quantity=1)

    res = _invoice(
        client, headers, product["id"], invoice_type="purchase", quantity=12.5, paid_amount=50
    )
    assert res.status_code == 201, res.text
    assert product_stock(client, token, product["id"]) == 13.5

    entries = _cash_entries(client, headers)
    assert entries[0]["transaction_type"] == "withdrawal"
    assert entries[0]["category"] == "expense"
    assert cash_balance(client, token) == -50.0


def test_sale_invoice_rejects_insufficient_stock(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, stock_quantity=2)

    res = _invoice(client, headers, product["id"], quantity=3, paid_amount=5)
    assert res.status_code == 409, res.text
    assert product_stock(client, token, product["id"]) == 2
    assert _cash_entries(client, headers) == []
    assert client.get("/invoices", headers=headers).json()["pagination"]["total"] == 0


def test_draft_invoice_defers_stock_and_cash_until_confirmed(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=5)

    draft = _invoice(client, headers, product["id"], paid_amount=10, status="draft").json()["invoice"]
    assert draft["status"] == "draft"
    assert product_stock(client, token, product["id"]) == 5
    assert cash_balance(client, token) == 0

    early_payment = client.patch(
        f"/invoices/{draft['id']}/payment",
        json={"paid_amount": 20, "payment_method": "cash"},
        headers=headers,
    )
    assert early_payment.status_code == 409

    res = client.post(f"/invoices/{draft['id']}/confirm", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["invoice"]["status"] == "confirmed"
    assert product_stock(client, token, product["id"]) == 2
    assert cash_balance(client, token) == 10.0

    assert client.post(f"/invoices/{draft['id']}/confirm", headers=headers).status_code == 409


def test_void_draft_invoice(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token)
    draft = _invoice(client, headers, product["id"], status="draft").json()["invoice"]

    res = client.post(f"/invoices/{draft['id']}/void", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["invoice"]["status"] == "void"
    assert client.post(f"/invoices/{draft['id']}/confirm", headers=headers).status_code == 409


def test_cancel_reverses_stock_and_keeps_cash(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=5)
    invoice = _invoice(client, headers, product["id"], paid_amount=30).json()["invoice"]

    res = client.patch(f"/invoices/{invoice['id']}/cancel", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["invoice"]["status"] == "cancelled"
    assert product_stock(client, token, product["id"]) == 5
    assert cash_balance(client, token) == 30.0

    again = client.patch(f"/invoices/{invoice['id']}/cancel", headers=headers)
    assert again.status_code == 409


def test_cancelling_purchase_fails_when_stock_was_consumed(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=0)
    purchase = _invoice(client, headers, product["id"], invoice_type="purchase", quantity=3).json()[
        "invoice"
    ]
    client.post(
        "/sales",
        json={"items": [{"product_id": product["id"], "quantity": 2}], "payment_method": "cash"},
        headers=headers,
    )

    res = client.patch(f"/invoices/{purchase['id']}/cancel", headers=headers)
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "insufficient_stock"
    assert client.get(f"/invoices/{purchase['id']}", headers=headers).json()["status"] == "confirmed"


def test_due_date_before_issue_date_is_rejected(test_context):
    client, _ = test_context
    token = owner_token(client)
    product = create_product(client, token)
    res = _invoice(
        client,
        auth_headers(token),
        product["id"],
        issue_date="2026-03-10",
        due_date="2026-03-01",
    )
    assert res.status_code == 422


def test_invoice_list_and_stats(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=50)
    _invoice(client, headers, product["id"], quantity=2, paid_amount=20)
    _invoice(client, headers, product["id"], quantity=1)
    _invoice(client, headers, product["id"], invoice_type="purchase", quantity=5, paid_amount=50)

    purchases = client.get("/invoices", params={"type": "purchase"}, headers=headers).json()
    assert purchases["pagination"]["total"] == 1

    stats = client.get("/invoices/stats", params={"type": "sale"}, headers=headers)
    assert stats.status_code == 200, stats.text
    overall = stats.json()["overall"]
    assert overall["total_invoices"] == 2
    assert overall["total_amount"] == 30.0
    assert overall["total_paid"] == 20.0
    assert overall["total_pending"] == 10.0
    statuses = {row["key"]: row["count"] for row in stats.json()["by_payment_status"]}
    assert statuses == {"paid": 1, "unpaid": 1}


def test_invoice_quantity_finer_than_cents_is_rejected(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=100, stock_quantity=5)

    res = _invoice(client, headers, product["id"], invoice_type="purchase", quantity="0.015")
    assert res.status_code == 422, res.text
    assert res.json()["error"]["code"] == "validation_error"
    assert product_stock(client, token, product["id"]) == 5
    assert client.get("/invoices", headers=headers).json()["pagination"]["total"] == 0


def test_fractional_purchase_round_trips_stock_on_cancel(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=100, stock_quantity=5)

    res = _invoice(client, headers, product["id"], invoice_type="purchase", quantity="1.25")
    assert res.status_code == 201, res.text
    item = res.json()["invoice"]["items"][0]
    assert item["quantity"] == 1.25
    assert item["line_total"] == 125.0
    assert product_stock(client, token, product["id"]) == 6.25

    cancel = client.patch(f"/invoices/{res.json()['invoice']['id']}/cancel", headers=headers)
    assert cancel.status_code == 200, cancel.text
    assert product_stock(client, token, product["id"]) == 5


def test_invoices_are_scoped_to_owner(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=5)
    invoice = _invoice(client, headers, product["id"], paid_amount=10).json()["invoice"]

    other = auth_headers(owner_token(client, "second"))
    assert client.get(f"/invoices/{invoice['id']}", headers=other).status_code == 404
    payment = client.patch(
        f"/invoices/{invoice['id']}/payment",
        json={"paid_amount": 30, "payment_method": "cash"},
        headers=other,
    )
    assert payment.status_code == 404, payment.text
    assert payment.json()["error"]["code"] == "not_found"
    cancel = client.patch(f"/invoices/{invoice['id']}/cancel", headers=other)
    assert cancel.status_code == 404, cancel.text

    foreign = _invoice(client, other, product["id"], quantity=1)
    assert foreign.status_code == 404, foreign.text

    current = client.get(f"/invoices/{invoice['id']}", headers=headers).json()
    assert current["status"] == "confirmed"
    assert current["paid_amount"] == 10.0
    assert product_stock(client, token, product["id"]) == 2
    assert client.get("/invoices", headers=other).json()["pagination"]["total"] == 0
