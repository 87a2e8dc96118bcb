from helpers import auth_headers, cash_balance, create_product, owner_token, product_stock


def _sell(client, headers, items, **extra):
    payload = {"items": items, "payment_method": "cash"}
    payload.update(extra)
    return client.post("/sales", json=payload, headers=headers)


def test_sale_computes_totals_and_moves_stock(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=5)

    res = _sell(client, headers, [{"product_id": product["id"], "quantity": 2}], paid_amount=20)
    assert res.status_code == 201, res.text
    sale = res.json()["sale"]
    assert sale["subtotal"] == 20.0
    assert sale["total"] == 20.0
    assert sale["remaining_amount"] == 0.0
    assert sale["payment_status"] == "paid"
    assert sale["status"] == "confirmed"
    assert sale["sale_number"].startswith("SALE-")
    assert sale["items"][0]["product_name"] == "Espresso beans"
    assert sale["items"][0]["unit_price"] == 10.0

    assert product_stock(client, token, product["id"]) == 3
    # point-of-sale receipts are not mirrored into the register
    assert cash_balance(client, token) == 0


def test_sale_applies_line_and_document_discounts_then_tax(test_context):
    client, _ = test_context
    token = owner_token(client)
    product = create_product(client, token, price=10, stock_quantity=10)

    res = _sell(
        client,
        auth_headers(token),
        [{"product_id": product["id"], "quantity": 4, "discount_percent": 25}],
        discount_percent=10,
        tax_amount=1.5,
        paid_amount=10,
    )
    assert res.status_code == 201, res.text
    sale = res.json()["sale"]
    assert sale["items"][0]["line_total"] == 30.0
    assert sale["subtotal"] == 30.0
    assert sale["total"] == 28.5
    assert sale["remaining_amount"] == 18.5
    assert sale["payment_status"] == "partial"


def test_overpayment_keeps_negative_remaining(test_context):
    client, _ = test_context
    token = owner_token(client)
    product = create_product(client, token, price=10)

    sale = _sell(
        client, auth_headers(token), [{"product_id": product["id"], "quantity": 1}], paid_amount=15
    ).json()["sale"]
    assert sale["remaining_amount"] == -5.0
    assert sale["payment_status"] == "paid"


def test_insufficient_stock_rejects_whole_sale(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    beans = create_product(client, token, stock_quantity=5)
    cups = create_product(client, token, code="CUP", name="Cup", price=1, stock_quantity=100)

    res = _sell(
        client,
        headers,
        [
            {"product_id": cups["id"], "quantity": 10},
            {"product_id": beans["id"], "quantity": 6},
        ],
    )
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "insufficient_stock"

    assert product_stock(client, token, cups["id"]) == 100
    assert product_stock(client, token, beans["id"]) == 5
    assert client.get("/sales", headers=headers).json()["pagination"]["total"] == 0


def test_repeated_product_lines_are_checked_together(test_context):
    client, _ = test_context
    token = owner_token(client)
    product = create_product(client, token, stock_quantity=5)

    res = _sell(
        client,
        auth_headers(token),
        [
            {"product_id": product["id"], "quantity": 3},
            {"product_id": product["id"], "quantity": 3},
        ],
    )
    assert res.status_code == 409, res.text
    assert product_stock(client, token, product["id"]) == 5


def test_unknown_product_and_invalid_payload(test_context):
    client, _ = test_context
    headers = auth_headers(owner_token(client))

    missing = _sell(client, headers, [{"product_id": "does-not-exist", "quantity": 1}])
    assert missing.status_code == 404, missing.text

    empty = _sell(client, headers, [])
    assert empty.status_code == 422
    assert empty.json()["error"]["code"] == "validation_error"


def test_update_payment_and_notes(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10)
    sale = _sell(client, headers, [{"product_id": product["id"], "quantity": 2}]).json()["sale"]
    assert sale["payment_status"] == "unpaid"

    res = client.put(f"/sales/{sale['id']}", json={"paid_amount": 5}, headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["sale"]["payment_status"] == "partial"

    res = client.put(
        f"/sales/{sale['id']}", json={"paid_amount": 20, "notes": "settled"}, headers=headers
    )
    body = res.json()["sale"]
    assert body["payment_status"] == "paid"
    assert body["notes"] == "settled"


def test_cancel_restores_stock_and_freezes_payment(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, stock_quantity=5)
    sale = _sell(client, headers, [{"product_id": product["id"], "quantity": 2}]).json()["sale"]

    res = client.post(f"/sales/{sale['id']}/cancel", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["sale"]["status"] == "cancelled"
    assert product_stock(client, token, product["id"]) == 5

    again = client.post(f"/sales/{sale['id']}/cancel", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "invalid_state"

    pay = client.put(f"/sales/{sale['id']}", json={"paid_amount": 20}, headers=headers)
    assert pay.status_code == 409

    notes = client.put(f"/sales/{sale['id']}", json={"notes": "refunded"}, headers=headers)
    assert notes.status_code == 200, notes.text


def test_list_filters_and_stats(test_context):
    client, _ = test_context
    token = owner_token(client)
    headers = auth_headers(token)
    product = create_product(client, token, price=10, stock_quantity=20)
    _sell(client, headers, [{"product_id": product["id"], "quantity": 1}], paid_amount=10)
    _sell(
        client,
        headers,
        [{"product_id": product["id"], "quantity": 3}],
        payment_method="card",
        paid_amount=0,
    )
    cancelled = _sell(client, headers, [{"product_id": product["id"], "quantity": 1}]).json()["sale"]
    client.post(f"/sales/{cancelled['id']}/cancel", headers=headers)

    card = client.get("/sales", params={"payment_method": "card"}, headers=headers).json()
    assert card["pagination"]["total"] == 1

    stats = client.get("/sales/stats", headers=headers)
    assert stats.status_code == 200, stats.text
    overall = stats.json()["overall"]
    assert overall["total_sales"] == 2
    assert overall["total_revenue"] == 40.0
    assert overall["total_paid"] == 10.0
    assert overall["total_pending"] == 30.0
    assert overall["average_order_value"] == 20.0
    methods = {row["key"]: row["total"] for row in stats.json()["by_payment_method"]}
    assert methods == {"card": 30.0, "cash": 10.0}


def test_sales_are_scoped_to_owner(test_context):
    client, _ = test_context
    token = owner_token(client)
    product = create_product(client, token)
    sale = _sell(
        client, auth_headers(token), [{"product_id": product["id"], "quantity": 1}]
    ).json()["sale"]

    other = auth_headers(owner_token(client, "second"))
    assert client.get(f"/sales/{sale['id']}", headers=other).status_code == 404
    foreign = _sell(client, other, [{"product_id": product["id"], "quantity": 1}])
    assert foreign.status_code == 404
