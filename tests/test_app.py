def test_health_and_ready(test_context):
    client, _ = test_context
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/ready").json() == {"ok": True}
    root = client.get("/").json()
    assert root["docs"] == "/docs"


def test_responses_carry_request_id(test_context):
    client, _ = test_context
    res = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert res.headers["X-Request-ID"] == "req-123"
    assert res.headers["X-API-Timeout-Hint-Ms"]


def test_unknown_route_uses_error_envelope(test_context):
    client, _ = test_context
    res = client.get("/no-such-route", headers={"X-Request-ID": "req-404"})
    assert res.status_code == 404
    error = res.json()["error"]
    assert error["code"] == "not_found"
    assert error["request_id"] == "req-404"
    assert error["path"] == "/no-such-route"


def test_openapi_lists_every_resource(test_context):
    client, _ = test_context
    paths = client.get("/openapi.json").json()["paths"]
    for prefix in (
        "/auth/login",
        "/users",
        "/products",
        "/sales",
        "/invoices",
        "/expenses",
        "/cash-register",
        "/blog",
    ):
        assert prefix in paths
