from decimal import Decimal

from fastapi.testclient import TestClient

from order_service.core.errors import InfrastructureError
from order_service.main import app

ORDERS_URL = "/api/v1/orders"


def _payload(*items, email="customer@example.com", **extra):
    items = items or (("Laptop", 1, "1299.99"),)
    body = {"customer_email": email,
            "items": [{"product_name": n, "quantity": q, "unit_price": p} for n, q, p in items]}
    body.update(extra)
    return body


def _create(client, *items, **kw):
    resp = client.post(ORDERS_URL, json=_payload(*items, **kw))
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_order_returns_pending_with_computed_total(client):
    body = _create(client, ("A", 2, "25.50"), ("B", 1, "100.00"), ("C", 3, "15.99"))
    assert body["id"]
    assert body["status"] == "PENDING"
    assert Decimal(body["total_amount"]) == Decimal("198.97")
    assert [Decimal(it["subtotal"]) for it in body["items"]] == [Decimal("51.00"), Decimal("100.00"),
                                                                  Decimal("47.97")]
    assert body["created_at"] and body["updated_at"]


def test_create_ignores_caller_supplied_status_and_total(client):
    body = _create(client, ("A", 1, "5.00"), status="DELIVERED", total_amount="0.01")
    assert body["status"] == "PENDING"
    assert Decimal(body["total_amount"]) == Decimal("5.00")


def test_empty_order_is_400_empty_order(client):
    resp = client.post(ORDERS_URL, json={"customer_email": "customer@example.com", "items": []})
    assert resp.status_code == 400
    err = resp.json()
    assert err["kind"] == "EmptyOrder"
    assert err["status"] == 400
    assert err["path"] == ORDERS_URL


def test_request_shape_errors_list_fields(client):
    resp = client.post(ORDERS_URL, json=_payload(("", 0, "0.001"), email="not-an-email"))
    assert resp.status_code == 422
    err = resp.json()
    assert err["kind"] == "FieldConstraint"
    fields = {e["field"] for e in err["validation_errors"]}
    assert "customer_email" in fields
    assert {"items.0.product_name", "items.0.quantity", "items.0.unit_price"} <= fields


def test_get_order_and_not_found(client):
    created = _create(client)
    resp = client.get(f"{ORDERS_URL}/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["items"][0]["product_name"] == "Laptop"

    resp = client.get(f"{ORDERS_URL}/missing")
    assert resp.status_code == 404
    assert resp.json()["kind"] == "NotFound"


def test_list_orders_paginates_and_clamps(client):
    ids = [_create(client, email=f"c{i}@example.com")["id"] for i in range(3)]

    resp = client.get(ORDERS_URL, params={"page": 0, "size": 150})
    assert resp.status_code == 200
    page = resp.json()
    assert page["page_number"] == 1
    assert page["page_size"] == 100
    assert page["total_elements"] == 3
    assert page["total_pages"] == 1
    assert [o["id"] for o in page["content"]] == list(reversed(ids))

    resp = client.get(ORDERS_URL, params={"page": -5, "size": 2})
    assert resp.json()["page_number"] == 1
    assert resp.json()["total_pages"] == 2


def test_list_empty_status_page_is_not_an_error(client):
    _create(client)
    client.put(f"{ORDERS_URL}/{_create(client)['id']}/status", params={"status": "PROCESSING"})
    resp = client.get(ORDERS_URL, params={"status": "SHIPPED", "page": 1, "size": 10})
    assert resp.status_code == 200
    assert resp.json() == {"content": [], "page_number": 1, "page_size": 10,
                           "total_elements": 0, "total_pages": 0}


def test_list_with_unknown_status_is_422(client):
    resp = client.get(ORDERS_URL, params={"status": "LOST"})
    assert resp.status_code == 422


def test_cancel_flow(client):
    order_id = _create(client)["id"]
    resp = client.patch(f"{ORDERS_URL}/{order_id}/cancel")
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "CANCELLED"

    resp = client.patch(f"{ORDERS_URL}/{order_id}/cancel")
    assert resp.status_code == 400
    assert resp.json()["kind"] == "CannotCancel"

    assert client.patch(f"{ORDERS_URL}/missing/cancel").status_code == 404


def test_status_scenario_processing_then_cancel_rejected(client):
    order = _create(client, ("MacBook Pro 16", 1, "2499.99"), ("USB-C Cable", 2, "24.99"),
                    email="john.doe@example.com")
    assert Decimal(order["total_amount"]) == Decimal("2549.97")

    resp = client.put(f"{ORDERS_URL}/{order['id']}/status", params={"status": "PROCESSING"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "PROCESSING"

    resp = client.patch(f"{ORDERS_URL}/{order['id']}/cancel")
    assert resp.status_code == 400
    assert resp.json()["kind"] == "CannotCancel"
    assert "PROCESSING" in resp.json()["message"]


def test_invalid_transition_is_400(client):
    order_id = _create(client)["id"]
    resp = client.put(f"{ORDERS_URL}/{order_id}/status", params={"status": "DELIVERED"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidTransition"

    resp = client.put(f"{ORDERS_URL}/{order_id}/status", params={"status": "PENDING"})
    assert resp.status_code == 400

    assert client.put(f"{ORDERS_URL}/missing/status", params={"status": "SHIPPED"}).status_code == 404
    assert client.put(f"{ORDERS_URL}/{order_id}/status", params={"status": "LOST"}).status_code == 422


def test_full_lifecycle_over_http(client):
    order_id = _create(client)["id"]
    for target in ("PROCESSING", "SHIPPED", "DELIVERED"):
        resp = client.put(f"{ORDERS_URL}/{order_id}/status", params={"status": target})
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == target
    assert client.get(f"{ORDERS_URL}/{order_id}").json()["status"] == "DELIVERED"


def test_storage_failure_is_generic_500(client, db, monkeypatch):
    def _broken(*args, **kwargs):
        raise InfrastructureError("disk on fire")

    monkeypatch.setattr(db, "get_record", _broken)
    resp = client.get(f"{ORDERS_URL}/anything")
    assert resp.status_code == 500
    body = resp.json()
    assert body["kind"] == "Infrastructure"
    assert "disk on fire" not in body["message"]


def test_request_id_and_security_headers(client):
    resp = client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"

    generated = client.get("/").headers["X-Request-ID"]
    assert generated and generated != "req-123"


def test_lifespan_respects_disabled_scheduler():
    with TestClient(app) as c:
        assert c.get("/").status_code == 200
        assert app.state.scheduler is None


def test_money_fields_come_back_with_two_decimal_places(client):
    for price in ("1E+1", "10.0"):
        body = _create(client, ("Widget", 1, price))
        assert body["items"][0]["unit_price"] == "10.00"
        assert body["items"][0]["subtotal"] == "10.00"
        assert body["total_amount"] == "10.00"
        fetched = client.get(f"{ORDERS_URL}/{body['id']}").json()
        assert fetched["items"][0]["unit_price"] == "10.00"
        assert fetched["total_amount"] == "10.00"


def test_status_query_values_are_case_insensitive(client):
    order_id = _create(client)["id"]
    resp = client.get(ORDERS_URL, params={"status": "pending"})
    assert resp.status_code == 200
    assert [o["id"] for o in resp.json()["content"]] == [order_id]

    resp = client.put(f"{ORDERS_URL}/{order_id}/status", params={"status": "processing"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "PROCESSING"

    resp = client.get(ORDERS_URL, params={"status": "Processing"})
    assert resp.json()["total_elements"] == 1


def test_unknown_status_query_names_the_field(client):
    resp = client.get(ORDERS_URL, params={"status": "lost"})
    assert resp.status_code == 422
    err = resp.json()
    assert err["kind"] == "FieldConstraint"
    assert err["validation_errors"][0]["field"] == "status"
    assert err["validation_errors"][0]["rejected_value"] == "lost"


def test_api_responses_are_not_cacheable(client):
    api = client.get(ORDERS_URL)
    assert api.headers["Cache-Control"] == "no-store"
    assert api.headers["X-Frame-Options"] == "DENY"
    assert "no-store" not in client.get("/").headers.get("Cache-Control", "")


def test_cors_exposes_request_id_to_allowed_origin(client):
    origin = "http://localhost:3000"
    preflight = client.options(ORDERS_URL, headers={
        "Origin": origin,
        "Access-Control-Request-Method": "PATCH",
        "Access-Control-Request-Headers": "X-Request-ID",
    })
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"] == origin

    resp = client.get(ORDERS_URL, headers={"Origin": origin})
    assert resp.headers["access-control-allow-origin"] == origin
    assert "X-Request-ID" in resp.headers["access-control-expose-headers"]

    rejected = client.options(ORDERS_URL, headers={
        "Origin": origin, "Access-Control-Request-Method": "DELETE"})
    assert rejected.status_code == 400
