from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import NullPool

from item_ledger.api.dependencies import get_categorization_service, get_db_session, get_oracle_client
from item_ledger.api.main import app
from item_ledger.core.database import Base, build_engine, build_sessionmaker
from item_ledger.core.errors import RequestTimeoutError, ServiceUnavailableError

HEADERS = {"X-User-Id": "user_a"}


@pytest.fixture
def api(tmp_path, fake_oracle):
    # NullPool: the TestClient runs requests on its own event loop
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    Session = build_sessionmaker(engine)

    async def _db():
        async with Session() as session:
            yield session

    oracle = fake_oracle()
    app.dependency_overrides[get_db_session] = _db
    app.dependency_overrides[get_oracle_client] = lambda: oracle
    client = TestClient(app, raise_server_exceptions=False)
    client.oracle = oracle
    yield client
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


def _post_receipt(api, *names):
    payload = {
        "merchant_name": "Corner Shop",
        "items": [{"name": n, "quantity": "1", "unit_price": "2.50"} for n in names],
    }
    resp = api.post("/receipts", json=payload, headers=HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(api):
    resp = api.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_user_scope_is_required(api):
    assert api.get("/categories").status_code == 401


def test_dev_bypass_supplies_a_user_scope(api, monkeypatch):
    from item_ledger.core.config import settings

    monkeypatch.setattr(settings, "DEV_AUTH_BYPASS", True)
    assert api.get("/categories").status_code == 200


def test_ingest_and_categorize_flow(api):
    created = api.post("/categories", json={"name": "Groceries", "icon": "cart"}, headers=HEADERS)
    assert created.status_code == 201
    groceries = created.json()

    dup = api.post("/categories", json={"name": "groceries"}, headers=HEADERS)
    assert dup.status_code == 409
    assert dup.json()["error"] == "conflict"

    receipt = _post_receipt(api, "Milk", "milk", "Bread")
    assert [i["link_state"] for i in receipt["items"]] == ["linked_uncategorized"] * 3
    assert receipt["items"][0]["total_price"] in ("2.50", 2.5)

    names = api.get("/item-names", headers=HEADERS).json()
    assert sorted(n["name"] for n in names) == ["Bread", "Milk"]

    resp = api.put("/item-names/categorize", json={"item_name": "MILK", "category_id": groceries["id"]}, headers=HEADERS)
    assert resp.status_code == 200, resp.text
    assert resp.json()["category_name"] == "Groceries"

    fetched = api.get(f"/receipts/{receipt['id']}", headers=HEADERS).json()
    assert [i["category_id"] for i in fetched["items"]] == [groceries["id"], groceries["id"], None]

    by_cat = api.get("/receipts/items/by-category", params={"category_id": groceries["id"]}, headers=HEADERS).json()
    assert [i["name"] for i in by_cat] == ["Milk", "milk"]
    uncategorized = api.get("/item-names/uncategorized", headers=HEADERS).json()
    assert [n["name"] for n in uncategorized] == ["Bread"]


def test_categorize_unknown_item_is_404(api):
    cat = api.post("/categories", json={"name": "Misc"}, headers=HEADERS).json()
    resp = api.put("/item-names/categorize", json={"item_name": "Ghost", "category_id": cat["id"]}, headers=HEADERS)
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_bulk_categorize_reports_failures(api):
    cat = api.post("/categories", json={"name": "Groceries"}, headers=HEADERS).json()
    _post_receipt(api, "Milk")
    resp = api.put(
        "/item-names/categorize/bulk",
        json={"items": {"Milk": cat["id"], "Ghost": cat["id"]}},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["updated"] == ["Milk"]
    assert list(body["failed"]) == ["Ghost"]


def test_rule_job_inline_and_queued(api):
    api.post("/categories", json={"name": "Groceries"}, headers=HEADERS)
    _post_receipt(api, "Cheese", "Widget")

    inline = api.post("/item-names/run-categorization-job", headers=HEADERS).json()
    assert inline == {"processed": 2, "updated": 1, "unmatched": 1}

    queued = api.post("/item-names/run-categorization-job", params={"background": "true"}, headers=HEADERS).json()
    assert queued["queued"] is True
    assert queued["message_id"]


def test_reconcile_items_route(api):
    receipt = _post_receipt(api, "Milk", "Bread")
    milk_id = receipt["items"][0]["id"]

    resp = api.put(
        f"/receipts/{receipt['id']}/items",
        json={"mode": "replace", "items": [{"id": milk_id, "name": "Milk", "quantity": "3"}, {"name": "Eggs"}]},
        headers=HEADERS,
    )
    assert resp.status_code == 200, resp.text
    assert {k: resp.json()[k] for k in ("inserted", "updated", "deleted")} == {"inserted": 1, "updated": 1, "deleted": 1}

    items = api.get(f"/receipts/{receipt['id']}", headers=HEADERS).json()["items"]
    assert [i["name"] for i in items] == ["Milk", "Eggs"]

    missing_list = api.put(f"/receipts/{receipt['id']}/items", json={"mode": "replace"}, headers=HEADERS)
    assert missing_list.status_code == 422

    bad_id = api.put(
        f"/receipts/{receipt['id']}/items",
        json={"mode": "replace", "items": [{"id": 424242, "name": "Milk"}]},
        headers=HEADERS,
    )
    assert bad_id.status_code == 400
    assert bad_id.json()["error"] == "bad_input"

    other_user = api.put(f"/receipts/{receipt['id']}/items", json={"mode": "keep"}, headers={"X-User-Id": "user_b"})
    assert other_user.status_code == 404


def test_blank_item_name_is_422(api):
    resp = api.post("/receipts", json={"items": [{"name": "   "}]}, headers=HEADERS)
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


def test_auto_categorize_route(api):
    _post_receipt(api, "Milk")
    api.oracle.response = 'OK: [{"item": "Milk", "category": "Dairy"}]'

    resp = api.post("/categories/auto-categorize", headers=HEADERS)
    assert resp.status_code == 200, resp.text
    assert [c["name"] for c in resp.json()] == ["Dairy"]


@pytest.mark.parametrize(
    "configure, status, error",
    [
        (lambda o: setattr(o, "response", "no idea"), 400, "bad_input"),
        (lambda o: setattr(o, "exc", ServiceUnavailableError("down")), 503, "service_unavailable"),
        (lambda o: setattr(o, "exc", RequestTimeoutError("slow")), 408, "request_timeout"),
    ],
)
def test_auto_categorize_errors(api, configure, status, error):
    _post_receipt(api, "Milk")
    configure(api.oracle)
    resp = api.post("/categories/auto-categorize", headers=HEADERS)
    assert resp.status_code == status
    body = resp.json()
    assert body["error"] == error
    if status == 400:
        assert body["details"]["raw_response"] == "no idea"


def test_unexpected_errors_hide_details_behind_a_correlation_id(api):
    def broken():
        raise RuntimeError("secret connection string")

    app.dependency_overrides[get_categorization_service] = broken
    resp = api.post("/categories/auto-categorize", headers=HEADERS)
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal server error"
    assert len(body["correlation_id"]) == 32
    assert "secret" not in resp.text


def test_category_delete_route_uncategorizes(api):
    cat = api.post("/categories", json={"name": "Dairy"}, headers=HEADERS).json()
    receipt = _post_receipt(api, "Milk")
    api.put("/item-names/categorize", json={"item_name": "Milk", "category_id": cat["id"]}, headers=HEADERS)

    assert api.delete(f"/categories/{cat['id']}", headers=HEADERS).status_code == 204
    items = api.get(f"/receipts/{receipt['id']}", headers=HEADERS).json()["items"]
    assert items[0]["link_state"] == "linked_uncategorized"
    assert api.get(f"/categories/{cat['id']}", headers=HEADERS).status_code == 404


def test_item_name_admin_routes(api):
    receipt = _post_receipt(api, "Milk")
    item_id = receipt["items"][0]["item_name_id"]

    detail = api.get(f"/item-names/{item_id}", headers=HEADERS).json()
    assert detail["name"] == "Milk" and detail["category_name"] is None

    assert api.delete(f"/item-names/{item_id}", headers=HEADERS).status_code == 204
    assert api.get(f"/item-names/{item_id}", headers=HEADERS).status_code == 404
    items = api.get(f"/receipts/{receipt['id']}", headers=HEADERS).json()["items"]
    assert items[0]["link_state"] == "unlinked"
    assert items[0]["name"] == "Milk"


def test_oracle_passthrough(api):
    api.oracle.response = "pong"
    resp = api.post("/oracle/prompt", json={"prompt": "ping"}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"prompt": "ping", "model": "fake-model", "response": "pong"}
    assert api.post("/oracle/prompt", json={"prompt": "  "}, headers=HEADERS).status_code == 422
    assert api.get("/oracle/status").json()["available"] is True
