"""
HTTP tests for the route registrar: routing, authorization, error mapping
and serialization, via FastAPI's TestClient
"""

import pytest
from fastapi.testclient import TestClient

from auth import AllowAllAuthorizer, User
from errors import StoreError
from server import create_app
from tests.sample_data import BORROWER_ROW, ITEM_ROW, checkout_row

LIBRARIAN = User(id="1", permissions=["borrowers:*", "items:*", "checkouts:*", "history:*"])


@pytest.fixture
def make_client(fake_db, server_config):
    def build(user=LIBRARIAN, authorizer=None):
        app = create_app(server_config, db=fake_db, authorizer=authorizer, user_provider=lambda request: user)
        return TestClient(app)
    return build


@pytest.fixture
def client(make_client):
    return make_client()


class TestAuthorization:

    @pytest.mark.parametrize("user,code", [
        (None, "NO_USER"),
        (User(id="1"), "NO_PERMISSIONS"),
        (User(id="1", permissions=["items:read"]), "NOT_AUTHORIZED"),
    ])
    def test_denied(self, make_client, fake_db, user, code):
        response = make_client(user).get("/api/borrowers")
        assert response.status_code == 401
        assert response.json()["code"] == code
        assert fake_db.calls == []

    def test_custom_operation_has_its_own_action(self, make_client, fake_db):
        reader = User(id="1", permissions=["items:read"])
        response = make_client(reader).post("/api/items/10001/checkout", json={"borrowernumber": 1042})
        assert response.status_code == 401

    @pytest.mark.parametrize("path,fragment,row", [
        ("/api/history/5/payFee", "UPDATE history", checkout_row(id=5, returndate="2026-09-10")),
        ("/api/checkouts/10001/payFee", "UPDATE checkouts", checkout_row()),
    ])
    def test_pay_fee_is_guarded_by_fees_update(self, make_client, fake_db, path, fragment, row):
        fake_db.on(fragment, row, "fetchrow")
        cashier = User(id="7", permissions=["fees:update"])

        assert make_client(cashier).post(path).status_code == 200
        assert make_client(User(id="7", permissions=["history:*", "checkouts:*"])).post(path).status_code == 401

    def test_allow_all(self, make_client, fake_db):
        fake_db.on("FROM items", [ITEM_ROW], "fetch")
        response = make_client(User(id="1", permissions=[]), AllowAllAuthorizer()).get("/api/items")
        assert response.status_code == 200


class TestRoutes:

    def test_fields_route_is_not_a_key(self, client, fake_db):
        response = client.get("/api/items/fields")
        assert response.status_code == 200
        assert [f["name"] for f in response.json()][:2] == ["barcode", "title"]
        assert fake_db.calls == []

    def test_get_with_flags(self, client, fake_db):
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        fake_db.on("FROM checkouts c", [checkout_row(title="Der Grüffelo")], "fetch")

        response = client.get("/api/borrowers/1042?options=items,orders")

        body = response.json()
        assert response.status_code == 200
        assert body["items"][0]["title"] == "Der Grüffelo"
        assert body["items"][0]["date_due"] == "2026-09-22"
        assert "fees" not in body and "history" not in body

    def test_not_found(self, client):
        response = client.get("/api/borrowers/999")
        assert response.status_code == 404
        assert response.json() == {
            "error": True, "code": "ENTITY_NOT_FOUND",
            "message": "borrowers 999 not found", "entity": "borrowers", "key": "999",
        }

    def test_invalid_key(self, client):
        response = client.get("/api/borrowers/abc")
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_KEY"

    def test_list_with_count(self, client, fake_db):
        fake_db.on("COUNT(*)", 12, "fetchval")
        fake_db.on("FROM items", [ITEM_ROW], "fetch")

        response = client.get("/api/items?title=Raupe&colour=red&limit=5&returnCount=true")

        assert response.json() == {"rows": [ITEM_ROW], "count": 12}
        _, sql, params = next(c for c in fake_db.calls if c[0] == "fetch")
        assert params == ["%Raupe%", 5, 0]

    def test_repeated_filter_becomes_membership(self, client, fake_db):
        client.get("/api/items?state=LOST&state=STORED&op=or")
        _, sql, params = fake_db.calls[0]
        assert "state IN ($1, $2)" in sql
        assert params[:2] == ["LOST", "STORED"]

    def test_order_by_unknown_field(self, client):
        response = client.get("/api/items?_order=colour")
        assert response.status_code == 400
        assert response.json()["code"] == "UNKNOWN_FIELD"

    def test_create_validation_error(self, client, fake_db):
        response = client.post("/api/items", json={"year": "soon"})
        body = response.json()
        assert response.status_code == 400
        assert body["code"] == "VALIDATION_ERROR"
        assert {e["field"] for e in body["errors"]} == {"barcode", "year"}

    def test_invalid_json_body(self, client):
        response = client.post("/api/items", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_update(self, client, fake_db):
        fake_db.on("UPDATE items", dict(ITEM_ROW, title="Neu"), "fetchrow")
        response = client.put("/api/items", json={"barcode": "10001", "title": "Neu"})
        assert response.status_code == 200
        assert response.json()["title"] == "Neu"

    def test_delete_returns_empty_body(self, client, fake_db):
        fake_db.on("UPDATE borrowers", dict(BORROWER_ROW, state="INACTIVE"), "fetchrow")
        response = client.delete("/api/borrowers/1042")
        assert response.status_code == 200
        assert response.content == b""

    def test_custom_operation(self, client, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        fake_db.on("INSERT INTO checkouts", checkout_row(), "fetchrow")

        response = client.post("/api/items/10001/checkout", json={"borrowernumber": 1042})

        assert response.status_code == 200
        assert response.json()["checkout"]["borrowernumber"] == 1042

    def test_unknown_custom_operation(self, client):
        assert client.post("/api/items/10001/lend", json={}).status_code in (404, 405)

    def test_borrower_history_route(self, client, fake_db):
        fake_db.on("COUNT(*)", 1, "fetchval")
        fake_db.on("FROM history c", [checkout_row(id=4, returndate="2026-09-10")], "fetch")

        response = client.get("/api/borrowers/1042/history?returnCount=true&limit=10")

        assert response.json()["count"] == 1
        assert response.json()["rows"][0]["returndate"] == "2026-09-10"

    def test_borrower_history_ordered_by_item_title(self, client, fake_db):
        fake_db.on("COUNT(*)", 1, "fetchval")
        fake_db.on("FROM history c", [checkout_row(id=4, returndate="2026-09-10")], "fetch")

        response = client.get("/api/borrowers/1042/history?_order=title&returnCount=true")

        assert response.status_code == 200
        _, sql, _ = next(c for c in fake_db.calls if c[0] == "fetch")
        assert "ORDER BY j.title ASC, c.id ASC" in sql

    def test_me(self, make_client, fake_db):
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        user = User(id="1042", permissions=["profile:read"])

        body = make_client(user).get("/api/me").json()

        assert body["borrowernumber"] == 1042
        assert body["items"] == []
        assert body["fees"] == {"total": 0, "items": [], "history": []}

    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"status": "healthy", "database": "connected"}


class TestErrorMapping:

    def test_store_error(self, client, fake_db):
        def fail(params):
            raise StoreError("Constraint violation (items_barcode_key): An item with this barcode already exists.")
        fake_db.on("INSERT INTO items", fail)

        response = client.post("/api/items", json={"barcode": "10001"})

        assert response.status_code == 500
        assert response.json()["code"] == "STORE_ERROR"
        assert "already exists" in response.json()["message"]

    def test_unexpected_error(self, client, fake_db):
        def boom(params):
            raise RuntimeError("pool closed")
        fake_db.on("FROM items", boom)

        response = client.get("/api/items")

        assert response.status_code == 500
        assert response.json() == {"error": True, "code": "INTERNAL_ERROR", "message": "pool closed"}
