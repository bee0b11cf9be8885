"""
HTTP-level tests for the gold ledger API.

Each test drives the Flask test client through the JSON endpoints and checks
status codes plus the {"data": ...} / {"error": ...} response shapes.
"""

import pytest


def _create_supplier(client, **overrides):
    payload = {"name": "Yaw Boateng", "phone": "+233240000009", "type": "miner"}
    payload.update(overrides)
    resp = client.post("/api/gold/suppliers", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def test_health(client, db_session):
    resp = client.get("/api/gold/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["checks"]["database"]["status"] == "healthy"


class TestSupplierRoutes:
    def test_create_list_and_get(self, client, db_session):
        created = _create_supplier(client, bank_details={"bank_name": "GCB", "account_number": "001"})
        assert created["bank_details"]["bank_name"] == "GCB"
        assert created["outstanding_balance"] == 0.0

        listed = client.get("/api/gold/suppliers?search=boateng").get_json()
        assert [s["id"] for s in listed["data"]] == [created["id"]]
        assert listed["pagination"]["total"] == 1

        detail = client.get(f"/api/gold/suppliers/{created['id']}").get_json()["data"]
        assert detail["recent_transactions"] == []
        assert detail["advances"] == []

    def test_create_requires_name(self, client, db_session):
        resp = client.post("/api/gold/suppliers", json={"phone": "+233240000010"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"

    def test_duplicate_phone_conflicts(self, client, db_session):
        _create_supplier(client)
        resp = client.post("/api/gold/suppliers", json={"name": "Other", "phone": "+233240000009"})
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "conflict"

    def test_client_cannot_write_balances(self, client, db_session):
        resp = client.post("/api/gold/suppliers", json={"name": "Sneaky", "outstanding_balance": -50})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Field not allowed: outstanding_balance"

    def test_update_and_deactivate(self, client, db_session):
        created = _create_supplier(client)
        resp = client.put(f"/api/gold/suppliers/{created['id']}", json={"trust_level": "vip", "actor": "owner"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["trust_level"] == "vip"

        resp = client.delete(f"/api/gold/suppliers/{created['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["is_active"] is False

        listed = client.get("/api/gold/suppliers").get_json()
        assert listed["data"] == []
        listed = client.get("/api/gold/suppliers?include_inactive=true").get_json()
        assert len(listed["data"]) == 1

    def test_unknown_supplier(self, client, db_session):
        resp = client.get("/api/gold/suppliers/9999")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "not_found"
        assert client.get("/api/gold/suppliers/9999/balance").status_code == 404


class TestTradeFlow:
    def test_advance_then_buy_settles_it(self, client, supplier):
        resp = client.post("/api/gold/advances", json={"supplier_id": supplier.id, "amount": 500})
        assert resp.status_code == 201
        advance = resp.get_json()["data"]
        assert advance["status"] == "pending"
        assert advance["remaining_balance"] == 500.0

        balance = client.get(f"/api/gold/suppliers/{supplier.id}/balance").get_json()["data"]
        assert balance["outstanding_balance"] == 500.0

        resp = client.post("/api/gold/transactions", json={
            "type": "buy",
            "supplier_id": supplier.id,
            "weight_grams": 10,
            "purity": "24K",
            "spot_price_per_oz": 2350,
            "discount_percentage": 5,
            "advance_id": advance["id"],
        })
        assert resp.status_code == 201, resp.get_json()
        tx = resp.get_json()["data"]
        assert tx["advance_deducted"] == 500.0
        assert tx["receipt_number"].startswith("BUY-")
        assert tx["batch_id"].startswith("BATCH-")

        advance = client.get(f"/api/gold/advances/{advance['id']}").get_json()["data"]
        assert advance["status"] == "settled"
        assert advance["remaining_balance"] == 0.0
        assert len(advance["settlement_history"]) == 1

        balance = client.get(f"/api/gold/suppliers/{supplier.id}/balance").get_json()["data"]
        assert balance["outstanding_balance"] == 0.0
        assert balance["total_transactions"] == 1

        inventory = client.get("/api/gold/inventory").get_json()
        assert [b["batch_id"] for b in inventory["data"]] == [tx["batch_id"]]
        assert inventory["summary"]["in_safe"]["total_weight"] == pytest.approx(10)

        fetched = client.get(f"/api/gold/transactions/{tx['id']}").get_json()["data"]
        assert fetched["receipt_number"] == tx["receipt_number"]

        listed = client.get("/api/gold/advances?status=settled").get_json()
        assert [a["id"] for a in listed["data"]] == [advance["id"]]

    def test_sell_cannot_carry_advance(self, client, buyer):
        resp = client.post("/api/gold/transactions", json={
            "type": "sell",
            "supplier_id": buyer.id,
            "weight_grams": 5,
            "spot_price_per_oz": 2400,
            "advance_id": 1,
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"

    def test_rejects_unknown_type_and_derived_fields(self, client, supplier):
        base = {"supplier_id": supplier.id, "weight_grams": 5, "spot_price_per_oz": 2400}

        resp = client.post("/api/gold/transactions", json={**base, "type": "swap"})
        assert resp.status_code == 400

        resp = client.post("/api/gold/transactions", json={**base, "type": "buy", "total_amount": 1})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Field not allowed: total_amount"

    def test_unknown_transaction(self, client, db_session):
        assert client.get("/api/gold/transactions/12345").status_code == 404

    def test_list_transactions_filters(self, client, supplier, buyer):
        client.post("/api/gold/transactions", json={
            "type": "buy", "supplier_id": supplier.id, "weight_grams": 3, "spot_price_per_oz": 2350,
        })
        client.post("/api/gold/transactions", json={
            "type": "sell", "supplier_id": buyer.id, "weight_grams": 1, "spot_price_per_oz": 2400,
        })

        body = client.get("/api/gold/transactions?type=sell").get_json()
        assert [t["type"] for t in body["data"]] == ["sell"]
        assert body["pagination"]["total"] == 1


class TestInventoryRoutes:
    def test_add_and_move(self, client, db_session):
        resp = client.post("/api/gold/inventory/add", json={
            "purity": "22K",
            "purity_percentage": 0.916,
            "weight_grams": 42.5,
            "avg_cost_per_gram": 60,
            "moved_by": "owner",
        })
        assert resp.status_code == 201
        batch = resp.get_json()["data"]
        assert batch["location"] == "in_safe"
        assert batch["movement_history"][0]["notes"] == "Manual Stock Entry"

        resp = client.post("/api/gold/inventory/move", json={
            "batch_id": batch["batch_id"], "to_location": "at_refinery", "moved_by": "owner",
        })
        assert resp.status_code == 200
        moved = resp.get_json()["data"]
        assert moved["location"] == "at_refinery"
        assert len(moved["movement_history"]) == 2

        resp = client.post("/api/gold/inventory/move", json={
            "batch_id": batch["batch_id"], "to_location": "at_refinery",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "no_op_move"

        resp = client.post("/api/gold/inventory/move", json={
            "batch_id": batch["batch_id"], "to_location": "the_moon",
        })
        assert resp.status_code == 400

        summary = client.get("/api/gold/inventory?location=at_refinery").get_json()["summary"]
        assert summary["at_refinery"]["batch_count"] == 1
        assert summary["in_safe"]["batch_count"] == 0

    def test_unknown_batch(self, client, db_session):
        resp = client.get("/api/gold/inventory/BATCH-NOPE")
        assert resp.status_code == 404
        resp = client.post("/api/gold/inventory/move", json={"batch_id": "BATCH-NOPE", "to_location": "in_transit"})
        assert resp.status_code == 404


class TestPriceRoutes:
    def test_manual_price_and_latest(self, client, db_session):
        assert client.get("/api/gold/price").status_code == 404

        resp = client.post("/api/gold/price", json={"price_per_oz": 2350, "actor": "owner"})
        assert resp.status_code == 201
        assert resp.get_json()["data"]["source"] == "manual"

        latest = client.get("/api/gold/price").get_json()["data"]
        assert latest["price_per_oz"] == 2350
        history = client.get("/api/gold/price/history").get_json()["data"]
        assert len(history) == 1

    def test_manual_price_rejects_bad_value(self, client, db_session):
        resp = client.post("/api/gold/price", json={"price_per_oz": -3})
        assert resp.status_code == 400

    def test_price_at(self, client, db_session):
        client.post("/api/gold/price", json={"price_per_oz": 2300})
        resp = client.get("/api/gold/price?at=2000-01-01T00:00:00Z")
        assert resp.status_code == 404


class TestReportAndSettingsRoutes:
    def test_dashboard_and_reports(self, client, supplier, gold_price):
        client.post("/api/gold/transactions", json={
            "type": "buy", "supplier_id": supplier.id, "weight_grams": 4, "spot_price_per_oz": 2350,
        })

        dashboard = client.get("/api/gold/dashboard").get_json()["data"]
        assert dashboard["today"]["bought"]["count"] == 1

        report = client.get("/api/gold/reports?period=week").get_json()["data"]
        assert report["summary"]["buy"]["count"] == 1

        resp = client.get("/api/gold/reports?period=custom&start_date=2024-02-01&end_date=2024-01-01")
        assert resp.status_code == 400
        assert client.get("/api/gold/reports?period=decade").status_code == 400

    def test_settings_roundtrip(self, client, db_session):
        settings = client.get("/api/gold/settings").get_json()["data"]
        assert settings["default_unit"] == "grams"

        resp = client.put("/api/gold/settings", json={"business_name": "Tarkwa Gold", "actor": "owner"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["business_name"] == "Tarkwa Gold"
        assert resp.get_json()["data"]["last_modified_by"] == "owner"

        assert client.put("/api/gold/settings", json={"default_unit": "stone"}).status_code == 400
        assert client.put("/api/gold/settings", data="nope", content_type="text/plain").status_code == 400

    def test_ledger_lists_events(self, client, supplier):
        client.post("/api/gold/advances", json={"supplier_id": supplier.id, "amount": 100})

        body = client.get(f"/api/gold/ledger?supplier_id={supplier.id}&category=advance").get_json()
        assert [ev["event_type"] for ev in body["data"]] == ["advance.issued"]
        assert body["limit"] == 100
