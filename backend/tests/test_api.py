# Overview: Pytest coverage for the HTTP surface; status codes, error shape, JSON formats.

"""
API Tests

Verifies:
- Error responses use {"error": kind, "message": ...} with the mapped status
- Amounts serialize as decimal strings and dates as YYYY-MM-DD
- The loan, reclassification and market workflows end to end over HTTP
"""

import pytest
from sqlalchemy.exc import OperationalError

from accu.extensions import db
from accu.services import reclassification_service


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystemEndpoints:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "OK"
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_version(self, client, db_session):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert "api_version" in resp.json

    def test_cors_allowed_origin(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_cors_unknown_origin(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


# =============================================================================
# BATCHES
# =============================================================================


class TestBatchEndpoints:

    def test_create_batch(self, client, entity, project):
        resp = client.post("/api/batches", json={
            "quantity": 500,
            "acquisition_cost": "28.10",
            "classification": "inventory",
            "acquisition_date": "2024-02-20",
            "vintage": "2023",
            "serial_range_start": "2001",
            "serial_range_end": "2500",
            "entity_id": entity.id,
            "project_id": project.id,
        })
        assert resp.status_code == 201
        body = resp.json
        assert body["batch_number"] == "ACCU-202402-001"
        assert body["acquisition_cost"] == "28.10"
        assert body["acquisition_date"] == "2024-02-20"
        assert body["status"] == "active"

    def test_status_not_writable(self, client, entity):
        resp = client.post("/api/batches", json={
            "quantity": 10,
            "acquisition_cost": "20.00",
            "classification": "inventory",
            "acquisition_date": "2024-02-20",
            "entity_id": entity.id,
            "status": "impaired",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "ValidationError"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("quantity", 0),
            ("quantity", "12.5"),
            ("acquisition_cost", "-1.00"),
            ("acquisition_cost", "1.001"),
            ("classification", "goodwill"),
            ("acquisition_date", "2999-01-01"),
            ("acquisition_date", "not-a-date"),
            ("vintage", "23"),
        ],
    )
    def test_create_batch_validation(self, client, entity, field, value):
        payload = {
            "quantity": 10,
            "acquisition_cost": "20.00",
            "classification": "inventory",
            "acquisition_date": "2024-02-20",
            "entity_id": entity.id,
        }
        payload[field] = value
        resp = client.post("/api/batches", json=payload)
        assert resp.status_code == 400, f"{field}={value!r} returned {resp.status_code}"
        assert resp.json["error"] == "ValidationError"

    def test_non_ascii_digit_serial_rejected(self, client, entity):
        resp = client.post("/api/batches", json={
            "quantity": 1,
            "acquisition_cost": "20.00",
            "classification": "inventory",
            "acquisition_date": "2024-02-20",
            "serial_range_start": "\u00b2",
            "serial_range_end": "2",
            "entity_id": entity.id,
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "ValidationError"

    def test_missing_fields(self, client, entity):
        resp = client.post("/api/batches", json={"quantity": 10})
        assert resp.status_code == 400
        assert "Missing required fields" in resp.json["message"]

    def test_get_unknown_batch(self, client, db_session):
        resp = client.get("/api/batches/99999")
        assert resp.status_code == 404
        assert resp.json == {"error": "NotFound", "message": "Batch 99999 not found"}

    def test_list_invalid_filter(self, client, db_session):
        resp = client.get("/api/batches?status=sold")
        assert resp.status_code == 400

    def test_update_and_availability(self, client, batch):
        resp = client.put(f"/api/batches/{batch.id}", json={"location": "NSW"})
        assert resp.status_code == 200
        assert resp.json["location"] == "NSW"

        resp = client.get(f"/api/batches/{batch.id}/availability")
        assert resp.json == {
            "batch_id": batch.id,
            "quantity": 1000,
            "pledged_quantity": 0,
            "available_quantity": 1000,
            "status": "active",
        }

    def test_record_valuation(self, client, batch):
        resp = client.post(f"/api/batches/{batch.id}/valuations", json={
            "net_realizable_value": "22.00",
            "valuation_date": "2024-06-30",
            "source": "Year-end NRV review",
        })
        assert resp.status_code == 201
        assert resp.json["valuation"]["impairment_amount"] == "3000.00"
        assert resp.json["batch"]["status"] == "impaired"

        resp = client.get(f"/api/batches/{batch.id}/valuations")
        assert resp.json["count"] == 1

    def test_delete_batch(self, client, batch):
        resp = client.delete(f"/api/batches/{batch.id}")
        assert resp.status_code == 200
        assert client.get(f"/api/batches/{batch.id}").status_code == 404


# =============================================================================
# LOANS
# =============================================================================


class TestLoanEndpoints:

    def _loan(self, batch, creditor, quantity, **extra):
        payload = {
            "batch_id": batch.id,
            "creditor_id": creditor.id,
            "quantity": quantity,
            "loan_amount": "15000.00",
            "buyback_rate": "6.25",
            "buyback_date": "2025-03-31",
        }
        payload.update(extra)
        return payload

    def test_collateral_scenario(self, client, batch, creditor):
        first = client.post("/api/loans", json=self._loan(batch, creditor, 600))
        assert first.status_code == 201
        assert first.json["status"] == "active"
        assert client.get(f"/api/batches/{batch.id}").json["status"] == "on_loan"

        over = client.post("/api/loans", json=self._loan(batch, creditor, 500))
        assert over.status_code == 409
        assert over.json["error"] == "InsufficientCollateral"

        repaid = client.post(f"/api/loans/{first.json['id']}/repay")
        assert repaid.status_code == 200
        assert repaid.json["loan"]["status"] == "repaid"
        assert repaid.json["batch"]["status"] == "active"

        second = client.post("/api/loans", json=self._loan(batch, creditor, 500))
        assert second.status_code == 201

    def test_repay_closed_loan(self, client, batch, creditor):
        loan = client.post("/api/loans", json=self._loan(batch, creditor, 100)).json
        client.post(f"/api/loans/{loan['id']}/default")

        resp = client.post(f"/api/loans/{loan['id']}/repay")
        assert resp.status_code == 409
        assert resp.json["error"] == "InvalidStateTransition"

    def test_buyback_rate_bounds(self, client, batch, creditor):
        resp = client.post("/api/loans", json=self._loan(batch, creditor, 100, buyback_rate="100.5"))
        assert resp.status_code == 400

    def test_overdue(self, client, batch, creditor):
        client.post("/api/loans", json=self._loan(batch, creditor, 100, buyback_date="2024-03-01"))
        client.post("/api/loans", json=self._loan(batch, creditor, 100, buyback_date="2024-09-01"))

        resp = client.get("/api/loans/overdue?as_of=2024-06-01")
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["buyback_date"] == "2024-03-01"

        assert client.get("/api/loans/overdue?as_of=June").status_code == 400

    def test_delete_active_loan(self, client, batch, creditor):
        loan = client.post("/api/loans", json=self._loan(batch, creditor, 100)).json
        resp = client.delete(f"/api/loans/{loan['id']}")
        assert resp.status_code == 409
        assert resp.json["error"] == "ConflictError"

    def test_batch_delete_blocked_by_loan(self, client, batch, creditor):
        client.post("/api/loans", json=self._loan(batch, creditor, 100))
        resp = client.delete(f"/api/batches/{batch.id}")
        assert resp.status_code == 409

    def test_commit_failure_reruns_whole_request(self, client, batch, creditor, monkeypatch):
        real_commit = db.session.commit
        failures = []

        def commit_locked_once():
            if not failures:
                failures.append("database is locked")
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            real_commit()

        monkeypatch.setattr(db.session, "commit", commit_locked_once)
        resp = client.post("/api/loans", json=self._loan(batch, creditor, 100))
        monkeypatch.undo()

        assert failures == ["database is locked"]
        assert resp.status_code == 201
        assert client.get(f"/api/loans/{resp.json['id']}").status_code == 200
        assert client.get(f"/api/batches/{batch.id}/availability").json["pledged_quantity"] == 100

    def test_commit_that_keeps_failing_is_not_reported_as_success(self, client, batch, creditor, monkeypatch):
        def commit_locked(*args, **kwargs):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db.session, "commit", commit_locked)
        resp = client.post("/api/loans", json=self._loan(batch, creditor, 100))
        monkeypatch.undo()

        assert resp.status_code == 500
        assert resp.json["error"] == "InternalError"
        assert client.get("/api/loans").json["count"] == 0
        assert client.get(f"/api/batches/{batch.id}").json["status"] == "active"


# =============================================================================
# RECLASSIFICATION
# =============================================================================


class TestReclassificationEndpoints:

    def test_submit_and_approve(self, client, batch, user, admin):
        resp = client.post("/api/reclassifications", json={
            "batch_id": batch.id,
            "from_class": "inventory",
            "to_class": "fvtpl",
            "reason": "Held for trading",
            "submitted_by": user.id,
        })
        assert resp.status_code == 201
        request_id = resp.json["id"]
        assert resp.json["status"] == "pending"

        resp = client.post(f"/api/reclassifications/{request_id}/approve", json={
            "decided_by": admin.id, "decision_note": "Approved at close",
        })
        assert resp.status_code == 200
        assert resp.json["request"]["status"] == "approved"
        assert resp.json["batch"]["classification"] == "fvtpl"
        assert resp.json["batch"]["status"] == "reclassified"

        resp = client.post(f"/api/reclassifications/{request_id}/reject")
        assert resp.status_code == 409
        assert resp.json["error"] == "InvalidStateTransition"

    def test_failed_approval_changes_nothing(self, client, batch, admin, monkeypatch):
        request_id = client.post("/api/reclassifications", json={
            "batch_id": batch.id, "from_class": "inventory", "to_class": "fvtpl", "reason": "Held for trading",
        }).json["id"]

        def ledger_down(**kwargs):
            raise RuntimeError("ledger write failed")

        monkeypatch.setattr(reclassification_service, "append_ledger_event", ledger_down)
        resp = client.post(f"/api/reclassifications/{request_id}/approve", json={"decided_by": admin.id})
        monkeypatch.undo()

        assert resp.status_code == 500
        batch_json = client.get(f"/api/batches/{batch.id}").json
        assert batch_json["classification"] == "inventory"
        assert batch_json["status"] == "active"
        request_json = client.get(f"/api/reclassifications/{request_id}").json
        assert request_json["status"] == "pending"
        assert request_json["decided_by"] is None

    def test_mismatched_from_class(self, client, batch):
        resp = client.post("/api/reclassifications", json={
            "batch_id": batch.id, "from_class": "intangible", "to_class": "fvtpl", "reason": "x",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "ClassificationMismatch"

    def test_same_class_rejected(self, client, batch):
        resp = client.post("/api/reclassifications", json={
            "batch_id": batch.id, "from_class": "inventory", "to_class": "inventory", "reason": "x",
        })
        assert resp.status_code == 400

    def test_classification_edit_while_pending(self, client, batch):
        client.post("/api/reclassifications", json={
            "batch_id": batch.id, "from_class": "inventory", "to_class": "fvtpl", "reason": "x",
        })
        resp = client.put(f"/api/batches/{batch.id}", json={"classification": "intangible"})
        assert resp.status_code == 409


# =============================================================================
# MARKET DATA, DASHBOARD, LEDGER, REGISTRY
# =============================================================================


class TestMarketEndpoints:

    def test_record_and_latest(self, client, db_session):
        resp = client.post("/api/marketdata", json={"price": "34.75", "date": "2024-05-01", "source": "Jarden"})
        assert resp.status_code == 201
        assert resp.json["price"] == "34.75"
        assert resp.json["commodity_type"] == "ACCU"

        resp = client.get("/api/marketdata/latest")
        assert resp.status_code == 200
        assert resp.json["date"] == "2024-05-01"

    def test_recorded_price_reads_back_by_id(self, client, db_session):
        created = client.post("/api/marketdata", json={
            "price": "34.70", "date": "2024-05-02", "source": "CORE Markets",
        }).json

        resp = client.get(f"/api/marketdata/{created['id']}")
        assert resp.status_code == 200
        assert resp.json["price"] == "34.70"
        assert resp.json["date"] == "2024-05-02"
        assert resp.json["source"] == "CORE Markets"

        assert client.get("/api/marketdata/99999").status_code == 404

    def test_latest_without_prices(self, client, db_session):
        assert client.get("/api/marketdata/latest").status_code == 404

    @pytest.mark.parametrize("price", ["0", "-3.00", "abc"])
    def test_invalid_price(self, client, db_session, price):
        resp = client.post("/api/marketdata", json={"price": price, "date": "2024-05-01", "source": "Jarden"})
        assert resp.status_code == 400

    def test_date_range_validation(self, client, db_session):
        resp = client.get("/api/marketdata?start_date=2024-06-01&end_date=2024-05-01")
        assert resp.status_code == 400
        assert client.get("/api/marketdata?start_date=yesterday").status_code == 400

    def test_no_update_or_delete(self, client, db_session):
        price = client.post("/api/marketdata", json={"price": "30.00", "date": "2024-05-01", "source": "Jarden"}).json
        assert client.put(f"/api/marketdata/{price['id']}", json={"price": "31.00"}).status_code == 405
        assert client.delete(f"/api/marketdata/{price['id']}").status_code == 405


class TestDashboardAndLedger:

    def test_dashboard_summary(self, client, batch, entity):
        resp = client.get(f"/api/dashboard/summary?entity_id={entity.id}")
        assert resp.status_code == 200
        assert resp.json["total_quantity"] == 1000
        assert resp.json["cost_basis"] == "25000.00"

    def test_ledger_records_workflow(self, client, batch, creditor):
        client.post("/api/loans", json={
            "batch_id": batch.id, "creditor_id": creditor.id, "quantity": 10,
            "loan_amount": "100.00", "buyback_date": "2025-01-01",
        })
        resp = client.get("/api/ledger?subject_type=loan")
        assert resp.status_code == 200
        assert [e["event_type"] for e in resp.json["items"]] == ["loan.created"]


class TestRegistryEndpoints:

    def test_entity_crud(self, client, db_session):
        created = client.post("/api/entities", json={"name": "Delta Carbon"})
        assert created.status_code == 201
        entity_id = created.json["id"]

        assert client.put(f"/api/entities/{entity_id}", json={"name": "Delta Carbon Ltd"}).json["name"] == "Delta Carbon Ltd"
        assert client.get("/api/entities").json["count"] == 1
        assert client.delete(f"/api/entities/{entity_id}").status_code == 200

    def test_blank_name_rejected(self, client, db_session):
        assert client.post("/api/entities", json={"name": "  "}).status_code == 400

    def test_user_email_normalized_and_unique(self, client, entity):
        resp = client.post("/api/users", json={"email": "Trader@Acme.Example", "entity_id": entity.id})
        assert resp.status_code == 201
        assert resp.json["email"] == "trader@acme.example"

        dup = client.post("/api/users", json={"email": "trader@acme.example"})
        assert dup.status_code == 409

    def test_invalid_role(self, client, db_session):
        assert client.post("/api/users", json={"email": "a@b.example", "role": "root"}).status_code == 400

    def test_project_method_validated(self, client, db_session):
        resp = client.post("/api/projects", json={
            "name": "Wind farm", "method": "Wind", "method_type": "Avoidance",
        })
        assert resp.status_code == 400

    def test_delete_referenced_entity(self, client, batch, entity):
        resp = client.delete(f"/api/entities/{entity.id}")
        assert resp.status_code == 409
        assert resp.json["error"] == "ConflictError"
