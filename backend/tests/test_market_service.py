# Overview: Pytest coverage for the market price ledger and portfolio summary.

from datetime import date
from decimal import Decimal

import pytest
from accu.services import batch_service, loan_service, market_service, reporting_service
from accu.services import reclassification_service
from accu.validation import NotFoundError, ValidationError


def _record(price, on, source="Jarden", **extra):
    patch = {"price": Decimal(price), "date": on, "source": source}
    patch.update(extra)
    return market_service.record_price(patch=patch)


class TestMarketPrices:

    def test_record_defaults_commodity_type(self, db_session):
        price = _record("34.50", date(2024, 5, 1))
        db_session.commit()

        assert price.commodity_type == "ACCU"
        assert market_service.get_price(price.id).price == Decimal("34.50")

    def test_list_newest_first(self, db_session):
        _record("33.00", date(2024, 4, 1))
        _record("35.10", date(2024, 6, 1))
        _record("34.00", date(2024, 5, 1))
        db_session.commit()

        items = market_service.list_prices()["items"]
        assert [i["date"] for i in items] == ["2024-06-01", "2024-05-01", "2024-04-01"]

    def test_date_filters_inclusive(self, db_session):
        _record("33.00", date(2024, 4, 1))
        _record("34.00", date(2024, 5, 1))
        _record("35.10", date(2024, 6, 1))
        db_session.commit()

        result = market_service.list_prices(start_date=date(2024, 5, 1), end_date=date(2024, 6, 1))
        assert result["count"] == 2

    def test_inverted_date_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            market_service.list_prices(start_date=date(2024, 6, 1), end_date=date(2024, 5, 1))

    def test_latest_by_date_then_insertion(self, db_session):
        _record("35.10", date(2024, 6, 1), source="Broker A")
        later_insert = _record("35.40", date(2024, 6, 1), source="Broker B")
        _record("33.00", date(2024, 4, 1))
        _record("12.00", date(2024, 7, 1), commodity_type="LGC")
        db_session.commit()

        assert market_service.latest_price().id == later_insert.id
        assert market_service.latest_price(commodity_type="LGC").price == Decimal("12.00")

    def test_latest_none_when_empty(self, db_session):
        assert market_service.latest_price() is None

    def test_unknown_price(self, db_session):
        with pytest.raises(NotFoundError):
            market_service.get_price(99999)


class TestPortfolioSummary:

    def test_summary_totals(self, db_session, batch, entity, loan_patch):
        loan_service.create_loan(patch=loan_patch(quantity=400, loan_amount=Decimal("8000.00")))
        reclassification_service.submit_request(patch={
            "batch_id": batch.id, "from_class": "inventory", "to_class": "fvtpl", "reason": "Trading",
        })
        batch_service.create_batch(patch={
            "quantity": 200,
            "acquisition_cost": Decimal("30.00"),
            "classification": "intangible",
            "acquisition_date": date(2024, 2, 1),
            "entity_id": entity.id,
        })
        _record("32.00", date(2024, 6, 1))
        db_session.commit()

        summary = reporting_service.portfolio_summary(entity_id=entity.id)

        assert summary["batch_count"] == 2
        assert summary["total_quantity"] == 1200
        assert summary["cost_basis"] == "31000.00"
        assert summary["by_classification"]["inventory"] == {"batches": 1, "quantity": 1000}
        assert summary["by_classification"]["intangible"] == {"batches": 1, "quantity": 200}
        assert summary["pending_reclassifications"] == 1
        assert summary["active_loans"] == 1
        assert summary["pledged_quantity"] == 400
        assert summary["outstanding_loan_amount"] == "8000.00"
        assert summary["latest_market_price"]["price"] == "32.00"
        assert summary["market_value"] == "38400.00"

    def test_summary_impaired_share(self, db_session, batch, entity):
        batch_service.record_valuation(batch.id, patch={"net_realizable_value": Decimal("20.00")})
        db_session.commit()

        summary = reporting_service.portfolio_summary(entity_id=entity.id)
        assert summary["impaired_quantity"] == 1000
        assert summary["impaired_share_pct"] == 100.0
        assert summary["market_value"] is None

    def test_summary_empty_entity(self, db_session, other_entity):
        summary = reporting_service.portfolio_summary(entity_id=other_entity.id)
        assert summary["batch_count"] == 0
        assert summary["cost_basis"] == "0.00"
        assert summary["impaired_share_pct"] == 0.0
