# Overview: Pytest coverage for batch inventory rules, numbering and valuations.

from datetime import date
from decimal import Decimal

import pytest
from accu.models import (
    AccuBatch,
    ReclassificationRequest,
    ValuationLog,
    BATCH_STATUS_ACTIVE,
    BATCH_STATUS_IMPAIRED,
    BATCH_STATUS_ON_LOAN,
)
from accu.services import batch_service, loan_service, reclassification_service
from accu.validation import (
    ConflictError,
    InsufficientCollateral,
    NotFoundError,
    ValidationError,
)


def _batch_patch(entity, **overrides) -> dict:
    patch = {
        "quantity": 250,
        "acquisition_cost": Decimal("31.20"),
        "classification": "intangible",
        "acquisition_date": date(2024, 3, 5),
        "entity_id": entity.id,
    }
    patch.update(overrides)
    return patch


class TestCreateBatch:

    def test_generated_batch_numbers_are_sequential(self, db_session, entity):
        first = batch_service.create_batch(patch=_batch_patch(entity))
        second = batch_service.create_batch(patch=_batch_patch(entity))
        other_month = batch_service.create_batch(patch=_batch_patch(entity, acquisition_date=date(2024, 4, 1)))
        db_session.commit()

        assert first.batch_number == "ACCU-202403-001"
        assert second.batch_number == "ACCU-202403-002"
        assert other_month.batch_number == "ACCU-202404-001"
        assert first.status == BATCH_STATUS_ACTIVE

    def test_generated_number_skips_manual_number(self, db_session, entity):
        batch_service.create_batch(patch=_batch_patch(entity, batch_number="ACCU-202403-001"))
        generated = batch_service.create_batch(patch=_batch_patch(entity))
        db_session.commit()

        assert generated.batch_number == "ACCU-202403-002"

    def test_duplicate_batch_number_rejected(self, db_session, batch, entity):
        with pytest.raises(ConflictError):
            batch_service.create_batch(patch=_batch_patch(entity, batch_number=batch.batch_number))
        db_session.rollback()

    def test_serial_range_must_match_quantity(self, db_session, entity):
        with pytest.raises(ValidationError):
            batch_service.create_batch(patch=_batch_patch(
                entity, quantity=250, serial_range_start="5001", serial_range_end="5300",
            ))
        db_session.rollback()

        batch = batch_service.create_batch(patch=_batch_patch(
            entity, quantity=250, serial_range_start="5001", serial_range_end="5250",
        ))
        db_session.commit()
        assert batch.id is not None

    def test_unknown_entity(self, db_session):
        with pytest.raises(NotFoundError):
            batch_service.create_batch(patch={
                "quantity": 10,
                "acquisition_cost": Decimal("20.00"),
                "classification": "inventory",
                "acquisition_date": date(2024, 1, 1),
                "entity_id": 99999,
            })
        db_session.rollback()


class TestUpdateBatch:

    def test_cannot_reduce_below_pledged(self, db_session, batch, loan_patch):
        loan_service.create_loan(patch=loan_patch(quantity=600))
        db_session.commit()

        with pytest.raises(InsufficientCollateral):
            batch_service.update_batch(batch.id, patch={
                "quantity": 599, "serial_range_start": None, "serial_range_end": None,
            })
        db_session.rollback()

        batch_service.update_batch(batch.id, patch={
            "quantity": 600, "serial_range_start": "100001", "serial_range_end": "100600",
        })
        db_session.commit()
        assert batch.quantity == 600

    def test_partial_update_checks_merged_serial_range(self, db_session, batch):
        with pytest.raises(ValidationError):
            batch_service.update_batch(batch.id, patch={"quantity": 900})
        db_session.rollback()

    def test_classification_edit_blocked_while_pending(self, db_session, batch):
        reclassification_service.submit_request(patch={
            "batch_id": batch.id,
            "from_class": "inventory",
            "to_class": "fvtpl",
            "reason": "Held for trading",
        })
        db_session.commit()

        with pytest.raises(ConflictError):
            batch_service.update_batch(batch.id, patch={"classification": "intangible"})
        db_session.rollback()

    def test_classification_edit_allowed_without_request(self, db_session, batch):
        batch_service.update_batch(batch.id, patch={"classification": "intangible"})
        db_session.commit()
        assert batch.classification == "intangible"

    def test_unknown_batch(self, db_session):
        with pytest.raises(NotFoundError):
            batch_service.update_batch(99999, patch={"location": "QLD"})
        db_session.rollback()


class TestDeleteBatch:

    def test_delete_referenced_by_loan_rejected(self, db_session, batch, loan_patch):
        loan = loan_service.create_loan(patch=loan_patch())
        loan_service.repay_loan(loan.id)
        db_session.commit()

        with pytest.raises(ConflictError):
            batch_service.delete_batch(batch.id)
        db_session.rollback()

    def test_delete_with_pending_request_rejected(self, db_session, batch):
        reclassification_service.submit_request(patch={
            "batch_id": batch.id, "from_class": "inventory", "to_class": "fvtpl", "reason": "Trading",
        })
        db_session.commit()

        with pytest.raises(ConflictError):
            batch_service.delete_batch(batch.id)
        db_session.rollback()

    def test_delete_removes_history(self, db_session, batch):
        batch_service.record_valuation(batch.id, patch={"net_realizable_value": Decimal("26.00")})
        request = reclassification_service.submit_request(patch={
            "batch_id": batch.id, "from_class": "inventory", "to_class": "fvtpl", "reason": "Trading",
        })
        reclassification_service.reject_request(request.id)
        db_session.commit()

        batch_id = batch.id
        batch_service.delete_batch(batch_id)
        db_session.commit()

        assert db_session.get(AccuBatch, batch_id) is None
        assert db_session.query(ValuationLog).filter_by(batch_id=batch_id).count() == 0
        assert db_session.query(ReclassificationRequest).filter_by(batch_id=batch_id).count() == 0


class TestValuations:

    def test_impairment_marks_batch_impaired(self, db_session, batch):
        valuation = batch_service.record_valuation(batch.id, patch={
            "net_realizable_value": Decimal("21.50"),
            "valuation_date": date(2024, 6, 30),
        })
        db_session.commit()

        assert valuation.carrying_amount == Decimal("25.00")
        assert valuation.impairment_amount == Decimal("3500.00")
        assert batch.status == BATCH_STATUS_IMPAIRED

    def test_recovery_reverses_impairment(self, db_session, batch):
        batch_service.record_valuation(batch.id, patch={
            "net_realizable_value": Decimal("21.50"), "valuation_date": date(2024, 6, 30),
        })
        batch_service.record_valuation(batch.id, patch={
            "net_realizable_value": Decimal("27.00"), "valuation_date": date(2024, 9, 30),
        })
        db_session.commit()

        assert batch.status == BATCH_STATUS_ACTIVE
        assert len(batch_service.list_valuations(batch.id)) == 2

    def test_on_loan_batch_stays_on_loan_until_release(self, db_session, batch, loan_patch):
        loan = loan_service.create_loan(patch=loan_patch())
        batch_service.record_valuation(batch.id, patch={"net_realizable_value": Decimal("20.00")})
        db_session.commit()
        assert batch.status == BATCH_STATUS_ON_LOAN

        loan_service.repay_loan(loan.id)
        db_session.commit()
        assert batch.status == BATCH_STATUS_IMPAIRED


class TestListBatches:

    def test_filters(self, db_session, batch, entity, other_entity):
        batch_service.create_batch(patch=_batch_patch(other_entity))
        batch_service.create_batch(patch=_batch_patch(entity, classification="fvtpl"))
        db_session.commit()

        assert batch_service.list_batches(entity_id=entity.id)["count"] == 2
        assert batch_service.list_batches(entity_id=other_entity.id)["count"] == 1
        assert batch_service.list_batches(classification="fvtpl")["count"] == 1

    def test_pagination(self, db_session, entity):
        for _ in range(5):
            batch_service.create_batch(patch=_batch_patch(entity))
        db_session.commit()

        result = batch_service.list_batches(page=2, per_page=2)
        assert result["count"] == 2
        assert result["pagination"]["total"] == 5

    def test_negative_page_size_clamped_to_one(self, db_session, entity):
        for _ in range(3):
            batch_service.create_batch(patch=_batch_patch(entity))
        db_session.commit()

        result = batch_service.list_batches(page=1, per_page=-5)
        assert result["pagination"]["per_page"] == 1
        assert result["pagination"]["total_pages"] == 3
        assert result["count"] == 1
