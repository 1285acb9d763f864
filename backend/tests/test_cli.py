# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import date
from decimal import Decimal

from accu.models import Entity
from accu.services import loan_service


class TestCli:

    def test_entities_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["entities", "create", "--name", "Omega Carbon"])
        assert result.exit_code == 0
        assert "PASS Created entity: Omega Carbon" in result.output
        assert db_session.query(Entity).filter_by(name="Omega Carbon").count() == 1

        result = runner.invoke(args=["entities", "list"])
        assert "Omega Carbon" in result.output

    def test_batches_list(self, app, batch):
        result = app.test_cli_runner().invoke(args=["batches", "list", "--entity-id", str(batch.entity_id)])
        assert result.exit_code == 0
        assert batch.batch_number in result.output

    def test_loans_overdue(self, app, db_session, loan_patch):
        loan_service.create_loan(patch=loan_patch(
            quantity=50, loan_amount=Decimal("900.00"), buyback_date=date(2024, 3, 1),
        ))
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["loans", "overdue", "--as-of", "2024-06-01"])
        assert result.exit_code == 0
        assert "900.00" in result.output

        result = runner.invoke(args=["loans", "overdue", "--as-of", "2024-01-01"])
        assert "No overdue loans." in result.output

    def test_reset_db_requires_confirmation(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")
        assert result.exit_code != 0
