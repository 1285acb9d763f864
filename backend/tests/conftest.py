"""
Pytest fixtures for the ACCU ledger backend tests.

Provides an in-memory database, a test client, and a small set of
reference rows (entity, user, creditor, project, batch).
"""

from datetime import date
from decimal import Decimal

import pytest
from accu import create_app
from accu.extensions import db
from accu.models import Entity, User, Creditor, Project, AccuBatch, BATCH_STATUS_ACTIVE


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def entity(db_session):
    """Create the holding entity."""
    entity = Entity(name="Acme Carbon Pty Ltd")
    db_session.add(entity)
    db_session.commit()
    return entity


@pytest.fixture(scope='function')
def other_entity(db_session):
    entity = Entity(name="Beta Offsets Pty Ltd")
    db_session.add(entity)
    db_session.commit()
    return entity


@pytest.fixture(scope='function')
def user(db_session, entity):
    user = User(email="analyst@acme.example", role="user", entity_id=entity.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session, entity):
    admin = User(email="controller@acme.example", role="admin", entity_id=entity.id)
    db_session.add(admin)
    db_session.commit()
    return admin


@pytest.fixture(scope='function')
def creditor(db_session):
    creditor = Creditor(name="Southern Cross Bank")
    db_session.add(creditor)
    db_session.commit()
    return creditor


@pytest.fixture(scope='function')
def project(db_session):
    project = Project(name="Riverina Soil Project", method="Soil Carbon", method_type="Sequestering")
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture(scope='function')
def batch(db_session, entity, user, project):
    """1,000 units at 25.00 each, serials 100001-101000."""
    batch = AccuBatch(
        batch_number="ACCU-202401-001",
        quantity=1000,
        acquisition_cost=Decimal("25.00"),
        classification="inventory",
        acquisition_date=date(2024, 1, 15),
        issuance_date=date(2023, 11, 1),
        vintage="2023",
        serial_range_start="100001",
        serial_range_end="101000",
        entity_id=entity.id,
        user_id=user.id,
        project_id=project.id,
        status=BATCH_STATUS_ACTIVE,
    )
    db_session.add(batch)
    db_session.commit()
    return batch


@pytest.fixture(scope='function')
def loan_patch(batch, creditor):
    """Factory for validated-shape payloads for loan_service.create_loan."""
    def _make(**overrides) -> dict:
        patch = {
            "batch_id": batch.id,
            "creditor_id": creditor.id,
            "quantity": 500,
            "loan_amount": Decimal("10000.00"),
            "buyback_rate": Decimal("5.5000"),
            "buyback_date": date(2025, 6, 30),
            "collateral_value": Decimal("12500.00"),
        }
        patch.update(overrides)
        return patch
    return _make
