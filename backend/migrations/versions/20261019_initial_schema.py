"""Initial ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None

NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "entities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("role IN ('admin', 'user')", name="ck_users_role"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_email", ["email"], unique=True)
        batch_op.create_index("ix_users_entity_id", ["entity_id"], unique=False)

    op.create_table(
        "creditors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("method_type", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint(
            "method IN ('Soil Carbon', 'Vegetation', 'Landfill Gas')", name="ck_projects_method"
        ),
        sa.CheckConstraint(
            "method_type IN ('Sequestering', 'Avoidance')", name="ck_projects_method_type"
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "accu_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_number", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("acquisition_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("classification", sa.String(16), nullable=False),
        sa.Column("acquisition_date", sa.Date(), nullable=False),
        sa.Column("issuance_date", sa.Date(), nullable=True),
        sa.Column("vintage", sa.String(4), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("serial_range_start", sa.String(32), nullable=True),
        sa.Column("serial_range_end", sa.String(32), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_accu_batches_quantity_positive"),
        sa.CheckConstraint(
            "classification IN ('inventory', 'intangible', 'fvtpl')", name="ck_accu_batches_classification"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'impaired', 'reclassified', 'on_loan')", name="ck_accu_batches_status"
        ),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("accu_batches", schema=None) as batch_op:
        batch_op.create_index("ix_accu_batches_batch_number", ["batch_number"], unique=True)
        batch_op.create_index("ix_accu_batches_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_accu_batches_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_accu_batches_project_id", ["project_id"], unique=False)
        batch_op.create_index("ix_accu_batches_status", ["status"], unique=False)
        batch_op.create_index("ix_accu_batches_entity_status", ["entity_id", "status"], unique=False)
        batch_op.create_index(
            "ix_accu_batches_entity_classification", ["entity_id", "classification"], unique=False
        )

    op.create_table(
        "valuation_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("valuation_date", sa.Date(), nullable=False),
        sa.Column("carrying_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("net_realizable_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("impairment_amount", sa.Numeric(16, 2), nullable=False),
        sa.Column("source", sa.String(128), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["accu_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("valuation_logs", schema=None) as batch_op:
        batch_op.create_index("ix_valuation_logs_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_valuation_logs_batch_date", ["batch_id", "valuation_date"], unique=False)

    op.create_table(
        "batch_number_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(6), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "loans",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("creditor_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("loan_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("buyback_rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("buyback_date", sa.Date(), nullable=False),
        sa.Column("collateral_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("repaid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("defaulted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_loans_quantity_positive"),
        sa.CheckConstraint("status IN ('active', 'repaid', 'defaulted')", name="ck_loans_status"),
        sa.ForeignKeyConstraint(["batch_id"], ["accu_batches.id"]),
        sa.ForeignKeyConstraint(["creditor_id"], ["creditors.id"]),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loans", schema=None) as batch_op:
        batch_op.create_index("ix_loans_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_loans_creditor_id", ["creditor_id"], unique=False)
        batch_op.create_index("ix_loans_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_loans_status", ["status"], unique=False)
        batch_op.create_index("ix_loans_batch_status", ["batch_id", "status"], unique=False)
        batch_op.create_index("ix_loans_entity_status", ["entity_id", "status"], unique=False)

    op.create_table(
        "reclassification_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("from_class", sa.String(16), nullable=False),
        sa.Column("to_class", sa.String(16), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("submitted_by", sa.Integer(), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("decided_by", sa.Integer(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint(
            "from_class IN ('inventory', 'intangible', 'fvtpl')", name="ck_reclass_from_class"
        ),
        sa.CheckConstraint("to_class IN ('inventory', 'intangible', 'fvtpl')", name="ck_reclass_to_class"),
        sa.CheckConstraint("from_class <> to_class", name="ck_reclass_classes_differ"),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_reclass_status"),
        sa.ForeignKeyConstraint(["batch_id"], ["accu_batches.id"]),
        sa.ForeignKeyConstraint(["submitted_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["decided_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reclassification_requests", schema=None) as batch_op:
        batch_op.create_index("ix_reclassification_requests_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_reclassification_requests_status", ["status"], unique=False)
        batch_op.create_index("ix_reclassification_requests_submitted_by", ["submitted_by"], unique=False)
        batch_op.create_index("ix_reclassification_requests_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_reclass_batch_status", ["batch_id", "status"], unique=False)
        batch_op.create_index("ix_reclass_entity_status", ["entity_id", "status"], unique=False)

    op.create_table(
        "market_prices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("commodity_type", sa.String(32), nullable=False),
        sa.Column("source", sa.String(128), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("price > 0", name="ck_market_prices_price_positive"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("market_prices", schema=None) as batch_op:
        batch_op.create_index("ix_market_prices_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_market_prices_commodity_date", ["commodity_type", "date"], unique=False)
        batch_op.create_index("ix_market_prices_entity_date", ["entity_id", "date"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("subject_type", sa.String(32), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_ledger_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_ledger_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_ledger_events_subject", ["subject_type", "subject_id"], unique=False)
        batch_op.create_index("ix_ledger_events_entity_occurred", ["entity_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("ledger_events")
    op.drop_table("market_prices")
    op.drop_table("reclassification_requests")
    op.drop_table("loans")
    op.drop_table("batch_number_sequences")
    op.drop_table("valuation_logs")
    op.drop_table("accu_batches")
    op.drop_table("projects")
    op.drop_table("creditors")
    op.drop_table("users")
    op.drop_table("entities")
