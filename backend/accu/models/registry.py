from __future__ import annotations

from ..extensions import db
from accu.time_utils import to_utc_z
from .base import in_clause

# Closed enumerations (mirrored by CHECK constraints below)
USER_ROLES = ("admin", "user")
PROJECT_METHODS = ("Soil Carbon", "Vegetation", "Landfill Gas")
PROJECT_METHOD_TYPES = ("Sequestering", "Avoidance")


class Entity(db.Model):
    """
    Reporting entity (tenant root).

    Every batch, loan, market price observation and reclassification request
    belongs to exactly one entity via entity_id. Entities are never removed
    while anything still references them.
    """
    __tablename__ = "entities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Entity id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Application user. Email is stored lowercase and is globally unique.

    entity_id is the user's home entity and may be null for administrators
    who work across entities.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(in_clause("role", USER_ROLES), name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    role = db.Column(db.String(16), nullable=False, default="user")
    entity_id = db.Column(db.Integer, db.ForeignKey("entities.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    entity = db.relationship("Entity", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "entity_id": self.entity_id,
            "created_at": to_utc_z(self.created_at),
        }


class Creditor(db.Model):
    """External loan counterparty."""
    __tablename__ = "creditors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Project(db.Model):
    """Carbon abatement project that issued one or more batches."""
    __tablename__ = "projects"
    __table_args__ = (
        db.CheckConstraint(in_clause("method", PROJECT_METHODS), name="ck_projects_method"),
        db.CheckConstraint(in_clause("method_type", PROJECT_METHOD_TYPES), name="ck_projects_method_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    method = db.Column(db.String(32), nullable=False)
    method_type = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "method": self.method,
            "method_type": self.method_type,
            "created_at": to_utc_z(self.created_at),
        }
