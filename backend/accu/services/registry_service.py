# backend/accu/services/registry_service.py
"""
Reference data: entities, users, creditors, projects.

Every other table points at these rows, so deletes are refused while any
reference remains (ConflictError). Nothing is cascaded from here.
"""
from __future__ import annotations

from ..extensions import db
from ..models import (
    Entity, User, Creditor, Project,
    AccuBatch, Loan, MarketPrice, ReclassificationRequest,
)
from ..validation import ConflictError
from .query_utils import get_or_404, paginated_result

ENTITY_MUTABLE_FIELDS = {"name"}
USER_MUTABLE_FIELDS = {"email", "role", "entity_id"}
CREDITOR_MUTABLE_FIELDS = {"name"}
PROJECT_MUTABLE_FIELDS = {"name", "method", "method_type"}


def _apply_patch(obj, patch: dict, mutable_fields: set[str]) -> None:
    for k, v in patch.items():
        if k not in mutable_fields:
            continue
        setattr(obj, k, v)


def _ensure_unreferenced(label: str, object_id: int, references: list[tuple[str, object]]) -> None:
    """references: (noun, query) pairs; any non-empty query blocks the delete."""
    blocking = [noun for noun, query in references if db.session.query(query.exists()).scalar()]
    if blocking:
        raise ConflictError(
            f"{label} {object_id} is still referenced by {', '.join(blocking)}"
        )


# =============================================================================
# ENTITIES
# =============================================================================

def list_entities(page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Entity).order_by(Entity.name.asc(), Entity.id.asc())
    return paginated_result(query, page=page, per_page=per_page)


def get_entity(entity_id: int) -> Entity:
    return get_or_404(Entity, entity_id, "Entity")


def create_entity(*, patch: dict) -> Entity:
    entity = Entity()
    _apply_patch(entity, patch, ENTITY_MUTABLE_FIELDS)
    db.session.add(entity)
    db.session.flush()
    return entity


def update_entity(entity_id: int, *, patch: dict) -> Entity:
    entity = get_entity(entity_id)
    _apply_patch(entity, patch, ENTITY_MUTABLE_FIELDS)
    db.session.flush()
    return entity


def delete_entity(entity_id: int) -> None:
    entity = get_entity(entity_id)
    _ensure_unreferenced("Entity", entity_id, [
        ("users", db.session.query(User).filter(User.entity_id == entity_id)),
        ("batches", db.session.query(AccuBatch).filter(AccuBatch.entity_id == entity_id)),
        ("loans", db.session.query(Loan).filter(Loan.entity_id == entity_id)),
        ("market prices", db.session.query(MarketPrice).filter(MarketPrice.entity_id == entity_id)),
        ("reclassification requests",
         db.session.query(ReclassificationRequest).filter(ReclassificationRequest.entity_id == entity_id)),
    ])
    db.session.delete(entity)
    db.session.flush()


# =============================================================================
# USERS
# =============================================================================

def list_users(entity_id: int | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(User)
    if entity_id is not None:
        query = query.filter(User.entity_id == entity_id)
    query = query.order_by(User.email.asc())
    return paginated_result(query, page=page, per_page=per_page)


def get_user(user_id: int) -> User:
    return get_or_404(User, user_id, "User")


def _check_email_free(email: str, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first() is not None:
        raise ConflictError(f"A user with email {email} already exists")


def create_user(*, patch: dict) -> User:
    _check_email_free(patch["email"])
    if patch.get("entity_id") is not None:
        get_entity(patch["entity_id"])

    user = User()
    _apply_patch(user, patch, USER_MUTABLE_FIELDS)
    db.session.add(user)
    db.session.flush()
    return user


def update_user(user_id: int, *, patch: dict) -> User:
    user = get_user(user_id)
    if "email" in patch:
        _check_email_free(patch["email"], exclude_user_id=user_id)
    if patch.get("entity_id") is not None:
        get_entity(patch["entity_id"])

    _apply_patch(user, patch, USER_MUTABLE_FIELDS)
    db.session.flush()
    return user


def delete_user(user_id: int) -> None:
    user = get_user(user_id)
    _ensure_unreferenced("User", user_id, [
        ("batches", db.session.query(AccuBatch).filter(AccuBatch.user_id == user_id)),
        ("reclassification requests", db.session.query(ReclassificationRequest).filter(
            (ReclassificationRequest.submitted_by == user_id) | (ReclassificationRequest.decided_by == user_id)
        )),
    ])
    db.session.delete(user)
    db.session.flush()


# =============================================================================
# CREDITORS
# =============================================================================

def list_creditors(page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Creditor).order_by(Creditor.name.asc(), Creditor.id.asc())
    return paginated_result(query, page=page, per_page=per_page)


def get_creditor(creditor_id: int) -> Creditor:
    return get_or_404(Creditor, creditor_id, "Creditor")


def create_creditor(*, patch: dict) -> Creditor:
    creditor = Creditor()
    _apply_patch(creditor, patch, CREDITOR_MUTABLE_FIELDS)
    db.session.add(creditor)
    db.session.flush()
    return creditor


def update_creditor(creditor_id: int, *, patch: dict) -> Creditor:
    creditor = get_creditor(creditor_id)
    _apply_patch(creditor, patch, CREDITOR_MUTABLE_FIELDS)
    db.session.flush()
    return creditor


def delete_creditor(creditor_id: int) -> None:
    creditor = get_creditor(creditor_id)
    _ensure_unreferenced("Creditor", creditor_id, [
        ("loans", db.session.query(Loan).filter(Loan.creditor_id == creditor_id)),
    ])
    db.session.delete(creditor)
    db.session.flush()


# =============================================================================
# PROJECTS
# =============================================================================

def list_projects(page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Project).order_by(Project.name.asc(), Project.id.asc())
    return paginated_result(query, page=page, per_page=per_page)


def get_project(project_id: int) -> Project:
    return get_or_404(Project, project_id, "Project")


def create_project(*, patch: dict) -> Project:
    project = Project()
    _apply_patch(project, patch, PROJECT_MUTABLE_FIELDS)
    db.session.add(project)
    db.session.flush()
    return project


def update_project(project_id: int, *, patch: dict) -> Project:
    project = get_project(project_id)
    _apply_patch(project, patch, PROJECT_MUTABLE_FIELDS)
    db.session.flush()
    return project


def delete_project(project_id: int) -> None:
    project = get_project(project_id)
    _ensure_unreferenced("Project", project_id, [
        ("batches", db.session.query(AccuBatch).filter(AccuBatch.project_id == project_id)),
    ])
    db.session.delete(project)
    db.session.flush()
