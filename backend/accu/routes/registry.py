# Overview: Flask API routes for reference data; entities, users, creditors, projects.

# backend/accu/routes/registry.py
"""
Reference data routes.

Each resource supports list, get, create, update and delete. Deletes are
refused (409) while other records still reference the row.
"""
from flask import Blueprint, request

from ..decorators import transactional
from ..models import Entity, User, Creditor, Project
from ..services import registry_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_user,
    enforce_rules_project,
)

ENTITY_POLICY = ModelValidationPolicy(writable_fields={"name"}, required_on_create={"name"})
USER_POLICY = ModelValidationPolicy(writable_fields={"email", "role", "entity_id"}, required_on_create={"email"})
CREDITOR_POLICY = ModelValidationPolicy(writable_fields={"name"}, required_on_create={"name"})
PROJECT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "method", "method_type"},
    required_on_create={"name", "method", "method_type"},
)

entities_bp = Blueprint("entities", __name__, url_prefix="/api/entities")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")
creditors_bp = Blueprint("creditors", __name__, url_prefix="/api/creditors")
projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


def _page_args() -> dict:
    return {
        "page": request.args.get("page", type=int),
        "per_page": request.args.get("per_page", type=int),
    }


# =============================================================================
# ENTITIES
# =============================================================================

@entities_bp.get("")
@transactional("list entities")
def list_entities():
    return registry_service.list_entities(**_page_args())


@entities_bp.get("/<int:entity_id>")
@transactional("load entity")
def get_entity(entity_id: int):
    return registry_service.get_entity(entity_id).to_dict()


@entities_bp.post("")
@transactional("create entity")
def create_entity():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Entity, payload=payload, policy=ENTITY_POLICY, partial=False)
    return registry_service.create_entity(patch=patch).to_dict(), 201


@entities_bp.put("/<int:entity_id>")
@transactional("update entity")
def update_entity(entity_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Entity, payload=payload, policy=ENTITY_POLICY, partial=True)
    return registry_service.update_entity(entity_id, patch=patch).to_dict(), 200


@entities_bp.delete("/<int:entity_id>")
@transactional("delete entity")
def delete_entity(entity_id: int):
    registry_service.delete_entity(entity_id)
    return {"ok": True}, 200


# =============================================================================
# USERS
# =============================================================================

@users_bp.get("")
@transactional("list users")
def list_users():
    """Query params: entity_id, page, per_page"""
    return registry_service.list_users(entity_id=request.args.get("entity_id", type=int), **_page_args())


@users_bp.get("/<int:user_id>")
@transactional("load user")
def get_user(user_id: int):
    return registry_service.get_user(user_id).to_dict()


@users_bp.post("")
@transactional("create user")
def create_user():
    """
    Returns:
        201: user created
        400: invalid email or role
        404: entity not found
        409: email already registered
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
    enforce_rules_user(patch)
    return registry_service.create_user(patch=patch).to_dict(), 201


@users_bp.put("/<int:user_id>")
@transactional("update user")
def update_user(user_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
    enforce_rules_user(patch)
    return registry_service.update_user(user_id, patch=patch).to_dict(), 200


@users_bp.delete("/<int:user_id>")
@transactional("delete user")
def delete_user(user_id: int):
    registry_service.delete_user(user_id)
    return {"ok": True}, 200


# =============================================================================
# CREDITORS
# =============================================================================

@creditors_bp.get("")
@transactional("list creditors")
def list_creditors():
    return registry_service.list_creditors(**_page_args())


@creditors_bp.get("/<int:creditor_id>")
@transactional("load creditor")
def get_creditor(creditor_id: int):
    return registry_service.get_creditor(creditor_id).to_dict()


@creditors_bp.post("")
@transactional("create creditor")
def create_creditor():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Creditor, payload=payload, policy=CREDITOR_POLICY, partial=False)
    return registry_service.create_creditor(patch=patch).to_dict(), 201


@creditors_bp.put("/<int:creditor_id>")
@transactional("update creditor")
def update_creditor(creditor_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Creditor, payload=payload, policy=CREDITOR_POLICY, partial=True)
    return registry_service.update_creditor(creditor_id, patch=patch).to_dict(), 200


@creditors_bp.delete("/<int:creditor_id>")
@transactional("delete creditor")
def delete_creditor(creditor_id: int):
    registry_service.delete_creditor(creditor_id)
    return {"ok": True}, 200


# =============================================================================
# PROJECTS
# =============================================================================

@projects_bp.get("")
@transactional("list projects")
def list_projects():
    return registry_service.list_projects(**_page_args())


@projects_bp.get("/<int:project_id>")
@transactional("load project")
def get_project(project_id: int):
    return registry_service.get_project(project_id).to_dict()


@projects_bp.post("")
@transactional("create project")
def create_project():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Project, payload=payload, policy=PROJECT_POLICY, partial=False)
    enforce_rules_project(patch)
    return registry_service.create_project(patch=patch).to_dict(), 201


@projects_bp.put("/<int:project_id>")
@transactional("update project")
def update_project(project_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Project, payload=payload, policy=PROJECT_POLICY, partial=True)
    enforce_rules_project(patch)
    return registry_service.update_project(project_id, patch=patch).to_dict(), 200


@projects_bp.delete("/<int:project_id>")
@transactional("delete project")
def delete_project(project_id: int):
    registry_service.delete_project(project_id)
    return {"ok": True}, 200
