"""
Project blueprint.

Endpoints:
    GET    /api/v1/projects                 list (filters: status, deliverable_type, priority,
                                            client_id, project_manager_id, search; page, per_page)
    POST   /api/v1/projects                 create (workflow instantiated when a catalog exists)
    GET    /api/v1/projects/<id>            detail
    PUT    /api/v1/projects/<id>            edit descriptive fields
    POST   /api/v1/projects/<id>/status     explicit status change, body {"status": "..."}
    DELETE /api/v1/projects/<id>            hard delete, partner/admin only (workflow steps cascade)

tenant_id comes from the JWT claim, falling back to the ``tenant_id`` query
param. Service layer owns validation and commits.
"""

import logging

from flask import Blueprint, g, jsonify, request

from tpm.blueprints import json_body, register_error_handlers, resolve_tenant_id, tenant_required
from tpm.middleware.permission_required import require_roles
from tpm.models.auth import DELETING_ROLES, MANAGING_ROLES
from tpm.services import project_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    tenant_id, err = tenant_required()
    if err:
        return err

    result = project_service.list_projects(
        tenant_id=tenant_id,
        status=request.args.get("status"),
        deliverable_type=request.args.get("deliverable_type"),
        priority=request.args.get("priority"),
        client_id=request.args.get("client_id", type=int),
        project_manager_id=request.args.get("project_manager_id", type=int),
        search=request.args.get("search", ""),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return jsonify(result), 200


@project_bp.route("/projects", methods=["POST"])
@require_roles(*MANAGING_ROLES)
def create_project():
    """Create a project.

    Body: {client_id, project_name, deliverable_type, priority?, start_date?,
           deadline?, description?, project_manager_id?}
    Returns: project dict with its workflow_steps (201).
    """
    tenant_id, err = tenant_required()
    if err:
        return err
    data, err = json_body()
    if err:
        return err

    project = project_service.create_project(
        tenant_id=tenant_id, data=data, actor_user_id=g.jwt_user_id,
    )
    return jsonify(project.to_dict(include_steps=True)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id: int):
    project = project_service.get_project(project_id, tenant_id=resolve_tenant_id())
    return jsonify(project.to_dict(include_steps=True)), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_roles(*MANAGING_ROLES)
def update_project(project_id: int):
    """Edit project_name, description, priority, start_date, deadline, project_manager_id."""
    data, err = json_body()
    if err:
        return err

    project = project_service.update_project(
        project_id,
        data,
        tenant_id=resolve_tenant_id(),
        actor_user_id=g.jwt_user_id,
    )
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/status", methods=["POST"])
@require_roles(*MANAGING_ROLES)
def change_status(project_id: int):
    """Set the project status directly. Body: {"status": "ON_HOLD"}."""
    data, err = json_body()
    if err:
        return err

    project = project_service.change_project_status(
        project_id,
        data.get("status"),
        tenant_id=resolve_tenant_id(),
        actor_user_id=g.jwt_user_id,
    )
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_roles(*DELETING_ROLES)
def delete_project(project_id: int):
    project_service.delete_project(
        project_id, tenant_id=resolve_tenant_id(), actor_user_id=g.jwt_user_id,
    )
    return jsonify({"message": "Project deleted"}), 200
