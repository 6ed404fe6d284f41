"""
Workflow blueprint — template catalog and per-project workflow steps.

Endpoint groups:
  Template catalog   GET  /api/v1/workflow-templates
                     GET  /api/v1/workflow-templates/<deliverable_type>
  Project workflow   GET  /api/v1/projects/<pid>/workflow            (instantiates on first read)
                     GET  /api/v1/projects/<pid>/workflow/progress
                     PATCH|PUT /api/v1/projects/<pid>/workflow/<step_id>

tenant_id comes from the JWT claim, falling back to the ``tenant_id`` query
param. Service layer owns all business rules and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from tpm.blueprints import register_error_handlers, resolve_tenant_id
from tpm.middleware.permission_required import require_roles
from tpm.models.auth import MANAGING_ROLES
from tpm.services import progress_service, workflow_service, workflow_template_service
from tpm.services.workflow_service import StepPatch

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_bp)


# ── Template catalog ──────────────────────────────────────────────────────────


@workflow_bp.route("/workflow-templates", methods=["GET"])
def list_deliverable_types():
    """Deliverable types that have a seeded workflow catalog."""
    return jsonify({"deliverable_types": workflow_template_service.list_deliverable_types()}), 200


@workflow_bp.route("/workflow-templates/<deliverable_type>", methods=["GET"])
def list_templates(deliverable_type: str):
    templates = workflow_template_service.list_templates(deliverable_type.upper())
    return jsonify({
        "deliverable_type": deliverable_type.upper(),
        "steps": [t.to_dict() for t in templates],
    }), 200


# ── Project workflow ──────────────────────────────────────────────────────────


@workflow_bp.route("/projects/<int:project_id>/workflow", methods=["GET"])
def get_workflow(project_id: int):
    """Ordered workflow steps; created from the catalog on first access."""
    steps = workflow_service.ensure_workflow(project_id, tenant_id=resolve_tenant_id())
    return jsonify({
        "project_id": project_id,
        "steps": [s.to_dict() for s in steps],
    }), 200


@workflow_bp.route("/projects/<int:project_id>/workflow/progress", methods=["GET"])
def get_progress(project_id: int):
    summary = progress_service.get_progress(project_id, tenant_id=resolve_tenant_id())
    return jsonify(summary.to_dict()), 200


@workflow_bp.route("/projects/<int:project_id>/workflow/<int:step_id>", methods=["PATCH", "PUT"])
@require_roles(*MANAGING_ROLES)
def update_step(project_id: int, step_id: int):
    """Partial update of one step.

    Body: any of {status, assigned_to, completion_percentage, notes,
                  start_date, due_date}
    Returns: the updated step (200), 422 when a predecessor is not completed.
    """
    patch = StepPatch.from_dict(request.get_json(silent=True))
    step = workflow_service.update_step(
        step_id,
        patch,
        project_id=project_id,
        tenant_id=resolve_tenant_id(),
        actor_user_id=g.jwt_user_id,
    )
    return jsonify(step.to_dict()), 200
