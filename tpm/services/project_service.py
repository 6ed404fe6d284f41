"""Project service: listing, creation, lookup, edits, explicit status changes and deletion."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select

from tpm.core.exceptions import NotFoundError, ValidationError
from tpm.models import db
from tpm.models.audit import write_audit
from tpm.models.auth import User
from tpm.models.project import DELIVERABLE_TYPES, PRIORITIES, PROJECT_STATUSES, Client, Project
from tpm.utils.helpers import parse_date, parse_date_input

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "project_name",
    "description",
    "priority",
    "start_date",
    "deadline",
    "project_manager_id",
)

MAX_PER_PAGE = 100


def _is_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _check_manager(manager_id, tenant_id: int, errors: dict) -> None:
    """Record an error for project_manager_id unless it is None or a user of the tenant."""
    if manager_id is None:
        return
    if not _is_id(manager_id):
        errors["project_manager_id"] = "Must be a user id"
        return
    manager = db.session.execute(
        select(User).where(User.id == manager_id, User.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if manager is None:
        errors["project_manager_id"] = "Project manager not found"


def list_projects(
    *,
    tenant_id: int,
    status: str | None = None,
    deliverable_type: str | None = None,
    priority: str | None = None,
    client_id: int | None = None,
    project_manager_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Projects of one tenant, newest first, filtered and paginated.

    Raises:
        ValidationError: Unknown status, deliverable type or priority filter.
    """
    errors: dict[str, str] = {}
    if status:
        status = status.strip().upper()
        if status not in PROJECT_STATUSES:
            errors["status"] = f"Must be one of: {', '.join(PROJECT_STATUSES)}"
    if deliverable_type:
        deliverable_type = deliverable_type.strip().upper()
        if deliverable_type not in DELIVERABLE_TYPES:
            errors["deliverable_type"] = f"Must be one of: {', '.join(DELIVERABLE_TYPES)}"
    if priority:
        priority = priority.strip().lower()
        if priority not in PRIORITIES:
            errors["priority"] = f"Must be one of: {', '.join(PRIORITIES)}"
    if errors:
        raise ValidationError("Invalid project filter", details=errors)

    stmt = select(Project).where(Project.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(Project.status == status)
    if deliverable_type:
        stmt = stmt.where(Project.deliverable_type == deliverable_type)
    if priority:
        stmt = stmt.where(Project.priority == priority)
    if client_id:
        stmt = stmt.where(Project.client_id == client_id)
    if project_manager_id:
        stmt = stmt.where(Project.project_manager_id == project_manager_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        stmt = stmt.where(or_(Project.project_name.ilike(term), Project.description.ilike(term)))
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())

    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), MAX_PER_PAGE)
    paginated = db.paginate(stmt, page=page, per_page=per_page, error_out=False)
    return {
        "items": [p.to_dict() for p in paginated.items],
        "total": paginated.total,
        "page": page,
        "per_page": per_page,
        "pages": paginated.pages,
    }


def get_project(project_id: int, *, tenant_id: int | None = None) -> Project:
    """Fetch a project, scoped to tenant_id when one is given.

    Raises:
        NotFoundError: Missing, or owned by another tenant.
    """
    stmt = select(Project).where(Project.id == project_id)
    if tenant_id is not None:
        stmt = stmt.where(Project.tenant_id == tenant_id)
    project = db.session.execute(stmt).scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def create_project(*, tenant_id: int, data: dict, actor_user_id: int | None = None) -> Project:
    """Create a project and, when its deliverable type has a catalog, its workflow.

    Raises:
        ValidationError: Missing/invalid fields, unknown client or project manager.
    """
    from tpm.services.workflow_service import ensure_workflow
    from tpm.services.workflow_template_service import has_templates

    errors: dict[str, str] = {}

    name = data.get("project_name")
    if name is not None and not isinstance(name, str):
        errors["project_name"] = "Must be a string"
    elif not (name or "").strip():
        errors["project_name"] = "project_name is required"
    else:
        name = name.strip()

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        errors["description"] = "Must be a string"

    deliverable_type = str(data.get("deliverable_type", "") or "").strip().upper()
    if deliverable_type not in DELIVERABLE_TYPES:
        errors["deliverable_type"] = f"Must be one of: {', '.join(DELIVERABLE_TYPES)}"

    priority = str(data.get("priority", "medium") or "medium").strip().lower()
    if priority not in PRIORITIES:
        errors["priority"] = f"Must be one of: {', '.join(PRIORITIES)}"

    client = None
    client_id = data.get("client_id")
    if client_id is None or client_id == "":
        errors["client_id"] = "client_id is required"
    elif not _is_id(client_id):
        errors["client_id"] = "Must be a client id"
    else:
        client = db.session.execute(
            select(Client).where(Client.id == client_id, Client.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if client is None:
            errors["client_id"] = "Client not found"

    manager_id = data.get("project_manager_id")
    _check_manager(manager_id, tenant_id, errors)

    if errors:
        raise ValidationError("Invalid project", details=errors)

    project = Project(
        tenant_id=tenant_id,
        client_id=client.id,
        project_name=name,
        deliverable_type=deliverable_type,
        status="NOT_STARTED",
        priority=priority,
        start_date=parse_date(data.get("start_date")),
        deadline=parse_date(data.get("deadline")),
        description=description,
        project_manager_id=manager_id,
    )
    db.session.add(project)
    db.session.flush()

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.create",
        project_id=project.id,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        diff={"project_name": name, "deliverable_type": deliverable_type},
    )
    db.session.commit()
    logger.info(
        "Project created project_id=%s tenant_id=%s deliverable_type=%s",
        project.id, tenant_id, deliverable_type,
    )

    # Types without a catalog get their workflow lazily once one is seeded.
    if has_templates(deliverable_type):
        ensure_workflow(project.id, tenant_id=tenant_id)

    return project


def update_project(
    project_id: int,
    data,
    *,
    tenant_id: int | None = None,
    actor_user_id: int | None = None,
) -> Project:
    """Edit the descriptive fields of a project (UPDATABLE_FIELDS only).

    Status has its own operation and deliverable_type is fixed once the
    workflow exists, so neither is accepted here.

    Raises:
        NotFoundError: Project missing or outside tenant scope.
        ValidationError: Empty payload, unknown fields or invalid values.
    """
    if not isinstance(data, dict):
        raise ValidationError("Project update must be a JSON object")
    if not data:
        raise ValidationError("No fields to update")

    project = get_project(project_id, tenant_id=tenant_id)

    errors: dict[str, str] = {}
    values: dict = {}

    for name in sorted(set(data) - set(UPDATABLE_FIELDS)):
        errors[name] = "Unknown field"

    if "project_name" in data:
        name = data["project_name"]
        if not isinstance(name, str) or not name.strip():
            errors["project_name"] = "project_name must be a non-empty string"
        else:
            values["project_name"] = name.strip()

    if "description" in data:
        description = data["description"]
        if description is not None and not isinstance(description, str):
            errors["description"] = "Must be a string"
        else:
            values["description"] = description

    if "priority" in data:
        priority = str(data["priority"] or "").strip().lower()
        if priority not in PRIORITIES:
            errors["priority"] = f"Must be one of: {', '.join(PRIORITIES)}"
        else:
            values["priority"] = priority

    for date_field in ("start_date", "deadline"):
        if date_field in data:
            try:
                values[date_field] = parse_date_input(data[date_field])
            except (ValueError, TypeError) as exc:
                errors[date_field] = str(exc)

    if "project_manager_id" in data:
        _check_manager(data["project_manager_id"], project.tenant_id, errors)
        values["project_manager_id"] = data["project_manager_id"]

    if errors:
        raise ValidationError("Invalid project update", details=errors)

    diff = {}
    for name, value in values.items():
        old = getattr(project, name)
        if old != value:
            diff[name] = {"old": old, "new": value}
        setattr(project, name, value)

    if diff:
        write_audit(
            entity_type="project",
            entity_id=project.id,
            action="project.update",
            project_id=project.id,
            tenant_id=project.tenant_id,
            actor_user_id=actor_user_id,
            diff=diff,
        )
    db.session.commit()
    logger.info("Project updated project_id=%s fields=%s", project.id, sorted(diff))
    return project


def change_project_status(
    project_id: int,
    status: str,
    *,
    tenant_id: int | None = None,
    actor_user_id: int | None = None,
) -> Project:
    """Set the project status directly, outside of workflow projection.

    Raises:
        NotFoundError: Project missing or outside tenant scope.
        ValidationError: Unknown status value.
    """
    status = str(status or "").strip().upper()
    if status not in PROJECT_STATUSES:
        raise ValidationError(
            f"Invalid project status '{status}'",
            details={"status": f"Must be one of: {', '.join(PROJECT_STATUSES)}"},
        )

    project = get_project(project_id, tenant_id=tenant_id)
    old_status = project.status
    project.status = status

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.status_changed",
        project_id=project.id,
        tenant_id=project.tenant_id,
        actor_user_id=actor_user_id,
        diff={"status": {"old": old_status, "new": status}},
    )
    db.session.commit()
    logger.info("Project status changed project_id=%s %s → %s", project.id, old_status, status)
    return project


def delete_project(project_id: int, *, tenant_id: int | None = None, actor_user_id: int | None = None) -> None:
    """Delete a project; its workflow steps go with it (FK cascade)."""
    project = get_project(project_id, tenant_id=tenant_id)
    project_pk, tenant_pk = project.id, project.tenant_id

    db.session.delete(project)
    write_audit(
        entity_type="project",
        entity_id=project_pk,
        action="project.delete",
        project_id=project_pk,
        tenant_id=tenant_pk,
        actor_user_id=actor_user_id,
    )
    db.session.commit()
    logger.info("Project deleted project_id=%s tenant_id=%s", project_pk, tenant_pk)
