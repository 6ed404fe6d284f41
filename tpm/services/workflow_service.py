"""
Project workflow service — instantiation, step updates, status projection.

Rules:
  - tenant_id is an explicit keyword (never read from g here); when given,
    lookups are scoped to it and cross-tenant ids behave as missing.
  - db.session.commit() happens in this file, not in blueprints.
  - A step may only be completed once every step with a smaller
    sequence number is completed.
  - Project status follows the percentage bands in band_for_steps().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from tpm.core.exceptions import NotFoundError, ValidationError
from tpm.models import db
from tpm.models.audit import write_audit
from tpm.models.auth import User
from tpm.models.project import HELD_STATUSES, Project
from tpm.models.workflow import (
    STEP_STATUSES,
    ProjectWorkflowStep,
    validate_step_transition,
)
from tpm.services.project_service import get_project
from tpm.services.workflow_template_service import list_templates
from tpm.utils.helpers import parse_date_input, utc_today

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = (
    "status",
    "assigned_to",
    "completion_percentage",
    "notes",
    "start_date",
    "due_date",
)


# ── Patch type ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StepPatch:
    """Validated partial update for a workflow step.

    Only PATCHABLE_FIELDS can be set. ``provided`` records which fields the
    caller actually sent, so an explicit ``None`` (e.g. unassign) is kept
    apart from an omitted field.
    """

    status: str | None = None
    assigned_to: int | None = None
    completion_percentage: int | None = None
    notes: str | None = None
    start_date: date | None = None
    due_date: date | None = None
    provided: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_dict(cls, data) -> StepPatch:
        """Build a patch from a request payload.

        Raises:
            ValidationError: Unknown fields, wrong types, out-of-range values
                             or an empty payload. ``details`` is keyed by field.
        """
        if not isinstance(data, dict):
            raise ValidationError("Workflow step update must be a JSON object")
        if not data:
            raise ValidationError("No fields to update")

        errors: dict[str, str] = {}
        values: dict = {}

        for name in sorted(set(data) - set(PATCHABLE_FIELDS)):
            errors[name] = "Unknown field"

        if "status" in data:
            status = data["status"]
            if status not in STEP_STATUSES:
                errors["status"] = f"Must be one of: {', '.join(STEP_STATUSES)}"
            else:
                values["status"] = status

        if "assigned_to" in data:
            assignee = data["assigned_to"]
            if assignee is None:
                values["assigned_to"] = None
            elif isinstance(assignee, bool) or not isinstance(assignee, int) or assignee <= 0:
                errors["assigned_to"] = "Must be a user id"
            else:
                values["assigned_to"] = assignee

        if "completion_percentage" in data:
            pct = data["completion_percentage"]
            if isinstance(pct, bool) or not isinstance(pct, int):
                errors["completion_percentage"] = "Must be an integer"
            elif not 0 <= pct <= 100:
                errors["completion_percentage"] = "Must be between 0 and 100"
            else:
                values["completion_percentage"] = pct

        if "notes" in data:
            notes = data["notes"]
            if notes is not None and not isinstance(notes, str):
                errors["notes"] = "Must be a string"
            else:
                values["notes"] = notes

        for date_field in ("start_date", "due_date"):
            if date_field in data:
                try:
                    values[date_field] = parse_date_input(data[date_field])
                except (ValueError, TypeError) as exc:
                    errors[date_field] = str(exc)

        if errors:
            raise ValidationError("Invalid workflow step update", details=errors)

        return cls(**values, provided=frozenset(data))

    def items(self):
        """Yield (field, value) for the fields the caller sent."""
        for name in PATCHABLE_FIELDS:
            if name in self.provided:
                yield name, getattr(self, name)


# ── Lookups ──────────────────────────────────────────────────────────────────


def _load_steps(project_id: int) -> list[ProjectWorkflowStep]:
    return list(
        db.session.execute(
            select(ProjectWorkflowStep)
            .where(ProjectWorkflowStep.project_id == project_id)
            .order_by(ProjectWorkflowStep.step_sequence.asc())
        ).scalars().all()
    )


def _require_step(
    step_id: int,
    *,
    project_id: int | None = None,
    tenant_id: int | None = None,
) -> ProjectWorkflowStep:
    stmt = select(ProjectWorkflowStep).where(ProjectWorkflowStep.id == step_id)
    if project_id is not None:
        stmt = stmt.where(ProjectWorkflowStep.project_id == project_id)
    if tenant_id is not None:
        stmt = stmt.where(ProjectWorkflowStep.tenant_id == tenant_id)
    step = db.session.execute(stmt).scalar_one_or_none()
    if step is None:
        raise NotFoundError("Workflow step", step_id)
    return step


def _require_assignee(user_id: int, tenant_id: int) -> User:
    user = db.session.execute(
        select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if user is None:
        raise ValidationError(
            f"Assigned user id={user_id} does not exist",
            details={"assigned_to": "Unknown user"},
        )
    return user


# ── Instantiation ────────────────────────────────────────────────────────────


def ensure_workflow(project_id: int, *, tenant_id: int | None = None) -> list[ProjectWorkflowStep]:
    """Return the project's workflow steps, creating them from templates on first use.

    Idempotent: existing steps are returned as-is. When two requests race on
    the first access, the unique (project_id, step_sequence) constraint
    rejects the second insert; that writer rolls back and returns the rows
    the first one created.

    Raises:
        NotFoundError: Project missing (or outside tenant scope), or no
                       templates for its deliverable type.
    """
    project = get_project(project_id, tenant_id=tenant_id)
    project_pk, tenant_pk = project.id, project.tenant_id

    steps = _load_steps(project_pk)
    if steps:
        return steps

    templates = list_templates(project.deliverable_type)
    db.session.add_all([
        ProjectWorkflowStep(
            tenant_id=tenant_pk,
            project_id=project_pk,
            workflow_template_id=template.id,
            step_sequence=template.step_sequence,
            step_name=template.step_name,
            status="not_started",
            completion_percentage=0,
        )
        for template in templates
    ])

    try:
        db.session.flush()
        write_audit(
            entity_type="project",
            entity_id=project_pk,
            action="workflow.instantiate",
            project_id=project_pk,
            tenant_id=tenant_pk,
            diff={"deliverable_type": project.deliverable_type, "steps": len(templates)},
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(
            "Workflow for project_id=%s already instantiated concurrently; reusing existing steps",
            project_pk,
        )
        return _load_steps(project_pk)

    logger.info("Created %d workflow steps for project_id=%s", len(templates), project_pk)
    return _load_steps(project_pk)


# ── Step updates ─────────────────────────────────────────────────────────────


def _validate_step_completion(step: ProjectWorkflowStep) -> None:
    """Raise ValidationError naming every earlier step that is not completed."""
    blocking = db.session.execute(
        select(ProjectWorkflowStep)
        .where(
            ProjectWorkflowStep.project_id == step.project_id,
            ProjectWorkflowStep.step_sequence < step.step_sequence,
            ProjectWorkflowStep.status != "completed",
        )
        .order_by(ProjectWorkflowStep.step_sequence.asc())
    ).scalars().all()

    if blocking:
        names = ", ".join(s.step_name for s in blocking)
        raise ValidationError(
            f"Cannot complete this step. Previous steps must be completed first: {names}",
            details={
                "blocking_steps": [
                    {
                        "id": s.id,
                        "step_sequence": s.step_sequence,
                        "step_name": s.step_name,
                        "status": s.status,
                    }
                    for s in blocking
                ],
            },
        )


def update_step(
    step_id: int,
    patch: StepPatch,
    *,
    project_id: int | None = None,
    tenant_id: int | None = None,
    actor_user_id: int | None = None,
) -> ProjectWorkflowStep:
    """Apply a patch to a workflow step.

    - status=completed: earlier steps must all be completed; forces
      completion_percentage=100, stamps completion_date, then re-projects
      the project status.
    - status=in_progress on a step with no start date: stamps start_date.
    - anything else: fields applied as given.

    Raises:
        NotFoundError: Step missing or outside the given project/tenant.
        ValidationError: Illegal transition, unknown assignee, or unmet
                         predecessors (message names the blocking steps).
    """
    step = _require_step(step_id, project_id=project_id, tenant_id=tenant_id)

    values = dict(patch.items())
    if values.get("assigned_to") is not None:
        _require_assignee(values["assigned_to"], step.tenant_id)

    new_status = values.get("status")
    if new_status is not None and not validate_step_transition(step.status, new_status):
        raise ValidationError(
            f"Invalid transition: {step.status} → {new_status}",
            details={"from": step.status, "to": new_status},
        )

    today = utc_today()
    if new_status == "completed":
        _validate_step_completion(step)
        values["completion_percentage"] = 100
        values["completion_date"] = today
    elif new_status == "in_progress" and step.start_date is None:
        values["start_date"] = today

    diff = {}
    for name, value in values.items():
        old = getattr(step, name)
        if old != value:
            diff[name] = {"old": old, "new": value}
        setattr(step, name, value)

    db.session.flush()
    write_audit(
        entity_type="workflow_step",
        entity_id=step.id,
        action="workflow_step.update",
        project_id=step.project_id,
        tenant_id=step.tenant_id,
        actor_user_id=actor_user_id,
        diff=diff,
    )

    if new_status == "completed":
        reproject_status(step.project_id, actor_user_id=actor_user_id, commit=False)

    db.session.commit()
    logger.info(
        "Workflow step updated step_id=%s project_id=%s fields=%s",
        step.id, step.project_id, sorted(diff),
    )
    return step


# ── Status projection ────────────────────────────────────────────────────────


def band_for_steps(steps) -> str | None:
    """Map step completion to a coarse project status.

    No steps                → None (nothing to derive)
    every step completed    → DELIVERED
    avg % == 0              → PLANNING
    0 < avg < 25            → ANALYSIS
    25 ≤ avg < 50           → DRAFTING
    50 ≤ avg < 75           → INTERNAL_REVIEW
    avg ≥ 75                → FINALIZATION
    """
    steps = list(steps)
    if not steps:
        return None
    if all(s.status == "completed" for s in steps):
        return "DELIVERED"

    avg = sum(s.completion_percentage or 0 for s in steps) / len(steps)
    if avg >= 75:
        return "FINALIZATION"
    if avg >= 50:
        return "INTERNAL_REVIEW"
    if avg >= 25:
        return "DRAFTING"
    if avg > 0:
        return "ANALYSIS"
    return "PLANNING"


def reproject_status(
    project_id: int,
    *,
    actor_user_id: int | None = None,
    commit: bool = True,
) -> str | None:
    """Recompute and persist the project's status from its workflow steps.

    Projects parked in a HELD_STATUSES value keep it. Returns the project's
    status after projection, or None when it has no workflow yet.

    Raises:
        NotFoundError: If the project does not exist.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)

    new_status = band_for_steps(_load_steps(project.id))
    if new_status is None:
        return None

    if project.status in HELD_STATUSES:
        logger.info(
            "Project status projection skipped project_id=%s held_status=%s derived=%s",
            project.id, project.status, new_status,
        )
        return project.status

    if project.status != new_status:
        old_status = project.status
        project.status = new_status
        write_audit(
            entity_type="project",
            entity_id=project.id,
            action="project.status_projected",
            project_id=project.id,
            tenant_id=project.tenant_id,
            actor_user_id=actor_user_id,
            diff={"status": {"old": old_status, "new": new_status}},
        )
        logger.info(
            "Project status projected project_id=%s %s → %s",
            project.id, old_status, new_status,
        )

    if commit:
        db.session.commit()
    return project.status
