"""Project status projection from workflow step completion."""

from types import SimpleNamespace

import pytest

from tpm.core.exceptions import NotFoundError
from tpm.models import db
from tpm.models.audit import AuditLog
from tpm.models.project import HELD_STATUSES, Project
from tpm.services.project_service import change_project_status, create_project
from tpm.services.workflow_service import (
    StepPatch,
    band_for_steps,
    ensure_workflow,
    reproject_status,
    update_step,
)


def _steps(*pcts, completed=()):
    return [
        SimpleNamespace(
            completion_percentage=pct,
            status="completed" if i in completed else "in_progress",
        )
        for i, pct in enumerate(pcts)
    ]


@pytest.mark.parametrize("pcts, expected", [
    ((0, 0, 0), "PLANNING"),
    ((10, 0, 0), "ANALYSIS"),
    ((24, 24, 24), "ANALYSIS"),
    ((25, 25, 25), "DRAFTING"),
    ((50, 49, 50), "DRAFTING"),
    ((50, 50, 50), "INTERNAL_REVIEW"),
    ((75, 75, 75), "FINALIZATION"),
    ((100, 100, 100), "FINALIZATION"),  # 100% by hand, but not every step completed
])
def test_band_boundaries(pcts, expected):
    assert band_for_steps(_steps(*pcts)) == expected


def test_all_completed_is_delivered():
    assert band_for_steps(_steps(100, 100, completed={0, 1})) == "DELIVERED"


def test_no_steps_has_no_band():
    assert band_for_steps([]) is None


def test_completing_first_of_three_moves_to_drafting(tenant, client_row, make_catalog):
    make_catalog("IC_AGREEMENT", ["Scoping", "Drafting", "Sign-off"])
    project = create_project(
        tenant_id=tenant.id,
        data={"client_id": client_row.id, "project_name": "ICA", "deliverable_type": "IC_AGREEMENT"},
    )
    first = ensure_workflow(project.id)[0]

    update_step(first.id, StepPatch.from_dict({"status": "completed"}))

    # avg 33.3 → DRAFTING
    assert db.session.get(Project, project.id).status == "DRAFTING"
    log = db.session.query(AuditLog).filter_by(action="project.status_projected").one()
    assert log.diff == {"status": {"old": "NOT_STARTED", "new": "DRAFTING"}}


def test_projection_runs_only_on_completion(project):
    steps = ensure_workflow(project.id)
    update_step(steps[0].id, StepPatch.from_dict({"completion_percentage": 90}))
    assert db.session.get(Project, project.id).status == "NOT_STARTED"

    update_step(steps[0].id, StepPatch.from_dict({"status": "completed"}))
    # 100 / 9 ≈ 11.1 → ANALYSIS
    assert db.session.get(Project, project.id).status == "ANALYSIS"


@pytest.mark.parametrize("held", sorted(HELD_STATUSES))
def test_held_status_is_kept(project, held):
    change_project_status(project.id, held)
    step = ensure_workflow(project.id)[0]

    update_step(step.id, StepPatch.from_dict({"status": "completed"}))

    assert db.session.get(Project, project.id).status == held
    assert db.session.query(AuditLog).filter_by(action="project.status_projected").count() == 0


def test_manual_non_held_status_is_overwritten(project):
    change_project_status(project.id, "CLIENT_REVIEW")
    step = ensure_workflow(project.id)[0]

    update_step(step.id, StepPatch.from_dict({"status": "completed"}))

    assert db.session.get(Project, project.id).status == "ANALYSIS"


def test_reproject_without_change_writes_no_audit(project):
    assert reproject_status(project.id) == "PLANNING"
    assert reproject_status(project.id) == "PLANNING"
    assert db.session.query(AuditLog).filter_by(action="project.status_projected").count() == 1


def test_reproject_without_workflow_returns_none(tenant, client_row):
    p = Project(tenant_id=tenant.id, client_id=client_row.id, project_name="Bare", deliverable_type="TP_AUDIT_SUPPORT")
    db.session.add(p)
    db.session.commit()
    assert reproject_status(p.id) is None
    assert db.session.get(Project, p.id).status == "NOT_STARTED"


def test_reproject_missing_project_raises():
    with pytest.raises(NotFoundError):
        reproject_status(424242)


def test_write_audit_rejects_unknown_action(project):
    from tpm.models.audit import write_audit

    with pytest.raises(ValueError):
        write_audit(entity_type="project", entity_id=project.id, action="project.renamed")
