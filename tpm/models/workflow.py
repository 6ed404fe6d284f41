"""
Workflow models — template catalog and per-project step instances.

Models:
    - WorkflowTemplate:     catalog step for a deliverable type (seeded, read-only).
    - ProjectWorkflowStep:  mutable copy of a template step owned by one project.

Step status machine:
    not_started → in_progress | blocked | completed
    in_progress → not_started | blocked | completed
    blocked     → in_progress | not_started
    completed   → any (administrative correction)

Completion is additionally gated by the sequential-completion rule, enforced
in ``tpm.services.workflow_service``.
"""

from datetime import datetime, timezone

from tpm.models import db

STEP_STATUSES = ("not_started", "in_progress", "completed", "blocked")

# A blocked step has no completed edge: it goes back to in_progress or
# not_started before it can be completed.
STEP_TRANSITIONS = {
    "not_started": ["in_progress", "blocked", "completed"],
    "in_progress": ["not_started", "blocked", "completed"],
    "blocked": ["in_progress", "not_started"],
    "completed": ["not_started", "in_progress", "blocked"],
}


def validate_step_transition(old_status, new_status):
    """Return True if a workflow step may move from old_status to new_status."""
    if old_status == new_status:
        return True
    return new_status in STEP_TRANSITIONS.get(old_status, [])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowTemplate(db.Model):
    """One step of the standard workflow for a deliverable type."""

    __tablename__ = "workflow_templates"
    __table_args__ = (
        db.UniqueConstraint(
            "deliverable_type", "step_sequence",
            name="uq_workflow_templates_type_sequence",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    deliverable_type = db.Column(db.String(40), nullable=False, index=True)
    step_sequence = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(200), nullable=False)
    step_description = db.Column(db.Text, nullable=True)
    estimated_duration_hours = db.Column(db.Integer, nullable=True)
    required_inputs = db.Column(db.JSON, nullable=True, default=list)
    outputs = db.Column(db.JSON, nullable=True, default=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deliverable_type": self.deliverable_type,
            "step_sequence": self.step_sequence,
            "step_name": self.step_name,
            "step_description": self.step_description,
            "estimated_duration_hours": self.estimated_duration_hours,
            "required_inputs": self.required_inputs or [],
            "outputs": self.outputs or [],
        }

    def __repr__(self) -> str:
        return f"<WorkflowTemplate {self.deliverable_type}#{self.step_sequence}: {self.step_name}>"


class ProjectWorkflowStep(db.Model):
    """Project-specific step instance tracking real progress.

    (project_id, step_sequence) is unique. The constraint is what keeps two
    concurrent first reads of a project's workflow from inserting the step
    set twice.
    """

    __tablename__ = "project_workflow_steps"
    __table_args__ = (
        db.UniqueConstraint(
            "project_id", "step_sequence",
            name="uq_project_workflow_steps_project_sequence",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workflow_template_id = db.Column(
        db.Integer,
        db.ForeignKey("workflow_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    step_sequence = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="not_started",
        comment="not_started | in_progress | completed | blocked",
    )
    assigned_to = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completion_date = db.Column(db.Date, nullable=True)
    completion_percentage = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    project = db.relationship("Project", back_populates="workflow_steps")
    template = db.relationship("WorkflowTemplate")
    assignee = db.relationship("User", foreign_keys=[assigned_to])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "workflow_template_id": self.workflow_template_id,
            "step_sequence": self.step_sequence,
            "step_name": self.step_name,
            "status": self.status,
            "assigned_to": self.assigned_to,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completion_date": self.completion_date.isoformat() if self.completion_date else None,
            "completion_percentage": self.completion_percentage,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<ProjectWorkflowStep {self.id}: #{self.step_sequence} {self.status}>"
