"""
Transfer Pricing Workflow Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only activity trail for project and
      workflow lifecycle events.
"""

import json
from datetime import UTC, datetime

from tpm.models import db

# ── Local coercion ───────────────────────────────────────────────────────────

def _as_int(value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"project", "workflow_step"}

AUDIT_ACTIONS = {
    "project.create",
    "project.update",
    "project.status_changed",
    "project.status_projected",
    "project.delete",
    "workflow.instantiate",
    "workflow_step.update",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every lifecycle event.

    One row per action. ``diff_json`` carries an old→new snapshot
    for field-level changes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Plain ids (no FK): audit rows outlive the project and user they mention.
    project_id = db.Column(db.Integer, nullable=True)

    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="project | workflow_step",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(
        db.String(60), nullable=False,
        comment="project.status_changed | workflow_step.update | …",
    )
    actor_user_id = db.Column(
        db.Integer,
        nullable=True,
        index=True,
        comment="NULL when no authenticated user (auth disabled, CLI)",
    )

    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    project_id: int | None = None,
    tenant_id: int | None = None,
    actor_user_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row. Uses ``flush`` so callers keep
    transaction control.

    When called inside a request and no actor is given, the JWT user
    (``g.jwt_user_id``) is recorded.

    Returns the (flushed) AuditLog instance.

    Raises:
        ValueError: Unknown entity_type or action (a caller bug, not user input).
    """
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity_type: {entity_type}")
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    if actor_user_id is None:
        from flask import g, has_request_context
        if has_request_context():
            actor_user_id = getattr(g, "jwt_user_id", None)

    log = AuditLog(
        tenant_id=_as_int(tenant_id),
        project_id=_as_int(project_id),
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_user_id=_as_int(actor_user_id),
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
