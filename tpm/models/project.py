"""Client and Project models — the entities a workflow hangs off."""

from datetime import datetime, timezone

from tpm.models import db

# ── Catalog values ──────────────────────────────────────────────────────────

DELIVERABLE_TYPES = (
    "LOCAL_FILE",
    "MASTER_FILE",
    "BENCHMARK_ANALYSIS",
    "IC_AGREEMENT",
    "TP_POLICY",
    "AOA_REPORT",
    "TRANSACTION_REPORT",
    "TP_AUDIT_SUPPORT",
    "SETTLEMENT_PROCEDURE",
    "APA_MAP_NEGOTIATION",
    "TP_PLANNING",
    "DISPUTE_RESOLUTION",
    "IP_VALUATION",
    "CBCR_SUPPORT",
    "LF_COMMENT_REVIEW",
    "MF_COMMENT_REVIEW",
)

PROJECT_STATUSES = (
    "NOT_STARTED",
    "PLANNING",
    "DATA_GATHERING",
    "ANALYSIS",
    "DRAFTING",
    "INTERNAL_REVIEW",
    "CLIENT_REVIEW",
    "FINALIZATION",
    "DELIVERED",
    "ARCHIVED",
    "ON_HOLD",
    "WAITING_CLIENT",
    "WAITING_THIRD_PARTY",
    "REVISION_REQUIRED",
)

# Statuses set by hand that the workflow projector leaves in place.
HELD_STATUSES = frozenset({"ON_HOLD", "WAITING_CLIENT", "WAITING_THIRD_PARTY", "ARCHIVED"})

PRIORITIES = ("low", "medium", "high", "urgent")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(db.Model):
    """Company a transfer pricing engagement is delivered for."""

    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    industry = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    projects = db.relationship("Project", back_populates="client", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "industry": self.industry,
            "country": self.country,
        }

    def __repr__(self) -> str:
        return f"<Client {self.id}: {self.name}>"


class Project(db.Model):
    """One deliverable for one client (e.g. a Local File for FY2025).

    ``status`` is a denormalised lifecycle stage. While a workflow exists it
    is recomputed from step completion; it can also be set explicitly.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_name = db.Column(db.String(200), nullable=False)
    deliverable_type = db.Column(
        db.String(40), nullable=False, index=True,
        comment="LOCAL_FILE | MASTER_FILE | BENCHMARK_ANALYSIS | ...",
    )
    status = db.Column(db.String(30), nullable=False, default="NOT_STARTED", index=True)
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="low | medium | high | urgent",
    )
    start_date = db.Column(db.Date, nullable=True)
    deadline = db.Column(db.Date, nullable=True)
    description = db.Column(db.Text, nullable=True)
    project_manager_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    client = db.relationship("Client", back_populates="projects")
    project_manager = db.relationship("User", foreign_keys=[project_manager_id])
    workflow_steps = db.relationship(
        "ProjectWorkflowStep",
        back_populates="project",
        lazy="select",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProjectWorkflowStep.step_sequence",
    )

    __table_args__ = (
        db.Index("ix_projects_tenant_status", "tenant_id", "status"),
    )

    def to_dict(self, include_steps: bool = False) -> dict:
        """Serialize project fields; ``include_steps`` adds the ordered workflow."""
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client": self.client.to_dict() if self.client else None,
            "project_name": self.project_name,
            "deliverable_type": self.deliverable_type,
            "status": self.status,
            "priority": self.priority,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "description": self.description,
            "project_manager_id": self.project_manager_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            d["workflow_steps"] = [s.to_dict() for s in self.workflow_steps]
        return d

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.project_name}>"
