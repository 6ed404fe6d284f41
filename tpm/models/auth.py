"""
Auth Models — tenants and users.

The workflow core only reads these tables: users are validated as step
assignees and recorded as audit actors; tenants scope every project.
Account management and credential storage live outside this service.
"""

from datetime import datetime, timezone

from tpm.models import db

USER_ROLES = {"admin", "partner", "manager", "senior", "consultant", "support"}

# Roles allowed to mutate projects and workflow steps.
MANAGING_ROLES = ("manager", "partner", "admin")

# Hard delete of a project is reserved to these.
DELETING_ROLES = ("partner", "admin")


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    users = db.relationship("User", back_populates="tenant", lazy="dynamic")


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    role = db.Column(
        db.String(20), nullable=False, default="consultant",
        comment="admin | partner | manager | senior | consultant | support",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Composite unique: same email can exist in different tenants
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        db.Index("ix_users_tenant_id", "tenant_id"),
        db.Index("ix_users_email", "email"),
    )

    tenant = db.relationship("Tenant", back_populates="users")

    def to_summary(self):
        """Compact shape embedded in workflow step payloads."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
        }
