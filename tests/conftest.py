"""
Shared pytest fixtures for the Transfer Pricing Workflow Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / manager / consultant / client_row: ORM rows for the default tenant
    - templates: default workflow catalog seeded
    - project: LOCAL_FILE project created through the service (9 workflow steps)
    - auth_headers: factory for Bearer headers signed with the test JWT secret
"""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest

from tpm import create_app
from tpm.models import db as _db
from tpm.models.auth import Tenant, User
from tpm.models.project import Client
from tpm.models.workflow import WorkflowTemplate


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def tenant():
    t = Tenant(name="Arm's Length Advisors", slug="ala")
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def manager(tenant):
    u = User(tenant_id=tenant.id, email="manager@ala.test", full_name="Mara Manager", role="manager")
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def consultant(tenant):
    u = User(tenant_id=tenant.id, email="consultant@ala.test", full_name="Cem Consultant", role="consultant")
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def client_row(tenant):
    """A Client entity (named to avoid clashing with the Flask test client)."""
    c = Client(tenant_id=tenant.id, name="Acme Holding GmbH", industry="Manufacturing", country="DE")
    _db.session.add(c)
    _db.session.commit()
    return c


@pytest.fixture()
def templates():
    """Seed the default workflow catalog; returns the number of rows created."""
    from tpm.services.workflow_template_service import seed_default_templates
    count = seed_default_templates()
    _db.session.commit()
    return count


@pytest.fixture()
def project(tenant, client_row, manager, templates):
    """LOCAL_FILE project; its 9-step workflow is created with it."""
    from tpm.services.project_service import create_project
    return create_project(
        tenant_id=tenant.id,
        data={
            "client_id": client_row.id,
            "project_name": "Local File FY2025",
            "deliverable_type": "LOCAL_FILE",
            "project_manager_id": manager.id,
        },
    )


@pytest.fixture()
def make_catalog():
    """Factory: insert a small custom catalog (e.g. 3 steps) for scenario tests."""

    def _make(deliverable_type: str, names: list[str]) -> list[WorkflowTemplate]:
        rows = [
            WorkflowTemplate(deliverable_type=deliverable_type, step_sequence=i, step_name=name)
            for i, name in enumerate(names, start=1)
        ]
        _db.session.add_all(rows)
        _db.session.commit()
        return rows

    return _make


@pytest.fixture()
def auth_headers(app):
    """Factory: auth_headers(user, roles=[...]) → Authorization header dict."""

    def _make(user, roles=None, *, token_type="access", expires_in=timedelta(minutes=15)):
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "tenant_id": user.tenant_id,
            "roles": roles if roles is not None else [user.role],
            "type": token_type,
            "iat": now,
            "exp": now + expires_in,
        }
        token = pyjwt.encode(payload, app.config["JWT_SECRET_KEY"], algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _make
