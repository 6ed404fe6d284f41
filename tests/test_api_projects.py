"""
Project HTTP API: list, create, get, update, explicit status change, delete.
"""

import pytest

from tpm.models import db
from tpm.models.audit import AuditLog
from tpm.models.project import Project
from tpm.models.workflow import ProjectWorkflowStep

BASE = "/api/v1"


def _create(client, tenant_id, **overrides):
    payload = {
        "project_name": "Master File 2025",
        "deliverable_type": "MASTER_FILE",
        "priority": "high",
        "deadline": "2026-06-30",
    }
    payload.update(overrides)
    return client.post(f"{BASE}/projects", json=payload, query_string={"tenant_id": tenant_id})


class TestCreateProject:
    def test_create_returns_project_with_workflow(self, client, tenant, client_row, templates):
        res = _create(client, tenant.id, client_id=client_row.id)
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "NOT_STARTED"
        assert body["deadline"] == "2026-06-30"
        assert body["priority"] == "high"
        assert len(body["workflow_steps"]) == 8
        assert body["workflow_steps"][0]["step_name"] == "Data Collection"

    def test_create_writes_audit(self, client, tenant, client_row, templates):
        body = _create(client, tenant.id, client_id=client_row.id).get_json()
        actions = [
            a.action for a in
            db.session.query(AuditLog).filter_by(project_id=body["id"]).order_by(AuditLog.id)
        ]
        assert actions == ["project.create", "workflow.instantiate"]

    def test_create_requires_tenant(self, client, client_row, templates):
        res = client.post(f"{BASE}/projects", json={"project_name": "x"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_create_requires_json_object(self, client, tenant):
        res = client.post(f"{BASE}/projects", json=["x"], query_string={"tenant_id": tenant.id})
        assert res.status_code == 400

    @pytest.mark.parametrize("overrides, field", [
        ({"project_name": "  "}, "project_name"),
        ({"deliverable_type": "ANNUAL_REPORT"}, "deliverable_type"),
        ({"priority": "asap"}, "priority"),
        ({"client_id": 9999}, "client_id"),
        ({"project_manager_id": 9999}, "project_manager_id"),
        ({"client_id": {"x": 1}}, "client_id"),
        ({"client_id": "abc"}, "client_id"),
        ({"client_id": True}, "client_id"),
        ({"client_id": -3}, "client_id"),
        ({"project_manager_id": [1]}, "project_manager_id"),
        ({"project_manager_id": "7"}, "project_manager_id"),
        ({"project_name": {"en": "LF"}}, "project_name"),
        ({"description": ["notes"]}, "description"),
    ])
    def test_create_validation(self, client, tenant, client_row, overrides, field):
        res = _create(client, tenant.id, **{"client_id": client_row.id, **overrides})
        assert res.status_code == 422
        assert field in res.get_json()["details"]

    def test_create_with_client_of_other_tenant_fails(self, client, tenant, client_row, templates):
        from tpm.models.auth import Tenant

        other = Tenant(name="Other", slug="other")
        db.session.add(other)
        db.session.commit()
        res = _create(client, other.id, client_id=client_row.id)
        assert res.status_code == 422
        assert res.get_json()["details"]["client_id"] == "Client not found"

    def test_malformed_client_id_is_a_validation_error(self, client, tenant, client_row, templates):
        res = _create(client, tenant.id, client_id={"x": 1})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_RULE"
        assert body["details"]["client_id"] == "Must be a client id"
        assert db.session.query(Project).count() == 0


class TestListProjects:
    @pytest.fixture()
    def portfolio(self, client, tenant, client_row, project, templates):
        mf = _create(client, tenant.id, client_id=client_row.id).get_json()
        bm = _create(
            client, tenant.id,
            client_id=client_row.id,
            project_name="Benchmark Distribution",
            deliverable_type="BENCHMARK_ANALYSIS",
            priority="low",
            description="TNMM set for EU distributors",
        ).get_json()
        return {"lf": project.id, "mf": mf["id"], "bm": bm["id"]}

    def _list(self, client, tenant_id, **params):
        res = client.get(f"{BASE}/projects", query_string={"tenant_id": tenant_id, **params})
        assert res.status_code == 200
        return res.get_json()

    def test_lists_tenant_projects_newest_first(self, client, tenant, portfolio):
        body = self._list(client, tenant.id)
        assert body["total"] == 3
        assert [p["id"] for p in body["items"]] == [portfolio["bm"], portfolio["mf"], portfolio["lf"]]
        assert "workflow_steps" not in body["items"][0]

    def test_filter_by_deliverable_type(self, client, tenant, portfolio):
        body = self._list(client, tenant.id, deliverable_type="master_file")
        assert [p["id"] for p in body["items"]] == [portfolio["mf"]]

    def test_filter_by_status(self, client, tenant, portfolio):
        client.post(f"{BASE}/projects/{portfolio['lf']}/status", json={"status": "ON_HOLD"})
        body = self._list(client, tenant.id, status="ON_HOLD")
        assert [p["id"] for p in body["items"]] == [portfolio["lf"]]

    def test_filter_by_priority_and_search(self, client, tenant, portfolio):
        assert [p["id"] for p in self._list(client, tenant.id, priority="low")["items"]] == [portfolio["bm"]]
        assert [p["id"] for p in self._list(client, tenant.id, search="tnmm")["items"]] == [portfolio["bm"]]

    def test_pagination(self, client, tenant, portfolio):
        body = self._list(client, tenant.id, per_page=2, page=2)
        assert body["total"] == 3
        assert body["pages"] == 2
        assert [p["id"] for p in body["items"]] == [portfolio["lf"]]

    def test_other_tenant_sees_nothing(self, client, portfolio):
        from tpm.models.auth import Tenant

        other = Tenant(name="Other", slug="other")
        db.session.add(other)
        db.session.commit()
        body = self._list(client, other.id)
        assert body["total"] == 0
        assert body["items"] == []

    def test_unknown_status_filter_returns_422(self, client, tenant, portfolio):
        res = client.get(f"{BASE}/projects", query_string={"tenant_id": tenant.id, "status": "PAUSED"})
        assert res.status_code == 422
        assert "status" in res.get_json()["details"]

    def test_list_requires_tenant(self, client):
        res = client.get(f"{BASE}/projects")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


class TestUpdateProject:
    def test_update_fields(self, client, project, consultant):
        res = client.put(
            f"{BASE}/projects/{project.id}",
            json={
                "project_name": "Local File FY2025 (DE)",
                "priority": "URGENT",
                "deadline": "2026-09-30",
                "project_manager_id": consultant.id,
            },
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["project_name"] == "Local File FY2025 (DE)"
        assert body["priority"] == "urgent"
        assert body["deadline"] == "2026-09-30"
        assert body["project_manager_id"] == consultant.id
        assert body["status"] == "NOT_STARTED"

    def test_update_writes_audit_diff(self, client, project):
        client.put(f"{BASE}/projects/{project.id}", json={"deadline": "2026-09-30", "description": "FY25"})
        log = db.session.query(AuditLog).filter_by(action="project.update", project_id=project.id).one()
        assert log.diff["deadline"] == {"old": None, "new": "2026-09-30"}
        assert log.diff["description"] == {"old": None, "new": "FY25"}

    def test_unchanged_values_write_no_audit(self, client, project):
        res = client.put(f"{BASE}/projects/{project.id}", json={"project_name": "Local File FY2025"})
        assert res.status_code == 200
        assert db.session.query(AuditLog).filter_by(action="project.update").count() == 0

    def test_clear_project_manager(self, client, project):
        res = client.put(f"{BASE}/projects/{project.id}", json={"project_manager_id": None})
        assert res.status_code == 200
        assert res.get_json()["project_manager_id"] is None

    @pytest.mark.parametrize("payload, field", [
        ({"status": "DELIVERED"}, "status"),
        ({"deliverable_type": "MASTER_FILE"}, "deliverable_type"),
        ({"project_name": ""}, "project_name"),
        ({"priority": "asap"}, "priority"),
        ({"deadline": "end of june"}, "deadline"),
        ({"project_manager_id": 9999}, "project_manager_id"),
        ({"project_manager_id": {"id": 1}}, "project_manager_id"),
        ({"description": 5}, "description"),
    ])
    def test_update_validation(self, client, project, payload, field):
        res = client.put(f"{BASE}/projects/{project.id}", json=payload)
        assert res.status_code == 422
        assert field in res.get_json()["details"]
        db.session.expire_all()
        assert db.session.get(Project, project.id).project_name == "Local File FY2025"

    def test_empty_update_returns_422(self, client, project):
        res = client.put(f"{BASE}/projects/{project.id}", json={})
        assert res.status_code == 422

    def test_update_unknown_project_404(self, client, templates):
        res = client.put(f"{BASE}/projects/4040", json={"description": "x"})
        assert res.status_code == 404

    def test_update_requires_managing_role(self, client, project, consultant, auth_headers):
        res = client.put(
            f"{BASE}/projects/{project.id}",
            json={"description": "x"},
            headers=auth_headers(consultant),
        )
        assert res.status_code == 403


class TestProjectLifecycle:
    def test_get_project(self, client, project):
        res = client.get(f"{BASE}/projects/{project.id}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["project_name"] == "Local File FY2025"
        assert len(body["workflow_steps"]) == 9

    def test_get_unknown_project_404(self, client):
        res = client.get(f"{BASE}/projects/12345")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Project id=12345 not found"

    def test_change_status(self, client, project):
        res = client.post(f"{BASE}/projects/{project.id}/status", json={"status": "on_hold"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "ON_HOLD"

    def test_change_status_invalid(self, client, project):
        res = client.post(f"{BASE}/projects/{project.id}/status", json={"status": "PAUSED"})
        assert res.status_code == 422
        assert "status" in res.get_json()["details"]

    def test_delete_project_cascades_steps(self, client, project):
        project_id = project.id
        res = client.delete(f"{BASE}/projects/{project_id}")
        assert res.status_code == 200
        assert db.session.query(ProjectWorkflowStep).filter_by(project_id=project_id).count() == 0
        assert client.get(f"{BASE}/projects/{project_id}").status_code == 404

    def test_delete_forbidden_for_consultant(self, client, project, consultant, auth_headers):
        res = client.delete(f"{BASE}/projects/{project.id}", headers=auth_headers(consultant))
        assert res.status_code == 403

    def test_delete_forbidden_for_manager(self, client, project, manager, auth_headers):
        res = client.delete(f"{BASE}/projects/{project.id}", headers=auth_headers(manager))
        assert res.status_code == 403
        assert sorted(res.get_json()["details"]["required_roles"]) == ["admin", "partner"]
        assert client.get(f"{BASE}/projects/{project.id}").status_code == 200

    def test_partner_can_delete(self, client, project, consultant, auth_headers):
        res = client.delete(
            f"{BASE}/projects/{project.id}",
            headers=auth_headers(consultant, roles=["partner"]),
        )
        assert res.status_code == 200


class TestAuthEnforced:
    @pytest.fixture()
    def enforced(self, app):
        app.config["API_AUTH_ENABLED"] = "true"
        yield
        app.config["API_AUTH_ENABLED"] = "false"

    def test_anonymous_mutation_is_forbidden(self, client, project, enforced):
        res = client.post(f"{BASE}/projects/{project.id}/status", json={"status": "ON_HOLD"})
        assert res.status_code == 403

    def test_anonymous_read_is_allowed(self, client, project, enforced):
        assert client.get(f"{BASE}/projects/{project.id}").status_code == 200


def test_health_endpoints(client, templates):
    assert client.get(f"{BASE}/health/ready").status_code == 200
    res = client.get(f"{BASE}/health/live")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["workflow_templates"]["status"] == "ok"


def test_response_carries_request_headers(client):
    res = client.get(f"{BASE}/health/ready", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert "X-Request-Duration-Ms" in res.headers


def test_unknown_api_route_returns_json_404(client):
    res = client.get(f"{BASE}/nope")
    assert res.status_code == 404
    assert res.get_json()["error"] == "Not found"
