"""
HTTP tests for the audit and decision-trail endpoints.

Rollback failures must tell the operator whether retrying makes sense, so
each refusal is checked for both its status code and its error code.
"""
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bizdash.database import get_db
from bizdash.main import app

from conftest import ORG_ID, OTHER_ORG_ID, USER_ID

HEADERS = {"X-Org-Id": ORG_ID, "X-User-Id": USER_ID}
OTHER_HEADERS = {"X-Org-Id": OTHER_ORG_ID, "X-User-Id": "user_999"}


def _create_contact(client, **fields):
    body = {"name": "Ada", "email": "ada@example.com"}
    body.update(fields)
    response = client.post("/api/records/Contact", json=body, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


class TestRollbackEndpoint:

    def test_update_then_rollback_restores_contact(self, client):
        contact = _create_contact(client)
        update = client.patch(
            f"/api/records/Contact/{contact['id']}", json={"name": "Ada L."}, headers=HEADERS
        )
        assert update.json()["fields"]["name"] == "Ada L."

        response = client.post(
            "/api/decision-trails/rollback", json={"id": update.json()["trail_id"]}, headers=HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["operation"] == "restore"
        assert body["entity_id"] == contact["id"]

        trail = client.get(f"/api/decision-trails/{body['trail_id']}", headers=HEADERS).json()
        assert trail["state"] == "Consumed"
        assert trail["rolled_back_at"] is not None

    def test_second_rollback_is_400_already_rolled_back(self, client):
        contact = _create_contact(client)
        response = client.post(
            "/api/decision-trails/rollback", json={"id": contact["trail_id"]}, headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json()["operation"] == "delete"

        again = client.post(
            "/api/decision-trails/rollback", json={"id": contact["trail_id"]}, headers=HEADERS
        )

        assert again.status_code == 400
        assert again.json()["detail"]["error"] == "already_rolled_back"
        assert again.json()["detail"]["retryable"] is False

    def test_other_tenant_gets_404(self, client):
        contact = _create_contact(client)

        response = client.post(
            "/api/decision-trails/rollback", json={"id": contact["trail_id"]}, headers=OTHER_HEADERS
        )
        unknown = client.post(
            "/api/decision-trails/rollback", json={"id": "no-such-trail"}, headers=OTHER_HEADERS
        )

        assert response.status_code == 404
        assert response.json() == unknown.json()
        assert client.get(
            f"/api/decision-trails/{contact['trail_id']}", headers=OTHER_HEADERS
        ).status_code == 404

    def test_missing_id_is_400(self, client):
        response = client.post("/api/decision-trails/rollback", json={}, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_vanished_entity_is_409(self, client):
        contact = _create_contact(client)
        update = client.patch(
            f"/api/records/Contact/{contact['id']}", json={"phone": "555"}, headers=HEADERS
        ).json()
        assert client.delete(f"/api/records/Contact/{contact['id']}", headers=HEADERS).status_code == 200

        response = client.post(
            "/api/decision-trails/rollback", json={"id": update["trail_id"]}, headers=HEADERS
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "stale_target"

    def test_rollback_is_audited(self, client):
        contact = _create_contact(client)
        client.post("/api/decision-trails/rollback", json={"id": contact["trail_id"]}, headers=HEADERS)

        entries = client.get("/api/audit", headers=HEADERS).json()

        actions = [e["action"] for e in entries]
        assert "Rolled back Contact" in actions
        assert "Created contact" in actions
        rollback_entry = next(e for e in entries if e["action"] == "Rolled back Contact")
        assert rollback_entry["metadata"]["trail_id"] == contact["trail_id"]


class TestAuditEndpoints:

    def test_create_and_list_scoped_to_org(self, client):
        created = client.post(
            "/api/audit",
            json={"action": "Exported report", "metadata": {"format": "csv"}},
            headers=HEADERS
        )
        assert created.status_code == 201
        assert created.json()["actor_id"] == USER_ID
        assert created.json()["metadata"] == {"format": "csv"}

        assert len(client.get("/api/audit", headers=HEADERS).json()) == 1
        assert client.get("/api/audit", headers=OTHER_HEADERS).json() == []

    def test_blank_action_is_rejected(self, client):
        response = client.post("/api/audit", json={"action": ""}, headers=HEADERS)

        assert response.status_code == 422

    def test_org_header_is_required(self, client):
        assert client.get("/api/audit").status_code == 422


class TestRecordEndpoints:

    def test_unknown_kind_is_400(self, client):
        response = client.post("/api/records/Widget", json={"name": "x"}, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "unsupported_entity_kind"

    def test_unknown_entity_is_404(self, client):
        response = client.patch("/api/records/Deal/missing", json={"title": "x"}, headers=HEADERS)

        assert response.status_code == 404

    def test_trails_are_listed_for_the_org(self, client):
        contact = _create_contact(client)
        client.patch(f"/api/records/Contact/{contact['id']}", json={"name": "Ada L."}, headers=HEADERS)

        trails = client.get("/api/decision-trails", headers=HEADERS).json()

        assert len(trails) == 2
        assert {t["action"] for t in trails} == {"Created contact", "Updated contact"}
        assert all(t["state"] == "Active" for t in trails)


def test_storage_failure_is_503():
    """A database without tables stands in for an unreachable store."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    BrokenSession = sessionmaker(bind=engine)

    def broken_db():
        db = BrokenSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = broken_db
    try:
        with TestClient(app) as client:
            response = client.post("/api/decision-trails/rollback", json={"id": "t1"}, headers=HEADERS)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "storage_unavailable"
    assert response.json()["detail"]["retryable"] is True
