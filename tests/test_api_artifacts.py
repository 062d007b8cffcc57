"""Artifact & project API — HTTP surface of the versioned artifact service."""

from .conftest import case_content


# Uses shared fixtures from conftest.py: client, session (autouse)


def _create_project(client):
    r = client.post("/api/v1/projects", json={"name": "Checkout Service"})
    assert r.status_code == 201
    return r.get_json()["id"]


def _create_case(client, pid, **kwargs):
    payload = {"title": "Pay by card", "created_by": "author", "content": case_content()}
    payload.update(kwargs)
    return client.post(f"/api/v1/projects/{pid}/test-cases", json=payload)


def _approve(client, kind, rev_id):
    client.post(f"/api/v1/revisions/{kind}/{rev_id}/submit-for-review", json={"submitted_by": "author"})
    return client.post(f"/api/v1/revisions/{kind}/{rev_id}/approve", json={"approver_id": "qa-lead"})


# ═════════════════════════════════════════════════════════════════
# 1. Projects & requirements
# ═════════════════════════════════════════════════════════════════
class TestProjectsApi:
    def test_create_and_get_project(self, client):
        pid = _create_project(client)
        r = client.get(f"/api/v1/projects/{pid}")
        assert r.status_code == 200
        assert r.get_json()["name"] == "Checkout Service"

    def test_missing_project(self, client):
        r = client.get("/api/v1/projects/999")
        assert r.status_code == 404
        assert r.get_json()["code"] == "ERR_NOT_FOUND"

    def test_requirement_mapping(self, client):
        """Mapping is idempotent per (requirement, case revision)."""
        pid = _create_project(client)
        rev_id = _create_case(client, pid).get_json()["id"]
        req = client.post(f"/api/v1/projects/{pid}/requirements",
                          json={"title": "Card payment", "external_id": "REQ-1"}).get_json()
        first = client.post(f"/api/v1/requirements/{req['id']}/mappings", json={"case_revision_id": rev_id})
        second = client.post(f"/api/v1/requirements/{req['id']}/mappings", json={"case_revision_id": rev_id})
        assert first.status_code == 201
        assert first.get_json()["id"] == second.get_json()["id"]
        items = client.get(f"/api/v1/projects/{pid}/requirements").get_json()["items"]
        assert [i["external_id"] for i in items] == ["REQ-1"]

    def test_mapping_requires_case_revision(self, client):
        pid = _create_project(client)
        req = client.post(f"/api/v1/projects/{pid}/requirements", json={"title": "R"}).get_json()
        r = client.post(f"/api/v1/requirements/{req['id']}/mappings", json={})
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


# ═════════════════════════════════════════════════════════════════
# 2. Artifact creation
# ═════════════════════════════════════════════════════════════════
class TestArtifactCreate:
    def test_create_case(self, client):
        """New case returns revision 1 in DRAFT."""
        pid = _create_project(client)
        r = _create_case(client, pid)
        assert r.status_code == 201
        d = r.get_json()
        assert d["rev"] == 1
        assert d["status"] == "DRAFT"
        assert d["content"]["expected_result"] == "Order is confirmed"

    def test_create_case_invalid_content(self, client):
        pid = _create_project(client)
        r = _create_case(client, pid, content=case_content(steps=[]))
        assert r.status_code == 422
        d = r.get_json()
        assert d["code"] == "ERR_VALIDATION_INVALID"
        assert "steps" in d["details"]

    def test_unknown_collection(self, client):
        pid = _create_project(client)
        r = client.post(f"/api/v1/projects/{pid}/test-suites", json={"title": "x"})
        assert r.status_code == 404

    def test_scenario_and_list(self, client):
        pid = _create_project(client)
        case_id = _create_case(client, pid).get_json()["id"]
        _approve(client, "case", case_id)
        scenario = client.post(f"/api/v1/projects/{pid}/test-scenarios", json={
            "title": "Checkout", "created_by": "author",
            "items": [{"case_revision_id": case_id, "optional_flag": True}],
        })
        assert scenario.status_code == 201
        assert scenario.get_json()["items"][0]["optional_flag"] is True

        scenario_rev = scenario.get_json()["id"]
        lst = client.post(f"/api/v1/projects/{pid}/test-scenario-lists", json={
            "title": "Regression", "created_by": "author",
            "items": [{"scenario_revision_id": scenario_rev, "include_rule": "REQUIRED_ONLY"}],
        })
        assert lst.status_code == 201
        assert lst.get_json()["items"][0]["include_rule"] == "REQUIRED_ONLY"


# ═════════════════════════════════════════════════════════════════
# 3. Revision lifecycle over HTTP
# ═════════════════════════════════════════════════════════════════
class TestRevisionApi:
    def test_review_flow(self, client):
        pid = _create_project(client)
        rev_id = _create_case(client, pid).get_json()["id"]

        r = client.get(f"/api/v1/revisions/case/{rev_id}")
        assert r.get_json()["available_transitions"] == ["IN_REVIEW", "DEPRECATED"]

        r = _approve(client, "case", rev_id)
        assert r.status_code == 200
        assert r.get_json()["status"] == "APPROVED"
        assert r.get_json()["approved_by"] == "qa-lead"

    def test_edit_approved_is_conflict(self, client):
        pid = _create_project(client)
        rev_id = _create_case(client, pid).get_json()["id"]
        _approve(client, "case", rev_id)
        r = client.put(f"/api/v1/revisions/case/{rev_id}", json={"title": "Changed"})
        assert r.status_code == 409
        assert r.get_json()["code"] == "ERR_IMMUTABLE_REVISION"

    def test_edit_draft(self, client):
        pid = _create_project(client)
        rev_id = _create_case(client, pid).get_json()["id"]
        r = client.put(f"/api/v1/revisions/case/{rev_id}", json={"title": "Changed"})
        assert r.status_code == 200
        assert r.get_json()["title"] == "Changed"

    def test_new_revision_needs_approved_latest(self, client):
        pid = _create_project(client)
        d = _create_case(client, pid).get_json()
        r = client.post(f"/api/v1/test-cases/{d['case_id']}/revisions", json={"created_by": "author"})
        assert r.status_code == 409
        body = r.get_json()
        assert body["code"] == "ERR_STATUS_PRECONDITION"
        assert body["details"]["expected_status"] == ["APPROVED"]

    def test_revision_history(self, client):
        pid = _create_project(client)
        d = _create_case(client, pid).get_json()
        _approve(client, "case", d["id"])
        r = client.post(f"/api/v1/test-cases/{d['case_id']}/revisions",
                        json={"created_by": "author", "reason": "new step"})
        assert r.status_code == 201
        assert r.get_json()["rev"] == 2

        history = client.get(f"/api/v1/test-cases/{d['case_id']}/revisions").get_json()
        assert history["total"] == 2
        assert [i["rev"] for i in history["items"]] == [2, 1]

        artifact = client.get(f"/api/v1/test-cases/{d['case_id']}").get_json()
        assert artifact["latest_revision"]["rev"] == 2

    def test_reject_requires_comment(self, client):
        pid = _create_project(client)
        rev_id = _create_case(client, pid).get_json()["id"]
        client.post(f"/api/v1/revisions/case/{rev_id}/submit-for-review", json={})
        r = client.post(f"/api/v1/revisions/case/{rev_id}/reject", json={"approver_id": "qa-lead"})
        assert r.status_code == 422
        r = client.post(f"/api/v1/revisions/case/{rev_id}/reject",
                        json={"approver_id": "qa-lead", "comment": "Needs negative path"})
        assert r.status_code == 200
        assert r.get_json()["status"] == "DEPRECATED"

    def test_invalid_transition(self, client):
        pid = _create_project(client)
        rev_id = _create_case(client, pid).get_json()["id"]
        client.post(f"/api/v1/revisions/case/{rev_id}/deprecate", json={})
        r = client.post(f"/api/v1/revisions/case/{rev_id}/deprecate", json={})
        assert r.status_code == 409
        assert r.get_json()["code"] == "ERR_INVALID_TRANSITION"

    def test_delete_then_no_revisions(self, client):
        pid = _create_project(client)
        d = _create_case(client, pid).get_json()
        _approve(client, "case", d["id"])
        assert client.delete(f"/api/v1/test-cases/{d['case_id']}").status_code == 204
        r = client.post(f"/api/v1/test-cases/{d['case_id']}/revisions", json={"created_by": "author"})
        assert r.status_code == 409
        assert client.get(f"/api/v1/test-cases/{d['case_id']}").get_json()["deleted_at"] is not None

    def test_unknown_kind(self, client):
        r = client.get("/api/v1/revisions/suite/1")
        assert r.status_code == 422
