"""
Integration tests for API endpoints
"""

import json

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

from clinical_trial_ops.api.main import app, integrity_error_handler


class TestCoreEndpoints:
    """Root, health and error reporting"""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["endpoints"]["health"] == "/api/health"

    def test_health_endpoint(self, client):
        """Test health check endpoint"""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert "timestamp" in data
        assert "version" in data
        assert "startup" in data["services"]

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_error_report_roundtrip(self, client):
        """Frontend error reports show up in the summary"""
        response = client.post("/api/errors/report", json={"message": "Widget crashed", "url": "/tasks"})
        assert response.status_code == 200
        error_id = response.json()["error_id"]

        recent = client.get("/api/errors/summary").json()["recent"]
        assert any(e["error_id"] == error_id for e in recent)

    def test_resolve_error(self, client):
        """Resolved errors drop out of the unresolved count"""
        error_id = client.post("/api/errors/report", json={"message": "Chart failed"}).json()["error_id"]
        unresolved = client.get("/api/errors/summary").json()["summary"]["unresolved"]

        response = client.post(f"/api/errors/{error_id}/resolve")
        assert response.json() == {"success": True, "error_id": error_id}

        summary = client.get("/api/errors/summary").json()
        assert summary["summary"]["unresolved"] == unresolved - 1
        assert next(e for e in summary["recent"] if e["error_id"] == error_id)["resolved"] is True

    def test_resolve_unknown_error(self, client):
        assert client.post("/api/errors/err_missing/resolve").status_code == 404

    def test_validation_error_shape(self, client):
        response = client.post("/api/trials", json={"title": "No protocol"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_integrity_errors_are_client_errors(self):
        """Constraint violations that reach the app surface as structured 400s"""
        request = Request({
            "type": "http", "method": "POST", "path": "/api/tasks", "root_path": "", "scheme": "http",
            "query_string": b"", "headers": [], "server": ("testserver", 80),
        })
        exc = IntegrityError("INSERT INTO tasks", {}, Exception("UNIQUE constraint failed: tasks.task_id"))

        response = await integrity_error_handler(request, exc)
        assert response.status_code == 400
        body = json.loads(response.body)
        assert body["error"]["code"] == "CDM200"
        assert "UNIQUE constraint failed" in body["error"]["details"]["reason"]


class TestTrialsAndSites:
    """Trial registry and sites"""

    def test_create_and_list_trials(self, client):
        response = client.post("/api/trials", json={
            "protocol_id": "PRO010",
            "title": "Asthma Phase II",
            "phase": "II",
        })
        assert response.status_code == 201
        trial = response.json()
        assert trial["status"] == "active"

        trials = client.get("/api/trials").json()
        assert [t["protocol_id"] for t in trials] == ["PRO010"]
        assert client.get(f"/api/trials/{trial['id']}").json()["title"] == "Asthma Phase II"

    def test_unknown_trial(self, client):
        """Missing trials produce the structured not-found error"""
        response = client.get("/api/trials/999")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CDM404"

    def test_duplicate_trial(self, client, trial):
        response = client.post("/api/trials", json={"protocol_id": "PRO001", "title": "Again", "phase": "III"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CDM200"
        assert len(client.get("/api/trials").json()) == 1

    def test_sites(self, client, trial):
        payload = {"site_id": "Site 123", "trial_id": trial.id, "name": "Central Medical Center"}
        response = client.post("/api/sites", json=payload)
        assert response.status_code == 201

        duplicate = client.post("/api/sites", json=payload)
        assert duplicate.status_code == 400

        sites = client.get(f"/api/trials/{trial.id}/sites").json()
        assert [s["site_id"] for s in sites] == ["Site 123"]

    def test_site_for_unknown_trial(self, client):
        response = client.post("/api/sites", json={"site_id": "Site 9", "trial_id": 42, "name": "Nowhere"})
        assert response.status_code == 404


class TestSignalDetections:
    """Signal detection defaults"""

    def test_defaults_filled(self, client, trial):
        observation = "Site has the same screen failure reason recorded for twenty patients in a row"
        response = client.post("/api/signaldetections", json={
            "trial_id": trial.id,
            "observation": observation,
            "priority": "Critical",
        })
        assert response.status_code == 201
        signal = response.json()

        assert signal["detection_id"].startswith("CRIT_")
        assert signal["title"] == observation[:50] + "..."
        assert signal["signal_type"] == "Site Risk"
        assert signal["due_date"] is not None

    def test_type_inferred_from_id(self, client, trial):
        response = client.post("/api/signaldetections", json={
            "trial_id": trial.id,
            "detection_id": "PD_Risk_101",
            "observation": "Visits out of window",
        })
        signal = response.json()
        assert signal["signal_type"] == "PD Risk"
        assert signal["title"] == "Visits out of window"

        updated = client.patch(f"/api/signaldetections/{signal['id']}", json={"status": "closed"})
        assert updated.json()["status"] == "closed"
        assert len(client.get(f"/api/trials/{trial.id}/signaldetections").json()) == 1

    def test_null_status_rejected(self, client, trial):
        signal = client.post("/api/signaldetections", json={
            "trial_id": trial.id, "observation": "Late SAE reporting",
        }).json()

        response = client.patch(f"/api/signaldetections/{signal['id']}", json={"status": None})
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "status"
        assert client.get(f"/api/signaldetections/{signal['id']}").json()["status"] == "initiated"

    def test_unknown_trial(self, client):
        response = client.post("/api/signaldetections", json={"trial_id": 999, "observation": "x"})
        assert response.status_code == 404


class TestTasks:
    """Task workflow, comments and task notifications"""

    def _create(self, client, trial, **extra):
        payload = {"title": "Review lab ranges", "trial_id": trial.id, "priority": "High", **extra}
        response = client.post("/api/tasks", json=payload)
        assert response.status_code == 201
        return response.json()

    def test_create_task(self, client, trial):
        task = self._create(client, trial)
        assert task["task_id"].startswith("HIGH_")
        assert task["status"] == "not_started"
        assert task["study_name"] == trial.title

    def test_creation_notifies_assignee(self, client, trial):
        task = self._create(client, trial, assigned_to="Lisa Wong")

        notes = client.get("/api/notifications", params={"user_id": "Lisa Wong"}).json()
        assert len(notes) == 1
        assert notes[0]["title"] == f"{task['task_id']}: Review lab ranges"
        assert notes[0]["type"] == "task"

    def test_unassigned_task_notifies_data_manager(self, client, trial):
        self._create(client, trial)
        assert client.get("/api/notifications/count", params={"user_id": "Data Manager"}).json() == {"count": 1}

    def test_close_task(self, client, trial):
        task = self._create(client, trial)
        response = client.patch(f"/api/tasks/{task['id']}", json={"status": "closed"})
        assert response.status_code == 200
        assert response.json()["completed_at"] is not None

    def test_invalid_status(self, client, trial):
        task = self._create(client, trial)
        assert client.patch(f"/api/tasks/{task['id']}", json={"status": "bogus"}).status_code == 422

    def test_filters(self, client, trial):
        self._create(client, trial, assigned_to="John Carter")
        self._create(client, trial, assigned_to="Lisa Wong")

        assert len(client.get("/api/tasks").json()) == 2
        assert len(client.get("/api/tasks", params={"assigned_to": "Lisa Wong"}).json()) == 1
        assert client.get("/api/tasks", params={"status": "closed"}).json() == []

    def test_null_title_rejected(self, client, trial):
        task = self._create(client, trial)
        response = client.patch(f"/api/tasks/{task['id']}", json={"title": None, "status": "in_progress"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CDM200"

        unchanged = client.get(f"/api/tasks/{task['id']}").json()
        assert unchanged["title"] == "Review lab ranges"
        assert unchanged["status"] == "not_started"

    def test_unknown_trial(self, client, trial):
        response = client.post("/api/tasks", json={"title": "Orphan", "trial_id": 999})
        assert response.status_code == 404
        assert response.json()["error"]["details"]["entity"] == "trial"
        assert client.get("/api/tasks").json() == []

    def test_unknown_detection(self, client, trial):
        response = client.post("/api/tasks", json={"title": "Orphan", "trial_id": trial.id, "detection_id": 42})
        assert response.status_code == 404
        assert client.get("/api/tasks").json() == []

    def test_duplicate_task_id(self, client, trial):
        self._create(client, trial, task_id="TSK_DIAB2_010")
        payload = {"title": "Again", "trial_id": trial.id, "task_id": "TSK_DIAB2_010"}
        response = client.post("/api/tasks", json=payload)
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "task_id"
        assert len(client.get("/api/tasks").json()) == 1

    def test_comments(self, client, trial):
        task = self._create(client, trial)
        response = client.post(f"/api/tasks/{task['id']}/comments", json={
            "comment": "Ranges confirmed with the central lab",
            "created_by": "Lisa Wong",
            "role": "CRA",
        })
        assert response.status_code == 201
        comment = response.json()

        refreshed = client.get(f"/api/tasks/{task['id']}").json()
        assert refreshed["last_comment_by"] == "Lisa Wong"
        assert len(client.get(f"/api/tasks/{task['id']}/comments").json()) == 1

        assert client.delete(f"/api/tasks/comments/{comment['id']}").status_code == 204
        assert client.delete(f"/api/tasks/comments/{comment['id']}").status_code == 404

    def test_regenerate_notifications(self, client, trial):
        task = self._create(client, trial)
        response = client.post(f"/api/tasks/{task['id']}/notifications")
        assert response.json()["count"] == 1


class TestNotifications:
    """Notification read tracking"""

    def _create(self, client, user_id="Lisa Wong", type_="alert"):
        response = client.post("/api/notifications", json={
            "title": "Query overdue",
            "description": "Query DM-Q1-001 is overdue",
            "type": type_,
            "user_id": user_id,
        })
        assert response.status_code == 201
        return response.json()

    def test_mark_read(self, client):
        first = self._create(client)
        self._create(client)

        assert client.post("/api/notifications/mark-read", json={"ids": [first["id"]]}).json() == {"count": 1}
        assert client.get("/api/notifications/count", params={"user_id": "Lisa Wong"}).json() == {"count": 1}

        unread = client.get("/api/notifications", params={"user_id": "Lisa Wong"}).json()
        everything = client.get("/api/notifications", params={"user_id": "Lisa Wong", "include_read": True}).json()
        assert len(unread) == 1
        assert len(everything) == 2

    def test_mark_all_read_scoped_to_user(self, client):
        self._create(client, user_id="Lisa Wong")
        self._create(client, user_id="John Carter")

        response = client.post("/api/notifications/mark-all-read", json={"user_id": "Lisa Wong"})
        assert response.json() == {"count": 1}
        assert client.get("/api/notifications/count").json() == {"count": 1}

    def test_type_filter(self, client):
        self._create(client, type_="alert")
        self._create(client, type_="system")
        notes = client.get("/api/notifications", params={"types": ["system"]}).json()
        assert [n["type"] for n in notes] == ["system"]

    def test_delete(self, client):
        note = self._create(client)
        assert client.delete(f"/api/notifications/{note['id']}", params={"user_id": "Someone"}).status_code == 404
        assert client.delete(f"/api/notifications/{note['id']}").json() == {
            "message": "Notification deleted successfully"
        }

    def test_unknown_trial(self, client):
        response = client.post("/api/notifications", json={
            "title": "Query overdue", "description": "x", "type": "alert", "trial_id": 999,
        })
        assert response.status_code == 404
        assert client.get("/api/notifications/count").json() == {"count": 0}


class TestDomainData:
    """Domain records and sources"""

    def test_store_and_fetch(self, client, trial):
        response = client.post("/api/domain-data", json={
            "trial_id": trial.id,
            "domain": "LB",
            "source": "Central Laboratory",
            "records": [{"USUBJID": "S-1-001", "LBTESTCD": "HGB"}, '{"USUBJID": "S-1-002"}'],
        })
        assert response.status_code == 200
        assert response.json()["record_count"] == 2

        data = client.get("/api/domain-data", params={
            "trial_id": trial.id, "domain": "LB", "source": "Central Laboratory",
        }).json()["data"]
        assert [r["record_id"] for r in data] == ["LB-Central Laboratory-1", "LB-Central Laboratory-2"]

        assert client.get(f"/api/trial-domains/{trial.id}").json()["domains"] == ["LB"]
        assert client.get(f"/api/trial-domain-sources/{trial.id}/LB").json()["sources"] == ["Central Laboratory"]

    def test_missing_records(self, client, trial):
        response = client.get("/api/domain-data", params={"trial_id": trial.id, "domain": "AE", "source": "EDC"})
        assert response.status_code == 404

    def test_source_upsert(self, client, trial):
        payload = {
            "trial_id": trial.id, "domain": "DM", "source": "EDC", "source_type": "EDC",
            "system": "EDC", "integration_method": "Manual", "format": "SDTM",
        }
        assert client.post("/api/domain-source", json=payload).json()["message"] == "Domain source stored"

        payload["format"] = "Custom"
        response = client.post("/api/domain-source", json=payload).json()
        assert response["message"] == "Domain source updated"
        assert response["data"]["format"] == "Custom"
        assert len(client.get(f"/api/domain-sources/{trial.id}/DM").json()["data"]) == 1

    def test_sources_keyed_by_source_name(self, client, trial):
        """Two feeds on the same system stay separate; a resubmission may change the system"""
        base = {"trial_id": trial.id, "domain": "LB", "source_type": "EDC", "integration_method": "API",
                "format": "JSON"}
        client.post("/api/domain-source", json={**base, "source": "EDC", "system": "Medidata Rave"})
        client.post("/api/domain-source", json={**base, "source": "EDC Local Labs", "system": "Medidata Rave"})
        assert len(client.get(f"/api/domain-sources/{trial.id}/LB").json()["data"]) == 2

        response = client.post("/api/domain-source", json={**base, "source": "EDC", "system": "Oracle InForm"})
        assert response.json()["message"] == "Domain source updated"
        systems = {s["source"]: s["system"] for s in client.get(f"/api/domain-sources/{trial.id}/LB").json()["data"]}
        assert systems == {"EDC": "Oracle InForm", "EDC Local Labs": "Medidata Rave"}

    def test_unknown_trial(self, client):
        records = client.post("/api/domain-data", json={
            "trial_id": 999, "domain": "LB", "source": "EDC", "records": [{"USUBJID": "S-1-001"}],
        })
        assert records.status_code == 404

        source = client.post("/api/domain-source", json={
            "trial_id": 999, "domain": "LB", "source": "EDC", "source_type": "EDC", "system": "EDC",
            "integration_method": "API", "format": "JSON",
        })
        assert source.status_code == 404

        record = client.post("/api/domain-records", json={
            "trial_id": 999, "domain": "AE", "source": "EDC Safety", "record_data": {"AETERM": "HEADACHE"},
        })
        assert record.status_code == 404
        assert client.get("/api/trial-domains/999").json()["domains"] == []

    def test_single_record_lifecycle(self, client, trial):
        response = client.post("/api/domain-records", json={
            "trial_id": trial.id, "domain": "AE", "source": "EDC Safety",
            "record_data": {"AETERM": "HEADACHE"},
        })
        assert response.status_code == 201
        record = response.json()["data"]
        assert record["record_id"] == f"AE-{trial.id}-1"

        fetched = client.get(f"/api/domain-records/{record['id']}").json()
        assert fetched["data"]["parsed_data"] == {"AETERM": "HEADACHE"}

        client.put(f"/api/domain-records/{record['id']}", json={"record_data": "not json"})
        fetched = client.get(f"/api/domain-records/{record['id']}").json()
        assert "warning" in fetched

        assert client.delete(f"/api/domain-records/{record['id']}").json()["id"] == record["id"]
        assert client.get(f"/api/domain-records/{record['id']}").status_code == 404


class TestDMBot:
    """Data management simulation endpoints"""

    def test_studies(self, client):
        studies = client.get("/api/dm-bot/studies").json()
        assert [s["protocol_id"] for s in studies] == ["PRO001", "PRO002", "PRO003"]
        assert client.get("/api/dm-bot/studies/99").status_code == 404

    def test_analyze_and_resolve(self, client):
        """Analysis raises queries; resolving one moves it to the resolved list"""
        assert client.get("/api/dm-bot/studies/1/analysis").status_code == 404

        results = client.post("/api/dm-bot/studies/1/analyze").json()
        queries = client.get("/api/dm-bot/studies/1/queries").json()
        assert len(queries) == len(results["top_issues"])

        query_id = queries[0]["id"]
        reference = client.get(f"/api/dm-bot/queries/{query_id}/reference-data").json()
        assert reference["query_id"] == query_id

        response = client.patch(f"/api/dm-bot/queries/{query_id}/status", json={"status": "resolved"})
        assert response.json()["status"] == "resolved"

        resolved = client.get("/api/dm-bot/studies/1/queries", params={"state": "resolved"}).json()
        assert [q["id"] for q in resolved] == [query_id]
        assert client.get(f"/api/dm-bot/queries/{query_id}/workflow").json()[-1]["action"] == "resolved"
        assert client.get(f"/api/dm-bot/queries/{query_id}/reference-data").json()["id"] == reference["id"]

    def test_analyze_unknown_study(self, client):
        assert client.post("/api/dm-bot/studies/99/analyze").status_code == 404

    def test_unknown_query(self, client):
        response = client.patch("/api/dm-bot/queries/DM-Q9-999/status", json={"status": "assigned"})
        assert response.status_code == 404

    def test_duplicates_and_consistency(self, client):
        duplicates = client.get("/api/dm-bot/studies/1/duplicates", params={"domain": "AE"}).json()
        assert "100-003" in duplicates["affected_subjects"]

        consistency = client.get("/api/dm-bot/consistency", params={"source1": "EDC", "source2": "CTMS"}).json()
        assert consistency["affected_patients"] == ["100-001"]

    def test_schedule(self, client):
        assert client.get("/api/dm-bot/studies/2/schedule").status_code == 404
        response = client.put("/api/dm-bot/studies/2/schedule", json={
            "frequency": "weekly", "start_date": "2024-01-01T00:00:00",
        })
        assert response.json()["next_run"].startswith("2024-01-08")
        assert len(client.get("/api/dm-bot/schedules").json()) == 1

    def test_conversation(self, client):
        client.post("/api/dm-bot/studies/1/conversation", json={"role": "user", "content": "Any nulls?"})
        history = client.get("/api/dm-bot/studies/1/conversation").json()
        assert history[-1]["content"] == "Any nulls?"

        bad = client.post("/api/dm-bot/studies/1/conversation", json={"role": "system", "content": "x"})
        assert bad.status_code == 422


class TestAssistants:
    """Chat endpoints"""

    def test_list(self, client):
        assert client.get("/api/assistants").json() == {"assistants": ["central-monitor", "data-manager"]}

    def test_chat_session(self, client):
        response = client.post("/api/assistants/central-monitor/chat", json={
            "message": "How many open queries are there?",
            "session_id": "abc",
        })
        assert response.status_code == 200
        assert "3 open queries" in response.json()["response"]

        session = client.get("/api/assistants/central-monitor/sessions/abc").json()
        assert [m["role"] for m in session["messages"]] == ["user", "assistant"]

        assert client.delete("/api/assistants/central-monitor/sessions/abc").status_code == 200
        assert client.delete("/api/assistants/central-monitor/sessions/abc").status_code == 404

    def test_unknown_assistant(self, client):
        response = client.post("/api/assistants/oracle/chat", json={"message": "hello"})
        assert response.status_code == 404

    def test_empty_message_rejected(self, client):
        assert client.post("/api/assistants/data-manager/chat", json={"message": ""}).status_code == 422


class TestAsyncClient:
    """The same app driven through an async client"""

    @pytest.fixture
    async def async_client(self, client):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            yield ac

    async def test_trial_tasks(self, async_client, trial):
        await async_client.post("/api/tasks", json={"title": "Chase SAE form", "trial_id": trial.id})
        response = await async_client.get(f"/api/trials/{trial.id}/tasks")
        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["Chase SAE form"]
