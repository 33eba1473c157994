"""Intake wizard endpoint tests."""

import pytest
from httpx import AsyncClient

from conftest import GOALS, TOPIC

CORE = {"entryPoint": "learning_goal", "projectTopic": TOPIC, "learningGoals": GOALS}


async def _create(client: AsyncClient, **body) -> str:
    resp = await client.post("/api/intake/", json=body)
    assert resp.status_code == 201
    return resp.json()["record_id"]


@pytest.mark.api
@pytest.mark.asyncio
class TestIntakeLifecycle:
    """Create, read and update intake drafts."""

    async def test_create(self, client: AsyncClient, draft_store):
        """POST /intake/ starts a session on the first step and saves it."""
        resp = await client.post("/api/intake/", json={"record_id": "rec-1"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["record_id"] == "rec-1"
        assert data["current_step"] == 0
        assert data["current_step_id"] == "intake"
        assert data["step_count"] == 4
        assert data["is_complete"] is False
        assert data["record"]["schemaVersion"] == 3
        assert data["last_save"]["ok"] is True
        assert "rec-1" in draft_store

    async def test_create_generates_id(self, client: AsyncClient):
        record_id = await _create(client)
        assert len(record_id) == 36

    async def test_create_from_legacy_draft(self, client: AsyncClient, legacy_v1):
        """A legacy draft is upgraded on the way in."""
        resp = await client.post("/api/intake/", json={"draft": legacy_v1})
        assert resp.status_code == 201
        record = resp.json()["record"]
        assert record["projectTopic"] == legacy_v1["title"]
        assert record["subjects"] == ["Science"]

    async def test_get_progress(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.get(f"/api/intake/{record_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["completeness"]["core"] == 33
        assert data["violations"] == []

    async def test_get_unknown_draft(self, client: AsyncClient):
        resp = await client.get("/api/intake/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "DRAFT_NOT_FOUND"

    async def test_patch_merges(self, client: AsyncClient, draft_store):
        """PATCH /intake/{id} merges fields and persists before answering."""
        record_id = await _create(client)
        resp = await client.patch(f"/api/intake/{record_id}", json=CORE)
        assert resp.status_code == 200
        data = resp.json()
        assert data["record"]["projectTopic"] == TOPIC
        assert data["completeness"]["core"] == 100
        assert 0 in data["valid_steps"]

        stored = await draft_store.load(record_id)
        assert stored.record["learningGoals"] == GOALS

    async def test_patch_wrong_type(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.patch(f"/api/intake/{record_id}", json={"duration": "forever"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_patch_caps_subjects(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.patch(
            f"/api/intake/{record_id}",
            json={"subjects": ["Math", "Art", "Music", "History", "Science", "Drama"]},
        )
        assert resp.status_code == 200
        assert resp.json()["record"]["subjects"] == ["Math", "Art", "Music", "History", "Science"]


@pytest.mark.api
@pytest.mark.asyncio
class TestIntakeValidation:

    async def test_step_validation(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.get(f"/api/intake/{record_id}/steps/context")
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is False
        assert data["violations"] == ["Please select at least one subject."]

    async def test_unknown_step(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.get(f"/api/intake/{record_id}/steps/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "UNKNOWN_STEP"

    async def test_add_context_item(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.post(
            f"/api/intake/{record_id}/context",
            json={"key": "classSize", "value": 28, "source": "chat", "confidence": 0.7},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["record"]["progressiveContext"]["classSize"]["value"] == 28
        assert data["completeness"]["progressive"] == 10

        resp = await client.post(f"/api/intake/{record_id}/context", json={"key": "", "value": 1})
        assert resp.status_code == 422

    async def test_completeness(self, client: AsyncClient):
        record_id = await _create(client)
        await client.patch(f"/api/intake/{record_id}", json={
            "subjects": ["Science", "Art"],
            "gradeLevel": "6-8",
            "progressiveContext": {"location": "Portland", "classSize": 28, "budget": "low"},
        })
        resp = await client.get(f"/api/intake/{record_id}/completeness")
        assert resp.status_code == 200
        data = resp.json()
        assert data["context"] == 100
        assert data["missing"] == []
        assert data["progressive"] == 30


@pytest.mark.api
@pytest.mark.asyncio
class TestIntakeNavigation:

    async def test_next_refused_with_messages(self, client: AsyncClient):
        """A blocked forward move is a normal response carrying violations."""
        record_id = await _create(client)
        resp = await client.post(f"/api/intake/{record_id}/next")
        assert resp.status_code == 200
        data = resp.json()
        assert data["current_step"] == 0
        assert "Please enter project topic (at least 20 characters)." in data["violations"]

    async def test_goto_unvisited_step_ignored(self, client: AsyncClient):
        record_id = await _create(client)
        resp = await client.post(f"/api/intake/{record_id}/goto/2")
        assert resp.status_code == 200
        assert resp.json()["current_step"] == 0

        resp = await client.post(f"/api/intake/{record_id}/goto/99")
        assert resp.json()["current_step"] == 0

    async def test_back_and_jump_forward_again(self, client: AsyncClient):
        record_id = await _create(client)
        await client.patch(f"/api/intake/{record_id}", json=CORE)
        await client.post(f"/api/intake/{record_id}/next")
        await client.patch(f"/api/intake/{record_id}", json={"subjects": ["Art"]})
        await client.post(f"/api/intake/{record_id}/next")

        resp = await client.post(f"/api/intake/{record_id}/goto/0")
        assert resp.json()["current_step"] == 0
        resp = await client.post(f"/api/intake/{record_id}/goto/1")
        assert resp.json()["current_step"] == 1

        resp = await client.post(f"/api/intake/{record_id}/previous")
        assert resp.json()["current_step"] == 0

    async def test_full_flow_hands_off(self, client: AsyncClient, draft_store):
        """Walking every step ends in the hand-off with the project projection."""
        record_id = await _create(client)
        await client.patch(f"/api/intake/{record_id}", json=CORE)
        assert (await client.post(f"/api/intake/{record_id}/next")).json()["current_step"] == 1
        await client.patch(f"/api/intake/{record_id}", json={"subjects": ["Science"], "gradeLevel": "6-8"})
        assert (await client.post(f"/api/intake/{record_id}/next")).json()["current_step"] == 2
        assert (await client.post(f"/api/intake/{record_id}/next")).json()["current_step"] == 3

        resp = await client.post(f"/api/intake/{record_id}/next")
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_complete"] is True
        assert data["record"]["metadata"]["wizardCompleted"] is True
        assert data["project"]["title"] == TOPIC
        assert data["project"]["primary_subject"] == "Science"

        stored = await draft_store.load(record_id)
        assert stored.metadata.completed is True

        resp = await client.get(f"/api/intake/{record_id}")
        assert resp.json()["is_complete"] is True


@pytest.mark.api
@pytest.mark.asyncio
class TestIntakeUtilities:

    async def test_steps(self, client: AsyncClient):
        resp = await client.get("/api/intake/steps")
        assert resp.status_code == 200
        steps = resp.json()["steps"]
        assert [step["id"] for step in steps] == ["intake", "context", "experience", "review"]
        assert steps[0]["fields"] == ["entry_point", "project_topic", "learning_goals"]

    async def test_suggestions(self, client: AsyncClient):
        resp = await client.get("/api/intake/suggestions", params={"q": "school garden"})
        assert resp.status_code == 200
        assert "Growing and harvesting a school garden" in resp.json()["suggestions"]

    async def test_migrate(self, client: AsyncClient, legacy_v2):
        resp = await client.post("/api/intake/migrate", json={"draft": legacy_v2, "legacy_version": 2})
        assert resp.status_code == 200
        data = resp.json()
        assert data["source_version"] == 2
        assert data["recovered"] is False
        assert data["record"]["entryPoint"] == "materials_first"
        assert data["legacy"]["vision"] == legacy_v2["vision"]

    async def test_migrate_garbage(self, client: AsyncClient):
        resp = await client.post("/api/intake/migrate", json={"draft": "nonsense"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["recovered"] is True
        assert data["warnings"]

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
