"""Pytest configuration and fixtures for intake tests.

Provides an in-memory draft store, an HTTP client wired to it, and a few
representative drafts (current and legacy shapes).
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from project_intake.main import app
from project_intake.schemas.intake import EntryPoint, IntakeRecord, update_record, default_record
from project_intake.services.drafts import InMemoryDraftStore, get_draft_store

TOPIC = "Designing a rain garden for the school"
GOALS = "Students learn how water moves through soil and plants"


# ── Draft store / client ─────────────────────────────────────────

@pytest.fixture
def draft_store() -> InMemoryDraftStore:
    return InMemoryDraftStore()


@pytest_asyncio.fixture
async def client(draft_store) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the draft store swapped for an in-memory one."""
    app.dependency_overrides[get_draft_store] = lambda: draft_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Record fixtures ──────────────────────────────────────────────

@pytest.fixture
def blank_record() -> IntakeRecord:
    return default_record()


@pytest.fixture
def core_record() -> IntakeRecord:
    """Core fields answered, context untouched."""
    return update_record(default_record(), {
        "entryPoint": EntryPoint.LEARNING_GOAL.value,
        "projectTopic": TOPIC,
        "learningGoals": GOALS,
    })


@pytest.fixture
def complete_record(core_record) -> IntakeRecord:
    """Every step's required fields answered."""
    return update_record(core_record, {
        "subjects": ["Science", "Art"],
        "gradeLevel": "6-8",
        "duration": "medium",
    })


@pytest.fixture
def legacy_v1() -> dict:
    return {
        "title": TOPIC,
        "motivation": GOALS,
        "subject": "Science",
        "ageGroup": "9-12",
        "scope": "long",
        "location": "Portland, OR",
        "materials": "Shovels, seeds and rain gauges",
        "createdAt": "2024-03-01T09:30:00.000Z",
        "updatedAt": "2024-03-02T10:00:00.500Z",
    }


@pytest.fixture
def legacy_v2() -> dict:
    return {
        "entryPoint": "materials",
        "vision": "Students build persuasive writing skills",
        "drivingQuestion": "How can we convince the city to add bike lanes?",
        "subject": "English",
        "gradeLevel": "6-8",
        "duration": "short",
        "pblExperience": "new",
        "specialConsiderations": "Two students are English language learners",
    }
