"""
Shared pytest fixtures for unit and integration tests.

Collaborators are replaced with in-process fakes and FakeListChatModel —
no API keys or network access needed.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from voice_emulator.agents.graph import PipelineDeps
from voice_emulator.agents.nodes.discovery import sources_from_hints
from voice_emulator.agents.state import CollectorResult, DiscoveryResult
from voice_emulator.core.errors import DocumentExportError
from voice_emulator.core.security import limiter
from voice_emulator.services.job_store import JobStore

DOCUMENT_URL = "http://testserver/static/documents/jane-doe.md"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def mock_llm() -> FakeListChatModel:
    """Deterministic mock LLM that returns a canned voice prompt."""
    return FakeListChatModel(
        responses=["You are writing as Jane Doe. Short sentences, dry humour, lots of data."]
    )


@pytest.fixture
def store() -> JobStore:
    return JobStore(retention_seconds=60)


# ── Sample collector output ─────────────────────────────────
@pytest.fixture
def newsletter_items() -> list[dict[str, Any]]:
    return [
        {
            "url": "https://janedoe.substack.com/p/on-focus",
            "title": "On Focus",
            "content": "Most of what we call productivity is just saying no.",
            "extracted_at": "2025-01-15T10:00:00+00:00",
        },
    ]


@pytest.fixture
def tweet_items() -> list[dict[str, Any]]:
    return [
        {
            "id": "1001",
            "text": "Shipping beats planning. Every time.",
            "engagement": {"likes": 120, "retweets": 30, "replies": 4},
            "created_at": "2025-01-14T08:00:00Z",
        },
        {
            "id": "1002",
            "text": "Read more old books.",
            "engagement": {"likes": 40, "retweets": 2, "replies": 1},
            "created_at": "2025-01-13T08:00:00Z",
        },
    ]


@pytest.fixture
def linkedin_items() -> list[dict[str, Any]]:
    return [
        {
            "id": "urn:li:activity:1",
            "text": "Hiring is the job. Everything else is a side quest.",
            "engagement": {"likes": 300, "comments": 25, "shares": 10},
            "posted_at": "2025-01-10",
        },
    ]


@pytest.fixture
def blog_items() -> list[dict[str, Any]]:
    return [
        {
            "url": "https://janedoe.com/blog/why-i-write",
            "title": "Why I Write",
            "content": "# Why I Write\n\nWriting is thinking with a paper trail.",
            "extracted_at": "2025-01-12T09:00:00+00:00",
        },
    ]


# ── Fake collaborators ──────────────────────────────────────
@pytest.fixture
def fake_collector():
    """Factory for collectors with a scripted outcome."""

    def make(
        items: list[Any] | None = None,
        *,
        error: BaseException | None = None,
        skipped: bool = False,
        delay: float = 0,
        started: asyncio.Event | None = None,
        raw: Any = None,
    ):
        async def collector(session_id: str, context) -> CollectorResult:
            if started is not None:
                started.set()
            if delay:
                await asyncio.sleep(delay)
            if error is not None:
                raise error
            if raw is not None:
                return raw
            if skipped:
                return {"items": [], "skipped": True, "reason": "no source found"}
            return {"items": list(items or [])}

        return collector

    return make


@pytest.fixture
def exported() -> list[tuple[str, int]]:
    """Records (subject, item count) for every successful export."""
    return []


@pytest.fixture
def fake_exporter(exported):
    async def export(subject_name: str, items) -> str:
        exported.append((subject_name, len(items)))
        return DOCUMENT_URL

    return export


@pytest.fixture
def failing_exporter():
    async def export(subject_name: str, items) -> str:
        raise DocumentExportError("document backend unavailable")

    return export


@pytest.fixture
def fake_discover():
    async def discover(target_name: str, hints: dict[str, str]) -> DiscoveryResult:
        return DiscoveryResult(sources=sources_from_hints(hints))

    return discover


@pytest.fixture
def make_deps(fake_collector, fake_exporter, fake_discover):
    """Build PipelineDeps; every collector defaults to a skipped result."""

    def make(**overrides: Any) -> PipelineDeps:
        collectors = {
            source: overrides.pop(source, None) or fake_collector(skipped=True)
            for source in ("newsletter", "twitter", "linkedin", "blog")
        }
        return PipelineDeps(
            discover=overrides.pop("discover", fake_discover),
            collectors=collectors,
            exporter=overrides.pop("exporter", fake_exporter),
            **overrides,
        )

    return make
