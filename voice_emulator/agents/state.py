"""
LangGraph pipeline state — the single source of truth flowing through every node.

Collectors run in the same superstep, so each writes only into `collected`
(merged by key) and `error_log` (appended). Nothing else may be written by
more than one node per step.
"""

from __future__ import annotations

import operator
from typing import Annotated, Any, Literal, NotRequired, TypedDict

SourceKind = Literal["newsletter", "twitter", "linkedin", "blog"]
ContentType = Literal["newsletter", "tweet", "linkedin", "blog"]

# Fixed fan-in order; consolidation output follows it regardless of which
# collector finishes first.
SOURCE_ORDER: tuple[SourceKind, ...] = ("newsletter", "twitter", "linkedin", "blog")

CONTENT_TYPE_BY_SOURCE: dict[SourceKind, ContentType] = {
    "newsletter": "newsletter",
    "twitter": "tweet",
    "linkedin": "linkedin",
    "blog": "blog",
}


class SourceLocators(TypedDict, total=False):
    newsletter: str | None
    twitter: str | None
    linkedin: str | None
    blog: str | None
    youtube: str | None
    substack: str | None


LOCATOR_KEYS: tuple[str, ...] = (*SOURCE_ORDER, "youtube", "substack")


class DiscoveryResult(TypedDict):
    sources: SourceLocators
    raw_response: NotRequired[str]
    citations: NotRequired[list[str]]
    mock_data: NotRequired[bool]
    message: NotRequired[str]
    error: NotRequired[str]


class CollectorContext(TypedDict):
    sources: SourceLocators
    target_name: str
    hints: dict[str, str]


class CollectorResult(TypedDict):
    source: SourceKind
    items: list[dict[str, Any]]
    skipped: NotRequired[bool]
    reason: NotRequired[str]
    failed: NotRequired[bool]
    error: NotRequired[str]
    locator: NotRequired[str]
    total_scraped: NotRequired[int]


class ContentItem(TypedDict):
    type: ContentType
    content: str
    metadata: dict[str, Any]


class ConsolidatedOutput(TypedDict):
    all_content: list[ContentItem]
    total_pieces: int
    duplicates_removed: int
    counts_by_type: dict[str, int]
    document_url: str
    document_placeholder: bool


class VoiceProfile(TypedDict):
    system_prompt: str
    samples_used: int
    model: str
    synthesis_error: NotRequired[str]


def merge_collected(
    left: dict[str, CollectorResult], right: dict[str, CollectorResult]
) -> dict[str, CollectorResult]:
    return {**left, **right}


class PipelineState(TypedDict):
    """Top-level state for the pipeline graph."""

    # ── Run metadata ────────────────────────────────────────
    job_id: str
    session_id: str
    target_name: str
    hints: dict[str, str]

    # ── Stages ──────────────────────────────────────────────
    discovery: DiscoveryResult
    collected: Annotated[dict[str, CollectorResult], merge_collected]
    consolidation: ConsolidatedOutput
    voice_profile: VoiceProfile | None

    # ── Observability ───────────────────────────────────────
    error_log: Annotated[list[str], operator.add]
