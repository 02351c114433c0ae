"""
Consolidation — merge the four collector outputs into one deduplicated list.

Merge order is newsletter, twitter, linkedin, blog with each source's own
order preserved. Duplicates share (type, dedup key):
  tweet / linkedin   → metadata id
  newsletter / blog  → URL without protocol or trailing slash, lowercased
Items without a key are always kept; items without content are dropped.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from voice_emulator.agents.state import (
    CONTENT_TYPE_BY_SOURCE,
    SOURCE_ORDER,
    CollectorResult,
    ConsolidatedOutput,
    ContentItem,
)
from voice_emulator.core.errors import ConsolidationError
from voice_emulator.core.logging import get_logger

logger = get_logger(__name__)

ExportFn = Callable[[str, list[ContentItem]], Awaitable[str]]

_SCHEME = re.compile(r"^[a-z][a-z0-9+.\-]*://")


def normalize_url(url: str) -> str:
    return _SCHEME.sub("", url.strip().lower()).rstrip("/")


def dedup_key(item: ContentItem) -> str | None:
    metadata = item["metadata"]
    if item["type"] in ("tweet", "linkedin"):
        key = metadata.get("id")
        return str(key) if key not in (None, "") else None
    url = metadata.get("url")
    if isinstance(url, str) and url.strip():
        return normalize_url(url)
    return None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ("" if value is None else str(value))


def _article_item(content_type: str, raw: Mapping[str, Any]) -> ContentItem:
    return ContentItem(
        type=content_type,
        content=_text(raw.get("content")),
        metadata={
            "title": raw.get("title"),
            "url": raw.get("url"),
            "extracted_at": raw.get("extracted_at"),
        },
    )


def _tweet_item(raw: Mapping[str, Any]) -> ContentItem:
    return ContentItem(
        type="tweet",
        content=_text(raw.get("text")),
        metadata={
            "id": raw.get("id"),
            "engagement": raw.get("engagement"),
            "created_at": raw.get("created_at"),
        },
    )


def _linkedin_item(raw: Mapping[str, Any]) -> ContentItem:
    return ContentItem(
        type="linkedin",
        content=_text(raw.get("text")),
        metadata={
            "id": raw.get("id"),
            "engagement": raw.get("engagement"),
            "posted_at": raw.get("posted_at"),
        },
    )


def to_content_items(result: CollectorResult) -> list[ContentItem]:
    source = result["source"]
    if source not in CONTENT_TYPE_BY_SOURCE:
        raise ConsolidationError(f"Unknown content source: {source!r}")

    items: list[ContentItem] = []
    for raw in result.get("items", []):
        if not isinstance(raw, Mapping):
            raise ConsolidationError(
                f"{source} produced an unmergeable item of type {type(raw).__name__}"
            )
        if source == "twitter":
            items.append(_tweet_item(raw))
        elif source == "linkedin":
            items.append(_linkedin_item(raw))
        else:
            items.append(_article_item(CONTENT_TYPE_BY_SOURCE[source], raw))
    return items


def merge_and_dedupe(results: Sequence[CollectorResult]) -> tuple[list[ContentItem], int]:
    """Return the merged items and how many duplicates were dropped."""
    by_source = {r["source"]: r for r in results}
    unknown = set(by_source) - set(SOURCE_ORDER)
    if unknown:
        raise ConsolidationError(f"Unknown content source(s): {', '.join(sorted(unknown))}")
    merged: list[ContentItem] = []
    seen: set[tuple[str, str]] = set()
    removed = 0

    for source in SOURCE_ORDER:
        result = by_source.get(source)
        if result is None:
            continue
        for item in to_content_items(result):
            if not item["content"].strip():
                continue
            key = dedup_key(item)
            if key is not None:
                if (item["type"], key) in seen:
                    removed += 1
                    continue
                seen.add((item["type"], key))
            merged.append(item)

    return merged, removed


def placeholder_reference(subject_name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", subject_name.lower()).strip("-") or "subject"
    return f"placeholder://documents/{slug}"


async def consolidate(
    results: Sequence[CollectorResult], subject_name: str, exporter: ExportFn
) -> ConsolidatedOutput:
    """Merge collector results and export them as a document.

    Export failures are absorbed: a placeholder reference is returned instead.
    Nothing is exported when no content was collected.
    """
    all_content, removed = merge_and_dedupe(results)

    document_url = placeholder_reference(subject_name)
    placeholder = True
    if all_content:
        try:
            document_url = await exporter(subject_name, all_content)
            placeholder = False
        except Exception as e:
            logger.error("document_export_failed", subject=subject_name, error=str(e))

    counts = Counter(item["type"] for item in all_content)
    logger.info(
        "consolidation_complete",
        total=len(all_content),
        duplicates_removed=removed,
        placeholder=placeholder,
    )
    return ConsolidatedOutput(
        all_content=all_content,
        total_pieces=len(all_content),
        duplicates_removed=removed,
        counts_by_type=dict(counts),
        document_url=document_url,
        document_placeholder=placeholder,
    )
