"""
Discovery — resolve where a subject publishes before any collector runs.

Asks Perplexity for the subject's official newsletter, X handle, LinkedIn
profile, blog, YouTube channel and Substack. Without an API key the
user-supplied hints are used as the locators.

Errors are raised to the caller; the graph's discover node turns them into an
empty-locator result so collection can still proceed from hints.
"""

from __future__ import annotations

import json
import re

from voice_emulator.agents.state import DiscoveryResult, SourceLocators
from voice_emulator.core import http
from voice_emulator.core.config import get_settings
from voice_emulator.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

_PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"

_DISCOVERY_SYSTEM_PROMPT = (
    "You are a research assistant helping to find online content sources for creators."
)

_DISCOVERY_USER_PROMPT = """Find official content sources for {name}. Return a JSON object with these exact keys:
{{
  "newsletter_url": "full URL or null",
  "twitter_handle": "@handle or null",
  "linkedin_url": "full URL or null",
  "blog_url": "full URL or null",
  "youtube_channel": "channel URL or null",
  "substack_url": "full URL or null"
}}

Also provide a brief explanation of what you found. If you cannot find a specific source, set it to null. Always provide the complete URLs, not just domain names."""

_JSON_OBJECT = re.compile(r"\{[\s\S]*?\}")
_URL = re.compile(r"https?://[^\s\)\]\[\"'<>]+")
_CITATION_SUFFIX = re.compile(r"\[\d+\]$")
_HANDLE_PATTERNS = [
    re.compile(r"Twitter/X handle:\s*@?(\w+)", re.IGNORECASE),
    re.compile(r"X handle:\s*@?(\w+)", re.IGNORECASE),
    re.compile(r"Twitter:\s*@?(\w+)", re.IGNORECASE),
    re.compile(r"@(\w+)"),
]
_BLOG_PATTERNS = [
    re.compile(r"Blog/Website URL:\s*(https?://[^\s\)\[]+)", re.IGNORECASE),
    re.compile(r"official website.*?(https?://[^\s\)\[]+)", re.IGNORECASE),
    re.compile(r"website.*?(https?://[^\s\)\[]+)", re.IGNORECASE),
]


def sources_from_hints(hints: dict[str, str]) -> SourceLocators:
    return SourceLocators(
        newsletter=hints.get("newsletter") or None,
        twitter=hints.get("twitter") or hints.get("handle") or None,
        linkedin=hints.get("linkedin") or None,
        blog=hints.get("blog") or hints.get("website") or None,
    )


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "n/a"):
        return None
    return _CITATION_SUFFIX.sub("", value)


def _extract_url(text: str, keyword: str) -> str | None:
    for url in _URL.findall(text):
        if keyword in url.lower():
            return _CITATION_SUFFIX.sub("", url)
    return None


def _extract_handle(text: str) -> str | None:
    for pattern in _HANDLE_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"@{match.group(1)}"
    return None


def _extract_blog_url(text: str) -> str | None:
    for pattern in _BLOG_PATTERNS:
        match = pattern.search(text)
        if match:
            return _CITATION_SUFFIX.sub("", match.group(1))
    return None


def parse_locators(answer: str, hints: dict[str, str]) -> SourceLocators:
    """
    Pull source locators out of a model answer.

    The first JSON object in the answer wins; if there is none or it does not
    parse, URLs and handles are pattern-matched from the prose instead.
    """
    match = _JSON_OBJECT.search(answer)
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.info("discovery_json_unparseable", fallback="pattern_matching")
        else:
            return SourceLocators(
                newsletter=_clean(data.get("newsletter_url")) or _clean(data.get("substack_url")),
                twitter=_clean(data.get("twitter_handle")),
                linkedin=_clean(data.get("linkedin_url")),
                blog=_clean(data.get("blog_url")),
                youtube=_clean(data.get("youtube_channel")),
                substack=_clean(data.get("substack_url")),
            )

    return SourceLocators(
        newsletter=_extract_url(answer, "substack") or _extract_url(answer, "newsletter"),
        twitter=_extract_handle(answer),
        linkedin=_extract_url(answer, "linkedin"),
        blog=_extract_blog_url(answer) or hints.get("website") or None,
        youtube=_extract_url(answer, "youtube"),
        substack=_extract_url(answer, "substack"),
    )


async def discover_sources(target_name: str, hints: dict[str, str]) -> DiscoveryResult:
    """Resolve source locators for `target_name`. Raises on API failure."""
    if not settings.perplexity_api_key or settings.perplexity_api_key == "mock":
        logger.warning("discovery_skipped", reason="no Perplexity API key configured")
        return DiscoveryResult(
            sources=sources_from_hints(hints),
            mock_data=True,
            message="Using provided hints as sources (no Perplexity API key configured)",
        )

    async with http.http_client(timeout=settings.discovery_timeout_seconds) as client:
        resp = await client.post(
            _PERPLEXITY_API_URL,
            headers={"Authorization": f"Bearer {settings.perplexity_api_key}"},
            json={
                "model": settings.perplexity_model,
                "messages": [
                    {"role": "system", "content": _DISCOVERY_SYSTEM_PROMPT},
                    {"role": "user", "content": _DISCOVERY_USER_PROMPT.format(name=target_name)},
                ],
                "temperature": 0.2,
                "max_tokens": 1000,
            },
        )
        resp.raise_for_status()
        data = resp.json()

    answer: str = data["choices"][0]["message"]["content"]
    sources = parse_locators(answer, hints)

    # Hints fill whatever the search could not find.
    for key, value in sources_from_hints(hints).items():
        if value and not sources.get(key):
            sources[key] = value

    found = sorted(k for k, v in sources.items() if v)
    logger.info("discovery_complete", target=target_name, found=found)
    return DiscoveryResult(
        sources=sources,
        raw_response=answer,
        citations=list(data.get("citations", [])),
    )
