"""
Collectors — one per content source, fanned out in parallel after discovery.

Each collector takes the session id and a CollectorContext and returns a
CollectorResult. A missing locator or API key yields a skipped result; any
other problem is raised and converted into a failure marker by the
coordinator's guard, so collectors themselves do not need to be exception-safe.
"""

from __future__ import annotations

import asyncio
import re
from datetime import UTC, datetime
from typing import Any

import httpx

from voice_emulator.agents.state import CollectorContext, CollectorResult, SourceKind
from voice_emulator.core import http
from voice_emulator.core.config import get_settings
from voice_emulator.core.errors import CollectorError
from voice_emulator.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _skipped(source: SourceKind, reason: str) -> CollectorResult:
    logger.info("collector_skipped", source=source, reason=reason)
    return CollectorResult(source=source, items=[], skipped=True, reason=reason)


def _first(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return default


def _markdown_title(markdown: str) -> str:
    match = re.search(r"^#\s+(.+)$", markdown, re.MULTILINE)
    return match.group(1).strip() if match else "Untitled"


# ═══════════════════════════════════════════════════════════════
# Firecrawl (newsletter + blog)
# ═══════════════════════════════════════════════════════════════
_FIRECRAWL_API_URL = "https://api.firecrawl.dev/v1"


async def _firecrawl_scrape(client: httpx.AsyncClient, url: str, wait_for: int) -> str:
    resp = await client.post(
        f"{_FIRECRAWL_API_URL}/scrape",
        headers={"Authorization": f"Bearer {settings.firecrawl_api_key}"},
        json={"url": url, "formats": ["markdown"], "onlyMainContent": True, "waitFor": wait_for},
    )
    resp.raise_for_status()
    return (resp.json().get("data") or {}).get("markdown") or ""


async def collect_newsletter(session_id: str, context: CollectorContext) -> CollectorResult:
    """Scrape the newsletter landing page as markdown."""
    url = context["sources"].get("newsletter")
    if not url:
        return _skipped("newsletter", "no newsletter source found")
    if not settings.firecrawl_api_key:
        return _skipped("newsletter", "no Firecrawl API key configured")

    async with http.http_client(timeout=60) as client:
        markdown = await _firecrawl_scrape(client, url, wait_for=5000)

    items = []
    if markdown:
        items.append(
            {
                "url": url,
                "title": _markdown_title(markdown),
                "content": markdown,
                "extracted_at": _now(),
            }
        )

    logger.info("newsletter_collected", session_id=session_id, articles=len(items))
    return CollectorResult(source="newsletter", items=items, locator=url)


_BLOG_PATTERNS = [
    re.compile(r"/blog/", re.IGNORECASE),
    re.compile(r"/post/", re.IGNORECASE),
    re.compile(r"/article/", re.IGNORECASE),
    re.compile(r"/\d{4}/\d{2}/"),
    re.compile(r"/essays?/", re.IGNORECASE),
    re.compile(r"/writing/", re.IGNORECASE),
]
_NAVIGATION_MARKERS = ("/tag/", "/category/", "/page/", "/author/", "#")


def select_post_urls(links: list[str], blog_url: str, limit: int) -> list[str]:
    """Pick likely article URLs from a site map, falling back to any non-navigation link."""
    candidates = [
        url
        for url in links
        if not any(marker in url for marker in _NAVIGATION_MARKERS)
        and not url.endswith(("/feed/", ".xml"))
        and any(p.search(url) for p in _BLOG_PATTERNS)
    ]
    if not candidates:
        candidates = [url for url in links if "#" not in url and url.rstrip("/") != blog_url.rstrip("/")]
    return candidates[:limit]


async def collect_blog(session_id: str, context: CollectorContext) -> CollectorResult:
    """Map the blog with Firecrawl and scrape the first few posts."""
    blog_url = context["sources"].get("blog") or context["hints"].get("website")
    if not blog_url:
        return _skipped("blog", "no blog URL found")
    if not settings.firecrawl_api_key:
        return _skipped("blog", "no Firecrawl API key configured")

    articles: list[dict[str, Any]] = []
    async with http.http_client(timeout=45) as client:
        resp = await client.post(
            f"{_FIRECRAWL_API_URL}/map",
            headers={"Authorization": f"Bearer {settings.firecrawl_api_key}"},
            json={"url": blog_url, "limit": 100, "ignoreSitemap": False},
        )
        resp.raise_for_status()
        links = [link for link in resp.json().get("links", []) if isinstance(link, str)]
        post_urls = select_post_urls(links, blog_url, settings.max_blog_posts)

        for url in post_urls:
            try:
                markdown = await _firecrawl_scrape(client, url, wait_for=2000)
            except httpx.HTTPError as e:
                logger.warning("blog_post_scrape_failed", url=url, error=str(e))
                continue
            if not markdown:
                continue
            articles.append(
                {
                    "url": url,
                    "title": _markdown_title(markdown),
                    "content": markdown[: settings.blog_content_chars],
                    "extracted_at": _now(),
                }
            )

    logger.info(
        "blog_collected",
        session_id=session_id,
        urls_mapped=len(links),
        articles=len(articles),
    )
    return CollectorResult(source="blog", items=articles, locator=blog_url)


# ═══════════════════════════════════════════════════════════════
# Apify actors (Twitter/X + LinkedIn)
# ═══════════════════════════════════════════════════════════════
_APIFY_API_URL = "https://api.apify.com/v2"
_APIFY_TERMINAL_FAILURES = ("FAILED", "ABORTED", "TIMED-OUT")


async def _run_apify_actor(
    client: httpx.AsyncClient, actor: str, payload: dict[str, Any]
) -> list[dict[str, Any]]:
    """
    Start an Apify actor run, poll until it settles and return its dataset items.

    Polling has no deadline of its own; the coordinator's per-collector
    timeout bounds it.
    """
    auth = {"Authorization": f"Bearer {settings.apify_api_key}"}
    resp = await client.post(f"{_APIFY_API_URL}/acts/{actor}/runs", headers=auth, json=payload)
    if resp.status_code == 403:
        raise CollectorError(f"Apify actor {actor} requires a paid plan")
    resp.raise_for_status()
    run = resp.json().get("data", {})

    while True:
        await asyncio.sleep(settings.apify_poll_interval_seconds)
        status_resp = await client.get(f"{_APIFY_API_URL}/actor-runs/{run['id']}", headers=auth)
        status_resp.raise_for_status()
        status = status_resp.json().get("data", {})

        if status.get("status") == "SUCCEEDED":
            items_resp = await client.get(
                f"{_APIFY_API_URL}/datasets/{status['defaultDatasetId']}/items", headers=auth
            )
            items_resp.raise_for_status()
            return [item for item in items_resp.json() if isinstance(item, dict)]
        if status.get("status") in _APIFY_TERMINAL_FAILURES:
            raise CollectorError(f"Apify actor {actor} ended with status {status['status']}")


def _tweet_engagement(tweet: dict[str, Any]) -> int:
    eng = tweet["engagement"]
    return eng["likes"] + eng["retweets"] * 2 + eng["replies"]


def normalize_tweets(raw: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    """Map actor output onto tweets and keep the `limit` most engaged ones."""
    tweets = [
        {
            "id": _first(r, "id", "tweetId"),
            "text": _first(r, "text", "full_text", "tweetText", default=""),
            "engagement": {
                "likes": int(_first(r, "likeCount", "favorite_count", "likes", default=0)),
                "retweets": int(_first(r, "retweetCount", "retweet_count", "retweets", default=0)),
                "replies": int(_first(r, "replyCount", "reply_count", "replies", default=0)),
            },
            "created_at": _first(r, "created_at", "createdAt", "tweetCreatedAt"),
        }
        for r in raw
    ]
    tweets = [t for t in tweets if t["text"]]
    tweets.sort(key=_tweet_engagement, reverse=True)
    return tweets[:limit]


async def collect_twitter(session_id: str, context: CollectorContext) -> CollectorResult:
    handle = context["sources"].get("twitter") or context["hints"].get("handle")
    if not handle:
        return _skipped("twitter", "no Twitter/X handle found")
    if not settings.apify_api_key:
        return _skipped("twitter", "no Apify API key configured")

    clean_handle = handle.lstrip("@")
    async with http.http_client(timeout=30) as client:
        raw = await _run_apify_actor(
            client,
            settings.apify_twitter_actor,
            {
                "searchTerms": [f"from:{clean_handle}"],
                "lang": "en",
                "maxItems": settings.max_tweets * 2,
                "addUserInfo": True,
            },
        )

    tweets = normalize_tweets(raw, settings.max_tweets)
    logger.info("twitter_collected", session_id=session_id, scraped=len(raw), kept=len(tweets))
    return CollectorResult(source="twitter", items=tweets, locator=handle, total_scraped=len(raw))


def _post_engagement(post: dict[str, Any]) -> int:
    eng = post["engagement"]
    return eng["likes"] + eng["comments"] * 2 + eng["shares"] * 3


def normalize_linkedin_posts(raw: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    """Map actor output onto posts and keep the `limit` most engaged ones.

    Posts without any id are kept with id=None rather than given a made-up one.
    """
    posts = [
        {
            "id": _first(r, "id", "postId", "urn", "url"),
            "text": _first(r, "text", "content", "postText", default=""),
            "engagement": {
                "likes": int(_first(r, "likes", "likeCount", "reactions", default=0)),
                "comments": int(_first(r, "comments", "commentCount", "numComments", default=0)),
                "shares": int(_first(r, "shares", "shareCount", "reposts", default=0)),
            },
            "posted_at": _first(r, "postedAt", "publishedAt", "createdAt", "date"),
        }
        for r in raw
    ]
    posts = [p for p in posts if p["text"]]
    posts.sort(key=_post_engagement, reverse=True)
    return posts[:limit]


async def collect_linkedin(session_id: str, context: CollectorContext) -> CollectorResult:
    profile_url = context["sources"].get("linkedin")
    if not profile_url:
        return _skipped("linkedin", "no LinkedIn profile found")
    if not settings.apify_api_key:
        return _skipped("linkedin", "no Apify API key configured")

    async with http.http_client(timeout=30) as client:
        raw = await _run_apify_actor(
            client,
            settings.apify_linkedin_actor,
            {"username": profile_url, "limit": settings.max_linkedin_posts * 2, "page_number": 1},
        )

    posts = normalize_linkedin_posts(raw, settings.max_linkedin_posts)
    logger.info("linkedin_collected", session_id=session_id, scraped=len(raw), kept=len(posts))
    return CollectorResult(
        source="linkedin", items=posts, locator=profile_url, total_scraped=len(raw)
    )


COLLECTORS = {
    "newsletter": collect_newsletter,
    "twitter": collect_twitter,
    "linkedin": collect_linkedin,
    "blog": collect_blog,
}
