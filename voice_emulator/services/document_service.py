"""
Document service — exports consolidated content as a markdown document.

Documents are rendered from templates/voice_document.md.j2, written locally
and served from the FastAPI static mount at /static/documents.
"""

from __future__ import annotations

import asyncio
import re
from collections import defaultdict
from datetime import UTC, datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from voice_emulator.agents.state import ContentItem
from voice_emulator.core.errors import DocumentExportError
from voice_emulator.core.logging import get_logger
from voice_emulator.core.security import hash_content

logger = get_logger(__name__)

STATIC_PREFIX = "/static/documents"
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"
DOCUMENT_TEMPLATE = "voice_document.md.j2"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def _engagement(item: ContentItem, *weights: tuple[str, int]) -> int:
    eng = item["metadata"].get("engagement") or {}
    return sum(int(eng.get(name) or 0) * weight for name, weight in weights)


class DocumentService:
    def __init__(self, output_dir: str | Path, base_url: str = "http://localhost:8000") -> None:
        self.output_dir = Path(output_dir)
        self.base_url = base_url.rstrip("/")

    def get_public_url(self, local_path: str | Path) -> str:
        return f"{self.base_url}{STATIC_PREFIX}/{Path(local_path).name}"

    def render_markdown(self, subject_name: str, items: list[ContentItem]) -> str:
        """Group items by type, rank social posts by engagement, and render the document."""
        grouped: dict[str, list[ContentItem]] = defaultdict(list)
        for item in items:
            grouped[item["type"]].append(item)

        template = env.get_template(DOCUMENT_TEMPLATE)
        return template.render(
            subject_name=subject_name,
            generated_at=datetime.now(UTC).strftime("%Y-%m-%d %H:%M UTC"),
            newsletters=grouped["newsletter"],
            tweets=sorted(
                grouped["tweet"],
                key=lambda t: _engagement(t, ("likes", 1), ("retweets", 2)),
                reverse=True,
            ),
            linkedin_posts=sorted(
                grouped["linkedin"],
                key=lambda p: _engagement(p, ("likes", 1), ("shares", 2)),
                reverse=True,
            ),
            blogs=grouped["blog"],
            total=len(items),
            counts=[(t.capitalize(), len(g)) for t, g in grouped.items() if g],
        )

    def _write(self, path: Path, markdown: str) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(markdown, encoding="utf-8")

    async def export(self, subject_name: str, items: list[ContentItem]) -> str:
        """Write the document and return its public URL."""
        markdown = self.render_markdown(subject_name, items)
        slug = re.sub(r"[^a-z0-9]+", "-", subject_name.lower()).strip("-") or "subject"
        date_str = datetime.now(UTC).strftime("%Y%m%d")
        path = self.output_dir / f"{slug}-voiceemulator-{date_str}-{hash_content(markdown)[:8]}.md"

        try:
            await asyncio.to_thread(self._write, path, markdown)
        except OSError as e:
            raise DocumentExportError(f"Could not write {path.name}: {e}") from e

        logger.info("document_exported", subject=subject_name, path=str(path), items=len(items))
        return self.get_public_url(path)
