"""
Security utilities: API key auth and rate limiting.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from voice_emulator.core.config import Settings, get_settings

# ── Rate limiter (attached to FastAPI app in main.py) ───────
limiter = Limiter(key_func=get_remote_address)

# ── API Key authentication ──────────────────────────────────
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: Annotated[str | None, Security(_api_key_header)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    if not api_key or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API key",
        )
    return api_key


def hash_content(content: str) -> str:
    """Deterministic content hash used for document file names."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
