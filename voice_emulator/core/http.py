"""
Outbound HTTP client factory shared by discovery and the collectors.
"""

from __future__ import annotations

import httpx

USER_AGENT = "voice-emulator/0.1.0"


def http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )
