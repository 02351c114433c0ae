"""
Fan-out / fan-in coordination for the collectors.

The graph launches the four collector nodes in one superstep and joins them
into consolidation with a single multi-source edge. This module supplies the
pieces around that: the guard that turns every collector error into data, the
node factory that reports results into state, and the ordered fan-in.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from voice_emulator.agents.state import (
    SOURCE_ORDER,
    CollectorContext,
    CollectorResult,
    PipelineState,
    SourceKind,
)
from voice_emulator.core.logging import get_logger

logger = get_logger(__name__)

CollectorFn = Callable[[str, CollectorContext], Awaitable[CollectorResult]]


def failure_marker(source: SourceKind, error: str) -> CollectorResult:
    return CollectorResult(source=source, items=[], failed=True, error=error)


def guard_collector(source: SourceKind, collector: CollectorFn, timeout: float) -> CollectorFn:
    """
    Wrap a collector so it always settles to a CollectorResult.

    Exceptions, timeouts and malformed return values become failure markers.
    Cancellation is not intercepted.
    """

    async def guarded(session_id: str, context: CollectorContext) -> CollectorResult:
        try:
            result: Any = await asyncio.wait_for(collector(session_id, context), timeout=timeout)
        except TimeoutError:
            logger.warning("collector_timed_out", source=source, timeout=timeout)
            return failure_marker(source, f"timed out after {timeout:g}s")
        except Exception as e:
            logger.error("collector_failed", source=source, error=str(e))
            return failure_marker(source, str(e) or e.__class__.__name__)

        if not isinstance(result, Mapping) or not isinstance(result.get("items", []), list):
            logger.error("collector_malformed_result", source=source)
            return failure_marker(source, "collector returned a malformed result")

        return CollectorResult(**{**result, "source": source, "items": list(result.get("items", []))})

    return guarded


def collector_context(state: PipelineState) -> CollectorContext:
    """Locators from discovery plus the request hints. Missing discovery means no locators."""
    discovery = state.get("discovery") or {}
    sources = discovery.get("sources") if isinstance(discovery, Mapping) else None
    return CollectorContext(
        sources=dict(sources or {}),
        target_name=state["target_name"],
        hints=dict(state.get("hints") or {}),
    )


def collector_node(
    source: SourceKind, collector: CollectorFn, timeout: float
) -> Callable[[PipelineState], Awaitable[dict]]:
    """Build the graph node that runs one guarded collector."""
    guarded = guard_collector(source, collector, timeout)

    async def node(state: PipelineState) -> dict:
        try:
            context = collector_context(state)
        except (TypeError, ValueError) as e:
            logger.error("collector_context_invalid", source=source, error=str(e))
            result = failure_marker(source, f"invalid collector context: {e}")
        else:
            result = await guarded(state["session_id"], context)

        logger.info(
            "collector_settled",
            job_id=state["job_id"],
            source=source,
            items=len(result["items"]),
            skipped=result.get("skipped", False),
            failed=result.get("failed", False),
        )
        update: dict = {"collected": {source: result}}
        if result.get("failed"):
            update["error_log"] = [f"{source}: {result.get('error', 'failed')}"]
        return update

    node.__name__ = f"collect_{source}"
    return node


def fan_in(state: PipelineState) -> list[CollectorResult]:
    """Exactly one result per source, in SOURCE_ORDER."""
    collected = state.get("collected") or {}
    return [
        collected.get(source) or failure_marker(source, "collector did not report")
        for source in SOURCE_ORDER
    ]
