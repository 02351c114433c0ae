"""
Pipeline graph — the stage state machine of a voice-emulation run.

Flow:
  START → discover → [collect_newsletter, collect_twitter,
                      collect_linkedin, collect_blog]   (parallel fan-out)
        → consolidate (waits for all four) → [synthesize] → END

Each node moves the job's stage forward through the store when it starts.
Progress percentages are fixed milestones, not a measure of work done.
Discovery, collector and synthesis errors are degraded into state; only an
exception from consolidation (or one escaping a guard) fails the run.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from langgraph.graph import END, START, StateGraph

from voice_emulator.agents.coordinator import CollectorFn, collector_node, fan_in
from voice_emulator.agents.nodes import collectors, discovery, synthesis
from voice_emulator.agents.nodes.consolidation import ExportFn, consolidate
from voice_emulator.agents.state import (
    LOCATOR_KEYS,
    SOURCE_ORDER,
    ContentItem,
    DiscoveryResult,
    PipelineState,
    SourceKind,
    VoiceProfile,
)
from voice_emulator.core.config import Settings
from voice_emulator.core.logging import get_logger
from voice_emulator.models.job import PipelineStage
from voice_emulator.services.document_service import DocumentService
from voice_emulator.services.job_store import JobStore

logger = get_logger(__name__)

DiscoverFn = Callable[[str, dict[str, str]], Awaitable[DiscoveryResult]]
SynthesizeFn = Callable[[str, list[ContentItem]], Awaitable[VoiceProfile]]

# ── Advisory progress milestones ────────────────────────────
PROGRESS_DISCOVERY = 10
PROGRESS_COLLECTING = 30
PROGRESS_CONSOLIDATING = 80
PROGRESS_SYNTHESIZING = 90
PROGRESS_DONE = 100


@dataclass(slots=True)
class PipelineDeps:
    """Collaborators injected into the graph."""

    discover: DiscoverFn
    collectors: Mapping[SourceKind, CollectorFn]
    exporter: ExportFn
    synthesizer: SynthesizeFn | None = None
    collector_timeouts: Mapping[str, float] = field(default_factory=dict)
    default_timeout: float = 300.0

    def timeout_for(self, source: str) -> float:
        return self.collector_timeouts.get(source, self.default_timeout)


def coerce_discovery(raw: object) -> DiscoveryResult:
    """
    Normalise what a discovery collaborator returned.

    Accepts a full DiscoveryResult or a bare locator map. Anything else
    raises ValueError, which the discover node degrades to empty locators.
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"discovery returned {type(raw).__name__}, expected a mapping")
    if "sources" not in raw:
        return DiscoveryResult(sources={k: raw[k] for k in LOCATOR_KEYS if k in raw})
    sources = raw["sources"]
    if not isinstance(sources, Mapping):
        raise ValueError(f"discovery sources are {type(sources).__name__}, expected a mapping")
    return DiscoveryResult(**{**raw, "sources": dict(sources)})


def default_deps(settings: Settings) -> PipelineDeps:
    documents = DocumentService(settings.documents_dir, base_url=settings.app_base_url)
    return PipelineDeps(
        discover=discovery.discover_sources,
        collectors=collectors.COLLECTORS,
        exporter=documents.export,
        synthesizer=synthesis.synthesize_voice if settings.synthesis_enabled else None,
        collector_timeouts={s: settings.collector_timeout(s) for s in SOURCE_ORDER},
        default_timeout=settings.collector_timeout_seconds,
    )


def build_graph(deps: PipelineDeps, store: JobStore):
    """
    Construct and compile the pipeline graph.

    Args:
        deps:  discovery, collectors, exporter and optional synthesizer.
        store: job store the nodes report stage and progress into.

    Returns:
        Compiled StateGraph ready for .ainvoke().
    """
    missing = [s for s in SOURCE_ORDER if s not in deps.collectors]
    if missing:
        raise ValueError(f"No collector configured for: {', '.join(missing)}")

    async def discover_node(state: PipelineState) -> dict:
        job_id = state["job_id"]
        store.set_stage(job_id, PipelineStage.DISCOVERING)
        store.update_progress(job_id, "Running discovery step...", PROGRESS_DISCOVERY)

        update: dict = {}
        try:
            raw = await deps.discover(state["target_name"], dict(state["hints"]))
            result = coerce_discovery(raw)
        except Exception as e:
            logger.warning("discovery_failed", job_id=job_id, error=str(e))
            result = DiscoveryResult(sources={}, error=str(e) or e.__class__.__name__)
            update["error_log"] = [f"discovery: {result['error']}"]

        store.set_stage(job_id, PipelineStage.COLLECTING)
        store.update_progress(
            job_id, "Gathering content from multiple sources...", PROGRESS_COLLECTING
        )
        return {**update, "discovery": result}

    async def consolidate_node(state: PipelineState) -> dict:
        job_id = state["job_id"]
        store.set_stage(job_id, PipelineStage.CONSOLIDATING)
        store.update_progress(
            job_id, "Consolidating content and exporting document...", PROGRESS_CONSOLIDATING
        )
        output = await consolidate(fan_in(state), state["target_name"], deps.exporter)
        return {"consolidation": output}

    async def synthesize_node(state: PipelineState) -> dict:
        job_id = state["job_id"]
        store.set_stage(job_id, PipelineStage.SYNTHESIZING)
        store.update_progress(job_id, "Synthesizing voice profile...", PROGRESS_SYNTHESIZING)
        content = state["consolidation"]["all_content"]
        try:
            profile = await deps.synthesizer(state["target_name"], content)
        except Exception as e:
            logger.error("synthesis_failed", job_id=job_id, error=str(e))
            error = str(e) or e.__class__.__name__
            return {
                "voice_profile": synthesis.fallback_profile(state["target_name"], error),
                "error_log": [f"synthesis: {error}"],
            }
        return {"voice_profile": profile}

    workflow = StateGraph(PipelineState)

    workflow.add_node("discover", discover_node)
    collector_names = []
    for source in SOURCE_ORDER:
        name = f"collect_{source}"
        workflow.add_node(
            name, collector_node(source, deps.collectors[source], deps.timeout_for(source))
        )
        collector_names.append(name)
    workflow.add_node("consolidate", consolidate_node)

    # ── Edges ───────────────────────────────────────────────
    workflow.add_edge(START, "discover")
    for name in collector_names:
        workflow.add_edge("discover", name)
    # Join: consolidate runs once, after every collector has settled
    workflow.add_edge(collector_names, "consolidate")

    if deps.synthesizer is not None:
        workflow.add_node("synthesize", synthesize_node)
        workflow.add_edge("consolidate", "synthesize")
        workflow.add_edge("synthesize", END)
    else:
        workflow.add_edge("consolidate", END)

    app = workflow.compile()
    logger.info("pipeline_graph_compiled", node_count=len(workflow.nodes))
    return app
