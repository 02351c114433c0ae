"""End-to-end pipeline runs against fake collaborators."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from voice_emulator.agents.executor import PipelineExecutor
from voice_emulator.agents.graph import PipelineDeps, build_graph
from voice_emulator.agents.nodes.synthesis import synthesize_voice
from voice_emulator.agents.state import SOURCE_ORDER
from voice_emulator.core.errors import CollectorError
from voice_emulator.models.job import JobStatus, PipelineStage
from voice_emulator.services.job_store import JobStore


def _item_for(source: str) -> dict:
    if source in ("twitter", "linkedin"):
        return {"id": f"{source}-1", "text": f"one {source} post"}
    return {"url": f"https://janedoe.com/{source}/1", "content": f"one {source} article"}


async def _run(deps, target="Jane Doe", hints=None, store=None):
    if store is None:
        store = JobStore()
    executor = PipelineExecutor(store, deps=deps)
    job_id = executor.start(target, hints or {})
    await executor.run(job_id)
    return store.get_job(job_id)


class TestGraphConstruction:
    def test_missing_collector_is_rejected(self, fake_collector, fake_discover, fake_exporter, store):
        deps = PipelineDeps(
            discover=fake_discover,
            collectors={"twitter": fake_collector(skipped=True)},
            exporter=fake_exporter,
        )
        with pytest.raises(ValueError, match="newsletter"):
            build_graph(deps, store)

    def test_timeout_lookup(self, make_deps):
        deps = make_deps(collector_timeouts={"twitter": 1300}, default_timeout=30)
        assert deps.timeout_for("twitter") == 1300
        assert deps.timeout_for("blog") == 30


class TestPipelineRuns:
    @pytest.mark.anyio
    async def test_all_sources_skipped(self, make_deps, exported):
        job = await _run(make_deps(), hints={})

        assert job.status == JobStatus.COMPLETED
        assert job.stage == PipelineStage.COMPLETED
        assert job.progress.percentage == 100
        consolidation = job.result["consolidation"]
        assert consolidation["total_pieces"] == 0
        assert consolidation["document_placeholder"] is True
        assert job.result["document_url"] == "placeholder://documents/jane-doe"
        assert all(job.result[s]["skipped"] for s in SOURCE_ORDER)
        assert exported == []

    @pytest.mark.anyio
    async def test_one_collector_failing_does_not_fail_the_job(self, make_deps, fake_collector):
        deps = make_deps(
            newsletter=fake_collector([_item_for("newsletter")]),
            twitter=fake_collector(error=CollectorError("NetworkTimeout")),
            linkedin=fake_collector([_item_for("linkedin")]),
            blog=fake_collector([_item_for("blog")]),
        )
        job = await _run(deps)

        assert job.status == JobStatus.COMPLETED
        assert len(job.result["consolidation"]["all_content"]) == 3
        assert job.result["twitter"] == {
            "source": "twitter",
            "items": [],
            "failed": True,
            "error": "NetworkTimeout",
        }
        assert job.result["error_log"] == ["twitter: NetworkTimeout"]

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "outcomes",
        [
            ("ok", "ok", "ok", "ok"),
            ("raise", "raise", "raise", "raise"),
            ("timeout", "skip", "malformed", "ok"),
            ("skip", "ok", "raise", "timeout"),
            ("malformed", "malformed", "ok", "skip"),
        ],
    )
    async def test_every_source_reports_exactly_once(self, make_deps, fake_collector, outcomes):
        def collector_for(source, outcome):
            return {
                "ok": fake_collector([_item_for(source)]),
                "skip": fake_collector(skipped=True),
                "raise": fake_collector(error=RuntimeError(f"{source} broke")),
                "timeout": fake_collector([_item_for(source)], delay=5),
                "malformed": fake_collector(raw=["not", "a", "result"]),
            }[outcome]

        collectors = {s: collector_for(s, o) for s, o in zip(SOURCE_ORDER, outcomes)}
        job = await _run(make_deps(**collectors, default_timeout=0.05))

        assert job.status == JobStatus.COMPLETED
        for source, outcome in zip(SOURCE_ORDER, outcomes):
            result = job.result[source]
            assert result["source"] == source
            if outcome == "ok":
                assert len(result["items"]) == 1
            elif outcome == "skip":
                assert result["skipped"] is True
            else:
                assert result["failed"] is True
        assert job.result["consolidation"]["total_pieces"] == outcomes.count("ok")

    @pytest.mark.anyio
    async def test_consolidation_error_fails_the_job(self, make_deps, fake_collector):
        deps = make_deps(blog=fake_collector(["<html>not a mapping</html>"]))
        job = await _run(deps)

        assert job.status == JobStatus.FAILED
        assert job.stage == PipelineStage.FAILED
        assert "unmergeable" in job.error
        assert job.result is None

    @pytest.mark.anyio
    async def test_export_failure_still_completes(self, make_deps, fake_collector, failing_exporter):
        deps = make_deps(twitter=fake_collector([_item_for("twitter")]), exporter=failing_exporter)
        job = await _run(deps)

        assert job.status == JobStatus.COMPLETED
        assert job.result["consolidation"]["document_placeholder"] is True
        assert job.result["document_url"].startswith("placeholder://")

    @pytest.mark.anyio
    async def test_discovery_failure_degrades_to_hints(self, make_deps):
        seen = {}

        async def broken_discover(target_name, hints):
            raise RuntimeError("perplexity unavailable")

        async def twitter(session_id, context):
            seen["handle"] = context["hints"].get("handle")
            return {"items": [{"id": "1", "text": "hello"}]}

        job = await _run(
            make_deps(discover=broken_discover, twitter=twitter), hints={"handle": "@jane"}
        )

        assert job.status == JobStatus.COMPLETED
        assert job.result["discovery"]["error"] == "perplexity unavailable"
        assert "discovery: perplexity unavailable" in job.result["error_log"]
        assert seen["handle"] == "@jane"
        assert job.result["consolidation"]["total_pieces"] == 1

    @pytest.mark.anyio
    async def test_bare_locator_map_from_discovery(self, make_deps):
        seen = {}

        async def discover(target_name, hints):
            return {"twitter": "@jane", "youtube": None}

        async def twitter(session_id, context):
            seen.update(context["sources"])
            return {"items": [{"id": "1", "text": "hello"}]}

        job = await _run(make_deps(discover=discover, twitter=twitter))

        assert job.status == JobStatus.COMPLETED
        assert seen["twitter"] == "@jane"
        assert job.result["discovery"]["sources"] == {"twitter": "@jane", "youtube": None}
        assert job.result["consolidation"]["total_pieces"] == 1
        assert job.result["error_log"] == []

    @pytest.mark.anyio
    async def test_discovery_returning_nothing_degrades(self, make_deps):
        seen = {}

        async def discover(target_name, hints):
            return None

        async def blog(session_id, context):
            seen["sources"] = context["sources"]
            return {"items": []}

        job = await _run(make_deps(discover=discover, blog=blog))

        assert job.status == JobStatus.COMPLETED
        assert job.result["discovery"]["sources"] == {}
        assert seen["sources"] == {}
        assert any(e.startswith("discovery: ") for e in job.result["error_log"])
        assert not job.result["blog"].get("failed")

    @pytest.mark.anyio
    async def test_hints_reach_collectors_as_locators(self, make_deps):
        seen = {}

        async def blog(session_id, context):
            seen.update(context["sources"])
            return {"items": []}

        await _run(make_deps(blog=blog), hints={"website": "https://janedoe.com"})
        assert seen["blog"] == "https://janedoe.com"

    @pytest.mark.anyio
    async def test_synthesis_stage_adds_voice_profile(self, make_deps, fake_collector, mock_llm):
        async def synthesizer(target_name, content):
            return await synthesize_voice(target_name, content, llm=mock_llm)

        deps = make_deps(twitter=fake_collector([_item_for("twitter")]), synthesizer=synthesizer)
        job = await _run(deps)

        assert job.status == JobStatus.COMPLETED
        assert job.result["voice_profile"]["system_prompt"].startswith("You are writing as Jane Doe")
        assert job.result["voice_profile"]["samples_used"] == 1

    @pytest.mark.anyio
    async def test_synthesizer_error_falls_back(self, make_deps, fake_collector):
        async def synthesizer(target_name, content):
            raise RuntimeError("quota exceeded")

        deps = make_deps(twitter=fake_collector([_item_for("twitter")]), synthesizer=synthesizer)
        job = await _run(deps)

        assert job.status == JobStatus.COMPLETED
        profile = job.result["voice_profile"]
        assert profile["synthesis_error"] == "quota exceeded"
        assert "Jane Doe" in profile["system_prompt"]
        assert "synthesis: quota exceeded" in job.result["error_log"]
        assert job.result["consolidation"]["total_pieces"] == 1

    @pytest.mark.anyio
    async def test_without_synthesizer_no_profile(self, make_deps):
        job = await _run(make_deps())
        assert job.result["voice_profile"] is None

    @pytest.mark.anyio
    async def test_progress_only_moves_forward(self, make_deps, store):
        seen = []
        original = store.update_progress

        def recording(job_id, message, percentage):
            original(job_id, message, percentage)
            seen.append(store.get_job(job_id).progress.percentage)

        store.update_progress = recording
        await _run(make_deps(), store=store)

        assert seen == sorted(seen)
        assert seen == [10, 30, 80, 100]

    @pytest.mark.anyio
    async def test_result_carries_session(self, make_deps, store):
        job = await _run(make_deps(), store=store)
        assert job.result["session_id"].startswith("voice-emulator-")
        assert job.result["session_id"] == job.data["session_id"]
        assert job.result["target_name"] == "Jane Doe"


class TestCancellation:
    @pytest.mark.anyio
    async def test_cancel_preempts_running_collectors(self, make_deps, fake_collector, store):
        started = asyncio.Event()
        deps = make_deps(twitter=fake_collector(delay=60, started=started))
        executor = PipelineExecutor(store, deps=deps)
        job_id = executor.start("Jane Doe")

        run = asyncio.create_task(executor.run(job_id))
        await started.wait()
        assert store.get_job(job_id).stage == PipelineStage.COLLECTING

        assert executor.cancel(job_id) is True
        await asyncio.wait_for(run, timeout=5)

        job = store.get_job(job_id)
        assert job.status == JobStatus.CANCELED
        assert job.result is None

    @pytest.mark.anyio
    async def test_second_run_does_not_orphan_the_first(self, make_deps, fake_collector, store):
        started = asyncio.Event()
        deps = make_deps(twitter=fake_collector(delay=60, started=started))
        executor = PipelineExecutor(store, deps=deps)
        job_id = executor.start("Jane Doe")

        first = asyncio.create_task(executor.run(job_id))
        await started.wait()
        tracked = executor._tasks[job_id]

        await asyncio.wait_for(executor.run(job_id), timeout=1)
        assert executor._tasks[job_id] is tracked

        assert executor.cancel(job_id) is True
        await asyncio.wait_for(first, timeout=5)

        assert store.get_job(job_id).status == JobStatus.CANCELED
        assert job_id not in executor._tasks

    @pytest.mark.anyio
    async def test_cancel_before_start(self, make_deps, store):
        calls = itertools.count()

        async def discover(target_name, hints):
            next(calls)
            return {"sources": {}}

        executor = PipelineExecutor(store, deps=make_deps(discover=discover))
        job_id = executor.start("Jane Doe")
        assert executor.cancel(job_id) is True
        await executor.run(job_id)

        assert store.get_job(job_id).status == JobStatus.CANCELED
        assert next(calls) == 0

    @pytest.mark.anyio
    async def test_cancel_finished_job(self, make_deps, store):
        executor = PipelineExecutor(store, deps=make_deps())
        job_id = executor.start("Jane Doe")
        await executor.run(job_id)

        assert executor.cancel(job_id) is False
        assert store.get_job(job_id).status == JobStatus.COMPLETED
