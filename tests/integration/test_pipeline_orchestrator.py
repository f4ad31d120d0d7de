"""
Integration tests for the pipeline orchestrator.

Covers:
1. Approval gate: adjust stops for review, translate is applied automatically
2. Reject keeps the working version
3. Restart after an interruption resumes at the next operation
4. Pause / resume / cancel at operation boundaries
5. Failure reporting and artifact downloads
"""

import asyncio
from unittest.mock import patch

import pytest

from core.errors import InvalidStateError, NotFoundError
from core.pipeline import (
    ApprovalStatus,
    PipelineOrchestrator,
    PipelineStatus,
    ResultStatus,
)
from tests.conftest import ScriptedProviderManager, operation_responder


ADJUST_THEN_TRANSLATE = (
    ["adjust", "translate"],
    [{"instructions": "Say customer instead of client"}, {"target_language": "French"}],
)


class HookedProviderManager(ScriptedProviderManager):
    """Awaits on_call(prompt) before answering each call"""

    def __init__(self, responder, on_call):
        self.on_call = on_call
        super().__init__(responder)

    async def _complete(self, messages, system_prompt=None, provider=None, model=None, **kwargs):
        await self.on_call(messages[-1].content)
        return await super()._complete(messages, system_prompt, provider, model, **kwargs)


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def run_to_approval(orchestrator, chapter_id):
    operations, configs = ADJUST_THEN_TRANSLATE
    pipeline_id = orchestrator.create_pipeline(chapter_id, operations, configs)
    orchestrator.start(pipeline_id)
    await orchestrator.wait_idle(pipeline_id)
    return pipeline_id


class TestCreatePipeline:

    def test_defaults_to_current_version(self, orchestrator, chapter):
        chapter_id, root_id = chapter
        pipeline_id = orchestrator.create_pipeline(chapter_id, ["improve"])

        job = orchestrator.get_pipeline(pipeline_id)
        assert pipeline_id.startswith("pipe_")
        assert job.status == PipelineStatus.PENDING
        assert job.current_version_id == root_id
        assert job.operation_configs == [{}]

    def test_configs_keyed_by_operation(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(
            chapter[0], ["adjust", "translate"], {"translate": {"target_language": "German"}}
        )
        job = orchestrator.get_pipeline(pipeline_id)
        assert job.operation_configs == [{}, {"target_language": "German"}]

    def test_invalid_inputs(self, orchestrator, version_store, document_id, chapter):
        with pytest.raises(ValueError):
            orchestrator.create_pipeline(chapter[0], [])
        with pytest.raises(ValueError):
            orchestrator.create_pipeline(chapter[0], ["summarize"])
        with pytest.raises(ValueError):
            orchestrator.create_pipeline(chapter[0], ["adjust", "translate"], [{}])

        other_chapter, other_root = version_store.upload_chapter(document_id, "Other", b"Text.", "o.txt")
        with pytest.raises(NotFoundError):
            orchestrator.create_pipeline(chapter[0], ["improve"], version_id=other_root)

    def test_unknown_pipeline(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.get_pipeline("pipe_missing")


class TestApprovalGate:
    """Adjust -> translate with a review step in between"""

    @pytest.mark.asyncio
    async def test_stops_for_approval(self, orchestrator, chapter):
        chapter_id, root_id = chapter
        pipeline_id = await run_to_approval(orchestrator, chapter_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.AWAITING_APPROVAL
        assert job.current_operation_index == 0
        assert job.current_version_id == root_id
        [result] = job.operation_results
        assert result.status == ResultStatus.AWAITING_APPROVAL
        assert result.approval_status == ApprovalStatus.PENDING
        assert result.requires_approval is True
        assert result.metadata["items_generated"] == 2
        assert job.total_cost_usd > 0
        assert job.started_at is not None

    @pytest.mark.asyncio
    async def test_approve_then_translate_to_completion(self, orchestrator, runner, version_store, chapter):
        chapter_id, root_id = chapter
        pipeline_id = await run_to_approval(orchestrator, chapter_id)
        pending = orchestrator.get_pipeline(pipeline_id).operation_results[0]
        suggestion_ids = [s.id for s in runner.get_job(pending.operation_job_id).suggestions]

        applied = await orchestrator.approve(pipeline_id, suggestion_ids)
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        assert job.current_operation_index == 2
        assert [r.operation for r in job.operation_results] == ["adjust", "translate"]

        adjust_result, translate_result = job.operation_results
        assert adjust_result.approval_status == ApprovalStatus.APPROVED
        assert adjust_result.approved_items == suggestion_ids
        assert adjust_result.output_version_id == applied["new_version_id"]
        assert translate_result.input_version_id == applied["new_version_id"]
        assert translate_result.requires_approval is False
        assert translate_result.status == ResultStatus.COMPLETED

        final = orchestrator.download_artifact(pipeline_id, "final").decode("utf-8")
        assert "customer" in final
        assert "client" not in final
        assert "# Introduction [fr]" in final
        assert job.final_version_id == translate_result.output_version_id
        assert [v.id for v in version_store.lineage(job.final_version_id)] == [
            root_id, applied["new_version_id"], job.final_version_id,
        ]
        assert job.total_duration_seconds is not None

        intermediate = orchestrator.download_artifact(pipeline_id, "intermediate", 0).decode("utf-8")
        assert "customer" in intermediate
        assert "[fr]" not in intermediate

    @pytest.mark.asyncio
    async def test_reject_keeps_working_version(self, orchestrator, chapter):
        chapter_id, root_id = chapter
        pipeline_id = await run_to_approval(orchestrator, chapter_id)

        await orchestrator.reject(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        assert job.operation_results[0].approval_status == ApprovalStatus.REJECTED
        assert job.operation_results[0].output_version_id is None
        assert job.operation_results[1].input_version_id == root_id

        final = orchestrator.download_artifact(pipeline_id, "final").decode("utf-8")
        assert "client" in final
        assert "[fr]" in final
        with pytest.raises(NotFoundError):
            orchestrator.download_artifact(pipeline_id, "intermediate", 0)

    @pytest.mark.asyncio
    async def test_approve_requires_waiting_pipeline(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(chapter[0], ["improve"])

        with pytest.raises(InvalidStateError):
            await orchestrator.approve(pipeline_id, [])
        with pytest.raises(InvalidStateError):
            await orchestrator.reject(pipeline_id)

    @pytest.mark.asyncio
    async def test_approve_twice_rejected(self, orchestrator, chapter):
        pipeline_id = await run_to_approval(orchestrator, chapter[0])
        await orchestrator.approve(pipeline_id, [])

        with pytest.raises(InvalidStateError):
            await orchestrator.approve(pipeline_id, [])
        await orchestrator.wait_idle(pipeline_id)

    @pytest.mark.asyncio
    async def test_every_approval_kind_stops(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(chapter[0], ["improve", "adapt"])
        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)
        assert orchestrator.get_pipeline(pipeline_id).status == PipelineStatus.AWAITING_APPROVAL

        await orchestrator.approve(pipeline_id, [])
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.AWAITING_APPROVAL
        assert job.current_operation_index == 1
        assert job.operation_results[-1].operation == "adapt"

    @pytest.mark.asyncio
    async def test_translate_covers_repeated_paragraphs(self, orchestrator, version_store, document_id):
        chapter_id, _ = version_store.upload_chapter(
            document_id, "Greetings", b"Hello world.\n\nHello world.\n\nBye.", "greetings.md"
        )
        pipeline_id = orchestrator.create_pipeline(chapter_id, ["translate"], [{"target_language": "French"}])
        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        [result] = job.operation_results
        assert result.metadata["items_applied"] == 3
        assert result.metadata["items_unmatched"] == 0

        final = orchestrator.download_artifact(pipeline_id, "final").decode("utf-8")
        assert final.count("Hello world. [fr]") == 2
        assert "Bye. [fr]" in final


class TestResume:
    """Restarting from persisted state"""

    @pytest.mark.asyncio
    async def test_restart_after_approval_resumes_at_next_operation(
        self, repository, version_store, runner, object_store, provider_manager, chapter
    ):
        orchestrator = PipelineOrchestrator(repository, version_store, runner, object_store)
        pipeline_id = await run_to_approval(orchestrator, chapter[0])

        # ===== Approval recorded, process stops before the next run starts =====
        with patch.object(orchestrator, "start"):
            await orchestrator.approve(pipeline_id, [])
        assert orchestrator.get_pipeline(pipeline_id).status == PipelineStatus.RUNNING
        adjust_calls = sum("INSTRUCTIONS:" in p for p in provider_manager.prompts)

        # ===== A new orchestrator picks the pipeline up =====
        restarted = PipelineOrchestrator(repository, version_store, runner, object_store)
        assert restarted.recover() == [pipeline_id]
        await restarted.wait_idle(pipeline_id)

        job = restarted.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        assert [r.operation for r in job.operation_results] == ["adjust", "translate"]
        assert sum("INSTRUCTIONS:" in p for p in provider_manager.prompts) == adjust_calls

    @pytest.mark.asyncio
    async def test_restart_while_applying_finishes_approval(
        self, repository, version_store, runner, object_store, chapter
    ):
        orchestrator = PipelineOrchestrator(repository, version_store, runner, object_store)
        pipeline_id = await run_to_approval(orchestrator, chapter[0])
        pending = orchestrator.get_pipeline(pipeline_id).operation_results[0]
        suggestion_ids = [s.id for s in runner.get_job(pending.operation_job_id).suggestions]

        # ===== Version created, process stops before the approval is recorded =====
        with patch.object(orchestrator, "_record_approval", side_effect=RuntimeError("killed")):
            with pytest.raises(RuntimeError):
                await orchestrator.approve(pipeline_id, suggestion_ids)
        assert orchestrator.get_pipeline(pipeline_id).status == PipelineStatus.APPLYING_CHANGES
        new_version_id = runner.get_job(pending.operation_job_id).new_version_id
        assert new_version_id is not None

        restarted = PipelineOrchestrator(repository, version_store, runner, object_store)
        assert restarted.recover() == [pipeline_id]
        await restarted.wait_idle(pipeline_id)

        job = restarted.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        adjust_result, translate_result = job.operation_results
        assert adjust_result.approval_status == ApprovalStatus.APPROVED
        assert adjust_result.approved_items == suggestion_ids
        assert adjust_result.output_version_id == new_version_id
        assert adjust_result.metadata["items_applied"] == 2
        assert translate_result.input_version_id == new_version_id
        assert "customer" in restarted.download_artifact(pipeline_id, "intermediate", 0).decode("utf-8")

    @pytest.mark.asyncio
    async def test_restart_while_applying_without_version_awaits_approval(self, repository, orchestrator, chapter):
        pipeline_id = await run_to_approval(orchestrator, chapter[0])
        repository.update_pipeline(pipeline_id, status=PipelineStatus.APPLYING_CHANGES.value)

        assert orchestrator.recover() == []

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.AWAITING_APPROVAL
        assert job.operation_results[0].approval_status == ApprovalStatus.PENDING

        await orchestrator.approve(pipeline_id, [])
        await orchestrator.wait_idle(pipeline_id)
        assert orchestrator.get_pipeline(pipeline_id).status == PipelineStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resolved_result_at_cursor_skipped(self, repository, orchestrator, provider_manager, chapter):
        pipeline_id = await run_to_approval(orchestrator, chapter[0])
        with patch.object(orchestrator, "start"):
            await orchestrator.reject(pipeline_id)

        # Cursor left on the already decided operation
        repository.update_pipeline(pipeline_id, current_operation_index=0)
        prompts_before = len(provider_manager.prompts)

        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        assert len(job.operation_results) == 2
        new_prompts = provider_manager.prompts[prompts_before:]
        assert new_prompts and all(p.startswith("Translate each numbered paragraph") for p in new_prompts)

    @pytest.mark.asyncio
    async def test_terminal_pipeline_not_rerun(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(chapter[0], ["translate"], [{"target_language": "French"}])
        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)
        completed_at = orchestrator.get_pipeline(pipeline_id).completed_at

        await orchestrator.run(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        assert job.completed_at == completed_at
        assert len(job.operation_results) == 1


class TestControl:
    """Pause, resume and cancel"""

    @pytest.mark.asyncio
    async def test_pause_waits_at_boundary_then_resumes(self, orchestrator, runner, chapter):
        paused = []

        async def pause_once(prompt):
            if not paused:
                paused.append(True)
                await orchestrator.control(pipeline_id, "pause")

        runner.provider_manager = HookedProviderManager(operation_responder, pause_once)
        pipeline_id = orchestrator.create_pipeline(
            chapter[0], ["translate", "translate"],
            [{"target_language": "French"}, {"target_language": "German"}],
        )
        orchestrator.start(pipeline_id)

        # The running operation finishes, then the run waits
        await wait_until(lambda: len(orchestrator.get_pipeline(pipeline_id).operation_results) == 1)
        await asyncio.sleep(0.1)
        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.PAUSED
        assert job.current_operation_index == 1
        assert orchestrator.is_running(pipeline_id)

        await orchestrator.control(pipeline_id, "resume")
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.COMPLETED
        assert len(job.operation_results) == 2

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, orchestrator, runner, chapter):
        async def cancel_during_adjust(prompt):
            if "INSTRUCTIONS:" in prompt and orchestrator.get_pipeline(pipeline_id).status == PipelineStatus.RUNNING:
                await orchestrator.control(pipeline_id, "cancel")

        runner.provider_manager = HookedProviderManager(operation_responder, cancel_during_adjust)
        pipeline_id = orchestrator.create_pipeline(
            chapter[0], ["translate", "adjust"],
            [{"target_language": "French"}, {"instructions": "Say customer"}],
        )
        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.CANCELLED
        assert job.completed_at is not None
        assert [r.operation for r in job.operation_results] == ["translate"]
        assert job.current_version_id == job.operation_results[0].output_version_id

        assert "[fr]" in orchestrator.download_artifact(pipeline_id, "intermediate", 0).decode("utf-8")
        with pytest.raises(NotFoundError):
            orchestrator.download_artifact(pipeline_id, "final")

    @pytest.mark.asyncio
    async def test_cancel_while_awaiting_approval(self, orchestrator, chapter):
        pipeline_id = await run_to_approval(orchestrator, chapter[0])

        job = await orchestrator.control(pipeline_id, "cancel")
        assert job.status == PipelineStatus.CANCELLED

        assert pipeline_id not in orchestrator.signals._events

        with pytest.raises(InvalidStateError):
            await orchestrator.approve(pipeline_id, [])

    @pytest.mark.asyncio
    async def test_invalid_transitions(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(chapter[0], ["translate"], [{"target_language": "French"}])

        with pytest.raises(InvalidStateError):
            await orchestrator.control(pipeline_id, "pause")
        with pytest.raises(InvalidStateError):
            await orchestrator.control(pipeline_id, "resume")

        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)

        for action in ("pause", "resume", "cancel"):
            with pytest.raises(InvalidStateError):
                await orchestrator.control(pipeline_id, action)
        with pytest.raises(ValueError):
            await orchestrator.control(pipeline_id, "restart")

    @pytest.mark.asyncio
    async def test_cancel_pending(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(chapter[0], ["improve"])

        await orchestrator.control(pipeline_id, "cancel")
        await orchestrator.run(pipeline_id)

        assert orchestrator.get_pipeline(pipeline_id).status == PipelineStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_finished_runs_leave_no_events(self, orchestrator, chapter):
        pipeline_id = await run_to_approval(orchestrator, chapter[0])
        assert pipeline_id not in orchestrator.signals._events

        orchestrator.signals.notify(pipeline_id)
        assert pipeline_id not in orchestrator.signals._events

        await orchestrator.approve(pipeline_id, [])
        await orchestrator.wait_idle(pipeline_id)
        assert orchestrator.signals._events == {}


class TestFailure:

    @pytest.mark.asyncio
    async def test_operation_error_fails_pipeline(self, orchestrator, runner, chapter):
        runner.provider_manager = ScriptedProviderManager(
            lambda prompt: RuntimeError("Insufficient credits: balance is 0")
        )
        pipeline_id = orchestrator.create_pipeline(
            chapter[0], ["translate", "improve"], [{"target_language": "French"}, {}]
        )
        orchestrator.start(pipeline_id)
        await orchestrator.wait_idle(pipeline_id)

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.FAILED
        assert job.error_message == "Insufficient credits: balance is 0"
        [result] = job.operation_results
        assert result.status == ResultStatus.FAILED
        assert result.metadata["error_message"] == "Insufficient credits: balance is 0"
        assert job.current_operation_index == 0
        assert job.total_duration_seconds is not None

    @pytest.mark.asyncio
    async def test_apply_failure_during_approval(self, orchestrator, runner, chapter):
        pipeline_id = await run_to_approval(orchestrator, chapter[0])

        with patch.object(runner, "apply", side_effect=RuntimeError("disk full")):
            with pytest.raises(Exception, match="Failed to apply changes: disk full"):
                await orchestrator.approve(pipeline_id, [])

        job = orchestrator.get_pipeline(pipeline_id)
        assert job.status == PipelineStatus.FAILED
        assert job.error_message == "Failed to apply changes: disk full"

    @pytest.mark.asyncio
    async def test_download_validation(self, orchestrator, chapter):
        pipeline_id = orchestrator.create_pipeline(chapter[0], ["improve"])

        with pytest.raises(NotFoundError):
            orchestrator.download_artifact(pipeline_id, "final")
        with pytest.raises(ValueError):
            orchestrator.download_artifact(pipeline_id, "intermediate")
        with pytest.raises(NotFoundError):
            orchestrator.download_artifact("pipe_missing", "final")
