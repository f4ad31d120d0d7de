"""
Unit tests for core/operations.py - single operation lifecycle.
"""
import asyncio

import pytest

from core.errors import InvalidStateError, NotFoundError, OperationTimeoutError
from core.models import OperationStatus
from tests.conftest import SAMPLE_CHAPTER, ScriptedProviderManager


class TestCreateOperation:

    def test_pending_job_created(self, runner, chapter):
        chapter_id, root_id = chapter
        job_id = runner.create_operation(chapter_id, root_id, "adjust", {"instructions": "Say customer"})

        job = runner.get_job(job_id)
        assert job_id.startswith("op_")
        assert job.status == OperationStatus.PENDING
        assert job.config == {"instructions": "Say customer"}

    def test_version_must_belong_to_chapter(self, runner, version_store, document_id, chapter):
        _, root_id = chapter
        other_chapter, _ = version_store.upload_chapter(document_id, "Other", b"Other text.", "other.txt")

        with pytest.raises(NotFoundError):
            runner.create_operation(other_chapter, root_id, "improve")

    def test_unknown_version(self, runner, chapter):
        with pytest.raises(NotFoundError):
            runner.create_operation(chapter[0], "ver_missing", "improve")

    def test_references_processed_and_stored(self, runner, repository, chapter):
        chapter_id, root_id = chapter
        job_id = runner.create_operation(
            chapter_id, root_id, "update", {},
            references=[
                {"kind": "link", "source": "https://fees.example", "content": "Fee is 12 euros."},
                {"kind": "file", "source": "missing.pdf"},
            ],
        )

        refs = repository.get_references(job_id)
        assert [r["status"] for r in refs] == ["ready", "error"]

    def test_get_unknown_job(self, runner):
        with pytest.raises(NotFoundError):
            runner.get_job("op_missing")


class TestExecute:
    """Test the generation pass"""

    @pytest.mark.asyncio
    async def test_completes_with_positions(self, runner, chapter):
        chapter_id, root_id = chapter
        job_id = runner.create_operation(chapter_id, root_id, "adjust", {"instructions": "Say customer"})

        job = await runner.execute(job_id)

        assert job.status == OperationStatus.COMPLETED
        assert job.progress == 100
        assert job.full_text == SAMPLE_CHAPTER
        assert len(job.suggestions) == 2
        for s in job.suggestions:
            assert SAMPLE_CHAPTER[s.position["start"]:s.position["end"]] == s.original_text
        assert job.cost_usd > 0
        assert job.usage["total_calls"] == 2

    @pytest.mark.asyncio
    async def test_cannot_run_twice(self, runner, chapter):
        job_id = runner.create_operation(chapter[0], chapter[1], "improve")
        await runner.execute(job_id)

        with pytest.raises(InvalidStateError):
            await runner.execute(job_id)

    @pytest.mark.asyncio
    async def test_error_message_preserved(self, runner, chapter):
        runner.provider_manager = ScriptedProviderManager(
            lambda prompt: RuntimeError("Insufficient credits: top up your account")
        )
        job_id = runner.create_operation(chapter[0], chapter[1], "adjust", {"instructions": "x"})

        job = await runner.execute(job_id)

        assert job.status == OperationStatus.ERROR
        assert job.error_message == "Insufficient credits: top up your account"

    @pytest.mark.asyncio
    async def test_retrieval_context_in_prompt(self, runner, provider_manager, chapter):
        chapter_id, root_id = chapter
        job_id = runner.create_operation(
            chapter_id, root_id, "adjust",
            {"instructions": "Align the monthly fee wording", "context_version_ids": [root_id]},
        )

        await runner.execute(job_id)

        assert "RELATED MATERIAL" in provider_manager.prompts[0]
        assert "[p. 1]" in provider_manager.prompts[0]

    @pytest.mark.asyncio
    async def test_unloadable_context_does_not_fail_job(self, runner, chapter):
        job_id = runner.create_operation(
            chapter[0], chapter[1], "adjust",
            {"instructions": "Say customer", "context_version_ids": ["ver_missing"]},
        )

        job = await runner.execute(job_id)
        assert job.status == OperationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_background_start(self, runner, chapter):
        job_id = runner.create_operation(chapter[0], chapter[1], "translate", {"target_language": "French"})

        runner.start(job_id)
        job = await runner.wait_for_completion(job_id)

        assert job.status == OperationStatus.COMPLETED
        assert len(job.suggestions) == 5

    @pytest.mark.asyncio
    async def test_wait_times_out(self, runner, chapter):
        job_id = runner.create_operation(chapter[0], chapter[1], "improve")

        with pytest.raises(OperationTimeoutError):
            await runner.wait_for_completion(job_id, timeout=0.05, poll_interval=0.01)


class TestApply:
    """Test applying accepted suggestions"""

    async def _completed_job(self, runner, chapter):
        job_id = runner.create_operation(chapter[0], chapter[1], "adjust", {"instructions": "Say customer"})
        return await runner.execute(job_id)

    @pytest.mark.asyncio
    async def test_apply_all(self, runner, version_store, chapter):
        job = await self._completed_job(runner, chapter)

        result = runner.apply(job.id, [s.id for s in job.suggestions])

        text = version_store.load_text(result["new_version_id"])
        assert "client" not in text
        assert text.count("customer") == 3
        assert result["applied_count"] == 2
        assert result["unmatched_count"] == 0

        version = version_store.get_version(result["new_version_id"])
        assert version.parent_id == chapter[1]
        assert version.sequence == 2
        assert version.operation_kind == "adjust"
        assert version.metadata["source_job_id"] == job.id
        assert version.metadata["instructions"] == "Say customer"
        assert version_store.current_version_id(chapter[0]) == version.id
        assert runner.get_job(job.id).new_version_id == version.id

    @pytest.mark.asyncio
    async def test_apply_subset(self, runner, version_store, chapter):
        job = await self._completed_job(runner, chapter)
        pricing = [s for s in job.suggestions if "pays" in s.original_text]

        result = runner.apply(job.id, [pricing[0].id, "sug_unknown"])

        text = version_store.load_text(result["new_version_id"])
        assert "Each customer pays" in text
        assert "every client" in text
        assert version_store.get_version(result["new_version_id"]).metadata["accepted_suggestion_ids"] == [pricing[0].id]

    @pytest.mark.asyncio
    async def test_apply_only_once(self, runner, chapter):
        job = await self._completed_job(runner, chapter)
        runner.apply(job.id, [])

        with pytest.raises(InvalidStateError, match="already applied"):
            runner.apply(job.id, [])

    @pytest.mark.asyncio
    async def test_apply_requires_completed(self, runner, chapter):
        job_id = runner.create_operation(chapter[0], chapter[1], "improve")

        with pytest.raises(InvalidStateError):
            runner.apply(job_id, [])

    @pytest.mark.asyncio
    async def test_apply_without_making_current(self, runner, version_store, chapter):
        job = await self._completed_job(runner, chapter)

        result = runner.apply(job.id, [s.id for s in job.suggestions], make_current=False)

        assert version_store.current_version_id(chapter[0]) == chapter[1]
        assert version_store.get_version(result["new_version_id"]).parent_id == chapter[1]
