"""
Operation Runner - lifecycle of a single OperationJob.

create_operation() persists a pending job and returns at once; the
generation pass runs in the background (or inline from the pipeline) and
reports progress through the repository. Once completed, a chosen subset
of suggestions is applied exactly once, producing a new version.
"""

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional

from config.constants import SUBJOB_POLL_INTERVAL, SUBJOB_TIMEOUT_SECONDS
from config.logging_config import get_logger
from core.context.builder import ContextBuilder, format_context_for_prompt
from core.errors import (
    ContextBuildError,
    InvalidStateError,
    NotFoundError,
    OperationTimeoutError,
)
from core.generation import GenerationContext, create_generator
from core.models import OperationJob, OperationKind, OperationStatus, new_id
from core.references import Extractor, ProcessedReference, process_references
from core.storage.repository import RevisionRepository
from core.versioning.apply_engine import apply_accepted_edits, resolve_positions
from core.versioning.version_store import VersionStore

logger = get_logger(__name__)

# Leading text used as the retrieval query when none is configured
_QUERY_FALLBACK_CHARS = 500


class OperationRunner:
    """
    Usage:
        runner = OperationRunner(repository, version_store, provider_manager)
        job_id = runner.create_operation(chapter_id, version_id, "improve", {})
        runner.start(job_id)
        job = await runner.wait_for_completion(job_id)
        runner.apply(job_id, [s.id for s in job.suggestions])
    """

    def __init__(
        self,
        repository: RevisionRepository,
        version_store: VersionStore,
        provider_manager,
        context_builder: Optional[ContextBuilder] = None,
        extractor: Optional[Extractor] = None,
        batch_sizes: Optional[Dict[str, int]] = None,
        subjob_timeout: float = SUBJOB_TIMEOUT_SECONDS,
        subjob_poll_interval: float = SUBJOB_POLL_INTERVAL,
    ):
        self.repository = repository
        self.version_store = version_store
        self.provider_manager = provider_manager
        self.context_builder = context_builder
        self.extractor = extractor
        self.batch_sizes = dict(batch_sizes or {})
        self.subjob_timeout = subjob_timeout
        self.subjob_poll_interval = subjob_poll_interval
        self._tasks: Dict[str, asyncio.Task] = {}

    # ==================== CREATE / START ====================

    def create_operation(
        self,
        chapter_id: str,
        version_id: str,
        kind,
        config: Optional[Dict[str, Any]] = None,
        references: Optional[List[Dict]] = None,
    ) -> str:
        """Persist a pending job against version_id; returns the job id."""
        kind = OperationKind(kind)
        version = self.version_store.get_version(version_id)
        if version.chapter_id != chapter_id:
            raise NotFoundError("Version", f"{version_id} in chapter {chapter_id}")

        job = OperationJob(
            id=new_id("op_"),
            chapter_id=chapter_id,
            version_id=version_id,
            kind=kind,
            config=dict(config or {}),
        )
        self.repository.save_operation_job(job)

        if references:
            processed = process_references(references, self.extractor)
            self.repository.save_references(job.id, [p.to_dict() for p in processed])

        logger.info(f"[OP {job.id}] Created {kind.value} operation on version {version_id}")
        return job.id

    def start(self, job_id: str) -> asyncio.Task:
        """Schedule execute() as a background task."""
        task = self._tasks.get(job_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self._execute_in_background(job_id))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return task

    async def _execute_in_background(self, job_id: str) -> None:
        try:
            await self.execute(job_id)
        except InvalidStateError as e:
            logger.warning(f"[OP {job_id}] {e}")
        except Exception as e:
            logger.error(f"[OP {job_id}] Background execution crashed: {e}", exc_info=True)

    # ==================== EXECUTE ====================

    def get_job(self, job_id: str) -> OperationJob:
        job = self.repository.get_operation_job(job_id)
        if not job:
            raise NotFoundError("Operation", job_id)
        return job

    async def execute(self, job_id: str) -> OperationJob:
        """
        Run the generation pass once. The job ends completed or error; the
        error message is the generator's own message.
        """
        job = self.get_job(job_id)
        if not self.repository.claim_operation_job(job_id):
            raise InvalidStateError(f"Operation {job_id} is {self.get_job(job_id).status.value}, not pending")

        started = time.time()
        logger.info(f"[OP {job_id}] Processing {job.kind.value} on version {job.version_id}")

        async def on_progress(progress: float) -> None:
            self.repository.update_operation_progress(job_id, progress)

        try:
            content = self.version_store.load_text(job.version_id)
            context = GenerationContext(
                references=[ProcessedReference.from_dict(r) for r in self.repository.get_references(job_id)],
                retrieval_context=self._retrieval_context(job, content),
                document_title=self._document_title(job.chapter_id),
            )
            generator = create_generator(job.kind, self.provider_manager, self.batch_sizes.get(job.kind.value))
            result = await generator.generate(content, context, job.config, on_progress)

            suggestions = resolve_positions(content, result.suggestions)
            self.repository.complete_operation_job(
                job_id,
                suggestions,
                content,
                cost_usd=round(result.cost_usd, 6),
                usage=result.usage.to_dict(),
            )
            logger.info(
                f"[OP {job_id}] Completed: {len(suggestions)} suggestions, "
                f"{result.failed_units}/{result.total_units} failed batches, "
                f"${result.cost_usd:.4f}, {time.time() - started:.1f}s"
            )
        except Exception as e:
            self.repository.fail_operation_job(job_id, str(e))
            logger.error(f"[OP {job_id}] Failed: {e}")

        return self.get_job(job_id)

    def _document_title(self, chapter_id: str) -> str:
        chapter = self.repository.get_chapter(chapter_id)
        if not chapter:
            return ""
        document = self.repository.get_document(chapter["document_id"]) or {}
        return document.get("title", "")

    def _retrieval_context(self, job: OperationJob, content: str) -> str:
        version_ids = job.config.get("context_version_ids") or []
        if not version_ids or self.context_builder is None:
            return ""

        query = job.config.get("context_query") or job.config.get("instructions") or content[:_QUERY_FALLBACK_CHARS]
        try:
            result = self.context_builder.build_context(version_ids, query)
        except ContextBuildError as e:
            logger.warning(f"[OP {job.id}] Continuing without retrieval context: {e}")
            return ""
        return format_context_for_prompt(result)

    # ==================== APPLY ====================

    def apply(self, job_id: str, accepted_ids: Iterable[str], make_current: bool = True) -> Dict[str, Any]:
        """
        Apply accepted suggestions of a completed job to its base version.

        Returns {new_version_id, applied_count, unmatched_count, ...}. A job
        can be applied only once.
        """
        job = self.get_job(job_id)
        if job.status != OperationStatus.COMPLETED:
            raise InvalidStateError(f"Operation {job_id} is {job.status.value}, not completed")
        if job.new_version_id:
            raise InvalidStateError(f"Operation {job_id} was already applied as {job.new_version_id}")

        accepted = set(accepted_ids or [])
        selected = [s for s in job.suggestions or [] if s.id in accepted]
        unknown = accepted - {s.id for s in selected}
        if unknown:
            logger.warning(f"[OP {job_id}] Ignoring {len(unknown)} unknown suggestion ids")

        base = self.version_store.get_version(job.version_id)
        base_text = self.version_store.load_text(job.version_id)
        edited_text, report = apply_accepted_edits(base_text, selected)

        metadata = {
            "source_job_id": job_id,
            "accepted_suggestion_ids": [s.id for s in selected],
            "applied_count": report.applied_count,
            "unmatched_count": report.unmatched_count,
            "unmatched_ids": list(report.unmatched_ids),
        }
        if job.config.get("instructions"):
            metadata["instructions"] = job.config["instructions"]
        if job.config.get("target_language"):
            metadata["target_language"] = job.config["target_language"]
        reference_ids = sorted({s.reference_id for s in selected if s.reference_id})
        if reference_ids:
            metadata["reference_ids"] = reference_ids

        content = self.version_store.parser.render(edited_text, base.file_ext)
        new_version_id = self.version_store.create_version(
            job.chapter_id,
            job.version_id,
            content,
            job.kind.value,
            metadata,
            file_ext=base.file_ext,
            make_current=make_current,
        )

        if not self.repository.set_operation_new_version(job_id, new_version_id):
            raise InvalidStateError(f"Operation {job_id} was applied concurrently")

        logger.info(
            f"[OP {job_id}] Applied {report.applied_count} suggestions "
            f"({report.unmatched_count} unmatched) -> version {new_version_id}"
        )
        return {
            "new_version_id": new_version_id,
            "applied_count": report.applied_count,
            "unmatched_count": report.unmatched_count,
            "unmatched_ids": list(report.unmatched_ids),
        }

    # ==================== WAIT ====================

    async def wait_for_completion(
        self,
        job_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> OperationJob:
        """Poll until the job is terminal; OperationTimeoutError past the bound."""
        timeout = self.subjob_timeout if timeout is None else timeout
        poll_interval = self.subjob_poll_interval if poll_interval is None else poll_interval
        deadline = time.monotonic() + timeout

        while True:
            job = self.get_job(job_id)
            if job.status.is_terminal:
                return job
            if time.monotonic() >= deadline:
                raise OperationTimeoutError(
                    f"Operation {job_id} did not finish within {timeout:.0f}s (status {job.status.value})"
                )
            await asyncio.sleep(poll_interval)
