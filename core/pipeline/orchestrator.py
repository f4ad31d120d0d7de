"""
Pipeline Orchestrator

Runs a chapter through an ordered list of operations, one at a time:

    pending -> running -> (awaiting_approval <-> running) -> completed | failed | cancelled
    running -> paused -> running

Operations that surface suggestions for review stop the run at
awaiting_approval without moving the cursor; approve()/reject() record the
decision, move the cursor and start a new run. Translation is applied
automatically and its output becomes the next operation's input.

All progress is persisted after each step, so a run can be restarted from
the repository alone.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Union

from config.constants import PAUSE_POLL_INTERVAL
from config.logging_config import get_logger
from core.errors import (
    InvalidStateError,
    NotFoundError,
    PipelineCancelledError,
    PipelineError,
)
from core.models import OperationJob, OperationKind, OperationStatus, new_id
from core.operations import OperationRunner
from core.storage.object_store import ObjectStore, pipeline_artifact_path, pipeline_final_path
from core.storage.repository import RevisionRepository
from core.versioning.version_store import VersionStore

from .control import PipelineControl
from .models import (
    ACTIVE_STATUSES,
    ApprovalStatus,
    OperationResult,
    PipelineAction,
    PipelineJob,
    PipelineStatus,
    ResultStatus,
)

logger = get_logger(__name__)

_RUNNABLE = [PipelineStatus.PENDING.value, PipelineStatus.RUNNING.value]
_IN_PROGRESS = [PipelineStatus.RUNNING.value, PipelineStatus.PAUSED.value]


class PipelineOrchestrator:
    """
    Usage:
        orchestrator = PipelineOrchestrator(repository, version_store, runner, object_store)
        pipeline_id = orchestrator.create_pipeline(chapter_id, ["adjust", "translate"], configs)
        orchestrator.start(pipeline_id)
        ...
        await orchestrator.approve(pipeline_id, accepted_ids)
    """

    def __init__(
        self,
        repository: RevisionRepository,
        version_store: VersionStore,
        runner: OperationRunner,
        object_store: ObjectStore,
        signals: Optional[PipelineControl] = None,
        pause_poll_interval: float = PAUSE_POLL_INTERVAL,
    ):
        self.repository = repository
        self.version_store = version_store
        self.runner = runner
        self.object_store = object_store
        self.signals = signals or PipelineControl()
        self.pause_poll_interval = pause_poll_interval
        self._tasks: Dict[str, asyncio.Task] = {}

    # ==================== CREATE / LOAD ====================

    def create_pipeline(
        self,
        chapter_id: str,
        operations: List[str],
        operation_configs: Optional[Union[List[Dict], Dict[str, Dict]]] = None,
        version_id: Optional[str] = None,
    ) -> str:
        """
        Create a pending pipeline starting from version_id (default: the
        chapter's current version).

        operation_configs is either a list aligned with operations or a dict
        keyed by operation name.
        """
        if not operations:
            raise ValueError("A pipeline needs at least one operation")
        kinds = [OperationKind(op).value for op in operations]

        if isinstance(operation_configs, dict):
            configs = [dict(operation_configs.get(op, {}) or {}) for op in kinds]
        else:
            configs = [dict(c or {}) for c in (operation_configs or [])]
            if configs and len(configs) != len(kinds):
                raise ValueError("operation_configs must have one entry per operation")
            configs = configs or [{} for _ in kinds]

        start_version_id = version_id or self.version_store.current_version_id(chapter_id)
        if not start_version_id:
            raise NotFoundError("Version", f"current version of chapter {chapter_id}")
        if self.version_store.get_version(start_version_id).chapter_id != chapter_id:
            raise NotFoundError("Version", f"{start_version_id} in chapter {chapter_id}")

        pipeline_id = new_id("pipe_")
        self.repository.create_pipeline({
            "id": pipeline_id,
            "chapter_id": chapter_id,
            "operations": kinds,
            "operation_configs": configs,
            "status": PipelineStatus.PENDING.value,
            "current_operation_index": 0,
            "operation_results": [],
            "current_version_id": start_version_id,
            "created_at": time.time(),
        })
        logger.info(f"[PIPELINE {pipeline_id}] Created: {' -> '.join(kinds)} from version {start_version_id}")
        return pipeline_id

    def get_pipeline(self, pipeline_id: str) -> PipelineJob:
        record = self.repository.get_pipeline(pipeline_id)
        if not record:
            raise NotFoundError("Pipeline", pipeline_id)
        return PipelineJob.from_dict(record)

    # ==================== TASKS ====================

    def start(self, pipeline_id: str) -> asyncio.Task:
        """Schedule run() unless a run is already live for this pipeline."""
        task = self._tasks.get(pipeline_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self.run(pipeline_id))
        self._tasks[pipeline_id] = task
        task.add_done_callback(lambda t: self._forget(pipeline_id, t))
        return task

    def _forget(self, pipeline_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(pipeline_id) is task:
            del self._tasks[pipeline_id]

    def is_running(self, pipeline_id: str) -> bool:
        task = self._tasks.get(pipeline_id)
        return task is not None and not task.done()

    async def wait_idle(self, pipeline_id: str) -> None:
        """Await the live run, including runs started by the one awaited."""
        while True:
            task = self._tasks.get(pipeline_id)
            if task is None or task.done():
                return
            await task

    def recover(self) -> List[str]:
        """
        Restart pipelines that were running when the process stopped.

        A pipeline stopped while applying an approval is settled first: if
        the approved version was created the approval is completed and the
        run continues, otherwise it goes back to awaiting approval.
        """
        for record in self.repository.get_pipelines_by_status([PipelineStatus.APPLYING_CHANGES.value]):
            self._settle_interrupted_approval(self.get_pipeline(record["id"]))

        restarted = []
        for record in self.repository.get_pipelines_by_status([PipelineStatus.RUNNING.value]):
            if not self.is_running(record["id"]):
                self.start(record["id"])
                restarted.append(record["id"])
        if restarted:
            logger.info(f"[PIPELINE] Recovered {len(restarted)} interrupted pipelines")
        return restarted

    # ==================== RUN ====================

    async def run(self, pipeline_id: str) -> None:
        """One execution pass from the persisted cursor."""
        try:
            await self._run(pipeline_id)
        except PipelineCancelledError:
            logger.info(f"[PIPELINE {pipeline_id}] Cancellation observed, stopping")
        except InvalidStateError as e:
            logger.warning(f"[PIPELINE {pipeline_id}] {e}")
        except Exception as e:
            logger.error(f"[PIPELINE {pipeline_id}] Run crashed: {e}", exc_info=True)
            self._mark_failed(pipeline_id, str(e), _IN_PROGRESS)
        finally:
            self.signals.discard(pipeline_id)

    async def _run(self, pipeline_id: str) -> None:
        job = self.get_pipeline(pipeline_id)

        if job.status.value in _RUNNABLE:
            fields: Dict[str, Any] = {"status": PipelineStatus.RUNNING.value}
            if job.started_at is None:
                fields["started_at"] = time.time()
            if not self.repository.update_pipeline(pipeline_id, expected_status=_RUNNABLE, **fields):
                job = self.get_pipeline(pipeline_id)
                if job.status == PipelineStatus.CANCELLED:
                    raise PipelineCancelledError(pipeline_id)
                raise InvalidStateError(f"Pipeline {pipeline_id} changed to {job.status.value} before starting")
        elif job.status != PipelineStatus.PAUSED:
            raise InvalidStateError(f"Pipeline {pipeline_id} is {job.status.value}, nothing to run")

        index = job.current_operation_index
        resolved = job.result_at(index)
        if resolved is not None and resolved.is_resolved:
            index += 1
            self.repository.update_pipeline(pipeline_id, current_operation_index=index)
            logger.info(f"[PIPELINE {pipeline_id}] Operation {index - 1} already resolved, resuming at {index}")

        logger.info(f"[PIPELINE {pipeline_id}] Running from operation {index}/{len(job.operations)}")

        while index < len(job.operations):
            job = await self._checkpoint(pipeline_id)
            self.repository.update_pipeline(
                pipeline_id,
                expected_status=_IN_PROGRESS,
                current_operation_index=index,
            )
            if not await self._run_operation(job, index):
                return
            index += 1

        job = await self._checkpoint(pipeline_id)
        self._finish(job)

    async def _checkpoint(self, pipeline_id: str) -> PipelineJob:
        """
        Operation boundary: raise on cancel, wait out a pause, and return
        the freshly loaded job once it is running.
        """
        waiting = False
        while True:
            self.signals.reset(pipeline_id)
            job = self.get_pipeline(pipeline_id)

            if job.status == PipelineStatus.CANCELLED:
                raise PipelineCancelledError(pipeline_id)
            if job.status == PipelineStatus.RUNNING:
                if waiting:
                    logger.info(f"[PIPELINE {pipeline_id}] Resumed")
                return job
            if job.status != PipelineStatus.PAUSED:
                raise InvalidStateError(f"Pipeline {pipeline_id} is {job.status.value}, stopping run")

            if not waiting:
                logger.info(f"[PIPELINE {pipeline_id}] Paused, waiting for resume")
                waiting = True
            await self.signals.wait(pipeline_id, self.pause_poll_interval)

    async def _run_operation(self, job: PipelineJob, index: int) -> bool:
        """Run operation index. Returns True when the run should continue."""
        pipeline_id = job.id
        kind = OperationKind(job.operations[index])
        config = job.config_for(index)
        references = config.pop("references", None)
        input_version_id = job.current_version_id
        started = time.time()

        logger.info(f"[PIPELINE {pipeline_id}] Operation {index + 1}/{len(job.operations)}: {kind.value}")

        op_job_id = self.runner.create_operation(job.chapter_id, input_version_id, kind, config, references)
        op_job = await self.runner.execute(op_job_id)

        if self.get_pipeline(pipeline_id).status == PipelineStatus.CANCELLED:
            logger.info(f"[PIPELINE {pipeline_id}] Cancelled during {kind.value}, discarding its result")
            raise PipelineCancelledError(pipeline_id)

        metadata = {
            "duration_seconds": round(time.time() - started, 3),
            "cost_usd": op_job.cost_usd,
            "items_generated": len(op_job.suggestions or []),
        }
        result = OperationResult(
            operation=kind.value,
            operation_index=index,
            status=ResultStatus.COMPLETED,
            operation_job_id=op_job_id,
            requires_approval=kind.requires_approval,
            input_version_id=input_version_id,
            metadata=metadata,
        )

        if op_job.status != OperationStatus.COMPLETED:
            self._record_failure(pipeline_id, result, op_job.error_message or "Operation failed", op_job.cost_usd)
            return False

        if kind.requires_approval:
            result.status = ResultStatus.AWAITING_APPROVAL
            result.approval_status = ApprovalStatus.PENDING
            self._append(pipeline_id, result, op_job.cost_usd)
            self.repository.update_pipeline(
                pipeline_id,
                expected_status=_IN_PROGRESS,
                status=PipelineStatus.AWAITING_APPROVAL.value,
            )
            logger.info(
                f"[PIPELINE {pipeline_id}] {kind.value} produced {metadata['items_generated']} "
                f"suggestions, awaiting approval"
            )
            return False

        return self._auto_apply(pipeline_id, result, op_job)

    def _auto_apply(self, pipeline_id: str, result: OperationResult, op_job: OperationJob) -> bool:
        accepted = [s.id for s in op_job.suggestions or []]
        try:
            applied = self.runner.apply(op_job.id, accepted)
            self._save_intermediate(pipeline_id, result.operation_index, result.operation, applied["new_version_id"])
        except Exception as e:
            self._record_failure(pipeline_id, result, f"Failed to apply changes: {e}", op_job.cost_usd)
            return False

        result.output_version_id = applied["new_version_id"]
        result.approved_items = accepted
        result.metadata.update({
            "items_applied": applied["applied_count"],
            "items_unmatched": applied["unmatched_count"],
        })
        self._append(pipeline_id, result, op_job.cost_usd)
        self.repository.update_pipeline(
            pipeline_id,
            current_version_id=applied["new_version_id"],
            current_operation_index=result.operation_index + 1,
        )
        logger.info(
            f"[PIPELINE {pipeline_id}] {result.operation} applied automatically "
            f"({applied['applied_count']} applied, {applied['unmatched_count']} unmatched)"
        )
        return True

    def _append(self, pipeline_id: str, result: OperationResult, cost_usd: float) -> None:
        if not self.repository.append_operation_result(pipeline_id, result.to_dict(), cost_usd):
            raise PipelineCancelledError(pipeline_id)

    def _record_failure(self, pipeline_id: str, result: OperationResult, message: str, cost_usd: float) -> None:
        result.status = ResultStatus.FAILED
        result.metadata["error_message"] = message
        self._append(pipeline_id, result, cost_usd)
        self._mark_failed(pipeline_id, message, _IN_PROGRESS)

    def _mark_failed(self, pipeline_id: str, message: str, expected: List[str]) -> None:
        record = self.repository.get_pipeline(pipeline_id)
        if not record:
            return
        now = time.time()
        self.repository.update_pipeline(
            pipeline_id,
            expected_status=expected,
            status=PipelineStatus.FAILED.value,
            error_message=message,
            completed_at=now,
            total_duration_seconds=round(now - (record["started_at"] or now), 3),
        )
        logger.error(f"[PIPELINE {pipeline_id}] Failed: {message}")

    def _finish(self, job: PipelineJob) -> None:
        version = self.version_store.get_version(job.current_version_id)
        path = pipeline_final_path(job.id, version.file_ext)
        if not self.object_store.exists(path):
            self.object_store.put(path, self.version_store.load_content(version.id))

        now = time.time()
        finished = self.repository.update_pipeline(
            job.id,
            expected_status=[PipelineStatus.RUNNING.value],
            status=PipelineStatus.COMPLETED.value,
            final_version_id=version.id,
            final_artifact_path=path,
            completed_at=now,
            total_duration_seconds=round(now - (job.started_at or now), 3),
        )
        if finished:
            logger.info(f"[PIPELINE {job.id}] Completed, final version {version.id}")

    def _save_intermediate(self, pipeline_id: str, index: int, operation: str, version_id: str) -> None:
        """Snapshot the output of operation index for download."""
        if self.repository.get_artifact(pipeline_id, index):
            return
        version = self.version_store.get_version(version_id)
        content = self.version_store.load_content(version_id)
        path = pipeline_artifact_path(pipeline_id, index, operation, version.file_ext)
        if not self.object_store.exists(path):
            self.object_store.put(path, content)
        self.repository.save_artifact(pipeline_id, index, operation, path, len(content), version_id)

    # ==================== APPROVAL ====================

    def _pending_result(self, job: PipelineJob) -> OperationResult:
        if job.status != PipelineStatus.AWAITING_APPROVAL:
            raise InvalidStateError(f"Pipeline {job.id} is {job.status.value}, not awaiting approval")
        result = job.result_at(job.current_operation_index)
        if result is None or result.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Pipeline {job.id} has no pending result at {job.current_operation_index}")
        return result

    @staticmethod
    def _results_with(job: PipelineJob, result: OperationResult) -> List[Dict[str, Any]]:
        """Persisted results with the latest entry for result.operation_index replaced"""
        stale = job.result_at(result.operation_index)
        return [
            result.to_dict() if r is stale else r.to_dict()
            for r in job.operation_results
        ]

    async def approve(self, pipeline_id: str, approved_ids: List[str]) -> Dict[str, Any]:
        """
        Apply the approved suggestions of the waiting operation and continue
        with the next one.
        """
        job = self.get_pipeline(pipeline_id)
        result = self._pending_result(job)

        if not self.repository.update_pipeline(
            pipeline_id,
            expected_status=[PipelineStatus.AWAITING_APPROVAL.value],
            status=PipelineStatus.APPLYING_CHANGES.value,
        ):
            raise InvalidStateError(f"Pipeline {pipeline_id} changed state during approval")

        try:
            applied = self.runner.apply(result.operation_job_id, approved_ids)
            self._save_intermediate(pipeline_id, result.operation_index, result.operation, applied["new_version_id"])
        except Exception as e:
            message = f"Failed to apply changes: {e}"
            self._mark_failed(pipeline_id, message, [PipelineStatus.APPLYING_CHANGES.value])
            raise PipelineError(message) from e

        if not self._record_approval(pipeline_id, result, approved_ids, applied):
            return applied

        logger.info(
            f"[PIPELINE {pipeline_id}] Approved {len(approved_ids)} suggestions for "
            f"{result.operation}, continuing"
        )
        self.start(pipeline_id)
        return applied

    def _record_approval(
        self,
        pipeline_id: str,
        result: OperationResult,
        approved_ids: List[str],
        applied: Dict[str, Any],
    ) -> bool:
        """Mark result approved and move past it. False if the status changed meanwhile."""
        result.status = ResultStatus.COMPLETED
        result.approval_status = ApprovalStatus.APPROVED
        result.approved_items = list(approved_ids)
        result.output_version_id = applied["new_version_id"]
        result.metadata.update({
            "items_applied": applied["applied_count"],
            "items_unmatched": applied["unmatched_count"],
        })
        result.completed_at = time.time()

        job = self.get_pipeline(pipeline_id)
        if not self.repository.update_pipeline(
            pipeline_id,
            expected_status=[PipelineStatus.APPLYING_CHANGES.value],
            operation_results=self._results_with(job, result),
            current_version_id=applied["new_version_id"],
            current_operation_index=result.operation_index + 1,
            status=PipelineStatus.RUNNING.value,
        ):
            logger.info(f"[PIPELINE {pipeline_id}] Status became {job.status.value} while applying changes")
            return False
        return True

    def _settle_interrupted_approval(self, job: PipelineJob) -> None:
        result = job.result_at(job.current_operation_index)
        if result is None or result.approval_status != ApprovalStatus.PENDING:
            self._mark_failed(
                job.id,
                "Interrupted while applying changes",
                [PipelineStatus.APPLYING_CHANGES.value],
            )
            return

        op_job = self.runner.get_job(result.operation_job_id)
        if not op_job.new_version_id:
            self.repository.update_pipeline(
                job.id,
                expected_status=[PipelineStatus.APPLYING_CHANGES.value],
                status=PipelineStatus.AWAITING_APPROVAL.value,
            )
            logger.info(f"[PIPELINE {job.id}] Approval of {result.operation} was not applied, awaiting approval again")
            return

        metadata = self.version_store.get_version(op_job.new_version_id).metadata or {}
        applied = {
            "new_version_id": op_job.new_version_id,
            "applied_count": metadata.get("applied_count", 0),
            "unmatched_count": metadata.get("unmatched_count", 0),
        }
        self._save_intermediate(job.id, result.operation_index, result.operation, op_job.new_version_id)
        if self._record_approval(job.id, result, metadata.get("accepted_suggestion_ids", []), applied):
            logger.info(f"[PIPELINE {job.id}] Completed interrupted approval of {result.operation}")

    async def reject(self, pipeline_id: str) -> None:
        """Skip the waiting operation; the working version stays as it was."""
        job = self.get_pipeline(pipeline_id)
        result = self._pending_result(job)
        result.status = ResultStatus.COMPLETED
        result.approval_status = ApprovalStatus.REJECTED
        result.completed_at = time.time()

        if not self.repository.update_pipeline(
            pipeline_id,
            expected_status=[PipelineStatus.AWAITING_APPROVAL.value],
            operation_results=self._results_with(job, result),
            current_operation_index=result.operation_index + 1,
            status=PipelineStatus.RUNNING.value,
        ):
            raise InvalidStateError(f"Pipeline {pipeline_id} changed state during rejection")

        logger.info(f"[PIPELINE {pipeline_id}] Rejected {result.operation}, continuing")
        self.start(pipeline_id)

    # ==================== CONTROL ====================

    async def control(self, pipeline_id: str, action) -> PipelineJob:
        """pause | resume | cancel"""
        action = PipelineAction(action)
        job = self.get_pipeline(pipeline_id)

        if action == PipelineAction.PAUSE:
            changed = self.repository.update_pipeline(
                pipeline_id,
                expected_status=[PipelineStatus.RUNNING.value],
                status=PipelineStatus.PAUSED.value,
            )
        elif action == PipelineAction.RESUME:
            changed = self.repository.update_pipeline(
                pipeline_id,
                expected_status=[PipelineStatus.PAUSED.value],
                status=PipelineStatus.RUNNING.value,
            )
        else:
            changed = self.repository.update_pipeline(
                pipeline_id,
                expected_status=ACTIVE_STATUSES,
                status=PipelineStatus.CANCELLED.value,
                completed_at=time.time(),
            )

        if not changed:
            current = self.get_pipeline(pipeline_id).status
            raise InvalidStateError(f"Cannot {action.value} pipeline {pipeline_id} while {current.value}")

        logger.info(f"[PIPELINE {pipeline_id}] {action.value} ({job.status.value} -> {self.get_pipeline(pipeline_id).status.value})")
        self.signals.notify(pipeline_id)

        if action == PipelineAction.RESUME and not self.is_running(pipeline_id):
            self.start(pipeline_id)
        return self.get_pipeline(pipeline_id)

    # ==================== ARTIFACTS ====================

    def download_artifact(self, pipeline_id: str, which: str = "final", index: Optional[int] = None) -> bytes:
        """Bytes of the final artifact or of the intermediate one at index."""
        job = self.get_pipeline(pipeline_id)

        if which == "final":
            if not job.final_artifact_path:
                raise NotFoundError("Artifact", f"{pipeline_id}/final")
            return self.object_store.get(job.final_artifact_path)

        if which != "intermediate" or index is None:
            raise ValueError("which must be 'final' or 'intermediate' with an index")
        artifact = self.repository.get_artifact(pipeline_id, index)
        if not artifact:
            raise NotFoundError("Artifact", f"{pipeline_id}/{index}")
        return self.object_store.get(artifact["storage_path"])
