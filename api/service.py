"""
Revision Service

Control surface over the version store, operation runner, context builder
and pipeline orchestrator. Transport layers call into this; it validates
inputs, wires the components together and shapes the responses.
"""

from typing import Any, Dict, List, Optional, Union

from ai_providers import AIProviderManager, create_provider_manager
from config.logging_config import get_logger
from config.settings import Settings, settings as default_settings
from core.context import CitationMode, ContextAnswerer, ContextBuilder, VersionIndexCache
from core.errors import InvalidStateError
from core.models import OperationKind, OperationStatus
from core.operations import OperationRunner
from core.pipeline import PipelineOrchestrator, PipelineStatus
from core.references import Extractor
from core.storage import LocalObjectStore, ObjectStore, RevisionRepository, get_repository
from core.versioning import DocumentCompiler, VersionStore

from .models import (
    ApplyResponse,
    ArtifactKind,
    CreatePipelineRequest,
    OperationStatusResponse,
    PipelineStatusResponse,
    ReferenceInput,
    validate_operation_config,
)

logger = get_logger(__name__)


class RevisionService:
    """
    Revision Service

    Manages chapters, versions, single operations and pipelines.
    """

    def __init__(
        self,
        repository: Optional[RevisionRepository] = None,
        object_store: Optional[ObjectStore] = None,
        provider_manager: Optional[AIProviderManager] = None,
        extractor: Optional[Extractor] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.repository = repository or get_repository(str(self.config.db_path))
        self.object_store = object_store or LocalObjectStore(str(self.config.storage_dir))
        self.provider_manager = provider_manager or create_provider_manager(
            self.config.provider, self.config.get_api_keys()
        )

        self.version_store = VersionStore(self.repository, self.object_store)
        self.index_cache = VersionIndexCache(self.config.index_cache_size, self.config.index_cache_ttl)
        self.context_builder = ContextBuilder(self.repository, self.index_cache)
        self.answerer = ContextAnswerer(self.context_builder, self.provider_manager)
        self.runner = OperationRunner(
            self.repository,
            self.version_store,
            self.provider_manager,
            context_builder=self.context_builder,
            extractor=extractor,
            batch_sizes={kind.value: self.config.batch_size_for(kind.value) for kind in OperationKind},
            subjob_timeout=self.config.subjob_timeout_seconds,
            subjob_poll_interval=self.config.subjob_poll_interval,
        )
        self.orchestrator = PipelineOrchestrator(
            self.repository,
            self.version_store,
            self.runner,
            self.object_store,
            pause_poll_interval=self.config.pause_poll_interval,
        )

        self.compiler = DocumentCompiler(self.repository, self.version_store, self.object_store)

        logger.info(f"RevisionService initialized: provider={self.config.provider}, storage={self.config.storage_dir}")

    # ==================== DOCUMENTS & VERSIONS ====================

    def create_document(self, title: str) -> str:
        return self.repository.create_document(title)

    def upload_chapter(self, document_id: str, title: str, content: bytes, filename: str) -> Dict[str, str]:
        chapter_id, version_id = self.version_store.upload_chapter(document_id, title, content, filename)
        return {"chapter_id": chapter_id, "version_id": version_id}

    def list_versions(self, chapter_id: str) -> List[Dict[str, Any]]:
        current = self.version_store.current_version_id(chapter_id)
        return [
            {
                "version_id": v.id,
                "parent_id": v.parent_id,
                "sequence": v.sequence,
                "operation_kind": v.operation_kind,
                "pages": v.pages,
                "chunks_count": v.chunks_count,
                "metadata": v.metadata,
                "created_at": v.created_at,
                "is_current": v.id == current,
            }
            for v in self.version_store.list_versions(chapter_id)
        ]

    # ==================== COMPILATION ====================

    def compile_document(
        self,
        document_id: str,
        selections: Optional[List[Dict[str, str]]] = None,
        include_cover_page: bool = False,
        custom_title: Optional[str] = None,
        file_ext: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Compile one version per chapter into a single document.

        selections is a list of {chapter_id, version_id}; without it every
        chapter's current version is used.
        """
        return self.compiler.compile(
            document_id,
            selections,
            include_cover_page=include_cover_page,
            custom_title=custom_title,
            file_ext=file_ext,
        )

    def list_compilations(self, document_id: str) -> List[Dict[str, Any]]:
        return self.compiler.list_compilations(document_id)

    def download_compilation(self, compilation_id: str) -> bytes:
        return self.compiler.download(compilation_id)

    # ==================== OPERATIONS ====================

    async def create_operation(
        self,
        chapter_id: str,
        version_id: str,
        operation: str,
        config: Optional[Dict[str, Any]] = None,
        references: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """Validate, persist and start an operation; returns the job id at once."""
        kind = OperationKind(operation)
        validated = validate_operation_config(kind, config)
        refs = [ReferenceInput(**r).model_dump() for r in references or []]

        job_id = self.runner.create_operation(chapter_id, version_id, kind, validated, refs)
        self.runner.start(job_id)
        return job_id

    def get_operation(self, job_id: str) -> Dict[str, Any]:
        job = self.runner.get_job(job_id)
        return OperationStatusResponse(
            job_id=job.id,
            operation=job.kind.value,
            status=job.status.value,
            progress=job.progress,
            error_message=job.error_message,
            new_version_id=job.new_version_id,
            cost_usd=job.cost_usd,
        ).model_dump()

    def get_suggestions(self, job_id: str) -> Dict[str, Any]:
        job = self.runner.get_job(job_id)
        if job.status != OperationStatus.COMPLETED:
            raise InvalidStateError(f"Operation {job_id} is {job.status.value}, suggestions not available")
        return {
            "suggestions": [s.to_dict() for s in job.suggestions or []],
            "full_text": job.full_text,
        }

    def apply_suggestions(self, job_id: str, accepted_ids: List[str]) -> Dict[str, Any]:
        applied = self.runner.apply(job_id, accepted_ids)
        return ApplyResponse(**applied).model_dump()

    # ==================== PIPELINES ====================

    async def create_pipeline(
        self,
        chapter_id: str,
        operations: List[str],
        operation_configs: Optional[Union[List[Dict[str, Any]], Dict[str, Dict[str, Any]]]] = None,
        version_id: Optional[str] = None,
        start: bool = True,
    ) -> str:
        request = CreatePipelineRequest(
            chapter_id=chapter_id,
            operations=operations,
            operation_configs=operation_configs or [],
            version_id=version_id,
        )

        configs = []
        for i, kind in enumerate(request.operations):
            raw = request.config_for(i)
            references = raw.pop("references", None)
            validated = validate_operation_config(kind, raw)
            if references:
                validated["references"] = [ReferenceInput(**r).model_dump() for r in references]
            configs.append(validated)

        pipeline_id = self.orchestrator.create_pipeline(
            request.chapter_id,
            [op.value for op in request.operations],
            configs,
            version_id=request.version_id,
        )
        if start:
            self.orchestrator.start(pipeline_id)
        return pipeline_id

    def get_pipeline(self, pipeline_id: str) -> Dict[str, Any]:
        job = self.orchestrator.get_pipeline(pipeline_id)
        return PipelineStatusResponse(
            pipeline_id=job.id,
            status=job.status.value,
            operations=job.operations,
            current_operation_index=job.current_operation_index,
            operation_results=[r.to_dict() for r in job.operation_results],
            current_version_id=job.current_version_id,
            final_version_id=job.final_version_id,
            error_message=job.error_message,
            cost_usd=job.total_cost_usd,
            duration_seconds=job.total_duration_seconds,
        ).model_dump()

    async def control_pipeline(self, pipeline_id: str, action: str) -> Dict[str, Any]:
        await self.orchestrator.control(pipeline_id, action)
        return self.get_pipeline(pipeline_id)

    async def approve_pipeline(self, pipeline_id: str, approved_ids: List[str]) -> Dict[str, Any]:
        return await self.orchestrator.approve(pipeline_id, approved_ids)

    async def reject_pipeline(self, pipeline_id: str) -> Dict[str, Any]:
        await self.orchestrator.reject(pipeline_id)
        return self.get_pipeline(pipeline_id)

    def download_artifact(self, pipeline_id: str, which: str = "final", index: Optional[int] = None) -> bytes:
        return self.orchestrator.download_artifact(pipeline_id, ArtifactKind(which).value, index)

    def resume_interrupted_pipelines(self) -> List[str]:
        """Restart pipelines left running by a previous process."""
        return self.orchestrator.recover()

    def active_pipelines(self) -> List[str]:
        statuses = [PipelineStatus.RUNNING.value, PipelineStatus.PAUSED.value, PipelineStatus.AWAITING_APPROVAL.value]
        return [p["id"] for p in self.repository.get_pipelines_by_status(statuses)]

    # ==================== CONTEXT ====================

    def build_context(
        self,
        version_ids: List[str],
        query: str,
        top_k_per_version: Optional[int] = None,
        top_k: Optional[int] = None,
    ) -> Dict[str, Any]:
        result = self.context_builder.build_context(
            version_ids,
            query,
            top_k_per_version=top_k_per_version or self.config.context_top_k_per_version,
            top_k=top_k or self.config.context_top_k,
        )
        return result.to_dict()

    async def ask(
        self,
        version_ids: List[str],
        question: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        citation_mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Answer a question from the given versions, citing the passages used."""
        answer = await self.answerer.ask(
            version_ids,
            question,
            provider=provider,
            model=model,
            top_k_per_version=self.config.context_top_k_per_version,
            top_k=self.config.context_top_k,
            citation_mode=CitationMode(citation_mode) if citation_mode else None,
        )
        return answer.to_dict()

    def available_providers(self) -> Dict[str, Any]:
        return {
            "current": self.provider_manager.current_provider.value,
            "available": [
                {"type": info.type.value, "name": info.name, "default_model": info.default_model}
                for info in self.provider_manager.get_available_providers()
            ],
        }


# Singleton instance
_service: Optional[RevisionService] = None


def get_revision_service() -> RevisionService:
    """Get or create the service singleton."""
    global _service
    if _service is None:
        _service = RevisionService()
    return _service
