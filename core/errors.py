"""
Error taxonomy shared by the version store, generators, operations and pipelines.

Unmatched edits are not errors: they are counted in ApplyReport.
"""

from typing import Optional


class RevisionError(Exception):
    """Base class for all domain errors."""


class NotFoundError(RevisionError):
    """A referenced document, chapter, version, job or artifact does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidStateError(RevisionError):
    """The requested transition is not allowed from the current status."""


class GenerationError(RevisionError):
    """The suggestion-generating capability failed or returned unparseable output."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)


class ReferenceProcessingError(RevisionError):
    """A single reference could not be turned into usable text."""


class ContextBuildError(RevisionError):
    """No requested version could be loaded, or none had relevant passages."""


class OperationTimeoutError(RevisionError):
    """A bounded wait on a sub-job gave up."""


class PipelineError(RevisionError):
    """Unrecovered failure inside a pipeline run."""


class PipelineCancelledError(PipelineError):
    """Raised at an operation boundary once a pipeline is observed as cancelled."""

    def __init__(self, pipeline_id: str):
        self.pipeline_id = pipeline_id
        super().__init__(f"Pipeline cancelled: {pipeline_id}")
