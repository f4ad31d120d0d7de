"""
Pipeline orchestration: resumable multi-operation runs with an approval gate.
"""

from .models import (
    ApprovalStatus,
    OperationResult,
    PipelineAction,
    PipelineJob,
    PipelineStatus,
    ResultStatus,
)
from .control import PipelineControl
from .orchestrator import PipelineOrchestrator

__all__ = [
    'ApprovalStatus',
    'OperationResult',
    'PipelineAction',
    'PipelineJob',
    'PipelineStatus',
    'ResultStatus',
    'PipelineControl',
    'PipelineOrchestrator',
]
