"""
Pipeline data model.

A PipelineJob is fully described by its persisted record: the operation
list, the cursor, the ordered results and the working version. The
orchestrator rebuilds one from the repository on every step.
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class PipelineStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    AWAITING_APPROVAL = "awaiting_approval"
    APPLYING_CHANGES = "applying_changes"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    PipelineStatus.COMPLETED,
    PipelineStatus.FAILED,
    PipelineStatus.CANCELLED,
})

ACTIVE_STATUSES = [s.value for s in PipelineStatus if s not in TERMINAL_STATUSES]


class ResultStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    AWAITING_APPROVAL = "awaiting_approval"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PipelineAction(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"


@dataclass
class OperationResult:
    """Outcome of one operation within a pipeline"""
    operation: str
    operation_index: int
    status: ResultStatus
    operation_job_id: Optional[str] = None
    requires_approval: bool = False
    approval_status: Optional[ApprovalStatus] = None
    approved_items: List[str] = field(default_factory=list)
    input_version_id: Optional[str] = None
    output_version_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    completed_at: float = field(default_factory=time.time)

    @property
    def is_resolved(self) -> bool:
        """Nothing left to do for this operation; the cursor may move past it"""
        if self.approval_status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            return True
        return self.status == ResultStatus.COMPLETED and not self.requires_approval

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["approval_status"] = self.approval_status.value if self.approval_status else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperationResult':
        data = dict(data)
        data["status"] = ResultStatus(data["status"])
        if data.get("approval_status"):
            data["approval_status"] = ApprovalStatus(data["approval_status"])
        return cls(**data)


@dataclass
class PipelineJob:
    id: str
    chapter_id: str
    operations: List[str]
    operation_configs: List[Dict[str, Any]] = field(default_factory=list)
    status: PipelineStatus = PipelineStatus.PENDING
    current_operation_index: int = 0
    operation_results: List[OperationResult] = field(default_factory=list)
    current_version_id: Optional[str] = None
    final_version_id: Optional[str] = None
    final_artifact_path: Optional[str] = None
    error_message: Optional[str] = None
    total_cost_usd: float = 0.0
    total_duration_seconds: Optional[float] = None
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def config_for(self, index: int) -> Dict[str, Any]:
        if 0 <= index < len(self.operation_configs):
            return dict(self.operation_configs[index] or {})
        return {}

    def result_at(self, index: int) -> Optional[OperationResult]:
        """Latest result recorded for the operation at index"""
        for result in reversed(self.operation_results):
            if result.operation_index == index:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["operation_results"] = [r.to_dict() for r in self.operation_results]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineJob':
        data = dict(data)
        data["status"] = PipelineStatus(data["status"])
        data["operation_results"] = [
            OperationResult.from_dict(r) for r in data.get("operation_results") or []
        ]
        configs = data.get("operation_configs") or []
        if isinstance(configs, dict):
            # Keyed by operation name
            configs = [configs.get(op, {}) for op in data["operations"]]
        data["operation_configs"] = configs
        return cls(**data)
