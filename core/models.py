"""
Domain types shared across the core engine.

Versions, chunks and suggestions are immutable once created; OperationJob is
the mutable record of one generator run and is persisted by the repository.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Optional, List, Dict, Any


class OperationKind(str, Enum):
    """Transformation families"""
    ADJUST = "adjust"          # instruction-guided rewrite
    UPDATE = "update"          # reference-grounded update
    IMPROVE = "improve"        # open-ended quality edits
    ADAPT = "adapt"            # style / audience adaptation
    TRANSLATE = "translate"    # paragraph translation

    @property
    def requires_approval(self) -> bool:
        """Operations whose suggestions are surfaced for human review"""
        return self is not OperationKind.TRANSLATE


# Version.operation_kind for the uploaded root
UPLOAD_KIND = "upload"


class OperationStatus(str, Enum):
    """OperationJob lifecycle"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.ERROR)


def new_id(prefix: str = "") -> str:
    """Short random identifier, optionally prefixed (e.g. 'sug_')"""
    return f"{prefix}{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Suggestion:
    """A candidate edit: replace original_text with improved_text."""
    id: str
    original_text: str
    improved_text: str
    reason: str = ""
    confidence: float = 0.9
    section_title: Optional[str] = None
    sub_type: Optional[str] = None       # improve/adapt category, adjust instruction reference
    reference_id: Optional[str] = None   # update: supporting reference
    position: Optional[Dict[str, int]] = None  # {"start", "end"} in the full text

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            object.__setattr__(self, "confidence", min(1.0, max(0.0, self.confidence)))

    def with_position(self, start: int, end: int) -> 'Suggestion':
        return replace(self, position={"start": start, "end": end})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Suggestion':
        return cls(**data)


@dataclass(frozen=True)
class Chunk:
    """Contiguous slice of a version's text with page bounds."""
    version_id: str
    chunk_index: int
    text: str
    page_from: int
    page_to: int


@dataclass(frozen=True)
class Version:
    """Immutable snapshot of a chapter's content."""
    id: str
    chapter_id: str
    parent_id: Optional[str]
    sequence: int
    storage_path: str
    file_ext: str
    pages: int
    chunks_count: int
    operation_kind: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None


@dataclass
class OperationJob:
    """One run of a suggestion generator against one version."""
    id: str
    chapter_id: str
    version_id: str
    kind: OperationKind
    config: Dict[str, Any] = field(default_factory=dict)
    status: OperationStatus = OperationStatus.PENDING
    progress: float = 0.0
    suggestions: Optional[List[Suggestion]] = None
    full_text: Optional[str] = None
    error_message: Optional[str] = None
    new_version_id: Optional[str] = None
    cost_usd: float = 0.0
    usage: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["kind"] = self.kind.value
        data["status"] = self.status.value
        if self.suggestions is not None:
            data["suggestions"] = [s.to_dict() for s in self.suggestions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperationJob':
        """Create from dictionary"""
        data = dict(data)
        data["kind"] = OperationKind(data["kind"])
        data["status"] = OperationStatus(data["status"])
        if data.get("suggestions") is not None:
            data["suggestions"] = [Suggestion.from_dict(s) for s in data["suggestions"]]
        return cls(**data)
