"""
API Models

Pydantic models for operation configs and control-surface requests.
Configs are validated here and stored on the job as plain dicts.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models import OperationKind


class AdaptStyle(str, Enum):
    ACADEMIC = "academic"
    PROFESSIONAL = "professional"
    SIMPLIFIED = "simplified"
    CUSTOM = "custom"


class ImprovementType(str, Enum):
    GRAMMAR = "grammar"
    CLARITY = "clarity"
    STYLE = "style"
    COHERENCE = "coherence"
    CONCISENESS = "conciseness"


class ArtifactKind(str, Enum):
    FINAL = "final"
    INTERMEDIATE = "intermediate"


# ==================== OPERATION CONFIGS ====================

class OperationConfigBase(BaseModel):
    """Fields every operation accepts"""
    provider: Optional[str] = Field(default=None, description="openai | claude | gemini | grok")
    model: Optional[str] = Field(default=None, description="Provider model, default if omitted")
    context_version_ids: List[str] = Field(
        default_factory=list,
        description="Versions to retrieve related passages from",
    )
    context_query: Optional[str] = Field(default=None, description="Retrieval query; derived if omitted")


class AdjustConfig(OperationConfigBase):
    """Instruction-guided rewrite"""
    instructions: str = Field(..., description="What to change")
    creativity: int = Field(default=5, ge=0, le=10, description="0 = minimal, 10 = free rephrasing")

    @field_validator("instructions")
    @classmethod
    def instructions_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Instructions cannot be empty")
        return v.strip()

    class Config:
        json_schema_extra = {
            "example": {
                "instructions": "Replace every mention of 'client' with 'customer'",
                "creativity": 3,
            }
        }


class UpdateConfig(OperationConfigBase):
    """Reference-grounded update"""
    instructions: Optional[str] = Field(default=None, description="Optional focus for the update")


class ImproveConfig(OperationConfigBase):
    """Open-ended quality improvements"""
    focus: List[ImprovementType] = Field(default_factory=list, description="Limit to these improvement types")


class AdaptConfig(OperationConfigBase):
    """Style / audience adaptation"""
    style: AdaptStyle = AdaptStyle.PROFESSIONAL
    target_audience: Optional[str] = Field(default=None, description="Required for the custom style")

    @model_validator(mode="after")
    def custom_needs_audience(self) -> 'AdaptConfig':
        if self.style == AdaptStyle.CUSTOM and not (self.target_audience or "").strip():
            raise ValueError("target_audience is required when style is 'custom'")
        return self


class TranslateConfig(OperationConfigBase):
    """Paragraph translation"""
    target_language: str = Field(..., description="Language to translate into")
    source_language: Optional[str] = Field(default=None, description="Detected when omitted")


CONFIG_MODELS: Dict[OperationKind, Type[OperationConfigBase]] = {
    OperationKind.ADJUST: AdjustConfig,
    OperationKind.UPDATE: UpdateConfig,
    OperationKind.IMPROVE: ImproveConfig,
    OperationKind.ADAPT: AdaptConfig,
    OperationKind.TRANSLATE: TranslateConfig,
}


def validate_operation_config(kind, config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate config for an operation kind and return it as a JSON-ready dict"""
    model = CONFIG_MODELS[OperationKind(kind)]
    return model(**(config or {})).model_dump(mode="json", exclude_none=True)


# ==================== REQUEST MODELS ====================

class ReferenceInput(BaseModel):
    """A link or file attached to an operation"""
    kind: str = Field(default="file", pattern="^(link|file)$")
    title: Optional[str] = None
    source: str = Field(..., description="URL or filename")
    content: Optional[str] = Field(default=None, description="Extracted text, if already available")


class CreateOperationRequest(BaseModel):
    chapter_id: str
    version_id: str
    operation: OperationKind
    config: Dict[str, Any] = Field(default_factory=dict)
    references: List[ReferenceInput] = Field(default_factory=list)


class CreatePipelineRequest(BaseModel):
    chapter_id: str
    operations: List[OperationKind] = Field(..., min_length=1)
    operation_configs: Union[List[Dict[str, Any]], Dict[str, Dict[str, Any]]] = Field(
        default_factory=list,
        description="One config per operation, or a dict keyed by operation name",
    )
    version_id: Optional[str] = Field(default=None, description="Start version; chapter's current if omitted")

    @model_validator(mode="after")
    def configs_match_operations(self) -> 'CreatePipelineRequest':
        if isinstance(self.operation_configs, dict):
            names = {op.value for op in self.operations}
            unknown = sorted(set(self.operation_configs) - names)
            if unknown:
                raise ValueError(f"operation_configs names operations not in the pipeline: {unknown}")
        elif self.operation_configs and len(self.operation_configs) != len(self.operations):
            raise ValueError("operation_configs must have one entry per operation")
        return self

    def config_for(self, index: int) -> Dict[str, Any]:
        if isinstance(self.operation_configs, dict):
            return dict(self.operation_configs.get(self.operations[index].value) or {})
        if self.operation_configs:
            return dict(self.operation_configs[index] or {})
        return {}


# ==================== RESPONSE MODELS ====================

class OperationStatusResponse(BaseModel):
    job_id: str
    operation: str
    status: str
    progress: float = 0.0
    error_message: Optional[str] = None
    new_version_id: Optional[str] = None
    cost_usd: float = 0.0


class ApplyResponse(BaseModel):
    new_version_id: str
    applied_count: int
    unmatched_count: int
    unmatched_ids: List[str] = []


class PipelineStatusResponse(BaseModel):
    pipeline_id: str
    status: str
    operations: List[str]
    current_operation_index: int
    operation_results: List[Dict[str, Any]] = []
    current_version_id: Optional[str] = None
    final_version_id: Optional[str] = None
    error_message: Optional[str] = None
    cost_usd: float = 0.0
    duration_seconds: Optional[float] = None
