from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .dispatch import DispatchReport
from .events import TransitionEvent


class ValidateRequest(BaseModel):
    """A condition document submitted for validation without loading it."""

    document: str = Field(..., description="Condition document text.")


class ValidateResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    policy_id: Optional[str] = None
    condition_kind: Optional[str] = None
    normalized: Optional[str] = Field(
        default=None,
        description="The document re-serialized from the validated binding.",
    )


class ReloadResponse(BaseModel):
    ok: bool
    policy_count: int
    source_path: str
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class BindingSummary(BaseModel):
    policy_id: str
    condition_kind: str
    agent_policy: Optional[str] = None
    severity: str
    priority: str
    source: Optional[str] = None


class PolicyStatus(BaseModel):
    policy_path: str
    generation: int
    running: bool
    tick_seconds: float
    tick_count: int
    bindings: List[BindingSummary] = Field(default_factory=list)
    states: List[Dict[str, Any]] = Field(default_factory=list)


class EvaluationResponse(BaseModel):
    endpoint_id: str
    transitions: List[TransitionEvent] = Field(default_factory=list)
    dispatches: List[DispatchReport] = Field(default_factory=list)


class ResetResponse(BaseModel):
    policy_id: str
    endpoint_id: str
    state: str
    transitions: List[TransitionEvent] = Field(default_factory=list)
    dispatches: List[DispatchReport] = Field(default_factory=list)
