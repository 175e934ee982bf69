from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .conditions import ConditionKind


class BindingState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    RESETTING = "resetting"


class TransitionCause(str, Enum):
    CONDITION_MET = "condition_met"
    CONDITION_CLEARED = "condition_cleared"
    RESET_INTERVAL = "reset_interval"
    RESET_COMPLETE = "reset_complete"
    MANUAL_RESET = "manual_reset"


class TransitionEvent(BaseModel):
    """
    Normalized record emitted on every binding state transition.

    Written to the audit log and returned by evaluation calls.
    """

    policy_id: str
    endpoint_id: str
    condition_kind: ConditionKind
    previous_state: BindingState
    new_state: BindingState
    cause: TransitionCause
    timestamp: datetime
    sampled_value: Optional[Any] = None
    threshold_snapshot: Dict[str, Any] = Field(default_factory=dict)


class ScriptErrorEvent(BaseModel):
    """Script execution failure, reported apart from state transitions."""

    policy_id: str
    endpoint_id: str
    script: str
    reason: str
    detail: str = ""
    exit_code: Optional[int] = None
    timestamp: datetime
    notified: bool = False
