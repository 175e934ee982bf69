from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .common import DurationWindow, ResetInterval
from .conditions import Condition, ConditionKind
from .dispatch import ActionDispatch

DEFAULT_SCOPE_PATH = "Administration > Policies > Agent Policies"


class Severity(str, Enum):
    CRITICAL = "Critical"
    MAJOR = "Major"
    MODERATE = "Moderate"
    MINOR = "Minor"
    NONE = "None"


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NONE = "None"


class TargetScope(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = DEFAULT_SCOPE_PATH
    agent_policy: Optional[str] = None

    @field_validator("agent_policy")
    @classmethod
    def _blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class AutoReset(BaseModel):
    """
    Auto-reset behaviour of a binding.

    reset_interval and notify_on_reset only take effect while ``enabled`` is
    true; use the ``effective_*`` accessors when acting on them.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    reset_interval: Optional[ResetInterval] = None
    when_no_longer_met: bool = False
    notify_on_reset: bool = False

    @model_validator(mode="after")
    def _reset_trigger(self):
        if self.enabled and self.reset_interval is None and not self.when_no_longer_met:
            raise ValueError("auto-reset needs a Reset_Interval or When_no_longer_met")
        return self

    @property
    def effective_interval(self) -> Optional[DurationWindow]:
        if not self.enabled or self.reset_interval is None:
            return None
        return self.reset_interval.window

    @property
    def resets_when_cleared(self) -> bool:
        return self.enabled and self.when_no_longer_met

    @property
    def effective_notify_on_reset(self) -> bool:
        return self.enabled and self.notify_on_reset


class PolicyBinding(BaseModel):
    """A condition bound to a target scope with severity, reset and dispatch rules."""

    model_config = ConfigDict(extra="forbid")

    policy_id: str = Field(..., min_length=1)
    target_scope: TargetScope = Field(default_factory=TargetScope)
    condition: Condition
    severity: Severity = Severity.NONE
    priority: Priority = Priority.NONE
    auto_reset: AutoReset = Field(default_factory=AutoReset)
    dispatch: ActionDispatch = Field(default_factory=ActionDispatch)

    @property
    def kind(self) -> ConditionKind:
        return self.condition.kind

    @property
    def trigger_again(self) -> bool:
        """Only Device Down and Windows Service expose the re-trigger flag."""
        return bool(getattr(self.condition, "trigger_again", False))

    def threshold_snapshot(self) -> dict:
        return self.condition.model_dump(mode="json", exclude={"kind"})
