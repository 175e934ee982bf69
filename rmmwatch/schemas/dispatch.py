"""
Action dispatch configuration and the records produced while dispatching.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .conditions import ConditionKind, RunAs


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TechnicianMode(str, Enum):
    SUPPRESSED = "Do not send notifications"
    SENT = "Send notifications"


class TicketingMode(str, Enum):
    DISABLED = "Do not create a ticket"
    CREATE = "Create a ticket"
    CREATE_AND_CLOSE = "Create and close a ticket"


class TicketingRule(str, Enum):
    OFF = "Off"
    CREATE_WITH_DEFAULT = "Create with Default"


DEFAULT_TICKET_TEMPLATE = "default"


class Ticketing(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: TicketingMode = TicketingMode.DISABLED
    template_ref: Optional[str] = None
    rule: TicketingRule = TicketingRule.OFF

    @model_validator(mode="after")
    def _template_required(self):
        if self.mode is not TicketingMode.DISABLED and not self.template_ref:
            raise ValueError(f"ticketing mode '{self.mode.value}' needs a Ticket_Template")
        return self

    @property
    def effective_template(self) -> Optional[str]:
        """Template used on activation, or None when no ticket is created."""
        if self.mode is not TicketingMode.DISABLED:
            return self.template_ref
        if self.rule is TicketingRule.CREATE_WITH_DEFAULT:
            return DEFAULT_TICKET_TEMPLATE
        return None


class Automation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    run_as: RunAs = RunAs.SYSTEM
    preset_parameter: str = ""
    parameters: List[str] = Field(default_factory=list)


class ActionDispatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channels: List[str] = Field(default_factory=list)
    technician_mode: TechnicianMode = TechnicianMode.SUPPRESSED
    ticketing: Ticketing = Field(default_factory=Ticketing)
    automations: List[Automation] = Field(default_factory=list)

    @field_validator("channels")
    @classmethod
    def _dedupe(cls, v: List[str]) -> List[str]:
        # Ordered set: the first occurrence of a channel keeps its position.
        seen = []
        for name in v:
            name = name.strip()
            if name and name not in seen:
                seen.append(name)
        return seen


# ---------------------------------------------------------------------------
# Runtime records
# ---------------------------------------------------------------------------

class NoticeKind(str, Enum):
    TRIGGERED = "triggered"
    RESET = "reset"
    SCRIPT_ERROR = "script_error"


class Notice(BaseModel):
    """Payload delivered to channels, technicians and ticket templates."""

    policy_id: str
    endpoint_id: str
    condition_kind: ConditionKind
    kind: NoticeKind
    severity: str
    priority: str
    timestamp: datetime
    message: str
    sampled_value: Optional[Any] = None


class DeliveryStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class DeliveryResult(BaseModel):
    target_kind: str  # channel | technicians | ticket | automation
    target: str
    status: DeliveryStatus
    attempts: int = Field(0, ge=0)
    error: Optional[str] = None


class DispatchReport(BaseModel):
    policy_id: str
    endpoint_id: str
    notice_kind: NoticeKind
    deliveries: List[DeliveryResult] = Field(default_factory=list)
    ticket_id: Optional[str] = None

    @property
    def failures(self) -> List[DeliveryResult]:
        return [d for d in self.deliveries if d.status is DeliveryStatus.FAILED]
