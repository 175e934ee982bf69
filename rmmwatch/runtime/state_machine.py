"""
Per (binding, endpoint) state machine: Inactive -> Active -> (Resetting) -> Inactive.

``observe`` is fed the gated outcome of each tick and returns the transitions
it caused. A binding only re-enters Active while it is *armed*; it is disarmed
by an interval or manual reset (unless trigger_again is set) and re-armed the
first time the condition is observed false.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from rmmwatch.schemas.binding import AutoReset, PolicyBinding
from rmmwatch.schemas.conditions import ConditionKind
from rmmwatch.schemas.events import BindingState, TransitionCause, TransitionEvent

logger = logging.getLogger("rmmwatch.state")


class BindingStateMachine:
    def __init__(
        self,
        policy_id: str,
        endpoint_id: str,
        kind: ConditionKind,
        auto_reset: AutoReset,
        trigger_again: bool = False,
        threshold_snapshot: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.policy_id = policy_id
        self.endpoint_id = endpoint_id
        self.kind = kind
        self.auto_reset = auto_reset
        self.trigger_again = trigger_again
        self.threshold_snapshot = threshold_snapshot or {}

        self.state = BindingState.INACTIVE
        self.armed = True
        self.active_since: Optional[datetime] = None
        self.last_transition: Optional[datetime] = None

    @classmethod
    def for_binding(cls, binding: PolicyBinding, endpoint_id: str) -> "BindingStateMachine":
        return cls(
            binding.policy_id,
            endpoint_id,
            binding.kind,
            binding.auto_reset,
            trigger_again=binding.trigger_again,
            threshold_snapshot=binding.threshold_snapshot(),
        )

    def _move(
        self,
        new_state: BindingState,
        cause: TransitionCause,
        now: datetime,
        sampled_value: Any,
    ) -> TransitionEvent:
        event = TransitionEvent(
            policy_id=self.policy_id,
            endpoint_id=self.endpoint_id,
            condition_kind=self.kind,
            previous_state=self.state,
            new_state=new_state,
            cause=cause,
            timestamp=now,
            sampled_value=sampled_value,
            threshold_snapshot=self.threshold_snapshot,
        )
        logger.info(
            "%s@%s %s -> %s (%s)",
            self.policy_id,
            self.endpoint_id,
            self.state.value,
            new_state.value,
            cause.value,
        )
        self.state = new_state
        self.last_transition = now
        self.active_since = now if new_state is BindingState.ACTIVE else None
        return event

    def _interval_elapsed(self, now: datetime) -> bool:
        interval = self.auto_reset.effective_interval
        if interval is None or self.active_since is None:
            return False
        return (now - self.active_since).total_seconds() >= interval.total_seconds

    def _complete_reset(
        self, cause: TransitionCause, now: datetime, sampled_value: Any
    ) -> List[TransitionEvent]:
        return [
            self._move(BindingState.RESETTING, cause, now, sampled_value),
            self._move(BindingState.INACTIVE, TransitionCause.RESET_COMPLETE, now, sampled_value),
        ]

    def observe(
        self, satisfied: bool, now: datetime, sampled_value: Any = None
    ) -> List[TransitionEvent]:
        if not satisfied:
            self.armed = True

        if self.state is BindingState.ACTIVE:
            if not satisfied and self.auto_reset.resets_when_cleared:
                return [
                    self._move(
                        BindingState.INACTIVE, TransitionCause.CONDITION_CLEARED, now, sampled_value
                    )
                ]
            if self._interval_elapsed(now):
                events = self._complete_reset(TransitionCause.RESET_INTERVAL, now, sampled_value)
                # Still true at reset: only trigger_again re-arms.
                self.armed = self.trigger_again or not satisfied
                return events
            return []

        if satisfied and self.armed:
            return [
                self._move(BindingState.ACTIVE, TransitionCause.CONDITION_MET, now, sampled_value)
            ]
        return []

    def reset(self, now: datetime) -> List[TransitionEvent]:
        """Operator reset of an Active binding; a no-op otherwise."""
        if self.state is not BindingState.ACTIVE:
            return []
        events = self._complete_reset(TransitionCause.MANUAL_RESET, now, None)
        self.armed = self.trigger_again
        return events

    def snapshot(self) -> Dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "endpoint_id": self.endpoint_id,
            "condition_kind": self.kind.value,
            "state": self.state.value,
            "armed": self.armed,
            "active_since": self.active_since.isoformat() if self.active_since else None,
        }
