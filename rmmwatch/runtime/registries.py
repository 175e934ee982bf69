"""
Collaborators injected into the evaluation engine and the dispatcher.

Each protocol is read-only from the engine's point of view. The in-memory
implementations back tests and embedded use; file-backed ones live in
``rmmwatch.runtime.adapter``.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from pydantic import BaseModel

from rmmwatch.errors import DispatchError, SampleUnavailableError
from rmmwatch.schemas.binding import TargetScope
from rmmwatch.schemas.conditions import ConditionKind, RunAs
from rmmwatch.schemas.dispatch import Notice
from rmmwatch.schemas.samples import ScriptOutcome


class AgentPolicyRegistry(Protocol):
    def endpoints_for(self, scope: TargetScope) -> List[str]: ...


class MetricsProvider(Protocol):
    def sample(self, endpoint_id: str, kind: ConditionKind) -> BaseModel:
        """Return the current observation or raise SampleUnavailableError."""
        ...


class CustomFieldStore(Protocol):
    def get(self, endpoint_id: str, field: str) -> Optional[Any]:
        """Current value of a custom field, or None when it is not set."""
        ...


class Channel(Protocol):
    name: str

    def send(self, notice: Notice) -> None: ...


class ChannelRegistry(Protocol):
    def get(self, name: str) -> Channel: ...


class TechnicianNotifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


class TicketingSystem(Protocol):
    def create(self, template: str, notice: Notice) -> str: ...

    def close(self, ticket_id: str, notice: Notice) -> None: ...


class AutomationRegistry(Protocol):
    def run(
        self,
        name: str,
        endpoint_id: str,
        run_as: RunAs,
        parameters: List[str],
        preset_parameter: str = "",
    ) -> Any: ...


class ScriptExecutor(Protocol):
    async def execute(
        self,
        script: str,
        endpoint_id: str,
        run_as: RunAs,
        parameters: List[str],
        preset_parameter: str = "",
    ) -> ScriptOutcome:
        """Run a script to completion; raise ScriptExecutionError if it cannot launch."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class StaticAgentPolicyRegistry:
    """agent policy name -> endpoints; a scope without agent policy covers every endpoint."""

    def __init__(self, policies: Optional[Dict[str, Iterable[str]]] = None):
        self._policies: Dict[str, List[str]] = {
            name: list(endpoints) for name, endpoints in (policies or {}).items()
        }

    def assign(self, agent_policy: str, endpoint_id: str) -> None:
        members = self._policies.setdefault(agent_policy, [])
        if endpoint_id not in members:
            members.append(endpoint_id)

    def endpoints_for(self, scope: TargetScope) -> List[str]:
        if scope.agent_policy:
            return list(self._policies.get(scope.agent_policy, []))
        seen: List[str] = []
        for members in self._policies.values():
            for endpoint_id in members:
                if endpoint_id not in seen:
                    seen.append(endpoint_id)
        return seen


class InMemoryMetricsProvider:
    def __init__(self):
        self._samples: Dict[Tuple[str, ConditionKind], Optional[BaseModel]] = {}
        self.calls = 0

    def set(self, endpoint_id: str, kind: ConditionKind, sample: Optional[BaseModel]) -> None:
        """Store a sample; None marks the source unavailable."""
        self._samples[(endpoint_id, kind)] = sample

    def sample(self, endpoint_id: str, kind: ConditionKind) -> BaseModel:
        self.calls += 1
        value = self._samples.get((endpoint_id, kind))
        if value is None:
            raise SampleUnavailableError(endpoint_id, kind.value)
        return value


class InMemoryCustomFieldStore:
    def __init__(self, values: Optional[Dict[str, Dict[str, Any]]] = None):
        self._values: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (values or {}).items()}

    def set(self, endpoint_id: str, field: str, value: Any) -> None:
        self._values.setdefault(endpoint_id, {})[field] = value

    def unset(self, endpoint_id: str, field: str) -> None:
        self._values.get(endpoint_id, {}).pop(field, None)

    def get(self, endpoint_id: str, field: str) -> Optional[Any]:
        return self._values.get(endpoint_id, {}).get(field)


class InMemoryChannelRegistry:
    def __init__(self, channels: Iterable[Channel] = ()):
        self._channels: Dict[str, Channel] = {c.name: c for c in channels}

    def register(self, channel: Channel) -> None:
        self._channels[channel.name] = channel

    def get(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise DispatchError("channel", name, "unknown channel") from None


class RecordingChannel:
    def __init__(self, name: str):
        self.name = name
        self.notices: List[Notice] = []

    def send(self, notice: Notice) -> None:
        self.notices.append(notice)


class RecordingTechnicianNotifier:
    def __init__(self):
        self.notices: List[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)


class InMemoryTicketingSystem:
    def __init__(self):
        self._ids = itertools.count(1)
        self.open: Dict[str, Notice] = {}
        self.closed: List[str] = []
        self.created: List[Tuple[str, str]] = []  # (ticket_id, template)

    def create(self, template: str, notice: Notice) -> str:
        ticket_id = f"T-{next(self._ids)}"
        self.open[ticket_id] = notice
        self.created.append((ticket_id, template))
        return ticket_id

    def close(self, ticket_id: str, notice: Notice) -> None:
        if self.open.pop(ticket_id, None) is None:
            raise DispatchError("ticket", ticket_id, "ticket is not open")
        self.closed.append(ticket_id)


AutomationFn = Callable[[str, RunAs, List[str], str], Any]


class InMemoryAutomationRegistry:
    def __init__(self, automations: Optional[Dict[str, AutomationFn]] = None):
        self._automations: Dict[str, AutomationFn] = dict(automations or {})
        self.runs: List[Tuple[str, str, RunAs, List[str]]] = []

    def register(self, name: str, fn: AutomationFn) -> None:
        self._automations[name] = fn

    def run(
        self,
        name: str,
        endpoint_id: str,
        run_as: RunAs,
        parameters: List[str],
        preset_parameter: str = "",
    ) -> Any:
        fn = self._automations.get(name)
        if fn is None:
            raise DispatchError("automation", name, "unknown automation")
        self.runs.append((name, endpoint_id, run_as, list(parameters)))
        return fn(endpoint_id, run_as, list(parameters), preset_parameter)
