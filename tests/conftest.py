import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

_TMP = tempfile.mkdtemp(prefix="rmmwatch-tests-")
os.environ.setdefault("RMMWATCH_OTEL_ENABLED", "false")
os.environ.setdefault("RMMWATCH_AUDIT_LOG", os.path.join(_TMP, "audit", "transitions.jsonl"))
os.environ.setdefault("RMMWATCH_POLICY_DIR", os.path.join(_TMP, "policies"))
os.environ.setdefault("RMMWATCH_RUNTIME_DIR", os.path.join(_TMP, "runtime"))

from rmmwatch.dsl.loader import default_catalog, load_binding  # noqa: E402
from rmmwatch.runtime.engine import EvaluationEngine  # noqa: E402
from rmmwatch.runtime.policy_store import PolicyStore  # noqa: E402
from rmmwatch.runtime.registries import (  # noqa: E402
    InMemoryAutomationRegistry,
    InMemoryChannelRegistry,
    InMemoryCustomFieldStore,
    InMemoryMetricsProvider,
    InMemoryTicketingSystem,
    RecordingChannel,
    RecordingTechnicianNotifier,
    StaticAgentPolicyRegistry,
)
from rmmwatch.services.dispatcher import ActionDispatcher  # noqa: E402

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def minutes(n: float) -> datetime:
    return T0 + timedelta(minutes=n)


CPU_DOCUMENT = """
[Condition]
Path = "Administration > Policies > Agent Policies"
Agent_Policy = "Servers"
Condition = "CPU"

[Condition.CPU]
Operator = "greater than or equal to"
Threshold_Percent = "90"
Duration = "15 minutes"

[General]
Name = "High CPU"
Severity = "Critical"
Priority = "High"

[General.Auto-reset]
After = false

[Notifications]
Channels = "Email, SMS, Email"
Notify_Technicians = "Send notifications"
ConnectWise = "Create a ticket"

[Notifications.ConnectWise.Create_a_ticket]
Ticket_Template = "Server Alerts"
"""


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def cpu_document():
    return CPU_DOCUMENT


@pytest.fixture
def cpu_binding(catalog):
    return load_binding(CPU_DOCUMENT, catalog=catalog)


def write_policy(directory, name: str, text: str):
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path


class Harness:
    """In-memory engine with recording collaborators."""

    def __init__(self, policy_dir, tick_seconds: float = 60.0):
        self.policy_dir = policy_dir
        self.store = PolicyStore(str(policy_dir))
        self.agent_policies = StaticAgentPolicyRegistry({"Servers": ["srv-01"]})
        self.metrics = InMemoryMetricsProvider()
        self.custom_fields = InMemoryCustomFieldStore()
        self.email = RecordingChannel("Email")
        self.sms = RecordingChannel("SMS")
        self.technicians = RecordingTechnicianNotifier()
        self.tickets = InMemoryTicketingSystem()
        self.automations = InMemoryAutomationRegistry()
        self.dispatcher = ActionDispatcher(
            InMemoryChannelRegistry([self.email, self.sms]),
            technicians=self.technicians,
            ticketing=self.tickets,
            automations=self.automations,
            max_retries=0,
            sleep=lambda _s: None,
        )
        self.tick_seconds = tick_seconds

    def engine(self, **kwargs) -> EvaluationEngine:
        kwargs.setdefault("custom_fields", self.custom_fields)
        kwargs.setdefault("dispatcher", self.dispatcher)
        kwargs.setdefault("tick_seconds", self.tick_seconds)
        return EvaluationEngine(self.store, self.agent_policies, self.metrics, **kwargs)

    def load(self, name: str, text: str):
        write_policy(self.policy_dir, name, text)
        result = self.store.reload()
        assert result.ok, result.errors
        return result


@pytest.fixture
def harness(tmp_path):
    policy_dir = tmp_path / "policies"
    policy_dir.mkdir()
    return Harness(policy_dir)
