import pytest

from rmmwatch.dsl.loader import load_binding
from rmmwatch.errors import DispatchError
from rmmwatch.runtime.registries import (
    InMemoryAutomationRegistry,
    InMemoryChannelRegistry,
    InMemoryTicketingSystem,
    RecordingChannel,
    RecordingTechnicianNotifier,
)
from rmmwatch.schemas.dispatch import DeliveryStatus, NoticeKind
from rmmwatch.schemas.events import BindingState, TransitionCause, TransitionEvent
from rmmwatch.services.dispatcher import ActionDispatcher

from conftest import CPU_DOCUMENT, minutes


class FailingChannel:
    def __init__(self, name, failures=None):
        self.name = name
        self.failures = failures  # None fails forever
        self.attempts = 0
        self.notices = []

    def send(self, notice):
        self.attempts += 1
        if self.failures is None or self.attempts <= self.failures:
            raise DispatchError("channel", self.name, "smtp relay refused connection")
        self.notices.append(notice)


def _event(binding, new_state=BindingState.ACTIVE, cause=TransitionCause.CONDITION_MET):
    return TransitionEvent(
        policy_id=binding.policy_id,
        endpoint_id="srv-01",
        condition_kind=binding.kind,
        previous_state=BindingState.INACTIVE,
        new_state=new_state,
        cause=cause,
        timestamp=minutes(15),
        sampled_value=97.5,
    )


def _dispatcher(channels, **kwargs):
    kwargs.setdefault("technicians", RecordingTechnicianNotifier())
    kwargs.setdefault("ticketing", InMemoryTicketingSystem())
    kwargs.setdefault("max_retries", 0)
    kwargs.setdefault("sleep", lambda _s: None)
    return ActionDispatcher(InMemoryChannelRegistry(channels), **kwargs)


@pytest.fixture
def sleeps():
    return []


def test_failing_channel_does_not_stop_other_targets(cpu_binding):
    email = FailingChannel("Email")
    sms = RecordingChannel("SMS")
    technicians = RecordingTechnicianNotifier()
    dispatcher = _dispatcher([email, sms], technicians=technicians)

    report = dispatcher.dispatch_activation(cpu_binding, _event(cpu_binding))

    statuses = [(d.target, d.status) for d in report.deliveries]
    assert statuses == [
        ("Email", DeliveryStatus.FAILED),
        ("SMS", DeliveryStatus.SUCCESS),
        ("technicians", DeliveryStatus.SUCCESS),
        ("Server Alerts", DeliveryStatus.SUCCESS),
    ]
    assert "smtp relay" in report.failures[0].error
    assert len(sms.notices) == 1
    assert sms.notices[0].sampled_value == 97.5
    assert len(technicians.notices) == 1


def test_unknown_channel_is_a_failed_delivery(cpu_binding):
    dispatcher = _dispatcher([RecordingChannel("Email")])
    report = dispatcher.dispatch_activation(cpu_binding, _event(cpu_binding))
    (failure,) = report.failures
    assert failure.target == "SMS"
    assert "unknown channel" in failure.error


def test_retries_with_backoff(cpu_binding, sleeps):
    email = FailingChannel("Email", failures=2)
    dispatcher = _dispatcher([email, RecordingChannel("SMS")], max_retries=2, sleep=sleeps.append)

    report = dispatcher.dispatch_activation(cpu_binding, _event(cpu_binding))

    assert report.deliveries[0].status is DeliveryStatus.SUCCESS
    assert report.deliveries[0].attempts == 3
    assert len(sleeps) == 2
    assert sleeps[0] < sleeps[1]


def test_retries_exhausted(cpu_binding, sleeps):
    dispatcher = _dispatcher(
        [FailingChannel("Email"), RecordingChannel("SMS")], max_retries=1, sleep=sleeps.append
    )
    report = dispatcher.dispatch_activation(cpu_binding, _event(cpu_binding))
    assert report.deliveries[0].status is DeliveryStatus.FAILED
    assert report.deliveries[0].attempts == 2
    assert len(sleeps) == 1


def test_create_and_close_ticket():
    binding = load_binding(
        CPU_DOCUMENT.replace('"Create a ticket"', '"Create and close a ticket"').replace(
            "Create_a_ticket", "Create_and_close_a_ticket"
        )
    )
    tickets = InMemoryTicketingSystem()
    dispatcher = _dispatcher([RecordingChannel("Email"), RecordingChannel("SMS")], ticketing=tickets)

    report = dispatcher.dispatch_activation(binding, _event(binding))

    assert report.ticket_id == "T-1"
    assert tickets.closed == ["T-1"]
    assert tickets.open == {}
    assert dispatcher.open_ticket_for(binding.policy_id, "srv-01") is None


def test_created_ticket_stays_open(cpu_binding):
    tickets = InMemoryTicketingSystem()
    dispatcher = _dispatcher([RecordingChannel("Email"), RecordingChannel("SMS")], ticketing=tickets)
    dispatcher.dispatch_activation(cpu_binding, _event(cpu_binding))
    assert dispatcher.open_ticket_for("High CPU", "srv-01") == "T-1"
    assert list(tickets.open) == ["T-1"]


def test_missing_ticketing_system(cpu_binding):
    dispatcher = ActionDispatcher(
        InMemoryChannelRegistry([RecordingChannel("Email"), RecordingChannel("SMS")]),
        technicians=RecordingTechnicianNotifier(),
        max_retries=0,
    )
    report = dispatcher.dispatch_activation(cpu_binding, _event(cpu_binding))
    (failure,) = report.failures
    assert failure.target_kind == "ticket"
    assert failure.error == "no ticketing system configured"


def test_failing_automation_does_not_stop_the_next(cpu_binding):
    binding = load_binding(
        CPU_DOCUMENT
        + """
[Automations]

[Automations.Automation]
Name = "Not Registered"

[Automations.Automation]
Name = "Restart Service"

[Automations.Automation.Parameters]
Run_As = "Preferred Windows Domain Admin"
Parameter1 = "spooler"
"""
    )
    automations = InMemoryAutomationRegistry({"Restart Service": lambda *args: "ok"})
    dispatcher = _dispatcher(
        [RecordingChannel("Email"), RecordingChannel("SMS")], automations=automations
    )

    report = dispatcher.dispatch_activation(binding, _event(binding))

    results = [(d.target, d.status) for d in report.deliveries if d.target_kind == "automation"]
    assert results == [
        ("Not Registered", DeliveryStatus.FAILED),
        ("Restart Service", DeliveryStatus.SUCCESS),
    ]
    (run,) = automations.runs
    assert run[0] == "Restart Service"
    assert run[3] == ["spooler"]


def test_reset_dispatch_requires_notify_on_reset(cpu_binding):
    dispatcher = _dispatcher([RecordingChannel("Email"), RecordingChannel("SMS")])
    event = _event(cpu_binding, BindingState.INACTIVE, TransitionCause.MANUAL_RESET)
    assert dispatcher.dispatch_reset(cpu_binding, event) is None


def test_reset_dispatch_closes_open_ticket():
    binding = load_binding(
        CPU_DOCUMENT.replace("After = false", 'After = true\nReset_Interval = "3 minutes"').replace(
            'Channels = "Email, SMS, Email"', 'Channels = "Email"\nNotify_on_reset = true'
        )
    )
    email = RecordingChannel("Email")
    tickets = InMemoryTicketingSystem()
    dispatcher = _dispatcher([email], ticketing=tickets)

    dispatcher.dispatch_activation(binding, _event(binding))
    report = dispatcher.dispatch_reset(
        binding, _event(binding, BindingState.INACTIVE, TransitionCause.RESET_COMPLETE)
    )

    assert report.notice_kind is NoticeKind.RESET
    assert report.ticket_id == "T-1"
    assert tickets.closed == ["T-1"]
    assert [n.kind for n in email.notices] == [NoticeKind.TRIGGERED, NoticeKind.RESET]
