import asyncio
import threading
import time
from datetime import timedelta

import pytest

from rmmwatch.runtime.audit_logger import AuditLogger
from rmmwatch.schemas.conditions import ConditionKind
from rmmwatch.schemas.dispatch import NoticeKind
from rmmwatch.schemas.events import BindingState, TransitionCause
from rmmwatch.schemas.samples import PercentSample

from conftest import CPU_DOCUMENT, T0, minutes


def _cpu(harness, percent):
    sample = None if percent is None else PercentSample(percent=percent)
    harness.metrics.set("srv-01", ConditionKind.CPU, sample)


def _run(engine, harness, values, start=1):
    """Tick once per value at one-minute spacing; returns {tick: events}."""
    fired = {}
    for i, value in enumerate(values, start=start):
        _cpu(harness, value)
        events = engine.tick(minutes(i))
        if events:
            fired[i] = events
    return fired


def test_cpu_activates_exactly_once_after_fifteen_minutes(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()

    fired = _run(engine, harness, [95] * 20)

    assert list(fired) == [15]
    (event,) = fired[15]
    assert event.policy_id == "High CPU"
    assert event.endpoint_id == "srv-01"
    assert event.new_state is BindingState.ACTIVE
    assert event.cause is TransitionCause.CONDITION_MET
    assert event.sampled_value == 95
    assert event.threshold_snapshot["threshold_percent"] == 90
    assert engine.state_of("High CPU", "srv-01") is BindingState.ACTIVE


def test_cpu_sample_sequence_at_the_threshold(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()

    fired = _run(engine, harness, [92, 91, 93, 90, 95, 96, 97, 95, 94, 93, 91, 92, 90, 93, 94])

    assert list(fired) == [15]
    assert fired[15][0].sampled_value == 94


def test_one_tick_short_then_false_does_not_activate(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    assert _run(engine, harness, [95] * 14 + [89]) == {}


def test_activation_dispatches_to_every_target(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    _run(engine, harness, [95] * 15)

    assert len(harness.email.notices) == 1
    assert len(harness.sms.notices) == 1
    assert harness.email.notices[0].kind is NoticeKind.TRIGGERED
    assert harness.email.notices[0].severity == "Critical"
    assert len(harness.technicians.notices) == 1
    assert harness.tickets.created == [("T-1", "Server Alerts")]

    (report,) = engine.recent_reports
    assert report.ticket_id == "T-1"
    assert [d.target for d in report.deliveries] == ["Email", "SMS", "technicians", "Server Alerts"]
    assert report.failures == []


def test_dip_restarts_the_window(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()

    fired = _run(engine, harness, [95] * 14 + [50] + [95] * 14)
    assert fired == {}

    fired = _run(engine, harness, [95], start=30)
    assert list(fired) == [30]


def test_unavailable_sample_pauses_the_window(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()

    fired = _run(engine, harness, [95] * 10 + [None] * 3 + [95] * 5)

    # Ten true ticks, three skipped, five more true: the fifteenth true tick activates.
    assert list(fired) == [18]


def test_unavailable_sample_never_transitions(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    fired = _run(engine, harness, [None] * 30)
    assert fired == {}
    assert engine.state_of("High CPU", "srv-01") is BindingState.INACTIVE


def test_bindings_share_one_sample_per_tick(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    harness.load(
        "cpu-fast.toml",
        CPU_DOCUMENT.replace("High CPU", "CPU spike").replace("15 minutes", "5 minutes"),
    )
    engine = harness.engine()

    fired = _run(engine, harness, [95] * 15)

    assert harness.metrics.calls == 15
    assert [e.policy_id for e in fired[5]] == ["CPU spike"]
    assert [e.policy_id for e in fired[15]] == ["High CPU"]


def test_endpoints_outside_scope_are_not_evaluated(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    assert engine.evaluate_endpoint("laptop-7", minutes(1)) == []
    assert harness.metrics.calls == 0


def test_reset_notifies_and_closes_ticket(harness):
    text = CPU_DOCUMENT.replace(
        "After = false", 'After = true\nWhen_no_longer_met = true'
    ).replace('Channels = "Email, SMS, Email"', 'Channels = "Email"\nNotify_on_reset = true')
    harness.load("cpu.toml", text)
    engine = harness.engine()

    _run(engine, harness, [95] * 15)
    fired = _run(engine, harness, [10], start=16)

    assert [e.cause for e in fired[16]] == [TransitionCause.CONDITION_CLEARED]
    assert [n.kind for n in harness.email.notices] == [NoticeKind.TRIGGERED, NoticeKind.RESET]
    assert harness.tickets.closed == ["T-1"]
    assert harness.sms.notices == []


def test_manual_reset(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    _run(engine, harness, [95] * 15)

    events = engine.reset("High CPU", "srv-01", minutes(16))

    assert [e.new_state for e in events] == [BindingState.RESETTING, BindingState.INACTIVE]
    assert engine.state_of("High CPU", "srv-01") is BindingState.INACTIVE
    # Still true after the reset: no re-trigger until it is seen false.
    assert _run(engine, harness, [95] * 5, start=17) == {}


def test_manual_reset_unknown_policy(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    with pytest.raises(KeyError):
        engine.reset("nope", "srv-01")


def test_reload_drops_state_of_changed_binding(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    _run(engine, harness, [95] * 15)
    assert engine.state_of("High CPU", "srv-01") is BindingState.ACTIVE

    harness.load("cpu.toml", CPU_DOCUMENT.replace('Threshold_Percent = "90"', 'Threshold_Percent = "80"'))
    fired = _run(engine, harness, [95] * 14, start=16)

    assert fired == {}
    assert engine.state_of("High CPU", "srv-01") is BindingState.INACTIVE


def test_transitions_are_audited(harness, tmp_path):
    harness.load("cpu.toml", CPU_DOCUMENT)
    audit = AuditLogger(str(tmp_path / "audit" / "transitions.jsonl"))
    engine = harness.engine(audit=audit)
    _run(engine, harness, [95] * 15)

    (record,) = audit.read_last_events()
    assert record["type"] == "TransitionEvent"
    assert record["policy_id"] == "High CPU"
    assert record["new_state"] == "active"
    assert record["condition_kind"] == "CPU"


def test_snapshot_reports_window_progress(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    _run(engine, harness, [95] * 4)

    (row,) = engine.snapshot()
    assert row["policy_id"] == "High CPU"
    assert row["window_progress"] == 4
    assert row["window_required"] == 15
    assert engine.tick_count == 4


def test_extra_evaluations_between_ticks_do_not_advance_the_window(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    _cpu(harness, 95)

    for i in range(15):
        assert engine.evaluate_endpoint("srv-01", T0 + timedelta(seconds=i)) == []
    (row,) = engine.snapshot()
    assert row["window_progress"] == 1

    fired = _run(engine, harness, [95] * 14)
    assert list(fired) == [14]


def test_tick_waits_for_exclusive_holder(harness):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine()
    _cpu(harness, 95)

    with engine.exclusive():
        worker = threading.Thread(target=engine.tick, args=(minutes(1),))
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert engine.tick_count == 0
    worker.join(timeout=5)
    assert engine.tick_count == 1


def test_tick_async_dispatches_off_the_event_loop(harness, monkeypatch):
    harness.load("cpu.toml", CPU_DOCUMENT)
    engine = harness.engine(tick_seconds=900)
    _cpu(harness, 95)
    send = harness.email.send

    def slow_send(notice):
        time.sleep(0.3)
        send(notice)

    monkeypatch.setattr(harness.email, "send", slow_send)

    async def scenario():
        task = asyncio.create_task(engine.tick_async(minutes(1)))
        beats = 0
        while not task.done():
            await asyncio.sleep(0.01)
            beats += 1
        return task.result(), beats

    events, beats = asyncio.run(scenario())

    assert [e.new_state for e in events] == [BindingState.ACTIVE]
    assert len(harness.email.notices) == 1
    # The loop kept running while the notice was being delivered.
    assert beats >= 5
