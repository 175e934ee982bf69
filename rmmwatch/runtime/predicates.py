"""
Instantaneous predicates, one per condition kind.

A predicate looks at a single observation and says whether the condition
holds right now. Duration gating is layered on top by the engine using
``duration_window``; System_Uptime_Delay gating is applied here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from rmmwatch.errors import SampleUnavailableError
from rmmwatch.schemas.common import DurationWindow, Scale
from rmmwatch.schemas.conditions import (
    AggregationMode,
    BitlockerState,
    ConditionKind,
    EventResultMode,
    EventTextOperator,
    NetworkDirection,
    OutputCriterion,
    OutputOperator,
    PresenceState,
    RaidSeverity,
    ScriptResultCondition,
    SoftwarePresence,
    TransferDirection,
    VolumeLabelsMode,
)
from rmmwatch.schemas.samples import (
    SAMPLE_TYPES,
    EventLevel,
    RaidFault,
    ScriptOutcome,
    ServiceStartType,
)

from .clauses import aggregate, evaluate_group
from .registries import CustomFieldStore
from .thresholds import Measurement, compare, compare_values, match_result_code


@dataclass
class PredicateResult:
    satisfied: bool
    sampled_value: Any = None
    detail: str = ""
    triggered_by: List[str] = field(default_factory=list)


@dataclass
class EvaluationContext:
    endpoint_id: str
    now: datetime
    custom_fields: Optional[CustomFieldStore] = None


def _utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _age_seconds(now: datetime, ts: datetime) -> float:
    return (_utc(now) - _utc(ts)).total_seconds()


def _named(items, name: str):
    return [i for i in items if i.name.lower() == name.lower()]


# ---------------------------------------------------------------------------
# Per-kind predicates
# ---------------------------------------------------------------------------

def _antivirus(c, s, ctx) -> PredicateResult:
    products = [p for p in s.products if not (c.ignore_defender and p.is_defender)]
    reasons = []
    if c.antivirus_missing and not products:
        reasons.append("missing")
    if c.antivirus_disabled and any(not p.enabled for p in products):
        reasons.append("disabled")
    if c.antivirus_outdated and any(not p.up_to_date for p in products):
        reasons.append("outdated")
    if c.detect_multiple_installed and len(products) > 1:
        reasons.append("multiple installed")
    return PredicateResult(bool(reasons), len(products), ", ".join(reasons), reasons)


def _battery(c, s, ctx) -> PredicateResult:
    observed = {
        "charge_level": s.charge_percent,
        "capacity_now_vs_new": s.capacity_percent,
        "cycle_count": s.cycle_count,
    }
    triggered = []
    for name, value in observed.items():
        monitor = getattr(c, name)
        if monitor is None or value is None:
            continue
        if compare_values(value, monitor.operator, monitor.value):
            triggered.append(name)
    return PredicateResult(bool(triggered), observed, "", triggered)


_BITLOCKER_STATES = {
    BitlockerState.ENABLED: lambda v: v.protection_enabled,
    BitlockerState.DISABLED: lambda v: not v.protection_enabled,
    BitlockerState.LOCKED: lambda v: v.locked,
    BitlockerState.UNLOCKED: lambda v: not v.locked,
}


def _bitlocker(c, s, ctx) -> PredicateResult:
    excluded = {label.lower() for label in c.exclude_volume_labels}
    matches = []
    for v in s.volumes:
        if c.exclude_boot_volume and v.is_boot:
            continue
        if c.exclude_removable_disk and v.is_removable:
            continue
        if v.label.lower() in excluded:
            continue
        if _BITLOCKER_STATES[c.status](v):
            matches.append(v.label)
    return PredicateResult(bool(matches), matches, "", matches)


def _percent_window(c, s, ctx) -> PredicateResult:
    return PredicateResult(compare(Measurement.percent(s.percent), c.operator, c.threshold), s.percent)


def _critical_events(c, s, ctx) -> PredicateResult:
    levels = {EventLevel.CRITICAL}
    if not c.exclude_error_events:
        levels.add(EventLevel.ERROR)
    window = c.duration.window.total_seconds
    count = sum(
        1 for e in s.events if e.level in levels and 0 <= _age_seconds(ctx.now, e.timestamp) <= window
    )
    return PredicateResult(count >= c.event_limit, count)


def _custom_fields(c, s, ctx) -> PredicateResult:
    store = ctx.custom_fields

    def lookup(name: str):
        return store.get(ctx.endpoint_id, name) if store is not None else None

    groups = [g for g in (c.all_of, c.any_of) if g is not None]
    satisfied = aggregate(AggregationMode.ALL, (evaluate_group(g, lookup) for g in groups))
    return PredicateResult(satisfied)


def _device_down(c, s, ctx) -> PredicateResult:
    last_seen = s.last_seen.isoformat() if s.last_seen else None
    return PredicateResult(not s.online, {"online": s.online, "last_seen": last_seen})


def _selected_volumes(c, volumes):
    sel = c.volumes
    excluded = {label.lower() for label in sel.exclude_volume_labels}
    included = {label.lower() for label in sel.include_volume_labels}
    for v in volumes:
        if sel.boot_volume_only and not v.is_boot:
            continue
        if sel.exclude_boot_volume and v.is_boot:
            continue
        if sel.exclude_removable_disks and v.is_removable:
            continue
        if sel.volume_labels_mode is VolumeLabelsMode.EXCLUDE and v.label.lower() in excluded:
            continue
        if sel.volume_labels_mode is VolumeLabelsMode.INCLUDE and v.label.lower() not in included:
            continue
        yield v


def _disk_space(free: bool):
    def predicate(c, s, ctx) -> PredicateResult:
        percent = c.threshold.scale is Scale.PERCENT
        values: Dict[str, float] = {}
        triggered = []
        for v in _selected_volumes(c, s.volumes):
            if percent:
                m = Measurement.percent(v.free_percent if free else v.used_percent)
            else:
                m = Measurement.bytes(v.free_bytes if free else v.used_bytes)
            values[v.label] = m.value
            if compare(m, c.operator, c.threshold):
                triggered.append(v.label)
        return PredicateResult(bool(triggered), values, "", triggered)

    return predicate


def _transfer_rate(c, s, ctx) -> PredicateResult:
    value = {
        TransferDirection.READ: s.read_bps,
        TransferDirection.WRITE: s.write_bps,
        TransferDirection.READ_WRITE: s.read_bps + s.write_bps,
    }[c.direction]
    return PredicateResult(compare(Measurement.rate(value), c.operator, c.threshold), value)


def _network(c, s, ctx) -> PredicateResult:
    value = {
        NetworkDirection.IN: s.in_bps,
        NetworkDirection.OUT: s.out_bps,
        NetworkDirection.IN_OUT: s.in_bps + s.out_bps,
    }[c.direction]
    return PredicateResult(compare(Measurement.rate(value), c.operator, c.threshold), value)


def _memory_measurement(unit, percent: float, used_bytes: float) -> Measurement:
    if unit.arm == "%":
        return Measurement.percent(percent)
    return Measurement.bytes(used_bytes)


def _memory(c, s, ctx) -> PredicateResult:
    m = _memory_measurement(c.unit, s.used_percent, s.used_bytes)
    return PredicateResult(compare(m, c.operator, c.unit.threshold), m.value)


def _cvss(c, s, ctx) -> PredicateResult:
    min_age = c.duration_days * 86400
    hits = [
        p
        for p in s.pending
        if (c.include_rejected_patches or not p.rejected)
        and compare_values(p.cvss_score, c.operator, c.threshold_cvss_score)
        and _age_seconds(ctx.now, p.pending_since) >= min_age
    ]
    top = max((p.cvss_score for p in hits), default=None)
    return PredicateResult(bool(hits), top, "", [p.title for p in hits])


def _patch_last_installed(c, s, ctx) -> PredicateResult:
    installs = [
        i.installed_at
        for i in s.installs
        if i.patch_type is c.patch_type and (i.via_update_engine or not c.update_engine_only)
    ]
    latest = max(installs, key=_utc, default=None)
    if latest is None:
        return PredicateResult(True, None, "no qualifying install")
    stale = _age_seconds(ctx.now, latest) > c.days.window.total_seconds
    return PredicateResult(stale, latest.isoformat())


def _presence(state: PresenceState, found: list, running: Optional[bool]) -> bool:
    if state is PresenceState.EXISTS:
        return bool(found)
    if state is PresenceState.DOES_NOT_EXIST:
        return not found
    if state is PresenceState.UP:
        return bool(found) and bool(running)
    return bool(found) and not running


def _process(c, s, ctx) -> PredicateResult:
    triggered = []
    for name in c.processes:
        found = _named(s.processes, name)
        if _presence(c.state, found, any(p.running for p in found)):
            triggered.append(name)
    return PredicateResult(bool(triggered), triggered, "", triggered)


def _process_resource(c, s, ctx) -> PredicateResult:
    r = c.resource
    values: Dict[str, float] = {}
    triggered = []
    for name in c.processes:
        found = _named(s.processes, name)
        if not found:
            continue
        # Instances sharing a name are summed.
        if r.arm == "CPU":
            m = Measurement.percent(sum(p.cpu_percent for p in found))
        else:
            m = _memory_measurement(
                r.unit,
                sum(p.memory_percent for p in found),
                sum(p.memory_bytes for p in found),
            )
        values[name] = m.value
        if compare(m, r.operator, r.threshold):
            triggered.append(name)
    return PredicateResult(bool(triggered), values, "", triggered)


def _raid_component(severity: RaidSeverity, fault: RaidFault) -> bool:
    if severity is RaidSeverity.CRITICAL_ONLY:
        return fault is RaidFault.CRITICAL
    if severity is RaidSeverity.CRITICAL_AND_NON_CRITICAL:
        return fault is not RaidFault.NONE
    return False


def _raid(c, s, ctx) -> PredicateResult:
    triggered = [
        component
        for component, severity in c.components().items()
        if severity is not RaidSeverity.IGNORE and _raid_component(severity, getattr(s, component))
    ]
    faults = {component: getattr(s, component).value for component in c.components()}
    detail = f"triggered by {', '.join(triggered)}" if triggered else ""
    return PredicateResult(bool(triggered), faults, detail, triggered)


def _reboot_pending(c, s, ctx) -> PredicateResult:
    since = s.reboot_pending_since
    if since is None:
        return PredicateResult(False, None)
    pending_for = _age_seconds(ctx.now, since)
    ok = True
    if c.pending_for is not None:
        ok = pending_for >= c.pending_for.total_seconds
    if ok and c.users_idle_for is not None:
        idle = s.user_idle_seconds
        ok = idle is not None and idle >= c.users_idle_for.total_seconds
    return PredicateResult(ok, {"pending_seconds": pending_for, "idle_seconds": s.user_idle_seconds})


def _software(c, s, ctx) -> PredicateResult:
    installed = {name.lower() for name in s.installed}
    if c.presence is SoftwarePresence.EXISTS:
        triggered = [n for n in c.names if n.lower() in installed]
    else:
        triggered = [n for n in c.names if n.lower() not in installed]
    return PredicateResult(bool(triggered), triggered, "", triggered)


def _uptime(c, s, ctx) -> PredicateResult:
    return PredicateResult(s.uptime_seconds >= c.days * 86400, s.uptime_seconds)


def _event_matches(c, e) -> bool:
    if c.source and e.source.lower() != c.source.lower():
        return False
    if c.event_ids and e.event_id not in c.event_ids:
        return False
    if not c.text_filters:
        return True
    message = e.message.lower()
    if c.operator is EventTextOperator.CONTAINS:
        hits = (f.lower() in message for f in c.text_filters)
    else:
        hits = (f.lower() not in message for f in c.text_filters)
    mode = AggregationMode.ALL if c.result is EventResultMode.ALL else AggregationMode.ANY
    return aggregate(mode, hits)


def _windows_event(c, s, ctx) -> PredicateResult:
    window = c.within.window.total_seconds
    count = sum(
        1
        for e in s.events
        if 0 <= _age_seconds(ctx.now, e.timestamp) <= window and _event_matches(c, e)
    )
    return PredicateResult(count >= c.required_count, count)


def _windows_service(c, s, ctx) -> PredicateResult:
    triggered = []
    for name in c.services:
        found = _named(s.services, name)
        if c.ignore_if_disabled and any(x.start_type is ServiceStartType.DISABLED for x in found):
            continue
        if c.ignore_if_manual and any(x.start_type is ServiceStartType.MANUAL for x in found):
            continue
        if _presence(c.state, found, any(x.running for x in found)):
            triggered.append(name)
    return PredicateResult(bool(triggered), triggered, "", triggered)


def _smart(c, s, ctx) -> PredicateResult:
    degraded = [
        d.name for d in s.disks if not d.status_ok or (c.pred_fail and d.predict_failure)
    ]
    return PredicateResult(bool(degraded), degraded, "", degraded)


Predicate = Callable[[Any, Optional[BaseModel], EvaluationContext], PredicateResult]

_PREDICATES: Dict[ConditionKind, Predicate] = {
    ConditionKind.ANTIVIRUS_HEALTH: _antivirus,
    ConditionKind.BATTERY_MONITORING: _battery,
    ConditionKind.BITLOCKER_STATUS: _bitlocker,
    ConditionKind.CPU: _percent_window,
    ConditionKind.CRITICAL_EVENTS: _critical_events,
    ConditionKind.CUSTOM_FIELDS: _custom_fields,
    ConditionKind.DEVICE_DOWN: _device_down,
    ConditionKind.DISK_ACTIVE_TIME: _percent_window,
    ConditionKind.DISK_FREE_SPACE: _disk_space(free=True),
    ConditionKind.DISK_TRANSFER_RATE: _transfer_rate,
    ConditionKind.DISK_USAGE: _disk_space(free=False),
    ConditionKind.MEMORY: _memory,
    ConditionKind.NETWORK_UTILIZATION: _network,
    ConditionKind.OS_PATCH_CVSS_SCORE: _cvss,
    ConditionKind.PATCH_LAST_INSTALLED: _patch_last_installed,
    ConditionKind.PROCESS: _process,
    ConditionKind.PROCESS_RESOURCE: _process_resource,
    ConditionKind.RAID_HEALTH_STATUS: _raid,
    ConditionKind.REBOOT_PENDING: _reboot_pending,
    ConditionKind.SOFTWARE: _software,
    ConditionKind.SYSTEM_UPTIME: _uptime,
    ConditionKind.WINDOWS_EVENT: _windows_event,
    ConditionKind.WINDOWS_SERVICE: _windows_service,
    ConditionKind.WINDOWS_SMART_STATUS_DEGRADED: _smart,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def requires_sample(kind: ConditionKind) -> bool:
    return kind in SAMPLE_TYPES


def duration_window(condition) -> Optional[DurationWindow]:
    """Continuous-truth window of a duration-gated condition, else None."""
    kind = condition.kind
    if kind in (
        ConditionKind.CPU,
        ConditionKind.DISK_ACTIVE_TIME,
        ConditionKind.DISK_TRANSFER_RATE,
        ConditionKind.MEMORY,
        ConditionKind.NETWORK_UTILIZATION,
    ):
        return condition.duration.window
    if kind in (ConditionKind.DISK_FREE_SPACE, ConditionKind.DISK_USAGE, ConditionKind.BITLOCKER_STATUS):
        return condition.duration
    if kind is ConditionKind.DEVICE_DOWN:
        return condition.duration
    if kind is ConditionKind.ANTIVIRUS_HEALTH:
        return condition.duration_detected
    if kind is ConditionKind.PROCESS_RESOURCE:
        return condition.resource.duration.window
    return None


def uptime_suppressed(condition, sample: Optional[BaseModel]) -> bool:
    """True while host uptime is below System_Uptime_Delay; unknown uptime never suppresses."""
    delay = getattr(condition, "system_uptime_delay", None)
    uptime = getattr(sample, "uptime_seconds", None)
    if delay is None or uptime is None:
        return False
    return uptime < delay.total_seconds


def evaluate_condition(
    condition,
    sample: Optional[BaseModel],
    ctx: EvaluationContext,
) -> PredicateResult:
    kind = condition.kind
    if kind is ConditionKind.SCRIPT_RESULT_CONDITION:
        raise ValueError("script result conditions are evaluated from script outcomes")
    expected = SAMPLE_TYPES.get(kind)
    if expected is not None and not isinstance(sample, expected):
        raise SampleUnavailableError(
            ctx.endpoint_id,
            kind.value,
            f"expected {expected.__name__}, got {type(sample).__name__}",
        )
    if uptime_suppressed(condition, sample):
        return PredicateResult(False, sample.uptime_seconds, "suppressed: uptime below delay")
    return _PREDICATES[kind](condition, sample, ctx)


def _output_matches(criterion: OutputCriterion, output: str) -> bool:
    op = criterion.operator
    if op is OutputOperator.NOT_EMPTY:
        return bool(output.strip())
    if op is OutputOperator.CONTAINS:
        return criterion.text in output
    if op is OutputOperator.DOES_NOT_CONTAIN:
        return criterion.text not in output
    if op is OutputOperator.STARTS_WITH:
        return output.startswith(criterion.text)
    if op is OutputOperator.ENDS_WITH:
        return output.rstrip("\r\n").endswith(criterion.text)
    return re.search(criterion.text, output) is not None


def evaluate_script_outcome(condition: ScriptResultCondition, outcome: ScriptOutcome) -> PredicateResult:
    """Result_Code and With_Output combine with ALL."""
    checks = [lambda: match_result_code(outcome.exit_code, condition.result_code)]
    if condition.with_output is not None:
        checks.append(lambda: _output_matches(condition.with_output, outcome.output))
    satisfied = aggregate(AggregationMode.ALL, (check() for check in checks))
    return PredicateResult(satisfied, {"exit_code": outcome.exit_code, "output": outcome.output[:512]})
