"""
PolicyBinding -> condition document.

The output re-parses with ``load_binding`` into an identical binding: section
headers follow the union arm that is populated and every numeric value is
written in full precision.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Union

from rmmwatch.schemas.binding import PolicyBinding
from rmmwatch.schemas.common import DurationWindow
from rmmwatch.schemas.conditions import (
    ConditionKind,
    FieldType,
    PRESENCE_COMPARATORS,
)
from rmmwatch.schemas.dispatch import TicketingMode

Scalar = Union[str, bool, int, float]


def _num(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _quote(text: str) -> str:
    if "\n" in text:
        return '"""' + text + '"""'
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _window(w: Optional[DurationWindow]) -> str:
    if w is None:
        return ""
    return f"{_num(w.value)} {w.unit.value}"


class _Writer:
    def __init__(self):
        self.lines: List[str] = []

    def section(self, path: str) -> "_Writer":
        if self.lines:
            self.lines.append("")
        self.lines.append(f"[{path}]")
        return self

    def pair(self, key: str, value: Scalar) -> "_Writer":
        if isinstance(value, bool):
            rendered = "true" if value else "false"
        elif isinstance(value, (int, float)):
            rendered = _quote(_num(value))
        else:
            rendered = _quote(str(value))
        self.lines.append(f"{key} = {rendered}")
        return self

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"


# ---------------------------------------------------------------------------
# Per-kind writers; each receives the variant section path already opened.
# ---------------------------------------------------------------------------

def _antivirus(w: _Writer, c, path: str) -> None:
    w.pair("Antivirus_Missing", c.antivirus_missing)
    w.pair("Antivirus_Disabled", c.antivirus_disabled)
    w.pair("Antivirus_Outdated", c.antivirus_outdated)
    w.pair("Detect_Multiple_Antivirus_Installed", c.detect_multiple_installed)
    w.pair("Ignore_Microsoft_Defender_Antivirus", c.ignore_defender)
    w.pair("Duration_Detected", _window(c.duration_detected))


def _battery(w: _Writer, c, path: str) -> None:
    monitors = (
        ("Monitor_Current_Batter_Charge_Level", "Battery_Charge_Level", "Percentage", c.charge_level),
        (
            "Monitor_Battery_Maximum_Capacity_Now_vs_New",
            "Battery_Capacity_Now_vs_New",
            "Percentage",
            c.capacity_now_vs_new,
        ),
        ("Monitor_Number_of_Battery_Cycles", "Battery_Cycles", "Value", c.cycle_count),
    )
    for flag, _, _, monitor in monitors:
        w.pair(flag, monitor is not None)
    for flag, inner, value_key, monitor in monitors:
        if monitor is None:
            continue
        w.section(f"{path}.{flag}.{inner}")
        w.pair("Condition", monitor.operator.value)
        if value_key == "Percentage":
            w.pair(value_key, f"{_num(monitor.value)} %")
        else:
            w.pair(value_key, monitor.value)


def _bitlocker(w: _Writer, c, path: str) -> None:
    w.pair("Status", c.status.value)
    w.pair("Duration", _window(c.duration))
    w.pair("Exclude_Boot_Volume", c.exclude_boot_volume)
    w.pair("Exclude_Removable_Disk", c.exclude_removable_disk)
    w.pair("Exclude_Volume_Labels", ", ".join(c.exclude_volume_labels))


def _percent_window(w: _Writer, c, path: str) -> None:
    w.pair("Operator", c.operator.value)
    w.pair("Threshold_Percent", c.threshold_percent)
    w.pair("Duration", c.duration.value)


def _critical_events(w: _Writer, c, path: str) -> None:
    w.pair("Event_Limit", c.event_limit)
    w.pair("Duration", c.duration.value)
    w.pair("Exclude_error_events", c.exclude_error_events)


def _custom_fields(w: _Writer, c, path: str) -> None:
    groups = (
        ("Custom_field_value_must_meet_all_conditions", c.all_of),
        ("Custom_field_value_must_meet_any_conditions", c.any_of),
    )
    for name, group in groups:
        if group is None:
            continue
        for clause in group.clauses:
            w.section(f"{path}.{name}")
            w.pair("Custom_field", clause.custom_field)
            w.pair("Field_Type", clause.field_type.value)
            w.pair("Condition", clause.comparator.value)
            if clause.comparator in PRESENCE_COMPARATORS:
                continue
            if clause.field_type is FieldType.CHECKBOX:
                w.pair("Checkbox_value", bool(clause.value))
            elif clause.field_type is FieldType.DROPDOWN:
                w.pair("Dropdown_value", str(clause.value))
            else:
                w.pair("Text", str(clause.value))


def _device_down(w: _Writer, c, path: str) -> None:
    w.pair("Duration", _window(c.duration))
    w.pair("Trigger_again_if_condition_is_still_true_after_reset", c.trigger_again)


def _disk_space(w: _Writer, c, path: str) -> None:
    unit = c.threshold.unit.value if c.threshold.unit is not None else "Percent (%)"
    w.pair("Operator", c.operator.value)
    w.pair("Threshold", f"{_num(c.threshold.magnitude)} {unit}")
    w.pair("Duration", _window(c.duration))
    w.pair("System_Uptime_Delay", _window(c.system_uptime_delay))
    v = c.volumes
    w.pair("Boot_Volume_Only", v.boot_volume_only)
    w.pair("Volume_labels_mode", v.volume_labels_mode.value)
    w.pair("Exclude_volume_labels", ", ".join(v.exclude_volume_labels))
    w.pair("Include_volume_labels", ", ".join(v.include_volume_labels))
    w.pair("Exclude_removable_disks", v.exclude_removable_disks)
    w.pair("Exclude_boot_volume", v.exclude_boot_volume)


def _rate(w: _Writer, c, path: str) -> None:
    w.pair("Direction", c.direction.value)
    w.pair("Operator", c.operator.value)
    w.pair("Threshold_Bytes", c.threshold.magnitude)
    w.pair("Unit_Bytes", c.threshold.unit.value)
    w.pair("Duration", c.duration.value)


def _memory_unit(w: _Writer, unit, path: str) -> None:
    w.section(f"{path}.Unit.{unit.arm}")
    if unit.arm == "%":
        w.pair("Threshold_Percent", unit.threshold_percent)
    else:
        w.pair("Threshold_Bytes", unit.threshold_bytes)
        w.pair("Unit_Bytes", unit.unit_bytes.value)


def _memory(w: _Writer, c, path: str) -> None:
    w.pair("Operator", c.operator.value)
    w.pair("Unit", c.unit.arm)
    w.pair("Duration", c.duration.value)
    _memory_unit(w, c.unit, path)


def _cvss(w: _Writer, c, path: str) -> None:
    w.pair("Operator", c.operator.value)
    w.pair("Threshold_CVSS_Score", c.threshold_cvss_score)
    w.pair("Duration_Days", c.duration_days)
    w.pair("Include_Rejected_Patches", c.include_rejected_patches)


def _patch_last_installed(w: _Writer, c, path: str) -> None:
    w.pair("Patch_Type", c.patch_type.value)
    w.pair("Days", c.days.value)
    w.pair("Ninja_Update_Engine_Only", c.update_engine_only)


def _process(w: _Writer, c, path: str) -> None:
    w.pair("Process", ", ".join(c.processes))
    w.pair("State", c.state.value)
    w.pair("System_Uptime_Delay", _window(c.system_uptime_delay))


def _process_resource(w: _Writer, c, path: str) -> None:
    r = c.resource
    w.pair("Process", ", ".join(c.processes))
    w.pair("Resource", r.arm)
    arm_path = f"{path}.Resource.{r.arm}"
    w.section(arm_path)
    w.pair("Operator", r.operator.value)
    if r.arm == "CPU":
        w.pair("Threshold_Percent", r.threshold_percent)
        w.pair("Duration", r.duration.value)
    else:
        w.pair("Unit", r.unit.arm)
        w.pair("Duration", r.duration.value)
        _memory_unit(w, r.unit, arm_path)


def _raid(w: _Writer, c, path: str) -> None:
    w.pair("Controller", c.controller.value)
    w.pair("Virtual_Drives", c.virtual_drives.value)
    w.pair("Physical_Drives", c.physical_drives.value)
    w.pair("Battery_Backup", c.battery_backup.value)


def _reboot_pending(w: _Writer, c, path: str) -> None:
    w.pair("Reboot_has_been_pending_for_a_time_period", c.pending_for is not None)
    if c.pending_for is not None:
        w.pair("Duration", _window(c.pending_for))
    w.pair("Users_have_been_idle_for_a_time_period", c.users_idle_for is not None)
    if c.users_idle_for is not None:
        w.pair("Duration", _window(c.users_idle_for))


def _run_parameters(w: _Writer, p) -> None:
    # Shared by script parameters and automations.
    w.pair("Run_As", p.run_as.value)
    w.pair("Preset_Parameter", p.preset_parameter)
    for i, value in enumerate(p.parameters, start=1):
        w.pair(f"Parameter{i}", value)


def _script_result(w: _Writer, c, path: str) -> None:
    w.section(f"{path}.Evaluation_script")
    w.pair("Evaluation_script", c.script)
    w.section(f"{path}.Evaluation_script.Parameters")
    _run_parameters(w, c.parameters)

    for name, interval in (("Run_Every", c.run_every), ("Timeout", c.timeout)):
        w.section(f"{path}.{name}")
        w.pair("Hour", interval.hours)
        w.pair("Minutes", interval.minutes)

    w.section(f"{path}.Result_Code")
    w.pair("Operator", c.result_code.operator.value)
    if c.result_code.result_code is not None:
        w.pair("Result_Code", c.result_code.result_code)

    if c.with_output is not None:
        w.section(f"{path}.With_Output")
        w.pair("Text", c.with_output.text)
        w.pair("Operator", c.with_output.operator.value)

    notification = c.script_error_notification
    w.section(f"{path}.Script_error_notification")
    w.pair("Script_error_notification", notification.enabled)
    if notification.enabled and notification.criterion is not None:
        w.pair("Operator", notification.criterion.operator.value)
        if notification.criterion.result_code is not None:
            w.pair("Result_Code", notification.criterion.result_code)


def _software(w: _Writer, c, path: str) -> None:
    w.pair("Presence", c.presence.value)
    w.pair("Names", ", ".join(c.names))


def _uptime(w: _Writer, c, path: str) -> None:
    w.pair("Days", c.days)


def _windows_event(w: _Writer, c, path: str) -> None:
    w.pair("Source_Provider_Name", c.source)
    w.pair("Event_IDs", ", ".join(str(i) for i in c.event_ids))
    w.pair("Text", ", ".join(c.text_filters))
    w.pair("Operator", c.operator.value)
    w.pair("Result", c.result.value)
    w.pair("Occurrence_count", c.occurrence_count)
    w.pair("If_the_events_trigger", f"{c.trigger_count} times or more")
    w.pair("within", c.within.value)


def _windows_service(w: _Writer, c, path: str) -> None:
    w.pair("Service", ", ".join(c.services))
    w.pair("State", c.state.value)
    w.pair("System_Uptime_Delay", _window(c.system_uptime_delay))
    w.pair("Ignore_if_service_is_disabled", c.ignore_if_disabled)
    w.pair("Ignore_if_service_is_manual", c.ignore_if_manual)
    w.pair("Trigger_again_if_condition_is_still_true_after_reset", c.trigger_again)


def _smart(w: _Writer, c, path: str) -> None:
    w.pair("Pred_Fail", c.pred_fail)


_WRITERS: Dict[ConditionKind, Callable[[_Writer, object, str], None]] = {
    ConditionKind.ANTIVIRUS_HEALTH: _antivirus,
    ConditionKind.BATTERY_MONITORING: _battery,
    ConditionKind.BITLOCKER_STATUS: _bitlocker,
    ConditionKind.CPU: _percent_window,
    ConditionKind.CRITICAL_EVENTS: _critical_events,
    ConditionKind.CUSTOM_FIELDS: _custom_fields,
    ConditionKind.DEVICE_DOWN: _device_down,
    ConditionKind.DISK_ACTIVE_TIME: _percent_window,
    ConditionKind.DISK_FREE_SPACE: _disk_space,
    ConditionKind.DISK_TRANSFER_RATE: _rate,
    ConditionKind.DISK_USAGE: _disk_space,
    ConditionKind.MEMORY: _memory,
    ConditionKind.NETWORK_UTILIZATION: _rate,
    ConditionKind.OS_PATCH_CVSS_SCORE: _cvss,
    ConditionKind.PATCH_LAST_INSTALLED: _patch_last_installed,
    ConditionKind.PROCESS: _process,
    ConditionKind.PROCESS_RESOURCE: _process_resource,
    ConditionKind.RAID_HEALTH_STATUS: _raid,
    ConditionKind.REBOOT_PENDING: _reboot_pending,
    ConditionKind.SCRIPT_RESULT_CONDITION: _script_result,
    ConditionKind.SOFTWARE: _software,
    ConditionKind.SYSTEM_UPTIME: _uptime,
    ConditionKind.WINDOWS_EVENT: _windows_event,
    ConditionKind.WINDOWS_SERVICE: _windows_service,
    ConditionKind.WINDOWS_SMART_STATUS_DEGRADED: _smart,
}


def dump_binding(binding: PolicyBinding) -> str:
    """Render a binding as a condition document."""
    w = _Writer()
    kind = binding.kind

    w.section("Condition")
    w.pair("Path", binding.target_scope.path)
    w.pair("Agent_Policy", binding.target_scope.agent_policy or "")
    w.pair("Condition", kind.label)

    path = f"Condition.{kind.value}"
    w.section(path)
    _WRITERS[kind](w, binding.condition, path)

    w.section("General")
    w.pair("Name", binding.policy_id)
    w.pair("Severity", binding.severity.value)
    w.pair("Priority", binding.priority.value)

    ar = binding.auto_reset
    w.section("General.Auto-reset")
    w.pair("After", ar.enabled)
    if ar.enabled:
        if ar.reset_interval is not None:
            w.pair("Reset_Interval", ar.reset_interval.value)
        w.pair("When_no_longer_met", ar.when_no_longer_met)

    d = binding.dispatch
    w.section("Notifications")
    w.pair("Channels", ", ".join(d.channels))
    w.pair("Notify_Technicians", d.technician_mode.value)
    if ar.enabled:
        w.pair("Notify_on_reset", ar.notify_on_reset)
    w.pair("ConnectWise", d.ticketing.mode.value)
    w.pair("Ticketing_Rule", d.ticketing.rule.value)
    if d.ticketing.mode is not TicketingMode.DISABLED:
        slug = d.ticketing.mode.value.replace(" ", "_")
        w.section(f"Notifications.ConnectWise.{slug}")
        w.pair("Ticket_Template", d.ticketing.template_ref or "")

    if d.automations:
        w.section("Automations")
        for automation in d.automations:
            w.section("Automations.Automation")
            w.pair("Name", automation.name)
            w.section("Automations.Automation.Parameters")
            _run_parameters(w, automation)
    return w.render()
