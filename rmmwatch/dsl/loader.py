"""
Condition document -> PolicyBinding.

Each condition kind has a reader that turns its ``[Condition.<Kind>]`` section
into a plain payload; the payload is validated once by pydantic and any
validation failure surfaces as a ConfigurationError carrying the offending
location. Enumerated keys are checked against the option template before
pydantic ever sees them.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from rmmwatch.config import settings
from rmmwatch.errors import ConfigurationError
from rmmwatch.schemas.binding import DEFAULT_SCOPE_PATH, PolicyBinding
from rmmwatch.schemas.common import parse_time_unit
from rmmwatch.schemas.conditions import ConditionKind

from .model import Document, Entry, OptionList, Section
from .parser import parse_document
from .template import TemplateCatalog

logger = logging.getLogger("rmmwatch.dsl.loader")

# Labels accepted for compatibility with older templates.
_LABEL_ALIASES = {
    "stats": "Starts with",
    "ends": "Ends with",
}

# Older documents spell these keys without the vendor prefix.
_KEY_ALIASES = {
    "ninja_update_engine_only": ("update_engine_only",),
}

_PARAMETER_KEY = re.compile(r"^Parameter(\d+)$", re.IGNORECASE)


@lru_cache(maxsize=1)
def default_catalog() -> TemplateCatalog:
    return TemplateCatalog.from_file(settings.TEMPLATE_PATH or None)


class _SectionReader:
    """Typed access to the keys of one or more occurrences of a section."""

    def __init__(
        self,
        sections: List[Section],
        catalog: TemplateCatalog,
        scope: str,
        template_scope: Optional[str] = None,
        deep: bool = True,
    ):
        self.sections = sections
        self.catalog = catalog
        self.scope = scope
        self.template_scope = template_scope or scope
        if deep:
            entries = [e for s in sections for e in s.flat_entries()]
        else:
            entries = [e for s in sections for e in s.entries]
        self._entries = sorted(entries, key=lambda e: e.line)

    @property
    def exists(self) -> bool:
        return bool(self.sections)

    def loc(self, key: str) -> str:
        return f"{self.scope}.{key}"

    def child(self, name: str) -> "_SectionReader":
        found = [c for s in self.sections for c in s.children_named(name)]
        return _SectionReader(
            found,
            self.catalog,
            f"{self.scope}.{name}",
            f"{self.template_scope}.{name}",
        )

    # -- raw access ------------------------------------------------------

    def _find(self, key: str, after: Optional[int] = None) -> Optional[Entry]:
        names = (key.lower(),) + _KEY_ALIASES.get(key.lower(), ())
        for e in self._entries:
            if after is not None and e.line <= after:
                continue
            if e.key.lower() in names:
                return e
        return None

    def has(self, key: str) -> bool:
        return bool(self.text(key)) if self._find(key) else False

    def entries(self) -> List[Entry]:
        return list(self._entries)

    def _as_text(self, key: str, entry: Optional[Entry]) -> str:
        if entry is None:
            return ""
        value = entry.value
        if isinstance(value, OptionList):
            raise ConfigurationError("option list left unselected", location=self.loc(key))
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float):
            return f"{value:g}"
        return value.strip()

    # -- typed access ----------------------------------------------------

    def text(self, key: str, required: bool = False, after: Optional[int] = None) -> str:
        value = self._as_text(key, self._find(key, after))
        if required and not value:
            raise ConfigurationError("missing required value", location=self.loc(key))
        return value

    def flag(self, key: str, default: bool = False) -> bool:
        entry = self._find(key)
        if entry is None:
            return default
        if isinstance(entry.value, bool):
            return entry.value
        text = self._as_text(key, entry).lower()
        if not text:
            return default
        if text in ("true", "false"):
            return text == "true"
        raise ConfigurationError(f"expected true or false, got {text!r}", location=self.loc(key))

    def number(self, key: str, required: bool = False) -> Optional[float]:
        entry = self._find(key)
        if entry is not None and isinstance(entry.value, float):
            return entry.value
        text = self._as_text(key, entry).rstrip("%").strip()
        if not text:
            if required:
                raise ConfigurationError("missing required value", location=self.loc(key))
            return None
        try:
            return float(text)
        except ValueError:
            raise ConfigurationError(f"expected a number, got {text!r}", location=self.loc(key))

    def integer(self, key: str, required: bool = False) -> Optional[int]:
        value = self.number(key, required=required)
        if value is None:
            return None
        if not float(value).is_integer():
            raise ConfigurationError(f"expected a whole number, got {value:g}", location=self.loc(key))
        return int(value)

    def names(self, key: str) -> List[str]:
        return [n.strip() for n in self.text(key).split(",") if n.strip()]

    def choice(self, key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
        raw = self.text(key)
        if not raw:
            if required and default is None:
                raise ConfigurationError("missing required value", location=self.loc(key))
            return default
        raw = _LABEL_ALIASES.get(raw.lower(), raw)
        return self.catalog.choose(self.template_scope, key, raw)

    def quantity(self, key: str, after: Optional[int] = None) -> Optional[Tuple[float, str]]:
        entry = self._find(key, after)
        if entry is None:
            return None
        raw = entry.value if isinstance(entry.value, float) else self._as_text(key, entry)
        if raw == "":
            return None
        return self.catalog.quantity(self.template_scope, key, raw)

    def window(self, key: str, required: bool = False, after: Optional[int] = None) -> Optional[dict]:
        q = self.quantity(key, after=after)
        if q is None:
            if required:
                raise ConfigurationError("missing required duration", location=self.loc(key))
            return None
        value, unit = q
        return {"value": value, "unit": parse_time_unit(unit).value}

    def line_of(self, key: str) -> Optional[int]:
        entry = self._find(key)
        return entry.line if entry else None


# ---------------------------------------------------------------------------
# Per-kind readers
# ---------------------------------------------------------------------------

def _antivirus(r: _SectionReader) -> dict:
    return {
        "antivirus_missing": r.flag("Antivirus_Missing"),
        "antivirus_disabled": r.flag("Antivirus_Disabled"),
        "antivirus_outdated": r.flag("Antivirus_Outdated"),
        "detect_multiple_installed": r.flag("Detect_Multiple_Antivirus_Installed"),
        "ignore_defender": r.flag("Ignore_Microsoft_Defender_Antivirus"),
        "duration_detected": r.window("Duration_Detected", required=True),
    }


_BATTERY_MONITORS = (
    ("charge_level", "Monitor_Current_Batter_Charge_Level", "Battery_Charge_Level", "Percentage"),
    (
        "capacity_now_vs_new",
        "Monitor_Battery_Maximum_Capacity_Now_vs_New",
        "Battery_Capacity_Now_vs_New",
        "Percentage",
    ),
    ("cycle_count", "Monitor_Number_of_Battery_Cycles", "Battery_Cycles", "Value"),
)


def _battery(r: _SectionReader) -> dict:
    payload = {}
    for field, flag, inner, value_key in _BATTERY_MONITORS:
        if not r.flag(flag):
            continue
        sub = r.child(flag).child(inner)
        if value_key == "Percentage":
            q = sub.quantity(value_key)
            if q is None:
                raise ConfigurationError("missing required value", location=sub.loc(value_key))
            value = q[0]
        else:
            value = sub.number(value_key, required=True)
        payload[field] = {
            "operator": sub.choice("Condition", required=True),
            "value": value,
        }
    return payload


def _bitlocker(r: _SectionReader) -> dict:
    return {
        "status": r.choice("Status", required=True),
        "duration": r.window("Duration", required=True),
        "exclude_boot_volume": r.flag("Exclude_Boot_Volume"),
        "exclude_removable_disk": r.flag("Exclude_Removable_Disk"),
        "exclude_volume_labels": r.names("Exclude_Volume_Labels"),
    }


def _percent_window(r: _SectionReader) -> dict:
    return {
        "operator": r.choice("Operator", required=True),
        "threshold_percent": r.number("Threshold_Percent", required=True),
        "duration": r.choice("Duration", required=True),
    }


def _critical_events(r: _SectionReader) -> dict:
    return {
        "event_limit": r.integer("Event_Limit", required=True),
        "duration": r.choice("Duration", required=True),
        "exclude_error_events": r.flag("Exclude_error_events"),
    }


_CLAUSE_GROUPS = (
    ("all_of", "Custom_field_value_must_meet_all_conditions", "all"),
    ("any_of", "Custom_field_value_must_meet_any_conditions", "any"),
)

_PRESENCE_LABELS = ("exists", "doesn't exist")


def _field_type(c: _SectionReader) -> str:
    explicit = c.choice("Field_Type")
    if explicit:
        return explicit
    if c.has("Dropdown_value"):
        return "Dropdown"
    if c.has("Text"):
        return "Text"
    entry = c._find("Checkbox_value")
    if entry is not None and isinstance(entry.value, bool):
        return "Checkbox"
    return "Text"


def _clause(c: _SectionReader) -> dict:
    comparator = c.choice("Condition", required=True)
    field_type = _field_type(c)
    value: Any = None
    if comparator.lower() not in _PRESENCE_LABELS:
        if field_type == "Checkbox":
            value = c.flag("Checkbox_value")
        elif field_type == "Dropdown":
            value = c.text("Dropdown_value", required=True)
        else:
            value = c.text("Text", required=True)
    return {
        "custom_field": c.text("Custom_field", required=True),
        "comparator": comparator,
        "field_type": field_type,
        "value": value,
    }


def _custom_fields(r: _SectionReader) -> dict:
    payload = {}
    for field, section_name, mode in _CLAUSE_GROUPS:
        occurrences = [c for s in r.sections for c in s.children_named(section_name)]
        if not occurrences:
            continue
        clauses = []
        for section in occurrences:
            c = _SectionReader([section], r.catalog, f"{r.scope}.{section_name}")
            if not c.text("Custom_field"):
                logger.debug("skipping blank custom field clause at line %s", section.line)
                continue
            clauses.append(_clause(c))
        payload[field] = {"mode": mode, "clauses": clauses}
    return payload


def _device_down(r: _SectionReader) -> dict:
    return {
        "duration": r.window("Duration", required=True),
        "trigger_again": r.flag("Trigger_again_if_condition_is_still_true_after_reset"),
    }


def _disk_space(r: _SectionReader) -> dict:
    q = r.quantity("Threshold")
    if q is None:
        raise ConfigurationError("missing required value", location=r.loc("Threshold"))
    return {
        "operator": r.choice("Operator", required=True),
        "threshold": {"magnitude": q[0], "unit": q[1]},
        "duration": r.window("Duration", required=True),
        "system_uptime_delay": r.window("System_Uptime_Delay"),
        "volumes": {
            "boot_volume_only": r.flag("Boot_Volume_Only"),
            "volume_labels_mode": r.choice("Volume_labels_mode", default="None"),
            "exclude_volume_labels": r.names("Exclude_volume_labels"),
            "include_volume_labels": r.names("Include_volume_labels"),
            "exclude_removable_disks": r.flag("Exclude_removable_disks"),
            "exclude_boot_volume": r.flag("Exclude_boot_volume"),
        },
    }


def _rate(r: _SectionReader) -> dict:
    return {
        "direction": r.choice("Direction", required=True),
        "operator": r.choice("Operator", required=True),
        "threshold": {
            "magnitude": r.number("Threshold_Bytes", required=True),
            "unit": r.choice("Unit_Bytes", required=True),
        },
        "duration": r.choice("Duration", required=True),
    }


def _memory_unit(r: _SectionReader) -> dict:
    arm = r.choice("Unit", required=True)
    a = r.child("Unit").child(arm)
    if arm == "%":
        return {"arm": "%", "threshold_percent": a.number("Threshold_Percent", required=True)}
    return {
        "arm": "Byte",
        "threshold_bytes": a.number("Threshold_Bytes", required=True),
        "unit_bytes": a.choice("Unit_Bytes", required=True),
    }


def _memory(r: _SectionReader) -> dict:
    return {
        "operator": r.choice("Operator", required=True),
        "unit": _memory_unit(r),
        "duration": r.choice("Duration", required=True),
    }


def _cvss(r: _SectionReader) -> dict:
    return {
        "operator": r.choice("Operator", required=True),
        "threshold_cvss_score": r.number("Threshold_CVSS_Score", required=True),
        "duration_days": r.integer("Duration_Days") or 0,
        "include_rejected_patches": r.flag("Include_Rejected_Patches"),
    }


def _patch_last_installed(r: _SectionReader) -> dict:
    return {
        "patch_type": r.choice("Patch_Type", required=True),
        "days": r.choice("Days", required=True),
        "update_engine_only": r.flag("Ninja_Update_Engine_Only"),
    }


def _process(r: _SectionReader) -> dict:
    return {
        "processes": r.names("Process"),
        "state": r.choice("State", required=True),
        "system_uptime_delay": r.window("System_Uptime_Delay"),
    }


def _process_resource(r: _SectionReader) -> dict:
    arm = r.choice("Resource", required=True)
    a = r.child("Resource").child(arm)
    resource = {
        "arm": arm,
        "operator": a.choice("Operator", required=True),
        "duration": a.choice("Duration", required=True),
    }
    if arm == "CPU":
        resource["threshold_percent"] = a.number("Threshold_Percent", required=True)
    else:
        resource["unit"] = _memory_unit(a)
    return {"processes": r.names("Process"), "resource": resource}


def _raid(r: _SectionReader) -> dict:
    return {
        "controller": r.choice("Controller", default="Ignore"),
        "virtual_drives": r.choice("Virtual_Drives", default="Ignore"),
        "physical_drives": r.choice("Physical_Drives", default="Ignore"),
        "battery_backup": r.choice("Battery_Backup", default="Ignore"),
    }


def _reboot_pending(r: _SectionReader) -> dict:
    payload = {}
    # Both periods share the key "Duration"; each one follows its own flag.
    for field, flag in (
        ("pending_for", "Reboot_has_been_pending_for_a_time_period"),
        ("users_idle_for", "Users_have_been_idle_for_a_time_period"),
    ):
        if r.flag(flag):
            payload[field] = r.window("Duration", required=True, after=r.line_of(flag))
    return payload


def _positional_parameters(r: _SectionReader) -> List[str]:
    numbered = []
    for e in r.entries():
        m = _PARAMETER_KEY.match(e.key)
        if m:
            numbered.append((int(m.group(1)), r._as_text(e.key, e)))
    return [value for _, value in sorted(numbered, key=lambda p: p[0])]


def _run_parameters(p: _SectionReader) -> dict:
    return {
        "run_as": p.choice("Run_As", default="System"),
        "preset_parameter": p.text("Preset_Parameter"),
        "parameters": _positional_parameters(p),
    }


def _interval(r: _SectionReader) -> dict:
    return {"hours": r.integer("Hour") or 0, "minutes": r.integer("Minutes") or 0}


def _script_result(r: _SectionReader) -> dict:
    script = r.child("Evaluation_script")
    rc = r.child("Result_Code")
    wo = r.child("With_Output")
    en = r.child("Script_error_notification")

    with_output = None
    if wo.has("Operator"):
        with_output = {"operator": wo.choice("Operator"), "text": wo.text("Text")}

    enabled = en.flag("Script_error_notification")
    criterion = None
    if enabled and en.has("Operator"):
        criterion = {"operator": en.choice("Operator"), "result_code": en.integer("Result_Code")}

    return {
        "script": script.text("Evaluation_script", required=True),
        "parameters": _run_parameters(script.child("Parameters")),
        "run_every": _interval(r.child("Run_Every")),
        "timeout": _interval(r.child("Timeout")),
        "result_code": {
            "operator": rc.choice("Operator", default="any"),
            "result_code": rc.integer("Result_Code"),
        },
        "with_output": with_output,
        "script_error_notification": {"enabled": enabled, "criterion": criterion},
    }


def _software(r: _SectionReader) -> dict:
    return {"presence": r.choice("Presence", required=True), "names": r.names("Names")}


def _uptime(r: _SectionReader) -> dict:
    return {"days": r.number("Days", required=True)}


def _windows_event(r: _SectionReader) -> dict:
    event_ids = []
    for raw in r.names("Event_IDs"):
        try:
            event_ids.append(int(raw))
        except ValueError:
            raise ConfigurationError(f"event id {raw!r} is not a number", location=r.loc("Event_IDs"))
    q = r.quantity("If_the_events_trigger")
    return {
        "source": r.text("Source_Provider_Name"),
        "event_ids": event_ids,
        "text_filters": r.names("Text"),
        "operator": r.choice("Operator", default="Contains"),
        "result": r.choice("Result", default="Any"),
        "occurrence_count": r.flag("Occurrence_count"),
        "trigger_count": int(q[0]) if q else 1,
        "within": r.choice("within", required=True),
    }


def _windows_service(r: _SectionReader) -> dict:
    return {
        "services": r.names("Service"),
        "state": r.choice("State", required=True),
        "system_uptime_delay": r.window("System_Uptime_Delay"),
        "ignore_if_disabled": r.flag("Ignore_if_service_is_disabled"),
        "ignore_if_manual": r.flag("Ignore_if_service_is_manual"),
        "trigger_again": r.flag("Trigger_again_if_condition_is_still_true_after_reset"),
    }


def _smart(r: _SectionReader) -> dict:
    return {"pred_fail": r.flag("Pred_Fail")}


_READERS: Dict[ConditionKind, Callable[[_SectionReader], dict]] = {
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

_KIND_BY_SECTION = {k.value.lower(): k for k in ConditionKind}
_KIND_BY_LABEL = {k.label.lower(): k for k in ConditionKind}


# ---------------------------------------------------------------------------
# Binding-level sections
# ---------------------------------------------------------------------------

def _select_kind(doc: Document, catalog: TemplateCatalog) -> Tuple[ConditionKind, List[Section]]:
    roots = doc.sections("Condition")
    if not roots:
        raise ConfigurationError("document has no [Condition] section", location=doc.source)
    selector = _SectionReader(roots, catalog, "Condition", deep=False)

    present: Dict[ConditionKind, List[Section]] = {}
    for root in roots:
        for child in root.children:
            kind = _KIND_BY_SECTION.get(child.name.lower())
            if kind is not None:
                present.setdefault(kind, []).append(child)

    label = selector.choice("Condition")
    if label:
        kind = _KIND_BY_LABEL[label.lower()]
    elif len(present) == 1:
        kind = next(iter(present))
    else:
        raise ConfigurationError("no condition selected", location="Condition.Condition")

    others = sorted(k.value for k in present if k is not kind)
    if others:
        raise ConfigurationError(
            f"condition '{kind.label}' conflicts with sections: {', '.join(others)}",
            location="Condition",
        )
    return kind, present.get(kind, [])


def _auto_reset(general: _SectionReader, notify: Callable[[str], Optional[_SectionReader]]) -> dict:
    ar = general.child("Auto-reset")
    if not ar.flag("After"):
        # Reset interval and notify-on-reset are not read while disabled.
        return {"enabled": False}
    notify_reader = notify("Notify_on_reset")
    return {
        "enabled": True,
        "reset_interval": ar.choice("Reset_Interval"),
        "when_no_longer_met": ar.flag("When_no_longer_met"),
        "notify_on_reset": notify_reader.flag("Notify_on_reset") if notify_reader else False,
    }


def _dispatch(doc: Document, catalog: TemplateCatalog, general: _SectionReader):
    notifications = _SectionReader(doc.sections("Notifications"), catalog, "Notifications")
    # Older documents keep notification keys under [General.Auto-reset].
    legacy = _SectionReader(general.sections, catalog, "General", template_scope="Notifications")

    def reader_for(key: str) -> Optional[_SectionReader]:
        for r in (notifications, legacy):
            if r._find(key) is not None:
                return r
        return None

    channels: List[str] = []
    for r in (notifications, legacy):
        channels.extend(r.names("Channel"))
        channels.extend(r.names("Channels"))

    def choice(key: str, default: str) -> str:
        r = reader_for(key)
        return r.choice(key, default=default) if r else default

    mode = choice("ConnectWise", "Do not create a ticket")
    template_ref = None
    if mode != "Do not create a ticket":
        slug = mode.replace(" ", "_")
        template_ref = notifications.child("ConnectWise").child(slug).text("Ticket_Template") or None

    automations = []
    for section in doc.sections("Automations.Automation"):
        a = _SectionReader([section], catalog, "Automations.Automation")
        params = _run_parameters(a.child("Parameters"))
        automations.append({"name": a.text("Name", required=True), **params})

    payload = {
        "channels": channels,
        "technician_mode": choice("Notify_Technicians", "Do not send notifications"),
        "ticketing": {
            "mode": mode,
            "template_ref": template_ref,
            "rule": choice("Ticketing_Rule", "Off"),
        },
        "automations": automations,
    }
    return payload, reader_for


def _binding_payload(doc: Document, catalog: TemplateCatalog) -> dict:
    kind, sections = _select_kind(doc, catalog)
    variant = _SectionReader(sections, catalog, f"Condition.{kind.value}")
    condition = _READERS[kind](variant)
    condition["kind"] = kind

    scope = _SectionReader(doc.sections("Condition"), catalog, "Condition", deep=False)
    general = _SectionReader(doc.sections("General"), catalog, "General")
    dispatch, reader_for = _dispatch(doc, catalog, general)

    return {
        "policy_id": general.text("Name", required=True),
        "target_scope": {
            "path": scope.text("Path") or DEFAULT_SCOPE_PATH,
            "agent_policy": scope.text("Agent_Policy") or None,
        },
        "condition": condition,
        "severity": general.choice("Severity", default="None"),
        "priority": general.choice("Priority", default="None"),
        "auto_reset": _auto_reset(general, reader_for),
        "dispatch": dispatch,
    }


def _format_validation(exc: ValidationError) -> Tuple[str, str]:
    first = exc.errors()[0]
    location = ".".join(str(p) for p in first["loc"])
    message = first["msg"]
    if exc.error_count() > 1:
        message = f"{message} (+{exc.error_count() - 1} more)"
    return message, location


def load_binding_document(doc: Document, catalog: Optional[TemplateCatalog] = None) -> PolicyBinding:
    catalog = catalog or default_catalog()
    payload = _binding_payload(doc, catalog)
    try:
        binding = PolicyBinding.model_validate(payload)
    except ValidationError as exc:
        message, location = _format_validation(exc)
        raise ConfigurationError(message, location=f"{doc.source}:{location}") from exc
    logger.debug("loaded binding %s (%s) from %s", binding.policy_id, binding.kind.value, doc.source)
    return binding


def load_binding(
    text: str,
    source: str = "<string>",
    catalog: Optional[TemplateCatalog] = None,
) -> PolicyBinding:
    """Parse and validate one condition document."""
    return load_binding_document(parse_document(text, source=source), catalog)


def load_binding_file(path: Union[str, Path], catalog: Optional[TemplateCatalog] = None) -> PolicyBinding:
    p = Path(path)
    return load_binding(p.read_text(encoding="utf-8"), source=str(p), catalog=catalog)


def validate_document(text: str, catalog: Optional[TemplateCatalog] = None) -> List[str]:
    """Return the configuration errors of a document; empty when it loads."""
    try:
        load_binding(text, catalog=catalog)
    except ConfigurationError as exc:
        return [str(exc)]
    return []
