"""
Condition variants.

A Condition is a closed tagged union over ConditionKind: exactly one variant
is active per binding and each variant owns its own parameter record. The
``kind`` field is the pydantic discriminator.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from .common import (
    ByteUnit,
    CapacityUnit,
    DurationWindow,
    FixedWindow,
    Operator,
    PatchAge,
    RateUnit,
    ResultCodeOperator,
    ThresholdValue,
    TimeUnit,
)


class ConditionKind(str, Enum):
    ANTIVIRUS_HEALTH = "Antivirus_Health"
    BATTERY_MONITORING = "Battery_Monitoring"
    BITLOCKER_STATUS = "Bitlocker_Status"
    CPU = "CPU"
    CRITICAL_EVENTS = "Critical_Events"
    CUSTOM_FIELDS = "Custom_Fields"
    DEVICE_DOWN = "Device_Down"
    DISK_ACTIVE_TIME = "Disk_Active_Time"
    DISK_FREE_SPACE = "Disk_Free_Space"
    DISK_TRANSFER_RATE = "Disk_Transfer_Rate"
    DISK_USAGE = "Disk_Usage"
    MEMORY = "Memory"
    NETWORK_UTILIZATION = "Network_Utilization"
    OS_PATCH_CVSS_SCORE = "OS_Patch_CVSS_Score"
    PATCH_LAST_INSTALLED = "Patch_Last_Installed"
    PROCESS = "Process"
    PROCESS_RESOURCE = "ProcessResource"
    RAID_HEALTH_STATUS = "RAID_Health_Status"
    REBOOT_PENDING = "Reboot_Pending"
    SCRIPT_RESULT_CONDITION = "Script_Result_Condition"
    SOFTWARE = "Software"
    SYSTEM_UPTIME = "System_Uptime"
    WINDOWS_EVENT = "Windows_Event"
    WINDOWS_SERVICE = "Windows_Service"
    WINDOWS_SMART_STATUS_DEGRADED = "Windows_SMART_Status_Degraded"

    @property
    def label(self) -> str:
        """Label used by the ``[Condition] Condition = ...`` selector."""
        if self is ConditionKind.PROCESS_RESOURCE:
            return "Process Resource"
        return self.value.replace("_", " ")


class _Variant(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _require_units(window: Optional[DurationWindow], allowed: tuple, field: str):
    if window is not None and window.unit not in allowed:
        names = ", ".join(u.value for u in allowed)
        raise ValueError(f"{field} must be expressed in {names}")
    return window


_MINUTES_HOURS_DAYS = (TimeUnit.MINUTES, TimeUnit.HOURS, TimeUnit.DAYS)
_MINUTES_HOURS = (TimeUnit.MINUTES, TimeUnit.HOURS)


# ---------------------------------------------------------------------------
# Shared enumerations
# ---------------------------------------------------------------------------

class PresenceState(str, Enum):
    EXISTS = "Exists"
    DOES_NOT_EXIST = "Doesn't Exist"
    UP = "Up"
    DOWN = "Down"


class SoftwarePresence(str, Enum):
    EXISTS = "Exists"
    DOES_NOT_EXIST = "Doesn't exist"


class RunAs(str, Enum):
    SYSTEM = "System"
    CURRENT_USER = "Current Logged on User"
    LOCAL_ADMIN = "Preferred Windows Local Admin"
    DOMAIN_ADMIN = "Preferred Windows Domain Admin"


# ---------------------------------------------------------------------------
# Antivirus / battery / bitlocker
# ---------------------------------------------------------------------------

class AntivirusHealthCondition(_Variant):
    kind: Literal[ConditionKind.ANTIVIRUS_HEALTH] = ConditionKind.ANTIVIRUS_HEALTH
    antivirus_missing: bool = False
    antivirus_disabled: bool = False
    antivirus_outdated: bool = False
    detect_multiple_installed: bool = False
    ignore_defender: bool = False
    duration_detected: DurationWindow

    @field_validator("duration_detected")
    @classmethod
    def _units(cls, v):
        return _require_units(v, _MINUTES_HOURS_DAYS, "Duration_Detected")

    @model_validator(mode="after")
    def _some_check(self):
        if not (
            self.antivirus_missing
            or self.antivirus_disabled
            or self.antivirus_outdated
            or self.detect_multiple_installed
        ):
            raise ValueError("at least one antivirus check must be enabled")
        return self


class BatteryMonitor(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operator: Operator
    value: float = Field(..., ge=0, allow_inf_nan=False)

    @field_validator("operator")
    @classmethod
    def _lt_gt_only(cls, v: Operator) -> Operator:
        if v not in (Operator.LT, Operator.GT):
            raise ValueError("battery monitors support only 'less than' / 'greater than'")
        return v


class BatteryMonitoringCondition(_Variant):
    kind: Literal[ConditionKind.BATTERY_MONITORING] = ConditionKind.BATTERY_MONITORING
    charge_level: Optional[BatteryMonitor] = None
    capacity_now_vs_new: Optional[BatteryMonitor] = None
    cycle_count: Optional[BatteryMonitor] = None

    @model_validator(mode="after")
    def _some_monitor(self):
        if not (self.charge_level or self.capacity_now_vs_new or self.cycle_count):
            raise ValueError("at least one battery monitor must be enabled")
        return self


class BitlockerState(str, Enum):
    ENABLED = "Enabled"
    DISABLED = "Disabled"
    LOCKED = "Locked"
    UNLOCKED = "Unlocked"


class BitlockerStatusCondition(_Variant):
    kind: Literal[ConditionKind.BITLOCKER_STATUS] = ConditionKind.BITLOCKER_STATUS
    status: BitlockerState
    duration: DurationWindow
    exclude_boot_volume: bool = False
    exclude_removable_disk: bool = False
    exclude_volume_labels: List[str] = Field(default_factory=list)

    @field_validator("duration")
    @classmethod
    def _units(cls, v):
        return _require_units(v, (TimeUnit.MINUTES,), "Duration")


# ---------------------------------------------------------------------------
# Percent-over-window variants
# ---------------------------------------------------------------------------

class _PercentWindow(_Variant):
    operator: Operator
    threshold_percent: float = Field(..., ge=0, allow_inf_nan=False)
    duration: FixedWindow

    @property
    def threshold(self) -> ThresholdValue:
        return ThresholdValue.percent(self.threshold_percent)


class CPUCondition(_PercentWindow):
    kind: Literal[ConditionKind.CPU] = ConditionKind.CPU


class DiskActiveTimeCondition(_PercentWindow):
    kind: Literal[ConditionKind.DISK_ACTIVE_TIME] = ConditionKind.DISK_ACTIVE_TIME


class CriticalEventsCondition(_Variant):
    kind: Literal[ConditionKind.CRITICAL_EVENTS] = ConditionKind.CRITICAL_EVENTS
    event_limit: int = Field(..., ge=1)
    duration: FixedWindow
    exclude_error_events: bool = False


# ---------------------------------------------------------------------------
# Custom fields (compound clause groups)
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    TEXT = "Text"
    DROPDOWN = "Dropdown"
    CHECKBOX = "Checkbox"


class FieldComparator(str, Enum):
    CONTAINS = "Contains"
    CONTAINS_NONE = "Contains none"
    EQUALS = "Equals"
    NOT_EQUAL = "Does not equal"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "Doesn't exist"


PRESENCE_COMPARATORS = frozenset({FieldComparator.EXISTS, FieldComparator.DOES_NOT_EXIST})

ALLOWED_COMPARATORS = {
    FieldType.TEXT: frozenset(FieldComparator),
    FieldType.DROPDOWN: frozenset(
        {FieldComparator.EQUALS, FieldComparator.NOT_EQUAL} | PRESENCE_COMPARATORS
    ),
    FieldType.CHECKBOX: frozenset(
        {FieldComparator.EQUALS, FieldComparator.NOT_EQUAL} | PRESENCE_COMPARATORS
    ),
}


class FieldClause(BaseModel):
    model_config = ConfigDict(extra="forbid")

    custom_field: str = Field(..., min_length=1)
    comparator: FieldComparator
    field_type: FieldType = FieldType.TEXT
    value: Union[bool, str, None] = None

    @model_validator(mode="after")
    def _comparator_matches_type(self):
        if self.comparator not in ALLOWED_COMPARATORS[self.field_type]:
            raise ValueError(
                f"comparator '{self.comparator.value}' is not valid for "
                f"{self.field_type.value.lower()} field '{self.custom_field}'"
            )
        if self.comparator in PRESENCE_COMPARATORS:
            return self
        if self.field_type is FieldType.CHECKBOX:
            if not isinstance(self.value, bool):
                raise ValueError(f"checkbox field '{self.custom_field}' needs a true/false value")
        elif not isinstance(self.value, str):
            raise ValueError(f"field '{self.custom_field}' needs a text value")
        return self


class AggregationMode(str, Enum):
    ALL = "all"
    ANY = "any"


class ClauseGroup(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: AggregationMode
    clauses: List[FieldClause]

    @field_validator("clauses")
    @classmethod
    def _not_empty(cls, v):
        if not v:
            raise ValueError("a clause group must contain at least one clause")
        return v


class CustomFieldsCondition(_Variant):
    kind: Literal[ConditionKind.CUSTOM_FIELDS] = ConditionKind.CUSTOM_FIELDS
    all_of: Optional[ClauseGroup] = None
    any_of: Optional[ClauseGroup] = None

    @model_validator(mode="after")
    def _groups(self):
        if self.all_of is None and self.any_of is None:
            raise ValueError("custom field condition needs at least one clause group")
        if self.all_of is not None and self.all_of.mode is not AggregationMode.ALL:
            raise ValueError("all_of group must use ALL aggregation")
        if self.any_of is not None and self.any_of.mode is not AggregationMode.ANY:
            raise ValueError("any_of group must use ANY aggregation")
        return self


# ---------------------------------------------------------------------------
# Device / disk
# ---------------------------------------------------------------------------

class DeviceDownCondition(_Variant):
    kind: Literal[ConditionKind.DEVICE_DOWN] = ConditionKind.DEVICE_DOWN
    duration: DurationWindow
    trigger_again: bool = False

    @field_validator("duration")
    @classmethod
    def _units(cls, v):
        return _require_units(v, _MINUTES_HOURS_DAYS, "Duration")


class VolumeLabelsMode(str, Enum):
    NONE = "None"
    EXCLUDE = "Exclude"
    INCLUDE = "Include"


class VolumeSelection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    boot_volume_only: bool = False
    volume_labels_mode: VolumeLabelsMode = VolumeLabelsMode.NONE
    exclude_volume_labels: List[str] = Field(default_factory=list)
    include_volume_labels: List[str] = Field(default_factory=list)
    exclude_removable_disks: bool = False
    exclude_boot_volume: bool = False


class _DiskSpace(_Variant):
    operator: Operator
    threshold: ThresholdValue
    duration: DurationWindow
    system_uptime_delay: Optional[DurationWindow] = None
    volumes: VolumeSelection = Field(default_factory=VolumeSelection)

    @field_validator("threshold")
    @classmethod
    def _capacity_unit(cls, v: ThresholdValue) -> ThresholdValue:
        if v.unit is not None and not isinstance(v.unit, CapacityUnit):
            raise ValueError("disk thresholds take Percent (%) or Kilobyte..Terabyte")
        return v

    @field_validator("duration", "system_uptime_delay")
    @classmethod
    def _units(cls, v):
        return _require_units(v, _MINUTES_HOURS, "Duration")


class DiskFreeSpaceCondition(_DiskSpace):
    kind: Literal[ConditionKind.DISK_FREE_SPACE] = ConditionKind.DISK_FREE_SPACE


class DiskUsageCondition(_DiskSpace):
    kind: Literal[ConditionKind.DISK_USAGE] = ConditionKind.DISK_USAGE


def _rate_only(v: ThresholdValue) -> ThresholdValue:
    if not isinstance(v.unit, RateUnit):
        raise ValueError("rate thresholds take KiBps / MiBps / GiBps / TiBps")
    return v


RateThreshold = Annotated[ThresholdValue, AfterValidator(_rate_only)]


class TransferDirection(str, Enum):
    READ = "Read Speed"
    WRITE = "Write Speed"
    READ_WRITE = "Read & Write Speed"


class DiskTransferRateCondition(_Variant):
    kind: Literal[ConditionKind.DISK_TRANSFER_RATE] = ConditionKind.DISK_TRANSFER_RATE
    direction: TransferDirection
    operator: Operator
    threshold: RateThreshold
    duration: FixedWindow


# ---------------------------------------------------------------------------
# Memory (unit arm union)
# ---------------------------------------------------------------------------

class PercentArm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    arm: Literal["%"] = "%"
    threshold_percent: float = Field(..., ge=0, allow_inf_nan=False)

    @property
    def threshold(self) -> ThresholdValue:
        return ThresholdValue.percent(self.threshold_percent)


class ByteArm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    arm: Literal["Byte"] = "Byte"
    threshold_bytes: float = Field(..., ge=0, allow_inf_nan=False)
    unit_bytes: ByteUnit

    @property
    def threshold(self) -> ThresholdValue:
        return ThresholdValue(magnitude=self.threshold_bytes, unit=self.unit_bytes)


MemoryUnit = Annotated[Union[PercentArm, ByteArm], Field(discriminator="arm")]


class MemoryCondition(_Variant):
    kind: Literal[ConditionKind.MEMORY] = ConditionKind.MEMORY
    operator: Operator
    unit: MemoryUnit
    duration: FixedWindow


class NetworkDirection(str, Enum):
    IN = "In Bytes"
    OUT = "Out Bytes"
    IN_OUT = "In & Out Bytes"


class NetworkUtilizationCondition(_Variant):
    kind: Literal[ConditionKind.NETWORK_UTILIZATION] = ConditionKind.NETWORK_UTILIZATION
    direction: NetworkDirection
    operator: Operator
    threshold: RateThreshold
    duration: FixedWindow


# ---------------------------------------------------------------------------
# Patching
# ---------------------------------------------------------------------------

class OSPatchCVSSScoreCondition(_Variant):
    kind: Literal[ConditionKind.OS_PATCH_CVSS_SCORE] = ConditionKind.OS_PATCH_CVSS_SCORE
    operator: Operator
    threshold_cvss_score: float = Field(..., ge=0, le=10)
    duration_days: int = Field(0, ge=0)
    include_rejected_patches: bool = False

    @field_validator("operator")
    @classmethod
    def _gte_gt_only(cls, v: Operator) -> Operator:
        if v not in (Operator.GTE, Operator.GT):
            raise ValueError("CVSS score supports only 'greater than or equal to' / 'greater than'")
        return v


class PatchType(str, Enum):
    OPERATING_SYSTEM = "Operating System"
    THIRD_PARTY = "3rd Party Software"


class PatchLastInstalledCondition(_Variant):
    kind: Literal[ConditionKind.PATCH_LAST_INSTALLED] = ConditionKind.PATCH_LAST_INSTALLED
    patch_type: PatchType
    days: PatchAge
    update_engine_only: bool = False


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------

def _names(v: List[str]) -> List[str]:
    cleaned = [n.strip() for n in v if n.strip()]
    if not cleaned:
        raise ValueError("at least one name is required")
    return cleaned


NameList = Annotated[List[str], AfterValidator(_names)]


class ProcessCondition(_Variant):
    kind: Literal[ConditionKind.PROCESS] = ConditionKind.PROCESS
    processes: NameList
    state: PresenceState
    system_uptime_delay: Optional[DurationWindow] = None

    @field_validator("system_uptime_delay")
    @classmethod
    def _units(cls, v):
        return _require_units(v, _MINUTES_HOURS, "System_Uptime_Delay")


class ProcessCpuArm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    arm: Literal["CPU"] = "CPU"
    operator: Operator
    threshold_percent: float = Field(..., ge=0, allow_inf_nan=False)
    duration: FixedWindow

    @property
    def threshold(self) -> ThresholdValue:
        return ThresholdValue.percent(self.threshold_percent)


class ProcessMemoryArm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    arm: Literal["Memory"] = "Memory"
    operator: Operator
    unit: MemoryUnit
    duration: FixedWindow

    @property
    def threshold(self) -> ThresholdValue:
        return self.unit.threshold


ProcessResourceArm = Annotated[Union[ProcessCpuArm, ProcessMemoryArm], Field(discriminator="arm")]


class ProcessResourceCondition(_Variant):
    kind: Literal[ConditionKind.PROCESS_RESOURCE] = ConditionKind.PROCESS_RESOURCE
    processes: NameList
    resource: ProcessResourceArm


# ---------------------------------------------------------------------------
# RAID / reboot
# ---------------------------------------------------------------------------

class RaidSeverity(str, Enum):
    IGNORE = "Ignore"
    CRITICAL_ONLY = "Critical Only"
    CRITICAL_AND_NON_CRITICAL = "Critical and Non-Critical"


class RAIDHealthStatusCondition(_Variant):
    kind: Literal[ConditionKind.RAID_HEALTH_STATUS] = ConditionKind.RAID_HEALTH_STATUS
    controller: RaidSeverity = RaidSeverity.IGNORE
    virtual_drives: RaidSeverity = RaidSeverity.IGNORE
    physical_drives: RaidSeverity = RaidSeverity.IGNORE
    battery_backup: RaidSeverity = RaidSeverity.IGNORE

    def components(self):
        return {
            "controller": self.controller,
            "virtual_drives": self.virtual_drives,
            "physical_drives": self.physical_drives,
            "battery_backup": self.battery_backup,
        }

    @model_validator(mode="after")
    def _some_component(self):
        if all(v is RaidSeverity.IGNORE for v in self.components().values()):
            raise ValueError("RAID condition ignores every component")
        return self


class RebootPendingCondition(_Variant):
    kind: Literal[ConditionKind.REBOOT_PENDING] = ConditionKind.REBOOT_PENDING
    pending_for: Optional[DurationWindow] = None
    users_idle_for: Optional[DurationWindow] = None

    @field_validator("pending_for", "users_idle_for")
    @classmethod
    def _units(cls, v):
        return _require_units(v, _MINUTES_HOURS_DAYS, "Duration")

    @model_validator(mode="after")
    def _some_period(self):
        if self.pending_for is None and self.users_idle_for is None:
            raise ValueError("reboot pending condition needs a pending or idle period")
        return self


# ---------------------------------------------------------------------------
# Script result
# ---------------------------------------------------------------------------

class ScriptParameters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    run_as: RunAs = RunAs.SYSTEM
    preset_parameter: str = ""
    parameters: List[str] = Field(default_factory=list)


class Interval(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    hours: int = Field(0, ge=0)
    minutes: int = Field(0, ge=0)

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60

    @model_validator(mode="after")
    def _positive(self):
        if self.total_seconds <= 0:
            raise ValueError("interval must be longer than zero")
        return self


class ResultCodeCriterion(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operator: ResultCodeOperator = ResultCodeOperator.ANY
    result_code: Optional[int] = None

    @model_validator(mode="after")
    def _code_present(self):
        if self.operator is not ResultCodeOperator.ANY and self.result_code is None:
            raise ValueError(f"result code operator '{self.operator.value}' needs a Result_Code")
        return self


class OutputOperator(str, Enum):
    CONTAINS = "Contains"
    NOT_EMPTY = "Not Empty"
    DOES_NOT_CONTAIN = "Does not contain"
    STARTS_WITH = "Starts with"
    ENDS_WITH = "Ends with"
    REGULAR_EXPRESSION = "Regular Expression"


class OutputCriterion(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operator: OutputOperator
    text: str = ""

    @model_validator(mode="after")
    def _text_present(self):
        if self.operator is OutputOperator.NOT_EMPTY:
            return self
        if not self.text:
            raise ValueError(f"output operator '{self.operator.value}' needs Text")
        if self.operator is OutputOperator.REGULAR_EXPRESSION:
            try:
                re.compile(self.text)
            except re.error as exc:
                raise ValueError(f"invalid regular expression {self.text!r}: {exc}") from exc
        return self


class ScriptErrorNotification(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    criterion: Optional[ResultCodeCriterion] = None


class ScriptResultCondition(_Variant):
    kind: Literal[ConditionKind.SCRIPT_RESULT_CONDITION] = ConditionKind.SCRIPT_RESULT_CONDITION
    script: str = Field(..., min_length=1)
    parameters: ScriptParameters = Field(default_factory=ScriptParameters)
    run_every: Interval
    timeout: Interval
    result_code: ResultCodeCriterion = Field(default_factory=ResultCodeCriterion)
    with_output: Optional[OutputCriterion] = None
    script_error_notification: ScriptErrorNotification = Field(
        default_factory=ScriptErrorNotification
    )


# ---------------------------------------------------------------------------
# Software / uptime / events / services / SMART
# ---------------------------------------------------------------------------

class SoftwareCondition(_Variant):
    kind: Literal[ConditionKind.SOFTWARE] = ConditionKind.SOFTWARE
    presence: SoftwarePresence
    names: NameList


class SystemUptimeCondition(_Variant):
    kind: Literal[ConditionKind.SYSTEM_UPTIME] = ConditionKind.SYSTEM_UPTIME
    days: float = Field(..., gt=0, allow_inf_nan=False)


class EventTextOperator(str, Enum):
    CONTAINS = "Contains"
    DOES_NOT_CONTAIN = "Doesn't Contain"


class EventResultMode(str, Enum):
    ALL = "All"
    ANY = "Any"


class WindowsEventCondition(_Variant):
    kind: Literal[ConditionKind.WINDOWS_EVENT] = ConditionKind.WINDOWS_EVENT
    source: str = ""
    event_ids: List[int] = Field(default_factory=list)
    text_filters: List[str] = Field(default_factory=list)
    operator: EventTextOperator = EventTextOperator.CONTAINS
    result: EventResultMode = EventResultMode.ANY
    occurrence_count: bool = False
    trigger_count: int = Field(1, ge=1)
    within: FixedWindow

    @property
    def required_count(self) -> int:
        return self.trigger_count if self.occurrence_count else 1


class WindowsServiceCondition(_Variant):
    kind: Literal[ConditionKind.WINDOWS_SERVICE] = ConditionKind.WINDOWS_SERVICE
    services: NameList
    state: PresenceState
    system_uptime_delay: Optional[DurationWindow] = None
    ignore_if_disabled: bool = False
    ignore_if_manual: bool = False
    trigger_again: bool = False

    @field_validator("system_uptime_delay")
    @classmethod
    def _units(cls, v):
        return _require_units(v, _MINUTES_HOURS, "System_Uptime_Delay")


class WindowsSMARTStatusDegradedCondition(_Variant):
    kind: Literal[ConditionKind.WINDOWS_SMART_STATUS_DEGRADED] = (
        ConditionKind.WINDOWS_SMART_STATUS_DEGRADED
    )
    pred_fail: bool = False


Condition = Annotated[
    Union[
        AntivirusHealthCondition,
        BatteryMonitoringCondition,
        BitlockerStatusCondition,
        CPUCondition,
        CriticalEventsCondition,
        CustomFieldsCondition,
        DeviceDownCondition,
        DiskActiveTimeCondition,
        DiskFreeSpaceCondition,
        DiskTransferRateCondition,
        DiskUsageCondition,
        MemoryCondition,
        NetworkUtilizationCondition,
        OSPatchCVSSScoreCondition,
        PatchLastInstalledCondition,
        ProcessCondition,
        ProcessResourceCondition,
        RAIDHealthStatusCondition,
        RebootPendingCondition,
        ScriptResultCondition,
        SoftwareCondition,
        SystemUptimeCondition,
        WindowsEventCondition,
        WindowsServiceCondition,
        WindowsSMARTStatusDegradedCondition,
    ],
    Field(discriminator="kind"),
]
