"""
Observation models produced by the live-metrics provider, one per condition
kind. Custom Fields read the custom-field store instead of a sample, and
Script Result Conditions consume a ScriptOutcome from the script executor.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Type

from pydantic import BaseModel, Field

from .conditions import ConditionKind, PatchType


class _Sample(BaseModel):
    pass


class PercentSample(_Sample):
    percent: float


class MemorySample(_Sample):
    used_percent: float
    used_bytes: float = Field(..., ge=0)


class VolumeInfo(BaseModel):
    label: str = ""
    is_boot: bool = False
    is_removable: bool = False
    total_bytes: float = Field(..., ge=0)
    free_bytes: float = Field(..., ge=0)

    @property
    def used_bytes(self) -> float:
        return max(self.total_bytes - self.free_bytes, 0.0)

    @property
    def free_percent(self) -> float:
        if not self.total_bytes:
            return 0.0
        return self.free_bytes / self.total_bytes * 100.0

    @property
    def used_percent(self) -> float:
        if not self.total_bytes:
            return 0.0
        return self.used_bytes / self.total_bytes * 100.0


class DiskSpaceSample(_Sample):
    volumes: List[VolumeInfo] = Field(default_factory=list)
    uptime_seconds: Optional[float] = None


class TransferRateSample(_Sample):
    read_bps: float = Field(0.0, ge=0)
    write_bps: float = Field(0.0, ge=0)


class NetworkSample(_Sample):
    in_bps: float = Field(0.0, ge=0)
    out_bps: float = Field(0.0, ge=0)


class AntivirusProduct(BaseModel):
    name: str
    enabled: bool = True
    up_to_date: bool = True
    is_defender: bool = False


class AntivirusSample(_Sample):
    products: List[AntivirusProduct] = Field(default_factory=list)


class BatterySample(_Sample):
    charge_percent: Optional[float] = None
    capacity_percent: Optional[float] = None
    cycle_count: Optional[int] = None


class BitlockerVolume(BaseModel):
    label: str = ""
    is_boot: bool = False
    is_removable: bool = False
    protection_enabled: bool = False
    locked: bool = False


class BitlockerSample(_Sample):
    volumes: List[BitlockerVolume] = Field(default_factory=list)


class EventLevel(str, Enum):
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class LoggedEvent(BaseModel):
    source: str = ""
    event_id: int = 0
    level: EventLevel = EventLevel.INFORMATION
    message: str = ""
    timestamp: datetime


class EventLogSample(_Sample):
    events: List[LoggedEvent] = Field(default_factory=list)


class DeviceStatusSample(_Sample):
    online: bool
    last_seen: Optional[datetime] = None


class PendingPatch(BaseModel):
    title: str = ""
    cvss_score: float = Field(..., ge=0, le=10)
    pending_since: datetime
    rejected: bool = False


class PatchInstall(BaseModel):
    patch_type: PatchType
    installed_at: datetime
    via_update_engine: bool = True


class PatchSample(_Sample):
    pending: List[PendingPatch] = Field(default_factory=list)
    installs: List[PatchInstall] = Field(default_factory=list)


class ProcessInfo(BaseModel):
    name: str
    running: bool = True
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    memory_bytes: float = 0.0


class ProcessSample(_Sample):
    processes: List[ProcessInfo] = Field(default_factory=list)
    uptime_seconds: Optional[float] = None


class RaidFault(str, Enum):
    NONE = "none"
    NON_CRITICAL = "non_critical"
    CRITICAL = "critical"


class RaidSample(_Sample):
    controller: RaidFault = RaidFault.NONE
    virtual_drives: RaidFault = RaidFault.NONE
    physical_drives: RaidFault = RaidFault.NONE
    battery_backup: RaidFault = RaidFault.NONE


class RebootSample(_Sample):
    reboot_pending_since: Optional[datetime] = None
    user_idle_seconds: Optional[float] = None


class SoftwareSample(_Sample):
    installed: List[str] = Field(default_factory=list)


class UptimeSample(_Sample):
    uptime_seconds: float = Field(..., ge=0)


class ServiceStartType(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    DISABLED = "disabled"


class ServiceInfo(BaseModel):
    name: str
    running: bool = False
    start_type: ServiceStartType = ServiceStartType.AUTOMATIC


class ServiceSample(_Sample):
    services: List[ServiceInfo] = Field(default_factory=list)
    uptime_seconds: Optional[float] = None


class SmartDisk(BaseModel):
    name: str = ""
    status_ok: bool = True
    predict_failure: bool = False


class SmartSample(_Sample):
    disks: List[SmartDisk] = Field(default_factory=list)


class ScriptOutcome(BaseModel):
    exit_code: int
    output: str = ""


SAMPLE_TYPES: Dict[ConditionKind, Type[BaseModel]] = {
    ConditionKind.ANTIVIRUS_HEALTH: AntivirusSample,
    ConditionKind.BATTERY_MONITORING: BatterySample,
    ConditionKind.BITLOCKER_STATUS: BitlockerSample,
    ConditionKind.CPU: PercentSample,
    ConditionKind.CRITICAL_EVENTS: EventLogSample,
    ConditionKind.DEVICE_DOWN: DeviceStatusSample,
    ConditionKind.DISK_ACTIVE_TIME: PercentSample,
    ConditionKind.DISK_FREE_SPACE: DiskSpaceSample,
    ConditionKind.DISK_TRANSFER_RATE: TransferRateSample,
    ConditionKind.DISK_USAGE: DiskSpaceSample,
    ConditionKind.MEMORY: MemorySample,
    ConditionKind.NETWORK_UTILIZATION: NetworkSample,
    ConditionKind.OS_PATCH_CVSS_SCORE: PatchSample,
    ConditionKind.PATCH_LAST_INSTALLED: PatchSample,
    ConditionKind.PROCESS: ProcessSample,
    ConditionKind.PROCESS_RESOURCE: ProcessSample,
    ConditionKind.RAID_HEALTH_STATUS: RaidSample,
    ConditionKind.REBOOT_PENDING: RebootSample,
    ConditionKind.SOFTWARE: SoftwareSample,
    ConditionKind.SYSTEM_UPTIME: UptimeSample,
    ConditionKind.WINDOWS_EVENT: EventLogSample,
    ConditionKind.WINDOWS_SERVICE: ServiceSample,
    ConditionKind.WINDOWS_SMART_STATUS_DEGRADED: SmartSample,
}
