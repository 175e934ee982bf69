import pytest

from rmmwatch.dsl.loader import load_binding, load_binding_file, validate_document
from rmmwatch.errors import ConfigurationError
from rmmwatch.schemas.binding import Priority, Severity
from rmmwatch.schemas.common import (
    ByteUnit,
    CapacityUnit,
    FixedWindow,
    Operator,
    ResetInterval,
    ResultCodeOperator,
    TimeUnit,
)
from rmmwatch.schemas.conditions import (
    ConditionKind,
    FieldComparator,
    FieldType,
    OutputOperator,
    PresenceState,
    RaidSeverity,
    RunAs,
)
from rmmwatch.schemas.dispatch import TechnicianMode, TicketingMode, TicketingRule

from conftest import CPU_DOCUMENT


def _doc(condition: str, body: str, general: str = 'Name = "P1"') -> str:
    return f"""
[Condition]
Agent_Policy = "Servers"
Condition = "{condition}"

{body}

[General]
{general}
"""


def test_cpu_document_loads(cpu_binding):
    b = cpu_binding
    assert b.policy_id == "High CPU"
    assert b.kind is ConditionKind.CPU
    assert b.target_scope.agent_policy == "Servers"
    assert b.condition.operator is Operator.GTE
    assert b.condition.threshold_percent == 90.0
    assert b.condition.duration is FixedWindow.FIFTEEN_MINUTES
    assert b.severity is Severity.CRITICAL
    assert b.priority is Priority.HIGH
    assert b.auto_reset.enabled is False


def test_cpu_document_dispatch(cpu_binding):
    d = cpu_binding.dispatch
    assert d.channels == ["Email", "SMS"]
    assert d.technician_mode is TechnicianMode.SENT
    assert d.ticketing.mode is TicketingMode.CREATE
    assert d.ticketing.template_ref == "Server Alerts"
    assert d.ticketing.rule is TicketingRule.OFF
    assert d.automations == []


def test_defaults_when_optional_sections_are_absent():
    b = load_binding(
        _doc("System Uptime", '[Condition.System_Uptime]\nDays = "30"')
    )
    assert b.severity is Severity.NONE
    assert b.priority is Priority.NONE
    assert b.dispatch.channels == []
    assert b.dispatch.technician_mode is TechnicianMode.SUPPRESSED
    assert b.dispatch.ticketing.mode is TicketingMode.DISABLED
    assert b.dispatch.ticketing.effective_template is None


def test_unknown_operator_reports_location():
    text = CPU_DOCUMENT.replace("greater than or equal to", "bigger than")
    with pytest.raises(ConfigurationError) as excinfo:
        load_binding(text)
    assert excinfo.value.location == "Condition.CPU.Operator"


def test_missing_name_is_rejected():
    text = CPU_DOCUMENT.replace('Name = "High CPU"', "")
    with pytest.raises(ConfigurationError) as excinfo:
        load_binding(text)
    assert excinfo.value.location == "General.Name"


def test_unselected_option_list_is_rejected():
    text = CPU_DOCUMENT.replace("After = false", "After = false / true")
    with pytest.raises(ConfigurationError) as excinfo:
        load_binding(text)
    assert excinfo.value.location == "General.Auto-reset.After"
    assert "unselected" in excinfo.value.message


def test_conflicting_variant_sections_are_rejected():
    text = CPU_DOCUMENT + '\n[Condition.Memory]\nOperator = "less than"\n'
    with pytest.raises(ConfigurationError) as excinfo:
        load_binding(text)
    assert excinfo.value.location == "Condition"
    assert "Memory" in str(excinfo.value)


def test_kind_inferred_from_single_variant_section():
    text = """
[Condition]
Agent_Policy = "Servers"

[Condition.Windows_SMART_Status_Degraded]
Pred_Fail = true

[General]
Name = "SMART"
"""
    b = load_binding(text)
    assert b.kind is ConditionKind.WINDOWS_SMART_STATUS_DEGRADED
    assert b.condition.pred_fail is True


def test_schema_violation_carries_source_and_field():
    text = CPU_DOCUMENT.replace('Threshold_Percent = "90"', 'Threshold_Percent = "-5"')
    with pytest.raises(ConfigurationError) as excinfo:
        load_binding(text, source="cpu.toml")
    assert excinfo.value.location.startswith("cpu.toml:")
    assert "threshold_percent" in excinfo.value.location


def test_auto_reset_needs_a_trigger():
    text = CPU_DOCUMENT.replace("After = false", "After = true")
    with pytest.raises(ConfigurationError):
        load_binding(text)


def test_auto_reset_with_interval_and_notify_on_reset():
    text = CPU_DOCUMENT.replace(
        "After = false",
        'After = true\nReset_Interval = "90 seconds"\nWhen_no_longer_met = true',
    ).replace('Channels = "Email, SMS, Email"', 'Channels = "Email"\nNotify_on_reset = true')
    ar = load_binding(text).auto_reset
    assert ar.enabled
    assert ar.reset_interval is ResetInterval.SECONDS_90
    assert ar.effective_interval.total_seconds == 90
    assert ar.resets_when_cleared
    assert ar.effective_notify_on_reset


def test_notify_on_reset_ignored_while_auto_reset_disabled():
    text = CPU_DOCUMENT.replace(
        'Channels = "Email, SMS, Email"', 'Channels = "Email"\nNotify_on_reset = true'
    )
    b = load_binding(text)
    assert b.auto_reset.effective_notify_on_reset is False


def test_disk_free_space_threshold_and_volumes():
    body = """
[Condition.Disk_Free_Space]
Operator = "less than"
Threshold = "15 Gigabyte"
Duration = "10 minutes"
System_Uptime_Delay = "5 minutes"
Volume_labels_mode = "Exclude"
Exclude_volume_labels = "Backup, Scratch"
Exclude_removable_disks = true
"""
    c = load_binding(_doc("Disk Free Space", body)).condition
    assert c.threshold.unit is CapacityUnit.GIGABYTE
    assert c.threshold.base_value == 15 * 1024 ** 3
    assert c.duration.unit is TimeUnit.MINUTES
    assert c.system_uptime_delay.total_seconds == 300
    assert c.volumes.exclude_volume_labels == ["Backup", "Scratch"]
    assert c.volumes.exclude_removable_disks is True


def test_disk_duration_rejects_days():
    body = """
[Condition.Disk_Usage]
Operator = "greater than"
Threshold = "90 Percent (%)"
Duration = "2 days"
"""
    with pytest.raises(ConfigurationError):
        load_binding(_doc("Disk Usage", body))


def test_memory_byte_arm():
    body = """
[Condition.Memory]
Operator = "greater than"
Unit = "Byte"
Duration = "5 minutes"

[Condition.Memory.Unit.Byte]
Threshold_Bytes = "12"
Unit_Bytes = "Giga"
"""
    c = load_binding(_doc("Memory", body)).condition
    assert c.unit.arm == "Byte"
    assert c.unit.unit_bytes is ByteUnit.GIGA
    assert c.unit.threshold.base_value == 12 * 1073741824


def test_custom_field_clause_groups():
    body = """
[Condition.Custom_Fields]

[Condition.Custom_Fields.Custom_field_value_must_meet_all_conditions]
Custom_field = "Owner"
Condition = "Equals"
Text = "ops"

[Condition.Custom_Fields.Custom_field_value_must_meet_all_conditions]
Custom_field = "Managed"
Field_Type = "Checkbox"
Condition = "Equals"
Checkbox_value = true

[Condition.Custom_Fields.Custom_field_value_must_meet_any_conditions]
Custom_field = "Tier"
Condition = "Exists"
"""
    c = load_binding(_doc("Custom Fields", body)).condition
    assert [cl.custom_field for cl in c.all_of.clauses] == ["Owner", "Managed"]
    assert c.all_of.clauses[1].field_type is FieldType.CHECKBOX
    assert c.all_of.clauses[1].value is True
    assert c.any_of.clauses[0].comparator is FieldComparator.EXISTS
    assert c.any_of.clauses[0].value is None


def test_checkbox_rejects_contains():
    body = """
[Condition.Custom_Fields.Custom_field_value_must_meet_all_conditions]
Custom_field = "Managed"
Field_Type = "Checkbox"
Condition = "Contains"
Checkbox_value = true
"""
    with pytest.raises(ConfigurationError):
        load_binding(_doc("Custom Fields", body))


def test_raid_and_process_documents():
    raid = load_binding(
        _doc(
            "RAID Health Status",
            '[Condition.RAID_Health_Status]\nController = "Critical Only"\n'
            'Physical_Drives = "Critical and Non-Critical"',
        )
    ).condition
    assert raid.controller is RaidSeverity.CRITICAL_ONLY
    assert raid.virtual_drives is RaidSeverity.IGNORE
    assert raid.physical_drives is RaidSeverity.CRITICAL_AND_NON_CRITICAL

    process = load_binding(
        _doc("Process", '[Condition.Process]\nProcess = "nginx, redis"\nState = "down"')
    ).condition
    assert process.processes == ["nginx", "redis"]
    assert process.state is PresenceState.DOWN


@pytest.mark.parametrize("key", ["Ninja_Update_Engine_Only", "Update_Engine_Only"])
def test_patch_last_installed_update_engine_key(key):
    body = f"""
[Condition.Patch_Last_Installed]
Patch_Type = "Operating System"
Days = "30"
{key} = true
"""
    c = load_binding(_doc("Patch Last Installed", body)).condition
    assert c.days.value == "30"
    assert c.update_engine_only is True


def test_reboot_pending_reads_duration_after_each_flag():
    body = """
[Condition.Reboot_Pending]
Reboot_has_been_pending_for_a_time_period = true
Duration = "2 Days"
Users_have_been_idle_for_a_time_period = true
Duration = "30 Minutes"
"""
    c = load_binding(_doc("Reboot Pending", body)).condition
    assert c.pending_for.total_seconds == 2 * 86400
    assert c.users_idle_for.total_seconds == 30 * 60


def test_windows_event_document():
    body = """
[Condition.Windows_Event]
Source_Provider_Name = "Service Control Manager"
Event_IDs = "7031, 7034"
Text = "terminated, unexpectedly"
Operator = "Contains"
Result = "All"
Occurrence_count = true
If_the_events_trigger = "3 times or more"
within = "15 minutes"
"""
    c = load_binding(_doc("Windows Event", body)).condition
    assert c.event_ids == [7031, 7034]
    assert c.text_filters == ["terminated", "unexpectedly"]
    assert c.required_count == 3
    assert c.within is FixedWindow.FIFTEEN_MINUTES


def test_legacy_text_operator_aliases():
    body = """
[Condition.Script_Result_Condition]

[Condition.Script_Result_Condition.Evaluation_script]
Evaluation_script = "check.sh"

[Condition.Script_Result_Condition.Run_Every]
Minutes = "5"

[Condition.Script_Result_Condition.Timeout]
Minutes = "2"

[Condition.Script_Result_Condition.With_Output]
Text = "OK"
Operator = "Stats"
"""
    c = load_binding(_doc("Script Result Condition", body)).condition
    assert c.with_output.operator is OutputOperator.STARTS_WITH


def test_script_result_document():
    body = """
[Condition.Script_Result_Condition]

[Condition.Script_Result_Condition.Evaluation_script]
Evaluation_script = "check_backup.ps1"

[Condition.Script_Result_Condition.Evaluation_script.Parameters]
Run_As = "Current Logged on User"
Preset_Parameter = "-Verbose"
Parameter2 = "b"
Parameter1 = "a"

[Condition.Script_Result_Condition.Run_Every]
Hour = "1"
Minutes = "30"

[Condition.Script_Result_Condition.Timeout]
Hour = ""
Minutes = "2"

[Condition.Script_Result_Condition.Result_Code]
Operator = "not equal to"
Result_Code = "0"

[Condition.Script_Result_Condition.Script_error_notification]
Script_error_notification = true
Operator = "greater than"
Result_Code = "100"
"""
    c = load_binding(_doc("Script Result Condition", body)).condition
    assert c.script == "check_backup.ps1"
    assert c.parameters.run_as is RunAs.CURRENT_USER
    assert c.parameters.preset_parameter == "-Verbose"
    assert c.parameters.parameters == ["a", "b"]
    assert c.run_every.total_seconds == 5400
    assert c.timeout.total_seconds == 120
    assert c.result_code.operator is ResultCodeOperator.NEQ
    assert c.result_code.result_code == 0
    assert c.with_output is None
    assert c.script_error_notification.enabled
    assert c.script_error_notification.criterion.result_code == 100


def test_automations_and_default_ticket_rule():
    text = CPU_DOCUMENT.replace(
        'ConnectWise = "Create a ticket"',
        'ConnectWise = "Do not create a ticket"\nTicketing_Rule = "Create with Default"',
    ) + """
[Automations]

[Automations.Automation]
Name = "Restart Service"

[Automations.Automation.Parameters]
Run_As = "System"
Parameter1 = "spooler"

[Automations.Automation]
Name = "Collect Logs"
"""
    d = load_binding(text).dispatch
    assert [a.name for a in d.automations] == ["Restart Service", "Collect Logs"]
    assert d.automations[0].parameters == ["spooler"]
    assert d.automations[1].parameters == []
    assert d.ticketing.effective_template == "default"


def test_ticket_mode_requires_template():
    text = CPU_DOCUMENT.replace('Ticket_Template = "Server Alerts"', 'Ticket_Template = ""')
    with pytest.raises(ConfigurationError):
        load_binding(text)


def test_validate_document_and_file(tmp_path):
    assert validate_document(CPU_DOCUMENT) == []
    errors = validate_document(CPU_DOCUMENT.replace('Severity = "Critical"', 'Severity = "Loud"'))
    assert len(errors) == 1
    assert errors[0].startswith("General.Severity:")

    path = tmp_path / "cpu.toml"
    path.write_text(CPU_DOCUMENT, encoding="utf-8")
    assert load_binding_file(path).policy_id == "High CPU"
