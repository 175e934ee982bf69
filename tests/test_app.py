import pytest
from fastapi.testclient import TestClient

from rmmwatch.app import create_app
from rmmwatch.runtime.audit_logger import AuditLogger
from rmmwatch.schemas.conditions import ConditionKind
from rmmwatch.schemas.samples import PercentSample

from conftest import CPU_DOCUMENT, Harness, write_policy


@pytest.fixture
def harness(tmp_path):
    policy_dir = tmp_path / "policies"
    policy_dir.mkdir()
    write_policy(policy_dir, "cpu.toml", CPU_DOCUMENT)
    # One tick covers the whole 15 minute window.
    return Harness(policy_dir, tick_seconds=900)


@pytest.fixture
def client(harness, tmp_path):
    engine = harness.engine(audit=AuditLogger(str(tmp_path / "audit.jsonl")))
    with TestClient(create_app(engine=engine, start_loop=False)) as c:
        yield c


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_status_after_startup_load(client):
    body = client.get("/v1/policy/status").json()
    assert body["generation"] == 1
    assert body["running"] is False
    (summary,) = body["bindings"]
    assert summary["policy_id"] == "High CPU"
    assert summary["condition_kind"] == "CPU"
    assert summary["agent_policy"] == "Servers"
    assert summary["source"].endswith("cpu.toml")


def test_validate_valid_document(client):
    r = client.post("/v1/policy/validate", json={"document": CPU_DOCUMENT})
    body = r.json()
    assert body["valid"] is True
    assert body["policy_id"] == "High CPU"
    assert 'Threshold_Percent = "90"' in body["normalized"]


def test_validate_invalid_document(client):
    r = client.post(
        "/v1/policy/validate",
        json={"document": CPU_DOCUMENT.replace('"greater than or equal to"', '"roughly"')},
    )
    body = r.json()
    assert r.status_code == 200
    assert body["valid"] is False
    assert "Condition.CPU.Operator" in body["errors"][0]


def test_reload_reports_errors_and_keeps_bindings(client, harness):
    write_policy(harness.policy_dir, "broken.toml", "[General]\nName = \"Broken\"\n")
    body = client.post("/v1/policy/reload").json()
    assert body["ok"] is False
    assert body["policy_count"] == 1
    assert body["errors"]


def test_evaluate_endpoint_activates_and_dispatches(client, harness):
    harness.metrics.set("srv-01", ConditionKind.CPU, PercentSample(percent=97))

    body = client.post("/v1/endpoints/srv-01/evaluate").json()

    (transition,) = body["transitions"]
    assert transition["new_state"] == "active"
    (report,) = body["dispatches"]
    assert report["ticket_id"] == "T-1"
    assert len(harness.email.notices) == 1

    audit = client.get("/v1/policy/audit", params={"limit": 5}).json()
    assert [r["new_state"] for r in audit] == ["active"]


def test_reset_binding(client, harness):
    harness.metrics.set("srv-01", ConditionKind.CPU, PercentSample(percent=97))
    client.post("/v1/endpoints/srv-01/evaluate")

    body = client.post("/v1/bindings/High CPU/endpoints/srv-01/reset").json()

    assert body["state"] == "inactive"
    assert [t["cause"] for t in body["transitions"]] == ["manual_reset", "reset_complete"]
    assert body["dispatches"] == []


def test_reset_unknown_binding(client):
    r = client.post("/v1/bindings/nope/endpoints/srv-01/reset")
    assert r.status_code == 404


def test_repeated_evaluate_requests_do_not_fill_the_window(tmp_path):
    policy_dir = tmp_path / "minute-ticks"
    policy_dir.mkdir()
    write_policy(policy_dir, "cpu.toml", CPU_DOCUMENT)
    harness = Harness(policy_dir, tick_seconds=60)
    harness.metrics.set("srv-01", ConditionKind.CPU, PercentSample(percent=97))

    with TestClient(create_app(engine=harness.engine(), start_loop=False)) as c:
        bodies = [c.post("/v1/endpoints/srv-01/evaluate").json() for _ in range(15)]
        states = c.get("/v1/policy/status").json()["states"]

    assert all(body["transitions"] == [] for body in bodies)
    assert harness.email.notices == []
    (row,) = states
    assert row["state"] == "inactive"
    assert row["window_progress"] == 1
