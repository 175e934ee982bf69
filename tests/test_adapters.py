import json

import pytest
import requests

from rmmwatch.errors import DispatchError, SampleUnavailableError
from rmmwatch.runtime.adapter import (
    FileAgentPolicyRegistry,
    FileCustomFieldStore,
    FileMetricsProvider,
)
from rmmwatch.schemas.binding import TargetScope
from rmmwatch.schemas.conditions import ConditionKind
from rmmwatch.schemas.dispatch import Notice, NoticeKind
from rmmwatch.schemas.samples import PercentSample
from rmmwatch.services.channels import LoggingChannel, WebhookChannel, channels_from_config

from conftest import minutes


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeSession:
    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json, timeout))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)


@pytest.fixture
def notice():
    return Notice(
        policy_id="High CPU",
        endpoint_id="srv-01",
        condition_kind=ConditionKind.CPU,
        kind=NoticeKind.TRIGGERED,
        severity="Critical",
        priority="High",
        timestamp=minutes(15),
        message="CPU condition met for High CPU",
        sampled_value=97.0,
    )


@pytest.fixture
def runtime_dir(tmp_path):
    (tmp_path / "samples").mkdir()
    (tmp_path / "agent_policies.json").write_text(
        json.dumps({"Servers": ["srv-01", "srv-02"], "Laptops": ["lt-1", "srv-01"]})
    )
    (tmp_path / "custom_fields.json").write_text(json.dumps({"srv-01": {"Backup": "nightly"}}))
    (tmp_path / "samples" / "srv-01.json").write_text(
        json.dumps({"CPU": {"percent": 42.5}, "Memory": {"used": "lots"}})
    )
    return tmp_path


def test_webhook_posts_notice_json(notice):
    session = FakeSession()
    WebhookChannel("Teams", "https://hooks.example.test/rmm", timeout=2, session=session).send(notice)
    ((url, body, timeout),) = session.posts
    assert url == "https://hooks.example.test/rmm"
    assert body["policy_id"] == "High CPU"
    assert body["condition_kind"] == "CPU"
    assert body["timestamp"].startswith("2026-01-05T09:15:00")
    assert timeout == 2


def test_webhook_http_error(notice):
    channel = WebhookChannel("Teams", "https://hooks.example.test/rmm", session=FakeSession(502))
    with pytest.raises(DispatchError, match="HTTP 502"):
        channel.send(notice)


def test_webhook_connection_error(notice):
    session = FakeSession(error=requests.exceptions.ConnectionError("refused"))
    channel = WebhookChannel("Teams", "https://hooks.example.test/rmm", session=session)
    with pytest.raises(DispatchError, match="webhook request failed"):
        channel.send(notice)


def test_channels_from_config():
    channels = list(channels_from_config({"Email": "", "Teams": "https://hooks.example.test/rmm"}))
    assert isinstance(channels[0], LoggingChannel)
    assert isinstance(channels[1], WebhookChannel)
    assert [c.name for c in channels] == ["Email", "Teams"]


def test_file_agent_policies(runtime_dir):
    registry = FileAgentPolicyRegistry(runtime_dir)
    assert registry.endpoints_for(TargetScope(agent_policy="Servers")) == ["srv-01", "srv-02"]
    assert registry.endpoints_for(TargetScope()) == ["srv-01", "srv-02", "lt-1"]
    assert registry.endpoints_for(TargetScope(agent_policy="Kiosks")) == []


def test_file_custom_fields(runtime_dir):
    store = FileCustomFieldStore(runtime_dir)
    assert store.get("srv-01", "Backup") == "nightly"
    assert store.get("srv-01", "Missing") is None
    assert store.get("srv-02", "Backup") is None


def test_file_metrics(runtime_dir):
    provider = FileMetricsProvider(runtime_dir)
    assert provider.sample("srv-01", ConditionKind.CPU) == PercentSample(percent=42.5)

    with pytest.raises(SampleUnavailableError):
        provider.sample("srv-02", ConditionKind.CPU)
    with pytest.raises(SampleUnavailableError):
        provider.sample("srv-01", ConditionKind.DISK_USAGE)
    with pytest.raises(SampleUnavailableError):
        provider.sample("srv-01", ConditionKind.MEMORY)


def test_file_metrics_unreadable_feed(runtime_dir):
    (runtime_dir / "samples" / "srv-01.json").write_text("{not json")
    with pytest.raises(SampleUnavailableError):
        FileMetricsProvider(runtime_dir).sample("srv-01", ConditionKind.CPU)
