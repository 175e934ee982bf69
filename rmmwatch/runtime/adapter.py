"""
File-backed collaborators reading JSON feeds from the runtime directory.

    <runtime>/agent_policies.json      {"<agent policy>": ["<endpoint>", ...]}
    <runtime>/custom_fields.json       {"<endpoint>": {"<field>": <value>}}
    <runtime>/samples/<endpoint>.json  {"<ConditionKind value>": {<sample>}}

Files are re-read on every call so external collectors can rewrite them
between ticks.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ValidationError

from rmmwatch.config import settings
from rmmwatch.errors import SampleUnavailableError
from rmmwatch.schemas.binding import TargetScope
from rmmwatch.schemas.conditions import ConditionKind
from rmmwatch.schemas.samples import SAMPLE_TYPES

from .registries import StaticAgentPolicyRegistry

logger = logging.getLogger("rmmwatch.adapter")


def _load_json(p: Path) -> Optional[Any]:
    if not p.exists():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Unreadable runtime file %s: %s", p, exc)
        return None


def _runtime_dir(runtime_dir: Union[str, Path, None]) -> Path:
    return Path(runtime_dir or settings.RUNTIME_DIR)


class FileAgentPolicyRegistry:
    def __init__(self, runtime_dir: Union[str, Path, None] = None):
        self.path = _runtime_dir(runtime_dir) / "agent_policies.json"

    def endpoints_for(self, scope: TargetScope) -> List[str]:
        policies = _load_json(self.path) or {}
        return StaticAgentPolicyRegistry(policies).endpoints_for(scope)


class FileCustomFieldStore:
    def __init__(self, runtime_dir: Union[str, Path, None] = None):
        self.path = _runtime_dir(runtime_dir) / "custom_fields.json"

    def get(self, endpoint_id: str, field: str) -> Optional[Any]:
        values = _load_json(self.path) or {}
        return (values.get(endpoint_id) or {}).get(field)


class FileMetricsProvider:
    def __init__(self, runtime_dir: Union[str, Path, None] = None):
        self.samples_dir = _runtime_dir(runtime_dir) / "samples"

    def sample(self, endpoint_id: str, kind: ConditionKind) -> BaseModel:
        sample_type = SAMPLE_TYPES.get(kind)
        if sample_type is None:
            raise SampleUnavailableError(endpoint_id, kind.value, "kind has no metric sample")

        feed = _load_json(self.samples_dir / f"{endpoint_id}.json")
        if not isinstance(feed, dict) or kind.value not in feed:
            raise SampleUnavailableError(endpoint_id, kind.value)

        try:
            return sample_type.model_validate(feed[kind.value])
        except ValidationError as exc:
            raise SampleUnavailableError(
                endpoint_id, kind.value, f"malformed sample: {exc.error_count()} error(s)"
            ) from exc
