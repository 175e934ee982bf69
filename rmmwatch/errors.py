"""
Exception taxonomy shared by the loader, the evaluation engine and dispatch.

  - ConfigurationError: a condition document violates the schema. Raised at
    load time; the binding never activates.
  - SampleUnavailableError: a metric source cannot produce a value this tick.
  - ScriptExecutionError: a Script Result Condition script failed to launch,
    timed out, or returned an error result code.
  - DispatchError: a notification, ticket or automation target failed.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class RmmWatchError(Exception):
    """Base class for every error raised by rmmwatch."""


class ConfigurationError(RmmWatchError):
    def __init__(self, message: str, *, location: Optional[str] = None) -> None:
        self.location = location
        self.message = message
        super().__init__(f"{location}: {message}" if location else message)


class SampleUnavailableError(RmmWatchError):
    def __init__(self, endpoint_id: str, kind: str, reason: str = "no sample") -> None:
        self.endpoint_id = endpoint_id
        self.kind = kind
        self.reason = reason
        super().__init__(f"sample unavailable for {kind} on {endpoint_id}: {reason}")


class ScriptFailureReason(str, Enum):
    LAUNCH_FAILED = "launch_failed"
    TIMEOUT = "timeout"
    ERROR_RESULT_CODE = "error_result_code"


class ScriptExecutionError(RmmWatchError):
    def __init__(
        self,
        script: str,
        reason: ScriptFailureReason,
        detail: str = "",
        exit_code: Optional[int] = None,
    ) -> None:
        self.script = script
        self.reason = reason
        self.detail = detail
        self.exit_code = exit_code
        message = f"script {script!r} failed ({reason.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DispatchError(RmmWatchError):
    def __init__(self, target_kind: str, target: str, detail: str) -> None:
        self.target_kind = target_kind
        self.target = target
        self.detail = detail
        super().__init__(f"{target_kind} {target!r}: {detail}")
