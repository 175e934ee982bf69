import os
from typing import Dict


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y")


class Settings:
    """
    Centralized rmmwatch configuration.

    Backed by environment variables so one build can run against different
    policy directories and runtime feeds without code changes.

      - RMMWATCH_POLICY_DIR: directory of condition documents (*.toml)
      - RMMWATCH_TEMPLATE_PATH: option template used to validate enumerated keys
      - RMMWATCH_RUNTIME_DIR: JSON samples / custom fields / agent policies
      - RMMWATCH_AUDIT_LOG: JSONL file receiving transition events
      - RMMWATCH_TICK_SECONDS: evaluation loop period
      - RMMWATCH_DISPATCH_MAX_RETRIES: retries per dispatch target
      - RMMWATCH_CHANNELS: notification channels and their webhook targets
      - RMMWATCH_SCRIPT_DIR: scripts run by Script Result Conditions
      - RMMWATCH_WEBHOOK_TIMEOUT: HTTP timeout for webhook channels
      - RMMWATCH_LOG_LEVEL: root log level
      - OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector for traces
    """

    # ------------------------------------------------------------------
    # Policy documents
    # ------------------------------------------------------------------
    POLICY_DIR: str = os.getenv("RMMWATCH_POLICY_DIR", "policies")
    TEMPLATE_PATH: str = os.getenv("RMMWATCH_TEMPLATE_PATH", "")

    # ------------------------------------------------------------------
    # Runtime feeds and audit trail
    # ------------------------------------------------------------------
    RUNTIME_DIR: str = os.getenv("RMMWATCH_RUNTIME_DIR", "data/runtime")
    AUDIT_LOG_PATH: str = os.getenv("RMMWATCH_AUDIT_LOG", "data/audit/transitions.jsonl")

    # ------------------------------------------------------------------
    # Evaluation loop
    # ------------------------------------------------------------------
    # Must stay well under the smallest configured window (5 minutes).
    TICK_SECONDS: float = float(os.getenv("RMMWATCH_TICK_SECONDS", "30"))
    MIN_TICK_SECONDS: float = 1.0

    SCRIPT_DIR: str = os.getenv("RMMWATCH_SCRIPT_DIR", "scripts")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    DISPATCH_MAX_RETRIES: int = int(os.getenv("RMMWATCH_DISPATCH_MAX_RETRIES", "0"))
    # "Name" or "Name=https://hook", comma separated
    CHANNELS: str = os.getenv("RMMWATCH_CHANNELS", "Email,SMS")
    WEBHOOK_TIMEOUT: float = float(os.getenv("RMMWATCH_WEBHOOK_TIMEOUT", "5"))

    # ------------------------------------------------------------------
    # Logging / telemetry
    # ------------------------------------------------------------------
    LOG_LEVEL: str = os.getenv("RMMWATCH_LOG_LEVEL", "INFO")
    OTEL_ENABLED: bool = _env_flag("RMMWATCH_OTEL_ENABLED", "true")
    OTEL_ENDPOINT: str = os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "http://localhost:4317",
    )

    def channel_targets(self) -> Dict[str, str]:
        targets: Dict[str, str] = {}
        for item in self.CHANNELS.split(","):
            name, _, target = item.partition("=")
            if name.strip():
                targets[name.strip()] = target.strip()
        return targets

    def __init__(self) -> None:
        # Clamp rather than crash on a misconfigured environment.
        if self.TICK_SECONDS < self.MIN_TICK_SECONDS:
            self.TICK_SECONDS = self.MIN_TICK_SECONDS
        if self.DISPATCH_MAX_RETRIES < 0:
            self.DISPATCH_MAX_RETRIES = 0


settings = Settings()
