from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

logger = logging.getLogger("rmmwatch.audit")


class AuditLogger:
    """
    Append-only JSONL trail of transition and script-error events.

    Each record is one line: ``{"type": <record type>, **event}``.
    """

    def __init__(self, log_path: str):
        self.log_path = log_path
        self._lock = threading.Lock()
        directory = os.path.dirname(log_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def write_event(self, event: Union[BaseModel, Dict[str, Any]], record_type: Optional[str] = None) -> None:
        if isinstance(event, BaseModel):
            payload = event.model_dump(mode="json")
            record_type = record_type or type(event).__name__
        else:
            payload = dict(event)
        if record_type:
            payload = {"type": record_type, **payload}
        line = json.dumps(payload, ensure_ascii=False)
        with self._lock:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read_last_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent ``limit`` records, oldest first; unreadable lines are skipped."""
        if not os.path.exists(self.log_path):
            return []

        with self._lock:
            with open(self.log_path, "r", encoding="utf-8") as f:
                lines = f.readlines()

        events: List[Dict[str, Any]] = []
        for line in lines[-limit:]:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed audit line in %s", self.log_path)
        return events
