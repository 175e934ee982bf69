"""
Concrete notification targets.

Channels are addressed by name from a binding's Channels list; a
ChannelRegistry resolves the name at dispatch time.
"""

from __future__ import annotations

import itertools
import logging
from typing import Dict, Iterable, Optional

import requests

from rmmwatch.config import settings
from rmmwatch.errors import DispatchError
from rmmwatch.schemas.dispatch import Notice, NoticeKind

logger = logging.getLogger("rmmwatch.channels")


class LoggingChannel:
    """Writes notices to the ``rmmwatch.notices`` logger."""

    def __init__(self, name: str):
        self.name = name
        self._log = logging.getLogger("rmmwatch.notices")

    def send(self, notice: Notice) -> None:
        level = logging.INFO if notice.kind is NoticeKind.RESET else logging.WARNING
        self._log.log(
            level,
            "[%s] %s %s@%s severity=%s priority=%s: %s",
            self.name,
            notice.kind.value,
            notice.policy_id,
            notice.endpoint_id,
            notice.severity,
            notice.priority,
            notice.message,
        )


class WebhookChannel:
    """POSTs the notice as JSON; any non-2xx answer is a DispatchError."""

    def __init__(self, name: str, url: str, timeout: Optional[float] = None, session=None):
        self.name = name
        self.url = url
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT
        self._session = session or requests.Session()

    def send(self, notice: Notice) -> None:
        try:
            resp = self._session.post(
                self.url,
                json=notice.model_dump(mode="json"),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise DispatchError("channel", self.name, f"webhook request failed: {exc}") from exc

        if resp.status_code >= 300:
            raise DispatchError("channel", self.name, f"webhook answered HTTP {resp.status_code}")


class LoggingTechnicianNotifier:
    def notify(self, notice: Notice) -> None:
        logger.info(
            "Technicians notified: %s %s@%s", notice.kind.value, notice.policy_id, notice.endpoint_id
        )


class LoggingTicketingSystem:
    """Ticketing stand-in that logs ticket creation and closure."""

    def __init__(self):
        self._ids = itertools.count(1)

    def create(self, template: str, notice: Notice) -> str:
        ticket_id = f"RMM-{next(self._ids)}"
        logger.info(
            "Ticket %s created from template %r for %s@%s",
            ticket_id,
            template,
            notice.policy_id,
            notice.endpoint_id,
        )
        return ticket_id

    def close(self, ticket_id: str, notice: Notice) -> None:
        logger.info("Ticket %s closed (%s)", ticket_id, notice.kind.value)


def channels_from_config(config: Dict[str, str]) -> Iterable:
    """
    Build channels from ``{name: target}``; targets starting with http(s)://
    become webhooks, anything else a logging channel.
    """
    for name, target in config.items():
        if target.startswith(("http://", "https://")):
            yield WebhookChannel(name, target)
        else:
            yield LoggingChannel(name)
