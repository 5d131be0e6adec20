"""Notification sinks for system messages posted after fixture events."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Protocol, Tuple

import httpx


logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def post_system_message(self, tenant_id: str, content: str) -> None:
        ...


def teams_published_message(match_date: date) -> str:
    return f"Teams published for {match_date.strftime('%A')}'s match!"


class LoggingNotificationSink:
    """Records messages in memory and writes them to the log."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def post_system_message(self, tenant_id: str, content: str) -> None:
        self.messages.append((tenant_id, content))
        logger.info("System message for tenant %s: %s", tenant_id, content)


class HttpNotificationSink:
    """Posts system messages to a webhook as JSON."""

    def __init__(self, url: str, *, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def post_system_message(self, tenant_id: str, content: str) -> None:
        payload = {"tenant_id": tenant_id, "content": content, "type": "system"}
        if self._client is not None:
            resp = self._client.post(self.url, json=payload, timeout=self.timeout)
        else:
            resp = httpx.post(self.url, json=payload, timeout=self.timeout)
        resp.raise_for_status()


def send_quietly(sink: Optional[NotificationSink], tenant_id: str, content: str) -> bool:
    """Deliver ``content`` without letting a sink failure reach the caller."""

    if sink is None:
        return False
    try:
        sink.post_system_message(tenant_id, content)
    except Exception as exc:  # noqa: BLE001 - delivery is best effort
        logger.warning("Notification for tenant %s failed: %s", tenant_id, exc)
        return False
    return True
