"""Outbound session notifications.

Notifiers are fire-and-forget: ``send`` never raises, failures are logged and
not retried. The orchestrator schedules sends as background tasks so a slow
webhook never delays action handling.
"""

from typing import Any, Protocol

import httpx

from autopilot.logging import get_logger

logger = get_logger("autopilot.notify")


class Notifier(Protocol):
    """Anything that can deliver a session event somewhere."""

    async def send(self, event_kind: str, payload: dict[str, Any]) -> None:
        ...


class LogNotifier:
    """Writes notifications to the session log."""

    async def send(self, event_kind: str, payload: dict[str, Any]) -> None:
        logger.info("Notification", event_kind=event_kind, **payload)


def format_message(event_kind: str, payload: dict[str, Any]) -> str:
    """Render an event as a one line chat message.

    Args:
        event_kind: Event name (e.g. "task_failed")
        payload: Event data

    Returns:
        str: Message text
    """
    icons = {
        "session_start": "🚀",
        "task_start": "📋",
        "task_complete": "✅",
        "task_failed": "❌",
        "approval_requested": "⏸",
        "action_denied": "🚫",
        "session_complete": "🏁",
    }
    title = event_kind.replace("_", " ").capitalize()
    details = ", ".join(f"{key}={value}" for key, value in payload.items() if value not in (None, ""))
    message = f"{icons.get(event_kind, '•')} *{title}*"
    return f"{message}: {details}" if details else message


class WebhookNotifier:
    """Posts notifications to a Slack-compatible incoming webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the webhook notifier.

        Args:
            url: Incoming webhook URL
            timeout: Request timeout in seconds
            client: HTTP client to reuse (one is created if None)
        """
        self.url = url
        self.timeout = timeout
        self._client = client

    async def send(self, event_kind: str, payload: dict[str, Any]) -> None:
        body = {"text": format_message(event_kind, payload)}
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Webhook notification failed", event_kind=event_kind, error=str(e))


class NotifierGroup:
    """Fans one notification out to several notifiers."""

    def __init__(self, notifiers: list[Notifier] | None = None):
        self.notifiers = list(notifiers or [])

    def add(self, notifier: Notifier) -> None:
        """Add a notifier to the group."""
        self.notifiers.append(notifier)

    async def send(self, event_kind: str, payload: dict[str, Any]) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.send(event_kind, payload)
            except Exception as e:
                logger.warning(
                    "Notifier failed",
                    notifier=type(notifier).__name__,
                    event_kind=event_kind,
                    error=str(e),
                )
