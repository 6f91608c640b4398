from typing import Literal, Optional, Protocol

import httpx

from .constants import DEFAULT_ALERT_COOLDOWN
from .state import RunState
from .log import get_logger


logger = get_logger(__name__)

AlertLevel = Literal["info", "warn", "error"]

_LEVEL_ICONS = {"info": "🔧", "warn": "⚠️", "error": "🚨"}


class AlertSink(Protocol):
    def __call__(self, message: str, level: AlertLevel) -> None:
        ...


class LoggingAlertSink:
    """Default sink: alerts only end up in the log."""

    def __call__(self, message: str, level: AlertLevel) -> None:
        logger.debug(f"Alert ({level}): {message}")


class WebhookAlertSink:
    """Posts alerts as JSON to a chat-style webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        title: str = "Chaos Fleet Alert"
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.title = title

    def __call__(self, message: str, level: AlertLevel) -> None:
        icon = _LEVEL_ICONS.get(level, _LEVEL_ICONS["info"])
        payload = {
            "text": f"{icon} {self.title}\n{message}",
            "level": level
        }
        try:
            response = httpx.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Alert delivery to webhook failed: {e}")


class Alerter:
    """
    Routes alerts to a sink, suppressing repeats of the same key inside the
    cooldown window. A suppressed alert does not refresh the window.
    """

    def __init__(
        self,
        state: RunState,
        sink: Optional[AlertSink] = None,
        cooldown: float = DEFAULT_ALERT_COOLDOWN
    ) -> None:
        self.state = state
        self.sink = sink or LoggingAlertSink()
        self.cooldown = cooldown

    def send(
        self,
        message: str,
        level: AlertLevel = "info",
        key: Optional[str] = None
    ) -> bool:
        """Deliver the alert unless its key is cooling down. Returns True if delivered."""
        key = key or message
        if not self.state.check_cooldown(key, self.cooldown):
            logger.debug(f"Alert suppressed (cooldown {self.cooldown}s): {message}")
            return False
        self.sink(message, level)
        self.state.set_cooldown(key)
        return True

