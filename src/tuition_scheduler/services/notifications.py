'''
Notification port.

The booking service receives a notifier in its constructor and only calls
it after a transaction has committed. Delivery problems are logged and
never reach the caller.
'''
from typing import Any, Protocol

from ..common.logger import log


class NotificationPort(Protocol):
    async def notify(self, recipient: str, subject: str, body: str) -> None: ...

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier: writes every message to the application log."""

    async def notify(self, recipient: str, subject: str, body: str) -> None:
        log.info(f"NOTIFY {recipient}: {subject}\n{body}")

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        log.info(f"EVENT {event_name}: {payload}")


class SafeNotifier:
    """
    Wraps a port so a failing delivery is logged instead of raised.
    """
    def __init__(self, port: NotificationPort):
        self.port = port

    async def notify(self, recipient: str, subject: str, body: str) -> None:
        try:
            await self.port.notify(recipient, subject, body)
        except Exception as e:
            log.error(f"Notification to {recipient} failed: {e}", exc_info=True)

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        try:
            await self.port.emit(event_name, payload)
        except Exception as e:
            log.error(f"Event '{event_name}' could not be emitted: {e}", exc_info=True)


def get_notifier() -> NotificationPort:
    """FastAPI dependency; override it to plug in email / websocket delivery."""
    return LoggingNotifier()
