"""Control Hub - single entry point for observer commands and broadcasts.

Observers are any objects exposing ``async send_json(data)`` (an aiohttp
``WebSocketResponse`` in production). The hub owns the registry of live
observers, dispatches their commands to the :class:`CaptureSupervisor` and
fans resulting state out to every registered observer.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from .capture_supervisor import CaptureSupervisor, NotificationKind, SupervisorNotification
from .errors import CaptureError
from .logging_utils import get_module_logger


class Observer(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ObserverRegistry:
    """Live observer connections keyed by connection identity."""

    def __init__(self) -> None:
        self._observers: Dict[int, Observer] = {}

    def add(self, observer: Observer) -> bool:
        key = id(observer)
        if key in self._observers:
            return False
        self._observers[key] = observer
        return True

    def remove(self, observer: Observer) -> bool:
        return self._observers.pop(id(observer), None) is not None

    def snapshot(self) -> List[Observer]:
        return list(self._observers.values())

    def __contains__(self, observer: object) -> bool:
        return id(observer) in self._observers

    def __len__(self) -> int:
        return len(self._observers)


RawCommand = Union[str, bytes, Dict[str, Any]]


class ControlHub:

    CAPTURE_SENT_MESSAGE = "Capture request sent to worker"
    CAPTURE_PENDING_MESSAGE = "Capture already in progress"
    SEND_TIMEOUT = 5.0

    def __init__(
        self,
        supervisor: CaptureSupervisor,
        config_snapshot: Dict[str, Any],
        *,
        send_timeout: Optional[float] = None,
    ):
        self.supervisor = supervisor
        self.send_timeout = self.SEND_TIMEOUT if send_timeout is None else send_timeout
        self.config_snapshot = dict(config_snapshot)
        self.registry = ObserverRegistry()
        self.logger = get_module_logger("ControlHub")
        self._lock = asyncio.Lock()
        self._handlers: Dict[str, Callable[[Observer], Awaitable[None]]] = {
            "start": self._handle_start,
            "stop": self._handle_stop,
            "status": self._handle_status,
            "capture-now": self._handle_capture_now,
        }
        supervisor.add_listener(self._on_supervisor_notification)

    # ------------------------------------------------------------------
    # Messages

    def status_message(self) -> Dict[str, Any]:
        return {"type": "status", "isRunning": self.supervisor.is_running()}

    def config_message(self) -> Dict[str, Any]:
        return {"type": "config", "config": dict(self.config_snapshot)}

    @staticmethod
    def error_message(message: str) -> Dict[str, Any]:
        return {"type": "error", "message": message}

    # ------------------------------------------------------------------
    # Registry

    async def register_observer(self, observer: Observer) -> bool:
        """Send the initial status and config, then start broadcasting to it.

        Returns False if the observer failed before it could be registered.
        """
        async with self._lock:
            for message in (self.status_message(), self.config_message()):
                if not await self._deliver(observer, message):
                    return False
            self.registry.add(observer)
        self.logger.info("Observer connected (%d total)", len(self.registry))
        return True

    def unregister_observer(self, observer: Observer) -> None:
        if self.registry.remove(observer):
            self.logger.info("Observer disconnected (%d remaining)", len(self.registry))

    # ------------------------------------------------------------------
    # Delivery

    async def _deliver(self, observer: Observer, message: Dict[str, Any]) -> bool:
        if getattr(observer, "closed", False):
            return False
        try:
            await asyncio.wait_for(observer.send_json(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Send to observer timed out after %.1fs", self.send_timeout)
            return False
        except (OSError, RuntimeError) as e:
            self.logger.warning("Send to observer failed: %s", e)
            return False
        return True

    async def send_to(self, observer: Observer, message: Dict[str, Any]) -> bool:
        """Reply to one observer; a failed send unregisters it."""
        delivered = await self._deliver(observer, message)
        if not delivered:
            self.unregister_observer(observer)
        return delivered

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Best-effort send to every observer. Returns the delivery count."""
        async with self._lock:
            observers = self.registry.snapshot()
            if not observers:
                return 0
            results = await asyncio.gather(
                *(self._deliver(observer, message) for observer in observers)
            )
            for observer, delivered in zip(observers, results):
                if not delivered:
                    self.unregister_observer(observer)
            return sum(1 for delivered in results if delivered)

    # ------------------------------------------------------------------
    # Commands

    def _parse(self, raw: RawCommand) -> Optional[Dict[str, Any]]:
        if isinstance(raw, dict):
            return raw
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            self.logger.warning("Ignoring malformed command: %s", e)
            return None
        if not isinstance(data, dict):
            self.logger.warning("Ignoring command that is not an object: %.100s", raw)
            return None
        return data

    async def handle_command(self, observer: Observer, raw: RawCommand) -> None:
        data = self._parse(raw)
        if data is None:
            return

        command = data.get("type")
        handler = self._handlers.get(command) if isinstance(command, str) else None
        if handler is None:
            self.logger.debug("Ignoring unknown command type: %r", command)
            return

        self.logger.info("Command received: %s", command)
        await handler(observer)

    async def _report_failure(self, observer: Observer, error: CaptureError) -> None:
        self.logger.error("Command failed: %s", error)
        await self.send_to(observer, self.error_message(str(error)))
        await self.send_to(observer, self.status_message())

    async def _handle_start(self, observer: Observer) -> None:
        try:
            changed = await self.supervisor.start()
        except CaptureError as e:
            await self._report_failure(observer, e)
            return

        if changed:
            self.logger.info("Screen capture started")
            await self.broadcast(self.status_message())
        else:
            await self.send_to(observer, self.status_message())

    async def _handle_stop(self, observer: Observer) -> None:
        changed = await self.supervisor.stop()
        if changed:
            self.logger.info("Screen capture stopped")
            await self.broadcast(self.status_message())
        else:
            await self.send_to(observer, self.status_message())

    async def _handle_status(self, observer: Observer) -> None:
        await self.send_to(observer, self.status_message())

    async def _handle_capture_now(self, observer: Observer) -> None:
        try:
            written = await self.supervisor.capture_now()
        except CaptureError as e:
            await self._report_failure(observer, e)
            return

        message = self.CAPTURE_SENT_MESSAGE if written else self.CAPTURE_PENDING_MESSAGE
        self.logger.info("On-demand capture: %s", message)
        await self.send_to(observer, {"type": "capture-complete", "message": message})

    # ------------------------------------------------------------------
    # Supervisor notifications

    async def _on_supervisor_notification(self, notification: SupervisorNotification) -> None:
        if notification.kind is NotificationKind.WORKER_EVENT and notification.event is not None:
            await self.broadcast({
                "type": "worker-event",
                "event": notification.event.type.value,
                "message": notification.event.message,
            })
        elif notification.kind is NotificationKind.WORKER_RESTARTED:
            await self.broadcast(self.status_message())
        elif notification.kind is NotificationKind.FATAL_ERROR:
            await self.broadcast(self.error_message(notification.message))
            await self.broadcast(self.status_message())

    async def close(self) -> None:
        self.supervisor.remove_listener(self._on_supervisor_notification)
        for observer in self.registry.snapshot():
            self.unregister_observer(observer)


__all__ = ["ControlHub", "Observer", "ObserverRegistry"]
