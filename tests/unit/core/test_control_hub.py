"""Unit tests for ControlHub command dispatch and broadcasting."""

import asyncio
import json

import pytest

from capture_hub.core.capture_supervisor import (
    NotificationKind,
    SupervisorNotification,
    SupervisorState,
)
from capture_hub.core.commands import decode_line
from capture_hub.core.control_hub import ControlHub, ObserverRegistry
from capture_hub.core.errors import CaptureError, WorkerStartError
from tests.infrastructure.mocks.hub_mocks import MockObserver, MockSupervisor


SNAPSHOT = {"format": "png", "quality": 90, "captureIntervalSeconds": 30, "outputRoot": "./screenshots"}


@pytest.fixture
def supervisor() -> MockSupervisor:
    return MockSupervisor()


@pytest.fixture
def hub(supervisor) -> ControlHub:
    return ControlHub(supervisor, SNAPSHOT)


async def _connected(hub: ControlHub, count: int = 1):
    observers = [MockObserver() for _ in range(count)]
    for observer in observers:
        assert await hub.register_observer(observer)
        observer.sent.clear()
    return observers


class TestObserverRegistry:

    def test_add_remove(self):
        registry = ObserverRegistry()
        observer = MockObserver()
        assert registry.add(observer)
        assert not registry.add(observer)
        assert observer in registry
        assert len(registry) == 1
        assert registry.remove(observer)
        assert not registry.remove(observer)
        assert len(registry) == 0


class TestRegistration:

    @pytest.mark.asyncio
    async def test_status_then_config_on_connect(self, hub):
        observer = MockObserver()
        assert await hub.register_observer(observer)

        assert observer.sent == [
            {"type": "status", "isRunning": False},
            {"type": "config", "config": SNAPSHOT},
        ]
        assert observer in hub.registry

    @pytest.mark.asyncio
    async def test_failed_initial_send_not_registered(self, hub):
        observer = MockObserver(fail=True)
        assert not await hub.register_observer(observer)
        assert len(hub.registry) == 0

    @pytest.mark.asyncio
    async def test_closed_observer_not_registered(self, hub):
        observer = MockObserver()
        observer.closed = True
        assert not await hub.register_observer(observer)
        assert observer.sent == []

    @pytest.mark.asyncio
    async def test_unregister(self, hub):
        (observer,) = await _connected(hub)
        hub.unregister_observer(observer)
        hub.unregister_observer(observer)
        assert len(hub.registry) == 0

    @pytest.mark.asyncio
    async def test_snapshot_is_copied(self):
        snapshot = dict(SNAPSHOT)
        hub = ControlHub(MockSupervisor(), snapshot)
        snapshot["quality"] = 1
        assert hub.config_message()["config"]["quality"] == 90


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_reaches_every_observer(self, hub):
        observers = await _connected(hub, 3)
        delivered = await hub.broadcast({"type": "status", "isRunning": True})
        assert delivered == 3
        for observer in observers:
            assert observer.sent == [{"type": "status", "isRunning": True}]

    @pytest.mark.asyncio
    async def test_failing_observer_removed_others_served(self, hub):
        good, bad = await _connected(hub, 2)
        bad.fail = True

        delivered = await hub.broadcast({"type": "status", "isRunning": True})

        assert delivered == 1
        assert good.sent == [{"type": "status", "isRunning": True}]
        assert bad not in hub.registry
        assert good in hub.registry

    @pytest.mark.asyncio
    async def test_no_observers(self, hub):
        assert await hub.broadcast({"type": "status", "isRunning": False}) == 0

    @pytest.mark.asyncio
    async def test_stalled_observer_dropped_after_timeout(self, supervisor):
        hub = ControlHub(supervisor, SNAPSHOT, send_timeout=0.1)
        fast, stalled = await _connected(hub, 2)
        stalled.delay = 30.0

        delivered = await asyncio.wait_for(
            hub.broadcast({"type": "status", "isRunning": True}), timeout=5.0
        )

        assert delivered == 1
        assert fast.sent == [{"type": "status", "isRunning": True}]
        assert stalled.sent == []
        assert stalled not in hub.registry
        assert fast in hub.registry

    def test_default_send_timeout(self, hub):
        assert hub.send_timeout == ControlHub.SEND_TIMEOUT


class TestCommands:

    @pytest.mark.asyncio
    async def test_start_broadcasts_status(self, hub, supervisor):
        caller, other = await _connected(hub, 2)
        await hub.handle_command(caller, '{"type": "start"}')

        assert supervisor.calls == ["start"]
        assert caller.sent == [{"type": "status", "isRunning": True}]
        assert other.sent == [{"type": "status", "isRunning": True}]

    @pytest.mark.asyncio
    async def test_start_when_running_replies_to_caller_only(self, hub, supervisor):
        supervisor.running = True
        caller, other = await _connected(hub, 2)
        await hub.handle_command(caller, {"type": "start"})

        assert caller.sent == [{"type": "status", "isRunning": True}]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_stop_broadcasts_status(self, hub, supervisor):
        supervisor.running = True
        caller, other = await _connected(hub, 2)
        await hub.handle_command(caller, '{"type": "stop"}')

        assert caller.sent == [{"type": "status", "isRunning": False}]
        assert other.sent == [{"type": "status", "isRunning": False}]

    @pytest.mark.asyncio
    async def test_stop_when_stopped_replies_to_caller_only(self, hub):
        caller, other = await _connected(hub, 2)
        await hub.handle_command(caller, '{"type": "stop"}')

        assert caller.sent == [{"type": "status", "isRunning": False}]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_status_query(self, hub, supervisor):
        supervisor.running = True
        caller, other = await _connected(hub, 2)
        await hub.handle_command(caller, b'{"type": "status"}')

        assert caller.sent == [{"type": "status", "isRunning": True}]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_capture_now_acknowledged(self, hub, supervisor):
        (caller,) = await _connected(hub)
        await hub.handle_command(caller, json.dumps({"type": "capture-now"}))

        assert supervisor.calls == ["capture_now"]
        assert caller.sent == [
            {"type": "capture-complete", "message": ControlHub.CAPTURE_SENT_MESSAGE}
        ]

    @pytest.mark.asyncio
    async def test_capture_now_while_in_flight(self, hub, supervisor):
        supervisor.capture_in_flight = True
        (caller,) = await _connected(hub)
        await hub.handle_command(caller, '{"type": "capture-now"}')

        assert caller.last() == {
            "type": "capture-complete",
            "message": ControlHub.CAPTURE_PENDING_MESSAGE,
        }

    @pytest.mark.asyncio
    async def test_capture_failure_reported_to_caller(self, hub, supervisor):
        supervisor.error = WorkerStartError("Capture worker not ready after 10.0s")
        caller, other = await _connected(hub, 2)
        await hub.handle_command(caller, '{"type": "capture-now"}')

        assert caller.types() == ["error", "status"]
        assert "not ready" in caller.sent[0]["message"]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_start_failure_reported_to_caller(self, hub, supervisor):
        supervisor.error = CaptureError("spawn failed")
        (caller,) = await _connected(hub)
        await hub.handle_command(caller, '{"type": "start"}')

        assert caller.sent == [
            {"type": "error", "message": "spawn failed"},
            {"type": "status", "isRunning": False},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        '"start"',
        '{"kind": "start"}',
        '{"type": 5}',
        '{"type": "reboot"}',
        b"\xff\xfe",
    ])
    async def test_malformed_or_unknown_ignored(self, hub, supervisor, raw):
        (caller,) = await _connected(hub)
        await hub.handle_command(caller, raw)

        assert supervisor.calls == []
        assert caller.sent == []
        assert caller in hub.registry

    @pytest.mark.asyncio
    async def test_reply_failure_unregisters_caller(self, hub):
        (caller,) = await _connected(hub)
        caller.fail = True
        await hub.handle_command(caller, '{"type": "status"}')
        assert caller not in hub.registry


class TestSupervisorNotifications:

    @pytest.mark.asyncio
    async def test_worker_event_forwarded(self, hub, supervisor):
        observers = await _connected(hub, 2)
        event = decode_line("SUCCESS:Screenshot saved to /tmp/a.png")
        await supervisor.notify(SupervisorNotification(
            kind=NotificationKind.WORKER_EVENT,
            state=SupervisorState.RUNNING,
            message=event.message,
            event=event,
        ))

        for observer in observers:
            assert observer.sent == [{
                "type": "worker-event",
                "event": "SUCCESS",
                "message": "Screenshot saved to /tmp/a.png",
            }]

    @pytest.mark.asyncio
    async def test_restart_broadcasts_status(self, hub, supervisor):
        supervisor.running = True
        (observer,) = await _connected(hub)
        await supervisor.notify(SupervisorNotification(
            kind=NotificationKind.WORKER_RESTARTED,
            state=SupervisorState.RUNNING,
        ))
        assert observer.sent == [{"type": "status", "isRunning": True}]

    @pytest.mark.asyncio
    async def test_fatal_error_broadcasts_error_then_status(self, hub, supervisor):
        (observer,) = await _connected(hub)
        await supervisor.notify(SupervisorNotification(
            kind=NotificationKind.FATAL_ERROR,
            state=SupervisorState.STOPPED,
            message="Capture worker restart failed: boom",
        ))
        assert observer.sent == [
            {"type": "error", "message": "Capture worker restart failed: boom"},
            {"type": "status", "isRunning": False},
        ]

    @pytest.mark.asyncio
    async def test_close_detaches_from_supervisor(self, hub, supervisor):
        await _connected(hub, 2)
        await hub.close()
        assert supervisor.listeners == []
        assert len(hub.registry) == 0
