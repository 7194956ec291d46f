"""Capture Process Supervisor.

Owns the external capture worker: spawns it, feeds it capture requests over
stdin, consumes its typed output lines, restarts it once when it fails and runs
the periodic capture timer.

The timer and the per-worker output readers never touch supervisor state.
They post messages into a mailbox drained by a single dispatcher task, and the
dispatcher shares one lock with the public operations, so every transition is
applied atomically.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .asyncio_utils import cancel_tasks, create_logged_task
from .commands import (
    CaptureRequest,
    WorkerEvent,
    WorkerEventType,
    decode_line,
    encode_capture,
    encode_shutdown,
)
from .config_manager import CaptureConfig, WorkerConfig
from .errors import CaptureError, ProtocolError, WorkerStartError
from .logging_utils import get_module_logger


class SupervisorState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    CAPTURING = "capturing"
    RESTARTING = "restarting"


RUNNING_STATES = frozenset({SupervisorState.RUNNING, SupervisorState.CAPTURING})

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DATE_FOLDER_FORMAT = "%Y-%m-%d"

_TERMINATE_TIMEOUT = 2.0
_READER_DRAIN_TIMEOUT = 0.5


class NotificationKind(Enum):
    WORKER_EVENT = "worker_event"
    WORKER_RESTARTED = "worker_restarted"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class SupervisorNotification:
    kind: NotificationKind
    state: SupervisorState
    message: str = ""
    event: Optional[WorkerEvent] = None


Listener = Callable[[SupervisorNotification], Awaitable[None]]


@dataclass(frozen=True)
class _Tick:
    pass


@dataclass(frozen=True)
class _WorkerOutput:
    generation: int
    event: WorkerEvent


@dataclass(frozen=True)
class _WorkerExited:
    generation: int
    returncode: Optional[int]


_Message = Union[_Tick, _WorkerOutput, _WorkerExited]


@dataclass(eq=False)
class _WorkerHandle:
    process: asyncio.subprocess.Process
    generation: int
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    stdout_task: Optional[asyncio.Task] = None
    stderr_task: Optional[asyncio.Task] = None
    shutdown_requested: bool = False
    output_closed: bool = False
    pending_since: Optional[float] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.returncode is None and not self.output_closed


class CaptureSupervisor:

    def __init__(
        self,
        capture_config: CaptureConfig,
        worker_config: Optional[WorkerConfig] = None,
        *,
        tick_interval: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            capture_config: Validated capture settings (format, quality, ...).
            worker_config: How to launch the worker and its timeouts.
            tick_interval: Timer period in seconds; defaults to the configured
                capture interval.
            clock: Source of the capture timestamp.
        """
        self.capture_config = capture_config
        self.worker_config = worker_config or WorkerConfig()
        self.tick_interval = float(
            tick_interval if tick_interval is not None else capture_config.capture_interval_seconds
        )
        self._clock = clock

        self.logger = get_module_logger("CaptureSupervisor")
        self.worker_logger = self.logger.getChild("Worker")

        self._state = SupervisorState.STOPPED
        self._worker: Optional[_WorkerHandle] = None
        self._generation = 0

        self._lock = asyncio.Lock()
        self._mailbox: asyncio.Queue[_Message] = asyncio.Queue()
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._tick_queued = False

        self._listeners: List[Listener] = []

        self.captures_requested = 0
        self.ticks_skipped = 0
        self.restart_count = 0

    # ------------------------------------------------------------------
    # Public surface

    @property
    def state(self) -> SupervisorState:
        return self._state

    def is_running(self) -> bool:
        return self._state in RUNNING_STATES

    @property
    def worker_pid(self) -> Optional[int]:
        return self._worker.pid if self._worker else None

    @property
    def capture_in_flight(self) -> bool:
        return self._worker is not None and self._worker.pending_since is not None

    def add_listener(self, listener: Listener) -> None:
        """Register a coroutine called for worker events and restart outcomes.

        Listeners run on the dispatcher while the supervisor lock is held and
        must not call back into :meth:`start`, :meth:`stop` or
        :meth:`capture_now`.
        """
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "isRunning": self.is_running(),
            "workerPid": self.worker_pid,
            "captureInFlight": self.capture_in_flight,
            "capturesRequested": self.captures_requested,
            "ticksSkipped": self.ticks_skipped,
            "restarts": self.restart_count,
        }

    async def start(self) -> bool:
        """Start the capture session. Returns True if the state changed."""
        self._ensure_dispatcher()
        async with self._lock:
            if self._state in RUNNING_STATES:
                self.logger.debug("Start ignored, already %s", self._state.value)
                return False

            self.logger.info("Starting capture session (interval %.1fs)", self.tick_interval)
            self._set_state(SupervisorState.STARTING)
            try:
                if self._worker is not None and self._worker.is_alive():
                    self.logger.info("Reusing worker PID %d", self._worker.pid)
                else:
                    await self._teardown_worker_locked(graceful=False)
                    await self._spawn_locked()
            except WorkerStartError:
                self._set_state(SupervisorState.STOPPED)
                raise

            self._set_state(SupervisorState.RUNNING)
            try:
                await self._send_capture_locked()
            except CaptureError as e:
                self.logger.error("Initial capture failed: %s", e)

            if self._state in RUNNING_STATES and self._timer_task is None:
                self._arm_timer()
            return self._state in RUNNING_STATES

    async def stop(self) -> bool:
        """Stop the session and the worker. Returns True if the state changed."""
        async with self._lock:
            changed = self._state is not SupervisorState.STOPPED
            await self._cancel_timer()
            if self._worker is not None:
                self.logger.info("Stopping capture worker")
                await self._teardown_worker_locked(graceful=True)
            self._set_state(SupervisorState.STOPPED)
            return changed

    async def capture_now(self) -> bool:
        """Write one out-of-band capture request, spawning the worker if needed.

        Returns True once the request is written, False if a capture is
        already in flight on this worker and no second request was sent.
        """
        self._ensure_dispatcher()
        async with self._lock:
            if self._worker is None or not self._worker.is_alive():
                await self._teardown_worker_locked(graceful=False)
                self.logger.info("No worker running, starting one for on-demand capture")
                await self._spawn_locked()
            return await self._send_capture_locked()

    async def close(self) -> None:
        """Stop everything, including the dispatcher. Used on process exit."""
        await self.stop()
        await cancel_tasks([self._dispatcher_task])
        self._dispatcher_task = None

    # ------------------------------------------------------------------
    # State helpers

    def _set_state(self, new_state: SupervisorState) -> None:
        if new_state is self._state:
            return
        self.logger.debug("State %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher_task is None or self._dispatcher_task.done():
            self._dispatcher_task = create_logged_task(
                self._dispatch_loop(),
                logger=self.logger,
                context="capture-supervisor-dispatcher",
            )

    async def _notify(self, notification: SupervisorNotification) -> None:
        for listener in list(self._listeners):
            try:
                await listener(notification)
            except Exception as e:
                self.logger.error("Listener error: %s", e, exc_info=True)

    # ------------------------------------------------------------------
    # Timer

    def _arm_timer(self) -> None:
        self._tick_queued = False
        self._timer_task = create_logged_task(
            self._run_timer(),
            logger=self.logger,
            context="capture-timer",
        )

    async def _cancel_timer(self) -> None:
        task, self._timer_task = self._timer_task, None
        await cancel_tasks([task])

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            # At most one tick waits in the mailbox; a slow dispatcher never
            # receives a burst of stacked ticks.
            if not self._tick_queued:
                self._tick_queued = True
                self._mailbox.put_nowait(_Tick())

    # ------------------------------------------------------------------
    # Dispatcher

    async def _dispatch_loop(self) -> None:
        while True:
            message = await self._mailbox.get()
            async with self._lock:
                try:
                    await self._handle_message(message)
                except Exception:
                    self.logger.exception("Error handling %s", type(message).__name__)

    async def _handle_message(self, message: _Message) -> None:
        if isinstance(message, _Tick):
            await self._handle_tick()
        elif isinstance(message, _WorkerOutput):
            await self._handle_worker_output(message)
        elif isinstance(message, _WorkerExited):
            await self._handle_worker_exited(message)

    async def _handle_tick(self) -> None:
        self._tick_queued = False
        handle = self._worker
        if self._state not in RUNNING_STATES or handle is None:
            return

        if handle.pending_since is not None:
            waited = asyncio.get_running_loop().time() - handle.pending_since
            if waited < self.worker_config.capture_timeout:
                self.ticks_skipped += 1
                self.logger.debug("Tick skipped, capture still in flight (%.1fs)", waited)
                return
            self.logger.warning("Capture request unanswered after %.0fs, treating it as lost", waited)
            self._clear_pending(handle)

        try:
            await self._send_capture_locked()
        except CaptureError as e:
            self.logger.error("Scheduled capture failed: %s", e)

    async def _handle_worker_output(self, message: _WorkerOutput) -> None:
        event = message.event
        self._log_worker_event(event)

        handle = self._worker
        if event.is_terminal and handle is not None and handle.generation == message.generation:
            self._clear_pending(handle)

        await self._notify(SupervisorNotification(
            kind=NotificationKind.WORKER_EVENT,
            state=self._state,
            message=event.message,
            event=event,
        ))

    async def _handle_worker_exited(self, message: _WorkerExited) -> None:
        handle = self._worker
        if handle is None or handle.generation != message.generation or handle.shutdown_requested:
            return

        reason = f"worker exited with code {message.returncode}"
        if message.returncode is None:
            reason = "worker output stream closed"

        if self._state in RUNNING_STATES:
            self.logger.error("Capture worker failed: %s", reason)
            await self._restart_locked(reason)
        else:
            self.logger.warning("Idle capture worker went away: %s", reason)
            await self._teardown_worker_locked(graceful=False)

    def _clear_pending(self, handle: _WorkerHandle) -> None:
        handle.pending_since = None
        if self._state is SupervisorState.CAPTURING:
            self._set_state(SupervisorState.RUNNING)

    def _log_worker_event(self, event: WorkerEvent) -> None:
        log = self.worker_logger
        if event.type is WorkerEventType.ERROR:
            log.error("Capture error: %s", event.message)
        elif event.type is WorkerEventType.SUCCESS:
            log.info("Capture complete: %s", event.message)
        elif event.type is WorkerEventType.CAPTURING:
            log.info("Capturing: %s", event.message)
        elif event.type is WorkerEventType.UNRECOGNIZED:
            log.info("Output: %s", event.raw)
        else:
            log.info("%s: %s", event.type.value, event.message)

    # ------------------------------------------------------------------
    # Worker process management

    async def _spawn_locked(self) -> _WorkerHandle:
        command = self.worker_config.command
        self.logger.info("Starting capture worker: %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            self.logger.error("Failed to start capture worker: %s", e)
            raise WorkerStartError(f"Failed to start capture worker: {e}") from e

        self._generation += 1
        handle = _WorkerHandle(process=process, generation=self._generation)
        handle.stdout_task = create_logged_task(
            self._stdout_reader(handle),
            logger=self.logger,
            context=f"worker-{handle.generation}-stdout",
        )
        handle.stderr_task = create_logged_task(
            self._stderr_reader(handle),
            logger=self.logger,
            context=f"worker-{handle.generation}-stderr",
        )
        self._worker = handle
        self.logger.info("Worker started with PID: %d", process.pid)

        try:
            await self._await_ready(handle)
        except WorkerStartError as e:
            self.logger.error("%s", e)
            await self._teardown_worker_locked(graceful=False)
            raise
        return handle

    async def _await_ready(self, handle: _WorkerHandle) -> None:
        ready_task = asyncio.ensure_future(handle.ready.wait())
        exit_task = asyncio.ensure_future(handle.process.wait())
        timeout = self.worker_config.ready_timeout
        try:
            await asyncio.wait(
                {ready_task, exit_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            await cancel_tasks([ready_task, exit_task])

        if handle.ready.is_set():
            self.logger.info("Capture worker ready")
            return
        if handle.process.returncode is not None:
            raise WorkerStartError(
                f"Capture worker exited with code {handle.process.returncode} before it was ready"
            )
        raise WorkerStartError(f"Capture worker not ready after {timeout:.1f}s")

    async def _stdout_reader(self, handle: _WorkerHandle) -> None:
        stream = handle.process.stdout
        try:
            while stream is not None:
                line = await stream.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").rstrip("\r\n")
                if not text.strip():
                    continue
                event = decode_line(text)
                if event.type is WorkerEventType.READY:
                    handle.ready.set()
                self._mailbox.put_nowait(_WorkerOutput(handle.generation, event))
        except (OSError, ValueError) as e:
            self.logger.error("Worker stdout reader error: %s", e)

        handle.output_closed = True
        returncode = handle.process.returncode
        if returncode is None:
            with contextlib.suppress(asyncio.TimeoutError):
                returncode = await asyncio.wait_for(
                    handle.process.wait(), timeout=self.worker_config.shutdown_grace
                )
        self._mailbox.put_nowait(_WorkerExited(handle.generation, returncode))

    async def _stderr_reader(self, handle: _WorkerHandle) -> None:
        stream = handle.process.stderr
        try:
            while stream is not None:
                line = await stream.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if text:
                    self.worker_logger.warning("stderr: %s", text)
        except (OSError, ValueError) as e:
            self.logger.error("Worker stderr reader error: %s", e)

    async def _write_lines(self, handle: _WorkerHandle, lines: List[str]) -> None:
        stdin = handle.process.stdin
        if stdin is None or stdin.is_closing():
            raise BrokenPipeError("worker stdin is closed")
        stdin.write("".join(lines).encode("utf-8"))
        await stdin.drain()

    async def _teardown_worker_locked(self, graceful: bool) -> None:
        handle = self._worker
        if handle is None:
            return
        self._worker = None
        handle.shutdown_requested = True
        process = handle.process

        if graceful and process.returncode is None:
            try:
                await self._write_lines(handle, encode_shutdown())
            except (OSError, RuntimeError) as e:
                self.logger.debug("Could not send exit command: %s", e)

        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
            with contextlib.suppress(OSError, RuntimeError):
                await process.stdin.wait_closed()

        if process.returncode is None:
            grace = self.worker_config.shutdown_grace if graceful else 0.1
            try:
                await asyncio.wait_for(process.wait(), timeout=grace)
                self.logger.info("Worker exited gracefully")
            except asyncio.TimeoutError:
                self.logger.warning("Worker did not exit, terminating...")
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=_TERMINATE_TIMEOUT)
                except asyncio.TimeoutError:
                    self.logger.error("Worker did not terminate, killing...")
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
                    await process.wait()

        readers = [task for task in (handle.stdout_task, handle.stderr_task) if task is not None]
        if readers:
            await asyncio.wait(readers, timeout=_READER_DRAIN_TIMEOUT)
        await cancel_tasks(readers)
        self.logger.info("Worker PID %d released (exit code %s)", handle.pid, process.returncode)

    async def _restart_locked(self, reason: str) -> bool:
        self.logger.warning("Restarting capture worker (%s)", reason)
        self._set_state(SupervisorState.RESTARTING)
        await self._cancel_timer()
        await self._teardown_worker_locked(graceful=False)
        self.restart_count += 1

        try:
            await self._spawn_locked()
            self._set_state(SupervisorState.RUNNING)
            await self._send_capture_locked(allow_restart=False)
        except CaptureError as e:
            await self._fail_locked(f"Capture worker restart failed: {e}")
            return False

        self._arm_timer()
        self.logger.info("Capture worker restarted")
        await self._notify(SupervisorNotification(
            kind=NotificationKind.WORKER_RESTARTED,
            state=self._state,
            message=f"Capture worker restarted after failure: {reason}",
        ))
        return True

    async def _fail_locked(self, message: str) -> None:
        self.logger.error("%s", message)
        await self._cancel_timer()
        await self._teardown_worker_locked(graceful=False)
        self._set_state(SupervisorState.STOPPED)
        await self._notify(SupervisorNotification(
            kind=NotificationKind.FATAL_ERROR,
            state=self._state,
            message=message,
        ))

    # ------------------------------------------------------------------
    # Capture path

    def _build_request(self) -> CaptureRequest:
        now = self._clock()
        folder = self.capture_config.output_root / now.strftime(DATE_FOLDER_FORMAT)
        try:
            folder.mkdir(parents=True, exist_ok=True)
            absolute_folder = folder.resolve().as_posix()
        except OSError as e:
            raise CaptureError(f"Cannot prepare output folder {folder}: {e}") from e

        return CaptureRequest(
            timestamp_tag=now.strftime(TIMESTAMP_FORMAT),
            absolute_output_folder=absolute_folder,
            image_format=self.capture_config.image_format,
            quality=self.capture_config.quality,
        )

    async def _send_capture_locked(self, allow_restart: bool = True) -> bool:
        handle = self._worker
        if handle is None:
            raise CaptureError("Capture worker is not running")
        if handle.pending_since is not None:
            self.logger.info("Capture already in flight, not sending another request")
            return False

        request = self._build_request()
        try:
            lines = encode_capture(request)
        except ProtocolError as e:
            raise CaptureError(f"Cannot encode capture request: {e}") from e
        self.logger.info("Requesting capture at %s", request.timestamp_tag)

        try:
            await self._write_lines(handle, lines)
        except (OSError, RuntimeError) as e:
            self.logger.error("Failed to write capture request: %s", e)
            if self._state in RUNNING_STATES and allow_restart:
                if await self._restart_locked(f"write failed: {e}"):
                    # the restart already issued a fresh capture
                    return True
                raise CaptureError("Capture worker restart failed") from e
            if self._state not in RUNNING_STATES:
                await self._teardown_worker_locked(graceful=False)
            raise CaptureError(f"Failed to write capture request: {e}") from e

        handle.pending_since = asyncio.get_running_loop().time()
        self.captures_requested += 1
        if self._state is SupervisorState.RUNNING:
            self._set_state(SupervisorState.CAPTURING)
        return True


__all__ = [
    "CaptureSupervisor",
    "Listener",
    "NotificationKind",
    "RUNNING_STATES",
    "SupervisorNotification",
    "SupervisorState",
]
