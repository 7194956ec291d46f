from .worker_protocol import (
    CAPTURE_COMMAND,
    SHUTDOWN_COMMAND,
    CaptureRequest,
    TERMINAL_EVENTS,
    WorkerEvent,
    WorkerEventType,
    decode_line,
    encode_capture,
    encode_shutdown,
)

__all__ = [
    'CAPTURE_COMMAND',
    'SHUTDOWN_COMMAND',
    'CaptureRequest',
    'TERMINAL_EVENTS',
    'WorkerEvent',
    'WorkerEventType',
    'decode_line',
    'encode_capture',
    'encode_shutdown',
]
