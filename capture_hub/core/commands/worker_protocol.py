"""Line protocol spoken with the external capture worker.

Requests are newline-terminated lines written to the worker's stdin::

    capture
    <timestamp tag>
    <absolute output folder>
    <format>
    <quality>

    exit

Responses are ``TAG:message`` lines on the worker's stdout. Decoding never
fails: anything without a known tag becomes an ``UNRECOGNIZED`` event.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

from ..errors import ProtocolError

CAPTURE_COMMAND = "capture"
SHUTDOWN_COMMAND = "exit"


class WorkerEventType(Enum):
    READY = "READY"
    INIT = "INIT"
    INFO = "INFO"
    CAPTURING = "CAPTURING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    UNRECOGNIZED = "UNRECOGNIZED"


# Events that conclude a capture request
TERMINAL_EVENTS = frozenset({WorkerEventType.SUCCESS, WorkerEventType.ERROR})

_TAGGED_TYPES = {
    event_type.value: event_type
    for event_type in WorkerEventType
    if event_type is not WorkerEventType.UNRECOGNIZED
}


@dataclass(frozen=True)
class CaptureRequest:
    timestamp_tag: str
    absolute_output_folder: str
    image_format: str
    quality: int


@dataclass(frozen=True)
class WorkerEvent:
    type: WorkerEventType
    message: str
    raw: str

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS


def _line(value: object, field_name: str) -> str:
    text = str(value)
    if "\n" in text or "\r" in text:
        raise ProtocolError(f"{field_name} cannot contain line breaks: {text!r}")
    return f"{text}\n"


def encode_capture(request: CaptureRequest) -> List[str]:
    """Frame a capture request as the ordered lines the worker reads."""
    return [
        _line(CAPTURE_COMMAND, "command"),
        _line(request.timestamp_tag, "timestamp_tag"),
        _line(request.absolute_output_folder, "absolute_output_folder"),
        _line(request.image_format, "image_format"),
        _line(request.quality, "quality"),
    ]


def encode_shutdown() -> List[str]:
    return [_line(SHUTDOWN_COMMAND, "command")]


def decode_line(raw: str) -> WorkerEvent:
    line = raw.rstrip("\r\n")
    tag, sep, message = line.partition(":")
    event_type = _TAGGED_TYPES.get(tag) if sep else None
    if event_type is None:
        return WorkerEvent(WorkerEventType.UNRECOGNIZED, line, line)
    return WorkerEvent(event_type, message, line)


__all__ = [
    "CAPTURE_COMMAND",
    "SHUTDOWN_COMMAND",
    "CaptureRequest",
    "TERMINAL_EVENTS",
    "WorkerEvent",
    "WorkerEventType",
    "decode_line",
    "encode_capture",
    "encode_shutdown",
]
