"""Exception hierarchy shared by the supervisor, hub and configuration layer."""


class CaptureHubError(RuntimeError):
    pass


class ConfigError(CaptureHubError):
    """Configuration file is unreadable or holds an invalid value."""


class ProtocolError(CaptureHubError):
    """A value cannot be framed on the worker line protocol."""


class CaptureError(CaptureHubError):
    pass


class WorkerStartError(CaptureError):
    """The external worker could not be spawned or never became ready."""


__all__ = [
    "CaptureHubError",
    "ConfigError",
    "ProtocolError",
    "CaptureError",
    "WorkerStartError",
]
