from .capture_supervisor import (
    CaptureSupervisor,
    NotificationKind,
    RUNNING_STATES,
    SupervisorNotification,
    SupervisorState,
)
from .config_manager import AppConfig, CaptureConfig, ServerConfig, WorkerConfig, load_config, load_config_async
from .control_hub import ControlHub, ObserverRegistry
from .errors import CaptureError, CaptureHubError, ConfigError, ProtocolError, WorkerStartError

__version__ = "1.0.0"

__all__ = [
    'AppConfig',
    'CaptureConfig',
    'CaptureError',
    'CaptureHubError',
    'CaptureSupervisor',
    'ConfigError',
    'ControlHub',
    'NotificationKind',
    'ObserverRegistry',
    'ProtocolError',
    'RUNNING_STATES',
    'ServerConfig',
    'SupervisorNotification',
    'SupervisorState',
    'WorkerConfig',
    'WorkerStartError',
    'load_config',
    'load_config_async',
    '__version__',
]
