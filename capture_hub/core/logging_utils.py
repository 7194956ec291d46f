"""Component-tagged loggers for the Capture Hub.

Every logger lives under the ``capture_hub`` namespace and prefixes its
messages with ``[Component]`` so interleaved supervisor, hub and worker output
stays readable in one log file. The component is also attached to each record
as ``record.component``.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple, Union

LOGGER_NAMESPACE = "capture_hub"
DEFAULT_COMPONENT = "Core"


def _qualified_name(name: Optional[str]) -> str:
    if not name or name == LOGGER_NAMESPACE:
        return LOGGER_NAMESPACE
    if name.startswith(LOGGER_NAMESPACE + "."):
        return name
    return f"{LOGGER_NAMESPACE}.{name}"


def _component_for(logger_name: str) -> str:
    prefix = LOGGER_NAMESPACE + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    if logger_name == LOGGER_NAMESPACE:
        return DEFAULT_COMPONENT
    return logger_name or DEFAULT_COMPONENT


class StructuredLogger(logging.LoggerAdapter):
    """Adapter that tags messages with ``[Component]``."""

    def __init__(self, logger: logging.Logger, component: Optional[str] = None) -> None:
        component = component or _component_for(logger.name)
        super().__init__(logger, {"component": component})
        self.component = component

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        tag = f"[{self.component}]"
        text = str(msg)
        if not text.startswith(tag):
            text = f"{tag} {text}"
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return text, kwargs

    def getChild(self, suffix: str) -> "StructuredLogger":
        return StructuredLogger(
            self.logger.getChild(suffix),
            component=f"{self.component}.{suffix}",
        )

    def __repr__(self) -> str:
        return f"StructuredLogger({self.logger.name!r}, component={self.component!r})"


LoggerLike = Union[StructuredLogger, logging.Logger, logging.LoggerAdapter, None]


def ensure_structured_logger(
    logger: LoggerLike,
    *,
    component: Optional[str] = None,
    fallback_name: Optional[str] = None,
) -> StructuredLogger:
    """Wrap ``logger`` (or a fresh module logger when it is None)."""
    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.LoggerAdapter):
        return StructuredLogger(logger.logger, component=component)
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component=component)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    """Return the tagged logger for ``name`` inside the capture_hub namespace."""
    return StructuredLogger(logging.getLogger(_qualified_name(name)))


__all__ = [
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
