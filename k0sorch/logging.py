"""Logging configuration for the k0sorch package."""
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .config import Config


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Mask values whose key looks sensitive."""
    return {
        k: "[REDACTED]" if any(key in k.lower() for key in Config.REDACT_KEYS) else v
        for k, v in fields.items()
    }


class EventSink(Protocol):
    """Destination for structured progress and error events of a run."""

    def event(self, level: int, message: str, **fields: Any) -> None:
        ...

    def debug(self, message: str, **fields: Any) -> None: ...

    def info(self, message: str, **fields: Any) -> None: ...

    def warning(self, message: str, **fields: Any) -> None: ...

    def error(self, message: str, **fields: Any) -> None: ...


class SinkMixin:
    """Level helpers on top of ``event``."""

    def debug(self, message: str, **fields: Any) -> None:
        self.event(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.event(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.event(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.event(logging.ERROR, message, **fields)


class LoggingSink(SinkMixin):
    """Forward events to a stdlib logger, rendering fields as ``key=value``."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("k0sorch")

    def event(self, level: int, message: str, **fields: Any) -> None:
        if fields:
            context = " ".join(f"{k}={v}" for k, v in redact(fields).items())
            self.logger.log(level, f"{message} [{context}]")
        else:
            self.logger.log(level, message)


class RecordingSink(SinkMixin):
    """Keep events in memory; used by embedding callers and tests."""

    def __init__(self):
        self.events: List[Tuple[int, str, Dict[str, Any]]] = []

    def event(self, level: int, message: str, **fields: Any) -> None:
        self.events.append((level, message, fields))

    def messages(self, level: Optional[int] = None) -> List[str]:
        return [m for lvl, m, _ in self.events if level is None or lvl == level]
