"""
Structured JSON Logging Module.

Every record is one JSON line on stdout and in a rotating log file.
Loggers live under the ``tracker.`` namespace and can be bound to
context (an account id, a rule id) that is attached to every line they
emit::

    log = get_logger("evaluation").bind(account_id="acc-1")
    log.info("Evaluated", extra={"incentive": 570000})
"""

import json
import logging
import sys
from collections.abc import Mapping
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

from tracker.utils.general import JsonSafeType, convert_to_json_safe

_ROOT: str = "tracker"


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON objects.

    Keys: ``ts``, ``level``, ``logger``, ``msg``, plus ``context`` for
    caller-supplied fields and ``exc`` for a traceback.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, JsonSafeType] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        context = {
            key: convert_to_json_safe(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if context:
            entry["context"] = context

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exc"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False, default=str)


def _qualify(name: str) -> str:
    if name == _ROOT or name.startswith(_ROOT + "."):
        return name
    return f"{_ROOT}.{name}"


class StructuredLogger:
    """Injectable logger with optional bound context.

    Constructing one attaches the JSON handlers to ``tracker.<name>`` the
    first time that name is seen.  :meth:`bind` returns a sibling that
    shares the handlers and adds fixed context fields.
    """

    def __init__(
        self,
        name: str = _ROOT,
        level: Optional[int] = None,
        stream: Union[TextIO, None] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Lazy import: config logs through the stdlib logger on load.
        from tracker.config import get_config
        cfg = get_config()

        resolved_level: int = (
            level if level is not None else logging.getLevelName(cfg.LOG_LEVEL.upper())
        )
        self._context: dict[str, object] = {}
        self._logger: logging.Logger = logging.getLogger(_qualify(name))
        self._logger.setLevel(resolved_level)
        # Each tracker logger owns its handlers; parents would duplicate lines.
        self._logger.propagate = False

        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        stream_handler = logging.StreamHandler(stream or sys.stdout)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        path = Path(log_file or cfg.LOG_FILE)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Could not open log file '%s': %s. Logging to the console only.", path, exc,
            )
            return
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying ``logging.Logger`` directly."""
        return self._logger

    @property
    def context(self) -> Mapping[str, object]:
        return dict(self._context)

    def bind(self, **context: object) -> "StructuredLogger":
        """Return a logger that adds *context* to every record."""
        bound = object.__new__(StructuredLogger)
        bound._logger = self._logger
        bound._context = {**self._context, **context}
        return bound

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.CRITICAL, msg, args, kwargs)

    def _log(
        self, level: int, msg: str, args: tuple[object, ...], kwargs: dict[str, object],
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if self._context:
            extra = kwargs.get("extra")
            kwargs["extra"] = {**self._context, **(extra if isinstance(extra, Mapping) else {})}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)  # type: ignore[arg-type]


def get_logger(name: str = _ROOT) -> StructuredLogger:
    """Create and return a ``StructuredLogger`` for ``tracker.<name>``."""
    return StructuredLogger(name=name)
