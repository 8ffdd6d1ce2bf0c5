"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so that every PiggyPost log
line reads ``level name event key=value ...``. Event names are snake_case
identifiers (``session_connected``, ``decrypt_failed``) and context travels
as keyword arguments rather than being interpolated into the message.

Values containing spaces, equals signs, or quotes are escaped and wrapped in
double quotes. Long values (ciphertexts, raw frames) are truncated to a
configurable maximum length.

[StructuredFormatter][piggypost.core.logger.StructuredFormatter] reads the
``structured_kv`` extra attached by [Logger][piggypost.core.logger.Logger];
installed on the root handler by
[setup_logging()][piggypost.core.logger.setup_logging], it also formats plain
``logging.getLogger(__name__)`` calls from the utils and nips layers.

Examples:
    ```python
    from piggypost.core.logger import Logger

    logger = Logger("session")
    logger.info("session_connected", url="wss://relay.example.com")
    # Output: info session session_connected url=wss://relay.example.com

    json_logger = Logger("session", json_output=True)
    json_logger.info("session_connected", url="wss://relay.example.com")
    # Output: {"ts": "...", "level": "info", "component": "session", ...}
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def _truncate(value: str, max_value_length: int | None) -> str:
    if max_value_length and len(value) > max_value_length:
        return value[:max_value_length] + f"...<truncated {len(value) - max_value_length} chars>"
    return value


_NEEDS_QUOTING = frozenset(" =\"'")


def _kv_token(key: str, value: Any, max_value_length: int | None) -> str:
    text = _truncate(str(value), max_value_length)
    if text and _NEEDS_QUOTING.isdisjoint(text):
        return f"{key}={text}"
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'{key}="{escaped}"'


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Render *kwargs* as ``key=value`` tokens joined by spaces.

    Empty values and values containing spaces, ``=`` or quotes are
    double-quoted with backslash escaping. ``max_value_length=None`` keeps
    values whole. An empty mapping renders as ``""`` without the prefix.
    """
    if not kwargs:
        return ""
    return prefix + " ".join(_kv_token(k, v, max_value_length) for k, v in kwargs.items())


def _json_line(
    when: datetime.datetime, level: str, component: str, event: str, fields: dict[str, Any]
) -> dict[str, Any]:
    return {
        "ts": when.isoformat(),
        "level": level,
        "component": component,
        "message": event,
        **fields,
    }


class StructuredFormatter(logging.Formatter):
    """Root formatter producing ``level component event key=value ...`` lines.

    In JSON mode a record becomes one object with ``ts``, ``level``,
    ``component``, ``message``, the structured fields and, when present,
    ``exception``.
    """

    def __init__(self, *, json_output: bool = False) -> None:
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = getattr(record, "structured_kv", {})
        level = record.levelname.lower()
        traceback = self.formatException(record.exc_info) if record.exc_info else None

        if self._json_output:
            when = datetime.datetime.fromtimestamp(record.created, datetime.UTC)
            payload = _json_line(when, level, record.name, record.getMessage(), fields)
            if traceback:
                payload["exception"] = traceback
            return json.dumps(payload, default=str)

        line = f"{level} {record.name} {record.getMessage()}{format_kv_pairs(fields)}"
        return f"{line}\n{traceback}" if traceback else line


class Logger:
    """Logger whose level methods take context as keyword arguments.

    Keyword arguments travel on the record as ``structured_kv`` and are
    rendered by [StructuredFormatter][piggypost.core.logger.StructuredFormatter].

    Examples:
        ```python
        logger = Logger("messenger")
        logger.warning("decrypt_failed", sender="ab12...", error="mac mismatch")
        ```
    """

    MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
    ) -> None:
        """
        Args:
            name: Component name, used as the stdlib logger name.
            json_output: Pre-render each message as a JSON line instead of
                attaching fields for the formatter.
            max_value_length: Per-value truncation limit for string fields.
        """
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            max_value_length if max_value_length is not None else self.MAX_VALUE_LENGTH
        )

    @property
    def name(self) -> str:
        return self._logger.name

    def _clip(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        return {
            k: _truncate(v, self._max_value_length) if isinstance(v, str) else v
            for k, v in kwargs.items()
        }

    def _render_json(self, event: str, level: int, kwargs: dict[str, Any]) -> str:
        now = datetime.datetime.now(datetime.UTC)
        level_name = logging.getLevelName(level).lower()
        return json.dumps(
            _json_line(now, level_name, self._logger.name, event, kwargs), default=str
        )

    def _log(
        self,
        level: int,
        msg: str,
        kwargs: dict[str, Any],
        *,
        exc_info: bool = False,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = self._clip(kwargs)
        if self._json_output:
            self._logger.log(level, self._render_json(msg, level, fields), exc_info=exc_info)
        elif fields:
            self._logger.log(level, msg, extra={"structured_kv": fields}, exc_info=exc_info)
        else:
            self._logger.log(level, msg, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR with the active traceback attached."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)


def setup_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Configure the root logger with structured formatting.

    Installs a [StructuredFormatter][piggypost.core.logger.StructuredFormatter]
    on a single root ``StreamHandler``, replacing handlers installed by an
    earlier call, so output from [Logger][piggypost.core.logger.Logger] and
    from plain ``logging.getLogger()`` calls is unified.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    logging.root.handlers = [handler]
    logging.root.setLevel(getattr(logging, level.upper()))
