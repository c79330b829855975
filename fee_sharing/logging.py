"""
fee_sharing.logging — structured logging on top of the stdlib.

Every record carries the fields bound in the current context (a `ContextVar`,
so threads and tasks do not see each other's fields). The program opens a
`trace_scope` per command and binds `command`, `fee_vault` and `caller`:

    from fee_sharing import logging as flog

    flog.configure(json=False, level="DEBUG")
    log = flog.get_logger(__name__)
    with flog.trace_scope(command="claim_fee", fee_vault=addr):
        log.info("fee claimed", extra={"amount": 1000})

Two output shapes:

    json  {"ts":..., "level":"INFO", "logger":..., "msg":..., "trace_id":..., "amount":1000}
    text  2026-01-05T12:34:56.789+00:00 | INFO  | fee_sharing.program | trace_id=.. command=.. amount=1000 | fee claimed

Values are rendered log-safe: bytes become hex, enums their name.
"""

from __future__ import annotations

import json as _json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import IO, Any, Dict, Iterator, Optional, Union

_fields: ContextVar[Dict[str, Any]] = ContextVar("fee_sharing_log_fields", default={})

# Printed first, in this order, by the text formatter.
CONTEXT_ORDER = ("trace_id", "component", "command", "fee_vault", "caller")

# Attributes every LogRecord has; anything else came in through `extra`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


def loggable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (list, tuple)):
        return [loggable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): loggable(v) for k, v in value.items()}
    if is_dataclass(value) and not isinstance(value, type):
        return loggable(asdict(value))
    return str(value)


# --- context -------------------------------------------------------------------


def context() -> Dict[str, Any]:
    """Copy of the fields bound in the current context."""
    return dict(_fields.get())


def bind(**fields: Any) -> None:
    _fields.set({**_fields.get(), **{k: loggable(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _fields.set({k: v for k, v in _fields.get().items() if k not in keys})


def clear_context() -> None:
    _fields.set({})


@contextmanager
def trace_scope(trace_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """
    Bind `fields` plus a trace id for the duration of the block.

    Nested scopes inherit the outer trace id unless one is passed. The context
    seen before entering is restored on exit.
    """
    token = _fields.set(dict(_fields.get()))
    try:
        tid = trace_id or _fields.get().get("trace_id") or uuid.uuid4().hex[:12]
        bind(trace_id=tid, **fields)
        yield tid
    finally:
        _fields.reset(token)


# --- formatting ----------------------------------------------------------------


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    out = context()
    for k, v in vars(record).items():
        if k not in _RECORD_ATTRS and not k.startswith("_") and k not in out:
            out[k] = loggable(v)
    return out


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds")


def _traceback(record: logging.LogRecord) -> Optional[str]:
    if not record.exc_info:
        return None
    return "".join(traceback.format_exception(*record.exc_info)).rstrip()


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in _record_fields(record).items():
            doc.setdefault(k, v)
        err = _traceback(record)
        if err:
            doc["err"] = err
        return _json.dumps(doc, separators=(",", ":"), default=str)


_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;35m",
}
_RESET = "\x1b[0m"


class TextFormatter(logging.Formatter):
    """One line per record; the level is colored when writing to a terminal."""

    def __init__(self, color: bool = False) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        ordered = [k for k in CONTEXT_ORDER if fields.get(k) is not None]
        ordered += [k for k in fields if k not in CONTEXT_ORDER]
        level = f"{record.levelname:<5}"
        if self.color:
            level = _COLORS.get(record.levelno, "") + level + _RESET
        parts = [_timestamp(record), level, record.name]
        if ordered:
            parts.append(" ".join(f"{k}={fields[k]}" for k in ordered))
        parts.append(record.getMessage())
        line = " | ".join(parts)
        err = _traceback(record)
        return line + "\n" + err if err else line


# --- setup ---------------------------------------------------------------------


def _is_tty(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int] = "INFO",
    stream: Optional[IO[str]] = None,
) -> None:
    """
    Replace the root logger's handlers with one stream handler.

    With `json=None` the format comes from FEE_SHARING_LOG_FORMAT, falling back
    to text on a terminal and JSON otherwise.
    """
    out = sys.stderr if stream is None else stream
    if json is None:
        env = os.environ.get("FEE_SHARING_LOG_FORMAT", "").strip().lower()
        json = env == "json" if env in ("json", "text") else not _is_tty(out)
    lvl = level if isinstance(level, int) else logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        raise ValueError(f"unknown log level: {level!r}")

    handler = logging.StreamHandler(out)
    color = _is_tty(out) and "NO_COLOR" not in os.environ
    handler.setFormatter(JSONFormatter() if json else TextFormatter(color=color))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(lvl)


def configure_from_config(cfg: Any, *, stream: Optional[IO[str]] = None) -> None:
    """Apply the `log` section of a FeeSharingConfig."""
    fmt = cfg.log.fmt
    configure(json=None if fmt is None else fmt == "json", level=cfg.log.level, stream=stream)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "fee_sharing")


class FieldsAdapter(logging.LoggerAdapter):
    """Adds fixed fields to every call; call-site `extra` wins on clashes."""

    def process(self, msg: Any, kwargs: Any) -> Any:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def with_fields(logger: logging.Logger, **fields: Any) -> FieldsAdapter:
    return FieldsAdapter(logger, {k: loggable(v) for k, v in fields.items()})


__all__ = [
    "context",
    "bind",
    "unbind",
    "clear_context",
    "trace_scope",
    "loggable",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "configure_from_config",
    "get_logger",
    "with_fields",
    "FieldsAdapter",
]
