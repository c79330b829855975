"""
fee_sharing.config — environment-driven settings.

Variables (all optional):

    FEE_SHARING_DB             store URI (default memory://)
    FEE_SHARING_LOG_LEVEL      DEBUG | INFO | WARNING | ERROR | CRITICAL (default INFO)
    FEE_SHARING_LOG_FORMAT     json | text (default: json unless stderr is a TTY)
    FEE_SHARING_EMIT_EVENTS    boolean, e.g. 1/0 or on/off (default on)
    FEE_SHARING_MAX_PAYLOAD    relay payload cap: 1024, 1KiB, 2kb ... (default 1KiB)
    FEE_SHARING_MAX_RESOURCES  relay resource cap (default 64)

`load_config(env=..., overrides=...)` builds a fresh value, which is what tests
use. `get_config()` caches the process-wide one.
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Union

ENV_PREFIX = "FEE_SHARING_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")

# Smallest payload that still holds the 8-byte operation tag.
MIN_PAYLOAD_BYTES = 8


@dataclass(frozen=True)
class FeatureFlags:
    emit_events: bool = True


@dataclass(frozen=True)
class RelayLimits:
    max_payload_bytes: int = 1024
    max_resources: int = 64

    def __post_init__(self) -> None:
        if self.max_payload_bytes < MIN_PAYLOAD_BYTES:
            raise ValueError(f"max_payload_bytes must be at least {MIN_PAYLOAD_BYTES}")
        if self.max_resources < 1:
            raise ValueError("max_resources must be positive")


@dataclass(frozen=True)
class LogSettings:
    level: str = "INFO"
    fmt: Optional[str] = None  # None: pick by TTY

    def __post_init__(self) -> None:
        if self.level not in LOG_LEVELS:
            raise ValueError(f"invalid log level: {self.level!r}")
        if self.fmt is not None and self.fmt not in LOG_FORMATS:
            raise ValueError(f"invalid log format: {self.fmt!r}")


@dataclass(frozen=True)
class FeeSharingConfig:
    db_uri: str = "memory://"
    log: LogSettings = LogSettings()
    features: FeatureFlags = FeatureFlags()
    limits: RelayLimits = RelayLimits()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# --- parsing -----------------------------------------------------------------

_SIZE = re.compile(r"(?i)^\s*(\d+)\s*(b|kb|kib|mb|mib)?\s*$")
_SIZE_MULT = {"b": 1, "kb": 10**3, "kib": 2**10, "mb": 10**6, "mib": 2**20}


def parse_size(value: Union[str, int]) -> int:
    """Bytes from an int or a string such as "4096", "1KiB" or "2kb"."""
    if isinstance(value, int):
        if value < 0:
            raise ValueError("size must be non-negative")
        return value
    m = _SIZE.match(value)
    if m is None:
        raise ValueError(f"invalid size: {value!r}")
    return int(m.group(1)) * _SIZE_MULT[(m.group(2) or "b").lower()]


def parse_bool(value: Union[str, bool, int], default: bool = False) -> bool:
    if isinstance(value, (bool, int)):
        return bool(value)
    v = value.strip().lower()
    if not v:
        return default
    if v in ("1", "true", "t", "yes", "y", "on"):
        return True
    if v in ("0", "false", "f", "no", "n", "off"):
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Union[str, int, bool]]] = None,
) -> FeeSharingConfig:
    """
    Read settings from `env` (default `os.environ`).

    `overrides` takes precedence over the environment. Recognized keys are
    db_uri, log_level, log_format, emit_events, max_payload_bytes and
    max_resources. Invalid values raise ValueError.
    """
    source = os.environ if env is None else env
    given = dict(overrides or {})

    def pick(key: str, var: str, default: Any) -> Any:
        if key in given:
            return given[key]
        return source.get(ENV_PREFIX + var, default)

    fmt = pick("log_format", "LOG_FORMAT", None)
    return FeeSharingConfig(
        db_uri=str(pick("db_uri", "DB", "memory://")),
        log=LogSettings(
            level=str(pick("log_level", "LOG_LEVEL", "INFO")).upper(),
            fmt=None if fmt is None else str(fmt).lower(),
        ),
        features=FeatureFlags(emit_events=parse_bool(pick("emit_events", "EMIT_EVENTS", True), default=True)),
        limits=RelayLimits(
            max_payload_bytes=parse_size(pick("max_payload_bytes", "MAX_PAYLOAD", 1024)),
            max_resources=int(pick("max_resources", "MAX_RESOURCES", 64)),
        ),
    )


@lru_cache(maxsize=1)
def get_config() -> FeeSharingConfig:
    return load_config()


def _human_size(n: int) -> str:
    if n and n % 2**20 == 0:
        return f"{n // 2**20}MiB"
    if n and n % 2**10 == 0:
        return f"{n // 2**10}KiB"
    return f"{n}B"


def summary(cfg: Optional[FeeSharingConfig] = None) -> str:
    """Compact one-line rendering, used by the CLI and at startup."""
    c = cfg or get_config()
    return (
        f"fee_sharing{{db={c.db_uri}, log={c.log.level}/{c.log.fmt or 'auto'}, "
        f"events={int(c.features.emit_events)}, payload={_human_size(c.limits.max_payload_bytes)}, "
        f"resources={c.limits.max_resources}}}"
    )


__all__ = [
    "FeatureFlags",
    "RelayLimits",
    "LogSettings",
    "FeeSharingConfig",
    "load_config",
    "get_config",
    "parse_size",
    "parse_bool",
    "summary",
]
