from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

import yaml

from ..errors import ConfigError
from ..naming import DEFAULT_LAYOUT, validate_layout
from .fs import DEFAULT_FILE_MODE

__all__ = [
    "MEGABYTE",
    "DEFAULT_MAX_SIZE",
    "RollingConfig",
    "parse_duration",
    "validate_config",
    "load_config",
]

MEGABYTE = 1024 * 1024
# Cap, in size units, used when max_size is 0.
DEFAULT_MAX_SIZE = 100


@dataclass
class RollingConfig:
    filename: str = ""
    max_size: int = 0
    max_age: int = 0
    max_backups: int = 0
    local_time: bool = False
    compress: bool = False
    rotation_interval: float = 0.0  # seconds; 0 disables interval rotation
    rotate_at_minutes: List[int] = field(default_factory=list)
    rotate_at: List[str] = field(default_factory=list)
    backup_time_format: str = DEFAULT_LAYOUT
    append_time_after_ext: bool = False
    file_mode: int = DEFAULT_FILE_MODE
    size_unit: int = MEGABYTE
    schedule_poll_interval: float = 1.0

    @property
    def max_bytes(self) -> int:
        units = self.max_size if self.max_size > 0 else DEFAULT_MAX_SIZE
        return int(units) * int(self.size_unit)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---- small helpers --------------------------------------------------------

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, "d": 86400.0}


def parse_duration(v: Any) -> float:
    """Seconds from a number or a string such as ``"90s"``, ``"1h30m"``, ``"24h"``."""
    if isinstance(v, bool):
        raise ValueError(f"not a duration: {v!r}")
    if isinstance(v, (int, float)):
        return float(v)
    if not isinstance(v, str):
        raise ValueError(f"not a duration: {v!r}")
    s = v.strip().lower()
    if not s:
        raise ValueError("empty duration")
    try:
        return float(s)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(s):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(s):
        raise ValueError(f"not a duration: {v!r}")
    return total


def _bool(key: str, v: Any, errs: List[str]) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in {"1", "true", "yes", "on"}:
            return True
        if s in {"0", "false", "no", "off"}:
            return False
    errs.append(f"{key}: expected a boolean, got {v!r}")
    return False


def _non_negative_int(key: str, v: Any, errs: List[str]) -> int:
    if isinstance(v, bool):
        errs.append(f"{key}: expected an integer, got {v!r}")
        return 0
    try:
        out = int(v)
    except (TypeError, ValueError):
        errs.append(f"{key}: expected an integer, got {v!r}")
        return 0
    if out < 0:
        errs.append(f"{key}: must be >= 0, got {out}")
    return out


def _file_mode(v: Any, errs: List[str]) -> int:
    if isinstance(v, str):
        s = v.strip().lower()
        if s.startswith("0o"):
            s = s[2:]
        try:
            v = int(s, 8)
        except ValueError:
            errs.append(f"file_mode: expected an octal mode, got {v!r}")
            return DEFAULT_FILE_MODE
    if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= 0o7777:
        errs.append(f"file_mode: expected a permission mode, got {v!r}")
        return DEFAULT_FILE_MODE
    return v


def _rotate_at(v: Any, errs: List[str]) -> List[str]:
    if not isinstance(v, (list, tuple)):
        errs.append(f"rotate_at: expected a list of 'HH:MM' strings, got {v!r}")
        return []
    out: List[str] = []
    for item in v:
        # YAML 1.1 reads unquoted 10:00 as the base-60 integer 600.
        if isinstance(item, int) and not isinstance(item, bool):
            h, m = divmod(item, 60)
            item = f"{h:02d}:{m:02d}"
        out.append(item)
    return out


def _rotate_at_minutes(v: Any, errs: List[str]) -> List[int]:
    if not isinstance(v, (list, tuple)):
        errs.append(f"rotate_at_minutes: expected a list of minutes, got {v!r}")
        return []
    return list(v)


# ---- validation -----------------------------------------------------------

def validate_config(data: Optional[Mapping[str, Any]]) -> RollingConfig:
    """Build a RollingConfig from a plain mapping.

    Raises ConfigError listing every problem found. Out-of-range rotation
    marks are not problems; the scheduler drops them.
    """
    data = dict(data or {})
    errs: List[str] = []
    known = {f.name for f in fields(RollingConfig)}
    unknown = sorted(k for k in data if k not in known)
    if unknown:
        errs.append(f"unknown keys: {', '.join(map(str, unknown))}")

    cfg = RollingConfig()
    if "filename" in data:
        fn = data["filename"]
        if fn is None:
            fn = ""
        if isinstance(fn, os.PathLike):
            fn = os.fspath(fn)
        if not isinstance(fn, str):
            errs.append(f"filename: expected a string, got {fn!r}")
        else:
            cfg.filename = fn
    for key in ("max_size", "max_age", "max_backups"):
        if key in data:
            setattr(cfg, key, _non_negative_int(key, data[key], errs))
    for key in ("local_time", "compress", "append_time_after_ext"):
        if key in data:
            setattr(cfg, key, _bool(key, data[key], errs))
    if "rotation_interval" in data:
        try:
            cfg.rotation_interval = parse_duration(data["rotation_interval"])
        except ValueError as e:
            errs.append(f"rotation_interval: {e}")
        else:
            if cfg.rotation_interval < 0:
                errs.append("rotation_interval: must be >= 0")
    if "rotate_at_minutes" in data:
        cfg.rotate_at_minutes = _rotate_at_minutes(data["rotate_at_minutes"], errs)
    if "rotate_at" in data:
        cfg.rotate_at = _rotate_at(data["rotate_at"], errs)
    if "backup_time_format" in data:
        try:
            cfg.backup_time_format = validate_layout(data["backup_time_format"])
        except ConfigError as e:
            errs.append(str(e))
    if "file_mode" in data:
        cfg.file_mode = _file_mode(data["file_mode"], errs)
    if "size_unit" in data:
        cfg.size_unit = _non_negative_int("size_unit", data["size_unit"], errs)
        if cfg.size_unit == 0:
            errs.append("size_unit: must be > 0")
    if "schedule_poll_interval" in data:
        try:
            cfg.schedule_poll_interval = parse_duration(data["schedule_poll_interval"])
        except ValueError as e:
            errs.append(f"schedule_poll_interval: {e}")
        else:
            if cfg.schedule_poll_interval <= 0:
                errs.append("schedule_poll_interval: must be > 0")

    if errs:
        raise ConfigError("; ".join(errs))
    return cfg


# ---- loader ---------------------------------------------------------------

def load_config(path: Optional[str] = None) -> RollingConfig:
    """Load a YAML config file; no path means all defaults.

    The file holds a flat mapping of RollingConfig field names. An empty
    file yields the defaults.
    """
    if not path:
        return RollingConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return validate_config(data)
