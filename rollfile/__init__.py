"""rollfile: a size- and time-rotated file writer.

Public API: `RollingFile`, `RollingConfig`, `load_config`, and the error
classes in `rollfile.errors`. This module also resolves `__version__`
from installed metadata.

    >>> from rollfile import RollingFile
    >>> log = RollingFile(filename="/var/log/app/server.log", max_size=500,
    ...                   max_backups=3, max_age=28, compress=True)
"""
from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as _pkg_version

from . import errors as errors  # re-export for star-import; noqa: F401
from .clock import Clock, SystemClock
from .io.config import RollingConfig, load_config, validate_config
from .writer import RollingFile


def _version_from_metadata() -> str | None:
    try:
        return _pkg_version("rollfile")
    except PackageNotFoundError:
        return None


__version__ = _version_from_metadata() or "0+unknown"

# Star-export surface (deterministic ordering).
__all__ = [
    "Clock",
    "RollingConfig",
    "RollingFile",
    "SystemClock",
    "__version__",
    "errors",
    "load_config",
    "validate_config",
]
