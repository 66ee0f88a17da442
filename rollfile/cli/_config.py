"""Where the CLI looks for a rollfile YAML file when ``--config`` is absent."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Mapping, Optional

ENV_VAR = "ROLLFILE_CONFIG"
CONFIG_NAME = "rollfile.yaml"

__all__ = ["ENV_VAR", "CONFIG_NAME", "config_candidates", "find_config"]


def config_candidates(cwd: Path, env: Mapping[str, str]) -> List[Path]:
    """Search order: ``$ROLLFILE_CONFIG``, ``./configs/rollfile.yaml``, then
    ``rollfile.yaml`` under ``$XDG_CONFIG_HOME/rollfile`` (``~/.config``)."""
    out: List[Path] = []
    if env.get(ENV_VAR):
        out.append(Path(env[ENV_VAR]).expanduser())
    out.append(cwd / "configs" / CONFIG_NAME)
    xdg = env.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    out.append(Path(xdg).expanduser() / "rollfile" / CONFIG_NAME)
    return out


def find_config(
    explicit: Optional[str] = None,
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[Path]:
    """The config file to load, or None for built-in defaults.

    An explicit path is returned as given, existing or not; `load_config`
    reports a missing one.
    """
    if explicit:
        return Path(explicit).expanduser()
    for path in config_candidates(cwd or Path.cwd(), os.environ if env is None else env):
        if path.is_file():
            return path
    return None
