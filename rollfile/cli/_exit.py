from __future__ import annotations

# Process exit codes shared by all subcommands.
OK = 0
USER_ERR = 2
IO_ERR = 3

__all__ = ["OK", "USER_ERR", "IO_ERR"]
