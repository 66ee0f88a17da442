# rollfile/__main__.py
from __future__ import annotations

# Delegate to the real CLI entrypoint.
from rollfile.cli.main import main as _cli_main

if __name__ == "__main__":
    raise SystemExit(_cli_main())
