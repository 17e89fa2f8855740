"""CLI entry point for odflake."""

from __future__ import annotations

import sys

from odflake.cli import main

if __name__ == "__main__":
    sys.exit(main())
