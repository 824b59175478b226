#!/usr/bin/env python3
"""Alembic migration helper for the bridge ledger.

Backs up the SQLite ledger before any upgrade or downgrade.

Usage:
    python scripts/alembic_migrate.py upgrade [head]
    python scripts/alembic_migrate.py downgrade [-1]
    python scripts/alembic_migrate.py current
    python scripts/alembic_migrate.py history
    python scripts/alembic_migrate.py <any other alembic command> [args]
"""

import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent

sys.path.insert(0, str(PROJECT_ROOT / "scripts"))

from backup import backup_before_migration


def run_alembic(*args) -> int:
    cmd = ["alembic", *args]
    print(f"Running: {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=PROJECT_ROOT).returncode


def main() -> int:
    if len(sys.argv) < 2:
        print(__doc__)
        return 1

    command, args = sys.argv[1], sys.argv[2:]

    if command in ("upgrade", "downgrade"):
        backup_before_migration()
        default = "head" if command == "upgrade" else "-1"
        return run_alembic(command, args[0] if args else default)
    if command == "history":
        return run_alembic("history", "--verbose")
    return run_alembic(command, *args)


if __name__ == "__main__":
    sys.exit(main())
