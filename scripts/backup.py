#!/usr/bin/env python3
"""Bridge ledger backup utility.

Copies the SQLite ledger to a timestamped file and prunes old copies.
The ledger is the only record of locked value, so take a copy before
every schema change.

Usage:
    python scripts/backup.py [--keep N] [--list] [--restore FILE]
"""

import argparse
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

load_dotenv()

from htlcbridge.config import get_settings

BACKUP_DIR = Path("data/backups")
JOURNAL_SUFFIXES = ("-wal", "-shm")


def ledger_path() -> Optional[Path]:
    """Path of the SQLite ledger file, or None for other databases."""
    url = get_settings().database_url
    if not url.startswith("sqlite") or ":memory:" in url:
        return None
    return Path(url.split(":///", 1)[-1])


def _copy_with_journal(source: Path, target: Path) -> None:
    shutil.copy2(source, target)
    for suffix in JOURNAL_SUFFIXES:
        journal = Path(str(source) + suffix)
        if journal.exists():
            shutil.copy2(journal, Path(str(target) + suffix))


def create_backup(prefix: str = "htlcbridge") -> Optional[Path]:
    """Copy the ledger to BACKUP_DIR. Returns None if there is nothing to copy."""
    db_path = ledger_path()
    if db_path is None or not db_path.exists():
        print(f"No ledger file to back up ({db_path})")
        return None

    BACKUP_DIR.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = BACKUP_DIR / f"{prefix}_{timestamp}.db"
    _copy_with_journal(db_path, backup_path)
    print(f"Created backup: {backup_path}")
    return backup_path


def backup_before_migration() -> Optional[Path]:
    return create_backup(prefix="pre_migration")


def _backups() -> list[Path]:
    if not BACKUP_DIR.exists():
        return []
    return sorted(BACKUP_DIR.glob("*.db"), key=lambda p: p.stat().st_mtime, reverse=True)


def rotate_backups(keep: int = 10) -> None:
    """Remove all but the ``keep`` most recent backups."""
    for old in _backups()[keep:]:
        print(f"Removing old backup: {old.name}")
        old.unlink()
        for suffix in JOURNAL_SUFFIXES:
            Path(str(old) + suffix).unlink(missing_ok=True)


def list_backups() -> None:
    backups = _backups()
    if not backups:
        print("No backups found.")
        return
    for backup in backups:
        size = backup.stat().st_size / 1024
        mtime = datetime.fromtimestamp(backup.stat().st_mtime)
        print(f"  {backup.name}  {size:.1f} KB  {mtime:%Y-%m-%d %H:%M:%S}")


def restore_backup(backup_file: str) -> bool:
    """Restore the ledger, keeping a copy of the current one first."""
    db_path = ledger_path()
    if db_path is None:
        print("Configured database is not a SQLite file")
        return False

    backup_path = Path(backup_file)
    if not backup_path.exists():
        backup_path = BACKUP_DIR / backup_file
    if not backup_path.exists():
        print(f"Backup not found: {backup_file}")
        return False

    if db_path.exists():
        create_backup(prefix="pre_restore")
    _copy_with_journal(backup_path, db_path)
    print(f"Restored ledger from: {backup_path.name}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Bridge ledger backup utility")
    parser.add_argument("--keep", type=int, default=10, help="Keep only N most recent backups")
    parser.add_argument("--restore", type=str, help="Restore from backup file")
    parser.add_argument("--list", action="store_true", help="List available backups")
    args = parser.parse_args()

    if args.list:
        list_backups()
    elif args.restore:
        sys.exit(0 if restore_backup(args.restore) else 1)
    else:
        create_backup()
        rotate_backups(args.keep)


if __name__ == "__main__":
    main()
