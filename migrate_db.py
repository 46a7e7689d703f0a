#!/usr/bin/env python
"""
Database migration script for the billing schema

Usage: python migrate_db.py [upgrade [revision]|downgrade [revision]|current]
"""
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

ALEMBIC_INI = str(Path(__file__).parent / "alembic.ini")


def upgrade_db(revision: str = "head"):
    """Apply billing migrations up to ``revision``"""
    print(f"Applying billing migrations up to {revision}...")
    command.upgrade(Config(ALEMBIC_INI), revision)
    print("✓ Billing schema is up to date")


def downgrade_db(revision: str = "-1"):
    """Roll back one migration (or to a specific revision)"""
    print(f"Rolling back billing schema to {revision}...")
    command.downgrade(Config(ALEMBIC_INI), revision)
    print("✓ Rollback completed")


def show_current_revision():
    """Print the applied and the latest available revision"""
    from workforce_billing.db.engine import engine

    head_rev = ScriptDirectory.from_config(Config(ALEMBIC_INI)).get_current_head()
    with engine.connect() as connection:
        current_rev = MigrationContext.configure(connection).get_current_revision()

    if current_rev:
        print(f"Applied revision: {current_rev}")
    else:
        print("No billing tables yet. Run: python migrate_db.py upgrade")
    print(f"Latest revision:  {head_rev}")


if __name__ == "__main__":
    action = sys.argv[1] if len(sys.argv) > 1 else "upgrade"
    target = sys.argv[2] if len(sys.argv) > 2 else None

    if action == "upgrade":
        upgrade_db(target or "head")
    elif action == "downgrade":
        downgrade_db(target or "-1")
    elif action == "current":
        show_current_revision()
    else:
        print(__doc__.strip().splitlines()[-1])
        sys.exit(1)
