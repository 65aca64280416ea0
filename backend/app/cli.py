"""Management CLI.

Usage:
    python -m app.cli migrate           # Run Alembic upgrade head
    python -m app.cli verify-ledgers    # Replay every customer's running balance
"""

import subprocess
import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.ledger_entry import LedgerEntry
from app.services.ledger import replay_balances


def migrate() -> int:
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        capture_output=True, text=True,
    )
    if result.returncode != 0:
        print(f"  FAILED: {result.stderr}")
    else:
        print("  OK")
    return result.returncode


def verify_ledgers() -> int:
    """Exit status 1 when any customer's stored balances disagree with a replay."""
    engine = create_engine(settings.database_url_sync)
    broken = 0
    with Session(engine) as session:
        user_ids = session.execute(
            select(LedgerEntry.user_id).distinct().order_by(LedgerEntry.user_id)
        ).scalars().all()
        for user_id in user_ids:
            entries = session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.user_id == user_id)
                .order_by(LedgerEntry.transaction_date, LedgerEntry.sequence)
            ).scalars().all()
            mismatches = replay_balances(entries)
            if mismatches:
                broken += 1
                first = mismatches[0]
                print(
                    f"  {user_id}: {len(mismatches)} mismatch(es), first at sequence "
                    f"{first.sequence} (expected {first.expected}, stored {first.stored})"
                )
            else:
                print(f"  {user_id}: OK ({len(entries)} entries)")

    print(f"\n{len(user_ids)} ledger(s) checked, {broken} inconsistent")
    return 1 if broken else 0


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "migrate":
        sys.exit(migrate())
    elif cmd == "verify-ledgers":
        sys.exit(verify_ledgers())
    else:
        print("Usage: python -m app.cli [migrate|verify-ledgers]")
