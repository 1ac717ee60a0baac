"""Recompute conversation unread counters from the message table."""

import argparse
import uuid

from app.core.constants import RECONCILIATION_BATCH_SIZE
from app.db.session import SessionLocal
from app.messaging.services.reconciliation_service import (
    ReconciliationResult,
    UnreadReconciliationService,
)


def _describe(result: ReconciliationResult) -> str:
    return (
        f"   {result.conversation_id}: "
        f"buyer {result.buyer_unread_before} -> {result.buyer_unread_after}, "
        f"seller {result.seller_unread_before} -> {result.seller_unread_after}"
    )


def reconcile_unread_counts(
    conversation_id: uuid.UUID | None = None,
    dry_run: bool = False,
    batch_size: int = RECONCILIATION_BATCH_SIZE,
) -> list[ReconciliationResult]:
    """Reconcile one conversation, or all of them, and print the counters that drifted."""
    db = SessionLocal()

    try:
        service = UnreadReconciliationService(db)
        print(f"{'[DRY RUN] ' if dry_run else ''}Reconciling unread counters...")

        if conversation_id is not None:
            result = service.reconcile(conversation_id, dry_run=dry_run)
            drifted = [result] if result.drifted else []
        else:
            drifted = service.reconcile_all(batch_size=batch_size, dry_run=dry_run)

        for result in drifted:
            print(_describe(result))

        print()
        print("=" * 60)
        if not drifted:
            print("All unread counters match the message table.")
        elif dry_run:
            print(f"{len(drifted)} conversation(s) drifted. Run without --dry-run to fix them.")
        else:
            print(f"Corrected {len(drifted)} conversation(s).")
        return drifted
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile conversation unread counters")
    parser.add_argument("--conversation-id", type=uuid.UUID, help="Only reconcile this conversation")
    parser.add_argument(
        "--dry-run", action="store_true", help="Report drift without writing changes"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=RECONCILIATION_BATCH_SIZE,
        help=f"Conversations per query (default: {RECONCILIATION_BATCH_SIZE})",
    )
    args = parser.parse_args()

    reconcile_unread_counts(
        conversation_id=args.conversation_id, dry_run=args.dry_run, batch_size=args.batch_size
    )


if __name__ == "__main__":
    main()
