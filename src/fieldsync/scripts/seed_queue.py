"""
Seed script: enqueue sample inspection mutations for local testing.

Usage:
    python -m fieldsync.scripts.seed_queue --count 20

Each record gets an INSERT; every third record is followed by an UPDATE and
every fifth by a DELETE, so a pass exercises all three operation kinds in
creation order.
"""
import argparse
import logging
import uuid
from datetime import datetime, timezone

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

TABLES = ("inspections", "inspectionRecords", "workflows")


def seed(store, count: int) -> int:
    """Enqueue sample mutations. Returns the number of queue rows written."""
    from fieldsync.models.queue import SyncOperation

    written = 0
    for i in range(count):
        table = TABLES[i % len(TABLES)]
        record_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        fields = {"id": record_id, "name": f"Sample {table} {i}", "createdAt": now, "updatedAt": now}

        store.enqueue(table, record_id, SyncOperation.INSERT, fields)
        written += 1
        if i % 3 == 0:
            store.enqueue(
                table, record_id, SyncOperation.UPDATE,
                {"notes": f"Edited sample {i}", "updatedAt": datetime.now(timezone.utc).isoformat()},
            )
            written += 1
        if i % 5 == 0:
            store.enqueue(table, record_id, SyncOperation.DELETE, {"id": record_id})
            written += 1
    return written


def main() -> None:
    from fieldsync.db.engine import get_engine
    from fieldsync.queue.store import SyncQueueStore

    parser = argparse.ArgumentParser(description="Enqueue sample mutations")
    parser.add_argument(
        "--count",
        type=int,
        default=10,
        help="Number of sample records (default: 10)",
    )
    args = parser.parse_args()
    written = seed(SyncQueueStore(get_engine()), args.count)
    logger.info("Enqueued %d mutations", written)


if __name__ == "__main__":
    main()
