"""Last-write-wins conflict resolution between a queued change and the remote copy."""
import logging
from datetime import datetime, timezone
from typing import Literal, Union

from fieldsync.models.mutation import load_payload
from fieldsync.models.queue import SyncQueueItem
from fieldsync.sync.errors import PayloadDecodeError

logger = logging.getLogger(__name__)

Winner = Literal["local", "remote"]
Timestamp = Union[str, int, float, datetime]


def to_utc(value: Timestamp) -> datetime:
    """Parse an ISO-8601 string, epoch milliseconds or datetime into aware UTC.

    Naive values are taken to be UTC already. A trailing "Z" is accepted.

    Raises:
        TypeError: unsupported type (bool included).
        ValueError: unparseable string or out-of-range number.
    """
    if isinstance(value, bool):
        raise TypeError(f"Unsupported timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    elif not isinstance(value, datetime):
        raise TypeError(f"Unsupported timestamp: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_updated_at(item: SyncQueueItem) -> datetime:
    """The local change's timestamp: payload updatedAt, else the enqueue time."""
    try:
        data = load_payload(item)
    except PayloadDecodeError:
        data = {}
    stamp = data.get("updatedAt") or data.get("updated_at")
    if stamp:
        try:
            return to_utc(stamp)
        except (TypeError, ValueError):
            logger.warning(
                "Unparseable updatedAt %r on %s:%s, using created_at",
                stamp, item.table_name, item.record_id,
            )
    return to_utc(item.created_at)


def resolve_conflict(item: SyncQueueItem, remote_updated_at: Timestamp) -> Winner:
    """
    Decide which side of a conflict to keep.

    The local side wins only when its timestamp is strictly later than the
    remote one; equal timestamps keep the remote copy.
    """
    local_time = local_updated_at(item)
    remote_time = to_utc(remote_updated_at)
    if local_time > remote_time:
        logger.info(
            "Conflict resolved: local wins (%s > %s)",
            local_time.isoformat(), remote_time.isoformat(),
        )
        return "local"
    logger.info(
        "Conflict resolved: remote wins (%s >= %s)",
        remote_time.isoformat(), local_time.isoformat(),
    )
    return "remote"
