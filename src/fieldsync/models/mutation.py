"""
Typed view of a queued change.

A SyncQueueItem carries its operation as a string and its record as a JSON
blob. decode_mutation() turns that pair into one of Insert / Update / Delete
at the point where the engine hands it to a transport, so transports match on
the type instead of comparing operation strings.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from fieldsync.models.queue import SyncOperation, SyncQueueItem
from fieldsync.sync.errors import PayloadDecodeError


@dataclass(frozen=True)
class Insert:
    table_name: str
    record_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    operation = SyncOperation.INSERT


@dataclass(frozen=True)
class Update:
    table_name: str
    record_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    operation = SyncOperation.UPDATE


@dataclass(frozen=True)
class Delete:
    table_name: str
    record_id: str

    operation = SyncOperation.DELETE


Mutation = Union[Insert, Update, Delete]


def load_payload(item: SyncQueueItem) -> Dict[str, Any]:
    """Parse the item's JSON payload into a dict.

    Raises:
        PayloadDecodeError: if the payload is not valid JSON or not an object.
    """
    try:
        data = json.loads(item.payload)
    except (TypeError, ValueError) as exc:
        raise PayloadDecodeError(
            f"Invalid payload for {item.table_name}:{item.record_id}: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise PayloadDecodeError(
            f"Payload for {item.table_name}:{item.record_id} must be a JSON object, "
            f"got {type(data).__name__}"
        )
    return data


def decode_mutation(item: SyncQueueItem) -> Mutation:
    """Build the typed mutation for a queue row.

    Raises:
        PayloadDecodeError: on a malformed payload or unknown operation.
    """
    try:
        operation = SyncOperation(item.operation)
    except ValueError as exc:
        raise PayloadDecodeError(f"Unknown operation {item.operation!r}") from exc

    data = load_payload(item)
    if operation is SyncOperation.INSERT:
        return Insert(item.table_name, item.record_id, data)
    if operation is SyncOperation.UPDATE:
        return Update(item.table_name, item.record_id, data)
    return Delete(item.table_name, item.record_id)
