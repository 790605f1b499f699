"""Append-only activity trail stored on each protocol row.

Entries are only ever appended; nothing here rewrites or reorders an
existing log.
"""
import json
import logging
from typing import Any, List, Optional

from pydantic import ValidationError as SchemaError

from src.protocols.models import ActivityAction, ProtocolStatus
from src.protocols.schemas import ActivityLogEntry, NewLogEntry, StoredLogEntry
from src.shared.models import new_id

logger = logging.getLogger(__name__)

AUTOMATED_QUEUE_LABEL = "the automated queue"


def recover_activity_log(raw: Optional[str], protocol_id: str) -> List[StoredLogEntry]:
    """Parse a stored log, substituting an empty one only when it is not JSON.

    This is the only local recovery the core performs: the record stays
    reachable and the next write appends fresh entries to the empty log.
    Entries that parse but do not match ``ActivityLogEntry`` are kept as
    stored.
    """
    try:
        parsed = json.loads(raw or "[]")
    except json.JSONDecodeError:
        logger.warning("Corrupt activity log on protocol %s; continuing with an empty log", protocol_id)
        return []
    if not isinstance(parsed, list):
        logger.warning("Corrupt activity log on protocol %s; continuing with an empty log", protocol_id)
        return []

    entries: List[StoredLogEntry] = []
    for position, item in enumerate(parsed):
        try:
            entries.append(ActivityLogEntry.model_validate(item))
        except SchemaError as exc:
            logger.warning(
                "Activity log entry %d on protocol %s is off-schema (%d errors); keeping it as stored",
                position,
                protocol_id,
                exc.error_count(),
            )
            entries.append(item)
    return entries


def _stored(entry: Any) -> Any:
    if isinstance(entry, ActivityLogEntry):
        return entry.model_dump(mode="json", by_alias=True)
    return entry


def serialize_activity_log(entries: List[StoredLogEntry]) -> str:
    return json.dumps([_stored(entry) for entry in entries], ensure_ascii=False)


def make_entry(
    action: ActivityAction,
    description: str,
    timestamp: str,
    performed_by: Optional[str] = None,
    performed_by_id: Optional[int] = None,
    details: Optional[str] = None,
) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=new_id(),
        timestamp=timestamp,
        action=action,
        description=description,
        performed_by=performed_by,
        performed_by_id=performed_by_id,
        details=details,
    )


def entry_from_request(entry: NewLogEntry, timestamp: str) -> ActivityLogEntry:
    """Stamp a caller-supplied entry. The caller's timestamp is never trusted."""
    return ActivityLogEntry(
        id=entry.id or new_id(),
        timestamp=timestamp,
        action=entry.action,
        description=entry.description,
        performed_by=entry.performed_by,
        performed_by_id=entry.performed_by_id,
        details=entry.details,
    )


def queue_label(assignee: Optional[str]) -> str:
    return f"queue {assignee}" if assignee else AUTOMATED_QUEUE_LABEL


def creation_description(assigned_to: Optional[str]) -> str:
    if assigned_to:
        return f"Protocol created and assigned to queue {assigned_to}"
    return f"Protocol created in {AUTOMATED_QUEUE_LABEL}"


def status_change_description(new_status: ProtocolStatus) -> str:
    if new_status == ProtocolStatus.FILED:
        return "Protocol filed successfully"
    return f"Status changed to {new_status.value}"


def queue_move_description(old_assignee: Optional[str], new_assignee: Optional[str]) -> str:
    return f"Moved from {queue_label(old_assignee)} to {queue_label(new_assignee)}"
