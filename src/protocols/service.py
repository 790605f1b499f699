import logging
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncConnection

from src.database import Database
from src.protocols.activity import (
    creation_description,
    entry_from_request,
    make_entry,
    queue_move_description,
    recover_activity_log,
    status_change_description,
)
from src.protocols.models import ActivityAction, ProtocolStatus
from src.protocols.routing import MANUAL_REVIEW_QUEUE, route
from src.protocols.schemas import (
    LIFECYCLE_FIELDS,
    UPDATABLE_FIELDS,
    NewLogEntry,
    ProtocolDraft,
    ProtocolResponse,
    ProtocolUpdate,
    UpdateResult,
)
from src.protocols.store import ProtocolStore, hydrate
from src.shared.exceptions import InvalidTransition, NotFound, ValidationError
from src.shared.models import new_id, utc_now_iso

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"
DEFAULT_CREATOR_LABEL = "User"

VALID_TRANSITIONS = {
    ProtocolStatus.PENDING: {ProtocolStatus.FILED, ProtocolStatus.CANCELLED, ProtocolStatus.RETURNED},
    ProtocolStatus.RETURNED: {ProtocolStatus.PENDING, ProtocolStatus.CANCELLED},
    ProtocolStatus.FILED: set(),
    ProtocolStatus.CANCELLED: set(),
}

# Columns that accept an explicit null in a partial update
NULLABLE_FIELDS = frozenset({"assigned_to", "return_reason", "jurisdiction", "observations", "procuration_type"})


def check_transition(current: ProtocolStatus, new: ProtocolStatus) -> None:
    if new not in VALID_TRANSITIONS[current]:
        raise InvalidTransition(f"Invalid transition from {current.value} to {new.value}")


def _require_reason(reason: Optional[str]) -> None:
    if not reason or not reason.strip():
        raise ValidationError("A return reason is required")


class ProtocolService:
    def __init__(self, db: Database, clock: Callable[[], str] = utc_now_iso):
        self.db = db
        self.store = ProtocolStore(db)
        self.clock = clock

    async def create_protocol(
        self,
        draft: ProtocolDraft,
        created_by: Optional[int],
        created_by_email: Optional[str] = None,
        is_distribution: bool = False,
        is_resubmission: bool = False,
        previous_assignee: Optional[str] = None,
    ) -> ProtocolResponse:
        if not created_by:
            raise ValidationError("Creator employee id is required")

        assigned_to = route(draft, is_distribution, is_resubmission, previous_assignee)
        now = self.clock()
        created_entry = make_entry(
            ActivityAction.CREATED,
            creation_description(assigned_to),
            now,
            performed_by=created_by_email or DEFAULT_CREATOR_LABEL,
            performed_by_id=created_by,
        )
        values = {
            **draft.model_dump(include=set(ProtocolDraft.model_fields)),
            "id": new_id(),
            "observations": draft.observations or "",
            "status": ProtocolStatus.PENDING,
            "assigned_to": assigned_to,
            "return_reason": None,
            "queue_position": 1,
            "is_distribution": is_distribution,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
            "activity_log": [created_entry],
        }
        await self.store.insert(values)
        logger.info(
            "Protocol %s created in %s",
            values["id"],
            f"queue {assigned_to}" if assigned_to else "the automated queue",
        )
        return ProtocolResponse.model_validate({**values, "created_by_email": created_by_email})

    async def get_protocol(self, protocol_id: str) -> ProtocolResponse:
        row = await self._require(protocol_id)
        return ProtocolResponse.model_validate(hydrate(row))

    async def list_protocols(self) -> List[ProtocolResponse]:
        rows = await self.store.list_with_creator()
        return [ProtocolResponse.model_validate(hydrate(row)) for row in rows]

    async def list_queue(self, assignee: Optional[str]) -> List[ProtocolResponse]:
        """Pending protocols of one lane; ``None`` is the automated lane."""
        rows = await self.store.list_queue(assignee)
        return [ProtocolResponse.model_validate(hydrate(row)) for row in rows]

    async def update_protocol(self, protocol_id: str, changes: ProtocolUpdate) -> UpdateResult:
        """Partial update. Reopening a Returned protocol always goes through
        resubmission routing; a supplied ``assigned_to`` does not override it.
        Use ``move_to_queue`` for an explicit hand-off.
        """
        row = await self._require(protocol_id)
        return await self._write(row, changes)

    async def delete_protocol(self, protocol_id: str) -> UpdateResult:
        changes = await self.store.delete(protocol_id)
        if changes == 0:
            raise NotFound("Protocol not found")
        logger.info("Protocol %s deleted", protocol_id)
        return UpdateResult(changes=changes)

    async def move_to_queue(
        self,
        protocol_id: str,
        assignee: Optional[str],
        performed_by: Optional[str] = None,
        performed_by_id: Optional[int] = None,
    ) -> UpdateResult:
        """Explicit hand-off to another lane. The protocol goes back to Pending."""
        row = await self._require(protocol_id)
        return await self._write(
            row, self._move_changes(row, assignee, performed_by, performed_by_id), hand_off=True
        )

    async def move_many(
        self,
        protocol_ids: Sequence[str],
        assignee: Optional[str],
        performed_by: Optional[str] = None,
        performed_by_id: Optional[int] = None,
    ) -> UpdateResult:
        """Move several protocols in one transaction; a missing id aborts all of them."""
        ids = list(dict.fromkeys(protocol_ids))
        rows = {row["id"]: row for row in await self.store.fetch_many(ids)}
        missing = [protocol_id for protocol_id in ids if protocol_id not in rows]
        if missing:
            raise NotFound(f"Protocols not found: {', '.join(missing)}")

        now = self.clock()
        statements = [
            (
                protocol_id,
                self.store.update_statement(
                    protocol_id,
                    self._build_values(
                        rows[protocol_id],
                        self._move_changes(rows[protocol_id], assignee, performed_by, performed_by_id),
                        now,
                        hand_off=True,
                    ),
                ),
            )
            for protocol_id in ids
        ]

        async def work(conn: AsyncConnection) -> int:
            total = 0
            for protocol_id, statement in statements:
                result = await conn.execute(statement)
                if result.rowcount == 0:
                    raise NotFound(f"Protocol {protocol_id} disappeared during the move")
                total += result.rowcount
            return total

        return UpdateResult(changes=await self.db.run(work))

    async def return_protocol(
        self,
        protocol_id: str,
        reason: str,
        performed_by: Optional[str] = None,
        performed_by_id: Optional[int] = None,
        from_automated_lane: bool = False,
    ) -> UpdateResult:
        if from_automated_lane:
            return await self.return_to_manual_review(protocol_id, reason, performed_by, performed_by_id)
        _require_reason(reason)
        row = await self._require(protocol_id)
        actor = performed_by or SYSTEM_ACTOR
        changes = ProtocolUpdate(
            status=ProtocolStatus.RETURNED,
            return_reason=reason,
            assigned_to=None,
            new_log_entry=NewLogEntry(
                action=ActivityAction.RETURNED,
                description="Protocol returned",
                performed_by=actor,
                performed_by_id=performed_by_id,
                details=reason,
            ),
            performed_by=actor,
            performed_by_id=performed_by_id,
        )
        return await self._write(row, changes)

    async def return_to_manual_review(
        self,
        protocol_id: str,
        reason: str,
        performed_by: Optional[str] = None,
        performed_by_id: Optional[int] = None,
    ) -> UpdateResult:
        """Hand-back from the automated lane: stays Pending, moves to the manual queue."""
        _require_reason(reason)
        row = await self._require(protocol_id)
        if ProtocolStatus(row["status"]) != ProtocolStatus.PENDING:
            raise InvalidTransition("Only pending protocols can be handed back by the automated queue")
        actor = performed_by or SYSTEM_ACTOR
        # The row stays Pending and return_reason is reserved for Returned rows,
        # so the robot's reason is recorded only in the entry details.
        changes = ProtocolUpdate(
            assigned_to=MANUAL_REVIEW_QUEUE,
            new_log_entry=NewLogEntry(
                action=ActivityAction.RETURNED,
                description=f"Returned by the automated queue to queue {MANUAL_REVIEW_QUEUE}",
                performed_by=actor,
                performed_by_id=performed_by_id,
                details=reason,
            ),
            performed_by=actor,
            performed_by_id=performed_by_id,
        )
        return await self._write(row, changes)

    async def resubmit_protocol(
        self,
        protocol_id: str,
        corrections: ProtocolUpdate,
        performed_by: Optional[str] = None,
        performed_by_id: Optional[int] = None,
    ) -> UpdateResult:
        """Apply corrections to a Returned protocol and send it back to Pending."""
        row = await self._require(protocol_id)
        if ProtocolStatus(row["status"]) != ProtocolStatus.RETURNED:
            raise InvalidTransition("Only returned protocols can be resubmitted")

        supplied = corrections.model_dump(include={*UPDATABLE_FIELDS, "new_log_entry"}, exclude_unset=True)
        forbidden = sorted((LIFECYCLE_FIELDS | {"new_log_entry"}) & supplied.keys())
        if forbidden:
            raise ValidationError(f"Fields not allowed in a resubmission: {', '.join(forbidden)}")

        actor = performed_by or DEFAULT_CREATOR_LABEL
        changes = ProtocolUpdate(
            **supplied,
            status=ProtocolStatus.PENDING,
            new_log_entry=NewLogEntry(
                action=ActivityAction.RESUBMITTED,
                description="Protocol corrected and resubmitted",
                performed_by=actor,
                performed_by_id=performed_by_id,
            ),
            performed_by=actor,
            performed_by_id=performed_by_id,
        )
        return await self._write(row, changes)

    async def cancel_protocol(
        self,
        protocol_id: str,
        performed_by: Optional[str] = None,
        performed_by_id: Optional[int] = None,
    ) -> UpdateResult:
        row = await self._require(protocol_id)
        changes = ProtocolUpdate(
            status=ProtocolStatus.CANCELLED,
            performed_by=performed_by,
            performed_by_id=performed_by_id,
        )
        return await self._write(row, changes)

    async def _require(self, protocol_id: str) -> Dict[str, Any]:
        row = await self.store.fetch(protocol_id)
        if row is None:
            raise NotFound("Protocol not found")
        return row

    async def _write(
        self, row: Dict[str, Any], changes: ProtocolUpdate, hand_off: bool = False
    ) -> UpdateResult:
        values = self._build_values(row, changes, self.clock(), hand_off=hand_off)
        affected = await self.store.update(row["id"], values)
        # The row can vanish between the read and this write
        if affected == 0:
            raise NotFound("Protocol not found or no changes made")
        return UpdateResult(changes=affected)

    @staticmethod
    def _move_changes(
        row: Dict[str, Any],
        assignee: Optional[str],
        performed_by: Optional[str],
        performed_by_id: Optional[int],
    ) -> ProtocolUpdate:
        actor = performed_by or SYSTEM_ACTOR
        return ProtocolUpdate(
            assigned_to=assignee,
            status=ProtocolStatus.PENDING,
            new_log_entry=NewLogEntry(
                action=ActivityAction.MOVED_TO_QUEUE,
                description=queue_move_description(row["assigned_to"], assignee),
                performed_by=actor,
                performed_by_id=performed_by_id,
            ),
            performed_by=actor,
            performed_by_id=performed_by_id,
        )

    @staticmethod
    def _build_values(
        row: Dict[str, Any], changes: ProtocolUpdate, now: str, hand_off: bool = False
    ) -> Dict[str, Any]:
        """Column values for one update: supplied fields, refreshed log, new timestamp.

        ``hand_off`` marks an explicit queue move, whose assignee is kept even
        when it reopens a Returned protocol.
        """
        supplied = changes.model_dump(include=set(UPDATABLE_FIELDS), exclude_unset=True)
        for field, value in supplied.items():
            if value is None and field not in NULLABLE_FIELDS:
                raise ValidationError(f"{field} cannot be null")

        current_status = ProtocolStatus(row["status"])
        new_status = supplied.get("status", current_status)

        if supplied.get("return_reason") and new_status != ProtocolStatus.RETURNED:
            raise ValidationError("returnReason can only be set when the protocol is returned")
        if new_status != current_status:
            check_transition(current_status, new_status)

        log = recover_activity_log(row.get("activity_log"), row["id"])
        if changes.new_log_entry is not None:
            log.append(entry_from_request(changes.new_log_entry, now))

        if new_status != current_status:
            log.append(
                make_entry(
                    ActivityAction.STATUS_CHANGED,
                    status_change_description(new_status),
                    now,
                    performed_by=changes.performed_by or SYSTEM_ACTOR,
                    performed_by_id=changes.performed_by_id,
                )
            )
            logger.info(
                "Protocol %s: %s -> %s", row["id"], current_status.value, new_status.value
            )

            if current_status == ProtocolStatus.RETURNED and new_status == ProtocolStatus.PENDING:
                if not hand_off:
                    draft = SimpleNamespace(**{**row, **supplied})
                    supplied["assigned_to"] = route(
                        draft, is_resubmission=True, previous_assignee=row.get("assigned_to")
                    )
                supplied["return_reason"] = None

        return {**supplied, "activity_log": log, "updated_at": now}
