import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError as SchemaError
from sqlalchemy import delete, insert, select, update
from sqlalchemy.sql import Select, Update

from src.database import Database
from src.employees.models import employee_table
from src.protocols.activity import recover_activity_log, serialize_activity_log
from src.protocols.models import ProtocolStatus, protocol_table
from src.protocols.schemas import FeeGuide, ProtocolDocument

logger = logging.getLogger(__name__)

JSON_LIST_FIELDS = ("guias", "documents")

_LIST_ITEM_ADAPTERS = {
    "guias": TypeAdapter(FeeGuide),
    "documents": TypeAdapter(ProtocolDocument),
}


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return value


def encode_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Turn service-level values into column values.

    Lists become JSON text and enums their stored string. Boolean flags are
    stored as 0/1 by the column type.
    """
    encoded = {}
    for key, value in values.items():
        if key in JSON_LIST_FIELDS:
            value = json.dumps([_plain(item) for item in (value or [])])
        elif key == "activity_log":
            value = serialize_activity_log(value)
        elif isinstance(value, Enum):
            value = value.value
        encoded[key] = value
    return encoded


def _json_list(raw: Optional[str], field: str, protocol_id: str) -> List[Any]:
    try:
        parsed = json.loads(raw or "[]")
    except json.JSONDecodeError:
        logger.warning("Unparseable %s on protocol %s; reading it as empty", field, protocol_id)
        return []
    if not isinstance(parsed, list):
        logger.warning("Unparseable %s on protocol %s; reading it as empty", field, protocol_id)
        return []

    adapter = _LIST_ITEM_ADAPTERS[field]
    items = []
    for position, item in enumerate(parsed):
        try:
            items.append(adapter.validate_python(item))
        except SchemaError as exc:
            logger.warning(
                "Skipping malformed %s item %d on protocol %s (%d errors)",
                field,
                position,
                protocol_id,
                exc.error_count(),
            )
    return items


def hydrate(row: Dict[str, Any]) -> Dict[str, Any]:
    """Materialize derived fields of a stored row: parsed lists and booleans."""
    protocol = dict(row)
    for field in JSON_LIST_FIELDS:
        protocol[field] = _json_list(row.get(field), field, row["id"])
    protocol["activity_log"] = recover_activity_log(row.get("activity_log"), row["id"])
    for flag in ("is_fatal", "needs_procuration", "needs_guia", "is_distribution"):
        protocol[flag] = bool(row.get(flag))
    protocol["jurisdiction"] = row.get("jurisdiction") or None
    return protocol


class ProtocolStore:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _with_creator() -> Select:
        return select(
            protocol_table,
            employee_table.c.email.label("created_by_email"),
        ).select_from(
            protocol_table.outerjoin(employee_table, protocol_table.c.created_by == employee_table.c.id)
        )

    async def insert(self, values: Dict[str, Any]) -> None:
        await self.db.execute(insert(protocol_table).values(**encode_values(values)))

    async def fetch(self, protocol_id: str) -> Optional[Dict[str, Any]]:
        result = await self.db.execute(
            self._with_creator().where(protocol_table.c.id == protocol_id)
        )
        return result.rows[0] if result.rows else None

    async def fetch_many(self, protocol_ids: Sequence[str]) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(protocol_table).where(protocol_table.c.id.in_(list(protocol_ids)))
        )
        return result.rows

    async def list_with_creator(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            self._with_creator().order_by(protocol_table.c.created_at.desc())
        )
        return result.rows

    async def list_queue(self, assignee: Optional[str]) -> List[Dict[str, Any]]:
        if assignee is None:
            lane = protocol_table.c.assigned_to.is_(None)
        else:
            lane = protocol_table.c.assigned_to == assignee
        result = await self.db.execute(
            self._with_creator()
            .where(protocol_table.c.status == ProtocolStatus.PENDING.value, lane)
            .order_by(protocol_table.c.queue_position, protocol_table.c.created_at)
        )
        return result.rows

    @staticmethod
    def update_statement(protocol_id: str, values: Dict[str, Any]) -> Update:
        return (
            update(protocol_table)
            .where(protocol_table.c.id == protocol_id)
            .values(**encode_values(values))
        )

    async def update(self, protocol_id: str, values: Dict[str, Any]) -> int:
        result = await self.db.execute(self.update_statement(protocol_id, values))
        return result.rows_affected or 0

    async def delete(self, protocol_id: str) -> int:
        result = await self.db.execute(
            delete(protocol_table).where(protocol_table.c.id == protocol_id)
        )
        return result.rows_affected or 0
