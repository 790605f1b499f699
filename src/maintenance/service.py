import logging
from sqlalchemy import case, delete, func, select

from src.database import Database
from src.employees.models import employee_table
from src.maintenance.schemas import FinalizedCounts, FinalizedPreview, StoreStats
from src.protocols.models import FINALIZED_STATUSES, ProtocolStatus, protocol_table

logger = logging.getLogger(__name__)

AUTOMATED_QUEUE_KEY = "automated"

_finalized = protocol_table.c.status.in_([status.value for status in FINALIZED_STATUSES])


def _count_status(status: ProtocolStatus):
    return func.coalesce(func.sum(case((protocol_table.c.status == status.value, 1), else_=0)), 0)


_counts_query = select(
    func.count().label("total"),
    _count_status(ProtocolStatus.FILED).label("peticionados"),
    _count_status(ProtocolStatus.CANCELLED).label("cancelados"),
    _count_status(ProtocolStatus.RETURNED).label("devolvidos"),
).where(_finalized)


class MaintenanceService:
    def __init__(self, db: Database):
        self.db = db

    async def preview_finalized(self) -> FinalizedPreview:
        """Read-only look at what ``purge_finalized`` would remove."""
        result = await self.db.execute(
            _counts_query.add_columns(
                func.min(protocol_table.c.created_at).label("oldest_created_at"),
                func.max(protocol_table.c.created_at).label("newest_created_at"),
            )
        )
        return FinalizedPreview(**result.rows[0])

    async def purge_finalized(self) -> FinalizedCounts:
        """Delete every Filed, Cancelled and Returned protocol.

        Counting and deleting share one transaction, so the reported numbers
        are exactly the rows removed. There is no archival copy.
        """
        counted, deleted = await self.db.run_transaction([
            _counts_query,
            delete(protocol_table).where(_finalized),
        ])
        counts = FinalizedCounts(**counted.rows[0])
        if deleted.rows_affected != counts.total:
            logger.warning(
                "Finalized purge counted %d rows but deleted %d", counts.total, deleted.rows_affected
            )
        logger.info("Finalized protocols removed: %s", counts.model_dump())
        return counts

    async def store_stats(self) -> StoreStats:
        by_status, by_queue, employees = await self.db.run_transaction([
            select(protocol_table.c.status, func.count().label("count"))
            .group_by(protocol_table.c.status),
            select(protocol_table.c.assigned_to, func.count().label("count"))
            .where(protocol_table.c.status == ProtocolStatus.PENDING.value)
            .group_by(protocol_table.c.assigned_to),
            select(func.count().label("count")).select_from(employee_table),
        ])
        status_counts = {row["status"]: row["count"] for row in by_status.rows}
        return StoreStats(
            protocols_total=sum(status_counts.values()),
            by_status=status_counts,
            pending_by_queue={
                row["assigned_to"] or AUTOMATED_QUEUE_KEY: row["count"] for row in by_queue.rows
            },
            employees_total=employees.rows[0]["count"],
        )
