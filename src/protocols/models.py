from enum import Enum
from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text
from src.database import Base
from src.shared.models import AuditMixin


class ProtocolStatus(str, Enum):
    PENDING = "Pending"
    FILED = "Filed"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"


# Statuses swept by the finalized-protocol cleanup. Returned is reopenable
# through resubmission but still counts as finished for cleanup.
FINALIZED_STATUSES = (ProtocolStatus.FILED, ProtocolStatus.CANCELLED, ProtocolStatus.RETURNED)


class Jurisdiction(str, Enum):
    FIRST_INSTANCE = "1º Grau"
    SECOND_INSTANCE = "2º Grau"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("_", " ")
            aliases = {
                "first instance": cls.FIRST_INSTANCE,
                "1º grau": cls.FIRST_INSTANCE,
                "1o grau": cls.FIRST_INSTANCE,
                "second instance": cls.SECOND_INSTANCE,
                "2º grau": cls.SECOND_INSTANCE,
                "2o grau": cls.SECOND_INSTANCE,
            }
            return aliases.get(key)
        return None


class ProcessType(str, Enum):
    CIVIL = "civel"
    LABOR = "trabalhista"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return {"civil": cls.CIVIL, "labor": cls.LABOR}.get(value.strip().lower())
        return None


class ActivityAction(str, Enum):
    CREATED = "created"
    MOVED_TO_QUEUE = "moved_to_queue"
    STATUS_CHANGED = "status_changed"
    RETURNED = "returned"
    RESUBMITTED = "resubmitted"


class Protocol(Base, AuditMixin):
    __tablename__ = "protocols"

    process_number = Column(String, nullable=False, default="")
    court = Column(String, nullable=False, default="")
    system = Column(String, nullable=False, default="")
    jurisdiction = Column(String, nullable=True)
    process_type = Column(String, nullable=False, default=ProcessType.CIVIL.value)
    task_code = Column(String, nullable=False, default="")

    is_fatal = Column(Boolean, nullable=False, default=False)
    needs_procuration = Column(Boolean, nullable=False, default=False)
    procuration_type = Column(String, nullable=True, default="")
    needs_guia = Column(Boolean, nullable=False, default=False)
    guias = Column(Text, nullable=False, default="[]")  # JSON array
    is_distribution = Column(Boolean, nullable=False, default=False)

    petition_type = Column(String, nullable=False, default="")
    observations = Column(Text, nullable=True, default="")
    documents = Column(Text, nullable=False, default="[]")  # JSON array

    status = Column(String, nullable=False, default=ProtocolStatus.PENDING.value, index=True)
    assigned_to = Column(String, nullable=True, index=True)
    return_reason = Column(Text, nullable=True)
    queue_position = Column(Integer, nullable=False, default=1)
    created_by = Column(ForeignKey("employees.id"), nullable=False, index=True)

    activity_log = Column(Text, nullable=False, default="[]")  # JSON array, append-only

    __table_args__ = (
        Index("ix_protocols_status_assigned_to", "status", "assigned_to"),
        Index("ix_protocols_queue_lookup", "status", "assigned_to", "created_at"),
    )


protocol_table = Protocol.__table__
