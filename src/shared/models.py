import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String


def new_id() -> str:
    """Opaque random identifier. Callers must not infer ordering from it."""
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class UUIDMixin:
    id = Column(String(36), primary_key=True, default=new_id)

class TimestampMixin:
    # Logical times written by the service clock, never by the store
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False, index=True)

class AuditMixin(UUIDMixin, TimestampMixin):
    """Combines UUID and Timestamps for standard entities."""
    pass
