from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from src.protocols.models import ActivityAction, Jurisdiction, ProcessType, ProtocolStatus


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase on input and answers in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProtocolDocument(CamelModel):
    id: str
    name: str
    size: int = 0
    type: str = ""
    content: str = ""
    category: Literal["petition", "complementary"] = "petition"


class FeeGuide(CamelModel):
    id: str
    number: str
    system: str


class ActivityLogEntry(CamelModel):
    id: str
    timestamp: datetime
    action: ActivityAction
    description: str
    performed_by: Optional[str] = None
    performed_by_id: Optional[int] = None
    details: Optional[str] = None


# Stored entries that no longer match ActivityLogEntry (older actions, missing
# fields) are carried verbatim so a rewrite of the log never drops history.
StoredLogEntry = Annotated[Union[ActivityLogEntry, Any], Field(union_mode="left_to_right")]


class NewLogEntry(CamelModel):
    """Entry supplied by the caller; the server assigns the timestamp."""
    id: Optional[str] = None
    action: ActivityAction
    description: str
    performed_by: Optional[str] = None
    performed_by_id: Optional[int] = None
    details: Optional[str] = None


class ProtocolDraft(CamelModel):
    process_number: str = ""
    court: str = ""
    system: str = ""
    jurisdiction: Optional[Jurisdiction] = None
    process_type: ProcessType = ProcessType.CIVIL
    task_code: str = ""
    is_fatal: bool = False
    needs_procuration: bool = False
    procuration_type: Optional[str] = ""
    needs_guia: bool = False
    guias: List[FeeGuide] = []
    petition_type: str = ""
    observations: Optional[str] = ""
    documents: List[ProtocolDocument] = []


class ProtocolCreate(ProtocolDraft):
    # Optional here so a missing creator is reported as a 400, not a schema error
    created_by: Optional[int] = None
    created_by_email: Optional[str] = None
    is_distribution: bool = False
    is_resubmission: bool = False
    previous_assignee: Optional[str] = None


class ProtocolUpdate(CamelModel):
    """Partial update. Only the fields listed here can change; anything else is rejected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    process_number: Optional[str] = None
    court: Optional[str] = None
    system: Optional[str] = None
    jurisdiction: Optional[Jurisdiction] = None
    process_type: Optional[ProcessType] = None
    task_code: Optional[str] = None
    is_fatal: Optional[bool] = None
    needs_procuration: Optional[bool] = None
    procuration_type: Optional[str] = None
    needs_guia: Optional[bool] = None
    guias: Optional[List[FeeGuide]] = None
    petition_type: Optional[str] = None
    observations: Optional[str] = None
    documents: Optional[List[ProtocolDocument]] = None
    is_distribution: Optional[bool] = None
    status: Optional[ProtocolStatus] = None
    assigned_to: Optional[str] = None
    return_reason: Optional[str] = None
    queue_position: Optional[int] = None

    # Request metadata, never written as columns
    new_log_entry: Optional[NewLogEntry] = None
    performed_by: Optional[str] = None
    performed_by_id: Optional[int] = None


# Fields of ProtocolUpdate that map onto protocol columns
UPDATABLE_FIELDS = frozenset(
    name for name in ProtocolUpdate.model_fields
    if name not in ("new_log_entry", "performed_by", "performed_by_id")
)
LIFECYCLE_FIELDS = frozenset({"status", "assigned_to", "return_reason"})


class ProtocolResponse(ProtocolDraft):
    id: str
    status: ProtocolStatus
    assigned_to: Optional[str] = None
    return_reason: Optional[str] = None
    queue_position: int = 1
    is_distribution: bool = False
    created_by: int
    created_by_email: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    activity_log: List[StoredLogEntry] = []


class UpdateResult(CamelModel):
    changes: int


class Actor(CamelModel):
    performed_by: Optional[str] = None
    performed_by_id: Optional[int] = None


class MoveRequest(Actor):
    assigned_to: Optional[str] = None


class BulkMoveRequest(MoveRequest):
    ids: List[str] = Field(min_length=1)


class ReturnRequest(Actor):
    reason: str
    # Set by the automation worker when it hands a protocol back for manual review
    from_automated_lane: bool = False


class ResubmitRequest(Actor):
    corrections: ProtocolUpdate = ProtocolUpdate()
