from typing import Dict, Optional
from pydantic import BaseModel


class FinalizedCounts(BaseModel):
    total: int = 0
    peticionados: int = 0
    cancelados: int = 0
    devolvidos: int = 0


class FinalizedPreview(FinalizedCounts):
    oldest_created_at: Optional[str] = None
    newest_created_at: Optional[str] = None


class StoreStats(BaseModel):
    protocols_total: int
    by_status: Dict[str, int]
    # Pending protocols per lane; the automated lane is reported as "automated"
    pending_by_queue: Dict[str, int]
    employees_total: int
