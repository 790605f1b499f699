from datetime import datetime, timedelta, timezone
from src.protocols.schemas import ProtocolDraft

TJMG = "Tribunal de Justiça de Minas Gerais"


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start: datetime = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> str:
        self.current += timedelta(seconds=1)
        return self.current.isoformat()


def robot_draft(**overrides) -> ProtocolDraft:
    """A draft the automated lane accepts: PJe at TJMG, first instance, no notes."""
    fields = {
        "process_number": "5001234-56.2024.8.13.0024",
        "court": TJMG,
        "system": "PJe",
        "jurisdiction": "1º Grau",
        "process_type": "civel",
        "petition_type": "Manifestação",
        "task_code": "1020",
        "observations": "",
    }
    fields.update(overrides)
    return ProtocolDraft(**fields)
