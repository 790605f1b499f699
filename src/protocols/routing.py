"""Queue routing for new and resubmitted protocols.

``route`` is a pure function: it decides which lane receives a protocol and
leaves persisting that decision to the caller. ``None`` is the automated
lane; anything else names the human reviewer's queue.
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional

from src.protocols.models import Jurisdiction

MANUAL_REVIEW_QUEUE = "Carlos"

TJMG = "Tribunal de Justiça de Minas Gerais"


@dataclass(frozen=True)
class AutomationRule:
    """(system, court) combinations the filing robot is known to handle.

    ``courts=None`` means every court of the system except ``excluded_courts``.
    """
    name: str
    system: str
    courts: Optional[FrozenSet[str]] = None
    excluded_courts: FrozenSet[str] = frozenset()

    def matches(self, system: str, court: str) -> bool:
        if system != self.system or court in self.excluded_courts:
            return False
        return self.courts is None or court in self.courts


# Allowlist, not a denylist: unknown combinations go to manual review.
AUTOMATION_RULES = (
    AutomationRule("PJe Diversos", "PJe", excluded_courts=frozenset({TJMG})),
    AutomationRule("PJe MG", "PJe", courts=frozenset({TJMG})),
    AutomationRule("ESAJ SP", "ESAJ", courts=frozenset({"Tribunal de Justiça de São Paulo"})),
    AutomationRule(
        "eProc RS/SC",
        "eProc",
        courts=frozenset({
            "Tribunal de Justiça do Rio Grande do Sul",
            "Tribunal de Justiça de Santa Catarina",
        }),
    ),
    AutomationRule("Projudi PR", "Projudi", courts=frozenset({"Tribunal de Justiça do Paraná"})),
)


def _jurisdiction(value) -> Optional[Jurisdiction]:
    if value is None or value == "":
        return None
    try:
        return Jurisdiction(value)
    except ValueError:
        return None


def is_automation_eligible(system: str, court: str) -> bool:
    return any(rule.matches(system or "", court or "") for rule in AUTOMATION_RULES)


def route(
    draft,
    is_distribution: bool = False,
    is_resubmission: bool = False,
    previous_assignee: Optional[str] = None,
) -> Optional[str]:
    """Pick the queue for ``draft``; the first matching rule wins.

    ``draft`` is anything exposing ``observations``, ``jurisdiction``,
    ``system`` and ``court``. ``previous_assignee`` is accepted for callers
    that track it, but a resubmission always goes back to manual review.
    """
    if is_resubmission:
        return MANUAL_REVIEW_QUEUE

    if is_distribution:
        return MANUAL_REVIEW_QUEUE

    if (draft.observations or "").strip():
        return MANUAL_REVIEW_QUEUE

    if _jurisdiction(draft.jurisdiction) == Jurisdiction.SECOND_INSTANCE:
        return MANUAL_REVIEW_QUEUE

    if not is_automation_eligible(draft.system, draft.court):
        return MANUAL_REVIEW_QUEUE

    return None
