"""
Per-line mutation state — tagged variants.

    Idle → OptimisticApplied → Reconciling → Confirmed
                                           ↘ RolledBack(error)

Every variant carries the merchandise id and the version of the mutation
it describes. Versions are monotonic per merchandise id.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from cartsync._errors import CommerceError

# ═══════════════════════════════════════════════════════════════════════════════
# Mutation Kind
# ═══════════════════════════════════════════════════════════════════════════════


class MutationKind(Enum):
    ADD = auto()
    UPDATE = auto()
    SET = auto()
    DELETE = auto()


class RollbackPolicy(Enum):
    """
    What the local cart shows after a reconciliation finally fails.

    KEEP: Leave the optimistic value visible, line marked RolledBack.
          The failure is an error badge, not a revert.

    REVERT: Restore the last confirmed line for that merchandise id
            (or drop it, if it was never confirmed).
    """

    KEEP = auto()
    REVERT = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Variants
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Idle:
    merchandise_id: str
    version: int = 0


@dataclass(frozen=True, slots=True)
class OptimisticApplied:
    merchandise_id: str
    version: int
    kind: MutationKind


@dataclass(frozen=True, slots=True)
class Reconciling:
    merchandise_id: str
    version: int
    kind: MutationKind


@dataclass(frozen=True, slots=True)
class Confirmed:
    merchandise_id: str
    version: int
    line_id: str | None


@dataclass(frozen=True, slots=True)
class RolledBack:
    merchandise_id: str
    version: int
    error: CommerceError
    reverted: bool = False


type LineState = Idle | OptimisticApplied | Reconciling | Confirmed | RolledBack


def is_terminal(state: LineState) -> bool:
    return isinstance(state, (Idle, Confirmed, RolledBack))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "MutationKind",
    "RollbackPolicy",
    "Idle",
    "OptimisticApplied",
    "Reconciling",
    "Confirmed",
    "RolledBack",
    "LineState",
    "is_terminal",
)
