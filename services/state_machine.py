from __future__ import annotations

from collections.abc import Iterable, Mapping

from services.errors import IllegalTransitionError


class StateMachine:
    """Declarative transition table for one entity's status field."""

    def __init__(self, entity: str, transitions: Mapping[str, Iterable[str]]) -> None:
        self.entity = entity
        self.transitions: dict[str, frozenset[str]] = {
            source: frozenset(targets) for source, targets in transitions.items()
        }

    @property
    def states(self) -> frozenset[str]:
        return frozenset(self.transitions)

    def can(self, source: str, target: str) -> bool:
        return target in self.transitions.get(source, frozenset())

    def is_terminal(self, state: str) -> bool:
        return not self.transitions.get(state)

    def ensure(self, source: str, target: str) -> None:
        if not self.can(source, target):
            raise IllegalTransitionError(self.entity, source, target)


ARTIFACT_MACHINE = StateMachine(
    "artifact",
    {
        "pending": {"processing"},
        "processing": {"completed", "failed"},
        "failed": {"processing"},
        "completed": (),
    },
)

STAGE_MACHINE = StateMachine(
    "processing stage",
    {
        "pending": {"processing", "completed", "failed"},
        "processing": {"completed", "failed"},
        "failed": {"processing", "completed"},
        "completed": (),
    },
)

INTERVIEW_MACHINE = StateMachine(
    "interview",
    {
        "pending": {"active", "cancelled"},
        "active": {"completed", "cancelled"},
        "completed": (),
        "cancelled": (),
    },
)

RATING_MACHINE = StateMachine(
    "transcript rating",
    {
        "pending": {"pending", "rated", "error", "expired"},
        "error": {"pending", "expired"},
        "rated": {"expired"},
        "expired": (),
    },
)
