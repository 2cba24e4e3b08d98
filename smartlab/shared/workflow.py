from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Set

from smartlab.shared.exceptions import StateConflictException


class StateMachine:
    """
    Allowed status transitions for one kind of entity.

    The machine is pure: it answers whether a move is legal and which source
    states lead to a target. Persisting the move is the caller's job, and the
    caller passes ``sources(target)`` to the store as the precondition so a
    concurrent writer that got there first makes the update match nothing.
    """

    def __init__(self, name: str, transitions: Mapping[Enum, Iterable[Enum]]):
        self.name = name
        self._transitions: Dict[Enum, FrozenSet[Enum]] = {
            source: frozenset(targets) for source, targets in transitions.items()
        }

    def targets(self, source: Enum) -> FrozenSet[Enum]:
        return self._transitions.get(source, frozenset())

    def can(self, source: Enum, target: Enum) -> bool:
        return target in self.targets(source)

    def ensure(self, source: Enum, target: Enum) -> None:
        """Raise STATE_CONFLICT unless ``source -> target`` is allowed."""
        if not self.can(source, target):
            raise StateConflictException(
                f"Cannot change {self.name} status from '{source.value}' to '{target.value}'"
            )

    def sources(self, target: Enum) -> Set[Enum]:
        return {source for source, targets in self._transitions.items() if target in targets}

    def is_terminal(self, state: Enum) -> bool:
        return not self.targets(state)
