from __future__ import annotations
from typing import Dict, FrozenSet, Hashable, Mapping, Optional

from order_service.core.errors import ConcurrentModificationError, InvalidTransitionError


TransitionTable = Mapping[Hashable, FrozenSet[Hashable]]


class StateMachine:
    """
    Small, table-driven state machine with:
      - allowed transitions map (state -> frozenset of next states)
      - optimistic versioning (caller may supply expected_version)

    Self transitions are never legal, even if a table lists them.

    Usage:
      sm = StateMachine(state=order.status, allowed_transitions=ALLOWED_TRANSITIONS, version=order.version)
      sm.apply(OrderStatus.PROCESSING, expected_version=order.version)
      order.status, order.version = sm.state, sm.version
    """

    def __init__(self, state: Hashable, allowed_transitions: TransitionTable, version: int = 0):
        self.state = state
        self.allowed_transitions = allowed_transitions or {}
        self.version = int(version or 0)

    def can_transition(self, to_state: Hashable) -> bool:
        if to_state == self.state:
            return False
        return to_state in self.allowed_transitions.get(self.state, frozenset())

    def is_terminal(self) -> bool:
        return not self.allowed_transitions.get(self.state)

    def apply(self, to_state: Hashable, expected_version: Optional[int] = None) -> int:
        """
        Attempt to transition to `to_state`. Raises InvalidTransitionError or
        ConcurrentModificationError. Returns the new version.
        """
        if expected_version is not None and int(expected_version) != self.version:
            raise ConcurrentModificationError(
                f"Version mismatch (expected {expected_version}, got {self.version})")

        if not self.can_transition(to_state):
            raise InvalidTransitionError.invalid_transition(self.state, to_state)

        self.state = to_state
        self.version += 1
        return self.version


def freeze(table: Mapping[Hashable, object]) -> Dict[Hashable, FrozenSet[Hashable]]:
    """Normalize a {state: iterable} map into {state: frozenset}."""
    return {state: frozenset(targets) for state, targets in table.items()}
