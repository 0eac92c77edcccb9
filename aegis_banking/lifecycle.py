"""
Lifecycle Module

Declared transition tables for accounts, transfers and loans. Every status
change in the engine goes through ``StateMachine.apply`` so illegal
transitions are rejected in exactly one place.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

from .errors import InvalidStateError


@dataclass(frozen=True)
class Transition:
    """A named lifecycle event: which states it may start from and where it may lead"""
    sources: FrozenSet[Enum]
    targets: FrozenSet[Optional[Enum]]

    @classmethod
    def of(cls, sources: Iterable[Enum], *targets: Optional[Enum]) -> 'Transition':
        return cls(frozenset(sources), frozenset(targets))


class StateMachine:
    """Transition table for one entity type"""

    def __init__(self, entity_type: str, transitions: Dict[str, Transition]):
        self.entity_type = entity_type
        self.transitions = transitions

    def can_apply(self, event: str, current: Enum, target: Optional[Enum] = None) -> bool:
        transition = self.transitions.get(event)
        if transition is None or current not in transition.sources:
            return False
        if target is None and len(transition.targets) == 1:
            return True
        return target in transition.targets

    def apply(self, event: str, current: Enum, target: Optional[Enum] = None,
              entity_id: Optional[str] = None) -> Optional[Enum]:
        """
        Validate ``event`` against the table and return the resulting state.

        ``target`` may be omitted when the event has a single destination. A
        ``None`` result means the event removes the entity.

        Raises:
            InvalidStateError: If the event is not legal from ``current``
        """
        if event not in self.transitions:
            raise InvalidStateError(f"Unknown {self.entity_type} event '{event}'")

        transition = self.transitions[event]
        label = f"{self.entity_type} {entity_id}" if entity_id else self.entity_type

        if current not in transition.sources:
            allowed = ", ".join(sorted(s.value for s in transition.sources))
            raise InvalidStateError(
                f"Cannot {event} {label} in status {current.value} (allowed from: {allowed})"
            )

        if target is None:
            if len(transition.targets) != 1:
                raise InvalidStateError(f"Event '{event}' requires an explicit target status")
            return next(iter(transition.targets))

        if target not in transition.targets:
            raise InvalidStateError(f"Cannot {event} {label} to status {target.value}")
        return target
