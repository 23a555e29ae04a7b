"""
Event log of the DSC engine.

The engine records an event for every collateral movement, mint, burn and
liquidation, in the order they happened. Events of a call that fails are
discarded together with the rest of its effects.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List


class EventType(Enum):
    """Kinds of events emitted by the engine."""
    COLLATERAL_DEPOSITED = 0  # user, token, amount
    COLLATERAL_REDEEMED = 1   # redeemed_from, redeemed_to, token, amount
    DSC_MINTED = 2            # user, amount
    DSC_BURNED = 3            # on_behalf_of, dsc_from, amount
    LIQUIDATION = 4           # liquidator, user, token, debt_covered, collateral_seized


@dataclass(frozen=True)
class Event:
    kind: EventType
    data: Dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Append-only list of events that can be rolled back with the engine state."""

    def __init__(self):
        self._events: List[Event] = []

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index):
        return self._events[index]

    def emit(self, kind: EventType, **data) -> Event:
        event = Event(kind=kind, data=data)
        self._events.append(event)
        return event

    def of_kind(self, kind: EventType) -> List[Event]:
        return [event for event in self._events if event.kind == kind]

    def snapshot(self):
        return len(self._events)

    def restore(self, state):
        del self._events[state:]
