"""
events.py - Engine Event Records and Sinks

Events are plain immutable data. The engine buffers the events an operation
raises and hands them to its sinks only after the operation commits. A sink
that fails is logged and skipped: events never take part in the outcome of
the operation that produced them.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, List, Type, TypeVar, Union

from .core import EventSink, Tier
from .logging_config import get_logger


logger = get_logger(__name__)


# ============================================================================
# EVENT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanCreated:
    """A loan was originated."""
    loan_id: int
    borrower: str
    amount: int
    due_date: datetime


@dataclass(frozen=True, slots=True)
class LoanRepaid:
    """A loan was repaid in full (principal + interest)."""
    loan_id: int
    borrower: str
    amount: int
    interest: int


@dataclass(frozen=True, slots=True)
class TrustScoreUpdated:
    """A repayment changed (or re-evaluated) a user's score."""
    user: str
    old_score: int
    new_score: int
    tier: Tier


@dataclass(frozen=True, slots=True)
class Stake:
    """Funds were staked. total_staked is the user's new staked balance."""
    user: str
    amount: int
    total_staked: int


Event = Union[LoanCreated, LoanRepaid, TrustScoreUpdated, Stake]

E = TypeVar("E")


# ============================================================================
# SINKS
# ============================================================================

class EventLog:
    """
    Append-only in-memory event sink.

    Example:
        log = EventLog()
        engine = LendingEngine(transfer, sinks=[log])
        ...
        created = log.of_type(LoanCreated)
    """

    def __init__(self):
        self._events: List[Event] = []

    def emit(self, event: Event) -> None:
        self._events.append(event)

    @property
    def events(self) -> List[Event]:
        """Copy of all events in delivery order."""
        return list(self._events)

    def of_type(self, event_type: Type[E]) -> List[E]:
        """All delivered events of one type, in delivery order."""
        return [e for e in self._events if isinstance(e, event_type)]

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)


class LoggingEventSink:
    """Writes each event to a logger at INFO."""

    def __init__(self, name: str = "trustlend.events.sink"):
        self._logger = get_logger(name)

    def emit(self, event: Event) -> None:
        self._logger.info("%s %s", type(event).__name__, event)


def deliver(sinks: Iterable[EventSink], events: Iterable[Event]) -> int:
    """
    Hand committed events to every sink, in order.

    A sink exception is logged and does not stop delivery to the remaining
    sinks or events.

    Returns:
        Number of successful (sink, event) deliveries
    """
    sinks = list(sinks)
    delivered = 0
    for event in events:
        for sink in sinks:
            try:
                sink.emit(event)
            except Exception:
                logger.exception(
                    "Event sink %s failed on %s", type(sink).__name__, type(event).__name__
                )
            else:
                delivered += 1
    return delivered
