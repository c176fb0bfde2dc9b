"""
Conversion ledger.

An append-only record of every field-level decision taken during one
conversion run. The engine closes the ledger when the run ends; after that
it is read-only and can be handed to a report renderer.
"""

from collections import Counter
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List

from radioconv.errors import LedgerClosedError


class Outcome(str, Enum):
    """What happened to one field."""

    UNCHANGED = "unchanged"
    CONVERTED = "converted"
    INVALIDATED = "invalidated"
    VERIFY_REQUIRED = "verify_required"


@dataclass(frozen=True)
class ConversionEvent:
    """
    One field application.

    Attributes:
        sequence: Position in the ledger, starting at 1
        field: Index-free field key ("models.mixes.weight")
        path: Concrete path ("models[2].mixes[0].weight")
        old: Old value as text ("" for new fields)
        new: New value as text ("" for dropped fields)
        outcome: The decision taken
        note: Free text explanation
    """

    sequence: int
    field: str
    path: str
    old: str
    new: str
    outcome: Outcome
    note: str = ""

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["outcome"] = self.outcome.value
        return record


def format_value(value: Any) -> str:
    """Textual form of a tree value, as stored in events."""
    if value is None:
        return ""
    if isinstance(value, str):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    return str(value)


class ConversionLedger:
    """
    Ordered sequence of ConversionEvents.

    Example:
        ledger = ConversionLedger()
        ledger.record("radio.contrast", "radio.contrast", 25, None, Outcome.INVALIDATED)
        ledger.close()
        ledger.summaries()[Outcome.INVALIDATED]  # 1
    """

    def __init__(self):
        self._events: List[ConversionEvent] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def record(
        self,
        field: str,
        path: str,
        old: Any,
        new: Any,
        outcome: Outcome,
        note: str = "",
    ) -> ConversionEvent:
        """
        Append an event. Values are converted to text here.

        Raises:
            LedgerClosedError: The run that owns this ledger has finished
        """
        if self._closed:
            raise LedgerClosedError(f"ledger is closed, cannot record {path}")
        event = ConversionEvent(
            sequence=len(self._events) + 1,
            field=field,
            path=path,
            old=format_value(old),
            new=format_value(new),
            outcome=Outcome(outcome),
            note=note,
        )
        self._events.append(event)
        return event

    def close(self) -> None:
        self._closed = True

    def summaries(self) -> Dict[Outcome, int]:
        """Event count per outcome; every outcome is present."""
        counts = Counter(event.outcome for event in self._events)
        return {outcome: counts.get(outcome, 0) for outcome in Outcome}

    def events_for(self, path: str) -> List[ConversionEvent]:
        """
        Events matching a path.

        Matches the exact concrete path, the index-free field key, or any
        path below the given one ("models[1]" matches "models[1].name").
        """
        return [
            event
            for event in self._events
            if event.path == path
            or event.field == path
            or event.path.startswith(path + ".")
            or event.path.startswith(path + "[")
        ]

    def changes(self) -> List[ConversionEvent]:
        """Every event except UNCHANGED ones."""
        return [e for e in self._events if e.outcome != Outcome.UNCHANGED]

    def by_outcome(self, outcome: Outcome) -> List[ConversionEvent]:
        return [e for e in self._events if e.outcome == outcome]

    @property
    def needs_review(self) -> bool:
        """True if any field was invalidated or needs verification."""
        return any(
            e.outcome in (Outcome.INVALIDATED, Outcome.VERIFY_REQUIRED) for e in self._events
        )

    def to_records(self) -> List[Dict[str, Any]]:
        """Events as plain dicts, for external renderers."""
        return [event.to_record() for event in self._events]

    def __iter__(self) -> Iterator[ConversionEvent]:
        return iter(tuple(self._events))

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index: int) -> ConversionEvent:
        return self._events[index]

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ConversionLedger({len(self._events)} events, {state})"
