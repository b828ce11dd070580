"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

Record = Dict[str, Any]

OPERATORS = ("==", ">=", "<=", "array-contains")

_MISSING = object()


def lookup_field(record: Record, path: str, default: Any = None) -> Any:
    """Resolve a dotted field path such as ``address.ward`` on a record."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def parse_timestamp(value: Any) -> datetime:
    """Normalize a datetime or ISO-8601 string to an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format") from exc
    else:
        raise ValueError(f"Unsupported timestamp value {value!r}.")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class Predicate:
    """A single query constraint against one record field."""

    field: str
    operator: str
    value: Any

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator {self.operator!r}.")

    def matches(self, record: Record) -> bool:
        actual = lookup_field(record, self.field, _MISSING)
        if actual is _MISSING or actual is None:
            return False
        if self.operator == "==":
            return actual == self.value
        if self.operator == "array-contains":
            return isinstance(actual, list) and self.value in actual
        if isinstance(self.value, datetime):
            # ISO strings and naive datetimes compare as UTC moments.
            try:
                actual = parse_timestamp(actual)
            except ValueError:
                return False
        # Mismatched types never satisfy a range constraint, as in Firestore.
        try:
            if self.operator == ">=":
                return actual >= self.value
            return actual <= self.value
        except TypeError:
            return False


@dataclass(frozen=True, slots=True)
class Query:
    """A request for records of one entity set."""

    entity_set: str
    predicates: Tuple[Predicate, ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """The ``[start, end]`` range used to select recent records."""

    start: datetime
    end: datetime
    days: int

    def contains(self, moment: datetime) -> bool:
        return moment >= self.start

    def since(self, field_name: str) -> Predicate:
        return Predicate(field_name, ">=", self.start)

    def day_keys(self) -> List[str]:
        """Calendar days covered by a daily series, oldest first."""
        end_day: date = self.end.date()
        return [
            (end_day - timedelta(days=offset)).isoformat()
            for offset in range(self.days - 1, -1, -1)
        ]


@dataclass(slots=True)
class GroupResult:
    """Finalized metrics for one group key."""

    key: Any
    metrics: Dict[str, float] = field(default_factory=dict)

    def as_entry(self, key_name: str = "key") -> Dict[str, Any]:
        return {key_name: self.key, **self.metrics}
