"""Grouping and reduction of fetched records into reportable metrics."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from models.records import GroupResult, Record, lookup_field
from services.errors import AggregationError

GroupKeyFn = Callable[[Record], Hashable]
Extractor = Callable[[Record], Any]

QUALITY_SCORES: Mapping[str, int] = {"excellent": 4, "good": 3, "fair": 2, "poor": 1}

UNKNOWN_KEY = "unknown"


def as_number(value: Any) -> float:
    """Numeric value or ``0.0`` for anything missing or non-numeric."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return float(value)


def number_field(path: str) -> Extractor:
    """Extractor for a numeric field, defaulting to zero."""

    def extract(record: Record) -> float:
        return as_number(lookup_field(record, path))

    return extract


def flag_field(path: str) -> Extractor:
    """1 when the field is truthy, otherwise 0."""

    def extract(record: Record) -> float:
        return 1.0 if lookup_field(record, path) else 0.0

    return extract


def equals_field(path: str, expected: Any, measure: Optional[Extractor] = None) -> Extractor:
    """``measure(record)`` (or 1) when the field equals ``expected``, otherwise 0."""

    def extract(record: Record) -> float:
        if lookup_field(record, path) != expected:
            return 0.0
        return measure(record) if measure is not None else 1.0

    return extract


def quality_score(record: Record) -> float:
    quality = record.get("quality")
    if not isinstance(quality, str):
        return 0.0
    return float(QUALITY_SCORES.get(quality, 0))


def field_key(path: str, default: str = UNKNOWN_KEY) -> GroupKeyFn:
    """Group key taken from a record field, ``default`` when missing or empty."""

    def key(record: Record) -> Hashable:
        value = lookup_field(record, path)
        if value is None or value == "":
            return default
        return value

    return key


def constant_key(record: Record) -> Hashable:
    return "all"


@dataclass(slots=True)
class MeasureTotal:
    sum: float = 0.0
    count: int = 0


@dataclass(slots=True)
class Accumulator:
    """Running per-group state."""

    records: int = 0
    totals: Dict[str, MeasureTotal] = field(default_factory=dict)

    def add(self, name: str, value: float) -> None:
        total = self.totals.get(name)
        if total is None:
            total = self.totals[name] = MeasureTotal()
        total.sum += value
        total.count += 1

    def sum(self, name: str) -> float:
        total = self.totals.get(name)
        return total.sum if total is not None else 0.0

    def count(self, name: Optional[str] = None) -> int:
        if name is None:
            return self.records
        total = self.totals.get(name)
        return total.count if total is not None else 0


Finalizer = Callable[[Accumulator], float]


def total(measure: str) -> Finalizer:
    return lambda acc: acc.sum(measure)


def average(measure: str) -> Finalizer:
    def finalize(acc: Accumulator) -> float:
        contributions = acc.count(measure)
        return acc.sum(measure) / contributions if contributions > 0 else 0.0

    return finalize


def safe_rate(numerator: float, denominator: float, scale: float = 100.0) -> float:
    """``numerator / denominator * scale``, or 0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * scale


def rate(numerator: str, denominator: str, scale: float = 100.0) -> Finalizer:
    return lambda acc: safe_rate(acc.sum(numerator), acc.sum(denominator), scale)


def count() -> Finalizer:
    return lambda acc: acc.records


def round_half_away(value: float, places: int = 2) -> float:
    """Round for presentation, halves away from zero."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if math.isnan(value) or math.isinf(value):
        return 0.0
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class Measure:
    name: str
    extract: Extractor


class GroupingReducer:
    """Fold records into per-key accumulators, then finalize each group.

    ``seed_keys`` pre-populates groups so they are reported even when no
    record falls into them; with ``closed=True`` records whose key is not a
    seed key are ignored. A reducer holds no state between calls.
    """

    def __init__(
        self,
        group_key: GroupKeyFn = constant_key,
        measures: Sequence[Measure] = (),
        finalizers: Sequence[Tuple[str, Finalizer]] = (),
        seed_keys: Optional[Iterable[Hashable]] = None,
        closed: bool = False,
    ) -> None:
        self.group_key = group_key
        self.measures = tuple(measures)
        self.finalizers = tuple(finalizers)
        self.seed_keys = tuple(seed_keys) if seed_keys is not None else ()
        self.closed = closed
        if closed and seed_keys is None:
            raise ValueError("A closed reducer requires seed keys.")

    def fold(self, records: Iterable[Record]) -> Dict[Hashable, Accumulator]:
        groups: Dict[Hashable, Accumulator] = {key: Accumulator() for key in self.seed_keys}
        try:
            iterator = iter(records)
        except TypeError as exc:
            raise AggregationError(f"Records are not iterable: {exc}") from exc

        for record in iterator:
            try:
                key = self.group_key(record)
                accumulator = groups.get(key)
            except Exception as exc:
                raise AggregationError(f"Group key function failed: {exc!r}") from exc

            if accumulator is None:
                if self.closed:
                    continue
                accumulator = groups[key] = Accumulator()

            accumulator.records += 1
            for measure in self.measures:
                try:
                    value = measure.extract(record)
                except Exception as exc:
                    raise AggregationError(
                        f"Measure {measure.name!r} failed: {exc!r}"
                    ) from exc
                accumulator.add(measure.name, as_number(value))
        return groups

    def finalize(self, groups: Mapping[Hashable, Accumulator]) -> Dict[Hashable, GroupResult]:
        results: Dict[Hashable, GroupResult] = {}
        for key, accumulator in groups.items():
            metrics: Dict[str, float] = {}
            for name, finalizer in self.finalizers:
                try:
                    metrics[name] = finalizer(accumulator)
                except Exception as exc:
                    raise AggregationError(f"Finalizer {name!r} failed: {exc!r}") from exc
            results[key] = GroupResult(key=key, metrics=metrics)
        return results

    def reduce(self, records: Iterable[Record]) -> Dict[Hashable, GroupResult]:
        return self.finalize(self.fold(records))

    def reduce_one(self, records: Iterable[Record]) -> Dict[str, float]:
        """Flat summary over a single implicit group."""
        accumulator = Accumulator()
        for folded in self.fold(records).values():
            accumulator.records += folded.records
            for name, measure_total in folded.totals.items():
                merged = accumulator.totals.setdefault(name, MeasureTotal())
                merged.sum += measure_total.sum
                merged.count += measure_total.count
        return self.finalize({"all": accumulator})["all"].metrics


def sort_key(key: Hashable) -> str:
    return str(key)


def top_n(
    groups: Mapping[Hashable, GroupResult] | Iterable[GroupResult],
    measure: str,
    n: int,
) -> List[GroupResult]:
    """The ``n`` largest groups by ``measure``, ties broken by key ascending."""
    items = list(groups.values()) if isinstance(groups, Mapping) else list(groups)
    ranked = sorted(items, key=lambda result: (-result.metrics.get(measure, 0.0), sort_key(result.key)))
    return ranked[:n]


def sorted_groups(groups: Mapping[Hashable, GroupResult]) -> List[GroupResult]:
    """Groups ordered by key ascending."""
    return sorted(groups.values(), key=lambda result: sort_key(result.key))


def count_by(records: Iterable[Record], path: str) -> Dict[str, int]:
    """Plain ``{value: count}`` mapping for a categorical field."""
    reducer = GroupingReducer(group_key=field_key(path), finalizers=(("count", count()),))
    return {
        str(result.key): int(result.metrics["count"])
        for result in sorted_groups(reducer.reduce(records))
    }
