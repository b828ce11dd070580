"""Assembly of reducer output into caller-facing summary shapes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from models.records import GroupResult, Record
from services.aggregator import round_half_away
from services.window import record_timestamp

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def present(value: Any) -> Any:
    """Round floats to 2 decimals, recursing into mappings and lists."""
    if isinstance(value, bool) or isinstance(value, int):
        return value
    if isinstance(value, float):
        return round_half_away(value)
    if isinstance(value, Mapping):
        return {key: present(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [present(item) for item in value]
    return value


def recent_records(records: Iterable[Record], timestamp_field: str, limit: int = 10) -> List[Record]:
    """The ``limit`` newest records, newest first; ties keep input order."""
    ordered = sorted(
        records,
        key=lambda record: record_timestamp(record, timestamp_field) or _EPOCH,
        reverse=True,
    )
    return ordered[:limit]


def group_entries(groups: Iterable[GroupResult], key_name: str = "key") -> List[Dict[str, Any]]:
    return [group.as_entry(key_name) for group in groups]


class Summary:
    """Builder for ``{summary, <sections>..., recent}`` report payloads."""

    def __init__(self, totals: Optional[Mapping[str, Any]] = None) -> None:
        self._totals: Dict[str, Any] = dict(totals or {})
        self._sections: Dict[str, Any] = {}
        self._raw: set[str] = set()

    def totals(self, **values: Any) -> "Summary":
        self._totals.update(values)
        return self

    def groups(self, name: str, groups: Iterable[GroupResult], key_name: str = "key") -> "Summary":
        self._sections[name] = group_entries(groups, key_name)
        return self

    def recent(
        self,
        name: str,
        records: Iterable[Record],
        timestamp_field: str,
        limit: int = 10,
    ) -> "Summary":
        self._sections[name] = recent_records(records, timestamp_field, limit)
        self._raw.add(name)
        return self

    def section(self, name: str, value: Any, raw: bool = False) -> "Summary":
        self._sections[name] = value
        if raw:
            self._raw.add(name)
        else:
            self._raw.discard(name)
        return self

    def as_dict(self) -> Dict[str, Any]:
        # Raw record lists are passed through untouched.
        payload: Dict[str, Any] = {"summary": present(self._totals)}
        for name, value in self._sections.items():
            payload[name] = value if name in self._raw else present(value)
        return payload
