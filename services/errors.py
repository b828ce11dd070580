"""Exceptions raised by the metrics services."""

from __future__ import annotations


class InvalidParameter(ValueError):
    """A caller-supplied window, limit or scope value is malformed."""

    def __init__(self, name: str, value: object, reason: str) -> None:
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value {value!r} for {name}: {reason}.")


class FetchFailure(RuntimeError):
    """The record source could not answer a query."""

    def __init__(self, entity_set: str, cause: BaseException | None = None) -> None:
        self.entity_set = entity_set
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to fetch records from {entity_set!r}{detail}")


class AggregationError(RuntimeError):
    """An extractor or key function failed while reducing records."""


class NotFound(KeyError):
    """A referenced document does not exist."""

    def __init__(self, entity_set: str, record_id: str) -> None:
        self.entity_set = entity_set
        self.record_id = record_id
        super().__init__(f"Record {record_id!r} not found in {entity_set!r}.")

    def __str__(self) -> str:
        return str(self.args[0])


class LedgerConflict(ValueError):
    """A write was rejected by a business rule."""
