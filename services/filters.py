"""Translate optional scope parameters into store predicates."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from models.records import Predicate


def build_scope_predicates(
    params: Mapping[str, Any],
    field_map: Optional[Mapping[str, Optional[str]]] = None,
) -> List[Predicate]:
    """Build conjunctive equality predicates, skipping absent parameters.

    ``field_map`` renames caller parameters to store fields, for example
    ``{"area": "address.ward"}``. Parameters mapped to ``None`` are ignored
    for this entity set.
    """
    mapping = field_map or {}
    predicates: List[Predicate] = []
    for name, value in params.items():
        if value is None or value == "":
            continue
        field_name = mapping.get(name, name)
        if field_name is None:
            continue
        predicates.append(Predicate(field_name, "==", value))
    return predicates
