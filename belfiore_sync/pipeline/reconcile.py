"""Batch reconciliation by natural key."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from belfiore_sync.common.models import NATURAL_KEY


@dataclass
class ReconcileResult:
    records: list[dict[str, Any]] = field(default_factory=list)
    empty_keys: int = 0
    duplicates: int = 0


def reconcile(records: Iterable[dict[str, Any]], key: str = NATURAL_KEY) -> ReconcileResult:
    result = ReconcileResult()
    seen: set[str] = set()
    for record in records:
        value = record.get(key)
        if value is None or str(value).strip() == "":
            result.empty_keys += 1
            continue
        if value in seen:
            result.duplicates += 1
            continue
        seen.add(value)
        result.records.append(record)
    return result
