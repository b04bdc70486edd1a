"""Declarative mapping of raw feed rows onto the geo record schema."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from belfiore_sync.common.constants import ITALY_KEY, ITALY_NAME, ITEM_TYPE_COMUNE, ITEM_TYPE_STATO
from belfiore_sync.common.models import (
    BOOLEAN_FIELDS,
    DATE_FIELDS,
    DENOMINATION_FIELDS,
    NATURAL_KEY,
    FieldSpec,
    MappingProfile,
)
from belfiore_sync.common.time_utils import utc_now

DMY_SLASH_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WRAPPED_LINE_RE = re.compile(r"\s*[\r\n]+\s*")
PROVINCE_CODE_COLUMNS = ("sigla_provincia", "sigla")
TRUTHY_STRINGS = {"1", "true", "s", "si", "y", "yes", "t"}

REJECT_TYPE_MISMATCH = "type_mismatch"
REJECT_MISSING_REQUIRED = "missing_required"
REJECT_EMPTY_KEY = "empty_key"
REJECT_INVALID_KEY = "invalid_key"

DISCRIMINATED_FIELDS = frozenset({"item_type", "is_foreign_state"})


def date_dmy_slash(value: Any) -> str | None:
    text = str(value or "").strip()
    if DMY_SLASH_RE.match(text) is None:
        return None
    try:
        return datetime.strptime(text, "%d/%m/%Y").date().isoformat()
    except ValueError:
        return None


def bool_s_n(value: Any) -> bool:
    return str(value or "").strip().upper() == "S"


TRANSFORMS = {
    "date_dmy_slash": date_dmy_slash,
    "bool_s_n": bool_s_n,
}


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return bool(value)


def title_case(value: str) -> str:
    return value.title()


def clean_string(value: str) -> str:
    # Wrapped grid-table text is folded onto one line.
    value = _WRAPPED_LINE_RE.sub(" ", value.strip())
    value = _CONTROL_CHARS_RE.sub("", value)
    return value.replace(",", "").strip()


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def lookup(row: Mapping[str, Any], column: str | None) -> Any:
    """Case-insensitive column lookup: lower-cased first, then as given."""
    if not column:
        return None
    for candidate in (column.lower(), column):
        if candidate in row:
            return row[candidate]
    folded = column.casefold()
    for key, value in row.items():
        if isinstance(key, str) and key.casefold() == folded:
            return value
    return None


def guess_item_type(row: Mapping[str, Any]) -> str:
    """Municipality feeds carry a two-letter province code, state feeds do not."""
    for column in PROVINCE_CODE_COLUMNS:
        value = lookup(row, column)
        if value is not None:
            return ITEM_TYPE_COMUNE if len(str(value)) == 2 else ITEM_TYPE_STATO
    return ITEM_TYPE_STATO


def is_italy(record: Mapping[str, Any]) -> bool:
    name = record.get("denominazione")
    return isinstance(name, str) and name.strip().upper() == ITALY_NAME


def apply_italy_override(record: dict[str, Any]) -> dict[str, Any]:
    record[NATURAL_KEY] = ITALY_KEY
    record["is_foreign_state"] = False
    record["cittadinanza"] = True
    record["nascita"] = True
    record["residenza"] = True
    if _is_empty(record.get("tipo")):
        record["tipo"] = "Nazione"
    if _is_empty(record.get("denominazione_de")):
        record["denominazione_de"] = "Italien"
    if _is_empty(record.get("denominazione_en")):
        record["denominazione_en"] = "Italy"
    return record


@dataclass(frozen=True)
class MappingOutcome:
    record: dict[str, Any] | None = None
    reason: str | None = None

    @property
    def kept(self) -> bool:
        return self.record is not None


class RecordMapper:
    def __init__(
        self,
        mapping: MappingProfile,
        item_types: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> None:
        self.mapping = mapping
        self.item_types = dict(item_types or {})
        self.now = now or utc_now()

    def _item_type(self, value: str) -> str:
        return self.item_types.get(value, value)

    def _has_required_columns(self, row: Mapping[str, Any]) -> bool:
        return any(
            all(lookup(row, column) is not None for column in group) for group in self.mapping.required_columns
        )

    def _resolve_value(self, row: Mapping[str, Any], spec: FieldSpec) -> Any:
        value = lookup(row, spec.column)
        if _is_empty(value):
            for fallback in spec.fallback_columns:
                candidate = lookup(row, fallback)
                if not _is_empty(candidate):
                    value = candidate
                    break
        if _is_empty(value) and spec.default is not None:
            value = spec.default
        if isinstance(value, str):
            value = clean_string(value)
        return None if _is_empty(value) else value

    def _apply_discriminator(self, row: Mapping[str, Any], record: dict[str, Any]) -> frozenset[str]:
        """Set the type fields from the discriminator column and return the fields it owns."""
        discriminator = self.mapping.discriminator
        if discriminator is None:
            return frozenset()
        raw_value = lookup(row, discriminator.column)
        if raw_value is None:
            return frozenset()
        mapped_type = discriminator.values.get(str(raw_value).strip())
        if not mapped_type:
            return frozenset()
        record["item_type"] = self._item_type(mapped_type)
        record["is_foreign_state"] = mapped_type == ITEM_TYPE_STATO
        return DISCRIMINATED_FIELDS

    def build_record(self, row: Mapping[str, Any], sync_type: str) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for key, value in self.mapping.defaults.items():
            record[key] = self._item_type(value) if key == "item_type" else value

        discriminated = self._apply_discriminator(row, record)

        for field_name, spec in self.mapping.fields.items():
            if field_name in discriminated:
                continue
            value = self._resolve_value(row, spec)
            if value is None:
                continue
            if spec.transform:
                value = TRANSFORMS[spec.transform](value)
                if value is None:
                    continue
            if field_name in DENOMINATION_FIELDS and isinstance(value, str):
                value = title_case(value)
            record[field_name] = value

        record.setdefault("item_type", self._item_type(sync_type))
        for field_name in BOOLEAN_FIELDS:
            if field_name in record:
                record[field_name] = to_bool(record[field_name])
        for field_name in DATE_FIELDS:
            if field_name in record and _is_empty(record[field_name]):
                del record[field_name]
        record.setdefault("is_foreign_state", sync_type == ITEM_TYPE_STATO)

        key = record.get(NATURAL_KEY)
        record[NATURAL_KEY] = str(key).strip().upper() if key is not None else ""
        record.setdefault("created_at", self.now)
        record.setdefault("updated_at", self.now)

        if sync_type == ITEM_TYPE_STATO and is_italy(record):
            apply_italy_override(record)
        return record

    def map_row(self, row: Mapping[str, Any], sync_type: str, source_type: str | None = None) -> MappingOutcome:
        if not isinstance(row, Mapping):
            return MappingOutcome(reason=REJECT_MISSING_REQUIRED)
        if source_type == "file" and guess_item_type(row) != sync_type:
            return MappingOutcome(reason=REJECT_TYPE_MISMATCH)
        record = self.build_record(row, sync_type)
        # The home country row is kept even when the feed omits its code columns.
        if record[NATURAL_KEY] != ITALY_KEY and not self._has_required_columns(row):
            return MappingOutcome(reason=REJECT_MISSING_REQUIRED)
        if not record[NATURAL_KEY]:
            return MappingOutcome(reason=REJECT_EMPTY_KEY)
        if len(record[NATURAL_KEY]) > 4:
            return MappingOutcome(reason=REJECT_INVALID_KEY)
        return MappingOutcome(record=record)
