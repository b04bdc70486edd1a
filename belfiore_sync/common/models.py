"""Data models used across the sync pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

GEO_RECORD_FIELDS = (
    "item_type",
    "denominazione",
    "denominazione_de",
    "denominazione_en",
    "altra_denominazione",
    "codice_catastale",
    "sigla_provincia",
    "id_provincia",
    "id_regione",
    "stato",
    "is_foreign_state",
    "codice",
    "codice_mae",
    "codice_min",
    "codice_istat",
    "codice_iso3",
    "cittadinanza",
    "nascita",
    "residenza",
    "tipo",
    "fonte",
    "cap",
    "valid_from",
    "valid_to",
    "last_change",
    "created_at",
    "updated_at",
)
DENOMINATION_FIELDS = ("denominazione", "denominazione_de", "denominazione_en")
BOOLEAN_FIELDS = ("is_foreign_state", "cittadinanza", "nascita", "residenza")
DATE_FIELDS = ("valid_from", "valid_to")
NATURAL_KEY = "codice_catastale"

DEFAULT_REQUIRED_COLUMNS = (
    ("DENOMINAZIONE", "CODAT"),
    ("descr_i", "codice"),
)


@dataclass(frozen=True)
class FieldSpec:
    column: str | None = None
    fallback_columns: tuple[str, ...] = ()
    default: Any = None
    transform: str | None = None


@dataclass(frozen=True)
class Discriminator:
    column: str
    values: dict[str, str]


@dataclass(frozen=True)
class MappingProfile:
    fields: dict[str, FieldSpec]
    defaults: dict[str, Any] = field(default_factory=dict)
    discriminator: Discriminator | None = None
    required_columns: tuple[tuple[str, ...], ...] = DEFAULT_REQUIRED_COLUMNS


@dataclass(frozen=True)
class DelimitedOptions:
    delimiter: str = ","
    enclosure: str = '"'
    escape: str | None = "\\"
    header_row: bool = True
    encoding: str = "UTF-8"


@dataclass(frozen=True)
class SourceProfile:
    name: str
    driver: str
    source_type: str
    source: str
    options: DelimitedOptions
    mapping: MappingProfile

    def source_path(self, base_dir: Path) -> Path:
        path = Path(self.source)
        return path if path.is_absolute() else base_dir / path


@dataclass(frozen=True)
class UpsertConfig:
    unique_by: tuple[str, ...]
    update: tuple[str, ...]


@dataclass(frozen=True)
class SyncSettings:
    table: str = "geo_locations"
    chunk_size: int = 500
    truncate_before_sync: bool = True
    http_timeout: float = 60.0
    http_retry_attempts: int = 1
    database_url: str = "sqlite:///data/geo_locations.sqlite3"
    upsert: UpsertConfig = UpsertConfig(unique_by=(NATURAL_KEY,), update=())
    item_types: dict[str, str] = field(default_factory=dict)

    def resolve_item_type(self, value: str) -> str:
        return self.item_types.get(value, value)
