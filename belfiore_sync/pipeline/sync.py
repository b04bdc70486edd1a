"""Sync orchestration: fetch, parse, map, reconcile and write per item type."""

from __future__ import annotations

import json
import logging
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterator, Sequence

from belfiore_sync.common.config_loader import ConfigBundle, resolve_profile, resolve_types
from belfiore_sync.common.constants import ITALY_KEY, ITALY_NAME, ITEM_TYPE_STATO
from belfiore_sync.common.errors import ConfigError, PipelineError
from belfiore_sync.common.logging import log_event
from belfiore_sync.common.models import NATURAL_KEY, SourceProfile
from belfiore_sync.common.time_utils import utc_now
from belfiore_sync.parsers.delimited import DelimitedTableParser
from belfiore_sync.parsers.grid_table import GridTableParser
from belfiore_sync.pipeline.fetch import SourceFetcher
from belfiore_sync.pipeline.mapping import RecordMapper, lookup
from belfiore_sync.pipeline.reconcile import reconcile
from belfiore_sync.pipeline.store import Store


@dataclass(frozen=True)
class SyncRequest:
    type: str = "*"
    source: str = "csv"
    profile: str | None = None
    no_truncate: bool = False
    dry_run: bool = False


@dataclass
class TypeResult:
    item_type: str
    profile: str
    parsed: int = 0
    mapped: int = 0
    rejected: dict[str, int] = field(default_factory=dict)
    empty_keys: int = 0
    duplicates: int = 0
    candidates: int = 0
    deleted: int = 0
    upserted: int = 0
    sample: dict[str, Any] | None = None


@dataclass
class SyncResult:
    run_id: str
    dry_run: bool
    types: list[TypeResult] = field(default_factory=list)
    italy_upserted: bool = False
    total_upserted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def italy_sentinel(item_type: str, now: datetime) -> dict[str, Any]:
    return {
        NATURAL_KEY: ITALY_KEY,
        "item_type": item_type,
        "denominazione": ITALY_NAME.title(),
        "denominazione_en": "Italy",
        "denominazione_de": "Italien",
        "is_foreign_state": False,
        "cittadinanza": True,
        "nascita": True,
        "residenza": True,
        "tipo": "Nazione",
        "created_at": now,
        "updated_at": now,
    }


def is_state_row(row: Any) -> bool:
    if not isinstance(row, dict):
        return False
    if "CODAT" in row:
        return True
    name = lookup(row, "denominazione")
    return isinstance(name, str) and name.strip().upper() == ITALY_NAME


def parse_rows(profile: SourceProfile, raw: bytes) -> list[Any]:
    if profile.driver == "csv":
        _headers, rows = DelimitedTableParser(profile.options).parse(raw)
        return rows
    if profile.driver == "rst":
        _headers, rows = GridTableParser().parse_bytes(raw, profile.options.encoding)
        return [row for row in rows if is_state_row(row)]
    raise ConfigError(f"Unsupported driver={profile.driver}")


def chunked(rows: Sequence[dict[str, Any]], size: int) -> Iterator[Sequence[dict[str, Any]]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def format_sample(record: dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, indent=2, default=str)


class SyncOrchestrator:
    def __init__(
        self,
        bundle: ConfigBundle,
        fetcher: SourceFetcher,
        store: Store,
        logger: logging.Logger,
        run_id: str,
        now: datetime | None = None,
    ) -> None:
        self.bundle = bundle
        self.settings = bundle.settings
        self.fetcher = fetcher
        self.store = store
        self.logger = logger
        self.run_id = run_id
        self.now = now or utc_now()
        # Partial on failure: types already committed stay counted.
        self.result: SyncResult | None = None

    def _log(self, message: str, **fields: Any) -> None:
        fields.setdefault("status", "ok")
        log_event(self.logger, message, run_id=self.run_id, **fields)

    def run(self, request: SyncRequest) -> SyncResult:
        types = resolve_types(request.type)
        # Every profile is resolved before the first fetch.
        profiles = {
            item_type: resolve_profile(self.bundle, request.source, request.type, item_type, request.profile)
            for item_type in types
        }

        result = self.result = SyncResult(run_id=self.run_id, dry_run=request.dry_run)
        self._log(
            f"Starting geo-locations synchronization: table={self.settings.table} source={request.source} "
            f"types={', '.join(types)}" + (" (dry run, no writes)" if request.dry_run else ""),
            event="SYNC_START",
        )

        for item_type in types:
            profile = profiles[item_type]
            try:
                type_result = self.sync_type(item_type, profile, request)
            except PipelineError as exc:
                self._log(
                    f"Sync failed for type={item_type}: {exc}",
                    event="TYPE_FAIL",
                    status="error",
                    item_type=item_type,
                    profile=profile.name,
                    error_code=exc.error_code,
                )
                raise
            result.types.append(type_result)
            result.total_upserted += type_result.upserted

            if item_type == ITEM_TYPE_STATO and not request.dry_run:
                self.upsert_italy()
                result.italy_upserted = True
                result.total_upserted += 1

        self._log(
            f"Completed. Upserted {result.total_upserted} records.",
            event="SYNC_END",
            rows_out=result.total_upserted,
        )
        return result

    def map_rows(self, rows: list[Any], item_type: str, profile: SourceProfile) -> tuple[list[dict], Counter]:
        mapper = RecordMapper(profile.mapping, self.settings.item_types, now=self.now)
        records: list[dict] = []
        rejected: Counter = Counter()
        for row in rows:
            outcome = mapper.map_row(row, item_type, profile.source_type)
            if outcome.kept:
                records.append(outcome.record)
            else:
                rejected[outcome.reason] += 1
        return records, rejected

    def sync_type(self, item_type: str, profile: SourceProfile, request: SyncRequest) -> TypeResult:
        started = time.monotonic()
        type_result = TypeResult(item_type=item_type, profile=profile.name)
        context = {"item_type": item_type, "profile": profile.name, "source": profile.source}

        self._log(
            f"Syncing type={item_type} using driver={profile.driver} from {profile.source_type}",
            event="TYPE_START",
            **context,
        )
        raw = self.fetcher.fetch(profile)
        self._log(f"Fetched {len(raw)} bytes", event="FETCH_DONE", **context)

        rows = parse_rows(profile, raw)
        type_result.parsed = len(rows)
        self._log(f"Parsed records: {len(rows)}", event="PARSE_DONE", rows_out=len(rows), **context)

        records, rejected = self.map_rows(rows, item_type, profile)
        reconciled = reconcile(records)
        type_result.mapped = len(records)
        type_result.rejected = dict(sorted(rejected.items()))
        type_result.empty_keys = reconciled.empty_keys
        type_result.duplicates = reconciled.duplicates
        type_result.candidates = len(reconciled.records)
        self._log(
            f"Prepared for upsert: {type_result.candidates}",
            event="MAP_DONE",
            rows_in=len(rows),
            rows_out=type_result.candidates,
            **context,
        )

        if not reconciled.records:
            self._log("No valid rows after mapping/filtering.", event="TYPE_END", status="warning", **context)
            return type_result

        if request.dry_run:
            type_result.sample = reconciled.records[0]
            self._log(
                f"Dry-run sample row:\n{format_sample(type_result.sample)}",
                event="DRY_RUN_SAMPLE",
                rows_out=type_result.candidates,
                **context,
            )
            return type_result

        type_result.deleted, type_result.upserted = self.write(item_type, reconciled.records, request, context)
        self._log(
            f"Upserted {type_result.upserted} rows for type={item_type}",
            event="TYPE_END",
            rows_out=type_result.upserted,
            duration_ms=int((time.monotonic() - started) * 1000),
            **context,
        )
        return type_result

    def write(
        self,
        item_type: str,
        records: list[dict[str, Any]],
        request: SyncRequest,
        context: dict[str, Any],
    ) -> tuple[int, int]:
        upsert_cfg = self.settings.upsert
        truncate = self.settings.truncate_before_sync and not request.no_truncate
        deleted = 0
        written = 0
        with self.store.transaction():
            if truncate:
                deleted = self.store.delete(
                    self.settings.resolve_item_type(item_type),
                    item_type == ITEM_TYPE_STATO,
                )
                self._log(f"Deleted {deleted} existing rows for type={item_type}", event="TRUNCATE", **context)
            for batch in chunked(records, self.settings.chunk_size):
                written += self.store.upsert(batch, upsert_cfg.unique_by, upsert_cfg.update)
                self._log(
                    f"Upserted {written}/{len(records)}",
                    event="UPSERT_BATCH",
                    rows_out=written,
                    **context,
                )
        return deleted, written

    def upsert_italy(self) -> None:
        row = italy_sentinel(self.settings.resolve_item_type(ITEM_TYPE_STATO), self.now)
        with self.store.transaction():
            self.store.upsert([row], self.settings.upsert.unique_by, self.settings.upsert.update)
        self._log(
            f"Upsert country: Italia with codice_catastale='{ITALY_KEY}'.",
            event="ITALY_UPSERT",
            item_type=ITEM_TYPE_STATO,
            rows_out=1,
        )
