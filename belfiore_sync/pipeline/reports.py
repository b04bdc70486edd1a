"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from belfiore_sync.common.fs import write_json
from belfiore_sync.pipeline.sync import SyncResult


def write_run_summary(data_dir: Path, result: SyncResult | None, *, status: str, error_code: str | None = None) -> Path:
    totals = {
        "parsed": 0,
        "mapped": 0,
        "rejected": 0,
        "duplicates": 0,
        "candidates": 0,
        "deleted": 0,
        "upserted": 0,
    }
    type_reports = {}
    if result is not None:
        for type_result in result.types:
            rejected = sum(type_result.rejected.values())
            type_reports[type_result.item_type] = {
                "profile": type_result.profile,
                "counts": {
                    "parsed": type_result.parsed,
                    "mapped": type_result.mapped,
                    "rejected": rejected,
                    "duplicates": type_result.duplicates,
                    "candidates": type_result.candidates,
                    "deleted": type_result.deleted,
                    "upserted": type_result.upserted,
                },
                "rejected_by_reason": type_result.rejected,
            }
            totals["parsed"] += type_result.parsed
            totals["mapped"] += type_result.mapped
            totals["rejected"] += rejected
            totals["duplicates"] += type_result.duplicates
            totals["candidates"] += type_result.candidates
            totals["deleted"] += type_result.deleted
            totals["upserted"] += type_result.upserted

    summary_path = data_dir / "reports" / "run_summary.json"
    payload = {
        "run_id": result.run_id if result is not None else None,
        "status": status,
        "error_code": error_code,
        "dry_run": result.dry_run if result is not None else None,
        "italy_upserted": result.italy_upserted if result is not None else False,
        "total_upserted": result.total_upserted if result is not None else 0,
        "totals": totals,
        "types": type_reports,
    }
    write_json(summary_path, payload)
    return summary_path
