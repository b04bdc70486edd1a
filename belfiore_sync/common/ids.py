"""Run identifier helpers."""

from __future__ import annotations

from belfiore_sync.common.time_utils import utc_now


def generate_run_id() -> str:
    # Sortable by start time.
    return utc_now().strftime("sync-%Y%m%dT%H%M%S%fZ")
