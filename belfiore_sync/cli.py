"""CLI entrypoint for the geo-locations (comuni/stati) sync."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from belfiore_sync.common.config_loader import load_all_configs
from belfiore_sync.common.constants import EXIT_HARD_FAIL, EXIT_SUCCESS, SOURCE_GROUPS
from belfiore_sync.common.errors import PipelineError
from belfiore_sync.common.http import HttpClient, RetryConfig
from belfiore_sync.common.ids import generate_run_id
from belfiore_sync.common.logging import build_logger, close_logger, log_event
from belfiore_sync.pipeline.fetch import SourceFetcher
from belfiore_sync.pipeline.reports import write_run_summary
from belfiore_sync.pipeline.store import SqlAlchemyStore
from belfiore_sync.pipeline.sync import SyncOrchestrator, SyncRequest


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--type", default="*", help='comune | stato | "*" (default: "*")')
    parser.add_argument("--source", default="csv", choices=SOURCE_GROUPS)
    parser.add_argument("--profile", default=None, help="Override the source profile name")
    parser.add_argument("--no-truncate", action="store_true", help="Keep existing rows of the selected type(s)")
    parser.add_argument("--dry-run", action="store_true", help="Parse and map only, no store writes")
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--database-url", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    result = None
    status = "error"
    error_code = None
    store = None
    orchestrator = None
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
        settings = bundle.settings
        store = SqlAlchemyStore.from_url(args.database_url or settings.database_url, table_name=settings.table)
        if not args.dry_run:
            store.create_schema()

        with HttpClient(retry=RetryConfig(max_attempts=settings.http_retry_attempts)) as http_client:
            fetcher = SourceFetcher(http_client, base_dir=bundle.base_dir, timeout=settings.http_timeout)
            orchestrator = SyncOrchestrator(bundle, fetcher, store, logger, run_id)
            result = orchestrator.run(
                SyncRequest(
                    type=args.type,
                    source=args.source,
                    profile=args.profile,
                    no_truncate=args.no_truncate,
                    dry_run=args.dry_run,
                )
            )
        status = "success"
        return EXIT_SUCCESS
    except PipelineError as exc:
        error_code = exc.error_code
        log_event(logger, str(exc), run_id=run_id, event="SYNC_FAIL", status="error", error_code=exc.error_code)
        return EXIT_HARD_FAIL
    except Exception as exc:
        error_code = "UNEXPECTED_ERROR"
        log_event(
            logger,
            f"unexpected failure: {exc}",
            run_id=run_id,
            event="SYNC_FAIL",
            status="error",
            error_code=error_code,
        )
        return EXIT_HARD_FAIL
    finally:
        if result is None and orchestrator is not None:
            result = orchestrator.result
        write_run_summary(data_dir, result, status=status, error_code=error_code)
        if store is not None:
            store.dispose()
        close_logger(logger)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    return run_command(args)


if __name__ == "__main__":
    raise SystemExit(main())
