import argparse
import logging
import sys
from datetime import datetime
from uuid import UUID

import uvicorn

from leadpulse.adapters.sqlite.migrator import SQLiteMigrator
from leadpulse.app_shell.config import ConfigurationError, Settings, validate_ops_rules
from leadpulse.app_shell.context import ServiceContext
from leadpulse.components.aggregates import Scope, TimeRange
from leadpulse.components.reconciler import ReconcileResult
from leadpulse.core.entities import ensure_utc
from leadpulse.rules.loader import load_rules

logger = logging.getLogger("leadpulse.cli")


def get_context(settings: Settings) -> ServiceContext:
    if not settings.rules_path.exists():
        logger.error("Rules file %s not found.", settings.rules_path)
        sys.exit(1)

    rules = load_rules(settings.rules_path)
    try:
        validate_ops_rules(rules, settings.data_dir)
    except ConfigurationError as e:
        logger.error("%s", e)
        sys.exit(1)

    pending = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).pending_migrations()
    if pending:
        logger.error(
            "Database has %d pending migrations (%s); run `leadpulse migrate` first.",
            len(pending),
            ", ".join(pending),
        )
        sys.exit(1)
    return ServiceContext.create(settings.db_path, rules)


def parse_time(value: str) -> datetime:
    """argparse type for ISO-8601 timestamps (naive means UTC)."""
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Not an ISO-8601 timestamp: {value}") from e


def _report(result: ReconcileResult) -> bool:
    if result.success:
        print(
            f"Reconciled {result.scope}: {result.events_scanned} events, "
            f"{result.buckets_written} buckets"
        )
    else:
        for error in result.errors:
            print(f"Reconcile of {result.scope} failed ({error.code}): {error.message}")
    return result.success


def handle_migrate(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    migrator = SQLiteMigrator(settings.db_path, str(settings.migrations_dir))
    applied = migrator.run_migrations()
    print(f"Applied {len(applied)} migrations.")


def handle_serve(settings: Settings, args: argparse.Namespace) -> None:
    uvicorn.run(
        "leadpulse.api.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
    )


def handle_reconcile(ctx: ServiceContext, args: argparse.Namespace) -> bool:
    scope = Scope.link(args.link) if args.link else Scope.page(args.page)
    result = ctx.reconciler.reconcile(scope, TimeRange(args.start, args.end))
    return _report(result)


def handle_reconcile_all(ctx: ServiceContext, args: argparse.Namespace) -> bool:
    time_range = TimeRange(args.start, args.end)
    ok = True
    for page in ctx.directory.list_pages():
        ok = _report(ctx.reconciler.reconcile(Scope.page(page.id), time_range)) and ok
        for link in ctx.directory.list_links(page.id, active_only=False):
            ok = _report(ctx.reconciler.reconcile(Scope.link(link.id), time_range)) and ok
    return ok


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="leadpulse CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending SQL migrations")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default: LEADPULSE_HOST)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: LEADPULSE_PORT)")

    # reconcile
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Recount one link or page from raw events"
    )
    target = reconcile_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--link", type=UUID, help="Link id")
    target.add_argument("--page", type=UUID, help="Page id")
    reconcile_parser.add_argument("--start", type=parse_time, help="Range start (inclusive)")
    reconcile_parser.add_argument("--end", type=parse_time, help="Range end (exclusive)")

    # reconcile-all
    all_parser = subparsers.add_parser(
        "reconcile-all", help="Recount every page and link from raw events"
    )
    all_parser.add_argument("--start", type=parse_time, help="Range start (inclusive)")
    all_parser.add_argument("--end", type=parse_time, help="Range end (exclusive)")

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    settings = Settings()

    if args.command == "migrate":
        handle_migrate(settings)
        return 0
    if args.command == "serve":
        handle_serve(settings, args)
        return 0

    ctx = get_context(settings)
    if args.command == "reconcile":
        ok = handle_reconcile(ctx, args)
    elif args.command == "reconcile-all":
        ok = handle_reconcile_all(ctx, args)
    else:
        raise ValueError(f"Unknown command: {args.command}")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
