#!/usr/bin/env python3
"""
quintet - command-line entry point.

Initializes a relation store, inspects schemas and instances, runs reports,
checks grants, and writes or restores dumps.
"""

import json
import logging
import sys
import argparse
from pathlib import Path
from typing import Dict, Optional

from quintet.config import config
from quintet.database import RelationStore
from quintet.dump import DumpManager
from quintet.errors import QuintetError
from quintet.grants import GrantResolver
from quintet.models import ColumnFilter, GrantLevel, Principal, ReportShape
from quintet.reports import ReportExecutor, render
from quintet.schema import SchemaResolver


def setup_logging():
    """Configure logging for the application."""
    level = getattr(logging, config.get("logging.level", "INFO").upper())
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file)
        ]
    )


def print_json(data):
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def parse_filter(text: str) -> tuple:
    """
    Parse a KEY=FROM..TO filter argument.

    "Amount=100.." sets a lower bound, "Amount=..500" an upper bound and
    "Name=%smith%" a pattern; a value without ".." is used as the "from" part.
    """
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"Filter must look like KEY=VALUE: {text!r}")
    key, value = text.split("=", 1)
    if ".." in value:
        low, high = value.split("..", 1)
        return key, ColumnFilter(from_=low or None, to=high or None)
    return key, ColumnFilter(from_=value)


def run_init(store: RelationStore, args):
    store.initialize_database()
    print(f"Initialized '{store.table}' in {store.db_path} ({store.count_rows()} rows)")


def run_types(store: RelationStore, args):
    resolver = SchemaResolver(store)
    print_json([definition.model_dump() for definition in resolver.list_types()])


def run_fields(store: RelationStore, args):
    resolver = SchemaResolver(store)
    print_json([field.model_dump(mode="json") for field in resolver.resolve_fields(args.type_id)])


def run_show(store: RelationStore, args):
    resolver = SchemaResolver(store)
    instance = resolver.resolve_instance(args.type_id, args.object_id)
    print_json(instance.model_dump(mode="json"))


def run_report(store: RelationStore, args):
    filters: Dict[str, ColumnFilter] = dict(args.filter or [])
    executor = ReportExecutor(store)
    result = executor.run(
        args.report_id,
        filters=filters,
        limit=args.limit,
        offset=args.offset,
        order=args.order
    )
    rendered = render(result, args.shape)
    if isinstance(rendered, str):
        print(rendered, end="")
    else:
        print_json(rendered)


def run_check_grant(store: RelationStore, args):
    principal = Principal(username=args.user, role_id=args.role)
    resolver = GrantResolver.for_principal(store, principal)
    granted = resolver.check_grant(args.id, args.type, GrantLevel(args.level))
    print("GRANTED" if granted else "DENIED")
    return 0 if granted else 2


def run_backup(store: RelationStore, args):
    manager = DumpManager(store)
    if args.zip:
        path = manager.backup_archive(args.path)
        print(f"Wrote {path}")
        return
    with open(args.path, "w", encoding="utf-8", newline="") as stream:
        count = manager.backup(stream)
    print(f"Wrote {count} rows to {args.path}")


def run_restore(store: RelationStore, args):
    store.initialize_database()
    parsed, inserted = DumpManager(store).restore(Path(args.path))
    print(f"Parsed {parsed} rows, inserted {inserted}")


def parse_arguments(argv: Optional[list] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="quintet - object graph over a single self-describing relation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init
  python main.py fields 130
  python main.py report 140 --filter Amount=100.. --limit 20 --shape objects
  python main.py check-grant 150 --user alice --role 135 --level READ
  python main.py backup backups/ --zip
  python main.py restore backups/rel_20240101_120000.dmp.zip
        """
    )

    parser.add_argument(
        "--database",
        type=str,
        default=None,
        help=f"DuckDB file (default: {config.database_filename})"
    )

    parser.add_argument(
        "--table",
        type=str,
        default=None,
        help=f"Relation table name (default: {config.table_name})"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="quintet 0.1.0"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init", help="Create and seed the relation")
    init.set_defaults(handler=run_init)

    types = commands.add_parser("types", help="List composite types")
    types.set_defaults(handler=run_types)

    fields = commands.add_parser("fields", help="Show the resolved fields of a type")
    fields.add_argument("type_id", type=int)
    fields.set_defaults(handler=run_fields)

    show = commands.add_parser("show", help="Show a resolved instance")
    show.add_argument("type_id", type=int)
    show.add_argument("object_id", type=int)
    show.set_defaults(handler=run_show)

    report = commands.add_parser("report", help="Run a report")
    report.add_argument("report_id", type=int)
    report.add_argument("--filter", type=parse_filter, action="append",
                        help="KEY=FROM..TO, KEY=%%pattern%%, KEY=@id (repeatable)")
    report.add_argument("--order", type=str, help="Comma-separated column ids, '-' for descending")
    report.add_argument("--limit", type=int, default=None,
                        help="Page size (default: all rows; reports.default_limit with --offset)")
    report.add_argument("--offset", type=int, default=0)
    report.add_argument("--shape", choices=[s.value for s in ReportShape], default=ReportShape.ROWS.value)
    report.set_defaults(handler=run_report)

    grant = commands.add_parser("check-grant", help="Check a principal's access to a row")
    grant.add_argument("id", type=int)
    grant.add_argument("--type", type=int, default=0, help="Type or field under the row")
    grant.add_argument("--level", choices=["READ", "WRITE"], default="WRITE")
    grant.add_argument("--user", type=str, required=True)
    grant.add_argument("--role", type=int, default=None)
    grant.set_defaults(handler=run_check_grant)

    backup = commands.add_parser("backup", help="Dump the relation")
    backup.add_argument("path", type=str, help="Dump file, or archive path/directory with --zip")
    backup.add_argument("--zip", action="store_true", help="Wrap the dump in a zip archive")
    backup.set_defaults(handler=run_backup)

    restore = commands.add_parser("restore", help="Restore a dump (raw or zipped)")
    restore.add_argument("path", type=str)
    restore.set_defaults(handler=run_restore)

    return parser.parse_args(argv)


def main(argv: Optional[list] = None):
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging()

    try:
        with RelationStore(args.database, args.table) as store:
            status = args.handler(store, args)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")
        sys.exit(130)
    except QuintetError as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"\n{args.command} failed: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(status or 0)


if __name__ == "__main__":
    main()
