"""Local DynamoDB table maintenance.

    dmphub-nosql prepare-local [--table NAME | --typeaheads]
    dmphub-nosql purge-local [--table NAME | --typeaheads]

Both commands refuse to run outside the development/test/docker environments.
"""

from __future__ import annotations

import argparse
import sys

from .nosql.adapter import create_adapter
from .nosql.errors import NosqlError
from .nosql.typeahead_item import TypeaheadItem
from .observability.logging import configure_logging, get_logger
from .settings import get_settings

log = get_logger("cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dmphub-nosql", description="Manage the local DMP-ID table")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("prepare-local", "Create the table if it does not exist"),
        ("purge-local", "Delete every item in the table"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        target = cmd.add_mutually_exclusive_group()
        target.add_argument("--table", type=str, help="Table name (defaults to NOSQL_TABLE)")
        target.add_argument("--typeaheads", action="store_true", help="Use the NOSQL_TYPEAHEADS_TABLE table")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(level=settings.log_level)
    log.info("settings_loaded", settings=settings.to_log_safe_dict())

    table = settings.nosql_typeahead_table if args.typeaheads else args.table
    item_class = TypeaheadItem if args.typeaheads else None

    try:
        adapter = create_adapter("aws", table=table, item_class=item_class, settings=settings)
        if args.command == "prepare-local":
            created = adapter.initialize_database()
            log.info("prepare_local_done", table=adapter.table_name, created=created)
            print(f"{adapter.table_name}: {'created' if created else 'already exists'}")
        else:
            removed = adapter.purge_database()
            log.info("purge_local_done", table=adapter.table_name, removed=removed)
            print(f"{adapter.table_name}: removed {removed} items")
    except NosqlError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
