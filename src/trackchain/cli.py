"""
Command-line interface for TrackChain.

Provides operational commands for a deployment:
- init-db: Create the SQLite order schema
- list: List orders
- show: Print an order with its ledger history and location index
- verify: Print the public verification summary for an order
- audit: Check an order's content hash and ledger chain
- config: Print the active configuration

Usage:
    trackchain init-db
    trackchain list
    trackchain show ORDER_ID
    trackchain verify ORDER_ID
    trackchain audit ORDER_ID

Exit codes:
    0 success, 1 error (including unknown order), 2 tamper detected.

The commands read whatever storage backend is configured.  With the default
``memory`` backend every invocation starts empty, so set
``TRACKCHAIN_STORAGE_BACKEND=sqlite`` to inspect a persistent deployment.
"""

import argparse
import json
import sys

from trackchain.errors import StoreError, TamperDetected, TrackChainError

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TAMPERED = 2


def _service():
    from trackchain.bootstrap import build_service

    return build_service()


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Create the SQLite schema at the configured database path.

    Returns:
        0 on success, 1 on error
    """
    from trackchain.config import config
    from trackchain.store.sqlite import SqliteOrderStore

    try:
        SqliteOrderStore(config.storage.absolute_db_path).init_schema()
        config.storage.absolute_ledger_path.parent.mkdir(parents=True, exist_ok=True)
        print(f"Database initialized at {config.storage.absolute_db_path}")
        return EXIT_OK
    except (StoreError, OSError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return EXIT_ERROR


def cmd_list(args: argparse.Namespace) -> int:
    """Print one line per order: id, status, customer, product."""
    try:
        orders = _service().list_orders()
    except (TrackChainError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not orders:
        print("No orders.")
        return EXIT_OK
    for order in orders:
        print(
            f"{order.order_id}  {order.status.value:<16}  "
            f"{order.customer_id}  {order.product_name} x{order.quantity}"
        )
    return EXIT_OK


def cmd_show(args: argparse.Namespace) -> int:
    """Print the order, its history and its locations as JSON."""
    try:
        details = _service().get_order_details(args.order_id)
    except (TrackChainError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    print(json.dumps(details.to_dict(), indent=2, ensure_ascii=False))
    return EXIT_OK


def cmd_verify(args: argparse.Namespace) -> int:
    """Print the public verification summary as JSON."""
    try:
        summary = _service().verify(args.order_id)
    except (TrackChainError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    return EXIT_OK


def cmd_audit(args: argparse.Namespace) -> int:
    """
    Verify an order's content hash and full ledger chain.

    Returns:
        0 if intact, 1 on error, 2 if tampering was detected
    """
    try:
        count = _service().audit(args.order_id)
    except TamperDetected as e:
        print(f"TAMPERED: {e}", file=sys.stderr)
        return EXIT_TAMPERED
    except (TrackChainError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    print(f"OK: {count} ledger records verified for {args.order_id}")
    return EXIT_OK


def cmd_config(args: argparse.Namespace) -> int:
    """Print the active configuration summary."""
    from trackchain.config import print_config_summary

    print_config_summary()
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trackchain",
        description="TrackChain - tamper-evident shipment tracking ledger",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description="Create the SQLite order tables at the configured path.",
    )
    init_parser.set_defaults(func=cmd_init_db)

    list_parser = subparsers.add_parser("list", help="List orders")
    list_parser.set_defaults(func=cmd_list)

    for name, func, help_text in (
        ("show", cmd_show, "Show an order with its ledger history"),
        ("verify", cmd_verify, "Print the public verification summary"),
        ("audit", cmd_audit, "Verify the order's ledger chain (exit 2 on tamper)"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("order_id", help="Order identifier (ORD-...)")
        sub.set_defaults(func=func)

    config_parser = subparsers.add_parser("config", help="Print the active configuration")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    from trackchain.logging_setup import configure_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
