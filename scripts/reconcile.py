#!/usr/bin/env python3
"""
Operator CLI for the stock reconciliation engine.

Usage:
    python3 scripts/reconcile.py [global options] <command> [args]

Commands:
    init-db                         Create the ledger tables.
    ingest-orders [--incremental]   Turn orders (--orders FILE) into sale movements.
    ingest-purchases FILE           Turn received purchase orders into purchase movements.
    summary [--sku SKU] [--force]   Print expected-vs-actual summaries.
    reconcile SKU COUNT [--notes]   Record a stock count and correct the ledger.
    cleanup {sale,purchase}         Remove duplicate derived movements.
    exclude-on-hold {on,off}        Set the on-hold order exclusion flag.

Global options:
    --config FILE   YAML overlay for the packaged defaults.
    --db-url URL    Overrides database_url from the configuration.
    --catalog FILE  Product catalog JSON (actual stock and names).
    --orders FILE   Orders JSON / JSON Lines.

Output is JSON on stdout.  Exit status is 1 when a batch finished with
failures, 2 on a usage error.

Examples:
    python3 scripts/reconcile.py init-db
    python3 scripts/reconcile.py --orders orders.jsonl ingest-orders --incremental
    python3 scripts/reconcile.py --catalog catalog.json summary --force
    python3 scripts/reconcile.py --catalog catalog.json reconcile TEA-250 42 --notes "cycle count"
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, is_dataclass, replace
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from stock_config import get_active_config  # noqa: E402
from stock_kernel.db.engine import create_tables  # noqa: E402
from stock_kernel.domain.collaborators import (  # noqa: E402
    NullInventorySource,
    NullOrderSource,
)
from stock_kernel.exceptions import PartialBatchFailure, StockKernelError  # noqa: E402
from stock_kernel.logging_config import configure_logging  # noqa: E402
from stock_ingestion.adapters.json_adapter import (  # noqa: E402
    JsonCatalogSource,
    JsonOrderSource,
    JsonPurchaseOrderSource,
)
from stock_services.reconciliation_service import StockReconciliationService  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Stock ledger ingestion, summaries and reconciliation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, help="YAML configuration overlay.")
    parser.add_argument("--db-url", help="Database URL (overrides configuration).")
    parser.add_argument("--catalog", type=Path, help="Product catalog JSON file.")
    parser.add_argument("--orders", type=Path, help="Orders JSON / JSON Lines file.")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables.")

    ingest = sub.add_parser("ingest-orders", help="Create sale movements from orders.")
    ingest.add_argument(
        "--incremental",
        action="store_true",
        help="Only orders created after the last sync watermark.",
    )

    purchases = sub.add_parser("ingest-purchases", help="Create purchase movements.")
    purchases.add_argument("file", type=Path, help="Purchase orders JSON file.")

    summary = sub.add_parser("summary", help="Print reconciliation summaries.")
    summary.add_argument("--sku", help="Only this SKU (uncached).")
    summary.add_argument("--force", action="store_true", help="Bypass the cache.")

    reconcile = sub.add_parser("reconcile", help="Record a physical stock count.")
    reconcile.add_argument("sku")
    reconcile.add_argument("count", type=int)
    reconcile.add_argument("--notes")

    cleanup = sub.add_parser("cleanup", help="Remove duplicate movements.")
    cleanup.add_argument("movement_type", choices=["sale", "purchase"])

    on_hold = sub.add_parser("exclude-on-hold", help="Set on-hold order exclusion.")
    on_hold.add_argument("value", choices=["on", "off"])

    return parser.parse_args(argv)


def _emit(payload) -> None:
    if is_dataclass(payload):
        payload = asdict(payload)
    elif isinstance(payload, list):
        payload = [asdict(p) if is_dataclass(p) else p for p in payload]
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def _build_service(args: argparse.Namespace) -> StockReconciliationService:
    config = get_active_config(args.config)
    configure_logging(level=config.log_level, stream=sys.stderr)

    if args.db_url:
        config = replace(config, database_url=args.db_url)

    inventory = JsonCatalogSource(args.catalog) if args.catalog else NullInventorySource()
    orders = JsonOrderSource(args.orders) if args.orders else NullOrderSource()

    return StockReconciliationService.from_config(
        config, inventory_source=inventory, order_source=orders,
    )


def _run(args: argparse.Namespace, service: StockReconciliationService) -> int:
    match args.command:
        case "init-db":
            create_tables(service.engine)
            _emit({"status": "ok"})
            return 0

        case "ingest-orders":
            if args.orders is None:
                print("Error: ingest-orders needs --orders FILE", file=sys.stderr)
                return 2
            orders = service.order_source.get_all_orders()
            if args.incremental:
                result = service.refresh_from_orders(orders)
            else:
                result = service.process_orders(orders)
            _emit(result)
            result.raise_for_errors()
            return 0

        case "ingest-purchases":
            purchase_orders = JsonPurchaseOrderSource(args.file).get_all_purchase_orders()
            result = service.process_purchase_orders(purchase_orders)
            _emit(result)
            result.raise_for_errors()
            return 0

        case "summary":
            if args.sku:
                _emit(service.generate_summary(args.sku))
                return 0
            summaries = service.generate_all_summaries(force_refresh=args.force)
            _emit(
                {
                    "computed_at": service.last_cache_time(),
                    "summaries": [asdict(s) for s in summaries],
                    "errors": [asdict(e) for e in service.cache.last_errors],
                }
            )
            return 1 if service.cache.last_errors else 0

        case "reconcile":
            _emit(service.perform_reconciliation(args.sku, args.count, args.notes))
            return 0

        case "cleanup":
            result = service.cleanup_duplicates(args.movement_type)
            _emit(result)
            result.raise_for_errors()
            return 0

        case "exclude-on-hold":
            service.set_exclude_on_hold_orders(args.value == "on")
            _emit({"exclude_on_hold_orders": service.get_exclude_on_hold_orders()})
            return 0

        case _:
            raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    service = _build_service(args)
    try:
        return _run(args, service)
    except PartialBatchFailure as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except StockKernelError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        service.engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
