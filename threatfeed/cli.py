"""
Command line entry point: python -m threatfeed <command>
"""

import argparse
import json
import logging
import sys
from typing import Iterator, List, Optional

from .db import init_db
from .errors import AuthError
from .logging_config import setup_logging
from .models import INDICATOR_KINDS
from .services import store
from .services.quota import QuotaManager
from .validators import VALIDATORS, run_validator
from .vendors import VENDOR_NAMES

logger = logging.getLogger("threatfeed.cli")


def _read_lines(path: str) -> Iterator[str]:
    """Non-empty, non-comment lines; ``rank,domain`` top-list rows yield the last column."""
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            yield line.split(",")[-1].strip()


def cmd_init_db(args) -> int:
    init_db()
    print("database ready")
    return 0


def cmd_validate(args) -> int:
    try:
        result = run_validator(args.vendor, recheck=args.recheck)
    except AuthError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    print(result.model_dump_json(indent=2))
    return 0


def cmd_import_raw(args) -> int:
    rows = ({"indicator": value, "kind": args.kind, "source": args.source}
            for value in _read_lines(args.file))
    written = store.add_raw_indicators(rows)
    print(f"imported {written} {args.kind} indicators from {args.source}")
    return 0


def cmd_import_whitelist(args) -> int:
    imported = store.import_trusted_domains(args.source, _read_lines(args.file))
    print(f"imported {imported} trusted domains from {args.source}")
    return 0


def cmd_create_token(args) -> int:
    token = store.create_feed_token(feed_type=args.type, customer_id=args.customer)
    print(token.token)
    return 0


def cmd_quota(args) -> int:
    manager = QuotaManager()
    if args.cleanup:
        print(f"removed {manager.cleanup_stale_periods()} stale quota counters", file=sys.stderr)
    print(json.dumps([manager.usage(name) for name in VENDOR_NAMES], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="threatfeed", description="Threat indicator feed tooling")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("validate", help="Run one validator batch")
    p.add_argument("vendor", choices=sorted(VALIDATORS))
    p.add_argument("--recheck", action="store_true", help="Include indicators already checked by this vendor")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("import-raw", help="Load raw indicators, one per line")
    p.add_argument("file")
    p.add_argument("--source", required=True, help="Name of the feed the indicators came from")
    p.add_argument("--kind", required=True, choices=INDICATOR_KINDS)
    p.set_defaults(func=cmd_import_raw)

    p = sub.add_parser("import-whitelist", help="Load a trusted top-domain list")
    p.add_argument("file")
    p.add_argument("--source", required=True, help="List name, e.g. cisco or cloudflare")
    p.set_defaults(func=cmd_import_whitelist)

    p = sub.add_parser("create-token", help="Issue a feed token")
    p.add_argument("--type", choices=sorted(store.FEED_TYPES), default=None)
    p.add_argument("--customer", default=None)
    p.set_defaults(func=cmd_create_token)

    p = sub.add_parser("quota", help="Show quota usage for every vendor")
    p.add_argument("--cleanup", action="store_true", help="Drop counters from past periods first")
    p.set_defaults(func=cmd_quota)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)
