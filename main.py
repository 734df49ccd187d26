#!/usr/bin/env python3
"""
Backup dashboard -- command-line helpers.

Usage:
  python main.py probe acme
  python main.py probe acme --json
  python main.py customers
  python main.py customers --search acme --json

Environment variables (see core/config.py):
  PRESHARED_TOKEN   Token for the vendor customer API (required for `customers`)
  VENDOR_API_URL    Vendor API base URL
  DEV_HOST_SUFFIX   Host suffix of development environments
"""

import argparse
import json
import sys
from dataclasses import asdict

from core.config import get_settings
from core.enricher import has_valid_domain, search_customers
from core.fetcher import VendorAPIError
from core.pipeline import load_customers
from core.prober import probe_environment, probe_url
from inventory.hosting import ResidentHostingMap
from inventory.store import TimestampStore


def _probe(args: argparse.Namespace) -> int:
    settings = get_settings()
    if not has_valid_domain(args.domain):
        print(f"  [!] '{args.domain}' is not a usable customer domain.")
        return 2

    result = probe_environment(args.domain, settings)
    if args.json:
        print(json.dumps(asdict(result), indent=2, default=str))
        return 0

    print(f"\n  Probing {probe_url(args.domain, settings)}")
    print(f"  Reachable : {'yes' if result.reachable else 'no'}")
    if result.http_status is not None:
        print(f"  Status    : {result.http_status}")
    if result.final_url:
        print(f"  Final URL : {result.final_url}")
    if result.reason is not None:
        print(f"  Reason    : {result.reason.value}")
    if result.error:
        print(f"  Error     : {result.error}")
    print()
    return 0


def _customers(args: argparse.Namespace) -> int:
    settings = get_settings()
    if not settings.preshared_token:
        print("  [!] PRESHARED_TOKEN is not set.")
        return 2

    resident_map = ResidentHostingMap.load(settings.resident_map_path)
    timestamps = TimestampStore(settings.timestamps_path).load()
    try:
        result = load_customers(settings, settings.preshared_token, resident_map, timestamps, name=args.name)
    except VendorAPIError as e:
        print(f"  [!] {e.message}")
        return 1

    customers = search_customers(result.customers, search=args.search)

    if args.json:
        print(
            json.dumps(
                {"summary": asdict(result.summary), "customers": [asdict(c) for c in customers]},
                indent=2,
                default=str,
            )
        )
        return 0

    s = result.summary
    print("\nBackup Dashboard -- Customers")
    print("─" * 40)
    print(f"  Total {s.total}  Pending {s.pending}  Resident {s.resident}  ITAR {s.itar}  ")
    print(f"  Invalid domain {s.invalid}  Unavailable {s.unavailable}\n")
    for c in customers:
        pulled = c.last_pulled_at or "never"
        print(f"  {c.id:>6}  {c.name[:30]:<30}  {c.domain[:24]:<24}  {c.environment_status.value:<20}  {pulled}")
    print()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="pullboard",
        description="Customer environment checks for the backup dashboard.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py probe acme
  python main.py customers --search acme
        """,
    )
    sub = parser.add_subparsers(dest="command")

    probe = sub.add_parser("probe", help="Probe one customer's development environment")
    probe.add_argument("domain", help="Customer domain, e.g. acme")
    probe.add_argument("--json", action="store_true", help="Output structured JSON")
    probe.set_defaults(func=_probe)

    customers = sub.add_parser("customers", help="Fetch and classify the customer list")
    customers.add_argument("--name", default=None, help="Forwarded to the vendor API name filter")
    customers.add_argument("--search", default=None, help="Substring match on name or domain")
    customers.add_argument("--json", action="store_true", help="Output structured JSON")
    customers.set_defaults(func=_customers)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
