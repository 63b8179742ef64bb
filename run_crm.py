#!/usr/bin/env python3
"""
Operations CLI for the Sheets-backed CRM.

Commands:
  health    - Read every tab and report row counts / connectivity
  stages    - Show the configured pipeline stages in kanban order
  migrate   - Move STARTUP_INVESTORS links to per-project PROJECT_INVESTORS

Examples:
  python run_crm.py health
  python run_crm.py health --json
  python run_crm.py stages
  python run_crm.py migrate --dry-run
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from services.config_loader import SheetsSettings
from storage.crm_store import CrmStore, open_crm_store
from storage.errors import CrmError, TabNotFoundError
from workflows.migrate_to_projects import run_migration


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(verbose: bool = False):
    """Configure logging for the CLI"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Reduce noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def _store(store: Optional[CrmStore]) -> AsyncIterator[CrmStore]:
    if store is not None:
        yield store
        return
    async with open_crm_store(SheetsSettings.from_env(load_env_file=True)) as live:
        yield live


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

async def cmd_health(args, store: Optional[CrmStore] = None) -> int:
    """Check connectivity and print row counts per tab"""
    async with _store(store) as crm:
        report = await crm.health_check()

    if getattr(args, "json", False):
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.connected else 1

    print("=" * 70)
    print("CRM - HEALTH CHECK")
    print("=" * 70)
    print()
    if not report.connected:
        print(f"  Spreadsheet: FAILED ({report.error})")
        print()
        print("Overall Status: UNHEALTHY")
        return 1

    print("  Spreadsheet: HEALTHY")
    print()
    for name, count in report.counts.items():
        print(f"  {name:<20} {count:>6} rows")
    print()
    print("Overall Status: HEALTHY")
    return 0


async def cmd_stages(args, store: Optional[CrmStore] = None) -> int:
    """Print the pipeline stages"""
    async with _store(store) as crm:
        stages = await crm.get_pipeline_stages()

    for position, stage in enumerate(stages, 1):
        print(f"  {position}. {stage}")
    return 0


async def cmd_migrate(args) -> int:
    """Run the STARTUP_INVESTORS -> PROJECT_INVESTORS migration"""
    settings = SheetsSettings.from_env(load_env_file=True)
    try:
        stats = await run_migration(settings, dry_run=args.dry_run)
    except TabNotFoundError as e:
        print(f"ERROR: {e}")
        print("Create the tab with its header row before running this migration.")
        return 1

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
    return 0


# =============================================================================
# PARSER
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""

    parser = argparse.ArgumentParser(
        description="Fundraising CRM operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables:
  GOOGLE_SHEETS_SPREADSHEET_ID   - Spreadsheet holding the CRM tabs
  GOOGLE_SERVICE_ACCOUNT_EMAIL   - Service account identity
  GOOGLE_PRIVATE_KEY             - Service account private key (PEM)
  SHEETS_TIMEOUT_SECONDS         - HTTP timeout (default: 30)
  SHEETS_REQUESTS_PER_MINUTE     - Local request pacing, 0 disables (default: 60)
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    health_parser = subparsers.add_parser("health", help="Check spreadsheet connectivity")
    health_parser.add_argument("--json", action="store_true", help="Print the raw report as JSON")

    subparsers.add_parser("stages", help="Show configured pipeline stages")

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Migrate startup-level investor links to projects",
    )
    migrate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and report, but write nothing",
    )
    migrate_parser.add_argument("--json", action="store_true", help="Print stats as JSON")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""

    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "health":
            return await cmd_health(args)
        if args.command == "stages":
            return await cmd_stages(args)
        if args.command == "migrate":
            return await cmd_migrate(args)
        print(f"Unknown command: {args.command}")
        parser.print_help()
        return 1

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except CrmError as e:
        logging.error(str(e))
        print(f"\nError: {e}")
        return 1


def cli() -> None:
    """Console script entry point"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
