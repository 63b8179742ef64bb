"""
Migration: STARTUP_INVESTORS -> PROJECT_INVESTORS

Moves the investor pipeline from startup scope to project scope:

1. Every startup without a project gets a "Default Project".
2. Every legacy startup-investor link becomes a project-investor link on
   the startup's first project.
3. Legacy free-text stages are mapped onto the seven pipeline stages;
   anything unrecognized lands in "Potentials" with a note.

Safe to re-run: projects are only created for startups that still have
none, and a (project_id, investor_id) pair that already has a link is
skipped. A second run against the same spreadsheet writes nothing.

Usage:
    # Migrate
    python -m workflows.migrate_to_projects

    # Show what would be written
    python -m workflows.migrate_to_projects --dry-run

Requires GOOGLE_SHEETS_SPREADSHEET_ID, GOOGLE_SERVICE_ACCOUNT_EMAIL and
GOOGLE_PRIVATE_KEY (a .env file is loaded if present). The PROJECTS and
PROJECT_INVESTORS tabs must exist with headers in row 1.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from storage.cache import TTLCache
from storage.crm_store import TabularStore
from storage.defaults import iso_date, iso_timestamp
from storage.errors import CrmError, TabNotFoundError
from storage.models import (
    DEFAULT_PIPELINE_STAGES,
    Project,
    ProjectInvestor,
    RecordStatus,
    Startup,
    StartupInvestor,
)
from storage.row_codec import (
    PROJECT_INVESTORS,
    PROJECTS,
    STARTUP_INVESTORS,
    STARTUPS,
    EntitySchema,
    decode_row,
    encode_row,
)
from utils.ids import generate_id

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Default Project"
AUTO_CREATED_NOTE = "Auto-created by migration script"

# Legacy stage labels (lowercased) -> pipeline stage
STAGE_MAP: Dict[str, str] = {
    "potentials": "Potentials",
    "target": "Potentials",
    "initial contact": "Initial Contact",
    "contacted": "Initial Contact",
    "advanced contact": "Advanced Contact",
    "meeting scheduled": "Advanced Contact",
    "meeting done": "Advanced Contact",
    "due diligence": "Due Diligence",
    "dd": "Due Diligence",
    "next steps": "Negotiation",
    "negotiation": "Negotiation",
    "negotiating": "Negotiation",
    "declined": "Declined",
    "passed": "Declined",
    "rejected": "Declined",
    "accepted": "Accepted",
    "closed": "Accepted",
    "committed": "Accepted",
}

FALLBACK_STAGE = DEFAULT_PIPELINE_STAGES[0]


@dataclass
class StageMapping:
    """Outcome of mapping one legacy stage label."""
    stage: str
    mapped: bool
    note: str = ""


def map_stage(old_stage: str) -> StageMapping:
    """
    Map a legacy stage label onto the pipeline vocabulary.

    Exact pipeline stage names pass through; known legacy labels map
    case-insensitively; blank or unknown labels fall back to "Potentials"
    with mapped=False.
    """
    label = (old_stage or "").strip()
    if not label:
        return StageMapping(FALLBACK_STAGE, False, f"Empty stage -> {FALLBACK_STAGE}")

    if label in DEFAULT_PIPELINE_STAGES:
        return StageMapping(label, True)

    mapped = STAGE_MAP.get(label.lower())
    if mapped:
        return StageMapping(mapped, True, f'"{old_stage}" -> "{mapped}"')

    return StageMapping(
        FALLBACK_STAGE,
        False,
        f'Could not map "{old_stage}" -> defaulting to "{FALLBACK_STAGE}"',
    )


def annotate_notes(notes: str, note: str) -> str:
    """Append a [Migration: ...] marker to existing notes."""
    if not note:
        return notes
    marker = f"[Migration: {note}]"
    return f"{notes} {marker}" if notes else marker


# =============================================================================
# MIGRATION STATISTICS
# =============================================================================

@dataclass
class MigrationStats:
    """Counters and per-item notes from one migration run."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    dry_run: bool = False

    # Input
    startups_scanned: int = 0
    existing_projects: int = 0
    legacy_links: int = 0
    existing_links: int = 0

    # Writes
    projects_created: int = 0
    links_migrated: int = 0

    # Skips
    skipped_duplicates: int = 0
    skipped_unresolved: int = 0

    # Stage fallbacks and unresolved links
    stage_notes: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def rows_written(self) -> int:
        if self.dry_run:
            return 0
        return self.projects_created + self.links_migrated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "dry_run": self.dry_run,
            "startups_scanned": self.startups_scanned,
            "existing_projects": self.existing_projects,
            "legacy_links": self.legacy_links,
            "existing_links": self.existing_links,
            "projects_created": self.projects_created,
            "links_migrated": self.links_migrated,
            "skipped_duplicates": self.skipped_duplicates,
            "skipped_unresolved": self.skipped_unresolved,
            "stage_notes": list(self.stage_notes),
        }

    def log_summary(self) -> None:
        logger.info("=" * 80)
        logger.info("MIGRATION REPORT" + (" (DRY RUN)" if self.dry_run else ""))
        logger.info("=" * 80)
        logger.info(f"Startups found:           {self.startups_scanned}")
        logger.info(f"Default projects created: {self.projects_created}")
        logger.info(f"Links migrated:           {self.links_migrated}")
        logger.info(f"Skipped (duplicates):     {self.skipped_duplicates}")
        logger.info(f"Skipped (no project):     {self.skipped_unresolved}")
        logger.info(f"Stage mapping issues:     {len(self.stage_notes)}")
        if self.completed_at:
            logger.info(f"Duration: {self.duration_seconds:.2f}s")

        if self.stage_notes:
            logger.warning("")
            logger.warning("Stage mapping issues:")
            for note in self.stage_notes:
                logger.warning(f"  - {note}")

        logger.info("=" * 80)


# =============================================================================
# MIGRATION JOB
# =============================================================================

class ProjectMigration:
    """
    One-shot, repeatable reshape of the legacy startup-scoped pipeline.

    Reads and writes the tabs directly (no read cache). Pass the process
    cache to have the touched collections invalidated after writing.
    """

    def __init__(
        self,
        sheets: TabularStore,
        cache: Optional[TTLCache] = None,
        now: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[str], str] = generate_id,
    ):
        self.sheets = sheets
        self.cache = cache
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._new_id = id_factory
        self.stats = MigrationStats()

    async def run(self, dry_run: bool = False) -> MigrationStats:
        """
        Run the migration.

        Args:
            dry_run: Compute everything but write nothing

        Returns:
            MigrationStats for this run
        """
        self.stats = MigrationStats(dry_run=dry_run)
        logger.info(f"Starting STARTUP_INVESTORS -> PROJECT_INVESTORS migration (dry_run: {dry_run})")

        try:
            startups = await self._read(STARTUPS)
            projects = await self._read(PROJECTS)
            legacy_links = await self._read_legacy_links()
            links = await self._read(PROJECT_INVESTORS)

            self.stats.startups_scanned = len(startups)
            self.stats.existing_projects = len(projects)
            self.stats.legacy_links = len(legacy_links)
            self.stats.existing_links = len(links)
            logger.info(
                f"Read {len(startups)} startups, {len(projects)} projects, "
                f"{len(legacy_links)} legacy links, {len(links)} project links"
            )

            project_map, new_projects = self._plan_projects(startups, projects)
            self.stats.projects_created = len(new_projects)
            if new_projects and not dry_run:
                await self._write(PROJECTS, new_projects)

            new_links = self._plan_links(legacy_links, links, project_map)
            self.stats.links_migrated = len(new_links)
            if new_links and not dry_run:
                await self._write(PROJECT_INVESTORS, new_links)

            self.stats.completed_at = datetime.now(timezone.utc)

        except Exception:
            logger.exception("Migration failed")
            self.stats.completed_at = datetime.now(timezone.utc)
            raise

        finally:
            self.stats.log_summary()

        return self.stats

    async def _read(self, schema: EntitySchema) -> List[Any]:
        rows = await self.sheets.read(schema.tab, schema.data_range)
        records = [decode_row(schema, row) for row in rows]
        return [record for record in records if getattr(record, schema.id_field)]

    async def _read_legacy_links(self) -> List[StartupInvestor]:
        try:
            return await self._read(STARTUP_INVESTORS)
        except TabNotFoundError:
            logger.warning(f"{STARTUP_INVESTORS.tab} tab not found; no legacy links to migrate")
            return []

    async def _write(self, schema: EntitySchema, records: List[Any]) -> None:
        rows = [encode_row(schema, record) for record in records]
        logger.info(f"Appending {len(rows)} row(s) to {schema.tab}")
        await self.sheets.append(schema.tab, schema.append_range, rows)
        if self.cache is not None:
            self.cache.invalidate(schema.name)

    def _plan_projects(
        self,
        startups: List[Startup],
        projects: List[Project],
    ) -> Tuple[Dict[str, str], List[Project]]:
        """startup_id -> representative project_id, plus the Default Projects to create."""
        project_map: Dict[str, str] = {}
        for project in projects:
            project_map.setdefault(project.startup_id, project.project_id)

        created_at = iso_timestamp(self._now())
        new_projects: List[Project] = []
        for startup in startups:
            if startup.startup_id in project_map:
                continue
            project = Project(
                project_id=self._new_id(PROJECTS.id_prefix),
                startup_id=startup.startup_id,
                project_name=DEFAULT_PROJECT_NAME,
                status=startup.status or RecordStatus.ACTIVE.value,
                created_at=created_at,
                notes=AUTO_CREATED_NOTE,
            )
            project_map[startup.startup_id] = project.project_id
            new_projects.append(project)

        if new_projects:
            logger.info(f"Creating {len(new_projects)} default project(s)")
        else:
            logger.info("No new projects needed (all startups already have projects)")
        return project_map, new_projects

    def _plan_links(
        self,
        legacy_links: List[StartupInvestor],
        links: List[ProjectInvestor],
        project_map: Dict[str, str],
    ) -> List[ProjectInvestor]:
        """Project links to create for legacy links not yet migrated."""
        seen: Set[Tuple[str, str]] = {(link.project_id, link.investor_id) for link in links}
        today = iso_date(self._now())
        new_links: List[ProjectInvestor] = []

        for legacy in legacy_links:
            project_id = project_map.get(legacy.startup_id)
            if not project_id:
                self.stats.skipped_unresolved += 1
                message = f'Skipped: startup_id="{legacy.startup_id}" has no project mapping'
                self.stats.stage_notes.append(message)
                logger.warning(message)
                continue

            pair = (project_id, legacy.investor_id)
            if pair in seen:
                self.stats.skipped_duplicates += 1
                logger.debug(f"Skipping {legacy.link_id}: {pair} already linked")
                continue
            seen.add(pair)

            mapping = map_stage(legacy.stage)
            if not mapping.mapped:
                self.stats.stage_notes.append(mapping.note)
                logger.warning(f"Link {legacy.link_id}: {mapping.note}")

            new_links.append(
                ProjectInvestor(
                    link_id=self._new_id(PROJECT_INVESTORS.id_prefix),
                    project_id=project_id,
                    investor_id=legacy.investor_id,
                    stage=mapping.stage,
                    last_update=legacy.last_update or today,
                    next_action=legacy.next_action,
                    notes=annotate_notes(legacy.notes, mapping.note),
                )
            )

        if new_links:
            logger.info(f"Migrating {len(new_links)} investor link(s) to {PROJECT_INVESTORS.tab}")
        else:
            logger.info("No new investor links to migrate")
        return new_links


# =============================================================================
# CLI
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Migrate STARTUP_INVESTORS links to per-project PROJECT_INVESTORS"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and report, but write nothing",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


async def run_migration(settings: Any, dry_run: bool = False) -> MigrationStats:
    """Run the migration against the live spreadsheet described by settings."""
    from connectors.sheets_client import SheetsClient

    async with SheetsClient.from_settings(settings) as client:
        return await ProjectMigration(client).run(dry_run=dry_run)


async def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the migration."""
    args = create_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    from services.config_loader import SheetsSettings

    try:
        settings = SheetsSettings.from_env(load_env_file=True)
    except CrmError as e:
        logger.error(str(e))
        return 1

    try:
        await run_migration(settings, dry_run=args.dry_run)
    except TabNotFoundError as e:
        logger.error(f"{e}. Create the tab with its header row before running this migration.")
        return 1
    except CrmError as e:
        logger.error(f"Migration failed: {e}")
        return 1

    logger.info("Migration complete")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
