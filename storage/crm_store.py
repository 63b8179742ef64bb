"""
Sheets-backed persistence for the fundraising CRM.

CrmStore is the only path between typed records and the spreadsheet:

- list_*   read-through cached reads (one tab, decoded, blank ids dropped)
- create_* append one complete record, then invalidate its collection
- update_* locate the row by id (column A), overwrite the whole row, invalidate
- add_*    fill record defaults, validate, create (what a POST handler needs)
- patch_*  load, merge changes, validate, update (what a PUT handler needs)

Usage:
    async with open_crm_store(SheetsSettings.from_env()) as store:
        startup = await store.add_startup({"startup_name": "Acme"})
        stages = await store.get_pipeline_stages()
        await store.patch_project_investor(link_id, {"stage": stages[2]})

Writes are not coordinated across processes: two updates racing on the same
row both land, last write wins.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TYPE_CHECKING,
)

from storage.cache import TTLCache
from storage.defaults import (
    iso_date,
    iso_timestamp,
    merge_record,
    new_record,
    validate_record,
)
from storage.errors import RecordNotFoundError, TabNotFoundError, ValidationError
from storage.models import (
    DEFAULT_PIPELINE_STAGES,
    PIPELINE_STAGES_KEY,
    ConfigRow,
    Investor,
    Project,
    ProjectInvestor,
    Startup,
    StartupInvestor,
    Task,
    TeamMember,
)
from storage.row_codec import (
    CONFIG,
    INVESTORS,
    PROJECT_INVESTORS,
    PROJECTS,
    STARTUP_INVESTORS,
    STARTUPS,
    TASKS,
    TEAM,
    EntitySchema,
    decode_row,
    encode_row,
)

if TYPE_CHECKING:
    from services.config_loader import SheetsSettings

logger = logging.getLogger(__name__)


class TabularStore(Protocol):
    """Remote store contract: rows of string cells addressed by tab + A1 range."""

    async def read(self, tab: str, cell_range: str) -> List[List[str]]: ...

    async def append(self, tab: str, cell_range: str, rows: Sequence[Sequence[str]]) -> None: ...

    async def update(self, tab: str, exact_range: str, rows: Sequence[Sequence[str]]) -> None: ...


class ColumnScanLocator:
    """
    Finds a record's 1-based row number by scanning column A top to bottom.

    Linear in the tab size; the store offers no indexed lookup. Swap in
    another locator (e.g. a maintained id -> row index) without touching
    CrmStore.
    """

    def __init__(self, sheets: TabularStore):
        self.sheets = sheets

    async def locate(self, schema: EntitySchema, record_id: str) -> int:
        rows = await self.sheets.read(schema.tab, "A:A")
        for index, row in enumerate(rows):
            if row and row[0] == record_id:
                row_number = index + 1
                logger.debug(f"Located {record_id} at {schema.tab} row {row_number}")
                return row_number
        raise RecordNotFoundError(schema.tab, record_id)


@dataclass
class HealthReport:
    """Connectivity and per-collection row counts."""
    connected: bool
    counts: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"connected": self.connected, "counts": dict(self.counts)}
        if self.error is not None:
            result["error"] = self.error
        return result


class CrmStore:
    """
    Persistence layer over a tabular store.

    Args:
        sheets: Remote store (SheetsClient in production, in-memory fake in tests)
        cache: Shared read cache; one per process
        locator: Row lookup strategy for updates
        now: UTC clock for timestamps and dates
    """

    def __init__(
        self,
        sheets: TabularStore,
        cache: Optional[TTLCache] = None,
        locator: Optional[ColumnScanLocator] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.sheets = sheets
        self.cache = cache if cache is not None else TTLCache()
        self.locator = locator or ColumnScanLocator(sheets)
        self._now = now or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # GENERIC OPERATIONS
    # =========================================================================

    async def _list(self, schema: EntitySchema) -> List[Any]:
        cached = self.cache.get(schema.name)
        if cached is not None:
            return [dataclasses.replace(record) for record in cached]

        rows = await self.sheets.read(schema.tab, schema.data_range)
        records = [decode_row(schema, row) for row in rows]
        records = [record for record in records if getattr(record, schema.id_field)]
        self.cache.set(schema.name, records)
        logger.debug(f"Loaded {len(records)} {schema.name} from {schema.tab}")
        return [dataclasses.replace(record) for record in records]

    async def _create(self, schema: EntitySchema, record: Any) -> Any:
        await self._validate(schema, record)
        await self.sheets.append(schema.tab, schema.append_range, [encode_row(schema, record)])
        self.cache.invalidate(schema.name)
        logger.info(f"Created {schema.name} {getattr(record, schema.id_field)}")
        return record

    async def _update(self, schema: EntitySchema, record: Any) -> Any:
        await self._validate(schema, record)
        record_id = getattr(record, schema.id_field)
        row_number = await self.locator.locate(schema, record_id)
        await self.sheets.update(schema.tab, schema.row_range(row_number), [encode_row(schema, record)])
        self.cache.invalidate(schema.name)
        logger.info(f"Updated {schema.name} {record_id} (row {row_number})")
        return record

    async def _add(self, schema: EntitySchema, fields: Mapping[str, Any]) -> Any:
        default_stage = ""
        if schema in (PROJECT_INVESTORS, STARTUP_INVESTORS):
            stages = await self.get_pipeline_stages()
            default_stage = stages[0]
        record = new_record(schema, fields, now=self._now(), default_stage=default_stage)
        return await self._create(schema, record)

    async def _get(self, schema: EntitySchema, record_id: str) -> Any:
        for record in await self._list(schema):
            if getattr(record, schema.id_field) == record_id:
                return record
        raise RecordNotFoundError(schema.tab, record_id)

    async def _patch(
        self,
        schema: EntitySchema,
        record_id: str,
        changes: Mapping[str, Any],
    ) -> Any:
        if not record_id:
            raise ValidationError(f"{schema.id_field} is required")
        existing = await self._get(schema, record_id)
        updated = merge_record(schema, existing, changes)

        if schema is TASKS:
            updated.updated_at = iso_timestamp(self._now())
        elif schema in (PROJECT_INVESTORS, STARTUP_INVESTORS):
            if updated.stage != existing.stage:
                updated.last_update = iso_date(self._now())

        return await self._update(schema, updated)

    async def _validate(self, schema: EntitySchema, record: Any) -> None:
        validate_record(schema, record)
        if schema in (PROJECT_INVESTORS, STARTUP_INVESTORS):
            await self.validate_stage(record.stage)

    async def validate_stage(self, stage: str) -> None:
        stages = await self.get_pipeline_stages()
        if stage not in stages:
            raise ValidationError(f'Invalid stage "{stage}". Valid: {", ".join(stages)}')

    # =========================================================================
    # READS
    # =========================================================================

    async def list_team(self) -> List[TeamMember]:
        return await self._list(TEAM)

    async def list_startups(self) -> List[Startup]:
        return await self._list(STARTUPS)

    async def list_projects(self) -> List[Project]:
        return await self._list(PROJECTS)

    async def list_tasks(self) -> List[Task]:
        return await self._list(TASKS)

    async def list_investors(self) -> List[Investor]:
        return await self._list(INVESTORS)

    async def list_project_investors(self) -> List[ProjectInvestor]:
        return await self._list(PROJECT_INVESTORS)

    async def list_startup_investors(self) -> List[StartupInvestor]:
        """Legacy links; a missing tab reads as empty since it may be gone after migration."""
        try:
            return await self._list(STARTUP_INVESTORS)
        except TabNotFoundError:
            logger.debug(f"{STARTUP_INVESTORS.tab} tab not found; treating as empty")
            return []

    async def list_config(self) -> List[ConfigRow]:
        return await self._list(CONFIG)

    async def get_config_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for row in await self.list_config():
            if row.key == key:
                return row.value
        return default

    async def get_pipeline_stages(self) -> List[str]:
        """Configured kanban stages in column order, or the built-in seven."""
        value = await self.get_config_value(PIPELINE_STAGES_KEY)
        if value is None:
            return list(DEFAULT_PIPELINE_STAGES)
        stages = [stage.strip() for stage in value.split("|") if stage.strip()]
        return stages or list(DEFAULT_PIPELINE_STAGES)

    # Filters matching the query parameters of the collection endpoints

    async def projects_for_startup(self, startup_id: str) -> List[Project]:
        return [p for p in await self.list_projects() if p.startup_id == startup_id]

    async def links_for_project(self, project_id: str) -> List[ProjectInvestor]:
        return [link for link in await self.list_project_investors() if link.project_id == project_id]

    async def links_for_startup(self, startup_id: str) -> List[StartupInvestor]:
        return [link for link in await self.list_startup_investors() if link.startup_id == startup_id]

    async def tasks_for_startup(self, startup_id: str) -> List[Task]:
        return [t for t in await self.list_tasks() if t.startup_id == startup_id]

    async def tasks_for_project(self, project_id: str) -> List[Task]:
        return [t for t in await self.list_tasks() if t.project_id == project_id and not t.is_startup_level]

    async def startup_level_tasks(self, startup_id: str) -> List[Task]:
        return [t for t in await self.tasks_for_startup(startup_id) if t.is_startup_level]

    # =========================================================================
    # CREATE (complete records, caller supplies the id)
    # =========================================================================

    async def create_team_member(self, member: TeamMember) -> TeamMember:
        return await self._create(TEAM, member)

    async def create_startup(self, startup: Startup) -> Startup:
        return await self._create(STARTUPS, startup)

    async def create_project(self, project: Project) -> Project:
        return await self._create(PROJECTS, project)

    async def create_task(self, task: Task) -> Task:
        return await self._create(TASKS, task)

    async def create_investor(self, investor: Investor) -> Investor:
        return await self._create(INVESTORS, investor)

    async def create_project_investor(self, link: ProjectInvestor) -> ProjectInvestor:
        return await self._create(PROJECT_INVESTORS, link)

    async def create_startup_investor(self, link: StartupInvestor) -> StartupInvestor:
        return await self._create(STARTUP_INVESTORS, link)

    # =========================================================================
    # UPDATE (whole-row replacement of an already merged record)
    # =========================================================================

    async def update_team_member(self, member: TeamMember) -> TeamMember:
        return await self._update(TEAM, member)

    async def update_startup(self, startup: Startup) -> Startup:
        return await self._update(STARTUPS, startup)

    async def update_project(self, project: Project) -> Project:
        return await self._update(PROJECTS, project)

    async def update_task(self, task: Task) -> Task:
        return await self._update(TASKS, task)

    async def update_investor(self, investor: Investor) -> Investor:
        return await self._update(INVESTORS, investor)

    async def update_project_investor(self, link: ProjectInvestor) -> ProjectInvestor:
        return await self._update(PROJECT_INVESTORS, link)

    async def update_startup_investor(self, link: StartupInvestor) -> StartupInvestor:
        return await self._update(STARTUP_INVESTORS, link)

    # =========================================================================
    # ADD (defaults + validation + create)
    # =========================================================================

    async def add_team_member(self, fields: Mapping[str, Any]) -> TeamMember:
        return await self._add(TEAM, fields)

    async def add_startup(self, fields: Mapping[str, Any]) -> Startup:
        return await self._add(STARTUPS, fields)

    async def add_project(self, fields: Mapping[str, Any]) -> Project:
        return await self._add(PROJECTS, fields)

    async def add_task(self, fields: Mapping[str, Any]) -> Task:
        return await self._add(TASKS, fields)

    async def add_investor(self, fields: Mapping[str, Any]) -> Investor:
        return await self._add(INVESTORS, fields)

    async def add_project_investor(self, fields: Mapping[str, Any]) -> ProjectInvestor:
        """New pipeline link; a second link for the same project and investor is rejected."""
        project_id = fields.get("project_id")
        investor_id = fields.get("investor_id")
        if project_id and investor_id:
            for link in await self.list_project_investors():
                if link.project_id == project_id and link.investor_id == investor_id:
                    raise ValidationError(
                        f'Investor "{investor_id}" is already in the pipeline of project "{project_id}"'
                    )
        return await self._add(PROJECT_INVESTORS, fields)

    async def add_startup_investor(self, fields: Mapping[str, Any]) -> StartupInvestor:
        return await self._add(STARTUP_INVESTORS, fields)

    # =========================================================================
    # PATCH (load + merge + update)
    # =========================================================================

    async def patch_team_member(self, team_id: str, changes: Mapping[str, Any]) -> TeamMember:
        return await self._patch(TEAM, team_id, changes)

    async def patch_startup(self, startup_id: str, changes: Mapping[str, Any]) -> Startup:
        return await self._patch(STARTUPS, startup_id, changes)

    async def patch_project(self, project_id: str, changes: Mapping[str, Any]) -> Project:
        return await self._patch(PROJECTS, project_id, changes)

    async def patch_task(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        """Merge changes into a task; updated_at is always refreshed."""
        return await self._patch(TASKS, task_id, changes)

    async def patch_investor(self, investor_id: str, changes: Mapping[str, Any]) -> Investor:
        return await self._patch(INVESTORS, investor_id, changes)

    async def patch_project_investor(self, link_id: str, changes: Mapping[str, Any]) -> ProjectInvestor:
        """Merge changes into a pipeline link; last_update becomes today when the stage moves."""
        return await self._patch(PROJECT_INVESTORS, link_id, changes)

    async def patch_startup_investor(self, link_id: str, changes: Mapping[str, Any]) -> StartupInvestor:
        return await self._patch(STARTUP_INVESTORS, link_id, changes)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def invalidate_cache(self, prefix: Optional[str] = None) -> int:
        return self.cache.invalidate(prefix)

    async def health_check(self) -> HealthReport:
        """Read every collection concurrently; any failure reports connected=False."""
        readers = {
            "team": self.list_team,
            "startups": self.list_startups,
            "projects": self.list_projects,
            "tasks": self.list_tasks,
            "investors": self.list_investors,
            "project_investors": self.list_project_investors,
            "config": self.list_config,
        }
        try:
            results = await asyncio.gather(*(read() for read in readers.values()))
        except Exception as exc:
            logger.error(f"Health check failed: {exc}")
            return HealthReport(connected=False, error=str(exc))

        counts = {name: len(records) for name, records in zip(readers, results)}
        return HealthReport(connected=True, counts=counts)


@asynccontextmanager
async def open_crm_store(
    settings: "SheetsSettings",
    cache: Optional[TTLCache] = None,
) -> AsyncIterator[CrmStore]:
    """
    CrmStore over a live spreadsheet; the HTTP client is closed on exit.

    Usage:
        async with open_crm_store(SheetsSettings.from_env()) as store:
            startups = await store.list_startups()
    """
    from connectors.sheets_client import SheetsClient

    async with SheetsClient.from_settings(settings) as client:
        yield CrmStore(client, cache=cache)
