"""Tests for the STARTUP_INVESTORS -> PROJECT_INVESTORS migration"""

import itertools
from datetime import datetime, timezone

import pytest

from storage.cache import TTLCache
from storage.errors import TabNotFoundError
from storage.models import Project, ProjectInvestor, Startup, StartupInvestor
from storage.row_codec import PROJECT_INVESTORS, PROJECTS, STARTUP_INVESTORS, STARTUPS, decode_row
from workflows.migrate_to_projects import (
    AUTO_CREATED_NOTE,
    DEFAULT_PROJECT_NAME,
    MigrationStats,
    ProjectMigration,
    annotate_notes,
    create_parser,
    map_stage,
)

FIXED_NOW = datetime(2026, 3, 4, 9, 30, 0, tzinfo=timezone.utc)


def _sequential_ids():
    counter = itertools.count(1)

    def factory(prefix):
        return f"{prefix}_test{next(counter)}"

    return factory


def _migration(sheets, cache=None):
    return ProjectMigration(sheets, cache=cache, now=lambda: FIXED_NOW, id_factory=_sequential_ids())


@pytest.fixture
def legacy_sheets(fake_sheets):
    """Three startups (one already with a project) and five legacy links."""
    fake_sheets.seed(STARTUPS, [
        Startup(startup_id="st_1", startup_name="Acme"),
        Startup(startup_id="st_2", startup_name="Globex", status="paused"),
        Startup(startup_id="st_3", startup_name="Initech"),
    ])
    fake_sheets.seed(PROJECTS, [
        Project(project_id="prj_existing", startup_id="st_1", project_name="Seed"),
    ])
    fake_sheets.seed(STARTUP_INVESTORS, [
        StartupInvestor(link_id="si_1", startup_id="st_1", investor_id="inv_1", stage="Target",
                        last_update="2025-11-01", next_action="Intro", notes="warm"),
        StartupInvestor(link_id="si_2", startup_id="st_2", investor_id="inv_2", stage="Meeting Done"),
        StartupInvestor(link_id="si_3", startup_id="st_3", investor_id="inv_3", stage="unknown-label"),
        StartupInvestor(link_id="si_4", startup_id="st_1", investor_id="inv_4", stage=""),
        StartupInvestor(link_id="si_5", startup_id="st_2", investor_id="inv_5", stage="Closed"),
    ])
    return fake_sheets


def _links(sheets):
    return [decode_row(PROJECT_INVESTORS, row) for row in sheets.data_rows("PROJECT_INVESTORS")]


def _projects(sheets):
    return [decode_row(PROJECTS, row) for row in sheets.data_rows("PROJECTS")]


class TestMapStage:
    """Legacy stage label mapping"""

    @pytest.mark.parametrize("label,expected", [
        ("Target", "Potentials"),
        ("potentials", "Potentials"),
        ("Contacted", "Initial Contact"),
        ("initial contact", "Initial Contact"),
        ("Meeting Scheduled", "Advanced Contact"),
        ("Meeting Done", "Advanced Contact"),
        ("advanced contact", "Advanced Contact"),
        ("DD", "Due Diligence"),
        ("due diligence", "Due Diligence"),
        ("Next Steps", "Negotiation"),
        ("Negotiating", "Negotiation"),
        ("negotiation", "Negotiation"),
        ("Passed", "Declined"),
        ("Rejected", "Declined"),
        ("declined", "Declined"),
        ("Closed", "Accepted"),
        ("Committed", "Accepted"),
        ("accepted", "Accepted"),
    ])
    def test_known_labels(self, label, expected):
        result = map_stage(label)
        assert result.stage == expected
        assert result.mapped is True

    def test_canonical_stage_passes_through_without_note(self):
        result = map_stage("Due Diligence")
        assert result.stage == "Due Diligence"
        assert result.mapped is True
        assert result.note == ""

    def test_relabel_note(self):
        assert map_stage("Target").note == '"Target" -> "Potentials"'

    def test_empty_stage_falls_back(self):
        result = map_stage("")
        assert result.stage == "Potentials"
        assert result.mapped is False
        assert result.note == "Empty stage -> Potentials"

    def test_unknown_label_falls_back_with_note(self):
        result = map_stage("unknown-label")
        assert result.stage == "Potentials"
        assert result.mapped is False
        assert result.note == 'Could not map "unknown-label" -> defaulting to "Potentials"'

    @pytest.mark.parametrize("label", ["TARGET", "target", "Target"])
    def test_lookup_is_case_insensitive(self, label):
        assert map_stage(label).stage == "Potentials"

    def test_totally_unknown_stage(self):
        result = map_stage("totally-unknown-stage")
        assert result.stage == "Potentials"
        assert result.mapped is False
        assert "totally-unknown-stage" in result.note

    def test_surrounding_whitespace_is_ignored(self):
        assert map_stage("  passed ").stage == "Declined"


class TestAnnotateNotes:

    def test_appends_marker(self):
        assert annotate_notes("warm", "x") == "warm [Migration: x]"

    def test_marker_alone_when_no_notes(self):
        assert annotate_notes("", "x") == "[Migration: x]"

    def test_no_note_leaves_notes_untouched(self):
        assert annotate_notes("warm", "") == "warm"


@pytest.mark.asyncio
class TestProjectMigration:
    """End-to-end migration against the in-memory spreadsheet"""

    async def test_first_run_creates_projects_and_links(self, legacy_sheets):
        stats = await _migration(legacy_sheets).run()

        assert stats.startups_scanned == 3
        assert stats.legacy_links == 5
        assert stats.projects_created == 2
        assert stats.links_migrated == 5
        assert stats.skipped_duplicates == 0
        assert stats.skipped_unresolved == 0
        assert stats.rows_written == 7

        assert len(_projects(legacy_sheets)) == 3
        assert len(_links(legacy_sheets)) == 5

    async def test_second_run_writes_nothing(self, legacy_sheets):
        await _migration(legacy_sheets).run()
        projects_after_first = legacy_sheets.data_rows("PROJECTS")
        links_after_first = legacy_sheets.data_rows("PROJECT_INVESTORS")
        writes_after_first = legacy_sheets.writes

        stats = await _migration(legacy_sheets).run()

        assert legacy_sheets.writes == writes_after_first
        assert legacy_sheets.data_rows("PROJECTS") == projects_after_first
        assert legacy_sheets.data_rows("PROJECT_INVESTORS") == links_after_first
        assert stats.projects_created == 0
        assert stats.links_migrated == 0
        assert stats.skipped_duplicates == 5
        assert stats.rows_written == 0

    async def test_writes_each_tab_in_one_batch(self, legacy_sheets):
        await _migration(legacy_sheets).run()

        assert [(tab, len(rows)) for tab, _, rows in legacy_sheets.appends] == [
            ("PROJECTS", 2),
            ("PROJECT_INVESTORS", 5),
        ]
        assert legacy_sheets.updates == []

    async def test_default_project_fields(self, legacy_sheets):
        await _migration(legacy_sheets).run()

        created = {p.startup_id: p for p in _projects(legacy_sheets) if p.project_id != "prj_existing"}
        assert set(created) == {"st_2", "st_3"}

        globex = created["st_2"]
        assert globex.project_name == DEFAULT_PROJECT_NAME
        assert globex.status == "paused"
        assert globex.created_at == "2026-03-04T09:30:00.000Z"
        assert globex.notes == AUTO_CREATED_NOTE
        assert created["st_3"].status == "active"

    async def test_links_attach_to_first_project_of_startup(self, legacy_sheets):
        legacy_sheets.seed(PROJECTS, [
            Project(project_id="prj_second", startup_id="st_1", project_name="Series A"),
        ])

        await _migration(legacy_sheets).run()

        st1_links = [l for l in _links(legacy_sheets) if l.investor_id in ("inv_1", "inv_4")]
        assert {l.project_id for l in st1_links} == {"prj_existing"}

    async def test_stage_mapping_and_notes(self, legacy_sheets):
        stats = await _migration(legacy_sheets).run()

        links = {l.investor_id: l for l in _links(legacy_sheets)}
        assert links["inv_1"].stage == "Potentials"
        assert links["inv_2"].stage == "Advanced Contact"
        assert links["inv_3"].stage == "Potentials"
        assert links["inv_4"].stage == "Potentials"
        assert links["inv_5"].stage == "Accepted"

        assert links["inv_1"].notes == 'warm [Migration: "Target" -> "Potentials"]'
        assert links["inv_3"].notes == '[Migration: Could not map "unknown-label" -> defaulting to "Potentials"]'

        assert stats.stage_notes == [
            'Could not map "unknown-label" -> defaulting to "Potentials"',
            "Empty stage -> Potentials",
        ]

    async def test_carries_link_fields(self, legacy_sheets):
        await _migration(legacy_sheets).run()

        links = {l.investor_id: l for l in _links(legacy_sheets)}
        assert links["inv_1"].last_update == "2025-11-01"
        assert links["inv_1"].next_action == "Intro"
        assert links["inv_2"].last_update == "2026-03-04"

    async def test_existing_pair_is_skipped(self, legacy_sheets):
        legacy_sheets.seed(PROJECT_INVESTORS, [
            ProjectInvestor(link_id="pi_old", project_id="prj_existing", investor_id="inv_1", stage="Negotiation"),
        ])

        stats = await _migration(legacy_sheets).run()

        assert stats.skipped_duplicates == 1
        assert stats.links_migrated == 4
        inv1 = [l for l in _links(legacy_sheets) if l.investor_id == "inv_1"]
        assert [l.link_id for l in inv1] == ["pi_old"]

    async def test_duplicate_legacy_links_migrate_once(self, legacy_sheets):
        legacy_sheets.seed(STARTUP_INVESTORS, [
            StartupInvestor(link_id="si_6", startup_id="st_1", investor_id="inv_1", stage="Passed"),
        ])

        stats = await _migration(legacy_sheets).run()

        assert stats.links_migrated == 5
        assert stats.skipped_duplicates == 1

    async def test_link_to_unknown_startup_is_reported(self, legacy_sheets):
        legacy_sheets.seed(STARTUP_INVESTORS, [
            StartupInvestor(link_id="si_7", startup_id="st_gone", investor_id="inv_9", stage="Target"),
        ])

        stats = await _migration(legacy_sheets).run()

        assert stats.skipped_unresolved == 1
        assert 'Skipped: startup_id="st_gone" has no project mapping' in stats.stage_notes
        assert all(l.investor_id != "inv_9" for l in _links(legacy_sheets))

    async def test_dry_run_writes_nothing(self, legacy_sheets):
        stats = await _migration(legacy_sheets).run(dry_run=True)

        assert legacy_sheets.writes == 0
        assert stats.dry_run is True
        assert stats.projects_created == 2
        assert stats.links_migrated == 5
        assert stats.rows_written == 0

    async def test_missing_legacy_tab_is_a_noop_for_links(self, legacy_sheets):
        legacy_sheets.drop_tab("STARTUP_INVESTORS")

        stats = await _migration(legacy_sheets).run()

        assert stats.legacy_links == 0
        assert stats.links_migrated == 0
        assert stats.projects_created == 2

    async def test_invalidates_shared_cache(self, legacy_sheets):
        cache = TTLCache()
        cache.set("projects", [])
        cache.set("project_investors", [])
        cache.set("tasks", [])

        await _migration(legacy_sheets, cache=cache).run()

        assert "projects" not in cache
        assert "project_investors" not in cache
        assert "tasks" in cache

    async def test_failure_propagates(self, legacy_sheets):
        legacy_sheets.drop_tab("PROJECTS")

        with pytest.raises(TabNotFoundError) as exc_info:
            await _migration(legacy_sheets).run()
        assert exc_info.value.tab == "PROJECTS"
        assert legacy_sheets.writes == 0


class TestMigrationStats:

    def test_to_dict(self):
        stats = MigrationStats(dry_run=True, projects_created=2, links_migrated=3)
        data = stats.to_dict()

        assert data["dry_run"] is True
        assert data["projects_created"] == 2
        assert data["links_migrated"] == 3
        assert data["completed_at"] is None
        assert stats.rows_written == 0

    def test_parser(self):
        args = create_parser().parse_args(["--dry-run"])
        assert args.dry_run is True
        assert args.verbose is False
