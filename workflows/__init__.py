"""
Workflows for the fundraising CRM

This package contains batch jobs run against the spreadsheet:
- migrate_to_projects.py: STARTUP_INVESTORS -> PROJECT_INVESTORS migration

Usage:
    from workflows.migrate_to_projects import ProjectMigration
    migration = ProjectMigration(sheets_client)
    stats = await migration.run(dry_run=True)
"""

# Lazy imports to avoid circular dependencies
__all__ = [
    "ProjectMigration",
    "MigrationStats",
    "map_stage",
    "run_migration",
]


def __getattr__(name):
    """Lazy import to avoid circular dependencies."""
    if name == "ProjectMigration":
        from workflows.migrate_to_projects import ProjectMigration
        return ProjectMigration
    elif name == "MigrationStats":
        from workflows.migrate_to_projects import MigrationStats
        return MigrationStats
    elif name == "map_stage":
        from workflows.migrate_to_projects import map_stage
        return map_stage
    elif name == "run_migration":
        from workflows.migrate_to_projects import run_migration
        return run_migration
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
