"""
Storage layer for the fundraising CRM.

Records live in the tabs of one Google Sheets spreadsheet (row 1 is the
header, data from row 2, fixed column order per tab). This package maps
rows to typed records, caches tab reads for 30 seconds, and exposes
list / create / update operations per entity.

Main components:
- CrmStore: persistence layer (reads, writes, defaults, stage validation)
- TTLCache: per-process read cache with prefix invalidation
- row_codec: per-tab schemas and row <-> record mapping

Quick start:
    from services.config_loader import SheetsSettings
    from storage import open_crm_store

    async with open_crm_store(SheetsSettings.from_env()) as store:
        task = await store.add_task({"title": "Send deck", "startup_id": "st_1"})
        await store.patch_task(task.task_id, {"status": "done"})
"""

from storage.cache import CACHE_TTL_SECONDS, TTLCache
from storage.crm_store import ColumnScanLocator, CrmStore, HealthReport, open_crm_store
from storage.errors import (
    CrmError,
    InvalidSettingError,
    NotConfiguredError,
    RecordNotFoundError,
    RemoteStoreError,
    TabNotFoundError,
    ValidationError,
)

__all__ = [
    "CACHE_TTL_SECONDS",
    "TTLCache",
    "ColumnScanLocator",
    "CrmStore",
    "HealthReport",
    "open_crm_store",
    "CrmError",
    "InvalidSettingError",
    "NotConfiguredError",
    "RecordNotFoundError",
    "RemoteStoreError",
    "TabNotFoundError",
    "ValidationError",
]

__version__ = "1.0.0"
