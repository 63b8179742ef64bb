"""
Tabular store client over a Google Sheets spreadsheet.

Exposes the three operations the persistence layer depends on, addressed
by tab name plus an A1 cell range:

    rows = await client.read("TASKS", "A2:K")
    await client.append("TASKS", "A:K", [row])
    await client.update("TASKS", "A7:K7", [row])

A missing tab surfaces as TabNotFoundError; every other API failure as
RemoteStoreError.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Sequence, TYPE_CHECKING

from connectors.sheets_transport import SheetsTransport
from storage.errors import RemoteStoreError, TabNotFoundError

if TYPE_CHECKING:
    from services.config_loader import SheetsSettings

logger = logging.getLogger(__name__)

_PLAIN_TAB_NAME = re.compile(r"^[A-Za-z0-9_]+$")


def a1_range(tab: str, cell_range: str) -> str:
    """TASKS + A2:K -> TASKS!A2:K; tab names with spaces or punctuation are quoted."""
    if _PLAIN_TAB_NAME.match(tab):
        return f"{tab}!{cell_range}"
    escaped = tab.replace("'", "''")
    return f"'{escaped}'!{cell_range}"


def is_missing_tab_error(error: RemoteStoreError) -> bool:
    return error.remote_status == 400 and "Unable to parse range" in error.message


class SheetsClient:
    """Row-level read/append/update against named tabs of one spreadsheet."""

    def __init__(self, transport: SheetsTransport):
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: "SheetsSettings") -> "SheetsClient":
        return cls(SheetsTransport.from_settings(settings))

    async def __aenter__(self) -> "SheetsClient":
        await self.transport.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.transport.shutdown()

    async def close(self) -> None:
        await self.transport.shutdown()

    async def read(self, tab: str, cell_range: str) -> List[List[str]]:
        """Rows in the range as lists of strings; trailing empty rows are omitted by the API."""
        values = await self._call(tab, self.transport.get_values(a1_range(tab, cell_range)))
        rows = [[self._text(cell) for cell in row] for row in values]
        logger.debug(f"Read {len(rows)} rows from {tab}!{cell_range}")
        return rows

    async def append(self, tab: str, cell_range: str, rows: Sequence[Sequence[str]]) -> None:
        """Add rows after the last populated row of the addressed columns."""
        if not rows:
            return
        await self._call(tab, self.transport.append_values(a1_range(tab, cell_range), self._values(rows)))
        logger.info(f"Appended {len(rows)} row(s) to {tab}")

    async def update(self, tab: str, exact_range: str, rows: Sequence[Sequence[str]]) -> None:
        """Overwrite exactly the addressed cells."""
        await self._call(tab, self.transport.update_values(a1_range(tab, exact_range), self._values(rows)))
        logger.info(f"Updated {tab}!{exact_range}")

    async def _call(self, tab: str, pending: Any) -> Any:
        try:
            return await pending
        except RemoteStoreError as exc:
            if is_missing_tab_error(exc):
                raise TabNotFoundError(tab, exc.message) from exc
            raise

    @staticmethod
    def _values(rows: Sequence[Sequence[str]]) -> List[List[str]]:
        return [[SheetsClient._text(cell) for cell in row] for row in rows]

    @staticmethod
    def _text(cell: Optional[Any]) -> str:
        return "" if cell is None else str(cell)
