"""
Root-level pytest configuration for the CRM.

Configures:
- pytest-asyncio for async test support
- FakeSheets: in-memory stand-in for the spreadsheet, plus store fixtures
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from storage.cache import TTLCache
from storage.crm_store import CrmStore
from storage.errors import TabNotFoundError
from storage.row_codec import ALL_SCHEMAS, EntitySchema, encode_row

pytest_plugins = ["pytest_asyncio"]

FIXED_NOW = datetime(2026, 3, 4, 9, 30, 0, tzinfo=timezone.utc)

_A1 = re.compile(r"^([A-Z]+)(\d*)(?::([A-Z]+)(\d*))?$")


def _column_index(letters: str) -> int:
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def parse_a1(cell_range: str) -> Tuple[int, Optional[int], int, int]:
    """A2:K -> (first_row, last_row or None, first_col, last_col), rows 1-based, cols 0-based."""
    match = _A1.match(cell_range)
    if not match:
        raise ValueError(f"Unsupported range {cell_range!r}")
    start_col, start_row, end_col, end_row = match.groups()
    end_col = end_col or start_col
    first_row = int(start_row) if start_row else 1
    last_row = int(end_row) if end_row else (first_row if start_row and not match.group(3) else None)
    return first_row, last_row, _column_index(start_col), _column_index(end_col)


class FakeSheets:
    """
    In-memory tabular store honoring the read/append/update contract.

    Tabs hold rows including the header (row 1). Reads drop trailing empty
    cells and trailing empty rows, like the Sheets API. Every call is
    recorded for assertions.
    """

    def __init__(self, with_headers: bool = True):
        self.tabs: Dict[str, List[List[str]]] = {}
        self.reads: List[Tuple[str, str]] = []
        self.appends: List[Tuple[str, str, List[List[str]]]] = []
        self.updates: List[Tuple[str, str, List[List[str]]]] = []
        if with_headers:
            for schema in ALL_SCHEMAS:
                self.add_tab(schema.tab, list(schema.columns))

    # setup helpers

    def add_tab(self, tab: str, header: Optional[List[str]] = None) -> None:
        self.tabs[tab] = [list(header)] if header else []

    def drop_tab(self, tab: str) -> None:
        self.tabs.pop(tab, None)

    def seed(self, schema: EntitySchema, records: Sequence[object]) -> None:
        for record in records:
            self.tabs[schema.tab].append(encode_row(schema, record))

    def seed_rows(self, tab: str, rows: Sequence[Sequence[str]]) -> None:
        self.tabs[tab].extend([list(row) for row in rows])

    def data_rows(self, tab: str) -> List[List[str]]:
        return [list(row) for row in self.tabs[tab][1:]]

    @property
    def writes(self) -> int:
        return len(self.appends) + len(self.updates)

    def reads_of(self, tab: str) -> int:
        return sum(1 for read_tab, _ in self.reads if read_tab == tab)

    # store contract

    async def read(self, tab: str, cell_range: str) -> List[List[str]]:
        self.reads.append((tab, cell_range))
        rows = self._tab(tab)
        first_row, last_row, first_col, last_col = parse_a1(cell_range)
        stop = len(rows) if last_row is None else min(last_row, len(rows))
        result = []
        for row in rows[first_row - 1:stop]:
            cells = [str(cell) for cell in row[first_col:last_col + 1]]
            while cells and cells[-1] == "":
                cells.pop()
            result.append(cells)
        while result and not result[-1]:
            result.pop()
        return result

    async def append(self, tab: str, cell_range: str, rows: Sequence[Sequence[str]]) -> None:
        self._tab(tab)
        copied = [list(row) for row in rows]
        self.appends.append((tab, cell_range, copied))
        target = self.tabs[tab]
        while len(target) > 1 and not any(target[-1]):
            target.pop()
        target.extend([list(row) for row in copied])

    async def update(self, tab: str, exact_range: str, rows: Sequence[Sequence[str]]) -> None:
        self._tab(tab)
        copied = [list(row) for row in rows]
        self.updates.append((tab, exact_range, copied))
        first_row, _, first_col, _ = parse_a1(exact_range)
        target = self.tabs[tab]
        for offset, values in enumerate(copied):
            index = first_row - 1 + offset
            while len(target) <= index:
                target.append([])
            row = target[index]
            needed = first_col + len(values)
            if len(row) < needed:
                row.extend([""] * (needed - len(row)))
            row[first_col:needed] = values

    def _tab(self, tab: str) -> List[List[str]]:
        if tab not in self.tabs:
            raise TabNotFoundError(tab, f"Unable to parse range: {tab}")
        return self.tabs[tab]


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_sheets() -> FakeSheets:
    return FakeSheets()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(ttl_seconds=30.0, clock=clock)


@pytest.fixture
def store(fake_sheets, cache) -> CrmStore:
    return CrmStore(fake_sheets, cache=cache, now=lambda: FIXED_NOW)
