"""
Row codec: positional spreadsheet rows <-> typed records.

Each tab has a fixed column order which is the wire format for both reads
and writes. The codec is pure and never validates; callers drop rows with
an empty primary key.

Usage:
    from storage.row_codec import TASKS, decode_row, encode_row

    task = decode_row(TASKS, ["tsk_1", "st_1", "", "Send deck"])
    row = encode_row(TASKS, task)   # always 11 cells, A..K
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple, Type

from storage.models import (
    ConfigRow,
    Investor,
    Project,
    ProjectInvestor,
    Startup,
    StartupInvestor,
    Task,
    TeamMember,
)


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


@dataclass(frozen=True)
class EntitySchema:
    """Layout of one tab: which record type lives there and in what column order."""

    name: str  # collection / cache key, e.g. "tasks"
    tab: str
    record_type: Type[Any]
    columns: Tuple[str, ...]
    id_prefix: str = ""

    @property
    def id_field(self) -> str:
        return self.columns[0]

    @property
    def last_column(self) -> str:
        return column_letter(len(self.columns) - 1)

    @property
    def data_range(self) -> str:
        """Data rows only (row 1 is the header), e.g. A2:K"""
        return f"A2:{self.last_column}"

    @property
    def append_range(self) -> str:
        return f"A:{self.last_column}"

    def row_range(self, row_number: int) -> str:
        """Exact span of one row, e.g. A7:K7"""
        return f"A{row_number}:{self.last_column}{row_number}"

    @property
    def decode_defaults(self) -> Dict[str, str]:
        """Values used when a cell is missing or blank."""
        defaults = {}
        for f in dataclasses.fields(self.record_type):
            if f.default is not dataclasses.MISSING:
                defaults[f.name] = f.default
        return defaults


def _columns(record_type: Type[Any]) -> Tuple[str, ...]:
    return tuple(f.name for f in dataclasses.fields(record_type))


TEAM = EntitySchema("team", "TEAM", TeamMember, _columns(TeamMember), "tm")
STARTUPS = EntitySchema("startups", "STARTUPS", Startup, _columns(Startup), "st")
PROJECTS = EntitySchema("projects", "PROJECTS", Project, _columns(Project), "prj")
TASKS = EntitySchema("tasks", "TASKS", Task, _columns(Task), "tsk")
INVESTORS = EntitySchema("investors", "INVESTORS", Investor, _columns(Investor), "inv")
PROJECT_INVESTORS = EntitySchema(
    "project_investors", "PROJECT_INVESTORS", ProjectInvestor, _columns(ProjectInvestor), "pi"
)
STARTUP_INVESTORS = EntitySchema(
    "startup_investors", "STARTUP_INVESTORS", StartupInvestor, _columns(StartupInvestor), "si"
)
CONFIG = EntitySchema("config", "CONFIG", ConfigRow, _columns(ConfigRow))

ALL_SCHEMAS: Tuple[EntitySchema, ...] = (
    TEAM,
    STARTUPS,
    PROJECTS,
    TASKS,
    INVESTORS,
    PROJECT_INVESTORS,
    STARTUP_INVESTORS,
    CONFIG,
)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def decode_row(schema: EntitySchema, row: Sequence[Any]) -> Any:
    """Build a record from a row; short rows and blank cells take the field default."""
    defaults = schema.decode_defaults
    values = {}
    for index, column in enumerate(schema.columns):
        cell = _cell(row[index]) if index < len(row) else ""
        values[column] = cell or defaults.get(column, "")
    return schema.record_type(**values)


def encode_row(schema: EntitySchema, record: Any) -> List[str]:
    """Exactly len(schema.columns) cells, in column order."""
    return [_cell(getattr(record, column)) for column in schema.columns]
