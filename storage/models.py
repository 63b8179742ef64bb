"""
Typed records for the CRM tabs.

Every record is flat: strings only, one field per spreadsheet column, in
column order. Enum-like fields stay plain strings on the record so a row
with an unexpected value still decodes; the vocabularies below are used
for defaults and write-time validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List


# =============================================================================
# VOCABULARIES
# =============================================================================

class RecordStatus(str, Enum):
    """Lifecycle status shared by startups and projects"""
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class TaskStatus(str, Enum):
    TODO = "todo"
    DOING = "doing"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Kanban columns, in order, when CONFIG has no pipeline_stages row
DEFAULT_PIPELINE_STAGES: List[str] = [
    "Potentials",
    "Initial Contact",
    "Advanced Contact",
    "Due Diligence",
    "Negotiation",
    "Declined",
    "Accepted",
]

PIPELINE_STAGES_KEY = "pipeline_stages"


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class TeamMember:
    team_id: str
    name: str = ""


@dataclass
class Startup:
    startup_id: str
    startup_name: str = ""
    status: str = RecordStatus.ACTIVE.value
    pitch_deck_url: str = ""
    data_room_url: str = ""
    pl_url: str = ""
    investment_memo_url: str = ""
    notes: str = ""

    @property
    def material_urls(self) -> List[str]:
        return [
            self.pitch_deck_url,
            self.data_room_url,
            self.pl_url,
            self.investment_memo_url,
        ]


@dataclass
class Project:
    project_id: str
    startup_id: str = ""
    project_name: str = ""
    status: str = RecordStatus.ACTIVE.value
    created_at: str = ""
    notes: str = ""


@dataclass
class Task:
    task_id: str
    startup_id: str = ""
    project_id: str = ""  # blank = startup-level task
    title: str = ""
    owner_id: str = ""
    due_date: str = ""  # YYYY-MM-DD
    status: str = TaskStatus.TODO.value
    priority: str = TaskPriority.MEDIUM.value
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_startup_level(self) -> bool:
        """True when the task is not scoped to any project."""
        return not self.project_id

    @property
    def is_open(self) -> bool:
        return self.status != TaskStatus.DONE.value


@dataclass
class Investor:
    investor_id: str
    investor_name: str = ""
    tags: str = ""  # semicolon-separated
    email: str = ""
    linkedin: str = ""
    notes: str = ""

    @property
    def tag_list(self) -> List[str]:
        return [tag.strip() for tag in self.tags.split(";") if tag.strip()]


@dataclass
class ProjectInvestor:
    """Pipeline link between a project and an investor."""
    link_id: str
    project_id: str = ""
    investor_id: str = ""
    stage: str = ""
    last_update: str = ""  # YYYY-MM-DD
    next_action: str = ""
    notes: str = ""


@dataclass
class StartupInvestor:
    """Legacy pipeline link, superseded by ProjectInvestor."""
    link_id: str
    startup_id: str = ""
    investor_id: str = ""
    stage: str = ""
    last_update: str = ""
    next_action: str = ""
    notes: str = ""


@dataclass
class ConfigRow:
    key: str
    value: str = ""
