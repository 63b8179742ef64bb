"""
Derived read models built from already-loaded collections.

Pure functions: callers pass the lists they fetched from CrmStore, so one
page render costs one read per collection regardless of how many views it
builds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from storage.models import Investor, Project, ProjectInvestor, Startup, Task

UNSTAGED = "Unstaged"

TASK_WINDOWS = ("today", "week", "overdue")


def pipeline_board(
    links: Iterable[ProjectInvestor],
    stages: Sequence[str],
) -> Dict[str, List[ProjectInvestor]]:
    """
    Kanban columns: stage -> links, in configured stage order.

    Links whose stage is not configured are kept under a trailing
    "Unstaged" column, present only when non-empty.
    """
    board: Dict[str, List[ProjectInvestor]] = {stage: [] for stage in stages}
    unstaged: List[ProjectInvestor] = []
    for link in links:
        if link.stage in board:
            board[link.stage].append(link)
        else:
            unstaged.append(link)
    if unstaged:
        board[UNSTAGED] = unstaged
    return board


def available_investors(
    investors: Iterable[Investor],
    links: Iterable[ProjectInvestor],
) -> List[Investor]:
    """Investors not yet linked by any of the given links."""
    linked = {link.investor_id for link in links}
    return [investor for investor in investors if investor.investor_id not in linked]


@dataclass
class ProjectSummary:
    project: Project
    startup_name: str
    open_task_count: int
    investor_count: int


@dataclass
class StartupSummary:
    startup: Startup
    open_task_count: int
    project_count: int
    materials_count: int
    materials_total: int = 4


def project_summaries(
    projects: Iterable[Project],
    startups: Iterable[Startup],
    tasks: Iterable[Task],
    links: Iterable[ProjectInvestor],
) -> List[ProjectSummary]:
    names = {s.startup_id: s.startup_name for s in startups}
    open_tasks: Dict[str, int] = {}
    for task in tasks:
        if task.is_open and not task.is_startup_level:
            open_tasks[task.project_id] = open_tasks.get(task.project_id, 0) + 1
    investors: Dict[str, int] = {}
    for link in links:
        investors[link.project_id] = investors.get(link.project_id, 0) + 1

    return [
        ProjectSummary(
            project=project,
            startup_name=names.get(project.startup_id, ""),
            open_task_count=open_tasks.get(project.project_id, 0),
            investor_count=investors.get(project.project_id, 0),
        )
        for project in projects
    ]


def startup_summaries(
    startups: Iterable[Startup],
    projects: Iterable[Project],
    tasks: Iterable[Task],
) -> List[StartupSummary]:
    open_tasks: Dict[str, int] = {}
    for task in tasks:
        if task.is_open:
            open_tasks[task.startup_id] = open_tasks.get(task.startup_id, 0) + 1
    project_counts: Dict[str, int] = {}
    for project in projects:
        project_counts[project.startup_id] = project_counts.get(project.startup_id, 0) + 1

    return [
        StartupSummary(
            startup=startup,
            open_task_count=open_tasks.get(startup.startup_id, 0),
            project_count=project_counts.get(startup.startup_id, 0),
            materials_count=sum(1 for url in startup.material_urls if url),
        )
        for startup in startups
    ]


def end_of_week(today: date) -> date:
    """The Sunday closing today's week (today itself on a Sunday)."""
    return today + timedelta(days=6 - today.weekday())


def filter_open_tasks(
    tasks: Iterable[Task],
    window: str,
    today: Optional[date] = None,
) -> List[Task]:
    """
    Open tasks due within a window.

    - today:   due on or before today
    - week:    due on or before the end of this week
    - overdue: due strictly before today

    Done tasks never match. Undated tasks match "today" and "week" but
    not "overdue".
    """
    if window not in TASK_WINDOWS:
        raise ValueError(f"Unknown task window {window!r}; expected one of {', '.join(TASK_WINDOWS)}")

    today = today or date.today()
    today_str = today.isoformat()
    week_str = end_of_week(today).isoformat()

    matched = []
    for task in tasks:
        if not task.is_open:
            continue
        if not task.due_date:
            if window != "overdue":
                matched.append(task)
            continue
        if window == "today" and task.due_date <= today_str:
            matched.append(task)
        elif window == "week" and task.due_date <= week_str:
            matched.append(task)
        elif window == "overdue" and task.due_date < today_str:
            matched.append(task)
    return matched


def tasks_by_owner(tasks: Iterable[Task], owner_ids: Iterable[str]) -> Dict[str, List[Task]]:
    """owner_id -> tasks, plus "" for tasks without a known owner."""
    groups: Dict[str, List[Task]] = {owner_id: [] for owner_id in owner_ids}
    groups.setdefault("", [])
    for task in tasks:
        key = task.owner_id if task.owner_id in groups else ""
        groups[key].append(task)
    return groups
