"""
Record defaults and write-time rules, one place per entity kind.

add_* operations on the store build new records here: a fresh id, the
timestamps, and the default enum values. validate_record() holds the
required-field and vocabulary rules applied before any store write.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type

from storage.errors import ValidationError
from storage.models import RecordStatus, TaskPriority, TaskStatus
from storage.row_codec import (
    INVESTORS,
    PROJECT_INVESTORS,
    PROJECTS,
    STARTUP_INVESTORS,
    STARTUPS,
    TASKS,
    TEAM,
    EntitySchema,
)
from utils.ids import generate_id

REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    TEAM.name: ("name",),
    STARTUPS.name: ("startup_name",),
    PROJECTS.name: ("startup_id", "project_name"),
    TASKS.name: ("title",),
    INVESTORS.name: ("investor_name",),
    PROJECT_INVESTORS.name: ("project_id", "investor_id"),
    STARTUP_INVESTORS.name: ("startup_id", "investor_id"),
}

ENUM_FIELDS: Dict[str, Dict[str, Type[Enum]]] = {
    STARTUPS.name: {"status": RecordStatus},
    PROJECTS.name: {"status": RecordStatus},
    TASKS.name: {"status": TaskStatus, "priority": TaskPriority},
}


def iso_timestamp(now: datetime) -> str:
    """2026-01-31T09:15:00.000Z"""
    now = now.astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_date(now: datetime) -> str:
    return now.astimezone(timezone.utc).date().isoformat()


def check_fields(schema: EntitySchema, fields: Mapping[str, Any]) -> None:
    unknown = sorted(set(fields) - set(schema.columns))
    if unknown:
        raise ValidationError(
            f"Unknown field(s) for {schema.name}: {', '.join(unknown)}"
        )


def _base_record(schema: EntitySchema, fields: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    """Field defaults overlaid with every non-empty supplied value, plus a new id."""
    check_fields(schema, fields)
    values: Dict[str, Any] = {column: "" for column in schema.columns}
    values.update(schema.decode_defaults)
    for key, value in fields.items():
        if value is None or value == "":
            continue
        values[key] = value.value if isinstance(value, Enum) else value
    if not values[schema.id_field]:
        values[schema.id_field] = generate_id(
            schema.id_prefix, timestamp_ms=int(now.timestamp() * 1000)
        )
    return values


def _plain_defaults(schema: EntitySchema, fields: Mapping[str, Any], now: datetime, default_stage: str) -> Dict[str, Any]:
    return _base_record(schema, fields, now)


def _project_defaults(schema: EntitySchema, fields: Mapping[str, Any], now: datetime, default_stage: str) -> Dict[str, Any]:
    values = _base_record(schema, fields, now)
    values["created_at"] = values["created_at"] or iso_timestamp(now)
    return values


def _task_defaults(schema: EntitySchema, fields: Mapping[str, Any], now: datetime, default_stage: str) -> Dict[str, Any]:
    values = _base_record(schema, fields, now)
    stamp = iso_timestamp(now)
    values["created_at"] = stamp
    values["updated_at"] = stamp
    return values


def _link_defaults(schema: EntitySchema, fields: Mapping[str, Any], now: datetime, default_stage: str) -> Dict[str, Any]:
    values = _base_record(schema, fields, now)
    values["stage"] = values["stage"] or default_stage
    values["last_update"] = iso_date(now)
    return values


RECORD_DEFAULTS: Dict[str, Callable[..., Dict[str, Any]]] = {
    TEAM.name: _plain_defaults,
    STARTUPS.name: _plain_defaults,
    PROJECTS.name: _project_defaults,
    TASKS.name: _task_defaults,
    INVESTORS.name: _plain_defaults,
    PROJECT_INVESTORS.name: _link_defaults,
    STARTUP_INVESTORS.name: _link_defaults,
}


def new_record(
    schema: EntitySchema,
    fields: Mapping[str, Any],
    now: Optional[datetime] = None,
    default_stage: str = "",
) -> Any:
    """
    Build a complete record for schema from caller-supplied fields.

    Blank values fall back to defaults the same way decoding does; the
    id is generated unless supplied.
    """
    now = now or datetime.now(timezone.utc)
    build = RECORD_DEFAULTS.get(schema.name)
    if build is None:
        raise ValidationError(f"{schema.name} records cannot be created")
    return schema.record_type(**build(schema, fields, now, default_stage))


def validate_record(schema: EntitySchema, record: Any) -> None:
    """Reject records with a blank id, a blank required field, or an out-of-vocabulary enum."""
    if not getattr(record, schema.id_field):
        raise ValidationError(f"{schema.id_field} is required")

    missing = [
        name for name in REQUIRED_FIELDS.get(schema.name, ()) if not getattr(record, name)
    ]
    if missing:
        verb = "is" if len(missing) == 1 else "are"
        raise ValidationError(f"{' and '.join(missing)} {verb} required")

    for name, vocabulary in ENUM_FIELDS.get(schema.name, {}).items():
        value = getattr(record, name)
        allowed = [member.value for member in vocabulary]
        if value not in allowed:
            raise ValidationError(
                f'Invalid {name} "{value}". Valid: {", ".join(allowed)}'
            )


def merge_record(schema: EntitySchema, existing: Any, changes: Mapping[str, Any]) -> Any:
    """Overlay changes on an existing record; the id field cannot change."""
    check_fields(schema, changes)
    id_value = changes.get(schema.id_field)
    if id_value not in (None, getattr(existing, schema.id_field)):
        raise ValidationError(f"{schema.id_field} cannot be changed")
    updates = {
        key: ("" if value is None else value.value if isinstance(value, Enum) else value)
        for key, value in changes.items()
        if key != schema.id_field
    }
    return dataclasses.replace(existing, **updates)
