"""
Error taxonomy for the CRM persistence layer.

Every failure surfaced by the connectors, the store, and the migration job
is a CrmError subclass so the HTTP boundary can map it to a status code and
render it as {"error": message}:

- NotConfiguredError  -> fatal at startup (missing spreadsheet id / credentials)
- InvalidSettingError -> fatal at startup (unparseable optional setting)
- TabNotFoundError    -> a collection's backing tab is missing (operator error)
- RecordNotFoundError -> update addressed an unknown id (404)
- ValidationError     -> bad stage / missing required field (400)
- RemoteStoreError    -> anything else the Sheets API reported (500)
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional


class CrmError(Exception):
    """Base class for all CRM persistence errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.message}


class NotConfiguredError(CrmError):
    """Required connection settings are missing."""

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(
            "Missing required environment variables: " + ", ".join(self.missing)
        )


class InvalidSettingError(CrmError):
    """An optional setting is present but cannot be parsed."""

    def __init__(self, name: str, value: str, expected: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for {name}: {value!r} (expected {expected})")


class TabNotFoundError(CrmError):
    """The named tab does not exist in the spreadsheet."""

    def __init__(self, tab: str, detail: str = ""):
        self.tab = tab
        message = f'Tab "{tab}" not found in the spreadsheet'
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class RecordNotFoundError(CrmError):
    """No row in the tab carries the requested id."""

    status_code = 404

    def __init__(self, tab: str, record_id: str):
        self.tab = tab
        self.record_id = record_id
        super().__init__(f'Row with id "{record_id}" not found in tab "{tab}"')


class ValidationError(CrmError):
    """A write was rejected before reaching the store."""

    status_code = 400


class RemoteStoreError(CrmError):
    """Any other failure reported by (or on the way to) the Sheets API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.remote_status = status_code
