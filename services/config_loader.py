"""
Environment configuration for the Sheets-backed CRM.

Required:
    GOOGLE_SHEETS_SPREADSHEET_ID    spreadsheet holding the CRM tabs
    GOOGLE_SERVICE_ACCOUNT_EMAIL    service account identity
    GOOGLE_PRIVATE_KEY              PEM key; literal "\\n" sequences are accepted

Optional:
    SHEETS_TIMEOUT_SECONDS          HTTP timeout (default 30)
    SHEETS_REQUESTS_PER_MINUTE      local pacing, 0 disables (default 60)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from storage.errors import InvalidSettingError, NotConfiguredError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = (
    "GOOGLE_SHEETS_SPREADSHEET_ID",
    "GOOGLE_SERVICE_ACCOUNT_EMAIL",
    "GOOGLE_PRIVATE_KEY",
)


def _parse_number(env: Mapping[str, str], name: str, default: str, cast: Callable[[str], Any]) -> Any:
    value = env.get(name, default)
    try:
        return cast(value.strip())
    except ValueError:
        raise InvalidSettingError(name, value, "an integer" if cast is int else "a number") from None


@dataclass
class SheetsSettings:
    """Connection settings for the spreadsheet store."""

    spreadsheet_id: str
    service_account_email: str
    private_key: str = field(repr=False)
    timeout_seconds: float = 30.0
    requests_per_minute: int = 60

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        load_env_file: bool = False,
    ) -> "SheetsSettings":
        """
        Load settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            load_env_file: Load a .env file into os.environ first

        Raises:
            NotConfiguredError: naming every missing required variable
            InvalidSettingError: an optional variable is not a number
        """
        if load_env_file:
            from dotenv import load_dotenv
            load_dotenv()

        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
        if missing:
            raise NotConfiguredError(missing)

        return cls(
            spreadsheet_id=env["GOOGLE_SHEETS_SPREADSHEET_ID"].strip(),
            service_account_email=env["GOOGLE_SERVICE_ACCOUNT_EMAIL"].strip(),
            private_key=env["GOOGLE_PRIVATE_KEY"].replace("\\n", "\n"),
            timeout_seconds=_parse_number(env, "SHEETS_TIMEOUT_SECONDS", "30", float),
            requests_per_minute=_parse_number(env, "SHEETS_REQUESTS_PER_MINUTE", "60", int),
        )
