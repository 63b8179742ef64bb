"""
Shared Google Sheets transport: pooled HTTP, service-account auth, pacing.

No retries: a failed call surfaces immediately as RemoteStoreError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import quote

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from storage.errors import RemoteStoreError
from utils.rate_limiter import AsyncRateLimiter, ensure_rate_limiter, get_rate_limiter

if TYPE_CHECKING:
    from services.config_loader import SheetsSettings

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4"
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def build_credentials(service_account_email: str, private_key: str) -> service_account.Credentials:
    """Service-account credentials from an identity and a PEM private key."""
    info = {
        "type": "service_account",
        "client_email": service_account_email,
        "private_key": private_key,
        "token_uri": TOKEN_URI,
    }
    return service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)


class SheetsTransport:
    """
    HTTP access to one spreadsheet's values API.

    Call start() and shutdown() in long-running processes to reuse the client;
    request() starts it lazily otherwise.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        credentials: Any,
        base_url: str = SHEETS_API_BASE,
        timeout_seconds: float = 30.0,
        limiter: Optional[AsyncRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limits: Optional[httpx.Limits] = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds)
        self._credentials = credentials
        self._limiter = limiter or get_rate_limiter("sheets")
        self._transport = transport
        self._limits = limits or httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        )
        self._client: Optional[httpx.AsyncClient] = None
        self._start_lock = asyncio.Lock()
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: "SheetsSettings", **kwargs: Any) -> "SheetsTransport":
        credentials = build_credentials(settings.service_account_email, settings.private_key)
        kwargs.setdefault("timeout_seconds", settings.timeout_seconds)
        if "limiter" not in kwargs:
            kwargs["limiter"] = ensure_rate_limiter("sheets", settings.requests_per_minute, 60)
        return cls(settings.spreadsheet_id, credentials, **kwargs)

    async def start(self) -> None:
        """Initialize the shared HTTP client."""
        if self._client and not self._client.is_closed:
            return

        async with self._start_lock:
            if self._client and not self._client.is_closed:
                return
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                limits=self._limits,
                transport=self._transport,
            )

    async def shutdown(self) -> None:
        """Close the shared HTTP client."""
        if not self._client:
            return
        await self._client.aclose()
        self._client = None

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send one request and return the parsed JSON body."""
        if not self._client or self._client.is_closed:
            await self.start()

        if not self._client:
            raise RuntimeError("SheetsTransport client not initialized")

        url = path if path.startswith("/") else f"/{path}"
        await self._limiter.acquire()
        headers = {"Authorization": f"Bearer {await self._access_token()}"}

        try:
            response = await self._client.request(
                method=method.upper(),
                url=url,
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise RemoteStoreError(f"Sheets API request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteStoreError(
                self._error_message(response),
                status_code=response.status_code,
            )

        if response.content:
            return response.json()
        return {}

    # -------------------------------------------------------------------------
    # values API
    # -------------------------------------------------------------------------

    def values_path(self, a1_range: str, action: str = "") -> str:
        encoded = quote(a1_range, safe="")
        return f"/spreadsheets/{self.spreadsheet_id}/values/{encoded}{action}"

    async def get_values(self, a1_range: str) -> List[List[Any]]:
        body = await self.request("GET", self.values_path(a1_range))
        return body.get("values", [])

    async def append_values(self, a1_range: str, rows: List[List[str]]) -> Dict[str, Any]:
        return await self.request(
            "POST",
            self.values_path(a1_range, ":append"),
            json={"majorDimension": "ROWS", "values": rows},
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
        )

    async def update_values(self, a1_range: str, rows: List[List[str]]) -> Dict[str, Any]:
        return await self.request(
            "PUT",
            self.values_path(a1_range),
            json={"range": a1_range, "majorDimension": "ROWS", "values": rows},
            params={"valueInputOption": "RAW"},
        )

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    async def _access_token(self) -> str:
        """Current bearer token, refreshing the credentials off-loop when needed."""
        if not self._credentials.valid:
            async with self._token_lock:
                if not self._credentials.valid:
                    logger.debug("Refreshing Sheets access token")
                    try:
                        await asyncio.to_thread(self._credentials.refresh, Request())
                    except Exception as exc:
                        raise RemoteStoreError(f"Sheets authentication failed: {exc}") from exc
        return self._credentials.token

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Google's {"error": {"message": ...}} text, or the raw body."""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        text = response.text.strip()
        return text or f"Sheets API returned HTTP {response.status_code}"
