"""Client for the remote spreadsheet store (Google Sheets v4 values API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, Self
from urllib.parse import quote

import httpx

from shelfrank.config.exceptions import ConfigError
from shelfrank.exceptions import AuthError, RemoteNotFoundError, RemoteStoreError, TransientError
from shelfrank.sync.rows import parse_row_span

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from shelfrank.config.settings import RemoteSettings

logger = logging.getLogger(__name__)

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500

VALUE_INPUT_OPTION = "USER_ENTERED"


@dataclass(frozen=True, slots=True)
class AppendResult:
    """Where the remote store put appended rows."""

    updated_range: str | None
    first_row: int | None = None
    last_row: int | None = None

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> AppendResult:
        updated_range = (payload.get("updates") or {}).get("updatedRange")
        span = parse_row_span(updated_range) if updated_range else None
        if span is None:
            return cls(updated_range=updated_range)
        return cls(updated_range=updated_range, first_row=span[0], last_row=span[1])

    def row_numbers(self, count: int) -> list[int | None]:
        """Row number of each of ``count`` appended rows, in order."""
        if self.first_row is None:
            return [None] * count
        return [self.first_row + offset for offset in range(count)]


class RemoteStoreClient(Protocol):
    """Async operations the sync layer needs from a remote record store."""

    async def write(self, identifier: str, rows: Sequence[Sequence[Any]]) -> None: ...

    async def append(self, identifier: str, rows: Sequence[Sequence[Any]]) -> AppendResult: ...

    async def read_all(self, identifier: str) -> list[list[Any]]: ...


def classify_status(status: int, message: str) -> RemoteStoreError:
    """Map an HTTP error status to the remote error taxonomy."""
    if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        return AuthError(f"Authentication failed ({status}): {message}", status=status)
    if status == HTTP_NOT_FOUND:
        return RemoteNotFoundError(f"Remote resource not found: {message}", status=status)
    if status == HTTP_TOO_MANY_REQUESTS or status >= HTTP_SERVER_ERROR:
        return TransientError(f"Remote store unavailable ({status}): {message}", status=status)
    return RemoteStoreError(f"Remote store rejected the request ({status}): {message}", status=status)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase


class SheetsClient:
    """``RemoteStoreClient`` backed by the Sheets v4 REST API over httpx."""

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        token_provider: Callable[[], str | None],
        base_url: str = "https://sheets.googleapis.com/v4",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._token_provider = token_provider
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: RemoteSettings, *, client: httpx.AsyncClient | None = None) -> Self:
        if not settings.spreadsheet_id:
            msg = "remote.spreadsheet_id is not configured"
            raise ConfigError(msg)
        return cls(
            settings.spreadsheet_id,
            token_provider=settings.access_token,
            base_url=settings.base_url,
            timeout=settings.timeout,
            client=client,
        )

    def _values_url(self, a1_range: str, suffix: str = "") -> str:
        return f"{self._base_url}/spreadsheets/{self.spreadsheet_id}/values/{quote(a1_range, safe='')}{suffix}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        token = self._token_provider()
        if not token:
            msg = "No access token available for the remote store"
            raise AuthError(msg)

        try:
            response = await self._client.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.TimeoutException as exc:
            msg = f"Timed out talking to the remote store: {exc}"
            raise TransientError(msg) from exc
        except httpx.TransportError as exc:
            msg = f"Network error talking to the remote store: {exc}"
            raise TransientError(msg) from exc

        if response.is_error:
            error = classify_status(response.status_code, _error_message(response))
            logger.warning("%s %s failed: %s", method, url, error)
            raise error

        if not response.content:
            return {}
        return response.json()

    async def write(self, identifier: str, rows: Sequence[Sequence[Any]]) -> None:
        """Overwrite the range ``identifier`` with ``rows``."""
        await self._request(
            "PUT",
            self._values_url(identifier),
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"range": identifier, "majorDimension": "ROWS", "values": [list(row) for row in rows]},
        )
        logger.debug("Wrote %d rows to %s", len(rows), identifier)

    async def append(self, identifier: str, rows: Sequence[Sequence[Any]]) -> AppendResult:
        """Append ``rows`` after the last row of the sheet ``identifier``."""
        payload = await self._request(
            "POST",
            self._values_url(identifier, ":append"),
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"majorDimension": "ROWS", "values": [list(row) for row in rows]},
        )
        result = AppendResult.from_response(payload)
        logger.debug("Appended %d rows to %s at %s", len(rows), identifier, result.updated_range)
        return result

    async def read_all(self, identifier: str) -> list[list[Any]]:
        """Every row of the range or sheet ``identifier``."""
        payload = await self._request("GET", self._values_url(identifier))
        return [list(row) for row in payload.get("values", [])]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
