"""Tests for the Sheets HTTP client."""

import json

import httpx
import pytest
import respx

from shelfrank.config import ConfigError, RemoteSettings
from shelfrank.exceptions import AuthError, RemoteNotFoundError, RemoteStoreError, TransientError
from shelfrank.sync.client import AppendResult, SheetsClient, classify_status

BASE = "https://sheets.example.test/v4"
VALUES = r"^/v4/spreadsheets/sheet-123/values/"


@pytest.fixture
def client():
    return SheetsClient("sheet-123", token_provider=lambda: "token-abc", base_url=BASE)


class TestRequests:
    @pytest.mark.asyncio
    @respx.mock
    async def test_read_all(self, client):
        route = respx.get(host="sheets.example.test", path__regex=VALUES + "Sheet1").mock(
            return_value=httpx.Response(200, json={"range": "Sheet1!A1:E2", "values": [["Title"], ["Dune", "F"]]})
        )

        rows = await client.read_all("Sheet1")

        assert rows == [["Title"], ["Dune", "F"]]
        assert route.calls.last.request.headers["Authorization"] == "Bearer token-abc"
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_read_empty_sheet(self, client):
        respx.get(host="sheets.example.test", path__regex=VALUES).mock(
            return_value=httpx.Response(200, json={"range": "Sheet1"})
        )
        assert await client.read_all("Sheet1") == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_write_puts_values(self, client):
        route = respx.put(host="sheets.example.test", path__regex=VALUES + "Sheet1").mock(
            return_value=httpx.Response(200, json={"updatedRows": 1})
        )

        await client.write("Sheet1!A7:E7", [["Dune", "Frank Herbert", "", "", 8.5]])

        request = route.calls.last.request
        assert request.url.params["valueInputOption"] == "USER_ENTERED"
        assert json.loads(request.content)["values"] == [["Dune", "Frank Herbert", "", "", 8.5]]

    @pytest.mark.asyncio
    @respx.mock
    async def test_append_parses_updated_range(self, client):
        respx.post(host="sheets.example.test", path__regex=VALUES + "Sheet1:append$").mock(
            return_value=httpx.Response(200, json={"updates": {"updatedRange": "Sheet1!A10:E11", "updatedRows": 2}})
        )

        result = await client.append("Sheet1", [["A", "B"], ["C", "D"]])

        assert result == AppendResult(updated_range="Sheet1!A10:E11", first_row=10, last_row=11)
        assert result.row_numbers(2) == [10, 11]


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(401, AuthError), (403, AuthError), (404, RemoteNotFoundError), (429, TransientError), (503, TransientError), (400, RemoteStoreError)],
    )
    @respx.mock
    async def test_status_mapping(self, client, status, error_type):
        respx.get(host="sheets.example.test").mock(
            return_value=httpx.Response(status, json={"error": {"message": "nope"}})
        )

        with pytest.raises(error_type) as exc_info:
            await client.read_all("Sheet1")

        assert exc_info.value.status == status
        assert "nope" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_is_transient(self, client):
        respx.get(host="sheets.example.test").mock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(TransientError):
            await client.read_all("Sheet1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_is_transient(self, client):
        respx.get(host="sheets.example.test").mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(TransientError) as exc_info:
            await client.read_all("Sheet1")
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_missing_token_is_auth_error(self):
        client = SheetsClient("sheet-123", token_provider=lambda: None, base_url=BASE)
        with pytest.raises(AuthError):
            await client.read_all("Sheet1")
        await client.aclose()

    def test_classify_other_status(self):
        error = classify_status(418, "teapot")
        assert type(error) is RemoteStoreError
        assert not error.retryable


class TestFromSettings:
    def test_requires_spreadsheet_id(self):
        with pytest.raises(ConfigError):
            SheetsClient.from_settings(RemoteSettings())

    def test_uses_token_from_environment(self, monkeypatch):
        monkeypatch.setenv("SHELFRANK_ACCESS_TOKEN", "env-token")
        client = SheetsClient.from_settings(RemoteSettings(spreadsheet_id="abc"))
        assert client.spreadsheet_id == "abc"
        assert client._token_provider() == "env-token"
