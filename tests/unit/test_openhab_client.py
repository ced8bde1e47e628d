"""Tests for the OpenHAB REST client, using httpx.MockTransport."""
import base64
import json

import httpx
import pytest

from twinsync.openhab.client import OpenHABClient, build_auth_headers
from twinsync.openhab.errors import ParseError, RemoteError, SyncErrorKind, TransportError

ITEMS = [
    {"name": "Lobby_Temp", "type": "Number:Temperature", "state": "21.5 °C", "label": "Lobby"},
    {"name": "Hall_Light", "type": "Switch", "state": "ON"},
]


def make_client(handler, token=None, base_url="https://openhab.example.com/"):
    return OpenHABClient(base_url, token, timeout=5.0, transport=httpx.MockTransport(handler))


class TestBuildAuthHeaders:
    def test_no_token_only_accept(self):
        assert build_auth_headers(None) == {"Accept": "application/json"}

    def test_api_token_is_bearer(self):
        headers = build_auth_headers("oh.abc.123")
        assert headers["Authorization"] == "Bearer oh.abc.123"
        assert headers["Accept"] == "application/json"

    def test_email_password_is_basic(self):
        headers = build_auth_headers("me@example.com:s3cret")
        expected = base64.b64encode(b"me@example.com:s3cret").decode()
        assert headers["Authorization"] == f"Basic {expected}"


class TestListItems:
    async def test_returns_items(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=ITEMS)

        async with make_client(handler, token="tok") as client:
            items = await client.list_items()

        assert items == ITEMS
        assert str(seen[0].url) == "https://openhab.example.com/rest/items"
        assert seen[0].method == "GET"
        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert seen[0].headers["Accept"] == "application/json"

    async def test_no_authorization_without_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            await client.list_items()

        assert "Authorization" not in seen[0].headers

    async def test_non_2xx_is_remote_error(self):
        async with make_client(lambda r: httpx.Response(401)) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.list_items()
        assert exc_info.value.status_code == 401
        assert exc_info.value.kind == SyncErrorKind.REMOTE
        assert "401" in exc_info.value.message

    async def test_malformed_json_is_parse_error(self):
        async with make_client(lambda r: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(ParseError):
                await client.list_items()

    async def test_object_instead_of_array_is_parse_error(self):
        async with make_client(lambda r: httpx.Response(200, json={"name": "x"})) as client:
            with pytest.raises(ParseError):
                await client.list_items()

    async def test_connection_failure_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("Name or service not known", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.list_items()
        assert exc_info.value.kind == SyncErrorKind.TRANSPORT

    async def test_timeout_is_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError, match="Timed out"):
                await client.list_items()


class TestGetItem:
    async def test_fetches_single_item(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=ITEMS[0])

        async with make_client(handler) as client:
            item = await client.get_item("Lobby_Temp")

        assert item["state"] == "21.5 °C"
        assert seen[0].url.path == "/rest/items/Lobby_Temp"

    async def test_item_name_is_url_encoded(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"name": "zwave:temp"})

        async with make_client(handler) as client:
            await client.get_item("zwave:temp")

        assert seen[0].url.raw_path == b"/rest/items/zwave%3Atemp"

    async def test_missing_item_is_remote_404(self):
        async with make_client(lambda r: httpx.Response(404, json={"error": "not found"})) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.get_item("Nope")
        assert exc_info.value.status_code == 404

    async def test_array_instead_of_object_is_parse_error(self):
        async with make_client(lambda r: httpx.Response(200, json=[])) as client:
            with pytest.raises(ParseError):
                await client.get_item("Lobby_Temp")


class TestSendCommand:
    async def test_posts_plain_text(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(202)

        async with make_client(handler, token="tok") as client:
            await client.send_command("Heating_Setpoint", "21.5")

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/rest/items/Heating_Setpoint"
        assert request.headers["Content-Type"] == "text/plain"
        assert request.content == b"21.5"

    async def test_rejected_command_is_remote_error(self):
        async with make_client(lambda r: httpx.Response(400)) as client:
            with pytest.raises(RemoteError):
                await client.send_command("Heating_Setpoint", "hot")
