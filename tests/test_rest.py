import json
import re

import httpx
import pytest

from rocketdriver.api.rest import RestClient, is_success
from rocketdriver.config.schema import DriverConfig
from rocketdriver.errors import RestError


class FakeServer:
    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/v1/login":
            body = json.loads(request.content)
            if body["password"] != "secret":
                return httpx.Response(401, json={"status": "error", "message": "Unauthorized"})
            return httpx.Response(200, json={"status": "success", "data": {"authToken": "tok", "userId": "u1"}})
        if path == "/api/v1/logout":
            return httpx.Response(200, json={"status": "success"})
        if path == "/api/v1/users.list":
            return httpx.Response(200, json={"users": [{"_id": "u1", "username": "alice"}]})
        if path.startswith("/api/v1/livechat/"):
            body = json.loads(request.content) if request.content else None
            return httpx.Response(200, json={"method": request.method, "body": body, "params": dict(request.url.params)})
        if path == "/api/v1/channels.delete":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404, json={"success": False, "error": "Not found"})


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def client(server):
    config = DriverConfig(host="chat.example.com", use_ssl=True, username="bot", password="secret")
    return RestClient(config, http=httpx.AsyncClient(transport=httpx.MockTransport(server)))


def test_is_success():
    assert is_success(200)
    assert not is_success(404)
    assert is_success(404, re.compile("404"))


def test_url_uses_protocol(client):
    assert client.url == "https://chat.example.com/api/v1/"


@pytest.mark.asyncio
async def test_login_sets_auth_headers(client, server):
    await client.login()

    assert client.logged_in
    assert client.current_login.user_id == "u1"
    await client.get("users.list")
    assert server.requests[-1].headers["X-Auth-Token"] == "tok"
    assert server.requests[-1].headers["X-User-Id"] == "u1"


@pytest.mark.asyncio
async def test_login_is_reused_for_same_user(client, server):
    await client.login()
    await client.login()

    assert [r.url.path for r in server.requests] == ["/api/v1/login"]


@pytest.mark.asyncio
async def test_login_failure_raises(client):
    with pytest.raises(RestError) as exc_info:
        await client.login(password="wrong")

    assert exc_info.value.status_code == 401
    assert not client.logged_in


@pytest.mark.asyncio
async def test_authenticated_request_logs_in_first(client, server):
    users = await client.users(online=True)

    assert users == [{"_id": "u1", "username": "alice"}]
    assert [r.url.path for r in server.requests] == ["/api/v1/login", "/api/v1/users.list"]
    query = json.loads(server.requests[-1].url.params["query"])
    assert query == {"status": {"$ne": "offline"}}


@pytest.mark.asyncio
async def test_error_status_raises_with_body(client):
    with pytest.raises(RestError) as exc_info:
        await client.post("channels.create", {"name": "dev"})

    assert exc_info.value.status_code == 404
    assert exc_info.value.data == {"success": False, "error": "Not found"}


@pytest.mark.asyncio
async def test_ignored_status_is_returned(client):
    result = await client.get("missing", auth=False, ignore=re.compile("404"))
    assert result["error"] == "Not found"


@pytest.mark.asyncio
async def test_delete_returns_response(client):
    response = await client.delete("channels.delete", {"roomName": "dev"})
    assert isinstance(response, httpx.Response)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_logout_clears_headers(client, server):
    await client.login()

    await client.logout()

    assert not client.logged_in
    assert server.requests[-1].url.path == "/api/v1/logout"
    assert "X-Auth-Token" not in client._headers


@pytest.mark.asyncio
async def test_livechat_config_is_unauthenticated(client, server):
    result = await client.livechat.config({"token": "visitor-token"})

    assert result["params"] == {"token": "visitor-token"}
    assert [r.url.path for r in server.requests] == ["/api/v1/livechat/config"]
    assert not client.logged_in


@pytest.mark.asyncio
async def test_livechat_close_and_transfer_chat(client, server):
    credentials = {"rid": "room-1", "token": "visitor-token", "department": "sales", "extra": 1}

    closed = await client.livechat.close_chat(credentials)
    transferred = await client.livechat.transfer_chat(credentials)

    assert closed["body"] == {"rid": "room-1", "token": "visitor-token"}
    assert transferred["body"] == {"rid": "room-1", "token": "visitor-token", "department": "sales"}
    assert server.requests[-1].url.path == "/api/v1/livechat/room.transfer"


@pytest.mark.asyncio
async def test_livechat_message_helpers(client, server):
    credentials = {"rid": "room-1", "token": "visitor-token"}

    edited = await client.livechat.edit_message("m1", {"msg": "fixed", **credentials})
    deleted = await client.livechat.delete_message("m1", credentials)
    navigation = await client.livechat.send_visitor_navigation(credentials, {"pageInfo": {"title": "Home"}})

    assert edited["method"] == "PUT"
    assert server.requests[0].url.path == "/api/v1/livechat/message/m1"
    assert isinstance(deleted, httpx.Response)
    assert deleted.json()["method"] == "DELETE"
    assert navigation["body"] == {"token": "visitor-token", "rid": "room-1", "pageInfo": {"title": "Home"}}


@pytest.mark.asyncio
async def test_livechat_visitor_lookup_uses_login(client, server):
    await client.livechat.visitor("visitor-token")

    assert [r.url.path for r in server.requests] == ["/api/v1/login", "/api/v1/livechat/visitor/visitor-token"]
