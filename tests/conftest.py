import asyncio
import itertools
from datetime import datetime, timedelta
from typing import Any

import pytest

from rocketdriver.config.schema import DriverConfig
from rocketdriver.driver import Driver
from rocketdriver.errors import AuthenticationError
from rocketdriver.transport.base import Subscription, Transport


class FakeTransport(Transport):
    """In-memory transport recording every call made by the driver."""

    def __init__(self, auto_open: bool = True):
        super().__init__()
        self.auto_open = auto_open
        self.opened = False
        self.closed = False
        self.logged_out = False
        self.reject_login = False
        self.fail_unsubscribe = False
        self.fail_open: Exception | None = None
        self.calls: list[tuple[str, tuple]] = []
        self.login_calls: list[dict[str, Any]] = []
        self.subscribe_calls: list[tuple[str, list]] = []
        self.unsubscribed: list[str] = []
        self.responses: dict[str, Any] = {}
        self._connected = False
        self._ids = itertools.count(1)

    @property
    def connected(self) -> bool:
        return self._connected

    async def open(self) -> None:
        self.opened = True
        if self.fail_open:
            raise self.fail_open
        if self.auto_open:
            self.simulate_open()

    def simulate_open(self) -> None:
        self._connected = True
        self._notify_open()

    async def close(self) -> None:
        self.closed = True
        self._connected = False
        self.subscriptions.clear()

    async def login(self, credentials: dict[str, Any]) -> dict[str, Any]:
        self.login_calls.append(credentials)
        if self.reject_login:
            raise AuthenticationError("Incorrect password")
        return {"id": "bot-id", "token": "token"}

    async def logout(self) -> None:
        self.logged_out = True

    async def call(self, method: str, *params: Any) -> Any:
        self.calls.append((method, params))
        await asyncio.sleep(0)
        response = self.responses.get(method)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(*params)
        return response

    async def subscribe(self, name: str, params: list[Any], on_event=None) -> Subscription:
        self.subscribe_calls.append((name, params))
        await asyncio.sleep(0)
        subscription = Subscription(self, f"sub-{next(self._ids)}", name, params)
        if on_event:
            subscription.on_event(on_event)
        self.subscriptions[subscription.id] = subscription
        return subscription

    async def unsubscribe(self, id: str) -> None:
        if self.fail_unsubscribe:
            raise RuntimeError("unsubscribe failed")
        self.unsubscribed.append(id)
        self.subscriptions.pop(id, None)

    async def push(self, name: str, event: dict[str, Any]) -> None:
        for subscription in list(self.subscriptions.values()):
            if subscription.name == name:
                await subscription.dispatch(event)

    def method_calls(self, method: str) -> list[tuple]:
        return [params for name, params in self.calls if name == method]


def make_message(
    message_id: str = "m1",
    room_id: str = "room-general",
    user_id: str = "user-1",
    ts: datetime | None = None,
    **extra: Any,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "_id": message_id,
        "rid": room_id,
        "msg": "hello",
        "u": {"_id": user_id, "username": "alice"},
    }
    if ts is not None:
        data["ts"] = {"$date": int(ts.timestamp() * 1000)}
    data.update(extra)
    return data


def make_meta(room_type: str = "c", participant: bool = True, **extra: Any) -> dict[str, Any]:
    return {"roomType": room_type, "roomParticipant": participant, **extra}


def stream_event(message: Any, meta: Any) -> dict[str, Any]:
    return {
        "msg": "changed",
        "collection": "stream-room-messages",
        "id": "id",
        "fields": {"eventName": "__my_messages__", "args": [message, meta]},
    }


def later(base: datetime, seconds: float) -> datetime:
    return base + timedelta(seconds=seconds)


@pytest.fixture
def config() -> DriverConfig:
    return DriverConfig(
        host="http://localhost:3000",
        timeout=200,
        username="bot",
        password="secret",
        rooms=[],
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def driver(config: DriverConfig, transport: FakeTransport) -> Driver:
    return Driver(config, transport_factory=lambda cfg: transport)
