import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from rocketdriver.config.schema import DriverConfig
from rocketdriver.driver import Driver
from rocketdriver.driver.connection import SessionState
from rocketdriver.errors import AuthenticationError, ConnectionTimeoutError
from tests.conftest import FakeTransport


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_connect_returns_transport_and_strips_protocol(config):
    seen_hosts = []
    transport = FakeTransport()

    def factory(cfg: DriverConfig):
        seen_hosts.append(cfg.host)
        return transport

    driver = Driver(config, transport_factory=factory)
    result = await driver.connect()

    assert result is transport
    assert seen_hosts == ["localhost:3000"]
    assert driver.session.state is SessionState.CONNECTED
    assert driver.connection.connected


@pytest.mark.asyncio
async def test_connect_invokes_callback_and_publishes_connected(driver, transport):
    calls = []
    connected = []
    driver.events.subscribe("connected", lambda: connected.append(True))

    await driver.connect(lambda err, t: calls.append((err, t)))

    assert calls == [(None, transport)]
    assert connected == [True]


@pytest.mark.asyncio
async def test_connect_timeout_raises_and_calls_back_once(config):
    transport = FakeTransport(auto_open=False)
    driver = Driver(config, transport_factory=lambda cfg: transport)
    calls = []

    with pytest.raises(ConnectionTimeoutError) as exc_info:
        await driver.connect(lambda err, t: calls.append((err, t)), timeout=50)

    assert "50ms" in str(exc_info.value)
    assert len(calls) == 1
    assert isinstance(calls[0][0], ConnectionTimeoutError)
    assert calls[0][1] is None
    assert driver.session.state is SessionState.TIMED_OUT


@pytest.mark.asyncio
async def test_open_after_timeout_closes_transport(config):
    transport = FakeTransport(auto_open=False)
    driver = Driver(config, transport_factory=lambda cfg: transport)
    calls = []

    with pytest.raises(ConnectionTimeoutError):
        await driver.connect(lambda err, t: calls.append((err, t)), timeout=50)

    transport.simulate_open()
    await _settle()

    assert transport.closed
    assert len(calls) == 1
    assert driver.session.state is SessionState.TIMED_OUT


@pytest.mark.asyncio
async def test_connect_propagates_open_failure(config):
    transport = FakeTransport()
    transport.fail_open = OSError("connection refused")
    driver = Driver(config, transport_factory=lambda cfg: transport)
    calls = []

    with pytest.raises(OSError):
        await driver.connect(lambda err, t: calls.append(err))

    assert isinstance(calls[0], OSError)
    assert driver.session.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reopen_emits_connected_again(driver, transport):
    connected = []
    driver.events.subscribe("connected", lambda: connected.append(True))
    await driver.connect()

    transport.simulate_open()
    await _settle()

    assert connected == [True, True]


@pytest.mark.asyncio
async def test_login_connects_and_records_user_id(driver, transport):
    user_id = await driver.login()

    assert user_id == "bot-id"
    assert driver.user_id == "bot-id"
    assert transport.opened
    assert transport.login_calls == [{"username": "bot", "password": "secret"}]


@pytest.mark.asyncio
async def test_login_with_ldap_credentials(driver, transport):
    await driver.login(username="carol", password="pw", ldap=True, ldap_options={"domain": "corp"})

    assert transport.login_calls == [{
        "ldap": True,
        "ldapOptions": {"domain": "corp"},
        "ldapPass": "pw",
        "username": "carol",
    }]


@pytest.mark.asyncio
async def test_login_failure_leaves_connection_up(driver, transport):
    transport.reject_login = True

    with pytest.raises(AuthenticationError):
        await driver.login()

    assert driver.user_id is None
    assert driver.connection.connected


@pytest.mark.asyncio
async def test_logout_unsubscribes_and_clears_user(driver, transport):
    await driver.login()
    subscription = await driver.subscribe_to_messages()

    await driver.logout()

    assert transport.unsubscribed == [subscription.id]
    assert transport.logged_out
    assert driver.user_id is None


@pytest.mark.asyncio
async def test_disconnect_closes_even_when_unsubscribe_fails(driver, transport):
    disconnected = []
    driver.events.subscribe("disconnected", lambda: disconnected.append(True))
    await driver.login()
    await driver.subscribe_to_messages()
    transport.fail_unsubscribe = True

    await driver.disconnect()

    assert transport.closed
    assert transport.logged_out
    assert driver.transport is None
    assert driver.session.state is SessionState.DISCONNECTED
    assert disconnected == [True]


@pytest.mark.asyncio
async def test_disconnect_without_connection_is_noop(driver):
    await driver.disconnect()
    assert driver.transport is None


@pytest.mark.asyncio
async def test_coroutine_callback_is_awaited(driver, transport):
    callback = AsyncMock()

    await driver.connect(callback)

    callback.assert_awaited_once_with(None, transport)


@pytest.mark.asyncio
async def test_open_landing_with_timeout_still_closes_transport(config, monkeypatch):
    transport = FakeTransport()
    driver = Driver(config, transport_factory=lambda cfg: transport)
    calls = []

    async def open_then_time_out(future, timeout):
        await future
        raise asyncio.TimeoutError()

    monkeypatch.setattr(asyncio, "wait_for", open_then_time_out)
    with pytest.raises(ConnectionTimeoutError):
        await driver.connect(lambda err, t: calls.append((err, t)))
    monkeypatch.undo()

    assert transport.closed
    assert not transport.connected
    assert not driver.connection.connected
    assert driver.session.state is SessionState.TIMED_OUT
    assert len(calls) == 1
    assert isinstance(calls[0][0], ConnectionTimeoutError)


@pytest.mark.asyncio
async def test_open_and_timeout_due_in_same_iteration(config):
    transport = FakeTransport(auto_open=False)
    driver = Driver(config, transport_factory=lambda cfg: transport)
    calls = []
    loop = asyncio.get_running_loop()
    loop.call_later(0.03, transport.simulate_open)
    # 阻塞事件循环，让打开通知和 50ms 超时在同一轮到期
    loop.call_later(0.001, time.sleep, 0.08)

    try:
        await driver.connect(lambda err, t: calls.append(err), timeout=50)
    except ConnectionTimeoutError:
        assert transport.closed
        assert not transport.connected
        assert isinstance(calls[0], ConnectionTimeoutError)
    else:
        assert driver.connection.connected
        assert not transport.closed
        assert calls == [None]
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_timeout_then_reconnect_closes_first_transport(config):
    first, second = FakeTransport(auto_open=False), FakeTransport()
    transports = iter([first, second])
    driver = Driver(config, transport_factory=lambda cfg: next(transports))

    with pytest.raises(ConnectionTimeoutError):
        await driver.connect(timeout=50)
    await driver.connect()

    assert first.closed
    assert second.connected
    assert driver.transport is second


@pytest.mark.asyncio
async def test_connect_again_closes_previous_transport(config):
    first, second = FakeTransport(), FakeTransport()
    transports = iter([first, second])
    driver = Driver(config, transport_factory=lambda cfg: next(transports))

    await driver.connect()
    await driver.connect()

    assert first.closed
    assert not second.closed
    assert driver.connection.connected


@pytest.mark.asyncio
async def test_failed_open_closes_transport(config):
    transport = FakeTransport()
    transport.fail_open = OSError("connection refused")
    driver = Driver(config, transport_factory=lambda cfg: transport)

    with pytest.raises(OSError):
        await driver.connect()

    assert transport.closed


@pytest.mark.asyncio
async def test_login_accepts_camel_case_credentials(driver, transport):
    await driver.login(username="carol", password="pw", ldap=True, ldapOptions={"domain": "corp"})

    assert transport.login_calls[0]["ldapOptions"] == {"domain": "corp"}


@pytest.mark.asyncio
async def test_login_rejects_unknown_options(driver, transport):
    with pytest.raises(TypeError, match="host"):
        await driver.login(host="elsewhere")

    assert transport.login_calls == []
