"""Pytest configuration for ECU Link tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
from collections.abc import Iterator

import pytest
from eculink.config.model import ConnectionConfig
from eculink.transport.websocket import ConnectionManager
from mocks import FakeConnector

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop.run_until_complete(test_function(**kwargs))
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        except (RuntimeError, ValueError):
            pass
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(autouse=True)
def reset_logging_handlers() -> Iterator[None]:
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def link_config() -> ConnectionConfig:
    return ConnectionConfig(
        host="10.0.0.7",
        port=8080,
        reconnect_interval_ms=20,
        max_reconnect_attempts=3,
    )


@pytest.fixture
def manager(connector: FakeConnector, link_config: ConnectionConfig) -> ConnectionManager:
    return ConnectionManager(link_config, connector=connector)
