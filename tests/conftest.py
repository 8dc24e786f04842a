"""
Pytest configuration and shared fixtures.

Unit tests run against the simulated host in ``tests/fakes.py``; tests
marked ``integration`` need a real Chrome and only run with TABPILOT_CHROME=1.
"""
import os

import pytest

from tabpilot.cdp.accessibility import AccessibilityProvider
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.dom import NodeResolver
from tabpilot.cdp.session import SessionManager
from tabpilot.controller import TabController
from tabpilot.interaction import PageInteractor

from tests.fakes import FakeHost, default_page


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires Chrome)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a Chrome instance was promised."""
    if os.environ.get("TABPILOT_CHROME") == "1":
        return
    skip = pytest.mark.skip(reason="set TABPILOT_CHROME=1 to run against Chrome")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Simulated host wiring
# =============================================================================

@pytest.fixture
def host():
    """A host with two tabs showing the same small form."""
    return FakeHost(default_page("TAB-1"), default_page("TAB-2"))


@pytest.fixture
def dispatcher(host):
    return CommandDispatcher(host)


@pytest.fixture
def manager(dispatcher):
    return SessionManager(dispatcher)


@pytest.fixture
def resolver(dispatcher):
    return NodeResolver(dispatcher)


@pytest.fixture
def interactor(dispatcher):
    return PageInteractor(dispatcher)


@pytest.fixture
def provider(dispatcher):
    return AccessibilityProvider(dispatcher)


@pytest.fixture
async def session(manager):
    """An attached, DOM-enabled session on TAB-1."""
    session = await manager.attach("TAB-1")
    await manager.enable_dom(session)
    yield session
    await manager.detach(session)


@pytest.fixture
async def controller(host):
    """A started controller driving the simulated host."""
    controller = TabController(transport=host)
    await controller.start()
    yield controller
    await controller.stop()
