"""
TabPilot - Stable node identity and page interaction for Chrome tabs over CDP.

This package attaches a debugger session to a tab, reads its accessibility
tree, turns the ephemeral backend node ids found there into durable CSS
selectors, and clicks, fills or evaluates against those selectors.

Usage:
    from tabpilot import TabController

    async with TabController() as controller:
        async with controller.session(tab_id):
            tree = await controller.get_accessibility_tree(tab_id)
            button = tree.find(role="button", name="Search")[0]
            selector = await controller.resolve_selector(tab_id, button.backend_node_id)
            await controller.click(tab_id, selector)

Lower-level components (for custom transports or test doubles):
    from tabpilot.cdp import CommandDispatcher, SessionManager, NodeResolver
"""
from tabpilot.controller import ControllerConfig, TabController
from tabpilot.interaction import PageInteractor
from tabpilot.cdp.accessibility import AccessibilityProvider
from tabpilot.cdp.client import CDPClient, setup_logging
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.dom import MARKER_ATTRIBUTE, NodeResolver
from tabpilot.cdp.session import DebuggerSession, SessionManager, SessionState
from tabpilot.core.models import AXNode, AXTree
from tabpilot.core.errors import (
    TabPilotError,
    AttachError,
    CDPConnectionError,
    ElementNotFoundError,
    ProtocolError,
    ScriptError,
    SessionError,
    StaleNodeError,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "TabController",
    "ControllerConfig",
    # Components
    "CDPClient",
    "CommandDispatcher",
    "SessionManager",
    "DebuggerSession",
    "SessionState",
    "NodeResolver",
    "PageInteractor",
    "AccessibilityProvider",
    "MARKER_ATTRIBUTE",
    "setup_logging",
    # Models
    "AXNode",
    "AXTree",
    # Errors
    "TabPilotError",
    "AttachError",
    "CDPConnectionError",
    "ElementNotFoundError",
    "ProtocolError",
    "ScriptError",
    "SessionError",
    "StaleNodeError",
    # Version
    "__version__",
]
