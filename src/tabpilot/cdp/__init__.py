"""
CDP Module - Transport, typed commands, sessions and node identity.
"""
from tabpilot.cdp.client import CDPClient, Transport, get_version, setup_logging
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.session import PROTOCOL_VERSION, DebuggerSession, SessionManager, SessionState
from tabpilot.cdp.dom import MARKER_ATTRIBUTE, NodeResolver, css_quote, marked_node_ids, marker_selector
from tabpilot.cdp.accessibility import AccessibilityProvider

__all__ = [
    "CDPClient",
    "Transport",
    "get_version",
    "setup_logging",
    "CommandDispatcher",
    "PROTOCOL_VERSION",
    "DebuggerSession",
    "SessionManager",
    "SessionState",
    "MARKER_ATTRIBUTE",
    "NodeResolver",
    "css_quote",
    "marker_selector",
    "marked_node_ids",
    "AccessibilityProvider",
]
