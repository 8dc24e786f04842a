"""
Core module - Data models and errors.
"""
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

__all__ = [
    "AXNode",
    "AXTree",
    "TabPilotError",
    "AttachError",
    "CDPConnectionError",
    "ElementNotFoundError",
    "ProtocolError",
    "ScriptError",
    "SessionError",
    "StaleNodeError",
]
