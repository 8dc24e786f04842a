"""
TabPilot Error Taxonomy - Custom exception classes for tab debugging sessions.

Every failure a controller can observe is one of these classes, so callers
can tell "the session is gone" apart from "the node went stale" apart from
"the selector no longer matches" and decide for themselves whether to
re-attach, re-snapshot or give up. Nothing in this package retries.
"""
from typing import Optional


class TabPilotError(Exception):
    """Base exception for all tabpilot errors."""

    def __init__(self, message: str, session_id: Optional[str] = None,
                 target_id: Optional[str] = None, method: Optional[str] = None,
                 **context):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.target_id = target_id
        self.method = method
        self.context = context

    def __str__(self):
        parts = [self.message]
        if self.session_id:
            parts.append(f"session_id={self.session_id}")
        if self.target_id:
            parts.append(f"target_id={self.target_id}")
        if self.method:
            parts.append(f"method={self.method}")
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"context=({context_str})")
        return " | ".join(parts)


class CDPConnectionError(TabPilotError):
    """Raised when connection to Chrome/CDP fails or is lost."""
    pass


class SessionError(TabPilotError):
    """Raised when there is no usable session, or a required domain is not enabled."""
    pass


class AttachError(TabPilotError):
    """Raised when a debugger session cannot be attached to a tab."""
    pass


class ProtocolError(TabPilotError):
    """Raised when CDP returns an error response."""

    def __init__(self, message: str, code: Optional[int] = None,
                 cdp_error: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.cdp_error = cdp_error


class ScriptError(ProtocolError):
    """Raised when page-context script execution throws."""

    def __init__(self, message: str, exception_details: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.exception_details = exception_details


class StaleNodeError(TabPilotError):
    """Raised when a backend node can no longer be resolved to a live node."""

    def __init__(self, message: str, backend_node_id: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.backend_node_id = backend_node_id


class ElementNotFoundError(TabPilotError):
    """Raised when an interaction selector matches no element at execution time."""

    def __init__(self, message: str, selector: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.selector = selector
