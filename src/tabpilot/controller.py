"""
Controller - High-level async interface for driving tabs over CDP.

This module provides the main user-facing API. It wraps the transport,
session manager, node resolver, interaction layer and accessibility
provider behind a per-tab interface.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from tabpilot.cdp.accessibility import AccessibilityProvider
from tabpilot.cdp.client import CDPClient, Transport, get_version
from tabpilot.cdp.commands import GetTargets, TargetInfo
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.dom import DEFAULT_DOCUMENT_DEPTH, MARKER_ATTRIBUTE, NodeResolver
from tabpilot.cdp.session import PROTOCOL_VERSION, DebuggerSession, SessionManager
from tabpilot.core.errors import CDPConnectionError, TabPilotError
from tabpilot.core.models import AXTree
from tabpilot.interaction import PageInteractor

logger = logging.getLogger("tabpilot")


@dataclass
class ControllerConfig:
    """Configuration options for the TabController."""

    host: str = "localhost"
    port: int = 9222
    protocol_version: str = PROTOCOL_VERSION
    check_protocol_version: bool = True
    marker_attribute: str = MARKER_ATTRIBUTE
    document_depth: int = DEFAULT_DOCUMENT_DEPTH
    pierce: bool = True
    debug: bool = False


class TabController:
    """
    Per-tab automation interface.

    Usage:
        async with TabController() as controller:
            await controller.attach(tab_id)
            tree = await controller.get_accessibility_tree(tab_id)
            button = tree.find(role="button", name="Submit")[0]
            selector = await controller.resolve_selector(tab_id, button.backend_node_id)
            await controller.click(tab_id, selector)
            await controller.detach(tab_id)

    Every operation fails with a ``TabPilotError`` subclass rather than
    reporting partial success. Operations on a tab with no attached session
    raise ``SessionError``.
    """

    def __init__(self, config: Optional[ControllerConfig] = None, *, transport: Optional[Transport] = None):
        """
        Initialize the controller.

        Args:
            config: Controller configuration. Uses defaults if not provided.
            transport: Pre-built transport (e.g. a simulated host). When
                omitted, ``start()`` connects to Chrome at ``config.host``.
        """
        self.config = config or ControllerConfig()
        self._transport: Optional[Transport] = transport
        self._client: Optional[CDPClient] = None
        self.sessions: Optional[SessionManager] = None
        self._dispatcher: Optional[CommandDispatcher] = None
        self._resolver: Optional[NodeResolver] = None
        self._interactor: Optional[PageInteractor] = None
        self._accessibility: Optional[AccessibilityProvider] = None

    async def __aenter__(self) -> TabController:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Connect to the host and wire up the components."""
        host_protocol_version = None
        transport = self._transport
        if transport is None:
            version = await get_version(self.config.host, self.config.port)
            ws_url = version.get("webSocketDebuggerUrl")
            if not ws_url:
                raise CDPConnectionError(
                    f"Chrome at {self.config.host}:{self.config.port} did not report a webSocketDebuggerUrl",
                    method="TabController.start"
                )
            if self.config.check_protocol_version:
                host_protocol_version = version.get("Protocol-Version")
            self._client = CDPClient(ws_url, debug=self.config.debug)
            await self._client.connect()
            transport = self._client

        self._dispatcher = CommandDispatcher(transport)
        self.sessions = SessionManager(
            self._dispatcher,
            protocol_version=self.config.protocol_version,
            host_protocol_version=host_protocol_version,
        )
        self._resolver = NodeResolver(
            self._dispatcher,
            marker_attribute=self.config.marker_attribute,
            document_depth=self.config.document_depth,
            pierce=self.config.pierce,
        )
        self._interactor = PageInteractor(self._dispatcher)
        self._accessibility = AccessibilityProvider(self._dispatcher)
        logger.info("Controller started")

    async def stop(self) -> None:
        """Detach every session (best-effort) and close the connection."""
        try:
            if self.sessions is not None:
                await self.sessions.detach_all()
                self.sessions.close()
            if self._client is not None:
                await self._client.close()
                self._client = None
        finally:
            self.sessions = None
            self._dispatcher = None
            self._resolver = None
            self._interactor = None
            self._accessibility = None
        logger.info("Controller stopped")

    def _ensure_started(self) -> SessionManager:
        if self.sessions is None:
            raise TabPilotError(
                "Controller not started. Call start() or use async context manager.",
                method="_ensure_started"
            )
        return self.sessions

    # =========================================================================
    # Sessions
    # =========================================================================

    async def list_tabs(self) -> List[TargetInfo]:
        """List the page targets the host knows about."""
        self._ensure_started()
        targets = await self._dispatcher.send_browser(GetTargets())
        return [target for target in targets if target.type == "page"]

    async def attach(self, tab_id: str) -> DebuggerSession:
        return await self._ensure_started().attach(tab_id)

    async def detach(self, tab_id: str) -> None:
        await self._ensure_started().detach_tab(tab_id)

    async def enable_dom(self, tab_id: str) -> None:
        sessions = self._ensure_started()
        await sessions.enable_dom(sessions.require(tab_id))

    async def disable_dom(self, tab_id: str) -> None:
        sessions = self._ensure_started()
        await sessions.disable_dom(sessions.require(tab_id))

    @asynccontextmanager
    async def session(self, tab_id: str, *, enable_dom: bool = True) -> AsyncIterator[DebuggerSession]:
        """Attach to ``tab_id`` for the duration of a block."""
        async with self._ensure_started().session(tab_id, enable_dom=enable_dom) as session:
            yield session

    # =========================================================================
    # Operations
    # =========================================================================

    async def get_accessibility_tree(self, tab_id: str) -> AXTree:
        session = self._ensure_started().require(tab_id)
        return await self._accessibility.get_tree(session)

    async def resolve_selector(self, tab_id: str, backend_node_id: int) -> str:
        """Resolve a backend node id to a CSS selector, enabling DOM if needed."""
        sessions = self._ensure_started()
        session = sessions.require(tab_id)
        if not session.dom_enabled:
            await sessions.enable_dom(session)
        return await self._resolver.resolve(session, backend_node_id)

    async def click(self, tab_id: str, selector: str) -> None:
        session = self._ensure_started().require(tab_id)
        await self._interactor.click(session, selector)

    async def fill(self, tab_id: str, selector: str, text: str) -> None:
        session = self._ensure_started().require(tab_id)
        await self._interactor.fill(session, selector, text)

    async def evaluate(self, tab_id: str, script: str) -> None:
        session = self._ensure_started().require(tab_id)
        await self._interactor.evaluate(session, script)

    @property
    def resolver(self) -> Optional[NodeResolver]:
        return self._resolver
