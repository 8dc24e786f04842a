"""
CDP Session Management - Debugger session lifecycle per tab.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from tabpilot.cdp.commands import (
    AttachToTarget,
    DetachFromTarget,
    DomDisable,
    DomEnable,
    GetTargets,
)
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.core.errors import AttachError, ProtocolError, SessionError, TabPilotError

logger = logging.getLogger("tabpilot")

PROTOCOL_VERSION = "1.3"


class SessionState(Enum):
    DETACHED = "detached"
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DOM_ENABLED = "dom_enabled"
    DETACHING = "detaching"


@dataclass
class DebuggerSession:
    """An attached debugging connection to exactly one tab."""
    tab_id: str
    protocol_version: str = PROTOCOL_VERSION
    session_id: Optional[str] = None
    state: SessionState = SessionState.DETACHED
    # Set once DOM.getDocument has populated the live node table for the
    # current DOM enablement; cleared when the domain is disabled or the
    # document is replaced.
    document_requested: bool = False
    created_at: float = field(default_factory=time.time)
    resolution_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def attached(self) -> bool:
        return self.state in (SessionState.ATTACHED, SessionState.DOM_ENABLED)

    @property
    def dom_enabled(self) -> bool:
        return self.state == SessionState.DOM_ENABLED

    def ensure_attached(self, operation: str) -> None:
        if not self.attached:
            raise SessionError(
                f"Session for tab {self.tab_id} is {self.state.value}",
                session_id=self.session_id,
                target_id=self.tab_id,
                method=operation,
            )

    def ensure_dom_enabled(self, operation: str) -> None:
        self.ensure_attached(operation)
        if not self.dom_enabled:
            raise SessionError(
                f"DOM domain is not enabled for tab {self.tab_id}",
                session_id=self.session_id,
                target_id=self.tab_id,
                method=operation,
            )


class SessionManager:
    """
    Owns the attach/detach lifecycle of debugger sessions, one per tab.

    State machine per session::

        DETACHED -> ATTACHING -> ATTACHED <-> DOM_ENABLED
                                     \\            /
                                      -> DETACHING -> DETACHED

    ``detach`` is valid from any state and always ends in DETACHED, even
    when the host refuses the release.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        protocol_version: str = PROTOCOL_VERSION,
        host_protocol_version: Optional[str] = None,
    ):
        self.dispatcher = dispatcher
        self.protocol_version = protocol_version
        self.host_protocol_version = host_protocol_version
        self._sessions: Dict[str, DebuggerSession] = {}
        self._lock = asyncio.Lock()
        dispatcher.transport.add_listener(self.handle_event)

    def close(self) -> None:
        """Stop listening for host events. Tracked sessions are left as they are."""
        self.dispatcher.transport.remove_listener(self.handle_event)

    @property
    def sessions(self) -> List[DebuggerSession]:
        return list(self._sessions.values())

    def get(self, tab_id: str) -> Optional[DebuggerSession]:
        """Get the session currently owning ``tab_id``, if any."""
        return self._sessions.get(tab_id)

    def require(self, tab_id: str) -> DebuggerSession:
        session = self._sessions.get(tab_id)
        if session is None or not session.attached:
            raise SessionError(
                f"No attached session for tab {tab_id}",
                target_id=tab_id,
                method="require",
            )
        return session

    def _find_by_session_id(self, session_id: str) -> Optional[DebuggerSession]:
        for session in self._sessions.values():
            if session.session_id == session_id:
                return session
        return None

    def _release(self, session: DebuggerSession) -> None:
        session.state = SessionState.DETACHED
        session.document_requested = False
        if self._sessions.get(session.tab_id) is session:
            del self._sessions[session.tab_id]
            logger.debug(f"Released tab {session.tab_id}", extra={"target_id": session.tab_id})

    # =========================================================================
    # Attach / Detach
    # =========================================================================

    async def attach(self, tab_id: str) -> DebuggerSession:
        """Attach a debugger session to ``tab_id``."""
        if (
            self.host_protocol_version is not None
            and self.host_protocol_version != self.protocol_version
        ):
            raise AttachError(
                f"Host speaks protocol {self.host_protocol_version}, expected {self.protocol_version}",
                target_id=tab_id,
                method="attach",
            )

        async with self._lock:
            existing = self._sessions.get(tab_id)
            if existing is not None and existing.state != SessionState.DETACHED:
                raise AttachError(
                    f"Tab {tab_id} already has a {existing.state.value} session",
                    session_id=existing.session_id,
                    target_id=tab_id,
                    method="attach",
                )
            session = DebuggerSession(
                tab_id=tab_id,
                protocol_version=self.protocol_version,
                state=SessionState.ATTACHING,
            )
            self._sessions[tab_id] = session

        try:
            targets = await self.dispatcher.send_browser(GetTargets())
            if not any(t.target_id == tab_id and t.type == "page" for t in targets):
                raise AttachError(
                    f"Tab {tab_id} is not a page target",
                    target_id=tab_id,
                    method="attach",
                )
            request = asyncio.ensure_future(self.dispatcher.send_browser(AttachToTarget(target_id=tab_id)))
            try:
                session_id = await asyncio.shield(request)
            except asyncio.CancelledError:
                # The host may still complete the attach; release what it hands back
                await asyncio.shield(self._discard_attach(session, request))
                raise
        except ProtocolError as e:
            self._release(session)
            raise AttachError(
                f"Host refused to attach to tab {tab_id}: {e.message}",
                target_id=tab_id,
                method="attach",
            ) from e
        except BaseException:
            self._release(session)
            raise

        session.session_id = session_id
        if session.state != SessionState.ATTACHING:
            # Detached (or the tab went away) while the host was attaching
            await self._best_effort(session, DetachFromTarget(session_id=session_id))
            raise AttachError(
                f"Attach to tab {tab_id} was abandoned before the host answered",
                session_id=session_id,
                target_id=tab_id,
                method="attach",
            )

        session.state = SessionState.ATTACHED
        logger.info(
            f"Attached to tab, session_id={session_id}",
            extra={"session_id": session_id, "target_id": tab_id}
        )
        return session

    async def detach(self, session: DebuggerSession) -> None:
        """
        Detach ``session``, disabling the DOM domain first if needed.

        Host failures are logged and swallowed; the session always ends
        DETACHED and its tab is free for a new attach.
        """
        if session.state == SessionState.DETACHED:
            self._release(session)
            return

        was_dom_enabled = session.dom_enabled
        session.state = SessionState.DETACHING
        try:
            if session.session_id is not None:
                if was_dom_enabled:
                    await self._best_effort(session, DomDisable())
                await self._best_effort(session, DetachFromTarget(session_id=session.session_id))
        finally:
            self._release(session)
            logger.info(
                "Detached from tab",
                extra={"session_id": session.session_id, "target_id": session.tab_id}
            )

    async def detach_tab(self, tab_id: str) -> None:
        session = self._sessions.get(tab_id)
        if session is not None:
            await self.detach(session)

    async def detach_all(self) -> None:
        for session in list(self._sessions.values()):
            await self.detach(session)

    async def _best_effort(self, session: DebuggerSession, command) -> None:
        try:
            await self.dispatcher.dispatch(
                command, session_id=session.session_id, target_id=session.tab_id
            )
        except TabPilotError as e:
            logger.warning(
                f"{command.method} failed during detach: {e}",
                extra={
                    "session_id": session.session_id,
                    "target_id": session.tab_id,
                    "error_type": type(e).__name__,
                }
            )

    async def _discard_attach(self, session: DebuggerSession, request: "asyncio.Future[str]") -> None:
        try:
            session.session_id = await request
        except TabPilotError as e:
            logger.debug(
                f"Abandoned attach to tab {session.tab_id} failed: {e}",
                extra={"target_id": session.tab_id}
            )
            return
        await self._best_effort(session, DetachFromTarget(session_id=session.session_id))

    @asynccontextmanager
    async def session(self, tab_id: str, *, enable_dom: bool = True) -> AsyncIterator[DebuggerSession]:
        """Attach for the duration of a block, detaching on every exit path."""
        session = await self.attach(tab_id)
        try:
            if enable_dom:
                await self.enable_dom(session)
            yield session
        finally:
            # Runs to completion even when the caller is cancelled
            await asyncio.shield(self.detach(session))

    # =========================================================================
    # DOM domain
    # =========================================================================

    async def enable_dom(self, session: DebuggerSession) -> None:
        """Enable the DOM domain. Enabling twice is a no-op."""
        session.ensure_attached("enable_dom")
        if session.dom_enabled:
            return
        await self.dispatcher.send(session, DomEnable())
        session.state = SessionState.DOM_ENABLED
        logger.debug(
            "Enabled domain: DOM",
            extra={"session_id": session.session_id, "domain": "DOM"}
        )

    async def disable_dom(self, session: DebuggerSession) -> None:
        """Disable the DOM domain. Disabling twice is a no-op."""
        session.ensure_attached("disable_dom")
        if not session.dom_enabled:
            return
        await self.dispatcher.send(session, DomDisable())
        session.state = SessionState.ATTACHED
        session.document_requested = False
        logger.debug(
            "Disabled domain: DOM",
            extra={"session_id": session.session_id, "domain": "DOM"}
        )

    # =========================================================================
    # Host events
    # =========================================================================

    def handle_event(self, method: str, params: Dict[str, Any], session_id: Optional[str]) -> None:
        if method == "Target.detachedFromTarget":
            detached_id = params.get("sessionId")
            session = self._find_by_session_id(detached_id) if detached_id else None
            if session is not None and session.state != SessionState.DETACHING:
                logger.info(
                    "Host detached session",
                    extra={"session_id": detached_id, "target_id": session.tab_id}
                )
                self._release(session)

        elif method == "Target.targetDestroyed":
            target_id = params.get("targetId")
            session = self._sessions.get(target_id) if target_id else None
            if session is not None and session.state != SessionState.DETACHING:
                logger.info(
                    "Target destroyed",
                    extra={"target_id": target_id, "session_id": session.session_id}
                )
                self._release(session)

        elif method == "DOM.documentUpdated":
            session = self._find_by_session_id(session_id) if session_id else None
            if session is not None:
                # Live node ids issued so far are void; the next resolution re-requests the document
                session.document_requested = False
