"""
DOM Node Identity - Turns ephemeral backend node ids into durable CSS selectors.

CDP only hands out live ``nodeId``s for nodes it has pushed to the client,
and it only pushes nodes once the document has been requested in the
current DOM enablement. Resolution therefore runs a fixed pipeline:

    DOM.resolveNode      backendNodeId -> objectId
    DOM.getDocument      populate the live node table (once per enablement)
                         and strip markers left by earlier sessions
    DOM.requestNode      objectId -> nodeId (crosses shadow roots and frames)
    DOM.setAttributeValue  tag the node with a marker attribute

and returns an attribute selector for the marker. Each step depends on the
previous one's side effect, so the steps are awaited strictly in order and
never interleaved with another resolution on the same session.
"""
import logging
from typing import Any, Dict, Iterable, List

from tabpilot.cdp.commands import (
    GetDocument,
    RemoveAttribute,
    RequestNode,
    ResolveNode,
    SetAttributeValue,
)
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.session import DebuggerSession
from tabpilot.core.errors import ProtocolError, StaleNodeError

logger = logging.getLogger("tabpilot")

MARKER_ATTRIBUTE = "data-tabpilot-id"

# Default depth for DOM.getDocument; -1 is the whole tree
DEFAULT_DOCUMENT_DEPTH = -1


def css_quote(value: str) -> str:
    """Quote ``value`` as a CSS string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\a ")
        .replace("\r", "\\d ")
    )
    return f'"{escaped}"'


def marker_selector(attribute: str, value: str) -> str:
    """Build the attribute selector that re-locates a marked node."""
    return f"[{attribute}={css_quote(value)}]"


def marked_node_ids(root: Dict[str, Any], attribute: str) -> List[int]:
    """
    Live ids of every node in a ``DOM.getDocument`` tree carrying ``attribute``.

    Follows children, shadow roots, pseudo elements, template contents and
    frame documents, i.e. everything a piercing document request returns.
    """
    found: List[int] = []
    stack = [root]
    while stack:
        node = stack.pop()
        # Attributes arrive flattened as [name, value, name, value, ...]
        if attribute in (node.get("attributes") or [])[::2]:
            found.append(node["nodeId"])
        stack.extend(node.get("children") or [])
        stack.extend(node.get("shadowRoots") or [])
        stack.extend(node.get("pseudoElements") or [])
        for key in ("templateContent", "contentDocument"):
            if node.get(key):
                stack.append(node[key])
    return found


class NodeResolver:
    """
    Resolves backend node ids to selectors on a DOM-enabled session.

    Nothing is cached across calls: every resolution re-derives the live
    node id and re-writes its marker, since the page may have mutated in
    between.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        *,
        marker_attribute: str = MARKER_ATTRIBUTE,
        document_depth: int = DEFAULT_DOCUMENT_DEPTH,
        pierce: bool = True,
    ):
        self.dispatcher = dispatcher
        self.marker_attribute = marker_attribute
        self.document_depth = document_depth
        self.pierce = pierce

    async def resolve(self, session: DebuggerSession, backend_node_id: int) -> str:
        """
        Resolve ``backend_node_id`` to a CSS selector.

        Raises:
            SessionError: the session is not attached with DOM enabled.
            StaleNodeError: the node (or its object handle) is gone.
            ProtocolError: the host rejected the document request.
        """
        session.ensure_dom_enabled("resolve")

        async with session.resolution_lock:
            session.ensure_dom_enabled("resolve")

            object_id = await self._resolve_object(session, backend_node_id)
            await self._ensure_document(session)
            node_id = await self._request_live_node(session, backend_node_id, object_id)

            marker = str(node_id)
            await self._write_marker(session, backend_node_id, node_id, marker)

        selector = marker_selector(self.marker_attribute, marker)
        logger.debug(
            f"Resolved backend node {backend_node_id} to {selector}",
            extra={"session_id": session.session_id, "backend_node_id": backend_node_id}
        )
        return selector

    async def resolve_many(
        self,
        session: DebuggerSession,
        backend_node_ids: Iterable[int],
        *,
        skip_stale: bool = False,
    ) -> Dict[int, str]:
        """
        Resolve several backend ids in turn.

        With ``skip_stale`` set, ids that have gone stale are logged and left
        out of the mapping instead of aborting the batch.
        """
        selectors: Dict[int, str] = {}
        for backend_node_id in backend_node_ids:
            try:
                selectors[backend_node_id] = await self.resolve(session, backend_node_id)
            except StaleNodeError as e:
                if not skip_stale:
                    raise
                logger.info(
                    f"Skipping stale backend node {backend_node_id}: {e.message}",
                    extra={"session_id": session.session_id, "backend_node_id": backend_node_id}
                )
        return selectors

    async def _resolve_object(self, session: DebuggerSession, backend_node_id: int) -> str:
        try:
            remote = await self.dispatcher.send(session, ResolveNode(backend_node_id=backend_node_id))
        except ProtocolError as e:
            raise self._stale(session, backend_node_id, f"could not resolve node: {e.message}") from e
        if not remote.object_id:
            raise self._stale(session, backend_node_id, "host returned no object handle")
        return remote.object_id

    async def _ensure_document(self, session: DebuggerSession) -> None:
        if session.document_requested:
            return
        root = await self.dispatcher.send(session, GetDocument(depth=self.document_depth, pierce=self.pierce))

        # Live ids restart with every DOM agent, so a marker written by an
        # earlier session (or enablement) can collide with one issued now.
        stale = marked_node_ids(root, self.marker_attribute)
        for node_id in stale:
            await self._clear_marker(session, node_id)
        if stale:
            logger.debug(
                f"Cleared {len(stale)} leftover {self.marker_attribute} markers",
                extra={"session_id": session.session_id, "target_id": session.tab_id}
            )
        session.document_requested = True

    async def _clear_marker(self, session: DebuggerSession, node_id: int) -> None:
        try:
            await self.dispatcher.send(session, RemoveAttribute(node_id=node_id, name=self.marker_attribute))
        except ProtocolError as e:
            # A node removed since the snapshot took its marker with it
            logger.debug(
                f"Could not clear marker on node {node_id}: {e.message}",
                extra={"session_id": session.session_id, "target_id": session.tab_id}
            )

    async def _request_live_node(self, session: DebuggerSession, backend_node_id: int, object_id: str) -> int:
        try:
            node_id = await self.dispatcher.send(session, RequestNode(object_id=object_id))
        except ProtocolError as e:
            raise self._stale(session, backend_node_id, f"could not request live node: {e.message}") from e
        if node_id == 0:
            raise self._stale(session, backend_node_id, "node is no longer in the document")
        return node_id

    async def _write_marker(self, session: DebuggerSession, backend_node_id: int, node_id: int, marker: str) -> None:
        try:
            await self.dispatcher.send(
                session,
                SetAttributeValue(node_id=node_id, name=self.marker_attribute, value=marker),
            )
        except ProtocolError as e:
            raise self._stale(session, backend_node_id, f"could not tag node {node_id}: {e.message}") from e

    @staticmethod
    def _stale(session: DebuggerSession, backend_node_id: int, reason: str) -> StaleNodeError:
        return StaleNodeError(
            f"Backend node {backend_node_id} is stale: {reason}",
            backend_node_id=backend_node_id,
            session_id=session.session_id,
            target_id=session.tab_id,
            method="resolve",
        )
