"""
Accessibility Snapshot - Retrieves the full accessibility tree for a tab.
"""
import logging

from tabpilot.cdp.commands import GetFullAXTree
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.session import DebuggerSession
from tabpilot.core.models import AXTree

logger = logging.getLogger("tabpilot")


class AccessibilityProvider:
    """Read-only access to a tab's accessibility tree."""

    def __init__(self, dispatcher: CommandDispatcher):
        self.dispatcher = dispatcher

    async def get_tree(self, session: DebuggerSession) -> AXTree:
        """
        Fetch the full accessibility tree.

        Needs an attached session but not the DOM domain, and does not touch
        page state, so it may be interleaved freely with node resolution.
        """
        session.ensure_attached("get_tree")
        tree = await self.dispatcher.send(session, GetFullAXTree())
        logger.debug(
            f"Fetched accessibility tree with {len(tree)} nodes",
            extra={"session_id": session.session_id, "target_id": session.tab_id}
        )
        return tree
