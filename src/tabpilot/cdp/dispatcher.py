"""
Command Dispatcher - Sends typed CDP commands against an attached session.
"""
import logging
from typing import TYPE_CHECKING, Any, Optional

from tabpilot.cdp.client import Transport
from tabpilot.cdp.commands import Command
from tabpilot.core.errors import ProtocolError

if TYPE_CHECKING:
    from tabpilot.cdp.session import DebuggerSession

logger = logging.getLogger("tabpilot")


class CommandDispatcher:
    """
    Routes typed commands through a transport and parses their replies.

    ``send`` is the only way tab-level components talk to the host: it
    refuses to issue anything on a session that is not attached, so a
    detached handle can never leak commands onto a tab some other session
    now owns. Callers issuing a command that depends on another command's
    side effect must await the first before sending the second.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    async def send(self, session: "DebuggerSession", command: Command) -> Any:
        """Send ``command`` on ``session`` and return its typed result."""
        session.ensure_attached(command.method)
        return await self.dispatch(command, session_id=session.session_id, target_id=session.tab_id)

    async def send_browser(self, command: Command) -> Any:
        """Send a browser-level command (no tab session)."""
        return await self.dispatch(command)

    async def dispatch(
        self,
        command: Command,
        session_id: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> Any:
        """Low-level send without session state checks."""
        try:
            raw = await self.transport.call(
                command.method,
                command.params(),
                session_id=None if command.browser_level else session_id,
            )
        except ProtocolError as e:
            if e.target_id is None:
                e.target_id = target_id
            raise

        try:
            return command.parse(raw or {})
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                f"Unexpected response shape for {command.method}: {e}",
                extra={"method": command.method, "session_id": session_id}
            )
            raise ProtocolError(
                f"Unexpected response shape for {command.method}",
                session_id=session_id,
                target_id=target_id,
                method=command.method,
            ) from e
