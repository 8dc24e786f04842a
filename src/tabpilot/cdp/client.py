"""
CDP Client - Chrome DevTools Protocol WebSocket transport.

One browser-level WebSocket carries every tab's traffic; per-tab commands
are routed with the flat-mode ``sessionId`` obtained from
``Target.attachToTarget``. The client delivers each command exactly once
and resolves the caller's future with that command's own response. It
never retries and imposes no timeout; callers wrap operations themselves.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import httpx
import websockets
from websockets.asyncio.client import connect

from tabpilot.core.errors import (
    TabPilotError,
    CDPConnectionError,
    ProtocolError,
)

logger = logging.getLogger("tabpilot")

EventListener = Callable[[str, Dict[str, Any], Optional[str]], None]


def setup_logging(level: int = logging.INFO, debug: bool = False):
    """Configure logging for tabpilot."""
    if debug:
        level = logging.DEBUG

    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)


async def get_version(host: str = "localhost", port: int = 9222) -> Dict[str, Any]:
    """Fetch the browser's ``/json/version`` description."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://{host}:{port}/json/version")
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as e:
        raise CDPConnectionError(
            f"Failed to connect to Chrome at {host}:{port}",
            method="get_version"
        ) from e


class Transport(Protocol):
    """What the rest of tabpilot needs from a connection to the host."""

    async def call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def add_listener(self, listener: EventListener) -> None:
        ...

    def remove_listener(self, listener: EventListener) -> None:
        ...


class CDPClient:
    """Chrome DevTools Protocol WebSocket client."""

    def __init__(self, ws_url: str, debug: bool = False):
        self.ws_url = ws_url
        self.message_id = 0
        self.pending_message: Dict[int, Tuple[asyncio.Future, str]] = {}
        self.ws = None
        self.debug = debug
        self._listeners: List[EventListener] = []
        self._listen_task: Optional[asyncio.Task] = None

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    @property
    def connected(self) -> bool:
        return self.ws is not None

    async def connect(self):
        """Connect to Chrome via WebSocket."""
        logger.info(f"Connecting to Chrome via WebSocket: {self.ws_url}")

        try:
            # Full accessibility trees routinely exceed the default frame limit
            self.ws = await connect(self.ws_url, max_size=None)
            logger.info("WebSocket connection established")
        except Exception as e:
            logger.error(f"Failed to establish WebSocket connection: {e}")
            raise CDPConnectionError(
                f"Failed to connect to Chrome WebSocket: {e}",
                method="connect"
            ) from e

        self._listen_task = asyncio.create_task(self.listen())

    def add_listener(self, listener: EventListener) -> None:
        """Register a callback for CDP events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a CDP command and wait for its response."""
        if not self.ws:
            raise CDPConnectionError(
                "WebSocket connection not established",
                session_id=session_id,
                method=method,
            )

        self.message_id += 1
        msg_id = self.message_id
        future = asyncio.get_running_loop().create_future()
        self.pending_message[msg_id] = (future, method)

        message: Dict[str, Any] = {"id": msg_id, "method": method, "params": params or {}}
        if session_id is not None:
            message["sessionId"] = session_id

        start_time = self._now()
        if self.debug:
            logger.debug(
                f"CDP command: {method}",
                extra={
                    "method": method,
                    "params": params,
                    "session_id": session_id,
                    "message_id": msg_id,
                }
            )

        try:
            await self.ws.send(json.dumps(message))
            result = await future
        except TabPilotError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"CDP command error: {method} - {e}",
                extra={
                    "method": method,
                    "session_id": session_id,
                    "message_id": msg_id,
                    "error_type": type(e).__name__,
                }
            )
            raise CDPConnectionError(
                f"CDP command {method} failed: {e}",
                session_id=session_id,
                method=method,
            ) from e
        finally:
            self.pending_message.pop(msg_id, None)

        if self.debug:
            duration = self._now() - start_time
            logger.debug(
                f"CDP response: {method} (duration={duration:.3f}s)",
                extra={
                    "method": method,
                    "session_id": session_id,
                    "message_id": msg_id,
                    "duration_ms": duration * 1000,
                }
            )
        return result

    def _handle_event(self, data: dict):
        """Fan a CDP event out to every listener."""
        method = data.get("method", "")
        params = data.get("params", {})
        session_id = data.get("sessionId")

        if self.debug:
            logger.debug(
                f"CDP event: {method}",
                extra={"method": method, "session_id": session_id}
            )

        for listener in list(self._listeners):
            try:
                listener(method, params, session_id)
            except Exception:
                logger.warning(
                    f"Event listener failed for {method}",
                    extra={"method": method, "session_id": session_id},
                    exc_info=True,
                )

    def _handle_response(self, data: dict):
        pending = self.pending_message.get(data["id"])
        if pending is None:
            return
        future, method = pending
        if future.done():
            return

        if "error" in data:
            error_data = data["error"]
            error_code = error_data.get("code")
            error_message = error_data.get("message", "Unknown CDP error")

            logger.debug(
                f"CDP protocol error: {error_message}",
                extra={
                    "method": method,
                    "error_code": error_code,
                    "session_id": data.get("sessionId"),
                    "message_id": data["id"],
                }
            )
            future.set_exception(ProtocolError(
                f"CDP Error: {error_message}",
                code=error_code,
                cdp_error=error_data,
                session_id=data.get("sessionId"),
                method=method,
            ))
        else:
            future.set_result(data.get("result", {}))

    def _fail_pending(self, error: TabPilotError):
        for future, _ in self.pending_message.values():
            if not future.done():
                future.set_exception(error)
        self.pending_message.clear()

    async def listen(self):
        """Listen for CDP responses and events."""
        try:
            while True:
                if not self.ws:
                    break
                raw = await self.ws.recv()
                data = json.loads(raw)

                if "id" in data:
                    self._handle_response(data)
                elif "method" in data:
                    self._handle_event(data)

        except websockets.exceptions.ConnectionClosed:
            if self.ws is not None:
                logger.error("WebSocket connection closed")
            self._fail_pending(CDPConnectionError(
                "WebSocket connection closed",
                method="listen"
            ))
        except Exception as e:
            logger.error(f"Error in listen loop: {e}", exc_info=True)
            self._fail_pending(CDPConnectionError(
                f"Unexpected error in listen loop: {e}",
                method="listen"
            ))

    async def close(self) -> None:
        """
        Close the WebSocket connection gracefully.
        """
        ws, self.ws = self.ws, None
        if ws:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
        if self._listen_task:
            try:
                await self._listen_task
            finally:
                self._listen_task = None
        self._fail_pending(CDPConnectionError("WebSocket connection closed", method="close"))
