import asyncio
import inspect
import json
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from wagpt.config import CONNECT_TIMEOUT_SECONDS, SYNC_FULL_HISTORY, logger
from wagpt.events import CONNECTION_UPDATE, CREDS_UPDATE, MESSAGES_UPSERT, DisconnectReason

KNOWN_EVENTS = (CONNECTION_UPDATE, CREDS_UPDATE, MESSAGES_UPSERT)

Handler = Callable[[Dict[str, Any]], Any]


class TransportError(RuntimeError):
    """Raised when a message cannot be handed to the gateway."""


class GatewayTransport:
    """
    One session with a WhatsApp gateway over a WebSocket.

    The gateway speaks the WhatsApp protocol; this side only sees its events
    (connection.update, creds.update, messages.upsert) as JSON frames and
    sends auth and send_message actions back.
    """

    def __init__(
        self,
        url: str,
        auth_state: Dict[str, Any],
        sync_full_history: bool = SYNC_FULL_HISTORY,
        open_timeout: float = CONNECT_TIMEOUT_SECONDS,
        connector: Callable[..., Any] = ws_connect,
    ):
        self.url = url
        self.auth_state = auth_state
        self.sync_full_history = sync_full_history
        self.open_timeout = open_timeout
        self.connector = connector

        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._close_reported = False
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closing

    def on(self, event: str, handler: Handler) -> None:
        """Register a handler for a gateway event."""
        self._handlers[event].append(handler)

    def _emit(self, event: str, data: Dict[str, Any]) -> None:
        if event == CONNECTION_UPDATE and data.get("connection") == "close":
            self._close_reported = True

        for handler in self._handlers.get(event, []):
            result = handler(data)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    def _emit_close(self, status: DisconnectReason, error: str) -> None:
        self._emit(
            CONNECTION_UPDATE,
            {
                "connection": "close",
                "lastDisconnect": {"error": error, "statusCode": int(status)},
            },
        )

    async def connect(self) -> None:
        """Open the socket, hand over the auth state and start reading events."""
        self._emit(CONNECTION_UPDATE, {"connection": "connecting"})

        try:
            self._ws = await self.connector(self.url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("Could not reach gateway at %s: %r", self.url, e)
            self._emit_close(DisconnectReason.CONNECTION_LOST, f"gateway unreachable: {e}")
            return

        try:
            await self._send_frame(
                {
                    "action": "auth",
                    "data": {
                        "creds": self.auth_state.get("creds"),
                        "keys": self.auth_state.get("keys", {}),
                        "options": {"syncFullHistory": self.sync_full_history},
                    },
                }
            )
        except TransportError as e:
            self._emit_close(DisconnectReason.CONNECTION_CLOSED, str(e))
            return

        self._reader = asyncio.ensure_future(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.info("Gateway socket closed: %s", e)

        if not self._closing and not self._close_reported:
            self._emit_close(DisconnectReason.CONNECTION_CLOSED, "gateway socket closed")

    def _handle_frame(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Received non-JSON frame from gateway, ignoring")
            return

        if not isinstance(frame, dict):
            logger.warning("Unexpected frame from gateway: %r", frame)
            return

        event = frame.get("event")
        if event not in KNOWN_EVENTS:
            logger.debug("Other gateway event: %r", event)
            return

        self._emit(event, frame.get("data") or {})

    async def _send_frame(self, frame: Dict[str, Any]) -> None:
        if self._ws is None or self._closing:
            raise TransportError("not connected to gateway")
        try:
            await self._ws.send(json.dumps(frame))
        except ConnectionClosed as e:
            raise TransportError(f"gateway connection closed: {e}") from e

    async def send_message(self, jid: str, text: str) -> None:
        """Send a text message to a chat."""
        await self._send_frame(
            {
                "action": "send_message",
                "data": {"jid": jid, "content": {"text": text}},
            }
        )

    async def close(self) -> None:
        """Close the socket without reporting a close event."""
        self._closing = True

        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, WebSocketException) as e:
                logger.debug("Error closing gateway socket: %r", e)
