import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from wagpt.auth.credential_store import AuthState, MultiFileCredentialStore
from wagpt.config import BATCH_POLICIES, BATCH_POLICY, RECONNECT_DELAY_SECONDS, logger
from wagpt.events import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MESSAGES_UPSERT,
    ConnectionUpdate,
    ControllerState,
    CredentialsUpdate,
    DisconnectReason,
    MessagesUpsert,
    OutboundReply,
    WAMessage,
)
from wagpt.services.gateway_transport import TransportError
from wagpt.services.openai_client import OpenAIClient
from wagpt.ui.qr_renderer import QRRenderer
from wagpt.utils.message_decoder import MessageDecoder

TransportFactory = Callable[[AuthState], Any]


class RelayController:
    """Relays incoming WhatsApp text messages to OpenAI and sends back the reply."""

    def __init__(
        self,
        credential_store: MultiFileCredentialStore,
        ai_client: OpenAIClient,
        transport_factory: TransportFactory,
        qr_renderer: Optional[QRRenderer] = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        batch_policy: str = BATCH_POLICY,
    ):
        if batch_policy not in BATCH_POLICIES:
            raise ValueError(f"unknown batch policy {batch_policy!r}")

        self.credential_store = credential_store
        self.ai_client = ai_client
        self.transport_factory = transport_factory
        self.qr_renderer = qr_renderer or QRRenderer()
        self.reconnect_delay = reconnect_delay
        self.batch_policy = batch_policy

        # The only reference to the live session; replaced on every start().
        self.session: Any = None
        self.state = ControllerState.INIT
        self.reconnect_attempts = 0

        self._reconnect_task: Optional[asyncio.Task] = None
        self._terminated = asyncio.Event()

    @property
    def terminated(self) -> bool:
        return self.state is ControllerState.TERMINATED

    async def run(self) -> None:
        """Start the bot and wait until the session is logged out."""
        try:
            await self.start()
        except Exception as e:
            logger.exception("Start failed: %r", e)
            self.schedule_reconnect()
        await self._terminated.wait()

    async def start(self) -> None:
        """Load credentials, open a new transport session and register handlers."""
        logger.info("Starting WhatsApp bot...")

        auth_state = self.credential_store.load()
        session = self.transport_factory(auth_state)

        session.on(CREDS_UPDATE, self._bind(session, self._on_creds_frame))
        session.on(CONNECTION_UPDATE, self._bind(session, self._on_connection_frame))
        session.on(MESSAGES_UPSERT, self._bind(session, self._on_upsert_frame))

        previous, self.session = self.session, session
        self.state = ControllerState.CONNECTING

        if previous is not None:
            await previous.close()

        await session.connect()

    def _bind(
        self, session: Any, handler: Callable[[Dict[str, Any]], Awaitable[None]]
    ) -> Callable[[Dict[str, Any]], Awaitable[None]]:
        """Wrap a handler so stale sessions are ignored and errors never escape."""

        async def dispatch(data: Dict[str, Any]) -> None:
            if session is not self.session:
                logger.debug("Ignoring event from a replaced session")
                return
            try:
                await handler(data)
            except Exception as e:
                logger.exception("Handler error: %r", e)

        return dispatch

    async def _on_creds_frame(self, data: Dict[str, Any]) -> None:
        await self.on_credentials_update(CredentialsUpdate.model_validate(data))

    async def _on_connection_frame(self, data: Dict[str, Any]) -> None:
        await self.on_connection_update(ConnectionUpdate.model_validate(data))

    async def _on_upsert_frame(self, data: Dict[str, Any]) -> None:
        await self.on_message_batch(MessagesUpsert.model_validate(data))

    async def on_credentials_update(self, update: CredentialsUpdate) -> None:
        """Persist rotated auth material. A failed save waits for the next update."""
        try:
            self.credential_store.save(update)
        except Exception as e:
            logger.error("Failed to save credentials: %r", e)

    async def on_connection_update(self, update: ConnectionUpdate) -> None:
        """React to pairing codes, opens and closes reported by the transport."""
        if self.terminated:
            return

        logger.info("Connection update: %s", update.model_dump(exclude_none=True))

        if update.qr:
            logger.info("QR code received! Scan it with WhatsApp.")
            self.qr_renderer.render(update.qr)

        if update.connection == "close":
            logger.warning("Connection closed: %s", update.reason)
            if update.status_code == DisconnectReason.LOGGED_OUT:
                self.state = ControllerState.TERMINATED
                logger.error("Logged out. Please delete the auth folder and restart.")
                if self._reconnect_task is not None:
                    self._reconnect_task.cancel()
                    self._reconnect_task = None
                self._terminated.set()
            else:
                self.schedule_reconnect()
        elif update.connection == "open":
            self.state = ControllerState.OPEN
            self.reconnect_attempts = 0
            logger.info("Bot is connected to WhatsApp!")
        elif update.connection == "connecting":
            self.state = ControllerState.CONNECTING

    def schedule_reconnect(self) -> None:
        """Schedule one reconnect after the configured delay."""
        if self.terminated:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            logger.debug("Reconnect already pending")
            return

        self.state = ControllerState.CONNECTING
        self.reconnect_attempts += 1
        if self.reconnect_delay > 0:
            logger.info("Reconnecting in %g seconds...", self.reconnect_delay)
        else:
            logger.info("Reconnecting...")
        self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        if self.reconnect_delay > 0:
            await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None

        if self.terminated:
            return

        try:
            await self.start()
        except Exception as e:
            logger.exception("Reconnect failed: %r", e)
            self.schedule_reconnect()

    def select_messages(self, batch: MessagesUpsert) -> List[Any]:
        """Pick which delivered messages get a reply."""
        if not batch.messages:
            return []
        if self.batch_policy == "all":
            return list(batch.messages)
        if self.batch_policy == "last":
            return [batch.messages[-1]]
        return [batch.messages[0]]

    async def on_message_batch(self, batch: MessagesUpsert) -> None:
        for msg in self.select_messages(batch):
            await self.handle_message(msg)

    async def handle_message(self, msg: Union[WAMessage, Dict[str, Any]]) -> bool:
        """
        Reply to one delivered message.

        Raw gateway entries are validated here, so a malformed message is
        skipped without affecting the rest of its batch.

        Returns True when a reply was handed to the transport.
        """
        if not isinstance(msg, WAMessage):
            try:
                msg = WAMessage.model_validate(msg)
            except ValidationError as e:
                logger.warning("Skipping malformed message: %s", e)
                return False

        inbound = MessageDecoder.to_inbound(msg)

        # Never answer our own messages
        if inbound.is_from_self:
            return False

        if not inbound.text:
            logger.info("No valid text message found.")
            return False

        logger.info("Message from %s: %s", inbound.sender_id, inbound.text)

        completion = await self.ai_client.complete(inbound.text)
        if not completion.ok:
            logger.warning("Replying with fallback (%s)", completion.error)

        reply = OutboundReply(recipient_id=inbound.sender_id, text=completion.text)

        try:
            # Re-read the cell: a reconnect may have replaced the session meanwhile
            session = self.session
            if session is None:
                raise TransportError("no active session")
            await session.send_message(reply.recipient_id, reply.text)
        except Exception as e:
            logger.error("Error sending message: %r", e)
            return False

        logger.info("Sent response to %s: %s", reply.recipient_id, reply.text)
        return True
