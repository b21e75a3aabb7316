"""Pytest configuration and shared fixtures."""

from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock

import pytest

from wagpt.bot.relay_controller import RelayController
from wagpt.services.openai_client import Completion


class FakeTransport:
    """In-memory stand-in for GatewayTransport."""

    def __init__(self, auth_state):
        self.auth_state = auth_state
        self.handlers = defaultdict(list)
        self.sent = []
        self.connect_calls = 0
        self.closed = False
        self.send_error = None

    def on(self, event, handler):
        self.handlers[event].append(handler)

    async def connect(self):
        self.connect_calls += 1

    async def send_message(self, jid, text):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((jid, text))

    async def close(self):
        self.closed = True

    async def emit(self, event, data):
        for handler in self.handlers[event]:
            await handler(data)


def text_message(text, jid="123@s.whatsapp.net", from_me=False, extended=None):
    """Build a messages.upsert entry the way the gateway delivers it."""
    content = {}
    if text is not None:
        content["conversation"] = text
    if extended is not None:
        content["extendedTextMessage"] = {"text": extended}
    return {
        "key": {"remoteJid": jid, "fromMe": from_me, "id": "ABCD1234"},
        "message": content,
        "pushName": "Alice",
    }


@pytest.fixture
def transports():
    return []


@pytest.fixture
def transport_factory(transports):
    def factory(auth_state):
        transport = FakeTransport(auth_state)
        transports.append(transport)
        return transport

    return factory


@pytest.fixture
def credential_store():
    store = MagicMock()
    store.load.return_value = {"creds": None, "keys": {}}
    return store


@pytest.fixture
def ai_client():
    client = MagicMock()
    client.complete = AsyncMock(return_value=Completion("Hi there!"))
    return client


@pytest.fixture
def qr_renderer():
    return MagicMock()


@pytest.fixture
def controller(credential_store, ai_client, transport_factory, qr_renderer):
    return RelayController(
        credential_store,
        ai_client,
        transport_factory,
        qr_renderer=qr_renderer,
        reconnect_delay=0,
    )
