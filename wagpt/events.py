from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Event names emitted by the transport (same names the gateway forwards)
CREDS_UPDATE = "creds.update"
CONNECTION_UPDATE = "connection.update"
MESSAGES_UPSERT = "messages.upsert"


class DisconnectReason(IntEnum):
    """Status codes reported with a closed WhatsApp connection."""

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


class ControllerState(str, Enum):
    INIT = "init"
    CONNECTING = "connecting"
    OPEN = "open"
    TERMINATED = "terminated"


class LastDisconnect(BaseModel):
    error: Optional[str] = None
    statusCode: Optional[int] = None


class ConnectionUpdate(BaseModel):
    connection: Optional[str] = None  # "connecting" | "open" | "close"
    lastDisconnect: Optional[LastDisconnect] = None
    qr: Optional[str] = None

    @property
    def status_code(self) -> Optional[int]:
        if self.lastDisconnect is None:
            return None
        return self.lastDisconnect.statusCode

    @property
    def reason(self) -> str:
        if self.lastDisconnect is None:
            return "unknown"
        return self.lastDisconnect.error or f"status {self.status_code}"


class CredentialsUpdate(BaseModel):
    creds: Dict[str, Any] = Field(default_factory=dict)
    keys: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class MessageKey(BaseModel):
    remoteJid: str
    fromMe: Optional[bool] = None
    id: Optional[str] = None


class ExtendedTextMessage(BaseModel):
    text: Optional[str] = None


class MessageContent(BaseModel):
    conversation: Optional[str] = None
    extendedTextMessage: Optional[ExtendedTextMessage] = None


class WAMessage(BaseModel):
    key: MessageKey
    message: Optional[MessageContent] = None
    pushName: Optional[str] = None


class MessagesUpsert(BaseModel):
    # Entries stay raw; only the ones picked for a reply get validated
    messages: List[Any] = Field(default_factory=list)
    type: str = "notify"


class InboundMessage(BaseModel):
    sender_id: str
    is_from_self: bool = False
    text: Optional[str] = None
    message_id: Optional[str] = None
    push_name: Optional[str] = None


class OutboundReply(BaseModel):
    recipient_id: str
    text: str
