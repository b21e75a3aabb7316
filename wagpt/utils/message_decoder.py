from typing import Optional

from wagpt.events import InboundMessage, WAMessage


class MessageDecoder:
    """Utilities for pulling text out of WhatsApp message payloads."""

    @staticmethod
    def extract_text(msg: WAMessage) -> Optional[str]:
        """
        Extract message text from a delivered message.

        Plain conversation text wins; messages with quoted/reply context carry
        their text in extendedTextMessage instead. Media, reactions and
        protocol messages have neither and yield None.
        """
        content = msg.message
        if content is None:
            return None

        if content.conversation:
            return content.conversation

        extended = content.extendedTextMessage
        if extended is not None and extended.text:
            return extended.text

        return None

    @staticmethod
    def to_inbound(msg: WAMessage) -> InboundMessage:
        """Build the transient inbound view of a delivered message."""
        return InboundMessage(
            sender_id=msg.key.remoteJid,
            is_from_self=bool(msg.key.fromMe),
            text=MessageDecoder.extract_text(msg),
            message_id=msg.key.id,
            push_name=msg.pushName,
        )
