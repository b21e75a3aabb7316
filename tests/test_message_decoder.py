"""Tests for WhatsApp message text extraction."""

from conftest import text_message
from wagpt.events import WAMessage
from wagpt.utils.message_decoder import MessageDecoder


def _msg(payload):
    return WAMessage.model_validate(payload)


class TestExtractText:
    def test_plain_conversation(self):
        assert MessageDecoder.extract_text(_msg(text_message("Hello"))) == "Hello"

    def test_extended_text(self):
        msg = _msg(text_message(None, extended="replying to you"))
        assert MessageDecoder.extract_text(msg) == "replying to you"

    def test_plain_has_priority(self):
        msg = _msg(text_message("plain", extended="extended"))
        assert MessageDecoder.extract_text(msg) == "plain"

    def test_empty_plain_falls_through_to_extended(self):
        msg = _msg(text_message("", extended="extended"))
        assert MessageDecoder.extract_text(msg) == "extended"

    def test_media_has_no_text(self):
        msg = _msg(
            {
                "key": {"remoteJid": "123@s.whatsapp.net"},
                "message": {"reactionMessage": {"text": "👍"}},
            }
        )
        assert MessageDecoder.extract_text(msg) is None

    def test_missing_body(self):
        msg = _msg({"key": {"remoteJid": "123@s.whatsapp.net"}})
        assert MessageDecoder.extract_text(msg) is None

    def test_extended_without_text(self):
        msg = _msg(
            {
                "key": {"remoteJid": "123@s.whatsapp.net"},
                "message": {"extendedTextMessage": {}},
            }
        )
        assert MessageDecoder.extract_text(msg) is None


class TestToInbound:
    def test_fields(self):
        inbound = MessageDecoder.to_inbound(_msg(text_message("Hello", from_me=True)))

        assert inbound.sender_id == "123@s.whatsapp.net"
        assert inbound.is_from_self is True
        assert inbound.text == "Hello"
        assert inbound.message_id == "ABCD1234"
        assert inbound.push_name == "Alice"

    def test_from_me_defaults_false(self):
        inbound = MessageDecoder.to_inbound(
            _msg({"key": {"remoteJid": "g@g.us"}, "message": {"conversation": "x"}})
        )

        assert inbound.is_from_self is False

    def test_null_from_me_is_not_self(self):
        msg = text_message("Hello")
        msg["key"]["fromMe"] = None

        inbound = MessageDecoder.to_inbound(_msg(msg))

        assert inbound.is_from_self is False
