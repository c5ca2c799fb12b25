"""
Unit tests for the .msg container unpacker.

extract_msg is mocked: building real Outlook OLE files in tests is not
practical, so the tests describe the message objects it returns.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import pytest

from app.services.msg_unpacker import (
    ContainerParseError,
    UnpackedMessage,
    format_message_text,
    unpack,
)


def _attachment(name=None, data=b"", short_name=None):
    return SimpleNamespace(longFilename=name, shortFilename=short_name, displayName=None, data=data)


def _message(**overrides):
    fields = dict(
        sender="Landlord Larry <larry@example.com>",
        recipients=[SimpleNamespace(name="CPA Office", email="cpa@example.com")],
        to="cpa@example.com",
        subject="2024 rental docs",
        body="Please find the invoices attached.",
        attachments=[],
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _patched_open(msg):
    mock_open = MagicMock()
    mock_open.return_value.__enter__.return_value = msg
    return patch("app.services.msg_unpacker.extract_msg.openMsg", mock_open)


class TestUnpack:
    def test_header_fields_and_body(self):
        with _patched_open(_message()):
            result = unpack(b"msg-bytes")

        assert result.sender == "Landlord Larry <larry@example.com>"
        assert result.recipients == "CPA Office"
        assert result.subject == "2024 rental docs"
        assert result.body_text == "Please find the invoices attached."
        assert result.attachments == []

    def test_defaults_for_missing_fields(self):
        msg = _message(sender=None, recipients=[], to=None, subject="", body=None)
        with _patched_open(msg):
            result = unpack(b"msg-bytes")

        assert result.sender == "Unknown"
        assert result.recipients == "Unknown"
        assert result.subject == "No Subject"
        assert result.body_text == "(No body text)"

    def test_recipient_falls_back_to_email_then_to_field(self):
        msg = _message(recipients=[SimpleNamespace(name="", email="a@example.com")])
        with _patched_open(msg):
            assert unpack(b"x").recipients == "a@example.com"

        msg = _message(recipients=[], to="b@example.com")
        with _patched_open(msg):
            assert unpack(b"x").recipients == "b@example.com"

    def test_attachments_in_order_with_names(self):
        msg = _message(attachments=[
            _attachment("invoice.pdf", b"%PDF-1.4"),
            _attachment(None, b"a,b\n1,2", short_name="LEDGER~1.CSV"),
            _attachment(None, b"raw"),
        ])
        with _patched_open(msg):
            result = unpack(b"x")

        assert [a.name for a in result.attachments] == ["invoice.pdf", "LEDGER~1.CSV", "attachment"]
        assert result.attachments[0].content == b"%PDF-1.4"

    def test_empty_attachments_are_dropped(self):
        msg = _message(attachments=[_attachment("empty.pdf", b""), _attachment("none.pdf", None)])
        with _patched_open(msg):
            assert unpack(b"x").attachments == []

    def test_embedded_message_is_exported_as_msg(self):
        embedded = Mock()
        embedded.exportBytes.return_value = b"inner-msg"
        msg = _message(attachments=[_attachment("Fwd: receipts", embedded)])
        with _patched_open(msg):
            result = unpack(b"x")

        assert len(result.attachments) == 1
        assert result.attachments[0].name == "Fwd: receipts.msg"
        assert result.attachments[0].content == b"inner-msg"

    def test_parse_failure_raises_container_parse_error(self):
        with patch(
            "app.services.msg_unpacker.extract_msg.openMsg",
            side_effect=ValueError("not an OLE file"),
        ):
            with pytest.raises(ContainerParseError) as exc_info:
                unpack(b"garbage")

        assert exc_info.value.error_code == "container_parse_failed"
        assert "not an OLE file" in exc_info.value.message


class TestFormatMessageText:
    def test_layout(self):
        unpacked = UnpackedMessage(
            sender="A", recipients="B", subject="S", body_text="Hello",
        )
        assert format_message_text(unpacked) == "From: A\nTo: B\nSubject: S\n\nBody:\nHello"
