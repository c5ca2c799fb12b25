"""
Outlook .msg container unpacker.

Opens a mail message with extract-msg and returns its header fields, plain
body and attachments. Attachments come back as RawFile objects so they can
re-enter the normalizer (or the audit packager) like any uploaded file.

Public API:
  unpack(data)                   -> UnpackedMessage
  format_message_text(unpacked)  -> str
"""

import logging
from dataclasses import dataclass, field

import extract_msg

from app.models.document import RawFile

logger = logging.getLogger(__name__)


class ContainerParseError(Exception):
    """Raised when a mail container cannot be parsed."""
    def __init__(self, message: str, error_code: str = "container_parse_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


@dataclass
class UnpackedMessage:
    sender: str
    recipients: str
    subject: str
    body_text: str
    attachments: list[RawFile] = field(default_factory=list)

    @property
    def header_text(self) -> str:
        return f"From: {self.sender}\nTo: {self.recipients}\nSubject: {self.subject}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _recipients(msg) -> str:
    names = []
    for r in getattr(msg, "recipients", None) or []:
        name = _clean(getattr(r, "name", None)) or _clean(getattr(r, "email", None))
        if name:
            names.append(name)
    if names:
        return ", ".join(names)
    return _clean(getattr(msg, "to", None))


def _attachment_name(att) -> str:
    return (
        _clean(getattr(att, "longFilename", None))
        or _clean(getattr(att, "shortFilename", None))
        or _clean(getattr(att, "displayName", None))
        or "attachment"
    )


def _attachment_to_raw_file(att) -> RawFile | None:
    """
    Convert one extract-msg attachment to a RawFile.

    Embedded messages are exported back to .msg bytes. Attachments with no
    retrievable content are dropped.
    """
    name = _attachment_name(att)
    data = getattr(att, "data", None)

    if isinstance(data, (bytes, bytearray)):
        content = bytes(data)
    elif data is not None and hasattr(data, "exportBytes"):
        content = data.exportBytes()
        if not name.lower().endswith(".msg"):
            name = f"{name}.msg"
    else:
        return None

    if not content:
        return None
    return RawFile(name=name, content=content)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def unpack(data: bytes) -> UnpackedMessage:
    """
    Parse .msg bytes.

    Raises:
        ContainerParseError: if the bytes are not a readable mail message.
    """
    try:
        with extract_msg.openMsg(data) as msg:
            attachments: list[RawFile] = []
            for att in msg.attachments or []:
                raw = _attachment_to_raw_file(att)
                if raw is None:
                    logger.debug("Skipping empty attachment %r", _attachment_name(att))
                    continue
                attachments.append(raw)

            return UnpackedMessage(
                sender=_clean(getattr(msg, "sender", None)) or "Unknown",
                recipients=_recipients(msg) or "Unknown",
                subject=_clean(getattr(msg, "subject", None)) or "No Subject",
                body_text=_clean(getattr(msg, "body", None)) or "(No body text)",
                attachments=attachments,
            )
    except ContainerParseError:
        raise
    except Exception as e:
        raise ContainerParseError(f"Could not parse mail message: {e}")


def format_message_text(unpacked: UnpackedMessage) -> str:
    """Combine header and body into the text block the model reads."""
    return f"{unpacked.header_text}\n\nBody:\n{unpacked.body_text}"
