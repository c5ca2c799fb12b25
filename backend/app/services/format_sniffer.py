"""
Format sniffer.

Maps a filename (and optionally a declared MIME type) to the strategy the
normalizer uses to turn it into model input.

Public API:
  classify(filename, mime_type=None) -> Strategy
  is_supported(filename)             -> bool
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StrategyKind(str, Enum):
    SKIP = "skip"
    BINARY_PASSTHROUGH = "binary_passthrough"
    TEXT_EXTRACT_DOCUMENT = "text_extract_document"
    TEXT_EXTRACT_PLAIN = "text_extract_plain"
    TABULAR_EXTRACT = "tabular_extract"
    CONTAINER_UNPACK = "container_unpack"


@dataclass(frozen=True)
class Strategy:
    kind: StrategyKind
    mime_type: Optional[str] = None   # only set for BINARY_PASSTHROUGH


SKIP = Strategy(StrategyKind.SKIP)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Shared with the upload filter in front of the pipeline.
SUPPORTED_EXTENSIONS = frozenset({
    "pdf", "jpg", "jpeg", "png",
    "xlsx", "xls", "csv",
    "docx", "doc",
    "msg",
    "txt",
})

BINARY_MIME_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}

TABULAR_EXTENSIONS = frozenset({"xlsx", "xls", "csv"})
DOCUMENT_EXTENSIONS = frozenset({"docx", "doc"})
CONTAINER_EXTENSIONS = frozenset({"msg"})

# Declared MIME type -> extension, used only when the name has no extension.
_MIME_EXTENSIONS: dict[str, str] = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel": "xls",
    "text/csv": "csv",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
    "application/vnd.ms-outlook": "msg",
    "text/plain": "txt",
}

# Hidden files, Office lock files, temp files and OS metadata.
_IGNORE_PATTERNS = [
    re.compile(r"^\."),
    re.compile(r"^~\$"),
    re.compile(r"\.tmp$", re.IGNORECASE),
    re.compile(r"^thumbs\.db$", re.IGNORECASE),
    re.compile(r"^desktop\.ini$", re.IGNORECASE),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _basename(filename: str) -> str:
    return re.split(r"[\\/]", filename)[-1]


def get_extension(filename: str) -> str:
    """Return the lower-case extension without the dot, or '' if there is none."""
    name = _basename(filename)
    if "." not in name.lstrip("."):
        return ""
    return name.rsplit(".", 1)[-1].lower()


def should_ignore(filename: str) -> bool:
    """True for hidden, temporary and system files."""
    name = _basename(filename)
    return any(p.search(name) for p in _IGNORE_PATTERNS)


def is_supported(filename: str) -> bool:
    """True when the upload filter should accept this file."""
    return not should_ignore(filename) and get_extension(filename) in SUPPORTED_EXTENSIONS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def classify(filename: str, mime_type: Optional[str] = None) -> Strategy:
    """
    Decide how a file is turned into model input.

    Order: ignore list, supported set, binary pass-through, tabular,
    document text, mail container, then plain UTF-8 text for anything else
    in the supported set.
    """
    if should_ignore(filename):
        return SKIP

    ext = get_extension(filename)
    if not ext and mime_type:
        ext = _MIME_EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), "")

    if ext not in SUPPORTED_EXTENSIONS:
        return SKIP
    if ext in BINARY_MIME_TYPES:
        return Strategy(StrategyKind.BINARY_PASSTHROUGH, BINARY_MIME_TYPES[ext])
    if ext in TABULAR_EXTENSIONS:
        return Strategy(StrategyKind.TABULAR_EXTRACT)
    if ext in DOCUMENT_EXTENSIONS:
        return Strategy(StrategyKind.TEXT_EXTRACT_DOCUMENT)
    if ext in CONTAINER_EXTENSIONS:
        return Strategy(StrategyKind.CONTAINER_UNPACK)
    return Strategy(StrategyKind.TEXT_EXTRACT_PLAIN)
