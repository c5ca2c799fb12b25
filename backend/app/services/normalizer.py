"""
Recursive document normalizer.

Turns uploaded files into the ordered list of parts sent to the language
model, and records every file it reads in a manifest. Mail containers are
unpacked and their attachments are normalized recursively, depth-first, with
breadcrumb paths such as "Email.msg > invoice.pdf".

Per-file failures never abort a batch: a file that cannot be parsed keeps its
manifest entry but contributes no parts.

Public API:
  normalize(file, manifest, parent_path="") -> list[ModelPart]
  normalize_files(files, batch=None)        -> NormalizedBatch
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from app import config
from app.models.document import BinaryPart, ModelPart, RawFile, TextPart, join_path
from app.services import msg_unpacker
from app.services.format_sniffer import StrategyKind, classify
from app.services.msg_unpacker import ContainerParseError
from app.services.text_extractors import (
    ExtractionError,
    decode_plain_text,
    extract_document_text,
    extract_tabular_text,
)

logger = logging.getLogger(__name__)


@dataclass
class NormalizedBatch:
    parts: list[ModelPart] = field(default_factory=list)
    manifest: list[str] = field(default_factory=list)


def _file_content_part(current_path: str, text: str) -> TextPart:
    return TextPart(text=f"FILE CONTENT ({current_path}):\n{text}")


def _normalize_container(file: RawFile, manifest: list[str], current_path: str) -> list[ModelPart]:
    try:
        unpacked = msg_unpacker.unpack(file.content)
    except ContainerParseError as e:
        logger.error("Could not unpack %s: %s", current_path, e.message)
        return []

    parts: list[ModelPart] = [
        _file_content_part(current_path, msg_unpacker.format_message_text(unpacked))
    ]

    if unpacked.attachments:
        logger.info("Found %d attachments in %s", len(unpacked.attachments), current_path)

    for attachment in unpacked.attachments:
        parts.append(TextPart(text=f"[ATTACHMENT: {attachment.name} found in {current_path}]"))
        parts.extend(normalize(attachment, manifest, current_path))

    return parts


def normalize(file: RawFile, manifest: list[str], parent_path: str = "") -> list[ModelPart]:
    """
    Convert one file into model parts, appending its path to ``manifest``.

    Skipped (unsupported or system) and oversize files return no parts and
    leave the manifest untouched. The manifest entry is added before
    extraction, so it records files that were attempted, not only those that
    succeeded.
    """
    current_path = join_path(parent_path, file.name)
    strategy = classify(file.name)

    if strategy.kind == StrategyKind.SKIP:
        logger.debug("Skipping file: %s", current_path)
        return []

    if file.size > config.MAX_FILE_SIZE_BYTES:
        logger.warning(
            "File too large, skipping: %s (%d bytes > %d)",
            current_path, file.size, config.MAX_FILE_SIZE_BYTES,
        )
        return []

    manifest.append(current_path)

    if strategy.kind == StrategyKind.BINARY_PASSTHROUGH:
        return [
            BinaryPart(mime_type=strategy.mime_type, data=file.content),
            TextPart(text=f"[BINARY FILE: {current_path}]"),
        ]

    if strategy.kind == StrategyKind.CONTAINER_UNPACK:
        return _normalize_container(file, manifest, current_path)

    try:
        if strategy.kind == StrategyKind.TABULAR_EXTRACT:
            text = extract_tabular_text(file.content, file.name)
        elif strategy.kind == StrategyKind.TEXT_EXTRACT_DOCUMENT:
            text = extract_document_text(file.content)
        else:
            text = decode_plain_text(file.content)
    except ExtractionError as e:
        logger.error("Could not extract text from %s: %s", current_path, e.message)
        return []

    return [_file_content_part(current_path, text)]


def normalize_files(files: list[RawFile], batch: Optional[NormalizedBatch] = None) -> NormalizedBatch:
    """
    Normalize top-level files in order with one shared manifest.

    When ``batch`` is given its parts and manifest are extended in place, so
    callers can interleave their own parts between files.
    """
    if batch is None:
        batch = NormalizedBatch()
    for file in files:
        batch.parts.extend(normalize(file, batch.manifest))
    return batch
