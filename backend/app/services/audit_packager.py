"""
Audit package builder.

Produces one ZIP holding the original source documents (folder structure
preserved), the attachments of every mail message expanded next to it, and
the tax summary workbook:

  T776_Tax_Summary.xlsx
  Source_Documents/
    Lease.pdf
    Email.msg
    Email.msg_attachments/
      invoice.pdf

The "<path>_attachments/" naming is what the workbook's source-file
hyperlinks point at (see workbook_builder.rewrite_source_path).
"""

import io
import logging
import zipfile

from app.models.analysis import AnalysisResult
from app.models.document import RawFile
from app.services import msg_unpacker
from app.services.format_sniffer import StrategyKind, classify
from app.services.msg_unpacker import ContainerParseError
from app.services.workbook_builder import (
    ATTACHMENTS_SUFFIX,
    SOURCE_DOCUMENTS_DIR,
    build_workbook_bytes,
)

logger = logging.getLogger(__name__)

SUMMARY_WORKBOOK_NAME = "T776_Tax_Summary.xlsx"
COMPRESSION_LEVEL = 6


class ArchiveFolderError(Exception):
    """Raised when the archive's root folder cannot be created."""
    def __init__(self, message: str, error_code: str = "archive_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


def _archive_path(file: RawFile) -> str:
    return (file.relative_path or file.name).replace("\\", "/").lstrip("/")


def _is_container(filename: str) -> bool:
    return classify(filename).kind == StrategyKind.CONTAINER_UNPACK


def _write_attachments(zf: zipfile.ZipFile, container: RawFile, container_path: str) -> None:
    """
    Unpack a mail message and write its attachments under
    ``<container_path>_attachments/``, recursing into embedded messages.
    """
    try:
        unpacked = msg_unpacker.unpack(container.content)
    except ContainerParseError as e:
        logger.error("Failed to extract attachments from %s: %s", container_path, e.message)
        return

    folder = f"{container_path}{ATTACHMENTS_SUFFIX}"
    for attachment in unpacked.attachments:
        attachment_path = f"{folder}{attachment.name}"
        zf.writestr(f"{SOURCE_DOCUMENTS_DIR}/{attachment_path}", attachment.content)
        if _is_container(attachment.name):
            _write_attachments(zf, attachment, attachment_path)


def build_audit_package(result: AnalysisResult, original_files: list[RawFile]) -> bytes:
    """
    Build the audit ZIP for an analysis result and the files it was run on.

    Raises:
        ArchiveFolderError: if the Source_Documents/ folder cannot be created.
    """
    buf = io.BytesIO()

    with zipfile.ZipFile(
        buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL
    ) as zf:
        try:
            zf.writestr(zipfile.ZipInfo(f"{SOURCE_DOCUMENTS_DIR}/"), b"")
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            raise ArchiveFolderError(f"Could not create {SOURCE_DOCUMENTS_DIR}/ folder: {e}")

        logger.info("Generating audit package for %d files", len(original_files))

        for file in original_files:
            path = _archive_path(file)
            zf.writestr(f"{SOURCE_DOCUMENTS_DIR}/{path}", file.content)
            if _is_container(file.name):
                _write_attachments(zf, file, path)

        zf.writestr(SUMMARY_WORKBOOK_NAME, build_workbook_bytes(result))

    buf.seek(0)
    return buf.read()
