"""
Document models for the normalization pipeline.

RawFile is what enters the pipeline (an upload or an attachment pulled out of
a mail container). ModelPart is what leaves it: one unit of content in the
message sent to the language model.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Separator for "found inside" breadcrumbs, e.g. "Email.msg > invoice.pdf"
PATH_SEPARATOR = " > "


class RawFile(BaseModel):
    """A file's name and raw bytes. Never mutated once created."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    relative_path: Optional[str] = None   # folder-relative path from a directory upload

    @property
    def size(self) -> int:
        return len(self.content)


class BinaryPart(BaseModel):
    """Inline binary content (PDF, image) passed to the model as-is."""

    kind: Literal["binary"] = "binary"
    mime_type: str
    data: bytes


class TextPart(BaseModel):
    """Extracted or synthetic text."""

    kind: Literal["text"] = "text"
    mime_type: Literal["text/plain"] = "text/plain"
    text: str


ModelPart = Union[BinaryPart, TextPart]


class StagedFile(BaseModel):
    """Reference to an upload sitting in staging storage."""

    blob_url: str
    filename: str
    section: Optional[str] = None   # files_prior | files_t776 | files_current


class AnalyzeRequest(BaseModel):
    blobs: list[StagedFile] = Field(min_length=1)


def join_path(parent_path: str, name: str) -> str:
    """Build the breadcrumb path for ``name`` found inside ``parent_path``."""
    if parent_path:
        return f"{parent_path}{PATH_SEPARATOR}{name}"
    return name
