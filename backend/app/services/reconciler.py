"""
Response reconciler.

Turns the model's raw reply into a trusted AnalysisResult: strips any
conversational text around the JSON object, parses it, and replaces the
model's self-reported file list with the manifest the normalizer built.
"""

import json
import logging

from pydantic import ValidationError

from app.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

RAW_EXCERPT_LENGTH = 500


class EmptyResponseError(Exception):
    """Raised when the model returned no text at all."""
    def __init__(self, message: str = "Empty response from AI", error_code: str = "empty_response"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class MalformedResponseError(Exception):
    """Raised when no JSON object can be parsed out of the model's reply."""
    def __init__(self, message: str, raw_excerpt: str, error_code: str = "malformed_response"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.raw_excerpt = raw_excerpt


def strip_to_json_object(raw_text: str) -> str:
    """
    Return the text between the first '{' and the last '}'.

    Markdown fences and chatter such as "Sure! Here is the JSON:" fall away.
    If no ordered brace pair exists the trimmed text is returned unchanged.
    """
    cleaned = raw_text.strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end != -1 and end > start:
        return cleaned[start:end + 1]
    return cleaned


def reconcile(raw_text: str | None, manifest: list[str]) -> AnalysisResult:
    """
    Parse the model's reply and overwrite ``all_files_detected`` with ``manifest``.

    Raises:
        EmptyResponseError: reply is blank.
        MalformedResponseError: reply does not contain a usable JSON object.
    """
    if raw_text is None or not raw_text.strip():
        raise EmptyResponseError()

    cleaned = strip_to_json_object(raw_text)
    excerpt = cleaned[:RAW_EXCERPT_LENGTH]

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse model JSON: %s", excerpt)
        raise MalformedResponseError(
            f"The AI returned an invalid response: {e.msg}", excerpt
        )

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}", excerpt
        )

    # The model never sees nested attachments by name; our manifest is the
    # record of what was actually read.
    data["all_files_detected"] = list(manifest)

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        logger.error("Model JSON has an unusable shape: %s", e)
        raise MalformedResponseError(
            f"The AI response did not match the expected structure: {e.error_count()} errors",
            excerpt,
        )
