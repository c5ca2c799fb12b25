"""
Language-model client for document analysis.

Wraps the Anthropic Messages API: converts normalized model parts into
content blocks, sends them after the prompt and returns the raw reply text.
Rate-limit errors are retried with a growing delay, honouring any retry hint
in the error; every other error propagates immediately.

One client is created at startup and passed to the pipeline explicitly.
"""

import base64
import logging
import re
import time
from typing import Callable, Optional

import anthropic

from app import config
from app.models.document import BinaryPart, ModelPart

logger = logging.getLogger(__name__)

BASE_RETRY_DELAY_SECONDS = 10.0
RETRY_MARGIN_SECONDS = 2.0

_RETRY_IN_RE = re.compile(r"retry in (\d+(?:\.\d+)?)s", re.IGNORECASE)
_RETRY_DELAY_RE = re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"')


class ModelCallError(Exception):
    """Raised when the model could not be reached after all retries."""
    def __init__(self, message: str, error_code: str = "model_call_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


def _retry_after_header(error: anthropic.RateLimitError) -> Optional[float]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def compute_retry_delay(error: Exception, attempt: int) -> float:
    """
    Seconds to wait before retry number ``attempt`` (1-based).

    Defaults to 10s, 20s, 30s... A retry-after header, or a "retry in Ns" /
    "retryDelay":"Ns" hint in the error text, takes precedence (plus a 2s
    margin).
    """
    header_delay = _retry_after_header(error) if isinstance(error, anthropic.RateLimitError) else None
    if header_delay is not None:
        return header_delay + RETRY_MARGIN_SECONDS

    text = str(error)
    match = _RETRY_IN_RE.search(text) or _RETRY_DELAY_RE.search(text)
    if match:
        return float(match.group(1)) + RETRY_MARGIN_SECONDS

    return BASE_RETRY_DELAY_SECONDS * attempt


def to_content_blocks(prompt: str, parts: list[ModelPart]) -> list[dict]:
    """Build the user message content: the prompt followed by every part in order."""
    blocks: list[dict] = [{"type": "text", "text": prompt}]
    for part in parts:
        if isinstance(part, BinaryPart):
            block_type = "document" if part.mime_type == "application/pdf" else "image"
            blocks.append({
                "type": block_type,
                "source": {
                    "type": "base64",
                    "media_type": part.mime_type,
                    "data": base64.b64encode(part.data).decode("ascii"),
                },
            })
        else:
            blocks.append({"type": "text", "text": part.text})
    return blocks


class AnalysisClient:
    """Sends analysis requests to the model with rate-limit retry."""

    def __init__(
        self,
        client: anthropic.Anthropic,
        model: str = config.ANALYSIS_MODEL,
        max_tokens: int = config.ANALYSIS_MAX_TOKENS,
        max_retries: int = config.ANALYSIS_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self._sleep = sleep

    @classmethod
    def from_env(cls) -> "AnalysisClient":
        # SDK-level retries are disabled; rate limits are handled here.
        return cls(anthropic.Anthropic(api_key=config.ANTHROPIC_API_KEY, max_retries=0))

    def analyze(self, prompt: str, parts: list[ModelPart]) -> str:
        """
        Send the prompt and parts; return the reply text.

        Raises:
            ModelCallError: rate limited on every attempt.
            anthropic.APIError: any non rate-limit failure, unchanged.
        """
        content = to_content_blocks(prompt, parts)
        attempt = 0

        while True:
            try:
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": content}],
                )
            except anthropic.RateLimitError as e:
                attempt += 1
                logger.warning("Model API rate limited (attempt %d/%d): %s", attempt, self.max_retries, e)
                if attempt >= self.max_retries:
                    raise ModelCallError(
                        f"Model API failed after {self.max_retries} attempts. Last error: {e}"
                    )
                delay = compute_retry_delay(e, attempt)
                logger.info("Retrying in %.1fs (attempt %d/%d)", delay, attempt + 1, self.max_retries)
                self._sleep(delay)
                continue

            usage = getattr(response, "usage", None)
            if usage is not None:
                logger.info(
                    "Model call complete: %s input tokens, %s output tokens",
                    usage.input_tokens, usage.output_tokens,
                )
            return "".join(
                block.text for block in response.content
                if getattr(block, "type", None) == "text"
            )
