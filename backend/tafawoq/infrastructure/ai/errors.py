"""
Generation Error Classification

Maps whatever the content generator raised onto a GenerationError with a
failure kind, a retryable flag and an optional retry delay.
"""

import asyncio
import re
from typing import Optional

import httpx
from google.genai import errors as genai_errors

from tafawoq.infrastructure.exceptions import GenerationError, GenerationFailureKind


# Suggested wait after a quota rejection when the API does not say
DEFAULT_QUOTA_RETRY_AFTER_SECONDS = 60

_RETRY_DELAY_PATTERN = re.compile(r"retry(?:[ _-]?(?:in|after|delay))?\D{0,5}(\d+(?:\.\d+)?)\s*s", re.I)


def _status_code(error: Exception) -> Optional[int]:
    if isinstance(error, genai_errors.APIError):
        return error.code
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def _retry_after(message: str) -> int:
    match = _RETRY_DELAY_PATTERN.search(message)
    if match:
        return max(1, int(float(match.group(1)) + 0.999))
    return DEFAULT_QUOTA_RETRY_AFTER_SECONDS


def classify_generation_error(error: Exception) -> GenerationError:
    """
    Classify a generation failure.

    Order matters: quota, timeout, invalid input, content filter, network,
    server error, then unknown (treated as transient).
    """
    if isinstance(error, GenerationError):
        return error

    message = str(error)
    lowered = message.lower()
    status = _status_code(error)

    if status == 429 or "quota" in lowered or "rate limit" in lowered or "resource_exhausted" in lowered:
        return GenerationError(
            GenerationFailureKind.QUOTA,
            "Content generation quota exceeded",
            retry_after_seconds=_retry_after(message),
            original_error=error,
        )

    if (
        isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException))
        or status == 504
        or "timeout" in lowered
        or "timed out" in lowered
        or "deadline" in lowered
    ):
        return GenerationError(
            GenerationFailureKind.TIMEOUT,
            "Content generation timed out",
            original_error=error,
        )

    if status == 400 or "invalid prompt" in lowered or "invalid request" in lowered or "invalid_argument" in lowered:
        return GenerationError(
            GenerationFailureKind.INVALID_INPUT,
            "Content generation rejected the request",
            original_error=error,
        )

    if "content filter" in lowered or "safety" in lowered or "blocked" in lowered:
        return GenerationError(
            GenerationFailureKind.CONTENT_FILTERED,
            "Generated content was filtered",
            original_error=error,
        )

    if isinstance(error, (ConnectionError, httpx.TransportError)) or "network" in lowered:
        return GenerationError(
            GenerationFailureKind.TRANSIENT,
            "Network error reaching the content generator",
            original_error=error,
        )

    if status is not None and status >= 500:
        return GenerationError(
            GenerationFailureKind.TRANSIENT,
            "Content generator server error",
            original_error=error,
        )

    return GenerationError(
        GenerationFailureKind.TRANSIENT,
        f"Content generation failed: {message}",
        original_error=error,
    )
