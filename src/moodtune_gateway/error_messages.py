from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, TypeAlias

ErrorExtractor: TypeAlias = Callable[[Any], str | None]

DEFAULT_PREVIEW_CHARS = 100


def _nested_error(data: Any) -> dict[str, Any] | None:
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    return error if isinstance(error, dict) else None


def _error_message(data: Any) -> str | None:
    error = _nested_error(data)
    if error is None:
        return None
    message = error.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def _error_code(data: Any) -> str | None:
    error = _nested_error(data)
    if error is None:
        return None
    code = error.get("code")
    if code is None or isinstance(code, (dict, list)) or code == "":
        return None
    return f"error code: {code}"


def _top_level_message(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    message = data.get("message")
    if isinstance(message, str) and message:
        return message
    return None


# Order matters: first extractor that returns a value wins.
ERROR_EXTRACTORS: tuple[ErrorExtractor, ...] = (
    _error_message,
    _error_code,
    _top_level_message,
)


def extract_error_message(
    status: int,
    body: str,
    *,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
    extractors: tuple[ErrorExtractor, ...] = ERROR_EXTRACTORS,
) -> str:
    """Best-effort human readable message for a failed upstream response.

    Never raises: bodies that are not JSON, or JSON without a recognised
    error field, fall back to ``"HTTP <status>: <body prefix>"``.
    """
    try:
        data = json.loads(body) if body else None
    except (ValueError, RecursionError):
        data = None

    if data is not None:
        for extractor in extractors:
            message = extractor(data)
            if message:
                return message

    return f"HTTP {status}: {body[: max(0, preview_chars)]}"
