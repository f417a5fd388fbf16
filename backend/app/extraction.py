"""Boundary with the document-understanding collaborator.

The collaborator itself is external. This module decides which uploads may be
sent to it and classifies its failures into a fixed set of kinds with
user-facing messages.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Optional, Tuple

from backend.app.error_messages import extraction_error_message, status_error_message
from backend.app.models import CandidateDecodeError

MAX_UPLOAD_BYTES = 20 * 1024 * 1024

SUPPORTED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "text/plain",
    "text/csv",
}

EXTENSION_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".txt": "text/plain",
    ".csv": "text/csv",
}


class ExtractionErrorKind(str, Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_FORMAT = "unsupported_format"
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NO_FILE = "no_file"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    REFUSAL = "refusal"
    UNKNOWN = "unknown"


# First match wins. Refusals are checked before the broader "model" rule.
_KEYWORD_RULES: Tuple[Tuple[ExtractionErrorKind, Tuple[str, ...]], ...] = (
    (ExtractionErrorKind.REFUSAL, ("refusal", "refused", "can't assist")),
    (ExtractionErrorKind.NETWORK, ("network", "fetch", "failed to fetch")),
    (ExtractionErrorKind.AUTHENTICATION, ("api key", "authentication", "unauthorized")),
    (ExtractionErrorKind.RATE_LIMIT, ("rate limit", "too many requests")),
    (ExtractionErrorKind.FILE_TOO_LARGE, ("file size", "too large")),
    (ExtractionErrorKind.UNSUPPORTED_FORMAT, ("file type", "unsupported", "invalid format")),
    (ExtractionErrorKind.TIMEOUT, ("timeout", "timed out")),
    (ExtractionErrorKind.SERVICE_UNAVAILABLE, ("openai", "model")),
    (ExtractionErrorKind.NO_FILE, ("no file provided", "file not found")),
    (ExtractionErrorKind.VALIDATION, ("validation", "parse", "invalid")),
    (ExtractionErrorKind.SERVER_ERROR, ("server error", "internal error", "500")),
)

_STATUS_KINDS = {
    400: ExtractionErrorKind.UNSUPPORTED_FORMAT,
    413: ExtractionErrorKind.FILE_TOO_LARGE,
    500: ExtractionErrorKind.SERVER_ERROR,
    503: ExtractionErrorKind.SERVICE_UNAVAILABLE,
}


class ExtractionError(Exception):
    """A classified extraction failure carrying its user-facing message."""

    def __init__(self, kind: ExtractionErrorKind, detail: str = "", status_code: Optional[int] = None):
        self.kind = kind
        self.detail = detail
        self.status_code = status_code
        self.user_message = extraction_error_message(kind.value)
        super().__init__(self.user_message)

    def to_payload(self) -> dict:
        return {"kind": self.kind.value, "message": self.user_message, "detail": self.detail}


def classify_extraction_error(message: Optional[str]) -> ExtractionErrorKind:
    text = (message or "").lower()
    if not text:
        return ExtractionErrorKind.UNKNOWN
    for kind, keywords in _KEYWORD_RULES:
        if any(keyword in text for keyword in keywords):
            return kind
    return ExtractionErrorKind.UNKNOWN


def classify_status_code(status_code: int) -> ExtractionErrorKind:
    if status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]
    if status_code >= 500:
        return ExtractionErrorKind.SERVER_ERROR
    return ExtractionErrorKind.UNKNOWN


def describe_failure(message: Optional[str] = None, status_code: Optional[int] = None) -> str:
    """User text for a failed collaborator call.

    An explicit error message from the collaborator takes precedence; without
    one the HTTP status decides.
    """
    if message:
        return extraction_error_message(classify_extraction_error(message).value)
    return status_error_message(status_code)


def from_decode_error(exc: CandidateDecodeError) -> ExtractionError:
    return ExtractionError(ExtractionErrorKind.VALIDATION, detail=exc.message, status_code=422)


def resolve_mime_type(filename: Optional[str], mime_type: Optional[str] = None) -> Optional[str]:
    if mime_type:
        return mime_type.split(";", 1)[0].strip().lower()
    if not filename:
        return None
    _, ext = os.path.splitext(filename.lower())
    return EXTENSION_MIME_TYPES.get(ext)


def validate_upload(filename: Optional[str], size: Optional[int], mime_type: Optional[str] = None) -> str:
    """Check an upload before it is handed to the collaborator.

    Returns the resolved MIME type or raises :class:`ExtractionError`.
    """
    if not filename and not size:
        raise ExtractionError(ExtractionErrorKind.NO_FILE, "no file provided", status_code=400)
    if size is not None and size > MAX_UPLOAD_BYTES:
        raise ExtractionError(
            ExtractionErrorKind.FILE_TOO_LARGE,
            f"file is {size / 1024 / 1024:.2f}MB, limit is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
            status_code=413,
        )
    resolved = resolve_mime_type(filename, mime_type)
    if resolved not in SUPPORTED_MIME_TYPES:
        raise ExtractionError(
            ExtractionErrorKind.UNSUPPORTED_FORMAT,
            f"unsupported file type: {resolved or 'unknown'}",
            status_code=400,
        )
    return resolved
