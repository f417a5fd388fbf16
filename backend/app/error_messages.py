"""Unified, friendly error messages for document extraction.

Each helper returns plain-text English output so the upload dialog, the HTTP
layer and the CLI share the same wording.
"""

from __future__ import annotations

from typing import Dict, Optional

EXTRACTION_MESSAGES: Dict[str, str] = {
    "network": "Unable to connect to the server. Please check your internet connection and try again.",
    "authentication": "There was an authentication issue. Please contact support if this problem persists.",
    "rate_limit": "The service is currently busy. Please wait a moment and try again.",
    "file_too_large": "The file is too large. Please try a smaller file or compress the document.",
    "unsupported_format": "This file format is not supported. Please upload a PDF, image, or text file.",
    "timeout": "The request took too long to process. Please try again with a smaller or simpler document.",
    "service_unavailable": "The AI service is temporarily unavailable. Please try again in a few moments.",
    "no_file": "No file was provided. Please select a file and try again.",
    "validation": (
        "We couldn't read the document properly. "
        "Please make sure the file is not corrupted and try again."
    ),
    "server_error": "Our servers encountered an issue. Please try again in a few moments.",
    "refusal": (
        "The document could not be processed. "
        "Please try with a different document or contact support if the issue persists."
    ),
    "unknown": (
        "We encountered an issue processing your document. Please make sure the file is readable "
        "and try again. If the problem persists, contact support."
    ),
}

STATUS_MESSAGES: Dict[int, str] = {
    400: "The file format is not supported or the file is invalid. Please check your file and try again.",
    413: "The file is too large. Please try a smaller file.",
    500: "Our servers encountered an issue. Please try again in a few moments.",
    503: "The service is temporarily unavailable. Please try again later.",
}

GENERIC_FAILURE_MESSAGE = "We couldn't process your document. Please try again."


def extraction_error_message(kind: str) -> str:
    """User-facing text for an extraction error kind; unknown kinds get the default."""
    return EXTRACTION_MESSAGES.get(str(kind), EXTRACTION_MESSAGES["unknown"])


def status_error_message(status_code: Optional[int]) -> str:
    """Fallback text when the collaborator answered with a bare HTTP status."""
    if status_code is None:
        return GENERIC_FAILURE_MESSAGE
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if status_code >= 500:
        return STATUS_MESSAGES[500]
    return GENERIC_FAILURE_MESSAGE


def redirect_notice(detected_company_name: str, *, redirected: bool) -> str:
    """Explain where a competitor document uploaded into the Arpin column went."""
    name = detected_company_name.strip() or "another company"
    if redirected:
        return (
            f"This quote appears to be from {name}, not Arpin International. "
            "It was added to the first empty competitor column instead."
        )
    return (
        f"This quote appears to be from {name}, not Arpin International. "
        "No empty competitor column was available, so it was placed in the Arpin column."
    )
