# summary_chat/errors.py
"""
Error hierarchy for the submission and generation pipeline.

Every error carries the HTTP status the API layer reports for it, so
routes can raise them directly and a single exception handler renders
the structured {status, message} body.
"""

from typing import Any, Dict, Optional


class SummaryChatError(Exception):
    """Base class for all application errors."""

    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context) if context else {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status_code,
            "message": self.message,
        }


# ============================================================
# INPUT ERRORS (400)
# ============================================================

class InputError(SummaryChatError):
    """Malformed request. Reported immediately, nothing persisted."""

    status_code = 400


class ExtractionError(InputError):
    """A submission could not be turned into text."""


class InvalidFileType(ExtractionError):
    pass


class EmptyFile(ExtractionError):
    pass


class EmptyContent(ExtractionError):
    pass


class PdfParseError(ExtractionError):
    pass


class FetchError(ExtractionError):
    """Link could not be scraped. Callers degrade to plain text."""


class FileTooLarge(ExtractionError):

    status_code = 413


class EmptyThread(InputError):
    """Retry requested on a thread with no messages."""


# ============================================================
# ACCESS ERRORS
# ============================================================

class Unauthorized(SummaryChatError):

    status_code = 401


class ThreadNotFound(SummaryChatError):
    """
    Thread is missing or belongs to someone else.

    The two cases are deliberately indistinguishable to the caller.
    """

    status_code = 404

    def __init__(self, thread_id: Any = None):
        super().__init__("Thread not found.", {"thread_id": thread_id})


# ============================================================
# GENERATION ERRORS (500)
# ============================================================

class GenerationError(SummaryChatError):
    """The language model call failed. Thread is marked failed."""

    status_code = 500
