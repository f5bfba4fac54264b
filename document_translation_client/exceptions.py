from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    authorization = "authorization"
    not_found = "not_found"
    glossary_not_found = "glossary_not_found"
    quota_exceeded = "quota_exceeded"
    too_many_requests = "too_many_requests"
    bad_request = "bad_request"
    document_not_ready = "document_not_ready"
    unclassified = "unclassified"
    connection = "connection"
    timeout = "timeout"
    cancelled = "cancelled"
    document_failed = "document_failed"
    document_translation = "document_translation"
    minification = "minification"
    deminification = "deminification"
    glossary_validation = "glossary_validation"


class TranslationClientError(Exception):
    """Base class for every failure raised by the client.

    ``kind`` tags the failure so callers can branch on it without
    isinstance chains, ``cause`` holds the underlying exception if any.
    """

    kind = ErrorKind.unclassified

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthorizationError(TranslationClientError):
    kind = ErrorKind.authorization


class NotFoundError(TranslationClientError):
    kind = ErrorKind.not_found


class GlossaryNotFoundError(NotFoundError):
    kind = ErrorKind.glossary_not_found


class QuotaExceededError(TranslationClientError):
    kind = ErrorKind.quota_exceeded


class TooManyRequestsError(TranslationClientError):
    kind = ErrorKind.too_many_requests


class BadRequestError(TranslationClientError):
    kind = ErrorKind.bad_request


class DocumentNotReadyError(TranslationClientError):
    kind = ErrorKind.document_not_ready


class UnexpectedStatusError(TranslationClientError):
    """Any HTTP status without a more specific mapping."""

    kind = ErrorKind.unclassified

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionFailedError(TranslationClientError):
    """Transport failure that persisted after all retries."""

    kind = ErrorKind.connection


class RequestTimeoutError(ConnectionFailedError):
    """The overall deadline of a request ran out."""

    kind = ErrorKind.timeout


class OperationCancelledError(TranslationClientError):
    """The caller's cancellation signal was set."""

    kind = ErrorKind.cancelled


class DocumentFailedError(TranslationClientError):
    """The service reported the document translation in the error state."""

    kind = ErrorKind.document_failed

    def __init__(self, message: str, status=None):
        super().__init__(message)
        self.status = status


class DocumentTranslationError(TranslationClientError):
    """Wraps any failure of the end-to-end document translation.

    ``document_handle`` is set when the upload succeeded, so the caller can
    check the status or download the result later.
    """

    kind = ErrorKind.document_translation

    def __init__(self, message: str, cause: Optional[BaseException], document_handle=None):
        super().__init__(message, cause)
        self.document_handle = document_handle


class DocumentMinificationError(TranslationClientError):
    kind = ErrorKind.minification


class DocumentDeminificationError(TranslationClientError):
    kind = ErrorKind.deminification


class GlossaryValidationError(TranslationClientError, ValueError):
    kind = ErrorKind.glossary_validation
