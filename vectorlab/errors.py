"""
Error taxonomy for search requests.

Failures that reach the caller:
- InvalidInputError: the request itself is wrong (fix it and resend)
- DocumentNotFoundError: a record lookup by id found nothing
- UpstreamUnavailableError: embedding model or vector store failed (try later)

Arithmetic edge cases (empty corpus, zero max score) are never errors;
the ranking code resolves them locally.
"""

from http import HTTPStatus


class SearchError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(SearchError, ValueError):
    """Missing query, unsupported mode, alpha outside [0, 1], bad top_k"""

    status_code = HTTPStatus.BAD_REQUEST


class UpstreamUnavailableError(SearchError):
    """Embedding model or vector store is unconfigured or failed"""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE


class DocumentNotFoundError(SearchError):
    """No record with the requested id in the namespace"""

    status_code = HTTPStatus.NOT_FOUND
