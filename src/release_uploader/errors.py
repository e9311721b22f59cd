"""Exception types raised by the release uploader.

Remote failures are classified once, at the GitHub adapter boundary,
into a closed set of variants. Everything downstream branches on the
exception type rather than on HTTP status codes.

Taxonomy:
- ConfigurationError: bad inputs, detected before any remote call
- PreconditionError: local problems with a single asset, never retried
- RemoteError: anything the GitHub API rejected or failed to answer
"""

from __future__ import annotations

from enum import StrEnum

import httpx


class ReleaseUploaderError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ReleaseUploaderError):
    """Invalid or conflicting configuration inputs."""


# ---------------------------------------------------------------------------
# Local preconditions
# ---------------------------------------------------------------------------


class PreconditionError(ReleaseUploaderError):
    """A local condition that retrying will not change."""


class NotAFileError(PreconditionError):
    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"File: {path} is not a file.")


class DuplicateAssetError(PreconditionError):
    def __init__(self, asset_name: str) -> None:
        self.asset_name = asset_name
        super().__init__(f"Duplicate Asset: {asset_name}.")


# ---------------------------------------------------------------------------
# Remote failures
# ---------------------------------------------------------------------------


class RemoteErrorKind(StrEnum):
    """Classification of a failed GitHub API call.

    NOT_FOUND: The requested object does not exist
    UNPROCESSABLE: The request was understood but rejected (validation)
    RATE_LIMITED: Primary or secondary rate limit hit
    UNKNOWN: Any other failure, including transport errors
    """

    NOT_FOUND = "not_found"
    UNPROCESSABLE = "unprocessable"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class RemoteError(ReleaseUploaderError):
    """A GitHub API call failed.

    Attributes:
        kind: Classification of the failure
        status_code: HTTP status, or None for transport failures
    """

    kind: RemoteErrorKind = RemoteErrorKind.UNKNOWN

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(RemoteError):
    kind = RemoteErrorKind.NOT_FOUND


class UnprocessableError(RemoteError):
    kind = RemoteErrorKind.UNPROCESSABLE


class RateLimitedError(RemoteError):
    kind = RemoteErrorKind.RATE_LIMITED


class UnknownRemoteError(RemoteError):
    kind = RemoteErrorKind.UNKNOWN


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase or "request failed"


def classify_response(response: httpx.Response) -> RemoteError:
    """Turn a failed HTTP response into the matching RemoteError variant."""
    status = response.status_code
    try:
        prefix = f"{response.request.method} {response.request.url} -> "
    except RuntimeError:
        # Response built without a request (only happens in tests)
        prefix = ""
    message = f"{prefix}{status}: {_error_message(response)}"

    if status == 404:
        return NotFoundError(message, status)
    if status == 422:
        return UnprocessableError(message, status)
    if status == 429 or (
        status == 403 and response.headers.get("x-ratelimit-remaining") == "0"
    ):
        return RateLimitedError(message, status)
    return UnknownRemoteError(message, status)
