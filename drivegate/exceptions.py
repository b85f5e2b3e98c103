# exceptions.py
from typing import Optional


class GatewayError(Exception):
    """
    Base class for every failure surfaced by the storage gateway.
    Carries the upstream HTTP status and raw body when the remote answered;
    both are None for local precondition failures and transport errors.
    """

    def __init__(
        self, message: str, status: Optional[int] = None, body: Optional[str] = None
    ):
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def retryable(self) -> bool:
        """True when the failure might resolve on a later attempt."""
        if isinstance(self, PermanentError):
            return False
        if isinstance(self, TransientError) or self.status is None:
            return True
        return self.status == 429 or self.status >= 500


class PermanentError(GatewayError):
    """An error that will not be fixed by a retry (e.g., an invalid argument)."""
    pass


class TransientError(GatewayError):
    """A temporary error (e.g., rate limiting) that might resolve on a retry."""
    pass


class InvalidArgument(PermanentError, ValueError):
    """A local precondition failed; nothing was sent upstream."""
    pass


class AuthError(PermanentError):
    """The bearer credential is missing or was rejected. Re-authenticate out-of-band."""
    pass


class RateLimited(TransientError):
    """The remote store throttled the request."""
    pass


class ListError(GatewayError):
    pass


class FileLookupError(GatewayError):
    pass


class UploadSessionError(GatewayError):
    """The remote did not commit to a resumable upload session."""
    pass


class UploadTransferError(GatewayError):
    """The payload transfer to an open upload session failed."""
    pass


class RenameError(GatewayError):
    pass


class DeleteError(GatewayError):
    pass


class DownloadError(GatewayError):
    pass


class ThumbnailUnavailable(GatewayError):
    """No thumbnail could be produced. Callers render a placeholder."""
    pass


def error_for_status(
    error_cls: type, message: str, status: Optional[int], body: Optional[str] = None
) -> GatewayError:
    """
    Maps an upstream status to the exception to raise.
    401 and 429 are classified the same way for every operation so callers can
    re-authenticate or back off; everything else uses the operation's own class.
    """
    if status == 401:
        return AuthError(message, status=status, body=body)
    if status == 429:
        return RateLimited(message, status=status, body=body)
    return error_cls(message, status=status, body=body)
