"""Exception taxonomy for the generation relay.

Every failure the relay can report to a caller is a :class:`GenRelayError`
subclass carrying the HTTP status it maps to and an optional ``debug`` payload.
The API layer converts them into ``{"error": ..., "debug": ...}`` JSON bodies;
nothing below the API layer knows about HTTP responses.

=========================  ======  =========================================
Exception                  Status  Meaning
=========================  ======  =========================================
InvalidRequest             400     Missing or malformed client input
MissingCallbackMetadata    400     Callback without echoed userId/characterId
UnknownModel               500     Configured model has no input spec
UnrecognizedOutputShape    500     Provider returned an output we can't read
StorageUploadFailed        500     Storage backend rejected the write
MisconfiguredCallback      500     Callback mode without a callback URL
ReferenceRecordFailed      500     Reference row insert failed
ProviderError              502     Transient provider failure (retryable)
ProviderRejected           502     Permanent provider rejection
ProviderUnavailable        502     Retries exhausted
ArtifactDownloadFailed     varies  Upstream status of the failed download
=========================  ======  =========================================
"""

from __future__ import annotations

from typing import Any


class GenRelayError(Exception):
    """Base class for all relay failures.

    Attributes:
        status_code: HTTP status the API layer should answer with.
        debug: Optional diagnostic payload echoed to the caller.
    """

    status_code: int = 500

    def __init__(self, message: str, *, debug: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.debug = debug

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.debug:
            body["debug"] = self.debug
        return body


class InvalidRequest(GenRelayError):
    """Client input is missing or malformed. Never retried."""

    status_code = 400


class MissingCallbackMetadata(GenRelayError):
    """A provider callback arrived without the metadata needed to route it."""

    status_code = 400


class UnknownModel(GenRelayError):
    """The configured model id has no registered input spec."""

    status_code = 500


class UnrecognizedOutputShape(GenRelayError):
    """Provider output matched none of the known shapes."""

    status_code = 500


class StorageUploadFailed(GenRelayError):
    status_code = 500


class MisconfiguredCallback(GenRelayError):
    status_code = 500


class ReferenceRecordFailed(GenRelayError):
    status_code = 500


class ProviderError(GenRelayError):
    """A provider call failed in a way that may succeed on retry."""

    status_code = 502
    transient: bool = True


class ProviderRejected(ProviderError):
    """The provider explicitly rejected the request (e.g. input validation)."""

    transient = False


class ProviderUnavailable(GenRelayError):
    """The provider could not be reached after all attempts."""

    status_code = 502


class ArtifactDownloadFailed(GenRelayError):
    """Downloading the generated media from the provider URL failed.

    Attributes:
        upstream_status: HTTP status returned by the media host, or ``None``
            when the request never got a response.
    """

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        debug: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, debug=debug)
        self.upstream_status = upstream_status
        # Only propagate real error statuses; anything else becomes a bad gateway.
        if upstream_status is not None and 400 <= upstream_status <= 599:
            self.status_code = upstream_status
        else:
            self.status_code = 502
