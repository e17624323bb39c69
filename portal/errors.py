"""Error hierarchy for the portal.

Remote failures are recoverable (cache/queue fallback), validation failures
are rejected before any remote call, and overlay resource problems are
logged and skipped.
"""


class PortalError(Exception):
    """Base exception for all portal errors."""

    pass


class RemoteUnavailableError(PortalError):
    """The remote store could not be reached or rejected the call.

    Callers fall back to the local cache for reads and to the pending-change
    queue for writes.
    """

    pass


class ValidationError(PortalError):
    """Input rejected locally: empty submission, missing class or role,
    unknown key, oversized upload.
    """

    pass


class AccessDeniedError(ValidationError):
    """The current user may not perform the requested operation."""

    pass


class OverlayError(PortalError):
    """Base exception for overlay lifecycle problems."""

    pass


class UnknownOverlayError(OverlayError):
    """No overlay type is registered under the requested name."""

    pass


class OverlayResourceMissing(OverlayError):
    """The overlay container or control surface is not available."""

    pass
