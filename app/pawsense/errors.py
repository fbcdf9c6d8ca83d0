"""Exception taxonomy for capture, dispatch and escalation."""

from __future__ import annotations


class PawSenseError(Exception):
    """Base class for recoverable PawSense failures."""


class InvalidMediaError(PawSenseError):
    """Raised when a picked file or recording cannot be classified."""


class RecordingAlreadyActiveError(PawSenseError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "An audio recording is already in progress")


class CaptureDeniedError(PawSenseError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Microphone access was denied")


class EndpointUnavailableError(PawSenseError):
    """Raised when an inference or report endpoint returns no usable answer."""

    def __init__(self, endpoint: str, message: str | None = None, *, status_code: int | None = None) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        base = message or "endpoint unavailable"
        if status_code is not None:
            base = f"{base} (HTTP {status_code})"
        super().__init__(f"{endpoint}: {base}")


class AlertDeliveryError(PawSenseError):
    """Raised when the SOS alert call fails in transport. Only ever logged."""


class IdentityFlowError(PawSenseError):
    """Raised on an illegal pet-identity transition or a capture that skips it."""


class ReportUnavailableError(PawSenseError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Please analyze image or audio first")
