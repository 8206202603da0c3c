"""Print dispatch exceptions."""
from __future__ import annotations

from typing import Optional


class DispatchError(RuntimeError):
    """Base error for the print dispatch engine."""

    def __init__(self, message: str, device_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.device_name = device_name

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigUnavailable(DispatchError):
    """Raised when the device registry cannot be read or parsed."""


class NoDeviceAvailable(DispatchError):
    """Raised when the spooler reports no printers at all."""


class SourceError(DispatchError):
    """Raised when the source image cannot be fetched or decoded from its URL."""


class RenderError(DispatchError):
    """Raised when the source bytes are not a decodable image."""


class SubmissionTimeout(DispatchError):
    """Raised when the spooler did not acknowledge a job in time.

    The job may still print later.
    """


class SubmissionFailed(DispatchError):
    """Raised when the spooler rejected a job."""


class TransportFailure(DispatchError):
    """Raised when the remote print gateway is unreachable or answers non-2xx."""

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, device_name)
        self.status_code = status_code


class ReconcileFailure(DispatchError):
    """Raised when cancelling or re-enabling a device queue fails."""
