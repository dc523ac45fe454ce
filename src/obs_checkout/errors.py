"""Custom exceptions for obs-checkout.

This module defines typed exceptions for better error handling and clearer
error messages throughout the application.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional


class ObsCheckoutError(RuntimeError):
    """Base class for all obs-checkout errors."""
    pass


# Precondition Errors
class PreconditionError(ObsCheckoutError, ValueError):
    """Operation rejected because a file is in the wrong state.

    Raised before any mutation happens; retrying with corrected input is safe.
    """
    pass


class OverlappingFilesError(PreconditionError):
    """The same files were requested to be added and deleted."""

    def __init__(self, files: Iterable[str]):
        self.files = sorted(files)
        super().__init__(
            "Cannot add and remove the following files simultaneously: "
            f"{', '.join(self.files)}."
        )


class InvalidFileStateError(PreconditionError):
    """File is not in a state that permits the requested operation."""

    def __init__(self, operation: str, name: str, reason: str, state: Optional[str] = None):
        self.operation = operation
        self.name = name
        self.state = state
        message = f"Cannot {operation} {name}: {reason}"
        if state is not None:
            message += f" (state '{state}')"
        super().__init__(message)


# Resource Errors
class ResourceMissingError(ObsCheckoutError):
    """A file needed for the operation is absent."""
    pass


class FileMissingError(ResourceMissingError):
    """File to be added does not exist in the checkout directory."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cannot add file {name}: file does not exist")


class BackupMissingError(ResourceMissingError):
    """Sidecar backup copy of a tracked file is absent."""

    def __init__(self, name: str, backup_path):
        self.name = name
        self.backup_path = backup_path
        super().__init__(
            f"Cannot restore {name}: pristine copy {backup_path} is not present"
        )


class FileExistsInWorkdirError(ResourceMissingError):
    """A file would be overwritten by a restore."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Cannot undelete file {name}: a file with that name already exists"
        )


# Integrity Errors
class IntegrityError(ObsCheckoutError):
    """Base class for data integrity errors."""
    pass


class DigestMismatchError(IntegrityError):
    """File digest doesn't match expected value."""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Digest verification failed for {path}\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n"
            f"The file may be corrupted or tampered with."
        )


class PackageNameMismatchError(IntegrityError):
    """Server replied with a directory of a different package."""

    def __init__(self, expected: str, actual: Optional[str]):
        self.expected = expected
        self.actual = actual
        super().__init__(
            "Invalid reply received from the server: replied package has a "
            f"different name, expected {expected} but got {actual}"
        )


# Checkout Layout Errors
class CheckoutError(ObsCheckoutError):
    """Base class for checkout directory errors."""
    pass


class NotACheckoutError(CheckoutError):
    """Directory has no sidecar metadata."""
    pass


class UnsupportedCheckoutVersionError(CheckoutError):
    """Sidecar was written by an incompatible client."""

    def __init__(self, path, version: str):
        self.version = version
        super().__init__(
            f"Checkout at {path} uses unsupported metadata version '{version}'"
        )


class CheckoutLockedError(CheckoutError):
    """Another process holds the checkout lock."""

    def __init__(self, path, timeout: float):
        super().__init__(
            f"Checkout at {path} is locked by another operation "
            f"(waited {timeout:g}s)"
        )


# Remote Errors
class RemoteError(ObsCheckoutError):
    """Base class for communication errors with the build service."""
    pass


class NetworkError(RemoteError):
    """Network connectivity issue."""
    pass


class ProtocolError(RemoteError):
    """Reply could not be decoded."""
    pass


@dataclass
class StatusReply:
    """Decoded <status> element returned by the API on errors."""

    code: str
    summary: Optional[str] = None
    details: Optional[str] = None
    data: List[str] = field(default_factory=list)


class ApiError(RemoteError):
    """Request to the API returned a non-success status code."""

    def __init__(
        self,
        status_code: int,
        url: str,
        method: str,
        status: Optional[StatusReply] = None,
    ):
        self.status_code = status_code
        self.url = url
        self.method = method
        self.status = status
        message = f"Failed to load URL {url}, status code: {status_code}"
        if status is not None and status.summary:
            message += f" ({status.summary})"
        super().__init__(message)


class AuthError(ApiError):
    """Authentication or authorization failed (401/403)."""
    pass


class NotFoundError(ApiError):
    """Resource not found (404)."""
    pass
