"""Custom exception classes for the secret filesystem sync engine."""

import errno as errno_codes
from typing import Optional


class SecretFSError(Exception):
    """
    Base exception class for all sync engine errors.

    Each subclass carries the errno surfaced to filesystem callers.
    """
    errno: int = errno_codes.EIO


class ConfigError(SecretFSError):
    """
    Raised when an environment setting is missing or malformed.
    """
    errno = errno_codes.EINVAL


class CapacityError(SecretFSError):
    """
    Raised when a snapshot needs more secrets than the configured maximum.
    """
    errno = errno_codes.ENOSPC


class ArchiverError(SecretFSError):
    """
    Raised when the tar process exits with a non-zero status.
    """
    errno = errno_codes.EPROTO

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CommunicationError(SecretFSError):
    """
    Raised for any other failure talking to the secret store or orchestrating a cycle.
    """
    errno = errno_codes.ECOMM


class SecretStoreError(CommunicationError):
    """
    Raised when the Kubernetes API answers with an unexpected status.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SecretNotFoundError(SecretStoreError):
    """
    Raised when a secret does not exist.
    """
    pass
