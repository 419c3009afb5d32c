"""Status definitions and exceptions for FamilyLedger.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - ErrorKind: transient/permanent tag used to decide whether a failed remote call may be retried
    - BaseStatusException: base exception carrying a Status and an ErrorKind
    - Specific exceptions (e.g., NetworkException) raised by the remote source and the settings
    - classify_error: resolve the ErrorKind of any exception
"""
import enum
import socket
from typing import Dict, Optional

import requests

#: Message fragments that mark an untagged error as network-class.
NETWORK_ERROR_SIGNATURES = ('network', 'fetch')


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    SessionConfigNotFound = enum.auto()
    SessionConfigInvalid = enum.auto()
    ServerUrlNotConfigured = enum.auto()

    # Authentication status
    NotAuthenticated = enum.auto()

    # Remote status
    NetworkError = enum.auto()
    RequestTimeout = enum.auto()
    ServiceUnavailable = enum.auto()
    RequestFailed = enum.auto()
    ResponseInvalid = enum.auto()
    SyncRejected = enum.auto()


class ErrorKind(enum.StrEnum):
    """Whether a failure is worth retrying."""
    Transient = 'transient'
    Permanent = 'permanent'


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SessionConfigNotFound: 'Could not find the session config.',
    Status.SessionConfigInvalid: 'The session config seems to be incomplete, or contains invalid values.',
    Status.ServerUrlNotConfigured: 'Could not find a server url. Have you set up the server url in the settings?',

    Status.NotAuthenticated: 'Authentication error. Try signing in again.',

    Status.NetworkError: 'Could not reach the server. Please check your network connection.',
    Status.RequestTimeout: 'The server did not respond in time.',
    Status.ServiceUnavailable: 'The server is unavailable. Please try again later.',
    Status.RequestFailed: 'The server could not process the request.',
    Status.ResponseInvalid: 'The server returned a response that could not be read.',
    Status.SyncRejected: 'The server could not synchronize the data.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in FamilyLedger.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        kind (ErrorKind | None): Retry classification. ``None`` leaves the decision to
            :func:`classify_error`.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.detail = message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    kind = ErrorKind.Permanent


class SessionConfigNotFoundException(BaseStatusException):
    """Exception raised when the session configuration file cannot be found."""
    status = Status.SessionConfigNotFound
    kind = ErrorKind.Permanent


class SessionConfigInvalidException(BaseStatusException):
    """Exception raised when the session configuration is invalid or malformed."""
    status = Status.SessionConfigInvalid
    kind = ErrorKind.Permanent


class ServerUrlNotConfiguredException(BaseStatusException):
    """Exception raised when no server url is configured."""
    status = Status.ServerUrlNotConfigured
    kind = ErrorKind.Permanent


class NotAuthenticatedException(BaseStatusException):
    """Exception raised when the server rejects the session's credentials."""
    status = Status.NotAuthenticated
    kind = ErrorKind.Permanent


class NetworkException(BaseStatusException):
    """Exception raised when the server cannot be reached."""
    status = Status.NetworkError
    kind = ErrorKind.Transient


class RequestTimeoutException(BaseStatusException):
    """Exception raised when a request exceeds its timeout."""
    status = Status.RequestTimeout
    kind = ErrorKind.Transient


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the server answers with a 5xx or rate-limit status."""
    status = Status.ServiceUnavailable
    kind = ErrorKind.Transient


class RemoteRequestFailedException(BaseStatusException):
    """Exception raised when the server rejects a request."""
    status = Status.RequestFailed
    kind = ErrorKind.Permanent


class ResponseInvalidException(BaseStatusException):
    """Exception raised when a response body is not valid JSON."""
    status = Status.ResponseInvalid
    kind = ErrorKind.Permanent


class SyncRejectedException(BaseStatusException):
    """Exception raised when the server reports ``success: false`` for a forced sync.

    Left untagged: the message decides whether it looks network-class.
    """
    status = Status.SyncRejected


def classify_error(ex: BaseException) -> ErrorKind:
    """Resolve whether an exception is transient or permanent.

    An explicit ``kind`` tag wins. Untagged exceptions of a known network type are
    transient. Anything else is transient only when its message contains one of
    :data:`NETWORK_ERROR_SIGNATURES`.

    Args:
        ex: The exception raised by a remote call.

    Returns:
        ErrorKind: The classification.
    """
    kind = getattr(ex, 'kind', None)
    if isinstance(kind, ErrorKind):
        return kind

    if isinstance(ex, (requests.ConnectionError, requests.Timeout,
                       ConnectionError, TimeoutError, socket.timeout)):
        return ErrorKind.Transient

    text = str(ex).lower()
    if any(sig in text for sig in NETWORK_ERROR_SIGNATURES):
        return ErrorKind.Transient
    return ErrorKind.Permanent
