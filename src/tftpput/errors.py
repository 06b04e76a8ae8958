from __future__ import annotations

from .constants import (
    ERR_ALREADY_RUNNING,
    ERR_FILE_READ,
    ERR_INVALID_PACKET,
    ERR_TIMEOUT,
    ERR_TRANSPORT,
)


class TftpError(Exception):
    """Base class for every failure reported by the client."""

    default_code = -1

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = self.default_code if code is None else code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class AlreadyRunningError(TftpError):
    default_code = ERR_ALREADY_RUNNING

    def __init__(self) -> None:
        super().__init__("Could not send file (client is already running)")


class FileUnreadableError(TftpError):
    default_code = ERR_FILE_READ


class TransferTimeoutError(TftpError):
    default_code = ERR_TIMEOUT

    def __init__(self, message: str = "Timeout") -> None:
        super().__init__(message)


class ProtocolViolationError(TftpError):
    default_code = ERR_INVALID_PACKET


class RemoteError(TftpError):
    """The server answered with an ERROR packet; code and message are verbatim."""


class TransportFailureError(TftpError):
    default_code = ERR_TRANSPORT
