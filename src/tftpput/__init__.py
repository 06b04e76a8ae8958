"""TFTP upload client (RFC 1350, write requests only).

- packet framing lives in ``packet``, separate from the client state machine
- the client is driven entirely by timer and socket callbacks on one event loop
- timing and transport are injectable, so the state machine is testable
  without a network
"""

from .client import ClientConfig, ClientState, TftpClient, upload
from .errors import (
    AlreadyRunningError,
    FileUnreadableError,
    ProtocolViolationError,
    RemoteError,
    TftpError,
    TransferTimeoutError,
    TransportFailureError,
)
from .observer import TftpClientObserver, TransferStats
from .packet import TransmissionMode

__all__ = [
    "AlreadyRunningError",
    "ClientConfig",
    "ClientState",
    "FileUnreadableError",
    "ProtocolViolationError",
    "RemoteError",
    "TftpClient",
    "TftpClientObserver",
    "TftpError",
    "TransferStats",
    "TransferTimeoutError",
    "TransmissionMode",
    "TransportFailureError",
    "upload",
]
