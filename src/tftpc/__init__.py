"""tftpc: a TFTP (RFC 1350) client.

The package keeps the wire codec, the lock-step transfer state machines and
the threaded dispatch loops in separate modules so each can be tested alone.
"""

from .client import TftpClient
from .commands import Command, CommandKind
from .config import ClientConfig
from .errors import (
    ConnectError,
    MalformedPacketError,
    PacketEncodeError,
    RemoteError,
    TftpError,
    TransferError,
    TransferTimeout,
)
from .net import Address
from .packet import TransferMode

__all__ = [
    "Address",
    "ClientConfig",
    "Command",
    "CommandKind",
    "ConnectError",
    "MalformedPacketError",
    "PacketEncodeError",
    "RemoteError",
    "TftpClient",
    "TftpError",
    "TransferError",
    "TransferMode",
    "TransferTimeout",
]
