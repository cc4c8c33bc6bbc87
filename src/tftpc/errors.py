from __future__ import annotations


class TftpError(Exception):
    pass


class PacketEncodeError(TftpError, ValueError):
    """A message could not be assembled into one datagram."""


class MalformedPacketError(TftpError, ValueError):
    """An inbound datagram is not a well-formed TFTP packet."""


class ConnectError(TftpError):
    pass


class TransferError(TftpError):
    pass


class TransferTimeout(TransferError):
    pass


class RemoteError(TransferError):
    def __init__(self, code: int, message: str):
        super().__init__(f"server error {code}: {message}")
        self.code = code
        self.message = message


class UsageError(TftpError, ValueError):
    """A command line does not match the command vocabulary."""
