"""Lock-step GET and PUT state machines.

Both directions share one driver, :class:`Transfer`: send the outstanding
packet, poll the inbound mailbox until a matching reply or the timeout, and
either advance or resend the same packet. Subclasses only say what to send
first, which reply they accept, and what comes next.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import BinaryIO, Callable

from .config import ClientConfig
from .constants import BLOCK_MODULUS, DATA_SIZE
from .errors import RemoteError, TransferTimeout
from .mailbox import Mailbox
from .net import Address, Package, UdpEndpoint
from .packet import (
    Opcode,
    Packet,
    TransferMode,
    build_ack,
    build_data,
    build_read_request,
    build_write_request,
    decode,
)

logger = logging.getLogger(__name__)


def next_block(block: int) -> int:
    return (block + 1) % BLOCK_MODULUS


@dataclass(slots=True)
class Metrics:
    packets_sent: int = 0
    bytes_transferred: int = 0
    timeouts: int = 0
    retransmits: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


class Transfer(ABC):
    def __init__(
        self,
        endpoint: UdpEndpoint,
        inbox: Mailbox[Package],
        server: Address,
        config: ClientConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.endpoint = endpoint
        self.inbox = inbox
        self.server = server
        self.config = config
        self.sleep = sleep
        self.peer: Address | None = None
        self.metrics = Metrics()

    @abstractmethod
    def initial_request(self) -> Packet:
        ...

    @abstractmethod
    def accepts(self, packet: Packet) -> bool:
        ...

    @abstractmethod
    def advance(self, packet: Packet) -> tuple[Packet | None, bool]:
        """Consume an accepted reply.

        Returns the next packet to send (or ``None``) and whether the transfer
        is complete. A packet returned together with ``done`` is sent once.
        """

    def run(self) -> Metrics:
        outstanding = Package(self.server, self.initial_request())
        attempts = self.config.attempts

        while attempts > 0:
            self._send(outstanding)

            reply = self._await_reply()
            if reply is None:
                attempts -= 1
                self.metrics.timeouts += 1
                if attempts > 0:
                    self.metrics.retransmits += 1
                    logger.warning("timeout; resending %s (%d attempts left)", outstanding, attempts)
                continue

            attempts = self.config.attempts
            self.peer = reply.address
            packet, done = self.advance(reply.packet)
            if packet is not None:
                outstanding = Package(self.peer, packet)
            if done:
                if packet is not None:
                    self._send(outstanding)
                self.metrics.end_ts = time.monotonic()
                return self.metrics

        raise TransferTimeout(f"no reply after {self.config.attempts} attempts; last sent {outstanding}")

    def _send(self, package: Package) -> None:
        logger.debug("send %s", package)
        self.endpoint.sendto(package.packet.to_bytes(), package.address)
        self.metrics.packets_sent += 1

    def _await_reply(self) -> Package | None:
        waited_ms = 0
        while waited_ms < self.config.timeout_ms:
            reply = self._take_reply()
            if reply is not None:
                return reply
            self.sleep(self.config.poll_ms / 1000.0)
            waited_ms += self.config.poll_ms
        # a reply may have landed during the last slice
        return self._take_reply()

    def _take_reply(self) -> Package | None:
        reply: Package | None = None
        for package in self.inbox.drain():
            if reply is None and self._expected(package):
                reply = package
                continue
            if reply is not None:
                logger.warning("dropping packet after match: %s", package)
        return reply

    def _expected(self, package: Package) -> bool:
        packet = package.packet
        if packet.opcode is Opcode.ERROR and package.address in (self.server, self.peer):
            self._raise_remote(packet)

        if self.peer is None:
            if not self.config.broadcast and package.address.host != self.server.host:
                logger.warning("dropping packet from unexpected host %s: %s", package.address, packet)
                return False
        elif package.address != self.peer:
            logger.warning("dropping packet from unknown transfer id %s: %s", package.address, packet)
            return False

        if packet.opcode is Opcode.ERROR:
            self._raise_remote(packet)

        if not self.accepts(packet):
            logger.warning("unexpected packet, dropping: %s", package)
            return False
        return True

    def _raise_remote(self, packet: Packet) -> None:
        error = decode(packet)
        raise RemoteError(error.code, error.message)  # type: ignore[union-attr]


class GetTransfer(Transfer):
    """Fetch ``remote_name`` from the server into ``sink``."""

    def __init__(
        self,
        endpoint: UdpEndpoint,
        inbox: Mailbox[Package],
        server: Address,
        config: ClientConfig,
        remote_name: str,
        sink: BinaryIO,
        mode: TransferMode = TransferMode.NETASCII,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(endpoint, inbox, server, config, sleep)
        self.remote_name = remote_name
        self.sink = sink
        self.mode = mode
        self.block = 1

    def initial_request(self) -> Packet:
        return build_read_request(self.remote_name, self.mode)

    def accepts(self, packet: Packet) -> bool:
        return packet.opcode is Opcode.DATA and packet.block == self.block

    def advance(self, packet: Packet) -> tuple[Packet | None, bool]:
        payload = packet.payload
        self.sink.write(payload)
        self.metrics.bytes_transferred += len(payload)

        ack = build_ack(self.block)
        self.block = next_block(self.block)
        done = len(payload) < DATA_SIZE
        if done:
            self.sink.flush()
            logger.info("received %r: %d bytes", self.remote_name, self.metrics.bytes_transferred)
        return ack, done


class PutTransfer(Transfer):
    """Store ``source`` on the server as ``remote_name``."""

    def __init__(
        self,
        endpoint: UdpEndpoint,
        inbox: Mailbox[Package],
        server: Address,
        config: ClientConfig,
        remote_name: str,
        source: BinaryIO,
        mode: TransferMode = TransferMode.NETASCII,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(endpoint, inbox, server, config, sleep)
        self.remote_name = remote_name
        self.source = source
        self.mode = mode
        self.block = 0
        self.final_sent = False

    def initial_request(self) -> Packet:
        return build_write_request(self.remote_name, self.mode)

    def accepts(self, packet: Packet) -> bool:
        return packet.opcode is Opcode.ACK and packet.block == self.block

    def advance(self, packet: Packet) -> tuple[Packet | None, bool]:
        if self.final_sent:
            logger.info("sent %r: %d bytes", self.remote_name, self.metrics.bytes_transferred)
            return None, True

        chunk = self.source.read(DATA_SIZE)
        self.block = next_block(self.block)
        self.final_sent = len(chunk) < DATA_SIZE
        self.metrics.bytes_transferred += len(chunk)
        return build_data(self.block, chunk), False
