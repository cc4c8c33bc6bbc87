from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import NamedTuple, Tuple

from .packet import Packet

logger = logging.getLogger(__name__)

RECV_BUFSIZE = 65535


class Address(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class Package:
    address: Address
    packet: Packet

    def __str__(self) -> str:
        return f"{self.packet} to/from {self.address}"


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    """Datagram endpoint shared by the receive and command loops.

    ``sendto`` and ``recvfrom`` on a UDP socket are independently thread-safe,
    so one loop may block in a receive while the other sends.
    """

    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def open(
        cls,
        timeout_ms: int = 0,
        broadcast: bool = False,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            if broadcast:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            if timeout_ms > 0:
                sock.settimeout(timeout_ms / 1000.0)
        except OSError:
            sock.close()
            raise
        return cls(sock, impairment)

    def sendto(self, data: bytes, addr: Tuple[str, int]) -> None:
        if self.impairment.should_drop():
            logger.debug("DROPPED outbound %d bytes to %s:%s", len(data), *addr)
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int = RECV_BUFSIZE) -> Tuple[bytes, Address]:
        data, addr = self.sock.recvfrom(bufsize)
        return data, Address(addr[0], addr[1])

    def close(self) -> None:
        self.sock.close()
