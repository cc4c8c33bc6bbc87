"""The two long-lived loops behind a running client.

:class:`ReceiveLoop` turns inbound datagrams into packages on the inbound
mailbox. :class:`CommandLoop` drains queued commands every quantum and runs
them one at a time. Both stop when the shared ``running`` event is cleared and
call ``on_exit`` when they stop on their own.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .commands import Command
from .errors import MalformedPacketError, TftpError
from .mailbox import Mailbox
from .net import Package, UdpEndpoint
from .packet import Packet

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReceiveLoop:
    endpoint: UdpEndpoint
    inbox: Mailbox[Package]
    running: threading.Event
    on_exit: Callable[[], None]

    def run(self) -> None:
        try:
            self._loop()
        finally:
            self.on_exit()

    def _loop(self) -> None:
        while self.running.is_set():
            try:
                raw, addr = self.endpoint.recvfrom()
            except TimeoutError:
                continue
            except OSError as exc:
                if self.running.is_set():
                    logger.error("receive failed: %s", exc)
                return

            try:
                packet = Packet.from_bytes(raw)
            except MalformedPacketError as exc:
                logger.warning("dropping malformed datagram from %s: %s", addr, exc)
                continue

            logger.debug("recv %s from %s", packet, addr)
            self.inbox.put(Package(addr, packet))


@dataclass(slots=True)
class CommandLoop:
    commands: Mailbox[Command]
    execute: Callable[[Command], Any]
    running: threading.Event
    on_exit: Callable[[], None]
    quantum_s: float
    sleep: Callable[[float], None] = field(default=time.sleep)

    def run(self) -> None:
        try:
            self._loop()
        finally:
            self.on_exit()

    def _loop(self) -> None:
        while self.running.is_set():
            self.sleep(self.quantum_s)
            for command in self.commands.drain():
                if not self.running.is_set():
                    logger.warning("client stopped; discarding %s", command)
                    continue
                self._run_one(command)

    def _run_one(self, command: Command) -> None:
        logger.debug("executing %s", command)
        try:
            self.execute(command)
        except (TftpError, OSError) as exc:
            logger.error("failed to execute %s: %s", command, exc)
