from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Callable

from .commands import Command, CommandKind
from .config import ClientConfig
from .dispatch import CommandLoop, ReceiveLoop
from .errors import ConnectError, TftpError, TransferError
from .mailbox import Mailbox
from .net import Address, Package, UdpEndpoint
from .packet import TransferMode
from .transfer import GetTransfer, Metrics, PutTransfer

logger = logging.getLogger(__name__)


class TftpClient:
    """A long-running TFTP client.

    ``connect`` opens the endpoint, ``run`` blocks in the receive and command
    loops, and ``submit`` queues work from any thread. Transfers run strictly
    one after another in submission order.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        endpoint_factory: Callable[[ClientConfig], UdpEndpoint] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or ClientConfig()
        self._endpoint_factory = endpoint_factory or _open_endpoint
        self._sleep = sleep
        self._mode = self.config.mode
        self._running = threading.Event()
        self._state_lock = threading.Lock()
        self.server: Address | None = None
        self.endpoint: UdpEndpoint | None = None
        self.inbox: Mailbox[Package] = Mailbox()
        self.commands: Mailbox[Command] = Mailbox()

    @property
    def mode(self) -> TransferMode:
        return self._mode

    @mode.setter
    def mode(self, value: TransferMode | str) -> None:
        self._mode = TransferMode(value)

    def is_running(self) -> bool:
        return self._running.is_set()

    def connect(self, server: Address | tuple[str, int] | str) -> None:
        if isinstance(server, str):
            server = Address(server, self.config.port)
        server = Address(*server)

        with self._state_lock:
            if self._running.is_set():
                raise ConnectError(f"already connected to {self.server}")
            logger.info("connecting to %s", server)
            try:
                # replies carry a numeric source address
                server = Address(socket.gethostbyname(server.host), server.port)
            except OSError as exc:
                raise ConnectError(f"cannot resolve {server.host!r}: {exc}") from exc
            try:
                endpoint = self._endpoint_factory(self.config)
            except OSError as exc:
                raise ConnectError(f"failed to open endpoint: {exc}") from exc

            self.endpoint = endpoint
            self.server = server
            self._running.set()
        logger.info("ready; server %s, mode %s", server, self._mode.value)

    def submit(self, command: Command) -> None:
        self.commands.put(command)

    def get(self, remote: str, local: str | None = None) -> None:
        self.submit(Command.get(remote, local))

    def put(self, local: str, remote: str | None = None) -> None:
        self.submit(Command.put(local, remote))

    def quit(self) -> None:
        self.submit(Command.quit())

    def run(self) -> None:
        if not self._running.is_set() or self.endpoint is None:
            raise TftpError("run() called before connect()")

        receiver = ReceiveLoop(self.endpoint, self.inbox, self._running, self.terminate)
        executor = CommandLoop(
            self.commands,
            self.execute,
            self._running,
            self.terminate,
            self.config.quantum_ms / 1000.0,
            self._sleep,
        )
        threads = [
            threading.Thread(target=receiver.run, name="tftp-receive", daemon=True),
            threading.Thread(target=executor.run, name="tftp-command", daemon=True),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        logger.info("client stopped")

    def terminate(self) -> None:
        with self._state_lock:
            if not self._running.is_set():
                return
            logger.info("terminating")
            self._running.clear()
            if self.endpoint is not None:
                self.endpoint.close()

    def execute(self, command: Command) -> Metrics | None:
        """Run one command to completion on the calling thread."""
        match command.kind:
            case CommandKind.GET:
                return self._get(command.source, command.destination)
            case CommandKind.PUT:
                return self._put(command.source, command.destination)
            case CommandKind.QUIT:
                logger.info("quit requested")
                self.terminate()
                return None
        raise TftpError(f"unknown command {command!r}")

    def _get(self, remote: str, local: str) -> Metrics:
        assert self.endpoint is not None and self.server is not None
        try:
            sink = open(local, "wb")
        except OSError as exc:
            raise TransferError(f"cannot open {local!r} for writing: {exc}") from exc

        self.inbox.drain()  # stale replies from an earlier transfer
        with sink:
            transfer = GetTransfer(
                self.endpoint,
                self.inbox,
                self.server,
                self.config,
                remote,
                sink,
                mode=self._mode,
                sleep=self._sleep,
            )
            metrics = transfer.run()
        _log_done("get", remote, metrics)
        return metrics

    def _put(self, local: str, remote: str) -> Metrics:
        assert self.endpoint is not None and self.server is not None
        try:
            source = open(local, "rb")
        except OSError as exc:
            raise TransferError(f"cannot open {local!r} for reading: {exc}") from exc

        self.inbox.drain()
        with source:
            transfer = PutTransfer(
                self.endpoint,
                self.inbox,
                self.server,
                self.config,
                remote,
                source,
                mode=self._mode,
                sleep=self._sleep,
            )
            metrics = transfer.run()
        _log_done("put", remote, metrics)
        return metrics


def _open_endpoint(config: ClientConfig) -> UdpEndpoint:
    return UdpEndpoint.open(
        timeout_ms=config.receive_timeout_ms,
        broadcast=config.broadcast,
        impairment=config.impairment,
    )


def _log_done(verb: str, name: str, metrics: Metrics) -> None:
    logger.info(
        "%s %r done: %d bytes in %.3fs (%.2f Mbps, %d timeouts, %d retransmits)",
        verb,
        name,
        metrics.bytes_transferred,
        metrics.duration_s,
        metrics.throughput_mbps,
        metrics.timeouts,
        metrics.retransmits,
    )
