from __future__ import annotations

import socket
import threading

import pytest

from tftpc.client import TftpClient
from tftpc.commands import Command
from tftpc.config import ClientConfig
from tftpc.errors import ConnectError, TftpError, TransferError
from tftpc.net import Address
from tftpc.packet import (
    Ack,
    Data,
    ErrorCode,
    Packet,
    ReadRequest,
    TransferMode,
    WriteRequest,
    build_ack,
    build_data,
    build_error,
    decode,
)


class LoopbackServer:
    """A minimal RFC 1350 server that answers each request from a fresh port."""

    def __init__(self, files: dict[str, bytes]):
        self.files = dict(files)
        self.uploads: dict[str, bytes] = {}
        self.modes: list[TransferMode] = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(0.1)
        self.address = Address(*self.sock.getsockname())
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def __enter__(self) -> "LoopbackServer":
        self._thread.start()
        return self

    def __exit__(self, *exc) -> None:
        self._stop.set()
        self._thread.join(timeout=5)
        self.sock.close()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                raw, client = self.sock.recvfrom(65535)
            except socket.timeout:
                continue
            request = decode(Packet.from_bytes(raw))
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as tid:
                tid.bind(("127.0.0.1", 0))
                tid.settimeout(1.0)
                if isinstance(request, ReadRequest):
                    self.modes.append(request.mode)
                    self._send_file(tid, client, request.filename)
                elif isinstance(request, WriteRequest):
                    self.modes.append(request.mode)
                    self._receive_file(tid, client, request.filename)

    def _exchange(self, tid, client, packet, expect):
        for _ in range(4):
            tid.sendto(packet.to_bytes(), client)
            try:
                raw, _ = tid.recvfrom(65535)
            except socket.timeout:
                continue
            reply = decode(Packet.from_bytes(raw))
            if reply == expect or (isinstance(expect, type) and isinstance(reply, expect)):
                return reply
        return None

    def _send_file(self, tid, client, name):
        if name not in self.files:
            tid.sendto(build_error(ErrorCode.FILE_NOT_FOUND, "File not found").to_bytes(), client)
            return
        content = self.files[name]
        for i, start in enumerate(range(0, len(content) + 1, 512), start=1):
            if self._exchange(tid, client, build_data(i, content[start : start + 512]), Ack(i)) is None:
                return

    def _receive_file(self, tid, client, name):
        chunks = []
        block = 0
        while True:
            reply = self._exchange(tid, client, build_ack(block), Data)
            if reply is None:
                return
            if reply.block == block + 1:
                chunks.append(reply.payload)
                block += 1
            if len(reply.payload) < 512:
                break
        tid.sendto(build_ack(block).to_bytes(), client)
        self.uploads[name] = b"".join(chunks)


def fast_config(port: int) -> ClientConfig:
    return ClientConfig(
        port=port,
        timeout_ms=300,
        poll_ms=5,
        quantum_ms=5,
        attempts=3,
        receive_timeout_ms=50,
        broadcast=False,
    )


def test_transfers_over_loopback(tmp_path):
    report = bytes(range(256)) * 6  # 1536 bytes, exact multiple of 512
    local = tmp_path / "notes.txt"
    local.write_bytes(b"0123456789")

    with LoopbackServer({"report.txt": report, "small.txt": b"hi"}) as server:
        client = TftpClient(fast_config(server.address.port))
        client.connect(server.address)
        client.mode = "octet"

        client.get("report.txt", str(tmp_path / "report.txt"))
        client.put(str(local), "notes.txt")
        client.get("missing.txt", str(tmp_path / "missing.txt"))
        client.get("small.txt", str(tmp_path / "small.txt"))
        client.quit()

        runner = threading.Thread(target=client.run, daemon=True)
        runner.start()
        runner.join(timeout=20)

        assert not runner.is_alive()
        assert not client.is_running()

    assert (tmp_path / "report.txt").read_bytes() == report
    assert server.uploads == {"notes.txt": b"0123456789"}
    assert (tmp_path / "small.txt").read_bytes() == b"hi"
    assert (tmp_path / "missing.txt").read_bytes() == b""
    assert server.modes == [TransferMode.OCTET] * 4


class FakeEndpoint:
    def __init__(self):
        self.sent = []
        self.closed = 0

    def sendto(self, data, addr):
        self.sent.append((data, addr))

    def recvfrom(self):
        raise OSError("closed")

    def close(self):
        self.closed += 1


def test_connect_failure_leaves_client_idle():
    def broken(config):
        raise OSError("no sockets left")

    client = TftpClient(endpoint_factory=broken)
    with pytest.raises(ConnectError):
        client.connect("192.0.2.1")

    assert not client.is_running()
    assert client.endpoint is None
    assert client.server is None


def test_connect_resolves_server_name_or_fails_idle(monkeypatch):
    endpoint = FakeEndpoint()
    names = {"tftp.example": "192.0.2.7"}

    def resolve(host):
        if host in names:
            return names[host]
        raise socket.gaierror("name not known")

    monkeypatch.setattr(socket, "gethostbyname", resolve)

    client = TftpClient(endpoint_factory=lambda config: endpoint)
    with pytest.raises(ConnectError):
        client.connect("nowhere.example")
    assert not client.is_running()
    assert client.server is None

    client.connect("tftp.example")
    assert client.server == Address("192.0.2.7", 69)


def test_connect_uses_configured_port_and_terminate_is_idempotent():
    endpoint = FakeEndpoint()
    client = TftpClient(ClientConfig(port=6969), endpoint_factory=lambda config: endpoint)
    client.connect("192.0.2.1")

    assert client.is_running()
    assert client.server == Address("192.0.2.1", 6969)
    with pytest.raises(ConnectError):
        client.connect("192.0.2.1")

    client.terminate()
    client.terminate()
    assert not client.is_running()
    assert endpoint.closed == 1


def test_run_requires_connect():
    with pytest.raises(TftpError):
        TftpClient().run()


def test_put_of_missing_file_fails_before_network(tmp_path):
    endpoint = FakeEndpoint()
    client = TftpClient(endpoint_factory=lambda config: endpoint)
    client.connect("192.0.2.1")

    with pytest.raises(TransferError):
        client.execute(Command.put(str(tmp_path / "absent.bin")))

    assert endpoint.sent == []


def test_quit_command_terminates():
    endpoint = FakeEndpoint()
    client = TftpClient(endpoint_factory=lambda config: endpoint)
    client.connect("192.0.2.1")

    assert client.execute(Command.quit()) is None
    assert not client.is_running()


def test_mode_property():
    client = TftpClient()
    assert client.mode is TransferMode.NETASCII
    client.mode = "octet"
    assert client.mode is TransferMode.OCTET
    with pytest.raises(ValueError):
        client.mode = "mail"
