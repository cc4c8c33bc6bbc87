from __future__ import annotations

import io

import pytest

from tftpc.cli import build_parser, command_prompt, config_from_args
from tftpc.client import TftpClient
from tftpc.commands import Command, CommandKind, HelpRequest, ModeRequest, parse_line
from tftpc.errors import UsageError
from tftpc.net import Impairment
from tftpc.packet import TransferMode


@pytest.mark.parametrize(
    "line, expected",
    [
        ("get report.txt", Command(CommandKind.GET, "report.txt", "report.txt")),
        ("get dir/report.txt", Command(CommandKind.GET, "dir/report.txt", "report.txt")),
        ("get report.txt copy.txt", Command(CommandKind.GET, "report.txt", "copy.txt")),
        ("put /tmp/a.bin", Command(CommandKind.PUT, "/tmp/a.bin", "a.bin")),
        ('put "my file" remote', Command(CommandKind.PUT, "my file", "remote")),
        ("QUIT", Command.quit()),
        ("mode", ModeRequest()),
        ("mode OCTET", ModeRequest(TransferMode.OCTET)),
        ("help", HelpRequest()),
        ("   ", None),
    ],
)
def test_parse_line(line, expected):
    assert parse_line(line) == expected


@pytest.mark.parametrize("line", ["get", "put a b c", "mode mail", "fetch x", 'get "open'])
def test_parse_line_rejects(line):
    with pytest.raises(UsageError):
        parse_line(line)


class NullEndpoint:
    def sendto(self, data, addr):
        pass

    def close(self):
        pass


def test_prompt_queues_commands_and_sets_mode():
    client = TftpClient(endpoint_factory=lambda config: NullEndpoint())
    client.connect("192.0.2.1")
    stdin = io.StringIO("mode octet\nbogus\nget a.txt b.txt\nquit\nget never\n")
    stdout = io.StringIO()

    command_prompt(client, stdin, stdout)

    assert client.mode is TransferMode.OCTET
    assert client.commands.drain() == [Command.get("a.txt", "b.txt"), Command.quit()]
    assert "mode: octet" in stdout.getvalue()
    assert "commands:" in stdout.getvalue()


def test_prompt_quits_on_eof():
    client = TftpClient(endpoint_factory=lambda config: NullEndpoint())
    client.connect("192.0.2.1")

    command_prompt(client, io.StringIO(""), io.StringIO())

    assert client.commands.drain() == [Command.quit()]


def test_config_from_args():
    args = build_parser().parse_args(
        ["10.0.0.5", "--port", "6969", "--mode", "octet", "--attempts", "6", "--loss-rate", "0.2", "--no-broadcast"]
    )
    config = config_from_args(args)

    assert args.host == "10.0.0.5"
    assert config.port == 6969
    assert config.mode is TransferMode.OCTET
    assert config.attempts == 6
    assert config.broadcast is False
    assert config.impairment == Impairment(0.2, 0)
