from __future__ import annotations

import enum
import ntpath
import posixpath
import shlex
from dataclasses import dataclass
from typing import Union

from .errors import UsageError
from .packet import TransferMode

USAGE = """\
commands:
  get <remote-file> [local-file]   fetch a file from the server
  put <local-file> [remote-file]   store a file on the server
  mode [netascii|octet]            show or set the transfer mode
  quit                             finish queued transfers and exit
  help                             show this text"""


class CommandKind(enum.Enum):
    GET = "get"
    PUT = "put"
    QUIT = "quit"


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    source: str = ""
    destination: str = ""

    @classmethod
    def get(cls, remote: str, local: str | None = None) -> "Command":
        return cls(CommandKind.GET, remote, local or _basename(remote))

    @classmethod
    def put(cls, local: str, remote: str | None = None) -> "Command":
        return cls(CommandKind.PUT, local, remote or _basename(local))

    @classmethod
    def quit(cls) -> "Command":
        return cls(CommandKind.QUIT)

    def __str__(self) -> str:
        if self.kind is CommandKind.QUIT:
            return "quit"
        return f"{self.kind.value} {self.source} -> {self.destination}"


@dataclass(frozen=True, slots=True)
class ModeRequest:
    mode: TransferMode | None = None  # None: show the current mode


@dataclass(frozen=True, slots=True)
class HelpRequest:
    pass


Line = Union[Command, ModeRequest, HelpRequest]


def _basename(path: str) -> str:
    # remote names may use either separator
    return ntpath.basename(posixpath.basename(path)) or path


def parse_line(line: str) -> Line | None:
    """Parse one line of user input; blank lines yield ``None``."""
    try:
        words = shlex.split(line)
    except ValueError as exc:
        raise UsageError(str(exc)) from None
    if not words:
        return None

    verb, args = words[0].lower(), words[1:]
    match verb, len(args):
        case "get", 1 | 2:
            return Command.get(*args)
        case "put", 1 | 2:
            return Command.put(*args)
        case "mode", 0:
            return ModeRequest()
        case "mode", 1:
            try:
                return ModeRequest(TransferMode(args[0].lower()))
            except ValueError:
                raise UsageError(f"unknown mode {args[0]!r}; use netascii or octet") from None
        case "quit" | "exit", 0:
            return Command.quit()
        case "help" | "?", 0:
            return HelpRequest()
    raise UsageError(f"cannot parse {line.strip()!r}")
