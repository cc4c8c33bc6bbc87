from __future__ import annotations

import argparse
import logging
import sys
import threading
from typing import TextIO

from .client import TftpClient
from .commands import USAGE, Command, HelpRequest, ModeRequest, parse_line
from .config import ClientConfig
from .constants import DEFAULT_ATTEMPTS, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .errors import ConnectError, UsageError
from .net import Address, Impairment
from .packet import TransferMode


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tftpc", description="Interactive TFTP client (RFC 1350).")
    p.add_argument("host", nargs="?", default="127.0.0.1", help="server address (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=DEFAULT_PORT)
    p.add_argument("--mode", choices=[m.value for m in TransferMode], default=TransferMode.NETASCII.value)
    p.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS, help="wait per attempt")
    p.add_argument("--attempts", type=int, default=DEFAULT_ATTEMPTS, help="sends per packet before giving up")
    p.add_argument("--loss-rate", type=float, default=0.0, help="simulate outbound packet loss")
    p.add_argument("--delay-ms", type=int, default=0, help="simulate outbound send delay")
    p.add_argument("--no-broadcast", dest="broadcast", action="store_false")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return p


def config_from_args(args: argparse.Namespace) -> ClientConfig:
    return ClientConfig(
        port=args.port,
        mode=TransferMode(args.mode),
        timeout_ms=args.timeout_ms,
        attempts=args.attempts,
        broadcast=args.broadcast,
        impairment=Impairment(args.loss_rate, args.delay_ms),
    )


def command_prompt(client: TftpClient, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> None:
    """Read user lines and hand them to the client until quit or EOF."""
    while client.is_running():
        line = stdin.readline()
        if not line:
            client.quit()
            return
        try:
            parsed = parse_line(line)
        except UsageError as exc:
            print(f"{exc}\n{USAGE}", file=stdout)
            continue

        match parsed:
            case None:
                continue
            case HelpRequest():
                print(USAGE, file=stdout)
            case ModeRequest(None):
                print(f"mode: {client.mode.value}", file=stdout)
            case ModeRequest(mode):
                client.mode = mode
                print(f"mode: {client.mode.value}", file=stdout)
            case Command() as command:
                client.submit(command)
                if command == Command.quit():
                    return


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        config = config_from_args(args)
    except ValueError as exc:
        logging.error("invalid settings: %s", exc)
        return 2

    client = TftpClient(config)
    try:
        client.connect(Address(args.host, args.port))
    except ConnectError as exc:
        logging.error("%s", exc)
        return 1

    prompt = threading.Thread(target=command_prompt, args=(client,), name="tftp-prompt", daemon=True)
    prompt.start()
    try:
        client.run()
    except KeyboardInterrupt:
        client.terminate()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
