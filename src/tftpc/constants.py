from __future__ import annotations

DEFAULT_PORT = 69

DATAGRAM_SIZE = 516
HEADER_SIZE = 4
DATA_SIZE = 512  # a shorter DATA payload ends the transfer
BLOCK_MODULUS = 0x10000
WORD_MAX = 0xFFFF

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

DEFAULT_TIMEOUT_MS = 1000
DEFAULT_POLL_MS = 25
DEFAULT_QUANTUM_MS = 25
DEFAULT_ATTEMPTS = 4
DEFAULT_RECEIVE_TIMEOUT_MS = 250
