from __future__ import annotations

from dataclasses import dataclass, field

from .constants import (
    DEFAULT_ATTEMPTS,
    DEFAULT_POLL_MS,
    DEFAULT_PORT,
    DEFAULT_QUANTUM_MS,
    DEFAULT_RECEIVE_TIMEOUT_MS,
    DEFAULT_TIMEOUT_MS,
)
from .net import Impairment
from .packet import TransferMode


@dataclass(frozen=True, slots=True)
class ClientConfig:
    port: int = DEFAULT_PORT
    mode: TransferMode = TransferMode.NETASCII
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    poll_ms: int = DEFAULT_POLL_MS
    quantum_ms: int = DEFAULT_QUANTUM_MS
    attempts: int = DEFAULT_ATTEMPTS
    receive_timeout_ms: int = DEFAULT_RECEIVE_TIMEOUT_MS
    broadcast: bool = True
    impairment: Impairment = field(default_factory=Impairment)

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {self.attempts}")
        if self.poll_ms <= 0 or self.quantum_ms <= 0:
            raise ValueError("poll_ms and quantum_ms must be positive")
        if self.timeout_ms < self.poll_ms:
            raise ValueError(f"timeout_ms ({self.timeout_ms}) is shorter than one poll slice ({self.poll_ms})")
        object.__setattr__(self, "mode", TransferMode(self.mode))
