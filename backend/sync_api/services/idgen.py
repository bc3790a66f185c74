"""Time-ordered 64-bit identifier generator."""
from __future__ import annotations

import hashlib
import os
import socket
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

DEFAULT_EPOCH_MS = 1704067200000  # 2024-01-01T00:00:00Z

TIMESTAMP_BITS = 42
SHARD_BITS = 10
SEQUENCE_BITS = 12

MAX_SHARD = (1 << SHARD_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_TIMESTAMP = (1 << TIMESTAMP_BITS) - 1

SHARD_SHIFT = SEQUENCE_BITS
TIMESTAMP_SHIFT = SEQUENCE_BITS + SHARD_BITS

MACHINE_ID_ENV = "MACHINE_ID"


def _wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


def derive_machine_id(hostname: str | None = None) -> int:
    """Pick a shard id from ``MACHINE_ID`` or a hash of the host name."""

    configured = os.environ.get(MACHINE_ID_ENV)
    if configured:
        try:
            value = int(configured)
        except ValueError:
            value = None
        if value is not None and 0 <= value <= MAX_SHARD:
            return value

    name = hostname if hostname is not None else socket.gethostname()
    digest = hashlib.md5(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % (MAX_SHARD + 1)


@dataclass(frozen=True, slots=True)
class IdentifierParts:
    """Components recovered from a generated identifier."""

    timestamp_ms: int
    shard: int
    sequence: int


class IdentifierGenerator:
    """Issue unique ids laid out as ``time(42) | shard(10) | sequence(12)``.

    Safe to share between threads. The clock and sleep callables are
    injectable so rollback and overflow paths can be exercised in tests.
    """

    def __init__(
        self,
        shard_id: int | None = None,
        *,
        epoch_ms: int = DEFAULT_EPOCH_MS,
        clock: Callable[[], int] = _wall_clock_ms,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if shard_id is None:
            shard_id = derive_machine_id()
        if not 0 <= shard_id <= MAX_SHARD:
            raise ValueError(f"shard_id must be within 0..{MAX_SHARD}, got {shard_id}")
        self.shard_id = shard_id
        self.epoch_ms = epoch_ms
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._last_ms = -1
        self._sequence = 0

    def next(self) -> int:
        with self._lock:
            now = self._clock()

            # Never issue a time component below one already used.
            while now < self._last_ms:
                self._sleep((self._last_ms - now) / 1000)
                now = self._clock()

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    while now <= self._last_ms:
                        now = self._clock()
            else:
                self._sequence = 0

            self._last_ms = now
            offset = (now - self.epoch_ms) & MAX_TIMESTAMP
            return (offset << TIMESTAMP_SHIFT) | (self.shard_id << SHARD_SHIFT) | self._sequence

    def parse(self, identifier: int) -> IdentifierParts:
        return parse_identifier(identifier, epoch_ms=self.epoch_ms)


def parse_identifier(identifier: int, *, epoch_ms: int = DEFAULT_EPOCH_MS) -> IdentifierParts:
    """Split ``identifier`` back into absolute timestamp, shard and sequence."""

    if identifier < 0:
        raise ValueError("identifiers are non-negative")
    return IdentifierParts(
        timestamp_ms=(identifier >> TIMESTAMP_SHIFT) + epoch_ms,
        shard=(identifier >> SHARD_SHIFT) & MAX_SHARD,
        sequence=identifier & MAX_SEQUENCE,
    )
