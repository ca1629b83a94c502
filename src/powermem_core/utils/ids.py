"""Snowflake-style identifier generation."""

import threading
import time

# 2020-01-01T00:00:00Z
EPOCH_MS = 1577836800000

WORKER_ID_BITS = 5
DATACENTER_ID_BITS = 5
SEQUENCE_BITS = 12

MAX_WORKER_ID = (1 << WORKER_ID_BITS) - 1
MAX_DATACENTER_ID = (1 << DATACENTER_ID_BITS) - 1
SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1

WORKER_ID_SHIFT = SEQUENCE_BITS
DATACENTER_ID_SHIFT = SEQUENCE_BITS + WORKER_ID_BITS
TIMESTAMP_SHIFT = SEQUENCE_BITS + WORKER_ID_BITS + DATACENTER_ID_BITS


class SnowflakeIdGenerator:
    """Generate monotonically increasing, time-sortable 63-bit ids.

    Ids are returned as decimal strings so they survive JSON round trips and
    fit a signed 64-bit INTEGER column. One generator is meant to be created
    per process and handed to the components that need it.
    """

    def __init__(self, datacenter_id: int = 0, worker_id: int = 0):
        if not 0 <= worker_id <= MAX_WORKER_ID:
            raise ValueError(f"worker_id must be between 0 and {MAX_WORKER_ID}")
        if not 0 <= datacenter_id <= MAX_DATACENTER_ID:
            raise ValueError(f"datacenter_id must be between 0 and {MAX_DATACENTER_ID}")
        self.worker_id = worker_id
        self.datacenter_id = datacenter_id
        self._last_timestamp = -1
        self._sequence = 0
        self._lock = threading.Lock()

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    def _wait_next_ms(self, last_timestamp: int) -> int:
        ts = self._now_ms()
        while ts <= last_timestamp:
            ts = self._now_ms()
        return ts

    def next_id(self) -> str:
        """Return the next id as a decimal string."""
        with self._lock:
            timestamp = self._now_ms()
            if timestamp < self._last_timestamp:
                # Clock moved backwards
                timestamp = self._last_timestamp

            if timestamp == self._last_timestamp:
                self._sequence = (self._sequence + 1) & SEQUENCE_MASK
                if self._sequence == 0:
                    timestamp = self._wait_next_ms(self._last_timestamp)
            else:
                self._sequence = 0

            self._last_timestamp = timestamp
            value = (
                ((timestamp - EPOCH_MS) << TIMESTAMP_SHIFT)
                | (self.datacenter_id << DATACENTER_ID_SHIFT)
                | (self.worker_id << WORKER_ID_SHIFT)
                | self._sequence
            )
            return str(value)

    @staticmethod
    def timestamp_of(id_value: str) -> float:
        """Recover the creation time (epoch seconds) encoded in an id."""
        return ((int(id_value) >> TIMESTAMP_SHIFT) + EPOCH_MS) / 1000.0
