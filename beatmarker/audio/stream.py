"""Ring buffer feeding fixed-size analysis frames from live audio."""

from __future__ import annotations

import logging
import threading

import numpy as np

logger = logging.getLogger(__name__)

_DEFAULT_CAPACITY = 4096


class RingBuffer:
    """Fixed-capacity circular sample store with separate read/write cursors.

    The writer (audio callback) appends blocks of any size; the reader pulls
    overlapping frames and advances by a hop. When the writer outruns the
    reader the oldest unread samples are overwritten and counted in
    :attr:`dropped_samples`; writing never fails.

    Parameters
    ----------
    capacity:
        Number of samples the buffer can hold. Defaults to 4096.
    """

    def __init__(self, capacity: int = _DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._buffer = np.zeros(capacity, dtype=np.float32)
        # Absolute sample counts; positions in the buffer are taken mod capacity.
        self._write_count = 0
        self._read_count = 0
        self._dropped = 0
        self._last_frame_start = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writer side
    # ------------------------------------------------------------------

    def write(self, samples: np.ndarray) -> int:
        """Append samples, returning how many unread samples were dropped."""
        samples = np.asarray(samples, dtype=np.float32).ravel()
        n = len(samples)
        if n == 0:
            return 0

        with self._lock:
            if n > self._capacity:
                # Only the tail can ever be read back.
                skipped = n - self._capacity
                samples = samples[skipped:]
                self._write_count += skipped
                n = self._capacity

            pos = self._write_count % self._capacity
            end = pos + n
            if end <= self._capacity:
                self._buffer[pos:end] = samples
            else:
                first = self._capacity - pos
                self._buffer[pos:] = samples[:first]
                self._buffer[:n - first] = samples[first:]
            self._write_count += n

            dropped = 0
            overflow = self._write_count - self._read_count - self._capacity
            if overflow > 0:
                dropped = overflow
                self._read_count += overflow
                self._dropped += overflow

        if dropped:
            logger.warning(f"Ring buffer overflow: dropped {dropped} unread samples "
                           f"({self._dropped} total)")
        return dropped

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------

    def read_frame(self, frame_size: int, hop_size: int) -> np.ndarray | None:
        """Return the next ``frame_size`` unread samples and advance by ``hop_size``.

        Returns ``None`` when not enough samples are buffered yet.
        """
        if frame_size > self._capacity:
            raise ValueError(f"frame_size {frame_size} exceeds buffer capacity {self._capacity}")

        with self._lock:
            if self._write_count - self._read_count < frame_size:
                return None
            start = self._read_count % self._capacity
            if start + frame_size <= self._capacity:
                frame = self._buffer[start:start + frame_size].copy()
            else:
                first = self._capacity - start
                frame = np.concatenate([
                    self._buffer[start:],
                    self._buffer[:frame_size - first],
                ])
            self._last_frame_start = self._read_count
            self._read_count += hop_size
        return frame

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        """Number of unread samples."""
        with self._lock:
            return self._write_count - self._read_count

    @property
    def free_space(self) -> int:
        return self._capacity - self.available

    @property
    def read_position(self) -> int:
        """Absolute index of the first unread sample."""
        with self._lock:
            return self._read_count

    @property
    def last_frame_start(self) -> int:
        """Absolute index of the first sample of the frame last returned."""
        return self._last_frame_start

    @property
    def dropped_samples(self) -> int:
        return self._dropped

    def clear(self) -> None:
        """Reset the buffer."""
        with self._lock:
            self._buffer[:] = 0
            self._write_count = 0
            self._read_count = 0
            self._dropped = 0
            self._last_frame_start = 0
