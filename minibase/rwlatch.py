"""A reader-writer latch that favours a waiting writer over new readers."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ReaderWriterLatch:
    """Many readers or one writer; once a writer waits, new readers queue behind it."""

    MAX_READERS = 2**32 - 1

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._writer = threading.Condition(self._mutex)
        self._reader = threading.Condition(self._mutex)
        self._reader_count = 0
        self._writer_entered = False

    def w_lock(self) -> None:
        """Acquire the latch for writing."""
        with self._mutex:
            while self._writer_entered:
                self._reader.wait()
            self._writer_entered = True
            while self._reader_count > 0:
                self._writer.wait()

    def w_unlock(self) -> None:
        """Release a write hold."""
        with self._mutex:
            if not self._writer_entered:
                raise RuntimeError("write latch released while not held")
            self._writer_entered = False
            self._reader.notify_all()

    def r_lock(self) -> None:
        """Acquire the latch for reading."""
        with self._mutex:
            while self._writer_entered or self._reader_count == self.MAX_READERS:
                self._reader.wait()
            self._reader_count += 1

    def r_unlock(self) -> None:
        """Release a read hold."""
        with self._mutex:
            if self._reader_count == 0:
                raise RuntimeError("read latch released while not held")
            self._reader_count -= 1
            if self._writer_entered:
                if self._reader_count == 0:
                    self._writer.notify()
            elif self._reader_count == self.MAX_READERS - 1:
                self._reader.notify()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        """Hold the latch for reading inside a ``with`` block."""
        self.r_lock()
        try:
            yield
        finally:
            self.r_unlock()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        """Hold the latch for writing inside a ``with`` block."""
        self.w_lock()
        try:
            yield
        finally:
            self.w_unlock()