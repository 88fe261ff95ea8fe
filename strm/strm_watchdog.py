"""
Cooperative wall-clock deadline shared by the whole process.

`tick()` is called from every node's prepare/eval and from every stream pull;
every 4096th call compares the clock with the deadline.
"""
import time
from contextlib import contextmanager

from strm.strm_errors import TimeoutError

DEFTIME = 1000
TICK_MASK = 0xFFF


class Watchdog:
    def __init__(self):
        self._deadline = None
        self.counter = 0

    @property
    def running(self) -> bool:
        return self._deadline is not None

    def start(self, limit: int = DEFTIME):
        """Arm the deadline `limit` milliseconds from now."""
        if self._deadline is not None:
            raise RuntimeError('Watchdog restarted without stopping')
        self._deadline = time.monotonic() + limit / 1000
        self.counter = 0

    def stop(self):
        self._deadline = None

    def tick(self):
        count = self.counter
        self.counter = count + 1
        if (count & TICK_MASK) == 0:
            self.utick()

    def utick(self):
        """Check the deadline unconditionally."""
        if self._deadline is None:
            raise RuntimeError('Watchdog tick() called without start()')
        if time.monotonic() > self._deadline:
            raise TimeoutError(self.counter)

    @contextmanager
    def timed_scope(self, limit: int = DEFTIME):
        self.start(limit)
        try:
            yield self
        finally:
            self.stop()

    def timed(self, func, limit: int = DEFTIME):
        with self.timed_scope(limit):
            return func()


watchdog = Watchdog()
