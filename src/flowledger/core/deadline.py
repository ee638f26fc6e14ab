"""Caller deadlines passed through pool acquisition and statement execution."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Deadline:
    """An absolute point on the monotonic clock after which work is cancelled.

    ``Deadline.after(None)`` returns ``None`` so callers can thread an
    optional timeout through without branching.
    """

    expires_at: float
    timeout: float = field(compare=False)

    @classmethod
    def after(cls, timeout: float | None) -> Deadline | None:
        if timeout is None:
            return None
        return cls(expires_at=time.monotonic() + timeout, timeout=timeout)

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def cap(self, timeout: float) -> float:
        """The smaller of *timeout* and the time left before expiry."""
        return min(timeout, self.remaining())


__all__ = ["Deadline"]
