"""Time source for every expiry and featuring comparison.

All instants in Aquamarket are timezone-aware UTC and truncated to whole
milliseconds, which is the resolution both storage encodings keep (ISO-8601
``.mmmZ`` text and epoch-millisecond integers).  Truncating at the source
means a value read back from the database compares equal to the one that
was written.

Typical usage::

    from aquamarket.core.clock import FrozenClock, SystemClock

    clock = SystemClock()
    now = clock.now()

    # tests
    clock = FrozenClock(datetime(2026, 10, 1, tzinfo=UTC))
    clock.advance(timedelta(days=31))
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

__all__ = ["Clock", "SystemClock", "FrozenClock", "truncate_ms"]


def truncate_ms(instant: datetime) -> datetime:
    """Return *instant* in UTC with sub-millisecond precision dropped."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    instant = instant.astimezone(UTC)
    return instant.replace(microsecond=(instant.microsecond // 1000) * 1000)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return truncate_ms(datetime.now(UTC))


class FrozenClock:
    """Manually driven clock for tests and one-shot tooling."""

    def __init__(self, start: datetime) -> None:
        self._now = truncate_ms(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = truncate_ms(self._now + delta)
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = truncate_ms(instant)
