"""
Injectable clock.

WHAT: The single source of "now" for every temporal rule in the engine.

WHY: Submission checks, expiry sweeps and transition timestamps all
compare against the current date. Routing them through one object makes
them deterministic under test (a FixedClock) and guarantees a rule set is
evaluated against a single snapshot of "today".

HOW: Services take a Clock in their constructor; routes obtain one via
the get_clock dependency, which tests override.
"""

from datetime import date, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall clock in naive UTC, matching the timestamps stored by the models."""

    def now(self) -> datetime:
        return datetime.utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """
    Clock frozen at a given instant.

    WHY: Tests pin "today" so date rules give the same answer on every run.
    advance() lets a test move time forward to exercise expiry.
    """

    def __init__(self, at: datetime):
        self._now = at

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, **delta: float) -> None:
        self._now = self._now + timedelta(**delta)


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency returning the process clock."""
    return system_clock
