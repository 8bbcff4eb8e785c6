from datetime import date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo


class SystemClock:
    """Wall clock in the plant's local timezone."""

    def __init__(self, tz_name: str = "America/Sao_Paulo") -> None:
        self._tz_name = tz_name
        self._tz: tzinfo = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def today(self) -> date:
        return self.now().date()

    @property
    def timezone_name(self) -> str:
        return self._tz_name


class FrozenClock:
    """
    Clock that returns a fixed time.

    Useful for deterministic testing.
    """

    def __init__(self, frozen: datetime, tz_name: str = "America/Sao_Paulo") -> None:
        self._tz = ZoneInfo(tz_name)
        if frozen.tzinfo is None:
            frozen = frozen.replace(tzinfo=self._tz)
        self._frozen = frozen

    def now(self) -> datetime:
        return self._frozen

    def today(self) -> date:
        return self._frozen.date()

    def advance(self, delta: timedelta) -> None:
        """Advance frozen time by delta (for testing)."""
        self._frozen = self._frozen + delta
