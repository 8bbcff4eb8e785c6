from datetime import date, datetime
from typing import Protocol


class ClockPort(Protocol):
    def now(self) -> datetime:
        """Return current local time (timezone aware)."""
        ...

    def today(self) -> date:
        """Return the current local calendar day."""
        ...
