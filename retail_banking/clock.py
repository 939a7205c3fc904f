"""
Clock Module

Supplies "now" to every time-dependent operation. A clock can be switched
to simulated time so interest runs can be exercised deterministically.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional
import logging

from .exceptions import InvalidOperationError

logger = logging.getLogger("retail_banking.clock")


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class Clock:
    """Wall clock with an optional simulated-time override"""

    def __init__(self, simulated_time: Optional[datetime] = None):
        self._simulated_time: Optional[datetime] = None
        if simulated_time is not None:
            self.set_simulated(simulated_time)

    @property
    def is_simulated(self) -> bool:
        return self._simulated_time is not None

    def now(self) -> datetime:
        if self._simulated_time is not None:
            return self._simulated_time
        return datetime.now(timezone.utc)

    def set_simulated(self, moment: datetime) -> None:
        """Enable simulation starting at the given moment"""
        self._simulated_time = ensure_utc(moment)
        logger.info(f"Time simulation enabled at {self._simulated_time.isoformat()}")

    def advance(self, days: int) -> datetime:
        """Move simulated time forward by whole days"""
        if self._simulated_time is None:
            raise InvalidOperationError("Time simulation is not enabled")
        if days < 0:
            raise InvalidOperationError("Simulated time cannot move backwards")

        self._simulated_time = self._simulated_time + timedelta(days=days)
        logger.info(f"Simulated time advanced by {days} days to {self._simulated_time.isoformat()}")
        return self._simulated_time

    def disable_simulation(self) -> None:
        self._simulated_time = None
        logger.info("Time simulation disabled, using real time")
