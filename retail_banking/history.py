"""
Balance History Module

Append-only time series of balance snapshots for interest-bearing accounts.
Interest is computed from the time-weighted average of these snapshots, so a
balance held for twenty days counts twice as much as one held for ten.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Any

from .money import round_money, to_decimal

SECONDS_PER_DAY = Decimal(86400)


def days_between(start: datetime, end: datetime) -> Decimal:
    """Fractional days from start to end"""
    seconds = Decimal(str((end - start).total_seconds()))
    return seconds / SECONDS_PER_DAY


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balance held from `timestamp` until the next snapshot"""
    timestamp: datetime
    balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'balance': str(self.balance)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BalanceSnapshot':
        return cls(
            timestamp=datetime.fromisoformat(data['timestamp']),
            balance=Decimal(data['balance'])
        )


class BalanceHistory:
    """
    Ordered (timestamp, balance) snapshots owned by a single account

    Entries are only ever appended. Insertion order follows the clock, so
    timestamps are non-decreasing as long as the clock is not rewound.
    """

    def __init__(self, snapshots: Optional[List[BalanceSnapshot]] = None):
        self._snapshots: List[BalanceSnapshot] = list(snapshots or [])

    def record(self, timestamp: datetime, balance: Decimal) -> BalanceSnapshot:
        """Append the balance now in effect"""
        snapshot = BalanceSnapshot(timestamp=timestamp, balance=round_money(balance))
        self._snapshots.append(snapshot)
        return snapshot

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[BalanceSnapshot]:
        return iter(list(self._snapshots))

    @property
    def latest(self) -> Optional[BalanceSnapshot]:
        return self._snapshots[-1] if self._snapshots else None

    @property
    def is_monotonic(self) -> bool:
        """True when no snapshot predates its predecessor"""
        return all(
            earlier.timestamp <= later.timestamp
            for earlier, later in zip(self._snapshots, self._snapshots[1:])
        )

    def weighted_average(self, now: datetime, period_days: int,
                         current_balance: Decimal) -> Decimal:
        """
        Time-weighted average balance over [now - period_days, now]

        Each snapshot in the window is weighted by the days until the next
        snapshot; the last one is weighted by the days until `now`. Falls back
        to the current balance when there is not enough history to weight.

        Args:
            now: End of the window
            period_days: Window length in days
            current_balance: Balance to use when no weighting is possible

        Returns:
            Unrounded weighted average balance
        """
        current_balance = to_decimal(current_balance)
        if len(self._snapshots) <= 1:
            return current_balance

        window_start = now - timedelta(days=period_days)
        relevant = sorted(
            (s for s in self._snapshots if window_start <= s.timestamp <= now),
            key=lambda s: s.timestamp
        )
        if not relevant:
            return current_balance

        weighted_sum = Decimal('0')
        total_days = Decimal('0')

        for current, following in zip(relevant, relevant[1:]):
            weight = days_between(current.timestamp, following.timestamp)
            weighted_sum += current.balance * weight
            total_days += weight

        # Trailing segment up to the end of the window
        last = relevant[-1]
        trailing = days_between(last.timestamp, now)
        weighted_sum += last.balance * trailing
        total_days += trailing

        if total_days > 0:
            return weighted_sum / total_days
        return current_balance

    def to_list(self) -> List[Dict[str, Any]]:
        return [snapshot.to_dict() for snapshot in self._snapshots]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> 'BalanceHistory':
        return cls([BalanceSnapshot.from_dict(item) for item in data])
