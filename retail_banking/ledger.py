"""
Ledger Module

Append-only record of every balance-changing event. Records reference an
account by id only and are never updated, so the ledger stays readable after
an account is closed.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Dict, Iterator, Union, Any, TYPE_CHECKING
from enum import Enum
import logging
import uuid

from .clock import Clock
from .money import format_money, round_money

if TYPE_CHECKING:
    from .repository import AccountRepository

logger = logging.getLogger("retail_banking.ledger")


class TransactionKind(Enum):
    """Labels used by the banking service; any other label is accepted too"""
    INITIAL_DEPOSIT = "Initial Deposit"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    TRANSFER_IN = "Transfer In"
    TRANSFER_OUT = "Transfer Out"
    TRANSFER_TO_SAVINGS = "Transfer to Savings"
    INTEREST = "Interest"
    BORROW = "Borrow"
    REPAY = "Repay"


@dataclass(frozen=True)
class TransactionRecord:
    """Immutable ledger line"""
    id: str
    account_id: str
    timestamp: datetime
    kind: str
    amount: Decimal       # Signed: negative when money leaves the account
    new_balance: Decimal
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_id': self.account_id,
            'timestamp': self.timestamp.isoformat(),
            'kind': self.kind,
            'amount': str(self.amount),
            'new_balance': str(self.new_balance),
            'sequence': self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            timestamp=datetime.fromisoformat(data['timestamp']),
            kind=data['kind'],
            amount=Decimal(data['amount']),
            new_balance=Decimal(data['new_balance']),
            sequence=data['sequence'],
        )


class TransactionHistory:
    """
    Newest-first view of one account's ledger

    Each iteration reads the repository afresh, so the same object can be
    iterated again after more records were appended.
    """

    def __init__(self, repository: 'AccountRepository', account_id: str):
        self._repository = repository
        self.account_id = account_id

    def __iter__(self) -> Iterator[TransactionRecord]:
        records = self._repository.list_transactions(self.account_id)
        return iter(sorted(records, key=lambda r: (r.timestamp, r.sequence), reverse=True))

    def __len__(self) -> int:
        return len(self._repository.list_transactions(self.account_id))


class Ledger:
    """Appends transaction records through the repository"""

    def __init__(self, repository: 'AccountRepository', clock: Clock):
        self.repository = repository
        self.clock = clock

    def append(self, account_id: str, kind: Union[TransactionKind, str],
               amount, new_balance) -> TransactionRecord:
        """
        Record a balance change

        Args:
            account_id: Account whose balance changed
            kind: Transaction label
            amount: Signed amount of the change
            new_balance: Balance after the change

        Returns:
            The stored record
        """
        label = kind.value if isinstance(kind, TransactionKind) else str(kind)
        record = TransactionRecord(
            id=str(uuid.uuid4()),
            account_id=account_id,
            timestamp=self.clock.now(),
            kind=label,
            amount=round_money(amount),
            new_balance=round_money(new_balance),
            sequence=self.repository.next_transaction_sequence(),
        )
        self.repository.append_transaction(record)

        logger.info(
            f"Transaction logged: Account {account_id}, Type {label}, "
            f"Amount {format_money(record.amount)}, New Balance {format_money(record.new_balance)}"
        )
        return record

    def history(self, account_id: str) -> TransactionHistory:
        """Lazy newest-first sequence of an account's records"""
        return TransactionHistory(self.repository, account_id)
