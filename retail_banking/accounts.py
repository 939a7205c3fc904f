"""
Account Module

Deposit and credit accounts as a single record tagged with its kind. Each kind
declares its withdrawal checks as an ordered tuple, so the order in which
limits are enforced is explicit data rather than an accident of overriding.

Balance changes are staged: `plan_*` validates and returns the would-be
balance without touching the account, `apply_balance` commits it and records
the balance history. Callers that must move money between two accounts plan
both sides before applying either.
"""

from decimal import Decimal
from datetime import datetime, timedelta
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple, Any
from enum import Enum
import logging
import uuid

from .exceptions import (
    CreditLimitExceededError, DailyWithdrawalLimitExceededError,
    InsufficientFundsError, InvalidAmountError, InvalidOperationError,
    SingleWithdrawalLimitExceededError
)
from .history import BalanceHistory
from .money import ZERO, format_money, round_money, to_decimal, validate_amount, validate_balance
from .storage import StorageRecord

logger = logging.getLogger("retail_banking.accounts")

MONTHS_PER_YEAR = Decimal(12)


class AccountKind(Enum):
    """Banking product kinds"""
    CHECKING = "checking"
    SAVINGS = "savings"
    STUDENT_SAVINGS = "student_savings"
    CREDIT = "credit"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @property
    def is_savings(self) -> bool:
        return self in (AccountKind.SAVINGS, AccountKind.STUDENT_SAVINGS)

    @property
    def tracks_history(self) -> bool:
        """Interest-bearing kinds keep a balance history"""
        return self is not AccountKind.CHECKING


_KIND_LABELS = {
    AccountKind.CHECKING: "Checking Account",
    AccountKind.SAVINGS: "Savings Account",
    AccountKind.STUDENT_SAVINGS: "Student Savings Account",
    AccountKind.CREDIT: "Credit Account",
}


@dataclass
class AccountTerms:
    """Product parameters chosen when an account is opened"""
    interest_rate: Optional[Decimal] = None
    daily_withdrawal_limit: Optional[Decimal] = None
    single_withdrawal_limit: Optional[Decimal] = None
    credit_limit: Optional[Decimal] = None
    grace_period_days: Optional[int] = None
    linked_savings_id: Optional[str] = None

    def validate(self, kind: AccountKind) -> None:
        """Check that the terms the kind needs are present and sane"""
        required = {
            AccountKind.CHECKING: (),
            AccountKind.SAVINGS: ('interest_rate', 'daily_withdrawal_limit'),
            AccountKind.STUDENT_SAVINGS: ('interest_rate', 'daily_withdrawal_limit',
                                          'single_withdrawal_limit'),
            AccountKind.CREDIT: ('interest_rate', 'credit_limit', 'grace_period_days'),
        }[kind]

        for name in required:
            if getattr(self, name) is None:
                raise ValueError(f"{kind.label} requires {name}")

        if self.interest_rate is not None and not to_decimal(self.interest_rate).is_finite():
            raise ValueError("interest_rate must be a finite number")
        for name in ('daily_withdrawal_limit', 'single_withdrawal_limit', 'credit_limit'):
            value = getattr(self, name)
            if value is not None:
                # Raises ValueError for NaN, infinity and values too large for cents
                round_money(value)

        if self.interest_rate is not None:
            if self.interest_rate < 0 or self.interest_rate > 1:
                raise ValueError("Annual interest rate must be between 0 and 1 (0-100%)")

        for name in ('daily_withdrawal_limit', 'single_withdrawal_limit', 'credit_limit'):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive")

        if self.grace_period_days is not None and self.grace_period_days < 0:
            raise ValueError("grace_period_days cannot be negative")


@dataclass
class Account(StorageRecord):
    """
    Customer account

    `created_at` is the opening date. Credit balances are negative while the
    customer owes money.
    """
    owner_id: str
    kind: AccountKind
    balance: Decimal = ZERO
    interest_rate: Optional[Decimal] = None       # Annual, fractional
    daily_withdrawal_limit: Optional[Decimal] = None
    single_withdrawal_limit: Optional[Decimal] = None
    credit_limit: Optional[Decimal] = None
    grace_period_end: Optional[datetime] = None
    linked_savings_id: Optional[str] = None
    history: Optional[BalanceHistory] = field(default=None, repr=False)

    def __post_init__(self):
        self.balance = round_money(self.balance)
        if self.kind.tracks_history and self.history is None:
            self.history = BalanceHistory()

    @property
    def account_type(self) -> str:
        return self.kind.label

    @property
    def is_credit(self) -> bool:
        return self.kind is AccountKind.CREDIT

    @property
    def debt(self) -> Decimal:
        """Amount owed on a credit account"""
        return -self.balance if self.balance < 0 else ZERO

    @property
    def available_credit(self) -> Decimal:
        if not self.is_credit:
            raise InvalidOperationError("Account is not a credit account")
        return self.credit_limit - abs(self.balance)

    @property
    def is_closable(self) -> bool:
        return self.balance == ZERO

    # Staging

    def plan_deposit(self, amount) -> Decimal:
        """Validate a deposit (repayment for credit) and return the new balance"""
        amount = validate_amount(amount)
        return self.balance + amount

    def plan_withdrawal(self, amount) -> Decimal:
        """Run this kind's withdrawal checks in order and return the new balance"""
        amount = validate_amount(amount)
        for check in WITHDRAWAL_CHECKS[self.kind]:
            check(self, amount)
        return self.balance - amount

    def apply_balance(self, new_balance: Decimal, now: datetime) -> Decimal:
        """Commit a planned balance and snapshot it"""
        self.balance = round_money(new_balance)
        self.updated_at = now
        if self.history is not None:
            self.history.record(now, self.balance)
        return self.balance

    # Operations

    def deposit(self, amount, now: datetime) -> Decimal:
        return self.apply_balance(self.plan_deposit(amount), now)

    def withdraw(self, amount, now: datetime) -> Decimal:
        return self.apply_balance(self.plan_withdrawal(amount), now)

    def borrow(self, amount, now: datetime) -> Decimal:
        self._require_credit()
        return self.withdraw(amount, now)

    def repay(self, amount, now: datetime) -> Decimal:
        self._require_credit()
        return self.deposit(amount, now)

    def transfer_to_savings(self, amount, target: 'Account', now: datetime) -> Decimal:
        """
        Move money from this checking account into a savings account

        Both sides are validated before either balance changes.

        Returns:
            New balance of this account
        """
        if self.kind is not AccountKind.CHECKING:
            raise InvalidOperationError("Only checking accounts transfer to savings")
        if not target.kind.is_savings:
            raise InvalidOperationError("Transfer target must be a savings account")

        own_balance = self.plan_withdrawal(amount)
        target_balance = target.plan_deposit(amount)

        target.apply_balance(target_balance, now)
        return self.apply_balance(own_balance, now)

    # Interest

    def weighted_average_balance(self, now: datetime, period_days: int = 30) -> Decimal:
        """Time-weighted average over the last `period_days`"""
        if self.history is None:
            return self.balance
        return self.history.weighted_average(now, period_days, self.balance)

    def monthly_interest_due(self, now: datetime, period_days: int = 30) -> Decimal:
        """Interest for the period without applying it; negative for credit"""
        if self.kind is AccountKind.CHECKING:
            return ZERO

        if self.is_credit:
            if self.grace_period_end is not None and now <= self.grace_period_end:
                return ZERO
            if self.balance >= 0:
                return ZERO
            average = abs(self.weighted_average_balance(now, period_days))
            charge = round_money(average * self.interest_rate / MONTHS_PER_YEAR)
            return -charge if charge else ZERO

        average = self.weighted_average_balance(now, period_days)
        return round_money(average * self.interest_rate / MONTHS_PER_YEAR)

    def calculate_monthly_interest(self, now: datetime, period_days: int = 30) -> Decimal:
        """
        Compute this period's interest and apply it to the balance

        Savings kinds are credited when the interest is positive. Credit
        accounts outside their grace period are charged on their average
        debt. Checking accounts never accrue.

        Returns:
            Interest applied (0 when nothing was applied)
        """
        interest = self.monthly_interest_due(now, period_days)

        applies = interest < 0 if self.is_credit else interest > 0
        if applies:
            self.apply_balance(self.balance + interest, now)
            logger.info(f"Interest {format_money(interest)} applied to account {self.id}")
        return interest

    def _require_credit(self) -> None:
        if not self.is_credit:
            raise InvalidOperationError(f"{self.account_type} does not support borrowing")

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'owner_id': self.owner_id,
            'kind': self.kind.value,
            'balance': str(self.balance),
            'interest_rate': _optional_str(self.interest_rate),
            'daily_withdrawal_limit': _optional_str(self.daily_withdrawal_limit),
            'single_withdrawal_limit': _optional_str(self.single_withdrawal_limit),
            'credit_limit': _optional_str(self.credit_limit),
            'grace_period_end': self.grace_period_end.isoformat() if self.grace_period_end else None,
            'linked_savings_id': self.linked_savings_id,
            'history': self.history.to_list() if self.history is not None else None,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        history = None
        if data.get('history') is not None:
            history = BalanceHistory.from_list(data['history'])

        grace_period_end = None
        if data.get('grace_period_end'):
            grace_period_end = datetime.fromisoformat(data['grace_period_end'])

        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            owner_id=data['owner_id'],
            kind=AccountKind(data['kind']),
            balance=Decimal(data['balance']),
            interest_rate=_optional_decimal(data.get('interest_rate')),
            daily_withdrawal_limit=_optional_decimal(data.get('daily_withdrawal_limit')),
            single_withdrawal_limit=_optional_decimal(data.get('single_withdrawal_limit')),
            credit_limit=_optional_decimal(data.get('credit_limit')),
            grace_period_end=grace_period_end,
            linked_savings_id=data.get('linked_savings_id'),
            history=history
        )


def _optional_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _optional_decimal(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


# Withdrawal checks. Each raises when the amount is not allowed.

WithdrawalCheck = Callable[[Account, Decimal], None]


def check_single_withdrawal_limit(account: Account, amount: Decimal) -> None:
    if amount > account.single_withdrawal_limit:
        raise SingleWithdrawalLimitExceededError(
            f"Single withdrawal limit exceeded. Maximum: {format_money(account.single_withdrawal_limit)}"
        )


def check_daily_withdrawal_limit(account: Account, amount: Decimal) -> None:
    if amount > account.daily_withdrawal_limit:
        raise DailyWithdrawalLimitExceededError(
            f"Daily withdrawal limit exceeded. Maximum: {format_money(account.daily_withdrawal_limit)}"
        )


def check_sufficient_funds(account: Account, amount: Decimal) -> None:
    if amount > account.balance:
        raise InsufficientFundsError(
            f"Insufficient funds. Current balance: {format_money(account.balance)}"
        )


def check_credit_limit(account: Account, amount: Decimal) -> None:
    if abs(account.balance) + amount > account.credit_limit:
        raise CreditLimitExceededError(
            f"Credit limit exceeded. Available credit: {format_money(account.available_credit)}"
        )


WITHDRAWAL_CHECKS: Dict[AccountKind, Tuple[WithdrawalCheck, ...]] = {
    AccountKind.CHECKING: (check_sufficient_funds,),
    AccountKind.SAVINGS: (check_daily_withdrawal_limit, check_sufficient_funds),
    AccountKind.STUDENT_SAVINGS: (
        check_single_withdrawal_limit,
        check_daily_withdrawal_limit,
        check_sufficient_funds,
    ),
    AccountKind.CREDIT: (check_credit_limit,),
}


def open_account(kind: AccountKind, owner_id: str, terms: AccountTerms,
                 now: datetime, initial_balance=ZERO) -> Account:
    """
    Build a new account and seed its balance history

    Raises:
        InvalidAmountError: If the initial balance is negative, or non-zero
            for a credit account
        ValueError: If the terms do not fit the kind
    """
    terms.validate(kind)
    initial_balance = validate_balance(initial_balance)
    if kind is AccountKind.CREDIT and initial_balance != ZERO:
        raise InvalidAmountError("Credit accounts always open with a zero balance")

    grace_period_end = None
    if kind is AccountKind.CREDIT:
        grace_period_end = now + timedelta(days=terms.grace_period_days)

    account = Account(
        id=str(uuid.uuid4()),
        created_at=now,
        updated_at=now,
        owner_id=owner_id,
        kind=kind,
        balance=initial_balance,
        interest_rate=terms.interest_rate,
        daily_withdrawal_limit=terms.daily_withdrawal_limit if kind.is_savings else None,
        single_withdrawal_limit=(
            terms.single_withdrawal_limit if kind is AccountKind.STUDENT_SAVINGS else None
        ),
        credit_limit=terms.credit_limit if kind is AccountKind.CREDIT else None,
        grace_period_end=grace_period_end,
        linked_savings_id=terms.linked_savings_id if kind is AccountKind.CHECKING else None,
    )
    if account.history is not None:
        account.history.record(now, account.balance)
    return account
