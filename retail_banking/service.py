"""
Banking Service Module

Orchestrates every operation: authorize the session, stage the balance
change on the account(s), then persist balances and ledger records in one
atomic storage unit. A failed validation leaves no trace; a failed write
rolls back everything written for the operation.
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .access import AccessController, Session
from .accounts import Account, AccountKind, AccountTerms
from .audit import AuditEventType, AuditTrail
from .clock import Clock
from .config import BankConfig, get_config
from .exceptions import InvalidOperationError, NotAuthenticatedError, NotFoundError
from .ledger import Ledger, TransactionHistory, TransactionKind
from .logging_config import log_action
from .money import ZERO, format_money, validate_amount, validate_balance
from .repository import AccountRepository
from .users import IdentityStore, Role, User

logger = logging.getLogger("retail_banking.service")

LedgerEntry = Tuple[str, TransactionKind, Decimal, Decimal]


class BankingService:
    """Entry point for sessions, user administration and money movement"""

    def __init__(
        self,
        repository: AccountRepository,
        identity_store: IdentityStore,
        ledger: Ledger,
        clock: Clock,
        access: Optional[AccessController] = None,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[BankConfig] = None
    ):
        self.repository = repository
        self.identity_store = identity_store
        self.ledger = ledger
        self.clock = clock
        self.access = access or AccessController()
        self.audit_trail = audit_trail
        self.config = config or get_config()

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               metadata: Dict, actor: Optional[User]) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type, entity_type, entity_id, metadata,
                actor.id if actor else None
            )

    # Sessions

    def login(self, username: str, password: str) -> Session:
        """
        Authenticate a user and return a logged-in session

        Raises:
            NotAuthenticatedError: If the username or password is wrong
        """
        user = self.identity_store.find_user(username)
        if user is None or not self.identity_store.verify_credentials(user, password):
            logger.warning(f"Failed login attempt for username: {username}")
            self._audit(AuditEventType.LOGIN_FAILED, 'session', username,
                        {'username': username}, None)
            raise NotAuthenticatedError("Invalid username or password")

        session = Session()
        session.login(user)
        log_action(logger, "info", f"User {username} logged in successfully",
                   user_id=user.id, action="login")
        self._audit(AuditEventType.LOGIN_SUCCESS, 'session', session.id,
                    {'username': username}, user)
        return session

    def logout(self, session: Session) -> None:
        if session.user:
            self._audit(AuditEventType.LOGOUT, 'session', session.id,
                        {'username': session.user.username}, session.user)
        session.logout()

    # User administration

    def register_user(self, session: Session, username: str, password: str,
                      role: Role = Role.CLIENT) -> User:
        actor = self.access.require_admin(session)
        return self.identity_store.create_user(username, password, role, created_by=actor.id)

    def list_users(self, session: Session) -> List[User]:
        self.access.require_staff(session)
        return self.identity_store.list_users()

    def change_user_role(self, session: Session, username: str, role: Role) -> bool:
        actor = self.access.require_admin(session)
        changed = self.identity_store.update_role(username, role, changed_by=actor.id)
        if not changed:
            raise NotFoundError(f"User {username} not found")
        log_action(logger, "info", f"Role of {username} changed to {role.value}",
                   user_id=actor.id, action="change_role", resource=username)
        return changed

    def delete_user(self, session: Session, username: str) -> bool:
        actor = self.access.authorize_user_deletion(session, username)
        deleted = self.identity_store.delete_user(username, deleted_by=actor.id)
        if not deleted:
            raise NotFoundError(f"User {username} not found")
        log_action(logger, "info", f"User {username} deleted",
                   user_id=actor.id, action="delete_user", resource=username)
        return deleted

    # Account lifecycle

    def open_checking_account(self, session: Session, owner_id: str,
                              initial_deposit=ZERO) -> str:
        return self._open_account(session, AccountKind.CHECKING, owner_id,
                                  AccountTerms(), initial_deposit)

    def open_savings_account(self, session: Session, owner_id: str, initial_deposit=ZERO,
                             interest_rate: Optional[Decimal] = None,
                             daily_withdrawal_limit: Optional[Decimal] = None) -> str:
        terms = AccountTerms(
            interest_rate=_or_default(interest_rate, self.config.savings_interest_rate),
            daily_withdrawal_limit=_or_default(daily_withdrawal_limit,
                                               self.config.savings_daily_withdrawal_limit),
        )
        return self._open_account(session, AccountKind.SAVINGS, owner_id, terms, initial_deposit)

    def open_student_savings_account(self, session: Session, owner_id: str, initial_deposit=ZERO,
                                     interest_rate: Optional[Decimal] = None,
                                     daily_withdrawal_limit: Optional[Decimal] = None,
                                     single_withdrawal_limit: Optional[Decimal] = None) -> str:
        terms = AccountTerms(
            interest_rate=_or_default(interest_rate, self.config.student_interest_rate),
            daily_withdrawal_limit=_or_default(daily_withdrawal_limit,
                                               self.config.student_daily_withdrawal_limit),
            single_withdrawal_limit=_or_default(single_withdrawal_limit,
                                                self.config.student_single_withdrawal_limit),
        )
        return self._open_account(session, AccountKind.STUDENT_SAVINGS, owner_id, terms,
                                  initial_deposit)

    def open_credit_account(self, session: Session, owner_id: str,
                            credit_limit: Optional[Decimal] = None,
                            interest_rate: Optional[Decimal] = None,
                            grace_period_days: Optional[int] = None) -> str:
        terms = AccountTerms(
            credit_limit=_or_default(credit_limit, self.config.credit_limit),
            interest_rate=_or_default(interest_rate, self.config.credit_interest_rate),
            grace_period_days=(grace_period_days if grace_period_days is not None
                               else self.config.credit_grace_period_days),
        )
        return self._open_account(session, AccountKind.CREDIT, owner_id, terms, ZERO)

    def _open_account(self, session: Session, kind: AccountKind, owner_id: str,
                      terms: AccountTerms, initial_deposit) -> str:
        actor = self.access.authorize_account(session, owner_id)
        if self.identity_store.get_user(owner_id) is None:
            raise NotFoundError("User not found")

        initial_deposit = validate_balance(initial_deposit)
        now = self.clock.now()
        with self.repository.atomic():
            account_id = self.repository.create_account(kind, owner_id, terms, now, initial_deposit)
            if initial_deposit > ZERO:
                self.ledger.append(account_id, TransactionKind.INITIAL_DEPOSIT,
                                   initial_deposit, initial_deposit)

        log_action(logger, "info", f"{kind.label} {account_id} opened for {owner_id}",
                   user_id=actor.id, action="open_account", resource=account_id,
                   extra={'initial_deposit': str(initial_deposit)})
        self._audit(AuditEventType.ACCOUNT_OPENED, 'account', account_id,
                    {'kind': kind.value, 'owner_id': owner_id,
                     'initial_deposit': initial_deposit}, actor)
        return account_id

    def _load_account(self, account_id: str) -> Account:
        account = self.repository.get_account(account_id)
        if account is None:
            raise NotFoundError("Account not found")
        return account

    def get_account(self, session: Session, account_id: str) -> Account:
        account = self._load_account(account_id)
        self.access.authorize_account(session, account.owner_id)
        return account

    def get_user_accounts(self, session: Session, user_id: str) -> List[Account]:
        self.access.authorize_account(session, user_id)
        return self.repository.list_accounts(owner_id=user_id)

    def list_all_accounts(self, session: Session) -> List[Account]:
        self.access.require_staff(session)
        return self.repository.list_accounts()

    def link_checking_and_savings(self, session: Session, checking_id: str,
                                  savings_id: str) -> bool:
        checking = self._load_account(checking_id)
        savings = self._load_account(savings_id)

        if checking.kind is not AccountKind.CHECKING or not savings.kind.is_savings:
            raise InvalidOperationError("Invalid account types")

        actor = self.access.authorize_account(session, checking.owner_id)
        self.access.authorize_account(session, savings.owner_id)
        if checking.owner_id != savings.owner_id:
            raise InvalidOperationError("Accounts must belong to the same owner")

        checking.linked_savings_id = savings.id
        checking.updated_at = self.clock.now()
        self.repository.save_account(checking)

        self._audit(AuditEventType.ACCOUNT_LINKED, 'account', checking.id,
                    {'savings_id': savings.id}, actor)
        return True

    def close_account(self, session: Session, account_id: str) -> bool:
        """
        Delete an account whose balance is exactly zero

        Checking accounts linked to a closed savings account lose the link.

        Raises:
            InvalidOperationError: If any balance remains
        """
        account = self._load_account(account_id)
        actor = self.access.authorize_account(session, account.owner_id)

        if not account.is_closable:
            raise InvalidOperationError("Account must have zero balance to close")

        now = self.clock.now()
        with self.repository.atomic():
            for checking in self.repository.find_linked_checking(account_id):
                checking.linked_savings_id = None
                checking.updated_at = now
                self.repository.save_account(checking)
            deleted = self.repository.delete_account(account_id)
        if deleted:
            log_action(logger, "info", f"Account {account_id} closed",
                       user_id=actor.id, action="close_account", resource=account_id)
            self._audit(AuditEventType.ACCOUNT_CLOSED, 'account', account_id,
                        {'kind': account.kind.value}, actor)
        return deleted

    # Money movement

    def _commit(self, accounts: Sequence[Account], entries: Sequence[LedgerEntry]) -> None:
        """Persist staged balances and their ledger records together"""
        with self.repository.atomic():
            for account in accounts:
                self.repository.save_balance(account)
            for account_id, kind, amount, new_balance in entries:
                self.ledger.append(account_id, kind, amount, new_balance)

    def deposit(self, session: Session, account_id: str, amount) -> Decimal:
        """Deposit into an account (repayment for credit accounts)"""
        account = self._load_account(account_id)
        actor = self.access.authorize_account(session, account.owner_id)
        amount = validate_amount(amount)

        new_balance = account.apply_balance(account.plan_deposit(amount), self.clock.now())
        kind = TransactionKind.REPAY if account.is_credit else TransactionKind.DEPOSIT
        self._commit([account], [(account.id, kind, amount, new_balance)])

        log_action(logger, "info",
                   f"{kind.value}, Amount: {format_money(amount)}, New Balance: {format_money(new_balance)}",
                   user_id=actor.id, action="deposit", resource=account_id)
        return new_balance

    def withdraw(self, session: Session, account_id: str, amount) -> Decimal:
        """Withdraw from an account (borrowing for credit accounts)"""
        account = self._load_account(account_id)
        actor = self.access.authorize_account(session, account.owner_id)
        amount = validate_amount(amount)

        new_balance = account.apply_balance(account.plan_withdrawal(amount), self.clock.now())
        kind = TransactionKind.BORROW if account.is_credit else TransactionKind.WITHDRAW
        self._commit([account], [(account.id, kind, -amount, new_balance)])

        log_action(logger, "info",
                   f"{kind.value}, Amount: {format_money(amount)}, New Balance: {format_money(new_balance)}",
                   user_id=actor.id, action="withdraw", resource=account_id)
        return new_balance

    def transfer(self, session: Session, from_account_id: str, to_account_id: str,
                 amount) -> Decimal:
        """
        Move money between two accounts

        Authorization is checked against the source account; moving money to
        another owner's account requires a banker or admin. Both sides are
        validated before either balance changes, and exactly two ledger
        records are written.

        Returns:
            New balance of the source account
        """
        if from_account_id == to_account_id:
            raise InvalidOperationError("Cannot transfer to the same account")

        # Load in ascending id order, the order per-account locks would use
        loaded = {
            account_id: self._load_account(account_id)
            for account_id in sorted((from_account_id, to_account_id))
        }
        source, target = loaded[from_account_id], loaded[to_account_id]

        actor = self.access.authorize_transfer(session, source.owner_id, target.owner_id)
        amount = validate_amount(amount)

        source_balance = source.plan_withdrawal(amount)
        target_balance = target.plan_deposit(amount)

        now = self.clock.now()
        source.apply_balance(source_balance, now)
        target.apply_balance(target_balance, now)
        self._commit([source, target], [
            (source.id, TransactionKind.TRANSFER_OUT, -amount, source.balance),
            (target.id, TransactionKind.TRANSFER_IN, amount, target.balance),
        ])

        log_action(logger, "info",
                   f"Transfer of {format_money(amount)} from {source.id} to {target.id}",
                   user_id=actor.id, action="transfer", resource=source.id,
                   extra={'to_account_id': target.id})
        return source.balance

    def transfer_to_savings(self, session: Session, checking_id: str, amount,
                            savings_id: Optional[str] = None) -> Decimal:
        """Move money from a checking account to its linked (or given) savings account"""
        checking = self._load_account(checking_id)
        actor = self.access.authorize_account(session, checking.owner_id)

        savings_id = savings_id or checking.linked_savings_id
        if not savings_id:
            raise InvalidOperationError("No savings account is linked to this checking account")
        savings = self._load_account(savings_id)
        self.access.authorize_transfer(session, checking.owner_id, savings.owner_id)

        amount = validate_amount(amount)
        checking.transfer_to_savings(amount, savings, self.clock.now())
        self._commit([checking, savings], [
            (checking.id, TransactionKind.TRANSFER_TO_SAVINGS, -amount, checking.balance),
            (savings.id, TransactionKind.TRANSFER_IN, amount, savings.balance),
        ])

        log_action(logger, "info",
                   f"Transfer to Savings of {format_money(amount)} from {checking.id} to {savings.id}",
                   user_id=actor.id, action="transfer_to_savings", resource=checking.id)
        return checking.balance

    # Interest

    def accrue_interest(self, session: Session, account_id: str) -> Decimal:
        """
        Run this month's interest calculation for one account

        Returns:
            Interest applied; negative for credit accounts, 0 when nothing accrued
        """
        account = self._load_account(account_id)
        actor = self.access.authorize_account(session, account.owner_id)
        return self._accrue(account, actor)

    def run_monthly_interest(self, session: Session) -> Dict[str, Decimal]:
        """Accrue interest on every account; returns interest per account id"""
        actor = self.access.require_staff(session)
        results = {}
        for account in self.repository.list_accounts():
            results[account.id] = self._accrue(account, actor)

        accrued = sum(1 for interest in results.values() if interest != ZERO)
        log_action(logger, "info", f"Monthly interest run: {accrued} of {len(results)} accounts accrued",
                   user_id=actor.id, action="run_monthly_interest")
        return results

    def _accrue(self, account: Account, actor: User) -> Decimal:
        now = self.clock.now()
        if self.clock.is_simulated:
            logger.info(f"Calculating interest at simulated time: {now:%Y-%m-%d %H:%M}")

        interest = account.calculate_monthly_interest(now, self.config.interest_period_days)
        if interest != ZERO:
            self._commit([account], [(account.id, TransactionKind.INTEREST, interest, account.balance)])
            self._audit(AuditEventType.INTEREST_POSTED, 'account', account.id,
                        {'interest': interest, 'new_balance': account.balance}, actor)
        elif account.is_credit and account.grace_period_end and now <= account.grace_period_end:
            logger.info(f"Account {account.id} is in grace period until {account.grace_period_end:%Y-%m-%d}")
        return interest

    def transaction_history(self, session: Session, account_id: str) -> TransactionHistory:
        account = self._load_account(account_id)
        self.access.authorize_account(session, account.owner_id)
        return self.ledger.history(account_id)

    # Clock control

    def current_time(self) -> datetime:
        return self.clock.now()

    def enable_time_simulation(self, session: Session, start: datetime) -> datetime:
        actor = self.access.require_admin(session)
        self.clock.set_simulated(start)
        self._audit(AuditEventType.TIME_SIMULATION_CHANGED, 'clock', 'simulation',
                    {'action': 'enabled', 'time': self.clock.now()}, actor)
        return self.clock.now()

    def advance_time(self, session: Session, days: int) -> datetime:
        actor = self.access.require_admin(session)
        moment = self.clock.advance(days)
        self._audit(AuditEventType.TIME_SIMULATION_CHANGED, 'clock', 'simulation',
                    {'action': 'advanced', 'days': days, 'time': moment}, actor)
        return moment

    def disable_time_simulation(self, session: Session) -> None:
        actor = self.access.require_admin(session)
        self.clock.disable_simulation()
        self._audit(AuditEventType.TIME_SIMULATION_CHANGED, 'clock', 'simulation',
                    {'action': 'disabled'}, actor)


def _or_default(value: Optional[Decimal], default: Decimal) -> Decimal:
    return value if value is not None else default
