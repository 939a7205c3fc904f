"""
Test suite for the banking service

End-to-end tests of sessions, user administration, account lifecycle, money
movement, interest and clock control on an in-memory system.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from retail_banking.access import Session
from retail_banking.audit import AuditEventType
from retail_banking.accounts import AccountKind
from retail_banking.config import BankConfig
from retail_banking.exceptions import (
    ForbiddenError, InsufficientFundsError, InvalidAmountError,
    InvalidOperationError, NotAuthenticatedError, NotFoundError,
    SingleWithdrawalLimitExceededError, UserValidationError
)
from retail_banking.money import ZERO
from retail_banking.system import BankingSystem
from retail_banking.users import Role


def kinds(history):
    return [record.kind for record in history]


class TestSessions:
    """Test login and logout"""

    def test_login(self, service, alice):
        session = service.login("alice", "alice-pass")
        assert session.is_authenticated
        assert session.user.id == alice.id

    def test_bad_password(self, service, system, alice):
        with pytest.raises(NotAuthenticatedError):
            service.login("alice", "wrong-pass")
        with pytest.raises(NotAuthenticatedError):
            service.login("nobody", "whatever")
        assert len(system.audit_trail.get_events_by_type(AuditEventType.LOGIN_FAILED)) == 2

    def test_logout_ends_session(self, service, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id)
        service.logout(alice_session)

        assert not alice_session.is_authenticated
        with pytest.raises(NotAuthenticatedError):
            service.deposit(alice_session, account_id, "10")


class TestUserManagement:
    """Test user administration rules"""

    def test_only_admin_registers(self, service, banker_session):
        with pytest.raises(ForbiddenError):
            service.register_user(banker_session, "carol", "carol-pass")

    def test_registration_rules(self, service, admin_session):
        with pytest.raises(UserValidationError):
            service.register_user(admin_session, "cj", "carol-pass")
        with pytest.raises(UserValidationError):
            service.register_user(admin_session, "carol", "short")

    def test_list_users(self, service, banker_session, alice_session):
        names = [user.username for user in service.list_users(banker_session)]
        assert names == ["admin", "alice", "banker"]
        with pytest.raises(ForbiddenError):
            service.list_users(alice_session)

    def test_change_role(self, service, admin_session, alice):
        assert service.change_user_role(admin_session, "alice", Role.BANKER)
        session = service.login("alice", "alice-pass")
        assert session.user.role is Role.BANKER

        with pytest.raises(NotFoundError):
            service.change_user_role(admin_session, "nobody", Role.BANKER)

    def test_delete_user(self, service, admin_session, bob):
        assert service.delete_user(admin_session, "bob")
        with pytest.raises(NotAuthenticatedError):
            service.login("bob", "bob-pass")
        with pytest.raises(NotFoundError):
            service.delete_user(admin_session, "bob")

    def test_admin_cannot_delete_self(self, service, admin_session):
        with pytest.raises(InvalidOperationError):
            service.delete_user(admin_session, "admin")


class TestOpenAccounts:
    """Test account opening for each kind"""

    def test_initial_deposit_is_ledgered(self, service, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id, "100")

        account = service.get_account(alice_session, account_id)
        assert account.balance == Decimal("100.00")
        records = list(service.transaction_history(alice_session, account_id))
        assert kinds(records) == ["Initial Deposit"]
        assert records[0].amount == Decimal("100.00")
        assert records[0].new_balance == Decimal("100.00")

    def test_no_ledger_entry_without_deposit(self, service, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id)
        assert len(service.transaction_history(alice_session, account_id)) == 0

    def test_product_defaults(self, service, clock, alice_session, alice):
        savings = service.get_account(
            alice_session, service.open_savings_account(alice_session, alice.id))
        assert savings.interest_rate == Decimal("0.03")
        assert savings.daily_withdrawal_limit == Decimal("1000")

        student = service.get_account(
            alice_session, service.open_student_savings_account(alice_session, alice.id))
        assert student.interest_rate == Decimal("0.05")
        assert student.daily_withdrawal_limit == Decimal("500")
        assert student.single_withdrawal_limit == Decimal("200")

        credit = service.get_account(
            alice_session, service.open_credit_account(alice_session, alice.id))
        assert credit.credit_limit == Decimal("1000")
        assert credit.interest_rate == Decimal("0.2")
        assert credit.grace_period_end == clock.now() + timedelta(days=30)

    def test_custom_terms(self, service, alice_session, alice):
        account_id = service.open_savings_account(
            alice_session, alice.id, "50",
            interest_rate=Decimal("0.12"), daily_withdrawal_limit=Decimal("200")
        )
        account = service.get_account(alice_session, account_id)
        assert account.interest_rate == Decimal("0.12")
        assert account.daily_withdrawal_limit == Decimal("200")

    def test_client_cannot_open_for_others(self, service, alice_session, bob):
        with pytest.raises(ForbiddenError):
            service.open_checking_account(alice_session, bob.id)

    def test_banker_opens_for_client(self, service, banker_session, alice_session, alice):
        account_id = service.open_checking_account(banker_session, alice.id, "20")
        assert service.get_account(alice_session, account_id).owner_id == alice.id

    def test_unknown_owner(self, service, banker_session):
        with pytest.raises(NotFoundError):
            service.open_checking_account(banker_session, "no-such-user")

    def test_negative_initial_deposit(self, service, alice_session, alice):
        with pytest.raises(InvalidAmountError):
            service.open_checking_account(alice_session, alice.id, "-5")
        assert service.get_user_accounts(alice_session, alice.id) == []

    @pytest.mark.parametrize("initial_deposit", ["1e40", "Infinity", "NaN", "abc"])
    def test_unusable_initial_deposit(self, service, alice_session, alice, initial_deposit):
        with pytest.raises(InvalidAmountError):
            service.open_checking_account(alice_session, alice.id, initial_deposit)
        assert service.get_user_accounts(alice_session, alice.id) == []

    @pytest.mark.parametrize("terms", [
        {"interest_rate": Decimal("NaN")},
        {"daily_withdrawal_limit": Decimal("Infinity")},
        {"daily_withdrawal_limit": Decimal("1e40")},
    ])
    def test_unusable_terms(self, service, alice_session, alice, terms):
        with pytest.raises(ValueError):
            service.open_savings_account(alice_session, alice.id, **terms)

    def test_logged_out(self, service, alice):
        with pytest.raises(NotAuthenticatedError):
            service.open_checking_account(Session(), alice.id)


class TestAccountQueries:
    """Test account lookups and their authorization"""

    def test_get_account_of_other_client(self, service, alice_session, bob_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id)
        with pytest.raises(ForbiddenError):
            service.get_account(bob_session, account_id)

    def test_unknown_account(self, service, alice_session):
        with pytest.raises(NotFoundError):
            service.get_account(alice_session, "missing")

    def test_user_accounts_in_opening_order(self, service, alice_session, alice, bob_session):
        first = service.open_checking_account(alice_session, alice.id)
        second = service.open_savings_account(alice_session, alice.id)
        assert [a.id for a in service.get_user_accounts(alice_session, alice.id)] == [first, second]
        with pytest.raises(ForbiddenError):
            service.get_user_accounts(bob_session, alice.id)

    def test_list_all_accounts(self, service, alice_session, alice, bob_session, bob, banker_session):
        service.open_checking_account(alice_session, alice.id)
        service.open_checking_account(bob_session, bob.id)
        assert len(service.list_all_accounts(banker_session)) == 2
        with pytest.raises(ForbiddenError):
            service.list_all_accounts(alice_session)


class TestDepositAndWithdraw:
    """Test single-account money movement"""

    def test_deposit_and_withdraw_are_ledgered(self, service, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id)
        assert service.deposit(alice_session, account_id, "100") == Decimal("100.00")
        assert service.withdraw(alice_session, account_id, "30.50") == Decimal("69.50")

        records = list(service.transaction_history(alice_session, account_id))
        assert kinds(records) == ["Withdraw", "Deposit"]
        assert records[0].amount == Decimal("-30.50")
        assert records[0].new_balance == Decimal("69.50")

    def test_balance_persisted(self, service, alice_session, alice):
        account_id = service.open_savings_account(alice_session, alice.id)
        service.deposit(alice_session, account_id, "75")
        account = service.get_account(alice_session, account_id)
        assert account.balance == Decimal("75.00")
        assert len(account.history) == 2

    def test_failed_withdrawal_leaves_no_trace(self, service, alice_session, alice):
        account_id = service.open_student_savings_account(alice_session, alice.id, "300")
        with pytest.raises(SingleWithdrawalLimitExceededError):
            service.withdraw(alice_session, account_id, "250")
        with pytest.raises(InvalidAmountError):
            service.deposit(alice_session, account_id, "0")

        assert service.get_account(alice_session, account_id).balance == Decimal("300.00")
        assert kinds(service.transaction_history(alice_session, account_id)) == ["Initial Deposit"]

    def test_credit_borrow_and_repay(self, service, alice_session, alice):
        account_id = service.open_credit_account(alice_session, alice.id)
        assert service.withdraw(alice_session, account_id, "400") == Decimal("-400.00")
        assert service.deposit(alice_session, account_id, "150") == Decimal("-250.00")

        records = list(service.transaction_history(alice_session, account_id))
        assert kinds(records) == ["Repay", "Borrow"]
        assert records[1].amount == Decimal("-400.00")

    def test_client_cannot_touch_other_account(self, service, alice_session, alice, bob_session):
        account_id = service.open_checking_account(alice_session, alice.id, "100")
        with pytest.raises(ForbiddenError):
            service.withdraw(bob_session, account_id, "10")
        assert service.get_account(alice_session, account_id).balance == Decimal("100.00")


class TestTransfers:
    """Test transfers between accounts"""

    @pytest.fixture
    def accounts(self, service, alice_session, alice, bob_session, bob):
        source = service.open_checking_account(alice_session, alice.id, "100")
        target = service.open_checking_account(bob_session, bob.id)
        return source, target

    def test_client_cannot_transfer_to_other_owner(self, service, system, alice_session, accounts):
        source, target = accounts
        with pytest.raises(ForbiddenError):
            service.transfer(alice_session, source, target, "50")
        assert system.storage.count("transactions") == 1

    def test_banker_transfer_writes_two_entries(self, service, system, banker_session, accounts):
        source, target = accounts
        before = system.storage.count("transactions")

        assert service.transfer(banker_session, source, target, "50") == Decimal("50.00")

        assert system.storage.count("transactions") == before + 2
        out_record = list(service.transaction_history(banker_session, source))[0]
        in_record = list(service.transaction_history(banker_session, target))[0]
        assert (out_record.kind, out_record.amount, out_record.new_balance) == (
            "Transfer Out", Decimal("-50.00"), Decimal("50.00"))
        assert (in_record.kind, in_record.amount, in_record.new_balance) == (
            "Transfer In", Decimal("50.00"), Decimal("50.00"))

    def test_client_between_own_accounts(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id, "100")
        savings = service.open_savings_account(alice_session, alice.id)
        service.transfer(alice_session, checking, savings, "40")

        assert service.get_account(alice_session, checking).balance == Decimal("60.00")
        assert service.get_account(alice_session, savings).balance == Decimal("40.00")

    def test_insufficient_funds_changes_nothing(self, service, system, banker_session, accounts):
        source, target = accounts
        with pytest.raises(InsufficientFundsError):
            service.transfer(banker_session, source, target, "100.01")

        assert service.get_account(banker_session, source).balance == Decimal("100.00")
        assert service.get_account(banker_session, target).balance == ZERO
        assert system.storage.count("transactions") == 1

    def test_same_account(self, service, alice_session, accounts):
        source, _ = accounts
        with pytest.raises(InvalidOperationError):
            service.transfer(alice_session, source, source, "10")

    def test_unknown_account(self, service, alice_session, accounts):
        source, _ = accounts
        with pytest.raises(NotFoundError):
            service.transfer(alice_session, source, "missing", "10")

    def test_transfer_into_credit_repays(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id, "500")
        credit = service.open_credit_account(alice_session, alice.id)
        service.withdraw(alice_session, credit, "200")

        service.transfer(alice_session, checking, credit, "200")
        assert service.get_account(alice_session, credit).balance == ZERO

    def test_storage_failure_rolls_back(self, service, system, banker_session, accounts, monkeypatch):
        source, target = accounts
        original = system.repository.append_transaction
        calls = []

        def failing_append(record):
            calls.append(record)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            original(record)

        monkeypatch.setattr(system.repository, "append_transaction", failing_append)
        with pytest.raises(RuntimeError):
            service.transfer(banker_session, source, target, "50")

        assert service.get_account(banker_session, source).balance == Decimal("100.00")
        assert service.get_account(banker_session, target).balance == ZERO
        assert system.storage.count("transactions") == 1


class TestTransferToSavings:
    """Test checking to linked savings transfers"""

    def test_linked_transfer(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id, "300")
        savings = service.open_savings_account(alice_session, alice.id)
        assert service.link_checking_and_savings(alice_session, checking, savings)

        assert service.transfer_to_savings(alice_session, checking, "120") == Decimal("180.00")
        assert service.get_account(alice_session, savings).balance == Decimal("120.00")
        assert kinds(service.transaction_history(alice_session, checking))[0] == "Transfer to Savings"
        assert kinds(service.transaction_history(alice_session, savings)) == ["Transfer In"]

    def test_explicit_savings_account(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id, "300")
        savings = service.open_student_savings_account(alice_session, alice.id)
        service.transfer_to_savings(alice_session, checking, "10", savings_id=savings)
        assert service.get_account(alice_session, savings).balance == Decimal("10.00")

    def test_requires_link(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id, "300")
        with pytest.raises(InvalidOperationError):
            service.transfer_to_savings(alice_session, checking, "10")

    def test_other_owners_savings(self, service, alice_session, alice, bob_session, bob):
        checking = service.open_checking_account(alice_session, alice.id, "300")
        savings = service.open_savings_account(bob_session, bob.id)
        with pytest.raises(ForbiddenError):
            service.transfer_to_savings(alice_session, checking, "10", savings_id=savings)


class TestLinking:
    """Test linking checking and savings accounts"""

    def test_link_persists(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id)
        savings = service.open_savings_account(alice_session, alice.id)
        service.link_checking_and_savings(alice_session, checking, savings)
        assert service.get_account(alice_session, checking).linked_savings_id == savings

    def test_wrong_types(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id)
        savings = service.open_savings_account(alice_session, alice.id)
        with pytest.raises(InvalidOperationError):
            service.link_checking_and_savings(alice_session, savings, checking)

    def test_different_owners(self, service, banker_session, alice, bob):
        checking = service.open_checking_account(banker_session, alice.id)
        savings = service.open_savings_account(banker_session, bob.id)
        with pytest.raises(InvalidOperationError):
            service.link_checking_and_savings(banker_session, checking, savings)


class TestCloseAccount:
    """Test closing accounts"""

    def test_close_round_trip(self, service, system, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id, "100")
        service.withdraw(alice_session, account_id, "100")

        assert service.close_account(alice_session, account_id)
        with pytest.raises(NotFoundError):
            service.get_account(alice_session, account_id)
        assert len(system.repository.list_transactions(account_id)) == 2
        assert system.audit_trail.get_events_for_entity("account", account_id)[-1].event_type \
            is AuditEventType.ACCOUNT_CLOSED

    def test_nonzero_balance(self, service, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id, "0.01")
        with pytest.raises(InvalidOperationError):
            service.close_account(alice_session, account_id)

    def test_credit_with_debt(self, service, alice_session, alice):
        account_id = service.open_credit_account(alice_session, alice.id)
        service.withdraw(alice_session, account_id, "10")
        with pytest.raises(InvalidOperationError):
            service.close_account(alice_session, account_id)

    def test_closing_savings_clears_link(self, service, alice_session, alice):
        checking = service.open_checking_account(alice_session, alice.id, "50")
        savings = service.open_savings_account(alice_session, alice.id)
        service.link_checking_and_savings(alice_session, checking, savings)

        assert service.close_account(alice_session, savings)
        assert service.get_account(alice_session, checking).linked_savings_id is None
        with pytest.raises(InvalidOperationError, match="No savings account is linked"):
            service.transfer_to_savings(alice_session, checking, "10")
        assert service.get_account(alice_session, checking).balance == Decimal("50.00")


class TestInterest:
    """Test interest accrual through the service"""

    def test_savings_interest(self, service, system, admin_session, alice_session, alice):
        account_id = service.open_savings_account(alice_session, alice.id, "1200")
        service.advance_time(admin_session, 30)

        assert service.accrue_interest(alice_session, account_id) == Decimal("3.00")
        assert service.get_account(alice_session, account_id).balance == Decimal("1203.00")

        latest = list(service.transaction_history(alice_session, account_id))[0]
        assert (latest.kind, latest.amount) == ("Interest", Decimal("3.00"))
        assert len(system.audit_trail.get_events_by_type(AuditEventType.INTEREST_POSTED)) == 1

    def test_weighted_history_survives_reload(self, service, admin_session, alice_session, alice):
        """0 for 10 days then 1200 for 20 days: average 800 at 3% earns 2.00"""
        account_id = service.open_savings_account(alice_session, alice.id)
        service.advance_time(admin_session, 10)
        service.deposit(alice_session, account_id, "1200")
        service.advance_time(admin_session, 20)

        assert service.accrue_interest(alice_session, account_id) == Decimal("2.00")

    def test_checking_accrues_nothing(self, service, admin_session, alice_session, alice):
        account_id = service.open_checking_account(alice_session, alice.id, "1000")
        service.advance_time(admin_session, 30)

        assert service.accrue_interest(alice_session, account_id) == ZERO
        assert kinds(service.transaction_history(alice_session, account_id)) == ["Initial Deposit"]

    def test_credit_grace_then_charge(self, service, admin_session, alice_session, alice):
        account_id = service.open_credit_account(alice_session, alice.id)
        service.withdraw(alice_session, account_id, "500")

        service.advance_time(admin_session, 30)
        assert service.accrue_interest(alice_session, account_id) == ZERO

        service.advance_time(admin_session, 15)
        assert service.accrue_interest(alice_session, account_id) == Decimal("-8.33")
        assert service.get_account(alice_session, account_id).balance == Decimal("-508.33")

    def test_run_monthly_interest(self, service, admin_session, banker_session, alice_session, alice):
        savings = service.open_savings_account(alice_session, alice.id, "1200")
        checking = service.open_checking_account(alice_session, alice.id, "50")
        service.advance_time(admin_session, 30)

        with pytest.raises(ForbiddenError):
            service.run_monthly_interest(alice_session)

        results = service.run_monthly_interest(banker_session)
        assert results == {savings: Decimal("3.00"), checking: ZERO}


class TestClockControl:
    """Test time simulation controls"""

    def test_admin_only(self, service, clock, banker_session):
        with pytest.raises(ForbiddenError):
            service.advance_time(banker_session, 1)
        with pytest.raises(ForbiddenError):
            service.enable_time_simulation(banker_session, clock.now())
        with pytest.raises(ForbiddenError):
            service.disable_time_simulation(banker_session)

    def test_enable_advance_disable(self, service, system, admin_session):
        moment = datetime(2025, 6, 1, tzinfo=timezone.utc)
        assert service.enable_time_simulation(admin_session, moment) == moment
        assert service.advance_time(admin_session, 2) == moment + timedelta(days=2)
        assert service.current_time() == moment + timedelta(days=2)

        service.disable_time_simulation(admin_session)
        assert not system.clock.is_simulated
        with pytest.raises(InvalidOperationError):
            service.advance_time(admin_session, 1)

        events = system.audit_trail.get_events_by_type(AuditEventType.TIME_SIMULATION_CHANGED)
        assert [event.metadata["action"] for event in events] == ["enabled", "advanced", "disabled"]


class TestPersistentSystem:
    """Test a SQLite-backed system across restarts"""

    def test_reopen(self, tmp_path, clock):
        config = BankConfig(_env_file=None, storage_backend="sqlite",
                            database_path=str(tmp_path / "bank.db"))
        first = BankingSystem(config=config, clock=clock)
        admin = first.service.login("admin", "admin")
        user = first.service.register_user(admin, "alice", "alice-pass")
        session = first.service.login("alice", "alice-pass")
        account_id = first.service.open_savings_account(session, user.id, "250")
        first.service.deposit(session, account_id, "50")
        first.close()

        second = BankingSystem(config=config, clock=clock)
        session = second.service.login("alice", "alice-pass")
        account = second.service.get_account(session, account_id)
        assert account.kind is AccountKind.SAVINGS
        assert account.balance == Decimal("300.00")
        assert len(account.history) == 2
        assert kinds(second.service.transaction_history(session, account_id)) == [
            "Deposit", "Initial Deposit"
        ]
        assert len(second.identity_store.list_users()) == 2
        second.close()
