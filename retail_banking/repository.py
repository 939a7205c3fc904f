"""
Account Repository Module

The only path from the banking core to storage: accounts (with their balance
history) and ledger records, persisted through a StorageInterface backend.
"""

from datetime import datetime
from typing import List, Optional

from .accounts import Account, AccountKind, AccountTerms, open_account
from .ledger import TransactionRecord
from .money import ZERO
from .storage import StorageInterface


class AccountRepository:
    """Persistence collaborator for accounts and transaction records"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.accounts_table = "accounts"
        self.transactions_table = "transactions"

    def atomic(self):
        """All writes inside the block commit together or not at all"""
        return self.storage.atomic()

    # Accounts

    def create_account(self, kind: AccountKind, owner_id: str, terms: AccountTerms,
                       now: datetime, initial_balance=ZERO) -> str:
        """Open and store a new account, returning its id"""
        account = open_account(kind, owner_id, terms, now, initial_balance)
        self.save_account(account)
        return account.id

    def get_account(self, account_id: str) -> Optional[Account]:
        data = self.storage.load(self.accounts_table, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def list_accounts(self, owner_id: Optional[str] = None) -> List[Account]:
        """All accounts, or one owner's, in opening order"""
        if owner_id is None:
            rows = self.storage.load_all(self.accounts_table)
        else:
            rows = self.storage.find(self.accounts_table, {"owner_id": owner_id})
        return [Account.from_dict(row) for row in rows]

    def find_linked_checking(self, savings_id: str) -> List[Account]:
        """Checking accounts whose transfers to savings default to `savings_id`"""
        rows = self.storage.find(self.accounts_table, {"linked_savings_id": savings_id})
        return [Account.from_dict(row) for row in rows]

    def save_account(self, account: Account) -> None:
        self.storage.save(self.accounts_table, account.id, account.to_dict())

    def save_balance(self, account: Account) -> None:
        """Persist the balance together with the history that produced it"""
        data = self.storage.load(self.accounts_table, account.id)
        if data is None:
            raise KeyError(f"Account {account.id} is not stored")

        current = account.to_dict()
        data['balance'] = current['balance']
        data['history'] = current['history']
        data['updated_at'] = current['updated_at']
        self.storage.save(self.accounts_table, account.id, data)

    def delete_account(self, account_id: str) -> bool:
        return self.storage.delete(self.accounts_table, account_id)

    # Transactions

    def next_transaction_sequence(self) -> int:
        return self.storage.count(self.transactions_table) + 1

    def append_transaction(self, record: TransactionRecord) -> None:
        self.storage.save(self.transactions_table, record.id, record.to_dict())

    def list_transactions(self, account_id: str) -> List[TransactionRecord]:
        """One account's records in insertion order"""
        rows = self.storage.find(self.transactions_table, {"account_id": account_id})
        records = [TransactionRecord.from_dict(row) for row in rows]
        return sorted(records, key=lambda r: r.sequence)
