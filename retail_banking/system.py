"""
Banking system wiring

Builds storage, clock, audit trail, identity store, repository, ledger and
service from configuration.
"""

import logging
import os
from typing import Optional

from .access import AccessController
from .audit import AuditTrail
from .clock import Clock
from .config import BankConfig, get_config
from .ledger import Ledger
from .repository import AccountRepository
from .service import BankingService
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface
from .users import IdentityStore

logger = logging.getLogger("retail_banking.system")


class BankingSystem:
    """Retail banking system with all components initialized"""

    def __init__(self, config: Optional[BankConfig] = None,
                 storage: Optional[StorageInterface] = None,
                 clock: Optional[Clock] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or self._create_storage()

        self.clock = clock or Clock(self.config.simulation_start)
        self.audit_trail = AuditTrail(self.storage, self.clock)
        self.identity_store = IdentityStore(
            self.storage, self.audit_trail,
            username_min_length=self.config.username_min_length,
            password_min_length=self.config.password_min_length,
        )
        self.repository = AccountRepository(self.storage)
        self.ledger = Ledger(self.repository, self.clock)
        self.access = AccessController()
        self.service = BankingService(
            self.repository, self.identity_store, self.ledger, self.clock,
            access=self.access, audit_trail=self.audit_trail, config=self.config
        )

        self.identity_store.ensure_default_admin(
            self.config.default_admin_username,
            self.config.default_admin_password
        )

    def _create_storage(self) -> StorageInterface:
        backend = self.config.storage_backend.lower()
        if backend == "memory":
            return InMemoryStorage()
        if backend != "sqlite":
            raise ValueError(f"Unknown storage backend: {self.config.storage_backend}")

        path = self.config.database_path
        if self.config.reset_database and path != ":memory:" and os.path.exists(path):
            logger.warning(f"Resetting database at {path}")
            os.remove(path)
        return SQLiteStorage(path)

    def close(self) -> None:
        self.storage.close()


# Global banking system instance, created on first use
_banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    global _banking_system
    if _banking_system is None:
        _banking_system = BankingSystem()
    return _banking_system
