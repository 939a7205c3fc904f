"""
Identity Store Module

Users, their roles and salted password verification.
"""

import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any

from .audit import AuditEventType, AuditTrail
from .exceptions import UserValidationError
from .storage import StorageInterface, StorageRecord

logger = logging.getLogger("retail_banking.users")


class Role(Enum):
    """User roles, from least to most privileged"""
    CLIENT = "Client"
    BANKER = "Banker"
    ADMIN = "Admin"

    @property
    def is_staff(self) -> bool:
        """Bankers and admins may act on any customer's accounts"""
        return self in (Role.BANKER, Role.ADMIN)


@dataclass
class User(StorageRecord):
    """System user with role and authentication info"""
    username: str
    role: Role
    password_hash: str
    password_salt: str

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'username': self.username,
            'role': self.role.value,
            'password_hash': self.password_hash,
            'password_salt': self.password_salt,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            username=data['username'],
            role=Role(data['role']),
            password_hash=data['password_hash'],
            password_salt=data['password_salt'],
        )


class IdentityStore:
    """Stores users and verifies their credentials"""

    def __init__(self, storage: StorageInterface, audit: Optional[AuditTrail] = None,
                 username_min_length: int = 3, password_min_length: int = 6):
        self.storage = storage
        self.audit = audit
        self.users_table = "users"
        self.username_min_length = username_min_length
        self.password_min_length = password_min_length

    def find_user(self, username: str) -> Optional[User]:
        """Get user by username"""
        rows = self.storage.find(self.users_table, {'username': username})
        return User.from_dict(rows[0]) if rows else None

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.users_table, user_id)
        return User.from_dict(data) if data else None

    def list_users(self) -> List[User]:
        users = [User.from_dict(row) for row in self.storage.load_all(self.users_table)]
        return sorted(users, key=lambda u: u.username)

    def create_user(self, username: str, password: str, role: Role = Role.CLIENT,
                    created_by: Optional[str] = None) -> User:
        """
        Create a new user

        Raises:
            UserValidationError: If the username is taken or too short, or
                the password is too short
        """
        username = (username or "").strip()
        if self.find_user(username) is not None:
            raise UserValidationError("Username already exists")
        if len(username) < self.username_min_length:
            raise UserValidationError(
                f"Username must be at least {self.username_min_length} characters"
            )
        if not password or not password.strip() or len(password) < self.password_min_length:
            raise UserValidationError(
                f"Password must be at least {self.password_min_length} characters"
            )
        return self._add_user(username, password, role, created_by)

    def _add_user(self, username: str, password: str, role: Role,
                  created_by: Optional[str]) -> User:
        now = datetime.now(timezone.utc)
        salt = self._generate_salt()
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            username=username,
            role=role,
            password_hash=self._hash_password(password, salt),
            password_salt=salt,
        )
        self.storage.save(self.users_table, user.id, user.to_dict())

        if self.audit:
            self.audit.log_event(
                AuditEventType.USER_CREATED, 'user', user.id,
                {'username': username, 'role': role.value},
                created_by
            )
        logger.info(f"User {username} created with role {role.value}")
        return user

    def verify_credentials(self, user: User, password: str) -> bool:
        """Verify password against stored hash"""
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)

    def update_role(self, username: str, role: Role, changed_by: Optional[str] = None) -> bool:
        user = self.find_user(username)
        if not user:
            return False

        old_role = user.role
        user.role = role
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.users_table, user.id, user.to_dict())

        if self.audit:
            self.audit.log_event(
                AuditEventType.USER_ROLE_CHANGED, 'user', user.id,
                {'username': username, 'old_role': old_role.value, 'new_role': role.value},
                changed_by
            )
        return True

    def delete_user(self, username: str, deleted_by: Optional[str] = None) -> bool:
        user = self.find_user(username)
        if not user:
            return False

        deleted = self.storage.delete(self.users_table, user.id)
        if deleted and self.audit:
            self.audit.log_event(
                AuditEventType.USER_DELETED, 'user', user.id,
                {'username': username}, deleted_by
            )
        return deleted

    def ensure_default_admin(self, username: str, password: str) -> Optional[User]:
        """Seed an admin when no users exist yet, bypassing the length rules"""
        if self.storage.count(self.users_table) > 0:
            return None
        admin = self._add_user(username, password, Role.ADMIN, created_by="system")
        logger.warning(f"Default admin '{username}' created; change its password")
        return admin

    def _generate_salt(self) -> str:
        """Generate random salt for password hashing"""
        return secrets.token_hex(16)

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()
