"""
Access Control Module

Sessions and the role rules that gate every operation. A session is an
explicit value handed to each service call; there is no process-wide
"current user".
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid

from .exceptions import ForbiddenError, InvalidOperationError, NotAuthenticatedError
from .users import Role, User


@dataclass
class Session:
    """Logged-out until a user is attached"""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user: Optional[User] = None
    started_at: Optional[datetime] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def login(self, user: User) -> None:
        self.user = user
        self.started_at = datetime.now(timezone.utc)

    def logout(self) -> None:
        self.user = None
        self.started_at = None


class AccessController:
    """Role-based authorization rules"""

    def require_login(self, session: Optional[Session]) -> User:
        """Return the acting user, or fail when nobody is logged in"""
        if session is None or not session.is_authenticated:
            raise NotAuthenticatedError("User not logged in")
        return session.user

    def authorize_account(self, session: Optional[Session], owner_id: str) -> User:
        """
        Staff may act on any account; clients only on their own

        Raises:
            NotAuthenticatedError: If the session is logged out
            ForbiddenError: If a client targets another owner's account
        """
        user = self.require_login(session)
        if user.role.is_staff:
            return user
        if user.id != owner_id:
            raise ForbiddenError("You can only manage your own accounts")
        return user

    def authorize_transfer(self, session: Optional[Session], from_owner_id: str,
                           to_owner_id: str) -> User:
        """Authorize against the source; cross-owner transfers need staff"""
        user = self.authorize_account(session, from_owner_id)
        if from_owner_id != to_owner_id and not user.role.is_staff:
            raise ForbiddenError("Cannot transfer to another user's account")
        return user

    def require_staff(self, session: Optional[Session]) -> User:
        user = self.require_login(session)
        if not user.role.is_staff:
            raise ForbiddenError("Admin or Banker access required")
        return user

    def require_admin(self, session: Optional[Session]) -> User:
        user = self.require_login(session)
        if user.role is not Role.ADMIN:
            raise ForbiddenError("Admin access required")
        return user

    def authorize_user_deletion(self, session: Optional[Session], username: str) -> User:
        user = self.require_admin(session)
        if user.username == username:
            raise InvalidOperationError("Cannot delete your own account")
        return user
