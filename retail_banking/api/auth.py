"""
Authentication dependencies and login endpoints

Bearer tokens are JWTs naming a server-side session. Logging out drops the
session, so its token stops working before it expires.
"""

from datetime import datetime, timezone, timedelta
from typing import Dict, Optional, Tuple
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import threading
import jwt

from ..access import Session
from ..config import BankConfig
from ..system import BankingSystem, get_banking_system
from .schemas import LoginRequest, user_to_dict


router = APIRouter()

# JWT Security
security = HTTPBearer(auto_error=False)


class SessionRegistry:
    """
    Logged-in sessions by session id

    Each session is held until its token expires. Expired entries are dropped
    on lookup and whenever a new session is added.
    """

    def __init__(self):
        self._sessions: Dict[str, Tuple[Session, datetime]] = {}
        self._lock = threading.Lock()

    def add(self, session: Session, expires_at: datetime,
            now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._prune(now)
            self._sessions[session.id] = (session, expires_at)

    def get(self, session_id: Optional[str],
            now: Optional[datetime] = None) -> Optional[Session]:
        if not session_id:
            return None
        now = now or datetime.now(timezone.utc)
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            session, expires_at = entry
            if expires_at <= now:
                del self._sessions[session_id]
                return None
            return session

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop expired sessions and return how many were dropped"""
        with self._lock:
            return self._prune(now or datetime.now(timezone.utc))

    def _prune(self, now: datetime) -> int:
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def get_system(request: Request) -> BankingSystem:
    """Dependency returning the app's banking system"""
    system = getattr(request.app.state, "system", None)
    if system is None:
        system = get_banking_system()
        request.app.state.system = system
    return system


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def issue_token(session: Session, config: BankConfig, now: datetime,
                expires_at: datetime) -> str:
    payload = {
        "sub": session.user.id,
        "sid": session.id,
        "role": session.user.role.value,
        "iat": now,
        "exp": expires_at,
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_system),
    sessions: SessionRegistry = Depends(get_sessions)
) -> Session:
    """Dependency that validates the JWT and returns the caller's session"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials, system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        sessions.prune()
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    session = sessions.get(payload.get("sid"))
    if session is None or not session.is_authenticated:
        raise HTTPException(status_code=401, detail="Session has ended")

    # Pick up role changes and deletions made since login
    user = system.identity_store.get_user(session.user.id)
    if user is None:
        sessions.remove(session.id)
        raise HTTPException(status_code=401, detail="User no longer exists")
    session.user = user
    return session


@router.post("/login")
async def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_system),
    sessions: SessionRegistry = Depends(get_sessions)
):
    """Exchange username and password for a bearer token"""
    session = system.service.login(request.username, request.password)
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=system.config.jwt_expiry_hours)
    sessions.add(session, expires_at, now)
    return {
        "access_token": issue_token(session, system.config, now, expires_at),
        "token_type": "bearer",
        **user_to_dict(session.user),
    }


@router.post("/logout")
async def logout(
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system),
    sessions: SessionRegistry = Depends(get_sessions)
):
    sessions.remove(session.id)
    system.service.logout(session)
    return {"message": "Logged out"}


@router.get("/me")
async def whoami(session: Session = Depends(get_session)):
    return user_to_dict(session.user)
