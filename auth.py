import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import bcrypt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import database
from slugs import SlugCheckGate

logger = logging.getLogger(__name__)

ADMIN_COLLECTION = "admin"

Listener = Callable[[str, Optional["AdminSession"]], None]


class InvalidCredentials(Exception):
    pass


@dataclass
class AdminSession:
    token: str
    email: str
    signed_in_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    slug_gate: SlugCheckGate = field(default_factory=SlugCheckGate)


class SessionContext:
    """Signed-in admin sessions, keyed by bearer token.

    Listeners are called as listener(email, session) on sign-in and
    listener(email, None) on sign-out; subscribe() returns the function that
    removes the listener again.
    """

    def __init__(self):
        self._sessions: Dict[str, AdminSession] = {}
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get(self, token: Optional[str]) -> Optional[AdminSession]:
        if not token:
            return None
        return self._sessions.get(token)

    def open(self, email: str) -> AdminSession:
        session = AdminSession(token=secrets.token_urlsafe(32), email=email)
        self._sessions[session.token] = session
        self._emit(email, session)
        return session

    def close(self, token: str) -> bool:
        session = self._sessions.pop(token, None)
        if session is None:
            return False
        session.slug_gate.close()
        self._emit(session.email, None)
        return True

    def close_all(self) -> None:
        for token in list(self._sessions):
            self.close(token)

    def __len__(self):
        return len(self._sessions)

    def _emit(self, email: str, session: Optional[AdminSession]) -> None:
        for listener in list(self._listeners):
            listener(email, session)


def normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def hash_password(password: str) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())


def create_admin(email: str, password: str) -> str:
    return database.create_document(ADMIN_COLLECTION, {
        "email": normalize_email(email),
        "password": hash_password(password),
    })


def ensure_admin(email: Optional[str], password: Optional[str]) -> bool:
    """Create the bootstrap admin when none exists yet. Returns True if one was created."""
    if not email or not password:
        return False
    if database.count_documents(ADMIN_COLLECTION) > 0:
        return False
    create_admin(email, password)
    logger.info("Created bootstrap admin %s", normalize_email(email))
    return True


def sign_in(context: SessionContext, email: str, password: str) -> AdminSession:
    user = database.find_one(ADMIN_COLLECTION, {"email": normalize_email(email)})
    if not user or not bcrypt.checkpw(password.encode("utf-8"), user["password"]):
        raise InvalidCredentials(email)
    return context.open(user["email"])


def log_session_change(email: str, session: Optional[AdminSession]) -> None:
    if session is None:
        logger.info("Admin signed out: %s", email)
    else:
        logger.info("Admin signed in: %s", email)


# -----------------------
# FastAPI dependencies
# -----------------------

bearer = HTTPBearer(auto_error=False)


def get_session_context(request: Request) -> SessionContext:
    return request.app.state.sessions


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    context: SessionContext = Depends(get_session_context),
) -> AdminSession:
    session = context.get(credentials.credentials if credentials else None)
    if session is None:
        raise HTTPException(status_code=401, detail="Not signed in", headers={"WWW-Authenticate": "Bearer"})
    return session
