from __future__ import annotations

import logging
from typing import Callable, List, Optional

from db.store import LocalStore

logger = logging.getLogger(__name__)

AUTH_NAMESPACE = "auth"
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


class AuthSession:
    """Opaque bearer credential provider backed by the local store."""

    def __init__(self, store: LocalStore):
        self._store = store
        self._token: Optional[str] = store.get(AUTH_NAMESPACE, "session_token")
        self._email: Optional[str] = store.get(AUTH_NAMESPACE, "email")
        self.sign_out_reason: Optional[str] = None
        self._listeners: List[Callable[[Optional[str]], None]] = []

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def email(self) -> Optional[str]:
        return self._email

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def authorization_header(self) -> dict:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def sign_in(self, token: str, email: Optional[str] = None) -> None:
        token = (token or "").strip()
        if not token:
            raise ValueError("Session token cannot be empty")
        self._store.put(AUTH_NAMESPACE, "session_token", token)
        if email:
            self._store.put(AUTH_NAMESPACE, "email", email)
        self._token = token
        self._email = email
        self.sign_out_reason = None
        logger.info("Signed in")

    def add_sign_out_listener(self, listener: Callable[[Optional[str]], None]) -> None:
        self._listeners.append(listener)

    def sign_out(self, reason: Optional[str] = None) -> None:
        """Clear every piece of local authentication state."""
        self._token = None
        self._email = None
        self.sign_out_reason = reason
        self._store.clear(AUTH_NAMESPACE)
        logger.info("Signed out%s", f": {reason}" if reason else "")
        for listener in self._listeners:
            try:
                listener(reason)
            except Exception as exc:
                logger.error("Sign-out listener failed: %s", exc)
