"""
Session and authentication service.

Only the most recent login of a user is valid. Each login deactivates the
user's other sessions and records the new session id on the user; a token
whose session id no longer matches is rejected with `SESSION_OVERRIDDEN` so
the client can explain the forced logout. Bumping a user's token version
invalidates every token issued before the bump.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import jwt

from portfolio.db import DbClient, SessionRecord, UserRecord, new_id
from portfolio.errors import AuthError, BadRequestError, ForbiddenError, NotFoundError
from portfolio.security import (
    check_password,
    decode_token,
    encode_token,
    hash_password,
    parse_user_agent,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72

NO_TOKEN = "NO_TOKEN"
INVALID_TOKEN = "INVALID_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
USER_NOT_FOUND = "USER_NOT_FOUND"
TOKEN_VERSION_MISMATCH = "TOKEN_VERSION_MISMATCH"
SESSION_OVERRIDDEN = "SESSION_OVERRIDDEN"
SESSION_EXPIRED = "SESSION_EXPIRED"


@dataclass
class LoginResult:
    token: str
    session_id: str
    user: UserRecord
    expires_at: float


@dataclass
class AuthContext:
    """The authenticated caller of a request."""

    user: UserRecord
    session_id: str
    token: str

    @property
    def is_admin(self) -> bool:
        return self.user.role == "admin"


class AuthService:
    def __init__(
        self,
        db: DbClient,
        *,
        secret: str,
        expire_days: int = 7,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.secret = secret
        self.expire_days = expire_days
        self.clock = clock

    # Accounts

    def create_admin(self, username: str, password: str) -> UserRecord:
        username = (username or "").strip()
        if not username:
            raise BadRequestError("Username is required")
        self._check_new_password(password)
        try:
            user = self.db.create_user(username, hash_password(password), role="admin")
        except ValueError as exc:
            raise BadRequestError(str(exc))
        logger.info("Created admin user %s", username)
        return user

    def reset_password(self, username: str, password: str) -> UserRecord:
        user = self.db.get_user_by_username(username)
        if not user:
            raise NotFoundError("User not found")
        self._check_new_password(password)
        self.db.set_password(user.user_id, hash_password(password))
        self._revoke_user(user.user_id)
        logger.info("Password reset for %s; all sessions revoked", username)
        return self.db.get_user(user.user_id)

    def ensure_admin(self, username: str, password: str) -> Optional[UserRecord]:
        """Create the bootstrap admin if it does not exist yet."""
        if self.db.get_user_by_username(username):
            return None
        return self.create_admin(username, password)

    # Login flow

    def login(
        self,
        username: str,
        password: str,
        *,
        ip_address: str = "unknown",
        user_agent: str = "Unknown",
    ) -> LoginResult:
        username = (username or "").strip()
        if not username or not password:
            raise BadRequestError("Please provide username and password")

        logger.info("Login attempt: %s", username)
        user = self.db.get_user_by_username(username)
        if not user or not check_password(password, user.password_hash):
            logger.warning("Failed login for %s from %s", username, ip_address)
            raise AuthError("Invalid credentials")

        now = self.clock()
        session_id = new_id()
        expires_at = now + self.expire_days * SECONDS_PER_DAY
        token = encode_token(
            self.secret,
            user_id=user.user_id,
            version=user.token_version,
            session_id=session_id,
            issued_at=int(now),
            expires_at=int(expires_at),
        )

        overridden = self.db.deactivate_user_sessions(user.user_id)
        if overridden:
            logger.info(
                "Login for %s overrides %d active session(s)", username, overridden
            )

        client = parse_user_agent(user_agent)
        self.db.create_session(
            SessionRecord(
                session_id=session_id,
                user_id=user.user_id,
                ip_address=ip_address or "unknown",
                user_agent=user_agent or "Unknown",
                device=client.device,
                browser=client.browser,
                os=client.os,
                created_at=now,
                last_active=now,
                expires_at=float(int(expires_at)),
            )
        )
        self.db.record_login(
            user.user_id, session_id=session_id, ip_address=ip_address, when=now
        )
        logger.info("Login successful, session created: %s", session_id)

        return LoginResult(
            token=token,
            session_id=session_id,
            user=self.db.get_user(user.user_id),
            expires_at=float(int(expires_at)),
        )

    def verify(self, token: Optional[str]) -> AuthContext:
        """Validate a token and return who it belongs to.

        The checks run in a fixed order so the failure code tells the client
        exactly why it was logged out.
        """
        if not token:
            raise AuthError("No token provided", code=NO_TOKEN)

        try:
            claims = decode_token(self.secret, token)
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired", code=TOKEN_EXPIRED)
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token", code=INVALID_TOKEN)

        user = self.db.get_user(claims.user_id)
        if not user:
            raise AuthError("User not found", code=USER_NOT_FOUND)

        if claims.version != user.token_version:
            raise AuthError(
                "Session expired. Please login again.", code=TOKEN_VERSION_MISMATCH
            )

        if user.active_session != claims.session_id:
            logger.info(
                "Rejected overridden session %s for %s",
                claims.session_id,
                user.username,
            )
            raise AuthError("Logged in from another device", code=SESSION_OVERRIDDEN)

        now = self.clock()
        session = self.db.get_session(claims.session_id)
        if not session or not session.is_live(now):
            raise AuthError("Session expired", code=SESSION_EXPIRED)

        self.db.touch_session(session.session_id, now)
        return AuthContext(user=user, session_id=session.session_id, token=token)

    def logout(self, token: Optional[str]) -> None:
        """Deactivate the token's session. Never fails."""
        if not token:
            return
        try:
            claims = decode_token(self.secret, token, verify_exp=False)
        except jwt.InvalidTokenError as exc:
            logger.info("Logout with undecodable token: %s", exc)
            return

        self.db.deactivate_session(claims.session_id)
        user = self.db.get_user(claims.user_id)
        if user and user.active_session == claims.session_id:
            self.db.set_active_session(user.user_id, None)
        logger.info("Logged out session %s", claims.session_id)

    def change_password(
        self, context: AuthContext, current_password: str, new_password: str
    ) -> None:
        user = self.db.get_user(context.user.user_id)
        if not user or not check_password(current_password or "", user.password_hash):
            raise BadRequestError("Current password is incorrect")
        self._check_new_password(new_password)
        if check_password(new_password, user.password_hash):
            raise BadRequestError("New password must differ from the current one")
        self.db.set_password(user.user_id, hash_password(new_password))
        self._revoke_user(user.user_id)
        logger.info("Password changed for %s; all sessions revoked", user.username)

    # Session management

    def list_sessions(self, context: AuthContext) -> list[dict]:
        sessions = self.db.list_active_sessions(context.user.user_id, self.clock())
        items = []
        for session in sessions:
            item = session.as_dict()
            item["is_current_session"] = session.session_id == context.session_id
            items.append(item)
        return items

    def terminate_session(self, context: AuthContext, session_id: str) -> None:
        session = self.db.get_session(session_id)
        if not session:
            raise NotFoundError("Session not found")
        if session.user_id != context.user.user_id:
            raise ForbiddenError("Not authorized")
        if session.session_id == context.session_id:
            raise BadRequestError("Cannot terminate current session")
        self.db.deactivate_session(session_id)

    def terminate_other_sessions(self, context: AuthContext) -> int:
        return self.db.deactivate_user_sessions(
            context.user.user_id, except_session_id=context.session_id
        )

    def terminate_all_sessions(self, context: AuthContext) -> int:
        count = self._revoke_user(context.user.user_id)
        logger.info("All sessions terminated for %s", context.user.username)
        return count

    def user_sessions(self, context: AuthContext, user_id: str) -> list[dict]:
        self._require_admin(context)
        return [
            session.as_dict()
            for session in self.db.list_active_sessions(user_id, self.clock())
        ]

    def cleanup_expired(self, context: Optional[AuthContext] = None) -> int:
        if context is not None:
            self._require_admin(context)
        removed = self.db.delete_expired_sessions(self.clock())
        logger.info("Cleaned up %d expired sessions", removed)
        return removed

    def session_stats(self, context: AuthContext) -> dict:
        self._require_admin(context)
        return self.db.session_stats(self.clock())

    def revoke_everything(self) -> tuple[int, int]:
        """Log every user out: bump all token versions and deactivate all sessions."""
        users = self.db.bump_all_token_versions()
        sessions = self.db.deactivate_all_sessions()
        logger.info(
            "Auto-logout triggered for %d users, %d sessions deactivated",
            users,
            sessions,
        )
        return users, sessions

    # Helpers

    def _revoke_user(self, user_id: str) -> int:
        self.db.bump_token_version(user_id)
        count = self.db.deactivate_user_sessions(user_id)
        self.db.set_active_session(user_id, None)
        return count

    @staticmethod
    def _require_admin(context: AuthContext) -> None:
        if not context.is_admin:
            raise ForbiddenError("Not authorized")

    @staticmethod
    def _check_new_password(password: str) -> None:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise BadRequestError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        # bcrypt only looks at the first 72 bytes.
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise BadRequestError(
                f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes"
            )
