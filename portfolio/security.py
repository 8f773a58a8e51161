"""
Password hashing, token signing and user-agent parsing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import bcrypt
import jwt

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    version: int
    session_id: str
    issued_at: int
    expires_at: int


def encode_token(
    secret: str,
    *,
    user_id: str,
    version: int,
    session_id: str,
    issued_at: int,
    expires_at: int,
) -> str:
    payload = {
        "id": user_id,
        "version": version,
        "sessionId": session_id,
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(secret: str, token: str, *, verify_exp: bool = True) -> TokenClaims:
    """Decode and verify a token.

    Raises `jwt.ExpiredSignatureError` or `jwt.InvalidTokenError` untouched;
    callers decide how to report them. A token missing any claim is invalid.
    """
    payload = jwt.decode(
        token,
        secret,
        algorithms=[ALGORITHM],
        options={"verify_exp": verify_exp, "require": ["exp", "iat"]},
    )
    try:
        return TokenClaims(
            user_id=str(payload["id"]),
            version=int(payload["version"]),
            session_id=str(payload["sessionId"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError(f"Malformed token payload: {exc}") from exc


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an `Authorization: Bearer ...` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@dataclass(frozen=True)
class ClientInfo:
    device: str
    browser: str
    os: str


def parse_user_agent(user_agent: Optional[str]) -> ClientInfo:
    ua = user_agent or ""
    if not ua or ua == "Unknown":
        return ClientInfo(device="unknown", browser="unknown", os="unknown")

    device = "mobile" if ("Mobile" in ua or "Android" in ua) else "desktop"
    if "iPad" in ua or "Tablet" in ua:
        device = "tablet"

    # Order matters: Edge and Opera UAs also contain "Chrome", Chrome contains "Safari".
    if "Edg/" in ua:
        browser = "Edge"
    elif "OPR/" in ua or "Opera" in ua:
        browser = "Opera"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Safari" in ua:
        browser = "Safari"
    else:
        browser = "Other"

    if "Windows" in ua:
        os_name = "Windows"
    elif "Android" in ua:
        os_name = "Android"
    elif "iPhone" in ua or "iPad" in ua:
        os_name = "iOS"
    elif "Mac OS" in ua:
        os_name = "macOS"
    elif "Linux" in ua:
        os_name = "Linux"
    else:
        os_name = "unknown"

    return ClientInfo(device=device, browser=browser, os=os_name)
