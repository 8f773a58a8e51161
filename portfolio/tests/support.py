"""
Shared fixtures for the backend tests.
"""

from __future__ import annotations

from portfolio.config import get_settings
from portfolio.dependencies import (
    get_auth_service,
    get_db_client,
    get_storage_client,
)
from portfolio.db import InMemoryDbClient
from portfolio.storage import InMemoryImageStorage

ADMIN_USERNAME = "curator"
ADMIN_PASSWORD = "correct horse battery"

# Smallest valid PNG (1x1, transparent).
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
    b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


def reset_backends() -> None:
    """Clear the in-memory singletons shared by the app under test."""
    db = get_db_client()
    if isinstance(db, InMemoryDbClient):
        db.reset()
    storage = get_storage_client()
    if isinstance(storage, InMemoryImageStorage):
        storage.reset()


def create_admin(username: str = ADMIN_USERNAME, password: str = ADMIN_PASSWORD):
    return get_auth_service().create_admin(username, password)


def login(client, username: str = ADMIN_USERNAME, password: str = ADMIN_PASSWORD):
    response = client.post(
        f"{get_settings().admin_api_prefix}/login",
        json={"username": username, "password": password},
    )
    return response


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
