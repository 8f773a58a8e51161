"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from portfolio.auth import AuthContext, AuthService
from portfolio.config import get_settings
from portfolio.db import DbClient, InMemoryDbClient, PostgresDbClient
from portfolio.messages import MessageService
from portfolio.projects import ProjectService
from portfolio.security import bearer_token
from portfolio.storage import ImageStorageClient, InMemoryImageStorage, S3ImageStorage

_db_client: DbClient | None = None
_storage_client: ImageStorageClient | None = None
_auth_service: AuthService | None = None
_project_service: ProjectService | None = None
_message_service: MessageService | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> ImageStorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryImageStorage(prefix=settings.storage_upload_prefix)
    else:
        _storage_client = S3ImageStorage(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
            prefix=settings.storage_upload_prefix,
        )
    return _storage_client


def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service:
        return _auth_service

    settings = get_settings()
    _auth_service = AuthService(
        get_db_client(),
        secret=settings.jwt_secret,
        expire_days=settings.jwt_expire_days,
    )
    return _auth_service


def get_project_service() -> ProjectService:
    global _project_service
    if _project_service:
        return _project_service

    settings = get_settings()
    _project_service = ProjectService(
        get_db_client(),
        get_storage_client(),
        max_upload_bytes=settings.max_upload_bytes,
    )
    return _project_service


def get_message_service() -> MessageService:
    global _message_service
    if _message_service:
        return _message_service
    _message_service = MessageService(get_db_client())
    return _message_service


def require_auth(
    authorization: Optional[str] = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """Auth middleware: reject the request unless it carries a live bearer token."""
    return auth.verify(bearer_token(authorization))
