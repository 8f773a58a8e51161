"""
HTTP routes for the portfolio API.

`admin_router` holds the login flow and is mounted under the secret admin
path; everything else lives on `router`.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, Request, UploadFile

from portfolio.auth import AuthContext, AuthService
from portfolio.config import get_settings
from portfolio.dependencies import (
    get_auth_service,
    get_message_service,
    get_project_service,
    require_auth,
)
from portfolio.messages import MessageService
from portfolio.projects import ImageUpload, ProjectService
from portfolio.schemas import (
    ChangePasswordRequest,
    ContactRequest,
    ContactResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MessageDetailResponse,
    MessageListResponse,
    MessageResponse,
    ProjectResponse,
    ReorderRequest,
    SessionInfo,
    SessionListResponse,
    SessionStats,
    SessionStatsResponse,
    StatusResponse,
    UserPublic,
    VerifyResponse,
)
from portfolio.security import bearer_token

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and get_settings().trust_proxy_headers:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def read_upload(file: Optional[UploadFile]) -> Optional[ImageUpload]:
    """Turn a multipart file field into an `ImageUpload`; empty fields are None."""
    if file is None or not file.filename:
        return None
    data = await file.read()
    if not data:
        return None
    return ImageUpload(
        filename=file.filename,
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )


def _health(request: Request) -> HealthResponse:
    return HealthResponse(
        status="online",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
    )


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    return _health(request)


# Admin authentication


@admin_router.get("/health", response_model=HealthResponse)
def admin_health(request: Request):
    return _health(request)


@admin_router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    result = auth.login(
        payload.username,
        payload.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent", "Unknown"),
    )
    return LoginResponse(
        token=result.token,
        session_id=result.session_id,
        expires_at=result.expires_at,
        user=UserPublic(**result.user.public_dict()),
    )


@admin_router.get("/verify", response_model=VerifyResponse)
def verify(context: AuthContext = Depends(require_auth)):
    return VerifyResponse(user=UserPublic(**context.user.public_dict()))


@admin_router.post("/logout", response_model=StatusResponse)
def logout(
    authorization: Optional[str] = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
):
    auth.logout(bearer_token(authorization))
    return StatusResponse(message="Logged out successfully")


@admin_router.put("/change-password", response_model=StatusResponse)
def change_password(
    payload: ChangePasswordRequest,
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    auth.change_password(context, payload.current_password, payload.new_password)
    return StatusResponse(message="Password changed. Please login again.")


# Projects


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(
    category: Optional[str] = None,
    projects: ProjectService = Depends(get_project_service),
):
    return [
        ProjectResponse(**project.as_dict())
        for project in projects.list_projects(category)
    ]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str, projects: ProjectService = Depends(get_project_service)
):
    return ProjectResponse(**projects.get_project(project_id).as_dict())


@router.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    title: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    context: AuthContext = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
):
    project = projects.create_project(
        title=title,
        category=category,
        description=description,
        image=await read_upload(image),
    )
    return ProjectResponse(**project.as_dict())


@router.put("/projects/order", response_model=StatusResponse)
def reorder_projects(
    payload: ReorderRequest,
    context: AuthContext = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
):
    projects.reorder_projects(payload.projects)
    return StatusResponse(message="Order updated successfully")


@router.put("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    title: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    context: AuthContext = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
):
    project = projects.update_project(
        project_id,
        title=title,
        category=category,
        description=description,
        image=await read_upload(image),
    )
    return ProjectResponse(**project.as_dict())


@router.delete("/projects/{project_id}", response_model=StatusResponse)
def delete_project(
    project_id: str,
    context: AuthContext = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
):
    projects.delete_project(project_id)
    return StatusResponse(message="Project removed successfully")


# Sessions


@router.get("/sessions", response_model=SessionListResponse)
def my_sessions(
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    sessions = [SessionInfo(**item) for item in auth.list_sessions(context)]
    return SessionListResponse(count=len(sessions), sessions=sessions)


@router.post("/sessions/terminate-others", response_model=StatusResponse)
def terminate_other_sessions(
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    auth.terminate_other_sessions(context)
    return StatusResponse(message="All other sessions terminated successfully")


@router.post("/sessions/terminate-all", response_model=StatusResponse)
def terminate_all_sessions(
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    auth.terminate_all_sessions(context)
    return StatusResponse(message="All sessions terminated successfully")


@router.get("/sessions/stats", response_model=SessionStatsResponse)
def session_stats(
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    return SessionStatsResponse(stats=SessionStats(**auth.session_stats(context)))


@router.get("/sessions/user/{user_id}", response_model=SessionListResponse)
def user_sessions(
    user_id: str,
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    sessions = [SessionInfo(**item) for item in auth.user_sessions(context, user_id)]
    return SessionListResponse(count=len(sessions), sessions=sessions)


@router.post("/sessions/cleanup", response_model=StatusResponse)
def cleanup_sessions(
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    removed = auth.cleanup_expired(context)
    return StatusResponse(message=f"Cleaned up {removed} expired sessions")


@router.delete("/sessions/{session_id}", response_model=StatusResponse)
def terminate_session(
    session_id: str,
    context: AuthContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    auth.terminate_session(context, session_id)
    return StatusResponse(message="Session terminated successfully")


# Contact messages


@router.post("/contact", response_model=ContactResponse, status_code=201)
def submit_message(
    payload: ContactRequest,
    messages: MessageService = Depends(get_message_service),
):
    record = messages.submit_message(payload.name, payload.email, payload.message)
    return ContactResponse(data=MessageResponse(**record.as_dict()))


@router.get("/messages", response_model=MessageListResponse)
def list_messages(
    context: AuthContext = Depends(require_auth),
    messages: MessageService = Depends(get_message_service),
):
    items = [MessageResponse(**m.as_dict()) for m in messages.list_messages()]
    return MessageListResponse(
        count=len(items),
        unread=sum(1 for m in items if not m.read),
        messages=items,
    )


@router.get("/messages/{message_id}", response_model=MessageDetailResponse)
def get_message(
    message_id: str,
    context: AuthContext = Depends(require_auth),
    messages: MessageService = Depends(get_message_service),
):
    return MessageDetailResponse(
        data=MessageResponse(**messages.get_message(message_id).as_dict())
    )


@router.put("/messages/{message_id}/read", response_model=MessageDetailResponse)
def mark_message_read(
    message_id: str,
    context: AuthContext = Depends(require_auth),
    messages: MessageService = Depends(get_message_service),
):
    return MessageDetailResponse(
        data=MessageResponse(**messages.mark_read(message_id).as_dict())
    )


@router.delete("/messages/{message_id}", response_model=StatusResponse)
def delete_message(
    message_id: str,
    context: AuthContext = Depends(require_auth),
    messages: MessageService = Depends(get_message_service),
):
    messages.delete_message(message_id)
    return StatusResponse(message="Message deleted successfully")
