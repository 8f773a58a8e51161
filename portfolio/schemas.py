"""
Pydantic schemas for the portfolio API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    success: bool = True
    status: str
    timestamp: str
    uptime: float


class UserPublic(BaseModel):
    id: str
    username: str
    role: str


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=256)


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    session_id: str
    expires_at: float
    user: UserPublic


class VerifyResponse(BaseModel):
    success: bool = True
    message: str = "Token is valid"
    user: UserPublic


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class ProjectResponse(BaseModel):
    id: str
    title: str
    category: str
    description: str
    image: str
    image_public_id: str
    order: int
    created_at: float
    updated_at: float


class ReorderRequest(BaseModel):
    # Shape checked by the service so a bad payload gets its own message.
    projects: Any = None


class SessionInfo(BaseModel):
    id: str
    user_id: str
    device: str
    browser: str
    os: str
    ip_address: str
    is_active: bool
    created_at: float
    last_active: float
    expires_at: float
    is_current_session: Optional[bool] = None


class SessionListResponse(BaseModel):
    success: bool = True
    count: int
    sessions: list[SessionInfo]


class SessionStats(BaseModel):
    total: int
    active: int
    expired: int
    by_device: dict[str, int]
    by_browser: dict[str, int]


class SessionStatsResponse(BaseModel):
    success: bool = True
    stats: SessionStats


class ContactRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=1000)
    email: Optional[str] = Field(default=None, max_length=254)
    message: Optional[str] = Field(default=None, max_length=10000)


class MessageResponse(BaseModel):
    id: str
    name: str
    email: str
    message: str
    read: bool
    created_at: float


class ContactResponse(BaseModel):
    success: bool = True
    message: str = "Message sent successfully"
    data: MessageResponse


class MessageListResponse(BaseModel):
    success: bool = True
    count: int
    unread: int
    messages: list[MessageResponse]


class MessageDetailResponse(BaseModel):
    success: bool = True
    data: MessageResponse
