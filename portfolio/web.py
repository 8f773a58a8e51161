"""
Server-rendered pages: the public portfolio and the admin dashboard.

The dashboard authenticates with the same tokens as the JSON API, carried in
an HTTP-only cookie instead of a bearer header.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from portfolio.auth import SESSION_OVERRIDDEN, AuthContext, AuthService
from portfolio.config import get_settings
from portfolio.dependencies import (
    get_auth_service,
    get_message_service,
    get_project_service,
)
from portfolio.errors import AuthError, PortfolioError
from portfolio.messages import MessageService
from portfolio.projects import CATEGORIES, ProjectService
from portfolio.routes import client_ip, read_upload

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

CATEGORY_TABS = [("all", "All Work")] + [(c, c.capitalize()) for c in CATEGORIES]

LOGOUT_REASONS = {
    SESSION_OVERRIDDEN: "You have been logged out because you logged in from another device.",
    "logged-out": "You have been logged out.",
    "password-changed": "Password changed. Please login again.",
}
DEFAULT_LOGOUT_REASON = "Your session has expired. Please login again."

NOTICES = {
    "project-created": "Project added successfully",
    "project-updated": "Project updated successfully",
    "project-deleted": "Project deleted successfully",
    "message-read": "Message marked as read",
    "message-deleted": "Message deleted",
}


def _format_timestamp(value: Optional[float]) -> str:
    if not value:
        return ""
    return datetime.fromtimestamp(value, timezone.utc).strftime("%d %b %Y, %H:%M")


templates.env.filters["timestamp"] = _format_timestamp

router = APIRouter(include_in_schema=False)
admin_pages = APIRouter(include_in_schema=False)


class LoginRequired(Exception):
    """Raised by page dependencies when the cookie token is not usable."""

    def __init__(self, code: Optional[str]):
        super().__init__(code)
        self.code = code


async def login_required_handler(request: Request, exc: LoginRequired):
    response = _redirect(request, "admin_login_page", reason=exc.code or "expired")
    response.delete_cookie(get_settings().auth_cookie_name)
    return response


def require_page_auth(
    request: Request, auth: AuthService = Depends(get_auth_service)
) -> AuthContext:
    token = request.cookies.get(get_settings().auth_cookie_name)
    try:
        return auth.verify(token)
    except AuthError as exc:
        raise LoginRequired(exc.code)


def _redirect(request: Request, route_name: str, **params) -> RedirectResponse:
    url = request.url_for(route_name)
    if params:
        url = url.include_query_params(**params)
    return RedirectResponse(str(url), status_code=303)


# Public portfolio


def _render_home(
    request: Request,
    projects: ProjectService,
    *,
    category: str = "all",
    notice: Optional[str] = None,
    error: Optional[str] = None,
    form: Optional[dict] = None,
    status_code: int = 200,
):
    if category != "all" and category not in CATEGORIES:
        category = "all"
    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "projects": projects.list_projects(category),
            "categories": CATEGORY_TABS,
            "active_category": category,
            "notice": notice,
            "error": error,
            "form": form or {},
        },
        status_code=status_code,
    )


@router.get("/")
def home_page(
    request: Request,
    category: str = "all",
    sent: Optional[str] = None,
    projects: ProjectService = Depends(get_project_service),
):
    notice = "Message sent successfully!" if sent else None
    return _render_home(request, projects, category=category, notice=notice)


@router.post("/contact")
def contact_form(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    message: str = Form(""),
    messages: MessageService = Depends(get_message_service),
    projects: ProjectService = Depends(get_project_service),
):
    try:
        messages.submit_message(name, email, message)
    except PortfolioError as exc:
        return _render_home(
            request,
            projects,
            error=exc.message,
            form={"name": name, "email": email, "message": message},
            status_code=exc.status_code,
        )
    return _redirect(request, "home_page", sent="1")


# Admin


@admin_pages.get("")
def admin_login_page(request: Request, reason: Optional[str] = None):
    notice = None
    if reason:
        notice = LOGOUT_REASONS.get(reason, DEFAULT_LOGOUT_REASON)
    return templates.TemplateResponse(request, "login.html", {"notice": notice})


@admin_pages.post("")
def admin_login_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    auth: AuthService = Depends(get_auth_service),
):
    try:
        result = auth.login(
            username,
            password,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent", "Unknown"),
        )
    except PortfolioError as exc:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"error": exc.message, "username": username},
            status_code=exc.status_code,
        )

    settings = get_settings()
    response = _redirect(request, "admin_dashboard")
    response.set_cookie(
        settings.auth_cookie_name,
        result.token,
        max_age=settings.jwt_expire_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


def _render_dashboard(
    request: Request,
    context: AuthContext,
    projects: ProjectService,
    messages: MessageService,
    *,
    tab: str = "projects",
    edit_id: Optional[str] = None,
    selected_id: Optional[str] = None,
    notice: Optional[str] = None,
    error: Optional[str] = None,
    status_code: int = 200,
):
    project_items = projects.list_projects()
    message_items = messages.list_messages()
    editing = next((p for p in project_items if p.project_id == edit_id), None)
    selected = next((m for m in message_items if m.message_id == selected_id), None)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "user": context.user,
            "tab": "messages" if tab == "messages" else "projects",
            "projects": project_items,
            "messages": message_items,
            "unread": sum(1 for m in message_items if not m.read),
            "categories": CATEGORIES,
            "editing": editing,
            "selected": selected,
            "notice": NOTICES.get(notice) if notice else None,
            "error": error,
        },
        status_code=status_code,
    )


@admin_pages.get("/dashboard")
def admin_dashboard(
    request: Request,
    tab: str = "projects",
    edit: Optional[str] = None,
    selected: Optional[str] = None,
    notice: Optional[str] = None,
    context: AuthContext = Depends(require_page_auth),
    projects: ProjectService = Depends(get_project_service),
    messages: MessageService = Depends(get_message_service),
):
    return _render_dashboard(
        request,
        context,
        projects,
        messages,
        tab=tab,
        edit_id=edit,
        selected_id=selected,
        notice=notice,
    )


@admin_pages.post("/projects")
async def admin_create_project(
    request: Request,
    title: str = Form(""),
    category: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    context: AuthContext = Depends(require_page_auth),
    projects: ProjectService = Depends(get_project_service),
    messages: MessageService = Depends(get_message_service),
):
    try:
        projects.create_project(
            title=title,
            category=category,
            description=description,
            image=await read_upload(image),
        )
    except PortfolioError as exc:
        return _render_dashboard(
            request,
            context,
            projects,
            messages,
            error=exc.message,
            status_code=exc.status_code,
        )
    return _redirect(request, "admin_dashboard", notice="project-created")


@admin_pages.post("/projects/{project_id}")
async def admin_update_project(
    request: Request,
    project_id: str,
    title: str = Form(""),
    category: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    context: AuthContext = Depends(require_page_auth),
    projects: ProjectService = Depends(get_project_service),
    messages: MessageService = Depends(get_message_service),
):
    try:
        projects.update_project(
            project_id,
            title=title,
            category=category,
            description=description,
            image=await read_upload(image),
        )
    except PortfolioError as exc:
        return _render_dashboard(
            request,
            context,
            projects,
            messages,
            edit_id=project_id,
            error=exc.message,
            status_code=exc.status_code,
        )
    return _redirect(request, "admin_dashboard", notice="project-updated")


@admin_pages.post("/projects/{project_id}/delete")
def admin_delete_project(
    request: Request,
    project_id: str,
    context: AuthContext = Depends(require_page_auth),
    projects: ProjectService = Depends(get_project_service),
    messages: MessageService = Depends(get_message_service),
):
    try:
        projects.delete_project(project_id)
    except PortfolioError as exc:
        return _render_dashboard(
            request,
            context,
            projects,
            messages,
            error=exc.message,
            status_code=exc.status_code,
        )
    return _redirect(request, "admin_dashboard", notice="project-deleted")


@admin_pages.post("/messages/{message_id}/read")
def admin_mark_message_read(
    request: Request,
    message_id: str,
    context: AuthContext = Depends(require_page_auth),
    projects: ProjectService = Depends(get_project_service),
    messages: MessageService = Depends(get_message_service),
):
    try:
        messages.mark_read(message_id)
    except PortfolioError as exc:
        return _render_dashboard(
            request,
            context,
            projects,
            messages,
            tab="messages",
            error=exc.message,
            status_code=exc.status_code,
        )
    return _redirect(
        request,
        "admin_dashboard",
        tab="messages",
        selected=message_id,
        notice="message-read",
    )


@admin_pages.post("/messages/{message_id}/delete")
def admin_delete_message(
    request: Request,
    message_id: str,
    context: AuthContext = Depends(require_page_auth),
    projects: ProjectService = Depends(get_project_service),
    messages: MessageService = Depends(get_message_service),
):
    try:
        messages.delete_message(message_id)
    except PortfolioError as exc:
        return _render_dashboard(
            request,
            context,
            projects,
            messages,
            tab="messages",
            error=exc.message,
            status_code=exc.status_code,
        )
    return _redirect(request, "admin_dashboard", tab="messages", notice="message-deleted")


@admin_pages.post("/logout")
def admin_logout(request: Request, auth: AuthService = Depends(get_auth_service)):
    settings = get_settings()
    auth.logout(request.cookies.get(settings.auth_cookie_name))
    response = _redirect(request, "admin_login_page", reason="logged-out")
    response.delete_cookie(settings.auth_cookie_name)
    return response
