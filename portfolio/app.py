"""
FastAPI application entry point for the portfolio backend.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portfolio import web
from portfolio.config import DEFAULT_JWT_SECRET, Settings, get_settings
from portfolio.dependencies import get_auth_service
from portfolio.errors import PortfolioError
from portfolio.routes import admin_router, router

logger = logging.getLogger(__name__)


def prepare_backends(settings: Settings) -> None:
    """Startup work: bootstrap the admin account and log everyone out."""
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        if settings.database_url:
            raise RuntimeError(
                "JWT_SECRET must be set when DATABASE_URL is configured"
            )
        logger.warning("JWT_SECRET is not set; using the development secret")
    auth = get_auth_service()
    if settings.admin_username and settings.admin_password:
        if auth.ensure_admin(settings.admin_username, settings.admin_password):
            logger.info("Bootstrap admin %s created", settings.admin_username)
    if settings.revoke_sessions_on_startup:
        auth.revoke_everything()


@asynccontextmanager
async def lifespan(app: FastAPI):
    prepare_backends(get_settings())
    yield


async def portfolio_error_handler(request: Request, exc: PortfolioError):
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Something went wrong!"},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Portfolio Backend", version="0.1.0", lifespan=lifespan)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(web.LoginRequired, web.login_required_handler)
    app.add_exception_handler(PortfolioError, portfolio_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(admin_router, prefix=settings.admin_api_prefix)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(web.admin_pages, prefix=f"/{settings.admin_secret_path.strip('/')}")
    app.include_router(web.router)

    api = settings.api_prefix

    # Public endpoints only; the admin path stays unlisted.
    @app.get(api, include_in_schema=False)
    def index():
        return {
            "message": "Welcome to the portfolio API",
            "serverTime": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "health": f"GET {api}/health",
                "projects": {
                    "getAll": f"GET {api}/projects",
                    "getOne": f"GET {api}/projects/:id",
                    "create": f"POST {api}/projects",
                    "update": f"PUT {api}/projects/:id",
                    "delete": f"DELETE {api}/projects/:id",
                    "reorder": f"PUT {api}/projects/order",
                },
                "contact": f"POST {api}/contact",
            },
        }

    return app


app = create_app()
