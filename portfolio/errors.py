"""
Exceptions raised by the service layer and rendered by the API.
"""

from __future__ import annotations

from typing import Optional


class PortfolioError(Exception):
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def as_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.code:
            body["code"] = self.code
        return body


class BadRequestError(PortfolioError):
    status_code = 400


class AuthError(PortfolioError):
    """Authentication failed; `code` tells the client why."""

    status_code = 401


class ForbiddenError(PortfolioError):
    status_code = 403


class NotFoundError(PortfolioError):
    status_code = 404
