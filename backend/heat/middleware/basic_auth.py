"""
Site lock: HTTP Basic Auth in front of the whole site.

Installed only when a site password is configured, and a no-op in the
development environment. Any username is accepted; only the password counts.
It sits in front of, and is independent of, the session cookie auth.
"""
import base64
import binascii
import logging
import secrets

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse

from ..config import Settings

logger = logging.getLogger(__name__)


class SiteLockMiddleware(BaseHTTPMiddleware):
    """Challenge every request for the shared site password"""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    def _challenge(self, message: str) -> PlainTextResponse:
        return PlainTextResponse(
            message,
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{self.settings.site_auth_realm}"'},
        )

    def _password_from_header(self, auth_header: str):
        try:
            decoded = base64.b64decode(auth_header[6:], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
        _username, separator, password = decoded.partition(":")
        return password if separator else None

    async def dispatch(self, request: Request, call_next):
        site_password = self.settings.site_password
        if self.settings.is_development or not site_password:
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Basic "):
            return self._challenge("Authentication required")

        password = self._password_from_header(auth_header)
        if password is None or not secrets.compare_digest(
            password.encode("utf-8"), site_password.encode("utf-8")
        ):
            logger.warning(f"Site lock rejected credentials for {request.method} {request.url.path}")
            return self._challenge("Invalid credentials")

        return await call_next(request)
