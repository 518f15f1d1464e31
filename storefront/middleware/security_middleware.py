"""Security middleware: Basic Auth gate for the staff surface, anti-crawl and cache headers."""
import base64
import binascii
import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storefront.config import get_settings

# Paths behind the optional Basic Auth gate
STAFF_PREFIXES = ("/admin", "/auth", "/docs", "/redoc", "/openapi.json")

# Responses that must never be stored by a browser or proxy
NO_STORE_PREFIXES = ("/api/payments", "/api/orders", "/admin", "/auth")


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        settings = get_settings()
        path = request.url.path
        staff_path = any(path.startswith(p) for p in STAFF_PREFIXES)

        if settings.dash_user and settings.dash_pass and staff_path:
            if not self._check_basic_auth(request, settings):
                return Response(
                    content="Unauthorized",
                    status_code=401,
                    headers={"WWW-Authenticate": 'Basic realm="Storefront Admin"'},
                )

        response: Response = await call_next(request)

        if staff_path:
            response.headers["X-Robots-Tag"] = "noindex, nofollow"

        if any(path.startswith(p) for p in NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        elif "application/json" in response.headers.get("content-type", ""):
            response.headers["Cache-Control"] = "public, max-age=60"

        return response

    @staticmethod
    def _check_basic_auth(request: Request, settings) -> bool:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Basic "):
            return False
        try:
            decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
            user, password = decoded.split(":", 1)
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return False
        user_ok = secrets.compare_digest(user, settings.dash_user)
        pass_ok = secrets.compare_digest(password, settings.dash_pass)
        return user_ok and pass_ok
