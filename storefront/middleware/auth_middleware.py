"""Authentication middleware: staff session required for the admin surface."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from storefront.models.base import SessionLocal
from storefront.services import auth_service

# Paths that require a staff session
PROTECTED_PREFIXES = ("/admin",)

SESSION_COOKIE = "session_token"


def session_token(request: Request) -> str | None:
    """Session token from the cookie, or from an `Authorization: Bearer` header."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        token = session_token(request)
        user = None
        if token:
            db = SessionLocal()
            try:
                user = auth_service.validate_session(db, token)
            finally:
                db.close()

        if user:
            # Attach user to request state for downstream use
            request.state.user = user
            return await call_next(request)

        if any(path.startswith(p) for p in PROTECTED_PREFIXES):
            return JSONResponse(status_code=401, content={"detail": "Not authenticated"})

        return await call_next(request)
