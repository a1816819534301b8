"""JWT Authentication middleware for FastAPI."""

from typing import ClassVar

from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from exchange_app.auth.jwt_auth import (
    AuthenticationError,
    ExpiredTokenError,
    InvalidTokenError,
    MissingTokenError,
    UserContext,
    authenticate,
)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing JWT authentication on protected paths."""

    # Everything else (rates, health, metrics, docs) is public
    PROTECTED_PREFIXES: ClassVar[tuple[str, ...]] = (
        "/api/exchange-rates/convert",
        "/api/user/",
    )

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request with JWT authentication.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response, or 401 if authentication fails
        """
        if not request.url.path.startswith(self.PROTECTED_PREFIXES):
            return await call_next(request)

        try:
            request.state.user_context = authenticate(request.headers.get("authorization", ""))

        except MissingTokenError:
            return JSONResponse(
                status_code=401, content={"detail": "Missing or invalid Authorization header"}
            )

        except (InvalidTokenError, ExpiredTokenError) as e:
            return JSONResponse(status_code=401, content={"detail": str(e)})

        except AuthenticationError as e:
            return JSONResponse(status_code=401, content={"detail": f"Authentication failed: {e}"})

        return await call_next(request)


def get_user_context(request: Request) -> UserContext:
    """Get user context from request state.

    Args:
        request: FastAPI request object

    Returns:
        UserContext of the authenticated principal

    Raises:
        HTTPException: 401 if no user context found
    """
    if not hasattr(request.state, "user_context"):
        raise HTTPException(status_code=401, detail="No authentication context found")

    return request.state.user_context
