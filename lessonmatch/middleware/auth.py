from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Non-API prefixes that are always public (docs)
PUBLIC_PREFIXES = (
    "/docs",
    "/openapi",
    "/redoc",
)


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        # Health check and anything else outside /api
        if not path.startswith("/api/"):
            return await call_next(request)

        # Token present, the route handler validates it
        auth_header = request.headers.get("Authorization", "")
        if auth_header.lower().startswith("bearer "):
            return await call_next(request)

        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
