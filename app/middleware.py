"""Request body limit and response security headers."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuse bodies whose declared Content-Length is over ``max_bytes``.

    A Content-Length that is not a non-negative integer is answered with 400
    instead of being passed on.
    """

    methods_with_body = frozenset({"POST", "PATCH", "PUT"})

    def __init__(self, app, max_bytes: int) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        if request.method not in self.methods_with_body:
            return await call_next(request)

        declared = request.headers.get("content-length")
        if declared is not None:
            if not declared.strip().isdigit():
                return JSONResponse(
                    status_code=400, content={"detail": "Invalid Content-Length header"}
                )
            if int(declared) > self.max_bytes:
                return JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large (max {self.max_bytes} bytes)"},
                )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Set SECURITY_HEADERS on every response and ``no-store`` under the given prefixes.

    RPC responses carry session tokens and account data, so they are never cached.
    """

    def __init__(self, app, no_store_prefixes: tuple[str, ...] = ("/rpc/",)) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.no_store_prefixes = no_store_prefixes

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if request.url.path.startswith(self.no_store_prefixes):
            response.headers["Cache-Control"] = "no-store"
        return response
