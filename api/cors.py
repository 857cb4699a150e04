"""
api/cors.py -- Per-handler CORS wrapper.

CORSMiddleware (api/main.py) covers the /api/v1 surface. with_cors() is for
individual handlers that browser code on another origin calls directly, such
as the web session probe: it wraps the handler and decorates whatever
response it returns.

Rules:
  - Access-Control-Allow-Origin echoes the request Origin only when that
    origin is in the allow-list; Vary: Origin is added alongside it so
    caches keep per-origin copies.
  - A disallowed or missing Origin never receives Allow-Origin.
  - Allow-Methods, Allow-Headers, and Allow-Credentials are always set.
    Without Allow-Origin the browser still blocks the response, so they
    grant nothing on their own.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable, Iterable

from fastapi import Request, Response

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"

Handler = Callable[..., Awaitable[Response]]


def apply_cors_headers(request: Request, response: Response, allowed_origins: Iterable[str]) -> Response:
    origin = request.headers.get("origin")
    if origin and origin in set(allowed_origins):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers.append("Vary", "Origin")
    response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
    response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


def with_cors(handler: Handler, allowed_origins: Iterable[str]) -> Handler:
    """Wrap an async handler whose first argument is the Request.

    The wrapped handler keeps its signature, so FastAPI still resolves its
    parameters and dependencies as usual.
    """
    origins = frozenset(allowed_origins)

    @functools.wraps(handler)
    async def wrapper(request: Request, *args, **kwargs) -> Response:
        response = await handler(request, *args, **kwargs)
        return apply_cors_headers(request, response, origins)

    return wrapper
