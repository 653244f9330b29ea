"""FastAPI app wrapping a single request handler.

The server does no routing of its own: every method and path reaches the
caller's handler, the way a bare handler function would be mounted.
"""

from __future__ import annotations

import inspect

from fastapi import FastAPI, Request, Response
from starlette.concurrency import run_in_threadpool

from .domain.models import Handler

HTTP_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT"]


def create_app(handler: Handler, *, title: str = "websrv") -> FastAPI:
    """Build an ASGI app that hands every request to ``handler``.

    Sync handlers run in the threadpool. A handler that returns ``None`` gets
    an empty ``200 OK``.
    """
    app = FastAPI(title=title, docs_url=None, redoc_url=None, openapi_url=None)

    async def dispatch(request: Request) -> Response:
        if inspect.iscoroutinefunction(handler):
            result = await handler(request)
        else:
            result = await run_in_threadpool(handler, request)
            if inspect.isawaitable(result):
                result = await result
        if result is None:
            return Response(status_code=200)
        return result

    app.add_api_route(
        "/{path:path}",
        dispatch,
        methods=HTTP_METHODS,
        include_in_schema=False,
    )
    return app
