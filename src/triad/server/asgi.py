from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from triad.domain.models import HTTP_METHODS
from triad.server.router import Router, ServerRequest


def _raw_path(request: Request) -> str:
    # the router splits before unquoting, so it needs the path as sent
    raw = request.scope.get("raw_path")
    if raw:
        return raw.split(b"?", 1)[0].decode("utf-8", errors="replace")
    return quote(request.scope["path"], safe="/")


def create_app(
    router: Router,
    document: Optional[dict[str, Any]] = None,
    title: str = "triad",
    openapi_path: str = "/openapi.json",
) -> FastAPI:
    """
    Expose a Router as an ASGI app.

    FastAPI's own schema generation is switched off: when `document` is given it
    is served verbatim at `openapi_path`, everything else goes to the router.
    """
    app = FastAPI(title=title, openapi_url=None, docs_url=None, redoc_url=None)

    if document is not None:

        async def openapi() -> JSONResponse:
            return JSONResponse(document)

        app.add_api_route(openapi_path, openapi, methods=["GET"], include_in_schema=False)

    async def dispatch(request: Request) -> Response:
        served = await router.dispatch(
            ServerRequest(
                method=request.method,
                path=_raw_path(request),
                headers=dict(request.headers),
                query=dict(request.query_params),
                body=await request.body(),
            )
        )
        return Response(content=served.body, status_code=served.status_code, headers=dict(served.headers))

    app.add_api_route("/{path:path}", dispatch, methods=list(HTTP_METHODS), include_in_schema=False)
    return app
