"""Liveness probe."""

from starlette.requests import Request
from starlette.responses import JSONResponse

method = "GET"
url = "/healthz"


async def route(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})
