"""
HTTP server for the application.

`AppServer` wraps a FastAPI app and exposes the hooks the rest of the
bootstrap needs:

* `use_middleware()` / `set_static()` - used by the build pipeline to attach
  live-rebuild middlewares (development) or serve build output (production).
* `prepare()` - installs declared middlewares, discovered routes, then static mounts.
* `listen()` - runs uvicorn until shutdown.

Everything is attached before `listen()`; no request is served against a
partially configured app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.staticfiles import StaticFiles

from app.server.discovery import DEFAULT_ROUTES_PATH, RouteDescriptor, discover_routes
from app.server.middlewares import MiddlewareRegistry, default_registry
from assetflow.config import ServerSettings
from assetflow.exceptions import ConfigurationError
from assetflow.observability import get_logger

logger = get_logger(__name__)


async def not_found(request: Request, exc: Exception) -> PlainTextResponse:
    return PlainTextResponse("Not Found", status_code=404)


class AppServer:
    """
    Owns the FastAPI application and its listener.

    Example:
        >>> server = AppServer(ServerSettings(port=8080))
        >>> await server.prepare()
        >>> await server.listen()
    """

    def __init__(
        self,
        settings: Optional[ServerSettings] = None,
        *,
        registry: Optional[MiddlewareRegistry] = None,
    ) -> None:
        self.settings = settings or ServerSettings()
        self.registry = registry or default_registry()
        self.app = FastAPI(
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=self._lifespan,
        )
        self._middleware_names: List[str] = []
        self._routes: Dict[Tuple[str, str], RouteDescriptor] = {}
        self._static: Dict[str, Path] = {}
        self._prepared = False
        self._uvicorn: Optional[uvicorn.Server] = None

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "server_listening",
            host=self.settings.host,
            port=self.settings.port,
            routes=len(self._routes),
            middlewares=self._middleware_names,
        )
        yield
        logger.info("server_stopped")

    # ── Hooks ────────────────────────────────────────────────────────────

    def use_middleware(self, middleware_class: type, **options: Any) -> None:
        """Attach an ASGI middleware; earlier attachments run first."""
        self.app.user_middleware.append(Middleware(middleware_class, **options))
        self._middleware_names.append(middleware_class.__name__)
        logger.debug("middleware_attached", middleware=middleware_class.__name__)

    def middleware_names(self) -> List[str]:
        return list(self._middleware_names)

    def set_static(self, prefix: str, directory: Path) -> None:
        """
        Serve ``directory`` at ``prefix``.

        Mounts are added after the discovered routes, so a mount at ``/``
        does not hide them.
        """
        prefix = "/" + prefix.strip("/")
        self._static[prefix] = Path(directory)
        if self._prepared:
            self._mount(prefix, Path(directory))

    def _mount(self, prefix: str, directory: Path) -> None:
        self.app.mount(prefix, StaticFiles(directory=str(directory), html=True))
        logger.info("static_directory_mounted", prefix=prefix, directory=str(directory))

    def static_mounts(self) -> Dict[str, Path]:
        return dict(self._static)

    def add_route(self, descriptor: RouteDescriptor) -> None:
        """
        Register a route handler.

        Raises:
            ConfigurationError: If the method and url are already registered
        """
        if descriptor.key in self._routes:
            raise ConfigurationError(
                f"Duplicate route: {descriptor.method} {descriptor.url}"
            )
        self.app.router.add_route(
            descriptor.url, descriptor.handler, methods=[descriptor.method]
        )
        self._routes[descriptor.key] = descriptor

    def available_routes(self) -> Dict[Tuple[str, str], RouteDescriptor]:
        """Return a copy of the registered routes."""
        return dict(self._routes)

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def prepare(self) -> None:
        """Install declared middlewares, discovered routes, then static mounts. Runs once."""
        if self._prepared:
            return
        await self.registry.apply(self, self.settings.middlewares)
        for descriptor in await discover_routes(self.settings.routes_path or DEFAULT_ROUTES_PATH):
            self.add_route(descriptor)
        # Longest prefix first so "/" cannot shadow a nested mount
        for prefix in sorted(self._static, key=len, reverse=True):
            self._mount(prefix, self._static[prefix])
        self.app.add_exception_handler(404, not_found)
        self._prepared = True

    async def listen(self) -> None:
        """Serve until shutdown."""
        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_config=None,
        )
        self._uvicorn = uvicorn.Server(config)
        await self._uvicorn.serve()

    async def start(self) -> None:
        await self.prepare()
        await self.listen()


def create_app(settings: Optional[ServerSettings] = None) -> AppServer:
    """Factory returning an `AppServer` with the built-in middleware installers."""
    return AppServer(settings)


__all__ = ["AppServer", "RouteDescriptor", "create_app"]
