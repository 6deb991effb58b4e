"""
Middleware Registry

Maps middleware names declared in configuration to installer callables.
An installer receives the server handle and its options and may return an
awaitable; ``apply`` waits for every installer before returning.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from assetflow.exceptions import AssetflowError, ConfigurationError, DiscoveryIOError
from assetflow.observability import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

Installer = Callable[[Any, Dict[str, Any]], Union[None, Awaitable[None]]]


class MiddlewareRegistry:
    """
    Registry of middleware installers keyed by name.

    Example:
        >>> registry = MiddlewareRegistry()
        >>> registry.register("cors", install_cors)
        >>> await registry.apply(server, {"cors": {"allow_origins": ["*"]}})
    """

    def __init__(self, installers: Optional[Mapping[str, Installer]] = None):
        self._installers: Dict[str, Installer] = {}
        for name, installer in (installers or {}).items():
            self.register(name, installer)

    def register(self, name: str, installer: Installer) -> None:
        """
        Register an installer.

        Raises:
            ValueError: If the name is empty or already registered
            TypeError: If the installer is not callable
        """
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Middleware name must be a non-empty string")
        if not callable(installer):
            raise TypeError(f"installer for '{name}' must be callable")
        if name in self._installers:
            raise ValueError(f"Middleware already registered: {name}")
        self._installers[name] = installer

    def get(self, name: str) -> Optional[Installer]:
        return self._installers.get(name)

    def has_installer(self, name: str) -> bool:
        return name in self._installers

    def names(self) -> List[str]:
        """Sorted list of registered middleware names."""
        return sorted(self._installers)

    async def apply(self, server: Any, declared: Mapping[str, Mapping[str, Any]]) -> None:
        """
        Install every declared middleware, in declaration order.

        All names are checked before the first installer runs. Installers
        run together and all of them settle; then the first failure, in
        declaration order, propagates.

        Args:
            server: Server handle passed to each installer
            declared: Ordered mapping of middleware name to options

        Raises:
            ConfigurationError: If a name has no installer or an installer fails
        """
        unknown = [name for name in declared if name not in self._installers]
        if unknown:
            raise ConfigurationError(
                f"Unknown middleware: {', '.join(unknown)} "
                f"(available: {', '.join(self.names()) or 'none'})"
            )

        # Tasks start in declaration order; every installer settles before the
        # first failure is raised
        results = await asyncio.gather(
            *(
                _install(name, self._installers[name], server, dict(options or {}))
                for name, options in declared.items()
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        logger.info("middlewares_applied", names=list(declared))


async def _install(name: str, installer: Installer, server: Any, options: Dict[str, Any]) -> None:
    try:
        result = installer(server, options)
        if inspect.isawaitable(result):
            await result
    except AssetflowError:
        raise
    except Exception as exc:
        raise ConfigurationError(f"Middleware '{name}' failed to install: {exc}") from exc
    logger.debug("middleware_installed", name=name)


# ── Built-in installers ──────────────────────────────────────────────────


class RequestLoggingMiddleware:
    """Binds a correlation id per request and logs the outcome."""

    def __init__(self, app: ASGIApp, *, header: str = "x-request-id") -> None:
        self.app = app
        self.header = header.lower().encode("latin-1")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers") or []).get(self.header)
        correlation_id = set_correlation_id(incoming.decode("latin-1") if incoming else None)
        started = time.monotonic()
        status = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                headers = list(message.get("headers", []))
                headers.append((self.header, correlation_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "request_handled",
                method=scope["method"],
                path=scope["path"],
                status=status,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )
            clear_correlation_id()


def install_cors(server: Any, options: Dict[str, Any]) -> None:
    server.use_middleware(CORSMiddleware, **options)


def install_gzip(server: Any, options: Dict[str, Any]) -> None:
    options.setdefault("minimum_size", 500)
    server.use_middleware(GZipMiddleware, **options)


def install_session(server: Any, options: Dict[str, Any]) -> None:
    secret = options.pop("secret", None)
    if not secret:
        raise ConfigurationError("Middleware 'session' requires a 'secret' option")
    server.use_middleware(SessionMiddleware, secret_key=secret, **options)


def install_trusted_hosts(server: Any, options: Dict[str, Any]) -> None:
    server.use_middleware(TrustedHostMiddleware, **options)


def install_request_logging(server: Any, options: Dict[str, Any]) -> None:
    server.use_middleware(RequestLoggingMiddleware, **options)


async def install_public(server: Any, options: Dict[str, Any]) -> None:
    """Serve a static directory, e.g. ``public = { directory = "public" }``."""
    directory = Path(options.get("directory", "public"))
    prefix = options.get("prefix", "/public")
    if not await asyncio.to_thread(directory.is_dir):
        raise DiscoveryIOError(f"Public directory not found: {directory}", path=str(directory))
    server.set_static(prefix, directory)


def default_registry() -> MiddlewareRegistry:
    """Registry pre-loaded with the built-in installers."""
    return MiddlewareRegistry(
        {
            "cors": install_cors,
            "gzip": install_gzip,
            "public": install_public,
            "request_logging": install_request_logging,
            "session": install_session,
            "trusted_hosts": install_trusted_hosts,
        }
    )


__all__ = [
    "Installer",
    "MiddlewareRegistry",
    "RequestLoggingMiddleware",
    "default_registry",
]
