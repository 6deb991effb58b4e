"""
Convention-based route discovery.

Layout::

    routes/
        health/              <- a feature
            healthz_route.py <- one route per file
        users/
            list_route.py
            create_route.py

Every ``*_route.py`` file must expose ``method``, ``url`` and ``route``
(see ``RouteProvider``). Feature directories and files are visited in
lexical order.
"""

from __future__ import annotations

import asyncio
import importlib.util
import re
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from assetflow.exceptions import ConfigurationError, DiscoveryIOError
from assetflow.observability import get_logger

logger = get_logger(__name__)

ROUTE_FILE_SUFFIX = "_route.py"
HTTP_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})
DEFAULT_ROUTES_PATH = Path(__file__).resolve().parent / "routes"


@runtime_checkable
class RouteProvider(Protocol):
    """Shape a route module must have."""

    method: str
    url: str

    def route(self, request: Any) -> Any:
        ...


@dataclass(frozen=True, slots=True)
class RouteDescriptor:
    """A discovered route, ready to be registered on the server."""

    method: str
    url: str
    handler: Callable[..., Any]
    source: Optional[Path] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, self.url)


def _is_feature(path: Path) -> bool:
    return path.is_dir() and not path.name.startswith(("_", "."))


def _list_features(root: Path) -> List[Path]:
    try:
        return sorted((p for p in root.iterdir() if _is_feature(p)), key=lambda p: p.name)
    except OSError as exc:
        raise DiscoveryIOError(f"Cannot scan routes directory {root}: {exc}", path=str(root)) from exc


def _list_route_files(feature: Path) -> List[Path]:
    try:
        return sorted(
            (p for p in feature.iterdir() if p.is_file() and p.name.endswith(ROUTE_FILE_SUFFIX)),
            key=lambda p: p.name,
        )
    except OSError as exc:
        raise DiscoveryIOError(f"Cannot scan feature {feature}: {exc}", path=str(feature)) from exc


def load_route_module(path: Path) -> ModuleType:
    """Import a route file by path under a private module name."""
    name = re.sub(r"\W", "_", f"{path.parent.name}_{path.stem}")
    spec = importlib.util.spec_from_file_location(f"app_routes.{name}", path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load route module {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except OSError as exc:
        raise DiscoveryIOError(f"Cannot read route module {path}: {exc}", path=str(path)) from exc
    except Exception as exc:
        raise ConfigurationError(f"Route module {path} failed to import: {exc}") from exc
    return module


def describe_route(module: Any, path: Optional[Path] = None) -> RouteDescriptor:
    """
    Validate a loaded module against ``RouteProvider``.

    Raises:
        ConfigurationError: if ``method``, ``url`` or ``route`` is missing or
            has the wrong shape
    """
    origin = path or getattr(module, "__file__", "<module>")
    if not isinstance(module, RouteProvider):
        missing = [attr for attr in ("method", "url", "route") if not hasattr(module, attr)]
        raise ConfigurationError(
            f"Route module {origin} must define method, url and route "
            f"(missing: {', '.join(missing)})"
        )

    method = module.method
    if not isinstance(method, str) or method.upper() not in HTTP_METHODS:
        raise ConfigurationError(
            f"Route module {origin} declares unsupported method {method!r}; "
            f"expected one of {sorted(HTTP_METHODS)}"
        )
    if not isinstance(module.url, str) or not module.url.startswith("/"):
        raise ConfigurationError(f"Route module {origin} url must start with '/': {module.url!r}")
    if not callable(module.route):
        raise ConfigurationError(f"Route module {origin} 'route' is not callable")

    return RouteDescriptor(
        method=method.upper(),
        url=module.url,
        handler=module.route,
        source=Path(origin) if path else None,
    )


async def discover_routes(root: Path) -> List[RouteDescriptor]:
    """
    Discover route descriptors under ``root``.

    Args:
        root: Directory holding one subdirectory per feature

    Returns:
        Descriptors in feature/file lexical order.

    Raises:
        DiscoveryIOError: if a directory cannot be read
        ConfigurationError: if a route module is malformed or two routes
            claim the same method and url

    Example:
        >>> routes = await discover_routes(Path("app/server/routes"))
        >>> [(r.method, r.url) for r in routes]
        [('GET', '/healthz')]
    """
    root = Path(root)
    features = await asyncio.to_thread(_list_features, root)
    listings = await asyncio.gather(
        *(asyncio.to_thread(_list_route_files, feature) for feature in features)
    )

    descriptors: List[RouteDescriptor] = []
    seen: dict[tuple[str, str], Path] = {}
    for files in listings:
        for path in files:
            descriptor = describe_route(load_route_module(path), path)
            if descriptor.key in seen:
                raise ConfigurationError(
                    f"Duplicate route {descriptor.method} {descriptor.url} in {path} "
                    f"(already declared in {seen[descriptor.key]})"
                )
            seen[descriptor.key] = path
            descriptors.append(descriptor)

    logger.info("routes_discovered", root=str(root), features=len(features), routes=len(descriptors))
    return descriptors


__all__ = [
    "DEFAULT_ROUTES_PATH",
    "HTTP_METHODS",
    "ROUTE_FILE_SUFFIX",
    "RouteDescriptor",
    "RouteProvider",
    "describe_route",
    "discover_routes",
    "load_route_module",
]
