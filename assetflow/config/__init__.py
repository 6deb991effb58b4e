"""
Configuration loading for assetflow.

Configuration values are resolved using the following precedence:

1. Explicit arguments passed to `load_config`
2. Environment variables (e.g., APP_PORT, APP_PRODUCT)
3. `app.toml` if present in the working directory
4. Built-in defaults

The runtime mode is resolved separately by `resolve_mode` (``APP_ENV``) so
that it can be passed explicitly into the pipeline instead of being read as
ambient state.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from assetflow.build.entries import entry_from_raw
from assetflow.build.models import EntrySpec, Mode, parse_mode
from assetflow.exceptions import ConfigurationError

__all__ = [
    "AppConfig",
    "BundlerSettings",
    "DEFAULT_HOT_CLIENT",
    "ServerSettings",
    "load_config",
    "resolve_mode",
]


MODE_ENV_VAR = "APP_ENV"
DEFAULT_CONFIG_FILE = Path("app.toml")
DEFAULT_HOT_CLIENT = (
    Path(__file__).resolve().parent.parent / "build" / "client" / "hot-client.js"
)


class ServerSettings(BaseModel):
    """HTTP listener, route discovery and declared middlewares."""

    host: str = Field("127.0.0.1", description="Interface the listener binds to")
    port: int = Field(3000, description="Listener port", ge=0, le=65535)
    routes_path: Optional[Path] = Field(
        None, description="Feature directory root; defaults to the bundled routes"
    )
    middlewares: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Ordered mapping of middleware name to installer options",
    )

    @field_validator("routes_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Optional[Path]:
        if value is None or isinstance(value, Path):
            return value
        return Path(value)


class BundlerSettings(BaseModel):
    """Inputs to the build-pipeline composer."""

    entry: Union[str, List[str], Dict[str, Any]] = Field(
        "assets/default/index.js", description="Entry module(s)"
    )
    layouts: Dict[str, Path] = Field(
        default_factory=dict, description="Layout name to HTML template path"
    )
    public_path: str = Field("/static", description="URL prefix bundles are served at")
    static_root: Path = Field(Path("dist"), description="Build output directory")
    product: str = Field("default", description="Product identifier for the @ alias")
    assets_root: Path = Field(Path("assets"), description="Root of per-product assets")
    lint_config: Optional[Path] = Field(None, description="Lint pre-pass config file")
    esbuild_binary: str = Field("esbuild", description="Bundler executable", min_length=1)
    hot_client: str = Field(
        str(DEFAULT_HOT_CLIENT), description="Module injected into dev entries"
    )
    hot_path: str = Field("/__hmr", description="Hot-update event stream path")
    heartbeat: float = Field(0.5, description="Event stream heartbeat (seconds)", gt=0.0)
    dashboard_path: str = Field("/__build", description="Build status endpoint")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("public_path", "hot_path", "dashboard_path")
    @classmethod
    def _url_prefix(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"URL path must start with '/': {value!r}")
        return value.rstrip("/") or "/"

    @field_validator("static_root", "assets_root", mode="before")
    @classmethod
    def _coerce_dir(cls, value: Any) -> Path:
        return Path(value) if not isinstance(value, Path) else value

    @property
    def entry_spec(self) -> EntrySpec:
        """The declared entry as a tagged ``EntrySpec``."""

        return entry_from_raw(self.entry)


class AppConfig(BaseModel):
    """Top-level configuration object shared by the server and the pipeline."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    bundler: BundlerSettings = Field(default_factory=BundlerSettings)


def resolve_mode(value: Optional[str] = None) -> Mode:
    """
    Resolve the runtime mode.

    Args:
        value: Explicit mode; when None, ``APP_ENV`` is read.

    Returns:
        The resolved Mode (development when nothing is set).

    Raises:
        ConfigurationError: if a mode is set but is not a known value.
    """

    raw = value if value is not None else os.getenv(MODE_ENV_VAR)
    if raw is None or not raw.strip():
        return Mode.DEVELOPMENT
    return parse_mode(raw)


def load_config(config_path: Optional[Path | str] = None) -> AppConfig:
    """
    Load application configuration from file/environment/defaults.

    Args:
        config_path: Optional explicit path to an `app.toml` file.

    Returns:
        AppConfig populated with the resolved values.

    Raises:
        ConfigurationError: if the provided config path does not exist, the
            file cannot be parsed, or values fail validation.
    """

    raw_data = _load_toml_data(config_path)
    server_data = dict(raw_data.get("server", {}))
    bundler_data = dict(raw_data.get("bundler", {}))

    _apply_env(server_data, "host", "APP_HOST")
    _apply_env(server_data, "port", "APP_PORT")
    _apply_env(bundler_data, "product", "APP_PRODUCT")
    _apply_env(bundler_data, "public_path", "APP_PUBLIC_PATH")
    _apply_env(bundler_data, "static_root", "APP_STATIC_ROOT")
    _apply_env(bundler_data, "esbuild_binary", "APP_ESBUILD")

    try:
        return AppConfig(
            server=ServerSettings(**server_data),
            bundler=BundlerSettings(**bundler_data),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _load_toml_data(config_path: Optional[Path | str]) -> Dict[str, Any]:
    """Load data from a TOML file if one can be resolved."""

    resolved = _resolve_config_path(config_path)
    if resolved is None:
        return {}

    if not resolved.exists():
        raise ConfigurationError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Cannot parse {resolved}: {exc}") from exc


def _resolve_config_path(config_path: Optional[Path | str]) -> Optional[Path]:
    """Resolve configuration path with environment fallback."""

    if config_path:
        return Path(config_path)

    env_path = os.getenv("APP_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.exists() else None


def _apply_env(section: Dict[str, Any], key: str, env_var: str) -> None:
    """Override ``section[key]`` with the environment variable when it is set."""

    env_value = os.getenv(env_var)
    if env_value is not None:
        section[key] = env_value
