"""
Build pipeline.

``BuildPipeline`` turns bundler settings plus an explicit ``Mode`` into a
running asset setup behind one lifecycle:

    idle → composing → building → serving
                  ↘          ↘
                   failed     failed

Development (``run_development``) attaches the rebuild and hot-update
middlewares to the server, writes the HTML shells and returns while the
watcher builds in the background. Production (``run_production``) performs a
one-shot build, writes the shells and returns the ``StaticMount`` the server
should expose. Any failure before ``serving`` is fatal and propagates.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Collection, Optional, Protocol, Union

from assetflow.build.compiler import CompilerFactory, create_compiler
from assetflow.build.compose import ConfigComposer
from assetflow.build.entries import bundle_names
from assetflow.build.lifecycle import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PipelineState,
    can_transition,
)
from assetflow.build.middleware import BuildMonitor, HotUpdateMiddleware, RebuildMiddleware
from assetflow.build.models import BuildConfig, Mode, PluginKind, parse_mode
from assetflow.build.shells import shells_from_config, shells_from_layouts, write_shells
from assetflow.config import BundlerSettings
from assetflow.exceptions import (
    BuildError,
    CompilerError,
    ConfigurationError,
    StateTransitionError,
)
from assetflow.observability import get_logger

logger = get_logger(__name__)


class ServerHandle(Protocol):
    """The hooks a pipeline needs from the hosting server."""

    def use_middleware(self, middleware_class: type, **options: Any) -> None:
        ...

    def set_static(self, prefix: str, directory: Path) -> None:
        ...


@dataclass(frozen=True, slots=True)
class StaticMount:
    """Directory the server must expose at ``public_path``."""

    public_path: str
    directory: Path


class BuildPipeline:
    """
    Composes, builds and serves assets for one mode.

    A pipeline instance runs once; ``serving`` and ``failed`` are terminal.

    Example:
        >>> pipeline = BuildPipeline(settings, Mode.PRODUCTION)
        >>> mount = await pipeline.run_production()
        >>> server.set_static(mount.public_path, mount.directory)
    """

    def __init__(
        self,
        settings: BundlerSettings,
        mode: Union[Mode, str],
        *,
        compiler_factory: Optional[CompilerFactory] = None,
        composer: Optional[ConfigComposer] = None,
    ) -> None:
        self._settings = settings
        self._mode = parse_mode(mode)
        self._composer = composer or ConfigComposer(settings)
        self._compiler_factory = compiler_factory or partial(
            create_compiler, binary=settings.esbuild_binary
        )
        self._state = PipelineState.IDLE
        self.run_id = f"build-{uuid.uuid4().hex[:8]}"
        self.config: Optional[BuildConfig] = None
        self.monitor: Optional[BuildMonitor] = None
        self._logger = logger.bind(run_id=self.run_id, mode=self._mode.value)

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def state(self) -> PipelineState:
        return self._state

    # ── Variants ─────────────────────────────────────────────────────────

    async def run_development(self, server: ServerHandle) -> None:
        """
        Attach live-rebuild middlewares to ``server`` and write HTML shells.

        Returns once both middlewares are attached and every shell exists;
        bundles are (re)built in the background.

        Raises:
            ConfigurationError: wrong mode, invalid settings or unreadable layout
        """
        self._require_mode({Mode.DEVELOPMENT, Mode.TEST}, "run_development")
        try:
            config = self._compose()
            self._transition(PipelineState.BUILDING)

            monitor = BuildMonitor(self._compiler_factory(config))
            # Rebuild middleware first so the update stream observes fresh state
            server.use_middleware(
                RebuildMiddleware,
                monitor=monitor,
                public_path=config.public_path,
                output_path=config.output_path,
                dashboard_path=self._dashboard_path(config),
            )
            server.use_middleware(
                HotUpdateMiddleware,
                monitor=monitor,
                path=self._settings.hot_path,
                heartbeat=self._settings.heartbeat,
            )

            await write_shells(
                shells_from_layouts(self._settings.layouts),
                bundle_names(config.entry),
                config.public_path,
                config.output_path,
            )
            monitor.start()
            self.monitor = monitor
        except Exception as exc:
            self._fail(exc)
            raise

        self._transition(PipelineState.SERVING)

    async def run_production(self) -> StaticMount:
        """
        One-shot build followed by HTML shell emission.

        Returns:
            The directory to serve and its URL prefix.

        Raises:
            BuildError: the bundler failed or reported any error diagnostic
            ConfigurationError: wrong mode, invalid settings or unreadable layout
        """
        self._require_mode({Mode.PRODUCTION}, "run_production")
        try:
            config = self._compose()
            self._transition(PipelineState.BUILDING)

            compiler = self._compiler_factory(config)
            try:
                stats = await compiler.run()
            except CompilerError as exc:
                raise BuildError("Production build failed", details=str(exc)) from exc
            if stats.has_errors():
                raise BuildError(
                    "Production build reported errors", details=stats.to_string()
                )
            if stats.has_warnings():
                self._logger.warning("build_warnings", warnings=stats.warnings)

            await write_shells(
                shells_from_config(config),
                bundle_names(config.entry),
                config.public_path,
                config.output_path,
            )
        except Exception as exc:
            self._fail(exc)
            raise

        self._transition(PipelineState.SERVING)
        self._logger.info(
            "build_complete",
            duration_ms=round(stats.duration_ms),
            output=str(config.output_path),
        )
        return StaticMount(public_path=config.public_path, directory=Path(config.output_path))

    async def close(self) -> None:
        """Stop the development watcher, if one is running."""
        if self.monitor is not None:
            await self.monitor.stop()

    # ── Internals ────────────────────────────────────────────────────────

    def _require_mode(self, allowed: Collection[Mode], operation: str) -> None:
        if self._mode not in allowed:
            raise ConfigurationError(
                f"{operation}() cannot run in {self._mode.value} mode"
            )

    def _compose(self) -> BuildConfig:
        self._transition(PipelineState.COMPOSING)
        self.config = self._composer.compose(self._mode)
        return self.config

    @staticmethod
    def _dashboard_path(config: BuildConfig) -> Optional[str]:
        for plugin in config.plugins_of(PluginKind.DASHBOARD):
            return plugin.options.get("path")
        return None

    def _transition(self, to_state: PipelineState) -> None:
        from_state = self._state
        if not can_transition(from_state, to_state):
            allowed = {state.value for state in VALID_TRANSITIONS.get(from_state, set())}
            raise StateTransitionError(
                message=(
                    f"Cannot transition pipeline from {from_state.value} to "
                    f"{to_state.value}"
                ),
                from_state=from_state.value,
                to_state=to_state.value,
                allowed_transitions=allowed,
            )
        self._state = to_state
        self._logger.info(
            "pipeline_state_changed",
            from_state=from_state.value,
            to_state=to_state.value,
        )

    def _fail(self, exc: Exception) -> None:
        if self._state in TERMINAL_STATES or not can_transition(
            self._state, PipelineState.FAILED
        ):
            return
        self._transition(PipelineState.FAILED)
        self._logger.error("pipeline_failed", error=str(exc), error_type=type(exc).__name__)


__all__ = ["BuildPipeline", "ServerHandle", "StaticMount"]
