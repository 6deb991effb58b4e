"""
Process entry point.

The orchestrator runs startup as strictly ordered phases:

1. run the build pipeline variant for the mode
   (development: attach live middlewares; production: one-shot build and
   static mount; test: nothing);
2. install declared middlewares and discovered routes;
3. start the listener.

Any failure aborts the process before the listener binds.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import List, Optional, Union

from dotenv import load_dotenv

from app.server import AppServer
from assetflow.build.compiler import CompilerFactory
from assetflow.build.models import Mode, parse_mode
from assetflow.build.pipeline import BuildPipeline
from assetflow.config import AppConfig, load_config, resolve_mode
from assetflow.observability import configure_logging, get_logger

logger = get_logger(__name__)


class Orchestrator:
    """
    Drives startup for one mode.

    Example:
        >>> orchestrator = Orchestrator(load_config(), Mode.PRODUCTION)
        >>> await orchestrator.start()
    """

    def __init__(
        self,
        config: AppConfig,
        mode: Union[Mode, str],
        *,
        server: Optional[AppServer] = None,
        compiler_factory: Optional[CompilerFactory] = None,
        startup_timeout: Optional[float] = None,
    ) -> None:
        self.config = config
        self.mode = parse_mode(mode)
        self.server = server or AppServer(config.server)
        self.pipeline = BuildPipeline(
            config.bundler, self.mode, compiler_factory=compiler_factory
        )
        self.startup_timeout = startup_timeout

    async def prepare(self) -> None:
        """
        Run every startup phase up to (not including) listening.

        Raises:
            AssetflowError: on any configuration, discovery or build failure
            TimeoutError: if ``startup_timeout`` elapses
        """
        logger.info("startup_begin", mode=self.mode.value, run_id=self.pipeline.run_id)
        async with asyncio.timeout(self.startup_timeout):
            await self._run_pipeline()
            await self.server.prepare()
        logger.info("startup_ready", mode=self.mode.value)

    async def _run_pipeline(self) -> None:
        if self.mode is Mode.PRODUCTION:
            mount = await self.pipeline.run_production()
            self.server.set_static(mount.public_path, mount.directory)
        elif self.mode is Mode.DEVELOPMENT:
            await self.pipeline.run_development(self.server)
        else:
            logger.info("pipeline_skipped", mode=self.mode.value)

    async def start(self) -> None:
        """Prepare, then serve until shutdown."""
        try:
            await self.prepare()
            await self.server.listen()
        finally:
            await self.pipeline.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assetflow-serve",
        description="Build assets for the active APP_ENV and start the server.",
    )
    parser.add_argument("--config", help="Path to an app.toml configuration file")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point; exits with status 1 on any startup failure."""
    args = build_parser().parse_args(argv)
    load_dotenv()
    configure_logging(
        level=os.getenv("APP_LOG_LEVEL", "INFO"),
        format=os.getenv("APP_LOG_FORMAT", "console"),
    )

    try:
        mode = resolve_mode()
        config = load_config(args.config)
        asyncio.run(Orchestrator(config, mode).start())
    except Exception as exc:
        logger.error(
            "startup_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
