"""
Compiler boundary.

The bundler's transform engine is an external tool. ``Compiler`` is the seam
the pipeline talks to; ``EsbuildCompiler`` drives the ``esbuild`` CLI:

- ``run()`` performs a one-shot build and returns ``CompileStats``
- ``watch()`` keeps a watcher process alive and yields a ``WatchEvent`` each
  time a rebuild starts or finishes

Diagnostics reported by the bundler end up in ``CompileStats``; a bundler
that cannot run at all raises ``CompilerError``.
"""

from __future__ import annotations

import asyncio
import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    AsyncIterator,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

from assetflow.build.entries import flatten_entries
from assetflow.build.models import (
    BuildConfig,
    ListEntry,
    PluginKind,
    SingleEntry,
)
from assetflow.exceptions import CompilerError
from assetflow.observability import get_logger

logger = get_logger(__name__)

# Rule loaders esbuild handles natively
ESBUILD_LOADERS: Dict[str, str] = {
    "babel": "js",
    "typescript": "ts",
    "file": "file",
    "style": "css",
}

WATCH_STARTED = "[watch] build started"
WATCH_FINISHED = "[watch] build finished"
DEFAULT_WORK_DIR = Path(".assetflow")


@dataclass(slots=True)
class CompileStats:
    """Diagnostics of one compile pass."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def to_string(self) -> str:
        lines = [f"ERROR: {message}" for message in self.errors]
        lines.extend(f"WARNING: {message}" for message in self.warnings)
        lines.append(
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s) "
            f"in {self.duration_ms:.0f}ms"
        )
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, object]:
        return {
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "time": round(self.duration_ms),
        }


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """A watcher notification: a rebuild started or finished."""

    kind: Literal["building", "built"]
    stats: Optional[CompileStats] = None


@runtime_checkable
class Compiler(Protocol):
    """Capability the pipeline needs from a bundler."""

    config: BuildConfig

    async def run(self) -> CompileStats:
        """Perform a one-shot build."""
        ...

    def watch(self) -> AsyncIterator[WatchEvent]:
        """Rebuild on change, yielding an event per build start/finish."""
        ...


CompilerFactory = Callable[[BuildConfig], Compiler]


class _DiagnosticCollector:
    """Accumulates esbuild ``[ERROR]``/``[WARNING]`` lines."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._errors: List[str] = []
        self._warnings: List[str] = []
        self._started = time.monotonic()

    def feed(self, line: str) -> None:
        if "[ERROR]" in line:
            self._errors.append(line.split("[ERROR]", 1)[1].strip())
        elif "[WARNING]" in line:
            self._warnings.append(line.split("[WARNING]", 1)[1].strip())

    def stats(self) -> CompileStats:
        return CompileStats(
            errors=list(self._errors),
            warnings=list(self._warnings),
            duration_ms=(time.monotonic() - self._started) * 1000,
        )


def parse_diagnostics(output: str) -> CompileStats:
    """Extract diagnostics from esbuild log output."""
    collector = _DiagnosticCollector()
    for line in output.splitlines():
        collector.feed(line)
    return collector.stats()


def _module_reference(path: str) -> str:
    """Absolute path for local files, bare specifiers untouched."""
    return os.path.abspath(path) if os.path.exists(path) else path


class EsbuildCompiler:
    """
    Drives the ``esbuild`` CLI for one ``BuildConfig``.

    Example:
        >>> compiler = EsbuildCompiler(config)
        >>> stats = await compiler.run()
        >>> stats.has_errors()
        False
    """

    def __init__(
        self,
        config: BuildConfig,
        *,
        binary: str = "esbuild",
        work_dir: Path = DEFAULT_WORK_DIR,
    ) -> None:
        self.config = config
        self.binary = binary
        self.work_dir = Path(work_dir)

    # ── Argument translation ─────────────────────────────────────────────

    def build_arguments(self) -> Tuple[List[str], Dict[Path, str]]:
        """
        Translate the config into CLI arguments.

        Returns:
            (arguments, shim files to write before invoking the CLI)
        """
        config = self.config
        args: List[str] = []
        shims: Dict[Path, str] = {}

        for name, leaf in flatten_entries(config.entry):
            if isinstance(leaf, SingleEntry):
                args.append(f"{name}={_module_reference(leaf.path)}")
                continue
            assert isinstance(leaf, ListEntry)
            shim = self.work_dir / "entries" / f"{name.replace('/', '__')}.js"
            shims[shim] = "".join(
                f"import {json.dumps(_module_reference(path))};\n" for path in leaf.paths
            )
            args.append(f"{name}={shim.resolve()}")

        args.extend(
            [
                "--bundle",
                f"--outdir={config.output_path}",
                f"--public-path={self._asset_public_path()}",
            ]
        )
        if config.resolve_extensions:
            args.append(f"--resolve-extensions={','.join(config.resolve_extensions)}")

        for rule in config.rules:
            if rule.enforce == "pre":
                continue
            loader = ESBUILD_LOADERS.get(rule.loader)
            if loader is None:
                logger.debug("rule_loader_unsupported", loader=rule.loader)
                continue
            args.extend(f"--loader:.{ext}={loader}" for ext in rule.extensions)

        for plugin in config.plugins_of(PluginKind.DEFINE):
            args.extend(f"--define:{key}={value}" for key, value in plugin.options.items())

        minify = config.plugins_of(PluginKind.MINIFY)
        if minify:
            args.append("--minify")
        if config.devtool or any(p.options.get("source_map") for p in minify):
            args.append("--sourcemap")

        paths: Dict[str, List[str]] = {}
        for key, target in config.resolve_aliases.items():
            if key.endswith("$"):
                args.append(f"--alias:{key[:-1]}={target}")
            else:
                paths[f"{key}/*"] = [f"{os.path.abspath(target)}/*"]
        if paths:
            tsconfig = {"compilerOptions": {"baseUrl": ".", "paths": paths}}
            args.append(f"--tsconfig-raw={json.dumps(tsconfig)}")

        return args, shims

    def _asset_public_path(self) -> str:
        for rule in self.config.rules:
            if rule.loader == "file" and "public_path" in rule.options:
                return str(rule.options["public_path"])
        return self.config.public_path

    def _prepare(self) -> List[str]:
        args, shims = self.build_arguments()
        Path(self.config.output_path).mkdir(parents=True, exist_ok=True)
        for shim, content in shims.items():
            shim.parent.mkdir(parents=True, exist_ok=True)
            shim.write_text(content, encoding="utf-8")
        return args

    async def _spawn(self, args: List[str], **kwargs) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(self.binary, *args, **kwargs)
        except OSError as exc:
            raise CompilerError(f"Cannot start bundler '{self.binary}': {exc}") from exc

    # ── Compiler protocol ────────────────────────────────────────────────

    async def run(self) -> CompileStats:
        """One-shot build."""
        args = await asyncio.to_thread(self._prepare)
        started = time.monotonic()
        process = await self._spawn(
            [*args, "--log-level=warning"],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()

        stats = parse_diagnostics(stderr.decode("utf-8", errors="replace"))
        stats.duration_ms = (time.monotonic() - started) * 1000
        if process.returncode != 0 and not stats.has_errors():
            raise CompilerError(
                f"Bundler '{self.binary}' exited with status {process.returncode}"
            )
        return stats

    async def watch(self) -> AsyncIterator[WatchEvent]:
        """Keep a watcher alive and translate its banner lines into events."""
        args = await asyncio.to_thread(self._prepare)
        process = await self._spawn(
            [*args, "--log-level=info", "--watch=forever"],
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        collector = _DiagnosticCollector()
        try:
            assert process.stderr is not None
            async for raw in process.stderr:
                line = raw.decode("utf-8", errors="replace").rstrip()
                if WATCH_STARTED in line:
                    collector.reset()
                    yield WatchEvent(kind="building")
                elif WATCH_FINISHED in line:
                    yield WatchEvent(kind="built", stats=collector.stats())
                    collector.reset()
                else:
                    collector.feed(line)
            returncode = await process.wait()
            raise CompilerError(f"Bundler watcher exited with status {returncode}")
        finally:
            if process.returncode is None:
                process.terminate()
                await process.wait()


def create_compiler(config: BuildConfig, *, binary: str = "esbuild") -> Compiler:
    """Default compiler factory."""
    return EsbuildCompiler(config, binary=binary)


__all__ = [
    "CompileStats",
    "Compiler",
    "CompilerFactory",
    "EsbuildCompiler",
    "WatchEvent",
    "create_compiler",
    "flatten_entries",
    "parse_diagnostics",
]
