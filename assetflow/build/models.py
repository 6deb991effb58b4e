"""
Build configuration models.

Every model here is a frozen pydantic model: a configuration variant is
derived from the base by structural overlay (see ``assetflow.build.compose``)
and never edited in place.
"""

from __future__ import annotations

import re
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from assetflow.exceptions import ConfigurationError


class Mode(str, Enum):
    """Runtime environment the process was started in."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


def parse_mode(value: Union[Mode, str]) -> Mode:
    """
    Convert ``value`` into a ``Mode``.

    Raises:
        ConfigurationError: naming the value when it is not a known mode.
    """
    if isinstance(value, Mode):
        return value
    try:
        return Mode(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(mode.value for mode in Mode)
        raise ConfigurationError(
            f"Unknown build mode: {value!r} (expected one of: {valid})"
        ) from None


# ── Entry specification ──────────────────────────────────────────────────────


class SingleEntry(BaseModel):
    """A single module path."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    path: str


class ListEntry(BaseModel):
    """An ordered sequence of module paths bundled together."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    paths: Tuple[str, ...]


class NamedEntry(BaseModel):
    """Mapping from bundle name to a nested entry specification."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["named"] = "named"
    bundles: Dict[str, "EntrySpec"]


EntrySpec = Annotated[
    Union[SingleEntry, ListEntry, NamedEntry], Field(discriminator="kind")
]

NamedEntry.model_rebuild()


# ── Rules and plugins ────────────────────────────────────────────────────────


@lru_cache(maxsize=None)
def _extension_matcher(extensions: Tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(ext) for ext in extensions)
    return re.compile(rf"\.({alternatives})$")


class Rule(BaseModel):
    """
    A transform rule keyed by file extension.

    Ordering is significant: for a given file the first non-``pre`` rule
    whose matcher accepts it wins (see :func:`select_rule`). ``pre`` rules
    run as an extra pass (linting) before the winning rule.
    """

    model_config = ConfigDict(frozen=True)

    extensions: Tuple[str, ...]
    loader: str
    enforce: Optional[Literal["pre", "post"]] = None
    exclude: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)

    @property
    def matcher(self) -> re.Pattern[str]:
        return _extension_matcher(self.extensions)

    def matches(self, filename: str) -> bool:
        if self.exclude and re.search(self.exclude, filename):
            return False
        return self.matcher.search(filename) is not None


def select_rule(rules: Tuple[Rule, ...], filename: str) -> Optional[Rule]:
    """Return the first non-pre rule accepting ``filename``, if any."""
    for rule in rules:
        if rule.enforce == "pre":
            continue
        if rule.matches(filename):
            return rule
    return None


class PluginKind(str, Enum):
    """Build directives understood by the pipeline and compilers."""

    DEFINE = "define"
    HOT_REPLACEMENT = "hot_replacement"
    DASHBOARD = "dashboard"
    HTML_SHELL = "html_shell"
    MINIFY = "minify"
    EXTRACT_STYLES = "extract_styles"


class Plugin(BaseModel):
    """A declarative build directive with free-form options."""

    model_config = ConfigDict(frozen=True)

    kind: PluginKind
    options: Dict[str, Any] = Field(default_factory=dict)


# ── Build configuration ──────────────────────────────────────────────────────


class BuildConfig(BaseModel):
    """Fully composed configuration handed to a compiler."""

    model_config = ConfigDict(frozen=True)

    mode: Mode
    entry: EntrySpec
    output_path: Path
    public_path: str
    rules: Tuple[Rule, ...] = ()
    plugins: Tuple[Plugin, ...] = ()
    resolve_extensions: Tuple[str, ...] = ()
    resolve_aliases: Dict[str, str] = Field(default_factory=dict)
    devtool: Optional[str] = None

    def plugins_of(self, kind: PluginKind) -> Tuple[Plugin, ...]:
        """Return the plugins of ``kind`` in declaration order."""
        return tuple(plugin for plugin in self.plugins if plugin.kind == kind)

    def has_plugin(self, kind: PluginKind) -> bool:
        return any(plugin.kind == kind for plugin in self.plugins)


__all__ = [
    "BuildConfig",
    "EntrySpec",
    "ListEntry",
    "Mode",
    "NamedEntry",
    "Plugin",
    "PluginKind",
    "Rule",
    "SingleEntry",
    "parse_mode",
    "select_rule",
]
