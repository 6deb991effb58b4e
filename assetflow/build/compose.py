"""
Build configuration composer.

``ConfigComposer`` derives a mode-specific ``BuildConfig`` from a shared base
by structural overlay:

    base = composer.base(mode)
    dev  = merge_configs(base, {"plugins": [...], "devtool": "..."})

``merge_configs`` concatenates sequences, merges mappings recursively and
replaces scalars, returning a new frozen model. Nothing here touches the
filesystem or the process environment; the mode is always passed in.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from pydantic import BaseModel

from assetflow.build.entries import inject_hot_client
from assetflow.build.models import (
    BuildConfig,
    Mode,
    Plugin,
    PluginKind,
    Rule,
    parse_mode,
)
from assetflow.config import BundlerSettings

RESOLVE_EXTENSIONS = (".js", ".ts", ".vue", ".json")
FRAMEWORK_ALIAS = ("vue$", "vue/dist/vue.esm.js")
NODE_MODULES = r"node_modules"
DEV_DEVTOOL = "cheap-module-eval-source-map"
DASHBOARD_PORT = 1337


def merge_configs(base: BuildConfig, overlay: Mapping[str, Any]) -> BuildConfig:
    """
    Structurally merge ``overlay`` onto ``base`` and return a new config.

    Args:
        base: Configuration to start from (left untouched)
        overlay: Partial configuration; models inside are dumped first

    Returns:
        A freshly validated BuildConfig.
    """
    merged = _merge_values(base.model_dump(), _to_plain(dict(overlay)))
    return BuildConfig.model_validate(merged)


def _to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    return value


def _merge_values(left: Any, right: Any) -> Any:
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        merged = dict(left)
        for key, value in right.items():
            merged[key] = _merge_values(left[key], value) if key in left else value
        return merged
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return [*left, *right]
    return right


class ConfigComposer:
    """
    Builds base and environment-specific bundler configurations.

    Example:
        >>> composer = ConfigComposer(settings)
        >>> config = composer.compose(Mode.PRODUCTION)
        >>> [p.kind for p in config.plugins][:1]
        [<PluginKind.DEFINE: 'define'>]
    """

    def __init__(self, settings: BundlerSettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> BundlerSettings:
        return self._settings

    def compose(self, mode: Union[Mode, str]) -> BuildConfig:
        """
        Compose the configuration for ``mode``.

        Development and test share the development overlay; production gets
        the production overlay.

        Raises:
            ConfigurationError: if ``mode`` is not a known mode.
        """
        resolved = parse_mode(mode)
        base = self.base(resolved)
        if resolved is Mode.PRODUCTION:
            return merge_configs(base, self._production_overlay())
        return self._development(base)

    def base(self, mode: Mode) -> BuildConfig:
        """Configuration shared by every mode."""
        settings = self._settings
        return BuildConfig(
            mode=mode,
            entry=settings.entry_spec,
            output_path=settings.static_root,
            public_path=settings.public_path,
            rules=tuple(self._rules(mode)),
            plugins=(self._define_plugin(mode),),
            resolve_extensions=RESOLVE_EXTENSIONS,
            resolve_aliases=self._aliases(),
        )

    # ── Base fragments ───────────────────────────────────────────────────

    def _rules(self, mode: Mode) -> List[Rule]:
        is_production = mode is Mode.PRODUCTION
        public_path = self._settings.public_path
        lint_options: Dict[str, Any] = {}
        if self._settings.lint_config is not None:
            lint_options["config_file"] = str(self._settings.lint_config)

        # Order matters: the lint pass runs first, then first match wins.
        return [
            Rule(
                extensions=("js", "vue"),
                loader="lint",
                enforce="pre",
                exclude=NODE_MODULES,
                options=lint_options,
            ),
            Rule(
                extensions=("vue",),
                loader="vue",
                exclude=NODE_MODULES,
                options={
                    "css_source_map": is_production,
                    "extract_css": is_production,
                    "preserve_whitespace": True,
                },
            ),
            Rule(
                extensions=("png", "jpg", "gif", "svg", "otf", "ttf"),
                loader="file",
                options={
                    "name": "[name].[ext]",
                    "public_path": public_path + "/" if is_production else public_path,
                },
            ),
            Rule(extensions=("ts",), loader="typescript", exclude=NODE_MODULES),
            Rule(extensions=("js",), loader="babel", exclude=NODE_MODULES),
            Rule(extensions=("css",), loader="style"),
        ]

    def _aliases(self) -> Dict[str, str]:
        settings = self._settings
        product_root = Path(settings.assets_root) / settings.product
        return {
            FRAMEWORK_ALIAS[0]: FRAMEWORK_ALIAS[1],
            "@": str(product_root),
        }

    @staticmethod
    def _define_plugin(mode: Mode) -> Plugin:
        # Bundled code sees a constant, not a live environment lookup.
        return Plugin(
            kind=PluginKind.DEFINE,
            options={"process.env.NODE_ENV": json.dumps(mode.value)},
        )

    # ── Mode overlays ────────────────────────────────────────────────────

    def _development(self, base: BuildConfig) -> BuildConfig:
        config = merge_configs(
            base,
            {
                "devtool": DEV_DEVTOOL,
                "plugins": [
                    Plugin(kind=PluginKind.HOT_REPLACEMENT),
                    Plugin(
                        kind=PluginKind.DASHBOARD,
                        options={
                            "port": DASHBOARD_PORT,
                            "path": self._settings.dashboard_path,
                        },
                    ),
                ],
            },
        )
        return config.model_copy(
            update={"entry": inject_hot_client(config.entry, self._settings.hot_client)}
        )

    def _production_overlay(self) -> Dict[str, Any]:
        shells = [
            Plugin(
                kind=PluginKind.HTML_SHELL,
                options={
                    "name": name,
                    "template": str(template),
                    "filename": f"{name}.html",
                    "minify": True,
                },
            )
            for name, template in self._settings.layouts.items()
        ]
        return {
            "plugins": [
                *shells,
                Plugin(
                    kind=PluginKind.MINIFY,
                    options={"source_map": True, "extensions": ["js"]},
                ),
                Plugin(kind=PluginKind.EXTRACT_STYLES),
            ]
        }


__all__ = ["ConfigComposer", "merge_configs"]
