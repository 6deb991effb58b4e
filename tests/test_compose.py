"""
Tests for the base configuration and its mode overlays
"""

import json
from pathlib import Path

import pytest

from assetflow.build.compose import ConfigComposer, merge_configs
from assetflow.build.models import (
    ListEntry,
    Mode,
    Plugin,
    PluginKind,
    SingleEntry,
    select_rule,
)
from assetflow.exceptions import ConfigurationError


def _kinds(config):
    return [plugin.kind for plugin in config.plugins]


def _define_value(config):
    (define,) = config.plugins_of(PluginKind.DEFINE)
    return define.options["process.env.NODE_ENV"]


def test_base_rules_are_ordered(settings):
    """Lint pre-pass first, then vue, file, typescript, babel and style."""
    config = ConfigComposer(settings).base(Mode.DEVELOPMENT)

    assert [rule.loader for rule in config.rules] == [
        "lint",
        "vue",
        "file",
        "typescript",
        "babel",
        "style",
    ]
    assert config.rules[0].enforce == "pre"
    assert config.resolve_extensions == (".js", ".ts", ".vue", ".json")


def test_first_matching_rule_wins(settings):
    rules = ConfigComposer(settings).base(Mode.DEVELOPMENT).rules

    assert select_rule(rules, "components/App.vue").loader == "vue"
    assert select_rule(rules, "src/index.js").loader == "babel"
    assert select_rule(rules, "img/logo.svg").loader == "file"
    assert select_rule(rules, "node_modules/lib/index.js") is None
    assert select_rule(rules, "README.md") is None


def test_aliases_point_at_product_assets(settings):
    config = ConfigComposer(settings).base(Mode.PRODUCTION)

    assert config.resolve_aliases["vue$"] == "vue/dist/vue.esm.js"
    assert config.resolve_aliases["@"] == str(Path("assets") / "default")


def test_production_overlay(settings):
    """Production adds one shell per layout, minification and style extraction."""
    config = ConfigComposer(settings).compose(Mode.PRODUCTION)

    assert _kinds(config) == [
        PluginKind.DEFINE,
        PluginKind.HTML_SHELL,
        PluginKind.HTML_SHELL,
        PluginKind.MINIFY,
        PluginKind.EXTRACT_STYLES,
    ]
    shells = config.plugins_of(PluginKind.HTML_SHELL)
    assert [shell.options["filename"] for shell in shells] == ["main.html", "admin.html"]
    assert all(shell.options["minify"] for shell in shells)
    assert config.plugins_of(PluginKind.MINIFY)[0].options["source_map"] is True

    assert _define_value(config) == json.dumps("production")
    assert config.entry == SingleEntry(path="assets/default/index.js")
    assert config.devtool is None


def test_production_rule_options(settings):
    rules = {rule.loader: rule for rule in ConfigComposer(settings).compose("production").rules}

    assert rules["file"].options["public_path"] == "/static/"
    assert rules["vue"].options["extract_css"] is True
    assert rules["vue"].options["css_source_map"] is True


def test_development_overlay(settings):
    """Development injects the hot client and adds live-reload directives."""
    config = ConfigComposer(settings).compose(Mode.DEVELOPMENT)

    assert _kinds(config) == [
        PluginKind.DEFINE,
        PluginKind.HOT_REPLACEMENT,
        PluginKind.DASHBOARD,
    ]
    assert config.plugins_of(PluginKind.DASHBOARD)[0].options == {
        "port": 1337,
        "path": "/__build",
    }
    assert config.devtool == "cheap-module-eval-source-map"
    assert config.entry == ListEntry(paths=("hot-client.js", "assets/default/index.js"))
    assert _define_value(config) == json.dumps("development")

    rules = {rule.loader: rule for rule in config.rules}
    assert rules["file"].options["public_path"] == "/static"
    assert rules["vue"].options["extract_css"] is False


def test_named_entries_injected_per_bundle(named_settings):
    config = ConfigComposer(named_settings).compose(Mode.DEVELOPMENT)

    assert list(config.entry.bundles) == ["app", "admin"]
    for bundle in config.entry.bundles.values():
        assert bundle.paths[0] == "hot-client.js"


def test_test_mode_uses_development_overlay(settings):
    config = ConfigComposer(settings).compose("test")

    assert config.mode is Mode.TEST
    assert config.has_plugin(PluginKind.HOT_REPLACEMENT)
    assert _define_value(config) == json.dumps("test")


def test_unknown_mode_is_a_configuration_error(settings):
    with pytest.raises(ConfigurationError, match="staging"):
        ConfigComposer(settings).compose("staging")


def test_merge_configs_concatenates_sequences_and_keeps_base(settings):
    base = ConfigComposer(settings).base(Mode.DEVELOPMENT)

    merged = merge_configs(
        base,
        {
            "plugins": [Plugin(kind=PluginKind.MINIFY)],
            "resolve_aliases": {"~": "lib"},
            "devtool": "source-map",
        },
    )

    assert _kinds(merged) == [PluginKind.DEFINE, PluginKind.MINIFY]
    assert merged.resolve_aliases == {**base.resolve_aliases, "~": "lib"}
    assert merged.devtool == "source-map"
    assert _kinds(base) == [PluginKind.DEFINE]
    assert base.devtool is None


def test_lint_config_is_passed_to_pre_rule(settings):
    configured = settings.model_copy(update={"lint_config": Path(".eslintrc")})
    config = ConfigComposer(configured).base(Mode.DEVELOPMENT)

    assert config.rules[0].options == {"config_file": ".eslintrc"}
