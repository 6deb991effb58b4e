"""Build configuration models and entry helpers."""

from assetflow.build.entries import (
    DEFAULT_BUNDLE_NAME,
    bundle_names,
    entry_from_raw,
    flatten_entries,
    inject_hot_client,
    leaf_paths,
)
from assetflow.build.models import (
    BuildConfig,
    EntrySpec,
    ListEntry,
    Mode,
    NamedEntry,
    Plugin,
    PluginKind,
    Rule,
    SingleEntry,
    parse_mode,
    select_rule,
)

__all__ = [
    "BuildConfig",
    "DEFAULT_BUNDLE_NAME",
    "EntrySpec",
    "ListEntry",
    "Mode",
    "NamedEntry",
    "Plugin",
    "PluginKind",
    "Rule",
    "SingleEntry",
    "bundle_names",
    "entry_from_raw",
    "flatten_entries",
    "inject_hot_client",
    "leaf_paths",
    "parse_mode",
    "select_rule",
]
