"""Entry specification helpers: parsing, naming and hot-client injection."""

from __future__ import annotations

from typing import Any, List, Tuple

from assetflow.build.models import EntrySpec, ListEntry, NamedEntry, SingleEntry
from assetflow.exceptions import ConfigurationError

DEFAULT_BUNDLE_NAME = "main"


def entry_from_raw(raw: Any) -> EntrySpec:
    """
    Convert a raw configuration value into an ``EntrySpec``.

    A string becomes ``SingleEntry``, a list of strings ``ListEntry`` and a
    table ``NamedEntry`` (values converted recursively).

    Raises:
        ConfigurationError: for any other shape, or an empty list/table.
    """
    if isinstance(raw, (SingleEntry, ListEntry, NamedEntry)):
        return raw
    if isinstance(raw, str):
        return SingleEntry(path=raw)
    if isinstance(raw, (list, tuple)):
        if not raw or not all(isinstance(item, str) for item in raw):
            raise ConfigurationError(
                f"List entries must be a non-empty list of module paths, got {raw!r}"
            )
        return ListEntry(paths=tuple(raw))
    if isinstance(raw, dict):
        if not raw:
            raise ConfigurationError("Named entries must declare at least one bundle")
        return NamedEntry(
            bundles={str(name): entry_from_raw(value) for name, value in raw.items()}
        )
    raise ConfigurationError(f"Unsupported entry specification: {raw!r}")


def inject_hot_client(entry: EntrySpec, hot_client: str) -> EntrySpec:
    """
    Prepend the hot-reload client module to every leaf of ``entry``.

    Named entries keep their keys (and key order) and are transformed
    recursively; lists get the client prepended; a single path is promoted
    to a two-element list with the client first.

    Applying this twice prepends the client twice.

    Example:
        >>> inject_hot_client(SingleEntry(path="src/app.js"), "hot.js")
        ListEntry(kind='list', paths=('hot.js', 'src/app.js'))
    """
    if isinstance(entry, NamedEntry):
        return NamedEntry(
            bundles={
                name: inject_hot_client(value, hot_client)
                for name, value in entry.bundles.items()
            }
        )
    if isinstance(entry, ListEntry):
        return ListEntry(paths=(hot_client, *entry.paths))
    return ListEntry(paths=(hot_client, entry.path))


def flatten_entries(entry: EntrySpec, prefix: str = "") -> List[Tuple[str, EntrySpec]]:
    """
    Flatten an entry into ``(bundle_name, leaf)`` pairs.

    Nested named entries produce ``parent/child`` names; a top-level
    single or list entry is named ``main``.
    """
    if isinstance(entry, NamedEntry):
        pairs: List[Tuple[str, EntrySpec]] = []
        for name, value in entry.bundles.items():
            pairs.extend(flatten_entries(value, f"{prefix}{name}/"))
        return pairs
    name = prefix.rstrip("/") or DEFAULT_BUNDLE_NAME
    return [(name, entry)]


def bundle_names(entry: EntrySpec) -> List[str]:
    """Return the names of the bundles the compiler emits, in declaration order."""
    return [name for name, _ in flatten_entries(entry)]


def leaf_paths(entry: EntrySpec) -> List[str]:
    """Module paths of a non-named entry, in order."""
    if isinstance(entry, SingleEntry):
        return [entry.path]
    if isinstance(entry, ListEntry):
        return list(entry.paths)
    raise TypeError("leaf_paths() expects a single or list entry")


__all__ = [
    "DEFAULT_BUNDLE_NAME",
    "bundle_names",
    "entry_from_raw",
    "flatten_entries",
    "inject_hot_client",
    "leaf_paths",
]
