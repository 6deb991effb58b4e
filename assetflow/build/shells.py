"""
HTML shell generation.

Each declared layout template is parsed, one ``<script>`` tag per bundle is
appended to its ``<body>`` (bundle declaration order), and the result is
written to ``<output_path>/<layout>.html``. This is how served pages learn
the generated bundle names without the server knowing about the build.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Sequence

from bs4 import BeautifulSoup, Comment, NavigableString

from assetflow.build.models import BuildConfig, PluginKind
from assetflow.exceptions import DiscoveryIOError
from assetflow.observability import get_logger

logger = get_logger(__name__)

# Whitespace inside these elements is significant
_PRESERVE_WHITESPACE = frozenset({"pre", "textarea", "script", "style"})


@dataclass(frozen=True, slots=True)
class LayoutShell:
    """One HTML shell to emit."""

    name: str
    template: Path
    filename: str
    minify: bool = False


def shells_from_layouts(layouts: Mapping[str, Path]) -> List[LayoutShell]:
    """Shells for the declared layouts, unminified (development)."""
    return [
        LayoutShell(name=name, template=Path(template), filename=f"{name}.html")
        for name, template in layouts.items()
    ]


def shells_from_config(config: BuildConfig) -> List[LayoutShell]:
    """Shells described by the ``html_shell`` directives of ``config``."""
    return [
        LayoutShell(
            name=plugin.options["name"],
            template=Path(plugin.options["template"]),
            filename=plugin.options.get("filename", f"{plugin.options['name']}.html"),
            minify=bool(plugin.options.get("minify", False)),
        )
        for plugin in config.plugins_of(PluginKind.HTML_SHELL)
    ]


def script_src(public_path: str, bundle: str) -> str:
    return f"{public_path.rstrip('/')}/{bundle}.js"


def render_shell(
    markup: str,
    bundles: Sequence[str],
    public_path: str,
    *,
    minify: bool = False,
) -> str:
    """
    Append bundle script tags to the body of ``markup``.

    A ``<body>`` element is created when the template has none.

    Args:
        markup: Layout template source
        bundles: Bundle names, in declaration order
        public_path: URL prefix bundles are served under
        minify: Drop comments and inter-tag whitespace

    Returns:
        The rendered document.
    """
    soup = BeautifulSoup(markup, "html.parser")
    body = soup.body
    if body is None:
        body = soup.new_tag("body")
        (soup.html or soup).append(body)

    for bundle in bundles:
        body.append(soup.new_tag("script", src=script_src(public_path, bundle)))

    if minify:
        _collapse_whitespace(soup)
    return str(soup)


def _collapse_whitespace(soup: BeautifulSoup) -> None:
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    for text in soup.find_all(string=True):
        if not isinstance(text, NavigableString) or text.strip():
            continue
        if text.parent is not None and text.parent.name in _PRESERVE_WHITESPACE:
            continue
        text.extract()


async def write_shell(
    shell: LayoutShell,
    bundles: Sequence[str],
    public_path: str,
    output_path: Path,
) -> Path:
    """Render one layout and persist it; returns the written path."""
    try:
        markup = await asyncio.to_thread(shell.template.read_text, encoding="utf-8")
    except OSError as exc:
        raise DiscoveryIOError(
            f"Cannot read layout '{shell.name}' template {shell.template}: {exc}",
            path=str(shell.template),
        ) from exc

    html = render_shell(markup, bundles, public_path, minify=shell.minify)
    target = Path(output_path) / shell.filename
    await asyncio.to_thread(_write_text, target, html)
    logger.debug("html_shell_written", layout=shell.name, path=str(target))
    return target


async def write_shells(
    shells: Sequence[LayoutShell],
    bundles: Sequence[str],
    public_path: str,
    output_path: Path,
) -> List[Path]:
    """Write every shell, in declaration order."""
    written = []
    for shell in shells:
        written.append(await write_shell(shell, bundles, public_path, output_path))
    return written


def _write_text(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


__all__ = [
    "LayoutShell",
    "render_shell",
    "script_src",
    "shells_from_config",
    "shells_from_layouts",
    "write_shell",
    "write_shells",
]
