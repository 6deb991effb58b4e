"""
Global pytest configuration for assetflow

This file provides shared fixtures and enforces Python version requirements.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add tests directory to sys.path to support imports from test fixtures
_tests_dir = Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

from assetflow.config import BundlerSettings  # noqa: E402

_MIN_PY_VERSION = (3, 11)

LAYOUT_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <title>{title}</title>
  </head>
  <body>
    <!-- mount point -->
    <div id="app"></div>
  </body>
</html>
"""


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


def pytest_configure(config: pytest.Config) -> None:
    """Register project markers before collection to prevent unknown marker warnings."""
    markers = {
        "unit": "Unit tests that should execute quickly.",
        "integration": "Integration tests hitting multiple components.",
        "slow": "Slow or high-cost tests.",
    }
    for name, description in markers.items():
        config.addinivalue_line("markers", f"{name}: {description}")


@pytest.fixture
def layouts(tmp_path: Path) -> dict[str, Path]:
    """Two layout templates: main and admin."""
    templates = tmp_path / "layouts"
    templates.mkdir()
    paths = {}
    for name in ("main", "admin"):
        path = templates / f"{name}.html"
        path.write_text(LAYOUT_TEMPLATE.format(title=name), encoding="utf-8")
        paths[name] = path
    return paths


@pytest.fixture
def settings(tmp_path: Path, layouts: dict[str, Path]) -> BundlerSettings:
    """Bundler settings writing into a temporary output directory."""
    return BundlerSettings(
        entry="assets/default/index.js",
        layouts=layouts,
        static_root=tmp_path / "dist",
        hot_client="hot-client.js",
    )


@pytest.fixture
def named_settings(settings: BundlerSettings) -> BundlerSettings:
    """Settings declaring two named bundles, app then admin."""
    return settings.model_copy(
        update={"entry": {"app": "assets/default/app.js", "admin": "assets/default/admin.js"}}
    )
