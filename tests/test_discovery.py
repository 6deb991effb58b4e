"""
Tests for convention-based route discovery
"""

import textwrap
from types import SimpleNamespace

import pytest

from app.server.discovery import (
    DEFAULT_ROUTES_PATH,
    describe_route,
    discover_routes,
)
from assetflow.exceptions import ConfigurationError, DiscoveryIOError

ROUTE_TEMPLATE = """
from starlette.responses import PlainTextResponse

method = {method!r}
url = {url!r}


def route(request):
    return PlainTextResponse({body!r})
"""


def write_route(root, feature, filename, method="GET", url="/", body="ok", source=None):
    directory = root / feature
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    content = source if source is not None else ROUTE_TEMPLATE.format(
        method=method, url=url, body=body
    )
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


@pytest.fixture
def routes_root(tmp_path):
    root = tmp_path / "routes"
    write_route(root, "users", "get_users_route.py", "GET", "/users", "users")
    write_route(root, "orders", "post_orders_route.py", "post", "/orders", "orders")
    return root


@pytest.mark.asyncio
async def test_discovers_every_route(routes_root):
    """Exactly one descriptor per route file, regardless of scan order."""
    descriptors = await discover_routes(routes_root)

    assert {(d.method, d.url) for d in descriptors} == {
        ("GET", "/users"),
        ("POST", "/orders"),
    }
    assert all(callable(d.handler) for d in descriptors)


@pytest.mark.asyncio
async def test_discovery_order_is_lexical(routes_root):
    write_route(routes_root, "users", "a_first_route.py", "GET", "/users/first")

    descriptors = await discover_routes(routes_root)

    assert [d.url for d in descriptors] == ["/orders", "/users/first", "/users"]


@pytest.mark.asyncio
async def test_non_matching_files_and_private_features_are_ignored(routes_root):
    write_route(routes_root, "users", "helpers.py", source="raise RuntimeError('never imported')")
    (routes_root / "users" / "README.md").write_text("docs", encoding="utf-8")
    write_route(routes_root, "_shared", "hidden_route.py", "GET", "/hidden")
    (routes_root / "loose_route.py").write_text("method = 'GET'", encoding="utf-8")

    descriptors = await discover_routes(routes_root)

    assert {d.url for d in descriptors} == {"/users", "/orders"}


@pytest.mark.asyncio
async def test_missing_field_is_a_configuration_error(tmp_path):
    path = write_route(tmp_path, "broken", "no_url_route.py", source="method = 'GET'\n")

    with pytest.raises(ConfigurationError, match="no_url_route.py"):
        await discover_routes(tmp_path)

    assert path.exists()


@pytest.mark.asyncio
async def test_unknown_method_is_a_configuration_error(tmp_path):
    write_route(tmp_path, "broken", "fetch_route.py", "FETCH", "/x")

    with pytest.raises(ConfigurationError, match="FETCH"):
        await discover_routes(tmp_path)


@pytest.mark.asyncio
async def test_import_failure_is_a_configuration_error(tmp_path):
    write_route(tmp_path, "broken", "syntax_route.py", source="def route(:\n")

    with pytest.raises(ConfigurationError, match="failed to import"):
        await discover_routes(tmp_path)


@pytest.mark.asyncio
async def test_duplicate_routes_are_rejected(routes_root):
    write_route(routes_root, "zz_legacy", "users_route.py", "GET", "/users")

    with pytest.raises(ConfigurationError, match="Duplicate route GET /users"):
        await discover_routes(routes_root)


@pytest.mark.asyncio
async def test_missing_root_is_a_discovery_io_error(tmp_path):
    with pytest.raises(DiscoveryIOError) as excinfo:
        await discover_routes(tmp_path / "nowhere")

    assert isinstance(excinfo.value, ConfigurationError)
    assert excinfo.value.path == str(tmp_path / "nowhere")


def test_describe_route_validates_shape():
    descriptor = describe_route(
        SimpleNamespace(method="delete", url="/items", route=lambda request: None)
    )
    assert descriptor.method == "DELETE"

    with pytest.raises(ConfigurationError, match="must start with '/'"):
        describe_route(SimpleNamespace(method="GET", url="items", route=lambda r: None))
    with pytest.raises(ConfigurationError, match="not callable"):
        describe_route(SimpleNamespace(method="GET", url="/items", route="nope"))


@pytest.mark.asyncio
async def test_bundled_health_route():
    descriptors = await discover_routes(DEFAULT_ROUTES_PATH)

    assert [(d.method, d.url) for d in descriptors] == [("GET", "/healthz")]
