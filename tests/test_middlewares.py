"""
Tests for the middleware registry and built-in installers
"""

import asyncio

import pytest
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware

from app.server.middlewares import MiddlewareRegistry, default_registry
from assetflow.exceptions import ConfigurationError, DiscoveryIOError
from fakes import FakeServer


class Recorder:
    """Installer factory remembering each call."""

    def __init__(self):
        self.calls = []
        self.completed = []

    def sync(self, name):
        def installer(server, options):
            self.calls.append((name, options))

        return installer

    def deferred(self, name, delay=0.01):
        async def installer(server, options):
            self.calls.append((name, options))
            await asyncio.sleep(delay)
            self.completed.append(name)

        return installer


@pytest.mark.asyncio
async def test_apply_invokes_each_installer_once_with_its_options():
    recorder = Recorder()
    registry = MiddlewareRegistry(
        {"session": recorder.deferred("session"), "cors": recorder.sync("cors")}
    )

    await registry.apply(FakeServer(), {"session": {"secret": "x"}, "cors": {}})

    assert sorted(recorder.calls, key=lambda call: call[0]) == [
        ("cors", {}),
        ("session", {"secret": "x"}),
    ]
    assert recorder.completed == ["session"]


@pytest.mark.asyncio
async def test_unknown_middleware_fails_before_any_installer_runs():
    recorder = Recorder()
    registry = MiddlewareRegistry({"cors": recorder.sync("cors")})

    with pytest.raises(ConfigurationError, match="Unknown middleware: helmet"):
        await registry.apply(FakeServer(), {"cors": {}, "helmet": {}})

    assert recorder.calls == []


@pytest.mark.asyncio
async def test_installer_failures_are_fatal():
    def broken(server, options):
        raise RuntimeError("boom")

    async def broken_later(server, options):
        await asyncio.sleep(0)
        raise RuntimeError("later")

    with pytest.raises(ConfigurationError, match="'broken' failed to install: boom"):
        await MiddlewareRegistry({"broken": broken}).apply(FakeServer(), {"broken": {}})

    with pytest.raises(ConfigurationError, match="later"):
        await MiddlewareRegistry({"slow": broken_later}).apply(FakeServer(), {"slow": {}})


@pytest.mark.asyncio
async def test_installer_receives_a_copy_of_its_options():
    def mutating(server, options):
        options["touched"] = True

    declared = {"mutating": {"a": 1}}
    await MiddlewareRegistry({"mutating": mutating}).apply(FakeServer(), declared)

    assert declared == {"mutating": {"a": 1}}


def test_register_validation():
    registry = MiddlewareRegistry()
    registry.register("cors", lambda server, options: None)

    with pytest.raises(ValueError, match="already registered"):
        registry.register("cors", lambda server, options: None)
    with pytest.raises(ValueError):
        registry.register("  ", lambda server, options: None)
    with pytest.raises(TypeError):
        registry.register("gzip", "not callable")

    assert registry.has_installer("cors")
    assert registry.get("gzip") is None


def test_default_registry_names():
    assert default_registry().names() == [
        "cors",
        "gzip",
        "public",
        "request_logging",
        "session",
        "trusted_hosts",
    ]


@pytest.mark.asyncio
async def test_builtin_installers_attach_middlewares():
    server = FakeServer()

    await default_registry().apply(
        server, {"gzip": {}, "session": {"secret": "s3cret", "max_age": 60}}
    )

    assert server.middlewares == [
        (GZipMiddleware, {"minimum_size": 500}),
        (SessionMiddleware, {"secret_key": "s3cret", "max_age": 60}),
    ]


@pytest.mark.asyncio
async def test_session_requires_a_secret():
    with pytest.raises(ConfigurationError, match="secret"):
        await default_registry().apply(FakeServer(), {"session": {}})


@pytest.mark.asyncio
async def test_public_installer_mounts_directory(tmp_path):
    server = FakeServer()

    await default_registry().apply(
        server, {"public": {"directory": str(tmp_path), "prefix": "/assets"}}
    )

    assert server.static == [("/assets", tmp_path)]

    with pytest.raises(DiscoveryIOError):
        await default_registry().apply(
            FakeServer(), {"public": {"directory": str(tmp_path / "missing")}}
        )


@pytest.mark.asyncio
async def test_sync_failure_still_settles_earlier_async_installer():
    """A failing installer does not leave an earlier async installer unfinished."""
    recorder = Recorder()

    def broken(server, options):
        raise RuntimeError("boom")

    registry = MiddlewareRegistry({"slow": recorder.deferred("slow"), "broken": broken})

    with pytest.raises(ConfigurationError, match="'broken' failed to install"):
        await registry.apply(FakeServer(), {"slow": {}, "broken": {}})

    assert recorder.completed == ["slow"]


@pytest.mark.asyncio
async def test_installers_start_in_declaration_order():
    server = FakeServer()

    await default_registry().apply(server, {"request_logging": {}, "gzip": {}, "cors": {}})

    assert [cls.__name__ for cls, _ in server.middlewares] == [
        "RequestLoggingMiddleware",
        "GZipMiddleware",
        "CORSMiddleware",
    ]
