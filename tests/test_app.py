"""
Basic tests for the app and assetflow packages
"""
from app import __version__


def test_version():
    """Test that version is defined."""
    assert __version__ == "0.1.0"


def test_import():
    """Test that both packages can be imported."""
    import app
    import assetflow
    assert app is not None
    assert assetflow.__version__ == __version__


def test_create_app_exposes_fastapi_instance():
    """create_app() returns a server whose app is an ASGI application."""
    from fastapi import FastAPI

    from app.server import create_app

    server = create_app()
    assert isinstance(server.app, FastAPI)
    assert server.middleware_names() == []
