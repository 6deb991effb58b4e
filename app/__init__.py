"""
Application bootstrap.

* `app.server` - FastAPI server, route discovery and middleware installers.
* `app.main` - orchestrator wiring the build pipeline into the server.
"""

__version__ = "0.1.0"
