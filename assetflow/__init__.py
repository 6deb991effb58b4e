"""
assetflow: build-pipeline composition and live asset serving.

* `assetflow.build` - entry models, config composer, compiler boundary,
  HTML shells, development middlewares and the pipeline lifecycle.
* `assetflow.config` - settings loaded from `app.toml` and the environment.
* `assetflow.observability` - structlog configuration.
"""

__version__ = "0.1.0"
