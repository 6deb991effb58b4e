"""
assetflow - Exception hierarchy

Every startup failure raised by the composer, the pipeline or the server
discovery layer derives from ``AssetflowError`` so the process entry point
can tell framework failures apart from programming errors.

Fatal (abort startup before the listener binds):
    - ConfigurationError (and DiscoveryIOError)
    - BuildError

Non-fatal:
    - RuntimeRebuildError: reported by the development build monitor, never raised
      past it
"""

from typing import Set


class AssetflowError(Exception):
    """
    Base exception for all assetflow errors.

    Catch this at the process boundary to log and exit with a non-zero
    status.
    """

    pass


class ConfigurationError(AssetflowError):
    """
    Raised when declared configuration cannot be turned into a runnable setup.

    Covers an invalid mode, an unknown middleware name, a malformed route
    module, a duplicate route and invalid settings files.

    Example:
        >>> raise ConfigurationError("Unknown build mode: 'staging'")
    """

    pass


class DiscoveryIOError(ConfigurationError):
    """
    Raised when the filesystem cannot be read during discovery.

    Route directories, middleware directories and layout templates all
    surface read failures through this class. It is a ``ConfigurationError``
    so callers handle it the same way.

    Attributes:
        path: The path that could not be read
    """

    def __init__(self, message: str, path: str):
        """
        Initialize DiscoveryIOError.

        Args:
            message: Human-readable error message
            path: Offending filesystem path
        """
        super().__init__(message)
        self.path = path


class CompilerError(AssetflowError):
    """
    Raised by a compiler when the bundler itself could not run.

    This is the "hard error" case (binary missing, process crashed), as
    opposed to compile diagnostics reported in ``CompileStats``.
    """

    pass


class BuildError(AssetflowError):
    """
    Raised when the production one-shot build fails.

    Both hard compiler failures and error diagnostics are fatal; there is no
    degraded-success path.

    Attributes:
        details: Rendered compiler output, if any
    """

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}\n{self.details}" if self.details else base


class RuntimeRebuildError(AssetflowError):
    """
    A development rebuild failed after the server started listening.

    The build monitor logs it and keeps serving the last good bundle.
    """

    def __init__(self, errors: list[str]):
        super().__init__(f"Rebuild failed with {len(errors)} error(s)")
        self.errors = errors


class StateTransitionError(AssetflowError):
    """
    Raised when a pipeline is driven through an invalid lifecycle transition.

    Attributes:
        from_state: The state being transitioned from
        to_state: The state being transitioned to
        allowed_transitions: Set of valid transitions from from_state

    Example:
        >>> raise StateTransitionError(
        ...     message="Cannot transition from serving to composing",
        ...     from_state="serving",
        ...     to_state="composing",
        ...     allowed_transitions=set()
        ... )
    """

    def __init__(
        self,
        message: str,
        from_state: str,
        to_state: str,
        allowed_transitions: Set[str]
    ):
        """
        Initialize StateTransitionError.

        Args:
            message: Human-readable error message
            from_state: The state being transitioned from
            to_state: The state being transitioned to
            allowed_transitions: Set of valid next states
        """
        super().__init__(message)
        self.from_state = from_state
        self.to_state = to_state
        self.allowed_transitions = allowed_transitions


__all__ = [
    "AssetflowError",
    "BuildError",
    "CompilerError",
    "ConfigurationError",
    "DiscoveryIOError",
    "RuntimeRebuildError",
    "StateTransitionError",
]
