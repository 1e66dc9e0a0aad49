"""Error taxonomy shared by the session coordinator and its callers."""

from __future__ import annotations


class SessionError(RuntimeError):
    """Base class for errors reported by the unified session."""


class SessionClosedError(SessionError):
    """Raised when the session event loop has finished and no event is pending."""

    def __init__(self, message: str = "unified session closed") -> None:
        super().__init__(message)


class SessionQuitError(SessionError):
    """Raised when the user asked to leave the application."""

    def __init__(self, message: str = "unified session user quit") -> None:
        super().__init__(message)


class RuntimeDisconnectedError(SessionError):
    """Raised when the live connection ended while the dashboard was shown."""

    def __init__(self, message: str = "unified session runtime disconnected") -> None:
        super().__init__(message)


class ConfiguratorExitError(SessionError):
    """Raised by the configurator when the user exits without choosing a mode."""

    def __init__(self, message: str = "configurator session user exit") -> None:
        super().__init__(message)


class SessionDependencyError(ValueError):
    """Raised when the session cannot be built from the provided collaborators."""


class InvalidClientConfigurationError(ValueError):
    """Raised when a stored client configuration fails validation."""
