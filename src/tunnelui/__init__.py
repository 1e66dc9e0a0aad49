"""Terminal front-end for the tunnel client/server."""

__version__ = "0.3.0"
