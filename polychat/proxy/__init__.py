"""AI proxy HTTP server."""

from polychat.proxy.server import create_app, run_proxy

__all__ = ["create_app", "run_proxy"]
