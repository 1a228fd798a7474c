"""Web front end for dstask."""

from .server import DstuiServer, create_app, start_server

__all__ = ["DstuiServer", "create_app", "start_server"]
