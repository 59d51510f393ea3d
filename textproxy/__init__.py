"""
textproxy
License: MIT License
Description: A small forward HTTP proxy. Each accepted connection carries one
             plaintext request, which is relayed to the host named in its
             absolute target URL; the response is relayed back and both
             connections are closed.
"""

from .model import ProxyServer, ConnectionHandler
from .model.Core import (
    ProxyConfig,
    ProxyStats,
    ProxyError,
    ConfigError,
    SessionError,
    MalformedRequestError,
    UriParseError,
    UpstreamConnectError,
    UpstreamTimeoutError,
)

__version__ = "0.1.0"

__all__ = [
    "ProxyServer",
    "ConnectionHandler",
    "ProxyConfig",
    "ProxyStats",
    "ProxyError",
    "ConfigError",
    "SessionError",
    "MalformedRequestError",
    "UriParseError",
    "UpstreamConnectError",
    "UpstreamTimeoutError",
]
