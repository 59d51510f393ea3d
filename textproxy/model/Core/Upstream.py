import socket
from typing import Optional, Tuple
from urllib.parse import unquote, urlsplit

import socks  # PySocks

from .errors import ConfigError, UpstreamConnectError, UpstreamTimeoutError

PROXY_TYPES = {
    "socks4": socks.SOCKS4,
    "socks5": socks.SOCKS5,
    "socks5h": socks.SOCKS5,
    "http": socks.HTTP,
}

DEFAULT_PROXY_PORTS = {
    "socks4": 1080,
    "socks5": 1080,
    "socks5h": 1080,
    "http": 8080,
}


class UpstreamDialer:
    """
    Opens the outbound TCP connection for a session.

    Connections go straight to the target unless an upstream proxy URL is
    configured, in which case PySocks dials through it.

    Attributes:
        connect_timeout (float): Seconds allowed for the connect (None blocks)
        proxy_url (str): Optional socks4/socks5/socks5h/http proxy URL
    """

    def __init__(self, connect_timeout: Optional[float] = 30.0, proxy_url: Optional[str] = None):
        self.connect_timeout = connect_timeout
        self.proxy_url = proxy_url
        self._proxy = self._parse_proxy_url(proxy_url) if proxy_url else None

    @staticmethod
    def _parse_proxy_url(proxy_url: str) -> dict:
        parsed = urlsplit(proxy_url)
        scheme = parsed.scheme.lower()
        if scheme not in PROXY_TYPES or not parsed.hostname:
            raise ConfigError(f"Unsupported upstream proxy URL: {proxy_url!r}")
        try:
            port = parsed.port or DEFAULT_PROXY_PORTS[scheme]
        except ValueError as e:
            raise ConfigError(f"Invalid upstream proxy port in {proxy_url!r}") from e

        return {
            "proxy_type": PROXY_TYPES[scheme],
            "proxy_addr": parsed.hostname,
            "proxy_port": port,
            # socks5h and http resolve names on the proxy side
            "proxy_rdns": scheme in ("socks5h", "http"),
            "proxy_username": unquote(parsed.username) if parsed.username else None,
            "proxy_password": unquote(parsed.password) if parsed.password else None,
        }

    def connect(self, address: Tuple[str, int]) -> socket.socket:
        """
        Connect to address, directly or through the upstream proxy.

        Raises:
            UpstreamTimeoutError: if the connect does not finish in time
            UpstreamConnectError: if the target or proxy is unreachable
        """
        host, port = address
        try:
            if self._proxy is None:
                return socket.create_connection(address, timeout=self.connect_timeout)
            return socks.create_connection(address, timeout=self.connect_timeout, **self._proxy)
        except socket.timeout as e:
            raise UpstreamTimeoutError(f"Timed out connecting to {host}:{port}") from e
        except socks.ProxyError as e:
            if isinstance(getattr(e, "socket_err", None), socket.timeout):
                raise UpstreamTimeoutError(f"Timed out reaching {host}:{port} through upstream proxy: {e}") from e
            raise UpstreamConnectError(f"Upstream proxy failed for {host}:{port}: {e}") from e
        except OSError as e:
            raise UpstreamConnectError(f"Cannot connect to {host}:{port}: {e}") from e
