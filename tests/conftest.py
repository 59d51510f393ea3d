"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator

import pytest

from textproxy import ProxyConfig, ProxyServer

from helpers import StubUpstream


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config() -> ProxyConfig:
    """Loopback proxy configuration with short intervals."""
    return ProxyConfig(
        host="127.0.0.1",
        port=0,
        accept_interval=0.05,
        connect_timeout=2.0,
        read_timeout=2.0,
        client_timeout=2.0,
    )


@pytest.fixture
def make_proxy(config: ProxyConfig) -> Generator:
    """Factory for started proxy servers; all are stopped on teardown."""
    servers = []

    def factory(**overrides) -> ProxyServer:
        server = ProxyServer(config.merged(**overrides) if overrides else config)
        server.start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        server.stop()


@pytest.fixture
def proxy(make_proxy) -> ProxyServer:
    return make_proxy()


@pytest.fixture
def make_upstream() -> Generator:
    """Factory for stub upstream servers; all are closed on teardown."""
    stubs = []

    def factory(**kwargs) -> StubUpstream:
        stub = StubUpstream(**kwargs)
        stubs.append(stub)
        return stub

    yield factory

    for stub in stubs:
        stub.close()


@pytest.fixture
def upstream(make_upstream) -> StubUpstream:
    return make_upstream()
