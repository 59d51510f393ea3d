"""
Unit tests for ConnectionHandler using socket pairs and fake dialers.
"""

import socket
import threading

import pytest

from textproxy.model.ConnectionHandler import ConnectionHandler, send_error_response
from textproxy.model.Core.config import ProxyConfig
from textproxy.model.Core.errors import UpstreamConnectError, UpstreamTimeoutError
from textproxy.model.Core.stats import ProxyStats

from helpers import read_all, read_request

CLIENT_ADDR = ("127.0.0.1", 50000)


class FailingDialer:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    def connect(self, address):
        self.calls += 1
        raise self.error


class PairDialer:
    """Hands the handler one end of a socket pair served by a canned upstream."""

    def __init__(self, response: bytes):
        self.response = response
        self.received = []
        self.addresses = []

    def connect(self, address):
        self.addresses.append(address)
        ours, theirs = socket.socketpair()
        threading.Thread(target=self._serve, args=(theirs,), daemon=True).start()
        return ours

    def _serve(self, sock):
        with sock:
            self.received.append(read_request(sock))
            sock.sendall(self.response)


def run_handler(handler: ConnectionHandler, request: bytes):
    """Run one session over a socket pair; return (session, bytes sent back)."""
    client, server_side = socket.socketpair()
    with client:
        client.settimeout(5)
        client.sendall(request)
        session = handler.handle(server_side, CLIENT_ADDR)
        return session, read_all(client)


@pytest.fixture
def handler_config() -> ProxyConfig:
    return ProxyConfig(client_timeout=2, read_timeout=2, connect_timeout=2)


class TestConnectionHandler:
    """Tests for the per-connection exchange."""

    def test_relays_response(self, handler_config):
        request = b"GET http://example.test:8080/hello HTTP/1.1\r\nHost: example.test\r\n\r\n"
        response = b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nhi"
        dialer = PairDialer(response)
        stats = ProxyStats()
        handler = ConnectionHandler(handler_config, stats, dialer=dialer)

        session, received = run_handler(handler, request)

        assert received == response
        assert dialer.addresses == [("example.test", 8080)]
        assert dialer.received == [request]
        assert session.status_code == 200
        assert session.bytes_in == len(request)
        assert session.bytes_out == len(response)

        snapshot = stats.snapshot()
        assert snapshot["total_connections"] == 1
        assert snapshot["active_connections"] == 0
        assert snapshot["traffic_sent"] == len(request)
        assert snapshot["traffic_received"] == len(response)
        assert snapshot["errors"] == 0

    def test_non_ascii_bytes_are_preserved(self, handler_config):
        body = "héllo wörld ✓".encode("utf-8") + bytes([0, 255, 128])
        response = b"HTTP/1.1 200 OK\r\nContent-Length: %d\r\n\r\n" % len(body) + body
        handler = ConnectionHandler(handler_config, dialer=PairDialer(response))

        _, received = run_handler(handler, b"GET http://a.test/ HTTP/1.1\r\n\r\n")

        assert received == response

    def test_malformed_request_gets_400_without_dialing(self, handler_config):
        dialer = FailingDialer(AssertionError("must not dial"))
        stats = ProxyStats()
        handler = ConnectionHandler(handler_config, stats, dialer=dialer)

        session, received = run_handler(handler, b"GARBAGE\r\n\r\n")

        assert received.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert dialer.calls == 0
        assert session.status_code == 400
        assert stats.snapshot()["errors"] == 1

    def test_relative_target_gets_400(self, handler_config):
        dialer = FailingDialer(AssertionError("must not dial"))
        handler = ConnectionHandler(handler_config, dialer=dialer)

        _, received = run_handler(handler, b"GET /index.html HTTP/1.1\r\nHost: a.test\r\n\r\n")

        assert received.startswith(b"HTTP/1.1 400 ")
        assert dialer.calls == 0

    def test_connect_gets_501(self, handler_config):
        handler = ConnectionHandler(handler_config, dialer=FailingDialer(AssertionError()))

        _, received = run_handler(handler, b"CONNECT a.test:443 HTTP/1.1\r\n\r\n")

        assert received.startswith(b"HTTP/1.1 501 Not Implemented\r\n")

    def test_unreachable_upstream_gets_502(self, handler_config):
        handler = ConnectionHandler(handler_config, dialer=FailingDialer(UpstreamConnectError("refused")))

        _, received = run_handler(handler, b"GET http://a.test/ HTTP/1.1\r\n\r\n")

        assert received.startswith(b"HTTP/1.1 502 Bad Gateway\r\n")
        assert b"Connection: close" in received
        assert received.endswith(b"refused\r\n")

    def test_upstream_timeout_gets_504(self, handler_config):
        handler = ConnectionHandler(handler_config, dialer=FailingDialer(UpstreamTimeoutError("slow")))

        _, received = run_handler(handler, b"GET http://a.test/ HTTP/1.1\r\n\r\n")

        assert received.startswith(b"HTTP/1.1 504 Gateway Timeout\r\n")

    def test_silent_mode_closes_without_response(self, handler_config):
        config = handler_config.merged(error_responses=False)
        dialer = FailingDialer(UpstreamConnectError("refused"))
        handler = ConnectionHandler(config, dialer=dialer)

        session, received = run_handler(handler, b"GET http://a.test/ HTTP/1.1\r\n\r\n")

        assert received == b""
        assert dialer.calls == 1
        assert session.status_code is None

    def test_empty_upstream_response_gets_502(self, handler_config):
        handler = ConnectionHandler(handler_config, dialer=PairDialer(b""))

        _, received = run_handler(handler, b"GET http://a.test/ HTTP/1.1\r\n\r\n")

        assert received.startswith(b"HTTP/1.1 502 ")

    def test_client_that_sends_nothing(self, handler_config):
        handler = ConnectionHandler(handler_config, dialer=FailingDialer(AssertionError()))
        client, server_side = socket.socketpair()
        with client:
            client.shutdown(socket.SHUT_WR)
            session = handler.handle(server_side, CLIENT_ADDR)
            assert read_all(client) == b""

        assert session.request_line is None

    def test_client_timeout_gets_408(self):
        config = ProxyConfig(client_timeout=0.2)
        handler = ConnectionHandler(config, dialer=FailingDialer(AssertionError()))

        _, received = run_handler(handler, b"GET http://a.test/ HTTP/1.1\r\n")

        assert received.startswith(b"HTTP/1.1 408 Request Timeout\r\n")

    def test_client_socket_is_closed(self, handler_config):
        handler = ConnectionHandler(handler_config, dialer=FailingDialer(UpstreamConnectError("x")))
        client, server_side = socket.socketpair()
        with client:
            client.sendall(b"GET http://a.test/ HTTP/1.1\r\n\r\n")
            handler.handle(server_side, CLIENT_ADDR)

        assert server_side.fileno() == -1


class TestSendErrorResponse:
    """Tests for send_error_response."""

    def test_format(self):
        a, b = socket.socketpair()
        with a, b:
            send_error_response(a, 503, "Too busy")
            a.shutdown(socket.SHUT_WR)
            data = read_all(b)

        assert data == (
            b"HTTP/1.1 503 Service Unavailable\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 10\r\n"
            b"Connection: close\r\n\r\n"
            b"Too busy\r\n"
        )

    def test_default_message(self):
        a, b = socket.socketpair()
        with a, b:
            send_error_response(a, 400)
            a.shutdown(socket.SHUT_WR)
            data = read_all(b)

        assert data.endswith(b"\r\n\r\nBad Request\r\n")
