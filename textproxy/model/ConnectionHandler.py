"""
textproxy Connection Handler
License: MIT License
Description: Runs one complete proxy exchange for an accepted client
             connection: read the request, dial the target named in its
             request line, forward the request, read the response and
             relay it back.
"""

import logging
import socket
import uuid
from contextlib import closing
from datetime import datetime
from typing import Optional, Tuple

from .Core.config import ProxyConfig
from .Core.errors import (
    REASONS,
    ClientTimeoutError,
    SessionError,
    UpstreamError,
    UpstreamProtocolError,
    UpstreamTimeoutError,
)
from .Core.framing import MessageReader
from .Core.header import ProxySession
from .Core.parsing import parse_request_line, parse_target, peek_status_code, to_text
from .Core.stats import ProxyStats
from .Core.Upstream import UpstreamDialer

logger = logging.getLogger(__name__)


def send_error_response(sock: socket.socket, status: int, message: str = "") -> None:
    """
    Send a small plain-text error response.

    Args:
        sock (socket): The socket connected to the client
        status (int): HTTP status code
        message (str): Body text; defaults to the reason phrase
    """
    reason = REASONS.get(status, "Error")
    body = (message or reason).encode("latin-1", errors="replace") + b"\r\n"
    response = (
        f"HTTP/1.1 {status} {reason}\r\n"
        f"Content-Type: text/plain\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"Connection: close\r\n\r\n"
    ).encode("latin-1") + body
    sock.sendall(response)


class ConnectionHandler:
    """
    Handles the sessions accepted by a proxy server.

    One handler is shared by all sessions of a server; it keeps no per-session
    state, everything a session owns lives in its ProxySession.

    Attributes:
        config (ProxyConfig): Timeouts, framing and error-response settings
        stats (ProxyStats): Counters updated once per session
        reader (MessageReader): Request/response framing
        dialer (UpstreamDialer): Opens the upstream connections
    """

    def __init__(self, config: ProxyConfig, stats: Optional[ProxyStats] = None,
                 dialer: Optional[UpstreamDialer] = None):
        self.config = config
        self.stats = stats if stats is not None else ProxyStats()
        self.reader = MessageReader(config)
        self.dialer = dialer or UpstreamDialer(config.connect_timeout, config.upstream_proxy)

    def handle(self, client_socket: socket.socket, client_addr: Tuple[str, int]) -> ProxySession:
        """
        Run the exchange for one client connection and close it.

        Session errors are answered (when enabled) and logged here; they never
        propagate to the caller.

        Args:
            client_socket (socket): The accepted client connection
            client_addr (tuple): The client's (host, port)

        Returns:
            ProxySession: The finished session, for diagnostics and tests
        """
        session = ProxySession(
            connection_id=uuid.uuid4().hex[:8],
            client_socket=client_socket,
            client_addr=client_addr,
            start_time=datetime.now(),
        )
        self.stats.session_started()
        failed = False

        with closing(client_socket):
            try:
                client_socket.settimeout(self.config.client_timeout)
                self._exchange(session)
            except SessionError as e:
                failed = True
                self._fail(session, e)
            except OSError as e:
                failed = True
                logger.warning("[%s] Client connection error: %s", session.connection_id, e)
            finally:
                self.stats.session_finished(session.bytes_in, session.bytes_out, session.elapsed_ms, failed)

        self._log_summary(session)
        return session

    def _exchange(self, session: ProxySession) -> None:
        sid = session.connection_id
        client_socket = session.client_socket

        try:
            request = self.reader.read_request(client_socket)
        except socket.timeout as e:
            raise ClientTimeoutError("Timed out reading the request") from e
        if not request:
            logger.debug("[%s] Client closed without sending a request", sid)
            return

        session.bytes_in = len(request)
        logger.debug("[%s] Request:\n%s", sid, to_text(request))

        session.request_line = parse_request_line(request)
        session.target = parse_target(session.request_line.target)

        with closing(self.dialer.connect(session.target.address)) as upstream:
            session.upstream_socket = upstream
            upstream.settimeout(self.config.read_timeout)
            logger.debug("[%s] Forwarding request to %s:%d", sid, session.target.host, session.target.port)

            try:
                upstream.sendall(request)
                response = self.reader.read_response(upstream, session.request_line.method)
            except socket.timeout as e:
                raise UpstreamTimeoutError(
                    f"Timed out waiting for {session.target.host}:{session.target.port}"
                ) from e
            except OSError as e:
                raise UpstreamError(f"Upstream connection failed: {e}") from e

            if not response:
                raise UpstreamProtocolError("Upstream closed the connection without a response")
            logger.debug("[%s] Response:\n%s", sid, to_text(response))

            session.status_code = peek_status_code(response)
            session.response_sent = True
            try:
                client_socket.sendall(response)
            except socket.timeout as e:
                raise ClientTimeoutError("Timed out relaying the response") from e
            session.bytes_out = len(response)

    def _fail(self, session: ProxySession, error: SessionError) -> None:
        sid = session.connection_id
        logger.warning("[%s] %s: %s", sid, type(error).__name__, error.message)

        if not self.config.error_responses or session.response_sent:
            return
        try:
            send_error_response(session.client_socket, error.status_code, error.message)
            session.status_code = error.status_code
        except OSError as e:
            logger.debug("[%s] Could not send error response: %s", sid, e)

    def _log_summary(self, session: ProxySession) -> None:
        if session.request_line is None and session.status_code is None:
            return
        logger.info(
            "%s:%s -> %s %s %s %d bytes %.1f ms",
            session.client_addr[0],
            session.client_addr[1],
            session.request_line.method if session.request_line else "-",
            session.request_line.target if session.request_line else "-",
            session.status_code if session.status_code is not None else "-",
            session.bytes_out,
            session.elapsed_ms,
        )
