"""
textproxy Proxy Server
License: MIT License
Description: Listener and lifecycle controller. Owns the listening socket,
             runs the accept loop on its own thread and hands every accepted
             connection to a ConnectionHandler running on a new thread.
"""

import logging
import socket
import threading
from typing import Optional, Tuple

from .ConnectionHandler import ConnectionHandler, send_error_response
from .Core.config import ProxyConfig
from .Core.ConnectionLimiter import ConnectionLimiter
from .Core.errors import AcceptLoopCancelled
from .Core.stats import ProxyStats

logger = logging.getLogger(__name__)


class ProxyServer:
    """
    A forward HTTP proxy that relays one request/response per connection.

    Attributes:
        config (ProxyConfig): Server and session settings
        stats (ProxyStats): Counters shared by all sessions
        handler (ConnectionHandler): Runs each session
        limiter (ConnectionLimiter): Caps concurrent sessions
    """

    def __init__(self, config: Optional[ProxyConfig] = None):
        """
        Initialize the proxy server without binding anything.

        Args:
            config (ProxyConfig): Settings; defaults to ProxyConfig()
        """
        self.config = config or ProxyConfig()
        self.config.validate()
        self.stats = ProxyStats()
        self.handler = ConnectionHandler(self.config, self.stats)
        self.limiter = ConnectionLimiter(self.config.max_connections)

        self._port = self.config.port
        self._lock = threading.Lock()
        self._server_socket: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._cancel: Optional[threading.Event] = None

    @property
    def running(self) -> bool:
        return self._accept_thread is not None

    @property
    def port(self) -> int:
        """The port being served, or the port the next start() will use."""
        return self._port

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port) while running, None otherwise."""
        sock = self._server_socket
        if sock is None:
            return None
        try:
            return sock.getsockname()[:2]
        except OSError:
            return None

    def start(self, port: Optional[int] = None) -> bool:
        """
        Bind the listener and start the accept loop.

        Does nothing if the server is already running.

        Args:
            port (int): Port to listen on; defaults to config.port

        Returns:
            bool: True if the server was started by this call

        Raises:
            OSError: if the listening socket cannot be bound
        """
        with self._lock:
            if self._accept_thread is not None:
                return False

            port = self.config.port if port is None else port
            server_socket = self._create_server_socket(self.config.host, port)
            self._server_socket = server_socket
            self._port = server_socket.getsockname()[1]
            self._cancel = threading.Event()
            self._accept_thread = threading.Thread(
                target=self._accept_loop,
                args=(server_socket, self._cancel),
                name=f"textproxy-accept-{self._port}",
                daemon=True,
            )
            self._accept_thread.start()

        logger.info("Proxy server is listening on %s:%d", self.config.host, self._port)
        return True

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting new connections.

        Sessions already in flight run to completion. Waits for the accept
        loop to exit, so the port is free again when this returns.

        Args:
            timeout (float): Longest wait for the accept loop; defaults to a
                few accept intervals

        Returns:
            bool: True if the server was stopped by this call
        """
        with self._lock:
            if self._accept_thread is None:
                return False

            self._cancel.set()
            thread = self._accept_thread
            self._accept_thread = None
            self._cancel = None
            self._server_socket = None

            if timeout is None:
                timeout = self.config.accept_interval * 3 + 1
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Accept loop did not exit within %.1f seconds", timeout)
        return True

    def _create_server_socket(self, host: str, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(self.config.backlog)
            sock.settimeout(self.config.accept_interval)
        except OSError:
            sock.close()
            raise
        return sock

    def _accept_loop(self, server_socket: socket.socket, cancel: threading.Event) -> None:
        try:
            while True:
                if cancel.is_set():
                    raise AcceptLoopCancelled()

                try:
                    client_socket, client_addr = server_socket.accept()
                except socket.timeout:
                    continue
                except OSError:
                    logger.exception("Error accepting connections")
                    cancel.wait(self.config.accept_interval)
                    continue

                self._dispatch(client_socket, client_addr)
        except AcceptLoopCancelled:
            logger.info("Cancellation received, accept loop on port %d exiting", server_socket.getsockname()[1])
        finally:
            server_socket.close()

    def _dispatch(self, client_socket: socket.socket, client_addr: Tuple[str, int]) -> None:
        # Accepted sockets inherit the listener's timeout on some platforms
        client_socket.settimeout(None)

        if not self.limiter.try_acquire():
            logger.warning("Connection limit reached, rejecting %s:%d", client_addr[0], client_addr[1])
            try:
                send_error_response(client_socket, 503, "Too many concurrent connections")
            except OSError as e:
                logger.debug("Could not send 503 to %s:%d: %s", client_addr[0], client_addr[1], e)
            finally:
                client_socket.close()
            return

        logger.debug("Accepted connection from %s:%d", client_addr[0], client_addr[1])
        session_thread = threading.Thread(
            target=self._run_session,
            args=(client_socket, client_addr),
            daemon=True,
        )
        try:
            session_thread.start()
        except RuntimeError:
            logger.exception("Cannot start session thread for %s:%d", client_addr[0], client_addr[1])
            client_socket.close()
            self.limiter.release()

    def _run_session(self, client_socket: socket.socket, client_addr: Tuple[str, int]) -> None:
        try:
            self.handler.handle(client_socket, client_addr)
        except Exception:
            logger.exception("Unexpected error in session from %s:%d", client_addr[0], client_addr[1])
        finally:
            self.limiter.release()
