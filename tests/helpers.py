"""
Shared test helpers: stub upstream servers and raw socket clients.
"""

import re
import socket
import threading
import time
from typing import Iterable, List, Optional

OK_RESPONSE = b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nhi"


def read_request(conn: socket.socket) -> bytes:
    """Read one request: headers, then Content-Length body bytes."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = conn.recv(4096)
        if not chunk:
            return data
        data += chunk
    head, _, body = data.partition(b"\r\n\r\n")
    match = re.search(rb"(?i)\r\ncontent-length:\s*(\d+)", head)
    length = int(match.group(1)) if match else 0
    while len(body) < length:
        chunk = conn.recv(4096)
        if not chunk:
            break
        body += chunk
    return head + b"\r\n\r\n" + body


def read_all(sock: socket.socket) -> bytes:
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk


def send_through_proxy(port: int, raw: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes to the proxy and return everything it sends back."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(raw)
        return read_all(sock)


class StubUpstream:
    """
    A loopback server that answers every connection with a canned response.

    With keep_open the connection stays open after the response, as a
    persistent HTTP/1.1 server would leave it.

    Attributes:
        port (int): The port the stub listens on
        requests (list): Raw requests received, in arrival order
        connections (int): Number of accepted connections
    """

    def __init__(self, response: bytes = OK_RESPONSE, parts: Optional[Iterable[bytes]] = None,
                 delay: float = 0.0, echo: bool = False, respond: bool = True,
                 keep_open: bool = False):
        self.response = response
        self.parts = list(parts) if parts is not None else None
        self.delay = delay
        self.echo = echo
        self.respond = respond
        self.keep_open = keep_open
        self.requests: List[bytes] = []
        self.connections = 0
        self.lock = threading.Lock()
        self._stop = threading.Event()

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(50)
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with self.lock:
                self.connections += 1
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn: socket.socket):
        with conn:
            conn.settimeout(5)
            try:
                request = read_request(conn)
                with self.lock:
                    self.requests.append(request)
                if not self.respond:
                    self._stop.wait(5)
                    return
                if self.delay:
                    time.sleep(self.delay)
                for part in self._response_parts(request):
                    conn.sendall(part)
                    time.sleep(0.2)
                if self.keep_open:
                    # Behave like a keep-alive server waiting for the next request
                    self._stop.wait(5)
            except OSError:
                pass

    def _response_parts(self, request: bytes) -> List[bytes]:
        if self.echo:
            body = request.partition(b"\r\n\r\n")[2]
            return [b"HTTP/1.1 200 OK\r\nContent-Length: %d\r\n\r\n" % len(body) + body]
        if self.parts is not None:
            return self.parts
        return [self.response]

    def close(self):
        self._stop.set()
        self.sock.close()
        self._thread.join(1)


class RoutingDialer:
    """Dialer that records every target and connects to a mapped local port."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.dialed = []

    def connect(self, address):
        self.dialed.append(address)
        return socket.create_connection(self.routes[address], timeout=5)


