"""
Message framing: deciding where one HTTP request or response ends.

Two readers are available:

* ``read_until_blank_line`` stops as soon as the header terminator has been
  seen (or the peer closes). Any body bytes that have not arrived by then are
  never read, so bodies longer than what rides along with the headers are
  truncated.
* ``MessageReader`` in content-length mode reads the header block the same
  way and then reads exactly ``Content-Length`` body bytes. A chunked
  response is followed through its chunk-size lines up to the last-chunk and
  trailers, but relayed undecoded. A response with no length at all is read
  until the upstream closes or stays quiet for the read timeout.
"""

import socket
from typing import Optional

from .config import FRAMING_BLANK_LINE, ProxyConfig
from .errors import (
    LengthRequiredError,
    MalformedRequestError,
    MessageTooLargeError,
    UpstreamProtocolError,
)
from .parsing import CRLF, HEADER_TERMINATOR, header_values, parse_headers, parse_status_code

CHUNK_SIZE = 1024

NO_BODY_STATUSES = (204, 304)

CHUNKED = object()

HEX_DIGITS = b"0123456789abcdefABCDEF"


def read_until_blank_line(sock: socket.socket, chunk_size: int = CHUNK_SIZE, limit: Optional[int] = None) -> bytes:
    """
    Read from sock until the buffer contains a blank line or the stream ends.

    Args:
        sock: Connected socket to read from
        chunk_size: Bytes requested per recv call
        limit: Optional maximum buffer size

    Returns:
        bytes: Everything read so far, which may include part of a body
    """
    buffer = bytearray()
    while True:
        chunk = sock.recv(chunk_size)
        if not chunk:
            break
        start = max(0, len(buffer) - len(HEADER_TERMINATOR) + 1)
        buffer += chunk
        if buffer.find(HEADER_TERMINATOR, start) != -1:
            break
        if limit is not None and len(buffer) > limit:
            raise MessageTooLargeError(f"Header block exceeds {limit} bytes")
    return bytes(buffer)



class MessageReader:
    """Reads whole requests and responses according to the configured framing."""

    def __init__(self, config: ProxyConfig):
        self.framing = config.framing
        self.chunk_size = config.chunk_size
        self.max_size = config.max_message_size

    def read_request(self, sock: socket.socket) -> bytes:
        return self._read(sock, is_response=False)

    def read_response(self, sock: socket.socket, request_method: Optional[str] = None) -> bytes:
        return self._read(sock, is_response=True, request_method=request_method)

    def _read(self, sock, is_response, request_method=None) -> bytes:
        try:
            data = read_until_blank_line(sock, self.chunk_size, self.max_size)
        except MessageTooLargeError:
            raise self._too_large(is_response) from None
        if self.framing == FRAMING_BLANK_LINE:
            return data

        head, sep, rest = data.partition(HEADER_TERMINATOR)
        if not sep:
            # Peer closed before the headers were complete
            return data

        body = bytearray(rest)
        length = self._body_length(head, is_response, request_method)
        # Body budget left once the header block is counted
        limit = self.max_size - len(head) - len(sep)
        if length is CHUNKED:
            self._read_chunked(sock, body, limit, is_response)
        elif length is None:
            self._read_until_idle(sock, body, limit, is_response)
        else:
            self._read_exactly(sock, body, length)
            del body[length:]
        return head + sep + bytes(body)

    def _body_length(self, head, is_response, request_method):
        """
        Work out how many body bytes follow the header block.

        Returns CHUNKED for a chunked response and None when the body runs
        until the upstream closes or goes quiet.
        """
        headers = parse_headers(head)

        if is_response:
            status = parse_status_code(head)
            if (request_method or "").upper() == "HEAD":
                return 0
            if 100 <= status < 200 or status in NO_BODY_STATUSES:
                return 0
            encodings = header_values(headers, "transfer-encoding")
            if encodings:
                last = encodings[-1].split(",")[-1].strip().lower()
                return CHUNKED if last == "chunked" else None
        elif header_values(headers, "transfer-encoding"):
            raise LengthRequiredError("Chunked request bodies are not supported")

        lengths = header_values(headers, "content-length")
        if not lengths:
            return None if is_response else 0

        error = UpstreamProtocolError if is_response else MalformedRequestError
        values = {v.strip() for value in lengths for v in value.split(",")}
        if len(values) != 1:
            raise error(f"Conflicting Content-Length values: {', '.join(sorted(values))}")
        value = values.pop()
        if not (value.isascii() and value.isdigit()):
            raise error(f"Invalid Content-Length: {value!r}")

        length = int(value)
        if len(head) + len(HEADER_TERMINATOR) + length > self.max_size:
            raise self._too_large(is_response)
        return length

    def _fill(self, sock, body, limit, is_response, want=None) -> bool:
        """Append one recv to body; False once the peer has closed."""
        chunk = sock.recv(min(self.chunk_size, want) if want else self.chunk_size)
        if not chunk:
            return False
        body += chunk
        if len(body) > limit:
            raise self._too_large(is_response)
        return True

    def _read_exactly(self, sock, body, length):
        while len(body) < length:
            chunk = sock.recv(min(self.chunk_size, length - len(body)))
            if not chunk:
                break
            body += chunk

    def _read_until_idle(self, sock, body, limit, is_response):
        # A persistent upstream never closes; once it stops sending for a
        # read timeout the buffered body is all there is.
        try:
            while self._fill(sock, body, limit, is_response):
                pass
        except socket.timeout:
            pass

    def _read_chunked(self, sock, body, limit, is_response):
        """
        Read a chunked body up to its last-chunk and trailers, undecoded.

        The chunk-size lines are only used to find where the body ends; the
        bytes are kept exactly as the upstream sent them.
        """
        pos = 0
        while True:
            line_end = body.find(CRLF, pos)
            while line_end == -1:
                if not self._fill(sock, body, limit, is_response):
                    return
                line_end = body.find(CRLF, pos)

            size_text = bytes(body[pos:line_end]).split(b";", 1)[0].strip()
            if not size_text or size_text.strip(HEX_DIGITS):
                raise UpstreamProtocolError(f"Invalid chunk size line: {bytes(body[pos:line_end])!r}")
            size = int(size_text, 16)
            pos = line_end + len(CRLF)

            if size == 0:
                self._read_trailers(sock, body, pos, limit, is_response)
                return

            chunk_end = pos + size + len(CRLF)
            while len(body) < chunk_end:
                if not self._fill(sock, body, limit, is_response, chunk_end - len(body)):
                    return
            pos = chunk_end

    def _read_trailers(self, sock, body, pos, limit, is_response):
        while True:
            if body[pos:pos + len(CRLF)] == CRLF:
                end = pos + len(CRLF)
                break
            end = body.find(HEADER_TERMINATOR, pos)
            if end != -1:
                end += len(HEADER_TERMINATOR)
                break
            if not self._fill(sock, body, limit, is_response):
                return
        del body[end:]

    def _too_large(self, is_response):
        if is_response:
            return MessageTooLargeError(
                f"Upstream response exceeds {self.max_size} bytes", status_code=502
            )
        return MessageTooLargeError(f"Request exceeds {self.max_size} bytes")
