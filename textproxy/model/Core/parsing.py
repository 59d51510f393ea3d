"""
Request-line, target URL and header parsing.

Messages stay as bytes; these helpers decode with latin-1, which maps every
octet to one character and back without loss.
"""

from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from .errors import MalformedRequestError, UnsupportedMethodError, UriParseError, UpstreamProtocolError
from .header import RequestLine, Target

CRLF = b"\r\n"
HEADER_TERMINATOR = b"\r\n\r\n"

DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
}

Headers = List[Tuple[str, str]]


def to_text(data: bytes) -> str:
    return data.decode("latin-1")


def parse_request_line(raw: bytes) -> RequestLine:
    """
    Parse the first line of a raw request.

    Args:
        raw: The request bytes as read from the client

    Returns:
        RequestLine: method, target and (possibly missing) version

    Raises:
        MalformedRequestError: if the line has fewer than two tokens
        UnsupportedMethodError: for CONNECT, since tunneling is not supported
    """
    first_line = to_text(raw.split(CRLF, 1)[0])
    parts = first_line.split(" ")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise MalformedRequestError(f"Malformed request line: {first_line!r}")

    method, target = parts[0], parts[1]
    version = parts[2] if len(parts) > 2 and parts[2] else None

    if method.upper() == "CONNECT":
        raise UnsupportedMethodError("CONNECT tunneling is not supported")

    return RequestLine(method=method, target=target, version=version)


def parse_target(target: str) -> Target:
    """
    Extract scheme, host and port from an absolute request target.

    The port defaults to the scheme's well-known port. The scheme is only used
    for that lookup; upstream connections are always plain TCP.
    """
    try:
        parsed = urlsplit(target)
        port = parsed.port
    except ValueError as e:
        raise UriParseError(f"Invalid target URL {target!r}: {e}") from e

    scheme = parsed.scheme.lower()
    host = parsed.hostname
    if not scheme or not host:
        raise UriParseError(f"Target is not an absolute URI: {target!r}")

    if port is None:
        port = DEFAULT_PORTS.get(scheme)
        if port is None:
            raise UriParseError(f"No default port for scheme {scheme!r} in {target!r}")

    return Target(scheme=scheme, host=host, port=port)


def parse_headers(head: bytes) -> Headers:
    """Parse the header lines that follow the start line of a header block."""
    headers = []
    for line in head.split(CRLF)[1:]:
        if not line:
            continue
        name, sep, value = to_text(line).partition(":")
        if not sep:
            continue
        headers.append((name.strip().lower(), value.strip()))
    return headers


def header_values(headers: Headers, name: str) -> List[str]:
    name = name.lower()
    return [value for key, value in headers if key == name]


def parse_status_code(head: bytes) -> int:
    """Return the status code from a response's status line."""
    status_line = to_text(head.split(CRLF, 1)[0])
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or not parts[0].upper().startswith("HTTP/"):
        raise UpstreamProtocolError(f"Malformed status line: {status_line!r}")
    try:
        return int(parts[1])
    except ValueError:
        raise UpstreamProtocolError(f"Malformed status line: {status_line!r}") from None


def peek_status_code(raw: bytes) -> Optional[int]:
    """Best-effort status code of a relayed response, for diagnostics."""
    try:
        return parse_status_code(raw)
    except UpstreamProtocolError:
        return None
