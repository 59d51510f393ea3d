from .config import ProxyConfig, FRAMING_BLANK_LINE, FRAMING_CONTENT_LENGTH
from .errors import (
    ProxyError,
    ConfigError,
    AcceptLoopCancelled,
    SessionError,
    MalformedRequestError,
    LengthRequiredError,
    UnsupportedMethodError,
    UriParseError,
    MessageTooLargeError,
    ClientTimeoutError,
    UpstreamError,
    UpstreamConnectError,
    UpstreamTimeoutError,
    UpstreamProtocolError,
)
from .header import RequestLine, Target, ProxySession
from .framing import MessageReader, read_until_blank_line
from .parsing import parse_request_line, parse_target
from .ConnectionLimiter import ConnectionLimiter
from .Upstream import UpstreamDialer
from .stats import ProxyStats, format_bytes
