"""
Error taxonomy for the proxy.

Every error carries the HTTP status the proxy answers with when it can still
send the client an error response.
"""


class ProxyError(Exception):
    """Base class for all proxy errors."""

    status_code = 500
    reason = "Internal Server Error"

    def __init__(self, message: str = "", status_code: int = None):
        super().__init__(message or self.reason)
        self.message = message or self.reason
        if status_code is not None:
            self.status_code = status_code


class ConfigError(ProxyError, ValueError):
    """Invalid proxy configuration."""


class AcceptLoopCancelled(ProxyError):
    """Raised inside the accept loop once stop() has been requested."""


# =============================================================================
# Session errors
# =============================================================================

class SessionError(ProxyError):
    """A failure that ends a single proxy session."""


class MalformedRequestError(SessionError):
    status_code = 400
    reason = "Bad Request"


class LengthRequiredError(MalformedRequestError):
    status_code = 411
    reason = "Length Required"


class UnsupportedMethodError(SessionError):
    status_code = 501
    reason = "Not Implemented"


class UriParseError(SessionError):
    status_code = 400
    reason = "Bad Request"


class MessageTooLargeError(SessionError):
    status_code = 413
    reason = "Payload Too Large"


class ClientTimeoutError(SessionError):
    status_code = 408
    reason = "Request Timeout"


class UpstreamError(SessionError):
    status_code = 502
    reason = "Bad Gateway"


class UpstreamConnectError(UpstreamError):
    pass


class UpstreamTimeoutError(UpstreamError):
    status_code = 504
    reason = "Gateway Timeout"


class UpstreamProtocolError(UpstreamError):
    pass


REASONS = {
    400: "Bad Request",
    408: "Request Timeout",
    411: "Length Required",
    413: "Payload Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}
