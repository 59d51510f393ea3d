# =============================================================================
# Core Types
# =============================================================================

import socket
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class RequestLine:
    method: str
    target: str
    version: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.method, self.target]
        if self.version:
            parts.append(self.version)
        return " ".join(parts)


@dataclass(frozen=True)
class Target:
    scheme: str
    host: str
    port: int

    @property
    def address(self) -> Tuple[str, int]:
        return self.host, self.port


@dataclass
class ProxySession:
    connection_id: str
    client_socket: socket.socket
    client_addr: Tuple[str, int]
    start_time: datetime
    request_line: Optional[RequestLine] = None
    target: Optional[Target] = None
    upstream_socket: Optional[socket.socket] = None
    status_code: Optional[int] = None
    bytes_in: int = 0
    bytes_out: int = 0
    response_sent: bool = False

    @property
    def elapsed_ms(self) -> float:
        return (datetime.now() - self.start_time).total_seconds() * 1000
