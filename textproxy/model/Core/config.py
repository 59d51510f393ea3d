# =============================================================================
# Proxy Configuration
# =============================================================================

import json
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import ConfigError

FRAMING_BLANK_LINE = "blank-line"
FRAMING_CONTENT_LENGTH = "content-length"
FRAMING_MODES = (FRAMING_BLANK_LINE, FRAMING_CONTENT_LENGTH)

UPSTREAM_PROXY_SCHEMES = ("socks4", "socks5", "socks5h", "http")

INT_FIELDS = ("port", "backlog", "chunk_size", "max_connections", "max_message_size")
FLOAT_FIELDS = ("accept_interval", "connect_timeout", "read_timeout", "client_timeout")
STR_FIELDS = ("host", "framing", "upstream_proxy")
OPTIONAL_FIELDS = ("connect_timeout", "read_timeout", "client_timeout", "upstream_proxy")


@dataclass
class ProxyConfig:
    """
    Settings for the proxy server and its sessions.

    Attributes:
        host: Address the listener binds to ("0.0.0.0" for all interfaces)
        port: Port the listener binds to (0 lets the OS pick one)
        backlog: Listen backlog of the server socket
        accept_interval: Seconds between cancellation checks of the accept loop
        chunk_size: Bytes requested per socket read
        framing: "content-length" or "blank-line"
        error_responses: Answer failed sessions with an HTTP error response
        max_connections: Concurrent session limit (0 means unlimited)
        connect_timeout: Upstream connect timeout in seconds (None disables)
        read_timeout: Upstream read/write timeout in seconds (None disables)
        client_timeout: Client read/write timeout in seconds (None disables)
        max_message_size: Largest request or response the proxy will buffer
        upstream_proxy: Optional socks4/socks5/socks5h/http proxy URL to dial through
    """
    host: str = "0.0.0.0"
    port: int = 8888
    backlog: int = 100
    accept_interval: float = 1.0
    chunk_size: int = 1024
    framing: str = FRAMING_CONTENT_LENGTH
    error_responses: bool = True
    max_connections: int = 1000
    connect_timeout: Optional[float] = 30.0
    read_timeout: Optional[float] = 30.0
    client_timeout: Optional[float] = 10.0
    max_message_size: int = 64 * 1024 * 1024
    upstream_proxy: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProxyConfig":
        """Build a config from a plain dict, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        config = cls(**data)
        config.validate()
        return config

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ProxyConfig":
        """Load a config from a JSON file."""
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(data)

    def merged(self, **overrides: Any) -> "ProxyConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        config = replace(self, **changes)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def _check_types(self) -> None:
        for name in INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in FLOAT_FIELDS:
            value = getattr(self, name)
            if value is None and name in OPTIONAL_FIELDS:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
        for name in STR_FIELDS:
            value = getattr(self, name)
            if value is None and name in OPTIONAL_FIELDS:
                continue
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
        if not isinstance(self.error_responses, bool):
            raise ConfigError(f"error_responses must be true or false, got {self.error_responses!r}")

    def validate(self) -> None:
        self._check_types()
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port must be between 0 and 65535, got {self.port!r}")
        if self.backlog < 1:
            raise ConfigError("backlog must be at least 1")
        if self.accept_interval <= 0:
            raise ConfigError("accept_interval must be positive")
        if self.chunk_size < 1:
            raise ConfigError("chunk_size must be at least 1")
        if self.framing not in FRAMING_MODES:
            raise ConfigError(
                f"framing must be one of {', '.join(FRAMING_MODES)}, got {self.framing!r}"
            )
        if self.max_connections < 0:
            raise ConfigError("max_connections cannot be negative")
        for name in ("connect_timeout", "read_timeout", "client_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive or null")
        if self.max_message_size < 1:
            raise ConfigError("max_message_size must be at least 1")
        if self.upstream_proxy is not None:
            scheme = self.upstream_proxy.split("://", 1)[0].lower()
            if "://" not in self.upstream_proxy or scheme not in UPSTREAM_PROXY_SCHEMES:
                raise ConfigError(
                    f"upstream_proxy must start with one of "
                    f"{', '.join(s + '://' for s in UPSTREAM_PROXY_SCHEMES)}"
                )
