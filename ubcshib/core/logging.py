"""Protocol logging for IdP HTTP traffic.

Records the HTTP exchanges ubcshib makes on its own behalf (IdP metadata
fetches) with configurable detail and redaction of SAML messages, private
keys and cookies.

Log levels:
- ERROR: Only log errors
- INFO: Log one line per exchange
- DEBUG: Log headers, redirects and timing
- TRACE: Log full bodies including sensitive data (requires explicit enable)
"""

from __future__ import annotations

import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import httpx

# Custom log level for TRACE (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("ubcshib.protocol")

# Body excerpts are cut at this many characters
MAX_BODY_LOG_CHARS = 2000


class LogLevel(IntEnum):
    """Protocol logging levels."""

    ERROR = logging.ERROR  # 40
    INFO = logging.INFO  # 20
    DEBUG = logging.DEBUG  # 10
    TRACE = TRACE  # 5


SENSITIVE_PATTERNS = [
    # SAML bindings
    (re.compile(r"(SAMLResponse=)[^&\s]+"), r"\1[REDACTED]"),
    (re.compile(r"(SAMLRequest=)[^&\s]+"), r"\1[REDACTED]"),
    (re.compile(r"(Signature=)[^&\s]+"), r"\1[REDACTED]"),
    (re.compile(r'(name="SAMLResponse"\s+value=")[^"]+'), r"\1[REDACTED]"),
    # Key material
    (
        re.compile(
            r"-----BEGIN ([A-Z ]*PRIVATE KEY)-----.*?-----END \1-----",
            re.DOTALL,
        ),
        r"-----BEGIN \1-----[REDACTED]-----END \1-----",
    ),
    # HTTP headers
    (re.compile(r"(Authorization:\s*\w+\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(Basic\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(Cookie:\s*)[^\r\n]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(Set-Cookie:\s*)[^\r\n]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(session=)[^;\s]+"), r"\1[REDACTED]"),
]

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})


def redact_sensitive(text: str) -> str:
    """Redact sensitive information from text.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Text with sensitive data redacted.
    """
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _redact_headers(headers: dict[str, str]) -> dict[str, str]:
    return {
        name: "[REDACTED]" if name.lower() in SENSITIVE_HEADERS else redact_sensitive(value)
        for name, value in headers.items()
    }


def _excerpt(body: str) -> str:
    if len(body) > MAX_BODY_LOG_CHARS:
        return f"{body[:MAX_BODY_LOG_CHARS]}..."
    return body


@dataclass
class HTTPExchange:
    """A single HTTP request/response exchange."""

    method: str
    url: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    request_headers: dict[str, str] = field(default_factory=dict)
    response_status: int | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    redirects: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        Args:
            include_sensitive: If False, redact sensitive information.
        """
        def process(value: str | None) -> str | None:
            if value is None or include_sensitive:
                return value
            return redact_sensitive(value)

        def process_headers(headers: dict[str, str]) -> dict[str, str]:
            return dict(headers) if include_sensitive else _redact_headers(headers)

        return {
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "url": process(self.url),
            "request_headers": process_headers(self.request_headers),
            "response_status": self.response_status,
            "response_headers": process_headers(self.response_headers),
            "response_body": process(self.response_body),
            "duration_ms": self.duration_ms,
            "error": self.error,
            "redirects": [
                {"url": process(r["url"]), "status": r.get("status")}
                for r in self.redirects
            ],
        }

    def format_log(self, level: LogLevel, include_sensitive: bool = False) -> str:
        """Format the exchange for logging.

        Args:
            level: Log level determines how much detail to include.
            include_sensitive: If True, include raw sensitive data.
        """
        data = self.to_dict(include_sensitive)
        status = self.response_status or "ERROR"
        lines = [f"HTTP {self.method} {data['url']} -> {status}"]

        if self.duration_ms is not None:
            lines.append(f"  Duration: {self.duration_ms:.1f}ms")
        if self.error:
            lines.append(f"  Error: {self.error}")

        if level <= LogLevel.DEBUG:
            lines.append("  Request Headers:")
            for name, value in data["request_headers"].items():
                lines.append(f"    {name}: {value}")
            if data["response_headers"]:
                lines.append("  Response Headers:")
                for name, value in data["response_headers"].items():
                    lines.append(f"    {name}: {value}")
            if data["redirects"]:
                lines.append("  Redirects:")
                for redirect in data["redirects"]:
                    lines.append(f"    -> {redirect.get('status', '???')} {redirect['url']}")

        if level <= LogLevel.TRACE and data["response_body"]:
            lines.append("  Response Body:")
            lines.append(f"    {_excerpt(data['response_body'])}")

        return "\n".join(lines)


class ProtocolLogger:
    """Configurable logger for IdP HTTP exchanges.

    Keeps the most recent exchanges in memory so the CLI and tests can
    inspect them.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        trace_enabled: bool = False,
        history_size: int = 50,
    ) -> None:
        self._level = level
        self._trace_enabled = trace_enabled
        self._history: deque[HTTPExchange] = deque(maxlen=history_size)

    @property
    def level(self) -> LogLevel:
        """Get current log level."""
        return self._level

    @level.setter
    def level(self, value: LogLevel) -> None:
        self._level = value

    @property
    def trace_enabled(self) -> bool:
        """Whether TRACE level is enabled."""
        return self._trace_enabled

    @property
    def effective_level(self) -> LogLevel:
        """Get effective log level (TRACE only if explicitly enabled)."""
        if self._level == LogLevel.TRACE and not self._trace_enabled:
            return LogLevel.DEBUG
        return self._level

    @property
    def exchanges(self) -> list[HTTPExchange]:
        """Recently logged exchanges, oldest first."""
        return list(self._history)

    def log_exchange(self, exchange: HTTPExchange) -> None:
        """Record and log an HTTP exchange."""
        self._history.append(exchange)

        effective = self.effective_level
        include_sensitive = self._trace_enabled and effective <= LogLevel.TRACE

        if exchange.error:
            logger.error(
                f"HTTP error: {exchange.method} {redact_sensitive(exchange.url)}: {exchange.error}"
            )
        elif effective <= LogLevel.DEBUG:
            logger.debug(exchange.format_log(effective, include_sensitive))
        elif effective <= LogLevel.INFO:
            logger.info(exchange.format_log(effective, include_sensitive))


class LoggingClient(httpx.Client):
    """HTTPX client that reports every exchange to a ProtocolLogger."""

    def __init__(
        self,
        protocol_logger: ProtocolLogger | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the logging client.

        Args:
            protocol_logger: ProtocolLogger to use. Uses the global one if not provided.
            **kwargs: Additional arguments passed to httpx.Client.
        """
        self._protocol_logger = protocol_logger or get_protocol_logger()
        kwargs.setdefault("follow_redirects", True)
        super().__init__(**kwargs)

    @property
    def protocol_logger(self) -> ProtocolLogger:
        """Get the protocol logger."""
        return self._protocol_logger

    def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        """Send a request and log the exchange, including any redirects."""
        start_time = time.perf_counter()
        exchange = HTTPExchange(
            method=request.method,
            url=str(request.url),
            request_headers=dict(request.headers),
        )

        try:
            response = super().send(request, **kwargs)
        except httpx.HTTPError as e:
            exchange.duration_ms = (time.perf_counter() - start_time) * 1000
            exchange.error = str(e) or type(e).__name__
            self._protocol_logger.log_exchange(exchange)
            raise

        exchange.duration_ms = (time.perf_counter() - start_time) * 1000
        exchange.response_status = response.status_code
        exchange.response_headers = dict(response.headers)
        exchange.redirects = [
            {"url": r.headers.get("location", ""), "status": r.status_code}
            for r in response.history
        ]
        if not kwargs.get("stream"):
            exchange.response_body = response.text

        self._protocol_logger.log_exchange(exchange)
        return response


_global_logger: ProtocolLogger | None = None


def get_protocol_logger() -> ProtocolLogger:
    """Get the global protocol logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = ProtocolLogger()
    return _global_logger


def set_protocol_logger(logger_instance: ProtocolLogger) -> None:
    """Set the global protocol logger instance."""
    global _global_logger
    _global_logger = logger_instance


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    trace_enabled: bool = False,
    log_file: str | None = None,
) -> ProtocolLogger:
    """Configure ubcshib logging.

    Attaches handlers to the ``ubcshib`` logger hierarchy, which covers both
    the module loggers and the protocol logger.

    Args:
        level: Log level (ERROR, INFO, DEBUG, TRACE) or string name.
        trace_enabled: Whether to enable TRACE level (includes sensitive data).
        log_file: Optional file path to write logs to.

    Returns:
        Configured ProtocolLogger.
    """
    if isinstance(level, str):
        level = LogLevel.__members__.get(level.upper(), LogLevel.INFO)

    root = logging.getLogger("ubcshib")
    root.setLevel(level)
    root.handlers.clear()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    protocol_logger = ProtocolLogger(level=level, trace_enabled=trace_enabled)
    set_protocol_logger(protocol_logger)

    if trace_enabled:
        logger.warning("TRACE logging enabled - SAML messages and keys will be logged!")

    return protocol_logger
