"""htp — send hand-written HTTP requests over raw TCP/TLS sockets."""

__version__ = "1.0.0"

from htp_client.engine import Response, send  # noqa: E402
from htp_client.parser import Request, parse  # noqa: E402
from htp_client.validator import ValidationResult, validate  # noqa: E402

__all__ = [
    "__version__",
    "Request",
    "Response",
    "ValidationResult",
    "parse",
    "send",
    "validate",
]
