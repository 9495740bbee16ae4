"""Exceptions raised by the parser and the wire engine."""


class HTPError(Exception):
    """Base class for all htp errors."""


class ParseError(HTPError, ValueError):
    """The request text is structurally malformed."""


class SendError(HTPError):
    """The request could not be transmitted or its response not read."""


class ConnectionFailed(SendError):
    """DNS resolution, TCP connect, or TLS handshake failed."""


class SendTimeout(SendError, TimeoutError):
    """The connection deadline expired during a read or write."""


class ResponseParseError(SendError):
    """The peer sent a response with invalid framing."""
