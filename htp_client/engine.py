"""Wire engine: sends a validated Request over TCP or TLS.

The request is written byte for byte as produced by
:meth:`Request.to_wire`. The response is read from a buffered socket
file and framed by, in order:

  - no body at all for HEAD requests and 1xx/204/304 statuses
  - ``Content-Length``
  - ``Transfer-Encoding: chunked``
  - end of stream (connection closed by the peer)
"""

from __future__ import annotations

import logging
import re
import socket
import ssl
import time
from typing import BinaryIO

from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from htp_client.exceptions import (
    ConnectionFailed,
    ResponseParseError,
    SendError,
    SendTimeout,
)
from htp_client.parser import Request

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

DEFAULT_PORTS = {"http": 80, "https": 443}

# Upper bound on a status, header, or chunk-size line
MAX_LINE_LENGTH = 64 * 1024

HEX_DIGITS_RE = re.compile(rb"^[0-9A-Fa-f]+$")


class Response:
    """A fully read HTTP response."""

    __slots__ = (
        "version",
        "status_code",
        "status_text",
        "headers",
        "content",
    )

    def __init__(
        self,
        version: str,
        status_code: int,
        status_text: str = "",
        headers: CaseInsensitiveDict | None = None,
        content: bytes = b"",
    ) -> None:
        self.version = version
        self.status_code = status_code
        self.status_text = status_text
        self.headers = headers if headers is not None else CaseInsensitiveDict()
        self.content = content

    def __repr__(self) -> str:
        return (
            f"Response(version={self.version!r}, "
            f"status_code={self.status_code}, "
            f"status_text={self.status_text!r}, "
            f"headers=<{len(self.headers)} headers>, "
            f"body=<{len(self.content)} bytes>)"
        )

    @property
    def body(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class _Deadline:
    """One absolute deadline shared by every I/O call on a socket."""

    def __init__(self, sock: socket.socket, seconds: float) -> None:
        self.sock = sock
        self.seconds = seconds
        self.expires = time.monotonic() + seconds

    def arm(self) -> None:
        remaining = self.expires - time.monotonic()
        if remaining <= 0:
            raise SendTimeout(f"Deadline of {self.seconds:g}s exceeded")
        self.sock.settimeout(remaining)


def resolve_endpoint(target: str, port_override: int = 0) -> tuple[str, str, int]:
    """Return ``(scheme, host, port)`` for an absolute target URL.

    Raises:
        SendError: If the target is not an absolute URL with a host.
    """
    try:
        url = parse_url(target)
    except LocationParseError as exc:
        raise SendError(f"Invalid URL: {target!r}") from exc

    if not url.host:
        raise SendError(f"URL has no host: {target!r}")

    scheme = url.scheme or "http"
    if port_override:
        port = port_override
    elif url.port:
        port = url.port
    else:
        port = DEFAULT_PORTS["https"] if scheme == "https" else DEFAULT_PORTS["http"]

    # IPv6 literals come back bracketed
    host = url.host.strip("[]")
    return scheme, host, port


def open_connection(
    scheme: str,
    host: str,
    port: int,
    timeout: float = DEFAULT_TIMEOUT,
    ssl_context: ssl.SSLContext | None = None,
) -> socket.socket:
    """Open a TCP connection, wrapped in TLS when *scheme* is https.

    Raises:
        ConnectionFailed: If the connection or TLS handshake fails.
        SendTimeout: If connecting takes longer than *timeout*.
    """
    logger.debug("Connecting to %s:%d (%s)", host, port, scheme.upper())
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.timeout as exc:
        raise SendTimeout(f"Connection to {host}:{port} timed out") from exc
    except OSError as exc:
        raise ConnectionFailed(f"Connection to {host}:{port} failed: {exc}") from exc

    if scheme != "https":
        return sock

    if ssl_context is None:
        ssl_context = ssl.create_default_context()
    try:
        return ssl_context.wrap_socket(sock, server_hostname=host)
    except socket.timeout as exc:
        sock.close()
        raise SendTimeout(f"TLS handshake with {host}:{port} timed out") from exc
    except (ssl.SSLError, OSError) as exc:
        sock.close()
        raise ConnectionFailed(f"TLS handshake with {host}:{port} failed: {exc}") from exc


def _readline(reader: BinaryIO, deadline: _Deadline, what: str) -> bytes:
    """Read one LF-terminated line, re-arming the deadline before every recv."""
    line = bytearray()
    while True:
        deadline.arm()
        buffered = reader.peek(1)
        if not buffered:
            break
        newline = buffered.find(b"\n", 0, MAX_LINE_LENGTH + 1 - len(line))
        take = newline + 1 if newline != -1 else len(buffered)
        take = min(take, MAX_LINE_LENGTH + 1 - len(line))
        line += reader.read1(take)
        if newline != -1:
            break
        if len(line) > MAX_LINE_LENGTH:
            break

    if not line:
        raise ResponseParseError(f"Connection closed while reading {what}")
    if len(line) > MAX_LINE_LENGTH:
        raise ResponseParseError(f"Line too long while reading {what}")
    return bytes(line)


def _read_exact(reader: BinaryIO, size: int, deadline: _Deadline) -> bytes:
    data = bytearray()
    while len(data) < size:
        deadline.arm()
        chunk = reader.read1(size - len(data))
        if not chunk:
            raise ResponseParseError(
                f"Connection closed after {len(data)} of {size} body bytes"
            )
        data += chunk
    return bytes(data)


def read_status_line(reader: BinaryIO, deadline: _Deadline) -> tuple[str, int, str]:
    line = _readline(reader, deadline, "status line").decode("iso-8859-1").strip()
    parts = line.split(" ", 2)
    if len(parts) < 2:
        raise ResponseParseError(f"Invalid status line: {line!r}")
    try:
        status_code = int(parts[1])
    except ValueError:
        raise ResponseParseError(f"Invalid status code: {parts[1]!r}") from None
    status_text = parts[2] if len(parts) == 3 else ""
    return parts[0], status_code, status_text


def read_headers(reader: BinaryIO, deadline: _Deadline) -> CaseInsensitiveDict:
    """Read header lines up to the blank line.

    Lines without a colon are skipped.
    """
    headers: CaseInsensitiveDict = CaseInsensitiveDict()
    while True:
        line = _readline(reader, deadline, "headers").decode("iso-8859-1").strip()
        if not line:
            return headers
        colon_idx = line.find(":")
        if colon_idx == -1:
            logger.debug("Skipping malformed response header line: %r", line)
            continue
        headers[line[:colon_idx].strip()] = line[colon_idx + 1 :].strip()


def read_chunked_body(reader: BinaryIO, deadline: _Deadline) -> bytes:
    """Decode a chunked transfer-encoded body."""
    body = bytearray()
    while True:
        size_line = _readline(reader, deadline, "chunk size").strip()
        size_token = size_line.split(b";", 1)[0].strip()
        if not HEX_DIGITS_RE.match(size_token):
            raise ResponseParseError(f"Invalid chunk size: {size_line!r}")
        size = int(size_token, 16)

        if size == 0:
            # Trailer section, terminated by a blank line
            while _readline(reader, deadline, "chunked trailer").strip():
                pass
            return bytes(body)

        body += _read_exact(reader, size, deadline)
        terminator = _readline(reader, deadline, "chunk terminator")
        if terminator.strip():
            raise ResponseParseError(
                f"Chunk of {size} bytes not followed by CRLF: {terminator!r}"
            )


def read_until_close(reader: BinaryIO, deadline: _Deadline) -> bytes:
    body = bytearray()
    while True:
        deadline.arm()
        chunk = reader.read1(65536)
        if not chunk:
            return bytes(body)
        body += chunk


def _content_length(headers: CaseInsensitiveDict) -> int | None:
    value = headers.get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


def response_has_body(method: str, status_code: int) -> bool:
    if method == "HEAD":
        return False
    return not (100 <= status_code < 200 or status_code in (204, 304))


def read_response(
    reader: BinaryIO, deadline: _Deadline, method: str = "GET"
) -> Response:
    """Parse a complete response from *reader*."""
    version, status_code, status_text = read_status_line(reader, deadline)
    headers = read_headers(reader, deadline)
    length = _content_length(headers)

    if not response_has_body(method, status_code):
        logger.debug("Response %d to %s carries no body", status_code, method)
        content = b""
    elif length is not None:
        logger.debug("Reading %d body bytes (Content-Length)", length)
        content = _read_exact(reader, length, deadline) if length else b""
    elif "chunked" in headers.get("Transfer-Encoding", "").lower():
        logger.debug("Reading chunked body")
        content = read_chunked_body(reader, deadline)
    else:
        logger.debug("Reading body until connection close")
        content = read_until_close(reader, deadline)

    return Response(
        version=version,
        status_code=status_code,
        status_text=status_text,
        headers=headers,
        content=content,
    )


def send(
    req: Request,
    port_override: int = 0,
    timeout: float = DEFAULT_TIMEOUT,
    ssl_context: ssl.SSLContext | None = None,
) -> Response:
    """Send *req* and return the complete response.

    Args:
        req: A validated request with an absolute target URL.
        port_override: Port to connect to instead of the URL's (0 = none).
        timeout: Seconds allowed for connecting and, separately, for all
            reads and writes after that.
        ssl_context: TLS context for https targets (defaults to a
            verifying ``ssl.create_default_context()``).

    Returns:
        The parsed Response.

    Raises:
        SendError: On connection, timeout, or response framing failures.
    """
    scheme, host, port = resolve_endpoint(req.target, port_override)
    sock = open_connection(scheme, host, port, timeout, ssl_context)
    try:
        deadline = _Deadline(sock, timeout)
        payload = req.to_wire().encode("utf-8")
        deadline.arm()
        sock.sendall(payload)
        logger.debug("Sent %d bytes to %s:%d", len(payload), host, port)

        with sock.makefile("rb") as reader:
            response = read_response(reader, deadline, req.method)
    except SendError:
        raise
    except socket.timeout as exc:
        raise SendTimeout(f"Timed out after {timeout:g}s talking to {host}:{port}") from exc
    except OSError as exc:
        raise SendError(f"I/O error talking to {host}:{port}: {exc}") from exc
    finally:
        sock.close()

    logger.debug(
        "Received %d %s with %d body bytes",
        response.status_code,
        response.status_text,
        len(response.content),
    )
    return response
