"""Request parsing engine.

Converts request text into a :class:`Request`. Two input formats are
accepted:

  - template text (LF line endings): comments, ``${VAR}``, ``$VAR`` and
    ``$(command)`` are resolved by the preprocessor before parsing
  - wire-ready text (CRLF line endings): parsed as is

Parsing is purely syntactic. Whether the method, target or version make
sense is decided later by the validator.
"""

from __future__ import annotations

from typing import BinaryIO, Mapping

from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from htp_client.exceptions import ParseError
from htp_client.preprocessor import ShellContext, preprocess

DEFAULT_VERSION = "HTTP/1.1"

FORMATS = ("auto", "template", "wire")


class Request:
    """A parsed HTTP request."""

    __slots__ = ("method", "target", "version", "headers", "body")

    def __init__(
        self,
        method: str,
        target: str,
        version: str = DEFAULT_VERSION,
        headers: dict[str, str] | None = None,
        body: str = "",
    ) -> None:
        self.method = method
        self.target = target
        self.version = version
        self.headers = headers if headers is not None else {}
        self.body = body

    def __repr__(self) -> str:
        return (
            f"Request(method={self.method!r}, target={self.target!r}, "
            f"version={self.version!r}, "
            f"headers=<{len(self.headers)} headers>, "
            f"body={'<present>' if self.body else '<none>'})"
        )

    def find_header(self, name: str) -> str | None:
        """Return the stored header name matching *name* case-insensitively."""
        wanted = name.lower()
        for key in self.headers:
            if key.lower() == wanted:
                return key
        return None

    def has_header(self, name: str) -> bool:
        return self.find_header(name) is not None

    def get_header(self, name: str, default: str | None = None) -> str | None:
        key = self.find_header(name)
        if key is None:
            return default
        return self.headers[key]

    @property
    def request_target(self) -> str:
        """Origin-form target (path and query) used on the request line."""
        try:
            url = parse_url(self.target)
        except LocationParseError:
            return self.target
        return url.request_uri

    def to_wire(self) -> str:
        """Serialize the request in wire format with CRLF line endings."""
        parts = [f"{self.method} {self.request_target} {self.version}\r\n"]
        for key, value in self.headers.items():
            parts.append(f"{key}: {value}\r\n")
        parts.append("\r\n")
        if self.body:
            parts.append(self.body)
        return "".join(parts)

    def save(self, filepath: str) -> None:
        """Write the wire-format request to *filepath*."""
        with open(filepath, "w", encoding="utf-8", newline="") as fh:
            fh.write(self.to_wire())


def detect_format(text: str) -> str:
    """Return ``"wire"`` if *text* contains a CRLF, else ``"template"``."""
    return "wire" if "\r\n" in text else "template"


def parse(
    text: str,
    fmt: str = "auto",
    env: Mapping[str, str] | None = None,
    shell: ShellContext | None = None,
) -> Request:
    """Parse request text in either template or wire-ready format.

    Args:
        text: The raw request text.
        fmt: ``"auto"`` to sniff line endings, or ``"template"`` /
            ``"wire"`` to force a format.
        env: Variable lookup passed to the preprocessor.
        shell: Command execution context passed to the preprocessor.

    Returns:
        The parsed Request.

    Raises:
        ParseError: If the text has no request line, the request line lacks
            a target, or a header line has no colon.
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unknown request format: {fmt!r}")
    if fmt == "auto":
        fmt = detect_format(text)

    if fmt == "template":
        text = preprocess(text, env=env, shell=shell)

    return parse_request_text(text)


def parse_request_text(text: str) -> Request:
    """Split already preprocessed text into a Request."""
    if not text:
        raise ParseError("Empty request")

    lines = text.split("\n")

    request_idx = next(
        (idx for idx, line in enumerate(lines) if line.strip()), None
    )
    if request_idx is None:
        raise ParseError("No request line found")

    # --- Request line: METHOD TARGET [VERSION] ---
    request_line = lines[request_idx].strip()
    parts = request_line.split()
    if len(parts) < 2:
        raise ParseError(
            "Malformed request line (must contain at least METHOD and URL): "
            f"{request_line!r}"
        )
    method = parts[0]
    target = parts[1]
    version = parts[2] if len(parts) >= 3 else DEFAULT_VERSION

    # --- Headers ---
    headers: dict[str, str] = {}
    idx = request_idx + 1
    while idx < len(lines):
        line = lines[idx].strip()
        idx += 1
        if not line:
            break
        colon_idx = line.find(":")
        if colon_idx == -1:
            raise ParseError(f"Invalid header (missing colon): {line!r}")
        key = line[:colon_idx].strip()
        value = line[colon_idx + 1 :].strip()
        headers[key] = value

    # --- Body ---
    body = "\n".join(lines[idx:]).strip()

    return Request(
        method=method,
        target=target,
        version=version,
        headers=headers,
        body=body,
    )


def load_request_file(filepath: str) -> str:
    """Read and return the contents of a request file.

    Line endings are preserved so the format can still be detected.

    Raises:
        FileNotFoundError: If the file does not exist.
        OSError: If the file cannot be read.
    """
    with open(filepath, "r", encoding="utf-8", newline="") as fh:
        return fh.read()


def load_request(stream: BinaryIO) -> str:
    """Read a request from an open binary stream such as ``sys.stdin.buffer``.

    Reading bytes keeps CRLF line endings intact; a text-mode stdin would
    translate them away.
    """
    return stream.read().decode("utf-8")
