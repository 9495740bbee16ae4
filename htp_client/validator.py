"""Request validation against HTTP/1.1 conventions.

Validation reports problems in two tiers: errors block transmission,
warnings are advisory. Omissions that can be fixed automatically (an
absolute URL for a path-only target, a missing ``Host`` or
``Content-Length`` header) are fixed in place on the Request and reported
as warnings.
"""

from __future__ import annotations

import logging

from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from htp_client.parser import Request

logger = logging.getLogger(__name__)

STANDARD_METHODS = (
    "GET",
    "POST",
    "PUT",
    "DELETE",
    "PATCH",
    "HEAD",
    "OPTIONS",
    "CONNECT",
    "TRACE",
)

SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1", "HTTP/2", "HTTP/2.0", "HTTP/3")

# Methods whose requests normally carry no body
NO_BODY_METHODS = ("GET", "HEAD", "DELETE", "CONNECT", "TRACE")


class ValidationResult:
    """Errors and warnings collected while validating one request."""

    __slots__ = ("errors", "warnings")

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def __repr__(self) -> str:
        return (
            f"ValidationResult(errors={len(self.errors)}, "
            f"warnings={len(self.warnings)})"
        )

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def is_blocking(self, strict: bool = False) -> bool:
        """Return True if the request must not be sent.

        Under *strict* policy any warning blocks as well.
        """
        return self.has_errors() or (strict and self.has_warnings())


def validate_method(req: Request, result: ValidationResult) -> None:
    req.method = req.method.upper()
    if req.method not in STANDARD_METHODS:
        result.warnings.append(f"Non-standard HTTP method: {req.method}")


def validate_target(
    req: Request, result: ValidationResult, force_plain_http: bool
) -> None:
    """Check the target and make it an absolute URL.

    A path-only target is joined with the Host header. With
    *force_plain_http* the scheme becomes ``http``.
    """
    if not req.target:
        result.errors.append("URL is required")
        return

    if req.target.startswith("/"):
        host = req.get_header("Host")
        if not host:
            result.errors.append(
                "Host header is required when URL is a path (e.g., /path)"
            )
            return
        scheme = "http" if force_plain_http else "https"
        req.target = f"{scheme}://{host}{req.target}"
        logger.debug("Resolved path-only target to %s", req.target)
        return

    try:
        url = parse_url(req.target)
    except LocationParseError as exc:
        result.errors.append(f"Invalid URL: {exc}")
        return

    if not url.scheme:
        result.errors.append(
            "URL must include scheme (http:// or https://) "
            "or be a path starting with /"
        )
        return

    if force_plain_http and url.scheme == "https":
        url = url._replace(scheme="http")
        req.target = url.url
        logger.debug("Forced plain HTTP target %s", req.target)

    if url.scheme not in ("http", "https"):
        result.warnings.append(f"Non-standard URL scheme: {url.scheme}")

    if not url.host:
        result.errors.append("URL must include host")


def validate_version(req: Request, result: ValidationResult) -> None:
    if req.version not in SUPPORTED_VERSIONS:
        result.warnings.append(
            f"Non-standard HTTP version: {req.version} (using anyway)"
        )


def _target_netloc(target: str) -> str | None:
    try:
        url = parse_url(target)
    except LocationParseError:
        return None
    if not url.scheme or not url.host:
        return None
    return url.netloc


def validate_headers(req: Request, result: ValidationResult) -> None:
    """Ensure Host is present for HTTP/1.1 and flag case-folded duplicates."""
    if req.version == "HTTP/1.1" and not req.has_header("Host"):
        netloc = _target_netloc(req.target)
        if netloc:
            req.headers["Host"] = netloc
            result.warnings.append(f"Added missing Host header: {netloc}")
        else:
            result.errors.append("Host header is required for HTTP/1.1")

    seen: set[str] = set()
    for key in req.headers:
        folded = key.lower()
        if folded in seen:
            result.warnings.append(f"Duplicate header (case-insensitive): {key}")
        seen.add(folded)


def validate_body(req: Request, result: ValidationResult) -> None:
    if not req.body:
        return

    if req.method in NO_BODY_METHODS:
        result.warnings.append(
            f"{req.method} requests typically should not have a body"
        )

    if not req.has_header("Content-Length"):
        length = len(req.body.encode("utf-8"))
        req.headers["Content-Length"] = str(length)
        result.warnings.append(f"Added missing Content-Length header: {length}")

    if not req.has_header("Content-Type"):
        result.warnings.append(
            "Content-Type header is recommended when sending a body"
        )


def validate(req: Request, force_plain_http: bool = False) -> ValidationResult:
    """Validate *req*, fixing what can be fixed in place.

    Args:
        req: The request to check. May be modified.
        force_plain_http: Use ``http`` instead of ``https`` for the target.

    Returns:
        A new ValidationResult with the errors and warnings found.
    """
    result = ValidationResult()

    validate_method(req, result)
    validate_target(req, result, force_plain_http)
    validate_version(req, result)
    validate_headers(req, result)
    validate_body(req, result)

    logger.debug(
        "Validated %s %s: %d error(s), %d warning(s)",
        req.method,
        req.target,
        len(result.errors),
        len(result.warnings),
    )
    return result
