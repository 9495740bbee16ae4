"""Plain and ANSI-coloured rendering of requests, responses and
validation results."""

from __future__ import annotations

import sys
from typing import TextIO

from htp_client.engine import Response
from htp_client.parser import Request
from htp_client.validator import ValidationResult

RESET = "\033[0m"
BOLD_CYAN = "\033[1;36m"
BOLD_RED = "\033[1;31m"
BOLD_YELLOW = "\033[1;33m"
RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[0;33m"


def _paint(text: str, color: str, colored: bool) -> str:
    return f"{color}{text}{RESET}" if colored else text


def _status_color(status_code: int) -> str:
    if status_code >= 400:
        return RED
    if status_code >= 300:
        return YELLOW
    return GREEN


def print_request(
    req: Request, colored: bool = False, out: TextIO | None = None
) -> None:
    """Print the request line, headers and body in readable form."""
    out = out or sys.stdout
    print(_paint(f"{req.method} {req.target} {req.version}", BOLD_CYAN, colored), file=out)
    for key, value in req.headers.items():
        print(f"{_paint(key + ':', YELLOW, colored)} {value}", file=out)
    if req.body:
        print(f"\n{_paint(req.body, GREEN, colored)}", file=out)


def print_response(
    resp: Response, colored: bool = False, out: TextIO | None = None
) -> None:
    """Print the status line, headers and body of a response."""
    out = out or sys.stdout
    status = _paint(
        f"{resp.status_code} {resp.status_text}",
        _status_color(resp.status_code),
        colored,
    )
    print(f"{_paint(resp.version, BOLD_CYAN, colored)} {status}", file=out)
    for key, value in resp.headers.items():
        print(f"{_paint(key + ':', YELLOW, colored)} {value}", file=out)
    if resp.content:
        print(f"\n{resp.body}", file=out)


def print_validation(
    result: ValidationResult, colored: bool = False, out: TextIO | None = None
) -> None:
    """Print validation errors and warnings, or a pass notice."""
    out = out or sys.stdout
    if result.errors:
        print(_paint("Validation Errors:", BOLD_RED, colored), file=out)
        for error in result.errors:
            print(f"  {_paint('[ERROR]', RED, colored)} {error}", file=out)
    if result.warnings:
        print(_paint("Validation Warnings:", BOLD_YELLOW, colored), file=out)
        for warning in result.warnings:
            print(f"  {_paint('[WARN]', YELLOW, colored)} {warning}", file=out)
    if not result.errors and not result.warnings:
        print(_paint("✓ Validation passed", GREEN, colored), file=out)
