"""Command-line interface and input handling.

Builds the argparse parser for htp and validates the parsed arguments.
"""

import argparse
import os
import sys

from htp_client import __version__
from htp_client.parser import FORMATS


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser for the htp CLI."""
    parser = argparse.ArgumentParser(
        prog="htp",
        description=(
            "htp v{ver} — send hand-written HTTP requests over raw TCP.\n\n"
            "Reads a request from a file or stdin, resolves comments, "
            "${{VAR}}/$VAR environment variables and $(command) output, "
            "validates it against HTTP/1.1 conventions and sends it."
        ).format(ver=__version__),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  htp -f request.http\n"
            "  cat request.http | htp --dry-run\n"
            "  htp -f request.http --no-send > request.txt\n"
            "  htp -f request.txt --no-secure --port 8080\n"
        ),
    )

    # Input
    parser.add_argument(
        "-f",
        "--file",
        default=None,
        dest="request_file",
        help="Read the request from a file instead of stdin.",
    )
    parser.add_argument(
        "--format",
        choices=FORMATS,
        default="auto",
        help=(
            "Request format: 'template' preprocesses comments, variables "
            "and commands, 'wire' sends the text as is, 'auto' picks "
            "'wire' when the input has CRLF line endings (default: auto)."
        ),
    )
    parser.add_argument(
        "--shell",
        default=None,
        help="Shell used to run $(command) substitutions (default: $SHELL or /bin/sh).",
    )

    # Modes
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and show the preprocessed request without sending it.",
    )
    parser.add_argument(
        "--no-send",
        action="store_true",
        help="Print the wire-format request to stdout without sending it.",
    )
    parser.add_argument(
        "-o",
        "--save",
        default=None,
        metavar="PATH",
        help="Save the wire-format request to a file without sending it.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat validation warnings as errors.",
    )

    # Connection
    parser.add_argument(
        "--no-secure",
        action="store_true",
        dest="force_plain_http",
        help="Send the request over plain HTTP instead of HTTPS.",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=0,
        help="Connect to this port instead of the one in the URL.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Connection deadline in seconds (default: 30).",
    )

    # Output
    parser.add_argument(
        "--no-color",
        action="store_false",
        dest="color",
        help="Disable coloured output.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output, including debug logging.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def validate_args(args: argparse.Namespace) -> None:
    """Validate parsed CLI arguments.

    Raises:
        SystemExit: If the request file is missing or unreadable, or a
            numeric option is out of range.
    """
    if args.request_file is not None:
        if not os.path.isfile(args.request_file):
            print(
                f"Error: Request file not found: '{args.request_file}'",
                file=sys.stderr,
            )
            sys.exit(1)

        if not os.access(args.request_file, os.R_OK):
            print(
                f"Error: Request file is not readable: '{args.request_file}'",
                file=sys.stderr,
            )
            sys.exit(1)

    if not 0 <= args.port <= 65535:
        print(f"Error: Invalid port: {args.port}", file=sys.stderr)
        sys.exit(1)

    if args.timeout <= 0:
        print("Error: Timeout must be positive.", file=sys.stderr)
        sys.exit(1)

    if os.environ.get("NO_COLOR"):
        args.color = False


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse and validate command-line arguments.

    Args:
        argv: Optional list of arguments (defaults to sys.argv).

    Returns:
        Parsed and validated argument namespace.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    validate_args(args)
    return args
