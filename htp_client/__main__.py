"""htp — Main entry point.

Ties together the CLI, parser, validator, and wire engine:
read → parse → validate → (preview | save | send) → print.
"""

import logging
import sys

from htp_client.cli import parse_cli
from htp_client.display import print_request, print_response, print_validation
from htp_client.engine import send
from htp_client.exceptions import ParseError, SendError
from htp_client.parser import load_request, load_request_file, parse
from htp_client.preprocessor import ShellContext
from htp_client.validator import validate


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Run the htp tool.

    Args:
        argv: Optional argument list (defaults to sys.argv).

    Returns:
        Exit code (0 = success, 1 = validation failed, 2 = error).
    """
    args = parse_cli(argv)
    setup_logging(args.verbose)

    # --- Read ---
    try:
        if args.request_file:
            raw_text = load_request_file(args.request_file)
        else:
            raw_text = load_request(sys.stdin.buffer)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Error reading request: {exc}", file=sys.stderr)
        return 2

    # --- Parse ---
    try:
        req = parse(raw_text, fmt=args.format, shell=ShellContext(shell=args.shell))
    except ParseError as exc:
        print(f"Error parsing request: {exc}", file=sys.stderr)
        return 2

    # --- Validate ---
    result = validate(req, force_plain_http=args.force_plain_http)

    if args.no_send or args.save:
        # stdout carries only the request here, so diagnostics go to stderr
        if result.is_blocking(args.strict):
            print_validation(result, colored=args.color, out=sys.stderr)
            if not result.has_errors():
                print(
                    "\nStrict mode: Request has validation warnings and cannot be output",
                    file=sys.stderr,
                )
            return 1

        if args.save:
            try:
                req.save(args.save)
            except OSError as exc:
                print(f"Error saving request: {exc}", file=sys.stderr)
                return 2
            print(f"[*] Request saved to: {args.save}", file=sys.stderr)

        if args.no_send:
            sys.stdout.write(req.to_wire())
        return 0

    print_validation(result, colored=args.color)

    if result.has_errors():
        return 1

    if args.strict and result.has_warnings():
        print(
            "\nStrict mode: Request has validation warnings and cannot be sent",
            file=sys.stderr,
        )
        return 1

    if args.dry_run:
        print("\n--- Preprocessed Request ---")
        print_request(req, colored=args.color)
        return 0

    # --- Send ---
    if args.verbose:
        print("\n--- Sending Request ---")
        print_request(req, colored=args.color)
        print()

    try:
        resp = send(req, port_override=args.port, timeout=args.timeout)
    except SendError as exc:
        print(f"Error sending request: {exc}", file=sys.stderr)
        return 2

    print_response(resp, colored=args.color)
    return 0


if __name__ == "__main__":
    sys.exit(main())
