"""Template preprocessing for hand-written request files.

Turns template text into plain request text, one line at a time:

  - comment lines (``#`` or ``//`` after leading whitespace) are dropped
  - ``${NAME}`` and ``$NAME`` are replaced with values from an environment
    mapping (unset names become the empty string)
  - ``$(command)`` is run through a shell and replaced with its stdout

Nothing in here raises on bad input. A failed command is replaced by an
``[error: ...]`` marker so the problem is visible in the request itself.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Mapping

logger = logging.getLogger(__name__)

COMMENT_PREFIXES = ("#", "//")


def _is_name_char(ch: str) -> bool:
    return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9")


class ShellContext:
    """Where and how ``$(...)`` commands are executed."""

    __slots__ = ("shell", "cwd", "env")

    def __init__(
        self,
        shell: str | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.shell = shell or os.environ.get("SHELL") or "/bin/sh"
        self.cwd = cwd
        self.env = env

    def __repr__(self) -> str:
        return f"ShellContext(shell={self.shell!r}, cwd={self.cwd!r})"

    def run(self, command: str) -> str:
        """Run *command* and return its stdout without trailing whitespace.

        Errors are returned as an ``[error: ...]`` marker, never raised.
        """
        logger.debug("Running shell command via %s: %s", self.shell, command)
        try:
            completed = subprocess.run(
                [self.shell, "-c", command],
                cwd=self.cwd,
                env=dict(self.env) if self.env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            details = f"exit status {exc.returncode}"
            stderr = exc.stderr.decode("utf-8", errors="replace").strip()
            if stderr:
                details = f"{details}: {stderr}"
            logger.debug("Shell command failed: %s", details)
            return f"[error: {details}]"
        except OSError as exc:
            logger.debug("Shell could not be started: %s", exc)
            return f"[error: {exc}]"

        return completed.stdout.decode("utf-8", errors="replace").rstrip()


def expand_variables(line: str, env: Mapping[str, str]) -> str:
    """Expand ``${NAME}`` and ``$NAME`` references in a single line.

    Substituted values are not scanned again. An unterminated ``${`` stops
    expansion and the rest of the line is kept verbatim. ``$(`` is left for
    :func:`execute_commands`.
    """
    out: list[str] = []
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch != "$" or i + 1 >= n:
            out.append(ch)
            i += 1
            continue

        nxt = line[i + 1]
        if nxt == "{":
            end = line.find("}", i + 2)
            if end == -1:
                out.append(line[i:])
                break
            out.append(env.get(line[i + 2 : end], ""))
            i = end + 1
        elif _is_name_char(nxt):
            j = i + 1
            while j < n and _is_name_char(line[j]):
                j += 1
            out.append(env.get(line[i + 1 : j], ""))
            i = j
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def _find_closing_paren(line: str, start: int) -> int:
    """Return the index of the ``)`` balancing the ``(`` before *start*."""
    depth = 1
    for idx in range(start, len(line)):
        if line[idx] == "(":
            depth += 1
        elif line[idx] == ")":
            depth -= 1
            if depth == 0:
                return idx
    return -1


def execute_commands(line: str, shell: ShellContext) -> str:
    """Replace each ``$(command)`` in *line* with the command's output."""
    out: list[str] = []
    pos = 0
    while True:
        start = line.find("$(", pos)
        if start == -1:
            break
        end = _find_closing_paren(line, start + 2)
        if end == -1:
            break
        out.append(line[pos:start])
        out.append(shell.run(line[start + 2 : end]))
        pos = end + 1

    out.append(line[pos:])
    return "".join(out)


def is_comment(line: str) -> bool:
    return line.lstrip().startswith(COMMENT_PREFIXES)


def preprocess(
    text: str,
    env: Mapping[str, str] | None = None,
    shell: ShellContext | None = None,
) -> str:
    """Preprocess template text into plain request text.

    Args:
        text: Template text with LF line endings.
        env: Variable lookup for ``${NAME}`` / ``$NAME``
            (defaults to ``os.environ``).
        shell: Execution context for ``$(...)`` (defaults to
            ``ShellContext()``).

    Returns:
        The processed text, comment lines removed, lines joined with LF.
    """
    if env is None:
        env = os.environ
    if shell is None:
        shell = ShellContext()

    lines: list[str] = []
    for line in text.split("\n"):
        if is_comment(line):
            continue
        line = expand_variables(line, env)
        line = execute_commands(line, shell)
        lines.append(line)

    return "\n".join(lines)
