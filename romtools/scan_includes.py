"""List the files an assembly source pulls in with INCLUDE and INCBIN."""

from __future__ import annotations

import getopt
import re
import sys
from collections.abc import Iterator

from romtools.common import ToolError

PROGRAM_NAME = "scan_includes"
USAGE_OPTS = "[-h|--help] [-s|--strict] filename.asm"

_C_SPACE = " \t\n\v\f\r"
_INTERESTING = re.compile(r'[;"Ii]')


def _is_space(char: str) -> bool:
    return char != "" and char in _C_SPACE


def scan_text(text: str, filename: str) -> Iterator[tuple[str, bool]]:
    """Yield ``(path, is_include)`` for each INCLUDE or INCBIN in ``text``.

    Comments and string literals are skipped. A directive with no quoted
    path produces a warning on standard error.
    """
    text = text.split("\0", 1)[0]
    size = len(text)
    pos = 0
    while pos < size:
        match = _INTERESTING.search(text, pos)
        if not match:
            break
        pos = match.start()
        char = text[pos]
        if char == ";":
            end = min((i for i in (text.find("\r", pos + 1), text.find("\n", pos + 1)) if i != -1), default=size)
            pos = end + 1
            continue
        if char == '"':
            end = text.find('"', pos + 1)
            pos = (size if end == -1 else end) + 1
            continue

        before = text[pos - 1] if pos > 0 else "\n"
        if not _is_space(before) and before != ":":
            pos += 1
            continue
        is_incbin = text.startswith(("INCBIN", "incbin"), pos)
        is_include = text.startswith(("INCLUDE", "include"), pos)
        if not (is_incbin or is_include):
            pos += 1
            continue
        pos += 7 if is_include else 6
        following = text[pos:pos + 1]
        if not _is_space(following) and following != '"':
            pos += 1
            continue
        while pos < size and text[pos] in " \t":
            pos += 1
        if pos < size and text[pos] == '"':
            start = pos + 1
            end = text.find('"', start)
            if end == -1:
                end = size
            yield text[start:end], is_include
            pos = end + 2
        else:
            kind = "LUDE" if is_include else "BIN"
            print(f"{filename}: no file path after INC{kind}", file=sys.stderr)
            if not (pos < size and text[pos] == ";"):
                pos += 1


def scan_file(filename: str, strict: bool = False) -> Iterator[str]:
    """Yield every included path, descending into INCLUDEd files.

    A file that cannot be read is skipped unless ``strict`` is set, in which
    case ToolError is raised.
    """
    try:
        with open(filename, "rb") as handle:
            contents = handle.read()
    except OSError as exc:
        if strict:
            raise ToolError(f'Could not open file "{filename}": {exc.strerror or exc}') from exc
        return
    text = contents.decode("utf-8", errors="surrogateescape")
    for path, is_include in scan_text(text, filename):
        yield path
        if is_include:
            yield from scan_file(path, strict)


def _usage_exit(status: int) -> None:
    print(f"Usage: {PROGRAM_NAME} {USAGE_OPTS}", file=sys.stderr)
    raise SystemExit(status)


def _parse_args(argv: list[str]) -> tuple[bool, list[str]]:
    try:
        opts, args = getopt.gnu_getopt(list(argv), "sh", ["strict", "help"])
    except getopt.GetoptError as exc:
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        _usage_exit(1)
    strict = False
    for name, _ in opts:
        if name in ("-s", "--strict"):
            strict = True
        elif name in ("-h", "--help"):
            _usage_exit(0)
    return strict, args


def main(argv: list[str] | None = None) -> int:
    strict, args = _parse_args(sys.argv[1:] if argv is None else argv)
    if not args:
        _usage_exit(1)
    try:
        for path in scan_file(args[0], strict):
            sys.stdout.write(f"{path} ")
    except ToolError as exc:
        sys.stdout.flush()
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        return 1
    return 0