"""Helpers shared by the ROM build tools: file access, PNG probing, C-style numbers."""

from __future__ import annotations

_C_SPACE = " \t\n\v\f\r"
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_PNG_HEADER = b"\x89PNG\r\n\x1a\n\x00\x00\x00\x0dIHDR"


class ToolError(Exception):
    """A fatal error reported by one of the tools."""


def _reason(exc: OSError) -> str:
    return exc.strerror or str(exc)


def read_file(filename: str) -> bytes:
    """Return the whole contents of a binary file."""
    try:
        with open(filename, "rb") as handle:
            return handle.read()
    except OSError as exc:
        raise ToolError(f'Could not open file "{filename}": {_reason(exc)}') from exc


def write_file(filename: str, data: bytes) -> None:
    """Write ``data`` to a file, replacing its contents."""
    try:
        with open(filename, "wb") as handle:
            handle.write(data)
    except OSError as exc:
        raise ToolError(f'Could not write to file "{filename}": {_reason(exc)}') from exc


def read_png_width(filename: str) -> int:
    """Return the width stored in the IHDR chunk of a PNG file."""
    try:
        with open(filename, "rb") as handle:
            header = handle.read(len(_PNG_HEADER))
            if len(header) < len(_PNG_HEADER):
                raise ToolError(f'Could not read from file "{filename}": unexpected end of file')
            if header != _PNG_HEADER:
                raise ToolError(f'Not a valid PNG file: "{filename}"')
            width = handle.read(4)
    except OSError as exc:
        raise ToolError(f'Could not open file "{filename}": {_reason(exc)}') from exc
    if len(width) < 4:
        raise ToolError(f'Could not read from file "{filename}": unexpected end of file')
    return int.from_bytes(width, "big")


def _digit(text: str, pos: int, base: int) -> int | None:
    if pos >= len(text):
        return None
    value = _DIGITS.find(text[pos].lower())
    return value if 0 <= value < base else None


def parse_c_integer(text: str, base: int = 0) -> tuple[int, str]:
    """Parse a leading integer the way C's strtol does.

    Returns the value and the unparsed remainder. When no digits are found
    the value is 0 and the remainder is the whole input. Base 0 detects a
    ``0x`` prefix (hexadecimal) or a leading ``0`` (octal).
    """
    if base != 0 and not 2 <= base <= 36:
        raise ValueError(f"invalid base: {base}")
    pos = 0
    while pos < len(text) and text[pos] in _C_SPACE:
        pos += 1
    negative = False
    if pos < len(text) and text[pos] in "+-":
        negative = text[pos] == "-"
        pos += 1
    if base in (0, 16) and text[pos:pos + 2].lower() == "0x" and _digit(text, pos + 2, 16) is not None:
        base = 16
        pos += 2
    elif base == 0:
        base = 8 if text[pos:pos + 1] == "0" else 10
    start = pos
    value = 0
    while (digit := _digit(text, pos, base)) is not None:
        value = value * base + digit
        pos += 1
    if pos == start:
        return 0, text
    return (-value if negative else value), text[pos:]