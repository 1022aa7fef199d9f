"""Fill in a virtual-console patch template from a symbol file and two ROM images."""

from __future__ import annotations

import re
import sys
from collections.abc import Iterator
from dataclasses import dataclass

from romtools.common import ToolError, parse_c_integer, read_file, write_file

PROGRAM_NAME = "make_patch"
USAGE_OPTS = "values.sym patched.gbc original.gbc vc.patch.template vc.patch"

ROM_BANK_SIZE = 0x4000
RAM_START = 0x8000
CHECKSUM_PATCH_OFFSET = 0x14E
CHECKSUM_PATCH_SIZE = 2

_COMPARISONS = ("==", ">", "<", ">=", "<=", "!=", "||")
_OR_VALUE = 0x11
_PATCH_COMMANDS = ("patch", "PATCH", "patch_", "PATCH_", "patch/", "PATCH/")
_DWS_COMMANDS = ("dws", "DWS", "dws_", "DWS_", "dws/", "DWS/")
_DB_COMMANDS = ("db", "DB", "db_", "DB_", "db/", "DB/")
_HEX_BASES = ("hex", "HEX", "HEx", "Hex", "heX", "hEX")
_HEX_COMMANDS = _HEX_BASES + tuple(f"{name}~" for name in _HEX_BASES)

_COMMAND_WORD = re.compile(r"[^ \t\n\v\f\r]+")
_SYMBOL_FIELD = re.compile(r"[^ \t]+")
_NEWLINE = re.compile(r"[\r\n]")
_SPECIAL = re.compile(r"[;{\[]")


@dataclass(frozen=True)
class Symbol:
    """A named location: its CPU address and its offset within ROM or RAM."""

    name: str
    address: int
    offset: int


@dataclass(frozen=True)
class Patch:
    """A region of the ROM that a patch is allowed to change."""

    offset: int
    size: int


class SymbolTable:
    """Symbols in definition order; lookups prefer the most recent definition."""

    def __init__(self) -> None:
        self._symbols: list[Symbol] = []

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def add(self, name: str, bank: int, address: int) -> Symbol:
        """Define a symbol; ROM offsets are relative to their bank, RAM to its start."""
        if address < RAM_START:
            offset = address + (bank - 1) * ROM_BANK_SIZE if bank > 0 else address
        else:
            offset = address - RAM_START
        symbol = Symbol(name, address, offset)
        self._symbols.append(symbol)
        return symbol

    def find(self, name: str) -> Symbol:
        """Look up a symbol; a name starting with "." matches the local part of a label."""
        local = name.startswith(".")
        for symbol in reversed(self._symbols):
            if symbol.name.endswith(name) if local else symbol.name == name:
                return symbol
        raise ToolError(f'Error: Unknown symbol: "{name}"')


def parse_number(text: str, base: int) -> int:
    """Parse a whole non-negative integer, with C prefixes allowed for base 0."""
    value, rest = parse_c_integer(text, base)
    if not text or rest == text or rest or value < 0:
        raise ToolError(f'Error: Cannot parse number: "{text}"')
    return value


def parse_symbol_value(text: str) -> tuple[int, int]:
    """Parse a "bank:address" (or bare "address") hexadecimal symbol value."""
    bank, colon, address = text.partition(":")
    if colon:
        return parse_number(bank, 16), parse_number(address, 16)
    return 0, parse_number(text, 16)


def parse_symbols(text: str) -> SymbolTable:
    """Read a symbol file: one value and name per line, ";" starts a comment."""
    symbols = SymbolTable()
    for line in _NEWLINE.split(text):
        fields = _SYMBOL_FIELD.findall(line.split(";", 1)[0])
        if len(fields) >= 2:
            bank, address = parse_symbol_value(fields[0])
            symbols.add(fields[1], bank, address)
    return symbols


def parse_arg_value(arg: str, absolute: bool, symbols: SymbolTable, patch_name: str | None) -> int:
    """Evaluate a command argument: comparison operator, number or symbol expression."""
    if arg in _COMPARISONS:
        index = _COMPARISONS.index(arg)
        return _OR_VALUE if arg == "||" else index

    if arg[:1].isdigit() and arg[:1].isascii() or arg[:1] == "+":
        return parse_number(arg, 0)

    part = None
    if arg[:1] in ("<", ">"):
        part, arg = arg[0], arg[1:]

    offset_mod = 0
    plus = arg.find("+")
    if plus != -1:
        offset_mod = parse_number(arg[plus:], 0)
        arg = arg[:plus]

    if arg == "@":
        if patch_name is None:
            raise ToolError('Error: No current patch for "@"')
        arg = patch_name
    symbol = symbols.find(arg)

    value = (symbol.offset if absolute else symbol.address) + offset_mod
    if part == "<":
        return value & 0xFF
    if part == ">":
        return value >> 8
    return value


def _hex(value: int, width: int, upper: bool) -> str:
    if value < 0:
        value &= 0xFFFFFFFF
    kind = "X" if upper else "x"
    if width < 0:
        return format(value, f"<{-width}{kind}")
    if width == 0:
        return format(value, kind)
    return format(value, f"0{width}{kind}")


def _count_prefix(name: str, count: int) -> str:
    if name.endswith("/"):
        return ""
    return f"a{count}: " if name.endswith("_") else f"a{count}:"


def _require_hook(hook: Symbol | None, name: str) -> Symbol:
    if hook is None:
        raise ToolError(f'Error: No current patch for command: "{name}"')
    return hook


def _invalid_arguments(name: str) -> ToolError:
    return ToolError(f'Error: Invalid arguments for command: "{name}"')


def _patch_command(name, args, hook, symbols, patches, new_rom, orig_rom) -> str:
    if len(args) > 2:
        raise _invalid_arguments(name)
    hook = _require_hook(hook, name)
    offset = hook.offset + (parse_number(args[0], 0) if args else 0)
    if offset < 0:
        raise ToolError(f'Error: Cannot seek to "vc_patch {hook.name}" in the unpatched ROM')
    if len(args) == 2:
        length = parse_number(args[1], 0)
    else:
        length = symbols.find(hook.name + "_End").offset - offset
    patches.append(Patch(offset, length))

    count = max(length, 0)
    new = new_rom[offset:offset + count]
    if len(new) < count:
        raise ToolError(f'Error: Cannot read "vc_patch {hook.name}" from the new ROM')
    orig = orig_rom[offset:offset + count]
    upper = name[:1].isupper()
    if length == 1:
        text = "0x" + _hex(new[0], 2, upper)
    else:
        text = _count_prefix(name, length) + " ".join(_hex(byte, 2, upper) for byte in new)
    if new == orig:
        print(f'{PROGRAM_NAME}: Warning: "vc_patch {hook.name}" doesn\'t alter the ROM', file=sys.stderr)
    return text


def _dws_command(name, args, hook, symbols) -> str:
    if not args:
        raise _invalid_arguments(name)
    hook = _require_hook(hook, name)
    upper = name[:1].isupper()
    words = []
    for arg in args:
        value = parse_arg_value(arg, False, symbols, hook.name)
        if value > 0xFFFF:
            raise ToolError(f'Error: Invalid value for "{name}" argument: 0x{value:x}')
        words.append(f"{_hex(value & 0xFF, 2, upper)} {_hex(value >> 8, 2, upper)}")
    return _count_prefix(name, len(args) * 2) + " ".join(words)


def _db_command(name, args, hook, symbols) -> str:
    if len(args) != 1:
        raise _invalid_arguments(name)
    hook = _require_hook(hook, name)
    value = parse_arg_value(args[0], False, symbols, hook.name)
    if value > 0xFF:
        raise ToolError(f'Error: Invalid value for "{name}" argument: 0x{value:x}')
    return _count_prefix(name, 1) + _hex(value, 2, name[:1].isupper())


def _hex_command(name, args, hook, symbols) -> str:
    if len(args) not in (1, 2):
        raise _invalid_arguments(name)
    hook = _require_hook(hook, name)
    value = parse_arg_value(args[0], not name.endswith("~"), symbols, hook.name)
    padding = parse_number(args[1], 0) if len(args) > 1 else 2
    base = name.rstrip("~")
    if base == "HEx":
        return "0x" + _hex(value >> 8, padding - 2, True) + _hex(value & 0xFF, 2, False)
    if base == "Hex":
        return "0x" + _hex(value >> 12, padding - 3, True) + _hex(value & 0xFFF, 3, False)
    if base == "heX":
        return "0x" + _hex(value >> 8, padding - 2, False) + _hex(value & 0xFF, 2, True)
    if base == "hEX":
        return "0x" + _hex(value >> 12, padding - 3, False) + _hex(value & 0xFFF, 3, True)
    return "0x" + _hex(value, padding, name[:1].isupper())


def _interpret_command(command, hook, symbols, patches, new_rom, orig_rom) -> str:
    words = _COMMAND_WORD.findall(command)
    name, args = (words[0], words[1:]) if words else ("", [])
    if name in _PATCH_COMMANDS:
        return _patch_command(name, args, hook, symbols, patches, new_rom, orig_rom)
    if name in _DWS_COMMANDS:
        return _dws_command(name, args, hook, symbols)
    if name in _DB_COMMANDS:
        return _db_command(name, args, hook, symbols)
    if name in _HEX_COMMANDS:
        return _hex_command(name, args, hook, symbols)
    raise ToolError(f'Error: Unknown command: "{name}"')


def _line_end(text: str, start: int) -> int:
    match = _NEWLINE.search(text, start)
    return match.end() if match else len(text)


def _identifier(text: str) -> str:
    return "".join(c if (c.isascii() and c.isalnum()) or c == "_" else "_" for c in text)


def process_template(
    template: str, new_rom: bytes, orig_rom: bytes, symbols: SymbolTable
) -> tuple[str, list[Patch]]:
    """Expand every "{command}" in the template; returns the text and the patched regions."""
    out: list[str] = []
    patches = [Patch(CHECKSUM_PATCH_OFFSET, CHECKSUM_PATCH_SIZE)]
    hook: Symbol | None = None
    size = len(template)
    pos = 0
    while pos < size:
        char = template[pos]
        if char == ";":
            end = _line_end(template, pos + 1)
            out.append(template[pos:end])
            pos = end
        elif char == "{":
            close = template.find("}", pos + 1)
            end = size if close == -1 else close
            out.append(_interpret_command(template[pos + 1:end], hook, symbols, patches, new_rom, orig_rom))
            pos = end + 1
        elif char == "[":
            close = template.find("]", pos + 1)
            label = template[pos + 1:size if close == -1 else close]
            shown, at, alternate = label.partition("@")
            out.append("[" + shown + ("]" if close != -1 else ""))
            hook = symbols.find(".VC_" + (alternate if at else _identifier(shown)))
            if close == -1:
                pos = size
            else:
                end = _line_end(template, close + 1)
                out.append(template[close + 1:end])
                pos = end
        else:
            match = _SPECIAL.search(template, pos)
            end = match.start() if match else size
            out.append(template[pos:end])
            pos = end
    return "".join(out), patches


def verify_completeness(orig_rom: bytes, new_rom: bytes, patches: list[Patch]) -> bool:
    """Check that every difference between the ROMs lies inside a patch region."""
    ordered = sorted(patches, key=lambda patch: patch.offset)
    pos = 0
    index = 0
    while True:
        orig_end = pos >= len(orig_rom)
        new_end = pos >= len(new_rom)
        if orig_end or new_end:
            return orig_end == new_end
        if index < len(ordered) and ordered[index].offset == pos:
            pos += 1 + (ordered[index].size & 0xFFFFFFFF)
            index += 1
            continue
        if orig_rom[pos] != new_rom[pos]:
            print(f"{PROGRAM_NAME}: Warning: Unpatched difference at offset: 0x{pos:x}", file=sys.stderr)
            print(f"    Unpatched ROM value: 0x{orig_rom[pos]:02x}", file=sys.stderr)
            print(f"    Patched ROM value: 0x{new_rom[pos]:02x}", file=sys.stderr)
            if index < len(ordered):
                print(f"    Current patch offset: 0x{ordered[index].offset:06x}", file=sys.stderr)
            return False
        pos += 1


def _usage_exit(status: int) -> None:
    print(f"Usage: {PROGRAM_NAME} {USAGE_OPTS}", file=sys.stderr)
    raise SystemExit(status)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 5:
        _usage_exit(1)
    sym_file, new_file, orig_file, template_file, patch_file = args
    try:
        symbols = parse_symbols(read_file(sym_file).decode("latin-1"))
        new_rom = read_file(new_file)
        orig_rom = read_file(orig_file)
        template = read_file(template_file).decode("latin-1")
        text, patches = process_template(template, new_rom, orig_rom, symbols)
        write_file(patch_file, text.encode("latin-1"))
    except ToolError as exc:
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        return 1
    if not verify_completeness(orig_rom, new_rom, patches):
        print(
            f'{PROGRAM_NAME}: Warning: Not all ROM differences are defined by "{patch_file}"',
            file=sys.stderr,
        )
    return 0