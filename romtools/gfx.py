"""Post-processing of Game Boy tile graphics: trimming, deduplication, interleaving."""

from __future__ import annotations

import getopt
import sys
from dataclasses import dataclass, field

from romtools.common import ToolError, parse_c_integer, read_file, read_png_width, write_file

PROGRAM_NAME = "gfx"
USAGE_OPTS = (
    "[-h|--help] [--trim-whitespace] [--remove-whitespace] [--interleave] "
    "[--remove-duplicates [--keep-whitespace]] [--remove-xflip] [--remove-yflip] "
    "[--preserve indexes] [-d|--depth depth] [-p|--png filename.png] [-o|--out outfile] infile"
)

_FLIPPED = bytes(int(f"{value:08b}"[::-1], 2) for value in range(256))

_LONG_OPTIONS = [
    "remove-whitespace",
    "trim-whitespace",
    "interleave",
    "remove-duplicates",
    "keep-whitespace",
    "remove-xflip",
    "remove-yflip",
    "preserve=",
    "png=",
    "depth=",
    "out=",
    "help",
]

_FLAGS = {
    "--remove-whitespace": "remove_whitespace",
    "--trim-whitespace": "trim_whitespace",
    "--interleave": "interleave",
    "--remove-duplicates": "remove_duplicates",
    "--keep-whitespace": "keep_whitespace",
    "--remove-xflip": "remove_xflip",
    "--remove-yflip": "remove_yflip",
}


@dataclass
class GfxOptions:
    """Settings for one run; ``preserved`` is updated as tiles are removed."""

    trim_whitespace: bool = False
    remove_whitespace: bool = False
    interleave: bool = False
    remove_duplicates: bool = False
    keep_whitespace: bool = False
    remove_xflip: bool = False
    remove_yflip: bool = False
    preserved: list[int] = field(default_factory=list)
    depth: int = 2
    png_file: str | None = None
    outfile: str | None = None

    def tile_size(self) -> int:
        """Bytes per tile, doubled when tiles are interleaved."""
        return self.depth * (16 if self.interleave else 8)

    def is_preserved(self, index: int) -> bool:
        return index in self.preserved

    def shift_preserved(self, removed_index: int) -> None:
        """Renumber preserved indexes after the tile at ``removed_index`` is dropped."""
        self.preserved = [p - 1 if p >= removed_index else p for p in self.preserved]


def is_whitespace(tile: bytes) -> bool:
    """True if every byte of the tile is zero."""
    return not any(tile)


def _tiles(data: bytes, tile_size: int) -> list[bytes]:
    length = len(data) & ~(tile_size - 1)
    return [data[start:start + tile_size] for start in range(0, length, tile_size)]


def trim_whitespace(data: bytes, options: GfxOptions) -> bytes:
    """Drop trailing blank tiles, keeping the first tile and preserved ones."""
    tile_size = options.depth * 8
    size = len(data)
    for start in range(len(data) - tile_size, 0, -tile_size):
        if is_whitespace(data[start:start + tile_size]) and not options.is_preserved(start // tile_size):
            size = start
        else:
            break
    return data[:size]


def remove_whitespace(data: bytes, options: GfxOptions) -> bytes:
    """Drop every blank tile that is not preserved."""
    kept = []
    removed = 0
    for index, tile in enumerate(_tiles(data, options.tile_size())):
        position = index - removed
        if is_whitespace(tile) and not options.is_preserved(position):
            options.shift_preserved(position)
            removed += 1
        else:
            kept.append(tile)
    return b"".join(kept)


def _remove_matching(data: bytes, options: GfxOptions, transform) -> bytes:
    kept: list[bytes] = []
    seen: set[bytes] = set()
    removed = 0
    for index, tile in enumerate(_tiles(data, options.tile_size())):
        position = index - removed
        exempt = (options.keep_whitespace and is_whitespace(tile)) or options.is_preserved(position)
        if transform(tile) in seen and not exempt:
            options.shift_preserved(position)
            removed += 1
            continue
        kept.append(tile)
        seen.add(tile)
    return b"".join(kept)


def remove_duplicates(data: bytes, options: GfxOptions) -> bytes:
    """Drop tiles identical to an earlier kept tile."""
    return _remove_matching(data, options, lambda tile: tile)


def _flip(tile: bytes, options: GfxOptions, xflip: bool, yflip: bool) -> bytes:
    size = len(tile)
    half = size // 2
    flipped = bytearray(size)
    for i, byte in enumerate(tile):
        if yflip:
            end = half if options.interleave and i < half else size
            j = end - 1 - (i ^ 1)
        else:
            j = i
        flipped[j] = _FLIPPED[byte] if xflip else byte
    return bytes(flipped)


def remove_flip(data: bytes, options: GfxOptions, xflip: bool, yflip: bool) -> bytes:
    """Drop tiles whose flipped form equals an earlier kept tile."""
    return _remove_matching(data, options, lambda tile: _flip(tile, options, xflip, yflip))


def interleave(data: bytes, width: int, options: GfxOptions) -> bytes:
    """Reorder tiles so that pairs of rows become 8x16 columns."""
    tile_size = options.depth * 8
    width_tiles = width // 8
    if width_tiles < 1:
        raise ToolError(f"Invalid image width for --interleave: {width}")
    num_tiles = len(data) // tile_size
    out = bytearray(num_tiles * tile_size)
    for i in range(num_tiles):
        row = i // width_tiles
        dest = i * 2 - (width_tiles * (row + 1) - 1 if row % 2 else width_tiles * row)
        if not 0 <= dest < num_tiles:
            raise ToolError("Image dimensions do not fit the interleaved layout")
        out[dest * tile_size:(dest + 1) * tile_size] = data[i * tile_size:(i + 1) * tile_size]
    return bytes(out)


def process(data: bytes, options: GfxOptions, png_width: int | None = None) -> bytes:
    """Apply every transformation enabled in ``options``, in the fixed order."""
    if options.depth < 1:
        raise ToolError(f"Invalid depth: {options.depth}")
    data = bytes(data)
    if options.trim_whitespace:
        data = trim_whitespace(data, options)
    if options.interleave:
        if png_width is None:
            raise ToolError("--interleave needs --png to infer dimensions")
        data = interleave(data, png_width, options)
    if options.remove_duplicates:
        data = remove_duplicates(data, options)
    if options.remove_xflip:
        data = remove_flip(data, options, True, False)
    if options.remove_yflip:
        data = remove_flip(data, options, False, True)
    if options.remove_xflip and options.remove_yflip:
        data = remove_flip(data, options, True, True)
    if options.remove_whitespace:
        data = remove_whitespace(data, options)
    return data


def _usage_exit(status: int) -> None:
    print(f"Usage: {PROGRAM_NAME} {USAGE_OPTS}", file=sys.stderr)
    raise SystemExit(status)


def parse_args(argv: list[str]) -> tuple[GfxOptions, list[str]]:
    """Parse command-line options; returns the options and remaining arguments."""
    try:
        opts, args = getopt.gnu_getopt(list(argv), "d:o:p:h", _LONG_OPTIONS)
    except getopt.GetoptError as exc:
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        _usage_exit(1)
    options = GfxOptions()
    for name, value in opts:
        if name in _FLAGS:
            setattr(options, _FLAGS[name], True)
        elif name == "--preserve":
            options.preserved.extend(
                parse_c_integer(token, 0)[0] for token in value.split(",") if token
            )
        elif name in ("-d", "--depth"):
            options.depth = parse_c_integer(value, 0)[0]
        elif name in ("-p", "--png"):
            options.png_file = value
        elif name in ("-o", "--out"):
            options.outfile = value
        elif name in ("-h", "--help"):
            _usage_exit(0)
    return options, args


def main(argv: list[str] | None = None) -> int:
    options, args = parse_args(sys.argv[1:] if argv is None else argv)
    if not args:
        _usage_exit(1)
    try:
        data = read_file(args[0])
        png_width = None
        if options.interleave and options.png_file:
            png_width = read_png_width(options.png_file)
        result = process(data, options, png_width)
        if options.outfile:
            write_file(options.outfile, result)
    except ToolError as exc:
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        return 1
    return 0