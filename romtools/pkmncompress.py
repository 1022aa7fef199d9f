"""Compression and decompression of square 2bpp sprites in the .pic format."""

from __future__ import annotations

import getopt
import sys

from romtools.common import ToolError, read_file, write_file

PROGRAM_NAME = "pkmncompress"
USAGE_OPTS = "[-h|--help] [-u|--uncompress] infile.2bpp outfile.pic"

TILE_SIZE = 0x10
MAX_WIDTH = 15

_GRAY_CODES = (
    (0x0, 0x1, 0x3, 0x2, 0x6, 0x7, 0x5, 0x4, 0xC, 0xD, 0xF, 0xE, 0xA, 0xB, 0x9, 0x8),
    (0x8, 0x9, 0xB, 0xA, 0xE, 0xF, 0xD, 0xC, 0x4, 0x5, 0x7, 0x6, 0x2, 0x3, 0x1, 0x0),
)

_DECODE_CODES = (
    (0x0, 0x1, 0x3, 0x2, 0x7, 0x6, 0x4, 0x5, 0xF, 0xE, 0xC, 0xD, 0x8, 0x9, 0xB, 0xA),
    (0xF, 0xE, 0xC, 0xD, 0x8, 0x9, 0xB, 0xA, 0x0, 0x1, 0x3, 0x2, 0x7, 0x6, 0x4, 0x5),
)

_MAX_RUN_PREFIX = 16


class _BitWriter:
    """Accumulates bits most-significant first after a one-byte header."""

    def __init__(self, header: int) -> None:
        self._buffer = bytearray([header])
        self._bit = 7

    def write(self, bit: int) -> None:
        self._bit += 1
        if self._bit == 8:
            self._buffer.append(0)
            self._bit = 0
        if bit:
            self._buffer[-1] |= 0x80 >> self._bit

    def write_number(self, count: int) -> None:
        """Encode a run of ``count + 1`` zero groups."""
        value = count + 1
        power = (value + 1).bit_length() - 1
        remainder = value - ((1 << power) - 1)
        for _ in range(power - 1):
            self.write(1)
        self.write(0)
        for shift in range(power - 1, -1, -1):
            self.write((remainder >> shift) & 1)

    def write_packet(self, groups: list[int]) -> None:
        for group in groups:
            self.write((group >> 1) & 1)
            self.write(group & 1)

    @property
    def bit_length(self) -> int:
        return len(self._buffer) * 8 + self._bit

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class _BitReader:
    """Reads bits most-significant first from a byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._byte = 0
        self._bit = 7

    def bit(self) -> int:
        if self._bit < 0:
            self._byte += 1
            self._bit = 7
        if self._byte >= len(self._data):
            raise ToolError("Invalid compressed data")
        value = (self._data[self._byte] >> self._bit) & 1
        self._bit -= 1
        return value

    def number(self, count: int) -> int:
        value = 0
        for _ in range(count):
            value = (value << 1) | self.bit()
        return value


def get_width(size: int) -> int:
    """Return the side length in tiles of a square 2bpp image of ``size`` bytes."""
    for width in range(1, MAX_WIDTH + 1):
        if size == width * width * TILE_SIZE:
            return width
    raise ToolError("Image is not a square, or is larger than 15x15 tiles")


def transpose_tiles(data: bytes, width: int) -> bytes:
    """Swap the rows and columns of a ``width`` x ``width`` grid of 16-byte tiles."""
    count = width * width
    if len(data) < count * TILE_SIZE:
        raise ValueError(f"need {count * TILE_SIZE} bytes for a {width}x{width} grid, got {len(data)}")
    tiles = [data[k * TILE_SIZE:(k + 1) * TILE_SIZE] for k in range(count)]
    reordered = b"".join(tiles[(i % width) * width + i // width] for i in range(count))
    return reordered + bytes(data[count * TILE_SIZE:])


def _compress_plane(plane: bytearray, width: int) -> None:
    stride = width * 8
    for row in range(stride):
        previous_lo = 0
        for column in range(width):
            j = row + column * stride
            hi = (plane[j] >> 4) & 0xF
            code_hi = _GRAY_CODES[previous_lo & 1][hi]
            previous_lo = plane[j] & 0xF
            code_lo = _GRAY_CODES[hi & 1][previous_lo]
            plane[j] = (code_hi << 4) | code_lo


def _encode(planes: tuple[bytes, bytes], mode: int, order: int, width: int) -> _BitWriter:
    first = bytearray(planes[order])
    second = bytearray(planes[order ^ 1])
    if mode != 0:
        second = bytearray(a ^ b for a, b in zip(second, first))
    _compress_plane(first, width)
    if mode != 1:
        _compress_plane(second, width)

    writer = _BitWriter((width << 4) | width)
    writer.write(order)
    stride = width * 8
    groups: list[int] = []
    for plane_index, ram in enumerate((first, second)):
        state = "start"
        zeros = 0
        # A data packet still pending from the first plane leaves zero-filled
        # slots that are emitted ahead of the second plane's first packet.
        groups = [0] * len(groups)
        for x in range(width):
            column = ram[x * stride:(x + 1) * stride]
            for shift in (6, 4, 2, 0):
                for byte in column:
                    group = (byte >> shift) & 3
                    if group:
                        if state == "start":
                            writer.write(1)
                        elif state == "run":
                            writer.write_number(zeros)
                        state = "data"
                        groups.append(group)
                        zeros = 0
                    else:
                        if state == "start":
                            writer.write(0)
                        elif state == "run":
                            zeros += 1
                        else:
                            writer.write_packet(groups)
                            writer.write(0)
                            writer.write(0)
                        state = "run"
                        groups = []
        if state == "run":
            writer.write_number(zeros)
        else:
            writer.write_packet(groups)
        if plane_index == 0:
            if mode == 0:
                writer.write(0)
            else:
                writer.write(1)
                writer.write(mode - 1)
    return writer


def compress(data: bytes) -> bytes:
    """Compress a square 2bpp image, choosing the smallest of the encodings."""
    width = get_width(len(data))
    transposed = transpose_tiles(bytes(data), width)
    planes = (transposed[0::2], transposed[1::2])
    best: _BitWriter | None = None
    for mode in range(3):
        for order in range(2):
            if mode == 0 and order == 0:
                continue
            candidate = _encode(planes, mode, order, width)
            if best is None or candidate.bit_length < best.bit_length:
                best = candidate
    assert best is not None
    return best.getvalue()


def _fill_plane(reader: _BitReader, width: int) -> bytes:
    size = width * width * 0x20
    groups: list[int] = []
    literal = reader.bit()
    while len(groups) < size:
        if literal:
            while len(groups) < size:
                group = reader.number(2)
                if not group:
                    break
                groups.append(group)
        else:
            prefix = 0
            while reader.bit():
                prefix += 1
            if prefix >= _MAX_RUN_PREFIX:
                raise ToolError("Invalid compressed data")
            run = (2 << prefix) - 1 + reader.number(prefix + 1)
            groups.extend([0] * min(run, size - len(groups)))
        literal ^= 1

    stride = width * 8
    ordered = [
        groups[(y * 4 + i) * stride + x]
        for y in range(width)
        for x in range(stride)
        for i in range(4)
    ]
    return bytes(
        (ordered[k] << 6) | (ordered[k + 1] << 4) | (ordered[k + 2] << 2) | ordered[k + 3]
        for k in range(0, len(ordered), 4)
    )


def _uncompress_plane(plane: bytearray, width: int) -> None:
    stride = width * 8
    for x in range(stride):
        bit = 0
        for y in range(width):
            i = y * stride + x
            code_hi = _DECODE_CODES[bit][(plane[i] >> 4) & 0xF]
            bit = code_hi & 1
            code_lo = _DECODE_CODES[bit][plane[i] & 0xF]
            bit = code_lo & 1
            plane[i] = (code_hi << 4) | code_lo


def uncompress(data: bytes) -> bytes:
    """Decompress .pic data back into a square 2bpp image."""
    reader = _BitReader(bytes(data))
    width = reader.number(4)
    if reader.number(4) != width:
        raise ToolError("Image is not a square")
    rams: list[bytearray] = [bytearray(), bytearray()]
    order = reader.bit()
    rams[order] = bytearray(_fill_plane(reader, width))
    mode = reader.bit()
    if mode:
        mode += reader.bit()
    rams[order ^ 1] = bytearray(_fill_plane(reader, width))
    _uncompress_plane(rams[order], width)
    if mode != 1:
        _uncompress_plane(rams[order ^ 1], width)
    if mode != 0:
        rams[order ^ 1] = bytearray(a ^ b for a, b in zip(rams[order ^ 1], rams[order]))
    interleaved = bytearray(len(rams[0]) * 2)
    interleaved[0::2] = rams[0]
    interleaved[1::2] = rams[1]
    return transpose_tiles(bytes(interleaved), width)


def _usage_exit(status: int) -> None:
    print(f"Usage: {PROGRAM_NAME} {USAGE_OPTS}", file=sys.stderr)
    raise SystemExit(status)


def _parse_args(argv: list[str]) -> tuple[bool, list[str]]:
    try:
        opts, args = getopt.gnu_getopt(list(argv), "uh", ["uncompress", "help"])
    except getopt.GetoptError as exc:
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        _usage_exit(1)
    uncompress_mode = False
    for name, _ in opts:
        if name in ("-u", "--uncompress"):
            uncompress_mode = True
        elif name in ("-h", "--help"):
            _usage_exit(0)
    return uncompress_mode, args


def main(argv: list[str] | None = None) -> int:
    uncompress_mode, args = _parse_args(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        _usage_exit(1)
    try:
        data = read_file(args[0])
        result = uncompress(data) if uncompress_mode else compress(data)
        write_file(args[1], result)
    except ToolError as exc:
        print(f"{PROGRAM_NAME}: {exc}", file=sys.stderr)
        return 1
    return 0