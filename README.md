# romtools

Command-line helpers used while building Game Boy ROMs from assembly
sources. Each tool works on plain files and can also be used from Python.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Commands

### `romtools-gfx`

Cleans up tile graphics (`.1bpp` / `.2bpp`) after conversion from PNG.

```
romtools-gfx [--trim-whitespace] [--remove-whitespace] [--interleave]
             [--remove-duplicates [--keep-whitespace]]
             [--remove-xflip] [--remove-yflip] [--preserve indexes]
             [-d|--depth depth] [-p|--png filename.png] [-o|--out outfile] infile
```

- `--trim-whitespace` drops blank (all-zero) tiles from the end of the
  image; the first tile is always kept.
- `--remove-whitespace` drops every blank tile.
- `--remove-duplicates` drops tiles identical to an earlier kept tile; add
  `--keep-whitespace` to leave blank tiles alone.
- `--remove-xflip` / `--remove-yflip` drop tiles whose mirror image equals
  an earlier kept tile. Giving both also removes tiles flipped both ways.
- `--interleave` reorders tiles so that pairs of rows form 8x16 columns; it
  needs `--png` to read the image width from the PNG header.
- `--preserve 0x19,0x76` protects the listed tile indexes from removal.
- `--depth` is the bits per pixel (default 2).

Steps run in a fixed order: trim, interleave, duplicates, flips, whitespace.
The result is only written when `-o` is given.

### `romtools-pkmncompress`

Compresses a square 2bpp picture (at most 15x15 tiles) into the `.pic`
format, trying every encoding and keeping the smallest, or expands a
`.pic` file back with `-u`.

```
romtools-pkmncompress infile.2bpp outfile.pic
romtools-pkmncompress -u infile.pic outfile.2bpp
```

### `romtools-scan-includes`

Prints, space separated, every file named by `INCLUDE` and `INCBIN`
directives, following `INCLUDE`d files recursively. Comments and string
literals are ignored. Files that cannot be opened are skipped; with
`-s/--strict` this is an error instead.

```
romtools-scan-includes [-s|--strict] main.asm
```

### `romtools-make-patch`

Fills in a patch template from a symbol file and the patched and original
ROMs, then checks that every difference between the ROMs lies inside a
patched region (the header checksum is always allowed to differ).
Uncovered differences produce a warning on standard error.

```
romtools-make-patch values.sym patched.gbc original.gbc vc.patch.template vc.patch
```

Template commands are written in braces: `{patch}`, `{patch offset length}`,
`{db <Label}`, `{dws Label+1 Other}`, `{hex @ 4}` and their upper-case and
suffixed variants. Each `[Name]` section selects the `.VC_Name` label from
the symbol file (non-identifier characters become underscores); `[Name@Alt]`
selects `.VC_Alt` instead. Lines starting with `;` are copied unchanged.

## Library use

```python
from romtools.gfx import GfxOptions, process
from romtools.pkmncompress import compress, uncompress
from romtools.scan_includes import scan_file

options = GfxOptions(remove_duplicates=True)
tiles = process(raw_tiles, options, png_width=None)

pic = compress(two_bpp_data)
restored = uncompress(pic)

for path in scan_file("main.asm"):
    print(path)
```

`romtools.make_patch` offers `parse_symbols`, `process_template` and
`verify_completeness` for working with patch templates in memory.

Errors are raised as `romtools.common.ToolError`.