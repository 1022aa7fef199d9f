import pytest

from romtools.common import ToolError
from romtools.make_patch import (
    Patch,
    SymbolTable,
    main,
    parse_arg_value,
    parse_number,
    parse_symbol_value,
    parse_symbols,
    process_template,
    verify_completeness,
)

SYMBOLS_TEXT = (
    "; generated symbols\r\n"
    "00:0160 Func.VC_Thing\n"
    "00:0163 Func.VC_Thing_End\n"
    "01:4abc Foo\t; trailing comment\n"
    "02:4010 Far\n"
    "00:01ab Mixed\n"
    "00:0170 Other.VC_My_Patch\n"
    "c000\n"
)


@pytest.fixture
def symbols():
    return parse_symbols(SYMBOLS_TEXT)


@pytest.fixture
def roms():
    orig = bytes(0x200)
    new = bytearray(orig)
    new[0x160:0x163] = b"\xab\xcd\xef"
    return bytes(new), orig


def _run(command, symbols, roms):
    new, orig = roms
    text, _ = process_template("[Thing]\n" + command, new, orig, symbols)
    assert text.startswith("[Thing]\n")
    return text[len("[Thing]\n"):]


def test_parse_number_round_trips():
    for n in (0, 7, 255, 4096):
        assert parse_number(str(n), 10) == n
        assert parse_number(hex(n), 0) == n
        assert parse_number(format(n, "x"), 16) == n


@pytest.mark.parametrize("text", ["", "12x", "-1", "zz", " "])
def test_parse_number_rejects(text):
    with pytest.raises(ToolError, match="Cannot parse number"):
        parse_number(text, 0)


def test_parse_symbol_value():
    assert parse_symbol_value("01:4000") == (1, 0x4000)
    assert parse_symbol_value("c000") == (0, 0xC000)
    with pytest.raises(ToolError):
        parse_symbol_value("01:xyz")


def test_symbol_offsets():
    table = SymbolTable()
    home = table.add("Home", 0, 0x0150)
    bank1 = table.add("One", 1, 0x4100)
    bank2 = table.add("Two", 2, 0x4100)
    ram = table.add("Ram", 0, 0x8000)
    assert home.offset == home.address
    assert bank1.offset == bank1.address
    assert bank2.offset - bank1.offset == 0x4000
    assert ram.offset == 0


def test_find_local_and_exact():
    table = SymbolTable()
    table.add("Func.VC_patch", 0, 0x100)
    assert table.find(".VC_patch").name == "Func.VC_patch"
    assert table.find("Func.VC_patch").address == 0x100
    with pytest.raises(ToolError, match="Unknown symbol"):
        table.find("VC_patch")


def test_find_prefers_latest_definition():
    table = SymbolTable()
    table.add("Dup", 0, 0x100)
    table.add("Dup", 0, 0x200)
    assert table.find("Dup").address == 0x200


def test_parse_symbols(symbols):
    names = [symbol.name for symbol in symbols]
    assert names == ["Func.VC_Thing", "Func.VC_Thing_End", "Foo", "Far", "Mixed", "Other.VC_My_Patch"]
    assert symbols.find("Foo").address == 0x4ABC
    assert len(symbols) == 6


def test_parse_arg_value_operators(symbols):
    assert parse_arg_value("==", False, symbols, None) == 0
    assert parse_arg_value(">=", False, symbols, None) == 3
    assert parse_arg_value("||", False, symbols, None) == 0x11


def test_parse_arg_value_literals(symbols):
    assert parse_arg_value("0x20", False, symbols, None) == parse_number("0x20", 0)
    assert parse_arg_value("+5", False, symbols, None) == 5


def test_parse_arg_value_symbols(symbols):
    foo = symbols.find("Foo")
    low = parse_arg_value("<Foo", False, symbols, None)
    high = parse_arg_value(">Foo", False, symbols, None)
    assert (high << 8) | low == foo.address
    assert parse_arg_value("Foo+2", False, symbols, None) == parse_arg_value("Foo", False, symbols, None) + 2
    assert parse_arg_value("Far", True, symbols, None) == symbols.find("Far").offset
    assert parse_arg_value("Far", False, symbols, None) == symbols.find("Far").address
    assert parse_arg_value("@", False, symbols, "Foo") == foo.address
    with pytest.raises(ToolError):
        parse_arg_value("@", False, symbols, None)


def test_process_template(symbols, roms):
    new, orig = roms
    template = (
        "; header {kept}\n"
        "[Thing]\n"
        "Address = {HEX @}\n"
        "Fixcode = {db 0x12}\n"
        "Bytes = {patch}\n"
    )
    text, patches = process_template(template, new, orig, symbols)
    assert text == (
        "; header {kept}\n"
        "[Thing]\n"
        "Address = 0x160\n"
        "Fixcode = a1:12\n"
        "Bytes = a3:ab cd ef\n"
    )
    assert patches == [Patch(0x14E, 2), Patch(0x160, 3)]
    assert verify_completeness(orig, new, patches)


def test_patch_arguments(symbols, roms):
    assert _run("{patch 1 1}", symbols, roms) == "0xcd"
    assert _run("{PATCH 1 2}", symbols, roms) == "a2:CD EF"
    assert _run("{patch/}", symbols, roms) == "ab cd ef"
    assert _run("{patch_}", symbols, roms) == "a3: ab cd ef"


def test_patch_warns_when_unchanged(symbols, capsys):
    rom = bytes(0x200)
    text, patches = process_template("[Thing]\n{patch}", rom, rom, symbols)
    assert text == "[Thing]\n" + "a3:00 00 00"
    assert "doesn't alter the ROM" in capsys.readouterr().err
    assert patches[-1] == Patch(0x160, 3)


def test_db_suffixes_and_spacing(symbols, roms):
    assert _run("{db/ 5}", symbols, roms) == "05"
    assert _run("{db_ 5}", symbols, roms) == "a1: 05"
    assert _run("{  db   0x12  }", symbols, roms) == "a1:12"
    with pytest.raises(ToolError, match="Invalid value"):
        _run("{db 0x100}", symbols, roms)
    with pytest.raises(ToolError, match="Invalid arguments"):
        _run("{db 1 2}", symbols, roms)


def test_dws(symbols, roms):
    assert _run("{dws Foo}", symbols, roms) == "a2:bc 4a"
    assert _run("{dws/ Foo}", symbols, roms) == "bc 4a"
    with pytest.raises(ToolError, match="Invalid arguments"):
        _run("{dws}", symbols, roms)


def test_hex_variants(symbols, roms):
    address = symbols.find("Mixed").address
    plain = _run("{hex Mixed 4}", symbols, roms)
    assert int(plain, 16) == address
    assert len(plain) == len("0x") + 4
    for variant in ("HEx", "Hex", "heX", "hEX", "HEX"):
        result = _run("{%s Mixed 4}" % variant, symbols, roms)
        assert result.lower() == plain
    assert _run("{HEx Mixed 4}", symbols, roms) != _run("{heX Mixed 4}", symbols, roms)
    assert _run("{HEx Mixed 4}", symbols, roms)[-2:].islower()


def test_hex_tilde_uses_address(symbols, roms):
    far = symbols.find("Far")
    assert int(_run("{hex~ Far}", symbols, roms), 16) == far.address
    assert int(_run("{hex Far}", symbols, roms), 16) == far.offset


def test_label_sanitising_and_alternate(symbols, roms):
    new, orig = roms
    text, _ = process_template("[My Patch] extra\n{hex @ 4}", new, orig, symbols)
    assert text.startswith("[My Patch] extra\n")
    assert int(text.split("\n")[1], 16) == symbols.find("Other.VC_My_Patch").offset
    text, _ = process_template("[Shown name@Thing]\n{patch 0 1}", new, orig, symbols)
    assert text == "[Shown name]\n0xab"


def test_template_errors(symbols, roms):
    new, orig = roms
    with pytest.raises(ToolError, match="Unknown command"):
        process_template("[Thing]\n{frob}", new, orig, symbols)
    with pytest.raises(ToolError, match="Unknown symbol"):
        process_template("[Missing]\n", new, orig, symbols)
    with pytest.raises(ToolError, match="No current patch"):
        process_template("{patch}", new, orig, symbols)
    with pytest.raises(ToolError, match="Invalid arguments"):
        process_template("[Thing]\n{patch 1 2 3}", new, orig, symbols)


def test_verify_completeness(capsys):
    orig = bytes(0x200)
    checksum = bytearray(orig)
    checksum[0x14E] = 0x12
    checksum[0x14F] = 0x34
    patches = [Patch(0x14E, 2)]
    assert verify_completeness(orig, bytes(checksum), patches)
    changed = bytearray(orig)
    changed[0x10] = 1
    assert not verify_completeness(orig, bytes(changed), patches)
    assert "Unpatched difference at offset: 0x10" in capsys.readouterr().err
    assert not verify_completeness(orig, orig + b"\x00", patches)


def test_main(tmp_path, roms, capsys):
    new, orig = roms
    (tmp_path / "values.sym").write_text(SYMBOLS_TEXT)
    (tmp_path / "new.gbc").write_bytes(new)
    (tmp_path / "orig.gbc").write_bytes(orig)
    (tmp_path / "vc.patch.template").write_text("[Thing]\nBytes = {patch}\n")
    out = tmp_path / "vc.patch"
    result = main([
        str(tmp_path / "values.sym"),
        str(tmp_path / "new.gbc"),
        str(tmp_path / "orig.gbc"),
        str(tmp_path / "vc.patch.template"),
        str(out),
    ])
    assert result == 0
    assert out.read_text() == "[Thing]\nBytes = a3:ab cd ef\n"
    assert "Not all ROM differences" not in capsys.readouterr().err


def test_main_reports_errors(tmp_path, roms):
    new, orig = roms
    (tmp_path / "values.sym").write_text(SYMBOLS_TEXT)
    (tmp_path / "new.gbc").write_bytes(new)
    (tmp_path / "orig.gbc").write_bytes(orig)
    (tmp_path / "bad.template").write_text("[Nowhere]\n")
    result = main([
        str(tmp_path / "values.sym"),
        str(tmp_path / "new.gbc"),
        str(tmp_path / "orig.gbc"),
        str(tmp_path / "bad.template"),
        str(tmp_path / "vc.patch"),
    ])
    assert result == 1


def test_main_usage():
    with pytest.raises(SystemExit) as info:
        main(["only", "two"])
    assert info.value.code == 1