import struct

import pytest

from j3d_bmd.bmd_format.bmd_constants import (
    MAGIC_BMD3, MAGIC_BDL4, MAGIC_INF1, MAGIC_VTX1, DEFAULT_FILE_TAG, PADDING_BYTES,
)
from j3d_bmd.bmd_format.bmd_header import (
    BMDHeader, read_section_header, begin_section, finish_section,
    pad_buffer, pad_buffer_zero,
)
from j3d_bmd.bmd_format.bmd_types import (
    hash_name, read_string_table, build_string_table, compute_table_sizes, IndexedTable,
)
from j3d_bmd.format_profiles import detect_profile, get_profile


def test_padding_filler_starts_from_first_character():
    buf = bytearray(b"ab")
    pad_buffer(buf, 8)
    assert bytes(buf) == b"abHack.i"


def test_padding_is_noop_when_aligned():
    buf = bytearray(b"x" * 32)
    pad_buffer(buf, 32)
    assert len(buf) == 32


def test_filler_is_latin1_copyright_text():
    assert PADDING_BYTES[8] == 0xA9
    assert len(PADDING_BYTES) == 45


def test_zero_padding():
    buf = bytearray(b"\x90")
    pad_buffer_zero(buf, 32)
    assert len(buf) == 32
    assert buf[1:] == bytes(31)


def test_finish_section_pads_and_patches_size():
    buf = begin_section(MAGIC_INF1)
    buf += b"\1\2\3"
    section = finish_section(buf)
    assert len(section) == 32
    assert struct.unpack_from(">I", section, 4)[0] == 32
    assert section[11:16] == b"Hack."


def test_read_section_header_checks_magic():
    section = finish_section(begin_section(MAGIC_VTX1))
    assert read_section_header(section, 0, MAGIC_VTX1) == 32
    with pytest.raises(ValueError):
        read_section_header(section, 0, MAGIC_INF1)


def test_read_section_header_rejects_overlong_size():
    section = bytearray(finish_section(begin_section(MAGIC_VTX1)))
    struct.pack_into(">I", section, 4, 4096)
    with pytest.raises(ValueError):
        read_section_header(bytes(section), 0, MAGIC_VTX1)


def test_header_round_trip():
    header = BMDHeader()
    header.magic = MAGIC_BDL4
    header.file_size = 0x1234
    header.section_count = 9
    raw = header.write()
    assert len(raw) == 32

    parsed = BMDHeader.read(raw)
    assert parsed.magic == MAGIC_BDL4
    assert parsed.file_size == 0x1234
    assert parsed.section_count == 9
    assert parsed.tag == DEFAULT_FILE_TAG
    assert parsed.has_command_block


def test_header_rejects_bad_magic():
    with pytest.raises(ValueError):
        BMDHeader.read(b"J3D2bmd2" + bytes(24))
    with pytest.raises(ValueError):
        BMDHeader.read(MAGIC_BMD3)


def test_name_hash():
    assert hash_name("") == 0
    assert hash_name("a") == 97
    assert hash_name("ab") == 97 * 3 + 98


def test_string_table_round_trip():
    names = ["root", "spine", "", "arm"]
    table = build_string_table(names)
    count, marker = struct.unpack_from(">HH", table, 0)
    assert (count, marker) == (4, 0xFFFF)
    assert struct.unpack_from(">H", table, 4)[0] == hash_name("root")
    assert read_string_table(b"\0" * 8 + table, 8) == names


def test_string_table_shift_jis():
    names = ["体"]
    assert read_string_table(build_string_table(names), 0) == names


def test_table_sizes_skip_absent_tables():
    assert compute_table_sizes([20, 0, 36], 50) == [16, 0, 14]
    assert compute_table_sizes([0, 0], 50) == [0, 0]


def test_indexed_table_find_or_insert():
    table = IndexedTable(seed=(2, 1, 0))
    assert table.add(1) == 1
    assert table.add(7) == 3
    assert table.add(7) == 3
    assert list(table) == [2, 1, 0, 7]


def test_profiles_by_magic():
    assert detect_profile(MAGIC_BMD3).profile_id == "bmd3"
    bdl = detect_profile(MAGIC_BDL4)
    assert bdl.has_command_block
    assert bdl.section_count == 9
    assert get_profile("bmd3").section_count == 8
    with pytest.raises(ValueError):
        detect_profile(b"J3D1bmd1")
