import struct

import numpy as np
import pytest

from j3d_bmd.bmd_format.bmd_constants import (
    GX_VA_POS, GX_VA_NRM, GX_VA_CLR0, GX_VA_NBT, GX_VA_NULL,
    COMP_POS_XYZ, COMP_CLR_RGB, COMP_NRM_NBT,
    COMP_U8, COMP_S8, COMP_S16, COMP_F32,
    CLR_RGB565, CLR_RGB8, CLR_RGBA4, CLR_RGBA6, CLR_RGBA8,
)
from j3d_bmd.format_profiles import ReadConfig
from j3d_bmd.scene_graph.sg_vertices import (
    VertexPool, decode_numeric, encode_numeric, decode_colors, encode_colors,
    FORMAT_RECORD,
)


def test_fixed_point_decode():
    raw = struct.pack(">3h", 256, -128, 64)
    values = decode_numeric(raw, COMP_S16, 8, 3)
    assert values.tolist() == [[1.0, -0.5, 0.25]]


def test_fixed_point_saturates():
    raw = encode_numeric(np.array([[300.0, -300.0]]), COMP_S8, 0)
    assert struct.unpack(">2b", raw) == (127, -128)
    raw = encode_numeric(np.array([[-1.0]]), COMP_U8, 0)
    assert raw == b"\0"


@pytest.mark.parametrize("fraction", [0, 4, 8, 14])
def test_quantization_error_is_bounded(fraction):
    values = np.array([[0.1234, -0.9876, 0.5]])
    decoded = decode_numeric(encode_numeric(values, COMP_S16, fraction), COMP_S16, fraction, 3)
    assert np.all(np.abs(decoded - values) <= 0.5 / (1 << fraction))


def test_float_components_are_exact():
    values = np.array([[1.5, -2.25, 1e-3]], dtype=np.float32).astype(np.float64)
    decoded = decode_numeric(encode_numeric(values, COMP_F32, 0), COMP_F32, 0, 3)
    assert decoded.tolist() == values.tolist()


def test_empty_data_decodes_to_empty_array():
    assert decode_numeric(b"", COMP_S16, 0, 3).shape == (0, 3)
    assert decode_colors(b"", CLR_RGBA8).shape == (0, 4)


def test_rgb565_bit_replication():
    white, red = decode_colors(struct.pack(">2H", 0xFFFF, 0xF800), CLR_RGB565)
    assert white.tolist() == [1.0, 1.0, 1.0, 1.0]
    assert red.tolist() == [1.0, 0.0, 0.0, 1.0]


def test_rgba4_and_rgba6():
    (c,) = decode_colors(struct.pack(">H", 0xF00F), CLR_RGBA4)
    assert c.tolist() == [1.0, 0.0, 0.0, 1.0]
    (c,) = decode_colors(b"\xFF\xFF\xFF", CLR_RGBA6)
    assert c.tolist() == [1.0, 1.0, 1.0, 1.0]


def test_rgb8_has_opaque_alpha():
    (c,) = decode_colors(b"\x00\x80\xFF", CLR_RGB8)
    assert c[3] == 1.0
    assert c[1] == pytest.approx(128 / 255)


def test_color_encode_truncates_to_channel_width():
    colors = np.array([[1.0, 0.5, 0.0, 1.0]])
    assert encode_colors(colors, CLR_RGBA8) == bytes([255, 128, 0, 255])
    assert struct.unpack(">H", encode_colors(colors, CLR_RGBA4))[0] == 0xF80F


def test_pool_round_trip(model):
    section = model.vertices.write()
    assert len(section) % 32 == 0
    pool, size = VertexPool.read(section, 0, vertex_count=4)
    assert size == len(section)

    assert pool.positions.values.tolist() == model.vertices.positions.values.tolist()
    normals = pool.normals.values[:2]
    assert np.allclose(normals, model.vertices.normals.values, atol=0.5 / (1 << 14))
    texcoords = pool.texcoords(0).values[:3]
    assert np.allclose(texcoords, model.vertices.texcoords(0).values, atol=0.5 / (1 << 8))
    colors = pool.colors(0).values[:2]
    assert colors.tolist() == model.vertices.colors(0).values.tolist()
    assert pool.get(GX_VA_NRM).format.fraction == 14


def test_data_blocks_are_32_aligned(model):
    section = model.vertices.write()
    offsets = struct.unpack_from(">13I", section, 12)
    present = [o for o in offsets if o]
    assert len(present) == 4
    assert all(o % 32 == 0 for o in present)


def test_positions_trimmed_to_vertex_count():
    pool = VertexPool()
    pool.set_attribute(GX_VA_POS, [(1.0, 2.0, 3.0)], COMP_POS_XYZ, COMP_S16, 0)
    section = pool.write()

    trimmed, _ = VertexPool.read(section, 0, vertex_count=1)
    assert trimmed.positions.values.tolist() == [[1.0, 2.0, 3.0]]

    untrimmed, _ = VertexPool.read(section, 0, vertex_count=1,
                                   config=ReadConfig(trim_positions_to_vertex_count=False))
    assert len(untrimmed.positions) > 1


def test_unsupported_component_count_rejected():
    pool = VertexPool()
    with pytest.raises(ValueError):
        pool.set_attribute(GX_VA_NRM, [(0.0, 0.0, 1.0)], 5, COMP_S16)
    pool.set_attribute(GX_VA_CLR0, [(1.0, 1.0, 1.0, 1.0)], COMP_CLR_RGB, CLR_RGB8)
    assert pool.colors(0).values.shape == (1, 4)
    assert pool.normals is None


def test_nbt_attribute_is_skipped():
    section = bytearray(b"VTX1" + struct.pack(">I", 0xC0) + struct.pack(">I", 0x40))
    section += bytes(4 * 13)
    struct.pack_into(">I", section, 12, 0x80)          # positions
    struct.pack_into(">I", section, 12 + 4 * 2, 0xA0)  # nbt
    section += FORMAT_RECORD.pack(GX_VA_NBT, COMP_NRM_NBT, COMP_S16, 14, 0xFF, 0xFFFF)
    section += FORMAT_RECORD.pack(GX_VA_POS, COMP_POS_XYZ, COMP_F32, 0, 0xFF, 0xFFFF)
    section += FORMAT_RECORD.pack(GX_VA_NULL, 1, 0, 0, 0xFF, 0xFFFF)
    section += bytes(0x80 - len(section))
    section += struct.pack(">3f", 1.0, 2.0, 3.0) + bytes(20)
    section += bytes(32)

    pool, _ = VertexPool.read(bytes(section), 0, vertex_count=1)
    assert pool.get(GX_VA_NBT) is None
    assert pool.positions.values.tolist() == [[1.0, 2.0, 3.0]]
