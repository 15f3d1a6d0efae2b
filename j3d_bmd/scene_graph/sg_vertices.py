"""Vertex pool (VTX1) decode and encode.

VTX1 header (after magic/size):
    u32 formatOffset            always 0x40
    u32 dataOffsets[13]         pos, nrm, nbt, clr0, clr1, tex0..tex7 (0 = absent)

Format records start at formatOffset, 16 bytes each, until attr == 0xFF:
    u32 attr, u32 componentCount, u32 componentType, u8 fraction, 3 pad bytes

Numeric arrays are fixed-point when componentType is an integer type:
    value = raw_int / 2^fraction
Color arrays use packed GX color formats and are decoded to 0..1 RGBA.

Every attribute is decoded to a float64 numpy array of shape
(elements, components) so callers handle one representation no matter
which encoding the file used.
"""

import struct
import logging
from dataclasses import dataclass

import numpy as np

from ..bmd_format.bmd_constants import (
    MAGIC_VTX1, GX_VA_POS, GX_VA_NRM, GX_VA_NBT, GX_VA_CLR0, GX_VA_CLR1,
    GX_VA_TEX0, GX_VA_TEX7, GX_VA_NULL, VTX_SLOT_COUNT, VTX_SLOT_BY_ATTR,
    COMP_POS_XY, COMP_POS_XYZ, COMP_NRM_XYZ, COMP_TEX_S, COMP_TEX_ST,
    COMP_F32, COMPONENT_DTYPES,
    CLR_RGB565, CLR_RGB8, CLR_RGBX8, CLR_RGBA4, CLR_RGBA6, CLR_RGBA8,
    COLOR_ELEMENT_SIZES,
)
from ..bmd_format.bmd_header import (
    read_section_header, begin_section, finish_section, pad_buffer,
)
from ..bmd_format.bmd_types import compute_table_sizes

_log = logging.getLogger("bmd_vertices")

VTX1_FORMAT_OFFSET = 0x40
FORMAT_RECORD = struct.Struct(">IIIBBH")


def is_color_attr(attr):
    return attr in (GX_VA_CLR0, GX_VA_CLR1)


def components_per_element(attr, component_count):
    """Float components per element for a numeric attribute, or None if unsupported."""
    if attr == GX_VA_POS:
        return {COMP_POS_XY: 2, COMP_POS_XYZ: 3}.get(component_count)
    if attr == GX_VA_NRM:
        return {COMP_NRM_XYZ: 3}.get(component_count)
    if GX_VA_TEX0 <= attr <= GX_VA_TEX7:
        return {COMP_TEX_S: 1, COMP_TEX_ST: 2}.get(component_count)
    return None


@dataclass(frozen=True)
class VertexFormat:
    """One VTX1 format record."""
    attr: int
    component_count: int
    component_type: int
    fraction: int = 0


class VertexAttributeArray:
    """Decoded data for one vertex attribute."""

    __slots__ = ('format', 'values')

    def __init__(self, fmt, values):
        self.format = fmt
        self.values = values    # np.ndarray, float64, shape (n, components)

    def __len__(self):
        return len(self.values)

    def __getitem__(self, index):
        return tuple(float(v) for v in self.values[index])

    def __repr__(self):
        return f"VertexAttributeArray(attr={self.format.attr}, count={len(self.values)})"


# ---------------------------------------------------------------------------
# Element codecs
# ---------------------------------------------------------------------------

def decode_numeric(raw, component_type, fraction, components):
    """Decode packed numeric components into a (n, components) float array."""
    dtype, width, _, _ = COMPONENT_DTYPES[component_type]
    count = len(raw) // (width * components)
    if count == 0:
        return np.zeros((0, components), dtype=np.float64)
    ints = np.frombuffer(raw, dtype=dtype, count=count * components)
    values = ints.astype(np.float64).reshape(count, components)
    if component_type != COMP_F32:
        values /= float(1 << fraction)
    return values


def encode_numeric(values, component_type, fraction):
    """Inverse of decode_numeric: round to nearest and saturate."""
    dtype, _, lo, hi = COMPONENT_DTYPES[component_type]
    values = np.asarray(values, dtype=np.float64)
    if component_type == COMP_F32:
        return values.astype(dtype).tobytes()
    scaled = np.clip(np.rint(values * float(1 << fraction)), lo, hi)
    return scaled.astype(dtype).tobytes()


def _expand(channel, bits):
    """Replicate the high bits of a sub-8-bit channel into the low bits."""
    return (channel << (8 - bits)) | (channel >> (2 * bits - 8))


def decode_colors(raw, color_type):
    """Decode packed GX colors into a (n, 4) float array of 0..1 RGBA."""
    size = COLOR_ELEMENT_SIZES[color_type]
    count = len(raw) // size
    if count == 0:
        return np.zeros((0, 4), dtype=np.float64)
    raw = raw[:count * size]

    if color_type == CLR_RGB565:
        v = np.frombuffer(raw, dtype=">u2").astype(np.uint32)
        rgba = np.stack([
            _expand((v >> 11) & 0x1F, 5),
            _expand((v >> 5) & 0x3F, 6),
            _expand(v & 0x1F, 5),
            np.full_like(v, 0xFF),
        ], axis=1)
    elif color_type in (CLR_RGB8, CLR_RGBX8):
        b = np.frombuffer(raw, dtype=np.uint8).reshape(count, size).astype(np.uint32)
        rgba = np.concatenate([b[:, :3], np.full((count, 1), 0xFF, dtype=np.uint32)], axis=1)
    elif color_type == CLR_RGBA4:
        v = np.frombuffer(raw, dtype=">u2").astype(np.uint32)
        rgba = np.stack([((v >> s) & 0xF) * 0x11 for s in (12, 8, 4, 0)], axis=1)
    elif color_type == CLR_RGBA6:
        b = np.frombuffer(raw, dtype=np.uint8).reshape(count, 3).astype(np.uint32)
        v = (b[:, 0] << 16) | (b[:, 1] << 8) | b[:, 2]
        rgba = np.stack([_expand((v >> s) & 0x3F, 6) for s in (18, 12, 6, 0)], axis=1)
    elif color_type == CLR_RGBA8:
        rgba = np.frombuffer(raw, dtype=np.uint8).reshape(count, 4).astype(np.uint32)
    else:
        raise ValueError(f"Unknown color type {color_type}")

    return rgba.reshape(count, 4).astype(np.float64) / 255.0


def encode_colors(values, color_type):
    """Inverse of decode_colors. Sub-8-bit channels keep their high bits."""
    c = np.clip(np.rint(np.asarray(values, dtype=np.float64) * 255.0), 0, 255).astype(np.uint32)
    c = c.reshape(-1, 4)
    r, g, b, a = c[:, 0], c[:, 1], c[:, 2], c[:, 3]

    if color_type == CLR_RGB565:
        packed = ((r >> 3) << 11) | ((g >> 2) << 5) | (b >> 3)
        return packed.astype(">u2").tobytes()
    if color_type == CLR_RGB8:
        return np.stack([r, g, b], axis=1).astype(np.uint8).tobytes()
    if color_type == CLR_RGBX8:
        return np.stack([r, g, b, np.full_like(r, 0xFF)], axis=1).astype(np.uint8).tobytes()
    if color_type == CLR_RGBA4:
        packed = ((r >> 4) << 12) | ((g >> 4) << 8) | ((b >> 4) << 4) | (a >> 4)
        return packed.astype(">u2").tobytes()
    if color_type == CLR_RGBA6:
        packed = ((r >> 2) << 18) | ((g >> 2) << 12) | ((b >> 2) << 6) | (a >> 2)
        return np.stack([packed >> 16, packed >> 8, packed], axis=1).astype(np.uint8).tobytes()
    if color_type == CLR_RGBA8:
        return c.astype(np.uint8).tobytes()
    raise ValueError(f"Unknown color type {color_type}")


# ---------------------------------------------------------------------------
# VTX1 section
# ---------------------------------------------------------------------------

class VertexPool:
    """All vertex attribute arrays of a model, keyed by GX attribute."""

    def __init__(self):
        self.arrays = {}

    def set_attribute(self, attr, values, component_count, component_type, fraction=0):
        """Store decoded values for attr under the given on-disk encoding."""
        width = 4 if is_color_attr(attr) else components_per_element(attr, component_count)
        if width is None:
            raise ValueError(f"Unsupported component count {component_count} for attribute {attr}")
        array = np.asarray(values, dtype=np.float64).reshape(-1, width)
        fmt = VertexFormat(attr, component_count, component_type, fraction)
        self.arrays[attr] = VertexAttributeArray(fmt, array)
        return self.arrays[attr]

    def get(self, attr):
        return self.arrays.get(attr)

    @property
    def positions(self):
        return self.arrays.get(GX_VA_POS)

    @property
    def normals(self):
        return self.arrays.get(GX_VA_NRM)

    def colors(self, channel):
        return self.arrays.get(GX_VA_CLR0 + channel)

    def texcoords(self, channel):
        return self.arrays.get(GX_VA_TEX0 + channel)

    @property
    def vertex_count(self):
        positions = self.positions
        return len(positions) if positions is not None else 0

    @classmethod
    def read(cls, data, offset, vertex_count=None, config=None):
        """Parse a VTX1 section starting at offset.

        Args:
            data: bytes of the whole file
            offset: absolute offset of the section
            vertex_count: position count declared by INF1 (optional)
            config: ReadConfig (optional)

        Returns:
            (VertexPool, section size)
        """
        size = read_section_header(data, offset, MAGIC_VTX1)
        format_offset = struct.unpack_from(">I", data, offset + 8)[0]
        data_offsets = list(struct.unpack_from(">13I", data, offset + 12))
        extents = compute_table_sizes(data_offsets, size)

        pool = cls()
        pos = offset + format_offset
        while True:
            attr, comp_count, comp_type, fraction, _, _ = FORMAT_RECORD.unpack_from(data, pos)
            pos += FORMAT_RECORD.size
            if attr == GX_VA_NULL:
                break
            fmt = VertexFormat(attr, comp_count, comp_type, fraction)
            slot = VTX_SLOT_BY_ATTR.get(attr)
            if slot is None or data_offsets[slot] == 0:
                _log.debug("VTX1: attribute %d has no data slot, skipped", attr)
                continue
            start = offset + data_offsets[slot]
            raw = bytes(data[start:start + extents[slot]])
            values = _decode_attribute(fmt, raw)
            if values is None:
                continue
            pool.arrays[attr] = VertexAttributeArray(fmt, values)

        trim = config.trim_positions_to_vertex_count if config is not None else True
        positions = pool.positions
        if trim and vertex_count and positions is not None and len(positions) > vertex_count:
            positions.values = positions.values[:vertex_count]

        _log.debug("VTX1: %d attributes, %d positions", len(pool.arrays), pool.vertex_count)
        return pool, size

    def write(self):
        """Serialize as a VTX1 section."""
        ordered = sorted(
            (a for a in self.arrays.values() if a.format.attr in VTX_SLOT_BY_ATTR),
            key=lambda a: VTX_SLOT_BY_ATTR[a.format.attr],
        )

        buf = begin_section(MAGIC_VTX1)
        buf += struct.pack(">I", VTX1_FORMAT_OFFSET)
        slots_at = len(buf)
        buf += b"\0" * (4 * VTX_SLOT_COUNT)

        for array in ordered:
            fmt = array.format
            buf += FORMAT_RECORD.pack(fmt.attr, fmt.component_count, fmt.component_type,
                                      fmt.fraction, 0xFF, 0xFFFF)
        buf += FORMAT_RECORD.pack(GX_VA_NULL, 1, 0, 0, 0xFF, 0xFFFF)
        pad_buffer(buf, 32)

        for array in ordered:
            slot = VTX_SLOT_BY_ATTR[array.format.attr]
            struct.pack_into(">I", buf, slots_at + 4 * slot, len(buf))
            buf += _encode_attribute(array)
            pad_buffer(buf, 32)

        return finish_section(buf)

    def __repr__(self):
        return f"VertexPool(attrs={sorted(self.arrays)}, positions={self.vertex_count})"


def _decode_attribute(fmt, raw):
    """Decode one attribute, or None when the format is not covered."""
    if is_color_attr(fmt.attr):
        if fmt.component_type not in COLOR_ELEMENT_SIZES:
            _log.debug("VTX1: unknown color type %d for attribute %d",
                       fmt.component_type, fmt.attr)
            return None
        return decode_colors(raw, fmt.component_type)

    if fmt.attr == GX_VA_NBT:
        _log.debug("VTX1: NBT arrays are not decoded")
        return None
    components = components_per_element(fmt.attr, fmt.component_count)
    if components is None or fmt.component_type not in COMPONENT_DTYPES:
        _log.debug("VTX1: unsupported format %s", fmt)
        return None
    return decode_numeric(raw, fmt.component_type, fmt.fraction, components)


def _encode_attribute(array):
    fmt = array.format
    if is_color_attr(fmt.attr):
        return encode_colors(array.values, fmt.component_type)
    return encode_numeric(array.values, fmt.component_type, fmt.fraction)
