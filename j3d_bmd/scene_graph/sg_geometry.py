"""Shape geometry (SHP1): descriptors, packets, and display-list primitives.

SHP1 header (after magic/size):
    u16 shapeCount, u16 pad
    u32 shapeOffset        0x28-byte shape records
    u32 remapOffset        u16 per logical shape
    u32 nameOffset         optional name table (0 = none)
    u32 descriptorOffset   (attr:u32, input:u32) lists, each ended by attr 0xFF
    u32 matrixTableOffset  u16 DRW1 indices, all packets back to back
    u32 displayListOffset  GX display lists, 32-byte aligned, zero padded
    u32 matrixGroupOffset  per packet: u16 useMatrix, u16 count, u32 firstIndex
    u32 packetOffset       per packet: u32 size, u32 offset into display lists

Each display list is a run of primitives:
    u8 type (0 = end), u16 vertexCount, then per vertex one index per
    descriptor attribute (u8 for Direct/Index8, u16 for Index16).

Direct position-matrix indices are stored as slot * 3 (the GX matrix
memory row) and are divided back to packet slots on read.
"""

import copy
import struct
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..bmd_format.bmd_constants import (
    MAGIC_SHP1, GX_VA_PNMTXIDX, GX_VA_TEX7MTXIDX, GX_VA_NULL,
    INPUT_NONE, INPUT_DIRECT, INPUT_INDEX8, INPUT_INDEX16,
    PRIM_NONE, PRIMITIVE_TYPES, INDEX_NONE_16, NODE_SHAPE, NODE_MATERIAL,
)
from ..bmd_format.bmd_header import (
    read_section_header, begin_section, finish_section, pad_buffer, pad_buffer_zero,
)
from ..bmd_format.bmd_types import (
    read_string_table, build_string_table, IndexedTable,
)
from ..actor.skinning import resolve_matrix_slot

_log = logging.getLogger("bmd_geometry")

SHP1_HEADER_SIZE = 0x2C
SHAPE_RECORD = struct.Struct(">BBHHHHHf3f3f")
MATRIX_GROUP = struct.Struct(">HHI")
PACKET_LOCATION = struct.Struct(">II")
DESCRIPTOR_ENTRY = struct.Struct(">II")


@dataclass(frozen=True)
class VertexDescriptor:
    """Ordered (attribute, input type) pairs; order is the order indices arrive in."""
    attributes: Tuple[Tuple[int, int], ...] = ()

    def has(self, attr):
        return any(a == attr for a, _ in self.attributes)

    def input_for(self, attr):
        for a, kind in self.attributes:
            if a == attr:
                return kind
        return INPUT_NONE

    @property
    def attrs(self):
        return tuple(a for a, _ in self.attributes)


class Vertex:
    """Attribute indices of one vertex, plus its resolved skin weight."""

    __slots__ = ('indices', 'weight')

    def __init__(self, indices=None):
        self.indices = indices if indices is not None else {}
        self.weight = None      # actor.skinning.Weight, filled after load

    @property
    def matrix_slot(self):
        return self.indices.get(GX_VA_PNMTXIDX, 0)

    def __eq__(self, other):
        return isinstance(other, Vertex) and self.indices == other.indices

    def __repr__(self):
        return f"Vertex({self.indices})"


class Primitive:
    __slots__ = ('primitive_type', 'vertices')

    def __init__(self, primitive_type, vertices=None):
        self.primitive_type = primitive_type
        self.vertices = vertices if vertices is not None else []

    def __eq__(self, other):
        return (isinstance(other, Primitive)
                and self.primitive_type == other.primitive_type
                and self.vertices == other.vertices)

    def __repr__(self):
        return f"Primitive(0x{self.primitive_type:02x}, {len(self.vertices)} vertices)"


class Packet:
    """A draw unit with its own matrix table (up to 10 DRW1 indices)."""

    __slots__ = ('matrix_indices', 'primitives', 'use_matrix_index')

    def __init__(self, matrix_indices=None, primitives=None, use_matrix_index=INDEX_NONE_16):
        self.matrix_indices = matrix_indices if matrix_indices is not None else []
        self.primitives = primitives if primitives is not None else []
        self.use_matrix_index = use_matrix_index

    def __repr__(self):
        return f"Packet(matrices={self.matrix_indices}, primitives={len(self.primitives)})"


class Shape:
    """One SHP1 shape: a descriptor shared by all of its packets."""

    __slots__ = ('name', 'matrix_type', 'bounding_radius', 'bbox_min', 'bbox_max',
                 'descriptor', 'packets')

    def __init__(self, descriptor=None):
        self.name = None
        self.matrix_type = 0
        self.bounding_radius = 0.0
        self.bbox_min = (0.0, 0.0, 0.0)
        self.bbox_max = (0.0, 0.0, 0.0)
        self.descriptor = descriptor if descriptor is not None else VertexDescriptor()
        self.packets = []

    def iter_vertices(self):
        for packet in self.packets:
            for primitive in packet.primitives:
                yield from primitive.vertices

    @property
    def vertex_count(self):
        return sum(1 for _ in self.iter_vertices())

    def __repr__(self):
        return f"Shape(packets={len(self.packets)}, attrs={self.descriptor.attrs})"


# ---------------------------------------------------------------------------
# Display lists
# ---------------------------------------------------------------------------

def _index_format(attr, kind):
    """struct format for one vertex index, or None when nothing is stored."""
    if kind == INPUT_NONE:
        return None
    if kind == INPUT_DIRECT:
        if GX_VA_PNMTXIDX <= attr <= GX_VA_TEX7MTXIDX:
            return "B"
        raise ValueError(f"SHP1: direct data for attribute {attr} is not supported")
    if kind == INPUT_INDEX8:
        return "B"
    if kind == INPUT_INDEX16:
        return ">H"
    raise ValueError(f"SHP1: unknown input type {kind} for attribute {attr}")


def read_display_list(data, start, size, descriptor):
    """Decode the primitives of one packet."""
    layout = [(attr, kind, _index_format(attr, kind)) for attr, kind in descriptor.attributes]
    primitives = []
    pos = start
    end = start + size
    while pos < end:
        primitive_type = data[pos]
        pos += 1
        if primitive_type == PRIM_NONE:
            break
        if primitive_type not in PRIMITIVE_TYPES:
            raise ValueError(f"SHP1: unknown primitive type 0x{primitive_type:02x} at 0x{pos - 1:x}")
        vertex_count = struct.unpack_from(">H", data, pos)[0]
        pos += 2

        vertices = []
        for _ in range(vertex_count):
            indices = {}
            for attr, kind, fmt in layout:
                if fmt is None:
                    continue
                if fmt == "B":
                    value = data[pos]
                    pos += 1
                else:
                    value = struct.unpack_from(fmt, data, pos)[0]
                    pos += 2
                if attr == GX_VA_PNMTXIDX and kind == INPUT_DIRECT:
                    value //= 3
                indices[attr] = value
            vertices.append(Vertex(indices))
        primitives.append(Primitive(primitive_type, vertices))
    return primitives


def build_display_list(primitives, descriptor):
    """Encode primitives, zero-padded to 32 bytes."""
    layout = [(attr, kind, _index_format(attr, kind)) for attr, kind in descriptor.attributes]
    buf = bytearray()
    for primitive in primitives:
        buf += struct.pack(">BH", primitive.primitive_type, len(primitive.vertices))
        for vertex in primitive.vertices:
            for attr, kind, fmt in layout:
                if fmt is None:
                    continue
                value = vertex.indices.get(attr, 0)
                if attr == GX_VA_PNMTXIDX and kind == INPUT_DIRECT:
                    value *= 3
                buf += struct.pack(fmt, value)
    pad_buffer_zero(buf, 32)
    return bytes(buf)


def compress_matrix_tables(shape):
    """Packet matrix tables with repeats of the previous packet's slot as 0xFFFF."""
    tables = []
    previous = None
    for packet_index, packet in enumerate(shape.packets):
        resolved = [resolve_matrix_slot(shape.packets, packet_index, slot, strict=False)
                    for slot in range(len(packet.matrix_indices))]
        written = []
        for slot, value in enumerate(resolved):
            if previous is not None and slot < len(previous) and previous[slot] == value:
                written.append(INDEX_NONE_16)
            else:
                written.append(value)
        tables.append(written)
        previous = resolved
    return tables


# ---------------------------------------------------------------------------
# SHP1 section
# ---------------------------------------------------------------------------

class ShapeTable:
    """SHP1: all shapes of a model."""

    def __init__(self):
        self.shapes = []

    def __len__(self):
        return len(self.shapes)

    def __iter__(self):
        return iter(self.shapes)

    def __getitem__(self, index):
        return self.shapes[index]

    @property
    def packet_count(self):
        return sum(len(shape.packets) for shape in self.shapes)

    @classmethod
    def read(cls, data, offset):
        """Parse an SHP1 section.

        Returns:
            (ShapeTable, section size)
        """
        size = read_section_header(data, offset, MAGIC_SHP1)
        (count, shape_off, remap_off, name_off, desc_off, matrix_off,
         dl_off, group_off, packet_off) = struct.unpack_from(">H2x8I", data, offset + 8)

        remap = struct.unpack_from(f">{count}H", data, offset + remap_off)
        names = read_string_table(data, offset + name_off) if name_off else []

        physical_count = max(remap) + 1 if remap else 0
        physical = []
        descriptors = {}
        for i in range(physical_count):
            (matrix_type, _, packet_count, desc_rel, first_group, first_packet, _,
             radius, *bounds) = SHAPE_RECORD.unpack_from(data, offset + shape_off + i * SHAPE_RECORD.size)

            if desc_rel not in descriptors:
                descriptors[desc_rel] = _read_descriptor(data, offset + desc_off + desc_rel)
            shape = Shape(descriptors[desc_rel])
            shape.matrix_type = matrix_type
            shape.bounding_radius = radius
            shape.bbox_min = tuple(bounds[0:3])
            shape.bbox_max = tuple(bounds[3:6])

            for p in range(packet_count):
                use_matrix, matrix_count, first_index = MATRIX_GROUP.unpack_from(
                    data, offset + group_off + (first_group + p) * MATRIX_GROUP.size)
                matrix_indices = list(struct.unpack_from(
                    f">{matrix_count}H", data, offset + matrix_off + first_index * 2))
                dl_size, dl_rel = PACKET_LOCATION.unpack_from(
                    data, offset + packet_off + (first_packet + p) * PACKET_LOCATION.size)
                primitives = read_display_list(data, offset + dl_off + dl_rel, dl_size,
                                               shape.descriptor)
                shape.packets.append(Packet(matrix_indices, primitives, use_matrix))
            physical.append(shape)

        table = cls()
        for i, physical_index in enumerate(remap):
            shape = physical[physical_index]
            if shape in table.shapes:
                shape = copy.deepcopy(shape)
            shape.name = names[i] if i < len(names) else None
            table.shapes.append(shape)

        _log.debug("SHP1: %d shapes, %d packets, %d descriptors",
                   len(table.shapes), table.packet_count, len(descriptors))
        return table, size

    def write(self, write_names=True):
        """Serialize as an SHP1 section. Shapes map 1:1 to records."""
        count = len(self.shapes)

        descriptors = IndexedTable()
        descriptor_bytes = bytearray()
        descriptor_offsets = []
        for shape in self.shapes:
            index = descriptors.add(shape.descriptor)
            if index == len(descriptor_offsets):
                descriptor_offsets.append(len(descriptor_bytes))
                for attr, kind in shape.descriptor.attributes:
                    descriptor_bytes += DESCRIPTOR_ENTRY.pack(attr, kind)
                descriptor_bytes += DESCRIPTOR_ENTRY.pack(GX_VA_NULL, INPUT_NONE)

        matrix_entries = []
        display_lists = bytearray()
        groups = bytearray()
        locations = bytearray()
        records = bytearray()
        packet_index = 0
        for shape in self.shapes:
            tables = compress_matrix_tables(shape)
            records += SHAPE_RECORD.pack(
                shape.matrix_type, 0xFF, len(shape.packets),
                descriptor_offsets[descriptors.add(shape.descriptor)],
                packet_index, packet_index, 0xFFFF,
                shape.bounding_radius, *shape.bbox_min, *shape.bbox_max,
            )
            for packet, table in zip(shape.packets, tables):
                groups += MATRIX_GROUP.pack(packet.use_matrix_index, len(table), len(matrix_entries))
                matrix_entries.extend(table)
                dl = build_display_list(packet.primitives, shape.descriptor)
                locations += PACKET_LOCATION.pack(len(dl), len(display_lists))
                display_lists += dl
                packet_index += 1

        buf = begin_section(MAGIC_SHP1)
        buf += struct.pack(">HH", count, 0xFFFF)
        offsets_at = len(buf)
        buf += b"\0" * 32

        shape_off = len(buf)
        buf += records

        remap_off = len(buf)
        buf += struct.pack(f">{count}H", *range(count))
        pad_buffer(buf, 4)

        name_off = 0
        if write_names and any(shape.name for shape in self.shapes):
            name_off = len(buf)
            buf += build_string_table([shape.name or "" for shape in self.shapes])
            pad_buffer(buf, 4)

        desc_off = len(buf)
        buf += descriptor_bytes

        matrix_off = len(buf)
        buf += struct.pack(f">{len(matrix_entries)}H", *matrix_entries)
        pad_buffer(buf, 32)

        dl_off = len(buf)
        buf += display_lists

        group_off = len(buf)
        buf += groups

        packet_off = len(buf)
        buf += locations

        struct.pack_into(">8I", buf, offsets_at, shape_off, remap_off, name_off, desc_off,
                         matrix_off, dl_off, group_off, packet_off)
        return finish_section(buf)

    def __repr__(self):
        return f"ShapeTable({len(self.shapes)} shapes, {self.packet_count} packets)"


def _read_descriptor(data, pos):
    attributes = []
    while True:
        attr, kind = DESCRIPTOR_ENTRY.unpack_from(data, pos)
        pos += DESCRIPTOR_ENTRY.size
        if attr == GX_VA_NULL:
            break
        attributes.append((attr, kind))
    return VertexDescriptor(tuple(attributes))


def make_descriptor(*attributes):
    """VertexDescriptor from (attr, input) pairs."""
    return VertexDescriptor(tuple(attributes))


def find_shape_material(scene_graph, shape_index) -> Optional[int]:
    """Material index drawing a shape, from the INF1 hierarchy (None if absent)."""
    index = scene_graph.find_ancestor_index(NODE_SHAPE, shape_index, NODE_MATERIAL)
    return index if index >= 0 else None
