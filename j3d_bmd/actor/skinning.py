"""Skin weights: envelopes (EVP1), draw matrices (DRW1), per-vertex resolution.

Geometry never names bones directly. A vertex selects a slot in its
packet's matrix table, the slot holds a DRW1 index, and the DRW1 entry
is either a single rigid bone or an EVP1 envelope of weighted bones:

    vertex.matrix_slot -> packet.matrix_indices[slot] -> DRW1 entry
        -> (bone, 1.0)                       if rigid
        -> EVP1 envelope (bones, weights)    if weighted

A packet slot of 0xFFFF means "whatever this slot held in the previous
packet of the same shape".
"""

import struct
import logging
from dataclasses import dataclass, field
from typing import List

from mathutils import Matrix

from ..bmd_format.bmd_constants import (
    MAGIC_EVP1, MAGIC_DRW1, INDEX_NONE_16, INVERSE_BIND_MATRIX_SIZE, GX_VA_PNMTXIDX,
)
from ..bmd_format.bmd_header import (
    read_section_header, begin_section, finish_section, pad_buffer,
)

_log = logging.getLogger("bmd_skinning")

EVP1_HEADER_SIZE = 0x1C
DRW1_HEADER_SIZE = 0x14


@dataclass
class Weight:
    """Parallel bone/weight lists. Weights are kept exactly as stored."""
    bone_indices: List[int] = field(default_factory=list)
    weights: List[float] = field(default_factory=list)

    @classmethod
    def rigid(cls, bone_index):
        return cls([bone_index], [1.0])

    def add(self, bone_index, weight):
        self.bone_indices.append(bone_index)
        self.weights.append(weight)

    def copy(self):
        return Weight(list(self.bone_indices), list(self.weights))

    def __len__(self):
        return len(self.bone_indices)


@dataclass(frozen=True)
class DrawEntry:
    """DRW1 entry: a bone index, or an envelope index when weighted."""
    weighted: bool
    index: int


def identity_inverse_bind():
    return Matrix.Identity(4)


# ---------------------------------------------------------------------------
# EVP1
# ---------------------------------------------------------------------------

class EnvelopeTable:
    """EVP1: weighted bone groups plus one inverse-bind matrix per joint."""

    def __init__(self):
        self.envelopes = []              # list of Weight
        self.inverse_bind_matrices = []  # list of 4x4 mathutils.Matrix

    @classmethod
    def read(cls, data, offset):
        """Parse an EVP1 section.

        Format:
            u16 count, u16 pad
            u32 countsOffset    count x u8 bones per envelope
            u32 indicesOffset   u16 bone indices, all envelopes back to back
            u32 weightsOffset   f32 weights, same order as the indices
            u32 matricesOffset  3x4 f32 row-major matrices until section end

        Returns:
            (EnvelopeTable, section size)
        """
        size = read_section_header(data, offset, MAGIC_EVP1)
        count, counts_off, indices_off, weights_off, matrices_off = struct.unpack_from(
            ">H2xIIII", data, offset + 8)

        table = cls()
        if count:
            counts = data[offset + counts_off:offset + counts_off + count]
            index_pos = offset + indices_off
            weight_pos = offset + weights_off
            for bone_count in counts:
                bones = struct.unpack_from(f">{bone_count}H", data, index_pos)
                weights = struct.unpack_from(f">{bone_count}f", data, weight_pos)
                index_pos += 2 * bone_count
                weight_pos += 4 * bone_count
                table.envelopes.append(Weight(list(bones), list(weights)))

        if matrices_off:
            matrix_count = (size - matrices_off) // INVERSE_BIND_MATRIX_SIZE
            pos = offset + matrices_off
            for _ in range(matrix_count):
                values = struct.unpack_from(">12f", data, pos)
                pos += INVERSE_BIND_MATRIX_SIZE
                table.inverse_bind_matrices.append(Matrix((
                    values[0:4], values[4:8], values[8:12], (0.0, 0.0, 0.0, 1.0),
                )))

        _log.debug("EVP1: %d envelopes, %d inverse binds",
                   len(table.envelopes), len(table.inverse_bind_matrices))
        return table, size

    def write(self):
        """Serialize as an EVP1 section."""
        buf = begin_section(MAGIC_EVP1)
        buf += struct.pack(">HH", len(self.envelopes), 0xFFFF)
        offsets_at = len(buf)
        buf += b"\0" * 16

        if self.envelopes:
            counts_off = len(buf)
            buf += bytes(len(env) for env in self.envelopes)

            indices_off = len(buf)
            for env in self.envelopes:
                buf += struct.pack(f">{len(env)}H", *env.bone_indices)
            pad_buffer(buf, 4)

            weights_off = len(buf)
            for env in self.envelopes:
                buf += struct.pack(f">{len(env)}f", *env.weights)

            matrices_off = len(buf) if self.inverse_bind_matrices else 0
            for matrix in self.inverse_bind_matrices:
                for row in range(3):
                    buf += struct.pack(">4f", *matrix[row])

            struct.pack_into(">IIII", buf, offsets_at,
                             counts_off, indices_off, weights_off, matrices_off)

        return finish_section(buf)

    def __repr__(self):
        return f"EnvelopeTable({len(self.envelopes)} envelopes)"


# ---------------------------------------------------------------------------
# DRW1
# ---------------------------------------------------------------------------

class DrawMatrixTable:
    """DRW1: one entry per matrix reference used by the geometry."""

    def __init__(self):
        self.entries = []   # list of DrawEntry

    @classmethod
    def read(cls, data, offset):
        size = read_section_header(data, offset, MAGIC_DRW1)
        count, flags_off, indices_off = struct.unpack_from(">H2xII", data, offset + 8)
        flags = data[offset + flags_off:offset + flags_off + count]
        indices = struct.unpack_from(f">{count}H", data, offset + indices_off)
        table = cls()
        table.entries = [DrawEntry(flag > 0, index) for flag, index in zip(flags, indices)]
        return table, size

    def write(self):
        buf = begin_section(MAGIC_DRW1)
        count = len(self.entries)
        buf += struct.pack(">HHI", count, 0xFFFF, DRW1_HEADER_SIZE)
        indices_off_at = len(buf)
        buf += b"\0\0\0\0"
        buf += bytes(1 if entry.weighted else 0 for entry in self.entries)
        pad_buffer(buf, 2)
        struct.pack_into(">I", buf, indices_off_at, len(buf))
        buf += struct.pack(f">{count}H", *(entry.index for entry in self.entries))
        return finish_section(buf)

    def __len__(self):
        return len(self.entries)

    def __repr__(self):
        weighted = sum(1 for e in self.entries if e.weighted)
        return f"DrawMatrixTable({len(self.entries)} entries, {weighted} weighted)"


# ---------------------------------------------------------------------------
# Cross-section resolution
# ---------------------------------------------------------------------------

def assign_inverse_binds(joints, envelopes):
    """Copy EVP1 inverse-bind matrices onto joints by flat joint index.

    Files without matrices get identity for every joint, in both tables.
    """
    if not envelopes.inverse_bind_matrices:
        envelopes.inverse_bind_matrices = [identity_inverse_bind() for _ in joints]
    for i, joint in enumerate(joints):
        if i < len(envelopes.inverse_bind_matrices):
            joint.inverse_bind = envelopes.inverse_bind_matrices[i].copy()
        else:
            joint.inverse_bind = identity_inverse_bind()


def resolve_draw_entry(draw_index, draw_matrices, envelopes):
    """Weight for one DRW1 entry."""
    entry = draw_matrices.entries[draw_index]
    if entry.weighted:
        return envelopes.envelopes[entry.index].copy()
    return Weight.rigid(entry.index)


def resolve_matrix_slot(packets, packet_index, slot, strict=True):
    """DRW1 index held by a packet slot, following 0xFFFF back to earlier packets.

    With strict=False an unresolvable slot returns 0xFFFF instead of raising.
    Earlier packets too short to hold the slot are skipped.

    Raises:
        ValueError: if the slot is past the packet's own table, or no
            earlier packet holds a real value for it
    """
    if slot >= len(packets[packet_index].matrix_indices):
        if not strict:
            return INDEX_NONE_16
        raise ValueError(f"Matrix slot {slot} is past the {len(packets[packet_index].matrix_indices)}"
                         f"-entry table of packet {packet_index}")
    for i in range(packet_index, -1, -1):
        table = packets[i].matrix_indices
        if slot < len(table) and table[slot] != INDEX_NONE_16:
            return table[slot]
    if not strict:
        return INDEX_NONE_16
    raise ValueError(f"Matrix slot {slot} of packet {packet_index} never resolves to a draw entry")


def resolve_vertex_weights(shapes, draw_matrices, envelopes):
    """Fill vertex.weight for every vertex of every shape.

    Shapes without a position-matrix index take a single rigid weight on
    the index of the packet's first draw entry, even when that entry is
    envelope-weighted.
    """
    resolved = 0
    for shape in shapes:
        has_matrix_index = shape.descriptor.has(GX_VA_PNMTXIDX)
        for packet_index, packet in enumerate(shape.packets):
            cache = {}
            for primitive in packet.primitives:
                for vertex in primitive.vertices:
                    slot = vertex.matrix_slot if has_matrix_index else 0
                    weight = cache.get(slot)
                    if weight is None:
                        draw_index = resolve_matrix_slot(shape.packets, packet_index, slot)
                        if has_matrix_index:
                            weight = resolve_draw_entry(draw_index, draw_matrices, envelopes)
                        else:
                            weight = Weight.rigid(draw_matrices.entries[draw_index].index)
                        cache[slot] = weight
                    vertex.weight = weight.copy()
                    resolved += 1
    _log.debug("Resolved weights for %d vertices", resolved)
    return resolved
