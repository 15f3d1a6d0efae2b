"""Joints (JNT1) and the bone hierarchy.

JNT1 layout (offsets relative to section start):
    u16 jointCount, u16 pad
    u32 entryOffset    physical joint records, 0x40 bytes each
    u32 remapOffset    u16 per logical joint -> physical record
    u32 nameOffset     name table, one name per logical joint

Joint record:
    u16 flags, u8 inheritScale, u8 pad
    f32 scale[3]
    s16 rotation[3]    raw * 180/32767 = degrees
    u16 pad
    f32 translation[3]
    f32 boundingRadius
    f32 bbMin[3], f32 bbMax[3]

JNT1 does not store parents. They come from the INF1 hierarchy, see
link_joints().
"""

import copy
import math
import struct
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from mathutils import Matrix, Quaternion, Vector

from ..bmd_format.bmd_constants import MAGIC_JNT1, NODE_JOINT, ROTATION_SCALE
from ..bmd_format.bmd_header import (
    read_section_header, begin_section, finish_section, pad_buffer,
)
from ..bmd_format.bmd_types import read_string_table, build_string_table

_log = logging.getLogger("bmd_skeleton")

JNT1_HEADER_SIZE = 0x18
JOINT_RECORD = struct.Struct(">HBB3f3hH3ff3f3f")


def rotation_from_raw(raw):
    """Quantized s16 angles to radians."""
    return tuple(math.radians(r * ROTATION_SCALE) for r in raw)


def rotation_to_raw(radians):
    """Radians to quantized s16 angles, wrapped into [-180, 180) degrees."""
    raw = []
    for r in radians:
        degrees = (math.degrees(r) + 180.0) % 360.0 - 180.0
        raw.append(max(-0x8000, min(0x7FFF, round(degrees / ROTATION_SCALE))))
    return tuple(raw)


@dataclass
class Joint:
    """A single joint in the flat logical skeleton."""
    name: str = ""
    flags: int = 0
    inherit_scale: int = 0
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    rotation_raw: Tuple[int, int, int] = (0, 0, 0)
    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    bounding_radius: float = 0.0
    bbox_min: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    bbox_max: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    parent_index: int = -1          # -1 for root
    children: List[int] = field(default_factory=list)
    inverse_bind: Optional[Matrix] = None

    @property
    def rotation(self) -> Tuple[float, float, float]:
        """Euler angles in radians (X, Y, Z)."""
        return rotation_from_raw(self.rotation_raw)

    @rotation.setter
    def rotation(self, radians):
        self.rotation_raw = rotation_to_raw(radians)

    def rotation_quaternion(self) -> Quaternion:
        """Rotation composed as Z, then Y, then X: q = Rz @ Ry @ Rx."""
        rx, ry, rz = self.rotation
        return (Quaternion((0.0, 0.0, 1.0), rz)
                @ Quaternion((0.0, 1.0, 0.0), ry)
                @ Quaternion((1.0, 0.0, 0.0), rx))

    def local_matrix(self) -> Matrix:
        """Local transform T @ R @ S."""
        translation = Matrix.Translation(Vector(self.translation))
        rotation = self.rotation_quaternion().to_matrix().to_4x4()
        scale = Matrix.Diagonal(Vector((*self.scale, 1.0)))
        return translation @ rotation @ scale

    def record(self):
        """Everything stored in the on-disk joint record."""
        return (self.flags, self.inherit_scale, self.scale, self.rotation_raw,
                self.translation, self.bounding_radius, self.bbox_min, self.bbox_max)

    @classmethod
    def unpack(cls, data, pos):
        v = JOINT_RECORD.unpack_from(data, pos)
        return cls(
            flags=v[0],
            inherit_scale=v[1],
            scale=v[3:6],
            rotation_raw=v[6:9],
            translation=v[10:13],
            bounding_radius=v[13],
            bbox_min=v[14:17],
            bbox_max=v[17:20],
        )

    def pack(self):
        return JOINT_RECORD.pack(
            self.flags, self.inherit_scale, 0xFF,
            *self.scale, *self.rotation_raw, 0xFFFF,
            *self.translation, self.bounding_radius,
            *self.bbox_min, *self.bbox_max,
        )


class JointTable:
    """JNT1: the flat logical skeleton."""

    def __init__(self):
        self.joints = []

    def __len__(self):
        return len(self.joints)

    def __iter__(self):
        return iter(self.joints)

    def __getitem__(self, index):
        return self.joints[index]

    def find_by_name(self, name) -> Optional[Joint]:
        for joint in self.joints:
            if joint.name == name:
                return joint
        return None

    def roots(self) -> List[int]:
        return [i for i, j in enumerate(self.joints) if j.parent_index < 0]

    @classmethod
    def read(cls, data, offset, config=None):
        """Parse a JNT1 section.

        Physical records are stored once; the remap table expands them to
        the logical list. Every logical joint is its own deep copy.

        Returns:
            (JointTable, section size)
        """
        size = read_section_header(data, offset, MAGIC_JNT1)
        count, entry_off, remap_off, name_off = struct.unpack_from(">H2xIII", data, offset + 8)

        remap = struct.unpack_from(f">{count}H", data, offset + remap_off)
        physical_count = max(remap) + 1 if remap else 0
        physical = [
            Joint.unpack(data, offset + entry_off + i * JOINT_RECORD.size)
            for i in range(physical_count)
        ]

        names = read_string_table(data, offset + name_off) if name_off else []
        warn = config.warn_on_name_count_mismatch if config is not None else True
        if warn and len(names) != count:
            _log.warning("JNT1: %d names for %d joints", len(names), count)

        table = cls()
        for i, physical_index in enumerate(remap):
            joint = copy.deepcopy(physical[physical_index])
            joint.name = names[i] if i < len(names) else f"joint_{i}"
            table.joints.append(joint)

        _log.debug("JNT1: %d joints (%d physical)", count, physical_count)
        return table, size

    def write(self):
        """Serialize as a JNT1 section, one physical record per joint."""
        count = len(self.joints)
        buf = begin_section(MAGIC_JNT1)
        buf += struct.pack(">HHI", count, 0xFFFF, JNT1_HEADER_SIZE)
        offsets_at = len(buf)
        buf += b"\0" * 8

        for joint in self.joints:
            buf += joint.pack()

        remap_off = len(buf)
        buf += struct.pack(f">{count}H", *range(count))
        pad_buffer(buf, 4)

        name_off = len(buf)
        buf += build_string_table([joint.name for joint in self.joints])
        pad_buffer(buf, 4)

        struct.pack_into(">II", buf, offsets_at, remap_off, name_off)
        return finish_section(buf)

    def compute_world_matrices(self) -> List[Matrix]:
        """Model-space matrix per joint, chaining local matrices from the root."""
        world = [None] * len(self.joints)

        def solve(i):
            if world[i] is None:
                joint = self.joints[i]
                local = joint.local_matrix()
                if joint.parent_index >= 0:
                    world[i] = solve(joint.parent_index) @ local
                else:
                    world[i] = local
            return world[i]

        for i in range(len(self.joints)):
            solve(i)
        return world

    def __repr__(self):
        return f"JointTable({len(self.joints)} joints)"


def link_joints(scene_graph, joints):
    """Rebuild parent/child links from the INF1 hierarchy.

    The n-th Joint node met in depth-first order is logical joint n. Its
    parent is the nearest joint in the enclosing recursion, passed down as
    parent_index (-1 at the top).

    Returns:
        number of joints linked
    """
    for joint in joints:
        joint.parent_index = -1
        joint.children = []

    linked = 0

    def visit(handle, parent_index):
        nonlocal linked
        node = scene_graph.nodes[handle]
        if node.node_type == NODE_JOINT:
            current = linked
            linked += 1
            if current < len(joints):
                joints[current].parent_index = parent_index
                if parent_index >= 0:
                    joints[parent_index].children.append(current)
            parent_index = current
        for child in node.children:
            visit(child, parent_index)

    if scene_graph.root >= 0:
        visit(scene_graph.root, -1)
    if linked != len(joints):
        _log.warning("INF1 has %d joint nodes for %d joints", linked, len(joints))
    return linked
