import math
import struct

import pytest
from mathutils import Vector

from j3d_bmd.bmd_format.bmd_constants import NODE_JOINT, NODE_MATERIAL
from j3d_bmd.bmd_format.bmd_types import build_string_table
from j3d_bmd.actor.sg_skeleton import (
    Joint, JointTable, JOINT_RECORD, link_joints, rotation_from_raw, rotation_to_raw,
)
from j3d_bmd.scene_graph.sg_classes import SceneGraph


def build_jnt1(records, remap, names):
    buf = bytearray(b"JNT1\0\0\0\0")
    buf += struct.pack(">HHI", len(remap), 0xFFFF, 0x18)
    buf += bytes(8)
    for joint in records:
        buf += joint.pack()
    remap_off = len(buf)
    buf += struct.pack(f">{len(remap)}H", *remap)
    buf += bytes(-len(buf) % 4)
    name_off = len(buf)
    buf += build_string_table(names)
    struct.pack_into(">II", buf, 0x10, remap_off, name_off)
    struct.pack_into(">I", buf, 4, len(buf))
    return bytes(buf)


def test_record_size():
    assert JOINT_RECORD.size == 0x40


def test_remap_expands_to_independent_copies():
    records = [
        Joint(flags=1, translation=(1.0, 2.0, 3.0)),
        Joint(flags=2, scale=(2.0, 2.0, 2.0)),
    ]
    data = build_jnt1(records, [0, 0, 1], ["a", "b", "c"])
    table, _ = JointTable.read(data, 0)

    assert [j.name for j in table] == ["a", "b", "c"]
    assert table[0].record() == table[1].record()
    assert table[0] is not table[1]
    assert table[2].scale == (2.0, 2.0, 2.0)

    table[0].children.append(5)
    assert table[1].children == []


def test_name_count_mismatch_warns(caplog):
    data = build_jnt1([Joint()], [0, 0], ["only"])
    with caplog.at_level("WARNING", logger="bmd_skeleton"):
        table, _ = JointTable.read(data, 0)
    assert "1 names for 2 joints" in caplog.text
    assert [j.name for j in table] == ["only", "joint_1"]


def test_write_uses_identity_remap(model):
    section = model.joints.write()
    table, size = JointTable.read(section, 0)
    assert size == len(section)
    count, entry_off, remap_off, _ = struct.unpack_from(">H2xIII", section, 8)
    assert entry_off == 0x18
    assert struct.unpack_from(f">{count}H", section, remap_off) == (0, 1, 2)
    assert [j.record() for j in table] == [j.record() for j in model.joints]
    assert [j.name for j in table] == ["root", "spine", "arm"]


def test_rotation_quantization():
    assert rotation_from_raw((32767, 0, -32767)) == pytest.approx((math.pi, 0.0, -math.pi))
    assert rotation_to_raw((math.radians(45.0), 0.0, math.radians(-45.0))) == (8192, 0, -8192)
    # wraps into [-180, 180)
    assert rotation_to_raw((math.radians(270.0),)) == rotation_to_raw((math.radians(-90.0),))


def test_rotation_setter_requantizes():
    joint = Joint()
    joint.rotation = (0.0, math.radians(45.0), 0.0)
    assert joint.rotation_raw == (0, 8192, 0)
    assert joint.rotation[1] == pytest.approx(math.pi / 4, abs=1e-4)


def test_rotation_order_is_z_then_y_then_x():
    joint = Joint()
    joint.rotation = (math.radians(90.0), 0.0, math.radians(90.0))
    rotated = joint.rotation_quaternion() @ Vector((0.0, 1.0, 0.0))
    # Rx maps +Y to +Z, Rz leaves +Z alone
    assert tuple(rotated) == pytest.approx((0.0, 0.0, 1.0), abs=1e-3)


def test_link_joints_from_scene_graph(model):
    linked = link_joints(model.scene_graph, model.joints)
    assert linked == 3
    root, spine, arm = model.joints
    assert root.parent_index == -1
    assert spine.parent_index == 0
    assert arm.parent_index == 0
    assert root.children == [1, 2]
    assert model.joints.roots() == [0]


def test_link_skips_non_joint_levels():
    graph = SceneGraph()
    j0 = graph.add_node(NODE_JOINT, 0)
    m0 = graph.add_node(NODE_MATERIAL, 0, j0)
    graph.add_node(NODE_JOINT, 1, m0)
    joints = [Joint(name="a"), Joint(name="b")]
    link_joints(graph, joints)
    assert joints[1].parent_index == 0


def test_world_matrices_chain_parents(model):
    link_joints(model.scene_graph, model.joints)
    world = model.joints.compute_world_matrices()
    # spine: translation (0, 1, 0) under root at the origin
    assert tuple(world[1].to_translation()) == pytest.approx((0.0, 1.0, 0.0))
    assert tuple(world[2].to_translation()) == pytest.approx((0.0, 2.0, 0.0))
