"""Shared fixtures: a small two-shape skinned model built in memory."""

import struct

import pytest
from mathutils import Matrix

from j3d_bmd import BMDModel, get_profile
from j3d_bmd.bmd_format.bmd_constants import (
    NODE_JOINT, NODE_MATERIAL, NODE_SHAPE,
    GX_VA_PNMTXIDX, GX_VA_POS, GX_VA_NRM, GX_VA_CLR0, GX_VA_TEX0,
    INPUT_DIRECT, INPUT_INDEX8, INPUT_INDEX16, INDEX_NONE_16,
    COMP_POS_XYZ, COMP_NRM_XYZ, COMP_TEX_ST, COMP_CLR_RGBA,
    COMP_F32, COMP_S16, CLR_RGBA8, PRIM_TRIANGLES, PRIM_TRIANGLE_STRIP,
    CULL_BACK, CULL_NONE, MAGIC_MDL3,
)
from j3d_bmd.actor.skinning import Weight, DrawEntry
from j3d_bmd.actor.sg_skeleton import Joint
from j3d_bmd.scene_graph.sg_geometry import (
    Shape, Packet, Primitive, Vertex, make_descriptor,
)
from j3d_bmd.scene_graph.sg_materials import Material, TevStage, BlendMode
from j3d_bmd.scene_graph.sg_textures import OpaqueTexture, TF_I8


POSITIONS = [
    (0.0, 0.0, 0.0),
    (1.0, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (1.0, 1.0, 0.5),
]


def texture_header(image_format, width, height, mip_count=1):
    header = bytearray(32)
    header[0] = image_format
    struct.pack_into(">HH", header, 2, width, height)
    header[0x18] = mip_count
    return bytes(header)


def build_model(profile_id="bmd3"):
    """Joint0 holds Material0/Shape0 and Joint1, which holds Material1/Shape1.

    Shape0 is skinned: its second packet reuses slot 0 of the first
    packet through 0xFFFF and binds slot 1 to an envelope. Shape1 has no
    position-matrix index and is drawn rigidly by its packet's only entry.
    """
    model = BMDModel(get_profile(profile_id))

    graph = model.scene_graph
    j0 = graph.add_node(NODE_JOINT, 0)
    m0 = graph.add_node(NODE_MATERIAL, 0, j0)
    graph.add_node(NODE_SHAPE, 0, m0)
    j1 = graph.add_node(NODE_JOINT, 1, j0)
    m1 = graph.add_node(NODE_MATERIAL, 1, j1)
    graph.add_node(NODE_SHAPE, 1, m1)
    graph.add_node(NODE_JOINT, 2, j0)

    vertices = model.vertices
    vertices.set_attribute(GX_VA_POS, POSITIONS, COMP_POS_XYZ, COMP_F32)
    vertices.set_attribute(GX_VA_NRM, [(0.0, 0.0, 1.0), (0.0, 1.0, 0.0)],
                           COMP_NRM_XYZ, COMP_S16, 14)
    vertices.set_attribute(GX_VA_TEX0, [(0.0, 0.0), (0.5, 0.25), (1.0, 1.0)],
                           COMP_TEX_ST, COMP_S16, 8)
    vertices.set_attribute(GX_VA_CLR0, [(1.0, 0.0, 0.0, 1.0), (0.0, 0.0, 1.0, 0.0)],
                           COMP_CLR_RGBA, CLR_RGBA8)

    model.envelopes.envelopes = [Weight([1, 2], [0.25, 0.75])]
    model.envelopes.inverse_bind_matrices = [
        Matrix.Identity(4),
        Matrix.Translation((0.0, -2.0, 0.0)),
        Matrix.Translation((1.0, 0.0, 0.0)),
    ]
    model.draw_matrices.entries = [
        DrawEntry(False, 0),
        DrawEntry(False, 1),
        DrawEntry(True, 0),
    ]

    for i, name in enumerate(("root", "spine", "arm")):
        joint = Joint(name=name, translation=(0.0, float(i), 0.0))
        model.joints.joints.append(joint)

    skinned = make_descriptor(
        (GX_VA_PNMTXIDX, INPUT_DIRECT),
        (GX_VA_POS, INPUT_INDEX16),
        (GX_VA_NRM, INPUT_INDEX8),
        (GX_VA_TEX0, INPUT_INDEX16),
    )
    shape0 = Shape(skinned)
    shape0.name = "body"
    shape0.bounding_radius = 2.0
    shape0.bbox_max = (1.0, 1.0, 0.5)
    shape0.packets.append(Packet([0, 1], [Primitive(PRIM_TRIANGLES, [
        Vertex({GX_VA_PNMTXIDX: 0, GX_VA_POS: 0, GX_VA_NRM: 0, GX_VA_TEX0: 0}),
        Vertex({GX_VA_PNMTXIDX: 1, GX_VA_POS: 1, GX_VA_NRM: 0, GX_VA_TEX0: 1}),
        Vertex({GX_VA_PNMTXIDX: 1, GX_VA_POS: 2, GX_VA_NRM: 1, GX_VA_TEX0: 2}),
    ])]))
    shape0.packets.append(Packet([INDEX_NONE_16, 2], [Primitive(PRIM_TRIANGLES, [
        Vertex({GX_VA_PNMTXIDX: 0, GX_VA_POS: 1, GX_VA_NRM: 1, GX_VA_TEX0: 1}),
        Vertex({GX_VA_PNMTXIDX: 1, GX_VA_POS: 3, GX_VA_NRM: 1, GX_VA_TEX0: 2}),
        Vertex({GX_VA_PNMTXIDX: 1, GX_VA_POS: 2, GX_VA_NRM: 0, GX_VA_TEX0: 0}),
    ])]))

    rigid = make_descriptor((GX_VA_POS, INPUT_INDEX8), (GX_VA_CLR0, INPUT_INDEX8))
    shape1 = Shape(rigid)
    shape1.name = "plate"
    shape1.packets.append(Packet([1], [Primitive(PRIM_TRIANGLE_STRIP, [
        Vertex({GX_VA_POS: 0, GX_VA_CLR0: 0}),
        Vertex({GX_VA_POS: 1, GX_VA_CLR0: 1}),
        Vertex({GX_VA_POS: 2, GX_VA_CLR0: 0}),
        Vertex({GX_VA_POS: 3, GX_VA_CLR0: 1}),
    ])]))
    model.shapes.shapes = [shape0, shape1]

    skin = Material(name="skin", cull_mode=CULL_BACK, tev_stage_count=1,
                    z_compare_location=True, dither=True)
    skin.material_colors[0] = (255, 128, 64, 255)
    skin.tev_stages[0] = TevStage()
    skin.texture_indices[0] = 0
    skin.texture_names[0] = "body_tex"
    metal = Material(name="metal", cull_mode=CULL_NONE, tev_stage_count=1,
                     blend=BlendMode(1, 4, 5, 3))
    metal.tev_stages[0] = TevStage(color_in=(0xF, 0x8, 0xA, 0xF))
    model.materials.materials = [skin, metal]

    model.textures.textures = [
        OpaqueTexture("body_tex", texture_header(TF_I8, 8, 4), image=bytes(range(32))),
    ]

    if model.profile.has_command_block:
        model.command_block = MAGIC_MDL3 + struct.pack(">I", 64) + bytes(56)
    return model


@pytest.fixture
def model():
    return build_model()


@pytest.fixture
def bdl_model():
    return build_model("bdl4")
