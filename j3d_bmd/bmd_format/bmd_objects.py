"""In-memory J3D model: one object per section, linked after load."""

from ..format_profiles import get_profile
from ..scene_graph.sg_classes import SceneGraph
from ..scene_graph.sg_vertices import VertexPool
from ..scene_graph.sg_geometry import ShapeTable, find_shape_material
from ..scene_graph.sg_material_table import MaterialTable
from ..scene_graph.sg_textures import TextureTable
from ..actor.skinning import EnvelopeTable, DrawMatrixTable
from ..actor.sg_skeleton import JointTable


class BMDModel:
    """A decoded BMD/BDL model.

    Attributes:
        profile: FormatProfile of the container variant (bmd3 or bdl4)
        tag: 16 bytes from the file header, kept as read
        scene_graph: SceneGraph (INF1)
        vertices: VertexPool (VTX1)
        envelopes: EnvelopeTable (EVP1)
        draw_matrices: DrawMatrixTable (DRW1)
        joints: JointTable (JNT1)
        shapes: ShapeTable (SHP1)
        materials: MaterialTable (MAT3)
        command_block: raw MDL3 section bytes, or None
        textures: TextureTable (TEX1)
    """

    __slots__ = (
        'profile', 'tag', 'scene_graph', 'vertices', 'envelopes', 'draw_matrices',
        'joints', 'shapes', 'materials', 'command_block', 'textures',
    )

    def __init__(self, profile=None):
        self.profile = profile if profile is not None else get_profile("bmd3")
        self.tag = None
        self.scene_graph = SceneGraph()
        self.vertices = VertexPool()
        self.envelopes = EnvelopeTable()
        self.draw_matrices = DrawMatrixTable()
        self.joints = JointTable()
        self.shapes = ShapeTable()
        self.materials = MaterialTable()
        self.command_block = None
        self.textures = TextureTable()

    @property
    def packet_count(self):
        return self.shapes.packet_count

    @property
    def vertex_count(self):
        return self.vertices.vertex_count

    def material_for_shape(self, shape_index):
        """The Material drawing a shape, found through the scene graph."""
        index = find_shape_material(self.scene_graph, shape_index)
        if index is None:
            return None
        return self.materials[index]

    def summary(self):
        """Counts per section, for logging and quick inspection."""
        return {
            "format": self.profile.profile_id,
            "nodes": len(self.scene_graph.nodes),
            "vertices": self.vertex_count,
            "attributes": len(self.vertices.arrays),
            "envelopes": len(self.envelopes.envelopes),
            "draw_matrices": len(self.draw_matrices),
            "joints": len(self.joints),
            "shapes": len(self.shapes),
            "packets": self.packet_count,
            "materials": len(self.materials),
            "textures": len(self.textures),
            "command_block": len(self.command_block) if self.command_block else 0,
        }

    def __repr__(self):
        return (f"BMDModel({self.profile.profile_id}, joints={len(self.joints)}, "
                f"shapes={len(self.shapes)}, materials={len(self.materials)})")
