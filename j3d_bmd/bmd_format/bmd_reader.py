"""Full BMD/BDL binary file reader.

Reads a J3D model file and produces a linked BMDModel.
"""

import os
import logging

from .bmd_constants import HEADER_SIZE, MAGIC_MDL3
from .bmd_header import BMDHeader, read_section_header
from .bmd_objects import BMDModel
from ..format_profiles import detect_profile
from ..scene_graph.sg_classes import SceneGraph
from ..scene_graph.sg_vertices import VertexPool
from ..scene_graph.sg_geometry import ShapeTable
from ..scene_graph.sg_material_table import MaterialTable
from ..scene_graph.sg_textures import TextureTable
from ..actor.skinning import (
    EnvelopeTable, DrawMatrixTable, assign_inverse_binds, resolve_vertex_weights,
)
from ..actor.sg_skeleton import JointTable, link_joints

_log = logging.getLogger("bmd_reader")


class BMDReader:
    """Reads and parses a complete BMD/BDL file.

    Usage:
        reader = BMDReader("path/to/model.bdl")   # or raw bytes
        model = reader.read()
    """

    def __init__(self, source, config=None):
        self.source = source
        self.config = config    # ReadConfig, defaults to the profile's
        self.data = None
        self.header = None
        self.profile = None
        self.model = None

    def _load(self):
        if isinstance(self.source, (bytes, bytearray, memoryview)):
            return bytes(self.source)
        with open(self.source, "rb") as f:
            return f.read()

    def read(self):
        """Read and parse the entire file.

        Returns:
            BMDModel

        Raises:
            ValueError: on a bad file magic or a bad section identifier
        """
        self.data = self._load()
        data = self.data

        # 1. Header (32 bytes)
        self.header = BMDHeader.read(data)
        self.profile = detect_profile(self.header.magic)
        config = self.config if self.config is not None else self.profile.read
        if self.header.file_size != len(data):
            _log.debug("Header size %d differs from data length %d",
                       self.header.file_size, len(data))

        model = BMDModel(self.profile)
        model.tag = self.header.tag
        pos = HEADER_SIZE

        # 2. Scene graph
        model.scene_graph, size = SceneGraph.read(data, pos)
        pos += size

        # 3. Vertex pool, trimmed to INF1's vertex count
        model.vertices, size = VertexPool.read(data, pos, model.scene_graph.vertex_count, config)
        pos += size

        # 4. Envelopes and draw matrices
        model.envelopes, size = EnvelopeTable.read(data, pos)
        pos += size
        model.draw_matrices, size = DrawMatrixTable.read(data, pos)
        pos += size

        # 5. Joints
        model.joints, size = JointTable.read(data, pos, config)
        pos += size

        # 6. Shapes
        model.shapes, size = ShapeTable.read(data, pos)
        pos += size

        # 7. Materials
        model.materials, size = MaterialTable.read(data, pos, config)
        pos += size

        # 8. Display-list command block (bdl4 only), kept as raw bytes
        if self.profile.has_command_block:
            size = read_section_header(data, pos, MAGIC_MDL3)
            model.command_block = data[pos:pos + size]
            pos += size

        # 9. Textures
        model.textures, size = TextureTable.read(data, pos, config)
        pos += size

        # 10. Cross-section links; each step indexes into the previous ones
        assign_inverse_binds(model.joints, model.envelopes)
        resolve_vertex_weights(model.shapes, model.draw_matrices, model.envelopes)
        link_joints(model.scene_graph, model.joints)
        model.materials.resolve_texture_names(model.textures)

        self.model = model
        _log.info("Loaded %s: %s", self._describe(), model.summary())
        return model

    def _describe(self):
        if isinstance(self.source, (str, os.PathLike)):
            return os.path.basename(os.fspath(self.source))
        return f"<{len(self.data)} bytes>"
