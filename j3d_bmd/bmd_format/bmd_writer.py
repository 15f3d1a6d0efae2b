"""BMD/BDL binary file serializer.

Writes a BMDModel section by section, in the profile's section order.
This is the inverse of bmd_reader.py.
"""

import logging

from .bmd_constants import (
    HEADER_SIZE, MAGIC_INF1, MAGIC_VTX1, MAGIC_EVP1, MAGIC_DRW1, MAGIC_JNT1,
    MAGIC_SHP1, MAGIC_MAT3, MAGIC_MDL3, MAGIC_TEX1,
)
from .bmd_header import BMDHeader

_log = logging.getLogger("bmd_writer")


class BMDWriter:
    """Writes a complete BMD/BDL file from a BMDModel.

    Usage:
        writer = BMDWriter(model)
        writer.write("output.bmd")
        # or: data = writer.to_bytes()
    """

    def __init__(self, model, config=None):
        self.model = model
        self.config = config    # WriteConfig, defaults to the profile's

    def to_bytes(self):
        """Serialize the model to a complete file image."""
        model = self.model
        profile = model.profile
        config = self.config if self.config is not None else profile.write

        if profile.has_command_block and model.command_block is None:
            raise ValueError(f"{profile.name} needs an MDL3 command block")

        # Texture slots named by the caller win over stale indices
        model.materials.sync_texture_indices(model.textures)

        serializers = {
            MAGIC_INF1: lambda: model.scene_graph.write(model.packet_count, model.vertex_count),
            MAGIC_VTX1: model.vertices.write,
            MAGIC_EVP1: model.envelopes.write,
            MAGIC_DRW1: model.draw_matrices.write,
            MAGIC_JNT1: model.joints.write,
            MAGIC_SHP1: lambda: model.shapes.write(config.write_shape_names),
            MAGIC_MAT3: model.materials.write,
            MAGIC_MDL3: lambda: bytes(model.command_block),
            MAGIC_TEX1: model.textures.write,
        }
        sections = [serializers[magic]() for magic in profile.sections]

        header = BMDHeader()
        header.magic = profile.magic
        header.section_count = len(sections)
        header.tag = model.tag if model.tag is not None else config.file_tag
        header.file_size = HEADER_SIZE + sum(len(section) for section in sections)

        out = bytearray(header.write())
        for section in sections:
            out += section

        _log.debug("Serialized %d sections, %d bytes", len(sections), len(out))
        return bytes(out)

    def write(self, filepath):
        """Serialize and write the model to disk."""
        data = self.to_bytes()
        with open(filepath, "wb") as f:
            f.write(data)
        _log.info("Saved %s (%d bytes): %s", filepath, len(data), self.model.summary())
        return len(data)
