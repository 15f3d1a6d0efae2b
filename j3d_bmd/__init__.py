"""J3D model codec for GameCube/Wii BMD and BDL files.

Reads a model into linked in-memory tables (scene graph, vertices,
skeleton, skinning, shapes, materials, textures) and writes it back.

Usage:
    from j3d_bmd import load_bmd, save_bmd
    model = load_bmd("path/to/model.bdl")
    save_bmd(model, "out.bdl")
"""

from .bmd_format.bmd_objects import BMDModel
from .bmd_format.bmd_reader import BMDReader
from .bmd_format.bmd_writer import BMDWriter
from .format_profiles import ReadConfig, WriteConfig, FormatProfile, get_profile

__version__ = "0.1.0"


def load_bmd(source, config=None):
    """Read a model from a file path or from raw bytes."""
    return BMDReader(source, config).read()


def save_bmd(model, filepath, config=None):
    """Write a model to filepath. Returns the number of bytes written."""
    return BMDWriter(model, config).write(filepath)


__all__ = [
    "BMDModel", "BMDReader", "BMDWriter",
    "ReadConfig", "WriteConfig", "FormatProfile", "get_profile",
    "load_bmd", "save_bmd",
]
