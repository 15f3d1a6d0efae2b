"""Container-variant profiles for J3D model files.

Two container variants share the same model chunks:

    J3D2bmd3  INF1 VTX1 EVP1 DRW1 JNT1 SHP1 MAT3 TEX1
    J3D2bdl4  INF1 VTX1 EVP1 DRW1 JNT1 SHP1 MAT3 MDL3 TEX1

The bdl4 variant carries an MDL3 block of pre-baked display list commands
which is kept as raw bytes and written back unchanged.

Each variant has a FormatProfile describing its magic, section order, and
the read/write options applied by BMDReader and BMDWriter. Profiles are
registered in a global dict and selected from the file magic on read.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .bmd_format.bmd_constants import (
    MAGIC_BMD3, MAGIC_BDL4, DEFAULT_FILE_TAG,
    MAGIC_INF1, MAGIC_VTX1, MAGIC_EVP1, MAGIC_DRW1, MAGIC_JNT1,
    MAGIC_SHP1, MAGIC_MAT3, MAGIC_MDL3, MAGIC_TEX1,
)


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ReadConfig:
    """Options applied while decoding a model."""

    # VTX1 derives element counts from byte extents, which include the
    # trailing section padding. Trim the position array to INF1's vertex
    # count so padding bytes do not show up as extra positions.
    trim_positions_to_vertex_count: bool = True

    # Warn when a name table holds a different number of names than the
    # table it labels.
    warn_on_name_count_mismatch: bool = True


@dataclass
class WriteConfig:
    """Options applied while encoding a model."""

    # 16 bytes written after the section count in the file header.
    # Files read from disk keep their own tag.
    file_tag: bytes = DEFAULT_FILE_TAG

    # Emit the optional SHP1 name table when shapes carry names.
    write_shape_names: bool = True


@dataclass
class FormatProfile:
    """Complete description of one container variant."""

    profile_id: str = "bmd3"
    name: str = "J3D binary model"
    magic: bytes = MAGIC_BMD3

    # Section magics in file order
    sections: Tuple[bytes, ...] = ()

    read: ReadConfig = field(default_factory=ReadConfig)
    write: WriteConfig = field(default_factory=WriteConfig)

    @property
    def has_command_block(self) -> bool:
        return MAGIC_MDL3 in self.sections

    @property
    def section_count(self) -> int:
        return len(self.sections)


# ---------------------------------------------------------------------------
# Profile registry
# ---------------------------------------------------------------------------

FORMAT_PROFILES: Dict[str, FormatProfile] = {}


def register_profile(profile: FormatProfile) -> None:
    """Register a format profile in the global registry."""
    FORMAT_PROFILES[profile.profile_id] = profile


def get_profile(profile_id: str) -> Optional[FormatProfile]:
    """Look up a profile by its profile_id string."""
    return FORMAT_PROFILES.get(profile_id)


def detect_profile(magic: bytes) -> FormatProfile:
    """Pick the registered profile whose magic matches the file magic.

    Raises:
        ValueError: if no profile matches
    """
    for profile in FORMAT_PROFILES.values():
        if profile.magic == magic:
            return profile
    raise ValueError(f"No format profile for magic {magic!r}")


_MODEL_SECTIONS = (
    MAGIC_INF1, MAGIC_VTX1, MAGIC_EVP1, MAGIC_DRW1,
    MAGIC_JNT1, MAGIC_SHP1, MAGIC_MAT3,
)

register_profile(FormatProfile(
    profile_id="bmd3",
    name="J3D binary model (BMD)",
    magic=MAGIC_BMD3,
    sections=_MODEL_SECTIONS + (MAGIC_TEX1,),
))

register_profile(FormatProfile(
    profile_id="bdl4",
    name="J3D display-list model (BDL)",
    magic=MAGIC_BDL4,
    sections=_MODEL_SECTIONS + (MAGIC_MDL3, MAGIC_TEX1),
))
