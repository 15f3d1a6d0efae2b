"""BMD/BDL file header and section framing."""

import struct
from .bmd_constants import (
    HEADER_SIZE, MAGIC_BMD3, MAGIC_BDL4, DEFAULT_FILE_TAG,
    SECTION_HEADER_SIZE, SECTION_ALIGNMENT, PADDING_BYTES,
)


class BMDHeader:
    """Represents the 32-byte J3D model file header."""

    def __init__(self):
        self.magic = MAGIC_BMD3
        self.file_size = 0
        self.section_count = 8
        self.tag = DEFAULT_FILE_TAG

    @property
    def has_command_block(self):
        return self.magic == MAGIC_BDL4

    @classmethod
    def read(cls, data):
        """Read and parse the file header from raw data.

        Args:
            data: bytes or memoryview of at least HEADER_SIZE bytes

        Returns:
            BMDHeader instance

        Raises:
            ValueError: if data is too small or the magic is unknown
        """
        if len(data) < HEADER_SIZE:
            raise ValueError(f"Data too small for J3D header: {len(data)} < {HEADER_SIZE}")

        header = cls()
        header.magic = bytes(data[0:8])
        if header.magic not in (MAGIC_BMD3, MAGIC_BDL4):
            raise ValueError(f"Invalid J3D magic: {header.magic!r}")

        header.file_size, header.section_count = struct.unpack_from(">II", data, 8)
        header.tag = bytes(data[16:32])
        return header

    def write(self):
        """Serialize the header to 32 bytes."""
        return self.magic + struct.pack(">II", self.file_size, self.section_count) + self.tag

    def __repr__(self):
        return (
            f"BMDHeader(magic={self.magic!r}, size={self.file_size}, "
            f"sections={self.section_count})"
        )


def read_section_header(data, offset, magic):
    """Check a section's magic and return its total byte length.

    Raises:
        ValueError: if the magic at offset does not match
    """
    found = bytes(data[offset:offset + 4])
    if found != magic:
        raise ValueError(
            f"Invalid section identifier at 0x{offset:x}: expected {magic!r}, got {found!r}"
        )
    size = struct.unpack_from(">I", data, offset + 4)[0]
    if size < SECTION_HEADER_SIZE or offset + size > len(data):
        raise ValueError(f"{magic.decode()} section size {size} out of range at 0x{offset:x}")
    return size


def begin_section(magic):
    """Start a section buffer: magic plus a length placeholder."""
    buf = bytearray(magic)
    buf += b"\0\0\0\0"
    return buf


def finish_section(buf):
    """Pad a section to the section alignment and patch its total length."""
    pad_buffer(buf, SECTION_ALIGNMENT)
    struct.pack_into(">I", buf, 4, len(buf))
    return bytes(buf)


def pad_buffer(buf, multiple):
    """Append filler characters until len(buf) is a multiple of `multiple`.

    Section buffers always start on a 32-byte file boundary, so aligning
    within the section gives the same result as aligning the file.
    """
    count = -len(buf) % multiple
    buf += PADDING_BYTES[:count]


def pad_buffer_zero(buf, multiple):
    buf += b"\0" * (-len(buf) % multiple)
