"""Textures (TEX1), carried as opaque GX image blobs.

TEX1 layout:
    u16 textureCount, u16 pad
    u32 headerOffset   textureCount x 32-byte BTI headers
    u32 nameOffset     name table

Each 32-byte header locates its own data relative to the header start:
    +0x00 u8 format       +0x02 u16 width     +0x04 u16 height
    +0x0A u16 paletteCount                    +0x0C u32 paletteOffset
    +0x18 u8 mipCount                         +0x1C u32 imageOffset

Pixels are never decoded. Only the byte extent of each image is
computed, from the GX format's tile size.
"""

import struct
import logging

from ..bmd_format.bmd_constants import MAGIC_TEX1, TEXTURE_HEADER_SIZE
from ..bmd_format.bmd_header import (
    read_section_header, begin_section, finish_section, pad_buffer,
)
from ..bmd_format.bmd_types import read_string_table, build_string_table

_log = logging.getLogger("bmd_textures")

TEX1_HEADERS_OFFSET = 0x20

# GX texture formats
TF_I4 = 0x0
TF_I8 = 0x1
TF_IA4 = 0x2
TF_IA8 = 0x3
TF_RGB565 = 0x4
TF_RGB5A3 = 0x5
TF_RGBA32 = 0x6
TF_C4 = 0x8
TF_C8 = 0x9
TF_C14X2 = 0xA
TF_CMPR = 0xE

# format -> (tile width, tile height, bytes per tile)
TILE_LAYOUT = {
    TF_I4: (8, 8, 32),
    TF_C4: (8, 8, 32),
    TF_CMPR: (8, 8, 32),
    TF_I8: (8, 4, 32),
    TF_IA4: (8, 4, 32),
    TF_C8: (8, 4, 32),
    TF_IA8: (4, 4, 32),
    TF_RGB565: (4, 4, 32),
    TF_RGB5A3: (4, 4, 32),
    TF_C14X2: (4, 4, 32),
    TF_RGBA32: (4, 4, 64),
}


def image_data_size(image_format, width, height, mip_count=1):
    """Bytes used by an image and its mip chain.

    Raises:
        ValueError: for a format with no known tile layout
    """
    layout = TILE_LAYOUT.get(image_format)
    if layout is None:
        raise ValueError(f"TEX1: unknown image format 0x{image_format:x}")
    tile_w, tile_h, tile_bytes = layout
    total = 0
    for _ in range(max(mip_count, 1)):
        tiles_x = (width + tile_w - 1) // tile_w
        tiles_y = (height + tile_h - 1) // tile_h
        total += tiles_x * tiles_y * tile_bytes
        width = max(width // 2, 1)
        height = max(height // 2, 1)
    return total


class OpaqueTexture:
    """A texture as stored: header bytes plus raw palette and image data."""

    __slots__ = ('name', 'header', 'palette', 'image')

    def __init__(self, name="", header=b"\0" * TEXTURE_HEADER_SIZE, palette=b"", image=b""):
        self.name = name
        self.header = bytes(header)
        self.palette = bytes(palette)
        self.image = bytes(image)

    @property
    def image_format(self):
        return self.header[0]

    @property
    def width(self):
        return struct.unpack_from(">H", self.header, 2)[0]

    @property
    def height(self):
        return struct.unpack_from(">H", self.header, 4)[0]

    @property
    def palette_count(self):
        return struct.unpack_from(">H", self.header, 0x0A)[0]

    @property
    def mip_count(self):
        return self.header[0x18]

    def __eq__(self, other):
        return (isinstance(other, OpaqueTexture)
                and self.name == other.name
                and self.header == other.header
                and self.palette == other.palette
                and self.image == other.image)

    def __hash__(self):
        return hash((self.name, self.header, self.image))

    def __repr__(self):
        return (f"OpaqueTexture({self.name!r}, format=0x{self.image_format:x}, "
                f"{self.width}x{self.height}, mips={self.mip_count})")


class TextureTable:
    """TEX1: the model's textures, in texture-index order."""

    def __init__(self):
        self.textures = []

    def __len__(self):
        return len(self.textures)

    def __iter__(self):
        return iter(self.textures)

    def __getitem__(self, index):
        return self.textures[index]

    def index_of(self, name):
        for i, texture in enumerate(self.textures):
            if texture.name == name:
                return i
        return -1

    @classmethod
    def read(cls, data, offset, config=None):
        """Parse a TEX1 section.

        Returns:
            (TextureTable, section size)
        """
        size = read_section_header(data, offset, MAGIC_TEX1)
        count, header_off, name_off = struct.unpack_from(">H2xII", data, offset + 8)
        names = read_string_table(data, offset + name_off) if name_off else []
        warn = config.warn_on_name_count_mismatch if config is not None else True
        if warn and len(names) != count:
            _log.warning("TEX1: %d names for %d textures", len(names), count)

        table = cls()
        for i in range(count):
            pos = offset + header_off + i * TEXTURE_HEADER_SIZE
            header = bytearray(data[pos:pos + TEXTURE_HEADER_SIZE])
            palette_off = struct.unpack_from(">I", header, 0x0C)[0]
            image_off = struct.unpack_from(">I", header, 0x1C)[0]
            # Data offsets depend on layout; the writer fills them in again
            struct.pack_into(">I", header, 0x0C, 0)
            struct.pack_into(">I", header, 0x1C, 0)
            texture = OpaqueTexture(names[i] if i < len(names) else f"texture_{i}", header)

            if texture.palette_count and palette_off:
                start = pos + palette_off
                texture.palette = bytes(data[start:start + texture.palette_count * 2])

            if image_off:
                start = pos + image_off
                length = image_data_size(texture.image_format, texture.width,
                                         texture.height, texture.mip_count)
                texture.image = bytes(data[start:start + length])
            table.textures.append(texture)

        _log.debug("TEX1: %d textures", count)
        return table, size

    def write(self):
        """Serialize as a TEX1 section.

        Headers come first, then each palette and image 32-aligned.
        Textures with identical image data share one copy.
        """
        count = len(self.textures)
        buf = begin_section(MAGIC_TEX1)
        buf += struct.pack(">HHI", count, 0xFFFF, TEX1_HEADERS_OFFSET)
        name_off_at = len(buf)
        buf += b"\0\0\0\0"
        pad_buffer(buf, 32)

        headers_at = len(buf)
        for texture in self.textures:
            buf += texture.header

        written_images = {}
        for i, texture in enumerate(self.textures):
            header_pos = headers_at + i * TEXTURE_HEADER_SIZE
            palette_rel = 0
            if texture.palette:
                pad_buffer(buf, 32)
                palette_rel = len(buf) - header_pos
                buf += texture.palette

            image_rel = 0
            if texture.image:
                image_pos = written_images.get(texture.image)
                if image_pos is None:
                    pad_buffer(buf, 32)
                    image_pos = len(buf)
                    written_images[texture.image] = image_pos
                    buf += texture.image
                image_rel = image_pos - header_pos

            struct.pack_into(">I", buf, header_pos + 0x0C, palette_rel)
            struct.pack_into(">I", buf, header_pos + 0x1C, image_rel)

        pad_buffer(buf, 4)
        struct.pack_into(">I", buf, name_off_at, len(buf))
        buf += build_string_table([texture.name for texture in self.textures])
        return finish_section(buf)

    def __repr__(self):
        return f"TextureTable({len(self.textures)} textures)"
