"""Constants for the J3D BMD/BDL binary format."""

# Whole-file magics (8 bytes each)
MAGIC_BMD3 = b"J3D2bmd3"
MAGIC_BDL4 = b"J3D2bdl4"

# File header size in bytes (magic, size, section count, 16-byte tag)
HEADER_SIZE = 0x20
DEFAULT_FILE_TAG = b"SVR3" + b"\xFF" * 12

# Section magics
MAGIC_INF1 = b"INF1"
MAGIC_VTX1 = b"VTX1"
MAGIC_EVP1 = b"EVP1"
MAGIC_DRW1 = b"DRW1"
MAGIC_JNT1 = b"JNT1"
MAGIC_SHP1 = b"SHP1"
MAGIC_MAT3 = b"MAT3"
MAGIC_MDL3 = b"MDL3"
MAGIC_TEX1 = b"TEX1"

# Section header: magic (4) + total length (4)
SECTION_HEADER_SIZE = 8
SECTION_ALIGNMENT = 32

# Filler written into alignment gaps, one character per byte from index 0
PADDING_STRING = "Hack.io © Super Hackio Incorporated 2018-2021"
PADDING_BYTES = PADDING_STRING.encode("latin-1")

# Unset index sentinels
INDEX_NONE_16 = 0xFFFF
INDEX_NONE_8 = 0xFF

# INF1 node types
NODE_END = 0x00
NODE_OPEN = 0x01
NODE_CLOSE = 0x02
NODE_JOINT = 0x10
NODE_MATERIAL = 0x11
NODE_SHAPE = 0x12

NODE_TYPE_NAMES = {
    NODE_END: "End",
    NODE_OPEN: "Open",
    NODE_CLOSE: "Close",
    NODE_JOINT: "Joint",
    NODE_MATERIAL: "Material",
    NODE_SHAPE: "Shape",
}

# GX vertex attributes (GXAttr)
GX_VA_PNMTXIDX = 0
GX_VA_TEX0MTXIDX = 1
GX_VA_TEX7MTXIDX = 8
GX_VA_POS = 9
GX_VA_NRM = 10
GX_VA_CLR0 = 11
GX_VA_CLR1 = 12
GX_VA_TEX0 = 13
GX_VA_TEX7 = 20
GX_VA_NBT = 25
GX_VA_NULL = 0xFF

# VTX1 data slots, in header order
VTX_SLOT_COUNT = 13
VTX_SLOT_BY_ATTR = {
    GX_VA_POS: 0,
    GX_VA_NRM: 1,
    GX_VA_NBT: 2,
    GX_VA_CLR0: 3,
    GX_VA_CLR1: 4,
}
for _i in range(8):
    VTX_SLOT_BY_ATTR[GX_VA_TEX0 + _i] = 5 + _i
del _i

# GX component counts (meaning depends on the attribute)
COMP_POS_XY = 0
COMP_POS_XYZ = 1
COMP_NRM_XYZ = 0
COMP_NRM_NBT = 1
COMP_NRM_NBT3 = 2
COMP_CLR_RGB = 0
COMP_CLR_RGBA = 1
COMP_TEX_S = 0
COMP_TEX_ST = 1

# GX component types for numeric attributes
COMP_U8 = 0
COMP_S8 = 1
COMP_U16 = 2
COMP_S16 = 3
COMP_F32 = 4

# Big-endian numpy dtype, byte width, and saturation range per numeric type
COMPONENT_DTYPES = {
    COMP_U8: (">u1", 1, 0, 0xFF),
    COMP_S8: (">i1", 1, -0x80, 0x7F),
    COMP_U16: (">u2", 2, 0, 0xFFFF),
    COMP_S16: (">i2", 2, -0x8000, 0x7FFF),
    COMP_F32: (">f4", 4, None, None),
}

# GX component types for color attributes
CLR_RGB565 = 0
CLR_RGB8 = 1
CLR_RGBX8 = 2
CLR_RGBA4 = 3
CLR_RGBA6 = 4
CLR_RGBA8 = 5

# Bytes per packed color element
COLOR_ELEMENT_SIZES = {
    CLR_RGB565: 2,
    CLR_RGB8: 3,
    CLR_RGBX8: 4,
    CLR_RGBA4: 2,
    CLR_RGBA6: 3,
    CLR_RGBA8: 4,
}

# SHP1 vertex descriptor input types (GXAttrType)
INPUT_NONE = 0
INPUT_DIRECT = 1
INPUT_INDEX8 = 2
INPUT_INDEX16 = 3

# GX primitive types
PRIM_NONE = 0x00
PRIM_QUADS = 0x80
PRIM_TRIANGLES = 0x90
PRIM_TRIANGLE_STRIP = 0x98
PRIM_TRIANGLE_FAN = 0xA0
PRIM_LINES = 0xA8
PRIM_LINE_STRIP = 0xB0
PRIM_POINTS = 0xB8

PRIMITIVE_TYPES = {
    PRIM_QUADS, PRIM_TRIANGLES, PRIM_TRIANGLE_STRIP, PRIM_TRIANGLE_FAN,
    PRIM_LINES, PRIM_LINE_STRIP, PRIM_POINTS,
}

# GX cull modes
CULL_NONE = 0
CULL_FRONT = 1
CULL_BACK = 2
CULL_ALL = 3

# Joint rotation quantization: raw s16 * ROTATION_SCALE = degrees
ROTATION_SCALE = 180.0 / 32767.0

# Fixed record sizes
INVERSE_BIND_MATRIX_SIZE = 48
JOINT_ENTRY_SIZE = 0x40
SHAPE_ENTRY_SIZE = 0x28
MATERIAL_ENTRY_SIZE = 0x14C
INDIRECT_ENTRY_SIZE = 0x138
TEXTURE_HEADER_SIZE = 0x20
