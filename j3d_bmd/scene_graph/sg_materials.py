"""Material records for the MAT3 section.

A MAT3 material is a row of small indices into ~30 shared sub-tables.
In memory each index is replaced by the record it points at (or None
when the index is 0xFFFF), so materials compare by content:

    matColor[2]        RGBA8 colors           4 bytes
    colorChannel[4]    ColorChannel           8 bytes
    ambColor[2]        RGBA8 colors           4 bytes
    light[8]           LightInfo             52 bytes
    texCoordGen[8]     TexCoordGen            4 bytes
    postTexCoordGen[8] TexCoordGen            4 bytes
    texMatrix[10]      TexMatrix            100 bytes
    postTexMatrix[20]  TexMatrix            100 bytes
    texNo[8]           u16 texture index      2 bytes
    konstColor[4]      RGBA8 colors           4 bytes
    tevOrder[16]       TevOrder               4 bytes
    tevColor[4]        RGBA s16 colors        8 bytes
    tevStage[16]       TevStage              20 bytes
    swapMode[16]       TevSwapMode            4 bytes
    swapTable[4]       TevSwapModeTable       4 bytes
    fog                Fog                   44 bytes
    alphaCompare       AlphaCompare           8 bytes
    blend              BlendMode              4 bytes
    nbtScale           NBTScale              16 bytes

plus u8-indexed cull mode (u32), channel/texgen/tev-stage counts (u8),
z mode, and the zCompLoc/dither booleans. Indirect texturing is not
indexed: MAT3 stores one IndirectTexture per physical material.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


# ---------------------------------------------------------------------------
# Sub-table records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColorChannel:
    enable: bool = False
    material_source: int = 0
    light_mask: int = 0
    diffuse_function: int = 0
    attenuation_function: int = 0
    ambient_source: int = 0

    STRUCT = struct.Struct(">6BH")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(bool(v[0]), *v[1:6])

    def pack(self):
        return self.STRUCT.pack(int(self.enable), self.material_source, self.light_mask,
                                self.diffuse_function, self.attenuation_function,
                                self.ambient_source, 0xFFFF)


@dataclass(frozen=True)
class LightInfo:
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    color: Tuple[int, int, int, int] = (0, 0, 0, 0)
    angle_attenuation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    distance_attenuation: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    STRUCT = struct.Struct(">3f3f4B3f3f")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(v[0:3], v[3:6], v[6:10], v[10:13], v[13:16])

    def pack(self):
        return self.STRUCT.pack(*self.position, *self.direction, *self.color,
                                *self.angle_attenuation, *self.distance_attenuation)


@dataclass(frozen=True)
class TexCoordGen:
    gen_type: int = 1       # GX_TG_MTX2x4
    source: int = 4         # GX_TG_TEX0
    matrix: int = 60        # GX_IDENTITY

    STRUCT = struct.Struct(">4B")

    @classmethod
    def unpack(cls, data, pos):
        return cls(*cls.STRUCT.unpack_from(data, pos)[:3])

    def pack(self):
        return self.STRUCT.pack(self.gen_type, self.source, self.matrix, 0xFF)


@dataclass(frozen=True)
class TexMatrix:
    """Texture coordinate transform: SRT around a center, plus a 4x4 effect matrix."""
    projection: int = 0
    mapping_mode: int = 0
    center: Tuple[float, float, float] = (0.5, 0.5, 0.5)
    scale: Tuple[float, float] = (1.0, 1.0)
    rotation: int = 0       # s16, same quantization as joint rotations
    translation: Tuple[float, float] = (0.0, 0.0)
    effect_matrix: Tuple[float, ...] = (
        1.0, 0.0, 0.0, 0.0,
        0.0, 1.0, 0.0, 0.0,
        0.0, 0.0, 1.0, 0.0,
        0.0, 0.0, 0.0, 1.0,
    )

    STRUCT = struct.Struct(">BBH3f2fhH2f16f")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(v[0], v[1], v[3:6], v[6:8], v[8], v[10:12], v[12:28])

    def pack(self):
        return self.STRUCT.pack(self.projection, self.mapping_mode, 0xFFFF,
                                *self.center, *self.scale, self.rotation, 0xFFFF,
                                *self.translation, *self.effect_matrix)


@dataclass(frozen=True)
class TevOrder:
    tex_coord: int = 0xFF
    tex_map: int = 0xFF
    channel: int = 0xFF

    STRUCT = struct.Struct(">4B")

    @classmethod
    def unpack(cls, data, pos):
        return cls(*cls.STRUCT.unpack_from(data, pos)[:3])

    def pack(self):
        return self.STRUCT.pack(self.tex_coord, self.tex_map, self.channel, 0xFF)


@dataclass(frozen=True)
class TevStage:
    """One TEV combiner stage: color and alpha inputs a..d with op/bias/scale/clamp/reg."""
    color_in: Tuple[int, int, int, int] = (0xF, 0xF, 0xF, 0xF)
    color_op: int = 0
    color_bias: int = 0
    color_scale: int = 0
    color_clamp: int = 1
    color_register: int = 0
    alpha_in: Tuple[int, int, int, int] = (7, 7, 7, 7)
    alpha_op: int = 0
    alpha_bias: int = 0
    alpha_scale: int = 0
    alpha_clamp: int = 1
    alpha_register: int = 0

    STRUCT = struct.Struct(">20B")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(v[1:5], *v[5:10], v[10:14], *v[14:19])

    def pack(self):
        return self.STRUCT.pack(
            0xFF,
            *self.color_in, self.color_op, self.color_bias, self.color_scale,
            self.color_clamp, self.color_register,
            *self.alpha_in, self.alpha_op, self.alpha_bias, self.alpha_scale,
            self.alpha_clamp, self.alpha_register,
            0xFF,
        )


@dataclass(frozen=True)
class TevSwapMode:
    ras_select: int = 0
    tex_select: int = 0

    STRUCT = struct.Struct(">BBH")

    @classmethod
    def unpack(cls, data, pos):
        return cls(*cls.STRUCT.unpack_from(data, pos)[:2])

    def pack(self):
        return self.STRUCT.pack(self.ras_select, self.tex_select, 0xFFFF)


@dataclass(frozen=True)
class TevSwapModeTable:
    red: int = 0
    green: int = 1
    blue: int = 2
    alpha: int = 3

    STRUCT = struct.Struct(">4B")

    @classmethod
    def unpack(cls, data, pos):
        return cls(*cls.STRUCT.unpack_from(data, pos))

    def pack(self):
        return self.STRUCT.pack(self.red, self.green, self.blue, self.alpha)


@dataclass(frozen=True)
class Fog:
    fog_type: int = 0
    enable: bool = False
    center: int = 0
    start_z: float = 0.0
    end_z: float = 0.0
    near_z: float = 0.0
    far_z: float = 0.0
    color: Tuple[int, int, int, int] = (0xFF, 0xFF, 0xFF, 0xFF)
    range_adjustment: Tuple[int, ...] = (0,) * 10

    STRUCT = struct.Struct(">BBH4f4B10H")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(v[0], bool(v[1]), v[2], *v[3:7], v[7:11], v[11:21])

    def pack(self):
        return self.STRUCT.pack(self.fog_type, int(self.enable), self.center,
                                self.start_z, self.end_z, self.near_z, self.far_z,
                                *self.color, *self.range_adjustment)


@dataclass(frozen=True)
class AlphaCompare:
    comparison0: int = 7    # GX_ALWAYS
    reference0: int = 0
    operation: int = 0
    comparison1: int = 7
    reference1: int = 0

    STRUCT = struct.Struct(">8B")

    @classmethod
    def unpack(cls, data, pos):
        return cls(*cls.STRUCT.unpack_from(data, pos)[:5])

    def pack(self):
        return self.STRUCT.pack(self.comparison0, self.reference0, self.operation,
                                self.comparison1, self.reference1, 0xFF, 0xFF, 0xFF)


@dataclass(frozen=True)
class BlendMode:
    blend_type: int = 0
    source_factor: int = 1
    destination_factor: int = 0
    logic_op: int = 3

    STRUCT = struct.Struct(">4B")

    @classmethod
    def unpack(cls, data, pos):
        return cls(*cls.STRUCT.unpack_from(data, pos))

    def pack(self):
        return self.STRUCT.pack(self.blend_type, self.source_factor,
                                self.destination_factor, self.logic_op)


@dataclass(frozen=True)
class ZMode:
    enable: bool = True
    function: int = 3       # GX_LEQUAL
    update_enable: bool = True

    STRUCT = struct.Struct(">4B")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(bool(v[0]), v[1], bool(v[2]))

    def pack(self):
        return self.STRUCT.pack(int(self.enable), self.function, int(self.update_enable), 0xFF)


@dataclass(frozen=True)
class NBTScale:
    enable: bool = False
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    STRUCT = struct.Struct(">4B3f")

    @classmethod
    def unpack(cls, data, pos):
        v = cls.STRUCT.unpack_from(data, pos)
        return cls(bool(v[0]), v[4:7])

    def pack(self):
        return self.STRUCT.pack(int(self.enable), 0xFF, 0xFF, 0xFF, *self.scale)


# ---------------------------------------------------------------------------
# Indirect texturing (one entry per physical material)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IndirectTexture:
    """MAT3 indirect block. The defaults are the disabled entry written for
    materials that carry none."""
    enabled: bool = False
    stage_count: int = 0
    orders: Tuple[Tuple[int, int], ...] = ((0xFF, 0xFF),) * 4
    matrices: Tuple[Tuple[Tuple[float, ...], int], ...] = (
        ((0.5, 0.0, 0.0, 0.0, 0.5, 0.0), 1),
    ) * 3
    scales: Tuple[Tuple[int, int], ...] = ((0, 0),) * 4
    stages: Tuple[Tuple[int, ...], ...] = ((0,) * 9,) * 16

    HEADER = struct.Struct(">BBH")
    ORDER = struct.Struct(">BBH")
    MATRIX = struct.Struct(">6fb3B")
    STAGE = struct.Struct(">9B3B")

    @classmethod
    def unpack(cls, data, pos):
        enabled, stage_count, _ = cls.HEADER.unpack_from(data, pos)
        pos += cls.HEADER.size
        orders = []
        for _ in range(4):
            orders.append(cls.ORDER.unpack_from(data, pos)[:2])
            pos += cls.ORDER.size
        matrices = []
        for _ in range(3):
            v = cls.MATRIX.unpack_from(data, pos)
            matrices.append((v[0:6], v[6]))
            pos += cls.MATRIX.size
        scales = []
        for _ in range(4):
            scales.append(cls.ORDER.unpack_from(data, pos)[:2])
            pos += cls.ORDER.size
        stages = []
        for _ in range(16):
            stages.append(cls.STAGE.unpack_from(data, pos)[:9])
            pos += cls.STAGE.size
        return cls(bool(enabled), stage_count, tuple(orders), tuple(matrices),
                   tuple(scales), tuple(stages))

    def pack(self):
        buf = bytearray(self.HEADER.pack(int(self.enabled), self.stage_count, 0xFFFF))
        for tex_coord, tex_map in self.orders:
            buf += self.ORDER.pack(tex_coord, tex_map, 0xFFFF)
        for values, exponent in self.matrices:
            buf += self.MATRIX.pack(*values, exponent, 0xFF, 0xFF, 0xFF)
        for scale_s, scale_t in self.scales:
            buf += self.ORDER.pack(scale_s, scale_t, 0xFFFF)
        for stage in self.stages:
            buf += self.STAGE.pack(*stage, 0xFF, 0xFF, 0xFF)
        return bytes(buf)


# ---------------------------------------------------------------------------
# Material
# ---------------------------------------------------------------------------

def _slots(count):
    return field(default_factory=lambda: [None] * count)


@dataclass
class Material:
    """One logical material with every sub-table reference resolved.

    Equality covers everything written to MAT3 except the name, which
    lives in the name table, and texture_names, which are derived from
    texture_indices and the model's textures.
    """
    name: str = field(default="", compare=False)
    flag: int = 1
    cull_mode: Optional[int] = None
    color_channel_count: Optional[int] = None
    tex_gen_count: Optional[int] = None
    tev_stage_count: Optional[int] = None
    z_compare_location: Optional[bool] = None
    z_mode: Optional[ZMode] = None
    dither: Optional[bool] = None

    material_colors: List[Optional[Tuple[int, int, int, int]]] = _slots(2)
    color_channels: List[Optional[ColorChannel]] = _slots(4)
    ambient_colors: List[Optional[Tuple[int, int, int, int]]] = _slots(2)
    lights: List[Optional[LightInfo]] = _slots(8)
    tex_coord_gens: List[Optional[TexCoordGen]] = _slots(8)
    post_tex_coord_gens: List[Optional[TexCoordGen]] = _slots(8)
    tex_matrices: List[Optional[TexMatrix]] = _slots(10)
    post_tex_matrices: List[Optional[TexMatrix]] = _slots(20)
    texture_indices: List[Optional[int]] = _slots(8)
    konst_colors: List[Optional[Tuple[int, int, int, int]]] = _slots(4)
    konst_color_selectors: List[int] = field(default_factory=lambda: [0x0C] * 16)
    konst_alpha_selectors: List[int] = field(default_factory=lambda: [0x1C] * 16)
    tev_orders: List[Optional[TevOrder]] = _slots(16)
    tev_colors: List[Optional[Tuple[int, int, int, int]]] = _slots(4)
    tev_stages: List[Optional[TevStage]] = _slots(16)
    swap_modes: List[Optional[TevSwapMode]] = _slots(16)
    swap_tables: List[Optional[TevSwapModeTable]] = _slots(4)
    # Twelve u16 slots with no known table behind them, carried as read
    unknown_indices: List[int] = field(default_factory=lambda: [0xFFFF] * 12)
    fog: Optional[Fog] = None
    alpha_compare: Optional[AlphaCompare] = None
    blend: Optional[BlendMode] = None
    nbt_scale: Optional[NBTScale] = None

    # records without an entry in the file keep the disabled default
    indirect: Optional[IndirectTexture] = field(default_factory=IndirectTexture)

    texture_names: List[Optional[str]] = field(default_factory=lambda: [None] * 8,
                                               compare=False)

    def used_textures(self):
        """(slot, texture index) for every bound texture slot."""
        return [(slot, index) for slot, index in enumerate(self.texture_indices)
                if index is not None]

    def __repr__(self):
        return f"Material({self.name!r}, stages={self.tev_stage_count})"
