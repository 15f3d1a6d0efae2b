"""MAT3 section: material records and their shared sub-tables.

Header (after magic/size):
    u16 materialCount, u16 pad
    30 x u32 offsets, in this order:

     0 materials      8 ambColors      16 tevOrders      24 alphaCompares
     1 remap          9 lights         17 tevColors      25 blends
     2 names         10 texGenCounts   18 konstColors    26 zModes
     3 indirect      11 texCoordGens   19 tevStageCounts 27 zCompLocs
     4 cullModes     12 postTexGens    20 tevStages      28 dithers
     5 matColors     13 texMatrices    21 swapModes      29 nbtScales
     6 chanCounts    14 postTexMatrices 22 swapTables
     7 colorChannels 15 texNos         23 fogs

An offset of 0 means the table is absent. Table sizes are not stored;
each one runs to the next nonzero offset (compute_table_sizes).

Writing rebuilds every sub-table from scratch: records are inserted at
first use while the unique materials are serialized, so sub-table order
follows the current material order rather than the file that was read.
"""

import copy
import struct
import logging

from ..bmd_format.bmd_constants import (
    MAGIC_MAT3, INDEX_NONE_16, INDEX_NONE_8, CULL_NONE, CULL_FRONT, CULL_BACK,
    MATERIAL_ENTRY_SIZE, INDIRECT_ENTRY_SIZE,
)
from ..bmd_format.bmd_header import (
    read_section_header, begin_section, finish_section, pad_buffer,
)
from ..bmd_format.bmd_types import (
    read_string_table, build_string_table, compute_table_sizes, IndexedTable,
)
from .sg_materials import (
    Material, ColorChannel, LightInfo, TexCoordGen, TexMatrix, TevOrder, TevStage,
    TevSwapMode, TevSwapModeTable, Fog, AlphaCompare, BlendMode, ZMode, NBTScale,
    IndirectTexture,
)

_log = logging.getLogger("bmd_materials")

MAT3_OFFSET_COUNT = 30

MATERIAL_RECORD = struct.Struct(
    ">8B"
    "2H4H2H8H8H8H10H20H8H4H"
    "16B16B"
    "16H4H16H16H4H12H"
    "4H"
)


class _Scalar:
    """Codec for a table of plain numbers or tuples."""

    def __init__(self, fmt, as_bool=False):
        self.struct = struct.Struct(fmt)
        self.size = self.struct.size
        self.as_bool = as_bool

    def unpack(self, data, pos):
        v = self.struct.unpack_from(data, pos)
        if len(v) > 1:
            return v
        return bool(v[0]) if self.as_bool else v[0]

    def pack(self, value):
        if isinstance(value, tuple):
            return self.struct.pack(*value)
        return self.struct.pack(int(value))


class _Record:
    """Codec for a table of dataclass records."""

    def __init__(self, record_class):
        self.record_class = record_class
        self.size = record_class.STRUCT.size

    def unpack(self, data, pos):
        return self.record_class.unpack(data, pos)

    def pack(self, value):
        return value.pack()


# Sub-table name -> (header offset index, codec)
SUB_TABLES = {
    "cull_modes": (4, _Scalar(">I")),
    "material_colors": (5, _Scalar(">4B")),
    "channel_counts": (6, _Scalar(">B")),
    "color_channels": (7, _Record(ColorChannel)),
    "ambient_colors": (8, _Scalar(">4B")),
    "lights": (9, _Record(LightInfo)),
    "tex_gen_counts": (10, _Scalar(">B")),
    "tex_coord_gens": (11, _Record(TexCoordGen)),
    "post_tex_coord_gens": (12, _Record(TexCoordGen)),
    "tex_matrices": (13, _Record(TexMatrix)),
    "post_tex_matrices": (14, _Record(TexMatrix)),
    "texture_indices": (15, _Scalar(">H")),
    "tev_orders": (16, _Record(TevOrder)),
    "tev_colors": (17, _Scalar(">4h")),
    "konst_colors": (18, _Scalar(">4B")),
    "tev_stage_counts": (19, _Scalar(">B")),
    "tev_stages": (20, _Record(TevStage)),
    "swap_modes": (21, _Record(TevSwapMode)),
    "swap_tables": (22, _Record(TevSwapModeTable)),
    "fogs": (23, _Record(Fog)),
    "alpha_compares": (24, _Record(AlphaCompare)),
    "blends": (25, _Record(BlendMode)),
    "z_modes": (26, _Record(ZMode)),
    "z_compare_locations": (27, _Scalar(">B", as_bool=True)),
    "dithers": (28, _Scalar(">B", as_bool=True)),
    "nbt_scales": (29, _Record(NBTScale)),
}

# Fixed leading entries of some tables, inserted before any material
SEED_VALUES = {
    "cull_modes": (CULL_BACK, CULL_FRONT, CULL_NONE),
    "z_compare_locations": (False, True),
    "dithers": (False, True),
}

# Material list attribute -> sub-table, in record order
_U16_ARRAYS = (
    ("material_colors", "material_colors"),
    ("color_channels", "color_channels"),
    ("ambient_colors", "ambient_colors"),
    ("lights", "lights"),
    ("tex_coord_gens", "tex_coord_gens"),
    ("post_tex_coord_gens", "post_tex_coord_gens"),
    ("tex_matrices", "tex_matrices"),
    ("post_tex_matrices", "post_tex_matrices"),
    ("texture_indices", "texture_indices"),
    ("konst_colors", "konst_colors"),
)
_U16_ARRAYS_2 = (
    ("tev_orders", "tev_orders"),
    ("tev_colors", "tev_colors"),
    ("tev_stages", "tev_stages"),
    ("swap_modes", "swap_modes"),
    ("swap_tables", "swap_tables"),
)
_U16_SINGLES = (
    ("fog", "fogs"),
    ("alpha_compare", "alpha_compares"),
    ("blend", "blends"),
    ("nbt_scale", "nbt_scales"),
)
_U8_SINGLES = (
    ("cull_mode", "cull_modes"),
    ("color_channel_count", "channel_counts"),
    ("tex_gen_count", "tex_gen_counts"),
    ("tev_stage_count", "tev_stage_counts"),
    ("z_compare_location", "z_compare_locations"),
    ("z_mode", "z_modes"),
    ("dither", "dithers"),
)


def _lookup(tables, name, index, none_value):
    if index == none_value:
        return None
    return tables[name][index]


class MaterialTable:
    """MAT3: the logical material list."""

    def __init__(self):
        self.materials = []

    def __len__(self):
        return len(self.materials)

    def __iter__(self):
        return iter(self.materials)

    def __getitem__(self, index):
        return self.materials[index]

    def find_by_name(self, name):
        for material in self.materials:
            if material.name == name:
                return material
        return None

    # -- read -----------------------------------------------------------

    @classmethod
    def read(cls, data, offset, config=None):
        """Parse a MAT3 section.

        Returns:
            (MaterialTable, section size)

        Raises:
            IndexError: if a material refers past the end of a sub-table
        """
        size = read_section_header(data, offset, MAGIC_MAT3)
        count = struct.unpack_from(">H", data, offset + 8)[0]
        offsets = struct.unpack_from(f">{MAT3_OFFSET_COUNT}I", data, offset + 12)
        sizes = compute_table_sizes(offsets, size)

        tables = {}
        for name, (slot, codec) in SUB_TABLES.items():
            start = offsets[slot]
            tables[name] = [
                codec.unpack(data, offset + start + i * codec.size)
                for i in range(sizes[slot] // codec.size)
            ] if start else []

        remap = struct.unpack_from(f">{count}H", data, offset + offsets[1])
        names = read_string_table(data, offset + offsets[2]) if offsets[2] else []
        warn = config.warn_on_name_count_mismatch if config is not None else True
        if warn and len(names) != count:
            _log.warning("MAT3: %d names for %d materials", len(names), count)

        physical_count = max(remap) + 1 if remap else 0
        indirect_count = sizes[3] // INDIRECT_ENTRY_SIZE if offsets[3] else 0
        physical = []
        for i in range(physical_count):
            material = _unpack_material(data, offset + offsets[0] + i * MATERIAL_ENTRY_SIZE, tables)
            if i < indirect_count:
                material.indirect = IndirectTexture.unpack(
                    data, offset + offsets[3] + i * INDIRECT_ENTRY_SIZE)
            else:
                _log.warning("MAT3: no indirect entry for material record %d, "
                             "using the disabled default", i)
            physical.append(material)

        table = cls()
        for i, physical_index in enumerate(remap):
            material = copy.deepcopy(physical[physical_index])
            material.name = names[i] if i < len(names) else f"material_{i}"
            table.materials.append(material)

        _log.debug("MAT3: %d materials (%d physical)", count, physical_count)
        return table, size

    # -- write ----------------------------------------------------------

    def write(self):
        """Serialize as a MAT3 section."""
        count = len(self.materials)

        unique = []
        remap = []
        for material in self.materials:
            for i, existing in enumerate(unique):
                if existing == material:
                    remap.append(i)
                    break
            else:
                remap.append(len(unique))
                unique.append(material)

        tables = {name: IndexedTable(SEED_VALUES.get(name, ())) for name in SUB_TABLES}
        records = bytearray()
        for material in unique:
            records += _pack_material(material, tables)

        buf = begin_section(MAGIC_MAT3)
        buf += struct.pack(">HH", count, 0xFFFF)
        offsets_at = len(buf)
        buf += b"\0" * (4 * MAT3_OFFSET_COUNT)
        offsets = [0] * MAT3_OFFSET_COUNT

        offsets[0] = len(buf)
        buf += records

        offsets[1] = len(buf)
        buf += struct.pack(f">{count}H", *remap)
        pad_buffer(buf, 4)

        offsets[2] = len(buf)
        buf += build_string_table([material.name for material in self.materials])
        pad_buffer(buf, 4)

        if unique:
            offsets[3] = len(buf)
            for material in unique:
                indirect = material.indirect if material.indirect is not None else IndirectTexture()
                buf += indirect.pack()

        for name, (slot, codec) in sorted(SUB_TABLES.items(), key=lambda item: item[1][0]):
            values = tables[name]
            if not values:
                continue
            offsets[slot] = len(buf)
            for value in values:
                buf += codec.pack(value)
            pad_buffer(buf, 4)

        struct.pack_into(f">{MAT3_OFFSET_COUNT}I", buf, offsets_at, *offsets)
        _log.debug("MAT3: wrote %d materials as %d records", count, len(unique))
        return finish_section(buf)

    # -- textures -------------------------------------------------------

    def resolve_texture_names(self, textures):
        """Fill texture_names from texture_indices and the model's textures."""
        for material in self.materials:
            material.texture_names = [
                textures[index].name if index is not None and index < len(textures) else None
                for index in material.texture_indices
            ]

    def sync_texture_indices(self, textures):
        """Point named texture slots back at the texture with that name.

        A slot already bound to a texture of that name is left alone, so
        textures sharing a name keep their bindings.
        """
        by_name = {}
        for i, texture in enumerate(textures):
            by_name.setdefault(texture.name, i)
        for material in self.materials:
            for slot, name in enumerate(material.texture_names):
                if name is None or name not in by_name:
                    continue
                current = material.texture_indices[slot]
                if (current is not None and current < len(textures)
                        and textures[current].name == name):
                    continue
                material.texture_indices[slot] = by_name[name]

    def __repr__(self):
        return f"MaterialTable({len(self.materials)} materials)"


def _unpack_material(data, pos, tables):
    v = MATERIAL_RECORD.unpack_from(data, pos)
    material = Material(flag=v[0])
    cursor = 1

    for attr, table in _U8_SINGLES:
        setattr(material, attr, _lookup(tables, table, v[cursor], INDEX_NONE_8))
        cursor += 1

    for attr, table in _U16_ARRAYS:
        length = len(getattr(material, attr))
        setattr(material, attr, [_lookup(tables, table, index, INDEX_NONE_16)
                                 for index in v[cursor:cursor + length]])
        cursor += length

    material.konst_color_selectors = list(v[cursor:cursor + 16])
    material.konst_alpha_selectors = list(v[cursor + 16:cursor + 32])
    cursor += 32

    for attr, table in _U16_ARRAYS_2:
        length = len(getattr(material, attr))
        setattr(material, attr, [_lookup(tables, table, index, INDEX_NONE_16)
                                 for index in v[cursor:cursor + length]])
        cursor += length

    material.unknown_indices = list(v[cursor:cursor + 12])
    cursor += 12

    for attr, table in _U16_SINGLES:
        setattr(material, attr, _lookup(tables, table, v[cursor], INDEX_NONE_16))
        cursor += 1
    return material


def _pack_material(material, tables):
    """Material record bytes, inserting referenced values into tables on first use."""

    def index_of(table, value, none_value):
        return none_value if value is None else tables[table].add(value)

    values = [material.flag]
    for attr, table in _U8_SINGLES:
        values.append(index_of(table, getattr(material, attr), INDEX_NONE_8))
    for attr, table in _U16_ARRAYS:
        values.extend(index_of(table, value, INDEX_NONE_16) for value in getattr(material, attr))
    values.extend(material.konst_color_selectors)
    values.extend(material.konst_alpha_selectors)
    for attr, table in _U16_ARRAYS_2:
        values.extend(index_of(table, value, INDEX_NONE_16) for value in getattr(material, attr))
    values.extend(material.unknown_indices)
    for attr, table in _U16_SINGLES:
        values.append(index_of(table, getattr(material, attr), INDEX_NONE_16))
    return MATERIAL_RECORD.pack(*values)
