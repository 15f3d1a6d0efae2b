import struct

import numpy as np
import pytest

from j3d_bmd import BMDReader, BMDWriter, load_bmd, save_bmd, WriteConfig
from j3d_bmd.bmd_format.bmd_constants import (
    MAGIC_BMD3, MAGIC_BDL4, MAGIC_MDL3, MAGIC_INF1, MAGIC_TEX1, DEFAULT_FILE_TAG, HEADER_SIZE,
)
from j3d_bmd.actor.skinning import Weight
from j3d_bmd.scene_graph.sg_textures import OpaqueTexture, TF_I8
from conftest import texture_header


def section_offsets(data):
    """Start of every section, walking the size fields."""
    offsets = []
    pos = HEADER_SIZE
    count = struct.unpack_from(">I", data, 12)[0]
    for _ in range(count):
        offsets.append((bytes(data[pos:pos + 4]), pos))
        pos += struct.unpack_from(">I", data, pos + 4)[0]
    return offsets


def test_file_layout(model):
    data = BMDWriter(model).to_bytes()
    assert data[:8] == MAGIC_BMD3
    assert struct.unpack_from(">II", data, 8) == (len(data), 8)
    assert data[16:32] == DEFAULT_FILE_TAG
    magics = [magic for magic, _ in section_offsets(data)]
    assert magics == [b"INF1", b"VTX1", b"EVP1", b"DRW1", b"JNT1", b"SHP1", b"MAT3", b"TEX1"]
    assert all(pos % 32 == 0 for _, pos in section_offsets(data))


def test_inf1_counts_recomputed(model):
    data = BMDWriter(model).to_bytes()
    packets, vertices = struct.unpack_from(">II", data, HEADER_SIZE + 12)
    assert (packets, vertices) == (3, 4)


def test_round_trip(model):
    loaded = load_bmd(BMDWriter(model).to_bytes())

    assert loaded.scene_graph.structure() == model.scene_graph.structure()
    assert loaded.vertices.positions.values.tolist() == model.vertices.positions.values.tolist()
    assert np.allclose(loaded.vertices.texcoords(0).values[:3],
                       model.vertices.texcoords(0).values, atol=1 / 512)

    assert [j.name for j in loaded.joints] == ["root", "spine", "arm"]
    assert [j.parent_index for j in loaded.joints] == [-1, 0, 0]
    assert loaded.joints[1].inverse_bind == model.envelopes.inverse_bind_matrices[1]

    shape = loaded.shapes[0]
    weights = [v.weight for v in shape.packets[1].primitives[0].vertices]
    assert weights == [Weight([0], [1.0]), Weight([1, 2], [0.25, 0.75]),
                       Weight([1, 2], [0.25, 0.75])]

    assert [m.name for m in loaded.materials] == ["skin", "metal"]
    assert list(loaded.materials) == list(model.materials)
    assert loaded.materials[0].texture_names[0] == "body_tex"
    assert loaded.textures.textures == model.textures.textures
    assert loaded.command_block is None


def test_second_round_trip_is_stable(model):
    once = BMDWriter(model).to_bytes()
    twice = BMDWriter(load_bmd(once)).to_bytes()
    assert twice == BMDWriter(load_bmd(twice)).to_bytes()


def test_material_for_shape(model):
    loaded = load_bmd(BMDWriter(model).to_bytes())
    assert loaded.material_for_shape(0).name == "skin"
    assert loaded.material_for_shape(1).name == "metal"
    assert loaded.material_for_shape(5) is None


def test_summary(model):
    summary = model.summary()
    assert summary["format"] == "bmd3"
    assert summary["shapes"] == 2
    assert summary["packets"] == 3
    assert summary["joints"] == 3


def test_bdl_command_block_passes_through(bdl_model):
    data = BMDWriter(bdl_model).to_bytes()
    assert data[:8] == MAGIC_BDL4
    assert struct.unpack_from(">I", data, 12)[0] == 9
    sections = dict(section_offsets(data))
    assert MAGIC_MDL3 in sections
    assert sections[MAGIC_MDL3] < sections[MAGIC_TEX1]

    loaded = load_bmd(data)
    assert loaded.profile.profile_id == "bdl4"
    assert loaded.command_block == bdl_model.command_block


def test_bdl_without_command_block_rejected(bdl_model):
    bdl_model.command_block = None
    with pytest.raises(ValueError):
        BMDWriter(bdl_model).to_bytes()


def test_bad_file_magic():
    with pytest.raises(ValueError):
        load_bmd(b"J3D2bmd2" + bytes(24))


def test_bad_section_magic_aborts(model):
    data = bytearray(BMDWriter(model).to_bytes())
    assert data[HEADER_SIZE:HEADER_SIZE + 4] == MAGIC_INF1
    data[HEADER_SIZE:HEADER_SIZE + 4] = b"INF2"
    with pytest.raises(ValueError):
        load_bmd(bytes(data))


def test_file_tag_preserved(model):
    model.tag = b"SVR3" + bytes(range(12))
    loaded = load_bmd(BMDWriter(model).to_bytes())
    assert loaded.tag == model.tag


def test_write_config_tag_for_new_models(model):
    data = BMDWriter(model, WriteConfig(file_tag=b"ABCD" + bytes(12))).to_bytes()
    assert data[16:20] == b"ABCD"


def test_texture_rename_updates_index(model):
    model.textures.textures[0].name = "renamed"
    model.materials[0].texture_names[0] = "renamed"
    loaded = load_bmd(BMDWriter(model).to_bytes())
    assert loaded.materials[0].texture_indices[0] == 0
    assert loaded.materials[0].texture_names[0] == "renamed"


def test_save_and_load_path(model, tmp_path):
    path = tmp_path / "model.bmd"
    written = save_bmd(model, path)
    assert path.stat().st_size == written
    reader = BMDReader(path)
    loaded = reader.read()
    assert reader.header.magic == MAGIC_BMD3
    assert len(loaded.shapes) == 2


def test_shared_texture_names_keep_their_bindings(model):
    model.textures.textures.append(
        OpaqueTexture("body_tex", texture_header(TF_I8, 8, 4), image=bytes(range(32, 64))))
    metal = model.materials[1]
    metal.texture_indices[0] = 1
    metal.texture_names[0] = "body_tex"

    loaded = load_bmd(BMDWriter(model).to_bytes())
    assert metal.texture_indices[0] == 1
    assert model.materials[0].texture_indices[0] == 0
    assert loaded.materials[1].texture_indices[0] == 1
    assert loaded.materials[0].texture_indices[0] == 0
