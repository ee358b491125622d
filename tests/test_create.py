from pathlib import Path

import pytest

from wallepak.create import build_object_index, create
from wallepak.extract import extract
from wallepak.manifest import (
    Block,
    Header,
    Manifest,
    ObjectDescription,
    Pool,
    PoolObjectEntry,
    ReferenceRecordEntry,
)
from wallepak.options import Options
from wallepak.structures import (
    NO_VALUE,
    SECTOR_SIZE,
    DpcError,
    ObjectHeader,
    PoolManifest,
    PrimaryHeader,
)

VERSION = "v1.325.50.07 - Asobo Studio - Internal Cross Technology"
MESH = 1387343541


def write_object(objects: Path, crc32: int, class_object: bytes, data: bytes) -> Path:
    header = ObjectHeader(
        data_size=len(class_object) + len(data),
        class_object_size=len(class_object),
        decompressed_size=len(data),
        compressed_size=0,
        class_crc32=MESH,
        crc32=crc32,
    )
    path = objects / f"{crc32}.Mesh_Z"
    path.write_bytes(header.to_bytes() + class_object + data)
    return path


def make_input(tmp_path: Path, manifest: Manifest, objects: dict) -> Path:
    root = tmp_path / "input"
    objects_dir = root / "objects"
    objects_dir.mkdir(parents=True)
    for crc32, (class_object, data) in objects.items():
        write_object(objects_dir, crc32, class_object, data)
    (root / "manifest.json").write_text(manifest.to_json(), encoding="utf-8")
    return root


def simple_manifest(**header_fields) -> Manifest:
    header = Header(version_string=VERSION, **header_fields)
    return Manifest(
        header=header,
        blocks=[
            Block(16, [ObjectDescription(1, False), ObjectDescription(2, False)]),
            Block(32, [ObjectDescription(3, False), ObjectDescription(1, False)]),
        ],
    )


SIMPLE_OBJECTS = {1: (b"cls1", b"payload-one"), 2: (b"", b"two"), 3: (b"c3", b"")}


def pool_manifest(records, entries, indices) -> Manifest:
    return Manifest(
        header=Header(version_string=VERSION),
        blocks=[Block(0, [ObjectDescription(e.crc32, False) for e in entries])],
        pool=Pool(
            object_entry_indices=indices,
            object_entries=entries,
            reference_records=records,
        ),
    )


def test_build_object_index(tmp_path):
    write_object(tmp_path, 5, b"a", b"b")
    named = tmp_path / "6_named.Mesh_Z"
    named.write_bytes(b"x")
    (tmp_path / "notes.txt").write_bytes(b"x")
    (tmp_path / "7.Mesh_Z.d").mkdir()
    index = build_object_index(tmp_path)
    assert index == {5: tmp_path / "5.Mesh_Z", 6: named}


def test_build_object_index_rejects_ambiguous_files(tmp_path):
    write_object(tmp_path, 5, b"a", b"b")
    (tmp_path / "5_other.Mesh_Z").write_bytes(b"x")
    with pytest.raises(DpcError, match="Ambiguous"):
        build_object_index(tmp_path)


def test_create_writes_block_layout(tmp_path):
    root = make_input(tmp_path, simple_manifest(), SIMPLE_OBJECTS)
    output = tmp_path / "out.dpc"
    written = create(root, output)
    data = output.read_bytes()
    header = PrimaryHeader.parse(data[:SECTOR_SIZE])
    assert header == written
    assert header.version_patch == 262
    assert header.version_minor == 326
    assert [d.block_type for d in header.block_descriptions] == [146, 0]
    assert [d.object_count for d in header.block_descriptions] == [2, 2]
    assert [d.crc32 for d in header.block_descriptions] == [1, 3]
    assert header.pool_manifest_offset == 0
    assert header.file_size == NO_VALUE
    assert len(data) % SECTOR_SIZE == 0
    assert header.padded_size == len(data) - SECTOR_SIZE
    first = header.block_descriptions[0]
    expected = (root / "objects" / "1.Mesh_Z").read_bytes() + (
        root / "objects" / "2.Mesh_Z"
    ).read_bytes()
    assert first.data_size == len(expected)
    assert data[SECTOR_SIZE : SECTOR_SIZE + first.data_size] == expected
    assert header.block_working_buffer_capacity_even == first.padded_size + 16
    second = header.block_descriptions[1]
    assert header.block_working_buffer_capacity_odd == second.padded_size + 32


def test_create_then_extract_round_trips(tmp_path):
    manifest = simple_manifest()
    root = make_input(tmp_path, manifest, SIMPLE_OBJECTS)
    output = tmp_path / "out.dpc"
    create(root, output, Options(is_quiet=True))
    extracted = extract(output, tmp_path / "extracted", Options(is_quiet=True))
    assert extracted == manifest
    for crc32 in SIMPLE_OBJECTS:
        name = f"{crc32}.Mesh_Z"
        assert (tmp_path / "extracted" / "objects" / name).read_bytes() == (
            root / "objects" / name
        ).read_bytes()


def test_incredi_builder_string_sets_sizes(tmp_path):
    manifest = simple_manifest(incredi_builder_string="IncrediBuilder")
    manifest.blocks = manifest.blocks[:1]
    root = make_input(tmp_path, manifest, SIMPLE_OBJECTS)
    output = tmp_path / "out.dpc"
    create(root, output)
    data = output.read_bytes()
    header = PrimaryHeader.parse(data[:SECTOR_SIZE])
    assert header.incredi_builder_string == "IncrediBuilder"
    assert header.file_size == len(data)
    block = header.block_descriptions[0]
    assert header.block_sector_padding_size == block.padded_size - block.data_size
    assert header.pool_sector_padding_size == 0


def test_create_with_pool_round_trips(tmp_path):
    entries = [PoolObjectEntry(11, 1)]
    manifest = pool_manifest([ReferenceRecordEntry(0, 1)], entries, [0])
    objects = {11: (b"class-object", b"pool payload data")}
    root = make_input(tmp_path, manifest, objects)
    output = tmp_path / "out.dpc"
    header = create(root, output, Options(is_quiet=True))
    data = output.read_bytes()

    assert header.pool_manifest_offset % SECTOR_SIZE == 0
    pool, _ = PoolManifest.parse(data[header.pool_manifest_offset :])
    assert pool.objects_crc32s == [0]
    assert pool.crc32s == [11]
    assert pool.reference_counts == [1]
    assert pool.reference_records_indices == [1]
    assert pool.header.objects_crc32_count_sum == 1
    record = pool.reference_records[0]
    pool_objects_start = header.pool_manifest_offset + header.pool_manifest_padded_size
    assert record.start_chunk_index * SECTOR_SIZE == pool_objects_start
    assert record.end_chunk_index - record.start_chunk_index == pool.object_padded_size[0]
    assert len(data) == pool_objects_start + pool.object_padded_size[0] * SECTOR_SIZE

    extracted = extract(output, tmp_path / "extracted", Options(is_quiet=True))
    assert extracted == manifest
    assert (tmp_path / "extracted" / "objects" / "11.Mesh_Z").read_bytes() == (
        root / "objects" / "11.Mesh_Z"
    ).read_bytes()


@pytest.mark.parametrize(
    ("optimize", "records", "indices"),
    [(True, 1, [1, 1]), (False, 2, [1, 2])],
)
def test_pool_optimization_merges_identical_records(tmp_path, optimize, records, indices):
    entries = [PoolObjectEntry(21, 1), PoolObjectEntry(22, 2)]
    manifest = pool_manifest(
        [ReferenceRecordEntry(0, 2), ReferenceRecordEntry(0, 2)], entries, [0, 1]
    )
    root = make_input(tmp_path, manifest, {21: (b"a", b"one"), 22: (b"b", b"two")})
    output = tmp_path / "out.dpc"
    header = create(root, output, Options(is_quiet=True, is_optimization=optimize))
    pool, _ = PoolManifest.parse(output.read_bytes()[header.pool_manifest_offset :])
    assert len(pool.reference_records) == records
    assert pool.reference_records_indices == indices


def test_unoptimized_pool_flag_keeps_records(tmp_path):
    entries = [PoolObjectEntry(21, 1), PoolObjectEntry(22, 2)]
    manifest = pool_manifest(
        [ReferenceRecordEntry(0, 2), ReferenceRecordEntry(0, 2)], entries, [0, 1]
    )
    root = make_input(tmp_path, manifest, {21: (b"a", b"one"), 22: (b"b", b"two")})
    output = tmp_path / "out.dpc"
    header = create(
        root, output, Options(is_quiet=True, is_optimization=True), unoptimized_pool=True
    )
    pool, _ = PoolManifest.parse(output.read_bytes()[header.pool_manifest_offset :])
    assert pool.reference_records_indices == [1, 2]


def test_no_pool_stores_objects_in_blocks(tmp_path):
    entries = [PoolObjectEntry(11, 1)]
    manifest = pool_manifest([ReferenceRecordEntry(0, 1)], entries, [0])
    manifest.header.pool_manifest_unused = 5
    root = make_input(tmp_path, manifest, {11: (b"cls", b"data")})
    output = tmp_path / "out.dpc"
    header = create(root, output, Options(is_quiet=True), no_pool=True)
    data = output.read_bytes()
    original = (root / "objects" / "11.Mesh_Z").read_bytes()
    assert header.pool_manifest_offset == 0
    assert header.pool_manifest_unused0 == 0
    assert data[SECTOR_SIZE : SECTOR_SIZE + len(original)] == original


def test_missing_object_raises(tmp_path):
    root = make_input(tmp_path, simple_manifest(), {1: (b"", b"x")})
    with pytest.raises(DpcError, match="No object for crc32"):
        create(root, tmp_path / "out.dpc", Options(is_quiet=True))


def test_unknown_version_needs_unsafe(tmp_path):
    manifest = simple_manifest()
    manifest.header.version_string = "custom"
    root = make_input(tmp_path, manifest, SIMPLE_OBJECTS)
    with pytest.raises(DpcError, match="Invalid version string"):
        create(root, tmp_path / "out.dpc", Options(is_quiet=True))


def test_unknown_version_uses_manifest_numbers(tmp_path):
    manifest = simple_manifest(version_patch=7, version_minor=8, block_type=9)
    manifest.header.version_string = "custom"
    root = make_input(tmp_path, manifest, SIMPLE_OBJECTS)
    header = create(root, tmp_path / "out.dpc", Options(is_quiet=True))
    assert (header.version_patch, header.version_minor) == (7, 8)
    assert [d.block_type for d in header.block_descriptions] == [9, 0]


def test_compression_request_without_lz_support_raises(tmp_path):
    manifest = simple_manifest()
    manifest.blocks[0].objects[0].compress = True
    root = make_input(tmp_path, manifest, SIMPLE_OBJECTS)
    with pytest.raises(DpcError, match="compressed"):
        create(root, tmp_path / "out.dpc", Options(is_quiet=True, is_lz=True))


def test_inconsistent_pool_compress_values_raise(tmp_path):
    entries = [PoolObjectEntry(11, 1)]
    manifest = pool_manifest([ReferenceRecordEntry(0, 1)], entries, [0])
    manifest.blocks.append(Block(0, [ObjectDescription(11, True)]))
    root = make_input(tmp_path, manifest, {11: (b"cls", b"data")})
    with pytest.raises(DpcError, match="Inconsistent compress"):
        create(root, tmp_path / "out.dpc", Options(is_quiet=True))


def test_existing_output_can_be_skipped(tmp_path):
    root = make_input(tmp_path, simple_manifest(), SIMPLE_OBJECTS)
    output = tmp_path / "out.dpc"
    output.write_bytes(b"old")
    result = create(root, output, Options(is_quiet=True, chooser=lambda prompt: "1"))
    assert result is None
    assert output.read_bytes() == b"old"