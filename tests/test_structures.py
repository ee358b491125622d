import pytest

from wallepak.structures import (
    BlockDescription,
    DpcError,
    ObjectHeader,
    PoolManifest,
    PoolManifestHeader,
    PrimaryHeader,
    ReferenceRecord,
    calculate_padded_size,
    calculate_padding_size,
)

VERSION = "v1.325.50.07 - Asobo Studio - Internal Cross Technology"


@pytest.mark.parametrize("size", [0, 1, 24, 2047, 2048, 2049, 100000])
def test_padded_size_invariants(size):
    padded = calculate_padded_size(size)
    assert padded % 2048 == 0
    assert size <= padded < size + 2048
    assert calculate_padding_size(size) == padded - size


def test_padded_size_pinned():
    assert calculate_padded_size(0) == 0
    assert calculate_padded_size(1) == 2048
    assert calculate_padded_size(2048) == 2048


def test_object_header_round_trip():
    header = ObjectHeader(100, 20, 80, 0, 1471281566, 12345)
    raw = header.to_bytes()
    assert len(raw) == 24
    assert ObjectHeader.from_bytes(raw) == header


def test_object_header_wire_layout():
    raw = ObjectHeader(data_size=1).to_bytes()
    assert raw[:4] == b"\x01\x00\x00\x00"
    assert raw[4:] == bytes(20)


def test_object_header_short_data():
    with pytest.raises(DpcError):
        ObjectHeader.from_bytes(b"\x00" * 10)


def test_block_description_round_trip():
    description = BlockDescription(262, 3, 4096, 3000, 0, 777)
    raw = description.to_bytes()
    assert len(raw) == 24
    assert BlockDescription.from_bytes(raw) == description


def test_block_description_short_data():
    with pytest.raises(DpcError):
        BlockDescription.from_bytes(b"")


def test_reference_record_round_trip_and_size():
    record = ReferenceRecord(5, 9, 2, 0, 3)
    raw = record.to_bytes()
    assert len(raw) == 28
    assert ReferenceRecord.from_bytes(raw) == record
    assert raw[-12:] == b"\xff" * 12


def test_reference_record_short_data():
    with pytest.raises(DpcError):
        ReferenceRecord.from_bytes(b"\x00" * 27)


def test_pool_manifest_header_defaults():
    header = PoolManifestHeader(objects_crc32_count_sum=4)
    assert PoolManifestHeader.from_bytes(header.to_bytes()) == header
    assert header.equals524288 == 524288
    assert header.equals2048 == 2048


def test_pool_manifest_round_trip():
    manifest = PoolManifest(
        header=PoolManifestHeader(objects_crc32_count_sum=2),
        objects_crc32s=[0, 1],
        crc32s=[111, 222],
        reference_counts=[1, 1],
        object_padded_size=[1, 2],
        reference_records_indices=[1, 1],
        reference_records=[ReferenceRecord(3, 6, 0, 0, 2)],
    )
    raw = manifest.to_bytes()
    parsed, consumed = PoolManifest.parse(raw + b"\xff" * 50)
    assert parsed == manifest
    assert consumed == len(raw)


def test_pool_manifest_truncated():
    manifest = PoolManifest(crc32s=[1, 2, 3])
    raw = manifest.to_bytes()
    with pytest.raises(DpcError):
        PoolManifest.parse(raw[:-5])


def _header(**overrides):
    values = dict(
        version_string=VERSION,
        is_not_rtc=1,
        block_working_buffer_capacity_even=4096,
        block_working_buffer_capacity_odd=2048,
        padded_size=6144,
        version_patch=262,
        version_minor=326,
        block_descriptions=[
            BlockDescription(146, 2, 4096, 3000, 0, 10),
            BlockDescription(0, 1, 2048, 100, 0, 20),
        ],
        pool_manifest_padded_size=2048,
        pool_manifest_offset=8192,
        pool_manifest_unused0=7,
        pool_manifest_unused1=7,
        pool_object_decompression_buffer_capacity=3,
        block_sector_padding_size=10,
        pool_sector_padding_size=20,
        file_size=40960,
        incredi_builder_string="builder",
    )
    values.update(overrides)
    return PrimaryHeader(**values)


def test_primary_header_round_trip():
    header = _header()
    raw = header.to_bytes()
    assert len(raw) == 2048
    assert raw[0x7C0:] == b"\xff" * 64
    parsed = PrimaryHeader.parse(raw)
    assert parsed == header
    assert parsed.block_count == 2


def test_primary_header_without_incredi_builder():
    header = _header(
        block_sector_padding_size=0xFFFFFFFF,
        pool_sector_padding_size=0xFFFFFFFF,
        file_size=0xFFFFFFFF,
        incredi_builder_string="",
    )
    raw = header.to_bytes()
    assert raw[0x740:0x7C0] == b"\xff" * 128
    assert PrimaryHeader.parse(raw) == header


def test_primary_header_pool_sizes_are_sector_counts():
    raw = _header().to_bytes()
    parsed = PrimaryHeader.parse(raw)
    assert parsed.pool_manifest_offset % 2048 == 0
    assert parsed.pool_manifest_padded_size % 2048 == 0


def test_primary_header_rejects_too_many_blocks():
    raw = bytearray(_header().to_bytes())
    raw[256 + 4 : 256 + 8] = (65).to_bytes(4, "little")
    with pytest.raises(DpcError):
        PrimaryHeader.parse(bytes(raw))


def test_primary_header_to_bytes_rejects_too_many_blocks():
    header = _header(block_descriptions=[BlockDescription()] * 65)
    with pytest.raises(DpcError):
        header.to_bytes()


def test_primary_header_invalid_utf8():
    raw = bytearray(_header().to_bytes())
    raw[0] = 0xFF
    with pytest.raises(DpcError):
        PrimaryHeader.parse(bytes(raw))


def test_primary_header_truncated():
    with pytest.raises(DpcError):
        PrimaryHeader.parse(_header().to_bytes()[:1000])