"""Packing an extracted directory back into a DPC archive."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from pathlib import Path

from wallepak.classes import version_info
from wallepak.manifest import Manifest, Pool, PoolObjectEntry, ReferenceRecordEntry
from wallepak.options import Options
from wallepak.structures import (
    NO_VALUE,
    PRIMARY_HEADER_SIZE,
    SECTOR_SIZE,
    BlockDescription,
    DpcError,
    ObjectHeader,
    PoolManifestHeader,
    PrimaryHeader,
    ReferenceRecord,
    calculate_padded_size,
    calculate_padding_size,
)

MANIFEST_NAME = "manifest.json"
OBJECTS_DIR = "objects"


def _say(options: Options, message: str) -> None:
    if not options.is_quiet:
        print(message)


def _parse_crc32(text: str) -> int | None:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    value = int(digits)
    return value if value <= 0xFFFFFFFF else None


def build_object_index(objects_path) -> dict[int, Path]:
    """Map each object crc32 to the file holding it.

    Files are named ``<crc32>.<class>`` or ``<crc32>_<name>.<class>``; files
    whose name does not start with a crc32 are ignored.
    """
    index: dict[int, Path] = {}
    for path in sorted(Path(objects_path).iterdir()):
        if not path.is_file():
            continue
        crc32 = _parse_crc32(path.stem.split("_", 1)[0])
        if crc32 is None:
            continue
        if crc32 in index:
            raise DpcError(f"Ambiguous files for crc32 = {crc32}")
        index[crc32] = path
    return index


def _read_object(path: Path) -> tuple[ObjectHeader, bytes, bytes]:
    raw = path.read_bytes()
    header = ObjectHeader.from_bytes(raw[: ObjectHeader.SIZE])
    if header.data_size < header.class_object_size:
        raise DpcError(f"object {header.crc32} is smaller than its class object")
    class_end = ObjectHeader.SIZE + header.class_object_size
    data_end = ObjectHeader.SIZE + header.data_size
    if len(raw) < data_end:
        raise DpcError(f"object file {path} is truncated")
    return header, raw[ObjectHeader.SIZE : class_end], raw[class_end:data_end]


def _needs_compression(compress: bool, header: ObjectHeader, options: Options) -> bool:
    return compress and header.compressed_size == 0 and options.is_lz


def _refuse_lz(crc32: int) -> DpcError:
    return DpcError(f"object {crc32} must be compressed and LZ compression is not available")


def _pad(out: bytearray, fill: int) -> int:
    size = calculate_padding_size(len(out))
    out.extend(bytes([fill]) * size)
    return size


def _entry(pool: Pool, index: int) -> PoolObjectEntry:
    if not 0 <= index < len(pool.object_entries):
        raise DpcError(f"pool object entry index {index} is out of range")
    return pool.object_entries[index]


def _indexed_entry(pool: Pool, position: int) -> PoolObjectEntry:
    if not 0 <= position < len(pool.object_entry_indices):
        raise DpcError(f"pool object position {position} is out of range")
    return _entry(pool, pool.object_entry_indices[position])


def _record_for(pool: Pool, record_index: int) -> ReferenceRecordEntry:
    if not 1 <= record_index <= len(pool.reference_records):
        raise DpcError(f"reference record index {record_index} is out of range")
    return pool.reference_records[record_index - 1]


def _optimize_pool(pool: Pool) -> None:
    unique = list(dict.fromkeys(pool.reference_records))
    for entry in pool.object_entries:
        record = _record_for(pool, entry.reference_record_index)
        entry.reference_record_index = unique.index(record) + 1
    pool.reference_records = unique


def _u32_array(values) -> bytes:
    values = list(values)
    return len(values).to_bytes(4, "little") + b"".join(
        value.to_bytes(4, "little") for value in values
    )


def _write_pool(
    out: bytearray,
    pool: Pool,
    index: dict[int, Path],
    padded_sizes: dict[int, int],
    options: Options,
    unoptimized_pool: bool,
) -> tuple[int, int, int, int]:
    """Append the pool manifest and pool objects.

    Returns (manifest offset, manifest padded size, sector padding,
    decompression buffer capacity in sectors).
    """
    _say(options, "Processing pool")
    if options.is_optimization and not unoptimized_pool:
        _say(options, "Optimizing the pool")
        _optimize_pool(pool)

    def padded_size_of(crc32: int) -> int:
        if crc32 not in padded_sizes:
            raise DpcError(f"pool object {crc32} does not appear in any block")
        return padded_sizes[crc32]

    manifest_offset = len(out)
    count_sum = sum(record.object_entries_count for record in pool.reference_records)
    out += PoolManifestHeader(objects_crc32_count_sum=count_sum).to_bytes()
    out += _u32_array(pool.object_entry_indices)

    reference_counts = Counter(
        _entry(pool, i).crc32 for i in pool.object_entry_indices
    )
    counts = []
    for entry in pool.object_entries:
        if entry.crc32 not in reference_counts:
            raise DpcError(f"pool object {entry.crc32} is never referenced")
        counts.append(reference_counts[entry.crc32])

    out += _u32_array(entry.crc32 for entry in pool.object_entries)
    out += _u32_array(counts)
    out += _u32_array(padded_size_of(entry.crc32) for entry in pool.object_entries)
    out += _u32_array(entry.reference_record_index for entry in pool.object_entries)

    record_size = ReferenceRecord.SIZE
    end_of_manifest = calculate_padded_size(
        len(out) + record_size * len(pool.reference_records) + record_size
    )
    records = []
    for record in pool.reference_records:
        first = record.object_entries_starting_index
        last = first + record.object_entries_count
        start_chunk = end_of_manifest // SECTOR_SIZE + sum(
            padded_size_of(_indexed_entry(pool, i).crc32) for i in range(first)
        )
        end_chunk = start_chunk + sum(
            padded_size_of(_indexed_entry(pool, i).crc32) for i in range(first, last)
        )
        records.append(
            ReferenceRecord(
                start_chunk_index=start_chunk,
                end_chunk_index=end_chunk,
                objects_crc32_starting_index=first,
                objects_crc32_count=record.object_entries_count,
            )
        )
    out += len(records).to_bytes(4, "little")
    for record in records:
        out += record.to_bytes()
    out += ReferenceRecord().to_bytes()
    _pad(out, 0xFF)
    manifest_padded_size = len(out) - manifest_offset

    sector_padding = 0
    capacity = 0
    for i in pool.object_entry_indices:
        crc32 = _entry(pool, i).crc32
        _say(options, f"Processing {crc32}")
        header, _, payload = _read_object(index[crc32])
        capacity = max(capacity, (header.decompressed_size + SECTOR_SIZE - 1) // SECTOR_SIZE)
        pool_header = replace(
            header,
            data_size=header.data_size - header.class_object_size,
            class_object_size=0,
        )
        out += pool_header.to_bytes()
        out += payload
        sector_padding += _pad(out, 0xFF)
    return manifest_offset, manifest_padded_size, sector_padding, capacity


def create(
    input_path,
    output_path,
    options: Options | None = None,
    no_pool: bool = False,
    unoptimized_pool: bool = False,
) -> PrimaryHeader | None:
    """Pack the directory ``input_path`` into the DPC file ``output_path``.

    Returns the primary header written, or None when the user chose to skip
    an existing output.
    """
    options = options if options is not None else Options()
    input_path = Path(input_path)
    output_path = Path(output_path)
    manifest_text = (input_path / MANIFEST_NAME).read_text(encoding="utf-8")

    if not options.check_output(output_path):
        return None

    manifest = Manifest.from_json(manifest_text)
    if no_pool:
        manifest.header.pool_manifest_unused = 0
        manifest.pool = None

    index = build_object_index(input_path / OBJECTS_DIR)

    known = version_info(manifest.header.version_string)
    if known is not None:
        version_patch, version_minor, block_type = known
    else:
        version_patch = manifest.header.version_patch or 0
        version_minor = manifest.header.version_minor or 0
        block_type = manifest.header.block_type or 0
    if version_patch == 0 and not options.is_unsafe:
        raise DpcError(
            "Invalid version string. Use -u/--unsafe to bypass this check "
            "and use the invalid string."
        )

    pool_crc32s = (
        {entry.crc32 for entry in manifest.pool.object_entries}
        if manifest.pool is not None
        else set()
    )
    padded_sizes: dict[int, int] = {}
    pool_compress: dict[int, bool] = {}

    out = bytearray(PRIMARY_HEADER_SIZE)
    descriptions: list[BlockDescription] = []
    block_sector_padding = 0
    block_total = len(manifest.blocks)

    for number, block in enumerate(manifest.blocks, start=1):
        _say(options, f"Processing block {number}/{block_total}")
        if not block.objects:
            raise DpcError(f"block {number} holds no objects")
        start = len(out)
        for description in block.objects:
            crc32 = description.crc32
            if crc32 not in index:
                raise DpcError(f"No object for crc32: {crc32}")
            header, class_object, payload = _read_object(index[crc32])
            _say(options, f"Processing {header.crc32}")
            if crc32 not in pool_crc32s:
                if _needs_compression(description.compress, header, options):
                    raise _refuse_lz(crc32)
                out += header.to_bytes() + class_object + payload
                continue

            if crc32 in pool_compress:
                if pool_compress[crc32] != description.compress:
                    raise DpcError(f"Inconsistent compress values for crc32 {crc32}")
            else:
                pool_compress[crc32] = description.compress
                if _needs_compression(description.compress, header, options):
                    raise _refuse_lz(crc32)
            padded_sizes.setdefault(
                crc32,
                calculate_padded_size(
                    ObjectHeader.SIZE + header.data_size - header.class_object_size
                )
                >> 11,
            )
            stub = replace(
                header,
                class_object_size=len(class_object),
                data_size=len(class_object),
                compressed_size=0,
                decompressed_size=0,
            )
            out += stub.to_bytes() + class_object

        data_size = len(out) - start
        descriptions.append(
            BlockDescription(
                block_type=block_type,
                object_count=len(block.objects),
                padded_size=calculate_padded_size(data_size),
                data_size=data_size,
                working_buffer_offset=block.offset,
                crc32=block.objects[0].crc32,
            )
        )
        block_type = 0
        block_sector_padding += _pad(out, 0x00)

    blocks_padded_size = len(out) - PRIMARY_HEADER_SIZE

    pool_offset = pool_padded_size = pool_sector_padding = capacity = 0
    if manifest.pool is not None:
        pool_offset, pool_padded_size, pool_sector_padding, capacity = _write_pool(
            out, manifest.pool, index, padded_sizes, options, unoptimized_pool
        )

    file_size = len(out)
    if not manifest.header.incredi_builder_string:
        block_sector_padding = pool_sector_padding = file_size = NO_VALUE

    capacity_even = max(
        (d.padded_size + d.working_buffer_offset for d in descriptions[0::2]), default=0
    )
    capacity_odd = max(
        (d.padded_size + d.working_buffer_offset for d in descriptions[1::2]), default=0
    )

    header = PrimaryHeader(
        version_string=manifest.header.version_string,
        is_not_rtc=0 if manifest.header.is_rtc else 1,
        block_working_buffer_capacity_even=capacity_even,
        block_working_buffer_capacity_odd=capacity_odd,
        padded_size=blocks_padded_size,
        version_patch=version_patch,
        version_minor=version_minor,
        block_descriptions=descriptions,
        pool_manifest_padded_size=pool_padded_size,
        pool_manifest_offset=pool_offset,
        pool_manifest_unused0=manifest.header.pool_manifest_unused,
        pool_manifest_unused1=manifest.header.pool_manifest_unused,
        pool_object_decompression_buffer_capacity=capacity,
        block_sector_padding_size=block_sector_padding,
        pool_sector_padding_size=pool_sector_padding,
        file_size=file_size,
        incredi_builder_string=manifest.header.incredi_builder_string,
    )
    out[:PRIMARY_HEADER_SIZE] = header.to_bytes()
    output_path.write_bytes(bytes(out))
    return header