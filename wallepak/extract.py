"""Unpacking a DPC archive into a directory of object files and a manifest."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from wallepak.classes import class_name_for, version_info
from wallepak.manifest import (
    Block,
    Manifest,
    ObjectDescription,
    Pool,
    PoolObjectEntry,
    ReferenceRecordEntry,
)
from wallepak.options import Options
from wallepak.structures import (
    NO_VALUE,
    PRIMARY_HEADER_SIZE,
    DpcError,
    ObjectHeader,
    PoolManifest,
    PrimaryHeader,
    calculate_padded_size,
)

MANIFEST_NAME = "manifest.json"
REFERENCES_NAME = "references.txt"
OBJECTS_DIR = "objects"


@dataclass
class _StoredObject:
    header: ObjectHeader
    class_object: bytes
    data: bytes


def _say(options: Options, message: str) -> None:
    if not options.is_quiet:
        print(message)


def _take(data: bytes, pos: int, size: int, what: str) -> bytes:
    if size < 0 or pos + size > len(data):
        raise DpcError(f"truncated {what}: need {size} bytes at offset {pos}")
    return data[pos : pos + size]


def _stored_size(header: ObjectHeader) -> int:
    return header.compressed_size if header.compressed_size != 0 else header.decompressed_size


def _check_sizes(header: ObjectHeader) -> None:
    if header.data_size != header.class_object_size + _stored_size(header):
        raise DpcError(f"inconsistent sizes in the header of object {header.crc32}")


def _refuse_lz(crc32: int) -> DpcError:
    return DpcError(f"object {crc32} is compressed and LZ decompression is not available")


def _parse_block_objects(data: bytes, count: int) -> list[_StoredObject]:
    objects = []
    pos = 0
    for _ in range(count):
        header = ObjectHeader.from_bytes(
            _take(data, pos, ObjectHeader.SIZE, "object header")
        )
        pos += ObjectHeader.SIZE
        if header.data_size < header.class_object_size:
            raise DpcError(f"object {header.crc32} is smaller than its class object")
        class_object = _take(data, pos, header.class_object_size, "class object")
        pos += header.class_object_size
        payload_size = header.data_size - header.class_object_size
        payload = _take(data, pos, payload_size, "object data")
        pos += payload_size
        objects.append(_StoredObject(header, class_object, payload))
    return objects


def _parse_pool_objects(data: bytes, count: int) -> list[_StoredObject]:
    objects = []
    pos = 0
    for _ in range(count):
        header = ObjectHeader.from_bytes(
            _take(data, pos, ObjectHeader.SIZE, "pool object header")
        )
        payload = _take(data, pos + ObjectHeader.SIZE, header.data_size, "pool object data")
        pos += calculate_padded_size(ObjectHeader.SIZE + header.data_size)
        if pos > len(data):
            raise DpcError(f"truncated padding after pool object {header.crc32}")
        objects.append(_StoredObject(header, b"", payload))
    return objects


def resolve_object_path(objects_path, crc32: int, class_crc32: int) -> Path:
    """Path of the file holding an object.

    ``<crc32>.<class>`` is used when it exists; otherwise a single renamed
    ``<crc32>_<name>.<class>`` file is used if there is one.
    """
    objects_path = Path(objects_path)
    class_name = class_name_for(class_crc32)
    default = objects_path / f"{crc32}.{class_name}"
    if default.is_file():
        return default
    named = sorted(objects_path.glob(f"{crc32}_*.{class_name}"))
    if len(named) > 1:
        raise DpcError(f"More than one named object for crc32: {crc32}")
    return named[0] if named else default


def _header_manifest(header: PrimaryHeader) -> Manifest:
    manifest = Manifest()
    manifest.header.version_string = header.version_string
    if version_info(header.version_string) is None:
        manifest.header.version_minor = header.version_minor
        manifest.header.version_patch = header.version_patch
        if header.block_descriptions:
            manifest.header.block_type = header.block_descriptions[0].block_type
    manifest.header.is_rtc = header.is_not_rtc == 0
    manifest.header.pool_manifest_unused = header.pool_manifest_unused0
    if header.block_sector_padding_size != NO_VALUE:
        manifest.header.incredi_builder_string = header.incredi_builder_string
    return manifest


def _write_block_object(objects_path: Path, obj: _StoredObject, options: Options) -> None:
    header = obj.header
    if options.is_lz and header.compressed_size != 0:
        raise _refuse_lz(header.crc32)
    _check_sizes(header)
    path = resolve_object_path(objects_path, header.crc32, header.class_crc32)
    _say(options, f"Processing {header.crc32}")
    path.write_bytes(header.to_bytes() + obj.class_object + obj.data)


def _write_pool_object(
    objects_path: Path,
    obj: _StoredObject,
    block_header: ObjectHeader | None,
    options: Options,
) -> None:
    pool_header = obj.header
    crc32 = pool_header.crc32
    _say(options, f"Processing {crc32}")
    if block_header is None:
        raise DpcError(f"pool object {crc32} does not appear in any block")
    if options.is_lz and pool_header.compressed_size != 0:
        raise _refuse_lz(crc32)
    path = resolve_object_path(objects_path, crc32, pool_header.class_crc32)
    header = replace(block_header)
    with path.open("r+b") as stream:
        stream.seek(header.class_object_size + ObjectHeader.SIZE)
        stream.write(obj.data)
        header.data_size = header.class_object_size + _stored_size(pool_header)
        header.compressed_size = pool_header.compressed_size
        header.decompressed_size = pool_header.decompressed_size
        _check_sizes(header)
        if stream.tell() != header.data_size + ObjectHeader.SIZE:
            raise DpcError(f"pool object {crc32} does not match its declared size")
        stream.seek(0)
        stream.write(header.to_bytes())


def extract(input_path, output_path, options: Options | None = None) -> Manifest | None:
    """Unpack a DPC archive into ``output_path``.

    Writes one file per object under ``objects/``, plus ``manifest.json`` and
    ``references.txt``. Returns the manifest, or None when the user chose to
    skip an existing output.
    """
    options = options if options is not None else Options()
    input_path = Path(input_path)
    output_path = Path(output_path)
    with input_path.open("rb") as stream:
        contents = stream.read()

    if not options.check_output(output_path):
        return None
    output_path.mkdir(parents=True, exist_ok=True)

    header = PrimaryHeader.parse(contents[:PRIMARY_HEADER_SIZE].ljust(PRIMARY_HEADER_SIZE, b"\0"))
    if version_info(header.version_string) is None and not options.is_unsafe:
        raise DpcError(
            "Invalid version string. Use -u/--unsafe to bypass this check "
            "and extract the dpc anyway."
        )
    manifest = _header_manifest(header)

    objects_path = output_path / OBJECTS_DIR
    objects_path.mkdir(parents=True, exist_ok=True)

    block_headers: dict[int, ObjectHeader] = {}
    compress_flags: dict[int, bool] = {}
    pos = PRIMARY_HEADER_SIZE
    block_total = len(header.block_descriptions)

    for number, description in enumerate(header.block_descriptions, start=1):
        _say(options, f"Processing block {number}/{block_total}")
        block_data = contents[pos : pos + description.padded_size]
        pos += description.padded_size
        try:
            objects = _parse_block_objects(block_data, description.object_count)
        except DpcError as error:
            raise DpcError(f"{error} on block {number}") from error

        descriptions = []
        for obj in objects:
            crc32 = obj.header.crc32
            descriptions.append(ObjectDescription(crc32, obj.header.compressed_size != 0))
            if crc32 in block_headers:
                continue
            _write_block_object(objects_path, obj, options)
            block_headers[crc32] = obj.header
            compress_flags[crc32] = obj.header.compressed_size != 0
        manifest.blocks.append(Block(description.working_buffer_offset, descriptions))

    if header.pool_manifest_offset != 0:
        pool_data = contents[pos : pos + header.pool_manifest_padded_size]
        pos += header.pool_manifest_padded_size
        pool_manifest, _ = PoolManifest.parse(pool_data)
        if len(pool_manifest.reference_records_indices) < len(pool_manifest.crc32s):
            raise DpcError("pool manifest lacks reference record indices for its objects")
        manifest.pool = Pool(
            object_entry_indices=list(pool_manifest.objects_crc32s),
            object_entries=[
                PoolObjectEntry(crc32, index)
                for crc32, index in zip(
                    pool_manifest.crc32s, pool_manifest.reference_records_indices
                )
            ],
            reference_records=[
                ReferenceRecordEntry(
                    record.objects_crc32_starting_index, record.objects_crc32_count
                )
                for record in pool_manifest.reference_records
            ],
        )

        pool_objects = _parse_pool_objects(contents[pos:], len(pool_manifest.objects_crc32s))
        _say(options, "Processing pool")
        for obj in pool_objects:
            crc32 = obj.header.crc32
            _write_pool_object(objects_path, obj, block_headers.get(crc32), options)
            compress_flags[crc32] = obj.header.compressed_size != 0

    for block in manifest.blocks:
        for description in block.objects:
            description.compress = compress_flags[description.crc32]

    (output_path / MANIFEST_NAME).write_text(manifest.to_json(), encoding="utf-8")
    (output_path / REFERENCES_NAME).write_text("", encoding="utf-8")
    return manifest