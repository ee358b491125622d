"""Checking the layout of a DPC archive and dumping it as JSON."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from wallepak.options import Options
from wallepak.structures import (
    PRIMARY_HEADER_SIZE,
    SECTOR_SIZE,
    DpcError,
    ObjectHeader,
    PoolManifest,
    PrimaryHeader,
    calculate_padded_size,
    calculate_padding_size,
)


def _skip(data: bytes, pos: int, size: int, what: str) -> int:
    if size < 0 or pos + size > len(data):
        raise DpcError(f"truncated {what}: need {size} bytes at offset {pos}")
    return pos + size


def _align(data: bytes, pos: int, what: str) -> int:
    return _skip(data, pos, calculate_padding_size(pos), f"alignment after {what}")


def _verified_header(data: bytes, pos: int) -> ObjectHeader:
    _skip(data, pos, ObjectHeader.SIZE, "object header")
    header = ObjectHeader.from_bytes(data[pos : pos + ObjectHeader.SIZE])
    stored = header.compressed_size if header.compressed_size != 0 else header.decompressed_size
    if header.data_size != header.class_object_size + stored:
        raise DpcError(
            f"inconsistent sizes in the header of object {header.crc32} at offset {pos}"
        )
    return header


def _primary_header_dict(header: PrimaryHeader) -> dict[str, Any]:
    return {
        "version_string": header.version_string,
        "is_not_rtc": header.is_not_rtc,
        "block_count": header.block_count,
        "block_working_buffer_capacity_even": header.block_working_buffer_capacity_even,
        "block_working_buffer_capacity_odd": header.block_working_buffer_capacity_odd,
        "padded_size": header.padded_size,
        "version_patch": header.version_patch,
        "version_minor": header.version_minor,
        "block_descriptions": [asdict(d) for d in header.block_descriptions],
        "pool_manifest_padded_size": header.pool_manifest_padded_size,
        "pool_manifest_offset": header.pool_manifest_offset,
        "pool_manifest_unused0": header.pool_manifest_unused0,
        "pool_manifest_unused1": header.pool_manifest_unused1,
        "pool_object_decompression_buffer_capacity": (
            header.pool_object_decompression_buffer_capacity
        ),
        "block_sector_padding_size": header.block_sector_padding_size,
        "pool_sector_padding_size": header.pool_sector_padding_size,
        "file_size": header.file_size,
        "incredi_builder_string": header.incredi_builder_string,
    }


def parse_dpc(data: bytes) -> dict[str, Any]:
    """Walk a whole DPC archive, checking every object header.

    Returns a JSON-ready description of the primary header, the object
    headers of every block and, when present, the pool. Raises DpcError if
    the layout is inconsistent or the data does not end exactly where the
    archive does.
    """
    data = bytes(data)
    if len(data) < PRIMARY_HEADER_SIZE:
        raise DpcError(
            f"a DPC archive needs at least {PRIMARY_HEADER_SIZE} bytes, got {len(data)}"
        )
    header = PrimaryHeader.parse(data[:PRIMARY_HEADER_SIZE])
    pos = PRIMARY_HEADER_SIZE

    blocks = []
    for number, description in enumerate(header.block_descriptions, start=1):
        objects = []
        for _ in range(description.object_count):
            object_header = _verified_header(data, pos)
            pos = _skip(
                data,
                pos + ObjectHeader.SIZE,
                object_header.data_size,
                f"object {object_header.crc32} in block {number}",
            )
            objects.append(asdict(object_header))
        pos = _skip(
            data,
            pos,
            calculate_padding_size(description.data_size),
            f"padding of block {number}",
        )
        blocks.append({"objects": objects})

    result: dict[str, Any] = {
        "primary_header": _primary_header_dict(header),
        "blocks": blocks,
    }

    if header.pool_manifest_offset != 0:
        pool_manifest, consumed = PoolManifest.parse(data[pos:])
        pos = _align(data, pos + consumed, "pool manifest")
        pool_objects = []
        for _ in pool_manifest.objects_crc32s:
            object_header = _verified_header(data, pos)
            stored = (
                calculate_padded_size(object_header.data_size + ObjectHeader.SIZE)
                - ObjectHeader.SIZE
            )
            pos = _skip(
                data,
                pos + ObjectHeader.SIZE,
                stored,
                f"pool object {object_header.crc32}",
            )
            pool_objects.append(asdict(object_header))
        pos = _align(data, pos, "pool objects")
        result["pool"] = {"manifest": asdict(pool_manifest), "objects": pool_objects}

    if pos != len(data):
        raise DpcError(
            f"{len(data) - pos} unexpected trailing bytes at offset {pos}"
            if pos < len(data)
            else f"archive is shorter than its layout ({len(data)} < {pos})"
        )
    if pos % SECTOR_SIZE and header.pool_manifest_offset != 0:
        raise DpcError("pool does not end on a sector boundary")
    return result


def validate(input_path, output_path, options: Options | None = None) -> dict[str, Any] | None:
    """Check the DPC file ``input_path`` and write its layout to ``output_path``.

    Returns the layout, or None when the user chose to skip an existing output.
    """
    options = options if options is not None else Options()
    data = Path(input_path).read_bytes()
    output_path = Path(output_path)
    if not options.check_output(output_path):
        return None
    layout = parse_dpc(data)
    output_path.write_text(json.dumps(layout, indent=2), encoding="utf-8")
    return layout