"""Operations on single extracted object files."""

from __future__ import annotations

from pathlib import Path

from wallepak.structures import DpcError, ObjectHeader


def split_object(input_path, output_path) -> tuple[Path, Path]:
    """Split an object file into its class object and its data.

    ``output_path`` must have an extension; the class object goes to
    ``<output_path>.header`` and the data to ``<output_path>.data``.
    Returns the two paths written.
    """
    output_path = Path(output_path)
    if not output_path.suffix:
        raise DpcError(f"output path {output_path} has no extension")
    header_path = output_path.with_name(output_path.name + ".header")
    data_path = output_path.with_name(output_path.name + ".data")

    raw = Path(input_path).read_bytes()
    header = ObjectHeader.from_bytes(raw[: ObjectHeader.SIZE])
    if header.data_size < header.class_object_size:
        raise DpcError(f"object {header.crc32} is smaller than its class object")
    class_end = ObjectHeader.SIZE + header.class_object_size
    data_end = ObjectHeader.SIZE + header.data_size
    if len(raw) < data_end:
        raise DpcError(f"object file {input_path} is truncated")

    header_path.write_bytes(raw[ObjectHeader.SIZE : class_end])
    data_path.write_bytes(raw[class_end:data_end])
    return header_path, data_path