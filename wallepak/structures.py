"""Binary structures of the DPC container format (all little endian)."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

SECTOR_SIZE = 2048
PRIMARY_HEADER_SIZE = 2048
VERSION_STRING_SIZE = 256
INCREDI_BUILDER_STRING_SIZE = 128
MAX_BLOCK_COUNT = 64
NO_VALUE = 0xFFFFFFFF

_PART_A_OFFSET = 256
_PART_B_OFFSET = 0x720
_INCREDI_OFFSET = 0x740
_TRAILER_OFFSET = 0x7C0
_TRAILER_SIZE = 64

_U32 = struct.Struct("<I")
_PART_A = struct.Struct("<7I")
_PART_B = struct.Struct("<8I")


class DpcError(Exception):
    """Raised when DPC data is malformed or cannot be processed."""


def calculate_padded_size(unpadded_size: int) -> int:
    """Round a size up to the next multiple of the 2048-byte sector size."""
    return (unpadded_size + 0x7FF) & 0xFFFFF800


def calculate_padding_size(unpadded_size: int) -> int:
    """Number of bytes needed to pad a size up to a sector boundary."""
    return calculate_padded_size(unpadded_size) - unpadded_size


class _Reader:
    """Sequential little-endian reader over a bytes object."""

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = bytes(data)
        self.pos = pos

    def take(self, size: int) -> bytes:
        if size < 0 or self.pos + size > len(self.data):
            raise DpcError(
                f"unexpected end of data: need {size} bytes at offset {self.pos}"
            )
        chunk = self.data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def u32(self) -> int:
        return self.unpack(_U32)[0]

    def u32_array(self) -> list[int]:
        count = self.u32()
        return list(struct.unpack(f"<{count}I", self.take(4 * count)))


def _c_string(raw: bytes) -> str:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as error:
        raise DpcError(f"invalid utf-8 string: {error}") from error
    return text.rstrip("\0")


def _encode_fixed(text: str, size: int, what: str) -> bytes:
    encoded = text.encode("utf-8")
    if len(encoded) > size:
        raise DpcError(f"{what} is longer than {size} bytes")
    return encoded


@dataclass
class ObjectHeader:
    """The 24-byte header in front of every stored object."""

    data_size: int = 0
    class_object_size: int = 0
    decompressed_size: int = 0
    compressed_size: int = 0
    class_crc32: int = 0
    crc32: int = 0

    _FORMAT = struct.Struct("<6I")
    SIZE = _FORMAT.size

    @classmethod
    def from_bytes(cls, data: bytes) -> ObjectHeader:
        if len(data) < cls.SIZE:
            raise DpcError(f"object header needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*cls._FORMAT.unpack_from(data))

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.data_size,
            self.class_object_size,
            self.decompressed_size,
            self.compressed_size,
            self.class_crc32,
            self.crc32,
        )


@dataclass
class BlockDescription:
    """Describes one block of objects in the primary header."""

    block_type: int = 0
    object_count: int = 0
    padded_size: int = 0
    data_size: int = 0
    working_buffer_offset: int = 0
    crc32: int = 0

    _FORMAT = struct.Struct("<6I")
    SIZE = _FORMAT.size

    @classmethod
    def from_bytes(cls, data: bytes) -> BlockDescription:
        if len(data) < cls.SIZE:
            raise DpcError(
                f"block description needs {cls.SIZE} bytes, got {len(data)}"
            )
        return cls(*cls._FORMAT.unpack_from(data))

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.block_type,
            self.object_count,
            self.padded_size,
            self.data_size,
            self.working_buffer_offset,
            self.crc32,
        )


@dataclass
class ReferenceRecord:
    """A pool reference record: a run of pool objects and its sector span."""

    start_chunk_index: int = 0
    end_chunk_index: int = 0
    objects_crc32_starting_index: int = 0
    placeholder_dpc_index: int = 0
    objects_crc32_count: int = 0
    placeholder_times_referenced: int = NO_VALUE
    placeholder_current_references_shared: int = NO_VALUE
    placeholder_current_references_weak: int = NO_VALUE

    _FORMAT = struct.Struct("<3I2H3I")
    SIZE = _FORMAT.size

    @classmethod
    def from_bytes(cls, data: bytes) -> ReferenceRecord:
        if len(data) < cls.SIZE:
            raise DpcError(
                f"reference record needs {cls.SIZE} bytes, got {len(data)}"
            )
        return cls(*cls._FORMAT.unpack_from(data))

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.start_chunk_index,
            self.end_chunk_index,
            self.objects_crc32_starting_index,
            self.placeholder_dpc_index,
            self.objects_crc32_count,
            self.placeholder_times_referenced,
            self.placeholder_current_references_shared,
            self.placeholder_current_references_weak,
        )


@dataclass
class PoolManifestHeader:
    """Fixed header at the start of the pool manifest."""

    equals524288: int = 524288
    equals2048: int = 2048
    objects_crc32_count_sum: int = 0

    _FORMAT = struct.Struct("<3I")
    SIZE = _FORMAT.size

    @classmethod
    def from_bytes(cls, data: bytes) -> PoolManifestHeader:
        if len(data) < cls.SIZE:
            raise DpcError(
                f"pool manifest header needs {cls.SIZE} bytes, got {len(data)}"
            )
        return cls(*cls._FORMAT.unpack_from(data))

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.equals524288, self.equals2048, self.objects_crc32_count_sum
        )


def _u32_array_bytes(values: list[int]) -> bytes:
    return _U32.pack(len(values)) + struct.pack(f"<{len(values)}I", *values)


@dataclass
class PoolManifest:
    """The pool manifest: length-prefixed tables describing pool objects."""

    header: PoolManifestHeader = field(default_factory=PoolManifestHeader)
    objects_crc32s: list[int] = field(default_factory=list)
    crc32s: list[int] = field(default_factory=list)
    reference_counts: list[int] = field(default_factory=list)
    object_padded_size: list[int] = field(default_factory=list)
    reference_records_indices: list[int] = field(default_factory=list)
    reference_records: list[ReferenceRecord] = field(default_factory=list)

    @classmethod
    def parse(cls, data: bytes) -> tuple[PoolManifest, int]:
        """Parse a pool manifest; return it with the number of bytes consumed."""
        reader = _Reader(data)
        header = PoolManifestHeader.from_bytes(reader.take(PoolManifestHeader.SIZE))
        objects_crc32s = reader.u32_array()
        crc32s = reader.u32_array()
        reference_counts = reader.u32_array()
        object_padded_size = reader.u32_array()
        reference_records_indices = reader.u32_array()
        record_count = reader.u32()
        reference_records = [
            ReferenceRecord.from_bytes(reader.take(ReferenceRecord.SIZE))
            for _ in range(record_count)
        ]
        manifest = cls(
            header=header,
            objects_crc32s=objects_crc32s,
            crc32s=crc32s,
            reference_counts=reference_counts,
            object_padded_size=object_padded_size,
            reference_records_indices=reference_records_indices,
            reference_records=reference_records,
        )
        return manifest, reader.pos

    def to_bytes(self) -> bytes:
        parts = [
            self.header.to_bytes(),
            _u32_array_bytes(self.objects_crc32s),
            _u32_array_bytes(self.crc32s),
            _u32_array_bytes(self.reference_counts),
            _u32_array_bytes(self.object_padded_size),
            _u32_array_bytes(self.reference_records_indices),
            _U32.pack(len(self.reference_records)),
        ]
        parts.extend(record.to_bytes() for record in self.reference_records)
        return b"".join(parts)


@dataclass
class PrimaryHeader:
    """The 2048-byte primary header at the start of a DPC file.

    Pool manifest size and offset are held in bytes; on disk they are
    stored as sector counts.
    """

    version_string: str = ""
    is_not_rtc: int = 1
    block_working_buffer_capacity_even: int = 0
    block_working_buffer_capacity_odd: int = 0
    padded_size: int = 0
    version_patch: int = 0
    version_minor: int = 0
    block_descriptions: list[BlockDescription] = field(default_factory=list)
    pool_manifest_padded_size: int = 0
    pool_manifest_offset: int = 0
    pool_manifest_unused0: int = 0
    pool_manifest_unused1: int = 0
    pool_object_decompression_buffer_capacity: int = 0
    block_sector_padding_size: int = NO_VALUE
    pool_sector_padding_size: int = NO_VALUE
    file_size: int = NO_VALUE
    incredi_builder_string: str = ""

    SIZE = PRIMARY_HEADER_SIZE

    @property
    def block_count(self) -> int:
        return len(self.block_descriptions)

    @classmethod
    def parse(cls, data: bytes) -> PrimaryHeader:
        reader = _Reader(data)
        version_string = _c_string(reader.take(VERSION_STRING_SIZE))
        (
            is_not_rtc,
            block_count,
            capacity_even,
            capacity_odd,
            padded_size,
            version_patch,
            version_minor,
        ) = reader.unpack(_PART_A)
        if block_count > MAX_BLOCK_COUNT:
            raise DpcError(
                f"block count {block_count} exceeds the maximum of {MAX_BLOCK_COUNT}"
            )
        block_descriptions = [
            BlockDescription.from_bytes(reader.take(BlockDescription.SIZE))
            for _ in range(block_count)
        ]
        reader.pos = _PART_B_OFFSET
        (
            pool_manifest_sectors,
            pool_offset_sectors,
            unused0,
            unused1,
            decompression_capacity,
            block_sector_padding_size,
            pool_sector_padding_size,
            file_size,
        ) = reader.unpack(_PART_B)
        if file_size != NO_VALUE:
            incredi_builder_string = _c_string(
                reader.take(INCREDI_BUILDER_STRING_SIZE)
            )
        else:
            incredi_builder_string = ""
        return cls(
            version_string=version_string,
            is_not_rtc=is_not_rtc,
            block_working_buffer_capacity_even=capacity_even,
            block_working_buffer_capacity_odd=capacity_odd,
            padded_size=padded_size,
            version_patch=version_patch,
            version_minor=version_minor,
            block_descriptions=block_descriptions,
            pool_manifest_padded_size=(pool_manifest_sectors * SECTOR_SIZE)
            & 0xFFFFFFFF,
            pool_manifest_offset=(pool_offset_sectors * SECTOR_SIZE) & 0xFFFFFFFF,
            pool_manifest_unused0=unused0,
            pool_manifest_unused1=unused1,
            pool_object_decompression_buffer_capacity=decompression_capacity,
            block_sector_padding_size=block_sector_padding_size,
            pool_sector_padding_size=pool_sector_padding_size,
            file_size=file_size,
            incredi_builder_string=incredi_builder_string,
        )

    def to_bytes(self) -> bytes:
        if self.block_count > MAX_BLOCK_COUNT:
            raise DpcError(
                f"block count {self.block_count} exceeds the maximum of "
                f"{MAX_BLOCK_COUNT}"
            )
        buffer = bytearray(PRIMARY_HEADER_SIZE)
        version = _encode_fixed(
            self.version_string, VERSION_STRING_SIZE, "version string"
        )
        buffer[: len(version)] = version

        part_a = _PART_A.pack(
            self.is_not_rtc,
            self.block_count,
            self.block_working_buffer_capacity_even,
            self.block_working_buffer_capacity_odd,
            self.padded_size,
            self.version_patch,
            self.version_minor,
        )
        descriptions = b"".join(d.to_bytes() for d in self.block_descriptions)
        body = part_a + descriptions
        buffer[_PART_A_OFFSET : _PART_A_OFFSET + len(body)] = body

        part_b = _PART_B.pack(
            (self.pool_manifest_padded_size + SECTOR_SIZE - 1) // SECTOR_SIZE,
            (self.pool_manifest_offset + SECTOR_SIZE - 1) // SECTOR_SIZE,
            self.pool_manifest_unused0,
            self.pool_manifest_unused1,
            self.pool_object_decompression_buffer_capacity,
            self.block_sector_padding_size,
            self.pool_sector_padding_size,
            self.file_size,
        )
        buffer[_PART_B_OFFSET : _PART_B_OFFSET + len(part_b)] = part_b

        if self.file_size != NO_VALUE:
            incredi = _encode_fixed(
                self.incredi_builder_string,
                INCREDI_BUILDER_STRING_SIZE,
                "incredibuilder string",
            )
            buffer[_INCREDI_OFFSET : _INCREDI_OFFSET + len(incredi)] = incredi
        else:
            buffer[_INCREDI_OFFSET:_TRAILER_OFFSET] = b"\xff" * (
                INCREDI_BUILDER_STRING_SIZE
            )
        buffer[_TRAILER_OFFSET : _TRAILER_OFFSET + _TRAILER_SIZE] = (
            b"\xff" * _TRAILER_SIZE
        )
        return bytes(buffer)