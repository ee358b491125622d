"""The JSON manifest describing an extracted DPC archive."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from wallepak.structures import DpcError


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict):
        raise DpcError(f"expected an object holding {key!r}")
    if key not in data:
        raise DpcError(f"missing field {key!r}")
    return data[key]


def _int(data: Any, key: str, limit: int = 0xFFFFFFFF) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= limit:
        raise DpcError(f"field {key!r} must be an integer in 0..{limit}")
    return value


def _optional_int(data: Any, key: str) -> int | None:
    if not isinstance(data, dict):
        raise DpcError(f"expected an object holding {key!r}")
    if data.get(key) is None:
        return None
    return _int(data, key)


def _bool(data: Any, key: str) -> bool:
    value = _require(data, key)
    if not isinstance(value, bool):
        raise DpcError(f"field {key!r} must be a boolean")
    return value


def _str(data: Any, key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise DpcError(f"field {key!r} must be a string")
    return value


def _list(data: Any, key: str) -> list:
    value = _require(data, key)
    if not isinstance(value, list):
        raise DpcError(f"field {key!r} must be an array")
    return value


@dataclass
class Header:
    version_string: str = ""
    version_minor: int | None = None
    version_patch: int | None = None
    block_type: int | None = None
    is_rtc: bool = False
    pool_manifest_unused: int = 0
    incredi_builder_string: str = ""

    def to_dict(self) -> dict:
        return {
            "version_string": self.version_string,
            "version_minor": self.version_minor,
            "version_patch": self.version_patch,
            "block_type": self.block_type,
            "is_rtc": self.is_rtc,
            "pool_manifest_unused": self.pool_manifest_unused,
            "incredi_builder_string": self.incredi_builder_string,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Header:
        return cls(
            version_string=_str(data, "version_string"),
            version_minor=_optional_int(data, "version_minor"),
            version_patch=_optional_int(data, "version_patch"),
            block_type=_optional_int(data, "block_type"),
            is_rtc=_bool(data, "is_rtc"),
            pool_manifest_unused=_int(data, "pool_manifest_unused"),
            incredi_builder_string=_str(data, "incredi_builder_string"),
        )


@dataclass
class ObjectDescription:
    crc32: int
    compress: bool

    def to_dict(self) -> dict:
        return {"crc32": self.crc32, "compress": self.compress}

    @classmethod
    def from_dict(cls, data: Any) -> ObjectDescription:
        return cls(crc32=_int(data, "crc32"), compress=_bool(data, "compress"))


@dataclass
class Block:
    offset: int
    objects: list[ObjectDescription] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "offset": self.offset,
            "objects": [obj.to_dict() for obj in self.objects],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Block:
        return cls(
            offset=_int(data, "offset"),
            objects=[ObjectDescription.from_dict(o) for o in _list(data, "objects")],
        )


@dataclass
class PoolObjectEntry:
    crc32: int
    reference_record_index: int

    def to_dict(self) -> dict:
        return {
            "crc32": self.crc32,
            "reference_record_index": self.reference_record_index,
        }

    @classmethod
    def from_dict(cls, data: Any) -> PoolObjectEntry:
        return cls(
            crc32=_int(data, "crc32"),
            reference_record_index=_int(data, "reference_record_index"),
        )


@dataclass(frozen=True)
class ReferenceRecordEntry:
    object_entries_starting_index: int
    object_entries_count: int

    def to_dict(self) -> dict:
        return {
            "object_entries_starting_index": self.object_entries_starting_index,
            "object_entries_count": self.object_entries_count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ReferenceRecordEntry:
        return cls(
            object_entries_starting_index=_int(data, "object_entries_starting_index"),
            object_entries_count=_int(data, "object_entries_count", 0xFFFF),
        )


@dataclass
class Pool:
    object_entry_indices: list[int] = field(default_factory=list)
    object_entries: list[PoolObjectEntry] = field(default_factory=list)
    reference_records: list[ReferenceRecordEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "object_entry_indices": list(self.object_entry_indices),
            "object_entries": [e.to_dict() for e in self.object_entries],
            "reference_records": [r.to_dict() for r in self.reference_records],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Pool:
        indices = _list(data, "object_entry_indices")
        for value in indices:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise DpcError("object_entry_indices must hold unsigned integers")
        return cls(
            object_entry_indices=list(indices),
            object_entries=[
                PoolObjectEntry.from_dict(e) for e in _list(data, "object_entries")
            ],
            reference_records=[
                ReferenceRecordEntry.from_dict(r)
                for r in _list(data, "reference_records")
            ],
        )


@dataclass
class Manifest:
    """Header, block layout and optional pool of an extracted archive."""

    header: Header = field(default_factory=Header)
    blocks: list[Block] = field(default_factory=list)
    pool: Pool | None = None

    def to_dict(self) -> dict:
        result: dict = {
            "header": self.header.to_dict(),
            "blocks": [block.to_dict() for block in self.blocks],
        }
        if self.pool is not None:
            result["pool"] = self.pool.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Manifest:
        pool_data = data.get("pool") if isinstance(data, dict) else None
        return cls(
            header=Header.from_dict(_require(data, "header")),
            blocks=[Block.from_dict(b) for b in _list(data, "blocks")],
            pool=Pool.from_dict(pool_data) if pool_data is not None else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> Manifest:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as error:
            raise DpcError(f"invalid manifest json: {error}") from error
        return cls.from_dict(data)