"""Known object classes and archive versions."""

from __future__ import annotations

from types import MappingProxyType

from wallepak.structures import DpcError

DEFAULT_VERSION_STRING = "v1.291.03.06 - Asobo Studio - Internal Cross Technology"

CLASS_NAMES = MappingProxyType(
    {
        549480509: "Omni_Z",
        705810152: "Rtc_Z",
        838505646: "GenWorld_Z",
        848525546: "LightData_Z",
        849267944: "Sound_Z",
        849861735: "MaterialObj_Z",
        866453734: "RotShape_Z",
        954499543: "ParticlesData_Z",
        968261323: "World_Z",
        1114947943: "Warp_Z",
        1135194223: "Spline_Z",
        1175485833: "Animation_Z",
        1387343541: "Mesh_Z",
        1391959958: "UserDefine_Z",
        1396791303: "Skin_Z",
        1471281566: "Bitmap_Z",
        1536002910: "Fonts_Z",
        1625945536: "RotShapeData_Z",
        1706265229: "Surface_Z",
        1910554652: "SplineGraph_Z",
        1943824915: "Lod_Z",
        2204276779: "Material_Z",
        2245010728: "Node_Z",
        2259852416: "Binary_Z",
        2398393906: "CollisionVol_Z",
        2906362741: "WorldRef_Z",
        3312018398: "Particles_Z",
        3412401859: "LodData_Z",
        3611002348: "Skel_Z",
        3626109572: "MeshData_Z",
        3747817665: "SurfaceDatas_Z",
        3834418854: "MaterialAnim_Z",
        3845834591: "GwRoad_Z",
        4096629181: "GameObj_Z",
        4240844041: "Camera_Z",
        4117606081: "AnimFrame_Z",
        3979333606: "CameraZone_Z",
        72309972: "Occluder_Z",
        1390918523: "Graph_Z",
        1918499807: "Light_Z",
        3210467954: "HFogData_Z",
        2735949084: "HFog_Z",
        2203168663: "Flare_Z",
        1393846573: "FlareData_Z",
    }
)

_CLASS_CRC32S = MappingProxyType({name: crc for crc, name in CLASS_NAMES.items()})

# version string -> (version_patch, version_minor, first block type)
VERSIONS = MappingProxyType(
    {
        "v1.325.50.07 - Asobo Studio - Internal Cross Technology": (262, 326, 146),
        "v1.220.50.07 - Asobo Studio - Internal Cross Technology": (262, 221, 144),
    }
)


def _parse_u32(text: str) -> int:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        raise DpcError(f"{text!r} is not an unsigned 32-bit integer")
    value = int(digits)
    if value > 0xFFFFFFFF:
        raise DpcError(f"{text!r} is out of range for an unsigned 32-bit integer")
    return value


def class_name_for(class_crc32: int) -> str:
    """Name of a class, or its crc32 in decimal when the class is unknown."""
    return CLASS_NAMES.get(class_crc32, str(class_crc32))


def class_crc32_for(name: str) -> int:
    """Class crc32 for a class name or a decimal crc32 string."""
    known = _CLASS_CRC32S.get(name)
    if known is not None:
        return known
    return _parse_u32(name)


def version_info(version_string: str) -> tuple[int, int, int] | None:
    """Return (patch, minor, block type) for a supported version, else None."""
    return VERSIONS.get(version_string)