"""
Typed tree configuration.

Raw input is a nested mapping shaped like

    {"type": "oak", "seed": 1,
     "bark": {...}, "branch": {"levels": 3, "angle": {"1": 40, "2": 30}, ...},
     "leaves": {...}}

Per-level branch fields are maps keyed by the string level index ("0", "1", ...).
Keys may be written in snake_case or in the camelCase of the JSON tree format
(``flatShading``, ``sizeVariance``, ...). `canonicalize` normalizes them and rejects
unknown keys, `build_tree_config` validates a complete mapping into frozen dataclasses.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import yaml

from tree_maker.errors import ConfigError, UnknownBillboard, UnknownTreeType

LEVEL_FIELDS = (
    "angle",
    "children",
    "gnarliness",
    "length",
    "radius",
    "sections",
    "start",
    "taper",
    "twist",
)
INTEGER_LEVEL_FIELDS = ("children", "sections")

BARK_FIELDS = ("type", "tint", "flat_shading", "textured", "texture_scale")
BRANCH_FIELDS = ("levels", "segments", "force") + LEVEL_FIELDS
LEAF_FIELDS = (
    "type",
    "billboard",
    "angle",
    "count",
    "start",
    "size",
    "size_variance",
    "tint",
    "alpha_test",
)
SECTION_FIELDS = {"bark": BARK_FIELDS, "branch": BRANCH_FIELDS, "leaves": LEAF_FIELDS}
TOP_LEVEL_FIELDS = ("type", "seed") + tuple(SECTION_FIELDS)

MAX_SEED = 2**64
MAX_TINT = 0xFFFFFF


class TreeType(Enum):
    OAK = "oak"
    PINE = "pine"
    WILLOW = "willow"
    PALM = "palm"

    @classmethod
    def parse(cls, value) -> "TreeType":
        if isinstance(value, TreeType):
            return value
        if not isinstance(value, str):
            raise UnknownTreeType(value)
        name = value.strip().lower()
        name = TREE_TYPE_ALIASES.get(name, name)
        for member in cls:
            if member.value == name:
                return member
        raise UnknownTreeType(value)


TREE_TYPE_ALIASES = {
    "deciduous": "oak",
    "conifer": "pine",
    "weeping": "willow",
    "tropical": "palm",
}


class Billboard(Enum):
    SINGLE = "single"
    DOUBLE = "double"

    @classmethod
    def parse(cls, value) -> "Billboard":
        if isinstance(value, Billboard):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        raise UnknownBillboard(value)


@dataclass(frozen=True)
class TextureScale:
    x: float
    y: float


@dataclass(frozen=True)
class BarkConfig:
    type: str
    tint: int
    flat_shading: bool
    textured: bool
    texture_scale: TextureScale


@dataclass(frozen=True)
class ForceConfig:
    direction: tuple[float, float, float]
    strength: float


@dataclass(frozen=True)
class BranchConfig:
    levels: int
    angle: tuple[float, ...]
    children: tuple[int, ...]
    gnarliness: tuple[float, ...]
    length: tuple[float, ...]
    radius: tuple[float, ...]
    sections: tuple[int, ...]
    start: tuple[float, ...]
    taper: tuple[float, ...]
    twist: tuple[float, ...]
    segments: int
    force: ForceConfig


@dataclass(frozen=True)
class LeafConfig:
    type: str
    billboard: Billboard
    angle: float
    count: int
    start: float
    size: float
    size_variance: float
    tint: int
    alpha_test: float


@dataclass(frozen=True)
class TreeConfig:
    tree_type: TreeType
    seed: int | None
    bark: BarkConfig
    branch: BranchConfig
    leaves: LeafConfig


def load_configuration(config_path: Path) -> dict:
    """Read a JSON or YAML tree configuration file into a raw mapping."""
    with Path(config_path).open("r", encoding="utf-8") as file:
        raw = yaml.safe_load(file)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("<root>", f"expected a mapping, got {type(raw).__name__}")
    return raw


def _snake_case(key: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key).lower()


def _canonical_level_key(key, field: str) -> str:
    text = str(key).strip()
    if not text.isdigit():
        raise ConfigError(field, f"level key {key!r} is not a non-negative integer")
    return str(int(text))


def canonicalize(raw: dict) -> dict:
    """
    Return a copy of `raw` with snake_case keys and string level keys.
    Unknown field names raise ConfigError naming the offending field.
    """
    if not isinstance(raw, dict):
        raise ConfigError("<root>", f"expected a mapping, got {type(raw).__name__}")

    out = {}
    for key, value in raw.items():
        name = _snake_case(str(key))
        if name not in TOP_LEVEL_FIELDS:
            raise ConfigError(name, "unknown field")
        if name in SECTION_FIELDS:
            out[name] = _canonicalize_section(name, value)
        else:
            out[name] = value
    return out


def _canonicalize_section(section: str, raw) -> dict:
    if not isinstance(raw, dict):
        raise ConfigError(section, f"expected a mapping, got {type(raw).__name__}")
    allowed = SECTION_FIELDS[section]
    out = {}
    for key, value in raw.items():
        name = _snake_case(str(key))
        field = f"{section}.{name}"
        if name not in allowed:
            raise ConfigError(field, "unknown field")
        if section == "branch" and name in LEVEL_FIELDS:
            if not isinstance(value, dict):
                raise ConfigError(field, "expected a map keyed by level index")
            out[name] = {_canonical_level_key(k, field): v for k, v in value.items()}
        elif isinstance(value, dict):
            out[name] = dict(value)
        else:
            out[name] = value
    return out


def _as_float(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(field, f"expected a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise ConfigError(field, f"expected a finite number, got {value!r}")
    return value


def _as_int(value, field: str) -> int:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(field, f"expected an integer, got {value!r}")
    return value


def _as_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(field, f"expected true or false, got {value!r}")
    return value


def _as_tint(value, field: str) -> int:
    if isinstance(value, str):
        text = value.strip().lower()
        for prefix in ("#", "0x"):
            if text.startswith(prefix):
                text = text[len(prefix):]
        try:
            value = int(text, 16)
        except ValueError:
            raise ConfigError(field, f"invalid color {value!r}") from None
    value = _as_int(value, field)
    if not 0 <= value <= MAX_TINT:
        raise ConfigError(field, f"color {value:#x} outside 0x000000..0xffffff")
    return value


def _unit_interval(value, field: str) -> float:
    value = _as_float(value, field)
    if not 0.0 <= value <= 1.0:
        raise ConfigError(field, f"{value} outside [0, 1]")
    return value


def _positive(value, field: str) -> float:
    value = _as_float(value, field)
    if value <= 0.0:
        raise ConfigError(field, f"must be > 0, got {value}")
    return value


def _require(mapping: dict, key: str, field: str):
    if key not in mapping:
        raise ConfigError(field, "missing value")
    return mapping[key]


LEVEL_VALIDATORS = {
    "angle": _as_float,
    "children": _as_int,
    "gnarliness": _unit_interval,
    "length": _positive,
    "radius": _positive,
    "sections": _as_int,
    "start": _unit_interval,
    "taper": _unit_interval,
    "twist": _as_float,
}


def _level_values(branch: dict, name: str, levels: int) -> tuple:
    per_level = _require(branch, name, f"branch.{name}")
    validate = LEVEL_VALIDATORS[name]
    values = []
    for level in range(levels):
        field = f"branch.{name}.{level}"
        value = validate(_require(per_level, str(level), field), field)
        if name == "children" and value < 0:
            raise ConfigError(field, f"must be >= 0, got {value}")
        if name == "sections" and value < 1:
            raise ConfigError(field, f"must be >= 1, got {value}")
        values.append(value)
    return tuple(values)


def _build_force(raw) -> ForceConfig:
    if not isinstance(raw, dict):
        raise ConfigError("branch.force", "expected a mapping")
    direction = _require(raw, "direction", "branch.force.direction")
    if isinstance(direction, dict):
        components = [
            _as_float(_require(direction, axis, f"branch.force.direction.{axis}"), f"branch.force.direction.{axis}")
            for axis in ("x", "y", "z")
        ]
    elif isinstance(direction, (list, tuple)) and len(direction) == 3:
        components = [_as_float(v, "branch.force.direction") for v in direction]
    else:
        raise ConfigError("branch.force.direction", "expected {x, y, z}")
    norm = math.sqrt(sum(c * c for c in components))
    if norm < 1e-9:
        raise ConfigError("branch.force.direction", "direction must be non-zero")
    strength = _unit_interval(_require(raw, "strength", "branch.force.strength"), "branch.force.strength")
    return ForceConfig(direction=tuple(c / norm for c in components), strength=strength)


def _build_branch(raw: dict) -> BranchConfig:
    levels = _as_int(_require(raw, "levels", "branch.levels"), "branch.levels")
    if levels < 1:
        raise ConfigError("branch.levels", f"must be >= 1, got {levels}")
    segments = _as_int(_require(raw, "segments", "branch.segments"), "branch.segments")
    if segments < 3:
        raise ConfigError("branch.segments", f"must be >= 3, got {segments}")
    per_level = {name: _level_values(raw, name, levels) for name in LEVEL_FIELDS}
    return BranchConfig(
        levels=levels,
        segments=segments,
        force=_build_force(_require(raw, "force", "branch.force")),
        **per_level,
    )


def _build_bark(raw: dict) -> BarkConfig:
    scale = _require(raw, "texture_scale", "bark.texture_scale")
    if not isinstance(scale, dict):
        raise ConfigError("bark.texture_scale", "expected {x, y}")
    return BarkConfig(
        type=str(_require(raw, "type", "bark.type")),
        tint=_as_tint(_require(raw, "tint", "bark.tint"), "bark.tint"),
        flat_shading=_as_bool(_require(raw, "flat_shading", "bark.flat_shading"), "bark.flat_shading"),
        textured=_as_bool(_require(raw, "textured", "bark.textured"), "bark.textured"),
        texture_scale=TextureScale(
            x=_positive(_require(scale, "x", "bark.texture_scale.x"), "bark.texture_scale.x"),
            y=_positive(_require(scale, "y", "bark.texture_scale.y"), "bark.texture_scale.y"),
        ),
    )


def _build_leaves(raw: dict) -> LeafConfig:
    count = _as_int(_require(raw, "count", "leaves.count"), "leaves.count")
    if count < 0:
        raise ConfigError("leaves.count", f"must be >= 0, got {count}")
    return LeafConfig(
        type=str(_require(raw, "type", "leaves.type")),
        billboard=Billboard.parse(_require(raw, "billboard", "leaves.billboard")),
        angle=_as_float(_require(raw, "angle", "leaves.angle"), "leaves.angle"),
        count=count,
        start=_unit_interval(_require(raw, "start", "leaves.start"), "leaves.start"),
        size=_positive(_require(raw, "size", "leaves.size"), "leaves.size"),
        size_variance=_unit_interval(_require(raw, "size_variance", "leaves.size_variance"), "leaves.size_variance"),
        tint=_as_tint(_require(raw, "tint", "leaves.tint"), "leaves.tint"),
        alpha_test=_unit_interval(_require(raw, "alpha_test", "leaves.alpha_test"), "leaves.alpha_test"),
    )


def _build_seed(value) -> int | None:
    if value is None:
        return None
    seed = _as_int(value, "seed")
    if not 0 <= seed < MAX_SEED:
        raise ConfigError("seed", f"{seed} outside [0, 2**64)")
    return seed


def build_tree_config(tree_type, raw: dict) -> TreeConfig:
    """
    Validate a complete canonical mapping (see `canonicalize`) into a TreeConfig.

    :param tree_type: TreeType or tree type name.
    :param raw: Mapping with "bark", "branch" and "leaves" sections and an optional "seed".
    :return: The immutable TreeConfig.
    """
    return TreeConfig(
        tree_type=TreeType.parse(tree_type),
        seed=_build_seed(raw.get("seed")),
        bark=_build_bark(_require(raw, "bark", "bark")),
        branch=_build_branch(_require(raw, "branch", "branch")),
        leaves=_build_leaves(_require(raw, "leaves", "leaves")),
    )
