"""
Built-in tree-type presets and the override resolver.

Each preset is a complete raw configuration (every field, every level). User overrides
are applied field by field on top of it; per-level maps are merged key by key, so
overriding level "1" of `angle` keeps the preset's levels "0" and "2".
"""
from __future__ import annotations

import copy

from tree_maker.config import (
    LEVEL_FIELDS,
    SECTION_FIELDS,
    TreeConfig,
    TreeType,
    build_tree_config,
    canonicalize,
)
from tree_maker.errors import ConfigError

# Oak tree configuration
oak_config = {
    "seed": None,
    "bark": {
        "type": "oak",
        "tint": 0x8B6D4E,
        "flat_shading": False,
        "textured": True,
        "texture_scale": {"x": 1.0, "y": 1.0},
    },
    "branch": {
        "levels": 3,
        "angle": {"0": 0, "1": 50, "2": 45},           # Wide crown
        "children": {"0": 6, "1": 4, "2": 0},
        "gnarliness": {"0": 0.05, "1": 0.2, "2": 0.3},  # Twisted limbs
        "length": {"0": 6.0, "1": 3.5, "2": 1.5},
        "radius": {"0": 0.45, "1": 0.18, "2": 0.06},    # Thick trunk
        "sections": {"0": 8, "1": 6, "2": 4},
        "start": {"0": 0.0, "1": 0.4, "2": 0.2},
        "taper": {"0": 0.6, "1": 0.7, "2": 0.8},
        "twist": {"0": 0, "1": 10, "2": 0},
        "segments": 10,
        "force": {"direction": {"x": 0.0, "y": 0.0, "z": 1.0}, "strength": 0.02},
    },
    "leaves": {
        "type": "oak",
        "billboard": "double",
        "angle": 30,
        "count": 400,
        "start": 0.3,
        "size": 0.35,
        "size_variance": 0.4,
        "tint": 0x7FAA48,
        "alpha_test": 0.5,
    },
}


# Pine tree configuration
pine_config = {
    "seed": None,
    "bark": {
        "type": "pine",
        "tint": 0x6E5A48,
        "flat_shading": False,
        "textured": True,
        "texture_scale": {"x": 1.0, "y": 2.0},
    },
    "branch": {
        "levels": 3,
        "angle": {"0": 0, "1": 95, "2": 40},            # Slightly drooping whorls
        "children": {"0": 12, "1": 3, "2": 0},
        "gnarliness": {"0": 0.02, "1": 0.05, "2": 0.1},  # Straight, vertical stem
        "length": {"0": 12.0, "1": 3.0, "2": 0.8},
        "radius": {"0": 0.3, "1": 0.06, "2": 0.02},
        "sections": {"0": 12, "1": 4, "2": 3},
        "start": {"0": 0.0, "1": 0.25, "2": 0.3},
        "taper": {"0": 0.9, "1": 0.8, "2": 0.8},
        "twist": {"0": 0, "1": 0, "2": 0},
        "segments": 8,
        "force": {"direction": {"x": 0.0, "y": 0.0, "z": 1.0}, "strength": 0.01},
    },
    "leaves": {
        "type": "pine",
        "billboard": "single",
        "angle": 10,
        "count": 600,
        "start": 0.1,
        "size": 0.2,
        "size_variance": 0.2,
        "tint": 0x3B5E2B,
        "alpha_test": 0.5,
    },
}


# Willow tree configuration
willow_config = {
    "seed": None,
    "bark": {
        "type": "willow",
        "tint": 0x7A6A58,
        "flat_shading": False,
        "textured": True,
        "texture_scale": {"x": 1.0, "y": 1.0},
    },
    "branch": {
        "levels": 3,
        "angle": {"0": 0, "1": 40, "2": 60},
        "children": {"0": 5, "1": 5, "2": 0},
        "gnarliness": {"0": 0.1, "1": 0.1, "2": 0.05},
        "length": {"0": 5.0, "1": 4.0, "2": 3.0},       # Long hanging twigs
        "radius": {"0": 0.35, "1": 0.12, "2": 0.03},
        "sections": {"0": 8, "1": 8, "2": 10},
        "start": {"0": 0.0, "1": 0.5, "2": 0.1},
        "taper": {"0": 0.6, "1": 0.7, "2": 0.9},
        "twist": {"0": 0, "1": 0, "2": 0},
        "segments": 8,
        "force": {"direction": {"x": 0.0, "y": 0.0, "z": -1.0}, "strength": 0.06},  # Weeping
    },
    "leaves": {
        "type": "willow",
        "billboard": "double",
        "angle": 20,
        "count": 800,
        "start": 0.2,
        "size": 0.25,
        "size_variance": 0.3,
        "tint": 0x9DBF5A,
        "alpha_test": 0.5,
    },
}


# Palm tree configuration
palm_config = {
    "seed": None,
    "bark": {
        "type": "palm",
        "tint": 0xA08868,
        "flat_shading": False,
        "textured": True,
        "texture_scale": {"x": 1.0, "y": 4.0},
    },
    "branch": {
        "levels": 2,
        "angle": {"0": 0, "1": 75},
        "children": {"0": 10, "1": 0},
        "gnarliness": {"0": 0.05, "1": 0.05},
        "length": {"0": 8.0, "1": 3.0},
        "radius": {"0": 0.25, "1": 0.05},
        "sections": {"0": 12, "1": 8},
        "start": {"0": 0.0, "1": 0.92},                 # Fronds only at the crown
        "taper": {"0": 0.3, "1": 0.9},
        "twist": {"0": 30, "1": 0},
        "segments": 10,
        "force": {"direction": {"x": 0.0, "y": 0.0, "z": -1.0}, "strength": 0.05},
    },
    "leaves": {
        "type": "palm",
        "billboard": "double",
        "angle": 15,
        "count": 300,
        "start": 0.1,
        "size": 0.6,
        "size_variance": 0.25,
        "tint": 0x5C8A3A,
        "alpha_test": 0.5,
    },
}


PRESETS = {
    TreeType.OAK: oak_config,
    TreeType.PINE: pine_config,
    TreeType.WILLOW: willow_config,
    TreeType.PALM: palm_config,
}


def preset_for(tree_type) -> dict:
    """Return a deep copy of the raw preset for `tree_type`."""
    return copy.deepcopy(PRESETS[TreeType.parse(tree_type)])


def _apply_level_override(base: dict, override: dict) -> dict:
    merged = dict(base)
    merged.update(override)
    return merged


def _apply_nested_override(base, override: dict) -> dict:
    merged = dict(base) if isinstance(base, dict) else {}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _apply_nested_override(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_section_override(section: str, base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if section == "branch" and key in LEVEL_FIELDS:
            merged[key] = _apply_level_override(base.get(key, {}), value)
        elif isinstance(value, dict):
            merged[key] = _apply_nested_override(base.get(key), value)
        else:
            merged[key] = value
    return merged


def apply_overrides(preset: dict, overrides: dict) -> dict:
    """
    Merge canonical `overrides` onto a canonical `preset` and return the merged mapping.
    Neither input is modified.
    """
    merged = copy.deepcopy(preset)
    for key, value in overrides.items():
        if key == "type":
            continue
        if key in SECTION_FIELDS:
            merged[key] = _apply_section_override(key, merged.get(key, {}), value)
        else:
            merged[key] = value
    return merged


def resolve_config(tree_type, overrides: dict | None = None) -> TreeConfig:
    """
    Resolve a tree type plus partial overrides into a validated TreeConfig.

    :param tree_type: TreeType or tree type name (aliases such as "conifer" are accepted).
    :param overrides: Raw partial configuration; snake_case or camelCase keys.
    :return: The validated, immutable TreeConfig.
    :raises ConfigError: on unknown fields or invalid values.
    """
    tree_type = TreeType.parse(tree_type)
    merged = apply_overrides(preset_for(tree_type), canonicalize(overrides or {}))
    return build_tree_config(tree_type, merged)


def config_from_dict(raw: dict) -> TreeConfig:
    """Resolve a raw configuration whose tree type is given by its "type" key."""
    if not isinstance(raw, dict):
        raise ConfigError("<root>", f"expected a mapping, got {type(raw).__name__}")
    if "type" not in raw:
        raise ConfigError("type", "missing value")
    return resolve_config(raw["type"], raw)
