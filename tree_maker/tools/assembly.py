from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from tree_maker.config import BarkConfig, LeafConfig, TreeConfig
from tree_maker.progress_logging import log_progress
from tree_maker.tools.gen_leaves import leaf_geometry, place_leaves
from tree_maker.tools.gen_mesh import MeshFragment, generate_tree_mesh
from tree_maker.tools.gen_nodes import Skeleton, generate_skeleton

BARK_GROUP = "bark"
LEAF_GROUP = "leaves"


def tint_to_rgba(tint: int) -> tuple[float, float, float, float]:
    return (
        ((tint >> 16) & 0xFF) / 255.0,
        ((tint >> 8) & 0xFF) / 255.0,
        (tint & 0xFF) / 255.0,
        1.0,
    )


@dataclass(frozen=True)
class BarkMaterial:
    bark_type: str
    color: tuple[float, float, float, float]
    flat_shading: bool
    textured: bool
    texture_scale: tuple[float, float]

    @classmethod
    def from_config(cls, bark: BarkConfig) -> "BarkMaterial":
        return cls(
            bark_type=bark.type,
            color=tint_to_rgba(bark.tint),
            flat_shading=bark.flat_shading,
            textured=bark.textured,
            texture_scale=(bark.texture_scale.x, bark.texture_scale.y),
        )


@dataclass(frozen=True)
class LeafMaterial:
    leaf_type: str
    color: tuple[float, float, float, float]
    alpha_test: float
    double_sided: bool = True

    @classmethod
    def from_config(cls, leaves: LeafConfig) -> "LeafMaterial":
        return cls(leaf_type=leaves.type, color=tint_to_rgba(leaves.tint), alpha_test=leaves.alpha_test)


@dataclass(frozen=True)
class MaterialGroup:
    name: str
    material: BarkMaterial | LeafMaterial
    index_start: int
    index_count: int
    vertex_start: int
    vertex_count: int


@dataclass
class TreeMesh:
    vertices: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray
    material_groups: list[MaterialGroup]
    seed: int | None = None

    def group(self, name: str) -> MaterialGroup:
        for group in self.material_groups:
            if group.name == name:
                return group
        raise KeyError(name)

    def group_faces(self, name: str) -> np.ndarray:
        """Triangles of one group, re-indexed to the group's own vertex range."""
        group = self.group(name)
        faces = self.indices[group.index_start:group.index_start + group.index_count].astype(np.int64)
        return (faces - group.vertex_start).reshape(-1, 3)

    def group_slice(self, name: str) -> slice:
        group = self.group(name)
        return slice(group.vertex_start, group.vertex_start + group.vertex_count)


def merge_fragments(fragments) -> TreeMesh:
    """
    Concatenate `(name, fragment, material)` triples into one buffer set.

    Each fragment's indices are shifted by the number of vertices before it, and one
    MaterialGroup per fragment records its index and vertex ranges.
    """
    vertices, normals, uvs, indices, groups = [], [], [], [], []
    vertex_offset = 0
    index_offset = 0
    for name, fragment, material in fragments:
        vertices.append(np.asarray(fragment.vertices, dtype=np.float32).reshape(-1, 3))
        normals.append(np.asarray(fragment.normals, dtype=np.float32).reshape(-1, 3))
        uvs.append(np.asarray(fragment.uvs, dtype=np.float32).reshape(-1, 2))
        indices.append(np.asarray(fragment.indices, dtype=np.int64) + vertex_offset)
        groups.append(MaterialGroup(
            name=name,
            material=material,
            index_start=index_offset,
            index_count=len(fragment.indices),
            vertex_start=vertex_offset,
            vertex_count=fragment.vertex_count,
        ))
        vertex_offset += fragment.vertex_count
        index_offset += len(fragment.indices)

    if not groups:
        return TreeMesh(
            vertices=np.zeros((0, 3), np.float32),
            normals=np.zeros((0, 3), np.float32),
            uvs=np.zeros((0, 2), np.float32),
            indices=np.zeros(0, np.uint32),
            material_groups=[],
        )
    return TreeMesh(
        vertices=np.concatenate(vertices),
        normals=np.concatenate(normals),
        uvs=np.concatenate(uvs),
        indices=np.concatenate(indices).astype(np.uint32),
        material_groups=groups,
    )


def assemble_tree(config: TreeConfig, skeleton: Skeleton | None = None,
                  enable_progress_prints: bool = False) -> TreeMesh:
    """
    Build bark and leaf geometry for `config` and merge them into one TreeMesh.

    :param skeleton: A skeleton generated from `config`; generated here when omitted.
    :return: TreeMesh with a "bark" group followed by a "leaves" group.
    """
    if skeleton is None:
        skeleton = generate_skeleton(config, enable_progress_prints)

    bark_mesh: MeshFragment = generate_tree_mesh(skeleton, config.branch, config.bark, enable_progress_prints)
    leaves = place_leaves(skeleton, config.leaves, enable_progress_prints=enable_progress_prints)
    leaf_mesh = leaf_geometry(leaves)

    tree_mesh = merge_fragments([
        (BARK_GROUP, bark_mesh, BarkMaterial.from_config(config.bark)),
        (LEAF_GROUP, leaf_mesh, LeafMaterial.from_config(config.leaves)),
    ])
    tree_mesh.seed = skeleton.seed
    log_progress(
        enable_progress_prints,
        "Tree assembled: "
        f"vertices={len(tree_mesh.vertices)}, "
        f"triangles={len(tree_mesh.indices) // 3}, "
        f"groups={[group.name for group in tree_mesh.material_groups]}",
    )
    return tree_mesh
