"""Write an assembled TreeMesh to disk through trimesh."""
from __future__ import annotations

from pathlib import Path

import trimesh

from tree_maker.errors import ExportError
from tree_maker.progress_logging import log_progress
from tree_maker.tools.assembly import BarkMaterial, LeafMaterial, MaterialGroup, TreeMesh

SCENE_FORMATS = ("glb", "obj")
# Single-mesh formats, written without materials.
MESH_FORMATS = ("ply", "stl")
SUPPORTED_FORMATS = SCENE_FORMATS + MESH_FORMATS
DEFAULT_FORMAT = "glb"


def _pbr_material(name: str, material: BarkMaterial | LeafMaterial):
    if isinstance(material, LeafMaterial):
        return trimesh.visual.material.PBRMaterial(
            name=name,
            baseColorFactor=material.color,
            metallicFactor=0.0,
            roughnessFactor=0.8,
            alphaMode="MASK",
            alphaCutoff=material.alpha_test,
            doubleSided=material.double_sided,
        )
    return trimesh.visual.material.PBRMaterial(
        name=name,
        baseColorFactor=material.color,
        metallicFactor=0.0,
        roughnessFactor=0.95,
    )


def _group_mesh(tree_mesh: TreeMesh, group: MaterialGroup) -> trimesh.Trimesh:
    vertex_range = tree_mesh.group_slice(group.name)
    visual = trimesh.visual.TextureVisuals(
        uv=tree_mesh.uvs[vertex_range],
        material=_pbr_material(group.name, group.material),
    )
    return trimesh.Trimesh(
        vertices=tree_mesh.vertices[vertex_range],
        faces=tree_mesh.group_faces(group.name),
        vertex_normals=tree_mesh.normals[vertex_range],
        visual=visual,
        process=False,
    )


def build_scene(tree_mesh: TreeMesh) -> trimesh.Scene:
    """One trimesh geometry per non-empty material group."""
    scene = trimesh.Scene()
    for group in tree_mesh.material_groups:
        if group.index_count == 0:
            continue
        scene.add_geometry(_group_mesh(tree_mesh, group), geom_name=group.name)
    return scene


def build_merged_mesh(tree_mesh: TreeMesh) -> trimesh.Trimesh:
    return trimesh.Trimesh(
        vertices=tree_mesh.vertices,
        faces=tree_mesh.indices.reshape(-1, 3),
        vertex_normals=tree_mesh.normals,
        process=False,
    )


def export_format(output_path: Path) -> str:
    suffix = Path(output_path).suffix.lower().lstrip(".")
    return suffix or DEFAULT_FORMAT


def export_tree_mesh(tree_mesh: TreeMesh, output_path, enable_progress_prints: bool = False) -> Path:
    """
    Export the tree to `output_path`; the format follows the file suffix.

    :raises ExportError: on unsupported formats, empty geometry or any writer failure.
    """
    output_path = Path(output_path)
    file_type = export_format(output_path)
    if file_type not in SUPPORTED_FORMATS:
        raise ExportError(f"unsupported export format {file_type!r}; expected one of {SUPPORTED_FORMATS}")
    if len(tree_mesh.indices) == 0:
        raise ExportError("no geometry to export")

    try:
        if file_type in SCENE_FORMATS:
            exportable = build_scene(tree_mesh)
        else:
            exportable = build_merged_mesh(tree_mesh)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        exportable.export(str(output_path), file_type=file_type)
    except Exception as exc:
        raise ExportError(f"failed to write {output_path}: {exc}") from exc

    log_progress(enable_progress_prints, f"Exported {file_type} to {output_path}")
    return output_path
