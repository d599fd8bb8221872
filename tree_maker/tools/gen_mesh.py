# gen_mesh.py

import math

import numpy as np

from tree_maker.config import BarkConfig, BranchConfig
from tree_maker.progress_logging import log_progress
from tree_maker.tools.common import vec3
from tree_maker.tools.gen_nodes import BranchNode, Section, Skeleton

# Rings never shrink below this fraction of the branch's base radius, so a fully
# tapered tip (taper = 1) still produces triangles with non-zero area.
MIN_RADIUS_FRACTION = 0.01


class MeshFragment:
    """
    Append-only mesh buffers.
    - vertices, normals: lists of (x, y, z)
    - uvs: list of (u, v)
    - indices: flat triangle list; every three entries form one triangle
    """
    def __init__(self):
        self.vertices = []
        self.normals = []
        self.uvs = []
        self.indices = []

    @property
    def vertex_count(self):
        return len(self.vertices)

    @property
    def triangle_count(self):
        return len(self.indices) // 3

    def add_vertex(self, position, normal, uv):
        self.vertices.append(tuple(position))
        self.normals.append(tuple(normal))
        self.uvs.append(tuple(uv))
        return len(self.vertices) - 1

    def add_triangle(self, a, b, c):
        self.indices.extend((a, b, c))

    def extend(self, other: "MeshFragment"):
        """Append `other`, offsetting its indices by the current vertex count."""
        offset = len(self.vertices)
        self.vertices.extend(other.vertices)
        self.normals.extend(other.normals)
        self.uvs.extend(other.uvs)
        self.indices.extend(i + offset for i in other.indices)
        return self

    def triangles(self):
        return np.asarray(self.indices, dtype=np.int64).reshape(-1, 3)


def _ring_radius(node: BranchNode, section: Section):
    return max(section.radius, node.base_radius * MIN_RADIUS_FRACTION)


def _create_ring(mesh: MeshFragment, node: BranchNode, section: Section, segments, bark: BarkConfig):
    """
    Creates a ring of `segments` vertices around the section centre on the plane
    spanned by the section frame's side and up axes.

    Returns a list of vertex indices corresponding to the ring.
    """
    radius = _ring_radius(node, section)
    v = section.arc_length * bark.texture_scale.y
    ring_indices = []
    for j in range(segments):
        angle = 2.0 * math.pi * j / segments
        normal = section.frame.radial(angle)
        pos = section.position + normal * radius
        u = j / segments * bark.texture_scale.x
        ring_indices.append(mesh.add_vertex(pos, normal, (u, v)))
    return ring_indices


def _connect_rings(mesh: MeshFragment, ringA, ringB):
    """
    Connects two rings with the same segment count using two triangles per
    radial step. Triangles are wound so their normals point outward.
    """
    radial_segments = len(ringA)
    for i in range(radial_segments):
        i1 = ringA[i]
        i2 = ringA[(i + 1) % radial_segments]
        i3 = ringB[i]
        i4 = ringB[(i + 1) % radial_segments]

        mesh.add_triangle(i1, i2, i4)
        mesh.add_triangle(i1, i4, i3)


def _cap_ring(mesh: MeshFragment, ring, section: Section, v, invert=False):
    """
    Adds a filled disk over the ring.

    :param invert: If True, the cap faces backwards along the branch (base cap).
    """
    normal = -section.frame.forward if invert else section.frame.forward
    center_index = mesh.add_vertex(section.position, normal, (0.5, v))

    radial_segments = len(ring)
    for i in range(radial_segments):
        i1 = ring[i]
        i2 = ring[(i + 1) % radial_segments]
        if not invert:
            mesh.add_triangle(center_index, i1, i2)
        else:
            mesh.add_triangle(center_index, i2, i1)


def _flat_shaded(mesh: MeshFragment) -> MeshFragment:
    """Duplicate vertices per triangle and assign each its face normal."""
    flat = MeshFragment()
    for a, b, c in mesh.triangles():
        pa, pb, pc = (vec3.from_iterable(mesh.vertices[i]) for i in (a, b, c))
        face_normal = (pb - pa).cross(pc - pa)
        if face_normal.length() < 1e-12:
            face_normal = sum((vec3.from_iterable(mesh.normals[i]) for i in (a, b, c)), vec3())
        if face_normal.length() < 1e-12:
            face_normal = vec3(0, 0, 1)
        face_normal = face_normal.normalized()
        corners = [flat.add_vertex(mesh.vertices[i], face_normal, mesh.uvs[i]) for i in (a, b, c)]
        flat.add_triangle(*corners)
    return flat


def build_branch_mesh(node: BranchNode, segments: int, bark: BarkConfig,
                      cap_base=False, cap_tip=True) -> MeshFragment:
    """
    Lofts one branch into a tube: one ring per section, quad strips between rings.

    :param node: Branch to loft.
    :param segments: Radial vertex count per ring.
    :param bark: Bark settings; texture_scale scales the UVs, flat_shading unwelds faces.
    :param cap_base: Close the base ring with a disk.
    :param cap_tip: Close the tip ring with a disk.
    :return: A MeshFragment with indices local to the fragment.
    """
    mesh = MeshFragment()
    rings = [_create_ring(mesh, node, section, segments, bark) for section in node.sections]
    for ringA, ringB in zip(rings, rings[1:]):
        _connect_rings(mesh, ringA, ringB)

    if cap_base:
        base = node.sections[0]
        _cap_ring(mesh, rings[0], base, base.arc_length * bark.texture_scale.y, invert=True)
    if cap_tip:
        tip = node.sections[-1]
        _cap_ring(mesh, rings[-1], tip, tip.arc_length * bark.texture_scale.y, invert=False)

    if bark.flat_shading:
        return _flat_shaded(mesh)
    return mesh


def generate_tree_mesh(skeleton: Skeleton, branch: BranchConfig, bark: BarkConfig,
                       enable_progress_prints=False) -> MeshFragment:
    """
    Generates the bark mesh for every branch of the skeleton, in pre-order.

    - The trunk gets a bottom cap.
    - Every branch gets a top cap at its tip.
    - Child tubes start inside the parent tube; the surfaces are not joined.

    :return: A MeshFragment containing all branch tubes.
    """
    mesh = MeshFragment()
    for node in skeleton.iter_preorder():
        mesh.extend(build_branch_mesh(node, branch.segments, bark, cap_base=node is skeleton.root))

    log_progress(
        enable_progress_prints,
        f"Bark mesh built: vertices={mesh.vertex_count}, triangles={mesh.triangle_count}",
    )
    return mesh
