"""
Leaf placement.

Leaves only grow on terminal branches (branches without children in the generated
skeleton). The requested leaf count is split between them in proportion to their arc
length, then every leaf is dropped on the bark surface as a billboard.
"""
from __future__ import annotations

import math

from tree_maker.config import Billboard, LeafConfig
from tree_maker.progress_logging import log_progress
from tree_maker.tools.common import vec3
from tree_maker.tools.gen_mesh import MeshFragment
from tree_maker.tools.gen_nodes import BranchNode, Skeleton, leaf_rng, sample_branch

# Branch lengths are quantized to micrometres before the integer split.
LENGTH_QUANTUM = 1e-6

PLANE_UVS = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))


class LeafQuad:
    """
    One placed leaf.

    Parameters:
      - position (vec3): Attachment point on the bark.
      - normal (vec3): Facing direction of the first plane.
      - size (float): Edge length of the leaf planes.
      - host (int): Arena index of the branch carrying the leaf.
      - planes: One (single) or two (double) planes, each four corners counter-clockwise
        around `normal`.
    """
    def __init__(self, position, normal, size, host, planes):
        self.position = position
        self.normal = normal
        self.size = size
        self.host = host
        self.planes = planes

    def __repr__(self):
        return f"LeafQuad({self.position}, size={self.size:.3f}, host={self.host}, planes={len(self.planes)})"


def allocate_leaf_counts(lengths, count: int) -> list[int]:
    """
    Split `count` leaves proportionally to `lengths` with largest-remainder rounding.

    Works in integers so the result always sums to `count`. Ties on the remainder go to
    the lower index.
    """
    if not lengths:
        return []
    weights = [max(0, round(length / LENGTH_QUANTUM)) for length in lengths]
    total = sum(weights)
    if total == 0:
        weights = [1] * len(lengths)
        total = len(lengths)

    shares = [count * weight // total for weight in weights]
    remainders = [count * weight % total for weight in weights]
    leftover = count - sum(shares)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        shares[i] += 1
    return shares


def _plane(base: vec3, width_axis: vec3, long_axis: vec3, size: float):
    half = width_axis * (size * 0.5)
    tip = long_axis * size
    return (base - half, base + half, base + half + tip, base - half + tip)


def place(node: BranchNode, leaves: LeafConfig, count: int, rng) -> list[LeafQuad]:
    """
    Place `count` leaves on one branch.

    Each leaf consumes three draws: position along [start, 1], azimuth and size
    variance. The second plane of a double billboard draws nothing, so single and
    double billboards share leaf positions for the same seed.
    """
    tilt = math.radians(leaves.angle)
    quads = []
    for _ in range(count):
        t = rng.uniform(leaves.start, 1.0)
        azimuth = rng.uniform(0.0, 2.0 * math.pi)
        size = leaves.size * (1.0 + rng.uniform(-leaves.size_variance, leaves.size_variance))

        center, frame, radius = sample_branch(node, t)
        radial = frame.radial(azimuth)
        width_axis = frame.forward.cross(radial).normalized()
        normal = radial.rotate(width_axis, tilt)
        long_axis = frame.forward.rotate(width_axis, tilt)
        base = center + radial * radius

        planes = [_plane(base, width_axis, long_axis, size)]
        if leaves.billboard is Billboard.DOUBLE:
            planes.append(_plane(base, normal, long_axis, size))
        quads.append(LeafQuad(base, normal, size, node.index, planes))
    return quads


def place_leaves(skeleton: Skeleton, leaves: LeafConfig, rng=None,
                 enable_progress_prints=False) -> list[LeafQuad]:
    """
    Scatter `leaves.count` leaves over the terminal branches of the skeleton.

    :param rng: numpy Generator; defaults to the leaf stream derived from the skeleton seed.
    :return: Exactly `leaves.count` LeafQuads, grouped by host branch in pre-order.
    """
    if rng is None:
        rng = leaf_rng(skeleton.seed)
    terminals = skeleton.terminal_nodes()
    counts = allocate_leaf_counts([node.length for node in terminals], leaves.count)

    quads = []
    for node, count in zip(terminals, counts):
        quads.extend(place(node, leaves, count, rng))

    log_progress(
        enable_progress_prints,
        f"Leaves placed: count={len(quads)}, terminal_branches={len(terminals)}, billboard={leaves.billboard.value}",
    )
    return quads


def leaf_geometry(quads: list[LeafQuad]) -> MeshFragment:
    """Four vertices and two triangles per leaf plane."""
    mesh = MeshFragment()
    for quad in quads:
        for corners in quad.planes:
            width = corners[1] - corners[0]
            length = corners[3] - corners[0]
            normal = width.cross(length).normalized()
            idx = [mesh.add_vertex(corner, normal, uv) for corner, uv in zip(corners, PLANE_UVS)]
            mesh.add_triangle(idx[0], idx[1], idx[2])
            mesh.add_triangle(idx[0], idx[2], idx[3])
    return mesh
