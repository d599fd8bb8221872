"""
Skeleton generator.

The skeleton is an arena (`Skeleton.nodes`) of `BranchNode`s; every node keeps the
indices of its children. Each node draws from its own random stream derived from the
root seed and the node's path of sibling indices, so a subtree can be regenerated
without replaying the rest of the tree.
"""
from __future__ import annotations

import math

import numpy as np

from tree_maker.config import TreeConfig
from tree_maker.errors import GenerationError
from tree_maker.progress_logging import log_progress
from tree_maker.tools.common import EPSILON, Frame, random_unit_vector, vec3

NODE_STREAM = 0
LEAF_STREAM = 1
SEED_MODULUS = 2**64


class Section:
    """One loft ring of a branch: centre position, radius, frame and arc length from the base."""
    __slots__ = ("position", "radius", "frame", "arc_length")

    def __init__(self, position: vec3, radius: float, frame: Frame, arc_length: float):
        self.position = position
        self.radius = radius
        self.frame = frame
        self.arc_length = arc_length

    def __repr__(self):
        return f"Section({self.position}, r={self.radius:.4f}, s={self.arc_length:.4f})"


class BranchNode:
    """
    A branch of the skeleton.

    Parameters:
      - index (int): Position of the node in the skeleton arena.
      - level (int): Depth of the branch; the trunk is level 0.
      - path (tuple): Sibling indices from the root down to this node.
      - origin (vec3): Base point of the branch.
      - orientation (Frame): Local frame at the base.
      - length (float): Arc length of the branch.
      - base_radius, tip_radius (float): Radius at the first and last section.
      - attachment (float): Fraction of the parent's length where the branch starts.
      - sections: Loft rings from base to tip.
      - children: Arena indices of the child branches.
    """
    def __init__(self, index, level, path, origin, orientation, length, base_radius, tip_radius, attachment):
        self.index = index
        self.level = level
        self.path = path
        self.origin = origin
        self.orientation = orientation
        self.length = length
        self.base_radius = base_radius
        self.tip_radius = tip_radius
        self.attachment = attachment
        self.sections: list[Section] = []
        self.children: list[int] = []

    @property
    def is_terminal(self):
        return not self.children

    def __repr__(self):
        return (f"BranchNode(index={self.index}, level={self.level}, origin={self.origin}, "
                f"length={self.length}, children={len(self.children)})")


class Skeleton:
    """Arena owning every branch of one generated tree. Node 0 is the trunk."""

    def __init__(self, seed: int, levels: int):
        self.seed = seed
        self.levels = levels
        self.nodes: list[BranchNode] = []

    def __len__(self):
        return len(self.nodes)

    @property
    def root(self) -> BranchNode:
        return self.nodes[0]

    def new_node(self, **kwargs) -> BranchNode:
        node = BranchNode(index=len(self.nodes), **kwargs)
        self.nodes.append(node)
        return node

    def children_of(self, node: BranchNode) -> list[BranchNode]:
        return [self.nodes[i] for i in node.children]

    def iter_preorder(self, start: BranchNode | None = None):
        stack = [start if start is not None else self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(self.nodes[i] for i in reversed(node.children))

    def nodes_at_level(self, level: int) -> list[BranchNode]:
        return [node for node in self.iter_preorder() if node.level == level]

    def terminal_nodes(self) -> list[BranchNode]:
        return [node for node in self.iter_preorder() if node.is_terminal]


def resolve_seed(seed: int | None) -> int:
    """Return `seed`, or a fresh 64-bit seed from system entropy when it is None."""
    if seed is not None:
        return seed
    return int(np.random.SeedSequence().entropy) % SEED_MODULUS


def node_rng(seed: int, path: tuple) -> np.random.Generator:
    return np.random.default_rng(np.random.SeedSequence(entropy=seed, spawn_key=(NODE_STREAM, *path)))


def leaf_rng(seed: int) -> np.random.Generator:
    return np.random.default_rng(np.random.SeedSequence(entropy=seed, spawn_key=(LEAF_STREAM,)))


def sample_branch(node: BranchNode, t: float):
    """
    Interpolate position, frame and radius at fraction `t` of the branch's arc length.
    Sections are evenly spaced in arc length, so `t` maps linearly onto them.
    """
    t = min(max(t, 0.0), 1.0)
    count = len(node.sections) - 1
    scaled = t * count
    k = min(int(scaled), count - 1)
    local = scaled - k
    a = node.sections[k]
    b = node.sections[k + 1]

    position = a.position.lerp(b.position, local)
    radius = a.radius + (b.radius - a.radius) * local
    forward = a.frame.forward.lerp(b.frame.forward, local)
    if forward.length() < 1e-6:
        forward = a.frame.forward
    return position, a.frame.transported(forward), radius


def _perturb_direction(direction: vec3, gnarliness: float, rng) -> vec3:
    """Compose a random unit-sphere offset scaled by `gnarliness` onto the running direction."""
    offset = random_unit_vector(rng) * gnarliness
    bent = direction + offset
    if bent.length() < EPSILON:
        return direction
    return bent.normalized()


def _apply_force(direction: vec3, force: vec3, strength: float) -> vec3:
    """Linearly blend toward the force direction and renormalize."""
    if strength <= 0.0:
        return direction
    blended = direction.lerp(force, strength)
    if blended.length() < 1e-6:
        return direction
    return blended.normalized()


def _grow_branch(skeleton: Skeleton, config: TreeConfig, level: int, origin: vec3,
                 frame: Frame, path: tuple, attachment: float) -> BranchNode:
    branch = config.branch
    sections = branch.sections[level]
    if sections < 1:
        raise GenerationError(f"level {level} has {sections} sections")

    rng = node_rng(skeleton.seed, path)
    length = branch.length[level]
    base_radius = branch.radius[level]
    taper = branch.taper[level]
    node = skeleton.new_node(
        level=level,
        path=path,
        origin=origin,
        orientation=frame,
        length=length,
        base_radius=base_radius,
        tip_radius=base_radius * (1.0 - taper),
        attachment=attachment,
    )

    segment_length = length / sections
    gnarliness = branch.gnarliness[level]
    twist = math.radians(branch.twist[level])
    force = vec3.from_iterable(branch.force.direction)
    strength = branch.force.strength

    node.sections.append(Section(origin, base_radius, frame, 0.0))
    position = origin
    direction = frame.forward
    transported = frame
    for i in range(1, sections + 1):
        direction = _perturb_direction(direction, gnarliness, rng)
        direction = _apply_force(direction, force, strength)
        position = position + direction * segment_length
        transported = transported.transported(direction)
        t = i / sections
        node.sections.append(Section(
            position,
            base_radius * (1.0 - taper * t),
            transported.rolled(twist * t),
            segment_length * i,
        ))

    child_count = branch.children[level]
    if level + 1 >= branch.levels or child_count == 0:
        return node

    # Azimuth phase is drawn after all section draws.
    phase = rng.uniform(0.0, 2.0 * math.pi)
    child_start = branch.start[level + 1]
    tilt = math.radians(branch.angle[level + 1])
    for i in range(child_count):
        t = child_start + (1.0 - child_start) * (i + 0.5) / child_count
        position, parent_frame, _ = sample_branch(node, t)
        axis = parent_frame.radial(phase + 2.0 * math.pi * i / child_count)
        child_direction = parent_frame.forward.rotate(axis, tilt)
        child = _grow_branch(
            skeleton,
            config,
            level + 1,
            position,
            parent_frame.transported(child_direction),
            path + (i,),
            t,
        )
        node.children.append(child.index)
    return node


def check_skeleton(skeleton: Skeleton) -> None:
    """Raise GenerationError if the skeleton breaks a structural invariant."""
    seen = 0
    for node in skeleton.iter_preorder():
        seen += 1
        if len(node.sections) < 2:
            raise GenerationError(f"branch {node.index} has {len(node.sections)} sections")
        if node.level > skeleton.levels - 1:
            raise GenerationError(f"branch {node.index} at level {node.level} exceeds {skeleton.levels - 1}")
        if not 0.0 <= node.attachment <= 1.0:
            raise GenerationError(f"branch {node.index} attaches at {node.attachment}")
        for child in skeleton.children_of(node):
            if child.level != node.level + 1:
                raise GenerationError(f"branch {child.index} at level {child.level} under level {node.level}")
    if seen != len(skeleton.nodes):
        raise GenerationError(f"{len(skeleton.nodes) - seen} branches are unreachable from the trunk")


def generate_skeleton(config: TreeConfig, enable_progress_prints: bool = False) -> Skeleton:
    """
    Grow the branch skeleton for `config`.

    The trunk starts at the origin growing along +Z. Identical seeds and configs give
    identical skeletons.

    :param config: Validated tree configuration.
    :param enable_progress_prints: Print progress lines to stderr.
    :return: The Skeleton; `skeleton.root` is the trunk.
    """
    seed = resolve_seed(config.seed)
    if config.seed is None:
        log_progress(enable_progress_prints, f"No seed configured, using seed={seed}")

    skeleton = Skeleton(seed=seed, levels=config.branch.levels)
    _grow_branch(
        skeleton,
        config,
        level=0,
        origin=vec3(0, 0, 0),
        frame=Frame.from_direction(vec3(0, 0, 1)),
        path=(),
        attachment=0.0,
    )
    check_skeleton(skeleton)

    log_progress(
        enable_progress_prints,
        "Skeleton built: "
        f"branches={len(skeleton)}, "
        f"levels={[len(skeleton.nodes_at_level(level)) for level in range(skeleton.levels)]}, "
        f"terminal={len(skeleton.terminal_nodes())}",
    )
    return skeleton
