"""
Example:
    tree-maker configs/oak.json --output oak.glb --seed 7 --plot oak_skeleton.png
"""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import yaml

from tree_maker.config import TreeConfig, load_configuration
from tree_maker.errors import TreeMakerError
from tree_maker.presets.trees import config_from_dict
from tree_maker.progress_logging import log_progress
from tree_maker.tools.assembly import TreeMesh, assemble_tree
from tree_maker.tools.export import export_tree_mesh
from tree_maker.tools.gen_nodes import Section, Skeleton, generate_skeleton


def _draw_circle_at_section(ax, section: Section, circle_points=32):
    """
    Draw the cross section of a ring, perpendicular to its frame's forward axis.
    :param ax: Matplotlib 3D axis.
    :param section: Section with position, radius and frame.
    :param circle_points: Number of points used to approximate the circle.
    """
    theta = np.linspace(0, 2 * np.pi, circle_points)
    X, Y, Z = [], [], []
    for t in theta:
        pos = section.position + section.frame.radial(t) * section.radius
        X.append(pos.x)
        Y.append(pos.y)
        Z.append(pos.z)
    ax.plot(X, Y, Z, color='r', linewidth=0.8)


def visualize_tree(skeleton: Skeleton, ax):
    """
    Draw every branch as a polyline through its section centres, with the base
    and tip cross sections. The trunk base is green, other branch bases blue.
    """
    for node in skeleton.iter_preorder():
        xs = [s.position.x for s in node.sections]
        ys = [s.position.y for s in node.sections]
        zs = [s.position.z for s in node.sections]
        ax.plot(xs, ys, zs, 'k-', linewidth=0.5 + node.base_radius * 4)
        color = 'g' if node.level == 0 else 'b'
        ax.scatter(node.origin.x, node.origin.y, node.origin.z, c=color, s=10)
        _draw_circle_at_section(ax, node.sections[0])
        _draw_circle_at_section(ax, node.sections[-1])


def save_skeleton_plot(skeleton: Skeleton, output_path: Path):
    fig = plt.figure(figsize=(10, 8))
    ax = fig.add_subplot(111, projection='3d')
    ax.set_title(f"Tree skeleton (seed={skeleton.seed})")
    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")

    visualize_tree(skeleton, ax)

    # Equal axis limits.
    points = [s.position for node in skeleton.iter_preorder() for s in node.sections]
    x_min, x_max = min(p.x for p in points), max(p.x for p in points)
    y_min, y_max = min(p.y for p in points), max(p.y for p in points)
    z_min, z_max = min(p.z for p in points), max(p.z for p in points)
    max_range = max(x_max - x_min, y_max - y_min, z_max - z_min, 1e-3)
    x_mid = (x_max + x_min) / 2
    y_mid = (y_max + y_min) / 2
    z_mid = (z_max + z_min) / 2
    ax.set_xlim(x_mid - max_range / 2, x_mid + max_range / 2)
    ax.set_ylim(y_mid - max_range / 2, y_mid + max_range / 2)
    ax.set_zlim(z_mid - max_range / 2, z_mid + max_range / 2)

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=200, bbox_inches='tight')
    plt.close(fig)


def generate_tree(config: TreeConfig, output_path: Path, plot_path: Path | None = None,
                  enable_progress_prints: bool = False) -> TreeMesh:
    """
    Run the whole pipeline for one tree:

    1. Grow the skeleton from the validated config.
    2. Optionally save a matplotlib preview of the skeleton.
    3. Build bark and leaf geometry and merge them.
    4. Export the merged mesh.
    """
    skeleton = generate_skeleton(config, enable_progress_prints)
    if plot_path is not None:
        save_skeleton_plot(skeleton, plot_path)
        log_progress(enable_progress_prints, f"Skeleton plot saved to {plot_path}")
    tree_mesh = assemble_tree(config, skeleton, enable_progress_prints)
    export_tree_mesh(tree_mesh, output_path, enable_progress_prints)
    return tree_mesh


def parse_arguments(argv=None) -> argparse.Namespace:
    argument_parser = argparse.ArgumentParser(
        description="Generate a 3D tree model from a JSON or YAML configuration"
    )
    argument_parser.add_argument("config_file", type=Path, help="Path to the tree configuration file")
    argument_parser.add_argument(
        "-o", "--output", type=Path, default=Path("tree.glb"),
        help="Output mesh path; the suffix selects the format (default: tree.glb)",
    )
    argument_parser.add_argument("--type", dest="tree_type", help="Tree type, overrides the config's type")
    argument_parser.add_argument("--seed", type=int, help="Random seed, overrides the config's seed")
    argument_parser.add_argument("--plot", type=Path, help="Also save a PNG preview of the skeleton")
    argument_parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return argument_parser.parse_args(argv)


def main(argv=None) -> int:
    arguments = parse_arguments(argv)
    enable_progress_prints = not arguments.quiet
    t0 = time.time()

    if not arguments.config_file.is_file():
        print(f"[err] config file not found: {arguments.config_file}", file=sys.stderr)
        return 1

    try:
        log_progress(enable_progress_prints, f"Reading configuration from {arguments.config_file}")
        raw = load_configuration(arguments.config_file)
        if arguments.tree_type is not None:
            raw["type"] = arguments.tree_type
        if arguments.seed is not None:
            raw["seed"] = arguments.seed
        config = config_from_dict(raw)
        tree_mesh = generate_tree(config, arguments.output, arguments.plot, enable_progress_prints)
    except (TreeMakerError, yaml.YAMLError, OSError, UnicodeDecodeError) as exc:
        print(f"[err] {exc}", file=sys.stderr)
        return 1

    if enable_progress_prints:
        print(f"[✓] saved {arguments.output} (seed={tree_mesh.seed}, "
              f"elapsed {time.time() - t0:.1f}s, {len(tree_mesh.indices) // 3} triangles)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
