import math
import unittest

import numpy as np

from tree_maker.config import Billboard
from tree_maker.presets.trees import config_from_dict, resolve_config
from tree_maker.tools.gen_leaves import allocate_leaf_counts, leaf_geometry, place_leaves
from tree_maker.tools.gen_nodes import generate_skeleton, leaf_rng


class TestAllocation(unittest.TestCase):
    def test_equal_lengths(self) -> None:
        self.assertEqual(allocate_leaf_counts([1.0, 1.0, 1.0], 100), [34, 33, 33])

    def test_largest_remainder(self) -> None:
        self.assertEqual(allocate_leaf_counts([1.0, 2.0], 10), [3, 7])
        self.assertEqual(allocate_leaf_counts([0.5, 0.25, 0.25], 3), [1, 1, 1])

    def test_remainder_ties_go_to_lower_index(self) -> None:
        # Quotas 1.8/0.6/0.6: the first entry takes the largest remainder, the tie goes to index 1.
        self.assertEqual(allocate_leaf_counts([0.6, 0.2, 0.2], 3), [2, 1, 0])
        self.assertEqual(allocate_leaf_counts([1.0, 1.0], 1), [1, 0])

    def test_sum_is_exact(self) -> None:
        rng = np.random.default_rng(0)
        for _ in range(50):
            lengths = list(rng.uniform(0.01, 5.0, size=rng.integers(1, 40)))
            count = int(rng.integers(0, 5000))
            shares = allocate_leaf_counts(lengths, count)
            self.assertEqual(sum(shares), count)
            self.assertTrue(all(share >= 0 for share in shares))

    def test_degenerate_inputs(self) -> None:
        self.assertEqual(allocate_leaf_counts([], 10), [])
        self.assertEqual(allocate_leaf_counts([2.0, 3.0], 0), [0, 0])
        self.assertEqual(allocate_leaf_counts([5.0], 7), [7])


class TestPlacement(unittest.TestCase):
    def test_pine_scenario(self) -> None:
        config = config_from_dict({
            "type": "Pine",
            "seed": 1,
            "branch": {"levels": 2, "children": {"0": 4}},
            "leaves": {"count": 100},
        })
        skeleton = generate_skeleton(config)
        quads = place_leaves(skeleton, config.leaves)
        self.assertEqual(len(quads), 100)
        hosts = {quad.host for quad in quads}
        self.assertEqual(hosts, set(skeleton.root.children))
        self.assertTrue(all(skeleton.nodes[host].level == 1 for host in hosts))

    def test_trunk_only_gets_all_leaves(self) -> None:
        config = resolve_config("oak", {"seed": 2, "branch": {"children": {"0": 0}}, "leaves": {"count": 37}})
        skeleton = generate_skeleton(config)
        quads = place_leaves(skeleton, config.leaves)
        self.assertEqual(len(quads), 37)
        self.assertTrue(all(quad.host == skeleton.root.index for quad in quads))

    def test_leaves_only_on_terminal_branches(self) -> None:
        config = resolve_config("oak", {"seed": 3})
        skeleton = generate_skeleton(config)
        quads = place_leaves(skeleton, config.leaves)
        self.assertEqual(len(quads), config.leaves.count)
        self.assertTrue(all(skeleton.nodes[quad.host].is_terminal for quad in quads))
        self.assertTrue(all(skeleton.nodes[quad.host].level == config.branch.levels - 1 for quad in quads))

    def test_longer_branches_get_more_leaves(self) -> None:
        config = resolve_config("oak", {"seed": 3, "branch": {"levels": 1}, "leaves": {"count": 10}})
        skeleton = generate_skeleton(config)
        self.assertEqual(len(place_leaves(skeleton, config.leaves)), 10)
        lengths = [0.5, 1.5]
        self.assertEqual(allocate_leaf_counts(lengths, 12), [3, 9])

    def test_billboard_planes(self) -> None:
        single = resolve_config("oak", {"seed": 4, "leaves": {"billboard": "single", "count": 20}})
        double = resolve_config("oak", {"seed": 4, "leaves": {"billboard": "double", "count": 20}})
        skeleton = generate_skeleton(single)
        single_quads = place_leaves(skeleton, single.leaves)
        double_quads = place_leaves(skeleton, double.leaves)
        self.assertTrue(all(len(q.planes) == 1 for q in single_quads))
        self.assertTrue(all(len(q.planes) == 2 for q in double_quads))
        for a, b in zip(single_quads, double_quads):
            self.assertEqual(a.position, b.position)
        self.assertIs(double.leaves.billboard, Billboard.DOUBLE)

    def test_sizes_respect_variance(self) -> None:
        config = resolve_config("oak", {"seed": 5, "leaves": {"size": 0.4, "size_variance": 0.25, "count": 200}})
        quads = place_leaves(generate_skeleton(config), config.leaves)
        for quad in quads:
            self.assertGreaterEqual(quad.size, 0.4 * 0.75 - 1e-12)
            self.assertLessEqual(quad.size, 0.4 * 1.25 + 1e-12)

    def test_leaves_sit_on_bark_and_face_outward(self) -> None:
        config = resolve_config("pine", {
            "seed": 6,
            "branch": {"levels": 1, "gnarliness": {"0": 0}},
            "leaves": {"angle": 0, "count": 50, "start": 0.5},
        })
        trunk = generate_skeleton(config).root
        quads = place_leaves(generate_skeleton(config), config.leaves)
        for quad in quads:
            p = quad.position
            height = p.z / trunk.length
            self.assertGreaterEqual(height, 0.5 - 1e-9)
            expected_radius = trunk.base_radius * (1 - config.branch.taper[0] * height)
            self.assertAlmostEqual(math.hypot(p.x, p.y), expected_radius)
            self.assertAlmostEqual(quad.normal.z, 0.0)
            self.assertGreater(quad.normal.x * p.x + quad.normal.y * p.y, 0.0)

    def test_leaf_angle_tilts_normal(self) -> None:
        config = resolve_config("pine", {
            "seed": 6,
            "branch": {"levels": 1, "gnarliness": {"0": 0}},
            "leaves": {"angle": 30, "count": 10},
        })
        quads = place_leaves(generate_skeleton(config), config.leaves)
        for quad in quads:
            self.assertAlmostEqual(quad.normal.z, -math.sin(math.radians(30)))

    def test_deterministic_with_explicit_rng(self) -> None:
        config = resolve_config("willow", {"seed": 8, "leaves": {"count": 60}})
        skeleton = generate_skeleton(config)
        a = place_leaves(skeleton, config.leaves, leaf_rng(skeleton.seed))
        b = place_leaves(skeleton, config.leaves)
        self.assertEqual([q.position for q in a], [q.position for q in b])
        self.assertEqual([q.size for q in a], [q.size for q in b])


class TestLeafGeometry(unittest.TestCase):
    def test_quads_to_triangles(self) -> None:
        config = resolve_config("oak", {"seed": 9, "leaves": {"billboard": "double", "count": 15}})
        quads = place_leaves(generate_skeleton(config), config.leaves)
        mesh = leaf_geometry(quads)
        planes = sum(len(q.planes) for q in quads)
        self.assertEqual(planes, 30)
        self.assertEqual(mesh.vertex_count, 4 * planes)
        self.assertEqual(len(mesh.indices), 6 * planes)
        self.assertLess(max(mesh.indices), mesh.vertex_count)

    def test_first_plane_faces_leaf_normal(self) -> None:
        config = resolve_config("oak", {"seed": 9, "leaves": {"billboard": "single", "count": 5}})
        quads = place_leaves(generate_skeleton(config), config.leaves)
        mesh = leaf_geometry(quads)
        normals = np.asarray(mesh.normals).reshape(-1, 4, 3)
        for quad, plane_normals in zip(quads, normals):
            np.testing.assert_allclose(plane_normals[0], quad.normal.as_tuple(), atol=1e-9)
            corners = np.asarray([c.as_tuple() for c in quad.planes[0]])
            np.testing.assert_allclose(np.linalg.norm(corners[1] - corners[0]), quad.size)
            np.testing.assert_allclose(np.linalg.norm(corners[3] - corners[0]), quad.size)
