import unittest

import numpy as np

from tree_maker.presets.trees import config_from_dict, resolve_config
from tree_maker.tools.assembly import (
    BARK_GROUP,
    LEAF_GROUP,
    BarkMaterial,
    LeafMaterial,
    assemble_tree,
    merge_fragments,
    tint_to_rgba,
)
from tree_maker.tools.gen_mesh import MeshFragment
from tree_maker.tools.gen_nodes import generate_skeleton


def _triangle_fragment(shift):
    fragment = MeshFragment()
    for p in ((0, 0, 0), (1, 0, 0), (0, 1, 0)):
        fragment.add_vertex((p[0] + shift, p[1], p[2]), (0, 0, 1), (0, 0))
    fragment.add_triangle(0, 1, 2)
    return fragment


class TestMerge(unittest.TestCase):
    def test_offsets_and_ranges(self) -> None:
        config = resolve_config("oak")
        bark = BarkMaterial.from_config(config.bark)
        leaf = LeafMaterial.from_config(config.leaves)
        first = _triangle_fragment(0)
        second = _triangle_fragment(5)
        second.add_vertex((9, 9, 9), (0, 0, 1), (1, 1))
        second.add_triangle(0, 2, 3)

        mesh = merge_fragments([("a", first, bark), ("b", second, leaf)])
        self.assertEqual(mesh.vertices.shape, (7, 3))
        self.assertEqual(mesh.uvs.shape, (7, 2))
        self.assertEqual(mesh.indices.dtype, np.uint32)
        np.testing.assert_array_equal(mesh.indices, [0, 1, 2, 3, 4, 5, 3, 5, 6])

        a, b = mesh.material_groups
        self.assertEqual((a.index_start, a.index_count, a.vertex_start, a.vertex_count), (0, 3, 0, 3))
        self.assertEqual((b.index_start, b.index_count, b.vertex_start, b.vertex_count), (3, 6, 3, 4))
        np.testing.assert_array_equal(mesh.group_faces("b"), [[0, 1, 2], [0, 2, 3]])
        np.testing.assert_allclose(mesh.vertices[mesh.group_slice("b")][0], (5, 0, 0))

    def test_empty_merge(self) -> None:
        mesh = merge_fragments([])
        self.assertEqual(len(mesh.vertices), 0)
        self.assertEqual(mesh.material_groups, [])

    def test_unknown_group(self) -> None:
        mesh = merge_fragments([])
        with self.assertRaises(KeyError):
            mesh.group("bark")


class TestAssembleTree(unittest.TestCase):
    def test_pine_scenario(self) -> None:
        config = config_from_dict({
            "type": "Pine",
            "seed": 1,
            "branch": {"levels": 2, "children": {"0": 4}},
            "leaves": {"count": 100, "billboard": "single"},
        })
        mesh = assemble_tree(config)
        self.assertEqual(mesh.seed, 1)
        self.assertEqual([group.name for group in mesh.material_groups], [BARK_GROUP, LEAF_GROUP])
        self.assertEqual(mesh.indices.dtype, np.uint32)
        self.assertLess(int(mesh.indices.max()), len(mesh.vertices))
        self.assertEqual(len(mesh.indices) % 3, 0)
        self.assertEqual(len(mesh.normals), len(mesh.vertices))

        leaves = mesh.group(LEAF_GROUP)
        self.assertEqual(leaves.index_count, 100 * 6)
        self.assertEqual(leaves.vertex_count, 100 * 4)
        bark = mesh.group(BARK_GROUP)
        self.assertEqual(bark.index_start + bark.index_count, leaves.index_start)
        self.assertEqual(bark.vertex_start + bark.vertex_count, leaves.vertex_start)
        self.assertEqual(leaves.index_start + leaves.index_count, len(mesh.indices))

    def test_groups_stay_in_their_vertex_range(self) -> None:
        mesh = assemble_tree(resolve_config("willow", {"seed": 4}))
        for group in mesh.material_groups:
            faces = mesh.indices[group.index_start:group.index_start + group.index_count]
            self.assertGreaterEqual(int(faces.min()), group.vertex_start)
            self.assertLess(int(faces.max()), group.vertex_start + group.vertex_count)

    def test_double_billboard_doubles_leaf_geometry(self) -> None:
        single = assemble_tree(resolve_config("oak", {"seed": 3, "leaves": {"billboard": "single", "count": 50}}))
        double = assemble_tree(resolve_config("oak", {"seed": 3, "leaves": {"billboard": "double", "count": 50}}))
        self.assertEqual(double.group(LEAF_GROUP).index_count, 2 * single.group(LEAF_GROUP).index_count)
        self.assertEqual(single.group(BARK_GROUP), double.group(BARK_GROUP))

    def test_no_leaves(self) -> None:
        mesh = assemble_tree(resolve_config("palm", {"seed": 2, "leaves": {"count": 0}}))
        self.assertEqual(mesh.group(LEAF_GROUP).index_count, 0)
        self.assertGreater(mesh.group(BARK_GROUP).index_count, 0)

    def test_reuses_given_skeleton(self) -> None:
        config = resolve_config("oak", {"seed": 10})
        skeleton = generate_skeleton(config)
        a = assemble_tree(config, skeleton)
        b = assemble_tree(config)
        np.testing.assert_array_equal(a.vertices, b.vertices)
        np.testing.assert_array_equal(a.indices, b.indices)

    def test_materials(self) -> None:
        config = resolve_config("oak", {"seed": 1, "bark": {"tint": "#804020"}, "leaves": {"alphaTest": 0.3}})
        mesh = assemble_tree(config)
        bark = mesh.group(BARK_GROUP).material
        leaf = mesh.group(LEAF_GROUP).material
        self.assertIsInstance(bark, BarkMaterial)
        self.assertIsInstance(leaf, LeafMaterial)
        np.testing.assert_allclose(bark.color, (128 / 255, 64 / 255, 32 / 255, 1.0))
        self.assertEqual(leaf.alpha_test, 0.3)
        self.assertTrue(leaf.double_sided)


class TestTint(unittest.TestCase):
    def test_tint_to_rgba(self) -> None:
        self.assertEqual(tint_to_rgba(0xFFFFFF), (1.0, 1.0, 1.0, 1.0))
        self.assertEqual(tint_to_rgba(0x000000), (0.0, 0.0, 0.0, 1.0))
        np.testing.assert_allclose(tint_to_rgba(0x00FF00), (0.0, 1.0, 0.0, 1.0))
