from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from diagramlayout.errors import (
    CyclicContainment,
    DuplicateIdentifier,
    InvalidDocument,
    UnresolvedReference,
)
from diagramlayout.model import LOOP, NESTED, PLAIN, build_scene


class ModelBuilderTests(unittest.TestCase):
    def test_nested_and_parent_membership_are_merged(self) -> None:
        scene = build_scene(
            {
                "elements": [
                    {"id": "c", "children": [{"id": "x"}, {"id": "y"}]},
                    {"id": "z", "parent": "c"},
                    {"id": "top"},
                ]
            }
        )
        self.assertEqual([e.id for e in scene.elements], ["c", "x", "y", "z", "top"])
        c = scene.element("c")
        self.assertTrue(c.is_container)
        self.assertEqual([scene.elements[i].id for i in c.children], ["x", "y", "z"])
        self.assertEqual([scene.elements[i].id for i in scene.roots()], ["c", "top"])
        self.assertEqual(scene.depth(scene.index["z"]), 1)

    def test_kind_is_inferred_and_explicit_empty_container_allowed(self) -> None:
        scene = build_scene({"elements": [{"id": "a"}, {"id": "box", "kind": "container"}]})
        self.assertEqual(scene.element("a").kind, "atomic")
        self.assertEqual(scene.element("box").kind, "container")
        self.assertEqual(scene.element("box").children, ())

    def test_atomic_with_members_is_rejected(self) -> None:
        with self.assertRaises(InvalidDocument):
            build_scene({"elements": [{"id": "a", "kind": "atomic", "children": [{"id": "b"}]}]})

    def test_post_order_visits_members_before_containers(self) -> None:
        scene = build_scene(
            {"elements": [{"id": "outer", "children": [{"id": "inner", "children": [{"id": "leaf"}]}, {"id": "b"}]}]}
        )
        order = [scene.elements[i].id for i in scene.post_order()]
        self.assertEqual(order, ["leaf", "inner", "b", "outer"])
        pre = [scene.elements[i].id for i in scene.pre_order()]
        self.assertEqual(pre, ["outer", "inner", "leaf", "b"])

    def test_deep_nesting_does_not_recurse(self) -> None:
        depth = 3000
        elements = [{"id": "n0"}] + [{"id": f"n{i}", "parent": f"n{i - 1}"} for i in range(1, depth)]
        scene = build_scene({"elements": elements})
        self.assertEqual(scene.depth(scene.index[f"n{depth - 1}"]), depth - 1)
        self.assertEqual(len(scene.post_order()), depth)

    def test_duplicate_identifier(self) -> None:
        with self.assertRaises(DuplicateIdentifier) as ctx:
            build_scene({"elements": [{"id": "a"}, {"id": "a"}]})
        self.assertEqual(ctx.exception.identifier, "a")
        self.assertEqual(ctx.exception.code, "E_DUPLICATE_ID")

    def test_relationship_id_may_not_reuse_element_id(self) -> None:
        with self.assertRaises(DuplicateIdentifier):
            build_scene(
                {
                    "elements": [{"id": "a"}, {"id": "b"}],
                    "relationships": [{"id": "a", "from": "a", "to": "b"}],
                }
            )

    def test_unresolved_relationship_endpoint(self) -> None:
        with self.assertRaises(UnresolvedReference) as ctx:
            build_scene({"elements": [{"id": "a"}], "relationships": [{"from": "a", "to": "ghost"}]})
        self.assertEqual(ctx.exception.identifier, "ghost")
        self.assertEqual(ctx.exception.field, "to")

    def test_unresolved_parent(self) -> None:
        with self.assertRaises(UnresolvedReference) as ctx:
            build_scene({"elements": [{"id": "a", "parent": "nowhere"}]})
        self.assertEqual(ctx.exception.field, "parent")

    def test_cyclic_containment(self) -> None:
        with self.assertRaises(CyclicContainment) as ctx:
            build_scene({"elements": [{"id": "a", "parent": "b"}, {"id": "b", "parent": "a"}]})
        self.assertEqual(set(ctx.exception.cycle), {"a", "b"})

    def test_self_containment_is_a_cycle(self) -> None:
        with self.assertRaises(CyclicContainment):
            build_scene({"elements": [{"id": "a", "parent": "a"}]})

    def test_relationship_kinds_and_generated_ids(self) -> None:
        scene = build_scene(
            {
                "elements": [{"id": "c", "children": [{"id": "x"}]}, {"id": "y"}],
                "relationships": [
                    {"from": "x", "to": "y"},
                    {"source": "x", "target": "c"},
                    {"from": "y", "to": "y"},
                    {"id": "rel-1", "from": "c", "to": "y"},
                ],
            }
        )
        kinds = [r.kind for r in scene.relationships]
        self.assertEqual(kinds, [PLAIN, NESTED, LOOP, PLAIN])
        ids = [r.id for r in scene.relationships]
        self.assertEqual(len(set(ids)), 4)
        self.assertEqual(ids[3], "rel-1")
        self.assertNotEqual(ids[0], "rel-1")

    def test_invalid_fields_are_reported_with_location(self) -> None:
        with self.assertRaises(InvalidDocument) as ctx:
            build_scene({"elements": [{"id": "a", "shape": "hexagon"}]})
        self.assertIn("elements[0].shape", str(ctx.exception))

        with self.assertRaises(InvalidDocument):
            build_scene({"elements": [{"id": "a", "width": -5}]})
        with self.assertRaises(InvalidDocument):
            build_scene({"elements": [{"id": "a", "colour": "red"}]})
        with self.assertRaises(InvalidDocument):
            build_scene({"elements": [{"id": "a"}], "relationships": [{"from": "a", "to": "a", "routing": "curvy"}]})
        with self.assertRaises(InvalidDocument):
            build_scene(["not", "an", "object"])

    def test_conflicting_nested_and_declared_parent(self) -> None:
        with self.assertRaises(InvalidDocument):
            build_scene({"elements": [{"id": "p", "children": [{"id": "x", "parent": "q"}]}, {"id": "q"}]})

    def test_style_values_are_stringified(self) -> None:
        scene = build_scene({"elements": [{"id": "a", "style": {"stroke-width": 2, "fill": "#eef"}}]})
        self.assertEqual(scene.element("a").style, (("stroke-width", "2"), ("fill", "#eef")))


if __name__ == "__main__":
    unittest.main()
