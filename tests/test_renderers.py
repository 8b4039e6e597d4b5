from __future__ import annotations

import json
import sys
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from diagramlayout import compile_layout, emit_geometry, render_document, render_svg
from diagramlayout.geometry import fmt, json_number, snap
from diagramlayout.options import LayoutOptions

SVG = "{http://www.w3.org/2000/svg}"
HEURISTIC = LayoutOptions(text_metrics="heuristic")

DOCUMENT = {
    "elements": [
        {"id": "A", "label": "Alpha", "style": {"fill": "#eef"}},
        {
            "id": "C",
            "label": "Group",
            "children": [
                {"id": "X", "shape": "ellipse", "label": "two\nlines"},
                {"id": "Y", "shape": "rounded"},
            ],
        },
    ],
    "relationships": [
        {"id": "a-x", "from": "A", "to": "X", "label": "feeds", "style": {"stroke": "#E67E22"}},
        {"id": "y-c", "from": "Y", "to": "C"},
        {"id": "a-c", "from": "A", "to": "C", "directed": False},
    ],
}


def _groups(root: ET.Element) -> dict:
    return {g.get("id"): g for g in root.iter(f"{SVG}g")}


class NumberFormattingTests(unittest.TestCase):
    def test_fmt_and_json_number_agree(self) -> None:
        for value in (0.0, 12.0, 12.5, 1.0 / 3.0, 2.0 / 3.0, -4.25, 1e-7):
            snapped = snap(value)
            self.assertEqual(float(fmt(snapped)), float(json_number(snapped)))
        self.assertEqual(fmt(12.0), "12")
        self.assertEqual(json_number(12.0), 12)
        self.assertEqual(fmt(snap(1.0 / 3.0)), "0.333")


class SvgRendererTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = compile_layout(DOCUMENT, HEURISTIC)
        self.root = ET.fromstring(render_svg(self.model))

    def test_root_has_viewbox_and_size(self) -> None:
        canvas = self.model.canvas
        self.assertEqual(self.root.get("width"), fmt(canvas.width))
        self.assertEqual(self.root.get("height"), fmt(canvas.height))
        self.assertEqual(
            self.root.get("viewBox"),
            f"{fmt(canvas.x)} {fmt(canvas.y)} {fmt(canvas.width)} {fmt(canvas.height)}",
        )

    def test_one_group_per_element_and_relationship(self) -> None:
        groups = _groups(self.root)
        for element in self.model.elements:
            self.assertIn(element.id, groups)
            self.assertIn(element.kind, groups[element.id].get("class"))
        for rel in self.model.relationships:
            self.assertIn(rel.id, groups)

    def test_containers_are_drawn_before_members(self) -> None:
        order = [g.get("id") for g in self.root.iter(f"{SVG}g")]
        self.assertLess(order.index("C"), order.index("X"))
        self.assertLess(order.index("X"), order.index("a-x"))

    def test_shapes_and_style_pass_through(self) -> None:
        groups = _groups(self.root)
        rect = groups["A"].find(f"{SVG}rect")
        self.assertEqual(rect.get("fill"), "#eef")
        self.assertIsNone(rect.get("rx"))
        self.assertIsNotNone(groups["X"].find(f"{SVG}ellipse"))
        self.assertIsNotNone(groups["Y"].find(f"{SVG}rect").get("rx"))
        self.assertEqual(groups["C"].find(f"{SVG}rect").get("fill"), "none")

    def test_directed_relationships_get_marker(self) -> None:
        groups = _groups(self.root)
        marker = self.root.find(f"{SVG}defs/{SVG}marker")
        self.assertIsNotNone(marker)
        line = groups["a-x"].find(f"{SVG}line")
        self.assertEqual(line.get("stroke"), "#E67E22")
        self.assertEqual(line.get("marker-end"), f"url(#{marker.get('id')})")
        undirected = groups["a-c"].find(f"{SVG}line")
        self.assertIsNone(undirected.get("marker-end"))
        nested = groups["y-c"].find(f"{SVG}polyline")
        self.assertIsNotNone(nested)

    def test_multiline_label_uses_tspans(self) -> None:
        text = _groups(self.root)["X"].find(f"{SVG}text")
        spans = text.findall(f"{SVG}tspan")
        self.assertEqual([s.text for s in spans], ["two", "lines"])
        self.assertIsNone(text.text)

    def test_marker_id_avoids_element_ids(self) -> None:
        model = compile_layout(
            {
                "elements": [{"id": "diagramlayout-arrow"}, {"id": "b"}],
                "relationships": [{"from": "diagramlayout-arrow", "to": "b"}],
            },
            HEURISTIC,
        )
        root = ET.fromstring(render_svg(model))
        marker = root.find(f"{SVG}defs/{SVG}marker")
        self.assertEqual(marker.get("id"), "diagramlayout-arrow-1")

    def test_scale_only_changes_outer_size(self) -> None:
        scaled = ET.fromstring(render_svg(self.model, scale=2))
        self.assertAlmostEqual(float(scaled.get("width")), 2 * self.model.canvas.width, places=3)
        self.assertAlmostEqual(float(scaled.get("height")), 2 * self.model.canvas.height, places=3)
        self.assertEqual(scaled.get("viewBox"), self.root.get("viewBox"))
        plain_rect = _groups(self.root)["A"].find(f"{SVG}rect")
        scaled_rect = _groups(scaled)["A"].find(f"{SVG}rect")
        self.assertEqual(plain_rect.attrib, scaled_rect.attrib)

    def test_geometry_named_style_keys_do_not_move_shapes(self) -> None:
        document = {
            "elements": [
                {"id": "A", "style": {"x": "999", "width": "1", "fill": "#eef"}},
                {"id": "E", "shape": "ellipse", "style": {"cx": "0", "ry": "1"}},
                {"id": "B"},
            ],
            "relationships": [
                {"id": "ab", "from": "A", "to": "B", "style": {"x2": "0", "stroke": "red"}},
            ],
        }
        model = compile_layout(document, HEURISTIC)
        payload = json.loads(emit_geometry(model))
        groups = _groups(ET.fromstring(render_svg(model)))

        a = payload["elements"][0]
        rect = groups["A"].find(f"{SVG}rect")
        self.assertEqual(float(rect.get("x")), a["x"])
        self.assertEqual(float(rect.get("width")), a["width"])
        self.assertEqual(rect.get("fill"), "#eef")

        e = payload["elements"][1]
        ellipse = groups["E"].find(f"{SVG}ellipse")
        self.assertEqual(float(ellipse.get("cx")), e["x"] + e["width"] / 2)
        self.assertEqual(float(ellipse.get("ry")) * 2, e["height"])

        line = groups["ab"].find(f"{SVG}line")
        self.assertEqual(float(line.get("x2")), payload["relationships"][0]["points"][-1][0])
        self.assertEqual(line.get("stroke"), "red")

    def test_rejects_non_positive_scale(self) -> None:
        with self.assertRaises(ValueError):
            render_svg(self.model, scale=0)


class GeometryJsonTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = compile_layout(DOCUMENT, HEURISTIC)
        self.payload = json.loads(emit_geometry(self.model))

    def test_shape_of_payload(self) -> None:
        self.assertEqual(set(self.payload), {"version", "canvas", "elements", "relationships"})
        self.assertEqual([e["id"] for e in self.payload["elements"]], ["A", "C", "X", "Y"])
        self.assertEqual([r["id"] for r in self.payload["relationships"]], ["a-x", "y-c", "a-c"])
        x = self.payload["elements"][2]
        self.assertEqual(x["parent"], "C")
        self.assertEqual(x["shape"], "ellipse")
        self.assertEqual(x["label"]["text"], "two\nlines")
        self.assertEqual(self.payload["elements"][0]["style"], {"fill": "#eef"})
        y_c = self.payload["relationships"][1]
        self.assertEqual(y_c["kind"], "nested")
        self.assertIsNone(y_c["label"])

    def test_integral_values_are_integers(self) -> None:
        canvas = self.payload["canvas"]
        for key in ("x", "y", "width", "height"):
            if float(canvas[key]).is_integer():
                self.assertIsInstance(canvas[key], int)

    def test_coordinates_match_svg(self) -> None:
        root = ET.fromstring(render_svg(self.model))
        groups = _groups(root)
        for element in self.payload["elements"]:
            shape = groups[element["id"]][0]
            if shape.tag == f"{SVG}ellipse":
                self.assertEqual(float(shape.get("rx")) * 2, element["width"])
                self.assertEqual(float(shape.get("ry")) * 2, element["height"])
                continue
            self.assertEqual(float(shape.get("x")), element["x"])
            self.assertEqual(float(shape.get("y")), element["y"])
            self.assertEqual(float(shape.get("width")), element["width"])
            self.assertEqual(float(shape.get("height")), element["height"])
        for rel in self.payload["relationships"]:
            drawn = groups[rel["id"]][0]
            if drawn.tag == f"{SVG}line":
                svg_points = [
                    [float(drawn.get("x1")), float(drawn.get("y1"))],
                    [float(drawn.get("x2")), float(drawn.get("y2"))],
                ]
            else:
                svg_points = [[float(v) for v in pair.split(",")] for pair in drawn.get("points").split()]
            self.assertEqual(svg_points, rel["points"])
            if rel["label"] is not None:
                text = groups[rel["id"]].find(f"{SVG}text")
                self.assertEqual(float(text.get("x")), rel["label"]["x"])
                self.assertEqual(float(text.get("y")), rel["label"]["y"])


class RenderDocumentTests(unittest.TestCase):
    def test_renders_requested_outputs(self) -> None:
        result = render_document(DOCUMENT, svg=True, json=False, options=HEURISTIC)
        self.assertIsNotNone(result.svg)
        self.assertIsNone(result.json)
        self.assertEqual(len(result.model.elements), 4)

        result = render_document(DOCUMENT, svg=False, json=True, options=HEURISTIC)
        self.assertIsNone(result.svg)
        self.assertEqual(json.loads(result.json)["version"], 1)


if __name__ == "__main__":
    unittest.main()
