from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from diagramlayout.geometry import Box
from diagramlayout.routing import (
    crosses_any,
    nearest_boundary_points,
    path_length,
    path_midpoint,
    route_orthogonal,
    self_loop,
    simplify_path,
)


class BoundaryPointTests(unittest.TestCase):
    def test_horizontal_neighbours_use_shared_span(self) -> None:
        start, end = nearest_boundary_points(Box(0, 0, 100, 50), Box(150, 20, 100, 50))
        self.assertEqual(start, (100, 35.0))
        self.assertEqual(end, (150, 35.0))

    def test_vertical_neighbours_use_shared_span(self) -> None:
        start, end = nearest_boundary_points(Box(0, 100, 100, 50), Box(50, 0, 100, 50))
        self.assertEqual(start, (75.0, 100))
        self.assertEqual(end, (75.0, 50))

    def test_diagonal_neighbours_join_corners(self) -> None:
        start, end = nearest_boundary_points(Box(0, 0, 10, 10), Box(20, 30, 10, 10))
        self.assertEqual(start, (10, 10))
        self.assertEqual(end, (20, 30))


class OrthogonalRouterTests(unittest.TestCase):
    def test_routes_around_blocker(self) -> None:
        start = Box(0, 0, 40, 40)
        end = Box(200, 0, 40, 40)
        wall = Box(80, -60, 40, 160)
        points = route_orthogonal(start, end, [wall], 5.0)
        self.assertIsNotNone(points)
        assert points is not None
        for a, b in zip(points, points[1:]):
            self.assertTrue(a[0] == b[0] or a[1] == b[1], points)
        self.assertFalse(crosses_any(points, [wall]))
        self.assertTrue(start.inflate(1e-9).contains(Box(points[0][0], points[0][1], 0, 0)))
        self.assertTrue(end.inflate(1e-9).contains(Box(points[-1][0], points[-1][1], 0, 0)))

    def test_unobstructed_route_is_direct(self) -> None:
        points = route_orthogonal(Box(0, 0, 40, 40), Box(100, 0, 40, 40), [], 5.0)
        self.assertEqual(points, [(40, 20.0), (100, 20.0)])

    def test_enclosing_target_exits_through_margin(self) -> None:
        outer = Box(0, 0, 300, 120)
        inner = Box(20, 20, 80, 80)
        sibling = Box(140, 20, 80, 80)
        points = route_orthogonal(
            inner, outer, [sibling], 4.0, end_encloses_start=True, band=20.0
        )
        self.assertIsNotNone(points)
        assert points is not None
        last = points[-1]
        self.assertTrue(last[0] in (0, 300) or last[1] in (0, 120), points)
        self.assertFalse(crosses_any(points, [sibling]))
        for a, b in zip(points, points[1:]):
            self.assertTrue(abs(a[0] - b[0]) < 1e-9 or abs(a[1] - b[1]) < 1e-9, points)

    def test_no_route_returns_none(self) -> None:
        outer = Box(0, 0, 100, 100)
        inner = Box(40, 40, 20, 20)
        cage = [Box(30, 30, 40, 5), Box(30, 65, 40, 5), Box(30, 30, 5, 40), Box(65, 30, 5, 40)]
        self.assertIsNone(route_orthogonal(inner, outer, cage, 1.0, end_encloses_start=True, band=10.0))


class PathHelperTests(unittest.TestCase):
    def test_simplify_drops_collinear_and_repeated_points(self) -> None:
        self.assertEqual(
            simplify_path([(0, 0), (0, 0), (5, 0), (10, 0), (10, 10)]),
            [(0, 0), (10, 0), (10, 10)],
        )

    def test_midpoint_by_arc_length(self) -> None:
        points = [(0, 0), (10, 0), (10, 30)]
        self.assertEqual(path_length(points), 40)
        (x, y), direction = path_midpoint(points)
        self.assertAlmostEqual(x, 10)
        self.assertAlmostEqual(y, 10)
        self.assertEqual(direction, (0.0, 1.0))

    def test_self_loop_is_rectilinear_and_leaves_the_box(self) -> None:
        box = Box(0, 0, 100, 60)
        points = self_loop(box, 8)
        self.assertEqual(points[0][0], 100)
        self.assertEqual(points[-1][1], 0)
        self.assertTrue(any(y < 0 for _x, y in points))
        for a, b in zip(points, points[1:]):
            self.assertTrue(a[0] == b[0] or a[1] == b[1])


if __name__ == "__main__":
    unittest.main()
