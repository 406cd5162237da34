import unittest

from parcelsim.geometry import (
    distance,
    haversine_distance,
    interpolate_along_path,
    is_within_line_buffer,
    is_within_radius,
    path_length,
    point_to_segment_distance,
)
from parcelsim.models import Position


class DistanceTests(unittest.TestCase):
    def test_distance_to_self_is_zero(self):
        for p in (Position(0, 0), Position(4.05, 9.70), Position(-33.9, 151.2)):
            self.assertEqual(distance(p, p), 0.0)

    def test_distance_is_symmetric(self):
        a = Position(4.0511, 9.7043)
        b = Position(4.0650, 9.7100)
        self.assertAlmostEqual(distance(a, b), distance(b, a), places=12)

    def test_one_hundredth_degree_of_latitude(self):
        # 0.01 degree along a meridian is about 1.112 km
        self.assertAlmostEqual(distance(Position(0, 0), Position(0.01, 0)), 1.11195, places=4)

    def test_distance_matches_raw_haversine(self):
        a = Position(48.8566, 2.3522)
        b = Position(51.5074, -0.1278)
        self.assertEqual(distance(a, b), haversine_distance(a.lat, a.lng, b.lat, b.lng))
        self.assertAlmostEqual(distance(a, b), 343.5, delta=1.0)

    def test_is_within_radius(self):
        center = Position(0, 0)
        self.assertTrue(is_within_radius(Position(0, 0.005), center, 1.0))
        self.assertFalse(is_within_radius(Position(0, 0.02), center, 1.0))


class PathLengthTests(unittest.TestCase):
    def test_short_paths_have_zero_length(self):
        self.assertEqual(path_length([]), 0.0)
        self.assertEqual(path_length([Position(1, 1)]), 0.0)

    def test_length_is_sum_of_segments(self):
        path = [Position(0, 0), Position(0, 0.01), Position(0.01, 0.01)]
        expected = distance(path[0], path[1]) + distance(path[1], path[2])
        self.assertAlmostEqual(path_length(path), expected, places=12)


class SegmentDistanceTests(unittest.TestCase):
    def test_degenerate_segment_equals_point_distance(self):
        p = Position(0.3, 0.4)
        s = Position(0.1, 0.1)
        self.assertEqual(point_to_segment_distance(p, s, s), distance(p, s))

    def test_point_on_segment_is_at_zero_distance(self):
        self.assertAlmostEqual(
            point_to_segment_distance(Position(0, 0.01), Position(0, 0), Position(0, 0.02)),
            0.0,
            places=9,
        )

    def test_projection_is_clamped_to_segment_ends(self):
        start, end = Position(0, 0), Position(0, 0.01)
        beyond = Position(0, 0.03)
        self.assertAlmostEqual(
            point_to_segment_distance(beyond, start, end), distance(beyond, end), places=9
        )
        before = Position(0, -0.02)
        self.assertAlmostEqual(
            point_to_segment_distance(before, start, end), distance(before, start), places=9
        )

    def test_perpendicular_distance(self):
        # 0.001 degree north of the middle of an east-west segment
        d = point_to_segment_distance(Position(0.001, 0.01), Position(0, 0), Position(0, 0.02))
        self.assertAlmostEqual(d, distance(Position(0.001, 0.01), Position(0, 0.01)), places=9)

    def test_line_buffer(self):
        start, end = Position(0, 0), Position(0, 0.02)
        self.assertTrue(is_within_line_buffer(Position(0, 0.01), start, end, 0.05))
        self.assertTrue(is_within_line_buffer(Position(0.0003, 0.01), start, end, 0.05))
        self.assertFalse(is_within_line_buffer(Position(0.001, 0.01), start, end, 0.05))
        self.assertFalse(is_within_line_buffer(Position(1, 1), start, end, 0.05))


class InterpolationTests(unittest.TestCase):
    def setUp(self):
        self.path = [Position(0, 0), Position(0, 0.01), Position(0.01, 0.01)]

    def test_empty_path(self):
        point = interpolate_along_path([], 0.5)
        self.assertEqual(point.position, Position(0.0, 0.0))
        self.assertEqual(point.segment_index, 0)

    def test_single_point_path(self):
        only = Position(3.8, 11.5)
        for progress in (-1, 0, 0.5, 1, 2):
            self.assertEqual(interpolate_along_path([only], progress).position, only)

    def test_endpoints(self):
        self.assertEqual(interpolate_along_path(self.path, 0), (self.path[0], 0))
        self.assertEqual(interpolate_along_path(self.path, -0.5), (self.path[0], 0))
        self.assertEqual(interpolate_along_path(self.path, 1), (self.path[-1], 1))
        self.assertEqual(interpolate_along_path(self.path, 1.5), (self.path[-1], 1))

    def test_midpoint_of_first_segment(self):
        point = interpolate_along_path(self.path, 0.25)
        self.assertEqual(point.segment_index, 0)
        self.assertAlmostEqual(point.position.lat, 0.0, places=9)
        self.assertAlmostEqual(point.position.lng, 0.005, places=6)

    def test_second_segment(self):
        point = interpolate_along_path(self.path, 0.75)
        self.assertEqual(point.segment_index, 1)
        self.assertAlmostEqual(point.position.lng, 0.01, places=9)
        self.assertAlmostEqual(point.position.lat, 0.005, places=5)

    def test_segment_boundary_belongs_to_first_segment(self):
        path = [Position(0, 0), Position(0, 0.01), Position(0, 0.02)]
        point = interpolate_along_path(path, 0.5)
        self.assertEqual(point.segment_index, 0)
        self.assertAlmostEqual(point.position.lng, 0.01, places=9)

    def test_zero_length_segment_does_not_divide_by_zero(self):
        path = [Position(0, 0), Position(0, 0), Position(0, 0.01)]
        point = interpolate_along_path(path, 0.5)
        self.assertAlmostEqual(point.position.lng, 0.005, places=6)


if __name__ == "__main__":
    unittest.main()
