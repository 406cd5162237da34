import unittest

from parcelsim.models import Position
from parcelsim.wkt import (
    parse_linestring,
    parse_point,
    path_to_wkt,
    point_to_wkt,
    to_linestring,
)


class LineStringTests(unittest.TestCase):
    def test_longitude_comes_first_on_the_wire(self):
        positions = parse_linestring("LINESTRING(11.502 3.848, 11.510 3.850)")
        self.assertEqual(positions, [Position(3.848, 11.502), Position(3.850, 11.510)])

    def test_keyword_is_case_insensitive_and_whitespace_tolerant(self):
        positions = parse_linestring("  linestring ( 9.70  4.05 ,9.71 4.06 ) ")
        self.assertEqual(positions, [Position(4.05, 9.70), Position(4.06, 9.71)])

    def test_malformed_token_returns_empty_list(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertEqual(parse_linestring("LINESTRING(abc def)"), [])

    def test_one_bad_point_discards_everything(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertEqual(parse_linestring("LINESTRING(1 2, 3, 5 6)"), [])

    def test_non_finite_values_are_malformed(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertEqual(parse_linestring("LINESTRING(1 2, nan 4)"), [])

    def test_wrong_geometry_type(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertEqual(parse_linestring("POINT(1 2)"), [])

    def test_non_string_input(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertEqual(parse_linestring(None), [])

    def test_empty_linestring(self):
        self.assertEqual(parse_linestring("LINESTRING()"), [])

    def test_round_trip(self):
        positions = [
            Position(4.0511, 9.7043),
            Position(-33.868820, 151.209296),
            Position(0.1 + 0.2, -179.999999999),
            Position(0.0, 0.0),
        ]
        parsed = parse_linestring(to_linestring(positions))
        self.assertEqual(len(parsed), len(positions))
        for got, expected in zip(parsed, positions):
            self.assertAlmostEqual(got.lat, expected.lat, delta=1e-9)
            self.assertAlmostEqual(got.lng, expected.lng, delta=1e-9)

    def test_serialization_format(self):
        text = to_linestring([Position(3.848, 11.502), Position(3.85, 11.51)])
        self.assertEqual(text, "LINESTRING(11.502 3.848, 11.51 3.85)")


class PointTests(unittest.TestCase):
    def test_parse_point(self):
        self.assertEqual(parse_point("POINT(11.502 3.848)"), Position(3.848, 11.502))
        self.assertEqual(parse_point("point (0 0)"), Position(0.0, 0.0))

    def test_malformed_point_is_absent_not_origin(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertIsNone(parse_point("POINT(abc)"))
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertIsNone(parse_point("POINT(1 2 3)"))
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertIsNone(parse_point("LINESTRING(1 2, 3 4)"))

    def test_point_round_trip(self):
        p = Position(4.0425, 9.6901)
        self.assertEqual(parse_point(point_to_wkt(p)), p)


class BackendPathTests(unittest.TestCase):
    def test_path_to_wkt(self):
        points = [{"latitude": 4.05, "longitude": 9.70}, {"latitude": 4.06, "longitude": 9.71}]
        self.assertEqual(path_to_wkt(points), "LINESTRING(9.7 4.05, 9.71 4.06)")

    def test_malformed_path(self):
        with self.assertLogs("parcelsim.wkt", level="WARNING"):
            self.assertEqual(path_to_wkt([{"latitude": 4.05}]), "")


if __name__ == "__main__":
    unittest.main()
