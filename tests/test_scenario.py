import itertools
import json
import os
import tempfile
import unittest
from datetime import datetime
from unittest import mock

from parcelsim.client import LogisticsClient
from parcelsim.models import IncidentType, ParcelState, Position
from parcelsim.scenario import ScenarioRunner, load_scenario

T0 = datetime(2024, 5, 1, 8, 0, 0)

DEMO = os.path.join(os.path.dirname(__file__), "..", "data", "douala_demo.json")


class LoadScenarioTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, content):
        path = os.path.join(self.tmp.name, "scenario.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content if isinstance(content, str) else json.dumps(content))
        return path

    def test_demo_scenario(self):
        scenario = load_scenario(DEMO)
        self.assertEqual(scenario.name, "douala_demo")
        self.assertEqual(len(scenario.hubs), 4)
        self.assertEqual([p.tracking_code for p in scenario.parcels], ["TRK-0001", "TRK-0002", "TRK-0003"])
        closure = scenario.incidents[0]
        self.assertEqual(closure.incident_type, IncidentType.ROAD_CLOSURE)
        self.assertEqual(closure.start, Position(4.06, 9.704))
        self.assertEqual(closure.width_m, 80.0)
        self.assertEqual(closure.at_tick, 5)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_scenario(os.path.join(self.tmp.name, "nope.json"))

    def test_invalid_json(self):
        with self.assertRaises(ValueError):
            load_scenario(self.write("{not json"))

    def test_missing_fields(self):
        with self.assertRaises(ValueError):
            load_scenario(self.write({"hubs": []}))

    def test_unknown_hub(self):
        data = {
            "hubs": [{"id": "h1", "latitude": 4.05, "longitude": 9.70}],
            "parcels": [{"tracking_code": "TRK-1", "pickup_hub": "h1", "delivery_hub": "h9"}],
        }
        with self.assertRaises(ValueError):
            load_scenario(self.write(data))

    def test_name_defaults_to_file_name(self):
        data = {"hubs": [], "parcels": []}
        self.assertEqual(load_scenario(self.write(data)).name, "scenario")


class OfflineRunTests(unittest.TestCase):
    def setUp(self):
        self.scenario = load_scenario(DEMO)

    def test_closure_fails_the_parcel_crossing_it(self):
        runner = ScenarioRunner(self.scenario, tick_ms=1000, speed=10, start_time=T0)
        report = runner.run()

        states = {row["tracking_code"]: row["state"] for row in report.parcels}
        self.assertEqual(states, {"TRK-0001": "FAILED", "TRK-0002": "DELIVERED", "TRK-0003": "DELIVERED"})
        self.assertEqual(report.failures, 1)
        self.assertEqual(report.recalculations, 0)
        self.assertEqual(report.stats.delivered, 2)
        self.assertEqual(len(runner.state.incidents), 2)
        self.assertLess(report.ticks, 100)

        failed = next(p for p in runner.state.parcels.values() if p.tracking_code == "TRK-0001")
        self.assertEqual(len(failed.affected_by_incidents), 1)
        self.assertIsNone(failed.actual_arrival)

    def test_routes_are_straight_line_fallbacks(self):
        runner = ScenarioRunner(self.scenario, start_time=T0)
        runner.setup()
        self.assertTrue(runner.state.is_playing)
        for parcel in runner.state.parcels.values():
            self.assertEqual(parcel.state, ParcelState.TRANSIT)
            self.assertTrue(parcel.route.routing_service.endswith("_FALLBACK"))
            self.assertEqual(len(parcel.route_path), 2)

    def test_max_ticks(self):
        runner = ScenarioRunner(self.scenario, tick_ms=1000, speed=1, start_time=T0)
        with self.assertLogs("parcelsim.scenario", level="WARNING"):
            report = runner.run(max_ticks=3)
        self.assertEqual(report.ticks, 3)
        self.assertEqual(report.stats.in_transit, 3)


class OnlineRunTests(unittest.TestCase):
    def setUp(self):
        self.scenario = load_scenario(DEMO)
        hubs = self.scenario.hubs_by_id
        ids = itertools.count(1)

        self.client = mock.create_autospec(LogisticsClient, instance=True)
        self.client.create_parcel.side_effect = lambda payload: {
            "id": f"srv-{next(ids)}",
            "trackingCode": payload["recipientName"],
        }
        self.client.calculate_route.side_effect = lambda parcel_id, start, end, algorithm: (
            LogisticsClient.fallback_route(hubs[start].position, hubs[end].position, algorithm)
        )

    def test_recalculated_parcel_is_delivered(self):
        # detour north of the closure, ending at Deido
        detour = LogisticsClient.fallback_route(Position(4.0620, 9.7000), Position(4.0650, 9.7100))
        self.client.recalculate_route.return_value = detour

        runner = ScenarioRunner(self.scenario, client=self.client, tick_ms=1000, speed=10, start_time=T0)
        report = runner.run()

        self.assertEqual(report.recalculations, 1)
        self.assertEqual(report.failures, 0)
        self.assertEqual(report.stats.delivered, 3)

        route_id, incident = self.client.recalculate_route.call_args[0]
        self.assertEqual(incident.incident_type, IncidentType.ROAD_CLOSURE)
        rerouted = runner.state.parcels["srv-1"]
        self.assertEqual(rerouted.route.route_id, detour.route_id)
        self.assertNotEqual(route_id, detour.route_id)
        self.assertEqual(rerouted.current_position, Position(4.0650, 9.7100))

    def test_no_alternative_route_fails_the_parcel(self):
        self.client.recalculate_route.return_value = None
        report = ScenarioRunner(self.scenario, client=self.client, tick_ms=1000, speed=10, start_time=T0).run()
        self.assertEqual(report.failures, 1)
        self.assertEqual(report.stats.delivered, 2)

    def test_unroutable_parcels_stay_planned(self):
        self.client.calculate_route.side_effect = None
        self.client.calculate_route.return_value = None
        with self.assertLogs("parcelsim.scenario", level="WARNING"):
            report = ScenarioRunner(self.scenario, client=self.client, start_time=T0).run()

        self.assertEqual(report.ticks, 0)
        self.assertTrue(all(row["state"] == "PLANNED" for row in report.parcels))
        self.assertEqual(report.stats.total_distance_km, 0.0)


if __name__ == "__main__":
    unittest.main()
