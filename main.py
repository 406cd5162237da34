#!/usr/bin/env python3
# main.py
"""
Command-Line Interface for the parcel routing simulation.

Runs a scenario headless (no map) and prints the outcome. Useful to check
the routing backend and the incident handling without the dashboard.

Usage:
    python main.py                                  # Default scenario, offline
    python main.py --scenario data/douala_demo.json # Specific scenario
    python main.py --api-url http://localhost:8080/api/v1  # Use the backend
    python main.py --speed 5 --tick-ms 500          # Speed and tick length
    python main.py --verbose                        # Debug logging

Exit Codes:
    0: Success
    1: Scenario loading error
    2: Simulation error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

# Ensure the parcelsim package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from parcelsim import config
from parcelsim.client import LogisticsClient
from parcelsim.scenario import RunReport, Scenario, ScenarioRunner, load_scenario

logger = logging.getLogger("parcelsim.cli")

DEFAULT_SCENARIO = "data/douala_demo.json"


def print_header(scenario: Scenario, online: bool) -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  PARCEL ROUTING SIMULATION")
    print(f"  Scenario: {scenario.name} ({len(scenario.parcels)} parcels, "
          f"{len(scenario.incidents)} incidents)")
    print(f"  Routing: {'backend' if online else 'offline straight lines'}")
    print("=" * 60 + "\n")


def print_report(report: RunReport) -> None:
    """
    Print a formatted table of per-parcel results followed by the totals.

    Args:
        report: Outcome of ScenarioRunner.run
    """
    print("\n" + "=" * 60)
    print("  FINAL RESULTS")
    print("=" * 60 + "\n")

    header = f"| {'Parcel':<10} | {'State':<9} | {'Progress':>8} | {'Distance':>9} | {'Incidents':>9} | {'Arrival':<8} |"
    print(header)
    print("|" + "-" * (len(header) - 2) + "|")
    for row in report.parcels:
        print(
            f"| {row['tracking_code']:<10} | {row['state']:<9} | {row['progress_pct']:>7.1f}% | "
            f"{row['distance_km']:>6.2f} km | {row['incidents']:>9} | {row['arrival']:<8} |"
        )

    print()
    for label, value in report.stats.to_dict().items():
        print(f"  {label:<16} {value}")
    print(f"  {'Ticks':<16} {report.ticks}")
    print(f"  {'Recalculations':<16} {report.recalculations}")
    print(f"  {'Failures':<16} {report.failures}")
    print("=" * 60 + "\n")


def load_scenario_safe(path: str) -> Optional[Scenario]:
    """
    Load a scenario with graceful error handling.

    Returns:
        The scenario, or None if it could not be loaded
    """
    try:
        scenario = load_scenario(path)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        print("Please pass --scenario with a path to a scenario JSON file.")
        return None
    except ValueError as e:
        print(f"ERROR: Failed to load scenario: {e}")
        return None

    print(f"Loaded {len(scenario.hubs)} hubs and {len(scenario.parcels)} parcels from '{path}'")
    return scenario


def main() -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Parcel routing simulation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                     # Offline run of the demo scenario
  python main.py --api-url http://localhost:8080/api/v1
  python main.py --speed 10 --max-ticks 2000
        """
    )

    parser.add_argument(
        "--scenario", "-s",
        type=str,
        default=DEFAULT_SCENARIO,
        help=f"Scenario JSON file (default: {DEFAULT_SCENARIO})"
    )

    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Routing backend URL. Without it the run is offline (straight-line routes, no recalculation)"
    )

    parser.add_argument(
        "--speed",
        type=int,
        choices=config.SPEED_OPTIONS,
        default=10,
        help="Simulation speed multiplier (default: 10)"
    )

    parser.add_argument(
        "--tick-ms",
        type=int,
        default=1000,
        help="Simulated milliseconds per tick (default: 1000)"
    )

    parser.add_argument(
        "--max-ticks",
        type=int,
        default=10_000,
        help="Stop after this many ticks (default: 10000)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    scenario = load_scenario_safe(args.scenario)
    if scenario is None:
        return 1

    client: Optional[LogisticsClient] = None
    if args.api_url:
        client = LogisticsClient(base_url=args.api_url)
        if not client.is_available():
            print(f"WARN: Routing backend at {args.api_url} is not reachable, running offline")
            client = None

    print_header(scenario, online=client is not None)

    try:
        runner = ScenarioRunner(scenario, client=client, tick_ms=args.tick_ms, speed=args.speed)
        report = runner.run(max_ticks=args.max_ticks)
    except Exception as e:
        print(f"ERROR: Simulation failed: {e}")
        import traceback
        traceback.print_exc()
        return 2

    print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
