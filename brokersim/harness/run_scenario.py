#!/usr/bin/env python3
"""
run_scenario.py - brokersim scenario execution

Executes broker simulation scenarios from YAML configuration files.

Usage:
    brokersim-run scenarios/europe.yaml
    brokersim-run scenarios/europe.yaml --seed 123
    brokersim-run scenarios/europe.yaml --strategy BrokerGQPS --verbose

The script will:
1. Load scenario from YAML
2. Validate the topology of every strategy
3. Generate the workload and run one simulation per strategy
4. Export results and report a summary
"""

import argparse
import logging
import sys
from pathlib import Path

from brokersim.broker.base import BrokerType
from brokersim.config.scenario import load_scenario
from brokersim.harness.launcher import SimulationLauncher


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a brokersim scenario from YAML configuration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every strategy of the scenario
  brokersim-run scenarios/europe.yaml

  # Override seed for a different workload
  brokersim-run scenarios/europe.yaml --seed 123

  # Only run one strategy, with per-message traces
  brokersim-run scenarios/europe.yaml --strategy BrokerGQPS --verbose
        """
    )

    parser.add_argument(
        "config",
        type=Path,
        help="Path to scenario YAML file"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override random seed (default: use seed from YAML)"
    )

    parser.add_argument(
        "--strategy",
        type=str,
        default=None,
        help="Only run this strategy (e.g. BrokerDHT or dht)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output (debug logging)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate scenario without executing (validate only)"
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        0 on success, 1 on failure
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    if not args.config.exists():
        print(f"ERROR: Scenario file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        print(f"Loading scenario from: {args.config}")
        scenario = load_scenario(str(args.config))

        if args.seed is not None:
            print(f"Overriding seed: {scenario.seed} -> {args.seed}")
            scenario.seed = args.seed

        if args.strategy is not None:
            scenario.strategies = [BrokerType.parse(args.strategy)]

        launcher = SimulationLauncher(scenario)

        if args.dry_run:
            print("\n" + "="*60)
            print("DRY RUN MODE - Validation Only")
            print("="*60)

            errors = launcher.validate_scenario()
            if errors:
                print("\nScenario validation FAILED:")
                for error in errors:
                    print(f"  - {error}")
                return 1

            print("\nScenario validation PASSED")
            print("\nScenario summary:")
            print(f"  Seed: {scenario.seed}")
            print(f"  Experiment time: {scenario.experiment_time_ms}ms")
            print(f"  Field size: {scenario.field_size} degrees")
            print(f"  Brokers: {len(scenario.brokers)}")
            print(f"  Clients: {sum(scenario.client_numbers.values())}")
            print(f"  Strategies: {', '.join(t.value for t in scenario.strategies)}")
            print("\n(Use without --dry-run to execute)")
            return 0

        print("\n" + "="*60)
        print("Executing Scenario")
        print("="*60)

        results = launcher.run()

        print("\n" + "="*60)
        print("Execution Complete")
        print("="*60)

        failed = False
        for result in results:
            if result.success:
                print(f"\n{result.broker_type.value}: SUCCESS")
                print(f"  Last processed tick: {result.last_processed_tick}")
                print(f"  Messages: {result.message_count}")
                print(f"  Wall time: {result.duration_sec:.2f}s")
                for path in result.output_files or []:
                    print(f"  Wrote {path}")
            else:
                failed = True
                print(f"\n{result.broker_type.value}: FAILED")
                print(f"  Error: {result.error_message}")

        return 1 if failed else 0

    except FileNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"ERROR: Invalid scenario configuration: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
