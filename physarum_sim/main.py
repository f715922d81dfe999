#!/usr/bin/env python3
"""
Physarum Trail Simulation

Headless runner: steps a slime-mold agent population for a fixed number of
frames and presents the color map as PNG/GIF files.

Usage:
    physarum-sim --config configs/default.yaml [options]

Examples:
    physarum-sim --config configs/default.yaml
    physarum-sim --config configs/default.yaml --gif --out-dir results/
    physarum-sim --config configs/default.yaml --frames 50 --no-csv --quiet
    python -m physarum_sim.main --config configs/default.yaml --seed 42
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from .config import load_config
from .errors import SimulationError
from .model.loop import SimulationLoop
from .export.csv_writer import CSVWriter
from .export.visualizer import Visualizer
from .export.reporter import Reporter


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments; unset toggles leave the YAML values alone."""
    parser = argparse.ArgumentParser(
        prog='physarum-sim',
        description='Run a physarum trail simulation without a display.'
    )
    parser.add_argument('--config', type=Path, required=True,
                        help='YAML file with simulation, profile and export sections')
    parser.add_argument('--seed', type=int, default=None,
                        help='replace the configured spawn seed')
    parser.add_argument('--frames', type=int, default=None,
                        help='replace the configured frame count')

    output = parser.add_argument_group('output')
    output.add_argument('--out-dir', type=Path, default=Path('./output'),
                        help='where frame_log.csv and images go (default: %(default)s)')
    output.add_argument('--csv', action=argparse.BooleanOptionalAction, default=None,
                        help='per-frame metrics log')
    output.add_argument('--snapshot', action=argparse.BooleanOptionalAction, default=None,
                        help='PNG of the last color map')
    output.add_argument('--gif', action='store_true',
                        help='also render an animated GIF')

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('--quiet', action='store_true',
                           help='print nothing on success')
    verbosity.add_argument('--verbose', action='store_true',
                           help='log per-frame diagnostics')

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {args.config}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.frames is not None:
        config.frames = args.frames
    if args.csv is not None:
        config.csv_enabled = args.csv
    if args.snapshot is not None:
        config.snapshot_enabled = args.snapshot
    if args.gif:
        config.gif_enabled = True
    config.quiet = args.quiet
    if args.seed is not None:
        config.seed = args.seed
    config.out_dir = args.out_dir

    profile = config.profile
    if not config.quiet:
        print(f"Initializing simulation...")
        print(f"  Field: {config.resolution[0]}x{config.resolution[1]}")
        print(f"  Agents: {profile.agent_count} ({profile.species_count} species)")
        print(f"  Frames: {config.frames} x {profile.steps_per_frame} steps")

    try:
        loop = SimulationLoop(config)
        loop.start()
    except SimulationError as e:
        print(f"Error starting simulation: {e}", file=sys.stderr)
        return 1

    # Initialize exporters
    csv_writer = None
    if config.csv_enabled:
        csv_writer = CSVWriter(config.out_dir / 'frame_log.csv')

    visualizer = Visualizer()
    reporter = Reporter(str(args.config), config.seed, frame_budget=config.delta_time)

    # Main simulation loop
    if not config.quiet:
        print(f"\nRunning simulation...")

    color_map = None
    snapshot = loop.snapshot()
    try:
        for frame in range(config.frames):
            started = time.perf_counter()
            color_map = loop.run_frame(config.delta_time)
            frame_seconds = time.perf_counter() - started

            snapshot = loop.snapshot()
            if csv_writer is not None:
                csv_writer.append(snapshot)

            # Buffer GIF frame (every N frames to reduce memory)
            if config.gif_enabled:
                if snapshot.frame % 5 == 0 or frame == config.frames - 1:
                    visualizer.buffer_frame(color_map)

            reporter.update(snapshot, frame_seconds)

            if not config.quiet and snapshot.frame % 100 == 0:
                print(f"  Frame {snapshot.frame}: {snapshot.off_field} off field, "
                      f"trail {snapshot.total_trail:.2f}")

    except KeyboardInterrupt:
        if not config.quiet:
            print("\nSimulation interrupted by user.")
    except SimulationError as e:
        print(f"Error during simulation: {e}", file=sys.stderr)
        return 1
    finally:
        if csv_writer is not None:
            csv_writer.close()

    if csv_writer is not None and csv_writer.rows_written and not config.quiet:
        print(f"\nCSV saved: {config.out_dir / 'frame_log.csv'}")

    if config.snapshot_enabled and color_map is not None:
        snapshot_path = config.out_dir / 'final_frame.png'
        visualizer.save_snapshot(color_map, snapshot, snapshot_path)
        if not config.quiet:
            print(f"Snapshot saved: {snapshot_path}")

    if config.gif_enabled:
        gif_path = config.out_dir / 'simulation.gif'
        if not config.quiet:
            print(f"Generating GIF ({len(visualizer.frames)} frames)...")
        visualizer.generate_gif(gif_path, fps=10)
        if not config.quiet:
            print(f"Animation saved: {gif_path}")

    loop.close()

    # Print summary report
    if not config.quiet:
        report = reporter.generate_summary(
            snapshot,
            config.out_dir,
            config.csv_enabled,
            config.snapshot_enabled,
            config.gif_enabled
        )
        print(report)

    return 0


if __name__ == '__main__':
    sys.exit(main())
