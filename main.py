#!/usr/bin/env python3
"""
Main entry point for the CNC Probe Sequence Simulator.

Plays a configured probing sequence against a stock box and reports where
the simulated probe touched the stock:
- Machine-axis to world coordinate transforms for vertical and horizontal mills
- Time-stepped interpolation of rapid, probe, backoff and dwell moves
- Exact contact points between the probe cylinder and the stock

Usage:
    python main.py [options]

Options:
    --config FILE     Load configuration from FILE
    --headless        Run with fixed time steps instead of the Qt event loop
    --speed FACTOR    Playback speed multiplier
    --tick-ms MS      Frame interval in milliseconds
    --debug           Enable debug logging
    --help            Show this help message
"""

import sys
import argparse
import logging
from pathlib import Path

from PyQt5.QtCore import QCoreApplication

from simulation.simulation_runner import (
    SimulationRunner, SimulationContext, SimulationState, SimulationHaltedError
)
from simulation.machine_geometry import calculate_machine_geometry
from machine_config.settings_manager import get_settings_manager
from host.simulation_host import SimulationHost

project_root = Path(__file__).parent

# Upper bound on headless frames so a misconfigured sequence cannot spin forever
MAX_HEADLESS_TICKS = 10_000_000


def setup_logging(debug=False):
    """Setup logging configuration."""
    level = logging.DEBUG if debug else logging.INFO

    logs_dir = project_root / "logs"
    logs_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(logs_dir / "simulation.log"),
            logging.StreamHandler(sys.stdout) if debug else logging.NullHandler()
        ]
    )

    return logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CNC Probe Sequence Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py --config probe_job.json             # Real-time playback
    python main.py --config probe_job.json --headless  # Fixed-step playback
    python main.py --headless --speed 10 --debug       # Default machine, 10x

Configuration example:
    {
        "machine": {"machineOrientation": "horizontal"},
        "probeSequence": {
            "initialPosition": {"X": -43, "Y": -121, "Z": -39.5},
            "operations": [
                {"axis": "Z", "direction": -1, "distance": 10,
                 "feedRate": 100, "backoffDistance": 2}
            ]
        },
        "stock": {"size": [25, 25, 10], "position": [0, 0, 0]}
    }
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Load configuration from JSON file'
    )

    parser.add_argument(
        '--headless',
        action='store_true',
        help='Run with fixed time steps instead of the Qt event loop'
    )

    parser.add_argument(
        '--speed',
        type=float,
        help='Playback speed multiplier (overrides configuration)'
    )

    parser.add_argument(
        '--tick-ms',
        type=int,
        help='Frame interval in milliseconds (overrides configuration)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version='CNC Probe Sequence Simulator v1.0'
    )

    return parser.parse_args(argv)


def build_runner(settings_manager) -> SimulationRunner:
    """Create a runner whose stock geometry follows the settings manager."""
    context = SimulationContext.from_live_settings(
        machine_settings=settings_manager.get_machine_settings,
        probe_sequence=settings_manager.get_probe_sequence,
        stock_size=lambda: settings_manager.get_stock_settings().size,
        stock_position=lambda: settings_manager.get_stock_settings().position
    )
    runner = SimulationRunner(context)
    sequence = settings_manager.get_probe_sequence()
    runner.load(sequence.operations, sequence.initial_position)
    return runner


def run_headless(runner: SimulationRunner, tick_ms: float) -> SimulationState:
    """Play the loaded sequence with fixed frame times."""
    logger = logging.getLogger(__name__)
    logger.info("Running simulation in headless mode (%d steps)", runner.total_steps)

    runner.play()
    ticks = 0
    while runner.state.is_playing and ticks < MAX_HEADLESS_TICKS:
        runner.tick(tick_ms)
        ticks += 1

    logger.info("Headless run finished after %d ticks", ticks)
    return runner.state


def run_realtime(runner: SimulationRunner, tick_ms: int) -> SimulationState:
    """Play the loaded sequence on a Qt event loop."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    host = SimulationHost(runner, tick_interval_ms=tick_ms)

    def on_state_changed(status: str):
        if status in ('complete', 'paused', 'idle'):
            app.quit()

    host.state_changed.connect(on_state_changed)
    host.error_occurred.connect(lambda message: app.quit())
    host.play()
    if host.is_running:
        app.exec_()
    return runner.state


def print_report(settings_manager, state: SimulationState):
    """Print tool position and contact points."""
    geometry = calculate_machine_geometry(
        settings_manager.get_machine_settings(),
        settings_manager.get_probe_sequence(),
        settings_manager.get_stock_settings().size,
        settings_manager.get_stock_settings().position
    )
    tool = geometry.tool_position
    print(f"Tool position: X:{tool.x:.3f} Y:{tool.y:.3f} Z:{tool.z:.3f}")

    print(f"Contact points ({len(state.contact_points)}):")
    for contact in state.contact_points:
        pos = contact.position
        print(f"  {contact.probe_operation_id} [{contact.axis.value}] "
              f"X:{pos.x:.3f} Y:{pos.y:.3f} Z:{pos.z:.3f}")

    pos = state.current_position
    print(f"Final position: X:{pos.x:.3f} Y:{pos.y:.3f} Z:{pos.z:.3f}")


def main(argv=None):
    """Main application entry point."""
    args = parse_arguments(argv)
    logger = setup_logging(args.debug)

    settings_manager = get_settings_manager()
    if args.config and not settings_manager.import_settings(args.config):
        logger.error("Configuration loading failed")
        return 1

    simulation_settings = settings_manager.get_simulation_settings()
    speed = args.speed if args.speed is not None else simulation_settings.speed
    tick_ms = args.tick_ms if args.tick_ms is not None else simulation_settings.tick_interval_ms

    runner = build_runner(settings_manager)
    runner.set_speed(speed)

    if not runner.is_ready:
        logger.warning("Probe sequence has no operations")

    try:
        if args.headless:
            state = run_headless(runner, tick_ms)
        else:
            state = run_realtime(runner, tick_ms)
    except KeyboardInterrupt:
        logger.info("Simulation interrupted by user")
        return 0
    except SimulationHaltedError as e:
        logger.error("%s", e)
        print_report(settings_manager, e.state)
        return 1

    print_report(settings_manager, state)
    return 0


if __name__ == "__main__":
    sys.exit(main())
