"""
Settings management for machine, probe sequence and stock configuration.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
from dataclasses import dataclass, field

from simulation.data_structures import (
    Axis, Orientation, PositionMode, CoordinateSystem, Position3D,
    AxisConfig, MachineSettings, RapidMove, DwellMove, MovementStep,
    ProbeOperation, EndmillSize, ProbeSequenceSettings
)
from simulation.machine_geometry import DEFAULT_STOCK_SIZE, DEFAULT_STOCK_POSITION
from .config_schema import ConfigValidator

logger = logging.getLogger(__name__)


@dataclass
class StockSettings:
    """Stock size and position (stage-relative offset on horizontal machines)."""
    size: Tuple[float, float, float] = DEFAULT_STOCK_SIZE
    position: Tuple[float, float, float] = DEFAULT_STOCK_POSITION


@dataclass
class SimulationSettings:
    """Playback preferences."""
    speed: float = 1.0
    tick_interval_ms: int = 16  # ~60 FPS


@dataclass
class SystemSettings:
    """Complete simulation configuration."""
    machine: MachineSettings
    probe_sequence: ProbeSequenceSettings
    stock: StockSettings = field(default_factory=StockSettings)
    simulation: SimulationSettings = field(default_factory=SimulationSettings)


def create_default_machine_settings() -> MachineSettings:
    """Horizontal mill used when no configuration is given."""
    return MachineSettings(
        units='mm',
        axes={
            Axis.X: AxisConfig('Down', 'Up', 1, -86.0, -0.5),
            Axis.Y: AxisConfig('Right', 'Left', 1, -0.5, -241.5),
            Axis.Z: AxisConfig('In', 'Out', -1, -0.5, -78.5)
        },
        orientation=Orientation.HORIZONTAL,
        stage_dimensions=(12.7, 304.8, 63.5)
    )


def create_default_probe_sequence() -> ProbeSequenceSettings:
    """Empty sequence starting in the middle of the default travel."""
    return ProbeSequenceSettings(
        initial_position=Position3D(-43.0, -121.0, -39.5),
        dwells_before_probe=15,
        spindle_speed=5000,
        units='mm',
        endmill_size=EndmillSize(input='1/8', unit='fraction', size_in_mm=3.175),
        operations=[]
    )


class SettingsManager:
    """Loads configuration documents and converts them to settings objects."""

    def __init__(self, config_path: Optional[str] = None):
        self.validator = ConfigValidator()
        self.settings = self._create_default_settings()

        if config_path is not None:
            self.import_settings(config_path)

    def _create_default_settings(self) -> SystemSettings:
        """Create default system settings."""
        return SystemSettings(
            machine=create_default_machine_settings(),
            probe_sequence=create_default_probe_sequence()
        )

    def import_settings(self, import_path: str) -> bool:
        """
        Import settings from a JSON configuration file.

        Args:
            import_path: Path to the configuration file

        Returns:
            True if imported successfully, False if the current settings were
            kept
        """
        try:
            with open(Path(import_path), 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read configuration %s: %s", import_path, e)
            return False

        return self.load_dict(data)

    def load_dict(self, data: Dict[str, Any]) -> bool:
        """Replace settings from an already parsed configuration document."""
        validation = self.validator.validate_config(data)
        if not validation['valid']:
            for error in validation['errors']:
                logger.error("Invalid configuration: %s", error)
            return False

        self.settings = self._dict_to_settings(data)
        logger.info("Loaded configuration with %d probe operations",
                    len(self.settings.probe_sequence.operations))
        return True

    def restore_defaults(self):
        """Restore settings to defaults."""
        self.settings = self._create_default_settings()

    def get_machine_settings(self) -> MachineSettings:
        return self.settings.machine

    def get_probe_sequence(self) -> ProbeSequenceSettings:
        return self.settings.probe_sequence

    def get_stock_settings(self) -> StockSettings:
        return self.settings.stock

    def get_simulation_settings(self) -> SimulationSettings:
        return self.settings.simulation

    def update_stock_settings(self, settings: StockSettings):
        """Update stock size and position."""
        self.settings.stock = settings

    def _dict_to_settings(self, data: Dict[str, Any]) -> SystemSettings:
        """Convert a configuration dictionary to SystemSettings."""
        defaults = self._create_default_settings()

        machine = self._dict_to_machine(data.get('machine', {}), defaults.machine)
        sequence = self._dict_to_sequence(data.get('probeSequence', {}), defaults.probe_sequence)

        stock_data = data.get('stock', {})
        stock = StockSettings(
            size=tuple(stock_data.get('size', DEFAULT_STOCK_SIZE)),
            position=tuple(stock_data.get('position', DEFAULT_STOCK_POSITION))
        )

        simulation_data = data.get('simulation', {})
        simulation = SimulationSettings(
            speed=float(simulation_data.get('speed', 1.0)),
            tick_interval_ms=int(simulation_data.get('tickIntervalMs', 16))
        )

        return SystemSettings(machine=machine, probe_sequence=sequence,
                              stock=stock, simulation=simulation)

    def _dict_to_machine(self, data: Dict[str, Any], default: MachineSettings) -> MachineSettings:
        axes = dict(default.axes)
        for name, axis_data in data.get('axes', {}).items():
            axis = Axis(name)
            fallback = default.axes[axis]
            axes[axis] = AxisConfig(
                positive_direction=axis_data.get('positiveDirection', fallback.positive_direction),
                negative_direction=axis_data.get('negativeDirection', fallback.negative_direction),
                polarity=int(axis_data.get('polarity', fallback.polarity)),
                min_position=float(axis_data['min']),
                max_position=float(axis_data['max'])
            )

        return MachineSettings(
            units=data.get('units', default.units),
            axes=axes,
            orientation=Orientation(data.get('machineOrientation', default.orientation.value)),
            stage_dimensions=tuple(data.get('stageDimensions', default.stage_dimensions))
        )

    def _dict_to_sequence(self, data: Dict[str, Any],
                          default: ProbeSequenceSettings) -> ProbeSequenceSettings:
        endmill = default.endmill_size
        if 'endmillSize' in data:
            endmill_data = data['endmillSize']
            endmill = EndmillSize(
                input=endmill_data.get('input', ''),
                unit=endmill_data.get('unit', 'mm'),
                size_in_mm=float(endmill_data['sizeInMM'])
            )

        initial_position = default.initial_position
        if 'initialPosition' in data:
            initial_position = Position3D.from_dict(data['initialPosition'])

        operations = [
            self._dict_to_operation(op_data, index)
            for index, op_data in enumerate(data.get('operations', []))
        ]

        return ProbeSequenceSettings(
            initial_position=initial_position,
            dwells_before_probe=int(data.get('dwellsBeforeProbe', default.dwells_before_probe)),
            spindle_speed=float(data.get('spindleSpeed', default.spindle_speed)),
            units=data.get('units', default.units),
            endmill_size=endmill,
            operations=operations
        )

    def _dict_to_operation(self, data: Dict[str, Any], index: int) -> ProbeOperation:
        operation_id = data.get('id', f'probe-{index}')
        return ProbeOperation(
            id=operation_id,
            axis=Axis(data['axis']),
            direction=int(data['direction']),
            distance=float(data['distance']),
            feed_rate=float(data['feedRate']),
            backoff_distance=float(data['backoffDistance']),
            wcs_offset=float(data.get('wcsOffset', 0.0)),
            pre_moves=self._dict_to_moves(data.get('preMoves', []), f'{operation_id}-pre'),
            post_moves=self._dict_to_moves(data.get('postMoves', []), f'{operation_id}-post')
        )

    def _dict_to_moves(self, moves: List[Dict[str, Any]], prefix: str) -> List[MovementStep]:
        return [
            movement_from_dict(move, f'{prefix}-{index}')
            for index, move in enumerate(moves)
        ]

    def get_settings_summary(self) -> Dict[str, Any]:
        """Get a summary of current settings."""
        sequence = self.settings.probe_sequence
        return {
            'units': self.settings.machine.units,
            'orientation': self.settings.machine.orientation.value,
            'operations': len(sequence.operations),
            'tool_diameter': sequence.tool_diameter,
            'stock_size': self.settings.stock.size,
            'speed': self.settings.simulation.speed
        }


def movement_from_dict(data: Dict[str, Any], default_id: str) -> MovementStep:
    """
    Convert a movement dictionary to a RapidMove or DwellMove.

    Raises:
        ValueError: If the movement type is unknown
    """
    move_type = data.get('type')
    move_id = data.get('id', default_id)
    description = data.get('description', '')

    if move_type == 'rapid':
        return RapidMove(
            id=move_id,
            axes_values={Axis(name): float(value)
                         for name, value in data.get('axesValues', {}).items()},
            position_mode=PositionMode(data.get('positionMode', 'relative')),
            coordinate_system=CoordinateSystem(data.get('coordinateSystem', 'none')),
            description=description
        )
    if move_type == 'dwell':
        return DwellMove(id=move_id, dwell_time=float(data['dwellTime']),
                         description=description)
    raise ValueError(f"Unknown movement type: {move_type}")


# Global settings manager instance
_settings_manager = None


def get_settings_manager(config_path: Optional[str] = None) -> SettingsManager:
    """Get global settings manager instance."""
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager(config_path)
    return _settings_manager
