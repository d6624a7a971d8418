"""
Shared fixtures for the probe simulation tests.
"""

import pytest

from simulation.data_structures import (
    Axis, Orientation, Position3D, AxisConfig, MachineSettings,
    EndmillSize, ProbeSequenceSettings
)


def make_machine_settings(orientation=Orientation.HORIZONTAL, **axis_ranges) -> MachineSettings:
    """Machine with the realistic mill travel unless ranges are overridden."""
    ranges = {'X': (-86.0, -0.5), 'Y': (-0.5, -241.5), 'Z': (-0.5, -78.5)}
    ranges.update(axis_ranges)
    return MachineSettings(
        units='mm',
        axes={
            Axis.X: AxisConfig('Down', 'Up', 1, *ranges['X']),
            Axis.Y: AxisConfig('Right', 'Left', 1, *ranges['Y']),
            Axis.Z: AxisConfig('In', 'Out', -1, *ranges['Z'])
        },
        orientation=orientation,
        stage_dimensions=(12.7, 304.8, 63.5)
    )


@pytest.fixture
def machine_settings():
    return make_machine_settings()


@pytest.fixture
def probe_sequence():
    return ProbeSequenceSettings(
        initial_position=Position3D(-43, -121, -39.5),
        dwells_before_probe=15,
        spindle_speed=5000,
        units='mm',
        endmill_size=EndmillSize(input='1/8', unit='fraction', size_in_mm=3.175),
        operations=[]
    )
