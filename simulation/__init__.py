"""
Core modules for the CNC probe sequence simulation.
"""

from .data_structures import (
    Axis, Orientation, Position3D, BoundingBox, AxisConfig, MachineSettings,
    RapidMove, DwellMove, ProbeOperation, ProbeSequenceSettings, ContactPoint
)
from .step_builder import SimulationStep, SimulationStepBuilder, StepType
from .collision_detector import CollisionDetector, CollisionResult
from .simulation_runner import (
    SimulationRunner, SimulationState, SimulationContext,
    SimulationHaltedError, RunnerStatus
)

__all__ = [
    'Axis',
    'Orientation',
    'Position3D',
    'BoundingBox',
    'AxisConfig',
    'MachineSettings',
    'RapidMove',
    'DwellMove',
    'ProbeOperation',
    'ProbeSequenceSettings',
    'ContactPoint',
    'SimulationStep',
    'SimulationStepBuilder',
    'StepType',
    'CollisionDetector',
    'CollisionResult',
    'SimulationRunner',
    'SimulationState',
    'SimulationContext',
    'SimulationHaltedError',
    'RunnerStatus'
]
