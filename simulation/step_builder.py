"""
Compile a declarative probe sequence into a flat, time-ordered step list.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
import logging
import math

from .data_structures import (
    Axis, Position3D, PositionMode, RapidMove, DwellMove,
    MovementStep, ProbeOperation
)

logger = logging.getLogger(__name__)

BASE_RAPID_SPEED = 2000.0  # units/min for rapid and backoff moves
MIN_STEP_DURATION_MS = 1.0


class StepType(Enum):
    """Kinds of simulation steps."""
    RAPID = "rapid"
    PROBE = "probe"
    DWELL = "dwell"
    BACKOFF = "backoff"


@dataclass
class SimulationStep:
    """One interpolated segment of the simulated program."""
    id: str
    step_type: StepType
    start_position: Position3D
    end_position: Position3D
    duration: float  # milliseconds
    operation: Optional[ProbeOperation] = None
    movement: Optional[MovementStep] = None
    axis: Optional[Axis] = None
    is_probing: bool = False


def move_duration_ms(distance: float, rate_per_minute: float) -> float:
    """Convert a travel distance at a per-minute rate to milliseconds.

    Never returns less than MIN_STEP_DURATION_MS, so zero-length moves and
    zero or invalid rates cannot stall the tick loop.
    """
    if not math.isfinite(rate_per_minute) or rate_per_minute <= 0:
        return MIN_STEP_DURATION_MS
    duration = abs(distance) * 60000 / rate_per_minute
    if not math.isfinite(duration):
        return MIN_STEP_DURATION_MS
    return max(duration, MIN_STEP_DURATION_MS)


def dwell_duration_ms(seconds: float) -> float:
    duration = seconds * 1000
    if not math.isfinite(duration):
        return MIN_STEP_DURATION_MS
    return max(duration, MIN_STEP_DURATION_MS)


def resolve_rapid_target(current: Position3D, move: RapidMove) -> Position3D:
    """
    Resolve the end point of a rapid move.

    Relative moves add per-axis deltas. Absolute moves, and moves without a
    position mode (which run in the default absolute mode), set only the
    axes they name.
    """
    target = current.copy()
    for axis, value in move.axes_values.items():
        if move.position_mode == PositionMode.RELATIVE:
            target = target.offset(axis, value)
        else:
            target = target.with_axis(axis, value)
    return target


class SimulationStepBuilder:
    """Builds simulation steps from probe operations."""

    def __init__(self, rapid_speed: float = BASE_RAPID_SPEED):
        self.rapid_speed = rapid_speed
        self._step_counter = 0

    def compile(self, operations: List[ProbeOperation],
                initial_position: Position3D) -> List[SimulationStep]:
        """
        Convert a probe sequence into simulation steps.

        The running position threads across the whole sequence: each
        operation starts where the previous one's last move ended.

        Args:
            operations: Ordered probe operations
            initial_position: Tool position before the first move

        Returns:
            Flat list of steps where each step starts at the previous end
        """
        self._step_counter = 0
        steps: List[SimulationStep] = []
        current = initial_position.copy()

        for operation in operations:
            for move in operation.pre_moves:
                current = self._append_movement(steps, move, current)

            probe_end = current.offset(operation.axis, operation.distance * operation.direction)
            steps.append(SimulationStep(
                id=self._next_id(),
                step_type=StepType.PROBE,
                start_position=current,
                end_position=probe_end,
                duration=move_duration_ms(operation.distance, operation.feed_rate),
                operation=operation,
                axis=operation.axis,
                is_probing=True
            ))

            backoff_end = probe_end.offset(operation.axis,
                                           -operation.backoff_distance * operation.direction)
            steps.append(SimulationStep(
                id=self._next_id(),
                step_type=StepType.BACKOFF,
                start_position=probe_end.copy(),
                end_position=backoff_end,
                duration=move_duration_ms(operation.backoff_distance, self.rapid_speed),
                operation=operation,
                axis=operation.axis
            ))
            current = backoff_end.copy()

            for move in operation.post_moves:
                current = self._append_movement(steps, move, current)

        logger.debug("Compiled %d operations into %d steps", len(operations), len(steps))
        return steps

    def _append_movement(self, steps: List[SimulationStep], move: MovementStep,
                         current: Position3D) -> Position3D:
        if isinstance(move, RapidMove):
            end = resolve_rapid_target(current, move)
            steps.append(SimulationStep(
                id=self._next_id(),
                step_type=StepType.RAPID,
                start_position=current.copy(),
                end_position=end,
                duration=move_duration_ms(current.distance_to(end), self.rapid_speed),
                movement=move
            ))
            return end.copy()
        if isinstance(move, DwellMove):
            steps.append(SimulationStep(
                id=self._next_id(),
                step_type=StepType.DWELL,
                start_position=current.copy(),
                end_position=current.copy(),
                duration=dwell_duration_ms(move.dwell_time),
                movement=move
            ))
            return current
        raise TypeError(f"Unknown movement step: {type(move).__name__}")

    def _next_id(self) -> str:
        step_id = f"step-{self._step_counter}"
        self._step_counter += 1
        return step_id


def compile_steps(operations: List[ProbeOperation],
                  initial_position: Position3D) -> List[SimulationStep]:
    """Compile operations with the default rapid speed."""
    return SimulationStepBuilder().compile(operations, initial_position)


def total_duration_ms(steps: List[SimulationStep]) -> float:
    """Nominal run time of a step list at 1x speed."""
    return sum(step.duration for step in steps)
