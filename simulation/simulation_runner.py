"""
Tick-driven state machine that plays a compiled probe sequence.

The runner never schedules itself. A host calls tick() with the elapsed wall
clock time of each frame; stopping a run is simply not calling tick() again.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional
import logging
import math

from .data_structures import (
    Position3D, BoundingBox, ContactPoint, MachineSettings,
    ProbeOperation, ProbeSequenceSettings
)
from .collision_detector import CollisionDetector
from .machine_geometry import calculate_stock_bounding_box
from .step_builder import SimulationStep, SimulationStepBuilder

logger = logging.getLogger(__name__)

DEFAULT_TOOL_DIAMETER = 6.0
COLLISION_ARM_PROGRESS = 0.1  # Ignore contacts right at step entry


class RunnerStatus(Enum):
    """Playback status."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"


class SimulationHaltedError(RuntimeError):
    """Raised when an unexpected error stops playback."""

    def __init__(self, message: str, state: 'SimulationState'):
        super().__init__(message)
        self.state = state


@dataclass
class SimulationState:
    """Observable simulation state, written only by the runner."""
    is_active: bool = False
    is_playing: bool = False
    current_step_index: int = 0
    current_position: Position3D = field(default_factory=Position3D)
    speed: float = 1.0
    contact_points: List[ContactPoint] = field(default_factory=list)
    status: RunnerStatus = RunnerStatus.IDLE


@dataclass
class SimulationContext:
    """Live geometry accessors, read on every probing tick."""
    stock_box: Callable[[], BoundingBox]
    tool_diameter: Callable[[], Optional[float]]

    @classmethod
    def from_live_settings(cls,
                           machine_settings: Callable[[], MachineSettings],
                           probe_sequence: Callable[[], Optional[ProbeSequenceSettings]],
                           stock_size: Callable[[], tuple],
                           stock_position: Callable[[], tuple]) -> 'SimulationContext':
        """Build accessors that recompute the stock box from current settings."""
        def stock_box() -> BoundingBox:
            return calculate_stock_bounding_box(machine_settings(), probe_sequence(),
                                                stock_size(), stock_position())

        def tool_diameter() -> Optional[float]:
            sequence = probe_sequence()
            return sequence.tool_diameter if sequence else None

        return cls(stock_box=stock_box, tool_diameter=tool_diameter)


class SimulationRunner:
    """Plays simulation steps and records contact points."""

    def __init__(self, context: SimulationContext,
                 detector: Optional[CollisionDetector] = None,
                 builder: Optional[SimulationStepBuilder] = None):
        self.context = context
        self.detector = detector or CollisionDetector()
        self.builder = builder or SimulationStepBuilder()

        self.steps: List[SimulationStep] = []
        self.initial_position = Position3D()
        self.state = SimulationState()

        # Per-step accumulators
        self._step_elapsed = 0.0
        self._sweep_origin: Optional[Position3D] = None
        self._collision_registered = False

        self.position_callbacks = []
        self.contact_callbacks = []
        self.status_callbacks = []

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> Optional[SimulationStep]:
        if 0 <= self.state.current_step_index < len(self.steps):
            return self.steps[self.state.current_step_index]
        return None

    @property
    def is_ready(self) -> bool:
        return len(self.steps) > 0

    def load(self, operations: List[ProbeOperation], initial_position: Position3D):
        """Compile a new sequence and reset all state."""
        self.steps = self.builder.compile(operations, initial_position)
        self.initial_position = initial_position.copy()
        self.reset()
        self.state.is_active = True
        logger.info("Loaded %d operations (%d steps)", len(operations), len(self.steps))

    def play(self):
        """Start or resume playback."""
        if not self.steps:
            return
        if self.state.status == RunnerStatus.COMPLETE:
            self.reset()
        self.state.is_active = True
        self.state.is_playing = True
        self._set_status(RunnerStatus.RUNNING)

    def pause(self):
        """Pause playback, keeping the current step and position."""
        if not self.state.is_playing:
            return
        self.state.is_playing = False
        self._set_status(RunnerStatus.PAUSED)

    def reset(self):
        """Return to the first step and clear recorded contacts."""
        self.state.is_playing = False
        self.state.current_step_index = 0
        self.state.current_position = self.initial_position.copy()
        self.state.contact_points = []
        self._reset_step_accumulators()
        self._set_status(RunnerStatus.IDLE)
        self._notify_position_update()

    def stop(self):
        """Reset and deactivate the simulation."""
        self.reset()
        self.state.is_active = False

    def set_speed(self, speed: float):
        """Set the wall-clock time multiplier; negative values are ignored."""
        if not math.isfinite(speed) or speed < 0:
            logger.warning("Ignoring invalid simulation speed %r", speed)
            return
        self.state.speed = speed

    def seek(self, index: int):
        """Jump to the start of a step while paused."""
        if self.state.is_playing or not self.steps:
            return
        index = max(0, min(index, len(self.steps) - 1))
        self.state.current_step_index = index
        self.state.current_position = self.steps[index].start_position.copy()
        self._reset_step_accumulators()
        self._notify_position_update()

    def step_forward(self):
        self.seek(self.state.current_step_index + 1)

    def step_backward(self):
        self.seek(self.state.current_step_index - 1)

    def tick(self, delta_ms: float) -> SimulationState:
        """
        Advance the simulation by one frame.

        Args:
            delta_ms: Wall-clock milliseconds since the previous frame

        Returns:
            The updated simulation state

        Raises:
            SimulationHaltedError: If an unexpected error occurred; playback
                is paused and the error carries the state at that moment
        """
        if not (self.state.is_active and self.state.is_playing):
            return self.state

        try:
            self._advance(delta_ms)
        except Exception as e:
            self.state.is_playing = False
            self._set_status(RunnerStatus.PAUSED)
            logger.exception("Simulation halted at step %d, position %r",
                             self.state.current_step_index, self.state.current_position)
            raise SimulationHaltedError(f"Simulation halted: {e}", self.state) from e

        return self.state

    def _advance(self, delta_ms: float):
        step = self.current_step
        if step is None:
            self._complete()
            return

        elapsed = max(delta_ms, 0.0) * self.state.speed
        if math.isfinite(elapsed):
            self._step_elapsed += elapsed
        progress = max(0.0, min(self._step_elapsed / step.duration, 1.0))
        position = step.start_position.lerp(step.end_position, progress)

        if (step.is_probing and progress > COLLISION_ARM_PROGRESS
                and not self._collision_registered):
            if self._check_contact(step, position):
                return

        self.state.current_position = position
        self._notify_position_update()

        if progress >= 1.0:
            self._enter_next_step()

    def _check_contact(self, step: SimulationStep, position: Position3D) -> bool:
        # Sweep from the last checked position; ticks before arming are
        # covered by starting at the step start
        origin = self._sweep_origin
        if origin is None:
            origin = step.start_position

        operation = step.operation
        stock = self.context.stock_box()
        tool_radius = self._tool_diameter() / 2

        result = self.detector.check_path(origin, position, step.axis, tool_radius,
                                          stock, operation.direction)
        if not result.collision:
            self._sweep_origin = position
            return False

        contact = ContactPoint(
            position=result.contact_point,
            probe_operation_id=operation.id,
            axis=step.axis
        )

        self._collision_registered = True
        self.state.contact_points.append(contact)
        self.state.current_position = result.stop_position
        logger.info("Probe %s touched stock at %r", operation.id, contact.position)

        self._notify_position_update()
        for callback in self.contact_callbacks:
            callback(contact)

        self._enter_next_step()
        return True

    def _tool_diameter(self) -> float:
        diameter = self.context.tool_diameter()
        if not diameter or diameter <= 0:
            return DEFAULT_TOOL_DIAMETER
        return diameter

    def _enter_next_step(self):
        self._reset_step_accumulators()
        next_index = self.state.current_step_index + 1
        if next_index < len(self.steps):
            self.state.current_step_index = next_index
        else:
            self._complete()

    def _complete(self):
        self.state.is_playing = False
        self._reset_step_accumulators()
        self._set_status(RunnerStatus.COMPLETE)
        logger.info("Simulation complete with %d contact points", len(self.state.contact_points))

    def _reset_step_accumulators(self):
        self._step_elapsed = 0.0
        self._sweep_origin = None
        self._collision_registered = False

    def _set_status(self, status: RunnerStatus):
        if self.state.status == status:
            return
        self.state.status = status
        for callback in self.status_callbacks:
            callback(status)

    def add_position_callback(self, callback):
        """Add callback for position updates."""
        self.position_callbacks.append(callback)

    def add_contact_callback(self, callback):
        """Add callback for new contact points."""
        self.contact_callbacks.append(callback)

    def add_status_callback(self, callback):
        """Add callback for status changes."""
        self.status_callbacks.append(callback)

    def _notify_position_update(self):
        for callback in self.position_callbacks:
            callback(self.state.current_position)
