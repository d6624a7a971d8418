"""
Qt timer loop that drives the simulation runner in real time.
"""

import logging
from typing import List

from PyQt5.QtCore import QObject, QTimer, QElapsedTimer, pyqtSignal

from simulation.data_structures import Position3D, ProbeOperation, ContactPoint
from simulation.simulation_runner import (
    SimulationRunner, SimulationHaltedError, RunnerStatus
)

logger = logging.getLogger(__name__)


class SimulationHost(QObject):
    """Feeds frame time into a SimulationRunner and re-emits its updates."""

    # Signals
    position_changed = pyqtSignal(dict)
    contact_added = pyqtSignal(dict)
    state_changed = pyqtSignal(str)
    error_occurred = pyqtSignal(str)

    def __init__(self, runner: SimulationRunner, tick_interval_ms: int = 16, parent=None):
        super().__init__(parent)
        self.runner = runner
        self.tick_interval_ms = tick_interval_ms

        self.runner.add_position_callback(self._on_position_update)
        self.runner.add_contact_callback(self._on_contact)
        self.runner.add_status_callback(self._on_status_change)

        self.clock = QElapsedTimer()
        self.update_timer = QTimer(self)
        self.update_timer.timeout.connect(self.on_tick)

    @property
    def is_running(self) -> bool:
        return self.update_timer.isActive()

    def load_sequence(self, operations: List[ProbeOperation], initial_position: Position3D):
        """Load a new sequence; any scheduled tick is cancelled first."""
        self.update_timer.stop()
        self.runner.load(operations, initial_position)

    def play(self):
        """Start or resume real-time playback."""
        self.runner.play()
        if self.runner.state.is_playing:
            self.clock.start()
            self.update_timer.start(self.tick_interval_ms)

    def pause(self):
        self.update_timer.stop()
        self.runner.pause()

    def reset(self):
        self.update_timer.stop()
        self.runner.reset()

    def stop(self):
        self.update_timer.stop()
        self.runner.stop()

    def set_speed(self, speed: float):
        self.runner.set_speed(speed)

    def on_tick(self):
        """Advance the runner by the wall-clock time since the last tick."""
        delta_ms = float(self.clock.restart())
        try:
            state = self.runner.tick(delta_ms)
        except SimulationHaltedError as e:
            self.update_timer.stop()
            self.error_occurred.emit(str(e))
            return

        if not state.is_playing:
            self.update_timer.stop()

    def _on_position_update(self, position: Position3D):
        self.position_changed.emit(position.to_dict())

    def _on_contact(self, contact: ContactPoint):
        self.contact_added.emit(contact.to_dict())

    def _on_status_change(self, status: RunnerStatus):
        logger.debug("Simulation status: %s", status.value)
        self.state_changed.emit(status.value)
