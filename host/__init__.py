"""
Host loops for running the simulation.
"""

from .simulation_host import SimulationHost

__all__ = [
    'SimulationHost'
]
