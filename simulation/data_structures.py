"""
Core data structures for the probe sequence simulation.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Dict, Any, List, Union
import numpy as np
from enum import Enum


class Axis(Enum):
    """Machine axes."""
    X = "X"
    Y = "Y"
    Z = "Z"

    def perpendicular(self) -> Tuple['Axis', 'Axis']:
        """Return the two axes orthogonal to this one."""
        return tuple(axis for axis in Axis if axis is not self)


class Orientation(Enum):
    """Spindle orientation of the mill."""
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class PositionMode(Enum):
    """Position mode of a rapid move (G91 / G90 / unspecified)."""
    RELATIVE = "relative"
    ABSOLUTE = "absolute"
    NONE = "none"


class CoordinateSystem(Enum):
    """Coordinate system tag of a rapid move (G53 / G54 / unspecified)."""
    MACHINE = "machine"
    WCS = "wcs"
    NONE = "none"


@dataclass
class Position3D:
    """3D position in machine units."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other):
        if isinstance(other, Position3D):
            return Position3D(self.x + other.x, self.y + other.y, self.z + other.z)
        raise TypeError(f"Cannot add Position3D and {type(other)}")

    def __sub__(self, other):
        if isinstance(other, Position3D):
            return Position3D(self.x - other.x, self.y - other.y, self.z - other.z)
        raise TypeError(f"Cannot subtract Position3D and {type(other)}")

    def axis_value(self, axis: Axis) -> float:
        """Get the coordinate along a machine axis."""
        return getattr(self, axis.value.lower())

    def with_axis(self, axis: Axis, value: float) -> 'Position3D':
        """Return a copy with one coordinate replaced."""
        coords = {'x': self.x, 'y': self.y, 'z': self.z}
        coords[axis.value.lower()] = value
        return Position3D(**coords)

    def offset(self, axis: Axis, amount: float) -> 'Position3D':
        """Return a copy moved by amount along an axis."""
        return self.with_axis(axis, self.axis_value(axis) + amount)

    def lerp(self, other: 'Position3D', t: float) -> 'Position3D':
        """Linearly interpolate towards other."""
        return Position3D(
            x=self.x + (other.x - self.x) * t,
            y=self.y + (other.y - self.y) * t,
            z=self.z + (other.z - self.z) * t
        )

    def magnitude(self) -> float:
        """Calculate the magnitude of the vector."""
        return float(np.sqrt(self.x**2 + self.y**2 + self.z**2))

    def distance_to(self, other) -> float:
        """Calculate distance to another Position3D."""
        return (self - other).magnitude()

    def copy(self) -> 'Position3D':
        return Position3D(self.x, self.y, self.z)

    def to_array(self) -> np.ndarray:
        """Convert to numpy array."""
        return np.array([self.x, self.y, self.z])

    @classmethod
    def from_array(cls, array) -> 'Position3D':
        """Create from a 3-element sequence."""
        if len(array) != 3:
            raise ValueError("Array must have exactly 3 elements")
        return cls(float(array[0]), float(array[1]), float(array[2]))

    def to_dict(self) -> Dict[str, float]:
        """Convert to a dictionary keyed by machine axis."""
        return {'X': self.x, 'Y': self.y, 'Z': self.z}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Position3D':
        """Create from a dictionary keyed by machine axis."""
        return cls(
            x=float(data.get('X', 0.0)),
            y=float(data.get('Y', 0.0)),
            z=float(data.get('Z', 0.0))
        )

    def __repr__(self) -> str:
        return f"Position3D(x={self.x:.3f}, y={self.y:.3f}, z={self.z:.3f})"


@dataclass
class BoundingBox:
    """Axis-aligned bounding box for collision detection."""
    min_corner: Position3D
    max_corner: Position3D

    def __post_init__(self):
        low = np.minimum(self.min_corner.to_array(), self.max_corner.to_array())
        high = np.maximum(self.min_corner.to_array(), self.max_corner.to_array())
        self.min_corner = Position3D.from_array(low)
        self.max_corner = Position3D.from_array(high)

    @classmethod
    def from_center_size(cls, center: Position3D,
                         size: Tuple[float, float, float]) -> 'BoundingBox':
        """Create a box from its center and edge lengths."""
        half = Position3D(size[0] / 2, size[1] / 2, size[2] / 2)
        return cls(center - half, center + half)

    def axis_range(self, axis: Axis) -> Tuple[float, float]:
        """Get (min, max) along an axis."""
        return self.min_corner.axis_value(axis), self.max_corner.axis_value(axis)


@dataclass
class AxisConfig:
    """Travel configuration of a single machine axis.

    min_position may be greater than max_position on machines whose
    axis convention counts away from home in the negative direction.
    """
    positive_direction: str
    negative_direction: str
    polarity: int  # +1 or -1
    min_position: float
    max_position: float

    @property
    def span(self) -> float:
        """Absolute travel length."""
        return abs(self.max_position - self.min_position)

    @property
    def midpoint(self) -> float:
        return (self.max_position + self.min_position) / 2


@dataclass
class MachineSettings:
    """Machine configuration."""
    units: str
    axes: Dict[Axis, AxisConfig]
    orientation: Orientation = Orientation.HORIZONTAL
    stage_dimensions: Tuple[float, float, float] = (12.7, 304.8, 63.5)

    def axis(self, axis: Axis) -> AxisConfig:
        return self.axes[axis]


@dataclass
class RapidMove:
    """Rapid (G0) positioning move."""
    id: str
    axes_values: Dict[Axis, float] = field(default_factory=dict)
    position_mode: PositionMode = PositionMode.RELATIVE
    coordinate_system: CoordinateSystem = CoordinateSystem.NONE
    description: str = ""


@dataclass
class DwellMove:
    """Dwell (G4) pause."""
    id: str
    dwell_time: float  # seconds
    description: str = ""


MovementStep = Union[RapidMove, DwellMove]


@dataclass
class ProbeOperation:
    """Single axis-aligned probe with its supporting moves."""
    id: str
    axis: Axis
    direction: int  # +1 or -1
    distance: float
    feed_rate: float  # units per minute
    backoff_distance: float
    wcs_offset: float = 0.0
    pre_moves: List[MovementStep] = field(default_factory=list)
    post_moves: List[MovementStep] = field(default_factory=list)


@dataclass
class EndmillSize:
    """Tool size as entered plus its resolved diameter."""
    input: str
    unit: str  # 'fraction', 'inch' or 'mm'
    size_in_mm: float


@dataclass
class ProbeSequenceSettings:
    """Complete probe sequence configuration."""
    initial_position: Position3D
    dwells_before_probe: int = 15
    spindle_speed: float = 5000
    units: str = "mm"
    endmill_size: Optional[EndmillSize] = None
    operations: List[ProbeOperation] = field(default_factory=list)

    @property
    def tool_diameter(self) -> Optional[float]:
        if self.endmill_size is None:
            return None
        return self.endmill_size.size_in_mm


@dataclass(frozen=True)
class ContactPoint:
    """World location where the simulated probe first touched stock."""
    position: Position3D
    probe_operation_id: str
    axis: Axis

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position.to_dict(),
            'probe_operation_id': self.probe_operation_id,
            'axis': self.axis.value
        }
