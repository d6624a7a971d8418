"""
Collision detection between a moving cylindrical probe and the stock box.
"""

from dataclasses import dataclass
from typing import Optional

from .data_structures import Axis, Position3D, BoundingBox

CONTACT_EPSILON = 0.01  # Face contact band
AXIAL_MARGIN = 0.5  # Along-axis overlap tolerance
FRACTION_DENOMINATOR_LIMIT = 1e-8


@dataclass
class CollisionResult:
    """Outcome of a probe/stock check."""
    collision: bool
    contact_point: Optional[Position3D] = None
    stop_position: Optional[Position3D] = None


class CollisionDetector:
    """Cylinder-versus-box contact test for axis-aligned probe moves.

    The probe is a cylinder of tool_radius around its tip position whose axis
    is the travel axis. A collision needs both:

    * overlap of the tool's circular cross-section with the stock's
      rectangle in the two perpendicular axes, and
    * the leading edge of the tool (tip offset by tool_radius in the travel
      direction) having reached the face of the stock that faces the tool,
      while the trailing edge has not cleared the opposite face.

    Path checks sweep the tool from a start to an end position, so a single
    large step cannot pass through the stock. The same rule applies to every
    axis and both directions.
    """

    def __init__(self, contact_epsilon: float = CONTACT_EPSILON,
                 axial_margin: float = AXIAL_MARGIN):
        self.contact_epsilon = contact_epsilon
        self.axial_margin = axial_margin

    def check_probe(self, probe_position: Position3D, axis: Axis, tool_radius: float,
                    stock: BoundingBox, direction: int) -> CollisionResult:
        """
        Check whether the probe touches the stock at a single position.

        Args:
            probe_position: Tool tip center
            axis: Travel axis of the probe move
            tool_radius: Radius of the probing tool
            stock: Stock box in world coordinates
            direction: +1 or -1 along the travel axis

        Returns:
            CollisionResult with a contact point on the leading edge when a
            collision is found
        """
        return self.check_path(probe_position, probe_position, axis, tool_radius,
                               stock, direction)

    def check_path(self, start: Position3D, end: Position3D, axis: Axis, tool_radius: float,
                   stock: BoundingBox, direction: int) -> CollisionResult:
        """
        Check the tool swept from start to end along the travel axis.

        A path whose leading edge begins on the approach side of the face stops
        where the edge meets the face, and the contact point lies exactly on
        that face. A path that begins already inside the stock stops at start.
        """
        if direction == 0:
            return CollisionResult(False)

        # Perpendicular coordinates do not change during an axis-aligned move
        if not self._cross_section_overlaps(end, axis, tool_radius, stock):
            return CollisionResult(False)

        if not self._path_reaches_face(start, end, axis, tool_radius, stock, direction):
            return CollisionResult(False)

        sign = _sign(direction)
        face = self.contacted_face(stock, axis, direction)
        fraction = self.contact_fraction(start, end, axis, tool_radius, stock, direction)
        stop_position = start.lerp(end, fraction)

        leading_start = start.axis_value(axis) + tool_radius * sign
        if sign * (face - leading_start) >= 0:
            # Leading edge started short of the face, so it lands exactly on it
            stop_position = stop_position.with_axis(axis, face - tool_radius * sign)
            contact_point = stop_position.with_axis(axis, face)
        else:
            contact_point = stop_position.offset(axis, tool_radius * sign)

        return CollisionResult(True, contact_point, stop_position)

    def contact_fraction(self, previous: Position3D, current: Position3D, axis: Axis,
                         tool_radius: float, stock: BoundingBox, direction: int) -> float:
        """
        Fraction of the segment previous -> current at which the leading edge
        of the tool meets the contacted face, clamped to [0, 1].
        """
        sign = _sign(direction)
        face = self.contacted_face(stock, axis, direction)
        edge_start = previous.axis_value(axis) + tool_radius * sign
        edge_end = current.axis_value(axis) + tool_radius * sign
        denominator = edge_end - edge_start

        if abs(denominator) <= FRACTION_DENOMINATOR_LIMIT:
            return 0.0

        fraction = (face - edge_start) / denominator
        return max(0.0, min(1.0, fraction))

    @staticmethod
    def contacted_face(stock: BoundingBox, axis: Axis, direction: int) -> float:
        """Coordinate of the stock face a probe travelling in direction meets."""
        stock_min, stock_max = stock.axis_range(axis)
        return stock_max if direction < 0 else stock_min

    def _cross_section_overlaps(self, probe_position: Position3D, axis: Axis,
                                tool_radius: float, stock: BoundingBox) -> bool:
        distance_sq = 0.0
        for other in axis.perpendicular():
            value = probe_position.axis_value(other)
            low, high = stock.axis_range(other)
            closest = max(low, min(value, high))
            distance_sq += (value - closest) ** 2
        return distance_sq <= tool_radius ** 2

    def _path_reaches_face(self, start: Position3D, end: Position3D, axis: Axis,
                           tool_radius: float, stock: BoundingBox, direction: int) -> bool:
        # Leading edge must reach the face by the end of the path; trailing
        # edge must not have cleared the far face before the path began
        start_tip = start.axis_value(axis)
        end_tip = end.axis_value(axis)
        stock_min, stock_max = stock.axis_range(axis)

        if direction < 0:
            return (end_tip - tool_radius <= stock_max + self.contact_epsilon and
                    start_tip + tool_radius >= stock_min - self.axial_margin)

        return (end_tip + tool_radius >= stock_min - self.contact_epsilon and
                start_tip - tool_radius <= stock_max + self.axial_margin)


def _sign(direction: int) -> int:
    return -1 if direction < 0 else 1


def does_probe_intersect_stock(probe_position: Position3D, axis: Axis, tool_radius: float,
                               stock: BoundingBox, direction: int) -> CollisionResult:
    """Check a probe against stock with the default tolerances."""
    return CollisionDetector().check_probe(probe_position, axis, tool_radius, stock, direction)
