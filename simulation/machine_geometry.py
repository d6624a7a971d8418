"""
Coordinate transforms between machine-axis configuration and world space.

Horizontal mills hold the spindle fixed at the X travel limit and carry the
stock on a stage towards it; vertical mills move the tool itself. Every
function here is a pure function of its inputs and never raises for
degenerate ranges.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .data_structures import (
    Axis, Orientation, Position3D, BoundingBox,
    MachineSettings, ProbeSequenceSettings
)

DEFAULT_STOCK_SIZE = (25.0, 25.0, 10.0)
DEFAULT_STOCK_POSITION = (0.0, 0.0, 0.0)
CAMERA_DISTANCE_FACTOR = 1.5
VERTICAL_STOCK_X_FRACTION = 0.3


@dataclass
class WorkspaceBounds:
    """Extents of the machine travel envelope."""
    width: float
    depth: float
    height: float
    center_x: float
    center_y: float
    center_z: float
    min_x: float
    max_x: float
    min_y: float
    max_y: float
    min_z: float
    max_z: float


@dataclass
class MachineGeometry:
    """Snapshot of all derived world positions."""
    workspace_bounds: WorkspaceBounds
    tool_position: Position3D
    stage_position: Position3D
    stock_world_position: Position3D
    camera_distance: float


def calculate_workspace_bounds(machine_settings: MachineSettings) -> WorkspaceBounds:
    """Calculate workspace bounds from machine settings."""
    x_axis = machine_settings.axis(Axis.X)
    y_axis = machine_settings.axis(Axis.Y)
    z_axis = machine_settings.axis(Axis.Z)

    return WorkspaceBounds(
        width=x_axis.span,
        depth=y_axis.span,
        height=z_axis.span,
        center_x=x_axis.midpoint,
        center_y=y_axis.midpoint,
        center_z=z_axis.midpoint,
        min_x=x_axis.min_position,
        max_x=x_axis.max_position,
        min_y=y_axis.min_position,
        max_y=y_axis.max_position,
        min_z=z_axis.min_position,
        max_z=z_axis.max_position
    )


def calculate_tool_position(machine_settings: MachineSettings,
                            probe_sequence: Optional[ProbeSequenceSettings] = None,
                            orientation: Orientation = Orientation.HORIZONTAL) -> Position3D:
    """
    Calculate the tool position for the given orientation.

    Args:
        machine_settings: Machine axis configuration
        probe_sequence: Sequence whose initial position is the probe position
        orientation: Machine orientation

    Returns:
        Tool position in world coordinates
    """
    base = probe_sequence.initial_position if probe_sequence else Position3D()

    if orientation == Orientation.HORIZONTAL:
        # Spindle is fixed at the X travel limit
        spindle_fixed_x = machine_settings.axis(Axis.X).max_position
        return Position3D(spindle_fixed_x, base.y, base.z)

    return base.copy()


def calculate_stage_position(machine_settings: MachineSettings,
                             probe_sequence: Optional[ProbeSequenceSettings] = None) -> Position3D:
    """
    Calculate the stage position of a horizontal machine.

    Increasing probe X moves the stage away from the fixed spindle, so the
    stage X is inverted relative to the probe X. The stage is offset by half
    its X size so its +X face lines up with the commanded position.
    """
    x_axis = machine_settings.axis(Axis.X)
    probe_x = probe_sequence.initial_position.x if probe_sequence else x_axis.min_position
    stage_x_size = machine_settings.stage_dimensions[0]

    stage_x = x_axis.max_position - (probe_x - x_axis.min_position) - stage_x_size / 2
    stage_y = machine_settings.axis(Axis.Y).midpoint
    stage_z = machine_settings.axis(Axis.Z).midpoint

    return Position3D(stage_x, stage_y, stage_z)


def calculate_stock_world_position(stage_position: Position3D,
                                   stock_size: Tuple[float, float, float],
                                   stock_offset: Tuple[float, float, float],
                                   stage_dimensions: Tuple[float, float, float]) -> Position3D:
    """Calculate the stock center mounted on the stage +X face and top face."""
    stage_x_plus_face = stage_position.x + stage_dimensions[0] / 2
    stage_top = stage_position.z + stage_dimensions[2] / 2

    return Position3D(
        x=stage_x_plus_face + stock_size[0] / 2 + stock_offset[0],
        y=stage_position.y + stock_offset[1],
        z=stage_top + stock_size[2] / 2 + stock_offset[2]
    )


def calculate_stock_relative_position(world_position: Position3D,
                                      stage_position: Position3D,
                                      stock_size: Tuple[float, float, float],
                                      stage_dimensions: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """Inverse of calculate_stock_world_position: recover the stock offset."""
    stage_x_plus_face = stage_position.x + stage_dimensions[0] / 2
    stage_top = stage_position.z + stage_dimensions[2] / 2

    return (
        world_position.x - (stage_x_plus_face + stock_size[0] / 2),
        world_position.y - stage_position.y,
        world_position.z - (stage_top + stock_size[2] / 2)
    )


def calculate_default_stock_position(machine_settings: MachineSettings,
                                     stock_size: Tuple[float, float, float],
                                     orientation: Orientation) -> Tuple[float, float, float]:
    """
    Calculate the default stock position.

    Horizontal machines return an offset relative to the stage (centered).
    Vertical machines return absolute world coordinates.
    """
    if orientation == Orientation.HORIZONTAL:
        return DEFAULT_STOCK_POSITION

    x_axis = machine_settings.axis(Axis.X)
    stock_x = x_axis.min_position + x_axis.span * VERTICAL_STOCK_X_FRACTION
    stock_y = machine_settings.axis(Axis.Y).midpoint
    stock_z = machine_settings.axis(Axis.Z).min_position + stock_size[2] / 2
    return (stock_x, stock_y, stock_z)


def calculate_camera_distance(workspace_bounds: WorkspaceBounds) -> float:
    """Calculate a camera distance that frames the workspace."""
    max_dimension = max(workspace_bounds.width, workspace_bounds.depth, workspace_bounds.height)
    return max_dimension * CAMERA_DISTANCE_FACTOR


def _stock_center(machine_settings: MachineSettings,
                  probe_sequence: Optional[ProbeSequenceSettings],
                  stock_size: Tuple[float, float, float],
                  stock_position: Tuple[float, float, float],
                  orientation: Orientation,
                  stage_dimensions: Tuple[float, float, float]) -> Position3D:
    if orientation == Orientation.HORIZONTAL:
        stage_position = calculate_stage_position(machine_settings, probe_sequence)
        return calculate_stock_world_position(stage_position, stock_size,
                                              stock_position, stage_dimensions)
    # Vertical machines store the stock position in world coordinates
    return Position3D.from_array(stock_position)


def calculate_stock_bounding_box(machine_settings: MachineSettings,
                                 probe_sequence: Optional[ProbeSequenceSettings] = None,
                                 stock_size: Tuple[float, float, float] = DEFAULT_STOCK_SIZE,
                                 stock_position: Tuple[float, float, float] = DEFAULT_STOCK_POSITION) -> BoundingBox:
    """World-space bounding box of the stock for collision detection."""
    center = _stock_center(machine_settings, probe_sequence, stock_size, stock_position,
                           machine_settings.orientation, machine_settings.stage_dimensions)
    return BoundingBox.from_center_size(center, stock_size)


def calculate_machine_geometry(machine_settings: MachineSettings,
                               probe_sequence: Optional[ProbeSequenceSettings] = None,
                               stock_size: Tuple[float, float, float] = DEFAULT_STOCK_SIZE,
                               stock_position: Tuple[float, float, float] = DEFAULT_STOCK_POSITION,
                               orientation: Optional[Orientation] = None,
                               stage_dimensions: Optional[Tuple[float, float, float]] = None) -> MachineGeometry:
    """
    Calculate all machine geometry in one pass.

    The result is a snapshot; callers recompute it whenever machine settings,
    the probe sequence or the stock change.
    """
    if orientation is None:
        orientation = machine_settings.orientation
    if stage_dimensions is None:
        stage_dimensions = machine_settings.stage_dimensions

    workspace_bounds = calculate_workspace_bounds(machine_settings)

    return MachineGeometry(
        workspace_bounds=workspace_bounds,
        tool_position=calculate_tool_position(machine_settings, probe_sequence, orientation),
        stage_position=calculate_stage_position(machine_settings, probe_sequence),
        stock_world_position=_stock_center(machine_settings, probe_sequence, stock_size,
                                           stock_position, orientation, stage_dimensions),
        camera_distance=calculate_camera_distance(workspace_bounds)
    )
