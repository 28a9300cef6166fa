# Imports:
import math
from enum import Enum
from typing import NamedTuple, Optional


class XY(NamedTuple):
    """
    Integer cell coordinate. Also used for sizes, where (x, y) is the extent.
    """
    x: int
    y: int

    def __add__(self, other):
        return XY(self.x + other[0], self.y + other[1])

    def __sub__(self, other):
        return XY(self.x - other[0], self.y - other[1])

    def in_bounds(self, p) -> bool:
        """
        Treat self as a size and check that `p` lies in [0, x) × [0, y).
        """
        return 0 <= p[0] < self.x and 0 <= p[1] < self.y

    def iterate(self):
        """Every coordinate inside a size, column by column."""
        for x in range(self.x):
            for y in range(self.y):
                yield XY(x, y)

    def iterate_interior(self):
        """Every coordinate inside a size, skipping the one-cell border."""
        for x in range(1, self.x - 1):
            for y in range(1, self.y - 1):
                yield XY(x, y)

    def __repr__(self):
        return f"({self.x},{self.y})"


class Orientation(Enum):
    """
    Heading of a robot on the grid. The integer value doubles as the index
    into per-orientation cell data.
    """
    NORTH = 0
    SOUTH = 1
    WEST = 2
    EAST = 3

    def vector(self) -> XY:
        return _VECTORS[self]

    def rotate_left(self) -> "Orientation":
        return _LEFT[self]

    def rotate_right(self) -> "Orientation":
        return _RIGHT[self]

    def angle(self) -> int:
        return _ANGLES[self]

    @staticmethod
    def from_angle(angle: int) -> "Orientation":
        angle %= 360
        for orientation, a in _ANGLES.items():
            if a == angle:
                return orientation
        raise ValueError(f"Invalid angle {angle}")

    @staticmethod
    def from_index(index: int) -> "Orientation":
        return ORIENTATIONS[index]


ORIENTATIONS = [Orientation.NORTH, Orientation.SOUTH, Orientation.WEST, Orientation.EAST]
NUM_ORIENTATIONS = len(ORIENTATIONS)

# y grows northwards:
_VECTORS = {
    Orientation.NORTH: XY(0, 1),
    Orientation.SOUTH: XY(0, -1),
    Orientation.WEST: XY(-1, 0),
    Orientation.EAST: XY(1, 0),
}
_LEFT = {
    Orientation.NORTH: Orientation.WEST,
    Orientation.WEST: Orientation.SOUTH,
    Orientation.SOUTH: Orientation.EAST,
    Orientation.EAST: Orientation.NORTH,
}
_RIGHT = {after: before for before, after in _LEFT.items()}
_ANGLES = {
    Orientation.EAST: 0,
    Orientation.NORTH: 90,
    Orientation.WEST: 180,
    Orientation.SOUTH: 270,
}


class Coords(NamedTuple):
    """
    A robot pose: the cell it stands on and the way it faces.
    """
    xy: XY
    orientation: Orientation

    def dist(self, other: "Coords") -> int:
        """
        Straight-line distance between the two cells, rounded down.
        """
        dx = self.xy.x - other.xy.x
        dy = self.xy.y - other.xy.y
        return math.isqrt(dx * dx + dy * dy)

    def __repr__(self):
        return f"{self.xy!r}{self.orientation.name[0]}"


class Action(Enum):
    """
    Discrete robot moves. The integer value indexes the per-orientation
    legality mask of a cell.
    """
    WAIT = 0
    FORWARD = 1
    TURN_LEFT = 2
    TURN_RIGHT = 3
    BACKWARD = 4

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    def __repr__(self):
        return self.symbol

    @staticmethod
    def from_index(index: int) -> "Action":
        return ACTIONS[index]

    @staticmethod
    def from_pair(c1: Coords, c2: Coords) -> Optional["Action"]:
        """
        Find the action that takes pose `c1` to pose `c2`.

        Args:
            c1: Pose before the move.
            c2: Pose after the move.

        Returns: The first action (in index order) whose transition from `c1`
        lands exactly on `c2`, or None if no single action does.
        """
        for action in ACTIONS:
            if next_coords(c1, action) == c2:
                return action
        return None


ACTIONS = [Action.WAIT, Action.FORWARD, Action.TURN_LEFT, Action.TURN_RIGHT, Action.BACKWARD]
NUM_ACTIONS = len(ACTIONS)
_SYMBOLS = {
    Action.WAIT: "W",
    Action.FORWARD: "F",
    Action.TURN_LEFT: "L",
    Action.TURN_RIGHT: "R",
    Action.BACKWARD: "B",
}


def next_coords(coords: Coords, action: Action) -> Coords:
    """
    Pure transition function from a pose and an action to the next pose.

    The result is always computed, even when it lands outside the grid or
    on an illegal cell: legality is checked separately against the grid.
    """
    if action is Action.FORWARD:
        return Coords(coords.xy + coords.orientation.vector(), coords.orientation)
    if action is Action.BACKWARD:
        return Coords(coords.xy - coords.orientation.vector(), coords.orientation)
    if action is Action.TURN_LEFT:
        return Coords(coords.xy, coords.orientation.rotate_left())
    if action is Action.TURN_RIGHT:
        return Coords(coords.xy, coords.orientation.rotate_right())
    return coords


def simulate(start: Coords, actions) -> list[Coords]:
    """
    Roll a sequence of actions forward from `start`, ignoring the grid.

    Returns: The visited poses, starting with `start` (len(actions) + 1 items).
    """
    coords = start
    poses = [coords]
    for action in actions:
        coords = next_coords(coords, action)
        poses.append(coords)
    return poses
