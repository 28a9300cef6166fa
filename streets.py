# Imports:
from typing import Optional

from mesa.space import SingleGrid

from coords import (
    Action,
    Coords,
    NUM_ACTIONS,
    NUM_ORIENTATIONS,
    ORIENTATIONS,
    Orientation,
    XY,
    next_coords,
)

COLOR_ROAD = "#000000"
COLOR_TERRAIN = "#002800"
COLOR_PARKING = "#007878"


class CellOrientation:
    """
    What a cell allows for a robot facing one particular orientation.

    Attributes:
        robot_allowed: Whether a robot may stand on the cell facing this way.
        action_allowed: Legality mask indexed by Action value. Reversing is
            forbidden unless a parking bay re-enables it.
    """

    def __init__(self, robot_allowed=False, action_allowed=None):
        self.robot_allowed = robot_allowed
        if action_allowed is None:
            action_allowed = [True] * NUM_ACTIONS
            action_allowed[Action.BACKWARD.value] = False
        self.action_allowed = list(action_allowed)

    def copy(self):
        return CellOrientation(self.robot_allowed, self.action_allowed)

    def __eq__(self, other):
        return (isinstance(other, CellOrientation)
                and self.robot_allowed == other.robot_allowed
                and self.action_allowed == other.action_allowed)

    def __repr__(self):
        return f"CellOrientation({self.robot_allowed}, {self.action_allowed})"


class Cell:
    """
    One square of the street map.

    The block attribute only records which map block the cell was stitched
    from; nothing in the scheduler reads it.
    """

    def __init__(self):
        self.ors = [CellOrientation() for _ in range(NUM_ORIENTATIONS)]
        self.is_parking = False
        self.is_charging = False
        self.block: Optional[XY] = None
        self.color = COLOR_TERRAIN

    def copy(self):
        cell = Cell()
        cell.ors = [o.copy() for o in self.ors]
        cell.is_parking = self.is_parking
        cell.is_charging = self.is_charging
        cell.block = self.block
        cell.color = self.color
        return cell

    def traversable(self) -> bool:
        return any(o.robot_allowed for o in self.ors)

    def is_allowed(self, orientation: Orientation) -> bool:
        return self.ors[orientation.value].robot_allowed

    def set_allowed(self, orientation: Orientation):
        self.ors[orientation.value].robot_allowed = True

    def set_unallowed(self, orientation: Orientation):
        self.ors[orientation.value].robot_allowed = False

    def action_allowed(self, orientation: Orientation, action: Action) -> bool:
        return self.ors[orientation.value].action_allowed[action.value]

    def random_direction(self, rng) -> Orientation:
        """
        Pick one of the orientations a robot may face on this cell.
        """
        options = [o for o in ORIENTATIONS if self.is_allowed(o)]
        if not options:
            raise ValueError("Cell is not traversable")
        return rng.choice(options)


class SetSampler:
    """
    A set supporting O(1) insert, remove and uniform random sampling.

    Items live in a list with a reverse index; removal swaps the last item
    into the hole. Iteration order depends only on the sequence of
    operations, never on hashing.
    """

    def __init__(self, items=()):
        self._items = []
        self._index = {}
        for item in items:
            self.insert(item)

    def __len__(self):
        return len(self._items)

    def __contains__(self, item):
        return item in self._index

    def __iter__(self):
        return iter(list(self._items))

    def is_empty(self) -> bool:
        return not self._items

    def insert(self, item):
        if item in self._index:
            return
        self._index[item] = len(self._items)
        self._items.append(item)

    def remove(self, item):
        i = self._index.pop(item, None)
        if i is None:
            return
        last = self._items.pop()
        if i < len(self._items):
            self._items[i] = last
            self._index[last] = i

    def sample(self, rng):
        """Uniformly random item, or None when empty."""
        if not self._items:
            return None
        return self._items[rng.randrange(len(self._items))]

    def pop_random(self, rng):
        item = self.sample(rng)
        if item is not None:
            self.remove(item)
        return item


class StreetGrid:
    """
    Street map: cell legality plus robot occupancy.

    Robot occupancy is kept in a mesa SingleGrid, which already refuses to
    stack two agents on one cell. Three samplable sets are kept in step with
    every mutation so that robot placement never scans the map:

    - traversable_cells: cells with at least one allowed orientation
    - empty_traversable_cells: traversable and without a robot
    - empty_parking_cells: parking bays without a robot

    Every mutating method records the cell's membership before the change
    and reconciles the sets afterwards. Nothing outside this class touches
    the sets.
    """

    def __init__(self, size):
        self.size = XY(*size)
        self.cells = [[Cell() for _ in range(self.size.y)] for _ in range(self.size.x)]
        self.occupancy = SingleGrid(self.size.x, self.size.y, torus=False)
        self.traversable_cells = SetSampler()
        self.empty_traversable_cells = SetSampler()
        self.empty_parking_cells = SetSampler()

    # --- Cell access ---

    def cell(self, xy) -> Cell:
        """
        Fetch a cell, failing fast on coordinates outside the map.
        """
        if not self.size.in_bounds(xy):
            raise IndexError(f"Out of bounds {tuple(xy)} size is {tuple(self.size)}")
        return self.cells[xy[0]][xy[1]]

    def iterate_cells(self):
        for xy in self.size.iterate():
            yield xy, self.cells[xy.x][xy.y]

    def valid_coords(self, coords: Coords) -> bool:
        """
        Whether a robot may stand at `coords` (in bounds and orientation allowed).
        """
        if not self.size.in_bounds(coords.xy):
            return False
        return self.cell(coords.xy).is_allowed(coords.orientation)

    # --- Occupancy ---

    def present(self, xy) -> Optional[int]:
        """
        Identity of the robot standing on `xy`, or None.
        """
        self.cell(xy)
        contents = self.occupancy.get_cell_list_contents([tuple(xy)])
        return contents[0].robot_id if contents else None

    def is_empty(self, xy) -> bool:
        return self.present(xy) is None

    def place_robot(self, robot, xy):
        """
        Put a robot on a vacant cell.

        Raises: RuntimeError if the cell already holds a robot.
        """
        xy = XY(*xy)
        other = self.present(xy)
        if other is not None:
            raise RuntimeError(f"Cell {xy!r} already contains robot {other}")
        before = self._membership(xy)
        self.occupancy.place_agent(robot, xy)
        self._reconcile(xy, before)

    def move_robot(self, robot, xy):
        """
        Move a robot that is recorded on its current cell to a vacant cell.

        Raises: RuntimeError if the robot is not where it claims to be or the
        destination is taken.
        """
        xy = XY(*xy)
        old = XY(*robot.pos)
        if self.present(old) != robot.robot_id:
            raise RuntimeError(f"Robot {robot.robot_id} is not in cell {old!r}")
        if old == xy:
            return
        other = self.present(xy)
        if other is not None:
            raise RuntimeError(f"Cell {xy!r} already contains robot {other}")
        before_old = self._membership(old)
        before_new = self._membership(xy)
        self.occupancy.move_agent(robot, xy)
        self._reconcile(old, before_old)
        self._reconcile(xy, before_new)

    def num_vacant_cells(self) -> int:
        return len(self.empty_traversable_cells)

    def num_parking_cells(self) -> int:
        return sum(1 for _, cell in self.iterate_cells() if cell.is_parking)

    # --- Drawing ---

    def draw_north(self, x, y0, y1):
        if y0 > y1:
            raise ValueError(f"Empty range {y0}..{y1}")
        for y in range(y0, y1):
            self._add_traversable(XY(x, y), Orientation.NORTH)

    def draw_south(self, x, y0, y1):
        if y0 > y1:
            raise ValueError(f"Empty range {y0}..{y1}")
        for y in range(y0, y1):
            self._add_traversable(XY(x, y), Orientation.SOUTH)

    def draw_east(self, y, x0, x1):
        if x0 > x1:
            raise ValueError(f"Empty range {x0}..{x1}")
        for x in range(x0, x1):
            self._add_traversable(XY(x, y), Orientation.EAST)

    def draw_west(self, y, x0, x1):
        if x0 > x1:
            raise ValueError(f"Empty range {x0}..{x1}")
        for x in range(x0, x1):
            self._add_traversable(XY(x, y), Orientation.WEST)

    def _add_traversable(self, xy, orientation):
        before = self._membership(xy)
        cell = self.cell(xy)
        cell.color = COLOR_ROAD
        cell.set_allowed(orientation)
        self._reconcile(xy, before)

    def set_valid(self, coords: Coords):
        before = self._membership(coords.xy)
        self.cell(coords.xy).set_allowed(coords.orientation)
        self._reconcile(coords.xy, before)

    def make_parking_cell(self, coords: Coords):
        """
        Turn `coords.xy` into a parking bay entered facing `coords.orientation`.

        The bay allows reversing out, and the cell behind it is opened in the
        bay's orientation so robots can line up to drive in.
        """
        cell = Cell()
        cell.color = COLOR_PARKING
        cell.is_parking = True
        cell.set_allowed(coords.orientation)
        cell.ors[coords.orientation.value].action_allowed[Action.BACKWARD.value] = True
        self.replace_cell(coords.xy, cell)

        previous = next_coords(coords, Action.BACKWARD)
        self.set_valid(previous)

    def replace_cell(self, xy, cell: Cell):
        xy = XY(*xy)
        before = self._membership(xy)
        self.cell(xy)
        self.cells[xy.x][xy.y] = cell
        self._reconcile(xy, before)

    # --- Sampling ---

    def random_available_coords(self, rng) -> Coords:
        """
        A uniformly random vacant traversable cell, with a random allowed heading.
        """
        xy = self.empty_traversable_cells.sample(rng)
        if xy is None:
            raise ValueError("No vacant traversable cells")
        return Coords(xy, self.cell(xy).random_direction(rng))

    def random_available_parking(self, rng) -> Coords:
        """
        A uniformly random vacant parking bay, with a random allowed heading.
        """
        xy = self.empty_parking_cells.sample(rng)
        if xy is None:
            raise ValueError("No empty parking cells")
        return Coords(xy, self.cell(xy).random_direction(rng))

    # --- Samplable set bookkeeping ---

    def _membership(self, xy):
        cell = self.cell(xy)
        empty = self.occupancy.is_cell_empty(tuple(xy))
        traversable = cell.traversable()
        return traversable, traversable and empty, cell.is_parking and empty

    def _reconcile(self, xy, before):
        after = self._membership(xy)
        samplers = (self.traversable_cells, self.empty_traversable_cells, self.empty_parking_cells)
        for sampler, was, now in zip(samplers, before, after):
            if was and not now:
                sampler.remove(xy)
            elif now and not was:
                sampler.insert(xy)
