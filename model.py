# Imports:
from mesa import Model
from mesa.datacollection import DataCollector
import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from agent import ROBOT_COLORS, Robot
from blocks import generate_city
from coords import ACTIONS, Action, Coords, NUM_ORIENTATIONS, next_coords, simulate
from streets import SetSampler, StreetGrid

# Conflict clusters of this size or more share the last histogram bucket:
MAX_GAME_SIZE = 32


class CityModel(Model):
    """
    Robots commuting on a street grid, stepped one conflict-free tick at a time.
    """
    def __init__(
        self,
        width_blocks = 6,
        height_blocks = 5,
        block_size = 8,
        parking_interval = 1,
        block_probability = 0.7,
        parking_probability = 0.6,
        robot_density = 0.7,
        num_robots = None,
        horizon = 5,
        policy = "replan",
        max_steps = 500,
        verbose = False,
        export_path = None,
        seed = None,
        streets: StreetGrid = None,
    ):
        """
        Initialize the city model.

        Parameters:
            width_blocks: Number of block columns in the generated city.
            height_blocks: Number of block rows in the generated city.
            block_size: Side length of each square block.
            parking_interval: Spacing between parking bays in a block.
            block_probability: Chance that an interior slot holds a block.
            parking_probability: Chance that a block has parking bays.
            robot_density: Fraction of parking bays filled with robots.
            num_robots: Explicit robot count, overrides robot_density.
            horizon: Number of look-ahead actions each robot proposes per tick.
            policy: How robots propose actions ('replan', 'random').
            max_steps: Maximum number of ticks before stopping.
            verbose: Print per-tick diagnostics.
            export_path: CSV file for the collected data once max_steps is hit.
            seed: Random seed for reproducibility.
            streets: A ready-made StreetGrid; skips city generation.
        """
        super().__init__(seed=seed)
        self.horizon = horizon
        self.policy = policy
        self.max_steps = max_steps
        self.verbose = verbose
        self.export_path = export_path

        # Resolve the policy early so a typo fails at construction:
        self.update = self.resolve_policy(policy)

        # Street map, either supplied or generated from the model's RNG:
        if streets is None:
            streets = generate_city(
                self.random,
                width_blocks = width_blocks,
                height_blocks = height_blocks,
                block_size = block_size,
                parking_interval = parking_interval,
                block_probability = block_probability,
                parking_probability = parking_probability,
            )
        self.streets = streets
        # Robot occupancy layer, also what the visualisation draws:
        self.grid = streets.occupancy
        self.max_expansions = streets.size.x * streets.size.y * NUM_ORIENTATIONS

        self.robots: list[Robot] = []

        # Counters for metrics:
        self.ticks = 0
        self.moves = 0
        self.blocked = 0
        self.planning_failures = 0
        self.components = 0
        self.largest_component = 0
        self.games_by_size = [0] * MAX_GAME_SIZE

        self.datacollector = DataCollector(
            model_reporters={
                "ticks": lambda m: m.ticks,
                "moves": lambda m: m.moves,
                "blocked": lambda m: m.blocked,
                "arrivals": lambda m: sum(r.arrivals for r in m.robots),
                "planning_failures": lambda m: m.planning_failures,
                "components": lambda m: m.components,
                "largest_component": lambda m: m.largest_component,
            }
        )

        if num_robots is None:
            num_robots = int(streets.num_parking_cells() * robot_density)
        self.spawn_robots(num_robots)

    # --- World ---

    def size(self):
        return self.streets.size

    def iterate_cells(self):
        return self.streets.iterate_cells()

    def snapshot(self) -> list[tuple]:
        """
        Read-only view for renderers: (robot_id, pose, colour) per robot.
        """
        return [(r.robot_id, r.coords, r.color) for r in self.robots]

    def spawn_robots(self, num_robots: int) -> list[Robot]:
        """
        Park `num_robots` robots and give each one a work bay.

        Robots fill random vacant parking bays first, then random vacant
        road cells. Once everyone is parked, work poses are dealt out
        without replacement from the bays still vacant, then from vacant
        road cells. Every bay therefore belongs to at most one robot: a
        robot waiting behind its bay never waits on the bay's other owner.
        """
        robots = []
        for _ in range(num_robots):
            if self.streets.empty_parking_cells.is_empty():
                robot_id = self.place_random_robot()
            else:
                robot_id = self.place_random_robot_parking()
            robots.append(self.robots[robot_id])

        free_bays = SetSampler(self.streets.empty_parking_cells)
        free_roads = SetSampler(xy for xy in self.streets.empty_traversable_cells
                                if not self.streets.cell(xy).is_parking)
        for robot in robots:
            xy = free_bays.pop_random(self.random)
            if xy is None:
                xy = free_roads.pop_random(self.random)
            if xy is None:
                # Every vacant cell is spoken for; fall back to a shared road pose:
                robot.work = self.streets.random_available_coords(self.random)
            else:
                robot.work = Coords(xy, self.streets.cell(xy).random_direction(self.random))
        return robots

    def place_robot(self, coords: Coords) -> int:
        """
        Put a new robot at `coords`.

        Returns: The new robot's identity (its index in self.robots).
        Raises: RuntimeError if the cell is taken.
        """
        robot_id = len(self.robots)
        color = ROBOT_COLORS[(coords.xy.x + coords.xy.y) % len(ROBOT_COLORS)]
        robot = Robot(self, robot_id, coords, color)
        self.streets.place_robot(robot, coords.xy)
        self.robots.append(robot)
        return robot_id

    def place_random_robot(self) -> int:
        return self.place_robot(self.streets.random_available_coords(self.random))

    def place_random_robot_parking(self) -> int:
        return self.place_robot(self.streets.random_available_parking(self.random))

    def valid_coords(self, coords: Coords) -> bool:
        return self.streets.valid_coords(coords)

    def allowed_actions(self, coords: Coords) -> list[Action]:
        """
        Legal actions from `coords` assuming no other robot exists.

        An action is legal if the cell permits it for the current heading
        and the resulting pose is in bounds and allowed. Wait is always
        included, last.
        """
        cell = self.streets.cell(coords.xy)
        actions = [
            action for action in ACTIONS
            if action is not Action.WAIT
            and cell.action_allowed(coords.orientation, action)
            and self.valid_coords(next_coords(coords, action))
        ]
        actions.append(Action.WAIT)
        return actions

    def successors(self, coords: Coords) -> list[Coords]:
        return [next_coords(coords, action) for action in self.allowed_actions(coords)]

    def move_robot(self, robot_id: int, dest: Coords):
        robot = self.robots[robot_id]
        if robot.coords.xy != dest.xy:
            self.streets.move_robot(robot, dest.xy)
        robot.coords = dest

    # --- Policies ---

    def resolve_policy(self, policy):
        """
        Look up the `<policy>_policy` method.

        Raises: ValueError for an unknown policy name.
        """
        try:
            return getattr(self, f"{policy}_policy")
        except AttributeError:
            raise ValueError(f"Unknown policy {policy!r}")

    def replan_policy(self, robot: Robot, horizon: int):
        return robot.propose(horizon)

    def random_policy(self, robot: Robot, horizon: int):
        return robot.random_actions(horizon)

    # --- Stepping ---

    def step(self):
        """
        Advance the simulation by one tick:

        1. Collect every robot's horizon proposal
        2. Cluster robots whose proposals touch a common (tick, cell)
        3. Commit first actions in random order where the target cell is free
        4. Collect tick-level data
        """
        self.step_robots(self.update)
        self.collect_tick_data()

    def step_robots(self, update):
        """
        Turn per-robot proposals into one committed move per robot.

        Args:
            update: Callable (robot, horizon) -> list of `horizon` actions.
        """
        proposed = []
        resource_usage: dict[tuple, list[int]] = {}

        for robot in self.robots:
            actions = update(robot, self.horizon)
            if len(actions) != self.horizon:
                raise ValueError(f"Robot {robot.robot_id} proposed {len(actions)} actions, "
                                 f"expected {self.horizon}")

            # Everything the robot might touch if nobody else existed:
            for dt, c in enumerate(simulate(robot.coords, actions)):
                resource_usage.setdefault((dt, c.xy), []).append(robot.robot_id)

            nex = next_coords(robot.coords, actions[0])
            # Stay put if the bookkeeping says someone else is on our cell:
            present = self.streets.present(robot.coords.xy)
            if present is not None and present != robot.robot_id:
                nex = robot.coords
            proposed.append(nex)

        components = self.conflict_components(resource_usage)
        self.record_components(components)

        # Myopic commit in a random order:
        order = list(range(len(self.robots)))
        self.random.shuffle(order)
        moves = blocked = 0
        for robot_id in order:
            robot = self.robots[robot_id]
            nex = proposed[robot_id]
            present = self.streets.present(nex.xy)
            if present is not None and present != robot_id:
                blocked += 1
                continue
            if nex != robot.coords:
                moves += 1
            self.move_robot(robot_id, nex)
        self.moves = moves
        self.blocked = blocked

    def conflict_components(self, resource_usage: dict) -> list[list[int]]:
        """
        Connected components of the robot interaction graph.

        Two robots are linked when their proposals touch a common
        (tick, cell) pair. Returns robot id lists, one per component.
        """
        n = len(self.robots)
        if n == 0:
            return []
        rows, cols = [], []
        for users in resource_usage.values():
            # A chain is enough to connect every user of the resource:
            for a, b in zip(users, users[1:]):
                rows.append(a)
                cols.append(b)
        adjacency = coo_matrix((np.ones(len(rows)), (rows, cols)), shape=(n, n))
        count, labels = connected_components(adjacency, directed=False)
        groups = [[] for _ in range(count)]
        for robot_id, label in enumerate(labels):
            groups[label].append(robot_id)
        return groups

    def record_components(self, components):
        self.components = len(components)
        self.largest_component = max((len(c) for c in components), default=0)
        games_by_size = [0] * MAX_GAME_SIZE
        for comp in components:
            games_by_size[min(len(comp), MAX_GAME_SIZE - 1)] += 1
        self.games_by_size = games_by_size
        if self.verbose:
            print(f"[INFO][{self.ticks}] games_by_size: {games_by_size}")

    def collect_tick_data(self):
        """
        Advance the tick counter, collect data, and handle termination.

        Once `self.max_steps` is reached the model stops running and, if an
        export path is configured, writes the collected data there.
        """
        self.ticks += 1
        self.datacollector.collect(self)
        if self.max_steps is not None and self.ticks >= self.max_steps:
            if self.export_path:
                self.datacollector.get_model_vars_dataframe().to_csv(self.export_path, index=False)
            self.running = False
