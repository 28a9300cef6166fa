# Imports:
import heapq
import itertools
from enum import Enum
from math import inf

from mesa import Agent

from coords import Action, Coords, next_coords

ROBOT_COLORS = ["#ff0000", "#00ff00", "#0000ff", "#ffff00", "#00ffff", "#ff00ff", "#ffffff"]


class Travel(Enum):
    TO_WORK = "to_work"
    TO_HOME = "to_home"


# Marker stored in Robot.plan when the objective could not be reached:
PLAN_FAILED = "failed"


def astar(start: Coords, goal: Coords, successors, max_expansions=None):
    """
    Shortest pose path from `start` to `goal` with unit-cost moves.

    Uses the straight-line cell distance as heuristic, which never
    overestimates since every move shifts a robot by at most one cell.

    Args:
        start: Starting pose.
        goal: Target pose (cell and orientation must both match).
        successors: Callable returning the poses reachable in one move.
        max_expansions: Optional cap on popped nodes.

    Returns: List of poses from `start` to `goal` inclusive, or None if the
    goal is unreachable (or the cap was hit).
    """
    if start == goal:
        return [start]

    # Counter breaks f-score ties in push order:
    counter = itertools.count()
    open_set = [(start.dist(goal), next(counter), start)]
    came_from = {}
    g_score = {start: 0}

    expansions = 0
    while open_set:
        expansions += 1
        if max_expansions is not None and expansions > max_expansions:
            return None

        _, _, current = heapq.heappop(open_set)
        if current == goal:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        g = g_score[current]
        for neighbour in successors(current):
            if neighbour == current:
                continue
            tentative_g = g + 1
            if tentative_g < g_score.get(neighbour, inf):
                came_from[neighbour] = current
                g_score[neighbour] = tentative_g
                heapq.heappush(open_set, (tentative_g + neighbour.dist(goal), next(counter), neighbour))
    return None


class Robot(Agent):
    """
    A street robot commuting between two parking bays.

    State machine:
      - 'to_work': heading to the work pose
      - 'to_home': heading to the home pose
    On arrival the state flips and the cached plan is dropped. The cached
    plan is a pose path from where the robot stood when it planned; it is
    also dropped when the robot's real pose falls off that path.
    """

    def __init__(self, model, robot_id: int, coords: Coords, color: str):
        """
        Args:
            model: The CityModel the robot lives in.
            robot_id: Dense index of the robot in the model's robot list.
            coords: Starting pose, which is also the home pose.
            color: Display colour.
        """
        super().__init__(model)
        self.robot_id = robot_id
        self.coords = coords
        self.color = color
        self.home = coords
        self.work = coords
        self.state = Travel.TO_WORK
        self.plan = None
        self.arrivals = 0
        self.plan_failures = 0

    def objective(self) -> Coords:
        return self.work if self.state is Travel.TO_WORK else self.home

    def propose(self, horizon: int) -> list[Action]:
        """
        Produce the next `horizon` actions towards the current objective.

        Flips the objective on arrival, replans with A* whenever no plan is
        cached, and pads the tail of the horizon with waits.
        """
        # Arrival flips the objective:
        if self.coords == self.objective():
            self.state = Travel.TO_HOME if self.state is Travel.TO_WORK else Travel.TO_WORK
            self.plan = None
            self.arrivals += 1

        if self.plan is None or self.plan == PLAN_FAILED:
            self.replan()
        if self.plan == PLAN_FAILED:
            return [Action.WAIT] * horizon

        path = self.plan
        # The robot moved one pose along the path since last tick:
        if len(path) >= 2 and path[1] == self.coords:
            path.pop(0)
        # A commit failed somewhere: plan again next tick.
        if path[0] != self.coords:
            self.plan = None
            return [Action.WAIT] * horizon

        actions = [Action.from_pair(a, b) for a, b in zip(path, path[1:horizon + 1])]
        return actions + [Action.WAIT] * (horizon - len(actions))

    def replan(self):
        """
        Run A* from the current pose to the objective and cache the result.
        """
        goal = self.objective()
        path = astar(self.coords, goal, self.model.successors,
                     max_expansions=self.model.max_expansions)
        if path is None:
            self.plan = PLAN_FAILED
            self.plan_failures += 1
            self.model.planning_failures += 1
            if self.model.verbose:
                print(f"[WARN][{self.model.ticks}] Robot {self.robot_id} has no path "
                      f"from {self.coords!r} to {goal!r}")
        else:
            self.plan = path

    def random_actions(self, horizon: int) -> list[Action]:
        """
        A random walk over legal actions, ignoring every other robot.
        """
        coords = self.coords
        actions = []
        for _ in range(horizon):
            action = self.random.choice(self.model.allowed_actions(coords))
            actions.append(action)
            coords = next_coords(coords, action)
        return actions
