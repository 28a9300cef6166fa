# Imports:
import itertools
import math
from dataclasses import dataclass, field
from typing import Optional

from coords import Action, Coords, XY, next_coords

# (relative time step, cell)
Resource = tuple[int, XY]


class ReservationConflict(RuntimeError):
    """
    A resource was claimed by a second robot. Callers must check
    availability first, so this always indicates a bug.
    """


class ReservationTable:
    """
    Ledger of which robot owns each (time step, cell) resource.

    The table records decisions; it does not resolve conflicts. A fresh
    table is built for every ordering tried.
    """

    def __init__(self, owners=None):
        self.owners: dict[Resource, int] = dict(owners or {})

    def __len__(self):
        return len(self.owners)

    def __contains__(self, key):
        return key in self.owners

    def __getitem__(self, key):
        return self.owners[key]

    def items(self):
        return self.owners.items()

    def occupied_by_someone_else(self, t: int, xy, robot: int) -> bool:
        other = self.owners.get((t, XY(*xy)))
        return other is not None and other != robot

    def mark_occupied(self, t: int, xy, robot: int):
        """
        Record that `robot` owns `xy` at time `t`. Re-marking by the same
        robot is a no-op.

        Raises: ReservationConflict if another robot already owns the key.
        """
        key = (t, XY(*xy))
        other = self.owners.get(key)
        if other is None:
            self.owners[key] = robot
        elif other != robot:
            raise ReservationConflict(
                f"mark_occupied: found conflict at {key} for {robot} already {other}")

    def resources_available(self, resources: dict) -> bool:
        """
        True if every key is unowned or already owned by the robot claiming it.
        """
        for key, robot in resources.items():
            other = self.owners.get(key)
            if other is not None and other != robot:
                return False
        return True

    def commit(self, resources: dict):
        for (t, xy), robot in resources.items():
            self.mark_occupied(t, xy, robot)


def resources_needed(t: int, coords: Coords, action: Action, robot: int) -> dict:
    """
    The footprint of one action: the source cell at t, the destination
    cell at t, and the destination cell at t + 1. Together they rule out
    two robots on one cell and two robots swapping cells.
    """
    dest = next_coords(coords, action)
    return {
        (t, coords.xy): robot,
        (t, dest.xy): robot,
        (t + 1, dest.xy): robot,
    }


def is_action_feasible(table: ReservationTable, robot: int, coords: Coords, t: int, action: Action):
    """
    Probe whether `robot` may perform `action` from `coords` at time `t`.

    Returns: (next pose, footprint) if the footprint is free, else None.
    The table is not modified.
    """
    needed = resources_needed(t, coords, action, robot)
    if not table.resources_available(needed):
        return None
    return next_coords(coords, action), needed


@dataclass(frozen=True)
class RobotResult:
    """Committed plan of one robot and the number of waits spliced in."""
    actions: tuple
    cost: int


@dataclass
class ArbAgent:
    coords: Coords
    plan: list


@dataclass
class ArbSetup:
    agents: list = field(default_factory=list)


@dataclass
class ArbStep:
    """Poses of every robot at one tick, and the action each takes from it."""
    coords: tuple
    actions: tuple


def assign_actions(table: ReservationTable, robot: int, coords: Coords, plan) -> Optional[list]:
    """
    Walk one robot's desired plan against the table, splicing in waits.

    At each tick the desired action is committed if its footprint is free.
    Otherwise the robot waits, which only claims its current cell at that
    tick; if even that is owned by another robot the walk fails.

    Args:
        table: Reservation table, updated in place.
        robot: Robot index.
        coords: Starting pose.
        plan: Desired actions, consumed front to back.

    Returns: The committed actions, or None if the robot got stuck on a
    cell someone else had claimed.
    """
    committed = []
    i = 0
    while i < len(plan):
        t = len(committed)
        feasible = is_action_feasible(table, robot, coords, t, plan[i])
        if feasible is not None:
            coords, needed = feasible
            table.commit(needed)
            committed.append(plan[i])
            i += 1
            continue
        if table.occupied_by_someone_else(t, coords.xy, robot):
            return None
        table.mark_occupied(t, coords.xy, robot)
        committed.append(Action.WAIT)
    return committed


def assign(setup: ArbSetup, order):
    """
    Arbitrate all robots greedily in the given visiting order.

    Every robot's starting cell is reserved at t = 0 before anyone moves.
    Earlier robots in `order` keep their desired actions whenever they are
    physically uncontested; later robots absorb the conflicts as waits.

    Returns: (table, results indexed by robot) or None if the order is infeasible.
    """
    table = ReservationTable()
    for a, agent in enumerate(setup.agents):
        table.mark_occupied(0, agent.coords.xy, a)

    results: list = [None] * len(setup.agents)
    for a in order:
        agent = setup.agents[a]
        actions = assign_actions(table, a, agent.coords, agent.plan)
        if actions is None:
            return None
        results[a] = RobotResult(tuple(actions), len(actions) - len(agent.plan))
    return table, results


def leq(a, b) -> bool:
    if len(a) != len(b):
        raise ValueError(f"leq: lengths differ ({len(a)} vs {len(b)})")
    return all(x <= y for x, y in zip(a, b))


def dominates(a, b) -> bool:
    """Pareto order: a is no worse than b everywhere and differs somewhere."""
    return leq(a, b) and tuple(a) != tuple(b)


def orderings(n: int, max_orderings: int = 0):
    """
    Visiting orders to try.

    All n! permutations when `max_orderings` is 0 or n! fits under it.
    Otherwise only the permutations of the first n0 robots, where n0 is the
    largest integer with n0! < max_orderings, each followed by the remaining
    robots in index order.
    """
    if max_orderings == 0 or math.factorial(n) <= max_orderings:
        yield from itertools.permutations(range(n))
        return
    n0 = 0
    while n0 < n and math.factorial(n0 + 1) < max_orderings:
        n0 += 1
    tail = tuple(range(n0, n))
    for prefix in itertools.permutations(range(n0)):
        yield prefix + tail


def arbitration(setup: ArbSetup, max_orderings: int = 0) -> dict:
    """
    Search visiting orders for the Pareto-optimal wait costs.

    Args:
        setup: Robots with their starting poses and desired plans.
        max_orderings: Cap on the number of orders tried (0 = no cap).

    Returns: Frontier mapping each non-dominated cost vector (indexed by
    robot, not by visiting order) to every distinct solution achieving it,
    in discovery order. Empty if no order is feasible.
    """
    frontier: dict = {}
    for order in orderings(len(setup.agents), max_orderings):
        result = assign(setup, order)
        if result is None:
            continue
        _, solution = result
        solution = tuple(solution)
        costs = tuple(r.cost for r in solution)

        # Skip anything already beaten:
        if any(dominates(c, costs) for c in frontier):
            continue

        ties = frontier.setdefault(costs, [])
        if solution not in ties:
            ties.append(solution)

        # Drop everything the newcomer beats:
        for c in [c for c in frontier if dominates(costs, c)]:
            del frontier[c]
    return frontier


def representatives(frontier: dict, rng) -> dict:
    """Collapse every tie-set to one uniformly chosen solution."""
    return {costs: rng.choice(solutions) for costs, solutions in frontier.items()}


def sample_solution(frontier: dict, rng):
    """
    Pick a cost vector uniformly, then a solution within it uniformly.

    Returns: (costs, solution) or None for an empty frontier.
    """
    if not frontier:
        return None
    costs = rng.choice(list(frontier))
    return costs, rng.choice(frontier[costs])


def solution_steps(setup: ArbSetup, solution) -> list[ArbStep]:
    """
    Unroll a solution into per-tick poses for every robot.

    Robots that finished their plan keep their final pose with action None.
    Their cell is only reserved up to the tick after their last action, so
    a robot later in the visiting order may drive into a finished robot's
    final cell. Only robots still executing their plan are guaranteed
    distinct cells at every step.
    """
    horizon = max((len(r.actions) for r in solution), default=0)
    poses = [agent.coords for agent in setup.agents]
    steps = []
    for t in range(horizon + 1):
        actions = tuple(r.actions[t] if t < len(r.actions) else None for r in solution)
        steps.append(ArbStep(tuple(poses), actions))
        poses = [next_coords(c, a) if a is not None else c for c, a in zip(poses, actions)]
    return steps


def format_frontier(frontier: dict) -> list[str]:
    lines = []
    for costs, solutions in frontier.items():
        for i, solution in enumerate(solutions):
            plans = ["".join(a.symbol for a in r.actions) for r in solution]
            lines.append(f"{list(costs)} -> #{i} {plans}")
    return lines
