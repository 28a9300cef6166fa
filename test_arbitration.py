import random

import pytest

from arbitration import (
    ArbAgent,
    ArbSetup,
    ReservationConflict,
    ReservationTable,
    arbitration,
    dominates,
    format_frontier,
    is_action_feasible,
    leq,
    orderings,
    representatives,
    resources_needed,
    sample_solution,
    solution_steps,
)
from coords import Action, Coords, Orientation, XY

F = Action.FORWARD


def _intersection():
    """
    Four robots entering a 2x2 crossing from each side, each wanting to
    drive straight through with three forward moves.
    Robots: 0 heads west, 1 south, 2 east, 3 north.
    """
    return ArbSetup([
        ArbAgent(Coords(XY(1, 0), Orientation.WEST), [F, F, F]),
        ArbAgent(Coords(XY(-1, 1), Orientation.SOUTH), [F, F, F]),
        ArbAgent(Coords(XY(-2, -1), Orientation.EAST), [F, F, F]),
        ArbAgent(Coords(XY(0, -2), Orientation.NORTH), [F, F, F]),
    ])


# Testing Framework for arbitration.py:
def test_mark_occupied():
    table = ReservationTable()
    table.mark_occupied(0, XY(1, 1), 3)
    table.mark_occupied(0, XY(1, 1), 3)
    assert len(table) == 1 and table[(0, XY(1, 1))] == 3, "Re-marking must be idempotent"

    with pytest.raises(ReservationConflict):
        table.mark_occupied(0, XY(1, 1), 4)
    assert table.occupied_by_someone_else(0, XY(1, 1), 4)
    assert not table.occupied_by_someone_else(0, XY(1, 1), 3)
    assert not table.occupied_by_someone_else(1, XY(1, 1), 4)
    print("✔ Reservation tests passed")


def test_footprints():
    c = Coords(XY(0, 0), Orientation.NORTH)
    forward = resources_needed(2, c, Action.FORWARD, 7)
    assert set(forward) == {(2, XY(0, 0)), (2, XY(0, 1)), (3, XY(0, 1))}
    assert set(forward.values()) == {7}

    # A turn stays on its cell, so the footprint collapses to two keys:
    turn = resources_needed(0, c, Action.TURN_LEFT, 7)
    assert set(turn) == {(0, XY(0, 0)), (1, XY(0, 0))}

    table = ReservationTable()
    table.mark_occupied(3, XY(0, 1), 1)
    assert is_action_feasible(table, 0, c, 2, Action.FORWARD) is None
    nxt, needed = is_action_feasible(table, 1, c, 2, Action.FORWARD)
    assert nxt == Coords(XY(0, 1), Orientation.NORTH)
    assert len(table) == 1, "Probing must not modify the table"

    table.commit(needed)
    assert len(table) == 3


def test_pareto_order():
    assert leq((0, 1), (0, 1))
    assert dominates((0, 1), (1, 1))
    assert not dominates((1, 1), (1, 1))
    assert not dominates((0, 2), (1, 1))
    assert not dominates((1, 1), (0, 2))
    with pytest.raises(ValueError):
        leq((0,), (0, 1))


def test_orderings():
    assert len(list(orderings(4))) == 24
    assert len(list(orderings(3, 6))) == 6

    capped = list(orderings(10, 1000))
    assert len(capped) == 720
    assert all(o[6:] == (6, 7, 8, 9) for o in capped)
    assert len(set(capped)) == 720

    assert list(orderings(5, 1)) == [(0, 1, 2, 3, 4)]


def test_intersection_frontier():
    setup = _intersection()
    frontier = arbitration(setup)

    expected = {
        (0, 3, 0, 3), (3, 0, 3, 0),
        (0, 3, 2, 1), (1, 0, 3, 2), (2, 1, 0, 3), (3, 2, 1, 0),
    }
    assert set(frontier) == expected, f"Unexpected frontier {list(frontier)}"

    for a in frontier:
        for b in frontier:
            assert not dominates(a, b), f"{a} dominates {b}"

    for costs, solutions in frontier.items():
        assert solutions, "Every frontier entry needs at least one solution"
        for solution in solutions:
            assert tuple(r.cost for r in solution) == costs
            for agent, r in zip(setup.agents, solution):
                # Waits are only spliced in; the desired actions stay in order:
                assert [a for a in r.actions if a is not Action.WAIT] == agent.plan
    print("✔ Intersection arbitration tests passed")


def test_intersection_solutions_never_share_a_cell():
    setup = _intersection()
    frontier = arbitration(setup)
    for solutions in frontier.values():
        for solution in solutions:
            steps = solution_steps(setup, solution)
            assert steps[0].coords == tuple(a.coords for a in setup.agents)
            for step in steps:
                cells = [c.xy for c in step.coords]
                assert len(set(cells)) == len(cells), f"Shared cell in {step}"
            # Everyone ends where their desired plan leads:
            finals = [c.xy for c in steps[-1].coords]
            assert finals == [XY(-2, 0), XY(-1, -2), XY(1, -1), XY(0, 1)]


def test_finished_robot_cell_is_not_held():
    # Robot 0 stops after one move; robot 1 drives through its final cell:
    setup = ArbSetup([
        ArbAgent(Coords(XY(0, 0), Orientation.EAST), [F]),
        ArbAgent(Coords(XY(3, 0), Orientation.WEST), [F, F, F]),
    ])
    frontier = arbitration(setup)
    assert list(frontier) == [(0, 1)]

    solution = frontier[(0, 1)][0]
    assert solution[1].actions == (F, Action.WAIT, F, F)
    steps = solution_steps(setup, solution)
    assert steps[3].coords[0].xy == steps[3].coords[1].xy == XY(1, 0)

    # While both robots are still executing, their cells differ:
    for step in steps[:2]:
        assert step.coords[0].xy != step.coords[1].xy


def test_many_robots_without_conflict():
    # Parallel lanes never interact, so only the zero vector survives:
    agents = [ArbAgent(Coords(XY(i, 0), Orientation.NORTH), [F, F, F]) for i in range(10)]
    random.Random(3).shuffle(agents)
    frontier = arbitration(ArbSetup(agents), max_orderings=1000)
    assert list(frontier) == [(0,) * 10]
    assert len(frontier[(0,) * 10]) == 1, "Every order yields the same solution"


def test_infeasible_swap():
    # Two robots facing each other on adjacent cells can never pass:
    setup = ArbSetup([
        ArbAgent(Coords(XY(0, 0), Orientation.EAST), [F]),
        ArbAgent(Coords(XY(1, 0), Orientation.WEST), [F]),
    ])
    frontier = arbitration(setup)
    assert frontier == {}
    assert sample_solution(frontier, random.Random(0)) is None


def test_sampling():
    rng = random.Random(5)
    frontier = arbitration(_intersection())

    reps = representatives(frontier, rng)
    assert set(reps) == set(frontier)
    for costs, solution in reps.items():
        assert solution in frontier[costs]

    for _ in range(10):
        costs, solution = sample_solution(frontier, rng)
        assert solution in frontier[costs]

    lines = format_frontier(frontier)
    assert len(lines) == sum(len(s) for s in frontier.values())


if __name__ == "__main__":
    test_mark_occupied()
    test_footprints()
    test_pareto_order()
    test_orderings()
    test_intersection_frontier()
    test_intersection_solutions_never_share_a_cell()
    test_finished_robot_cell_is_not_held()
    test_many_robots_without_conflict()
    test_infeasible_swap()
    test_sampling()
