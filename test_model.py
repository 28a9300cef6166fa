import pytest

from agent import astar
from blocks import Block
from coords import Action, Coords, Orientation, XY
from model import CityModel

HOME = Coords(XY(3, 1), Orientation.NORTH)
WORK = Coords(XY(3, 6), Orientation.SOUTH)


def _single_block_model(**kwargs):
    streets = Block.with_parking(XY(8, 8), 1).grid
    kwargs.setdefault("num_robots", 0)
    return CityModel(streets=streets, seed=1, **kwargs)


def _city_model(**kwargs):
    # Two side-by-side parking blocks inside an empty ring of slots:
    kwargs.setdefault("robot_density", 0.5)
    return CityModel(width_blocks=4, height_blocks=3, block_size=8,
                     block_probability=1.0, parking_probability=1.0,
                     **kwargs)


def _assert_occupancy_consistent(model):
    cells = [r.coords.xy for r in model.robots]
    assert len(set(cells)) == len(cells), "Two robots share a cell"
    for r in model.robots:
        assert model.streets.present(r.coords.xy) == r.robot_id
        assert model.valid_coords(r.coords), f"Robot {r.robot_id} on illegal pose {r.coords!r}"


# Testing Framework for model.py:
def test_allowed_actions():
    model = _single_block_model()
    # In a bay the only way out is reversing:
    assert model.allowed_actions(HOME) == [Action.BACKWARD, Action.WAIT]
    # On the road behind it, drive on or turn into the bay's heading:
    assert model.allowed_actions(Coords(XY(3, 0), Orientation.EAST)) == \
        [Action.FORWARD, Action.TURN_LEFT, Action.WAIT]
    assert model.allowed_actions(Coords(XY(3, 0), Orientation.NORTH)) == \
        [Action.FORWARD, Action.TURN_RIGHT, Action.WAIT]


def test_renderer_view():
    model = _single_block_model()
    model.place_robot(HOME)
    assert model.size() == XY(8, 8)
    assert sum(1 for _ in model.iterate_cells()) == 64
    (robot_id, pose, color), = model.snapshot()
    assert robot_id == 0 and pose == HOME and color.startswith("#")


def test_unknown_policy():
    with pytest.raises(ValueError):
        _single_block_model(policy="teleport")


def test_spawn_robots():
    model = _city_model(seed=2)
    assert model.streets.num_parking_cells() == 40
    assert len(model.robots) == 20

    homes = {r.home.xy for r in model.robots}
    for r in model.robots:
        assert model.streets.cell(r.home.xy).is_parking
        assert model.streets.cell(r.work.xy).is_parking
        assert r.work.xy not in homes, "Work bays are drawn from bays left vacant"
    _assert_occupancy_consistent(model)

    # More robots than bays spill onto the road:
    model = _single_block_model(num_robots=25)
    assert len(model.robots) == 25
    assert len(model.streets.empty_parking_cells) == 0
    _assert_occupancy_consistent(model)
    print("✔ Spawn tests passed")


def test_single_robot_reaches_work():
    model = _single_block_model()
    robot = model.robots[model.place_robot(HOME)]
    robot.work = WORK

    path = astar(HOME, WORK, model.successors)
    for _ in range(len(path) - 1):
        model.step()
    assert robot.coords == WORK, f"Robot stopped at {robot.coords!r}"
    assert robot.arrivals == 0

    model.step()
    assert robot.arrivals == 1
    assert robot.objective() == HOME
    print("✔ Liveness tests passed")


@pytest.mark.parametrize("policy", ["replan", "random"])
def test_no_double_occupancy(policy):
    model = _city_model(seed=3, policy=policy)
    for _ in range(30):
        model.step()
        _assert_occupancy_consistent(model)
        assert model.moves + model.blocked <= len(model.robots)
    print(f"✔ Occupancy tests passed ({policy})")


def test_blocked_move_is_counted():
    model = _single_block_model(horizon=3)
    model.place_robot(Coords(XY(3, 0), Orientation.EAST))
    model.place_robot(Coords(XY(4, 0), Orientation.EAST))

    def update(robot, horizon):
        first = Action.FORWARD if robot.robot_id == 0 else Action.WAIT
        return [first] + [Action.WAIT] * (horizon - 1)

    model.step_robots(update)
    assert model.blocked == 1 and model.moves == 0
    assert model.robots[0].coords.xy == XY(3, 0)

    with pytest.raises(ValueError):
        model.step_robots(lambda robot, horizon: [Action.WAIT])


def test_robot_stays_when_its_cell_is_recorded_for_another():
    model = _single_block_model(horizon=3)
    first = model.robots[model.place_robot(Coords(XY(3, 0), Orientation.EAST))]
    second = model.robots[model.place_robot(Coords(XY(5, 0), Orientation.EAST))]

    # Corrupt the occupancy layer: the first robot's cell now reports the second:
    model.grid.remove_agent(first)
    model.grid.move_agent(second, (3, 0))
    assert model.streets.present(XY(3, 0)) == second.robot_id

    def update(robot, horizon):
        first_action = Action.FORWARD if robot is first else Action.WAIT
        return [first_action] + [Action.WAIT] * (horizon - 1)

    model.step_robots(update)
    assert first.coords == Coords(XY(3, 0), Orientation.EAST)
    assert model.moves == 0


def test_work_poses_are_not_shared():
    model = _city_model(seed=2, robot_density=0.8)
    works = [r.work.xy for r in model.robots]
    homes = {r.home.xy for r in model.robots}
    assert len(set(works)) == len(works), "Two robots share a work pose"
    assert not homes & set(works)

    # Bays left over after parking are handed out before any road cell:
    bay_works = [xy for xy in works if model.streets.cell(xy).is_parking]
    assert len(bay_works) == model.streets.num_parking_cells() - len(model.robots)


def test_default_city_keeps_moving():
    model = CityModel(seed=5, max_steps=300)
    while model.running:
        model.step()
    frame = model.datacollector.get_model_vars_dataframe()
    assert frame["moves"].tail(50).sum() > 0, "Traffic froze"
    assert frame["arrivals"].iloc[-1] > frame["arrivals"].iloc[100]
    print("✔ Default city liveness tests passed")


def test_conflict_components():
    model = _single_block_model()
    for x in (2, 3, 4, 5):
        model.place_robot(Coords(XY(x, 1), Orientation.NORTH))

    usage = {
        (0, XY(1, 1)): [0, 1],
        (1, XY(3, 3)): [1, 3],
        (2, XY(5, 5)): [2],
    }
    components = model.conflict_components(usage)
    assert sorted(sorted(c) for c in components) == [[0, 1, 3], [2]]

    model.record_components(components)
    assert model.components == 2 and model.largest_component == 3
    assert model.games_by_size[1] == 1 and model.games_by_size[3] == 1


def test_seeded_runs_repeat():
    a = _city_model(seed=9)
    b = _city_model(seed=9)
    for _ in range(15):
        a.step()
        b.step()
    assert a.snapshot() == b.snapshot()
    assert a.moves == b.moves and a.blocked == b.blocked


def test_data_collection_and_stop(tmp_path):
    out = tmp_path / "run.csv"
    model = _city_model(seed=4, max_steps=3, export_path=str(out))
    while model.running:
        model.step()

    frame = model.datacollector.get_model_vars_dataframe()
    assert len(frame) == 3 and model.ticks == 3
    assert {"moves", "blocked", "arrivals", "largest_component"} <= set(frame.columns)
    assert out.exists()


if __name__ == "__main__":
    test_allowed_actions()
    test_renderer_view()
    test_unknown_policy()
    test_spawn_robots()
    test_single_robot_reaches_work()
    for p in ("replan", "random"):
        test_no_double_occupancy(p)
    test_blocked_move_is_counted()
    test_robot_stays_when_its_cell_is_recorded_for_another()
    test_work_poses_are_not_shared()
    test_default_city_keeps_moving()
    test_conflict_components()
    test_seeded_runs_repeat()
