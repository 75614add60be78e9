import numpy as np
import pytest

from edgetwin.errors import NoServerAvailable
from edgetwin.latency import LatencyModel
from edgetwin.policy.greedy import GreedyHysteresisPolicy, proximity_bonus
from edgetwin.state import SENTINEL_LATENCY_MS, TopologyState, node_load


def test_single_edge_scenario(topology, policy):
    user = topology.add_user(0, 0)
    edge = topology.add_node("edge", 100, 0, 100)

    policy.optimize(now_ms=1)

    assert user.assigned_edge == edge.id
    assert user.assigned_central is None
    assert isinstance(user.latency, int)
    # distance 100, size <= 500, rate 0.002 -> comm <= 100; cold processing <= 450
    assert 0 < user.latency <= 550
    assert edge.current_load == pytest.approx(10.0)


def test_single_edge_scenario_with_random_sampling():
    rng = np.random.default_rng(11)
    state = TopologyState(rng)
    policy = GreedyHysteresisPolicy(state, LatencyModel(rng))
    user = state.add_user(0, 0)
    edge = state.add_node("edge", 100, 0, 100)
    policy.optimize(now_ms=1)
    assert user.assigned_edge == edge.id
    assert 0 < user.latency <= 550


def test_no_candidates_leaves_user_unserved(topology, policy):
    user = topology.add_user(10, 10)
    user.latency = 42
    outcome = policy.optimize(now_ms=1)
    assert user.assigned_node is None
    assert user.latency == SENTINEL_LATENCY_MS
    assert outcome.unserved == 1


def test_removing_sole_node_unserves_on_next_tick(topology, policy):
    user = topology.add_user(0, 0)
    edge = topology.add_node("edge", 100, 0, 100)
    policy.optimize(now_ms=1)
    assert user.assigned_edge == edge.id

    topology.remove_node(edge.id)
    policy.optimize(now_ms=2)

    assert user.assigned_edge is None and user.assigned_central is None
    assert user.latency == 500


def _warm_pair(topology, near_distance):
    user = topology.add_user(500, 500)
    far = topology.add_node("edge", 700, 500, 100)  # d = 200
    near = topology.add_node("edge", 500 + near_distance, 500, 100)
    far.is_warm = near.is_warm = True
    user.assign(far.id, "edge")
    return user, far, near


def test_hysteresis_holds_near_equal_candidate(topology, policy):
    # far (current): 270 + 100 - 100 = 270; near at d=105: 213 + 52.5 = 265.5
    user, far, near = _warm_pair(topology, 105)

    candidates = policy.candidates(user, now_ms=1)
    by_id = {c.node_id: c for c in candidates}
    assert by_id[near.id].score < by_id[far.id].score
    assert by_id[far.id].score - by_id[near.id].score < 50

    outcome = policy.optimize(now_ms=1)
    assert user.assigned_edge == far.id
    assert outcome.held == 1
    assert outcome.switched == 0


def test_clear_improvement_switches(topology, policy):
    # near at d=10: 156 + 5 - 90 = 71, far stays at 270
    user, far, near = _warm_pair(topology, 10)
    outcome = policy.optimize(now_ms=1)
    assert user.assigned_edge == near.id
    assert outcome.switched == 1
    assert outcome.switches == [(user.id, far.id, near.id)]


def test_assignment_is_exclusive_and_loads_follow_counts():
    rng = np.random.default_rng(5)
    state = TopologyState(rng)
    policy = GreedyHysteresisPolicy(state, LatencyModel(rng))
    for x in (100, 400, 700):
        state.add_node("edge", x, 300, 100)
    state.add_node("central", 400, 600, 500)
    for i in range(25):
        state.add_user(rng.uniform(10, 790), rng.uniform(10, 790))

    for tick in range(5):
        policy.optimize(now_ms=tick * 100)
        for user in state.list_users():
            assert not (user.assigned_edge and user.assigned_central)
        for node in state.list_nodes():
            count = sum(1 for u in state.list_users() if u.assigned_node == node.id)
            assert 0.0 <= node.current_load <= 100.0
            assert node.current_load == pytest.approx(node_load(count, node.capacity))


def test_manual_users_are_skipped(topology, policy):
    user, far, near = _warm_pair(topology, 10)
    user.manual_connection = True
    outcome = policy.optimize(now_ms=1)
    assert user.assigned_edge == far.id
    assert outcome.skipped == 1


def test_auto_assignment_off_skips_everyone(topology, policy):
    user = topology.add_user(0, 0)
    topology.add_node("edge", 100, 0, 100)
    outcome = policy.optimize(now_ms=1, auto_assignment=False)
    assert user.assigned_node is None
    assert outcome.skipped == 1


def test_evaluation_warms_every_candidate(topology, policy):
    topology.add_user(0, 0)
    nodes = [
        topology.add_node("edge", 100, 0, 100),
        topology.add_node("central", 300, 0, 500),
    ]
    policy.optimize(now_ms=77)
    assert all(n.is_warm and n.last_access_ms == 77 for n in nodes)
    assert all(n.last_metrics is not None for n in nodes)


def test_proximity_bonus_favours_central_reach():
    assert proximity_bonus("edge", 120) == 0.0
    assert proximity_bonus("central", 120) == pytest.approx(60.0)
    assert proximity_bonus("edge", 50) == pytest.approx(50.0)
    assert proximity_bonus("central", 50) == pytest.approx(200.0)


def test_single_user_assign_raises_without_servers(topology, policy):
    user = topology.add_user(0, 0)
    with pytest.raises(NoServerAvailable):
        policy.assign(user)
    edge = topology.add_node("edge", 100, 0, 100)
    assert policy.assign(user).node_id == edge.id
