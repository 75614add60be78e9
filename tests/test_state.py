import numpy as np
import pytest

from edgetwin.errors import InvalidNodeType, NodeNotFound
from edgetwin.state import (
    SENTINEL_LATENCY_MS,
    TopologyState,
    link_key,
    node_load,
)


def test_add_node_rejects_unknown_type(topology):
    with pytest.raises(InvalidNodeType):
        topology.add_node("cloudlet", 0, 0, 100)


def test_get_node_missing_raises(topology):
    with pytest.raises(NodeNotFound):
        topology.get_node("edge-42")
    with pytest.raises(KeyError):
        topology.remove_node("edge-42")


def test_ids_stay_unique_after_removal(topology):
    topology.add_node("edge", 100, 100, 100)
    second = topology.add_node("edge", 200, 100, 100)
    topology.remove_node(second.id)
    third = topology.add_node("edge", 300, 100, 100)
    assert third.id == "edge-3"
    assert [n.id for n in topology.list_nodes("edge")] == ["edge-1", "edge-3"]


def test_edge_nodes_carry_cold_start_delay(topology):
    edge = topology.add_node("edge", 100, 100, 100)
    central = topology.add_node("central", 400, 400, 500)
    assert edge.cold_start_delay_ms == pytest.approx(300.0)
    assert central.cold_start_delay_ms is None


def test_arc_rate_is_memoised_across_moves():
    state = TopologyState(np.random.default_rng(7))
    a = state.add_node("edge", 0, 0, 100)
    b = state.add_node("edge", 100, 0, 100)

    first = state.arc_latency(a.id, b.id)
    assert 1.0 <= first.speed <= 5.0
    assert first.latency == pytest.approx(100 * first.speed)

    state.move_node(b.id, 200, 0)
    moved = state.arc_latency(b.id, a.id)
    assert moved.speed == first.speed
    assert moved.latency == pytest.approx(200 * first.speed)


def test_user_central_rate_is_fixed(topology):
    central = topology.add_node("central", 30, 40, 500)
    user = topology.add_user(0, 0)
    arc = topology.arc_latency(user.id, central.id)
    assert arc.kind == "central-user"
    assert arc.speed == 20.0
    assert arc.latency == pytest.approx(50 * 20.0)


def test_central_to_central_arc_is_rejected(topology):
    a = topology.add_node("central", 0, 0, 500)
    b = topology.add_node("central", 10, 0, 500)
    with pytest.raises(InvalidNodeType):
        topology.arc_latency(a.id, b.id)


def test_remove_node_severs_arcs_and_assignments(topology):
    edge = topology.add_node("edge", 0, 0, 100)
    other = topology.add_node("edge", 50, 0, 100)
    user = topology.add_user(10, 0)
    user.assign(edge.id, "edge")
    user.latency = 123
    topology.arc_latency(edge.id, other.id)
    assert (edge.id, other.id) in topology.arc_cache

    topology.remove_node(edge.id)

    assert (edge.id, other.id) not in topology.arc_cache
    assert user.assigned_edge is None and user.assigned_central is None
    assert user.latency == SENTINEL_LATENCY_MS


def test_remove_node_releases_manual_pin(topology):
    edge = topology.add_node("edge", 0, 0, 100)
    user = topology.add_user(10, 0)
    user.assign(edge.id, "edge")
    user.manual_connection = True
    topology.remove_node(edge.id)
    assert user.manual_connection is False


def test_remove_last(topology):
    assert topology.remove_last("edge") is None
    topology.add_node("edge", 0, 0, 100)
    topology.add_node("edge", 10, 0, 100)
    removed = topology.remove_last("edge")
    assert removed.id == "edge-2"
    with pytest.raises(InvalidNodeType):
        topology.remove_last("user")


def test_arcs_cover_mesh_and_assignments(topology):
    e1 = topology.add_node("edge", 0, 0, 100)
    topology.add_node("edge", 100, 0, 100)
    topology.add_node("central", 500, 500, 500)
    user = topology.add_user(10, 10)
    topology.add_user(20, 20)  # unserved, no arc
    user.assign(e1.id, "edge")

    arcs = topology.arcs()
    kinds = sorted(a.kind for a in arcs)
    assert kinds == ["central-edge", "central-edge", "edge-edge", "edge-user"]
    assert {link_key(a.source, a.target) for a in arcs if a.kind == "edge-user"} == {
        link_key(user.id, e1.id)
    }


def test_recompute_loads(topology):
    edge = topology.add_node("edge", 0, 0, 100)
    idle = topology.add_node("central", 500, 500, 500)
    for _ in range(3):
        topology.add_user(0, 0).assign(edge.id, "edge")
    topology.recompute_loads()
    assert edge.current_load == pytest.approx(30.0)
    assert idle.current_load == 0.0

    for _ in range(20):
        topology.add_user(0, 0).assign(edge.id, "edge")
    topology.recompute_loads()
    assert edge.current_load == 100.0


def test_node_load_guards_zero_capacity():
    assert node_load(0, 0) == 0.0
    assert node_load(1, 0) == 100.0
    assert node_load(1, 500) == pytest.approx(2.0)


def test_user_assign_keeps_single_target(topology):
    user = topology.add_user(0, 0)
    user.assign("edge-1", "edge")
    user.assign("central-1", "central")
    assert user.assigned_edge is None
    assert user.assigned_central == "central-1"
    with pytest.raises(InvalidNodeType):
        user.assign("x", "user")


def test_deploy_replica_inherits_cold_start(topology):
    edge = topology.add_node("edge", 0, 0, 100)
    central = topology.add_node("central", 300, 300, 500)
    replica = topology.deploy_replica(edge.id)
    assert replica.id == f"{edge.id}-replica-1"
    assert replica.cold_start_delay_ms == edge.cold_start_delay_ms
    assert topology.deploy_replica(central.id).cold_start_delay_ms == 200.0
    assert len(edge.replicas) == 1


def test_clear_resets_everything(topology):
    topology.add_node("edge", 0, 0, 100)
    topology.add_node("edge", 10, 0, 100)
    topology.add_user(0, 0)
    topology.arc_latency("edge-1", "edge-2")
    topology.clear()
    assert topology.list_nodes() == []
    assert topology.list_users() == []
    assert len(topology.arc_cache) == 0
    assert topology.add_node("edge", 0, 0, 100).id == "edge-1"
