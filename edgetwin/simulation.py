"""Simulation engine: command/query surface and periodic drivers.

One fast driver advances physics and re-optimises every ``tick_interval_ms``;
one slow driver sweeps warm/cold timeouts every ``sweep_interval_ms``. Both
run on daemon threads and take the engine lock, so commands issued from other
threads always land between ticks, never inside one.
"""

from __future__ import annotations

import logging
import statistics
import threading
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from edgetwin.config import SimulationConfig
from edgetwin.errors import InvalidNodeType
from edgetwin.latency import LatencyModel, round_ms
from edgetwin.lifecycle import WarmStateSweeper
from edgetwin.mobility import ALGORITHMS, Bounds, predict_path, validate_algorithm
from edgetwin.policy.greedy import GreedyHysteresisPolicy, PlacementOutcome
from edgetwin.state import (
    CENTRAL,
    EDGE,
    NODE_KINDS,
    Node,
    TopologyState,
    User,
    utc_ms,
)

logger = logging.getLogger(__name__)

USER_MARGIN = 10.0
EDGE_PLACEMENT_MARGIN = 100.0
CENTRAL_PLACEMENT_MARGIN = 200.0


class _PeriodicDriver:
    """Calls ``fn`` every ``interval_ms()`` until stopped."""

    def __init__(self, name: str, interval_ms: Callable[[], float], fn: Callable[[], Any]) -> None:
        self.name = name
        self.interval_ms = interval_ms
        self.fn = fn
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(max(1.0, float(self.interval_ms())) / 1000.0):
            try:
                self.fn()
            except Exception:
                logger.exception(f"{self.name} iteration failed")


class Simulation:
    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = (config or SimulationConfig()).validate()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.state = TopologyState(self.rng)
        self.latency_model = LatencyModel(self.rng)
        self.policy = GreedyHysteresisPolicy(self.state, self.latency_model)
        self.sweeper = WarmStateSweeper(self.config.warm_timeout_ms)
        self.clock = clock or utc_ms

        self.tick_count = 0
        self.last_outcome: Optional[PlacementOutcome] = None

        self._lock = threading.RLock()
        self._fast = _PeriodicDriver("edgetwin-tick", lambda: self.config.tick_interval_ms, self.tick)
        self._slow = _PeriodicDriver("edgetwin-sweep", lambda: self.config.sweep_interval_ms, self.sweep)

    @property
    def bounds(self) -> Bounds:
        return Bounds(self.config.viewport_width, self.config.viewport_height, USER_MARGIN)

    @property
    def is_running(self) -> bool:
        return self._fast.running

    # -------- drivers --------

    def start(self) -> None:
        if self.is_running:
            logger.warning("Simulation already running")
            return
        self._fast.start()
        self._slow.start()
        logger.info(
            f"Simulation started: tick={self.config.tick_interval_ms}ms, "
            f"sweep={self.config.sweep_interval_ms}ms"
        )

    def stop(self) -> None:
        if not (self._fast.running or self._slow.running):
            return
        self._fast.stop()
        self._slow.stop()
        logger.info(f"Simulation stopped after {self.tick_count} ticks")

    def tick(self, now_ms: Optional[int] = None) -> PlacementOutcome:
        """Advance physics, then re-assign users, then recompute loads."""
        with self._lock:
            now_ms = self.clock() if now_ms is None else now_ms
            self._advance_users()
            self._refresh_paths()
            outcome = self.policy.optimize(now_ms, auto_assignment=self.config.auto_assignment)
            self.tick_count += 1
            self.last_outcome = outcome
            return outcome

    def sweep(self, now_ms: Optional[int] = None) -> List[str]:
        with self._lock:
            now_ms = self.clock() if now_ms is None else now_ms
            return self.sweeper.sweep(self.state.list_nodes(), now_ms)

    def _advance_users(self) -> None:
        speed = self.config.simulation_speed
        width, height = self.config.viewport_width, self.config.viewport_height
        for user in self.state.list_users():
            nx = user.x + user.vx * speed
            ny = user.y + user.vy * speed
            if nx <= USER_MARGIN or nx >= width - USER_MARGIN:
                user.vx = -user.vx
                nx = max(USER_MARGIN, min(width - USER_MARGIN, nx))
            if ny <= USER_MARGIN or ny >= height - USER_MARGIN:
                user.vy = -user.vy
                ny = max(USER_MARGIN, min(height - USER_MARGIN, ny))
            user.x, user.y = nx, ny

    def _refresh_paths(self) -> None:
        if not self.config.prediction_enabled:
            for user in self.state.list_users():
                user.predicted_path = []
            return
        edges = self.state.list_nodes(EDGE)
        centrals = self.state.list_nodes(CENTRAL)
        for user in self.state.list_users():
            user.predicted_path = predict_path(
                self.config.algorithm,
                user.x,
                user.y,
                user.vx,
                user.vy,
                self.config.prediction_steps,
                self.bounds,
                edges,
                centrals,
            )

    # -------- node commands --------

    def _sample_coord(self, extent: float, margin: float) -> float:
        lo = min(margin, extent / 2.0)
        hi = max(lo, extent - margin)
        return float(self.rng.uniform(lo, hi)) if hi > lo else lo

    def _add_node(
        self,
        kind: str,
        capacity: Optional[float],
        coverage: Optional[float],
        x: Optional[float],
        y: Optional[float],
    ) -> Node:
        if kind == EDGE:
            margin = EDGE_PLACEMENT_MARGIN
            capacity = self.config.edge_capacity if capacity is None else capacity
            coverage = self.config.edge_coverage if coverage is None else coverage
        else:
            margin = CENTRAL_PLACEMENT_MARGIN
            capacity = self.config.central_capacity if capacity is None else capacity
            coverage = self.config.central_coverage if coverage is None else coverage
        with self._lock:
            if x is None:
                x = self._sample_coord(self.config.viewport_width, margin)
            if y is None:
                y = self._sample_coord(self.config.viewport_height, margin)
            return self.state.add_node(kind, x, y, capacity, coverage)

    def add_node(self, kind: str, **kwargs: Any) -> Node:
        if kind not in NODE_KINDS:
            raise InvalidNodeType(kind)
        return self._add_node(
            kind,
            kwargs.get("capacity"),
            kwargs.get("coverage"),
            kwargs.get("x"),
            kwargs.get("y"),
        )

    def add_edge_node(self, capacity=None, coverage=None, x=None, y=None) -> Node:
        return self._add_node(EDGE, capacity, coverage, x, y)

    def add_central_node(self, capacity=None, coverage=None, x=None, y=None) -> Node:
        return self._add_node(CENTRAL, capacity, coverage, x, y)

    def remove_node(self, node_id: str) -> Node:
        with self._lock:
            node = self.state.remove_node(node_id)
            self.state.recompute_loads()
            return node

    def remove_last(self, kind: str) -> Optional[Node]:
        with self._lock:
            node = self.state.remove_last(kind)
            self.state.recompute_loads()
            return node

    def move_node(self, node_id: str, x: float, y: float) -> Node:
        with self._lock:
            return self.state.move_node(node_id, x, y)

    def clear_nodes(self, kind: str) -> int:
        with self._lock:
            removed = self.state.clear_nodes(kind)
            self.state.recompute_loads()
            return removed

    # -------- user commands --------

    def add_user(self, x: Optional[float] = None, y: Optional[float] = None) -> User:
        with self._lock:
            if x is None:
                x = self._sample_coord(self.config.viewport_width, USER_MARGIN)
            if y is None:
                y = self._sample_coord(self.config.viewport_height, USER_MARGIN)
            vx = (float(self.rng.random()) - 0.5) * self.config.user_speed
            vy = (float(self.rng.random()) - 0.5) * self.config.user_speed
            return self.state.add_user(x, y, vx, vy)

    def move_user(self, user_id: str, x: float, y: float) -> User:
        with self._lock:
            return self.state.move_user(user_id, x, y)

    def delete_user(self, user_id: str) -> User:
        with self._lock:
            user = self.state.remove_user(user_id)
            self.state.recompute_loads()
            return user

    def clear_users(self) -> int:
        with self._lock:
            count = self.state.clear_users()
            self.state.recompute_loads()
            return count

    def connect_user(self, user_id: str, node_id: str, node_type: str, now_ms: Optional[int] = None) -> User:
        """Pin a user to a node; the optimizer leaves it alone until released."""
        if node_type not in NODE_KINDS:
            raise InvalidNodeType(node_type)
        with self._lock:
            user = self.state.get_user(user_id)
            node = self.state.get_node(node_id)
            if node.kind != node_type:
                raise InvalidNodeType(node_type)
            estimate = self.latency_model.compute(user, node)
            self.latency_model.mark_warm(node, estimate.breakdown, self.clock() if now_ms is None else now_ms)
            user.assign(node.id, node.kind)
            user.manual_connection = True
            user.latency = estimate.latency_ms
            self.state.recompute_loads()
            logger.info(f"User {user_id} manually connected to {node_type} {node_id}")
            return user

    def disconnect_user(self, user_id: str) -> User:
        with self._lock:
            user = self.state.get_user(user_id)
            user.unassign()
            user.manual_connection = False
            self.state.recompute_loads()
            return user

    def reset_all_manual_overrides(self) -> int:
        with self._lock:
            count = 0
            for user in self.state.list_users():
                if user.manual_connection:
                    user.manual_connection = False
                    count += 1
            return count

    # -------- settings --------

    def set_algorithm(self, name: str) -> None:
        validate_algorithm(name)
        with self._lock:
            self.config.algorithm = name
            self._refresh_paths()

    def set_prediction_steps(self, steps: int) -> None:
        with self._lock:
            self.config.update(prediction_steps=steps)
            self._refresh_paths()

    def set_prediction_enabled(self, enabled: bool) -> None:
        with self._lock:
            self.config.update(prediction_enabled=enabled)
            self._refresh_paths()

    def set_auto_assignment(self, enabled: bool) -> None:
        with self._lock:
            self.config.update(auto_assignment=enabled)

    def update_config(self, **changes: Any) -> SimulationConfig:
        """Apply any mix of settings and knobs; on error nothing changes."""
        if "algorithm" in changes:
            validate_algorithm(changes["algorithm"])
        with self._lock:
            self.config.update(**changes)
            self.sweeper.timeout_ms = self.config.warm_timeout_ms
            self._refresh_paths()
            return self.config

    def clear_all(self) -> None:
        self.stop()
        with self._lock:
            self.state.clear()
            self.tick_count = 0
            self.last_outcome = None

    # -------- queries --------

    def average_latency(self) -> int:
        with self._lock:
            users = self.state.list_users()
            if not users:
                return 0
            return round_ms(statistics.fmean(u.latency for u in users))

    def average_arc_latency(self) -> float:
        with self._lock:
            arcs = self.state.arcs()
            if not arcs:
                return 0.0
            return statistics.fmean(a.latency for a in arcs)

    def user_latencies(self) -> Dict[str, int]:
        with self._lock:
            return {u.id: u.latency for u in self.state.list_users()}

    def node_diagnostics(self, node_id: str) -> Dict[str, Any]:
        with self._lock:
            node = self.state.get_node(node_id)
            assigned = [u.id for u in self.state.list_users() if u.assigned_node == node.id]
            return {
                "id": node.id,
                "type": node.kind,
                "is_warm": node.is_warm,
                "last_access_ms": node.last_access_ms,
                "current_load": node.current_load,
                "capacity": node.capacity,
                "cold_start_delay_ms": node.cold_start_delay_ms,
                "assigned_users": assigned,
                "last_metrics": node.last_metrics.to_dict() if node.last_metrics else None,
                "replicas": [r.id for r in node.replicas],
            }

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            users = self.state.list_users()
            return {
                "ts": self.clock(),
                "tick": self.tick_count,
                "running": self.is_running,
                "algorithm": self.config.algorithm,
                "algorithm_label": ALGORITHMS[self.config.algorithm],
                "prediction_steps": self.config.prediction_steps,
                "edge_nodes": [n.to_dict() for n in self.state.list_nodes(EDGE)],
                "central_nodes": [n.to_dict() for n in self.state.list_nodes(CENTRAL)],
                "users": [u.to_dict() for u in users],
                "arcs": [a.to_dict() for a in self.state.arcs()],
                "average_latency": self.average_latency(),
                "unserved_users": sum(1 for u in users if u.assigned_node is None),
                "config": self.config.to_dict(),
            }
