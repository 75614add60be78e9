#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
edgetwin/state.py - topology store for the edge twin.

Responsibilities
---------------
- Own edge nodes, central nodes and users (insertion ordered)
- Derive arcs (pairwise latencies) on demand from current positions
- Memoise one transfer-rate sample per unordered id pair in ArcCache
- Recompute node load from the users currently assigned to it
- Offer a compact API for edgetwin/simulation.py:
    • add_node / remove_node / remove_last / get_node / list_nodes
    • add_user / move_user / remove_user / get_user / list_users
    • arc_latency(a, b)          → Arc
    • arcs()                     → List[Arc]
    • recompute_loads()
    • deploy_replica(node_id)    → Replica

Design notes
------------
- Nodes are a single dataclass tagged by ``kind``; type-specific behaviour is
  a lookup on the tag, not a subclass.
- Arcs are stored as an undirected cache keyed by "A|B" (sorted ids).
- Only the rate is memoised; latency = distance × rate is recomputed on
  every lookup so moving an endpoint never resamples the rate.
- All randomness comes from the injected numpy Generator.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

import numpy as np

from edgetwin.errors import InvalidNodeType, NodeNotFound

if TYPE_CHECKING:
    from edgetwin.latency import LatencyBreakdown

logger = logging.getLogger(__name__)

EDGE = "edge"
CENTRAL = "central"
USER = "user"
NODE_KINDS = (EDGE, CENTRAL)

SENTINEL_LATENCY_MS = 500
DEFAULT_CENTRAL_COLD_START_MS = 200.0

# Transfer-rate sample range per unordered arc class (lo, hi); lo == hi is fixed.
ARC_RATE_RANGES: Dict[str, Tuple[float, float]] = {
    "edge-edge": (1.0, 5.0),
    "central-edge": (0.1, 0.5),
    "edge-user": (0.5, 2.0),
    "central-user": (20.0, 20.0),
}

EDGE_COLD_START_RANGE_MS = (100.0, 500.0)


# ----------------------------- helpers -----------------------------

def link_key(a: str, b: str) -> str:
    return "|".join(sorted([a, b]))


def arc_class(kind_a: str, kind_b: str) -> str:
    key = "-".join(sorted([kind_a, kind_b]))
    if key not in ARC_RATE_RANGES:
        raise InvalidNodeType(key)
    return key


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def utc_ms() -> int:
    return int(time.time() * 1000)


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


# ----------------------------- data classes -----------------------------

@dataclass
class Replica:
    """A deployable service instance hosted on a node."""
    id: str
    node_id: str
    is_warm: bool = False
    cold_start_delay_ms: float = 0.0
    last_access_ms: Optional[int] = None
    last_metrics: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Node:
    id: str
    kind: str  # edge | central
    x: float
    y: float
    capacity: float
    coverage: float = 0.0
    current_load: float = 0.0  # derived, 0..100
    is_warm: bool = False
    last_access_ms: Optional[int] = None
    last_metrics: Optional["LatencyBreakdown"] = None
    cold_start_delay_ms: Optional[float] = None  # edge only
    replicas: List[Replica] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class User:
    id: str
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    assigned_edge: Optional[str] = None
    assigned_central: Optional[str] = None
    manual_connection: bool = False
    latency: int = SENTINEL_LATENCY_MS
    predicted_path: List[Tuple[float, float]] = field(default_factory=list)

    @property
    def assigned_node(self) -> Optional[str]:
        return self.assigned_edge or self.assigned_central

    def assign(self, node_id: str, kind: str) -> None:
        if kind == EDGE:
            self.assigned_edge, self.assigned_central = node_id, None
        elif kind == CENTRAL:
            self.assigned_edge, self.assigned_central = None, node_id
        else:
            raise InvalidNodeType(kind)

    def unassign(self) -> None:
        self.assigned_edge = None
        self.assigned_central = None
        self.latency = SENTINEL_LATENCY_MS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["predicted_path"] = [{"x": px, "y": py} for px, py in self.predicted_path]
        return data


@dataclass
class Arc:
    source: str
    target: str
    kind: str
    latency: float
    speed: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ----------------------------- arc cache -----------------------------

class ArcCache:
    """Per-pair transfer-rate memo keyed by the unordered id pair."""

    def __init__(self, rng: np.random.Generator) -> None:
        self.rng = rng
        self._speeds: Dict[str, float] = {}

    def speed(self, a: str, b: str, klass: str) -> float:
        key = link_key(a, b)
        cached = self._speeds.get(key)
        if cached is not None:
            return cached
        lo, hi = ARC_RATE_RANGES[klass]
        speed = lo if lo == hi else float(self.rng.uniform(lo, hi))
        self._speeds[key] = speed
        return speed

    def evict(self, node_id: str) -> int:
        stale = [k for k in self._speeds if node_id in k.split("|")]
        for k in stale:
            del self._speeds[k]
        return len(stale)

    def clear(self) -> None:
        self._speeds.clear()

    def __len__(self) -> int:
        return len(self._speeds)

    def __contains__(self, pair: Tuple[str, str]) -> bool:
        return link_key(*pair) in self._speeds


# ----------------------------- topology -----------------------------

class TopologyState:
    def __init__(self, rng: Optional[np.random.Generator] = None) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()
        self.arc_cache = ArcCache(self.rng)
        self._nodes: Dict[str, Dict[str, Node]] = {EDGE: {}, CENTRAL: {}}
        self._users: Dict[str, User] = {}
        self._seq: Dict[str, int] = {EDGE: 0, CENTRAL: 0, USER: 0}

    # -------- ids --------

    def _next_id(self, kind: str) -> str:
        self._seq[kind] += 1
        return f"{kind}-{self._seq[kind]}"

    # -------- nodes --------

    def add_node(
        self,
        kind: str,
        x: float,
        y: float,
        capacity: float,
        coverage: float = 0.0,
        node_id: Optional[str] = None,
    ) -> Node:
        if kind not in NODE_KINDS:
            raise InvalidNodeType(kind)
        node_id = node_id or self._next_id(kind)
        cold_start = None
        if kind == EDGE:
            cold_start = float(self.rng.uniform(*EDGE_COLD_START_RANGE_MS))
        node = Node(
            id=node_id,
            kind=kind,
            x=float(x),
            y=float(y),
            capacity=float(capacity),
            coverage=float(coverage),
            cold_start_delay_ms=cold_start,
        )
        self._nodes[kind][node_id] = node
        logger.info(f"Added {kind} node {node_id} at ({node.x:.1f}, {node.y:.1f})")
        return node

    def find_node(self, node_id: str) -> Optional[Node]:
        for bucket in self._nodes.values():
            node = bucket.get(node_id)
            if node is not None:
                return node
        return None

    def get_node(self, node_id: str) -> Node:
        node = self.find_node(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def list_nodes(self, kind: Optional[str] = None) -> List[Node]:
        if kind is None:
            return list(self._nodes[EDGE].values()) + list(self._nodes[CENTRAL].values())
        if kind not in NODE_KINDS:
            raise InvalidNodeType(kind)
        return list(self._nodes[kind].values())

    def move_node(self, node_id: str, x: float, y: float) -> Node:
        node = self.get_node(node_id)
        node.x, node.y = float(x), float(y)
        return node

    def remove_node(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        del self._nodes[node.kind][node_id]
        self._sever(node_id)
        logger.info(f"Removed {node.kind} node {node_id}")
        return node

    def remove_last(self, kind: str) -> Optional[Node]:
        if kind not in NODE_KINDS:
            raise InvalidNodeType(kind)
        bucket = self._nodes[kind]
        if not bucket:
            return None
        last_id = next(reversed(bucket))
        return self.remove_node(last_id)

    def clear_nodes(self, kind: str) -> int:
        removed = 0
        for node in self.list_nodes(kind):
            self.remove_node(node.id)
            removed += 1
        return removed

    def _sever(self, node_id: str) -> None:
        """Drop cached arcs and every user assignment pointing at ``node_id``."""
        self.arc_cache.evict(node_id)
        for user in self._users.values():
            if user.assigned_node == node_id:
                user.unassign()
                # The pinned node is gone; let the optimizer pick a new one.
                user.manual_connection = False

    # -------- users --------

    def add_user(self, x: float, y: float, vx: float = 0.0, vy: float = 0.0) -> User:
        user = User(id=self._next_id(USER), x=float(x), y=float(y), vx=float(vx), vy=float(vy))
        self._users[user.id] = user
        logger.debug(f"Added user {user.id} at ({user.x:.1f}, {user.y:.1f})")
        return user

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NodeNotFound(user_id)
        return user

    def list_users(self) -> List[User]:
        return list(self._users.values())

    def move_user(self, user_id: str, x: float, y: float) -> User:
        user = self.get_user(user_id)
        user.x, user.y = float(x), float(y)
        return user

    def remove_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        del self._users[user_id]
        self.arc_cache.evict(user_id)
        return user

    def clear_users(self) -> int:
        count = len(self._users)
        for user_id in list(self._users):
            self.remove_user(user_id)
        return count

    # -------- arcs --------

    def _endpoint(self, entity_id: str) -> Tuple[str, float, float]:
        node = self.find_node(entity_id)
        if node is not None:
            return node.kind, node.x, node.y
        user = self._users.get(entity_id)
        if user is not None:
            return USER, user.x, user.y
        raise NodeNotFound(entity_id)

    def arc_latency(self, a: str, b: str) -> Arc:
        kind_a, ax, ay = self._endpoint(a)
        kind_b, bx, by = self._endpoint(b)
        klass = arc_class(kind_a, kind_b)
        speed = self.arc_cache.speed(a, b, klass)
        return Arc(
            source=a,
            target=b,
            kind=klass,
            latency=distance(ax, ay, bx, by) * speed,
            speed=speed,
        )

    def arcs(self) -> List[Arc]:
        result: List[Arc] = []
        edges = self.list_nodes(EDGE)
        for i, a in enumerate(edges):
            for b in edges[i + 1:]:
                result.append(self.arc_latency(a.id, b.id))
            for c in self._nodes[CENTRAL].values():
                result.append(self.arc_latency(a.id, c.id))
        for user in self._users.values():
            target = user.assigned_node
            if target and self.find_node(target) is not None:
                result.append(self.arc_latency(user.id, target))
        return result

    # -------- derived fields --------

    def recompute_loads(self) -> None:
        counts: Dict[str, int] = {}
        for user in self._users.values():
            target = user.assigned_node
            if target:
                counts[target] = counts.get(target, 0) + 1
        for node in self.list_nodes():
            node.current_load = node_load(counts.get(node.id, 0), node.capacity)

    # -------- replicas --------

    def deploy_replica(self, node_id: str) -> Replica:
        node = self.get_node(node_id)
        if node.cold_start_delay_ms is not None:
            cold_start = node.cold_start_delay_ms
        else:
            cold_start = DEFAULT_CENTRAL_COLD_START_MS
        replica = Replica(
            id=f"{node.id}-replica-{len(node.replicas) + 1}",
            node_id=node.id,
            is_warm=node.is_warm,
            cold_start_delay_ms=cold_start,
            last_access_ms=node.last_access_ms,
        )
        node.replicas.append(replica)
        return replica

    # -------- lifecycle --------

    def clear(self) -> None:
        for bucket in self._nodes.values():
            bucket.clear()
        self._users.clear()
        self.arc_cache.clear()
        for kind in self._seq:
            self._seq[kind] = 0
        logger.info("Topology cleared")


def node_load(assigned: int, capacity: float) -> float:
    """Load percentage: min(100, assigned / (capacity / 10) × 100)."""
    if assigned <= 0:
        return 0.0
    slots = capacity / 10.0
    if slots <= 0:
        return 100.0
    return min(100.0, assigned / slots * 100.0)
