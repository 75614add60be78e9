"""Service delay estimate for a (user, node) pair.

Total service delay D = d_com + d_proc where

    d_com  = distance × base_rate(kind) × size
    d_proc = (1 - warm) × cold_start + size × unit_processing

``size`` is a synthetic request size drawn from [100, 500] per estimate.
:meth:`LatencyModel.compute` does not touch the node; the Cold→Warm
transition is applied separately through :meth:`LatencyModel.mark_warm`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import numpy as np

from edgetwin.errors import InvalidNodeType, NodeNotFound
from edgetwin.state import CENTRAL, EDGE, Node, TopologyState, User, distance, utc_ms

logger = logging.getLogger(__name__)

REQUEST_SIZE_RANGE = (100.0, 500.0)
BASE_TRANSMISSION_RATE = {
    EDGE: 0.002,     # ms / MB / distance unit
    CENTRAL: 0.008,  # longer path to the cloud
}
UNIT_PROCESSING_TIME = {
    EDGE: 0.5,  # ms / MB
    CENTRAL: 0.5,
}
COLD_START_PENALTY_MS = 200.0
FALLBACK_LATENCY_MS = 120


@dataclass
class LatencyBreakdown:
    """Diagnostic record stored on a node after each estimate."""
    request_size: float
    distance: float
    communication_delay: float
    processing_delay: float
    is_warm_start: bool
    base_transmission_rate: float
    unit_processing_time: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LatencyEstimate:
    latency_ms: int
    breakdown: LatencyBreakdown


def round_ms(value: float) -> int:
    """Round half up to an integer millisecond."""
    return int(math.floor(value + 0.5))


class LatencyModel:
    def __init__(self, rng: Optional[np.random.Generator] = None) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample_request_size(self) -> float:
        return float(self.rng.uniform(*REQUEST_SIZE_RANGE))

    def compute(self, user: User, node: Node, request_size: Optional[float] = None) -> LatencyEstimate:
        if node.kind not in BASE_TRANSMISSION_RATE:
            raise InvalidNodeType(node.kind)
        size = self.sample_request_size() if request_size is None else float(request_size)
        dist = distance(user.x, user.y, node.x, node.y)
        base_rate = BASE_TRANSMISSION_RATE[node.kind]
        unit_proc = UNIT_PROCESSING_TIME[node.kind]

        communication = dist * base_rate * size
        cold_penalty = 0.0 if node.is_warm else COLD_START_PENALTY_MS
        processing = cold_penalty + size * unit_proc

        breakdown = LatencyBreakdown(
            request_size=size,
            distance=dist,
            communication_delay=communication,
            processing_delay=processing,
            is_warm_start=node.is_warm,
            base_transmission_rate=base_rate,
            unit_processing_time=unit_proc,
        )
        return LatencyEstimate(latency_ms=round_ms(communication + processing), breakdown=breakdown)

    def mark_warm(self, node: Node, breakdown: Optional[LatencyBreakdown], now_ms: Optional[int] = None) -> None:
        node.is_warm = True
        node.last_access_ms = utc_ms() if now_ms is None else now_ms
        if breakdown is not None:
            node.last_metrics = breakdown
        for replica in node.replicas:
            replica.is_warm = True
            replica.last_access_ms = node.last_access_ms
            if breakdown is not None:
                replica.last_metrics = breakdown.to_dict()

    def estimate(
        self,
        state: TopologyState,
        user: User,
        node_id: str,
        now_ms: Optional[int] = None,
        strict: bool = False,
    ) -> int:
        """Compute the latency to ``node_id`` and warm the node.

        An unknown ``node_id`` yields ``FALLBACK_LATENCY_MS`` so a running
        simulation never stalls on a stale id; pass ``strict=True`` to get
        :class:`NodeNotFound` instead.
        """
        node = state.find_node(node_id)
        if node is None:
            if strict:
                raise NodeNotFound(node_id)
            logger.debug(f"Latency requested for unknown node {node_id}, using fallback")
            return FALLBACK_LATENCY_MS
        result = self.compute(user, node)
        self.mark_warm(node, result.breakdown, now_ms)
        return result.latency_ms
