from typing import List, Optional, Tuple
from dataclasses import dataclass, field
import logging
import math

from edgetwin.errors import NoServerAvailable
from edgetwin.state import CENTRAL, EDGE, Node, TopologyState, User, distance
from edgetwin.latency import LatencyModel
from edgetwin.policy.base import Assignment, AssignmentPolicy

logger = logging.getLogger(__name__)

STABILITY_BONUS = 100.0
DISTANCE_PENALTY_WEIGHT = 0.5
SWITCHING_THRESHOLD = 50.0
# kind -> (range, weight); centrals reach further and pull harder
PROXIMITY_BONUS = {
    EDGE: (100.0, 1.0),
    CENTRAL: (150.0, 2.0),
}


@dataclass
class PlacementOutcome:
    """Per-tick summary of what the optimizer did."""
    assigned: int = 0
    switched: int = 0
    held: int = 0
    unserved: int = 0
    skipped: int = 0
    switches: List[Tuple[str, Optional[str], str]] = field(default_factory=list)


def proximity_bonus(kind: str, dist: float) -> float:
    reach, weight = PROXIMITY_BONUS[kind]
    if dist >= reach:
        return 0.0
    return (reach - dist) * weight


class GreedyHysteresisPolicy(AssignmentPolicy):
    def __init__(
        self,
        state: TopologyState,
        latency_model: LatencyModel,
        switching_threshold: float = SWITCHING_THRESHOLD,
    ) -> None:
        super().__init__(state, latency_model)
        self.switching_threshold = switching_threshold

    def _score(self, user: User, node: Node, now_ms: Optional[int]) -> Assignment:
        dist = distance(user.x, user.y, node.x, node.y)
        estimate = self.latency.compute(user, node)
        self.latency.mark_warm(node, estimate.breakdown, now_ms)

        stability = STABILITY_BONUS if user.assigned_node == node.id else 0.0
        score = (
            estimate.latency_ms
            + dist * DISTANCE_PENALTY_WEIGHT
            - stability
            - proximity_bonus(node.kind, dist)
        )
        return Assignment(
            node_id=node.id,
            kind=node.kind,
            latency_ms=estimate.latency_ms,
            score=score,
            distance=dist,
        )

    def candidates(self, user: User, now_ms: Optional[int] = None) -> List[Assignment]:
        return [self._score(user, node, now_ms) for node in self.state.list_nodes()]

    def select(self, user: User, candidates: List[Assignment]) -> Tuple[Optional[Assignment], bool]:
        """Pick the minimum score, keeping the current node unless the gain clears the threshold.

        Returns the chosen candidate and whether hysteresis overrode the minimum.
        """
        best: Optional[Assignment] = None
        best_score = math.inf
        current: Optional[Assignment] = None
        for cand in candidates:
            if cand.node_id == user.assigned_node:
                current = cand
            if cand.score < best_score:
                best_score = cand.score
                best = cand

        if current is not None and best is not None and best is not current:
            if current.score - best.score < self.switching_threshold:
                return current, True
        return best, False

    def assign(self, user: User, now_ms: Optional[int] = None) -> Assignment:
        chosen, _ = self.select(user, self.candidates(user, now_ms))
        if chosen is None:
            raise NoServerAvailable(user.id)
        return chosen

    def optimize(self, now_ms: Optional[int] = None, auto_assignment: bool = True) -> PlacementOutcome:
        outcome = PlacementOutcome()
        for user in self.state.list_users():
            if user.manual_connection or not auto_assignment:
                outcome.skipped += 1
                continue

            previous = user.assigned_node
            chosen, held = self.select(user, self.candidates(user, now_ms))
            if chosen is None:
                if previous is not None:
                    logger.debug(f"No server available for {user.id}, releasing {previous}")
                user.unassign()
                outcome.unserved += 1
                continue

            user.assign(chosen.node_id, chosen.kind)
            user.latency = chosen.latency_ms
            outcome.assigned += 1
            if held:
                outcome.held += 1
            if previous != chosen.node_id:
                outcome.switched += 1
                outcome.switches.append((user.id, previous, chosen.node_id))
                logger.debug(f"User {user.id} switched {previous} -> {chosen.node_id} (score={chosen.score:.1f})")

        self.state.recompute_loads()
        return outcome
