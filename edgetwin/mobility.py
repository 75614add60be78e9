"""Projected user paths.

Each algorithm is a deterministic step function of the current projected
position, the user's velocity and the 1-based step index; ``gravity`` also
reads the node layout. The resulting path is advisory and is never consulted
by the assignment policy.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Sequence, Tuple, TYPE_CHECKING

from edgetwin.errors import UnknownAlgorithm

if TYPE_CHECKING:
    from edgetwin.state import Node

Point = Tuple[float, float]

ALGORITHMS: Dict[str, str] = {
    "linear": "Linear Prediction",
    "kalman": "Kalman Filter",
    "markov": "Markov Chain",
    "neural": "Neural Network",
    "gravity": "Gravity Model",
}

NEURAL_W1 = 0.8
NEURAL_W2 = 0.6
NEURAL_BIAS = 0.1
EDGE_ATTRACTION = 100.0
CENTRAL_ATTRACTION = 200.0
ATTRACTION_SCALE = 0.001


@dataclass(frozen=True)
class Bounds:
    width: float
    height: float
    margin: float = 10.0

    def clamp(self, x: float, y: float) -> Point:
        return (
            max(self.margin, min(self.width - self.margin, x)),
            max(self.margin, min(self.height - self.margin, y)),
        )


@dataclass(frozen=True)
class _StepContext:
    vx: float
    vy: float
    edge_nodes: Sequence["Node"]
    central_nodes: Sequence["Node"]


StepFn = Callable[[float, float, int, _StepContext], Point]


def _linear_step(x: float, y: float, i: int, ctx: _StepContext) -> Point:
    return x + ctx.vx * i * 2, y + ctx.vy * i * 2


def _kalman_step(x: float, y: float, i: int, ctx: _StepContext) -> Point:
    # Same motion model as linear, without a noise term.
    return _linear_step(x, y, i, ctx)


def _markov_step(x: float, y: float, i: int, ctx: _StepContext) -> Point:
    if i % 3 == 0:
        return x + ctx.vx * 0.5, y + ctx.vy * 0.5
    return x + ctx.vx * 2, y + ctx.vy * 2


def _neural_step(x: float, y: float, i: int, ctx: _StepContext) -> Point:
    dx = ctx.vx * NEURAL_W1 + ctx.vy * NEURAL_W2 + NEURAL_BIAS
    dy = ctx.vy * NEURAL_W1 + ctx.vx * NEURAL_W2 + NEURAL_BIAS
    return x + dx * 2, y + dy * 2


def _attraction(x: float, y: float, nodes: Iterable["Node"], strength: float) -> Point:
    fx = fy = 0.0
    for node in nodes:
        distance = math.hypot(node.x - x, node.y - y)
        force = strength / (distance + 1)
        fx += (node.x - x) * force * ATTRACTION_SCALE
        fy += (node.y - y) * force * ATTRACTION_SCALE
    return fx, fy


def _gravity_step(x: float, y: float, i: int, ctx: _StepContext) -> Point:
    ex, ey = _attraction(x, y, ctx.edge_nodes, EDGE_ATTRACTION)
    cx, cy = _attraction(x, y, ctx.central_nodes, CENTRAL_ATTRACTION)
    return x + ctx.vx * 2 + ex + cx, y + ctx.vy * 2 + ey + cy


_STEPS: Dict[str, StepFn] = {
    "linear": _linear_step,
    "kalman": _kalman_step,
    "markov": _markov_step,
    "neural": _neural_step,
    "gravity": _gravity_step,
}


def validate_algorithm(name: str) -> str:
    if not isinstance(name, str) or name not in _STEPS:
        raise UnknownAlgorithm(name)
    return name


def predict_path(
    algorithm: str,
    x: float,
    y: float,
    vx: float,
    vy: float,
    steps: int,
    bounds: Bounds,
    edge_nodes: Sequence["Node"] = (),
    central_nodes: Sequence["Node"] = (),
) -> List[Point]:
    """Project ``steps`` future positions, clamping to ``bounds`` after each step."""
    step_fn = _STEPS.get(algorithm)
    if step_fn is None:
        raise UnknownAlgorithm(algorithm)

    ctx = _StepContext(vx=vx, vy=vy, edge_nodes=edge_nodes, central_nodes=central_nodes)
    path: List[Point] = []
    cx, cy = x, y
    for i in range(1, int(steps) + 1):
        cx, cy = step_fn(cx, cy, i, ctx)
        cx, cy = bounds.clamp(cx, cy)
        path.append((cx, cy))
    return path
