import os
import sys
from pathlib import Path

os.environ.setdefault("EDGETWIN_AUTOSTART", "0")
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from edgetwin.config import SimulationConfig
from edgetwin.latency import LatencyModel
from edgetwin.policy.greedy import GreedyHysteresisPolicy
from edgetwin.simulation import Simulation
from edgetwin.state import TopologyState


class FixedRng:
    """Stand-in for numpy's Generator that always returns the same fraction of a range."""

    def __init__(self, fraction: float = 0.5) -> None:
        self.fraction = fraction

    def uniform(self, low=0.0, high=1.0, size=None):
        return low + (high - low) * self.fraction

    def random(self, size=None):
        return self.fraction


@pytest.fixture
def fixed_rng():
    # request size 300, edge cold start 300, zero initial velocity
    return FixedRng(0.5)


@pytest.fixture
def topology(fixed_rng):
    return TopologyState(fixed_rng)


@pytest.fixture
def policy(topology, fixed_rng):
    return GreedyHysteresisPolicy(topology, LatencyModel(fixed_rng))


@pytest.fixture
def sim(fixed_rng):
    config = SimulationConfig(viewport_width=1000, viewport_height=1000)
    clock = {"now": 1_000}
    simulation = Simulation(config, rng=fixed_rng, clock=lambda: clock["now"])
    simulation.test_clock = clock
    try:
        yield simulation
    finally:
        simulation.stop()
