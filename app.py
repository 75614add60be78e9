from __future__ import annotations

import os
import logging

from edgetwin.api import create_app
from edgetwin.config import load_config
from edgetwin.simulation import Simulation
from edgetwin.state import CENTRAL, EDGE

logger = logging.getLogger(__name__)

DEFAULT_EDGE_NODES = 3
DEFAULT_CENTRAL_NODES = 1
DEFAULT_USERS = 5


def seed_state(
    sim: Simulation,
    edges: int = DEFAULT_EDGE_NODES,
    centrals: int = DEFAULT_CENTRAL_NODES,
    users: int = DEFAULT_USERS,
) -> None:
    """Seed the simulation with a small topology. Safe to call multiple times."""

    # Only top up to the requested counts
    for _ in range(max(0, edges - len(sim.state.list_nodes(EDGE)))):
        sim.add_edge_node()
    for _ in range(max(0, centrals - len(sim.state.list_nodes(CENTRAL)))):
        sim.add_central_node()
    for _ in range(max(0, users - len(sim.state.list_users()))):
        sim.add_user()


def build_app():
	"""Build the Flask app around a seeded simulation."""
	logging.basicConfig(
		level=os.getenv("EDGETWIN_LOG_LEVEL", "INFO").upper(),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
	config = load_config()
	sim = Simulation(config)

	if os.getenv("EDGETWIN_SEED_TOPOLOGY", "1").lower() in {"1", "true", "yes", "on"}:
		seed_state(sim)
		logger.info(
			f"Seeded topology: {len(sim.state.list_nodes())} nodes, "
			f"{len(sim.state.list_users())} users"
		)
	else:
		logger.info("Starting with an empty topology")

	if os.getenv("EDGETWIN_AUTOSTART", "0").lower() in {"1", "true", "yes", "on"}:
		sim.start()

	return create_app(sim)


# Build app at module level (for flask run / WSGI servers)
app = build_app()


if __name__ == "__main__":
	app.run(host="0.0.0.0", port=int(os.getenv("EDGETWIN_PORT", "8080")))
