"""Headless sweep: average latency and churn per topology size.

Runs the simulation in-process (no drivers, explicit virtual clock) for every
combination of edge-node count and switching threshold and writes one row per
tick to ``reports/sweep.csv``. Prediction algorithm is recorded for reference;
it does not influence assignment.
"""

from __future__ import annotations

import argparse
import pathlib
import sys
from typing import Any, Dict, List

import numpy as np
import pandas as pd

root = pathlib.Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
	sys.path.insert(0, str(root))

from edgetwin.config import SimulationConfig  # noqa: E402
from edgetwin.simulation import Simulation  # noqa: E402

TICK_MS = 100


def run_once(
	edges: int,
	centrals: int,
	users: int,
	threshold: float,
	algorithm: str,
	ticks: int,
	seed: int,
) -> List[Dict[str, Any]]:
	config = SimulationConfig(algorithm=algorithm, seed=seed)
	clock = {"now": 0}
	sim = Simulation(config, rng=np.random.default_rng(seed), clock=lambda: clock["now"])
	sim.policy.switching_threshold = threshold
	for _ in range(edges):
		sim.add_edge_node()
	for _ in range(centrals):
		sim.add_central_node()
	for _ in range(users):
		sim.add_user()

	rows: List[Dict[str, Any]] = []
	for t in range(ticks):
		clock["now"] = t * TICK_MS
		outcome = sim.tick()
		if clock["now"] % config.sweep_interval_ms == 0:
			sim.sweep()
		loads = [n.current_load for n in sim.state.list_nodes()]
		rows.append({
			"tick": t,
			"edges": edges,
			"centrals": centrals,
			"users": users,
			"threshold": threshold,
			"algorithm": algorithm,
			"seed": seed,
			"average_latency": sim.average_latency(),
			"switched": outcome.switched,
			"held": outcome.held,
			"unserved": outcome.unserved,
			"max_load": max(loads) if loads else 0.0,
		})
	return rows


def run(args: argparse.Namespace) -> pd.DataFrame:
	rows: List[Dict[str, Any]] = []
	for edges in args.edges:
		for threshold in args.thresholds:
			for seed in range(args.seeds):
				rows.extend(run_once(
					edges, args.centrals, args.users, threshold,
					args.algorithm, args.ticks, seed,
				))
	return pd.DataFrame(rows)


def summarize(df: pd.DataFrame) -> pd.DataFrame:
	return (
		df.groupby(["edges", "threshold"])
		.agg(
			mean_latency=("average_latency", "mean"),
			p95_latency=("average_latency", lambda s: s.quantile(0.95)),
			switches=("switched", "sum"),
			held=("held", "sum"),
			max_load=("max_load", "max"),
		)
		.reset_index()
	)


def main() -> None:
	parser = argparse.ArgumentParser(description=__doc__)
	parser.add_argument("--edges", type=int, nargs="+", default=[1, 3, 6])
	parser.add_argument("--thresholds", type=float, nargs="+", default=[0.0, 50.0, 150.0])
	parser.add_argument("--centrals", type=int, default=1)
	parser.add_argument("--users", type=int, default=20)
	parser.add_argument("--ticks", type=int, default=300)
	parser.add_argument("--seeds", type=int, default=3)
	parser.add_argument("--algorithm", default="linear")
	parser.add_argument("--out", default="reports/sweep.csv")
	args = parser.parse_args()

	df = run(args)
	out = pathlib.Path(args.out)
	out.parent.mkdir(parents=True, exist_ok=True)
	df.to_csv(out, index=False)
	print(summarize(df).to_string(index=False))
	print(f"\nWrote {len(df)} rows to {out}")


if __name__ == "__main__":
	main()
