import argparse

import pandas as pd

from experiments import algorithm_sweep
from tools import plot_sweep


def test_sweep_rows_and_summary():
    rows = algorithm_sweep.run_once(
        edges=2, centrals=1, users=5, threshold=50.0, algorithm="markov", ticks=10, seed=1
    )
    assert len(rows) == 10
    assert all(r["unserved"] == 0 for r in rows)
    assert all(0 < r["average_latency"] for r in rows)

    args = argparse.Namespace(
        edges=[1, 2], thresholds=[0.0, 50.0], centrals=1, users=4,
        ticks=5, seeds=1, algorithm="linear",
    )
    df = algorithm_sweep.run(args)
    assert len(df) == 2 * 2 * 5
    summary = algorithm_sweep.summarize(df)
    assert set(summary.columns) >= {"edges", "threshold", "mean_latency", "switches"}
    assert len(summary) == 4


def test_plots_are_written(tmp_path):
    df = pd.DataFrame({
        "tick": [0, 1, 0, 1],
        "edges": [1, 1, 2, 2],
        "threshold": [50.0, 50.0, 50.0, 50.0],
        "average_latency": [400, 210, 380, 200],
        "switched": [1, 0, 2, 0],
    })
    latency_png = plot_sweep.plot_latency(df, tmp_path)
    churn_png = plot_sweep.plot_churn(df, tmp_path)
    assert latency_png.exists() and latency_png.stat().st_size > 0
    assert churn_png.exists()


class _Elapsed:
    def total_seconds(self):
        return 0.001


class _Response:
    def __init__(self, flask_response):
        self.status_code = flask_response.status_code
        self.elapsed = _Elapsed()
        self._body = flask_response.get_json()

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class _ClientSession:
    """Routes prober requests into a Flask test client."""

    def __init__(self, client):
        self.client = client

    def request(self, method, url, json=None, timeout=None):
        path = url.replace("http://twin", "", 1)
        return _Response(self.client.open(path, method=method, json=json))


def test_prober_scenario_passes_against_test_client(sim, capsys):
    from edgetwin.api import create_app
    from tools.api_health_check import TwinProber

    session = _ClientSession(create_app(sim).test_client())
    summary = TwinProber("http://twin/", session=session).run()

    assert summary == {"probes": 10, "failed": []}
    assert sim.state.list_users()[0].manual_connection is False
    assert "Probing edge twin" in capsys.readouterr().out


def test_prober_flags_wrong_status(sim):
    from edgetwin.api import create_app
    from tools.api_health_check import Probe, TwinProber

    prober = TwinProber("http://twin", session=_ClientSession(create_app(sim).test_client()))
    result = prober.probe(Probe("missing node", "GET", "/nodes/edge-1/diagnostics"))
    assert result.ok is False
    assert result.status == 404
