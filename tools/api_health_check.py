#!/usr/bin/env python3
"""
Smoke-probe a running edge twin over HTTP.

Walks one scripted scenario (add a node and a user, tick, pin the user,
read the snapshot, then poke the error paths) and reports each call's
status and round-trip time. Exit status is non-zero if any probe fails.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests


@dataclass
class Probe:
    label: str
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    status: int = 200
    keys: List[str] = field(default_factory=list)
    check: Optional[Callable[[Dict[str, Any]], bool]] = None


@dataclass
class ProbeResult:
    label: str
    ok: bool
    status: Optional[int] = None
    elapsed_ms: float = 0.0
    notes: List[str] = field(default_factory=list)
    data: Optional[Dict[str, Any]] = None


class TwinProber:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.results: List[ProbeResult] = []

    def probe(self, p: Probe) -> ProbeResult:
        try:
            resp = self.session.request(p.method, self.base_url + p.path, json=p.body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            return self._record(ProbeResult(p.label, ok=False, notes=[f"{type(e).__name__}: {e}"]))

        result = ProbeResult(p.label, ok=resp.status_code == p.status, status=resp.status_code)
        result.elapsed_ms = resp.elapsed.total_seconds() * 1000
        if not result.ok:
            result.notes.append(f"wanted HTTP {p.status}")
        try:
            result.data = resp.json()
        except ValueError:
            result.notes.append("body is not JSON")
            return self._record(result)

        missing = [k for k in p.keys if k not in result.data]
        if missing:
            result.ok = False
            result.notes.append(f"missing keys: {', '.join(missing)}")
        if p.check is not None and not p.check(result.data):
            result.ok = False
            result.notes.append("content check failed")
        return self._record(result)

    def _record(self, result: ProbeResult) -> ProbeResult:
        self.results.append(result)
        mark = "ok " if result.ok else "FAIL"
        detail = f" ({'; '.join(result.notes)})" if result.notes else ""
        print(f"[{mark}] {result.label:<28} HTTP {result.status} {result.elapsed_ms:7.1f}ms{detail}")
        return result

    def run(self) -> Dict[str, Any]:
        print(f"Probing edge twin at {self.base_url}")
        node = self.probe(Probe("add edge node", "POST", "/nodes", {"type": "edge"}, 201, ["id", "kind"]))
        user = self.probe(Probe("add user", "POST", "/users", {}, 201, ["id", "latency"]))
        self.probe(Probe("single tick", "POST", "/simulation/step", keys=["tick", "average_latency"]))

        if node.data and user.data and "id" in node.data and "id" in user.data:
            self.probe(Probe(
                "pin user to node", "POST", f"/users/{user.data['id']}/connect",
                {"node_id": node.data["id"], "node_type": "edge"},
                check=lambda d: d.get("manual_connection") is True,
            ))
            self.probe(Probe("release overrides", "POST", "/users/reset-overrides", keys=["released"]))

        self.probe(Probe(
            "snapshot", "GET", "/snapshot",
            keys=["edge_nodes", "central_nodes", "users", "arcs", "average_latency"],
            check=lambda d: isinstance(d.get("users"), list),
        ))
        self.probe(Probe("latency metrics", "GET", "/metrics/latency", keys=["average_latency", "users"]))
        self.probe(Probe("reject unknown node type", "POST", "/nodes", {"type": "satellite"}, 400, ["error"]))
        self.probe(Probe("reject unknown node id", "DELETE", "/nodes/does-not-exist", status=404))
        self.probe(Probe("reject unknown algorithm", "PUT", "/settings", {"algorithm": "teleport"}, 400))

        failed = [r.label for r in self.results if not r.ok]
        return {"probes": len(self.results), "failed": failed}


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("base_url", nargs="?", default="http://127.0.0.1:8080")
    parser.add_argument("--timeout", type=float, default=10.0)
    args = parser.parse_args()

    summary = TwinProber(args.base_url, timeout=args.timeout).run()
    print(json.dumps(summary, indent=2))
    sys.exit(1 if summary["failed"] else 0)


if __name__ == "__main__":
    main()
