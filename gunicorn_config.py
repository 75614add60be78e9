"""Gunicorn configuration for the edge twin server."""
import os
import sys

# The simulation lives in process memory, so a single worker owns it;
# threads let the drivers and request handlers share that worker.
bind = f"0.0.0.0:{os.getenv('EDGETWIN_PORT', '8080')}"
workers = 1
threads = int(os.getenv("EDGETWIN_THREADS", "4"))
timeout = 120
worker_class = "gthread"
preload_app = False  # background threads must start inside the worker


def post_worker_init(worker):
    """Report the topology each worker starts with."""
    app = getattr(worker, "wsgi", None)
    sim = app.config.get("simulation") if app is not None and hasattr(app, "config") else None
    if sim is None:
        print(f"[Worker {worker.pid}] WARNING: No simulation found in app.config", file=sys.stderr, flush=True)
        return
    print(
        f"[Worker {worker.pid}] Simulation ready with {len(sim.state.list_nodes())} nodes, "
        f"{len(sim.state.list_users())} users (running={sim.is_running})",
        file=sys.stderr,
        flush=True,
    )
