from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from flask import Flask, jsonify, request

from edgetwin.errors import ConfigError, EdgeTwinError, InvalidNodeType, NodeNotFound
from edgetwin.simulation import Simulation

logger = logging.getLogger(__name__)


class BadRequest(EdgeTwinError):
	pass


def create_app(sim: Simulation) -> Flask:
	app = Flask(__name__)
	# Store the simulation in app config so it's accessible in all endpoints
	app.config['simulation'] = sim

	def _body() -> Dict[str, Any]:
		body = request.get_json(silent=True)
		if body is None:
			return {}
		if not isinstance(body, dict):
			raise BadRequest("request body must be a JSON object")
		return body

	def _position(body: Dict[str, Any]) -> Tuple[float, float]:
		try:
			return float(body["x"]), float(body["y"])
		except (KeyError, TypeError, ValueError):
			raise BadRequest("body must contain numeric 'x' and 'y'")

	@app.errorhandler(NodeNotFound)
	def _not_found(e: NodeNotFound) -> Any:
		return jsonify({"error": str(e), "type": "NodeNotFound"}), 404

	@app.errorhandler(EdgeTwinError)
	def _bad_request(e: EdgeTwinError) -> Any:
		return jsonify({"error": str(e), "type": type(e).__name__}), 400

	@app.get("/snapshot")
	def snapshot() -> Any:
		return jsonify(sim.snapshot())

	@app.get("/metrics/latency")
	def latency_metrics() -> Any:
		return jsonify({
			"average_latency": sim.average_latency(),
			"average_arc_latency": sim.average_arc_latency(),
			"users": sim.user_latencies(),
		})

	@app.get("/nodes/<node_id>/diagnostics")
	def node_diagnostics(node_id: str) -> Any:
		return jsonify(sim.node_diagnostics(node_id))

	@app.post("/nodes")
	def add_node() -> Any:
		body = _body()
		kind = body.get("type")
		if kind not in ("edge", "central"):
			raise InvalidNodeType(kind)
		kwargs = {}
		for key in ("capacity", "coverage", "x", "y"):
			if body.get(key) is not None:
				try:
					kwargs[key] = float(body[key])
				except (TypeError, ValueError):
					raise BadRequest(f"'{key}' must be numeric")
		if kwargs.get("capacity", 1.0) <= 0 or kwargs.get("coverage", 0.0) < 0:
			raise ConfigError("capacity must be positive and coverage non-negative")
		node = sim.add_node(kind, **kwargs)
		return jsonify(node.to_dict()), 201

	@app.delete("/nodes/<node_id>")
	def remove_node(node_id: str) -> Any:
		node = sim.remove_node(node_id)
		return jsonify({"status": "ok", "removed": node.id})

	@app.post("/nodes/<kind>/remove-last")
	def remove_last(kind: str) -> Any:
		node = sim.remove_last(kind)
		return jsonify({"status": "ok", "removed": node.id if node else None})

	@app.put("/nodes/<node_id>/position")
	def move_node(node_id: str) -> Any:
		x, y = _position(_body())
		return jsonify(sim.move_node(node_id, x, y).to_dict())

	@app.post("/users")
	def add_user() -> Any:
		body = _body()
		x = y = None
		if "x" in body or "y" in body:
			x, y = _position(body)
		user = sim.add_user(x, y)
		return jsonify(user.to_dict()), 201

	@app.put("/users/<user_id>/position")
	def move_user(user_id: str) -> Any:
		x, y = _position(_body())
		return jsonify(sim.move_user(user_id, x, y).to_dict())

	@app.delete("/users/<user_id>")
	def delete_user(user_id: str) -> Any:
		user = sim.delete_user(user_id)
		return jsonify({"status": "ok", "removed": user.id})

	@app.post("/users/<user_id>/connect")
	def connect_user(user_id: str) -> Any:
		body = _body()
		node_id = body.get("node_id")
		if not node_id:
			raise BadRequest("missing 'node_id' field")
		user = sim.connect_user(user_id, node_id, body.get("node_type"))
		return jsonify(user.to_dict())

	@app.post("/users/<user_id>/disconnect")
	def disconnect_user(user_id: str) -> Any:
		return jsonify(sim.disconnect_user(user_id).to_dict())

	@app.post("/users/reset-overrides")
	def reset_overrides() -> Any:
		return jsonify({"status": "ok", "released": sim.reset_all_manual_overrides()})

	@app.post("/reset")
	def reset() -> Any:
		sim.clear_all()
		logger.info("Simulation reset via API")
		return jsonify({"status": "ok"})

	@app.put("/settings")
	def settings() -> Any:
		# one atomic update; a 400 leaves every setting as it was
		body = _body()
		if body:
			sim.update_config(**body)
		return jsonify(sim.config.to_dict())

	@app.post("/simulation/start")
	def start() -> Any:
		sim.start()
		return jsonify({"status": "ok", "running": sim.is_running})

	@app.post("/simulation/stop")
	def stop() -> Any:
		sim.stop()
		return jsonify({"status": "ok", "running": sim.is_running})

	@app.post("/simulation/step")
	def step() -> Any:
		outcome = sim.tick()
		return jsonify({
			"tick": sim.tick_count,
			"assigned": outcome.assigned,
			"switched": outcome.switched,
			"held": outcome.held,
			"unserved": outcome.unserved,
			"skipped": outcome.skipped,
			"average_latency": sim.average_latency(),
		})

	return app

