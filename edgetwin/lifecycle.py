"""Warm/cold lifecycle for serving nodes."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from edgetwin.state import Node, utc_ms

logger = logging.getLogger(__name__)

WARM_TIMEOUT_MS = 30000
SWEEP_INTERVAL_MS = 5000


class WarmStateSweeper:
	"""
	Demotes nodes that have been idle past a timeout.

	Cold -> Warm happens on any latency estimate touching the node (see
	LatencyModel.mark_warm). Warm -> Cold happens here once
	``now - last_access > timeout``; the last access time is cleared.
	"""

	def __init__(self, timeout_ms: int = WARM_TIMEOUT_MS) -> None:
		self.timeout_ms = timeout_ms

	def is_expired(self, node: Node, now_ms: int) -> bool:
		if not node.is_warm or node.last_access_ms is None:
			return False
		return (now_ms - node.last_access_ms) > self.timeout_ms

	def sweep(self, nodes: Iterable[Node], now_ms: Optional[int] = None) -> List[str]:
		"""Demote expired nodes and return their ids."""
		now_ms = utc_ms() if now_ms is None else now_ms
		demoted: List[str] = []
		for node in nodes:
			if not self.is_expired(node, now_ms):
				continue
			node.is_warm = False
			node.last_access_ms = None
			for replica in node.replicas:
				replica.is_warm = False
				replica.last_access_ms = None
			demoted.append(node.id)
		if demoted:
			logger.debug(f"Demoted {len(demoted)} idle node(s) to cold: {', '.join(demoted)}")
		return demoted
