from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from edgetwin.latency import LatencyModel
from edgetwin.state import TopologyState, User


@dataclass
class Assignment:
	node_id: str
	kind: str  # edge | central
	latency_ms: int
	score: float
	distance: float = 0.0


class AssignmentPolicy(ABC):
	def __init__(self, state: TopologyState, latency_model: LatencyModel) -> None:
		self.state = state
		self.latency = latency_model

	@abstractmethod
	def assign(self, user: User, now_ms: Optional[int] = None) -> Assignment:
		"""Choose a node for one user; raises NoServerAvailable when none exists."""
		raise NotImplementedError
