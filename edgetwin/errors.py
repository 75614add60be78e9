"""Error taxonomy for the edge twin."""

from __future__ import annotations


class EdgeTwinError(Exception):
	"""Base class for all edge twin errors."""


class InvalidNodeType(EdgeTwinError):
	"""Raised when a node class is not one of the supported kinds."""

	def __init__(self, kind: object) -> None:
		super().__init__(f"node type must be 'edge' or 'central', got {kind!r}")
		self.kind = kind


class NodeNotFound(EdgeTwinError, KeyError):
	"""Raised when an id does not exist in the topology."""

	def __init__(self, node_id: object) -> None:
		super().__init__(f"node with id {node_id!r} does not exist")
		self.node_id = node_id

	def __str__(self) -> str:
		return str(self.args[0])


class NoServerAvailable(EdgeTwinError):
	"""No edge or central node can serve a user.

	Raised by single-user assignment; the per-tick optimizer degrades to the
	sentinel latency instead.
	"""

	def __init__(self, user_id: object) -> None:
		super().__init__(f"no server available for user {user_id!r}")
		self.user_id = user_id


class UnknownAlgorithm(EdgeTwinError, ValueError):
	def __init__(self, name: object) -> None:
		super().__init__(f"unknown prediction algorithm: {name!r}")
		self.name = name


class ConfigError(EdgeTwinError, ValueError):
	pass
