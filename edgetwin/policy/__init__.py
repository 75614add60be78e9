"""User-to-node assignment policies."""

from edgetwin.policy.base import Assignment, AssignmentPolicy
from edgetwin.policy.greedy import GreedyHysteresisPolicy, PlacementOutcome

__all__ = ['Assignment', 'AssignmentPolicy', 'GreedyHysteresisPolicy', 'PlacementOutcome']
