"""
Contact merge engine.

Finds groups of contacts that probably denote one person, records the
operator's decision for each group, and rewrites message participants
according to confirmed decisions.
"""

from message_unifier.merge.candidates import (
    MergeCandidate,
    find_merge_candidates,
    names_compatible,
)
from message_unifier.merge.decisions import MergeDecision, MergeDecisionLog
from message_unifier.merge.engine import apply_merge_decisions, resolve_mapping

__all__ = [
    "MergeCandidate",
    "find_merge_candidates",
    "names_compatible",
    "MergeDecision",
    "MergeDecisionLog",
    "apply_merge_decisions",
    "resolve_mapping",
]
