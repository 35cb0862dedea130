"""
Applying confirmed merge decisions to messages.

Decisions are resolved transitively in log order and later decisions win:

    A -> B, then B -> C         A and B both resolve to C
    A -> B, then A -> D         A resolves to D

A decision's own target is never rewritten by that decision. After each
decision the mapping is closed (no target is also a source), which is what
makes applying it twice the same as applying it once.
"""

import logging
from typing import Dict, Iterable, List, Union

from message_unifier.merge.decisions import MergeDecision, MergeDecisionLog
from message_unifier.models import Contact, Message

logger = logging.getLogger(__name__)

Decisions = Union[MergeDecisionLog, Iterable[MergeDecision]]


def resolve_mapping(decisions: Decisions) -> Dict[str, Contact]:
    """
    Collapse confirmed decisions into signature -> canonical contact.

    Skipped decisions are ignored.

    Examples:
        Decisions A->B then B->C give {"a": C, "b": C}.
    """
    mapping: Dict[str, str] = {}
    targets: Dict[str, Contact] = {}

    for decision in decisions:
        target = decision.target_contact
        if target is None:
            continue
        target_sig = target.signature
        targets[target_sig] = target
        sources = decision.source_set - {target_sig}

        # Anything already pointing at one of these sources follows it
        for key, value in mapping.items():
            if value in sources:
                mapping[key] = target_sig
        for source in sources:
            mapping[source] = target_sig
        mapping.pop(target_sig, None)

    return {source: targets[target_sig] for source, target_sig in mapping.items()}


def canonical_signature(signature: str, mapping: Dict[str, Contact]) -> str:
    target = mapping.get(signature)
    return target.signature if target is not None else signature


def apply_merge_decisions(messages: Iterable[Message], decisions: Decisions) -> List[Message]:
    """
    Rewrite senders and recipients that a confirmed decision superseded.

    Every other field is preserved. Messages that reference no superseded
    contact are returned unchanged (the same objects).
    """
    mapping = resolve_mapping(decisions)
    if not mapping:
        return list(messages)

    rewritten = 0
    result = []
    for message in messages:
        sender = mapping.get(message.sender.signature, message.sender)
        recipient = mapping.get(message.recipient.signature, message.recipient)
        updated = message.with_contacts(sender, recipient)
        if updated is not message:
            rewritten += 1
        result.append(updated)

    logger.info(f"Applied {len(mapping)} contact merge(s); rewrote {rewritten} message(s)")
    return result
