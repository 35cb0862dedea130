"""
FastAPI backend for Message Unifier.

Exposes detection, import and the contact-merge workflow over HTTP. Every
endpoint reads the export directory named by its `root` parameter; nothing
is cached between requests, so the responses always reflect the files on
disk and the current decision log.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from message_unifier import __version__
from message_unifier.config import get_config
from message_unifier.filters import DateRangeFilter, remove_duplicate_messages
from message_unifier.importers import ImporterRegistry, ImportReport, run_import
from message_unifier.merge import (
    MergeCandidate,
    MergeDecisionLog,
    apply_merge_decisions,
    find_merge_candidates,
)
from message_unifier.models import Contact, Message, collect_contacts


class DecisionRequest(BaseModel):
    """Body of POST /merge/decisions.

    Either `signatures` names the contacts directly, or `root` + `group`
    picks a group from the current candidate list.
    """

    signatures: Optional[List[str]] = None
    root: Optional[str] = None
    group: Optional[int] = Field(default=None, ge=1)
    skip: bool = False
    name: Optional[str] = None
    phones: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    reason: str = ""


class _SignatureGroup:
    """Candidate stand-in for decisions that name contacts by signature."""

    def __init__(self, signatures):
        self.signatures = frozenset(signatures)


def _require_root(root: str) -> Path:
    path = Path(root).expanduser()
    if not path.is_dir():
        raise HTTPException(
            status_code=404,
            detail={"error": "root not found", "path": str(path)},
        )
    return path


def _open_decision_log() -> MergeDecisionLog:
    """Load the configured decision log; a corrupt log is a server error."""
    config = get_config()
    try:
        return MergeDecisionLog(config.decisions_path)
    except ValueError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "merge decision log is corrupt",
                "message": str(e),
                "path": config.decisions_path_str,
            },
        ) from e


def _import(root: Path, only: Optional[List[str]] = None) -> ImportReport:
    config = get_config()
    return run_import(
        root,
        context=config.new_import_context(),
        only=only,
        max_workers=config.max_workers,
    )


def _candidates(root: Path, decisions: MergeDecisionLog) -> List[MergeCandidate]:
    report = _import(root)
    return find_merge_candidates(
        collect_contacts(report.messages),
        decisions=decisions,
        threshold=get_config().name_similarity_threshold,
    )


def _contact_to_dict(contact: Contact) -> Dict[str, Any]:
    return {
        "name": contact.name,
        "phone_numbers": sorted(contact.phone_numbers),
        "emails": sorted(contact.emails),
    }


def _message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "source_application": message.source_application,
        "sender": _contact_to_dict(message.sender),
        "recipient": _contact_to_dict(message.recipient),
        "timestamp_utc": message.timestamp_utc.isoformat(),
        "direction": message.direction.value,
        "body": message.body,
        "attachments": [
            {"original_source_path": a.original_source_path, "mime_type": a.mime_type}
            for a in message.attachments
        ],
    }


def _report_to_dict(report: ImportReport) -> Dict[str, Any]:
    return {
        "root": str(report.root),
        "status": report.status.value,
        "message_count": len(report.messages),
        "duration_seconds": round(report.duration_seconds, 3),
        "outcomes": [
            {
                "source_name": o.source_name,
                "source_path": str(o.source_path),
                "message_count": o.message_count,
                "error": o.error,
            }
            for o in report.outcomes
        ],
    }


app = FastAPI(
    title="Message Unifier API",
    version=__version__,
    description="Detect, import and de-duplicate message exports from many sources.",
)

# Local dev CORS defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("MESSAGE_UNIFIER_ALLOWED_ORIGIN", "http://127.0.0.1:5173"),
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - also reports where merge decisions are kept."""
    config = get_config()
    return {
        "status": "ok",
        "version": __version__,
        "decisions_path": config.decisions_path_str,
        "decisions_path_exists": config.decisions_path.exists(),
    }


@app.get("/detect")
def detect(root: str = Query(..., description="Export directory to scan")) -> Dict[str, Any]:
    """List every (source, path) pair found under root."""
    path = _require_root(root)
    detected = ImporterRegistry().detect(path)
    return {
        "root": str(path),
        "sources": [
            {"source_name": d.source_name, "source_path": str(d.source_path)}
            for d in detected
        ],
    }


@app.get("/import")
def import_messages(
    root: str = Query(..., description="Export directory to import"),
    only: Optional[List[str]] = Query(default=None, description="Source names to import"),
    since: Optional[str] = Query(default=None),
    until: Optional[str] = Query(default=None),
    dedupe: bool = Query(default=False),
    merge: bool = Query(default=False, description="Apply confirmed merge decisions"),
    limit: int = Query(default=100, ge=0, le=10_000),
) -> Dict[str, Any]:
    """
    Import everything under root and return a summary plus a message page.

    `status` in the body is one of ok, partial, all_failed, no_sources; a
    run where nothing imported is still a 200 response.
    """
    path = _require_root(root)
    try:
        date_filter = DateRangeFilter(since, until)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": "invalid date range", "message": str(e)}) from e

    report = _import(path, only)
    messages = date_filter.apply(report.messages)
    if dedupe:
        messages = remove_duplicate_messages(messages)
    if merge:
        messages = apply_merge_decisions(messages, _open_decision_log())

    result = _report_to_dict(report)
    result["message_count"] = len(messages)
    result["messages"] = [_message_to_dict(m) for m in messages[:limit]]
    return result


@app.get("/merge/candidates")
def merge_candidates(root: str = Query(..., description="Export directory to import")) -> List[Dict[str, Any]]:
    """Duplicate-contact groups still awaiting a decision, numbered from 1."""
    path = _require_root(root)
    candidates = _candidates(path, _open_decision_log())
    return [dict(group=i, **c.to_dict()) for i, c in enumerate(candidates, 1)]


@app.get("/merge/decisions")
def merge_decisions() -> List[Dict[str, Any]]:
    """Every recorded decision, oldest first."""
    return [d.to_dict() for d in _open_decision_log()]


@app.post("/merge/decisions", status_code=201)
def record_merge_decision(request: DecisionRequest) -> Dict[str, Any]:
    """Confirm or skip one candidate group."""
    log = _open_decision_log()

    if request.signatures:
        signatures = frozenset(request.signatures)
    elif request.root and request.group is not None:
        candidates = _candidates(_require_root(request.root), log)
        if request.group > len(candidates):
            raise HTTPException(
                status_code=404,
                detail={"error": "no such candidate group", "group": request.group, "available": len(candidates)},
            )
        signatures = candidates[request.group - 1].signatures
    else:
        raise HTTPException(
            status_code=422,
            detail={"error": "either signatures or root and group are required"},
        )

    if len(signatures) < 2:
        raise HTTPException(status_code=422, detail={"error": "a decision needs at least two contacts"})

    target_ref = _SignatureGroup(signatures)
    if request.skip:
        decision = log.skip(target_ref, reason=request.reason)
    else:
        if not (request.name or "").strip():
            raise HTTPException(status_code=422, detail={"error": "name is required unless skip is set"})
        target = Contact(request.name, frozenset(request.phones), frozenset(request.emails))
        decision = log.confirm(target_ref, target, reason=request.reason)
    return decision.to_dict()
