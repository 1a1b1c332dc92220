"""
Case Proceedings
================

A case moves through institutions, e.g.:

    policja -> prokuratura -> sąd rejonowy -> sąd okręgowy

Each stage is a `CaseProceeding`; `previous_proceeding_id` links a stage to
the one it was transferred from. The stage with outcome `w_toku` is the
current one.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from .auth import require_case, require_proceeding
from .db.models import CaseProceeding, ProceedingOutcome

logger = logging.getLogger(__name__)

PROCEEDING_FIELDS = (
    "stage_type", "institution_name", "case_number", "started_at", "ended_at",
    "outcome", "notes", "previous_proceeding_id", "merged_from_case_ids",
)


def _outcome_value(proceeding: Any) -> str:
    outcome = proceeding.outcome
    return getattr(outcome, "value", outcome)


def build_timeline(proceedings: Sequence[Any]) -> List[Any]:
    """
    Order stages along their transfer chain.

    Starts at the first stage without a predecessor and follows successors;
    stages not on that chain are appended in their original order.
    """
    timeline: List[Any] = []
    seen = set()

    current = next((p for p in proceedings if not p.previous_proceeding_id), None)
    while current is not None and current.id not in seen:
        timeline.append(current)
        seen.add(current.id)
        current = next((p for p in proceedings if p.previous_proceeding_id == current.id), None)

    for proceeding in proceedings:
        if proceeding.id not in seen:
            timeline.append(proceeding)
            seen.add(proceeding.id)
    return timeline


def current_proceeding(proceedings: Sequence[Any]) -> Optional[Any]:
    return next((p for p in proceedings if _outcome_value(p) == ProceedingOutcome.W_TOKU.value), None)


def completed_proceedings(proceedings: Sequence[Any]) -> List[Any]:
    return [p for p in proceedings if _outcome_value(p) != ProceedingOutcome.W_TOKU.value]


# =============================================================================
# PERSISTENCE
# =============================================================================

def list_proceedings(db: Session, case_id: str, user_id: str) -> List[CaseProceeding]:
    """Stages of a case by start date (undated last), then creation time"""
    require_case(db, case_id, user_id)
    return (
        db.query(CaseProceeding)
        .filter(CaseProceeding.case_id == case_id)
        .order_by(
            CaseProceeding.started_at.is_(None),
            CaseProceeding.started_at.asc(),
            CaseProceeding.created_at.asc(),
        )
        .all()
    )


def create_proceeding(db: Session, case_id: str, user_id: str, data: Dict[str, Any]) -> CaseProceeding:
    require_case(db, case_id, user_id)
    values = {k: v for k, v in data.items() if k in PROCEEDING_FIELDS and v is not None}
    values.setdefault("outcome", ProceedingOutcome.W_TOKU)
    proceeding = CaseProceeding(case_id=case_id, extra_data=data.get("metadata") or {}, **values)
    db.add(proceeding)
    db.commit()
    db.refresh(proceeding)
    logger.info("Created proceeding %s (%s) for case %s", proceeding.id, _outcome_value(proceeding), case_id)
    return proceeding


def update_proceeding(db: Session, proceeding_id: str, user_id: str, data: Dict[str, Any]) -> CaseProceeding:
    proceeding = require_proceeding(db, proceeding_id, user_id)
    for key, value in data.items():
        if key in PROCEEDING_FIELDS:
            setattr(proceeding, key, value)
    if "metadata" in data:
        proceeding.extra_data = data["metadata"] or {}
    db.commit()
    db.refresh(proceeding)
    return proceeding


def delete_proceeding(db: Session, proceeding_id: str, user_id: str) -> None:
    proceeding = require_proceeding(db, proceeding_id, user_id)
    # Successors lose their link rather than the whole chain
    db.query(CaseProceeding).filter(
        CaseProceeding.previous_proceeding_id == proceeding.id
    ).update({CaseProceeding.previous_proceeding_id: None}, synchronize_session=False)
    db.delete(proceeding)
    db.commit()


def close_and_transfer(
    db: Session,
    proceeding_id: str,
    user_id: str,
    outcome: str,
    next_stage: Optional[Dict[str, Any]] = None,
    today: Optional[date] = None,
) -> Dict[str, Optional[CaseProceeding]]:
    """
    Close the current stage with `outcome` and optionally open the next one.

    The next stage is linked via previous_proceeding_id, starts today unless
    a start date is given, and is always `w_toku`.
    """
    today = today or date.today()
    current = require_proceeding(db, proceeding_id, user_id)
    current.outcome = outcome
    current.ended_at = today

    created = None
    if next_stage:
        values = {k: v for k, v in next_stage.items() if k in PROCEEDING_FIELDS and v is not None}
        values.pop("previous_proceeding_id", None)
        values["outcome"] = ProceedingOutcome.W_TOKU
        values.setdefault("started_at", today)
        created = CaseProceeding(
            case_id=current.case_id,
            previous_proceeding_id=current.id,
            extra_data=next_stage.get("metadata") or {},
            **values,
        )
        db.add(created)

    db.commit()
    db.refresh(current)
    if created is not None:
        db.refresh(created)
        logger.info("Transferred case %s from %s to %s", current.case_id, current.id, created.id)
    return {"closed": current, "created": created}


def proceedings_summary(db: Session, case_id: str, user_id: str) -> Dict[str, Any]:
    proceedings = list_proceedings(db, case_id, user_id)
    return {
        "proceedings": proceedings,
        "timeline": build_timeline(proceedings),
        "current": current_proceeding(proceedings),
        "completed": completed_proceedings(proceedings),
        "latest": proceedings[-1] if proceedings else None,
    }
