"""
Legal Plan Limits
=================

Per-plan quotas and feature flags of the Legal Assistant, and the
`check_legal_limits` computation used by every gated operation
(create case, save generated document, DOCX export).

A NULL limit on the subscription row means "unlimited".
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .db.models import GeneratedLegalDocument, LegalCase, LegalPlanId, Subscription
from .errors import LimitExceededError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LegalPlanLimits:
    """Static definition of a legal plan"""
    plan_id: str
    cases_limit: Optional[int]
    documents_per_month: Optional[int]
    can_export_docx: bool
    can_access_rulings: bool
    can_generate_documents: bool
    full_rag_access: bool
    price_monthly_pln: float
    features: Dict[str, bool]


LEGAL_PLANS: Dict[str, LegalPlanLimits] = {
    LegalPlanId.FREE.value: LegalPlanLimits(
        plan_id=LegalPlanId.FREE.value,
        cases_limit=2,
        documents_per_month=3,
        can_export_docx=False,
        can_access_rulings=False,
        can_generate_documents=False,
        full_rag_access=False,
        price_monthly_pln=0.0,
        features={"basic_search": True, "view_regulations": True},
    ),
    LegalPlanId.PRO_LEGAL.value: LegalPlanLimits(
        plan_id=LegalPlanId.PRO_LEGAL.value,
        cases_limit=None,
        documents_per_month=None,
        can_export_docx=True,
        can_access_rulings=True,
        can_generate_documents=True,
        full_rag_access=True,
        price_monthly_pln=29.99,
        features={
            "basic_search": True,
            "view_regulations": True,
            "view_rulings": True,
            "document_generator": True,
            "docx_export": True,
        },
    ),
    LegalPlanId.BUSINESS_LEGAL.value: LegalPlanLimits(
        plan_id=LegalPlanId.BUSINESS_LEGAL.value,
        cases_limit=None,
        documents_per_month=None,
        can_export_docx=True,
        can_access_rulings=True,
        can_generate_documents=True,
        full_rag_access=True,
        price_monthly_pln=99.99,
        features={
            "basic_search": True,
            "view_regulations": True,
            "view_rulings": True,
            "document_generator": True,
            "docx_export": True,
            "priority_support": True,
        },
    ),
}

PLAN_DISPLAY_NAMES = {
    LegalPlanId.PRO_LEGAL.value: "Legal Pro",
    LegalPlanId.BUSINESS_LEGAL.value: "Legal Business",
}


def get_plan_definition(plan_id: Optional[str]) -> LegalPlanLimits:
    return LEGAL_PLANS.get(plan_id or LegalPlanId.FREE.value, LEGAL_PLANS[LegalPlanId.FREE.value])


def get_legal_plan_limits(plan_type: Optional[str]) -> Dict[str, Optional[int]]:
    """Quota columns written to the subscription row when a plan changes"""
    if plan_type in (LegalPlanId.PRO_LEGAL.value, LegalPlanId.BUSINESS_LEGAL.value):
        return {"cases_limit": None, "documents_limit": None}
    return {"cases_limit": 2, "documents_limit": 3}


def get_plan_display_name(plan_id: Optional[str]) -> str:
    return PLAN_DISPLAY_NAMES.get(plan_id, "Darmowy")


@dataclass
class UserLegalLimits:
    plan_id: str = LegalPlanId.FREE.value
    cases_count: int = 0
    cases_limit: Optional[int] = 2
    can_create_case: bool = True
    documents_this_month: int = 0
    documents_limit: Optional[int] = 3
    can_generate_document: bool = True
    can_export_docx: bool = False
    can_generate_documents: bool = False
    full_rag_access: bool = False
    features: Dict[str, bool] = field(default_factory=lambda: {"basic_search": True, "view_regulations": True})

    def to_dict(self) -> dict:
        return asdict(self)


def _month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def check_legal_limits(db: Session, user_id: str, now: Optional[datetime] = None) -> UserLegalLimits:
    """Compute current usage against the user's legal plan"""
    subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if subscription is None:
        plan_id = LegalPlanId.FREE.value
        cases_limit, documents_limit = 2, 3
    else:
        plan_id = getattr(subscription.legal_plan_id, "value", subscription.legal_plan_id) or LegalPlanId.FREE.value
        cases_limit = subscription.legal_cases_limit
        documents_limit = subscription.legal_documents_limit

    plan = get_plan_definition(plan_id)

    cases_count = db.query(func.count(LegalCase.id)).filter(LegalCase.user_id == user_id).scalar() or 0
    documents_this_month = db.query(func.count(GeneratedLegalDocument.id)).filter(
        GeneratedLegalDocument.user_id == user_id,
        GeneratedLegalDocument.created_at >= _month_start(now),
    ).scalar() or 0

    return UserLegalLimits(
        plan_id=plan_id,
        cases_count=cases_count,
        cases_limit=cases_limit,
        can_create_case=cases_limit is None or cases_count < cases_limit,
        documents_this_month=documents_this_month,
        documents_limit=documents_limit,
        can_generate_document=documents_limit is None or documents_this_month < documents_limit,
        can_export_docx=plan.can_export_docx,
        can_generate_documents=plan.can_generate_documents,
        full_rag_access=plan.full_rag_access,
        features=dict(plan.features),
    )


def limits_display(limits: UserLegalLimits) -> dict:
    """Remaining quota and usage percentages for the UI"""
    cases_remaining = None
    cases_percent = 0.0
    if limits.cases_limit is not None:
        cases_remaining = max(0, limits.cases_limit - limits.cases_count)
        cases_percent = min(100.0, limits.cases_count / limits.cases_limit * 100) if limits.cases_limit else 100.0

    documents_remaining = None
    documents_percent = 0.0
    if limits.documents_limit is not None:
        documents_remaining = max(0, limits.documents_limit - limits.documents_this_month)
        documents_percent = (
            min(100.0, limits.documents_this_month / limits.documents_limit * 100)
            if limits.documents_limit else 100.0
        )

    return {
        "cases_remaining": cases_remaining,
        "documents_remaining": documents_remaining,
        "cases_percent_used": cases_percent,
        "documents_percent_used": documents_percent,
        "is_unlimited": limits.cases_limit is None,
        "plan_display_name": get_plan_display_name(limits.plan_id),
    }


# =============================================================================
# GUARDS
# =============================================================================

def ensure_can_create_case(db: Session, user_id: str) -> UserLegalLimits:
    limits = check_legal_limits(db, user_id)
    if not limits.can_create_case:
        logger.info("Case limit reached for user %s (%s/%s)", user_id, limits.cases_count, limits.cases_limit)
        raise LimitExceededError(f"Osiągnięto limit spraw ({limits.cases_limit}) w Twoim planie")
    return limits


def ensure_can_generate_document(db: Session, user_id: str) -> UserLegalLimits:
    limits = check_legal_limits(db, user_id)
    if not limits.can_generate_document:
        raise LimitExceededError(
            f"Osiągnięto miesięczny limit dokumentów ({limits.documents_limit}) w Twoim planie"
        )
    return limits


def ensure_can_export_docx(db: Session, user_id: str) -> UserLegalLimits:
    limits = check_legal_limits(db, user_id)
    if not limits.can_export_docx:
        raise LimitExceededError("Eksport do DOCX jest dostępny w planie Legal Pro")
    return limits
