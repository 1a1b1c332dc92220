"""
Database Package - SQLAlchemy
=============================

Persistence layer for notebooks, legal cases and subscriptions.
"""

from .models import (
    Base,
    User, Subscription,
    Notebook, Source, Note, NotebookChatHistory,
    LegalCase, CaseProceeding, CaseParty, CaseDocument, LegalChatHistory,
    LegalRegulation, LegalRuling, LegalTemplate, GeneratedLegalDocument, LegalImportLog,
    PlanId, LegalPlanId, SubscriptionStatus, SourceType, ProcessingStatus, GenerationStatus,
    LegalDocumentType, LegalCategory, CaseStatus, ProceedingStageType, ProceedingOutcome, PartyType,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Users & billing
    "User", "Subscription",
    # Notebooks
    "Notebook", "Source", "Note", "NotebookChatHistory",
    # Legal cases
    "LegalCase", "CaseProceeding", "CaseParty", "CaseDocument", "LegalChatHistory",
    # Library
    "LegalRegulation", "LegalRuling", "LegalTemplate", "GeneratedLegalDocument", "LegalImportLog",
    # Enums
    "PlanId", "LegalPlanId", "SubscriptionStatus", "SourceType", "ProcessingStatus", "GenerationStatus",
    "LegalDocumentType", "LegalCategory", "CaseStatus", "ProceedingStageType", "ProceedingOutcome", "PartyType",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
