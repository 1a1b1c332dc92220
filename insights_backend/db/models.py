"""
SQLAlchemy Models for Database
==============================

Schema for the InsightsLM service:
- Users and subscriptions (notebook plan + legal plan)
- Notebooks with sources, notes and chat history
- Legal cases with proceedings, parties, documents and chat history
- Shared legal library (regulations, rulings, templates)
- Generated legal documents and library import logs

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, Date, DateTime, Enum, ForeignKey,
    BigInteger, Index, JSON
)
from sqlalchemy.orm import relationship, declarative_base
import uuid

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    # Persist the enum *value* (e.g. "w_toku") so plain strings from the API bind directly
    return [member.value for member in enum_cls]


def ValueEnum(enum_cls):
    return Enum(enum_cls, values_callable=_enum_values, native_enum=False, length=50)


# =============================================================================
# ENUMS
# =============================================================================

class PlanId(str, enum.Enum):
    """Notebook product plan"""
    FREE = "free"
    PRO = "pro"


class LegalPlanId(str, enum.Enum):
    """Legal Assistant plan"""
    FREE = "free"
    PRO_LEGAL = "pro_legal"
    BUSINESS_LEGAL = "business_legal"


class SubscriptionStatus(str, enum.Enum):
    """Stripe subscription status"""
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"


class SourceType(str, enum.Enum):
    PDF = "pdf"
    TEXT = "text"
    WEBSITE = "website"
    YOUTUBE = "youtube"
    AUDIO = "audio"


class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class LegalDocumentType(str, enum.Enum):
    """Rodzaj dokumentu prawnego"""
    USTAWA = "ustawa"
    ROZPORZADZENIE = "rozporzadzenie"
    KODEKS = "kodeks"
    ORZECZENIE = "orzeczenie"
    TEMPLATE = "template"
    UMOWA = "umowa"
    POZEW = "pozew"
    WNIOSEK = "wniosek"
    ODWOLANIE = "odwolanie"
    WEZWANIE = "wezwanie"
    PISMO = "pismo"
    SKARGA = "skarga"


class LegalCategory(str, enum.Enum):
    """Dziedzina prawa"""
    CYWILNE = "cywilne"
    ADMINISTRACYJNE = "administracyjne"
    PRACOWNICZE = "pracownicze"
    KONSUMENCKIE = "konsumenckie"
    RODZINNE = "rodzinne"
    SPADKOWE = "spadkowe"
    NIERUCHOMOSCI = "nieruchomosci"
    UMOWY = "umowy"
    KARNE = "karne"
    WYKROCZENIA = "wykroczenia"


class CaseStatus(str, enum.Enum):
    """Legal case lifecycle status"""
    ACTIVE = "active"
    ARCHIVED = "archived"
    WON = "won"
    LOST = "lost"
    SETTLED = "settled"
    DISMISSED = "dismissed"


class ProceedingStageType(str, enum.Enum):
    """Institution handling a stage of the case"""
    POLICJA = "policja"
    PROKURATURA = "prokuratura"
    SAD_REJONOWY = "sad_rejonowy"
    SAD_OKREGOWY = "sad_okregowy"
    SAD_APELACYJNY = "sad_apelacyjny"
    SAD_NAJWYZSZY = "sad_najwyzszy"
    ORGAN_ADMINISTRACYJNY = "organ_administracyjny"
    WSA = "wsa"
    NSA = "nsa"
    KOMORNIK = "komornik"
    MEDIACJA = "mediacja"
    ARBITRAZ = "arbitraz"
    INNE = "inne"


class ProceedingOutcome(str, enum.Enum):
    """Outcome of a proceeding stage"""
    W_TOKU = "w_toku"
    PRZEKAZANO = "przekazano"
    UMORZONO = "umorzono"
    WYROK_KORZYSTNY = "wyrok_korzystny"
    WYROK_NIEKORZYSTNY = "wyrok_niekorzystny"
    UGODA = "ugoda"
    APELACJA = "apelacja"
    KASACJA = "kasacja"
    ZAKONCZONE = "zakonczone"


class PartyType(str, enum.Enum):
    """Role of a party in proceedings"""
    POWOD = "powod"
    POZWANY = "pozwany"
    WNIOSKODAWCA = "wnioskodawca"
    UCZESTNIK = "uczestnik"
    OSKARZYCIEL = "oskarzyciel"
    OSKARZONY = "oskarzony"
    POKRZYWDZONY = "pokrzywdzony"
    SWIADEK = "swiadek"
    BIEGLY = "biegly"
    INTERWENIENT = "interwenient"
    KURATOR = "kurator"
    PELNOMOCNIK = "pelnomonik"


# =============================================================================
# USERS & BILLING
# =============================================================================

class User(Base):
    """User account with profile / użytkownik"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(1000), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="user", uselist=False, cascade="all, delete-orphan")
    notebooks = relationship("Notebook", back_populates="user", cascade="all, delete-orphan")
    legal_cases = relationship("LegalCase", back_populates="user", cascade="all, delete-orphan")
    generated_documents = relationship("GeneratedLegalDocument", back_populates="user", cascade="all, delete-orphan")
    legal_chat_messages = relationship("LegalChatHistory", back_populates="user", cascade="all, delete-orphan")


class Subscription(Base):
    """Plan and Stripe state for a user / subskrypcja"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Notebook product
    plan_id = Column(ValueEnum(PlanId), default=PlanId.FREE, nullable=False)
    status = Column(ValueEnum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False)

    # Legal Assistant product
    legal_plan_id = Column(ValueEnum(LegalPlanId), default=LegalPlanId.FREE, nullable=False)
    legal_cases_limit = Column(Integer, nullable=True, default=2)  # NULL = unlimited
    legal_documents_limit = Column(Integer, nullable=True, default=3)  # NULL = unlimited
    legal_documents_generated = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="subscription")


# =============================================================================
# NOTEBOOKS
# =============================================================================

class Notebook(Base):
    """Research notebook / notatnik"""
    __tablename__ = "notebooks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False, default="Untitled notebook")
    description = Column(Text, nullable=True)
    icon = Column(String(20), default="📝")
    color = Column(String(50), default="gray")
    generation_status = Column(ValueEnum(GenerationStatus), default=GenerationStatus.PENDING)

    # Audio overview (signed URL with expiry)
    audio_overview_url = Column(Text, nullable=True)
    audio_file_path = Column(String(1000), nullable=True)
    audio_url_expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="notebooks")
    sources = relationship("Source", back_populates="notebook", cascade="all, delete-orphan")
    notes = relationship("Note", back_populates="notebook", cascade="all, delete-orphan")
    chat_messages = relationship("NotebookChatHistory", back_populates="notebook", cascade="all, delete-orphan")


class Source(Base):
    """Source document attached to a notebook / źródło"""
    __tablename__ = "sources"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    notebook_id = Column(String(36), ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    type = Column(ValueEnum(SourceType), nullable=False)
    url = Column(String(2000), nullable=True)
    file_path = Column(String(1000), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    content = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    processing_status = Column(ValueEnum(ProcessingStatus), default=ProcessingStatus.PENDING)
    extra_data = Column("metadata", JSONB, default=dict)  # 'metadata' attribute is reserved by SQLAlchemy
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    notebook = relationship("Notebook", back_populates="sources")


class Note(Base):
    """Note saved in a notebook / notatka"""
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    notebook_id = Column(String(36), ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False, default="")
    source_type = Column(String(50), default="user")  # user | ai_response
    extracted_text = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    notebook = relationship("Notebook", back_populates="notes")


class NotebookChatHistory(Base):
    """Notebook chat message row (written by the app and the workflow engine)"""
    __tablename__ = "n8n_chat_histories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(JSONB, nullable=False)  # {"type": "human"|"ai", "content": ...}
    created_at = Column(DateTime, default=datetime.utcnow)

    notebook = relationship("Notebook", back_populates="chat_messages")


# =============================================================================
# LEGAL CASES
# =============================================================================

class LegalCase(Base):
    """User's legal matter / sprawa"""
    __tablename__ = "legal_cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(ValueEnum(LegalCategory), nullable=False)
    status = Column(ValueEnum(CaseStatus), default=CaseStatus.ACTIVE, nullable=False)
    case_number = Column(String(100), nullable=True)
    current_stage = Column(ValueEnum(ProceedingStageType), nullable=True)
    user_role = Column(ValueEnum(PartyType), nullable=True)
    opponent_name = Column(String(255), nullable=True)
    opponent_type = Column(String(100), nullable=True)
    parent_case_id = Column(String(36), ForeignKey("legal_cases.id", ondelete="SET NULL"), nullable=True)
    deadline_date = Column(Date, nullable=True)
    icon = Column(String(20), default="⚖️")
    color = Column(String(50), default="blue")
    notes = Column(Text, nullable=True)
    extra_data = Column("metadata", JSONB, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_legal_cases_user_updated", "user_id", "updated_at"),
    )

    user = relationship("User", back_populates="legal_cases")
    proceedings = relationship("CaseProceeding", back_populates="case", cascade="all, delete-orphan")
    parties = relationship("CaseParty", back_populates="case", cascade="all, delete-orphan")
    documents = relationship("CaseDocument", back_populates="case", cascade="all, delete-orphan")
    chat_messages = relationship("LegalChatHistory", back_populates="case", cascade="all, delete-orphan")


class CaseProceeding(Base):
    """Procedural stage of a case / etap postępowania"""
    __tablename__ = "case_proceedings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("legal_cases.id", ondelete="CASCADE"), nullable=False, index=True)
    stage_type = Column(ValueEnum(ProceedingStageType), nullable=False)
    institution_name = Column(String(500), nullable=False)
    case_number = Column(String(100), nullable=True)
    started_at = Column(Date, nullable=True)
    ended_at = Column(Date, nullable=True)
    outcome = Column(ValueEnum(ProceedingOutcome), default=ProceedingOutcome.W_TOKU, nullable=False)
    notes = Column(Text, nullable=True)
    previous_proceeding_id = Column(String(36), ForeignKey("case_proceedings.id", ondelete="SET NULL"), nullable=True)
    merged_from_case_ids = Column(JSONB, nullable=True)
    extra_data = Column("metadata", JSONB, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("LegalCase", back_populates="proceedings")


class CaseParty(Base):
    """Party to a case / strona postępowania"""
    __tablename__ = "case_parties"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("legal_cases.id", ondelete="CASCADE"), nullable=False, index=True)
    party_type = Column(ValueEnum(PartyType), nullable=False)
    name = Column(String(500), nullable=False)
    address = Column(Text, nullable=True)
    pesel_or_nip = Column(String(20), nullable=True)
    contact_info = Column(Text, nullable=True)
    is_user = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)
    extra_data = Column("metadata", JSONB, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("LegalCase", back_populates="parties")


class CaseDocument(Base):
    """Document attached to a case / dokument sprawy"""
    __tablename__ = "case_documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("legal_cases.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    document_type = Column(String(100), nullable=False, default="inne")
    file_path = Column(String(1000), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    content = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    processing_status = Column(String(50), default=ProcessingStatus.COMPLETED.value)
    document_date = Column(Date, nullable=True)
    extra_data = Column("metadata", JSONB, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("LegalCase", back_populates="documents")


class LegalChatHistory(Base):
    """Legal chat message row / wiadomość czatu prawnego"""
    __tablename__ = "legal_chat_histories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("legal_cases.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(JSONB, nullable=False)
    sources_used = Column(JSONB, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("LegalCase", back_populates="chat_messages")
    user = relationship("User", back_populates="legal_chat_messages")


# =============================================================================
# LEGAL LIBRARY (shared, read-only for users)
# =============================================================================

class LegalRegulation(Base):
    """Statute or regulation / akt prawny"""
    __tablename__ = "legal_regulations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(1000), nullable=False)
    short_name = Column(String(255), nullable=True)
    document_type = Column(ValueEnum(LegalDocumentType), nullable=False)
    category = Column(JSONB, default=list)  # list of LegalCategory values
    source_url = Column(String(2000), nullable=True)
    source_identifier = Column(String(255), nullable=True)
    publication_date = Column(Date, nullable=True)
    effective_date = Column(Date, nullable=True)
    content = Column(Text, nullable=False, default="")
    content_html = Column(Text, nullable=True)
    articles_json = Column(JSONB, nullable=True)
    extra_data = Column("metadata", JSONB, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LegalRuling(Base):
    """Court ruling / orzeczenie"""
    __tablename__ = "legal_rulings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    court_name = Column(String(500), nullable=False)
    case_number = Column(String(255), nullable=False)
    ruling_date = Column(Date, nullable=False)
    ruling_type = Column(String(100), nullable=True)
    category = Column(JSONB, default=list)
    summary = Column(Text, nullable=True)
    content = Column(Text, nullable=False, default="")
    related_regulations = Column(JSONB, nullable=True)
    keywords = Column(JSONB, nullable=True)
    source_url = Column(String(2000), nullable=True)
    extra_data = Column("metadata", JSONB, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LegalTemplate(Base):
    """Fillable document template / wzór pisma"""
    __tablename__ = "legal_templates"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    document_type = Column(ValueEnum(LegalDocumentType), nullable=False)
    category = Column(JSONB, default=list)
    template_content = Column(Text, nullable=False)
    template_fields = Column(JSONB, default=list)
    example_filled = Column(Text, nullable=True)
    usage_instructions = Column(Text, nullable=True)
    legal_basis = Column(Text, nullable=True)
    related_regulations = Column(JSONB, nullable=True)
    is_premium = Column(Boolean, default=False)
    popularity_score = Column(Integer, default=0)
    extra_data = Column("metadata", JSONB, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GeneratedLegalDocument(Base):
    """Document produced from a template / wygenerowane pismo"""
    __tablename__ = "generated_legal_documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    case_id = Column(String(36), ForeignKey("legal_cases.id", ondelete="SET NULL"), nullable=True)
    template_id = Column(String(36), ForeignKey("legal_templates.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    document_type = Column(ValueEnum(LegalDocumentType), nullable=False)
    content = Column(Text, nullable=False)
    form_data = Column(JSONB, nullable=True)
    docx_file_path = Column(String(1000), nullable=True)
    pdf_file_path = Column(String(1000), nullable=True)
    version = Column(Integer, default=1)
    is_draft = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="generated_documents")


class LegalImportLog(Base):
    """Library import run / log importu"""
    __tablename__ = "legal_import_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    import_type = Column(String(100), nullable=False)
    source_url = Column(String(2000), nullable=True)
    records_imported = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    error_details = Column(JSONB, nullable=True)
    imported_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
