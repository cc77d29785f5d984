# app/models.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# -----------------------------
# Core enums
# -----------------------------
class LeadStatus(str, enum.Enum):
    new = "new"
    contacted = "contacted"
    qualified = "qualified"
    converted = "converted"
    lost = "lost"


class IntegrationType(str, enum.Enum):
    webhook = "webhook"
    google_sheets = "google_sheets"
    hubspot = "hubspot"
    zoho_crm = "zoho_crm"


class JobRunStatus(str, enum.Enum):
    running = "running"
    success = "success"
    failed = "failed"


# -----------------------------
# Models
# -----------------------------
class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        UniqueConstraint("conversation_fingerprint", name="uq_lead_conversation_fingerprint"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Contact
    prospect_name: Mapped[str] = mapped_column(String(255), default="Unknown Lead")
    phone: Mapped[str] = mapped_column(String(64), default="")
    email: Mapped[str] = mapped_column(String(255), default="")
    company_name: Mapped[str] = mapped_column(String(255), default="")
    region: Mapped[str] = mapped_column(String(255), default="Unknown")

    # Timing facts (computed from message timestamps, IST)
    conversation_date: Mapped[str] = mapped_column(String(10), default="")
    start_time_ist: Mapped[str] = mapped_column(String(16), default="")
    end_time_ist: Mapped[str] = mapped_column(String(16), default="")
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    total_messages: Mapped[int] = mapped_column(Integer, default=0)
    user_messages: Mapped[int] = mapped_column(Integer, default=0)
    assistant_messages: Mapped[int] = mapped_column(Integer, default=0)
    messages_per_minute: Mapped[float] = mapped_column(Float, default=0.0)
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)

    # Conversation
    session_id: Mapped[str] = mapped_column(String(255), index=True, default="")
    conversation: Mapped[str] = mapped_column(Text, default="")
    conversation_fingerprint: Mapped[str] = mapped_column(String(64), index=True)
    conversation_summary: Mapped[str] = mapped_column(Text, default="")
    conversation_timeline_points: Mapped[list] = mapped_column(JSON, default=list)
    timeline_notes: Mapped[str] = mapped_column(Text, default="")
    info_shared_by_assistant: Mapped[list] = mapped_column(JSON, default=list)
    links_shared: Mapped[list] = mapped_column(JSON, default=list)
    open_loops_or_commitments: Mapped[list] = mapped_column(JSON, default=list)
    detected_phone_numbers: Mapped[list] = mapped_column(JSON, default=list)
    detected_emails: Mapped[list] = mapped_column(JSON, default=list)

    # Intelligence
    primary_topic: Mapped[str] = mapped_column(String(255), default="")
    secondary_topics: Mapped[list] = mapped_column(JSON, default=list)
    use_case_category: Mapped[str] = mapped_column(String(255), default="")
    need_summary: Mapped[str] = mapped_column(Text, default="")

    # Scoring
    lead_score: Mapped[int] = mapped_column(Integer, default=0, index=True)
    intent_level: Mapped[str] = mapped_column(String(20), default="")
    buyer_stage: Mapped[str] = mapped_column(String(30), default="")
    urgency: Mapped[str] = mapped_column(String(20), default="")
    is_hot_lead: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    # Psychology
    sentiment_overall: Mapped[str] = mapped_column(String(20), default="")
    emotional_intensity: Mapped[str] = mapped_column(String(20), default="")
    motivation_type: Mapped[str] = mapped_column(String(60), default="")
    trust_level: Mapped[str] = mapped_column(String(20), default="")

    # Actions
    next_action: Mapped[str] = mapped_column(Text, default="")
    recommended_routing: Mapped[str] = mapped_column(String(60), default="")
    needs_immediate_followup: Mapped[bool] = mapped_column(Boolean, default=False)
    key_questions: Mapped[list] = mapped_column(JSON, default=list)
    main_objections: Mapped[list] = mapped_column(JSON, default=list)
    competitors_mentioned: Mapped[list] = mapped_column(JSON, default=list)

    # Business
    budget_bucket_inr: Mapped[str] = mapped_column(String(30), default="")
    estimated_scale: Mapped[str] = mapped_column(Text, default="")
    partner_intent: Mapped[bool] = mapped_column(Boolean, default=False)
    is_enterprise: Mapped[bool] = mapped_column(Boolean, default=False)
    is_partner: Mapped[bool] = mapped_column(Boolean, default=False)

    # Data quality
    completeness: Mapped[int] = mapped_column(Integer, default=0)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=False)
    missing_fields: Mapped[list] = mapped_column(JSON, default=list)
    has_phone: Mapped[bool] = mapped_column(Boolean, default=False)
    has_email: Mapped[bool] = mapped_column(Boolean, default=False)
    has_company: Mapped[bool] = mapped_column(Boolean, default=False)

    # Provenance
    source: Mapped[str] = mapped_column(String(40), default="redis")
    channel: Mapped[str] = mapped_column(String(40), default="WhatsApp")
    status: Mapped[LeadStatus] = mapped_column(Enum(LeadStatus), default=LeadStatus.new, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("name", name="uq_integration_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(80))
    type: Mapped[IntegrationType] = mapped_column(Enum(IntegrationType))

    # QUIET BY DEFAULT
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    # webhook: {"url", "headers", "secret", "events": {...}}
    # sync:    {"access_token", "refresh_token", "live_sync", ...}
    config_json: Mapped[str] = mapped_column(Text, default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class JobRun(Base):
    """
    Tracks pipeline runs (scheduled and on-demand).
    """
    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(80), index=True)

    status: Mapped[JobRunStatus] = mapped_column(Enum(JobRunStatus), default=JobRunStatus.running, index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # store error stack or message
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    meta_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_json: Mapped[str | None] = mapped_column(Text, nullable=True)
