# backend/bevisible/models.py
"""
SQLAlchemy ORM models.

Portable column types (Uuid, JSON) are used so the same tables run on
PostgreSQL in production and SQLite in tests. One-way relationships only.
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Text, DateTime, Date, Float, JSON, Index,
    ForeignKey, CheckConstraint, UniqueConstraint, Uuid
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from bevisible.database import Base
import uuid


def _check_in(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ============================================================================
# BRAND & PROMPT MODELS (owned by onboarding, read-only here)
# ============================================================================

class User(Base):
    """Owner of one or more brands."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    reports_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Brand(Base):
    """Monitored subject."""
    __tablename__ = "brands"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    domain = Column(String(255))
    competitors = Column(JSON, default=list)  # ["Competitor A", "Competitor B"]
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    is_demo = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("User", foreign_keys=[owner_user_id])

    def __repr__(self):
        return f"<Brand(id={self.id}, name='{self.name}')>"


class BrandPrompt(Base):
    """Natural-language query template bound to one brand."""
    __tablename__ = "brand_prompts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    brand_id = Column(Uuid, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    raw_prompt = Column(Text, nullable=False)
    improved_prompt = Column(Text)
    status = Column(String(20), nullable=False, default="draft")
    category = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            _check_in("status", ["draft", "improved", "selected", "active", "inactive"]),
            name="chk_prompt_status"
        ),
        Index("idx_brand_prompts_brand_status", "brand_id", "status"),
    )

    @property
    def text(self) -> str:
        return self.improved_prompt or self.raw_prompt


# ============================================================================
# ACCOUNT POOL
# ============================================================================

class AutomationAccount(Base):
    """Shared identity bound to an egress proxy."""
    __tablename__ = "automation_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255))
    display_name = Column(String(255))

    proxy_host = Column(String(255))
    proxy_port = Column(Integer)
    proxy_username = Column(String(255))
    proxy_password = Column(String(255))

    session_health = Column(String(20), nullable=False, default="unknown")
    status = Column(String(20), nullable=False, default="active")
    is_eligible = Column(Boolean, nullable=False, default=True)  # False for personally-used accounts

    last_used_at = Column(DateTime(timezone=True))
    consecutive_errors = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    disabled_reason = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            _check_in("session_health", ["healthy", "expiring_soon", "expired", "unknown"]),
            name="chk_account_session_health"
        ),
        CheckConstraint(_check_in("status", ["active", "disabled"]), name="chk_account_status"),
    )

    @property
    def proxy_endpoint(self):
        if not self.proxy_host:
            return None
        return f"{self.proxy_host}:{self.proxy_port}" if self.proxy_port else self.proxy_host

    def __repr__(self):
        return f"<AutomationAccount(id={self.id}, email='{self.email}', status='{self.status}')>"


class ExecutionHistoryEntry(Base):
    """Append-only record of one prompt executed on one account."""
    __tablename__ = "prompt_execution_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Uuid, ForeignKey("automation_accounts.id", ondelete="CASCADE"), nullable=False)
    prompt_id = Column(Uuid, nullable=False)
    brand_id = Column(Uuid, nullable=False)
    executed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_execution_log_executed_at", "executed_at"),
        Index("idx_execution_log_account_prompt", "account_id", "prompt_id"),
    )


# ============================================================================
# SCHEDULE
# ============================================================================

class ScheduleBatch(Base):
    """A group of prompts assigned to one account at one timestamp on one date."""
    __tablename__ = "daily_schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_date = Column(Date, nullable=False, index=True)
    batch_number = Column(Integer, nullable=False)
    execution_time = Column(DateTime(timezone=True), nullable=False)

    account_id = Column(Uuid, ForeignKey("automation_accounts.id"), nullable=False, index=True)
    brand_id = Column(Uuid)  # brand of the first prompt in the batch
    prompt_ids = Column(JSON, nullable=False, default=list)
    batch_size = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="pending")
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("schedule_date", "batch_number", name="uq_schedule_date_batch"),
        CheckConstraint(
            _check_in("status", ["pending", "executing", "completed", "failed"]),
            name="chk_batch_status"
        ),
    )


# ============================================================================
# DAILY REPORTS
# ============================================================================

class DailyReport(Base):
    """Per-brand, per-date aggregate record driving the staged pipeline."""
    __tablename__ = "daily_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    brand_id = Column(Uuid, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    report_date = Column(Date, nullable=False)

    status = Column(String(20), nullable=False, default="running")
    processing_stage = Column(String(30), nullable=False, default="initialized")
    generated = Column(Boolean, nullable=False, default=False)

    total_prompts = Column(Integer, nullable=False, default=0)
    completed_prompts = Column(Integer, nullable=False, default=0)

    # Aggregates
    total_mentions = Column(Integer, nullable=False, default=0)
    average_position = Column(Float)
    sentiment_positive = Column(Integer, nullable=False, default=0)
    sentiment_neutral = Column(Integer, nullable=False, default=0)
    sentiment_negative = Column(Integer, nullable=False, default=0)

    # Visibility score (0-100) and its components, as percentages
    visibility_score = Column(Float)
    mention_rate = Column(Float)
    position_score = Column(Float)
    mention_dominance = Column(Float)

    # URL processing stats
    urls_total = Column(Integer, nullable=False, default=0)
    urls_new = Column(Integer, nullable=False, default=0)
    urls_classified = Column(Integer, nullable=False, default=0)

    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    stage_runs = relationship("ReportStageRun", foreign_keys="ReportStageRun.daily_report_id")

    __table_args__ = (
        UniqueConstraint("brand_id", "report_date", name="uq_daily_report_brand_date"),
        CheckConstraint(
            _check_in("processing_stage", [
                "initialized", "perplexity", "google_ai_overview",
                "url_processing", "completed", "failed"
            ]),
            name="chk_report_processing_stage"
        ),
        CheckConstraint(_check_in("status", ["running", "completed", "failed"]), name="chk_report_status"),
    )

    def __repr__(self):
        return f"<DailyReport(id={self.id}, brand_id={self.brand_id}, date={self.report_date}, stage='{self.processing_stage}')>"


class ReportStageRun(Base):
    """Status and counters of one stage of one report."""
    __tablename__ = "report_stage_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    daily_report_id = Column(Uuid, ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False)
    stage = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="not_started")

    attempted = Column(Integer, nullable=False, default=0)
    ok = Column(Integer, nullable=False, default=0)
    no_result = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)

    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    __table_args__ = (
        UniqueConstraint("daily_report_id", "stage", name="uq_report_stage"),
        CheckConstraint(
            _check_in("status", ["not_started", "running", "complete", "failed", "expired", "skipped"]),
            name="chk_stage_status"
        ),
    )


class PromptResult(Base):
    """One provider answer for one prompt of one report."""
    __tablename__ = "prompt_results"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    daily_report_id = Column(Uuid, ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False)
    brand_prompt_id = Column(Uuid, nullable=False)
    provider = Column(String(30), nullable=False)
    prompt_text = Column(Text)

    provider_status = Column(String(20), nullable=False)
    provider_error_message = Column(Text)

    response_text = Column(Text)
    response_time_ms = Column(Integer)
    citations = Column(JSON, default=list)  # [{"url": ..., "title": ...}]

    brand_mentioned = Column(Boolean, nullable=False, default=False)
    brand_mention_count = Column(Integer, nullable=False, default=0)
    brand_position = Column(Integer)
    competitor_mentions = Column(JSON, default=list)  # [{"name", "count", "position", "portrayal_type"}]
    sentiment_score = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("daily_report_id", "brand_prompt_id", "provider", name="uq_prompt_result_key"),
        CheckConstraint(_check_in("provider_status", ["ok", "no_result", "error"]), name="chk_result_status"),
    )


class UrlInventory(Base):
    """Every distinct URL ever cited by a provider answer."""
    __tablename__ = "url_inventory"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    url = Column(Text, nullable=False, unique=True)
    domain = Column(String(255), index=True)
    content_category = Column(String(100))
    extracted = Column(Boolean, nullable=False, default=False)
    first_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    classified_at = Column(DateTime(timezone=True))
