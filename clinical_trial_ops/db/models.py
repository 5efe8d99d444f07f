"""
Database Models
===============
SQLAlchemy ORM models for trial operations data.

Models:
- Trial, Site (Core entities)
- SignalDetection, Task, TaskComment (Monitoring workflow)
- Notification (In-app notifications)
- DomainData, DomainSource (SDTM-like domain records and their provenance)
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Integer, String, DateTime, ForeignKey, Text, Boolean, JSON, Select, select
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# CORE ENTITIES
# =============================================================================

class Trial(Base):
    """Clinical trial information."""
    __tablename__ = "trials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    protocol_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phase: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="active", nullable=False)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    therapeutic_area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    indication: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    sites: Mapped[List["Site"]] = relationship(back_populates="trial")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Site(Base):
    """Investigational site."""
    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    trial_id: Mapped[int] = mapped_column(ForeignKey("trials.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    principal_investigator: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="active", nullable=False)

    trial: Mapped["Trial"] = relationship(back_populates="sites")


# =============================================================================
# MONITORING WORKFLOW
# =============================================================================

class SignalDetection(Base):
    """Risk signal raised against a trial or site."""
    __tablename__ = "signal_detections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    detection_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), default="Signal Detection", nullable=False)
    signal_type: Mapped[str] = mapped_column(String(50), default="Site Risk", nullable=False)
    detection_type: Mapped[str] = mapped_column(String(50), default="Manual", nullable=False)
    trial_id: Mapped[int] = mapped_column(ForeignKey("trials.id"), nullable=False, index=True)
    site_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    data_reference: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observation: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="initiated", nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    detection_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), default="System", nullable=False)
    notified_persons: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Task(Base):
    """Follow-up task, usually raised from a signal detection."""
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="not_started", nullable=False, index=True)
    trial_id: Mapped[int] = mapped_column(ForeignKey("trials.id"), nullable=False, index=True)
    site_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    detection_id: Mapped[Optional[int]] = mapped_column(ForeignKey("signal_detections.id"), nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    created_by: Mapped[str] = mapped_column(String(100), default="System", nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_comment_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_comment_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Data context
    domain: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    record_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    data_context: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    comments: Mapped[List["TaskComment"]] = relationship(back_populates="task")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class TaskComment(Base):
    __tablename__ = "task_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id"), nullable=False, index=True)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    attachments: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    task: Mapped["Task"] = relationship(back_populates="comments")


class Notification(Base):
    """In-app notification; user_id is optional since there are no accounts."""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    trial_id: Mapped[Optional[int]] = mapped_column(ForeignKey("trials.id"), nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    action_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    action_url: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# =============================================================================
# DOMAIN DATA
# =============================================================================

class DomainData(Base):
    """One SDTM-like record; record_data holds the JSON-encoded fields."""
    __tablename__ = "domain_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trial_id: Mapped[int] = mapped_column(ForeignKey("trials.id"), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[str] = mapped_column(String(100), nullable=False)
    record_data: Mapped[str] = mapped_column(Text, nullable=False)
    imported_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class DomainSource(Base):
    """
    Where a trial's domain data comes from and how it is integrated.

    A source is identified by (trial_id, domain, source), the same triple
    that selects its DomainData rows.
    """
    __tablename__ = "domain_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trial_id: Mapped[int] = mapped_column(ForeignKey("trials.id"), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(String(30), nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    source_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    system: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    integration_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    format: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mapping_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    frequency: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    contact: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


def select_domain_source(trial_id: int, domain: str, source: str) -> Select:
    """Statement selecting the DomainSource for one (trial, domain, source)"""
    return select(DomainSource).where(
        DomainSource.trial_id == trial_id,
        DomainSource.domain == domain,
        DomainSource.source == source,
    )
