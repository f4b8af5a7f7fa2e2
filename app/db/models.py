from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON

from app.core.clock import utcnow


class Base(DeclarativeBase):
    pass


class Complaint(Base):
    __tablename__ = "complaints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    complaint_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(500), default="")
    current_status: Mapped[str] = mapped_column(String(32), default="submitted", index=True)
    priority: Mapped[str] = mapped_column(String(16), default="medium")
    assigned_department_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    assigned_authority_id: Mapped[int | None] = mapped_column(ForeignKey("authorities.id"), nullable=True)
    location_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    pincode: Mapped[str | None] = mapped_column(String(10), nullable=True)
    current_escalation_level: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ComplaintStatusHistory(Base):
    __tablename__ = "complaint_status_history"
    __table_args__ = (Index("ix_status_history_complaint_created", "complaint_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    complaint_id: Mapped[int] = mapped_column(ForeignKey("complaints.id", ondelete="CASCADE"), index=True)
    old_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32))
    changed_by_type: Mapped[str] = mapped_column(String(16), default="system")
    assigned_department_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_authority_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Authority(Base):
    __tablename__ = "authorities"
    __table_args__ = (Index("ix_authorities_lookup", "department_id", "level", "location_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    department_id: Mapped[int] = mapped_column(Integer, index=True)
    location_id: Mapped[int] = mapped_column(Integer, index=True)
    pincode: Mapped[str | None] = mapped_column(String(10), nullable=True, index=True)
    level: Mapped[int] = mapped_column(Integer, default=0)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EscalationRule(Base):
    __tablename__ = "escalation_rules"
    __table_args__ = (Index("ix_escalation_rules_level_active", "escalation_level", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_department_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    from_location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    to_department_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    to_location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer)
    conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ComplaintEscalation(Base):
    __tablename__ = "complaint_escalations"
    __table_args__ = (Index("ix_escalations_complaint_level", "complaint_id", "escalation_level", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    complaint_id: Mapped[int] = mapped_column(ForeignKey("complaints.id", ondelete="CASCADE"), index=True)
    rule_id: Mapped[int | None] = mapped_column(ForeignKey("escalation_rules.id"), nullable=True)
    from_department_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    from_authority_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    to_department_id: Mapped[int] = mapped_column(Integer)
    to_authority_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    escalated_by_type: Mapped[str] = mapped_column(String(16), default="system")
    status_history_id: Mapped[int | None] = mapped_column(
        ForeignKey("complaint_status_history.id", ondelete="SET NULL"), nullable=True
    )
    dry_run: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(String(128), default="system")
    action: Mapped[str] = mapped_column(String(128), index=True)
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    payload_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
