"""Weekly timesheet model."""

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, Boolean, Text, ForeignKey, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from timesheet_workflow.database import Base


class Timesheet(Base):
    """One user's hours for one Monday-to-Sunday week."""

    __tablename__ = "timesheets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Week (start is always a Monday, end = start + 6 days)
    week_start_date = Column(Date, nullable=False, index=True)
    week_end_date = Column(Date, nullable=False)

    # Derived from non-deleted entries, never written by clients
    total_hours = Column(Numeric(6, 2), nullable=False, default=0)
    status = Column(String(30), nullable=False, default="draft", index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    # Manager tier
    approved_by_manager_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    manager_approved_at = Column(DateTime(timezone=True), nullable=True)
    manager_rejection_reason = Column(Text, nullable=True)
    manager_rejected_at = Column(DateTime(timezone=True), nullable=True)

    # Management tier
    approved_by_management_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    management_approved_at = Column(DateTime(timezone=True), nullable=True)
    management_rejection_reason = Column(Text, nullable=True)
    management_rejected_at = Column(DateTime(timezone=True), nullable=True)

    # Verification / billing
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    is_frozen = Column(Boolean, default=False, nullable=False)
    billed_at = Column(DateTime(timezone=True), nullable=True)
    billing_snapshot_id = Column(Integer, nullable=True)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    deleted_reason = Column(Text, nullable=True)

    # Hard delete tombstone
    is_hard_deleted = Column(Boolean, default=False, nullable=False)
    hard_deleted_at = Column(DateTime(timezone=True), nullable=True)
    hard_deleted_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    entries = relationship("TimeEntry", back_populates="timesheet", cascade="all, delete-orphan")
    project_approvals = relationship("TimesheetProjectApproval", back_populates="timesheet", cascade="all, delete-orphan")

    __table_args__ = (
        # At most one live timesheet per user and week
        Index(
            'uq_timesheets_user_week_active', 'user_id', 'week_start_date',
            unique=True,
            postgresql_where=text('deleted_at IS NULL'),
            sqlite_where=text('deleted_at IS NULL'),
        ),
    )

    def __repr__(self):
        return f"<Timesheet(id={self.id}, user={self.user_id}, week='{self.week_start_date}', status='{self.status}')>"
