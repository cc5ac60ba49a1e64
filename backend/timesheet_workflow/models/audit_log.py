"""Append-only audit trail for workflow mutations."""

from sqlalchemy import Column, Integer, String, DateTime, Index, JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from timesheet_workflow.database import Base

JSONData = JSON().with_variant(JSONB(), "postgresql")


class AuditLog(Base):
    """One row per mutation, with before/after snapshots. Rows are never changed."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # What was touched
    entity_type = Column(String(50), nullable=False)  # 'timesheet', 'time_entries', 'project_approval'
    entity_id = Column(Integer, nullable=True)
    action = Column(String(100), nullable=False)  # 'submit', 'manager_approve', 'replace_entries', ...

    # Who did it
    actor_id = Column(Integer, nullable=True)
    actor_name = Column(String(255), nullable=True)

    context = Column(JSONData, nullable=True)
    side_effects = Column(JSONData, nullable=True)
    old_data = Column(JSONData, nullable=True)
    new_data = Column(JSONData, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_logs_created_at_desc', created_at.desc()),
        Index('idx_audit_logs_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_logs_actor', 'actor_id'),
        Index('idx_audit_logs_action', 'action'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity='{self.entity_type}:{self.entity_id}')>"


class AuditLogImmutableError(Exception):
    pass


@event.listens_for(AuditLog, "before_update")
def _prevent_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _prevent_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log {target.id} is append-only")
