"""User model for workflow actors."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from timesheet_workflow.database import Base


class User(Base):
    """Employee record as seen by the approval workflow.

    Accounts are provisioned by the identity provider; this table only
    carries what the workflow needs: role and reporting line.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    role = Column(String(30), nullable=False, default="employee", index=True)  # 'employee', 'lead', 'manager', 'management', 'super_admin'
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    manager = relationship("User", remote_side=[id])

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.full_name}', role='{self.role}')>"
