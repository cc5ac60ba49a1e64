"""Audit recorder: appends immutable records of every workflow mutation."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from timesheet_workflow.models.audit_log import AuditLog

log = logging.getLogger(__name__)


def to_json_safe(value: Any) -> Any:
    """Convert snapshot values (dates, decimals, enums) into JSON-friendly primitives."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    return value


def snapshot(instance, exclude: tuple = ()) -> Optional[Dict[str, Any]]:
    """Column values of an ORM instance as a plain dict."""
    if instance is None:
        return None
    return {
        column.name: to_json_safe(getattr(instance, column.key, None))
        for column in instance.__mapper__.columns
        if column.name not in exclude
    }


class AuditRecorder:
    """Writes audit rows. Recording never fails the calling operation."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        entity_type: str,
        entity_id: Optional[int],
        action: str,
        actor_id: Optional[int] = None,
        actor_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        side_effects: Optional[Dict[str, Any]] = None,
        before: Optional[Any] = None,
        after: Optional[Any] = None,
    ) -> Optional[AuditLog]:
        """
        Append one audit record.

        Returns the stored AuditLog, or None when the write failed. Failures
        are logged and swallowed; the mutation being audited has already
        been committed at this point.
        """
        try:
            entry = AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                actor_id=actor_id,
                actor_name=actor_name,
                context=to_json_safe(context) if context else None,
                side_effects=to_json_safe(side_effects) if side_effects else None,
                old_data=to_json_safe(before),
                new_data=to_json_safe(after),
            )
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            log.debug(f"Audit: {action} on {entity_type}:{entity_id} by {actor_id}")
            return entry
        except Exception as e:
            self.db.rollback()
            log.error(f"Failed to write audit record for {action} on {entity_type}:{entity_id}: {e}", exc_info=True)
            return None

    def query(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLog]:
        """Read audit records, newest first."""
        query = self.db.query(AuditLog)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == entity_id)
        if actor_id is not None:
            query = query.filter(AuditLog.actor_id == actor_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if start:
            query = query.filter(AuditLog.created_at >= start)
        if end:
            query = query.filter(AuditLog.created_at <= end)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit).all()

    def get(self, log_id: int) -> Optional[AuditLog]:
        return self.db.query(AuditLog).filter(AuditLog.id == log_id).first()


@dataclass
class OperationOutcome:
    """What an audited operation hands back to the audit decorator and its caller."""
    result: Any
    entity_id: Optional[int]
    context: Dict[str, Any] = field(default_factory=dict)
    side_effects: Dict[str, Any] = field(default_factory=dict)
    action: Optional[str] = None


def _target_id(args, kwargs, key: str) -> Optional[int]:
    if args and isinstance(args[0], int) and not isinstance(args[0], bool):
        return args[0]
    return kwargs.get(key)


def audited(entity_type: str, action: str, capture: Callable[[Any, int], Any], key: str = "timesheet_id"):
    """
    Record an audit entry around a service method.

    The wrapped method must take (self, actor, <target id>, ...) and return an
    OperationOutcome, whose `action` may refine the recorded action name.
    `capture(service, entity_id)` is called before and after
    the method to produce the snapshots. Nothing is recorded when the method
    raises. The target id may be None for creations, the outcome's entity_id
    is used for the after snapshot.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, actor, *args, **kwargs):
            target_id = _target_id(args, kwargs, key)
            before = capture(self, target_id) if target_id is not None else None
            outcome = func(self, actor, *args, **kwargs)
            after = capture(self, outcome.entity_id) if outcome.entity_id is not None else None
            self.audit.record(
                entity_type,
                outcome.entity_id,
                outcome.action or action,
                actor_id=actor.id,
                actor_name=actor.display_name,
                context=outcome.context,
                side_effects=outcome.side_effects,
                before=before,
                after=after,
            )
            return outcome
        return wrapper
    return decorator
