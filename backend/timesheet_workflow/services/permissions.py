"""
Role-based permission policy.

One table answers "may this role do this action", given whether the actor
owns the timesheet and whether they manage its owner. Services call
check_permission() before touching state.
"""

import logging
from enum import Enum

from timesheet_workflow.constants.statuses import Role
from timesheet_workflow.constants.violation_reasons import ReasonCode, explain_reason
from timesheet_workflow.exceptions import AuthorizationError
from timesheet_workflow.schemas.auth import Actor

log = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT_ENTRIES = "edit_entries"
    SUBMIT = "submit"
    MANAGER_DECISION = "manager_decision"
    MANAGEMENT_DECISION = "management_decision"
    MARK_BILLED = "mark_billed"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"
    HARD_DELETE = "hard_delete"
    VIEW_DELETED = "view_deleted"
    VIEW_AUDIT = "view_audit"


ACTION_DESCRIPTIONS = {
    Action.VIEW: "view this timesheet",
    Action.CREATE: "create a timesheet for this user",
    Action.EDIT_ENTRIES: "modify entries on this timesheet",
    Action.SUBMIT: "submit this timesheet",
    Action.MANAGER_DECISION: "approve or reject timesheets as a manager",
    Action.MANAGEMENT_DECISION: "approve or reject timesheets as management",
    Action.MARK_BILLED: "mark timesheets as billed",
    Action.SOFT_DELETE: "delete this timesheet",
    Action.RESTORE: "restore deleted timesheets",
    Action.HARD_DELETE: "permanently delete timesheets",
    Action.VIEW_DELETED: "view deleted timesheets",
    Action.VIEW_AUDIT: "view the audit trail",
}


def is_allowed(role: Role, action: Action, is_owner: bool = False, manages_owner: bool = False) -> bool:
    """Pure policy lookup, no side effects."""
    role = Role(role)
    level = role.level

    if action == Action.VIEW:
        return is_owner or manages_owner or level >= Role.LEAD.level
    if action in (Action.CREATE, Action.EDIT_ENTRIES):
        # Leads and management cannot edit somebody else's hours, a direct manager can
        if is_owner or role == Role.SUPER_ADMIN:
            return True
        return role == Role.MANAGER and manages_owner
    if action == Action.SUBMIT:
        return is_owner
    if action == Action.MANAGER_DECISION:
        return level >= Role.MANAGER.level
    if action == Action.MANAGEMENT_DECISION:
        return level >= Role.MANAGEMENT.level
    if action in (Action.MARK_BILLED, Action.RESTORE, Action.VIEW_DELETED):
        return level >= Role.MANAGEMENT.level
    if action == Action.SOFT_DELETE:
        return is_owner or level >= Role.MANAGEMENT.level
    if action == Action.HARD_DELETE:
        return role == Role.SUPER_ADMIN
    if action == Action.VIEW_AUDIT:
        return level >= Role.MANAGER.level
    return False


def check_permission(actor: Actor, action: Action, is_owner: bool = False, manages_owner: bool = False) -> None:
    """Raise AuthorizationError unless the actor may perform the action."""
    if is_allowed(actor.role, action, is_owner=is_owner, manages_owner=manages_owner):
        return
    log.info(f"Permission denied: user {actor.id} ({actor.role.value}) attempted {action.value}")
    raise AuthorizationError(
        explain_reason(ReasonCode.PERMISSION_DENIED, {"action": ACTION_DESCRIPTIONS[action]}),
        ReasonCode.PERMISSION_DENIED,
    )
