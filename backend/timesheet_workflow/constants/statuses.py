"""Status and role vocabularies shared by models, services and schemas."""

from enum import Enum


class TimesheetStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    MANAGER_APPROVED = "manager_approved"
    MANAGER_REJECTED = "manager_rejected"
    MANAGEMENT_PENDING = "management_pending"
    MANAGEMENT_REJECTED = "management_rejected"
    FROZEN = "frozen"
    BILLED = "billed"


# Statuses in which the owner may still change entries and (re)submit
EDITABLE_STATUSES = frozenset({
    TimesheetStatus.DRAFT,
    TimesheetStatus.MANAGER_REJECTED,
    TimesheetStatus.MANAGEMENT_REJECTED,
})


class EntryType(str, Enum):
    PROJECT_TASK = "project_task"
    CUSTOM_TASK = "custom_task"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    NOT_REQUIRED = "not_required"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProjectRole(str, Enum):
    LEAD = "lead"
    MEMBER = "member"


class Role(str, Enum):
    EMPLOYEE = "employee"
    LEAD = "lead"
    MANAGER = "manager"
    MANAGEMENT = "management"
    SUPER_ADMIN = "super_admin"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]


ROLE_LEVELS = {
    Role.EMPLOYEE: 1,
    Role.LEAD: 2,
    Role.MANAGER: 3,
    Role.MANAGEMENT: 4,
    Role.SUPER_ADMIN: 5,
}


def is_editable(status, is_frozen: bool = False) -> bool:
    """Entries may change only before review starts or after a rejection."""
    return not is_frozen and TimesheetStatus(status) in EDITABLE_STATUSES
