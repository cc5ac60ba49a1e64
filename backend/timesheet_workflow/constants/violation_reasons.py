from enum import Enum
from typing import Dict

class ReasonCode(Enum):
    NON_POSITIVE_HOURS = "NON_POSITIVE_HOURS"
    MISSING_PROJECT_OR_TASK = "MISSING_PROJECT_OR_TASK"
    MISSING_CUSTOM_DESCRIPTION = "MISSING_CUSTOM_DESCRIPTION"
    DATE_OUTSIDE_WEEK = "DATE_OUTSIDE_WEEK"
    DUPLICATE_PROJECT_TASK = "DUPLICATE_PROJECT_TASK"
    DUPLICATE_CUSTOM_TASK = "DUPLICATE_CUSTOM_TASK"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    WEEKLY_LIMIT_EXCEEDED = "WEEKLY_LIMIT_EXCEEDED"
    INVALID_STATUS = "INVALID_STATUS"
    ZERO_HOURS = "ZERO_HOURS"
    REASON_REQUIRED = "REASON_REQUIRED"
    SELF_APPROVAL = "SELF_APPROVAL"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    WEEK_TAKEN = "WEEK_TAKEN"
    BLOCKED_BY_DEPENDENCIES = "BLOCKED_BY_DEPENDENCIES"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    OTHER = "OTHER"

def explain_reason(code: ReasonCode, context: Dict) -> str:
    templates = {
        ReasonCode.NON_POSITIVE_HOURS: "Hours must be greater than zero",
        ReasonCode.MISSING_PROJECT_OR_TASK: "Project and task are required for project task entries",
        ReasonCode.MISSING_CUSTOM_DESCRIPTION: "Custom task description is required for custom task entries",
        ReasonCode.DATE_OUTSIDE_WEEK: "Entry date {entry_date} is outside the timesheet week {week_start} to {week_end}",
        ReasonCode.DUPLICATE_PROJECT_TASK: "A time entry for this project and task already exists on this date. Please update the existing entry instead.",
        ReasonCode.DUPLICATE_CUSTOM_TASK: "A custom task with this description already exists on this date. Please update the existing entry instead.",
        ReasonCode.DAILY_LIMIT_EXCEEDED: "Total hours for {entry_date} would exceed the maximum limit of {limit} hours (current: {current}, adding: {adding}, total: {total})",
        ReasonCode.WEEKLY_LIMIT_EXCEEDED: "Total hours for the week would exceed the maximum limit of {limit} hours (current: {current}, adding: {adding}, total: {total})",
        ReasonCode.INVALID_STATUS: "Timesheet cannot be {verb} from current status: {status}",
        ReasonCode.ZERO_HOURS: "Cannot submit timesheet with zero hours",
        ReasonCode.REASON_REQUIRED: "Rejection reason is required",
        ReasonCode.SELF_APPROVAL: "You cannot approve or reject your own timesheet",
        ReasonCode.PERMISSION_DENIED: "You do not have permission to {action}",
        ReasonCode.WEEK_TAKEN: "A timesheet already exists for the week starting {week_start}. Status: {status}",
        ReasonCode.BLOCKED_BY_DEPENDENCIES: "Timesheet cannot be deleted: {dependencies}",
        ReasonCode.NOT_FOUND: "{entity} not found",
        ReasonCode.INVALID_INPUT: "Invalid value for {field}: {detail}",
        ReasonCode.OTHER: "Operation failed: {detail}",
    }
    template = templates.get(code, templates[ReasonCode.OTHER])
    return template.format(**{'detail': '', **context})
