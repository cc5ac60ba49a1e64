from typing import Optional, List
from datetime import date as DateType, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict

from timesheet_workflow.constants.statuses import EntryType


class TimeEntryBase(BaseModel):
    entry_type: EntryType = Field(EntryType.PROJECT_TASK, description="'project_task' or 'custom_task'")
    project_id: Optional[int] = Field(None, description="Project the hours were spent on")
    task_id: Optional[int] = Field(None, description="Task within the project")
    custom_task_description: Optional[str] = Field(None, description="Free-text task for custom task entries")
    date: DateType = Field(..., description="Day the work was done (YYYY-MM-DD)")
    hours: Decimal = Field(..., description="Hours worked, must be positive")
    is_billable: bool = Field(True, description="Billable flag, forced off on weekends")
    description: Optional[str] = Field(None, description="Notes about the work performed")


class TimeEntryCreate(TimeEntryBase):
    pass


class TimeEntryUpdate(BaseModel):
    entry_type: Optional[EntryType] = None
    project_id: Optional[int] = None
    task_id: Optional[int] = None
    custom_task_description: Optional[str] = None
    date: Optional[DateType] = None
    hours: Optional[Decimal] = None
    is_billable: Optional[bool] = None
    description: Optional[str] = None


class TimeEntryBatch(BaseModel):
    entries: List[TimeEntryCreate] = Field(..., description="Entries to add or to replace the timesheet's entries with")


class TimeEntryInDB(TimeEntryBase):
    id: int
    timesheet_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
