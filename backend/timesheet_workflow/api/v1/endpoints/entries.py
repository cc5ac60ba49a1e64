from typing import List, Annotated
from fastapi import APIRouter, Depends, status

from timesheet_workflow.auth import get_current_actor
from timesheet_workflow.dependencies import get_entry_manager
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.schemas.entry import TimeEntryBatch, TimeEntryCreate, TimeEntryInDB, TimeEntryUpdate
from timesheet_workflow.services.entry_manager import EntryManager

router = APIRouter()

@router.get("/{timesheet_id}/entries", response_model=List[TimeEntryInDB])
def read_entries(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    manager: EntryManager = Depends(get_entry_manager),
):
    return manager.list_entries(current_actor, timesheet_id)

@router.post("/{timesheet_id}/entries", response_model=TimeEntryInDB, status_code=status.HTTP_201_CREATED)
def add_entry(
    timesheet_id: int,
    entry: TimeEntryCreate,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    manager: EntryManager = Depends(get_entry_manager),
):
    """Add one entry to an editable timesheet."""
    return manager.add_entry(current_actor, timesheet_id, entry)

@router.post("/{timesheet_id}/entries/batch", response_model=List[TimeEntryInDB], status_code=status.HTTP_201_CREATED)
def add_entries(
    timesheet_id: int,
    batch: TimeEntryBatch,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    manager: EntryManager = Depends(get_entry_manager),
):
    """Append several entries; the whole batch is rejected if any entry fails."""
    return manager.add_entries(current_actor, timesheet_id, batch.entries)

@router.put("/{timesheet_id}/entries", response_model=List[TimeEntryInDB])
def replace_entries(
    timesheet_id: int,
    batch: TimeEntryBatch,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    manager: EntryManager = Depends(get_entry_manager),
):
    """Replace all entries of the timesheet with the given set."""
    return manager.replace_entries(current_actor, timesheet_id, batch.entries)

@router.patch("/{timesheet_id}/entries/{entry_id}", response_model=TimeEntryInDB)
def update_entry(
    timesheet_id: int,
    entry_id: int,
    changes: TimeEntryUpdate,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    manager: EntryManager = Depends(get_entry_manager),
):
    return manager.update_entry(current_actor, timesheet_id, entry_id, changes)

@router.delete("/{timesheet_id}/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(
    timesheet_id: int,
    entry_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    manager: EntryManager = Depends(get_entry_manager),
):
    manager.delete_entry(current_actor, timesheet_id, entry_id)
