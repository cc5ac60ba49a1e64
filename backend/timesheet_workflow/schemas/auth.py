from pydantic import BaseModel, Field

from timesheet_workflow.constants.statuses import Role


class Actor(BaseModel):
    """The authenticated caller, as carried by the identity provider's token."""
    id: int = Field(..., description="User ID of the caller")
    role: Role = Field(..., description="Organisation role of the caller")
    display_name: str = Field("", description="Name recorded in the audit trail")
