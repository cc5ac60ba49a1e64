from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class AuditLogInDB(BaseModel):
    id: int
    entity_type: str
    entity_id: Optional[int] = None
    action: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    side_effects: Optional[Dict[str, Any]] = None
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
