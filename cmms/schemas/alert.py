from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    type: str
    severity: str
    title: str
    message: str
    reference_type: Optional[str]
    reference_id: Optional[str]
    is_resolved: bool
    resolved_at: Optional[datetime]
    resolved_by_id: Optional[int]
    created_at: datetime
