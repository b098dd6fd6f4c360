from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

class Notification(BaseModel):
    id: int
    account_id: int # Recipient ID
    type: str
    message: str
    is_read: bool
    reference: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
