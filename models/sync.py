from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from enum import Enum

class ChangeType(str, Enum):
    STATUS_UPDATE = "STATUS_UPDATE"
    ADD_VERSE = "ADD_VERSE"
    DELETE_VERSE = "DELETE_VERSE"

class PendingChange(BaseModel):
    id: Optional[int] = None  # assigned by the store
    type: ChangeType
    verse_reference: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float
    synced: bool = False
