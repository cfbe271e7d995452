from pydantic import BaseModel, field_validator
from typing import Optional
from enum import Enum

class VerseStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    MASTERED = "mastered"

class VerseBase(BaseModel):
    reference: str
    text: str
    translation: str = "NIV"

    @field_validator('reference', 'text')
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Reference and text are required")
        return v.strip()

class VerseCreate(VerseBase):
    status: VerseStatus = VerseStatus.NOT_STARTED

class Verse(VerseBase):
    status: VerseStatus = VerseStatus.NOT_STARTED
    last_reviewed: Optional[float] = None

    class Config:
        from_attributes = True

class StatusUpdate(BaseModel):
    status: VerseStatus
