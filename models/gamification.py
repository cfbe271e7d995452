from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

class VerseStreak(BaseModel):
    verse_reference: str
    current_guess_streak: int = 0
    longest_guess_streak: int = 0
    last_guess_date: Optional[float] = None

class GamificationStats(BaseModel):
    total_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    verses_mastered: int = 0
    longest_word_guess_streak: int = 0
    verse_streaks: List[VerseStreak] = Field(default_factory=list)

class PointEvent(BaseModel):
    event_type: str
    points: int
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[float] = None

class AchievementRecord(BaseModel):
    streak: int
    achieved_at: float
    shared: bool = False
    share_count: int = 0
