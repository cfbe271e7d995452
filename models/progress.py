from pydantic import BaseModel
from typing import Optional

class RecordedWord(BaseModel):
    verse_reference: str
    word_index: int
    timestamp: float

class WordProgressEvent(BaseModel):
    verse_reference: str
    word_index: int
    word: str  # raw guess text
    is_correct: bool
    timestamp: float

class VerseAttempt(BaseModel):
    verse_reference: str
    words_correct: int
    total_words: int
    timestamp: float

    @property
    def is_perfect(self) -> bool:
        return self.total_words > 0 and self.words_correct >= self.total_words

class MasteryProgress(BaseModel):
    verse_reference: str
    total_attempts: int = 0
    overall_accuracy: float = 0.0
    consecutive_perfect: int = 0
    is_mastered: bool = False
    mastery_date: Optional[float] = None
    provisional: bool = False  # computed locally while the server was unreachable
