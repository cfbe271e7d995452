from .verse import Verse, VerseCreate, VerseStatus, StatusUpdate
from .progress import RecordedWord, WordProgressEvent, VerseAttempt, MasteryProgress
from .gamification import VerseStreak, GamificationStats, PointEvent, AchievementRecord
from .sync import ChangeType, PendingChange

__all__ = [
    'Verse', 'VerseCreate', 'VerseStatus', 'StatusUpdate',
    'RecordedWord', 'WordProgressEvent', 'VerseAttempt', 'MasteryProgress',
    'VerseStreak', 'GamificationStats', 'PointEvent', 'AchievementRecord',
    'ChangeType', 'PendingChange',
]
