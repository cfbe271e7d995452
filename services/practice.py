"""Per-verse practice sessions: word reveal, guessing, hints, reset and mastery mode.

Every public method runs on the event loop thread without awaiting between
reading and writing session state, so guesses for one verse are applied
strictly in submission order. Only mastery mode awaits the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from db.store import LocalStore
from models.progress import MasteryProgress, VerseAttempt, WordProgressEvent
from models.verse import VerseStatus
from services.achievements import AchievementTracker
from services.dispatcher import WordProgressDispatcher
from services.mastery import MasteryService
from services.points import POINTS, PointsReconciler
from services.verses import VerseService
from utils.errors import InvalidTransitionError, StoreUnavailableError, ValidationError
from utils.mastery import describe_mastery_progress, mastery_percent
from utils.scheduler import Scheduler
from utils.text import count_words_contained, is_multi_word, split_words, words_match

logger = logging.getLogger(__name__)

VERSE_COMPLETED_MESSAGE = "Verse completed! Every word has been revealed."
MULTI_WORD_PASTE_MESSAGE = "Pasting multiple words is not allowed. Type the verse from memory."
STATUS_UPDATE_WARNING = "Your progress could not be saved locally. It will not be synced until storage is available."


class PracticeState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    MASTERY_ACTIVE = "mastery_active"


@dataclass
class PracticeSession:
    reference: str
    words: List[str]
    state: PracticeState = PracticeState.IDLE
    revealed_words: List[int] = field(default_factory=list)
    mastery_progress: Optional[MasteryProgress] = None
    mastery_message: Optional[str] = None
    is_submitting: bool = False

    @property
    def word_count(self) -> int:
        return len(self.words)

    @property
    def next_index(self) -> Optional[int]:
        revealed = set(self.revealed_words)
        for index in range(self.word_count):
            if index not in revealed:
                return index
        return None


class PracticeFeedback(BaseModel):
    reference: str
    state: PracticeState
    revealed_words: List[int]
    word_count: int
    revealed_text: List[Optional[str]]
    is_correct: Optional[bool] = None
    message: Optional[str] = None
    warning: Optional[str] = None
    event_emitted: bool = False
    points_awarded: int = 0
    current_streak: int = 0
    mastery_progress: Optional[MasteryProgress] = None
    mastery_percent: Optional[float] = None


class PracticeService:
    def __init__(
        self,
        store: LocalStore,
        verses: VerseService,
        dispatcher: WordProgressDispatcher,
        points: PointsReconciler,
        achievements: AchievementTracker,
        mastery: MasteryService,
        scheduler: Scheduler,
    ):
        self._store = store
        self._verses = verses
        self._dispatcher = dispatcher
        self._points = points
        self._achievements = achievements
        self._mastery = mastery
        self._scheduler = scheduler
        self._sessions: Dict[str, PracticeSession] = {}

    def get_session(self, reference: str) -> PracticeSession:
        verse = self._verses.get(reference)
        session = self._sessions.get(reference)
        if session is None:
            session = PracticeSession(reference=reference, words=split_words(verse.text))
            self._sessions[reference] = session
        return session

    def clear_sessions(self) -> None:
        self._sessions.clear()

    def forget(self, reference: str) -> None:
        self._sessions.pop(reference, None)

    def feedback(self, session: PracticeSession, **extra) -> PracticeFeedback:
        revealed = set(session.revealed_words)
        return PracticeFeedback(
            reference=session.reference,
            state=session.state,
            revealed_words=list(session.revealed_words),
            word_count=session.word_count,
            revealed_text=[word if index in revealed else None for index, word in enumerate(session.words)],
            current_streak=self._points.current_verse_streak
            if self._points.current_verse_reference == session.reference else 0,
            mastery_progress=session.mastery_progress,
            mastery_percent=mastery_percent(session.mastery_progress, self._mastery.rules)
            if session.mastery_progress else None,
            **extra,
        )

    # Word practice

    def start(self, reference: str) -> PracticeFeedback:
        session = self.get_session(reference)
        if session.state != PracticeState.IDLE:
            raise InvalidTransitionError(f"Practice for {reference} is already {session.state.value}")
        # Resume from words already recorded so a reload keeps earlier progress.
        recorded = self._store.get_recorded_words(reference)
        session.revealed_words = sorted(word.word_index for word in recorded if word.word_index < session.word_count)
        session.state = PracticeState.ACTIVE
        self._points.begin_verse_session(reference)
        if session.next_index is None:
            session.state = PracticeState.COMPLETED
        return self.feedback(session)

    def submit_guess(self, reference: str, raw_text: str) -> PracticeFeedback:
        session = self.get_session(reference)
        if session.state == PracticeState.COMPLETED:
            return self.feedback(session, message=VERSE_COMPLETED_MESSAGE)
        if session.state != PracticeState.ACTIVE:
            raise InvalidTransitionError("Start practicing this verse before guessing")
        if not raw_text or not raw_text.strip():
            raise ValidationError("Type a word to guess")
        next_index = session.next_index
        if next_index is None:
            session.state = PracticeState.COMPLETED
            return self.feedback(session, message=VERSE_COMPLETED_MESSAGE)

        is_correct = words_match(raw_text, session.words[next_index])
        first_attempt = self._record_attempt(reference, next_index, raw_text, is_correct)
        if not is_correct:
            self._points.record_wrong_guess(reference)
            return self.feedback(session, is_correct=False, event_emitted=first_attempt, message="Not quite, try again.")
        return self._accept(session, next_index, first_attempt)

    def show_hint(self, reference: str) -> PracticeFeedback:
        """Reveal the next word as if it had been guessed correctly, without scoring it."""
        session = self.get_session(reference)
        if session.state == PracticeState.COMPLETED:
            return self.feedback(session, message=VERSE_COMPLETED_MESSAGE)
        if session.state != PracticeState.ACTIVE:
            raise InvalidTransitionError("Start practicing this verse before asking for a hint")
        next_index = session.next_index
        if next_index is None:
            session.state = PracticeState.COMPLETED
            return self.feedback(session, message=VERSE_COMPLETED_MESSAGE)
        expected = session.words[next_index]
        first_attempt = self._record_attempt(reference, next_index, expected, True)
        return self._accept(session, next_index, first_attempt, scoring=False, message=f"Hint: {expected}")

    def _record_attempt(self, reference: str, index: int, word: str, is_correct: bool) -> bool:
        """Queue the first attempt on a word; later attempts are never re-emitted."""
        if self._dispatcher.is_recorded(reference, index):
            return False
        self._dispatcher.enqueue(
            WordProgressEvent(
                verse_reference=reference,
                word_index=index,
                word=word,
                is_correct=is_correct,
                timestamp=self._scheduler.now(),
            )
        )
        return True

    def _accept(
        self,
        session: PracticeSession,
        index: int,
        first_attempt: bool,
        scoring: bool = True,
        message: Optional[str] = None,
    ) -> PracticeFeedback:
        awarded = self._points.record_correct_guess(session.reference, first_attempt=first_attempt, scoring=scoring)
        warning = self._reveal(session, index)
        self._achievements.record_streak(self._points.current_verse_streak)
        if session.state == PracticeState.COMPLETED:
            message = VERSE_COMPLETED_MESSAGE
        return self.feedback(
            session,
            is_correct=True,
            event_emitted=first_attempt,
            points_awarded=awarded,
            message=message,
            warning=warning,
        )

    def _reveal(self, session: PracticeSession, index: int) -> Optional[str]:
        session.revealed_words.append(index)
        warning = None
        if index == 0:
            warning = self._mark_in_progress(session.reference)
        if session.next_index is None:
            session.state = PracticeState.COMPLETED
            self._achievements.record_verse_completion(self._points.current_verse_streak, session.word_count)
            logger.info("Completed %s", session.reference)
        return warning

    def _mark_in_progress(self, reference: str) -> Optional[str]:
        verse = self._verses.get(reference)
        if verse.status != VerseStatus.NOT_STARTED:
            return None
        try:
            self._verses.update_status(reference, VerseStatus.IN_PROGRESS, silent=True)
        except StoreUnavailableError as exc:
            logger.error("Could not queue status update for %s: %s", reference, exc)
            return STATUS_UPDATE_WARNING
        return None

    def reset(self, reference: str, clear_progress: bool = False) -> PracticeFeedback:
        session = self.get_session(reference)
        session.state = PracticeState.IDLE
        session.revealed_words = []
        session.mastery_progress = None
        session.mastery_message = None
        if clear_progress:
            removed = self._store.delete_recorded_words(reference)
            logger.info("Hard reset of %s cleared %d recorded word(s)", reference, removed)
        self._points.reset_streak(reference)
        return self.feedback(session)

    @staticmethod
    def check_paste(text: str) -> None:
        """Reject multi-word clipboard pastes; single words are allowed."""
        if is_multi_word(text):
            raise ValidationError(MULTI_WORD_PASTE_MESSAGE)

    # Mastery mode

    async def enter_mastery(self, reference: str) -> PracticeFeedback:
        session = self.get_session(reference)
        if session.state != PracticeState.COMPLETED:
            raise InvalidTransitionError("Complete the verse before entering mastery mode")
        session.state = PracticeState.MASTERY_ACTIVE
        progress = await self._mastery.get_progress(reference)
        session.mastery_progress = progress
        session.mastery_message = describe_mastery_progress(progress, self._mastery.rules)
        return self.feedback(session, message=session.mastery_message)

    def exit_mastery(self, reference: str) -> PracticeFeedback:
        session = self.get_session(reference)
        if session.state != PracticeState.MASTERY_ACTIVE:
            raise InvalidTransitionError("Mastery mode is not active")
        session.state = PracticeState.COMPLETED
        return self.feedback(session)

    async def submit_mastery_attempt(self, reference: str, attempt_text: str) -> PracticeFeedback:
        session = self.get_session(reference)
        if session.state != PracticeState.MASTERY_ACTIVE:
            raise InvalidTransitionError("Enter mastery mode before submitting an attempt")
        if not attempt_text or not attempt_text.strip():
            raise ValidationError("Type the whole verse before submitting")
        if session.is_submitting:
            raise InvalidTransitionError("An attempt is already being submitted")
        verse = self._verses.get(reference)
        session.is_submitting = True
        try:
            attempt = VerseAttempt(
                verse_reference=reference,
                words_correct=count_words_contained(verse.text, attempt_text),
                total_words=session.word_count,
                timestamp=self._scheduler.now(),
            )
            was_mastered = bool(session.mastery_progress and session.mastery_progress.is_mastered)
            outcome = await self._mastery.submit_attempt(attempt)
            if not outcome.ok:
                # Inline feedback only; the session stays in mastery mode for a retry.
                return self.feedback(session, is_correct=False, message=f"Could not submit attempt: {outcome.error}")
            progress = outcome.progress
            session.mastery_progress = progress
            session.mastery_message = describe_mastery_progress(progress, self._mastery.rules)
            warning = None
            if progress.is_mastered and not progress.provisional:
                warning = self._mark_mastered(reference, was_mastered)
            return self.feedback(
                session,
                is_correct=attempt.is_perfect,
                message=outcome.message or session.mastery_message,
                warning=warning,
            )
        finally:
            session.is_submitting = False

    def _mark_mastered(self, reference: str, was_mastered: bool) -> Optional[str]:
        try:
            self._verses.update_status(reference, VerseStatus.MASTERED)
        except StoreUnavailableError as exc:
            logger.error("Could not queue mastered status for %s: %s", reference, exc)
            return STATUS_UPDATE_WARNING
        if not was_mastered:
            self._points.add_points(POINTS["MASTERY_ACHIEVED"])
        return None
