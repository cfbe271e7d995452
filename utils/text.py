from __future__ import annotations

import re
from typing import List

_STRIP_RE = re.compile(r"[.,;:!?'\"\-]")
_WHITESPACE_RE = re.compile(r"\s+")


def split_words(text: str) -> List[str]:
    """Split verse text into the words the learner guesses one at a time."""
    if not text:
        return []
    return text.split()


def normalize_word(word: str) -> str:
    """Lowercase and drop the punctuation ignored when comparing guesses."""
    if not word:
        return ""
    return _STRIP_RE.sub("", word.strip().lower())


def normalize_text(text: str) -> str:
    if not text:
        return ""
    cleaned = _STRIP_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def words_match(guess: str, expected: str) -> bool:
    return normalize_word(guess) == normalize_word(expected)


def is_multi_word(text: str) -> bool:
    """True when pasted text holds more than one word."""
    return len(split_words(text or "")) > 1


def count_words_contained(canonical_text: str, attempt_text: str) -> int:
    """Count canonical words found anywhere in the attempt.

    Case-insensitive containment, not position-aware: word order and
    repetitions in the attempt are ignored.
    """
    attempt = normalize_text(attempt_text)
    if not attempt:
        return 0
    correct = 0
    for word in split_words(canonical_text):
        normalized = normalize_word(word)
        if normalized and normalized in attempt:
            correct += 1
    return correct
