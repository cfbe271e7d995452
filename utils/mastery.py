from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from models.progress import MasteryProgress, VerseAttempt

SECONDS_PER_HOUR = 3600

DEFAULT_MASTERY_RULES = {
    "min_attempts": 5,
    "min_accuracy": 0.95,
    "required_perfect": 3,
    "min_perfect_spacing_hours": 24,
}


def rules_from_config(config: dict) -> dict:
    mastery_cfg = config.get("mastery", {})
    rules = DEFAULT_MASTERY_RULES.copy()
    for key in rules:
        if key in mastery_cfg:
            rules[key] = mastery_cfg[key]
    return rules


def spaced_perfect_count(attempts: List[VerseAttempt], min_spacing_seconds: float) -> int:
    """Count perfect attempts in the latest unbroken perfect run, each spaced from the last counted one."""
    run: List[VerseAttempt] = []
    for attempt in reversed(attempts):
        if not attempt.is_perfect:
            break
        run.append(attempt)
    run.reverse()
    count = 0
    last_counted: Optional[float] = None
    for attempt in run:
        if last_counted is None or attempt.timestamp - last_counted >= min_spacing_seconds:
            count += 1
            last_counted = attempt.timestamp
    return count


def evaluate_mastery(
    verse_reference: str,
    attempts: Iterable[VerseAttempt],
    rules: Optional[dict] = None,
) -> MasteryProgress:
    """Replay an attempt log and decide whether the verse qualifies for mastery."""
    rules = rules or DEFAULT_MASTERY_RULES
    ordered = sorted(attempts, key=lambda attempt: attempt.timestamp)
    total_words = sum(attempt.total_words for attempt in ordered)
    total_correct = sum(min(attempt.words_correct, attempt.total_words) for attempt in ordered)
    accuracy = (total_correct / total_words) if total_words else 0.0
    perfect = spaced_perfect_count(
        ordered, float(rules["min_perfect_spacing_hours"]) * SECONDS_PER_HOUR
    )
    is_mastered = (
        len(ordered) >= rules["min_attempts"]
        and accuracy >= rules["min_accuracy"]
        and perfect >= rules["required_perfect"]
    )
    return MasteryProgress(
        verse_reference=verse_reference,
        total_attempts=len(ordered),
        overall_accuracy=round(accuracy, 4),
        consecutive_perfect=perfect,
        is_mastered=is_mastered,
        mastery_date=ordered[-1].timestamp if is_mastered else None,
    )


def describe_mastery_progress(progress: MasteryProgress, rules: Optional[dict] = None) -> str:
    rules = rules or DEFAULT_MASTERY_RULES
    if progress.is_mastered:
        if progress.mastery_date:
            mastered_on = datetime.fromtimestamp(progress.mastery_date).date().isoformat()
            return f"Verse mastered on {mastered_on}!"
        return "Verse mastered!"
    needs = []
    attempts_left = rules["min_attempts"] - progress.total_attempts
    if attempts_left > 0:
        needs.append(f"{attempts_left} more attempt{'s' if attempts_left != 1 else ''}")
    perfect_left = rules["required_perfect"] - progress.consecutive_perfect
    if perfect_left > 0:
        needs.append(
            f"{perfect_left} more perfect attempt{'s' if perfect_left != 1 else ''} "
            f"at least {int(rules['min_perfect_spacing_hours'])} hours apart"
        )
    if progress.total_attempts and progress.overall_accuracy < rules["min_accuracy"]:
        needs.append(f"accuracy of {int(rules['min_accuracy'] * 100)}% (currently {progress.overall_accuracy:.0%})")
    if not needs:
        return "Keep going, mastery is within reach."
    message = "To master this verse you need " + ", ".join(needs) + "."
    if progress.provisional:
        message += " (offline estimate)"
    return message


def mastery_percent(progress: MasteryProgress, rules: Optional[dict] = None) -> float:
    rules = rules or DEFAULT_MASTERY_RULES
    if progress.is_mastered:
        return 100.0
    attempts_part = min(progress.total_attempts / rules["min_attempts"], 1.0)
    perfect_part = min(progress.consecutive_perfect / rules["required_perfect"], 1.0)
    return round(((attempts_part + perfect_part) / 2) * 100, 1)
