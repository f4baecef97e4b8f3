"""Article progress state machine.

State progression:
    reading_in_progress -> knowledge_check_in_progress -> knowledge_check_complete
        -> practical_in_progress -> completed
with knowledge_check_complete looping back to knowledge_check_in_progress (retry)
or going straight to completed when the article has no practical part.

Pure and side-effect free: the service loads the current snapshot under a
row lock, asks this module for the next one and persists it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from fitgame.errors import IllegalTransition, InvariantViolation, NotFound

logger = logging.getLogger(__name__)


class ArticleStatus(str, Enum):
    READING_IN_PROGRESS = "reading_in_progress"
    KNOWLEDGE_CHECK_IN_PROGRESS = "knowledge_check_in_progress"
    KNOWLEDGE_CHECK_COMPLETE = "knowledge_check_complete"
    PRACTICAL_IN_PROGRESS = "practical_in_progress"
    COMPLETED = "completed"


class ArticleTransition(str, Enum):
    LOG_READ = "LOG_READ"
    START_QUIZ = "START_QUIZ"
    SUBMIT_QUIZ = "SUBMIT_QUIZ"
    RETRY_QUIZ = "RETRY_QUIZ"
    START_PRACTICAL = "START_PRACTICAL"
    COMPLETE_PRACTICAL = "COMPLETE_PRACTICAL"
    SKIP_PRACTICAL = "SKIP_PRACTICAL"
    COMPLETE_ARTICLE = "COMPLETE_ARTICLE"


INITIAL_STATUS = ArticleStatus.READING_IN_PROGRESS


@dataclass(frozen=True)
class QuizAnswer:
    question_id: str
    correct: bool
    hint_used: bool = False


@dataclass(frozen=True)
class TransitionDetails:
    """Inputs a transition may need besides the current snapshot."""

    now: datetime
    has_practicals: bool = False
    answers: tuple[QuizAnswer, ...] = ()
    confirm_retry: bool = False


@dataclass(frozen=True)
class ProgressSnapshot:
    """The mutable fields of one user's progress on one article."""

    status: ArticleStatus
    first_read_at: datetime
    last_read_at: datetime
    quiz_attempts: int = 0
    quiz_all_correct: bool | None = None
    quiz_answers: tuple[QuizAnswer, ...] | None = None
    quiz_started_at: datetime | None = None
    quiz_first_attempted_at: datetime | None = None
    quiz_completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is ArticleStatus.COMPLETED

    @property
    def is_perfect(self) -> bool:
        """Completed with an all-correct quiz."""
        return self.is_completed and bool(self.quiz_all_correct)


@dataclass(frozen=True)
class TransitionResult:
    legal: bool
    next_status: ArticleStatus | None = None
    reason: str | None = None


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset[ArticleStatus]
    target: ArticleStatus
    creates: bool = False


_S = ArticleStatus

TRANSITION_RULES: dict[ArticleTransition, TransitionRule] = {
    ArticleTransition.LOG_READ: TransitionRule(
        frozenset({_S.READING_IN_PROGRESS}), _S.READING_IN_PROGRESS, creates=True
    ),
    ArticleTransition.START_QUIZ: TransitionRule(
        frozenset({_S.READING_IN_PROGRESS}), _S.KNOWLEDGE_CHECK_IN_PROGRESS
    ),
    ArticleTransition.SUBMIT_QUIZ: TransitionRule(
        frozenset({_S.KNOWLEDGE_CHECK_IN_PROGRESS}), _S.KNOWLEDGE_CHECK_COMPLETE
    ),
    ArticleTransition.RETRY_QUIZ: TransitionRule(
        frozenset({_S.KNOWLEDGE_CHECK_COMPLETE}), _S.KNOWLEDGE_CHECK_IN_PROGRESS
    ),
    ArticleTransition.START_PRACTICAL: TransitionRule(
        frozenset({_S.KNOWLEDGE_CHECK_COMPLETE}), _S.PRACTICAL_IN_PROGRESS
    ),
    ArticleTransition.COMPLETE_PRACTICAL: TransitionRule(
        frozenset({_S.PRACTICAL_IN_PROGRESS}), _S.COMPLETED
    ),
    ArticleTransition.SKIP_PRACTICAL: TransitionRule(
        frozenset({_S.KNOWLEDGE_CHECK_COMPLETE}), _S.COMPLETED
    ),
    ArticleTransition.COMPLETE_ARTICLE: TransitionRule(
        frozenset({_S.KNOWLEDGE_CHECK_COMPLETE, _S.PRACTICAL_IN_PROGRESS}), _S.COMPLETED
    ),
}


def _rule(transition: ArticleTransition) -> TransitionRule:
    try:
        return TRANSITION_RULES[transition]
    except KeyError:
        raise InvariantViolation(f"No transition rule for {transition!r}") from None


def _precondition_failure(
    transition: ArticleTransition,
    current: ProgressSnapshot,
    details: TransitionDetails,
) -> str | None:
    """Return a rejection reason, or None when the precondition holds."""
    if transition is ArticleTransition.START_PRACTICAL and not details.has_practicals:
        return "article has no practical activities"
    if transition is ArticleTransition.SUBMIT_QUIZ and not details.answers:
        return "quiz submission has no answers"
    if transition is ArticleTransition.RETRY_QUIZ and current.quiz_all_correct and not details.confirm_retry:
        return "quiz already passed with a perfect score; retry must be confirmed"
    return None


def validate(
    current: ArticleStatus,
    transition: ArticleTransition,
    details: TransitionDetails,
    snapshot: ProgressSnapshot | None = None,
) -> TransitionResult:
    """Check a transition without producing a snapshot. Never raises for illegal moves."""
    rule = _rule(transition)
    if current not in rule.sources:
        return TransitionResult(
            legal=False,
            reason=f"{transition.value} is not allowed from {current.value}",
        )
    probe = snapshot or ProgressSnapshot(status=current, first_read_at=details.now, last_read_at=details.now)
    reason = _precondition_failure(transition, probe, details)
    if reason is not None:
        return TransitionResult(legal=False, reason=reason)
    return TransitionResult(legal=True, next_status=rule.target)


def initial_snapshot(details: TransitionDetails) -> ProgressSnapshot:
    return ProgressSnapshot(
        status=INITIAL_STATUS,
        first_read_at=details.now,
        last_read_at=details.now,
        quiz_attempts=0,
    )


def next_snapshot(
    current: ProgressSnapshot | None,
    transition: ArticleTransition,
    details: TransitionDetails,
) -> ProgressSnapshot:
    """Compute the next snapshot or raise IllegalTransition / NotFound."""
    rule = _rule(transition)

    if current is None:
        if rule.creates:
            return initial_snapshot(details)
        raise NotFound("User article progress", transition.value)

    result = validate(current.status, transition, details, snapshot=current)
    if not result.legal:
        raise IllegalTransition(transition.value, current.status.value, result.reason or "illegal")

    now = details.now
    match transition:
        case ArticleTransition.LOG_READ:
            return replace(current, status=rule.target, last_read_at=now)
        case ArticleTransition.START_QUIZ:
            return replace(current, status=rule.target, quiz_started_at=now)
        case ArticleTransition.SUBMIT_QUIZ:
            return replace(
                current,
                status=rule.target,
                quiz_all_correct=all(a.correct for a in details.answers),
                quiz_answers=tuple(details.answers),
                quiz_first_attempted_at=current.quiz_first_attempted_at or now,
                quiz_completed_at=now,
                quiz_attempts=current.quiz_attempts + 1,
            )
        case ArticleTransition.RETRY_QUIZ:
            if current.quiz_all_correct:
                logger.info("Resetting a perfect quiz submission on confirmed retry")
            return replace(
                current,
                status=rule.target,
                quiz_all_correct=False,
                quiz_answers=None,
                quiz_started_at=now,
                quiz_completed_at=None,
            )
        case (
            ArticleTransition.START_PRACTICAL
            | ArticleTransition.COMPLETE_PRACTICAL
            | ArticleTransition.SKIP_PRACTICAL
            | ArticleTransition.COMPLETE_ARTICLE
        ):
            return replace(current, status=rule.target)
    raise InvariantViolation(f"Unhandled article transition {transition!r}")
