import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence
from uuid import UUID

from .config import QUIZ_QUESTION_COUNT
from .errors import IntegrityError
from .models import Choice, Question
from .validation import ValidatedSubmission

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class ScoredAnswer:
    ordinal: int
    question_id: UUID
    prompt: str
    explanation: str
    citation_text: str
    domain_id: UUID
    category_id: Optional[UUID]
    difficulty: int
    chosen_choice_label: str
    chosen_choice_text: str
    is_correct: bool


@dataclass(frozen=True)
class ScoredResult:
    answers: list[ScoredAnswer]
    correct_count: int
    percent_score: Decimal

    @property
    def question_count(self) -> int:
        return len(self.answers)


@dataclass(frozen=True)
class GroupScore:
    group_id: UUID
    question_count: int
    correct_count: int
    percent_score: Decimal


def percent(correct: int, total: int) -> Decimal:
    if total <= 0:
        raise ValueError("total must be positive")
    return (Decimal(correct * 100) / Decimal(total)).quantize(_CENT, rounding=ROUND_HALF_UP)


def as_number(value: Decimal) -> int | float:
    """JSON-friendly percentage: whole values stay integers (68, not 68.0)."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def score_submission(
    submission: ValidatedSubmission,
    questions: Sequence[Question],
    choices: Sequence[Choice],
    category_by_domain: Mapping[UUID, Optional[UUID]] | None = None,
) -> ScoredResult:
    """
    Re-derive correctness from catalog rows fetched server-side.

    `questions` must be the active questions for the submitted question ids and
    `choices` the rows for the submitted choice ids. Anything the client sent
    beyond the ids themselves is ignored.
    """
    category_by_domain = category_by_domain or {}
    question_by_id = {q.question_id: q for q in questions}
    choice_by_id = {c.choice_id: c for c in choices}

    if len(question_by_id) != QUIZ_QUESTION_COUNT or any(
        qid not in question_by_id for qid in submission.question_ids
    ):
        raise IntegrityError("One or more questions not found or not active.")

    if any(cid not in choice_by_id for cid in submission.choice_ids):
        raise IntegrityError("One or more choices not found.")

    scored: list[ScoredAnswer] = []
    for idx, a in enumerate(submission.answers):
        q = question_by_id[a.question_id]
        c = choice_by_id[a.choice_id]

        if c.question_id != a.question_id:
            logger.warning("Choice/question mismatch at ordinal %d", idx + 1)
            raise IntegrityError("A choice_id does not belong to its question_id.")

        scored.append(ScoredAnswer(
            ordinal=idx + 1,
            question_id=q.question_id,
            prompt=q.prompt,
            explanation=q.explanation,
            citation_text=q.citation_text,
            domain_id=q.domain_id,
            category_id=category_by_domain.get(q.domain_id),
            difficulty=q.difficulty,
            chosen_choice_label=c.choice_label,
            chosen_choice_text=c.choice_text,
            is_correct=c.is_correct is True,
        ))

    correct = sum(1 for s in scored if s.is_correct)
    return ScoredResult(
        answers=scored,
        correct_count=correct,
        percent_score=percent(correct, QUIZ_QUESTION_COUNT),
    )


def aggregate(answers: Sequence[ScoredAnswer], key: str = "domain_id") -> list[GroupScore]:
    """
    Group scored answers by a snapshot attribute (domain_id or category_id).
    Answers whose key is None are left out, so category groups may cover fewer
    answers than the session; domain groups always partition it.
    """
    counts: dict[UUID, list[int]] = {}
    for a in answers:
        group = getattr(a, key)
        if group is None:
            continue
        cur = counts.setdefault(group, [0, 0])
        cur[0] += 1
        if a.is_correct:
            cur[1] += 1

    return [
        GroupScore(
            group_id=gid,
            question_count=q_count,
            correct_count=c_count,
            percent_score=percent(c_count, q_count),
        )
        for gid, (q_count, c_count) in counts.items()
    ]
