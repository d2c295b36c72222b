import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .config import QUIZ_QUESTION_COUNT
from .errors import InsufficientQuestionsError, PersistenceError
from .models import (
    AppUser, Choice, Domain, Question, QuizAnswer, QuizSession,
    QuizSessionCategoryScore, QuizSessionDomainScore, QuizSessionQuestion,
)
from .scoring import GroupScore, ScoredResult, aggregate

logger = logging.getLogger(__name__)


def get_app_user_id(db: Session, clerk_user_id: str) -> UUID | None:
    return db.scalar(
        select(AppUser.user_id)
        .where(AppUser.clerk_user_id == clerk_user_id, AppUser.is_active.is_(True))
        .limit(1)
    )


def list_domains(db: Session) -> list[Domain]:
    rows = db.scalars(select(Domain)).all()
    return sorted(rows, key=lambda d: d.domain_label.lower())


# ----------------------------
# Catalog reads
# ----------------------------

def pick_quiz_questions(db: Session, domain_id: UUID | None = None) -> list[Question]:
    """
    Uniform random sample of active questions (optionally one domain), with
    choices loaded in label order. Fewer eligible rows than a full quiz is an error.
    """
    stmt = select(Question.question_id).where(Question.is_active.is_(True))
    if domain_id is not None:
        stmt = stmt.where(Question.domain_id == domain_id)
    picked = db.scalars(stmt.order_by(func.random()).limit(QUIZ_QUESTION_COUNT)).all()

    if len(picked) < QUIZ_QUESTION_COUNT:
        raise InsufficientQuestionsError(
            f"Only {len(picked)} active questions available; a quiz needs {QUIZ_QUESTION_COUNT}."
        )

    rows = db.scalars(
        select(Question)
        .where(Question.question_id.in_(picked))
        .options(selectinload(Question.choices))
    ).all()
    position = {qid: i for i, qid in enumerate(picked)}
    return sorted(rows, key=lambda q: position[q.question_id])


def get_active_questions(db: Session, question_ids: list[UUID]) -> list[Question]:
    return list(db.scalars(
        select(Question).where(Question.question_id.in_(question_ids), Question.is_active.is_(True))
    ).all())


def get_choices(db: Session, choice_ids: list[UUID]) -> list[Choice]:
    return list(db.scalars(select(Choice).where(Choice.choice_id.in_(choice_ids))).all())


def category_by_domain(db: Session, domain_ids: set[UUID]) -> dict[UUID, UUID | None]:
    if not domain_ids:
        return {}
    rows = db.execute(
        select(Domain.domain_id, Domain.category_id).where(Domain.domain_id.in_(domain_ids))
    ).all()
    return {d: c for d, c in rows}


# ----------------------------
# Session persistence
# ----------------------------

def _check_partition(groups: list[GroupScore], total: int) -> None:
    if sum(g.question_count for g in groups) != total:
        raise PersistenceError()
    if any(g.correct_count > g.question_count for g in groups):
        raise PersistenceError()


def persist_session(
    db: Session,
    user_id: UUID,
    domain_id: UUID | None,
    result: ScoredResult,
) -> QuizSession:
    """
    Write a submitted session and everything under it. Must run inside
    shared.database.transaction so a failure at any step leaves no rows behind.
    """
    now = datetime.now(timezone.utc)
    domain_groups = aggregate(result.answers, key="domain_id")
    category_groups = aggregate(result.answers, key="category_id")
    _check_partition(domain_groups, result.question_count)

    try:
        session = QuizSession(
            user_id=user_id,
            domain_id=domain_id,
            question_count=QUIZ_QUESTION_COUNT,
            status="submitted",
            submitted_at=now,
            correct_count=result.correct_count,
            percent_score=result.percent_score,
            created_at=now,
            updated_at=now,
            created_by=user_id,
            updated_by=user_id,
        )
        db.add(session)
        db.flush()

        session_questions = [
            QuizSessionQuestion(
                quiz_session_id=session.quiz_session_id,
                question_id=a.question_id,
                prompt_snapshot=a.prompt,
                explanation_snapshot=a.explanation,
                citation_text_snapshot=a.citation_text,
                domain_id_snapshot=a.domain_id,
                category_id_snapshot=a.category_id,
                difficulty_snapshot=a.difficulty,
                ordinal=a.ordinal,
                created_at=now,
                created_by=user_id,
                updated_by=user_id,
            )
            for a in result.answers
        ]
        db.add_all(session_questions)
        db.flush()

        stored = db.scalar(
            select(func.count())
            .select_from(QuizSessionQuestion)
            .where(QuizSessionQuestion.quiz_session_id == session.quiz_session_id)
        )
        if stored != QUIZ_QUESTION_COUNT:
            logger.error(
                "Session question insert stored %s rows, expected %d", stored, QUIZ_QUESTION_COUNT,
            )
            raise PersistenceError()

        qsq_id_by_question = {sq.question_id: sq.quiz_session_question_id for sq in session_questions}

        db.add_all([
            QuizAnswer(
                quiz_session_question_id=qsq_id_by_question[a.question_id],
                chosen_choice_label=a.chosen_choice_label,
                chosen_choice_text=a.chosen_choice_text,
                is_correct=a.is_correct,
                created_at=now,
                created_by=user_id,
                updated_by=user_id,
            )
            for a in result.answers
        ])

        db.add_all([
            QuizSessionDomainScore(
                quiz_session_id=session.quiz_session_id,
                domain_id=g.group_id,
                question_count=g.question_count,
                correct_count=g.correct_count,
                percent_score=g.percent_score,
                created_by=user_id,
                updated_by=user_id,
            )
            for g in domain_groups
        ])
        db.add_all([
            QuizSessionCategoryScore(
                quiz_session_id=session.quiz_session_id,
                category_id=g.group_id,
                question_count=g.question_count,
                correct_count=g.correct_count,
                percent_score=g.percent_score,
                created_by=user_id,
                updated_by=user_id,
            )
            for g in category_groups
        ])
        db.flush()
    except SQLAlchemyError as exc:
        logger.exception("quiz session insert failed")
        raise PersistenceError() from exc

    return session


# ----------------------------
# Session history
# ----------------------------

def list_sessions(db: Session, user_id: UUID, limit: int = 50) -> list[QuizSession]:
    return list(db.scalars(
        select(QuizSession)
        .where(QuizSession.user_id == user_id)
        .order_by(QuizSession.submitted_at.desc())
        .limit(limit)
    ).all())


def get_session_for_review(db: Session, user_id: UUID, quiz_session_id: UUID) -> QuizSession | None:
    return db.scalar(
        select(QuizSession)
        .where(QuizSession.quiz_session_id == quiz_session_id, QuizSession.user_id == user_id)
        .options(
            selectinload(QuizSession.questions).selectinload(QuizSessionQuestion.answer),
            selectinload(QuizSession.domain_scores),
            selectinload(QuizSession.category_scores),
        )
    )
