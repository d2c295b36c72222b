import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session
from shared.database import db_dependency, transaction

from . import crud
from .errors import NotFoundError
from .identity import build_current_user_id, current_subject
from .models import QuizSession
from .schemas import (
    ChoiceOut, DomainListOut, DomainOut, GroupScoreOut, QuestionOut,
    ReviewQuestionOut, SessionListOut, SessionReviewOut, SessionSummaryOut,
    StartQuizOut, SubmitQuizOut,
)
from .scoring import as_number, score_submission
from .validation import parse_domain_filter, validate_submission

logger = logging.getLogger("quiz-service")


def _summary(s: QuizSession) -> SessionSummaryOut:
    return SessionSummaryOut(
        quiz_session_id=s.quiz_session_id,
        domain_id=s.domain_id,
        status=s.status,
        submitted_at=s.submitted_at,
        question_count=s.question_count,
        correct_count=s.correct_count,
        percent_score=as_number(s.percent_score),
    )


def build_router(SessionLocal):
    router = APIRouter()
    get_db = db_dependency(SessionLocal)
    current_user_id = build_current_user_id(get_db)

    @router.get("/domains", response_model=DomainListOut)
    def domains(sub: str = Depends(current_subject), db: Session = Depends(get_db)):
        with transaction(db, sub):
            rows = crud.list_domains(db)
        return DomainListOut(
            domains=[DomainOut(domain_id=d.domain_id, domain_label=d.domain_label) for d in rows]
        )

    @router.get("/start", response_model=StartQuizOut)
    def start(
        domain_id: str | None = Query(default=None),
        sub: str = Depends(current_subject),
        db: Session = Depends(get_db),
    ):
        domain_filter = parse_domain_filter(domain_id)
        with transaction(db, sub):
            questions = crud.pick_quiz_questions(db, domain_filter)
            out = [
                QuestionOut(
                    question_id=q.question_id,
                    prompt=q.prompt,
                    explanation=q.explanation,
                    citation_text=q.citation_text,
                    choices=[
                        ChoiceOut(choice_id=c.choice_id, choice_label=c.choice_label, choice_text=c.choice_text)
                        for c in q.choices
                    ],
                )
                for q in questions
            ]
        logger.info("quiz started domain=%s questions=%d", domain_filter, len(out))
        return StartQuizOut(questions=out)

    @router.post("/submit", response_model=SubmitQuizOut)
    def submit(
        payload: Any = Body(default=None),
        sub: str = Depends(current_subject),
        uid: UUID = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        submission = validate_submission(payload)

        with transaction(db, sub):
            questions = crud.get_active_questions(db, submission.question_ids)
            choices = crud.get_choices(db, submission.choice_ids)
            categories = crud.category_by_domain(db, {q.domain_id for q in questions})

            result = score_submission(submission, questions, choices, categories)
            session = crud.persist_session(db, uid, submission.domain_id, result)

        logger.info(
            "quiz submitted session=%s user=%s correct=%d percent=%s",
            session.quiz_session_id, uid, result.correct_count, result.percent_score,
        )
        return SubmitQuizOut(
            quiz_session_id=session.quiz_session_id,
            correct_count=result.correct_count,
            percent_score=as_number(result.percent_score),
        )

    @router.get("/sessions", response_model=SessionListOut)
    def sessions(
        sub: str = Depends(current_subject),
        uid: UUID = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        with transaction(db, sub):
            rows = crud.list_sessions(db, uid)
        return SessionListOut(sessions=[_summary(s) for s in rows])

    @router.get("/sessions/{quiz_session_id}", response_model=SessionReviewOut)
    def review(
        quiz_session_id: UUID,
        sub: str = Depends(current_subject),
        uid: UUID = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        with transaction(db, sub):
            s = crud.get_session_for_review(db, uid, quiz_session_id)
            if not s:
                raise NotFoundError("Quiz session not found.")

            # built from snapshot columns only; the live catalog may have changed since
            questions = [
                ReviewQuestionOut(
                    ordinal=sq.ordinal,
                    question_id=sq.question_id,
                    prompt=sq.prompt_snapshot,
                    explanation=sq.explanation_snapshot,
                    citation_text=sq.citation_text_snapshot,
                    domain_id=sq.domain_id_snapshot,
                    difficulty=sq.difficulty_snapshot,
                    chosen_choice_label=sq.answer.chosen_choice_label,
                    chosen_choice_text=sq.answer.chosen_choice_text,
                    is_correct=sq.answer.is_correct,
                )
                for sq in s.questions
            ]
            domain_scores = [
                GroupScoreOut(
                    group_id=d.domain_id,
                    question_count=d.question_count,
                    correct_count=d.correct_count,
                    percent_score=as_number(d.percent_score),
                )
                for d in s.domain_scores
            ]
            category_scores = [
                GroupScoreOut(
                    group_id=c.category_id,
                    question_count=c.question_count,
                    correct_count=c.correct_count,
                    percent_score=as_number(c.percent_score),
                )
                for c in s.category_scores
            ]

        return SessionReviewOut(
            session=_summary(s),
            questions=questions,
            domain_scores=domain_scores,
            category_scores=category_scores,
        )

    return router
