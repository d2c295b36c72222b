import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import select, update

from shared.database import transaction
from quiz_service import crud
from quiz_service.errors import PersistenceError
from quiz_service.models import (
    Question, QuizAnswer, QuizSession, QuizSessionCategoryScore,
    QuizSessionDomainScore, QuizSessionQuestion,
)
from quiz_service.scoring import ScoredResult, score_submission
from quiz_service.validation import validate_submission

from .conftest import build_answers


def _submit(client, auth, answers, domain_id=None):
    return client.post(
        "/quiz/submit",
        json={"domain_id": str(domain_id) if domain_id else None, "answers": answers},
        headers=auth,
    )


def test_all_correct_submission(client, auth, catalog, SessionLocal, count_rows):
    questions = catalog.in_domain(catalog.networking)[:20] + catalog.in_domain(catalog.security)[:5]
    r = _submit(client, auth, build_answers(questions, correct=25))

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["correct_count"] == 25
    assert body["percent_score"] == 100
    assert isinstance(body["percent_score"], int)

    session_id = uuid.UUID(body["quiz_session_id"])
    with SessionLocal() as db:
        s = db.get(QuizSession, session_id)
        assert s.user_id == catalog.user_id
        assert s.status == "submitted"
        assert s.question_count == 25
        assert s.submitted_at is not None
        assert s.created_by == s.updated_by == catalog.user_id

        domain_rows = db.scalars(
            select(QuizSessionDomainScore).where(QuizSessionDomainScore.quiz_session_id == session_id)
        ).all()
        assert {d.domain_id: d.question_count for d in domain_rows} == {
            catalog.networking: 20, catalog.security: 5,
        }
        assert sum(d.correct_count for d in domain_rows) == 25

        category_rows = db.scalars(select(QuizSessionCategoryScore)).all()
        assert [(c.category_id, c.question_count) for c in category_rows] == [(catalog.category_id, 20)]

    assert count_rows(QuizSession) == 1
    assert count_rows(QuizSessionQuestion) == 25
    assert count_rows(QuizAnswer) == 25


def test_correctness_is_recomputed(client, auth, catalog, SessionLocal):
    questions = catalog.in_domain(catalog.networking)[:25]
    answers = build_answers(questions, correct=17)
    # client-side claims are ignored
    for a in answers:
        a["is_correct"] = True

    r = _submit(client, auth, answers, domain_id=catalog.networking)

    assert r.status_code == 200
    assert r.json()["correct_count"] == 17
    assert r.json()["percent_score"] == 68
    assert "\"percent_score\":68}" in r.text

    with SessionLocal() as db:
        rows = db.execute(
            select(QuizSessionQuestion.ordinal, QuizAnswer.is_correct)
            .join(QuizAnswer)
            .order_by(QuizSessionQuestion.ordinal)
        ).all()
        s = db.scalars(select(QuizSession)).one()
    assert [ordinal for ordinal, _ in rows] == list(range(1, 26))
    assert [ok for _, ok in rows] == [True] * 17 + [False] * 8
    assert s.domain_id == catalog.networking
    assert s.correct_count == 17
    assert s.percent_score == 68


def test_24_answers_is_a_validation_error(client, auth, catalog, count_rows):
    r = _submit(client, auth, build_answers(catalog.questions[:24], correct=24))

    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"
    assert count_rows(QuizSession) == 0


def test_duplicate_question_is_a_validation_error(client, auth, catalog, count_rows):
    answers = build_answers(catalog.questions[:25], correct=25)
    answers[24] = dict(answers[0])

    r = _submit(client, auth, answers)

    assert r.status_code == 400
    assert "unique" in r.json()["error"]["message"]
    assert count_rows(QuizSession) == 0


def test_non_json_body_is_a_validation_error(client, auth):
    r = client.post("/quiz/submit", content=b"{not json", headers={**auth, "Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_choice_from_another_question_persists_nothing(client, auth, catalog, count_rows):
    questions = catalog.questions[:25]
    answers = build_answers(questions, correct=25)
    answers[4]["choice_id"] = str(questions[8].correct_choice_id)

    r = _submit(client, auth, answers)

    assert r.status_code == 500
    assert r.json()["error"]["code"] == "SERVER_ERROR"
    assert count_rows(QuizSession) == 0
    assert count_rows(QuizSessionQuestion) == 0
    assert count_rows(QuizAnswer) == 0
    assert count_rows(QuizSessionDomainScore) == 0


def test_inactive_question_is_rejected(client, auth, catalog, count_rows):
    questions = catalog.questions[:24] + [catalog.inactive]

    r = _submit(client, auth, build_answers(questions, correct=25))

    assert r.status_code == 500
    assert "not active" in r.json()["error"]["message"]
    assert count_rows(QuizSession) == 0


def test_unknown_choice_is_rejected(client, auth, catalog, count_rows):
    answers = build_answers(catalog.questions[:25], correct=25)
    answers[0]["choice_id"] = str(uuid.uuid4())

    r = _submit(client, auth, answers)

    assert r.status_code == 500
    assert count_rows(QuizSession) == 0


def test_unprovisioned_user_is_forbidden(client, catalog):
    r = _submit(client, {"Authorization": "Bearer unprovisioned"}, build_answers(catalog.questions[:25], 25))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "NO_APP_USER"


def test_review_uses_snapshots(client, auth, catalog, SessionLocal):
    questions = catalog.questions[:25]
    r = _submit(client, auth, build_answers(questions, correct=3))
    session_id = r.json()["quiz_session_id"]

    with SessionLocal() as db:
        db.execute(
            update(Question)
            .where(Question.question_id == questions[0].question_id)
            .values(prompt="Edited later", difficulty=3)
        )
        db.commit()

    r = client.get(f"/quiz/sessions/{session_id}", headers=auth)
    assert r.status_code == 200
    body = r.json()
    assert body["session"]["correct_count"] == 3
    assert body["session"]["percent_score"] == 12
    assert len(body["questions"]) == 25
    first = body["questions"][0]
    assert first["ordinal"] == 1
    assert first["prompt"] == "Prompt 1"
    assert first["is_correct"] is True
    assert body["questions"][3]["is_correct"] is False
    assert sum(d["question_count"] for d in body["domain_scores"]) == 25
    assert sum(d["correct_count"] for d in body["domain_scores"]) == 3


def test_sessions_are_private(client, auth, catalog):
    r = _submit(client, auth, build_answers(catalog.questions[:25], correct=5))
    session_id = r.json()["quiz_session_id"]

    mine = client.get("/quiz/sessions", headers=auth).json()["sessions"]
    assert [s["quiz_session_id"] for s in mine] == [session_id]

    other = {"Authorization": "Bearer other"}
    assert client.get("/quiz/sessions", headers=other).json()["sessions"] == []
    r = client.get(f"/quiz/sessions/{session_id}", headers=other)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_persist_failure_rolls_back_everything(SessionLocal, catalog, count_rows):
    questions = catalog.questions[:25]
    submission = validate_submission({"answers": build_answers(questions, correct=25)})

    with SessionLocal() as db:
        qs = crud.get_active_questions(db, submission.question_ids)
        cs = crud.get_choices(db, submission.choice_ids)
        result = score_submission(submission, qs, cs)
        # same question twice violates the per-session uniqueness of snapshots
        broken = ScoredResult(
            answers=result.answers[:24] + [result.answers[0]],
            correct_count=result.correct_count,
            percent_score=result.percent_score,
        )

        with pytest.raises(PersistenceError):
            with transaction(db):
                crud.persist_session(db, catalog.user_id, None, broken)

    assert count_rows(QuizSession) == 0
    assert count_rows(QuizSessionQuestion) == 0


def test_short_snapshot_insert_rolls_back(SessionLocal, catalog, count_rows):
    questions = catalog.questions[:25]
    submission = validate_submission({"answers": build_answers(questions, correct=25)})

    with SessionLocal() as db:
        qs = crud.get_active_questions(db, submission.question_ids)
        cs = crud.get_choices(db, submission.choice_ids)
        result = score_submission(submission, qs, cs)
        short = ScoredResult(
            answers=result.answers[:24],
            correct_count=24,
            percent_score=result.percent_score,
        )

        with pytest.raises(PersistenceError):
            with transaction(db):
                crud.persist_session(db, catalog.user_id, None, short)

    assert count_rows(QuizSession) == 0
    assert count_rows(QuizSessionQuestion) == 0
    assert count_rows(QuizAnswer) == 0


def test_database_failure_on_submit_is_generic(client, auth, catalog, count_rows, monkeypatch):
    real_persist = crud.persist_session

    def failing_persist(db, user_id, domain_id, result):
        real_persist(db, user_id, domain_id, result)
        raise sa_exc.IntegrityError(
            "INSERT INTO quiz_session_domain_score (quiz_session_id) VALUES (?)",
            {},
            Exception("UNIQUE constraint failed: quiz_session_domain_score.quiz_session_id"),
        )

    monkeypatch.setattr(crud, "persist_session", failing_persist)

    r = _submit(client, auth, build_answers(catalog.questions[:25], correct=25))

    assert r.status_code == 500
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "SERVER_ERROR"
    assert body["error"]["message"] == "Internal server error."
    assert "INSERT" not in r.text
    assert "quiz_session" not in r.text
    assert count_rows(QuizSession) == 0
    assert count_rows(QuizSessionQuestion) == 0
    assert count_rows(QuizAnswer) == 0
    assert count_rows(QuizSessionDomainScore) == 0


def test_persistence_error_on_submit_is_generic(client, auth, catalog, count_rows, monkeypatch):
    def failing_persist(db, user_id, domain_id, result):
        raise PersistenceError()

    monkeypatch.setattr(crud, "persist_session", failing_persist)

    r = _submit(client, auth, build_answers(catalog.questions[:25], correct=25))

    assert r.status_code == 500
    assert r.json()["error"] == {"code": "SERVER_ERROR", "message": "Failed to submit quiz."}
    assert count_rows(QuizSession) == 0


def test_session_list_is_newest_first(client, auth, catalog, SessionLocal):
    ids = []
    for correct in (1, 2):
        r = _submit(client, auth, build_answers(catalog.questions[:25], correct=correct))
        ids.append(r.json()["quiz_session_id"])

    with SessionLocal() as db:
        db.execute(
            update(QuizSession)
            .where(QuizSession.quiz_session_id == uuid.UUID(ids[0]))
            .values(submitted_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        )
        db.commit()

    sessions = client.get("/quiz/sessions", headers=auth).json()["sessions"]
    assert [s["quiz_session_id"] for s in sessions] == [ids[1], ids[0]]
