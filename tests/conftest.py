import uuid
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.pool import StaticPool

from shared.database import Base, make_session_factory
from quiz_service.errors import AuthenticationError
from quiz_service.main import create_app
from quiz_service.models import AppUser, Category, Choice, Domain, Question

LABELS = ("A", "B", "C", "D")


@dataclass
class SeededQuestion:
    question_id: uuid.UUID
    domain_id: uuid.UUID
    correct_choice_id: uuid.UUID
    wrong_choice_ids: list[uuid.UUID]


@dataclass
class Catalog:
    user_id: uuid.UUID
    other_user_id: uuid.UUID
    category_id: uuid.UUID
    networking: uuid.UUID      # 30 active questions, categorized
    security: uuid.UUID        # 10 active + 1 inactive, no category
    sparse: uuid.UUID          # 3 active questions
    questions: list[SeededQuestion] = field(default_factory=list)
    inactive: SeededQuestion | None = None

    def in_domain(self, domain_id: uuid.UUID) -> list[SeededQuestion]:
        return [q for q in self.questions if q.domain_id == domain_id]


def _add_question(db, domain_id, n, correct_label="B", active=True) -> SeededQuestion:
    q = Question(
        domain_id=domain_id,
        prompt=f"Prompt {n}",
        explanation=f"Explanation {n}",
        citation_text=f"Citation {n}",
        difficulty=(n % 3) + 1,
        is_active=active,
    )
    db.add(q)
    db.flush()
    correct, wrong = None, []
    for label in LABELS:
        c = Choice(
            question_id=q.question_id,
            choice_label=label,
            choice_text=f"Choice {label} for {n}",
            is_correct=label == correct_label,
        )
        db.add(c)
        db.flush()
        if c.is_correct:
            correct = c.choice_id
        else:
            wrong.append(c.choice_id)
    return SeededQuestion(q.question_id, domain_id, correct, wrong)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def SessionLocal(engine):
    return make_session_factory(engine)


@pytest.fixture
def catalog(SessionLocal) -> Catalog:
    with SessionLocal() as db:
        user = AppUser(clerk_user_id="user_abc", email="abc@example.com", display_name="Abc")
        other = AppUser(clerk_user_id="user_other", email="other@example.com", display_name="Other")
        cat = Category(category_label="Infrastructure")
        db.add_all([user, other, cat])
        db.flush()

        networking = Domain(domain_label="networking", category_id=cat.category_id)
        security = Domain(domain_label="Security")
        sparse = Domain(domain_label="Auditing")
        db.add_all([networking, security, sparse])
        db.flush()

        out = Catalog(
            user_id=user.user_id,
            other_user_id=other.user_id,
            category_id=cat.category_id,
            networking=networking.domain_id,
            security=security.domain_id,
            sparse=sparse.domain_id,
        )
        n = 0
        for domain_id, count in ((networking.domain_id, 30), (security.domain_id, 10), (sparse.domain_id, 3)):
            for _ in range(count):
                n += 1
                out.questions.append(_add_question(db, domain_id, n, correct_label=LABELS[n % 4]))
        out.inactive = _add_question(db, security.domain_id, 999, active=False)
        db.commit()
    return out


async def fake_verifier(token: str) -> dict:
    if token == "good":
        return {"sub": "user_abc", "email": "abc@example.com"}
    if token == "other":
        return {"sub": "user_other", "email": "other@example.com"}
    if token == "unprovisioned":
        return {"sub": "user_nobody", "email": "nobody@example.com"}
    raise AuthenticationError("Invalid or expired token.")


@pytest.fixture
def client(SessionLocal, catalog):
    app = create_app(SessionLocal, token_verifier=fake_verifier)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth():
    return {"Authorization": "Bearer good"}


@pytest.fixture
def count_rows(SessionLocal):
    def _count(model) -> int:
        with SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(model))

    return _count


def build_answers(questions: list[SeededQuestion], correct: int) -> list[dict]:
    """First `correct` answers pick the right choice, the rest a wrong one."""
    return [
        {
            "question_id": str(q.question_id),
            "choice_id": str(q.correct_choice_id if i < correct else q.wrong_choice_ids[0]),
        }
        for i, q in enumerate(questions)
    ]
