import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, SmallInteger,
    String, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from shared.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------
# Catalog (read-only here)
# ----------------------------

class AppUser(Base):
    __tablename__ = "app_user"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    clerk_user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    display_name: Mapped[str] = mapped_column(String(255), default="User")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Category(Base):
    __tablename__ = "category"

    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category_label: Mapped[str] = mapped_column(String(255))


class Domain(Base):
    __tablename__ = "domain"

    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    domain_label: Mapped[str] = mapped_column(String(255))
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("category.category_id"), nullable=True, index=True
    )


class Question(Base):
    __tablename__ = "question"

    question_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("domain.domain_id"), index=True)
    prompt: Mapped[str] = mapped_column(Text)
    explanation: Mapped[str] = mapped_column(Text, default="")
    citation_text: Mapped[str] = mapped_column(Text, default="")
    difficulty: Mapped[int] = mapped_column(SmallInteger, default=1)  # 1-3
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    choices: Mapped[list["Choice"]] = relationship(
        back_populates="question", order_by="Choice.choice_label"
    )


class Choice(Base):
    __tablename__ = "choice"
    __table_args__ = (
        UniqueConstraint("question_id", "choice_label", name="uq_choice_question_label"),
        CheckConstraint("choice_label IN ('A', 'B', 'C', 'D')", name="ck_choice_label"),
    )

    choice_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("question.question_id"), index=True)
    choice_label: Mapped[str] = mapped_column(String(1))
    choice_text: Mapped[str] = mapped_column(Text)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)

    question: Mapped[Question] = relationship(back_populates="choices")


# ----------------------------
# Quiz sessions (insert-only)
# ----------------------------

class QuizSession(Base):
    __tablename__ = "quiz_session"
    __table_args__ = (
        CheckConstraint("status IN ('created', 'submitted')", name="ck_quiz_session_status"),
        CheckConstraint("correct_count <= question_count", name="ck_quiz_session_counts"),
        CheckConstraint("percent_score >= 0 AND percent_score <= 100", name="ck_quiz_session_percent"),
    )

    quiz_session_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"), index=True)
    domain_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("domain.domain_id"), nullable=True)
    question_count: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="created")
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    percent_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))
    updated_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))

    questions: Mapped[list["QuizSessionQuestion"]] = relationship(
        back_populates="session", order_by="QuizSessionQuestion.ordinal"
    )
    domain_scores: Mapped[list["QuizSessionDomainScore"]] = relationship()
    category_scores: Mapped[list["QuizSessionCategoryScore"]] = relationship()


class QuizSessionQuestion(Base):
    __tablename__ = "quiz_session_question"
    __table_args__ = (
        UniqueConstraint("quiz_session_id", "question_id", name="uq_qsq_session_question"),
        UniqueConstraint("quiz_session_id", "ordinal", name="uq_qsq_session_ordinal"),
    )

    quiz_session_question_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("quiz_session.quiz_session_id"), index=True)
    question_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("question.question_id"))

    # copied from the catalog at submission time; later question edits must not reach these
    prompt_snapshot: Mapped[str] = mapped_column(Text)
    explanation_snapshot: Mapped[str] = mapped_column(Text, default="")
    citation_text_snapshot: Mapped[str] = mapped_column(Text, default="")
    domain_id_snapshot: Mapped[uuid.UUID] = mapped_column(Uuid)
    category_id_snapshot: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    difficulty_snapshot: Mapped[int] = mapped_column(SmallInteger)
    ordinal: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))
    updated_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))

    session: Mapped[QuizSession] = relationship(back_populates="questions")
    answer: Mapped["QuizAnswer"] = relationship(back_populates="session_question", uselist=False)


class QuizAnswer(Base):
    __tablename__ = "quiz_answer"

    quiz_answer_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_session_question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quiz_session_question.quiz_session_question_id"), unique=True
    )
    chosen_choice_label: Mapped[str] = mapped_column(String(1))
    chosen_choice_text: Mapped[str] = mapped_column(Text)
    is_correct: Mapped[bool] = mapped_column(Boolean)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))
    updated_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))

    session_question: Mapped[QuizSessionQuestion] = relationship(back_populates="answer")


class QuizSessionDomainScore(Base):
    __tablename__ = "quiz_session_domain_score"
    __table_args__ = (
        UniqueConstraint("quiz_session_id", "domain_id", name="uq_domain_score_session_domain"),
        CheckConstraint("correct_count <= question_count", name="ck_domain_score_counts"),
    )

    quiz_session_domain_score_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("quiz_session.quiz_session_id"), index=True)
    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    question_count: Mapped[int] = mapped_column(Integer)
    correct_count: Mapped[int] = mapped_column(Integer)
    percent_score: Mapped[Decimal] = mapped_column(Numeric(5, 2))

    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))
    updated_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))


class QuizSessionCategoryScore(Base):
    __tablename__ = "quiz_session_category_score"
    __table_args__ = (
        UniqueConstraint("quiz_session_id", "category_id", name="uq_category_score_session_category"),
        CheckConstraint("correct_count <= question_count", name="ck_category_score_counts"),
    )

    quiz_session_category_score_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("quiz_session.quiz_session_id"), index=True)
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    question_count: Mapped[int] = mapped_column(Integer)
    correct_count: Mapped[int] = mapped_column(Integer)
    percent_score: Mapped[Decimal] = mapped_column(Numeric(5, 2))

    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))
    updated_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"))
