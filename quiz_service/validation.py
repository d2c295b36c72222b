import re
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import pydantic

from .config import QUIZ_QUESTION_COUNT
from .errors import ValidationError
from .schemas import SubmitAnswerIn


@dataclass(frozen=True)
class ValidatedSubmission:
    domain_id: UUID | None
    answers: list[SubmitAnswerIn]

    @property
    def question_ids(self) -> list[UUID]:
        return [a.question_id for a in self.answers]

    @property
    def choice_ids(self) -> list[UUID]:
        return [a.choice_id for a in self.answers]


# 8-4-4-4-12 hex only; no braces, urn: prefix or bare 32-hex forms
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\Z")


def is_uuid(raw: Any) -> bool:
    return isinstance(raw, str) and _UUID_RE.match(raw) is not None


def parse_uuid(raw: Any, message: str) -> UUID:
    if not is_uuid(raw):
        raise ValidationError(message)
    return UUID(raw)


def parse_domain_filter(raw: str | None) -> UUID | None:
    """Query-string domain filter: absent or empty means the whole pool."""
    if not raw:
        return None
    return parse_uuid(raw, "domain_id must be a UUID.")


def _parse_domain_id(raw: Any) -> UUID | None:
    if raw is None:
        return None
    return parse_uuid(raw, "domain_id must be a UUID or null.")


def validate_submission(payload: Any) -> ValidatedSubmission:
    """
    Check the shape of a submitted answer set. Pure: no database access.

    Order of checks (first failure wins):
      1. exactly QUIZ_QUESTION_COUNT answers
      2. every answer carries a well-formed question_id and choice_id
      3. question_ids are pairwise distinct
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")

    domain_id = _parse_domain_id(payload.get("domain_id"))

    raw_answers = payload.get("answers")
    if not isinstance(raw_answers, list):
        raw_answers = []

    if len(raw_answers) != QUIZ_QUESTION_COUNT:
        raise ValidationError(f"answers must contain exactly {QUIZ_QUESTION_COUNT} items.")

    answers: list[SubmitAnswerIn] = []
    for raw in raw_answers:
        # strict: ids arrive as canonical UUID strings, never as ints or other spellings
        if not isinstance(raw, dict) or not all(is_uuid(raw.get(k)) for k in ("question_id", "choice_id")):
            raise ValidationError("Each answer must include question_id and choice_id UUIDs.")
        try:
            answers.append(SubmitAnswerIn.model_validate(raw))
        except pydantic.ValidationError:
            raise ValidationError("Each answer must include question_id and choice_id UUIDs.")

    if len({a.question_id for a in answers}) != QUIZ_QUESTION_COUNT:
        raise ValidationError("question_id values must be unique.")

    return ValidatedSubmission(domain_id=domain_id, answers=answers)
