class QuizError(Exception):
    """Base for failures that map onto an HTTP status and an error code."""

    status_code = 500
    code = "SERVER_ERROR"
    default_message = "Internal server error."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"ok": False, "error": {"code": self.code, "message": self.message}}


class ValidationError(QuizError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request."


class AuthenticationError(QuizError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Sign in required."


class NoAppUserError(QuizError):
    status_code = 403
    code = "NO_APP_USER"
    default_message = "No matching app_user for signed-in user."


class NotFoundError(QuizError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found."


class AuthUnavailableError(QuizError):
    status_code = 503
    code = "AUTH_UNAVAILABLE"
    default_message = "Authentication service unavailable."


# Catalog lookups that don't resolve, or a choice paired with the wrong question.
class IntegrityError(QuizError):
    default_message = "Submitted answers do not match the question catalog."


class PersistenceError(QuizError):
    default_message = "Failed to submit quiz."


class InsufficientQuestionsError(QuizError):
    default_message = "Not enough active questions to start a quiz."
