"""Error taxonomy shared by the session, selection and generation layers.

Every error carries a ``kind`` string and an HTTP-style ``status`` so the web
layer can render it without knowing where it was raised.
"""


class QuizitError(Exception):
    kind = "quizit_error"
    status = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {"status": "error", "error": self.kind, "message": self.message}


class ValidationError(QuizitError, ValueError):
    """Malformed or missing fields, out-of-range scores. Never retried."""
    kind = "validation_error"
    status = 400


class AuthenticationError(QuizitError):
    kind = "unauthorized"
    status = 401


class SessionExpiredOrNotFound(QuizitError, KeyError):
    """The session expired (TTL) or never existed; the client should start a new one."""
    kind = "session_not_found"
    status = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found or expired: {session_id}")
        self.session_id = session_id


class NoEligibleCard(ValidationError):
    kind = "no_eligible_card"


class UpstreamGenerationFailure(QuizitError, RuntimeError):
    """The text-generation collaborator failed or returned nothing."""
    kind = "upstream_generation_failure"
    status = 500
