"""
Pipeline error kinds.

Every error carries a machine-readable ``kind`` and the HTTP status the API
surfaces it with. Validation and not-found errors are never retried; only
StoreUnavailable is retried, once, at the route boundary.
"""
from typing import Optional

from fastapi import status


class PipelineError(Exception):
    kind = "PipelineError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "detail": self.message}
        if self.context:
            body["context"] = self.context
        return body


class CandidateNotFound(PipelineError):
    kind = "CandidateNotFound"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, candidate_id: str):
        super().__init__("Candidate not found", candidate_id=candidate_id)


class InterviewNotFound(PipelineError):
    kind = "InterviewNotFound"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, candidate_id: str, interview_id: str):
        super().__init__(
            "Interview not found",
            candidate_id=candidate_id,
            interview_id=interview_id,
        )


class CannotCancelDecidedInterview(PipelineError):
    kind = "CannotCancelDecidedInterview"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, interview_id: str):
        super().__init__(
            "Interview already has a conclusion and cannot be cancelled",
            interview_id=interview_id,
        )


class DuplicateInterviewRound(PipelineError):
    kind = "DuplicateInterviewRound"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, candidate_id: str, round_number: int):
        super().__init__(
            f"Round {round_number} already exists for this candidate",
            candidate_id=candidate_id,
            round=round_number,
        )


class MissingEnumerationDefault(PipelineError):
    kind = "MissingEnumerationDefault"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, category: str):
        super().__init__(
            f"No entries configured for enumeration category '{category}'",
            category=category,
        )


class StoreUnavailable(PipelineError):
    kind = "StoreUnavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PartialPipelineUpdate(PipelineError):
    """Raised when a multi-step pipeline action stopped half-way.

    The store offers no multi-statement transactions, so the steps that did
    succeed stay applied and need manual reconciliation.
    """
    kind = "PartialPipelineUpdate"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, candidate_id: str, interview_id: Optional[str] = None):
        super().__init__(message, candidate_id=candidate_id, interview_id=interview_id)
