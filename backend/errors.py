# backend/errors.py
"""
Error taxonomy for the submission pipeline.

Collaborators raise these; the orchestrator is the only place that catches
and classifies them. `detail` is operator-facing and never sent to clients.
"""

from typing import Optional

E_MISSING_TEXT = "E_MISSING_TEXT"
E_PERSISTENCE = "E_PERSISTENCE"
E_GENERATION = "E_GENERATION"
E_AUDIT = "E_AUDIT"
E_RATE_LIMIT = "E_RATE_LIMIT"
E_NOT_FOUND = "E_NOT_FOUND"

STAGE_VALIDATION = "validation"
STAGE_PERSISTENCE = "persistence"
STAGE_GENERATION = "generation"
STAGE_AUDIT = "audit"

REASON_MISSING_TEXT = "missing-text"
REASON_STORE_ERROR = "store-error"
REASON_HTTP_ERROR = "http-error"
REASON_EMPTY_OR_MALFORMED = "empty-or-malformed"
REASON_AUDIT_ERROR = "audit-error"


class SubmissionError(Exception):
    stage: str = "unknown"
    http_status: int = 500
    error_code: str = "E_INTERNAL"
    default_reason: str = "error"

    def __init__(self, reason: Optional[str] = None, detail: Optional[str] = None):
        self.reason = reason or self.default_reason
        self.detail = detail or ""
        msg = f"{self.stage}:{self.reason}"
        if self.detail:
            msg = f"{msg} ({self.detail})"
        super().__init__(msg)

    @property
    def classification(self) -> str:
        return f"{self.stage}:{self.reason}"


class ValidationError(SubmissionError):
    stage = STAGE_VALIDATION
    http_status = 400
    error_code = E_MISSING_TEXT
    default_reason = REASON_MISSING_TEXT


class StoreError(SubmissionError):
    stage = STAGE_PERSISTENCE
    error_code = E_PERSISTENCE
    default_reason = REASON_STORE_ERROR


PersistenceError = StoreError


class GenerationError(SubmissionError):
    stage = STAGE_GENERATION
    error_code = E_GENERATION
    default_reason = REASON_HTTP_ERROR


class AuditError(SubmissionError):
    stage = STAGE_AUDIT
    error_code = E_AUDIT
    default_reason = REASON_AUDIT_ERROR
