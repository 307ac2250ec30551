# backend/orchestrator.py
import enum
import time
import uuid
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from backend import monitoring
from backend.errors import (
    SubmissionError, ValidationError, StoreError, GenerationError, AuditError,
    STAGE_PERSISTENCE, STAGE_GENERATION, STAGE_AUDIT,
    REASON_MISSING_TEXT,
)
from backend.sanitizer import sanitize

SUCCESS_MESSAGE = "Requirement processed and sent to Google Sheets"
MISSING_TEXT_MESSAGE = "Text field is required."
FAILURE_MESSAGE = "Error processing the requirement"
REASON_UNEXPECTED = "unexpected-error"


class SubmissionState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    STORED = "stored"
    GENERATED = "generated"
    LOGGED = "logged"
    RESPONDED = "responded"
    FAILED = "failed"


@dataclass
class SubmissionResult:
    status_code: int
    body: Dict[str, Any]
    state: SubmissionState
    failed_stage: Optional[str] = None
    reason: Optional[str] = None
    requirement: Optional[Dict[str, Any]] = None


class SubmissionOrchestrator:
    """
    Sequences sanitize -> store -> generate -> audit for one submission and
    shapes the HTTP response. Every collaborator failure is fatal to the
    request; there is no retry and no rollback of earlier stages.

    Collaborators:
      store      .save(file_reference, text) -> dict
      generator  .generate(prompt) -> str
      audit      .append(input_text, artifact) -> dict
      uploads    .save(stream, filename) -> Optional[str]   (optional)
    """

    def __init__(self, store, generator, audit, uploads=None):
        self.store = store
        self.generator = generator
        self.audit = audit
        self.uploads = uploads

    def _make_submission_id(self) -> str:
        return str(uuid.uuid4())

    def _fail(self, submission_id: str, error: SubmissionError,
              requirement: Optional[Dict[str, Any]] = None) -> SubmissionResult:
        monitoring.inc_submission("fail", error.stage)
        if isinstance(error, ValidationError):
            monitoring.logger.info(
                "Submission rejected",
                extra={"submission_id": submission_id, "stage": error.stage, "reason": error.reason},
            )
            body = {"error": MISSING_TEXT_MESSAGE}
        else:
            # Provider bodies stay in the operator log; the client sees stage:reason only
            monitoring.logger.error(
                "Submission failed",
                extra={
                    "submission_id": submission_id,
                    "error_code": error.error_code,
                    "stage": error.stage,
                    "reason": error.reason,
                    "detail": error.detail,
                    "requirement_id": requirement.get("id") if requirement else None,
                },
            )
            body = {"error": FAILURE_MESSAGE, "detail": error.classification}
        return SubmissionResult(
            status_code=error.http_status,
            body=body,
            state=SubmissionState.FAILED,
            failed_stage=error.stage,
            reason=error.reason,
            requirement=requirement,
        )

    def _classify(self, exc: Exception, error_cls) -> SubmissionError:
        """Attribute a collaborator exception to the stage that was running."""
        if isinstance(exc, SubmissionError):
            return error_cls(exc.reason, exc.detail)
        return error_cls(REASON_UNEXPECTED, f"{type(exc).__name__}: {exc}")

    def validate(self, text: Optional[str]) -> Optional[str]:
        """Return the sanitized text, or None when nothing usable was submitted."""
        if text is None or not text.strip():
            return None
        sanitized = sanitize(text)
        if not sanitized.strip():
            return None
        return sanitized

    def handle_submission(
        self,
        text: Optional[str],
        upload_stream: Optional[BinaryIO] = None,
        upload_filename: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Full synchronous flow:
        1. Validate and sanitize text
        2. Store upload (if any) and persist the requirement
        3. Generate code from the sanitized text
        4. Append (input, output, timestamp) to the audit sheet
        5. Assemble the success payload
        """
        submission_id = self._make_submission_id()

        # 1) Validation: no side effects before this passes
        sanitized = self.validate(text)
        if sanitized is None:
            return self._fail(submission_id, ValidationError(REASON_MISSING_TEXT))

        # 2) Persistence
        start = time.time()
        try:
            file_reference = None
            if self.uploads is not None:
                file_reference = self.uploads.save(upload_stream, upload_filename)
            requirement = self.store.save(file_reference, sanitized)
        except Exception as e:
            return self._fail(submission_id, self._classify(e, StoreError))
        finally:
            monitoring.observe_stage(start, STAGE_PERSISTENCE)
        state = SubmissionState.STORED
        monitoring.logger.info(
            "Requirement stored",
            extra={"submission_id": submission_id, "requirement_id": requirement.get("id"),
                   "file_reference": requirement.get("file_reference"), "state": state.value},
        )

        # 3) Generation
        start = time.time()
        try:
            artifact = self.generator.generate(sanitized)
        except Exception as e:
            return self._fail(submission_id, self._classify(e, GenerationError), requirement)
        finally:
            monitoring.observe_stage(start, STAGE_GENERATION)
        state = SubmissionState.GENERATED
        monitoring.logger.info(
            "Code generated",
            extra={"submission_id": submission_id, "artifact_chars": len(artifact), "state": state.value},
        )

        # 4) Audit: a failure here still fails the request
        start = time.time()
        try:
            ack = self.audit.append(sanitized, artifact)
        except Exception as e:
            return self._fail(submission_id, self._classify(e, AuditError), requirement)
        finally:
            monitoring.observe_stage(start, STAGE_AUDIT)
        state = SubmissionState.LOGGED
        monitoring.logger.info(
            "Audit row appended",
            extra={"submission_id": submission_id, "ack": ack, "state": state.value},
        )

        # 5) Respond
        monitoring.inc_submission("success", SubmissionState.RESPONDED.value)
        return SubmissionResult(
            status_code=200,
            body={"message": SUCCESS_MESSAGE, "generatedArtifact": artifact},
            state=SubmissionState.RESPONDED,
            requirement=requirement,
        )
