from collections.abc import Callable
from typing import Any

from docproc.database.enums import ValidationStatus
from docproc.database.models import Feedback, Result, utcnow
from docproc.database.repositories.base import BaseResultRepository
from docproc.logging.logger import Log
from docproc.results.exceptions import ResultNotFoundError, ResultValidationError
from docproc.results.parser import ParsedOutput


class ResultStore:
    """Persists job results and records review, export and integration actions."""

    def __init__(self, result_repo: BaseResultRepository) -> None:
        self._result_repo = result_repo

    def save(
        self,
        job_id: int,
        output: ParsedOutput,
        *,
        confidence_threshold: float,
        language: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Result:
        """Store the output of a successful attempt.

        Earlier results of the job are superseded. Low confidence only flags
        the result for human review.
        """
        result = Result(
            job_id=job_id,
            content=output.content,
            raw_content=output.raw_content,
            extracted_data=output.extracted_data,
            summary=output.summary,
            confidence=max(0.0, min(1.0, output.confidence)),
            validation_status=ValidationStatus.PENDING,
            validation_errors=list(output.validation_errors),
            entities=list(output.entities),
            relationships=list(output.relationships),
            language=language,
            requires_human_review=output.confidence < confidence_threshold,
            metadata=dict(metadata or {}),
        )
        created = self._result_repo.create(result)
        Log.info(
            f"Saved result {created.id} for job {job_id} "
            f"(confidence {created.confidence:.2f}, review={created.requires_human_review})"
        )
        return created

    def discard(self, result_id: int) -> None:
        """Supersede a result that must not be served, e.g. for a cancelled job."""
        if self._result_repo.supersede(result_id) is None:
            raise ResultNotFoundError(f"Result {result_id} not found")
        Log.info(f"Discarded result {result_id}")

    def get(self, result_id: int) -> Result:
        result = self._result_repo.find_by_id(result_id)
        if result is None:
            raise ResultNotFoundError(f"Result {result_id} not found")
        return result

    def get_current_for_job(self, job_id: int) -> Result | None:
        return self._result_repo.find_current_for_job(job_id)

    def list_for_job(self, job_id: int) -> list[Result]:
        return self._result_repo.list_for_job(job_id)

    def review(
        self,
        result_id: int,
        reviewer_id: int,
        status: ValidationStatus,
        notes: str | None = None,
    ) -> Result:
        if status is ValidationStatus.PENDING:
            raise ResultValidationError("A review must set a final validation status")

        def mutate(result: Result) -> bool:
            result.validation_status = status
            result.is_reviewed = True
            result.reviewed_by = reviewer_id
            result.reviewed_at = utcnow()
            result.review_notes = notes
            result.requires_human_review = False
            return True

        updated = self._update(result_id, mutate)
        Log.info(f"Result {result_id} reviewed by user {reviewer_id}: {status.value}")
        return updated

    def add_feedback(
        self,
        result_id: int,
        user_id: int,
        feedback: str,
        rating: int | None = None,
    ) -> Result:
        if rating is not None and not 1 <= rating <= 5:
            raise ResultValidationError("Rating must be between 1 and 5")

        def mutate(result: Result) -> bool:
            result.human_feedback.append(Feedback(user_id=user_id, feedback=feedback, rating=rating))
            return True

        return self._update(result_id, mutate)

    def mark_exported(self, result_id: int, exported_by: int, export_format: str) -> Result:
        def mutate(result: Result) -> bool:
            result.is_exported = True
            result.exported_at = utcnow()
            result.exported_by = exported_by
            result.export_format = export_format
            return True

        return self._update(result_id, mutate)

    def mark_integrated(
        self,
        result_id: int,
        system: str,
        external_id: str,
        status: str,
        error: str | None = None,
    ) -> Result:
        def mutate(result: Result) -> bool:
            result.integrated_with = system
            result.integration_id = external_id
            result.integration_status = status
            result.integration_error = error
            return True

        updated = self._update(result_id, mutate)
        if error:
            Log.warning(f"Result {result_id} integration with {system} failed: {error}")
        return updated

    def _update(self, result_id: int, mutate: Callable[[Result], bool]) -> Result:
        updated = self._result_repo.update(result_id, mutate)
        if updated is None:
            raise ResultNotFoundError(f"Result {result_id} not found")
        return updated
