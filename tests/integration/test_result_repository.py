import pytest

from docproc.database.models import Job
from docproc.database.repositories.result_repository import ResultRepository
from docproc.results.parser import ParsedOutput
from docproc.results.store import ResultStore


@pytest.mark.integration
class TestResultRepository:
    def test_new_result_supersedes_previous(self, seed_job: Job) -> None:
        assert seed_job.id is not None
        store = ResultStore(ResultRepository())

        first = store.save(
            seed_job.id, ParsedOutput(content="a", raw_content="a"), confidence_threshold=0.5
        )
        second = store.save(
            seed_job.id,
            ParsedOutput(content={"a": 1}, raw_content='{"a": 1}', extracted_data={"a": 1}),
            confidence_threshold=0.5,
        )

        current = store.get_current_for_job(seed_job.id)
        assert current is not None
        assert current.id == second.id
        assert current.extracted_data == {"a": 1}
        history = store.list_for_job(seed_job.id)
        assert {r.id for r in history} == {first.id, second.id}
        assert next(r for r in history if r.id == first.id).is_superseded is True

    def test_discard(self, seed_job: Job) -> None:
        assert seed_job.id is not None
        store = ResultStore(ResultRepository())
        result = store.save(
            seed_job.id, ParsedOutput(content="a", raw_content="a"), confidence_threshold=0.5
        )
        assert result.id is not None

        store.discard(result.id)

        assert store.get_current_for_job(seed_job.id) is None

    def test_review_round_trip(self, seed_job: Job) -> None:
        assert seed_job.id is not None
        store = ResultStore(ResultRepository())
        result = store.save(
            seed_job.id,
            ParsedOutput(content="a", raw_content="a", confidence=0.2),
            confidence_threshold=0.5,
        )
        assert result.id is not None
        assert result.requires_human_review is True

        store.add_feedback(result.id, 3, "Close enough", rating=4)

        stored = store.get(result.id)
        assert stored.human_feedback[0].rating == 4
