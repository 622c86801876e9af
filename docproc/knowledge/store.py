import copy
from dataclasses import fields
from typing import Any

from docproc.database.models import (
    Job,
    KnowledgeEntry,
    KnowledgeQuery,
    ReviewAction,
    Template,
    utcnow,
)
from docproc.database.repositories.base import BaseKnowledgeRepository
from docproc.knowledge.exceptions import KnowledgeEntryNotFoundError, KnowledgeValidationError
from docproc.logging.logger import Log
from docproc.providers.base import BaseProviderAdapter
from docproc.providers.exceptions import ProviderError

_MANAGED_FIELDS = frozenset(
    {
        "id",
        "version",
        "previous_version_id",
        "is_latest_version",
        "usage_count",
        "last_used_at",
        "is_verified",
        "verified_by",
        "verified_at",
        "validation_history",
        "embedding_vector",
        "embedding_model",
        "created_at",
        "updated_at",
    }
)


def validate_entry(entry: KnowledgeEntry) -> list[str]:
    errors: list[str] = []
    if not entry.title.strip():
        errors.append("Knowledge entry title is required")
    if not entry.content.strip():
        errors.append("Knowledge entry content is required")
    if not 0 <= entry.confidence_score <= 1:
        errors.append("Confidence score must be between 0 and 1")
    if entry.priority < 1:
        errors.append("Priority must be at least 1")
    return errors


class KnowledgeStore:
    """Knowledge administration and retrieval for prompt context.

    When an ``embedder`` is given, new entries get an embedding vector;
    retrieval itself stays a filtered keyword search.
    """

    def __init__(
        self,
        knowledge_repo: BaseKnowledgeRepository,
        *,
        embedder: BaseProviderAdapter | None = None,
        max_entries_per_job: int = 10,
    ) -> None:
        self._knowledge_repo = knowledge_repo
        self._embedder = embedder
        self._max_entries_per_job = max_entries_per_job

    def create(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        self._raise_if_invalid(entry)
        entry.version = 1
        entry.previous_version_id = None
        entry.is_latest_version = True
        entry.usage_count = 0
        entry.last_used_at = None
        self._embed(entry)
        created = self._knowledge_repo.create(entry)
        Log.info(f"Created knowledge entry {created.id} '{created.title}' ({created.type.value})")
        return created

    def get(self, entry_id: int) -> KnowledgeEntry:
        entry = self._knowledge_repo.find_by_id(entry_id)
        if entry is None:
            raise KnowledgeEntryNotFoundError(f"Knowledge entry {entry_id} not found")
        return entry

    def search(self, query: KnowledgeQuery) -> list[KnowledgeEntry]:
        return self._knowledge_repo.search(query)

    def resolve_for_job(self, job: Job, template: Template | None = None) -> list[KnowledgeEntry]:
        """Entries injected into the job's prompt.

        Explicit ids win; otherwise the job's (or else the template's) required
        knowledge types select entries by priority. Returned entries are marked used.
        """
        scope = {
            "organization_id": job.organization_id,
            "public_only": job.organization_id is None,
        }
        types = job.required_knowledge_types or (
            template.required_knowledge_types if template is not None else []
        )
        if job.knowledge_entry_ids:
            query = KnowledgeQuery(ids=list(job.knowledge_entry_ids), latest_only=False, **scope)
        elif types:
            query = KnowledgeQuery(types=list(types), limit=self._max_entries_per_job, **scope)
        else:
            return []

        entries = self._knowledge_repo.search(query)
        if job.knowledge_entry_ids and len(entries) < len(set(job.knowledge_entry_ids)):
            found = {e.id for e in entries}
            missing = sorted(set(job.knowledge_entry_ids) - found)
            Log.warning(f"Job {job.id}: knowledge entries {missing} unavailable, skipped")
        self._knowledge_repo.mark_used([e.id for e in entries if e.id is not None])
        Log.info(f"Job {job.id}: resolved {len(entries)} knowledge entries")
        return entries

    def supersede(
        self,
        entry_id: int,
        changes: dict[str, Any],
        *,
        updated_by: int | None = None,
    ) -> KnowledgeEntry:
        """Store ``changes`` as the next version; the predecessor is retired."""
        self._check_changes(changes)
        previous = self.get(entry_id)
        if not previous.is_latest_version:
            raise KnowledgeValidationError(
                f"Knowledge entry {entry_id} is not the latest version"
            )
        entry = copy.deepcopy(previous)
        for name, value in changes.items():
            setattr(entry, name, value)
        entry.id = None
        entry.is_active = True
        entry.usage_count = 0
        entry.last_used_at = None
        entry.is_verified = False
        entry.verified_by = None
        entry.verified_at = None
        entry.validation_history = []
        entry.created_by = updated_by
        entry.updated_by = updated_by
        entry.created_at = entry.updated_at = utcnow()
        self._raise_if_invalid(entry)
        if "content" in changes or "title" in changes:
            entry.embedding_vector = None
            entry.embedding_model = None
            self._embed(entry)

        created = self._knowledge_repo.create_version(entry_id, entry)
        if created is None:
            raise KnowledgeEntryNotFoundError(f"Knowledge entry {entry_id} not found")
        Log.info(
            f"Knowledge entry {entry_id} superseded by {created.id} (v{created.version})"
        )
        return created

    def verify(
        self,
        entry_id: int,
        verifier_id: int,
        notes: str | None = None,
    ) -> KnowledgeEntry:
        def mutate(entry: KnowledgeEntry) -> bool:
            now = utcnow()
            entry.is_verified = True
            entry.verified_by = verifier_id
            entry.verified_at = now
            entry.validation_history.append(
                ReviewAction(action="verified", performed_by=verifier_id, performed_at=now, notes=notes)
            )
            return True

        updated = self._knowledge_repo.update(entry_id, mutate)
        if updated is None:
            raise KnowledgeEntryNotFoundError(f"Knowledge entry {entry_id} not found")
        Log.info(f"Knowledge entry {entry_id} verified by user {verifier_id}")
        return updated

    def deactivate(self, entry_id: int, *, performed_by: int | None = None) -> KnowledgeEntry:
        def mutate(entry: KnowledgeEntry) -> bool:
            entry.is_active = False
            entry.updated_by = performed_by
            entry.validation_history.append(
                ReviewAction(action="deactivated", performed_by=performed_by)
            )
            return True

        updated = self._knowledge_repo.update(entry_id, mutate)
        if updated is None:
            raise KnowledgeEntryNotFoundError(f"Knowledge entry {entry_id} not found")
        Log.info(f"Deactivated knowledge entry {entry_id}")
        return updated

    def _embed(self, entry: KnowledgeEntry) -> None:
        if self._embedder is None:
            return
        try:
            response = self._embedder.generate_embeddings([f"{entry.title}\n\n{entry.content}"])
        except ProviderError as exc:
            Log.warning(f"Embedding failed for knowledge entry '{entry.title}': {exc}")
            return
        entry.embedding_vector = response.embeddings[0]
        entry.embedding_model = response.model

    @staticmethod
    def _check_changes(changes: dict[str, Any]) -> None:
        known = {f.name for f in fields(KnowledgeEntry)}
        rejected = (set(changes) - known) | (set(changes) & _MANAGED_FIELDS)
        if rejected:
            raise KnowledgeValidationError(f"Cannot update fields: {sorted(rejected)}")

    @staticmethod
    def _raise_if_invalid(entry: KnowledgeEntry) -> None:
        errors = validate_entry(entry)
        if errors:
            raise KnowledgeValidationError("; ".join(errors))
