import copy
import re
from dataclasses import fields
from typing import Any

from docproc.database.enums import ProcessingType
from docproc.database.models import ChangelogEntry, Template, utcnow
from docproc.database.repositories.base import BaseJobRepository, BaseTemplateRepository
from docproc.logging.logger import Log
from docproc.prompting.rules import validate_rules
from docproc.templates.exceptions import (
    TemplateInUseError,
    TemplateNotFoundError,
    TemplateValidationError,
)

OUTPUT_FORMATS = frozenset({"text", "json", "markdown"})
_SEMVER_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")

# Fields owned by the store; never settable through ``update``.
_MANAGED_FIELDS = frozenset(
    {
        "id",
        "version",
        "changelog",
        "usage_count",
        "success_count",
        "success_rate",
        "average_cost",
        "average_processing_time_ms",
        "created_at",
        "created_by",
        "updated_at",
    }
)


def bump_version(version: str, part: str = "minor") -> str:
    match = _SEMVER_RE.match(version)
    if match is None:
        raise TemplateValidationError(f"Invalid template version '{version}'")
    major, minor, patch = (int(n) for n in match.groups())
    if part == "major":
        return f"{major + 1}.0.0"
    if part == "minor":
        return f"{major}.{minor + 1}.0"
    if part == "patch":
        return f"{major}.{minor}.{patch + 1}"
    raise TemplateValidationError(f"Unknown version part '{part}'")


def validate_template(template: Template) -> list[str]:
    errors: list[str] = []
    if not template.name.strip():
        errors.append("Template name is required")
    if template.is_default and template.organization_id is not None:
        errors.append("Default templates must be global (no organization)")
    if template.output_format not in OUTPUT_FORMATS:
        errors.append(f"Unsupported output format '{template.output_format}'")
    threshold = template.confidence_threshold
    if threshold is not None and not 0 <= threshold <= 1:
        errors.append("Confidence threshold must be between 0 and 1")
    if template.max_file_size_mb is not None and template.max_file_size_mb < 1:
        errors.append("Max file size must be at least 1 MB")
    if _SEMVER_RE.match(template.version) is None:
        errors.append(f"Invalid template version '{template.version}'")
    errors.extend(validate_rules(template.preprocessing_rules, post=False))
    errors.extend(validate_rules(template.postprocessing_rules, post=True))
    return errors


class TemplateStore:
    """Administration and lookup of processing templates."""

    def __init__(
        self,
        template_repo: BaseTemplateRepository,
        job_repo: BaseJobRepository,
    ) -> None:
        self._template_repo = template_repo
        self._job_repo = job_repo

    def create(self, template: Template) -> Template:
        self._raise_if_invalid(template)
        template.usage_count = 0
        template.success_count = 0
        template.success_rate = None
        if not template.changelog:
            template.changelog = [
                ChangelogEntry(
                    version=template.version,
                    changes="Initial version",
                    changed_by=template.created_by,
                )
            ]
        created = self._template_repo.create(template)
        Log.info(f"Created template {created.id} '{created.name}' v{created.version}")
        return created

    def get(self, template_id: int, *, include_inactive: bool = False) -> Template:
        """Raises TemplateNotFoundError when missing, or inactive unless ``include_inactive``."""
        template = self._template_repo.find_by_id(template_id)
        if template is None or (not template.is_active and not include_inactive):
            raise TemplateNotFoundError(f"Template {template_id} not found")
        return template

    def list(
        self,
        processing_type: ProcessingType | None = None,
        organization_id: int | None = None,
        active_only: bool = True,
    ) -> list[Template]:
        return self._template_repo.find_all(processing_type, organization_id, active_only)

    def find_default(self, processing_type: ProcessingType) -> Template | None:
        return self._template_repo.find_default(processing_type)

    def update(
        self,
        template_id: int,
        changes: dict[str, Any],
        *,
        changed_by: int | None = None,
        summary: str | None = None,
        bump: str = "minor",
    ) -> Template:
        """Apply ``changes``, bump the semantic version and append a changelog entry."""
        known = {f.name for f in fields(Template)}
        unknown = set(changes) - known
        managed = set(changes) & _MANAGED_FIELDS
        if unknown or managed:
            raise TemplateValidationError(
                f"Cannot update fields: {sorted(unknown | managed)}"
            )
        errors: list[str] = []

        def mutate(template: Template) -> bool:
            candidate = copy.deepcopy(template)
            for name, value in changes.items():
                setattr(candidate, name, value)
            errors.extend(validate_template(candidate))
            if errors:
                return False
            for name, value in changes.items():
                setattr(template, name, value)
            template.version = bump_version(template.version, bump)
            template.updated_by = changed_by
            template.changelog.append(
                ChangelogEntry(
                    version=template.version,
                    changes=summary or f"Updated {', '.join(sorted(changes))}",
                    changed_by=changed_by,
                    changed_at=utcnow(),
                )
            )
            return True

        updated = self._template_repo.update(template_id, mutate)
        if errors:
            raise TemplateValidationError("; ".join(errors))
        if updated is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        Log.info(f"Updated template {template_id} to v{updated.version}")
        return updated

    def deactivate(self, template_id: int, *, changed_by: int | None = None) -> Template:
        def mutate(template: Template) -> bool:
            template.is_active = False
            template.updated_by = changed_by
            return True

        updated = self._template_repo.update(template_id, mutate)
        if updated is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        Log.info(f"Deactivated template {template_id}")
        return updated

    def delete(self, template_id: int) -> None:
        """Hard delete. Refused while a non-terminal job references the template."""
        if self._template_repo.find_by_id(template_id) is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        active_jobs = self._job_repo.count_active_for_template(template_id)
        if active_jobs:
            raise TemplateInUseError(
                f"Template {template_id} is used by {active_jobs} active job(s); deactivate it instead"
            )
        self._template_repo.delete(template_id)
        Log.info(f"Deleted template {template_id}")

    def clone(
        self,
        template_id: int,
        *,
        organization_id: int | None,
        name: str | None = None,
        created_by: int | None = None,
    ) -> Template:
        """Copy a template into an organization. The copy starts at 1.0.0 and is never default."""
        source = self.get(template_id, include_inactive=True)
        now = utcnow()
        clone = copy.deepcopy(source)
        clone.id = None
        clone.name = name or f"{source.name} (copy)"
        clone.organization_id = organization_id
        clone.is_default = False
        clone.is_active = True
        clone.version = "1.0.0"
        clone.changelog = [
            ChangelogEntry(
                version="1.0.0",
                changes=f"Cloned from template {template_id} v{source.version}",
                changed_by=created_by,
                changed_at=now,
            )
        ]
        clone.created_by = created_by
        clone.updated_by = None
        clone.average_cost = None
        clone.average_processing_time_ms = None
        clone.created_at = now
        clone.updated_at = now
        return self.create(clone)

    def record_completion(
        self,
        template_id: int,
        *,
        success: bool,
        cost: float | None = None,
        processing_time_ms: int | None = None,
    ) -> None:
        updated = self._template_repo.record_completion(
            template_id,
            success=success,
            cost=cost,
            processing_time_ms=processing_time_ms,
        )
        if updated is None:
            Log.warning(f"Template {template_id} vanished before metrics update")

    @staticmethod
    def _raise_if_invalid(template: Template) -> None:
        errors = validate_template(template)
        if errors:
            raise TemplateValidationError("; ".join(errors))
