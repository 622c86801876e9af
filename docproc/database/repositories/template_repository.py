from collections.abc import Callable
from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docproc.database.connection import get_connection
from docproc.database.enums import ProcessingType
from docproc.database.models import Template, utcnow
from docproc.database.repositories.base import BaseTemplateRepository
from docproc.database.serialization import dump, load


class TemplateRepository(BaseTemplateRepository):
    """Database operations for the processing_templates table."""

    def create(self, template: Template) -> Template:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO processing_templates
                    (name, processing_type, organization_id, is_active, is_default,
                     created_at, updated_at, data)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        template.name,
                        template.processing_type.value,
                        template.organization_id,
                        template.is_active,
                        template.is_default,
                        template.created_at,
                        template.updated_at,
                        Jsonb(dump(template)),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT into processing_templates returned no row")
        template.id = row["id"]
        return template

    def find_by_id(self, id: int) -> Template | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT id, data FROM processing_templates WHERE id = %s", (id,))
                row = cur.fetchone()
        if row is None:
            return None
        return self._to_template(row)

    def find_all(
        self,
        processing_type: ProcessingType | None = None,
        organization_id: int | None = None,
        active_only: bool = True,
    ) -> list[Template]:
        clauses = ["TRUE"]
        params: list[Any] = []
        if processing_type is not None:
            clauses.append("processing_type = %s")
            params.append(processing_type.value)
        if organization_id is not None:
            clauses.append("(organization_id IS NULL OR organization_id = %s)")
            params.append(organization_id)
        if active_only:
            clauses.append("is_active")
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT id, data FROM processing_templates
                    WHERE {" AND ".join(clauses)}
                    ORDER BY is_default DESC, name, id
                    """,  # noqa: S608
                    params,
                )
                rows = cur.fetchall()
        return [self._to_template(row) for row in rows]

    def find_default(self, processing_type: ProcessingType) -> Template | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, data FROM processing_templates
                    WHERE processing_type = %s AND is_default AND is_active
                      AND organization_id IS NULL
                    ORDER BY id
                    LIMIT 1
                    """,
                    (processing_type.value,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return self._to_template(row)

    def delete(self, id: int) -> bool:
        with get_connection() as conn:
            cur = conn.execute("DELETE FROM processing_templates WHERE id = %s", (id,))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def _modify(self, id: int, mutate: Callable[[Template], bool]) -> Template | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, data FROM processing_templates WHERE id = %s FOR UPDATE",
                    (id,),
                )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    return None
                template = self._to_template(row)
                if not mutate(template):
                    conn.rollback()
                    return None
                template.updated_at = utcnow()
                cur.execute(
                    """
                    UPDATE processing_templates
                    SET name = %s, processing_type = %s, organization_id = %s,
                        is_active = %s, is_default = %s, updated_at = %s, data = %s
                    WHERE id = %s
                    """,
                    (
                        template.name,
                        template.processing_type.value,
                        template.organization_id,
                        template.is_active,
                        template.is_default,
                        template.updated_at,
                        Jsonb(dump(template)),
                        id,
                    ),
                )
            conn.commit()
        return template

    @staticmethod
    def _to_template(row: dict[str, Any]) -> Template:
        return load(Template, {**row["data"], "id": row["id"]})
