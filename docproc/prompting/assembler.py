import re
from dataclasses import dataclass

from docproc.database.models import Job, KnowledgeEntry, SchemaField, Template
from docproc.logging.logger import Log
from docproc.templates.defaults import default_prompt

DOCUMENT_PLACEHOLDER = "document"
_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_DOCUMENT_RE = re.compile(r"\{\{\s*document\s*\}\}")


@dataclass(frozen=True)
class AssembledPrompt:
    """Final prompt text plus the response format hint for the provider call."""

    text: str
    response_format: str

    @property
    def wants_json(self) -> bool:
        return self.response_format == "json"


def resolve_output_format(job: Job, template: Template | None) -> str:
    """Job config wins, then the template; a template schema implies JSON."""
    if job.config.output_format:
        return job.config.output_format.lower()
    if template is None:
        return "text"
    if template.output_format == "text" and _schema_fields(template):
        return "json"
    return template.output_format


class PromptAssembler:
    """Builds the final prompt.

    Section order is fixed: system text, knowledge context, worked examples,
    then the instruction text with the document interpolated. The instruction
    is the job's custom instructions, else the template user text, else the
    built-in prompt for the processing type.
    """

    def __init__(self, snippet_chars: int = 500) -> None:
        self._snippet_chars = snippet_chars

    def assemble(
        self,
        job: Job,
        document_text: str,
        template: Template | None = None,
        knowledge: list[KnowledgeEntry] | None = None,
    ) -> AssembledPrompt:
        sections: list[str] = []
        prompt = template.prompt if template is not None else None

        if prompt is not None and prompt.system:
            sections.append(f"System: {self._fill(prompt.system, job)}")
        if knowledge:
            sections.append(self._knowledge_block(knowledge))
        if prompt is not None and prompt.examples:
            examples = "\n\n".join(
                f"Input: {example.input}\nOutput: {example.output}" for example in prompt.examples
            )
            sections.append(f"Examples:\n{examples}")

        instruction = job.custom_instructions or (prompt.user if prompt is not None else None)
        if instruction:
            sections.append(self._with_document(self._fill(instruction, job), document_text))
        else:
            sections.append(default_prompt(job.processing_type, document_text))

        output_format = resolve_output_format(job, template)
        # The built-in prompt goes out verbatim; output format still reaches the provider.
        if template is not None or job.custom_instructions:
            requested_fields = self._output_instructions(job, template, output_format)
            if requested_fields:
                sections.append(requested_fields)

        text = "\n\n".join(sections)
        Log.debug(f"Job {job.id} prompt assembled: {len(text)} chars, format {output_format}")
        return AssembledPrompt(text=text, response_format=output_format)

    def _knowledge_block(self, entries: list[KnowledgeEntry]) -> str:
        lines = ["Context Knowledge:"]
        for entry in entries:
            snippet = entry.content[: self._snippet_chars]
            if len(entry.content) > self._snippet_chars:
                snippet += "..."
            lines.append(f"- {entry.title}: {snippet}")
        return "\n".join(lines)

    @staticmethod
    def _with_document(instruction: str, document_text: str) -> str:
        if _DOCUMENT_RE.search(instruction):
            return _DOCUMENT_RE.sub(lambda _: document_text, instruction)
        return f"{instruction}\n\nDocument Content:\n{document_text}"

    @staticmethod
    def _fill(text: str, job: Job) -> str:
        """Replace ``{{name}}`` with job metadata; ``{{document}}`` is left for later."""

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            if name == DOCUMENT_PLACEHOLDER:
                return match.group(0)
            if name not in job.metadata:
                Log.warning(f"Job {job.id}: no value for prompt variable '{name}'")
                return match.group(0)
            return str(job.metadata[name])

        return _PLACEHOLDER_RE.sub(substitute, text)

    @staticmethod
    def _output_instructions(job: Job, template: Template | None, output_format: str) -> str:
        lines: list[str] = []
        schema_fields = _schema_fields(template) if template is not None else []
        if output_format == "json" and schema_fields:
            lines.append("Respond with a JSON object containing these fields:")
            lines.extend(_describe_fields(schema_fields))
        elif output_format == "json":
            lines.append("Respond with a valid JSON object.")
        if job.config.extract_fields:
            lines.append(f"Extract the following fields: {', '.join(job.config.extract_fields)}")
        if job.config.language:
            lines.append(f"Respond in {job.config.language}.")
        return "\n".join(lines)


def _schema_fields(template: Template) -> list[SchemaField]:
    if template.extraction_schema is None:
        return []
    return template.extraction_schema.fields


def _describe_fields(schema_fields: list[SchemaField], depth: int = 0) -> list[str]:
    lines: list[str] = []
    indent = "  " * depth
    for schema_field in schema_fields:
        label = schema_field.type + (", required" if schema_field.required else "")
        line = f"{indent}- {schema_field.name} ({label})"
        if schema_field.description:
            line += f": {schema_field.description}"
        lines.append(line)
        lines.extend(_describe_fields(schema_field.children, depth + 1))
    return lines
