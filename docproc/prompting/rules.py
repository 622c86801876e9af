"""Template processing rules.

A rule is a dict with a ``type`` key plus type-specific parameters, e.g.
``{"type": "regex", "pattern": "\\s+", "replacement": " "}``. Pre-processing
rules transform the document text before the prompt is assembled;
post-processing rules transform the model output before it is parsed. Every
rule is idempotent on its own output so retried jobs produce the same text.
"""

import re
from collections.abc import Callable
from typing import Any

from docproc.processor.exceptions import PostProcessingError, PreprocessingError

Rule = dict[str, Any]

_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```) if present."""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def extract_json_fragment(text: str) -> str:
    """Return the outermost ``{...}`` or ``[...]`` substring, or ``text`` when absent."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return text
    return text[start : end + 1]


def _regex(text: str, rule: Rule) -> str:
    pattern = rule.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise ValueError("regex rule requires a 'pattern'")
    replacement = rule.get("replacement", "")
    flags = re.IGNORECASE if rule.get("ignore_case") else 0
    return re.sub(pattern, replacement, text, flags=flags)


def _normalize(text: str, rule: Rule) -> str:
    lines = [" ".join(line.split()) for line in text.splitlines()]
    collapsed = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", collapsed).strip()


def _truncate(text: str, rule: Rule) -> str:
    max_chars = rule.get("max_chars")
    if not isinstance(max_chars, int) or max_chars < 1:
        raise ValueError("truncate rule requires a positive integer 'max_chars'")
    return text[:max_chars]


def _strip(text: str, rule: Rule) -> str:
    return text.strip()


def _strip_code_fences(text: str, rule: Rule) -> str:
    return strip_code_fences(text)


def _extract_json(text: str, rule: Rule) -> str:
    return extract_json_fragment(text)


PRE_RULES: dict[str, Callable[[str, Rule], str]] = {
    "regex": _regex,
    "normalize": _normalize,
    "truncate": _truncate,
}

POST_RULES: dict[str, Callable[[str, Rule], str]] = {
    "strip": _strip,
    "strip_code_fences": _strip_code_fences,
    "regex": _regex,
    "extract_json": _extract_json,
    "truncate": _truncate,
}


def validate_rules(rules: list[Rule], *, post: bool) -> list[str]:
    """Return problems with ``rules`` without running them on real content."""
    table = POST_RULES if post else PRE_RULES
    stage = "postprocessing" if post else "preprocessing"
    errors: list[str] = []
    for index, rule in enumerate(rules):
        rule_type = rule.get("type") if isinstance(rule, dict) else None
        if rule_type not in table:
            errors.append(f"{stage} rule {index}: unknown type {rule_type!r}")
            continue
        try:
            table[rule_type]("", rule)
        except (ValueError, re.error) as exc:
            errors.append(f"{stage} rule {index}: {exc}")
    return errors


def apply_preprocessing(text: str, rules: list[Rule]) -> str:
    """Run pre-processing rules in order.

    Raises:
        PreprocessingError: unknown rule type or a rule failure.
    """
    return _apply(text, rules, PRE_RULES, PreprocessingError)


def apply_postprocessing(text: str, rules: list[Rule]) -> str:
    """Run post-processing rules in order.

    Raises:
        PostProcessingError: unknown rule type or a rule failure.
    """
    return _apply(text, rules, POST_RULES, PostProcessingError)


def _apply(
    text: str,
    rules: list[Rule],
    table: dict[str, Callable[[str, Rule], str]],
    error_cls: type[Exception],
) -> str:
    for index, rule in enumerate(rules):
        rule_type = rule.get("type")
        handler = table.get(rule_type) if isinstance(rule_type, str) else None
        if handler is None:
            raise error_cls(f"Unknown rule type {rule_type!r} at position {index}")
        try:
            text = handler(text, rule)
        except (ValueError, re.error) as exc:
            raise error_cls(f"Rule {rule_type!r} at position {index} failed: {exc}") from exc
    return text
