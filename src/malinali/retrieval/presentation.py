"""
Text rendering of a translation result.

The split view lists the keyword short-list first and the semantic
short-list second. An empty list renders as "No match".
"""

from __future__ import annotations

from typing import List, Sequence

from .rerank import TranslationResult
from ..embeddings.models import SearchCandidate

NO_MATCH = "No match"
EXACT_MARKER = "*"
USER_MARKER = "[user]"
SEPARATOR = "-" * 37


def format_candidate(candidate: SearchCandidate, position: int) -> str:
    prefix = f"{EXACT_MARKER} " if candidate.is_exact_match else f"{position}. "
    line = f"{prefix}{candidate.pair.source_text} -> {candidate.pair.target_text}"
    if candidate.pair.is_user_contributed:
        line = f"{line} {USER_MARKER}"
    return line


def render_section(title: str, candidates: Sequence[SearchCandidate]) -> List[str]:
    lines = [title]
    if not candidates:
        lines.append(NO_MATCH)
        return lines
    for position, candidate in enumerate(candidates, start=1):
        lines.append(format_candidate(candidate, position))
    return lines


def render_split_view(result: TranslationResult) -> str:
    lines = render_section("Keyword", result.lexical)
    lines.extend(["", SEPARATOR, ""])
    lines.extend(render_section("Semantic", result.semantic))
    return "\n".join(lines)
