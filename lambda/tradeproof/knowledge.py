"""
Relevance retrieval - matches analysis context against knowledge clips.

Simple case-insensitive containment over a small curated corpus. No
ranking beyond corpus order. Pure and order-stable.
"""

import re
from typing import Iterable, Iterator, Sequence

from tradeproof.models import Analysis, KnowledgeClip
from tradeproof.clips import KNOWLEDGE_CLIPS


MIN_KEYWORD_LENGTH = 5


def extract_keywords(analysis: Analysis) -> list[str]:
    """
    Context keywords for an analysis.

    Work type, violation description words longer than four characters,
    and code section identifiers.
    """
    keywords = [analysis.work_type]
    for violation in analysis.violations:
        words = re.split(r"\s+", violation.description.lower())
        keywords.extend(w for w in words if len(w) >= MIN_KEYWORD_LENGTH)
        keywords.append(violation.code_section)
    return keywords


def relevant_clips(
    keywords: Iterable[str],
    corpus: Sequence[KnowledgeClip] = KNOWLEDGE_CLIPS,
) -> Iterator[KnowledgeClip]:
    """
    Lazily yields clips matching at least one keyword, in corpus order.

    A keyword matches a clip when it and a trigger keyword contain one
    another, or when it appears in the title, content, or expert name.
    Blank keywords are ignored.
    """
    normalized = [k.strip().lower() for k in keywords if k and k.strip()]
    if not normalized:
        return

    for clip in corpus:
        if _matches(clip, normalized):
            yield clip


def clips_for_analysis(
    analysis: Analysis,
    corpus: Sequence[KnowledgeClip] = KNOWLEDGE_CLIPS,
) -> list[KnowledgeClip]:
    return list(relevant_clips(extract_keywords(analysis), corpus))


def search_clips(
    query: str | None = None,
    task_type: str | None = None,
    corpus: Sequence[KnowledgeClip] = KNOWLEDGE_CLIPS,
) -> list[KnowledgeClip]:
    """Library search: free-text query plus optional task type filter."""
    results = list(corpus)
    if task_type and task_type != "all":
        results = [c for c in results if c.task_type == task_type]

    q = (query or "").strip().lower()
    if q:
        results = [c for c in results if q in _searchable(c)]
    return results


# --- Internal ---

def _matches(clip: KnowledgeClip, keywords: list[str]) -> bool:
    triggers = [t.lower() for t in clip.trigger_keywords]
    fields = (clip.title.lower(), clip.content.lower(), clip.expert_name.lower())

    for keyword in keywords:
        if any(keyword in t or t in keyword for t in triggers):
            return True
        if any(keyword in f for f in fields):
            return True
    return False


def _searchable(clip: KnowledgeClip) -> str:
    return " ".join([clip.title, clip.content, clip.expert_name, *clip.trigger_keywords]).lower()
