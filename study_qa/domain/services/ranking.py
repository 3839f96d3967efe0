# study_qa/domain/services/ranking.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

from collections.abc import Sequence

from study_qa.domain.models import RankedPassage, RetrievedContext, RetrievedPassage


def order_passages(passages: Sequence[RankedPassage]) -> list[RankedPassage]:
    """
    Relevance descending; ties broken by sequence_index ascending, then chunk id.
    The sort is total, so the result does not depend on the backend's hit order.
    """
    return sorted(passages, key=lambda p: (-p.score, p.sequence_index, p.chunk_id))


def _truncate_at_word(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip()


def pack_context(
    passages: Sequence[RankedPassage],
    max_chars: int,
    separator_chars: int = 7,
) -> RetrievedContext:
    """
    Order passages and keep the longest relevance-ordered prefix that fits in
    ``max_chars`` (separators included). Passages are dropped from the tail,
    never cut, except when the single most relevant passage alone exceeds the
    budget: it is then truncated at a word boundary so the context is not empty.
    """
    if max_chars <= 0:
        return RetrievedContext.empty()

    ordered = order_passages(passages)
    kept: list[RetrievedPassage] = []
    used = 0
    for p in ordered:
        text = (p.text or "").strip()
        if not text:
            continue
        cost = len(text) + (separator_chars if kept else 0)
        if used + cost > max_chars:
            if not kept:
                text = _truncate_at_word(text, max_chars)
                kept.append(
                    RetrievedPassage(
                        chunk_id=p.chunk_id,
                        text=text,
                        relevance_score=p.score,
                        sequence_index=p.sequence_index,
                    )
                )
            break
        kept.append(
            RetrievedPassage(
                chunk_id=p.chunk_id,
                text=text,
                relevance_score=p.score,
                sequence_index=p.sequence_index,
            )
        )
        used += cost
    return RetrievedContext.of(kept)
