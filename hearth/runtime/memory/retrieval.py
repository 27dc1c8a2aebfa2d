"""
Retrieval Pipeline - BM25 candidates, temporal decay, MMR diversity

WHAT: Two-stage rescoring of DocumentIndex hits for prompt context
WHERE: hearth/runtime/memory/retrieval.py - retrieval layer
WHO: MemoryService.search and prompt composition
TIME: O(C^2) in the candidate count C (2x limit by default)

Stages:
1. Fetch ``candidate_multiplier * limit`` BM25 candidates (room for re-ranking)
2. Multiply each score by ``0.5 ** (age_ms / half_life_ms)`` and re-sort
3. Greedy MMR: ``lambda * score - (1 - lambda) * max_jaccard(selected)``

Boundary Notes:
- Decay and diversity can be switched off independently; when both are on
  neither stage is skipped
- Similarity is token-set Jaccard over lowercase whitespace tokens
- Candidates nearly identical to the previous pick are passed over while any
  dissimilar candidate remains
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

import numpy as np

from ...config.memory import RetrievalSettings
from .bm25 import DocumentIndex
from .errors import InvalidParameterError
from .models import SearchResult

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


def temporal_decay_factor(timestamp_ms: float, half_life_ms: float, now_ms: float) -> float:
    """Exponential decay factor in (0, 1]; future timestamps count as age 0."""
    age = max(0.0, now_ms - timestamp_ms)
    return float(0.5 ** (age / half_life_ms))


def apply_temporal_decay(score: float, timestamp_ms: float, half_life_ms: float, now_ms: float) -> float:
    return score * temporal_decay_factor(timestamp_ms, half_life_ms, now_ms)


def _token_set(text: str) -> frozenset[str]:
    return frozenset(text.lower().split())


def jaccard_similarity(text_a: str, text_b: str) -> float:
    return _jaccard(_token_set(text_a), _token_set(text_b))


def _jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def mmr_rerank(
    results: Sequence[SearchResult],
    limit: int,
    *,
    mmr_lambda: float = 0.7,
    similarity_threshold: float = 0.95,
) -> List[SearchResult]:
    """Greedy Maximal Marginal Relevance over results already sorted by score."""

    if limit <= 0:
        return []
    if len(results) <= 1:
        return list(results[:limit])

    token_sets = [_token_set(r.content) for r in results]
    scores = np.array([r.score for r in results], dtype=np.float64)
    n = len(results)
    # max similarity of each candidate to anything selected so far
    max_sim = np.zeros(n, dtype=np.float64)
    available = np.ones(n, dtype=bool)

    order = [0]
    available[0] = False
    while len(order) < limit and available.any():
        last = order[-1]
        sim_to_last = np.array(
            [_jaccard(token_sets[i], token_sets[last]) if available[i] else 0.0 for i in range(n)]
        )
        np.maximum(max_sim, sim_to_last, out=max_sim)
        mmr = mmr_lambda * scores - (1.0 - mmr_lambda) * max_sim
        mmr[~available] = -np.inf

        diverse = available & (sim_to_last <= similarity_threshold)
        pool = np.where(diverse, mmr, -np.inf) if diverse.any() else mmr
        best = int(np.argmax(pool))  # first index wins ties
        order.append(best)
        available[best] = False

    return [results[i] for i in order]


class RetrievalPipeline:
    """Search the index, decay by age, then diversify."""

    def __init__(
        self,
        index: DocumentIndex,
        settings: RetrievalSettings | None = None,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.index = index
        self.settings = settings or RetrievalSettings()
        self._clock = clock or _wall_clock_ms

    def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        cfg = self.settings
        limit = cfg.default_limit if limit is None else limit
        if limit < 0:
            raise InvalidParameterError(f"limit must be >= 0, got {limit}")
        if limit == 0:
            return []

        hits = self.index.search(query, limit * cfg.candidate_multiplier)
        if not hits:
            return []

        raw = np.array([h.score for h in hits], dtype=np.float64)
        if cfg.decay_enabled:
            stamps = np.array([h.document.timestamp for h in hits], dtype=np.float64)
            ages = np.maximum(self._clock() - stamps, 0.0)
            decayed = raw * np.power(0.5, ages / cfg.half_life_ms)
        else:
            decayed = raw

        candidates = [
            SearchResult(
                path=h.document.path,
                content=h.document.content,
                score=float(score),
                timestamp=h.document.timestamp,
            )
            for h, score in zip(hits, decayed)
        ]
        candidates.sort(key=lambda r: (-r.score, r.path))

        if cfg.diversity_enabled:
            results = mmr_rerank(
                candidates,
                limit,
                mmr_lambda=cfg.mmr_lambda,
                similarity_threshold=cfg.similarity_threshold,
            )
        else:
            results = candidates[:limit]

        logger.debug(
            f"Retrieved {len(results)} of {len(hits)} candidates for query",
            extra={"context": {"query": query, "limit": limit}},
        )
        return results


__all__ = [
    "RetrievalPipeline",
    "temporal_decay_factor",
    "apply_temporal_decay",
    "jaccard_similarity",
    "mmr_rerank",
]
