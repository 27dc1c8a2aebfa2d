"""
Module: hearth/runtime/memory/bm25.py
Summary: In-memory BM25 index over workspace notes, keyed by document id.
Inputs: (doc_id, path, content, timestamp) on insert; free-text queries
Outputs: IndexHit(document, score) sorted by score desc, doc id asc
Related: hearth/runtime/memory/retrieval.py (decay + MMR on top of this)
Stability: stable; Concurrency: single writer, concurrent readers

Documents live in an arena: a slot list plus an id -> slot table, with freed
slots reused on the next insert. Document frequencies are adjusted
incrementally; a re-insert of an existing id subtracts the old contribution
before adding the new one, so re-indexing a changed file never double counts.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

from ...config.memory import BM25Settings
from .errors import InvalidParameterError, MemoryCoreError
from .locks import ReadWriteLock

_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def tokenize(text: str) -> List[str]:
    """Lowercase, split on non-alphanumeric runs, drop tokens of length <= 1."""
    return [t for t in _SPLIT_RE.split(text.lower()) if len(t) > 1]


@dataclass(slots=True, frozen=True)
class IndexedDocument:
    id: str
    path: str
    content: str
    timestamp: float
    term_frequencies: Mapping[str, int]
    term_count: int


@dataclass(slots=True, frozen=True)
class IndexHit:
    document: IndexedDocument
    score: float


class DocumentIndex:
    """BM25 ranking structure; see module docstring for the storage layout."""

    def __init__(self, settings: BM25Settings | None = None) -> None:
        self.settings = settings or BM25Settings()
        self._slots: List[Optional[IndexedDocument]] = []
        self._slot_of: Dict[str, int] = {}
        self._free: List[int] = []
        self._doc_freq: Dict[str, int] = {}
        self._avg_len: float = 0.0
        self._lock = ReadWriteLock()

    # ------------------ mutation ------------------
    def add_document(self, doc_id: str, path: str, content: str, timestamp: float) -> IndexedDocument:
        terms = tokenize(content)
        doc = IndexedDocument(
            id=doc_id,
            path=path,
            content=content,
            timestamp=float(timestamp),
            term_frequencies=MappingProxyType(dict(Counter(terms))),
            term_count=len(terms),
        )
        with self._lock.write():
            slot = self._slot_of.get(doc_id)
            if slot is not None:
                self._subtract(self._live(doc_id, slot))
            else:
                slot = self._free.pop() if self._free else len(self._slots)
                if slot == len(self._slots):
                    self._slots.append(None)
                self._slot_of[doc_id] = slot
            for term in doc.term_frequencies:
                self._doc_freq[term] = self._doc_freq.get(term, 0) + 1
            self._slots[slot] = doc
            self._refresh_avg_len()
        return doc

    def remove_document(self, doc_id: str) -> bool:
        with self._lock.write():
            slot = self._slot_of.get(doc_id)
            if slot is None:
                return False
            self._subtract(self._live(doc_id, slot))
            del self._slot_of[doc_id]
            self._slots[slot] = None
            self._free.append(slot)
            self._refresh_avg_len()
            return True

    def clear(self) -> None:
        with self._lock.write():
            self._slots.clear()
            self._slot_of.clear()
            self._free.clear()
            self._doc_freq.clear()
            self._avg_len = 0.0

    def _live(self, doc_id: str, slot: int) -> IndexedDocument:
        doc = self._slots[slot]
        if doc is None or doc.id != doc_id:
            raise MemoryCoreError(f"Index slot {slot} does not hold document {doc_id!r}")
        return doc

    def _subtract(self, doc: IndexedDocument) -> None:
        for term in doc.term_frequencies:
            df = self._doc_freq.get(term, 0)
            if df > 1:
                self._doc_freq[term] = df - 1
            else:
                self._doc_freq.pop(term, None)

    def _refresh_avg_len(self) -> None:
        live = [d.term_count for d in self._slots if d is not None]
        self._avg_len = sum(live) / len(live) if live else 0.0

    # ------------------ scoring ------------------
    def _idf(self, term: str, n_docs: int) -> float:
        df = self._doc_freq.get(term, 0)
        if df == 0 or n_docs == 0:
            return 0.0
        return math.log((n_docs - df + 0.5) / (df + 0.5) + 1)

    def _score(self, doc: IndexedDocument, query_terms: List[str], idf: Dict[str, float]) -> float:
        k1, b = self.settings.k1, self.settings.b
        length_norm = 1 - b + b * (doc.term_count / (self._avg_len or 1))
        score = 0.0
        for term in query_terms:
            tf = doc.term_frequencies.get(term, 0)
            if tf == 0:
                continue
            score += idf[term] * (tf * (k1 + 1)) / (tf + k1 * length_norm)
        return score

    def search(self, query: str, limit: int = 10) -> List[IndexHit]:
        """Rank documents containing at least one query term.

        Repeated query terms count once per occurrence, as in the query text.
        """

        if limit < 0:
            raise InvalidParameterError(f"limit must be >= 0, got {limit}")
        query_terms = tokenize(query)
        if not query_terms or limit == 0:
            return []

        with self._lock.read():
            n_docs = len(self._slot_of)
            if n_docs == 0:
                return []
            idf = {t: self._idf(t, n_docs) for t in set(query_terms)}
            hits = []
            for doc in self._slots:
                if doc is None:
                    continue
                score = self._score(doc, query_terms, idf)
                if score > 0:
                    hits.append(IndexHit(document=doc, score=score))

        hits.sort(key=lambda h: (-h.score, h.document.id))
        return hits[:limit]

    # ------------------ inspection ------------------
    def get(self, doc_id: str) -> Optional[IndexedDocument]:
        with self._lock.read():
            slot = self._slot_of.get(doc_id)
            return None if slot is None else self._live(doc_id, slot)

    def document_ids(self) -> List[str]:
        with self._lock.read():
            return sorted(self._slot_of)

    def document_frequency(self, term: str) -> int:
        with self._lock.read():
            return self._doc_freq.get(term, 0)

    @property
    def average_document_length(self) -> float:
        return self._avg_len

    def __len__(self) -> int:
        return len(self._slot_of)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._slot_of

    def __iter__(self) -> Iterator[IndexedDocument]:
        with self._lock.read():
            docs = [d for d in self._slots if d is not None]
        return iter(docs)


__all__ = ["tokenize", "IndexedDocument", "IndexHit", "DocumentIndex"]
