"""CPE search index — fuzzy lookup of (vendor, product) pairs."""

from __future__ import annotations

import logging
import math
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from scasentinel.core.exceptions import AnalysisError, IndexUnavailableError
from scasentinel.data.cve_db import VulnerabilityDatabase
from scasentinel.data.query import QuerySyntaxError, QueryTerm, parse_query

logger = logging.getLogger(__name__)

FIELDS = ("vendor", "product")
_RX_TOKEN = re.compile(r"[\s_.\-]+")


@dataclass(frozen=True)
class IndexEntry:
    """A search hit.  Equality is by (vendor, product); score is not compared."""

    vendor: str
    product: str
    score: float = field(default=0.0, compare=False)


@runtime_checkable
class CpeSearchIndex(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def search(self, query: str, max_results: int) -> list[IndexEntry]: ...


def tokenize(text: str) -> list[str]:
    return [tok for tok in _RX_TOKEN.split(text.lower()) if tok]


class CpeMemoryIndex:
    """In-memory :class:`CpeSearchIndex` with a normalised term-overlap score.

    Each field scores ``sqrt(coverage * precision)`` where *coverage* is the
    boosted, idf-weighted share of query terms found in the field and
    *precision* the share of the field's own tokens the query hit.  The square
    root keeps a long, broadened query from burying the true hit.  The entry
    score is the product of the field scores, so every result is in
    ``[0, 1]`` and an exact vendor/product match scores 1.0.

    Built on :meth:`open` from ``pairs`` or from the database's
    ``vendor_product_list()``; read-only afterwards.
    """

    def __init__(
        self,
        database: VulnerabilityDatabase | None = None,
        pairs: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        if database is None and pairs is None:
            raise ValueError("CpeMemoryIndex needs a database or explicit pairs")
        self._database = database
        self._pairs = list(pairs) if pairs is not None else None
        self._lock = threading.Lock()
        self._open = False
        self._docs: list[tuple[str, str]] = []
        self._doc_tokens: list[dict[str, list[str]]] = []
        self._postings: dict[str, dict[str, set[int]]] = {}

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        with self._lock:
            if self._open:
                return
            if self._pairs is not None:
                pairs = self._pairs
            else:
                pairs = self._database.vendor_product_list()
            docs = sorted(set(pairs))
            postings: dict[str, dict[str, set[int]]] = {name: {} for name in FIELDS}
            doc_tokens: list[dict[str, list[str]]] = []
            for doc_id, (vendor, product) in enumerate(docs):
                tokens = {"vendor": tokenize(vendor), "product": tokenize(product)}
                doc_tokens.append(tokens)
                for name in FIELDS:
                    for tok in tokens[name]:
                        postings[name].setdefault(tok, set()).add(doc_id)
            self._docs = docs
            self._doc_tokens = doc_tokens
            self._postings = postings
            self._open = True
        logger.info("CPE index opened with %d entries", len(docs))

    def close(self) -> None:
        with self._lock:
            self._docs = []
            self._doc_tokens = []
            self._postings = {}
            self._open = False

    def __len__(self) -> int:
        return len(self._docs)

    def _idf(self, field_name: str, token: str) -> float:
        df = len(self._postings[field_name].get(token, ()))
        return math.log(1.0 + len(self._docs) / (df + 1.0)) + 1.0

    def _field_score(self, field_name: str, terms: list[QueryTerm], doc_id: int) -> float:
        doc_tokens = self._doc_tokens[doc_id][field_name]
        if not doc_tokens:
            return 0.0
        doc_set = set(doc_tokens)
        query_tokens: set[str] = set()
        total = matched = 0.0
        for term in terms:
            for tok in tokenize(term.text):
                weight = term.boost * self._idf(field_name, tok)
                total += weight
                query_tokens.add(tok)
                if tok in doc_set:
                    matched += weight
        if total == 0.0:
            return 0.0
        precision = sum(1 for tok in doc_tokens if tok in query_tokens) / len(doc_tokens)
        return math.sqrt((matched / total) * precision)

    def search(self, query: str, max_results: int) -> list[IndexEntry]:
        if not self._open:
            raise IndexUnavailableError("CPE index is not open")
        try:
            clauses = parse_query(query)
        except QuerySyntaxError as exc:
            raise AnalysisError(f"unparseable CPE query: {exc}") from exc
        unknown = set(clauses) - set(FIELDS)
        if unknown:
            raise AnalysisError(f"unknown CPE query fields: {sorted(unknown)}")
        if not clauses:
            return []

        candidates: set[int] | None = None
        for field_name, terms in clauses.items():
            hits: set[int] = set()
            for term in terms:
                for tok in tokenize(term.text):
                    hits |= self._postings[field_name].get(tok, set())
            candidates = hits if candidates is None else candidates & hits
            if not candidates:
                return []

        results: list[IndexEntry] = []
        for doc_id in candidates:
            score = 1.0
            for field_name, terms in clauses.items():
                score *= self._field_score(field_name, terms, doc_id)
            if score > 0.0:
                vendor, product = self._docs[doc_id]
                results.append(IndexEntry(vendor, product, score))
        results.sort(key=lambda e: (-e.score, e.vendor, e.product))
        return results[:max_results]
