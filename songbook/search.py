"""
Search Index: in-memory full-text index over song projections.

The index is a chain of immutable ``IndexSnapshot`` objects. Readers grab the
current snapshot and query it without locks; writers (upsert, remove, rebuild)
are serialized on one lock, build a new snapshot and publish it with a single
attribute assignment. A rebuild therefore never exposes a half-built index.

Ranking is BM25 (``rank_bm25.BM25Okapi``), one scorer per tokenized field,
built lazily the first time a snapshot is queried.

Query grammar (clauses separated by whitespace, OR-ed by default):

    imagine                 term in the default field (lyrics)
    title:imagine           term in a named field
    "no heaven"             phrase in the default field
    author:"john lennon"    phrase in a named field
    +title:imagine          required clause
    -author:beatles         excluded clause
    id:<song-id>            exact id match

An empty query matches every document, ordered by title then id.
"""

import re
import threading
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger
from rank_bm25 import BM25Okapi

from .errors import IndexQueryError
from .models import DEFAULT_SEARCH_FIELD, INDEX_FIELDS, SEARCHABLE_FIELDS, IndexDocument, SearchHit

DEFAULT_LIMIT = 50

_WORD = re.compile(r"\w+", re.UNICODE)
_FIELD_PREFIX = re.compile(r"([A-Za-z_]\w*):")

SHOULD = "should"
MUST = "must"
MUST_NOT = "must_not"


def tokenize(text: str) -> List[str]:
    return [t.casefold() for t in _WORD.findall(text or "")]


# ---------------------------------------------------------------------------
# Query parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Clause:
    field: str
    terms: Tuple[str, ...]
    occur: str = SHOULD

    @property
    def is_phrase(self) -> bool:
        return len(self.terms) > 1


def parse_query(query: str, default_field: str = DEFAULT_SEARCH_FIELD) -> List[Clause]:
    """Parse a query string into clauses. Raises ``IndexQueryError`` on bad syntax."""
    clauses: List[Clause] = []
    pos, end = 0, len(query)
    while pos < end:
        if query[pos].isspace():
            pos += 1
            continue

        occur = SHOULD
        if query[pos] in "+-":
            occur = MUST if query[pos] == "+" else MUST_NOT
            pos += 1

        field = default_field
        prefix = _FIELD_PREFIX.match(query, pos)
        if prefix:
            field = prefix.group(1).lower()
            if field not in INDEX_FIELDS:
                raise IndexQueryError(f"unknown field '{prefix.group(1)}'")
            pos = prefix.end()

        if pos < end and query[pos] == '"':
            closing = query.find('"', pos + 1)
            if closing < 0:
                raise IndexQueryError("unterminated phrase")
            value = query[pos + 1:closing]
            pos = closing + 1
        else:
            start = pos
            while pos < end and not query[pos].isspace():
                if query[pos] == '"':
                    raise IndexQueryError("misplaced quote")
                pos += 1
            value = query[start:pos]

        if not value.strip():
            if prefix:
                raise IndexQueryError(f"missing value for field '{field}'")
            raise IndexQueryError("dangling operator")

        if field == "id":
            clauses.append(Clause(field, (value.strip(),), occur))
            continue
        terms = tuple(tokenize(value))
        if terms:
            clauses.append(Clause(field, terms, occur))
    return clauses


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def _contains_phrase(tokens: List[str], phrase: Tuple[str, ...]) -> bool:
    n = len(phrase)
    first = phrase[0]
    for i, token in enumerate(tokens[: len(tokens) - n + 1]):
        if token == first and tuple(tokens[i:i + n]) == phrase:
            return True
    return False


class _FieldIndex:
    """Token lists and a BM25 scorer for one field, aligned with the snapshot order."""

    def __init__(self, corpus: List[List[str]]) -> None:
        self.tokens = corpus
        self.token_sets = [set(tokens) for tokens in corpus]
        # BM25Okapi divides by corpus length and vocabulary size
        self.bm25 = BM25Okapi(corpus) if any(corpus) else None

    def scores(self, terms: Tuple[str, ...]) -> List[float]:
        if self.bm25 is None:
            return [0.0] * len(self.tokens)
        return [float(s) for s in self.bm25.get_scores(list(terms))]

    def matches(self, position: int, clause: Clause) -> bool:
        if clause.is_phrase:
            return _contains_phrase(self.tokens[position], clause.terms)
        return clause.terms[0] in self.token_sets[position]


class IndexSnapshot:
    """An immutable set of index documents. Never modified after construction."""

    def __init__(self, documents: Dict[str, IndexDocument]) -> None:
        self._documents = dict(documents)
        self._order: List[str] = sorted(
            self._documents,
            key=lambda doc_id: (self._documents[doc_id].title.casefold(), doc_id),
        )

    def with_document(self, document: IndexDocument) -> "IndexSnapshot":
        documents = dict(self._documents)
        documents[document.id] = document
        return IndexSnapshot(documents)

    def without(self, doc_id: str) -> "IndexSnapshot":
        documents = dict(self._documents)
        documents.pop(doc_id, None)
        return IndexSnapshot(documents)

    def get(self, doc_id: str) -> Optional[IndexDocument]:
        return self._documents.get(doc_id)

    def documents(self) -> List[IndexDocument]:
        """Documents in match-all order."""
        return [self._documents[doc_id] for doc_id in self._order]

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    @cached_property
    def _fields(self) -> Dict[str, _FieldIndex]:
        docs = self.documents()
        return {
            name: _FieldIndex([tokenize(doc.field(name)) for doc in docs])
            for name in SEARCHABLE_FIELDS
        }

    def warm(self) -> "IndexSnapshot":
        """Build the per-field scorers now rather than on the first query."""
        self._fields
        return self

    def search(self, clauses: List[Clause], limit: int) -> List[SearchHit]:
        docs = self.documents()
        if not clauses:
            return [_hit(doc, 0.0) for doc in docs[:limit]]

        totals = [0.0] * len(docs)
        required_ok = [True] * len(docs)
        excluded = [False] * len(docs)
        any_should = [False] * len(docs)
        has_required = any(c.occur == MUST for c in clauses)

        for clause in clauses:
            if clause.field == "id":
                matched = [doc.id == clause.terms[0] for doc in docs]
                scores = [1.0] * len(docs)
            else:
                index = self._fields[clause.field]
                matched = [index.matches(i, clause) for i in range(len(docs))]
                scores = index.scores(clause.terms) if any(matched) else [0.0] * len(docs)

            for i, hit in enumerate(matched):
                if clause.occur == MUST_NOT:
                    excluded[i] = excluded[i] or hit
                    continue
                if clause.occur == MUST and not hit:
                    required_ok[i] = False
                if hit:
                    totals[i] += scores[i]
                    if clause.occur == SHOULD:
                        any_should[i] = True

        ranked = []
        for i, doc in enumerate(docs):
            if excluded[i] or not required_ok[i]:
                continue
            if not has_required and not any_should[i]:
                continue
            ranked.append((-totals[i], i))
        ranked.sort()
        return [_hit(docs[i], -neg_score) for neg_score, i in ranked[:limit]]


def _hit(doc: IndexDocument, score: float) -> SearchHit:
    return SearchHit(id=doc.id, title=doc.title, author=doc.author, album=doc.album, score=score)


# ---------------------------------------------------------------------------
# SearchIndex facade
# ---------------------------------------------------------------------------

class SearchIndex:
    """
    Published-snapshot search index.

    * ``query`` reads the current snapshot, no locking.
    * ``upsert`` / ``remove`` / ``rebuild`` hold the writer lock, derive a new
      snapshot and swap it in.
    """

    def __init__(self, limit: int = DEFAULT_LIMIT) -> None:
        self.limit = limit
        self._snapshot = IndexSnapshot({})
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, document: IndexDocument) -> None:
        with self._write_lock:
            self._snapshot = self._snapshot.with_document(document)

    def remove(self, doc_id: str) -> bool:
        with self._write_lock:
            if doc_id not in self._snapshot:
                return False
            self._snapshot = self._snapshot.without(doc_id)
            return True

    def rebuild(self, documents: Iterable[IndexDocument]) -> int:
        """Replace the whole index. Queries keep using the previous snapshot
        until the new one is complete."""
        with self._write_lock:
            fresh: Dict[str, IndexDocument] = {}
            for document in documents:
                fresh[document.id] = document
            snapshot = IndexSnapshot(fresh).warm()
            self._snapshot = snapshot
        logger.info(f"Search index rebuilt: {len(snapshot)} documents")
        return len(snapshot)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, query_string: Optional[str] = None, limit: Optional[int] = None) -> List[SearchHit]:
        """Ranked hits, best first, at most ``limit`` (default: the index cap)."""
        limit = self.limit if limit is None else max(0, min(limit, self.limit))
        text = (query_string or "").strip()
        clauses = parse_query(text)
        if text and not clauses:
            # only punctuation: nothing to look for
            return []
        return self._snapshot.search(clauses, limit)

    def get(self, doc_id: str) -> Optional[IndexDocument]:
        return self._snapshot.get(doc_id)

    def title_of(self, doc_id: str) -> Optional[str]:
        document = self._snapshot.get(doc_id)
        return document.title if document is not None else None

    def documents(self) -> List[IndexDocument]:
        return self._snapshot.documents()

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._snapshot

    def __repr__(self) -> str:
        return f"SearchIndex({len(self)} documents, limit={self.limit})"


def render_hits_text(hits: List[SearchHit]) -> str:
    """Flat listing, one hit per line: ``id<TAB>title<TAB>author<TAB>album``."""
    return "".join(f"{h.id}\t{h.title}\t{h.author}\t{h.album}\n" for h in hits)
