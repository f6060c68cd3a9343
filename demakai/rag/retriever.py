"""
Retriever module for KBLI/KBJI codes and statistical publications.

Code lookup is lexical: the synonym-expanded query runs against the FTS5
index of both classification tables, with a regex fallback per table.
Publication lookup is semantic: the query is embedded and compared with
every stored chunk by cosine similarity, then filtered by threshold.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

from .. import lexicon
from ..classification_store import ClassificationStore
from ..document_store import DocumentStore
from ..models.records import ClassificationEntry, EntryKind, Mode, SearchCandidate
from .embedder import EmbeddingError, EmbeddingService
from .query_expansion import expand_lexical, expand_vector, extract_keywords

logger = logging.getLogger(__name__)

TOP_LIMITS = {
    EntryKind.BUSINESS: lexicon.TOP_KBLI,
    EntryKind.OCCUPATION: lexicon.TOP_KBJI,
}

EMPTY_CATALOG_MESSAGE = "Maaf, saat ini belum ada publikasi yang tersedia."
UNKNOWN_YEAR = "Tidak diketahui"


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity over the overlapping prefix of two vectors.

    Returns 0.0 when either vector is missing or empty, or when a norm is zero.
    """
    if not a or not b:
        return 0.0
    length = min(len(a), len(b))
    dot = norm_a = norm_b = 0.0
    for i in range(length):
        dot += a[i] * b[i]
        norm_a += a[i] * a[i]
        norm_b += b[i] * b[i]
    denominator = math.sqrt(norm_a) * math.sqrt(norm_b)
    return 0.0 if denominator == 0 else dot / denominator


def dedupe_candidates(candidates: Iterable[SearchCandidate]) -> List[SearchCandidate]:
    """Drops repeated (kind, code) pairs, keeping the first occurrence."""
    seen = set()
    unique = []
    for candidate in candidates:
        key = (candidate.kind, candidate.code)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def _entry_to_candidate(entry: ClassificationEntry) -> SearchCandidate:
    return SearchCandidate(
        code=str(entry.code or ""),
        title=str(entry.title or ""),
        description=str(entry.description or "")[:lexicon.DESCRIPTION_MAX_CHARS],
        kind=entry.kind,
    )


class RetrievalEngine:
    """Finds candidates for a query in the classification and document stores."""

    def __init__(
        self,
        classification_store: ClassificationStore,
        document_store: DocumentStore,
        embedder: EmbeddingService,
        publication_threshold: float = lexicon.PUBLICATION_THRESHOLD,
    ):
        self.classification_store = classification_store
        self.document_store = document_store
        self.embedder = embedder
        self.publication_threshold = publication_threshold

    # ------------------------------------------------------------------
    # KBLI / KBJI
    # ------------------------------------------------------------------

    def search_codes(self, query: str) -> List[SearchCandidate]:
        """Top KBLI and KBJI candidates for ``query``, deduplicated.

        Returns [] when neither table has a match after the regex fallback.
        """
        expanded = expand_lexical(query)
        logger.info(f"[RETRIEVER] Expanded (KBLI/KBJI): '{expanded}'")

        results: Dict[EntryKind, List[ClassificationEntry]] = {}
        for kind in (EntryKind.BUSINESS, EntryKind.OCCUPATION):
            hits = self.classification_store.search_lexical(kind, expanded, lexicon.TEXT_SEARCH_LIMIT)
            if not hits:
                logger.info(f"[RETRIEVER] Text search empty for {kind.value}, trying regex")
                hits = self.classification_store.search_regex(
                    kind, extract_keywords(expanded), lexicon.TEXT_SEARCH_LIMIT
                )
            results[kind] = hits

        logger.info(
            f"[RETRIEVER] Found {len(results[EntryKind.BUSINESS])} KBLI, "
            f"{len(results[EntryKind.OCCUPATION])} KBJI"
        )
        if not any(results.values()):
            return []

        candidates = []
        for kind, hits in results.items():
            candidates.extend(_entry_to_candidate(e) for e in hits[:TOP_LIMITS[kind]])
        return dedupe_candidates(candidates)

    # ------------------------------------------------------------------
    # Publications
    # ------------------------------------------------------------------

    @staticmethod
    def is_listing_query(query: str) -> bool:
        lowered = query.lower()
        return any(keyword in lowered for keyword in lexicon.LISTING_KEYWORDS)

    def render_catalog(self) -> str:
        """All publications grouped by year, newest year first."""
        documents = self.document_store.list_document_metadata()
        if not documents:
            return EMPTY_CATALOG_MESSAGE

        by_year: Dict[str, List[dict]] = {}
        for doc in documents:
            by_year.setdefault(doc["year"] or UNKNOWN_YEAR, []).append(doc)

        lines = ["📚 Publikasi yang tersedia:", ""]
        for year in sorted(by_year, reverse=True):
            lines.append(f"**{year}:**")
            for i, doc in enumerate(by_year[year], 1):
                tags = doc["tags"][:lexicon.CATALOG_MAX_TAGS]
                tag_text = " #" + " #".join(tags) if tags else ""
                lines.append(f"{i}. {doc['title']} [{doc['source_type']}]{tag_text}")
            lines.append("")
        lines.append("💡 Tanya detail publikasi dengan menyebutkan judulnya!")
        return "\n".join(lines)

    async def search_publications(self, query: str) -> List[SearchCandidate]:
        """Publication chunks most similar to ``query`` above the threshold.

        Returns [] when no embedding can be produced for the query.
        """
        logger.info(f"[RETRIEVER] Expanded (publikasi/embedding): '{expand_vector(query)}'")

        try:
            query_embedding = await self.embedder.embed(query, mode=Mode.PUBLICATION)
        except EmbeddingError as e:
            logger.error(f"[RETRIEVER] Query embedding failed: {e}")
            return []
        if query_embedding is None:
            return []

        scored = []
        for doc in self.document_store.list_documents(include_chunks=True):
            for chunk in doc.chunks:
                if not chunk.embedding:
                    continue
                scored.append((cosine_similarity(query_embedding, chunk.embedding), chunk))
        scored.sort(key=lambda item: item[0], reverse=True)
        top = scored[:lexicon.TOP_PUBLICATION_CHUNKS]

        threshold = self.publication_threshold
        relevant = [item for item in top if item[0] >= threshold]
        logger.info(f"[RETRIEVER] {len(relevant)} chunks above threshold ({threshold})")

        if not relevant and threshold > lexicon.RELAXED_THRESHOLD_GUARD:
            relevant = [item for item in top if item[0] >= lexicon.RELAXED_PUBLICATION_THRESHOLD]
            logger.info(
                f"[RETRIEVER] No hits at {threshold}, retried at "
                f"{lexicon.RELAXED_PUBLICATION_THRESHOLD}: {len(relevant)} hits"
            )

        return [
            SearchCandidate(
                title=str(chunk.parent_title or ""),
                year=str(chunk.year or ""),
                source_type=str(chunk.source_type or ""),
                description=(chunk.text or "")[:lexicon.DESCRIPTION_MAX_CHARS],
                similarity=float(similarity),
            )
            for similarity, chunk in relevant
        ]
