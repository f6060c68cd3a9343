"""
Query expansion for the two retrieval paths.

Lexical search (KBLI/KBJI) gains recall from literal synonym substitution.
Embedding search (publications) gains more from a thematic anchor and topic
keyword packs, since the embedding already captures synonymy. The two
strategies are never mixed.
"""
import logging
import string
from typing import List

from .. import lexicon

logger = logging.getLogger(__name__)

_PUNCTUATION = string.punctuation + "“”‘’"


def extract_keywords(query: str, limit: int = lexicon.MAX_KEYWORDS) -> List[str]:
    """Lowercased tokens without stopwords or tokens of two characters or less.

    Args:
        query: Raw user text.
        limit: Maximum number of keywords kept, in order of appearance.
    """
    keywords = []
    for token in query.lower().split():
        token = token.strip(_PUNCTUATION)
        if len(token) < lexicon.MIN_KEYWORD_LENGTH or token in lexicon.STOPWORDS:
            continue
        keywords.append(token)
    return keywords[:limit]


def expand_lexical(query: str) -> str:
    """Keywords plus every synonym variant, space-joined.

    Falls back to the raw query when no keyword survives filtering.
    """
    keywords = extract_keywords(query)
    terms = list(dict.fromkeys(keywords))
    for keyword in keywords:
        for synonym in lexicon.SYNONYMS.get(keyword, []):
            if synonym not in terms:
                terms.append(synonym)
    return " ".join(terms) or query


def expand_vector(query: str) -> str:
    """Keyword bag anchored to the regional statistics domain.

    Adds the topic pack of each topic key found in the query, and a generic
    booster when too few keywords remain for a focused embedding.
    """
    lowered = query.strip().lower()
    keywords = extract_keywords(lowered)

    parts = [" ".join(keywords), lexicon.PUBLICATION_ANCHOR]
    for topic, pack in lexicon.PUBLICATION_TOPICS.items():
        if topic in lowered or topic in keywords:
            parts.append(pack)

    if len(keywords) < lexicon.MIN_VECTOR_KEYWORDS:
        parts.append(lexicon.PUBLICATION_BOOSTER)

    return " ".join(p for p in parts if p).strip()
