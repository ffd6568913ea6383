"""
Lexical scoring helpers for hybrid retrieval.

Term similarity is the IDF-weighted share of query terms that occur in a
chunk, with IDF computed over the candidate pool of the query.
"""

import math
import re
from collections.abc import Iterable

_WORD_RE = re.compile(r"[0-9a-z]+(?:['’][a-z]+)?|[぀-ヿ㐀-䶿一-鿿가-힯]")
_CJK_RE = re.compile(r"[぀-ヿ㐀-䶿一-鿿가-힯]")

STOPWORDS = frozenset(
    """
    a an and are as at be but by can do does for from has have how i if in into is it its
    me my no not of on or our so that the their them then there these they this to was
    we were what when where which who why will with you your
    """.split()
)


def tokenize_terms(text: str) -> list[str]:
    """
    Lower-cased terms of a text without stopwords.

    Latin words are kept whole, CJK characters become one term each.
    """
    terms = []
    for term in _WORD_RE.findall(text.lower()):
        if term in STOPWORDS:
            continue
        if len(term) < 2 and not _CJK_RE.match(term):
            continue
        terms.append(term)
    return terms


def query_terms(text: str, extra: Iterable[str] = ()) -> list[str]:
    """Unique query terms in first-seen order, optionally extended with keywords."""
    seen: dict[str, None] = {}
    for term in tokenize_terms(text):
        seen.setdefault(term, None)
    for keyword in extra:
        for term in tokenize_terms(keyword):
            seen.setdefault(term, None)
    return list(seen)


def idf_weights(terms: list[str], pool: list[set[str]]) -> dict[str, float]:
    """BM25 style IDF of each query term over the candidate pool; always positive."""
    total = len(pool)
    weights = {}
    for term in terms:
        df = sum(1 for doc_terms in pool if term in doc_terms)
        weights[term] = math.log((total - df + 0.5) / (df + 0.5) + 1.0)
    return weights


def term_similarity(terms: list[str], doc_terms: set[str], idf: dict[str, float]) -> float:
    """IDF-weighted share of query terms present in `doc_terms`."""
    if not terms:
        return 0.0
    total = sum(idf.get(term, 1.0) for term in terms)
    if total <= 0:
        return 0.0
    matched = sum(idf.get(term, 1.0) for term in terms if term in doc_terms)
    return matched / total


def hybrid_similarity(vector_sim: float, term_sim: float, vector_weight: float) -> float:
    """`w * vector_sim + (1 - w) * term_sim`."""
    return vector_weight * vector_sim + (1.0 - vector_weight) * term_sim


def keyword_share(terms: list[str], keywords: list[str]) -> float:
    """Share of query terms found among a chunk's important keywords."""
    if not terms or not keywords:
        return 0.0
    keyword_terms = set()
    for keyword in keywords:
        keyword_terms.update(tokenize_terms(keyword))
    return sum(1 for term in terms if term in keyword_terms) / len(terms)


def highlight(text: str, terms: list[str]) -> str:
    """Wrap occurrences of the terms in `<em>` tags, longest terms first."""
    if not terms:
        return text
    patterns = []
    for term in sorted(set(terms), key=lambda t: (-len(t), t)):
        escaped = re.escape(term)
        patterns.append(escaped if _CJK_RE.match(term) else rf"\b{escaped}\b")
    pattern = re.compile("|".join(patterns), re.IGNORECASE)
    return pattern.sub(lambda m: f"<em>{m.group(0)}</em>", text)
