# =============================================
# File: shopassist/services/search.py
# Purpose: Product search dispatch (general search + brand quota, article lookup, similar-by-price, popular pool)
# =============================================
from __future__ import annotations

import os
import re
from typing import List, Optional

from loguru import logger

from shopassist.services.retrieval import CatalogGateway
from shopassist.utils.catalog import Candidate, normalize_article
from shopassist.utils.ranking import (
    HOUSE_BRANDS,
    PRICE_WINDOW,
    apply_brand_quota,
    balance_results,
    filter_available,
    filter_by_score,
    filter_price_window,
    has_house_brand,
    sort_by_relevance,
)

SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.7"))
POPULAR_QUERY = os.getenv("POPULAR_QUERY", "вітаміни для здоров'я та імунітету")

HOUSE_SUPPLEMENT_MIN_SCORE = 0.2
ARTICLE_SCAN_TOP_K = 100
_LETTERS_DIGITS_RE = re.compile(r"^([A-Z]+)[-\s]?(\d+)$")


def article_variants(code: str) -> List[str]:
    """Spellings an article code may be stored under: as typed, compact, spaced, hyphenated."""
    code = code.strip().upper()
    variants = [code, code.replace("-", "").replace(" ", ""), code.replace("-", " ")]
    m = _LETTERS_DIGITS_RE.match(variants[1])
    if m:
        variants.append(f"{m.group(1)}-{m.group(2)}")
    return list(dict.fromkeys(variants))


class ProductSearch:
    def __init__(self, gateway: CatalogGateway, similarity_threshold: float = SIMILARITY_THRESHOLD) -> None:
        self.gateway = gateway
        self.similarity_threshold = similarity_threshold

    def search_products(self, query: str, top_k: int = 6) -> List[Candidate]:
        """
        Text search -> score filter -> in-stock filter -> relevance sort.
        For multi-item requests exactly one house-brand item is kept when one
        can be found; a single-item request is left untouched so it stays the
        best match.
        """
        query = (query or "").strip()
        if not query or top_k <= 0:
            return []

        hits = self.gateway.search_by_text(query, top_k)
        ranked = sort_by_relevance(filter_available(filter_by_score(hits, self.similarity_threshold)))

        if top_k > 1:
            house: List[Candidate] = []
            if not has_house_brand(ranked):
                house = self.house_brand_supplement(query, limit=1)
            ranked = apply_brand_quota(ranked, top_k, house)
        else:
            ranked = ranked[:top_k]

        logger.info(f"[search] query='{query[:60]}' hits={len(hits)} kept={len(ranked)}")
        return ranked

    def house_brand_supplement(self, query: str, limit: int = 1) -> List[Candidate]:
        pool: List[Candidate] = []
        for brand in HOUSE_BRANDS:
            pool.extend(self.gateway.search_by_brand(query, brand, max(1, limit)))
        pool = [c for c in pool if c.score > HOUSE_SUPPLEMENT_MIN_SCORE]
        return sort_by_relevance(filter_available(pool))[:limit]

    def find_by_article(self, code: str) -> Optional[Candidate]:
        """Exact lookup on the article fields, then a semantic scan compared after normalization."""
        code = (code or "").strip().upper()
        if not code:
            return None
        exact = self.gateway.fetch_by_article(article_variants(code))
        if exact:
            return exact[0].with_score(1.0)

        wanted = normalize_article(code)
        for c in self.gateway.search_by_text(code, ARTICLE_SCAN_TOP_K):
            if normalize_article(c.product.article) == wanted:
                logger.info(f"[search] article {code} found via semantic scan")
                return c.with_score(1.0)
        logger.info(f"[search] article {code} not found")
        return None

    def find_similar(self, reference: Candidate, limit: int = 5) -> List[Candidate]:
        ref = reference.product
        pool_size = limit * 5
        vector = self.gateway.fetch_vector(reference.id)
        if vector is not None:
            pool = self.gateway.search_by_vector(vector, pool_size, exclude_id=reference.id)
        else:
            text = f"{ref.category_main} {ref.title}".strip()
            if not text:
                return []
            pool = self.gateway.search_by_text(text, pool_size)

        similar = sort_by_relevance(filter_price_window(pool, reference, PRICE_WINDOW))
        return balance_results(similar, limit)

    def popular_products(self, limit: int = 10) -> List[Candidate]:
        return self.search_products(POPULAR_QUERY, top_k=limit)
