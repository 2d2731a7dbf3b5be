# =============================================
# File: shopassist/services/retrieval.py
# Purpose: Retrieval gateway over the Chroma product index (typed lookups, provider errors surfaced)
# =============================================
from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import chromadb
from loguru import logger

from shopassist.utils.catalog import Candidate
from shopassist.utils.embeddings import embed_text
from shopassist.utils.errors import ProviderError, RetrievalError

# ---------------------------------------------------------------------
# Chroma client & constants
# ---------------------------------------------------------------------

CHROMA_PATH = os.getenv("CHROMA_PATH", "store/chroma")
COLLECTION_NAME = os.getenv("CHROMA_COLLECTION", "catalog")

# Cosine space: Chroma returns distance = 1 - cosine_sim
HNSW_SPACE = "cosine"

# Catalog fields that hold the article/SKU code, current schema first
ARTICLE_FIELDS = ("gtin", "sku")


def open_collection(path: str = CHROMA_PATH, name: str = COLLECTION_NAME):
    """Get or create the product collection. Vectors are always supplied by us."""
    client = chromadb.PersistentClient(path=path)
    return client.get_or_create_collection(
        name=name,
        metadata={"hnsw:space": HNSW_SPACE},
        embedding_function=None,
    )


def _distance_to_similarity(dist: float, space: str = HNSW_SPACE) -> float:
    """
    Raw similarity for the configured space. No clamping: callers compare
    against thresholds expressed in the index's own similarity scale.
    """
    if space == "cosine":
        return 1.0 - float(dist)
    if space in ("l2", "ip", "inner_product"):
        return 1.0 / (1.0 + float(dist))
    return 1.0 - float(dist)


def _first(res: Dict[str, Any], key: str) -> List[Any]:
    """Chroma query results are nested one level per query embedding."""
    val = res.get(key)
    if val is None:
        return []
    val = list(val)
    if not val:
        return []
    first = val[0]
    return list(first) if first is not None else []


def _flat(res: Dict[str, Any], key: str) -> List[Any]:
    val = res.get(key)
    if val is None:
        return []
    return list(val)


class CatalogGateway:
    """
    Typed operations over the embedding capability and the vector index.

    Every provider failure is raised as RetrievalError; an empty list only
    ever means "the index had nothing to return".
    """

    def __init__(
        self,
        collection: Any = None,
        embedder: Callable[[str], List[float]] = embed_text,
        collection_factory: Callable[[], Any] = open_collection,
    ) -> None:
        self._collection = collection
        self._embed = embedder
        self._collection_factory = collection_factory

    @property
    def collection(self):
        if self._collection is None:
            try:
                self._collection = self._collection_factory()
            except Exception as e:
                raise RetrievalError(f"vector index unavailable: {e}") from e
        return self._collection

    # ------------------------------------------------------------- helpers

    def _embed_query(self, text: str) -> List[float]:
        try:
            vector = self._embed(text)
        except ProviderError as e:
            raise RetrievalError(str(e)) from e
        except Exception as e:
            raise RetrievalError(f"embedding failed: {e}") from e
        if vector is None or len(vector) == 0:
            raise RetrievalError("embedding capability returned an empty vector")
        return list(vector)

    def _query(self, vector: Sequence[float], top_k: int, where: Optional[Dict[str, Any]]) -> List[Candidate]:
        if top_k <= 0:
            return []
        try:
            res = self.collection.query(
                query_embeddings=[list(vector)],
                n_results=int(top_k),
                where=where,
                include=["metadatas", "distances"],
            )
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"vector query failed: {e}") from e

        ids = _first(res, "ids")
        metas = _first(res, "metadatas")
        dists = _first(res, "distances")

        out: List[Candidate] = []
        for i, pid in enumerate(ids):
            meta = metas[i] if i < len(metas) and metas[i] else {}
            dist = dists[i] if i < len(dists) and dists[i] is not None else 1.0
            out.append(Candidate(id=str(pid), score=_distance_to_similarity(dist), metadata=meta))
        return out

    def _get(self, **kwargs) -> Dict[str, Any]:
        try:
            return self.collection.get(**kwargs) or {}
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"vector fetch failed: {e}") from e

    # ------------------------------------------------------------- public API

    def search_by_text(self, query: str, top_k: int, where: Optional[Dict[str, Any]] = None) -> List[Candidate]:
        vector = self._embed_query(query)
        hits = self._query(vector, top_k, where)
        logger.debug(f"[retrieval] text query='{query[:80]}' top_k={top_k} hits={len(hits)}")
        return hits

    def search_by_vector(
        self,
        vector: Sequence[float],
        top_k: int,
        exclude_id: Optional[str] = None,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Candidate]:
        n = top_k + 1 if exclude_id else top_k
        hits = self._query(vector, n, where)
        if exclude_id:
            hits = [h for h in hits if h.id != exclude_id]
        return hits[:top_k]

    def search_by_brand(self, query: str, brand: str, top_k: int) -> List[Candidate]:
        return self.search_by_text(query, top_k, where={"brand": {"$eq": brand}})

    def fetch_by_id(self, product_id: str) -> Optional[Candidate]:
        res = self._get(ids=[product_id], include=["metadatas"])
        ids = _flat(res, "ids")
        if not ids:
            return None
        metas = _flat(res, "metadatas")
        meta = metas[0] if metas and metas[0] else {}
        return Candidate(id=str(ids[0]), score=1.0, metadata=meta)

    def fetch_vector(self, product_id: str) -> Optional[List[float]]:
        res = self._get(ids=[product_id], include=["embeddings"])
        embeddings = res.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        vec = embeddings[0]
        if vec is None or len(vec) == 0:
            return None
        return [float(x) for x in vec]

    def fetch_by_article(self, variants: Sequence[str]) -> List[Candidate]:
        """Exact metadata lookup of article codes against both catalog schemas."""
        values = [v for v in dict.fromkeys(variants) if v]
        if not values:
            return []
        where = {"$or": [{f: {"$in": values}} for f in ARTICLE_FIELDS]}
        res = self._get(where=where, include=["metadatas"])
        ids = _flat(res, "ids")
        metas = _flat(res, "metadatas")
        return [
            Candidate(id=str(pid), score=1.0, metadata=(metas[i] if i < len(metas) and metas[i] else {}))
            for i, pid in enumerate(ids)
        ]
