# =============================================
# File: shopassist/services/indexer.py
# Purpose: Rebuild/refresh the Chroma product index from a JSON catalog export.
# =============================================
from __future__ import annotations
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import chromadb
from loguru import logger

from shopassist.services.retrieval import CHROMA_PATH, COLLECTION_NAME, HNSW_SPACE
from shopassist.utils.catalog import normalize_metadata
from shopassist.utils.embeddings import embed_texts

DESCRIPTION_CHARS = 1000


def _read_catalog(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        # {"products": [...]} exports
        data = data.get("products") or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of product records")
    return [r for r in data if isinstance(r, dict)]


def _normalize_metadata(md: Dict[str, Any]) -> Dict[str, Any]:
    """Chroma only accepts str|int|float|bool. Lists become 'a > b', None becomes ''."""
    norm: Dict[str, str | int | float | bool] = {}
    for k, v in md.items():
        if v is None:
            norm[k] = ""
        elif isinstance(v, (str, int, float, bool)):
            norm[k] = v
        elif isinstance(v, (list, tuple)):
            norm[k] = " > ".join(str(x).strip() for x in v if x is not None and str(x).strip())
        else:
            norm[k] = str(v)
    return norm


def embedding_text(product_id: str, meta: Dict[str, Any]) -> str:
    p = normalize_metadata(product_id, meta)
    parts = [p.title, p.brand, p.categories or p.category_main, p.description[:DESCRIPTION_CHARS]]
    return ". ".join(x for x in parts if x)


def _open_collection(path: str, name: str, clear: bool):
    client = chromadb.PersistentClient(path=path)
    if clear:
        try:
            client.delete_collection(name)
        except Exception as e:
            logger.debug(f"[indexer] nothing to clear in '{name}': {e}")
    return client.get_or_create_collection(
        name=name,
        metadata={"hnsw:space": HNSW_SPACE},
        embedding_function=None,
    )


def refresh_catalog(
    catalog_path: str,
    clear: bool = False,
    batch_size: int = 256,
    chroma_path: str = CHROMA_PATH,
    collection_name: str = COLLECTION_NAME,
    collection: Optional[Any] = None,
    embedder: Callable[[Sequence[str]], List[List[float]]] = embed_texts,
) -> Tuple[int, int]:
    """
    Upsert every catalog record (id + metadata in either schema) into Chroma.
    Returns: (num_records, num_indexed)
    """
    records = _read_catalog(catalog_path)
    if not records:
        return (0, 0)

    col = collection if collection is not None else _open_collection(chroma_path, collection_name, clear)

    ids: List[str] = []
    docs: List[str] = []
    metas: List[Dict[str, Any]] = []
    for rec in records:
        pid = str(rec.get("id") or "").strip()
        if not pid:
            logger.warning(f"[indexer] skipping record without id: {str(rec)[:80]}")
            continue
        meta = _normalize_metadata({k: v for k, v in rec.items() if k != "id"})
        ids.append(pid)
        docs.append(embedding_text(pid, meta))
        metas.append(meta)

    size = max(1, int(batch_size))
    for start in range(0, len(ids), size):
        end = start + size
        vectors = embedder(docs[start:end])
        col.upsert(ids=ids[start:end], embeddings=vectors, metadatas=metas[start:end], documents=docs[start:end])
        logger.info(f"[indexer] upserted {min(end, len(ids))}/{len(ids)}")

    return (len(records), len(ids))
