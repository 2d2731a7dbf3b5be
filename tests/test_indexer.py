# =============================================
# File: tests/test_indexer.py
# Purpose: Catalog refresh: batching, metadata coercion, embedding text
# =============================================
import sys, os, json
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from shopassist.services.indexer import embedding_text, refresh_catalog
from tests.fakes import FakeCollection


def _write_catalog(tmp_path, payload):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return str(path)


def _embedder(calls):
    def embed(texts):
        calls.append(list(texts))
        return [[0.1, 0.2, 0.3] for _ in texts]
    return embed


def test_upserts_in_batches(tmp_path):
    records = [{"id": f"p{i}", "title": f"Товар {i}", "brand": "Acme"} for i in range(5)]
    path = _write_catalog(tmp_path, records)
    col, calls = FakeCollection(), []
    total, indexed = refresh_catalog(path, batch_size=2, collection=col, embedder=_embedder(calls))
    assert (total, indexed) == (5, 5)
    assert [len(u["ids"]) for u in col.upserts] == [2, 2, 1]
    assert col.upserts[0]["ids"] == ["p0", "p1"]
    assert [len(c) for c in calls] == [2, 2, 1]
    assert len(col.upserts[2]["embeddings"]) == 1


def test_accepts_products_wrapper_and_skips_records_without_id(tmp_path):
    path = _write_catalog(tmp_path, {"products": [{"id": "a", "title": "Цинк"}, {"title": "без id"}, "junk"]})
    col = FakeCollection()
    total, indexed = refresh_catalog(path, collection=col, embedder=_embedder([]))
    assert (total, indexed) == (2, 1)
    assert col.upserts[0]["ids"] == ["a"]


def test_metadata_is_coerced_to_scalars(tmp_path):
    path = _write_catalog(tmp_path, [{
        "id": "a",
        "title": "Омега-3",
        "categories": ["Вітаміни", "Омега"],
        "old_price": None,
        "extra": {"k": 1},
        "price": 499.5,
        "in_stock": True,
    }])
    col = FakeCollection()
    refresh_catalog(path, collection=col, embedder=_embedder([]))
    meta = col.upserts[0]["metadatas"][0]
    assert "id" not in meta
    assert meta["categories"] == "Вітаміни > Омега"
    assert meta["old_price"] == ""
    assert meta["extra"] == "{'k': 1}"
    assert meta["price"] == 499.5 and meta["in_stock"] is True


def test_empty_catalog_touches_nothing(tmp_path):
    path = _write_catalog(tmp_path, [])
    col = FakeCollection()
    assert refresh_catalog(path, collection=col, embedder=_embedder([])) == (0, 0)
    assert col.upserts == []


def test_non_list_catalog_is_rejected(tmp_path):
    path = _write_catalog(tmp_path, "nope")
    with pytest.raises(ValueError):
        refresh_catalog(path, collection=FakeCollection(), embedder=_embedder([]))


def test_embedding_text_joins_title_brand_category_description():
    meta = {"title": "Магній B6", "brand": "Biotus", "category_main": "Мінерали", "description": "x" * 1500}
    text = embedding_text("p1", meta)
    assert text.startswith("Магній B6. Biotus. Мінерали. ")
    assert text.endswith("x" * 1000)
    assert "x" * 1001 not in text
