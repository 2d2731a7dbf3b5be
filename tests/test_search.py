# =============================================
# File: tests/test_search.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from shopassist.services.search import POPULAR_QUERY, ProductSearch, article_variants
from shopassist.utils.ranking import is_house_brand
from tests.fakes import FakeGateway, make_candidate


def _ids(cands):
    return [c.id for c in cands]


def test_search_products_filters_and_sorts():
    gw = FakeGateway(default_hits=[
        make_candidate("weak", score=0.1),
        make_candidate("gone", score=0.9, available=False),
        make_candidate("other", score=0.95),
        make_candidate("pop", score=0.6, brand="Now Foods"),
        make_candidate("house", score=0.5, brand="Biotus"),
    ])
    out = ProductSearch(gw).search_products("магній", top_k=6)
    assert _ids(out) == ["house", "pop", "other"]


def test_quota_leaves_exactly_one_house_item():
    gw = FakeGateway(default_hits=[
        make_candidate("h1", brand="Biotus"),
        make_candidate("h2", brand="My Nutri Week"),
        make_candidate("p1", brand="Solgar"),
        make_candidate("o1"),
    ])
    out = ProductSearch(gw).search_products("омега", top_k=6)
    assert sum(1 for c in out if is_house_brand(c)) == 1
    assert _ids(out) == ["h1", "p1", "o1"]


def test_house_supplement_is_spliced_in():
    gw = FakeGateway(
        default_hits=[make_candidate(f"p{i}", brand="Solgar") for i in range(6)],
        brand_hits={
            "Biotus": [make_candidate("weak_h", score=0.15, brand="Biotus")],
            "My Nutri Week": [make_candidate("mnw", score=0.4, brand="My Nutri Week")],
        },
    )
    out = ProductSearch(gw).search_products("омега", top_k=6)
    assert _ids(out) == ["mnw", "p0", "p1", "p2", "p3", "p4"]
    assert ("brand", "Biotus", 1) in gw.calls


def test_single_result_search_skips_quota():
    gw = FakeGateway(default_hits=[make_candidate("p1", brand="Solgar")],
                     brand_hits={"Biotus": [make_candidate("h", brand="Biotus")]})
    out = ProductSearch(gw).search_products("омега", top_k=1)
    assert _ids(out) == ["p1"]
    assert not any(call[0] == "brand" for call in gw.calls)


def test_empty_query_returns_nothing():
    gw = FakeGateway(default_hits=[make_candidate("p1")])
    assert ProductSearch(gw).search_products("   ", top_k=3) == []
    assert gw.calls == []


def test_find_by_article_exact_lookup():
    item = make_candidate("p7", score=0.2, article="SOL-01701")
    gw = FakeGateway(articles=[item])
    found = ProductSearch(gw).find_by_article("sol-01701")
    assert found.id == "p7" and found.score == 1.0
    assert gw.calls[0] == ("article", ("SOL-01701", "SOL01701", "SOL 01701"))


def test_find_by_article_compact_code_tries_hyphenated_form():
    item = make_candidate("p7", score=0.2, article="SOL-01701")
    gw = FakeGateway(articles=[item])
    found = ProductSearch(gw).find_by_article("sol01701")
    assert found.id == "p7"
    assert gw.calls == [("article", ("SOL01701", "SOL-01701"))]


def test_article_variants():
    assert article_variants("now 01234") == ["NOW 01234", "NOW01234", "NOW-01234"]
    assert article_variants("X1-Y2") == ["X1-Y2", "X1Y2", "X1 Y2"]


def test_find_by_article_semantic_fallback():
    gw = FakeGateway(default_hits=[
        make_candidate("near", score=0.8, article="SOL-01702"),
        make_candidate("hit", score=0.5, article="sol01701"),
    ])
    found = ProductSearch(gw).find_by_article("SOL-01701")
    assert found.id == "hit" and found.score == 1.0
    assert ("text", "SOL-01701", 100) in gw.calls


def test_find_by_article_miss():
    gw = FakeGateway(default_hits=[make_candidate("x", article="ABC-99999")])
    assert ProductSearch(gw).find_by_article("SOL-01701") is None


def test_find_similar_uses_stored_vector_and_price_window():
    ref = make_candidate("ref", price=200.0, category="Омега", brand="Solgar")
    gw = FakeGateway(
        vectors={"ref": [0.1, 0.2]},
        vector_hits=[
            make_candidate("same_price", price=210.0, category="Омега"),
            make_candidate("too_pricey", price=400.0, category="Омега"),
            make_candidate("other_cat", price=200.0, category="Цинк"),
            make_candidate("house", price=180.0, category="Омега", brand="Biotus"),
        ],
    )
    out = ProductSearch(gw).find_similar(ref, limit=5)
    assert _ids(out) == ["house", "same_price"]
    assert ("vector", "ref", 25) in gw.calls


def test_find_similar_falls_back_to_text_when_vector_missing():
    ref = make_candidate("ref", title="Omega 3", price=200.0, category="Омега")
    gw = FakeGateway(text_hits={"Омега Omega 3": [make_candidate("alt", price=190.0, category="Омега")]})
    out = ProductSearch(gw).find_similar(ref)
    assert _ids(out) == ["alt"]


def test_popular_products_use_broad_query():
    gw = FakeGateway(text_hits={POPULAR_QUERY: [make_candidate(f"pop{i}") for i in range(12)]})
    out = ProductSearch(gw).popular_products(10)
    assert len(out) == 10
    assert gw.calls[0] == ("text", POPULAR_QUERY, 10)
