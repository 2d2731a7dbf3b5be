# =============================================
# File: tests/test_ranking.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from shopassist.utils.catalog import Candidate
from shopassist.utils.ranking import (
    apply_brand_quota,
    balance_results,
    brand_tier,
    dedupe_by_id,
    filter_available,
    filter_by_score,
    filter_price_window,
    filter_unseen,
    is_house_brand,
    keep_first_house_brand,
    sort_by_relevance,
)
from tests.fakes import make_candidate


def _ids(cands):
    return [c.id for c in cands]


def test_brand_tiers():
    assert brand_tier("Biotus") == 1
    assert brand_tier("my nutri week") == 1
    assert brand_tier("NOW FOODS") == 2
    assert brand_tier("Solgar Inc.") == 2
    assert brand_tier("Noname") == 3
    assert brand_tier("") == 3
    assert brand_tier(None) == 3


def test_filter_by_score_uses_floor():
    cands = [make_candidate("a", score=0.8), make_candidate("b", score=0.35), make_candidate("c", score=0.1)]
    # a strict threshold never drops what the 0.3 floor keeps
    assert _ids(filter_by_score(cands, 0.7)) == ["a", "b"]
    assert _ids(filter_by_score(cands, 0.5)) == ["a", "b"]
    assert _ids(filter_by_score(cands, 0.05)) == ["a", "b", "c"]


def test_filters_are_idempotent():
    cands = [
        make_candidate("a", score=0.9),
        make_candidate("b", score=0.2),
        make_candidate("c", score=0.8, available=False),
        make_candidate("d", score=0.6, brand="Biotus"),
    ]
    once = filter_available(filter_by_score(cands, 0.7))
    twice = filter_available(filter_by_score(once, 0.7))
    assert _ids(once) == _ids(twice) == ["a", "d"]
    assert _ids(filter_unseen(filter_unseen(cands, {"a"}), {"a"})) == ["b", "c", "d"]


def test_sort_by_tier_then_score():
    cands = [
        make_candidate("other", score=0.99, brand="Noname"),
        make_candidate("pop", score=0.5, brand="Now Foods"),
        make_candidate("house", score=0.4, brand="Biotus"),
        make_candidate("pop2", score=0.7, brand="Solgar"),
    ]
    assert _ids(sort_by_relevance(cands)) == ["house", "pop2", "pop", "other"]


def test_quota_splices_house_supplement_when_missing():
    ranked = [make_candidate(f"p{i}", brand="Solgar") for i in range(5)]
    house = [make_candidate("h", brand="Biotus")]
    out = apply_brand_quota(ranked, 4, house)
    assert _ids(out) == ["h", "p0", "p1", "p2"]


def test_quota_without_supplement_just_cuts():
    ranked = [make_candidate(f"p{i}") for i in range(5)]
    assert _ids(apply_brand_quota(ranked, 3, [])) == ["p0", "p1", "p2"]


def test_quota_keeps_only_first_house_item():
    ranked = [
        make_candidate("h1", brand="Biotus"),
        make_candidate("h2", brand="My Nutri Week"),
        make_candidate("p1", brand="Now Foods"),
        make_candidate("p2"),
    ]
    out = apply_brand_quota(ranked, 6)
    assert _ids(out) == ["h1", "p1", "p2"]
    assert sum(1 for c in out if is_house_brand(c)) == 1


def test_quota_single_house_item_untouched():
    ranked = [make_candidate("h1", brand="Biotus"), make_candidate("p1"), make_candidate("p2")]
    assert _ids(apply_brand_quota(ranked, 2)) == ["h1", "p1"]


def test_balance_results_composition():
    cands = [
        make_candidate("h1", brand="Biotus"),
        make_candidate("h2", brand="Biotus"),
        make_candidate("p1", brand="Now Foods"),
        make_candidate("o1"),
        make_candidate("o2"),
    ]
    assert _ids(balance_results(cands, 3)) == ["h1", "p1", "o1"]
    assert _ids(balance_results(cands, 5)) == ["h1", "p1", "o1", "o2"]
    assert balance_results(cands, 0) == []


def test_price_window():
    ref = make_candidate("ref", price=100.0, category="Омега")
    pool = [
        ref,
        make_candidate("cheap", price=60.0, category="Омега"),
        make_candidate("low_edge", price=71.0, category="Омега"),
        make_candidate("high_edge", price=129.0, category="Омега"),
        make_candidate("other_cat", price=100.0, category="Магній"),
        make_candidate("oos", price=100.0, category="Омега", available=False),
        make_candidate("no_price", price=None, category="Омега"),
    ]
    assert _ids(filter_price_window(pool, ref)) == ["low_edge", "high_edge"]


def test_price_window_needs_reference_price_and_category():
    pool = [make_candidate("x", price=100.0)]
    assert filter_price_window(pool, make_candidate("r", price=None)) == []
    assert filter_price_window(pool, make_candidate("r", price=100.0, category="")) == []


def test_dedupe_keeps_first_occurrence():
    a1 = make_candidate("a", score=0.9)
    a2 = make_candidate("a", score=0.1)
    b = make_candidate("b")
    out = dedupe_by_id([a1, b, a2])
    assert _ids(out) == ["a", "b"]
    assert out[0].score == 0.9


def test_keep_first_house_brand_drops_later_house_items():
    cands = [
        make_candidate("x", brand="Acme"),
        make_candidate("bio", brand="Biotus"),
        make_candidate("y", brand="Solgar"),
        make_candidate("mnw", brand="My Nutri Week"),
        make_candidate("bio2", brand="Biotus"),
    ]
    out = keep_first_house_brand(cands)
    assert _ids(out) == ["x", "bio", "y"]
    assert sum(is_house_brand(c) for c in out) == 1
    assert _ids(keep_first_house_brand(cands[:1])) == ["x"]


def test_ranking_is_total_over_malformed_metadata():
    junk = [Candidate(id="x", score=0.9, metadata={"brand": None, "price": "n/a"}), Candidate(id="y", score=0.9)]
    assert _ids(sort_by_relevance(junk)) == ["x", "y"]
    assert filter_available(junk) == []
    assert balance_results(junk, 3) == junk
