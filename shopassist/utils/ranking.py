# =============================================
# File: shopassist/utils/ranking.py
# Purpose: Pure ranking/filtering over candidate lists (brand tiers, quotas, novelty, price window)
# =============================================
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .catalog import Candidate

# Tier 1: house brands. At most one of them is surfaced per result list.
HOUSE_BRANDS = ("Biotus", "My Nutri Week")

# Tier 2: well-known third-party brands.
POPULAR_BRANDS = (
    "Now Foods",
    "Carlson Labs",
    "Doctor's Best",
    "Solgar",
    "Nature's Way",
    "Life Extension",
    "Thorne Research",
    "Nature's Plus",
    "Source Naturals",
    "Puritan's Pride",
    "Pure Encapsulations",
    "California Gold Nutrition",
    "Jarrow Formulas",
)

SCORE_FLOOR = 0.3
PRICE_WINDOW = 0.3


def _matches_any(brand: str, names: Iterable[str]) -> bool:
    b = (brand or "").strip().lower()
    if not b:
        return False
    return any(n.lower() in b for n in names)


def brand_tier(brand: Optional[str]) -> int:
    """1 = house brand, 2 = known third-party brand, 3 = anything else (incl. missing)."""
    if _matches_any(brand or "", HOUSE_BRANDS):
        return 1
    if _matches_any(brand or "", POPULAR_BRANDS):
        return 2
    return 3


def is_house_brand(c: Candidate) -> bool:
    return brand_tier(c.product.brand) == 1


def has_house_brand(cands: Sequence[Candidate]) -> bool:
    return any(is_house_brand(c) for c in cands)


def filter_available(cands: Sequence[Candidate]) -> List[Candidate]:
    return [c for c in cands if c.product.in_stock]


def filter_by_score(cands: Sequence[Candidate], threshold: float) -> List[Candidate]:
    """Drop weak matches; the floor keeps a too-strict threshold from emptying the list."""
    min_score = min(float(threshold), SCORE_FLOOR)
    return [c for c in cands if c.score is not None and c.score >= min_score]


def sort_by_relevance(cands: Sequence[Candidate]) -> List[Candidate]:
    return sorted(cands, key=lambda c: (brand_tier(c.product.brand), -(c.score or 0.0)))


def apply_brand_quota(
    ranked: Sequence[Candidate],
    top_k: int,
    house_candidates: Sequence[Candidate] = (),
) -> List[Candidate]:
    """
    Enforce "exactly one house-brand item when one can be found".

    - no house brand in `ranked`: put the best supplementary house item first
      and trim the tail so the list still holds `top_k` items;
    - several house-brand items: keep only the first one;
    - otherwise: cut to `top_k`.
    """
    ranked = list(ranked)
    house = [c for c in ranked if is_house_brand(c)]

    if not house:
        if house_candidates:
            return [house_candidates[0]] + ranked[: max(0, top_k - 1)]
        return ranked[:top_k]

    if len(house) > 1:
        others = [c for c in ranked if not is_house_brand(c)]
        return ([house[0]] + others)[:top_k]

    return ranked[:top_k]


def balance_results(cands: Sequence[Candidate], limit: int = 3) -> List[Candidate]:
    """[<=1 house brand] + [known brands as fit] + [fill with the rest], capped at limit."""
    own = [c for c in cands if brand_tier(c.product.brand) == 1]
    popular = [c for c in cands if brand_tier(c.product.brand) == 2]
    other = [c for c in cands if brand_tier(c.product.brand) == 3]

    balanced: List[Candidate] = []
    if own and limit > 0:
        balanced.append(own[0])
    balanced.extend(popular[: max(0, limit - len(balanced))])
    balanced.extend(other[: max(0, limit - len(balanced))])
    return balanced


def filter_price_window(
    cands: Sequence[Candidate],
    reference: Candidate,
    window: float = PRICE_WINDOW,
) -> List[Candidate]:
    """Same main category, in stock, price within +/- window of the reference, not the reference."""
    ref = reference.product
    if ref.price is None or not ref.category_main:
        return []
    lo = ref.price * (1.0 - window)
    hi = ref.price * (1.0 + window)

    out: List[Candidate] = []
    for c in cands:
        p = c.product
        if c.id == reference.id or p.id == ref.id:
            continue
        if p.category_main != ref.category_main:
            continue
        if p.price is None or p.price < lo or p.price > hi:
            continue
        if not p.in_stock:
            continue
        out.append(c)
    return out


def filter_unseen(cands: Sequence[Candidate], shown_ids: Iterable[str]) -> List[Candidate]:
    shown = set(shown_ids or ())
    return [c for c in cands if c.id not in shown]


def dedupe_by_id(cands: Iterable[Candidate]) -> List[Candidate]:
    seen = set()
    out: List[Candidate] = []
    for c in cands:
        if c.id in seen:
            continue
        seen.add(c.id)
        out.append(c)
    return out


def keep_first_house_brand(cands: Sequence[Candidate]) -> List[Candidate]:
    """Drop every house-brand item after the first, preserving order."""
    out: List[Candidate] = []
    seen_house = False
    for c in cands:
        if is_house_brand(c):
            if seen_house:
                continue
            seen_house = True
        out.append(c)
    return out
