# =============================================
# File: shopassist/utils/catalog.py
# Purpose: Candidate type + normalized accessor over the two catalog metadata schemas
# =============================================
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, Mapping, Optional

CURRENCY_SUFFIX = "грн"


def format_price(price: Optional[float]) -> str:
    """Render a UAH price the way the storefront does: '1 234,5 грн'."""
    if price is None:
        return ""
    text = f"{price:,.2f}".rstrip("0").rstrip(".")
    text = text.replace(",", " ").replace(".", ",")
    return f"{text} {CURRENCY_SUFFIX}"


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).replace(" ", "").replace(",", "."))
    except ValueError:
        return None


def _to_int(value: Any) -> int:
    f = _to_float(value)
    return int(f) if f is not None else 0


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " > ".join(str(v).strip() for v in value if str(v).strip())
    return str(value).strip()


def is_legacy_schema(meta: Mapping[str, Any]) -> bool:
    """
    Legacy records carry name/sku and boolean status/quantity flags; current
    records carry title/gtin and a string 'availability'.
    """
    if "availability" in meta or "title" in meta or "gtin" in meta:
        return False
    return any(k in meta for k in ("name", "sku", "status", "quantity"))


@dataclass(frozen=True)
class ProductView:
    """Schema-independent view of one catalog record."""
    id: str
    title: str
    brand: str
    price: Optional[float]
    price_formatted: str
    category_main: str
    categories: str
    in_stock: bool
    image_url: str
    url: str
    article: str
    description: str
    schema: str


def _main_category(meta: Mapping[str, Any], categories: str) -> str:
    main = _text(meta.get("category_main"))
    if main:
        return main
    for sep in (">", "/", ",", "|"):
        if sep in categories:
            return categories.split(sep)[0].strip()
    return categories


def normalize_metadata(product_id: str, meta: Optional[Mapping[str, Any]]) -> ProductView:
    meta = meta or {}
    categories = _text(meta.get("categories") or meta.get("category"))
    price = _to_float(meta.get("price"))

    if is_legacy_schema(meta):
        in_stock = (
            meta.get("status") is True
            and _to_int(meta.get("quantity")) > 0
            and meta.get("active") is not False
        )
        return ProductView(
            id=str(meta.get("id") or meta.get("product_id") or product_id),
            title=_text(meta.get("name")),
            brand=_text(meta.get("brand")),
            price=price,
            price_formatted=format_price(price),
            category_main=_main_category(meta, categories),
            categories=categories,
            in_stock=in_stock,
            image_url=_text(meta.get("image") or meta.get("image_url")),
            url=_text(meta.get("url") or meta.get("link")),
            article=_text(meta.get("sku")).upper(),
            description=_text(meta.get("description")),
            schema="legacy",
        )

    return ProductView(
        id=str(meta.get("id") or product_id),
        title=_text(meta.get("title") or meta.get("name")),
        brand=_text(meta.get("brand")),
        price=price,
        price_formatted=_text(meta.get("price_formatted")) or format_price(price),
        category_main=_main_category(meta, categories),
        categories=categories,
        in_stock=_text(meta.get("availability")).lower() == "in_stock",
        image_url=_text(meta.get("image_url") or meta.get("image")),
        url=_text(meta.get("url") or meta.get("link")),
        article=_text(meta.get("gtin") or meta.get("sku")).upper(),
        description=_text(meta.get("description")),
        schema="current",
    )


def normalize_article(code: str) -> str:
    """Comparison key for article codes: upper-case, separators removed."""
    return "".join(ch for ch in (code or "").upper() if ch.isalnum())


@dataclass(frozen=True)
class Candidate:
    """A retrieved product with its similarity score; metadata is read-only."""
    id: str
    score: float
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    @cached_property
    def product(self) -> ProductView:
        return normalize_metadata(self.id, self.metadata)

    def with_score(self, score: float) -> "Candidate":
        return dataclasses.replace(self, score=score, metadata=dict(self.metadata))
