# =============================================
# File: shopassist/services/chatbot.py
# Purpose: One conversation turn: intent -> product search -> fallback ladder -> LLM answer -> history
# =============================================
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shopassist.services.generation import CompletionClient
from shopassist.services.intent import ARTICLE_SEARCH, FIND_SIMILAR, RECOMMENDATION, Intent, IntentResolver
from shopassist.services.retrieval import CatalogGateway
from shopassist.services.search import ProductSearch
from shopassist.services.sessions import SessionStore
from shopassist.utils.catalog import Candidate, normalize_article
from shopassist.utils.errors import ChatInputError
from shopassist.utils.json_extract import JsonObject, extract_json_object
from shopassist.utils.metrics import record_turn, timer
from shopassist.utils.prompting import (
    GREETING_REASON,
    NO_PRODUCTS_FOUND_MESSAGE,
    OFF_DOMAIN_MESSAGE,
    OFF_DOMAIN_REASON,
    WELCOME_MESSAGE,
    build_generation_messages,
    temperature_for_task,
)
from shopassist.utils.ranking import balance_results, dedupe_by_id, filter_unseen, keep_first_house_brand
from shopassist.utils.sanitize import is_valid_session_id, safe_url, sanitize_input

MAX_CARDS = 3
POPULAR_POOL = 10
PRODUCTS_INTRO = "Ось що я знайшов для вас:"


@dataclass(frozen=True)
class ChatConfig:
    history_limit: int = 6
    min_products: int = 1
    max_message_chars: int = 500
    max_tokens: int = 1500

    @classmethod
    def from_env(cls) -> "ChatConfig":
        # read at call time so tests (and envs) can tune them
        return cls(
            history_limit=int(os.getenv("MAX_CONVERSATION_HISTORY", "6")),
            min_products=int(os.getenv("MIN_PRODUCTS_PER_RESPONSE", "1")),
            max_message_chars=int(os.getenv("MAX_MESSAGE_CHARS", "500")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1500")),
        )


# ---------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------

class ProductCard(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    title: str = ""
    brand: str = ""
    price: str = ""
    article: str = ""
    image: str = ""
    link: str = ""
    reason: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()


class RelevanceCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_relevant: bool = Field(True, alias="isRelevant")
    reason: str = ""


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    session_id: str = Field(..., alias="sessionId")
    products_found: int = Field(0, alias="productsFound")
    relevance_check: RelevanceCheck = Field(default_factory=RelevanceCheck, alias="relevanceCheck")
    products: Optional[List[ProductCard]] = None


# ---------------------------------------------------------------------
# Generation output handling
# ---------------------------------------------------------------------

def _complete_card(item: Dict[str, Any], by_id: Dict[str, Candidate], by_article: Dict[str, Candidate]) -> Tuple[ProductCard, Optional[Candidate]]:
    card = ProductCard.model_validate({k: item.get(k) for k in ProductCard.model_fields})
    match = by_id.get(card.id) or (by_article.get(normalize_article(card.article)) if card.article else None)
    if match is not None:
        p = match.product
        card = card.model_copy(update={
            "id": match.id,
            "title": card.title or p.title,
            "brand": card.brand or p.brand,
            "price": card.price or p.price_formatted,
            "article": card.article or p.article,
            "image": card.image or p.image_url,
            "link": card.link or p.url,
        })
    return card.model_copy(update={"image": safe_url(card.image), "link": safe_url(card.link)}), match


def parse_generation_output(raw: str, candidates: Sequence[Candidate]) -> Tuple[str, Optional[List[ProductCard]], List[str]]:
    """
    -> (message, cards or None, ids of candidates the cards refer to).
    Anything without a usable JSON object degrades to the raw text.
    """
    text = (raw or "").strip()
    parsed = extract_json_object(text)
    if not isinstance(parsed, JsonObject):
        logger.warning(f"[chat] generation output is not JSON ({parsed}), returning raw text")
        return text, None, []

    data = parsed.value
    message = str(data.get("message") or "").strip()
    items = data.get("products")

    cards: List[ProductCard] = []
    matched: List[str] = []
    if isinstance(items, list):
        by_id = {c.id: c for c in candidates}
        by_article = {normalize_article(c.product.article): c for c in candidates if c.product.article}
        for item in items[:MAX_CARDS]:
            if not isinstance(item, dict):
                continue
            card, match = _complete_card(item, by_id, by_article)
            cards.append(card)
            if match is not None:
                matched.append(match.id)

    if not message:
        if not cards:
            logger.warning("[chat] generation JSON has neither message nor products")
            return text, None, []
        message = PRODUCTS_INTRO
    return message, (cards or None), matched


def history_text(message: str, cards: Optional[Sequence[ProductCard]]) -> str:
    """Assistant turn as remembered: the reply plus one '📦 Title - Brand' line per card."""
    lines = [message]
    for card in cards or ():
        if not card.title:
            continue
        lines.append(f"📦 {card.title} - {card.brand}" if card.brand else f"📦 {card.title}")
    return "\n".join(lines)


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------

class ChatService:
    def __init__(
        self,
        store: SessionStore,
        search: ProductSearch,
        llm: CompletionClient,
        resolver: Optional[IntentResolver] = None,
        config: Optional[ChatConfig] = None,
    ) -> None:
        self.store = store
        self.search = search
        self.llm = llm
        self.resolver = resolver or IntentResolver.default(llm)
        self.config = config or ChatConfig.from_env()

    def process_chat_message(
        self,
        message: str,
        session_id: Optional[str] = None,
        trace: Optional[Dict[str, Any]] = None,
    ) -> ChatResponse:
        """
        Run one turn. Input problems raise ChatInputError; retrieval and
        generation failures propagate as ProviderError subclasses.
        `trace`, when given, is filled with intent/outcome for request logs.
        """
        text = sanitize_input(message, self.config.max_message_chars)
        if not text:
            raise ChatInputError("message must not be empty")

        if not session_id:
            session_id = self.store.create()
        elif not is_valid_session_id(session_id):
            raise ChatInputError("invalid sessionId")

        trace = trace if trace is not None else {}
        trace.update({"session_id": session_id, "intent": "unknown", "outcome": "error"})

        with timer() as elapsed:
            try:
                with self.store.turn_lock(session_id):
                    response = self._run_turn(text, session_id, trace)
            finally:
                record_turn(elapsed(), trace["intent"], trace["outcome"])
        trace["products_found"] = response.products_found
        return response

    def delete_session(self, session_id: str) -> bool:
        deleted = self.store.delete(session_id)
        if deleted:
            logger.info(f"[chat] session {session_id} deleted")
        return deleted

    def get_session_stats(self) -> Dict[str, Any]:
        return self.store.stats()

    # ------------------------------------------------------------- internals

    def _run_turn(self, text: str, session_id: str, trace: Dict[str, Any]) -> ChatResponse:
        history = self.store.get_history(session_id)
        intent = self.resolver.resolve(text, history)

        if intent.is_greeting:
            trace.update(intent="greeting", outcome="greeting")
            return self._fixed_reply(session_id, text, WELCOME_MESSAGE, RelevanceCheck(is_relevant=True, reason=GREETING_REASON))
        if not intent.is_relevant:
            trace.update(intent="off_domain", outcome="off_domain")
            return self._fixed_reply(session_id, text, OFF_DOMAIN_MESSAGE, RelevanceCheck(is_relevant=False, reason=OFF_DOMAIN_REASON))

        trace["intent"] = intent.kind
        relevance = RelevanceCheck(is_relevant=True, reason=intent.rationale)

        candidates = self._dispatch(intent)
        shown = self.store.shown_ids(session_id)
        if intent.kind != ARTICLE_SEARCH:
            candidates = filter_unseen(candidates, shown)

        if len(candidates) < self.config.min_products and intent.kind == RECOMMENDATION:
            logger.info(f"[chat] only {len(candidates)} new product(s), adding popular pool")
            popular = filter_unseen(self.search.popular_products(POPULAR_POOL), shown)
            merged = dedupe_by_id(list(candidates) + popular)
            candidates = keep_first_house_brand(merged)[:POPULAR_POOL]

        if not candidates:
            trace["outcome"] = "no_products"
            return self._fixed_reply(session_id, text, NO_PRODUCTS_FOUND_MESSAGE, relevance)

        messages = build_generation_messages(text, candidates, history, intent.kind)
        raw = self.llm.complete(
            messages,
            temperature=temperature_for_task(intent.kind),
            max_tokens=self.config.max_tokens,
        )
        reply, cards, _ = parse_generation_output(raw, candidates)

        # every candidate offered to the model counts as shown
        self.store.mark_shown(session_id, [c.id for c in candidates])
        self.store.append(session_id, "user", text)
        self.store.append(session_id, "assistant", history_text(reply, cards))

        trace["outcome"] = "answered"
        logger.info(
            f"[chat] session={session_id} intent={intent.kind} candidates={len(candidates)} "
            f"cards={len(cards or [])}"
        )
        return ChatResponse(
            response=reply,
            session_id=session_id,
            products_found=len(candidates),
            relevance_check=relevance,
            products=cards,
        )

    def _dispatch(self, intent: Intent) -> List[Candidate]:
        if intent.kind == ARTICLE_SEARCH:
            found = self.search.find_by_article(intent.query)
            return [found] if found is not None else []

        if intent.kind == FIND_SIMILAR:
            if not intent.query.strip():
                return []
            reference = self.search.search_products(intent.query, top_k=1)
            if not reference:
                return []
            return self.search.find_similar(reference[0], limit=5)

        limit = 9 if intent.needs_multiple_components else 6
        found = self.search.search_products(intent.query, top_k=limit)
        if len(found) > 3:
            found = balance_results(found, limit)
        return found

    def _fixed_reply(self, session_id: str, text: str, reply: str, relevance: RelevanceCheck) -> ChatResponse:
        self.store.append(session_id, "user", text)
        self.store.append(session_id, "assistant", reply)
        return ChatResponse(response=reply, session_id=session_id, products_found=0, relevance_check=relevance)


def build_chat_service(store: SessionStore) -> ChatService:
    return ChatService(store=store, search=ProductSearch(CatalogGateway()), llm=CompletionClient())
