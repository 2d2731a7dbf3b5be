# =============================================
# File: shopassist/services/intent.py
# Purpose: Intent resolution as a chain of strategies (greeting, article code, model-assisted, rules)
# =============================================
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from loguru import logger

from shopassist.services.sessions import Turn
from shopassist.utils.errors import ProviderError
from shopassist.utils.json_extract import JsonObject, extract_json_object
from shopassist.utils.prompting import GREETING_REASON, OFF_DOMAIN_REASON, build_intent_messages

ARTICLE_SEARCH = "article_search"
FIND_SIMILAR = "find_similar"
RECOMMENDATION = "recommendation"
INTENT_KINDS = (ARTICLE_SEARCH, FIND_SIMILAR, RECOMMENDATION)


@dataclass(frozen=True)
class Intent:
    kind: str
    query: str
    rationale: str = ""
    needs_multiple_components: bool = False
    is_relevant: bool = True
    is_greeting: bool = False


class IntentStrategy(Protocol):
    def resolve(self, message: str, history: Sequence[Turn]) -> Optional[Intent]:
        ...


@runtime_checkable
class CompletionModel(Protocol):
    def complete(self, messages: List[dict], temperature: float = ..., max_tokens: int = ...) -> str:
        ...


def _last_turn(history: Sequence[Turn], role: str) -> Optional[Turn]:
    for turn in reversed(list(history)):
        if turn.role == role:
            return turn
    return None


# ---------------------------------------------------------------------
# Greeting
# ---------------------------------------------------------------------

GREETINGS = (
    "привіт",
    "вітаю",
    "здрастуйте",
    "добрий день",
    "доброго дня",
    "добридень",
    "hi",
    "hello",
    "hey",
    "привет",
)
_GREETING_RE = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(g) for g in GREETINGS) + r")(?!\w)",
    re.IGNORECASE,
)
GREETING_MAX_CHARS = 50


class GreetingRule:
    """Short greeting as the very first message of a conversation."""

    def resolve(self, message: str, history: Sequence[Turn]) -> Optional[Intent]:
        if history:
            return None
        text = message.strip()
        if len(text) >= GREETING_MAX_CHARS or not _GREETING_RE.search(text):
            return None
        return Intent(kind=RECOMMENDATION, query="", rationale=GREETING_REASON, is_greeting=True)


# ---------------------------------------------------------------------
# Article code
# ---------------------------------------------------------------------

ARTICLE_RE = re.compile(r"(?<![A-Za-z])([A-Za-z]{2,4})([-\s]?)(\d{4,6})(?!\d)")


def find_article_code(message: str) -> Optional[str]:
    """'sol 01701' -> 'SOL-01701'; 'SOL-01701' and 'SOL01701' keep their shape, upper-cased."""
    m = ARTICLE_RE.search(message or "")
    if not m:
        return None
    letters, sep, digits = m.groups()
    if sep and sep.isspace():
        sep = "-"
    return f"{letters}{sep}{digits}".upper()


class ArticleRule:
    def resolve(self, message: str, history: Sequence[Turn]) -> Optional[Intent]:
        code = find_article_code(message)
        if not code:
            return None
        return Intent(kind=ARTICLE_SEARCH, query=code, rationale="Пошук за артикулом")


# ---------------------------------------------------------------------
# Model-assisted classification
# ---------------------------------------------------------------------

def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "yes", "1"):
            return True
        if v in ("false", "no", "0"):
            return False
    return default


class ModelAssistedClassifier:
    """
    Asks the completion model for relevance, intent kind and a context-resolved
    search query. Any failure declines so the next strategy can answer.
    """

    history_turns = 6
    temperature = 0.3
    max_tokens = 500

    def __init__(self, llm: CompletionModel) -> None:
        self.llm = llm

    def resolve(self, message: str, history: Sequence[Turn]) -> Optional[Intent]:
        messages = build_intent_messages(message, list(history)[-self.history_turns:])
        try:
            text = self.llm.complete(messages, temperature=self.temperature, max_tokens=self.max_tokens)
        except ProviderError as e:
            logger.warning(f"[intent] classifier unavailable, using rules: {e}")
            return None

        parsed = extract_json_object(text)
        if not isinstance(parsed, JsonObject):
            logger.warning(f"[intent] classifier output not usable ({parsed}), using rules")
            return None
        return self._to_intent(parsed.value, message)

    @staticmethod
    def _to_intent(data: dict, message: str) -> Intent:
        context = str(data.get("context") or "")
        if not _as_bool(data.get("isRelevant"), True):
            return Intent(kind=RECOMMENDATION, query="", rationale=context or OFF_DOMAIN_REASON, is_relevant=False)

        kind = data.get("searchType")
        if kind not in INTENT_KINDS:
            kind = RECOMMENDATION
        query = str(data.get("searchQuery") or "").strip() or message
        return Intent(
            kind=kind,
            query=query,
            rationale=context,
            needs_multiple_components=_as_bool(data.get("needsMultipleComponents"), False),
        )


# ---------------------------------------------------------------------
# Rule fallback
# ---------------------------------------------------------------------

SIMILAR_KEYWORDS = (
    "аналог", "похож", "схож", "замена", "заменить", "заміна", "замінити",
    "вместо", "замість", "альтернатив", "similar", "alternative",
)
BRAND_KEYWORDS = ("бренд", "фірм", "виробник", "компані", "марк", "brand")
QUESTION_WORDS = ("а є", "а що є", "є що", "можна", "покажи", "хочу", "дай", "а от", "а якщо", "що там", "може")
CONTINUATION_RE = re.compile(r"(?<!\w)(?:(?:ще|more|others?)(?!\w)|інш|другі|додатков|більше)", re.IGNORECASE)
MULTI_COMPONENT_MARKERS = ("для ", "при ", "від ", "проти ", "for ", "against ")

# Spelling as seen in messages -> catalog brand name
BRAND_ALIASES = {
    "now foods": "Now Foods",
    "нау фудс": "Now Foods",
    "solgar": "Solgar",
    "солгар": "Solgar",
    "biotus": "Biotus",
    "біотус": "Biotus",
    "jarrow": "Jarrow Formulas",
    "джарроу": "Jarrow Formulas",
    "myprotein": "Myprotein",
    "май протеїн": "Myprotein",
    "my nutri week": "My Nutri Week",
    "май нутрі": "My Nutri Week",
    "21st century": "21st Century",
    "california gold": "California Gold Nutrition",
    "каліфорнія": "California Gold Nutrition",
}
_BRAND_RE = re.compile("|".join(re.escape(k) for k in sorted(BRAND_ALIASES, key=len, reverse=True)), re.IGNORECASE)

_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.+)$")


def find_brand(message: str) -> str:
    m = _BRAND_RE.search(message or "")
    if not m:
        return ""
    return BRAND_ALIASES.get(m.group(0).lower(), m.group(0))


def _name_before_dash(text: str) -> str:
    if " - " in text:
        return text.rsplit(" - ", 1)[0].strip()
    return text.split("-")[0].strip()


def extract_product_from_history(assistant_text: str) -> str:
    """Product name from a previous assistant turn ('📦 Name - Brand', '1. Name - ...', first dashed line)."""
    lines = (assistant_text or "").splitlines()
    for line in lines:
        s = line.strip()
        if s.startswith("📦"):
            return _name_before_dash(s.lstrip("📦").strip())
    for line in lines:
        m = _NUMBERED_RE.match(line)
        if m and "-" in m.group(1):
            return _name_before_dash(m.group(1))
    for line in lines:
        if "-" in line and "💰" not in line and "✅" not in line:
            return _name_before_dash(line)
    return ""


class RuleFallback:
    """Keyword heuristics; always resolves."""

    def resolve(self, message: str, history: Sequence[Turn]) -> Intent:
        text = message.lower()

        if any(k in text for k in SIMILAR_KEYWORDS):
            assistant = _last_turn(history, "assistant")
            if assistant is not None:
                return Intent(
                    kind=FIND_SIMILAR,
                    query=extract_product_from_history(assistant.text),
                    rationale="Пошук аналогів до попереднього товару",
                )

        previous = _last_turn(history, "user")

        brand = find_brand(message)
        has_brand = bool(brand) or any(k in text for k in BRAND_KEYWORDS)
        is_question = "?" in text or any(w in text for w in QUESTION_WORDS)
        if (has_brand or is_question) and previous is not None and len(previous.text) > 5:
            query = f"{previous.text} {brand}" if brand else previous.text
            return Intent(
                kind=RECOMMENDATION,
                query=query,
                rationale=f"Уточнення до попереднього запиту: \"{previous.text}\"",
            )

        if CONTINUATION_RE.search(text) and previous is not None:
            return Intent(kind=RECOMMENDATION, query=previous.text, rationale="Продовження попереднього запиту")

        return Intent(
            kind=RECOMMENDATION,
            query=message,
            rationale="Звичайний запит",
            needs_multiple_components=any(k in text for k in MULTI_COMPONENT_MARKERS),
        )


# ---------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------

class IntentResolver:
    def __init__(self, strategies: Sequence[IntentStrategy]) -> None:
        self.strategies: List[IntentStrategy] = list(strategies)

    @classmethod
    def default(cls, llm: CompletionModel) -> "IntentResolver":
        return cls([GreetingRule(), ArticleRule(), ModelAssistedClassifier(llm), RuleFallback()])

    def resolve(self, message: str, history: Sequence[Turn]) -> Intent:
        for strategy in self.strategies:
            intent = strategy.resolve(message, history)
            if intent is not None:
                logger.info(
                    f"[intent] {type(strategy).__name__} -> {intent.kind} "
                    f"relevant={intent.is_relevant} query='{intent.query[:60]}'"
                )
                return intent
        return Intent(kind=RECOMMENDATION, query=message)
