# =============================================
# File: shopassist/utils/prompting.py
# Purpose: Prompts for intent classification & answer generation, fixed user-facing texts
# =============================================
from __future__ import annotations
from typing import Dict, List, Sequence

from .catalog import Candidate
# Import sanitizers to neutralize prompt-injection in product descriptions and URLs
from .sanitize import sanitize_context_snippet, collapse_ws, safe_url

WELCOME_MESSAGE = (
    "Вітаю! Я консультант магазину вітамінів та БАДів. "
    "Розкажіть, що вас цікавить: для чого потрібна добавка, бажаний бренд чи артикул товару, "
    "і я підберу відповідні варіанти."
)
OFF_DOMAIN_MESSAGE = (
    "Вибачте, я спеціалізуюсь на консультаціях щодо вітамінів, мінералів та біологічно "
    "активних добавок. Чим можу допомогти у цій сфері?"
)
NO_PRODUCTS_FOUND_MESSAGE = (
    "На жаль, я не знайшов товарів за вашим запитом. "
    "Спробуйте переформулювати запит або уточнити, для чого потрібна добавка."
)
GENERIC_ERROR_MESSAGE = "Вибачте, сталася помилка під час обробки запиту. Спробуйте, будь ласка, пізніше."

GREETING_REASON = "Вітальне повідомлення"
OFF_DOMAIN_REASON = "Запит не стосується здоров'я та БАДів"

SYSTEM_PROMPT = (
    "Ти консультант інтернет-магазину вітамінів та БАДів. Відповідай ЛИШЕ українською мовою "
    "і рекомендуй ЛИШЕ товари з наданого списку. Не вигадуй товари, ціни чи посилання. "
    "Не став діагнозів; за потреби порадь звернутися до лікаря. "
    "Відповідь ОБОВ'ЯЗКОВО має бути валідним JSON: "
    "{\"message\": string, \"products\": [{\"id\": string, \"title\": string, \"brand\": string, "
    "\"price\": string, \"article\": string, \"image\": string, \"link\": string, \"reason\": string}]}. "
    "У \"products\" не більше 3 товарів; \"reason\" коротко пояснює, чому товар підходить."
)

INTENT_TEMPLATE = (
    "Ти аналізуєш запити клієнтів магазину вітамінів та БАДів.\n\n"
    "ІСТОРІЯ РОЗМОВИ:\n{history}\n\n"
    "НОВИЙ ЗАПИТ КОРИСТУВАЧА: \"{message}\"\n\n"
    "Завдання:\n"
    "1. Визнач, чи стосується запит вітамінів, добавок або здоров'я (isRelevant).\n"
    "2. Визнач тип запиту (searchType):\n"
    "   - article_search: пошук товару за артикулом (формат XXX-12345)\n"
    "   - find_similar: пошук аналогів/альтернатив до товару\n"
    "   - recommendation: звичайна рекомендація товарів\n"
    "3. Сформуй пошуковий запит (searchQuery) з урахуванням історії: уточнення на кшталт "
    "\"а є від Now Foods?\" поєднуй з попереднім запитом (\"вітамін д3 Now Foods\"), "
    "\"ще варіанти\" повторює попередній запит.\n"
    "4. needsMultipleComponents = true, якщо запит стосується мети чи стану (для імунітету, при втомі тощо).\n\n"
    "Поверни ЛИШЕ JSON:\n"
    "{{\"isRelevant\": true, \"searchType\": \"recommendation\", \"searchQuery\": \"...\", "
    "\"needsMultipleComponents\": false, \"context\": \"коротко, що ти зрозумів\"}}"
)

USER_TEMPLATE = (
    "ІСТОРІЯ РОЗМОВИ:\n{history}\n\n"
    "ЗАПИТ КЛІЄНТА: \"{message}\"\n\n"
    "ЗНАЙДЕНІ ТОВАРИ ({count}):\n{products}\n\n"
    "{task}\n"
    "Обери до 3 найкращих товарів зі списку і поверни ЛИШЕ JSON без markdown."
)

_TASK_HINTS = {
    "article_search": "Клієнт шукає конкретний товар за артикулом: опиши саме цей товар.",
    "find_similar": "Клієнт шукає аналоги попереднього товару: поясни, чим кожен варіант схожий.",
    "recommendation": "Підбери товари під потребу клієнта, власні бренди магазину згадуй першими.",
}

_TEMPERATURES = {
    "article_search": 0.3,
    "find_similar": 0.5,
    "recommendation": 0.7,
}

HISTORY_TURNS = 6
HISTORY_CHARS = 200


def temperature_for_task(kind: str) -> float:
    return _TEMPERATURES.get(kind, _TEMPERATURES["recommendation"])


def _format_history(history: Sequence, max_turns: int = HISTORY_TURNS, max_chars: int = HISTORY_CHARS) -> str:
    lines: List[str] = []
    for turn in list(history)[-max_turns:]:
        who = "Користувач" if turn.role == "user" else "Асистент"
        lines.append(f"{who}: {turn.text[:max_chars]}")
    return "\n".join(lines) if lines else "Немає історії"


def build_intent_messages(message: str, history: Sequence) -> List[Dict]:
    prompt = INTENT_TEMPLATE.format(history=_format_history(history), message=message)
    return [{"role": "user", "content": prompt}]


def _pack_products(candidates: Sequence[Candidate], max_chars_per_item: int = 300) -> str:
    """
    Numbered product cards. Descriptions come from merchant feeds, so they
    are sanitized like any other untrusted context.
    """
    lines: List[str] = []
    for idx, c in enumerate(candidates, start=1):
        p = c.product
        header = f"{idx}. ID: {c.id} | {collapse_ws(p.title) or 'Без назви'}"
        if p.brand:
            header += f" | Бренд: {collapse_ws(p.brand)}"
        lines.append(header)
        if p.price_formatted:
            lines.append(f"   Ціна: {p.price_formatted}")
        if p.article:
            lines.append(f"   Артикул: {p.article}")
        if p.category_main:
            lines.append(f"   Категорія: {collapse_ws(p.category_main)}")
        image = safe_url(p.image_url)
        if image:
            lines.append(f"   Зображення: {image}")
        link = safe_url(p.url)
        if link:
            lines.append(f"   Посилання: {link}")
        desc = sanitize_context_snippet(p.description, max_chars=max_chars_per_item)
        if desc:
            lines.append(f"   Опис: {desc}")
    return "\n".join(lines)


def build_generation_messages(
    user_message: str,
    candidates: Sequence[Candidate],
    history: Sequence,
    kind: str,
) -> List[Dict]:
    """
    Returns messages for the Chat Completions API.
    The model must answer with {"message": str, "products": [...]}.
    """
    user = USER_TEMPLATE.format(
        history=_format_history(history),
        message=user_message.strip(),
        count=len(candidates),
        products=_pack_products(candidates) or "(немає)",
        task=_TASK_HINTS.get(kind, _TASK_HINTS["recommendation"]),
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
