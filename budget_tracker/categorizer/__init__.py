"""
Budget Tracker — Expense Categorizer

Maps a free-text expense description to one of six fixed categories.
Claude is asked first when ANTHROPIC_API_KEY is set; its answer is only
accepted when it is exactly one of CATEGORIES. Every failure path falls
back to the deterministic keyword table, which needs no network.
"""
import logging

import anthropic

from budget_tracker.config import (
    USE_REAL_API, CATEGORIZER_MODEL, CATEGORIES, CATEGORY_KEYWORDS, DEFAULT_CATEGORY,
)

logger = logging.getLogger(__name__)

CATEGORIZE_PROMPT = """Catégorise cette dépense en UNE SEULE catégorie parmi: {categories}.

Description de la dépense: "{description}"

Réponds UNIQUEMENT par le nom de la catégorie, rien d'autre."""


def categorize_with_keywords(description: str) -> str:
    """First category (in CATEGORY_KEYWORDS order) with a keyword in the text."""
    if not description:
        return DEFAULT_CATEGORY
    desc = description.lower()
    for category, words in CATEGORY_KEYWORDS.items():
        if any(word in desc for word in words):
            return category
    return DEFAULT_CATEGORY


async def _ask_claude(client, description: str) -> str:
    msg = await client.messages.create(
        model=CATEGORIZER_MODEL, max_tokens=20,
        messages=[{"role": "user", "content": CATEGORIZE_PROMPT.format(
            categories=", ".join(CATEGORIES), description=description)}])
    return msg.content[0].text.strip()


async def categorize_expense(description: str, client=None) -> str:
    """Categorize with Claude when configured, keywords otherwise."""
    if not description or not description.strip():
        return DEFAULT_CATEGORY
    if not USE_REAL_API and client is None:
        return categorize_with_keywords(description)

    try:
        client = client or anthropic.AsyncAnthropic()
        category = await _ask_claude(client, description)
    except Exception as e:
        logger.warning("Claude categorization error: %s: %s", type(e).__name__, e)
        return categorize_with_keywords(description)

    if category in CATEGORIES:
        return category
    logger.info("Claude returned unknown category %r, using keywords", category)
    return categorize_with_keywords(description)
