"""Prompt construction for assistive transaction classification.

The external classifier receives a single text prompt embedding the
transaction facts and the categories already in use, so it reuses an
existing category rather than inventing a near-duplicate.
"""

from __future__ import annotations

from collections.abc import Iterable

# Keep prompts small and deterministic.
MAX_KNOWN_CATEGORIES: int = 50

RESPONSE_SHAPE = '{"category":"...","reason":"...","confidence":"low|medium|high"}'


def normalize_known_categories(categories: Iterable[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate (first occurrence wins, order kept)."""

    seen: dict[str, None] = {}
    for c in categories:
        name = " ".join(str(c).split())
        if name and name not in seen:
            seen[name] = None
        if len(seen) >= MAX_KNOWN_CATEGORIES:
            break
    return list(seen)


def build_classification_prompt(
    merchant_raw: str,
    details: str,
    amount_cents: int,
    known_categories: Iterable[str],
) -> str:
    known = normalize_known_categories(known_categories)
    known_text = ", ".join(known) if known else "(none yet)"
    return (
        "You are helping classify personal finance transactions.\n"
        "\n"
        f"Merchant: {merchant_raw.strip()}\n"
        f"Details: {details.strip()}\n"
        f"Amount (cents, negative means spend): {amount_cents}\n"
        "\n"
        "Known categories (pick one if appropriate):\n"
        f"{known_text}\n"
        "\n"
        "Return JSON only:\n"
        f"{RESPONSE_SHAPE}\n"
    )


__all__ = [
    "MAX_KNOWN_CATEGORIES",
    "RESPONSE_SHAPE",
    "build_classification_prompt",
    "normalize_known_categories",
]
