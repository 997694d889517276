"""Keyword-based line-item category derivation."""

from __future__ import annotations

import re

# Checked in insertion order; the first category with a matching term wins
_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Computer Hardware": [
        "ram", "memory", "ddr", "ddr3", "ddr4", "ddr5", "ssd", "hdd",
        "hard drive", "processor", "cpu", "motherboard", "gpu",
        "graphics card", "cooler",
    ],
    "Electronics": [
        "monitor", "display", "screen", "led", "lcd", "tv", "phone", "laptop",
        "computer", "keyboard", "mouse", "headphone", "headphones", "speaker",
        "cable", "adapter", "charger",
    ],
    "Office Supplies": [
        "paper", "pen", "pencil", "marker", "stapler", "clip", "binder",
        "folder", "ink", "toner", "cartridge", "notebook", "desk", "chair",
        "cabinet",
    ],
    "Software": [
        "software", "license", "subscription", "windows", "adobe", "app",
        "antivirus", "security", "cloud",
    ],
}

DEFAULT_CATEGORY = "Other"


def _compile(terms: list[str]) -> re.Pattern:
    alternation = "|".join(
        re.escape(t).replace(r"\ ", r"\s*") for t in sorted(terms, key=len, reverse=True)
    )
    return re.compile(rf"\b(?:{alternation})\b")


_PATTERNS: list[tuple[str, re.Pattern]] = [
    (category, _compile(terms)) for category, terms in _CATEGORY_KEYWORDS.items()
]


def derive_category(description: str | None) -> str:
    """Guess a product category from an item description.

    Pure function of the lower-cased description.
    """
    if not description:
        return DEFAULT_CATEGORY
    text = description.lower()
    for category, pattern in _PATTERNS:
        if pattern.search(text):
            return category
    return DEFAULT_CATEGORY
