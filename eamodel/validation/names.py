"""
Normalized name generation.

The normalized name is the uniqueness key of a node inside its project and
kind: lowercase, trimmed, whitespace runs collapsed to one space. Hyphens and
underscores are kept, so "payment-gateway" and "payment gateway" stay distinct.
"""
import re
from typing import AbstractSet, List

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s-]")
_COUNTER_SUFFIX = re.compile(r"\s+\d+$")


def normalize_name(name: str) -> str:
    """
    Normalize a name for case-insensitive comparison and deduplication.

    Examples:
        >>> normalize_name("  Order   Processing ")
        'order processing'
        >>> normalize_name("PAYMENT-GATEWAY")
        'payment-gateway'
    """
    return _WHITESPACE.sub(" ", name.lower().strip())


def normalize_name_strict(name: str) -> str:
    """
    Stricter variant that also drops punctuation other than hyphens and underscores.

    Used for loose matching only, never for the stored uniqueness key.

    Examples:
        >>> normalize_name_strict("Order-Processing (v2)")
        'order-processing v2'
    """
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub("", name.lower()).strip())


def are_names_equivalent(first: str, second: str) -> bool:
    return normalize_name(first) == normalize_name(second)


def generate_unique_normalized_name(base_name: str, existing_names: AbstractSet[str]) -> str:
    """
    Return the normalized key of base_name, suffixed with " 2", " 3", ...
    until it is not in existing_names.
    """
    normalized = normalize_name(base_name)
    if normalized not in existing_names:
        return normalized

    counter = 2
    while f"{normalized} {counter}" in existing_names:
        counter += 1
    return f"{normalized} {counter}"


def extract_base_name(normalized_name: str) -> str:
    """Strip a trailing numeric counter: "customer management 2" -> "customer management"."""
    return _COUNTER_SUFFIX.sub("", normalized_name)


def suggest_alternative_names(
    base_name: str,
    existing_names: AbstractSet[str],
    count: int = 3
) -> List[str]:
    """First `count` suffixed keys of base_name that are not already taken."""
    normalized = normalize_name(base_name)
    suggestions: List[str] = []
    counter = 2
    while len(suggestions) < count:
        suggestion = f"{normalized} {counter}"
        if suggestion not in existing_names:
            suggestions.append(suggestion)
        counter += 1
    return suggestions


def escape_like(term: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so `term` matches literally; pair with `.like(..., escape=escape)`."""
    return term.replace(escape, escape * 2).replace("%", escape + "%").replace("_", escape + "_")
