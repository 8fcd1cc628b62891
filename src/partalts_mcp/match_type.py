"""Heuristics for reading cross-reference result pages.

The match-type walk only needs two accessors, node -> text and
node -> parent, so it runs the same on BeautifulSoup tags and on
hand-built trees in tests.
"""

from typing import Callable, TypeVar

from bs4 import Tag

from .models import (
    COMPATIBLE,
    DEFAULT_MATCH_TYPE,
    DROP_IN_REPLACEMENT,
    EXACT_MATCH,
    FUNCTIONAL_EQUIVALENT,
    PIN_COMPATIBLE,
    REPLACEMENT,
    SAME_FUNCTIONALITY,
)

N = TypeVar("N")

# (phrases, label) in priority order. Phrases are lowercase.
MATCH_TYPE_PHRASES: list[tuple[tuple[str, ...], str]] = [
    (("exact match",), EXACT_MATCH),
    (("drop-in replacement", "drop in replacement"), DROP_IN_REPLACEMENT),
    (("same functionality",), SAME_FUNCTIONALITY),
    (("pin compatible",), PIN_COMPATIBLE),
    (("functional equivalent",), FUNCTIONAL_EQUIVALENT),
    (("compatible",), COMPATIBLE),
    (("replacement",), REPLACEMENT),
]

# Link text on the results page that is site chrome, not a part number
NON_PART_LABELS = (
    "Request",
    "samples",
    "Close",
    "Menu",
    "Previous",
    "Language",
    "My cart",
    "Search",
    "Home",
    "Cross-reference",
)

_MIN_PART_TEXT = 3  # exclusive
_MAX_PART_TEXT = 20  # exclusive


def is_plausible_part_text(text: str | None) -> bool:
    """Return True if link text looks like a part number rather than UI text."""
    if not text:
        return False
    text = text.strip()
    if not (_MIN_PART_TEXT < len(text) < _MAX_PART_TEXT):
        return False
    return not any(label in text for label in NON_PART_LABELS)


def match_type_for_text(text: str) -> str | None:
    """Return the highest-priority label whose phrase occurs in text, else None."""
    lowered = text.lower()
    for phrases, label in MATCH_TYPE_PHRASES:
        if any(phrase in lowered for phrase in phrases):
            return label
    return None


def infer_match_type(
    node: N,
    text_of: Callable[[N], str],
    parent_of: Callable[[N], N | None],
) -> str:
    """Infer a match-type label from the nearest ancestor that mentions one.

    Starts at the node's parent and walks outward until parent_of returns
    None. The first ancestor whose text contains any known phrase decides.

    Args:
        node: The result link (or any node) to classify
        text_of: Returns the full visible text of a node
        parent_of: Returns the parent of a node, or None at the root

    Returns:
        One of the match-type labels; DEFAULT_MATCH_TYPE if nothing matched
    """
    current = parent_of(node)
    while current is not None:
        label = match_type_for_text(text_of(current))
        if label is not None:
            return label
        current = parent_of(current)
    return DEFAULT_MATCH_TYPE


def bs4_text(tag: Tag) -> str:
    return tag.get_text()


def bs4_parent(tag: Tag) -> Tag | None:
    """Parent element, stopping below <body> like a DOM walk would."""
    parent = tag.parent
    if not isinstance(parent, Tag) or parent.name in ("body", "html", "[document]"):
        return None
    return parent
