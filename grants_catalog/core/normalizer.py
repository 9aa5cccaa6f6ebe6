"""
Text normalization for project titles.

Handles:
- Whitespace cleanup for display
- Case- and accent-aware collation keys for sorting
"""

import re
import unicodedata


def normalize_title(title: str) -> str:
    """
    Normalize project title for consistent display.

    - Removes extra whitespace
    - Strips leading/trailing whitespace
    - Normalizes Unicode characters (NFC)

    Args:
        title: Raw title string

    Returns:
        Normalized title
    """
    if not title:
        return ""

    normalized = unicodedata.normalize("NFC", title)
    normalized = re.sub(r"\s+", " ", normalized)
    return normalized.strip()


def fold_accents(text: str) -> str:
    """Strip combining marks: 'Čeština' -> 'Cestina'."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def title_sort_key(title: str) -> tuple:
    """
    Collation key approximating locale-aware comparison.

    Primary level ignores case and accents, secondary level ignores
    case only, and remaining ties put lowercase before uppercase so the
    ordering is total and deterministic.

    Args:
        title: Project title

    Returns:
        Tuple usable as a ``sorted`` key
    """
    normalized = normalize_title(title)
    casefolded = normalized.casefold()
    return (fold_accents(casefolded), casefolded, normalized.swapcase())
